# src/featuremap/modindex.py
"""
Module-path index: turns an import specifier into at most one file already known to the scan.

TS/JS imports are file-addressed with extension and index elision, so they resolve by probing a
fixed candidate list. Go imports are package-addressed, so they resolve through a
{module-path}/{dir} -> representative-file table.
"""
from __future__ import annotations

import posixpath
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable

from featuremap.utils import norm_relpath

if TYPE_CHECKING:
    from featuremap.aliases import AliasResolver

# source, typed-source, generated, generated-typed; the bare stem is probed first
TS_RESOLVE_EXTS = (".ts", ".tsx", ".js", ".jsx")
GENERATED_EXTS = (".js", ".jsx")
TYPED_EXTS = (".ts", ".tsx")


def candidate_paths(stem: str, specifier: str | None = None) -> list[str]:
    """
    Probe order for a repo-relative stem:
      stem, stem.{ts,tsx,js,jsx}, stem/index.{ts,tsx,js,jsx},
      and when the specifier names compiled output (.js/.jsx), the stripped stem + .{ts,tsx}.
    """
    s = stem.rstrip("/")
    if not s:
        return []

    out = [s]
    out.extend(s + ext for ext in TS_RESOLVE_EXTS)
    out.extend(f"{s}/index{ext}" for ext in TS_RESOLVE_EXTS)

    spec = specifier if specifier is not None else s
    for gen in GENERATED_EXTS:
        if spec.endswith(gen) and s.endswith(gen):
            base = s[: -len(gen)]
            out.extend(base + ext for ext in TYPED_EXTS)
            break
    return out


def probe_known_file(stem: str, known_files: set[str] | frozenset[str], specifier: str | None = None) -> str | None:
    for cand in candidate_paths(stem, specifier):
        if cand in known_files:
            return cand
    return None


def join_relative(from_dir: str, specifier: str) -> str | None:
    """
    "./x" / "../x" against a repo-relative directory. None when the result climbs out of the root.
    """
    joined = posixpath.normpath(posixpath.join(from_dir or ".", specifier))
    if joined == ".." or joined.startswith("../"):
        return None
    return norm_relpath(joined)


# -----------------------------
# Go
# -----------------------------


@dataclass(frozen=True)
class GoFileRef:
    path: str
    module_path: str | None
    module_root: str = "."


@dataclass
class GoImportIndex:
    by_import_path: dict[str, str] = field(default_factory=dict)

    @classmethod
    def build(cls, go_files: Iterable[GoFileRef]) -> "GoImportIndex":
        """
        First file encountered per package directory wins, so input order decides the representative.
        Files without a known module path never enter the index.
        """
        index = cls()
        for ref in go_files:
            if not ref.module_path:
                continue

            path = norm_relpath(ref.path)
            module_root = norm_relpath(ref.module_root or ".") or "."
            file_dir = posixpath.dirname(path) or "."

            if module_root == ".":
                rel_dir = file_dir
            else:
                rel_dir = posixpath.relpath(file_dir, module_root)
            if rel_dir == ".." or rel_dir.startswith("../"):
                continue

            import_path = ref.module_path if rel_dir == "." else f"{ref.module_path}/{rel_dir}"
            index.by_import_path.setdefault(import_path, path)
        return index

    def resolve(self, specifier: str) -> str | None:
        return self.by_import_path.get(specifier)


# -----------------------------
# Unified resolution
# -----------------------------


class ImportResolver:
    """
    resolve_import(specifier, from_file) -> repo-relative path | None, for either language family.
    from_file is the repo-relative key of the importing file.
    """

    def __init__(
            self,
            known_files: Iterable[str],
            *,
            go_index: GoImportIndex | None = None,
            aliases: "AliasResolver | None" = None,
    ):
        self.known_files: frozenset[str] = frozenset(norm_relpath(p) for p in known_files)
        self.go_index = go_index or GoImportIndex()
        self.aliases = aliases

    def resolve_import(self, specifier: str, from_file: str) -> str | None:
        s = (specifier or "").strip()
        if not s:
            return None

        if from_file.endswith(".go"):
            return self.go_index.resolve(s)

        # the extractor already rewrote resolved aliases to repo paths
        if s in self.known_files:
            return s

        if s.startswith("."):
            stem = join_relative(posixpath.dirname(from_file), s)
            if stem is None:
                return None
            return probe_known_file(stem, self.known_files, s)

        if self.aliases is not None:
            return self.aliases.resolve_alias_import(s, from_file)
        return None
