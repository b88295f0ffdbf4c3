# src/featuremap/aliases.py
"""
tsconfig/jsconfig path aliases.

Three scan-scoped caches live here, created per scan and thrown away with it:
  - directory -> nearest config (ConfigLocator)
  - config path -> effective alias entries, with the warn-once set for broken configs (AliasTableCache)
  - the resolver that ties both to the known file set (AliasResolver)
All three are safe to share between extraction worker threads.
"""
from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, Iterable

from featuremap.jsonc import parse_json_with_comments
from featuremap.modindex import probe_known_file
from featuremap.utils import norm_relpath, to_repo_relative

logger = logging.getLogger(__name__)

CONFIG_NAMES = ("tsconfig.json", "jsconfig.json")


class AliasConfigError(ValueError):
    def __init__(self, config_path: str, inner: Exception | str):
        super().__init__(f"Invalid alias config at {config_path}: {inner}")
        self.config_path = config_path


@dataclass(frozen=True)
class AliasEntry:
    pattern: str
    prefix: str
    suffix: str
    has_star: bool
    targets: tuple[str, ...]
    order: int

    @property
    def specificity(self) -> int:
        return len(self.prefix) + len(self.suffix)


def split_pattern(pattern: str) -> tuple[str, str, bool]:
    if pattern.count("*") != 1:
        return pattern, "", False
    prefix, suffix = pattern.split("*", 1)
    return prefix, suffix, True


def match_alias(entry: AliasEntry, specifier: str) -> str | None:
    """
    Returns the substituted middle segment ("" for exact entries) or None.
    Wildcards need a non-empty middle.
    """
    if not entry.has_star:
        return "" if specifier == entry.pattern else None

    if len(specifier) <= len(entry.prefix) + len(entry.suffix):
        return None
    if not specifier.startswith(entry.prefix) or not specifier.endswith(entry.suffix):
        return None
    return specifier[len(entry.prefix): len(specifier) - len(entry.suffix)]


def apply_alias_target(target: str, middle: str) -> str:
    return target.replace("*", middle) if "*" in target else target


# -----------------------------
# Nearest config lookup
# -----------------------------


class ConfigLocator:
    def __init__(self, config_names: tuple[str, ...] = CONFIG_NAMES):
        self.config_names = config_names
        self._by_dir: dict[str, str | None] = {}
        self._lock = threading.Lock()
        # directories whose filesystem was actually probed; each is probed at most once
        self.probed_dirs: list[str] = []

    def _probe(self, directory: str) -> str | None:
        self.probed_dirs.append(directory)
        for name in self.config_names:
            cand = os.path.join(directory, name)
            if os.path.isfile(cand):
                return cand
        return None

    def find_nearest_config(self, file_path: str, root_boundary: str) -> str | None:
        """
        Walks parents of file_path upward, stopping at (and including) root_boundary.
        Every directory visited on an unresolved walk is memoized to the final answer.
        """
        root_limit = os.path.abspath(root_boundary)
        visited: list[str] = []
        current = os.path.dirname(os.path.abspath(file_path))

        # held for the whole walk: each directory is probed at most once, concurrent lookups queue
        with self._lock:
            while True:
                if current in self._by_dir:
                    answer = self._by_dir[current]
                    break

                found = self._probe(current)
                visited.append(current)
                if found is not None:
                    answer = found
                    break

                parent = os.path.dirname(current)
                if current == root_limit or parent == current:
                    answer = None
                    break
                current = parent

            for d in visited:
                self._by_dir[d] = answer
            return answer


# -----------------------------
# Alias tables with extends
# -----------------------------


def _resolve_extends_path(value: str, from_dir: str) -> str | None:
    v = (value or "").strip()
    if not v:
        return None

    cand = os.path.abspath(os.path.join(from_dir, v))
    if not cand.endswith(".json"):
        cand += ".json"
    if os.path.isfile(cand):
        return cand

    if os.path.isabs(v):
        abs_cand = v if v.endswith(".json") else v + ".json"
        return abs_cand if os.path.isfile(abs_cand) else None

    # package-based extends ("@tsconfig/node18") are not followed
    return None


def build_alias_entries(config: dict[str, Any], config_path: str) -> list[AliasEntry]:
    co = config.get("compilerOptions")
    if not isinstance(co, dict):
        return []
    paths = co.get("paths")
    if not isinstance(paths, dict):
        return []

    base_url = co.get("baseUrl")
    if not isinstance(base_url, str) or not base_url.strip():
        base_url = "."
    base_root = os.path.abspath(os.path.join(os.path.dirname(config_path), base_url.strip()))

    entries: list[AliasEntry] = []
    order = 0
    for pattern, raw_targets in paths.items():
        if not isinstance(pattern, str) or not pattern:
            continue
        targets = raw_targets if isinstance(raw_targets, list) else [raw_targets]
        resolved = tuple(
            os.path.abspath(os.path.join(base_root, t)) for t in targets if isinstance(t, str) and t.strip()
        )
        if not resolved:
            continue

        prefix, suffix, has_star = split_pattern(pattern)
        entries.append(
            AliasEntry(
                pattern=pattern,
                prefix=prefix,
                suffix=suffix,
                has_star=has_star,
                targets=resolved,
                order=order,
            )
        )
        order += 1
    return entries


def merge_alias_entries(base: list[AliasEntry], override: list[AliasEntry]) -> list[AliasEntry]:
    """Child entries first; parent entries survive unless the child declares the same literal pattern."""
    if not override:
        return list(base)
    seen = {e.pattern for e in override}
    return list(override) + [e for e in base if e.pattern not in seen]


class AliasTableCache:
    def __init__(self, *, strict: bool = False):
        self.strict = strict
        self._entries: dict[str, list[AliasEntry]] = {}
        self._parsed: dict[str, dict[str, Any] | None] = {}
        self._invalid: set[str] = set()
        self._lock = threading.RLock()

    @property
    def invalid_configs(self) -> set[str]:
        return set(self._invalid)

    def _read_config(self, config_path: str) -> dict[str, Any] | None:
        if not os.path.isfile(config_path):
            return None
        try:
            with open(config_path, encoding="utf-8") as fh:
                parsed = parse_json_with_comments(fh.read())
            if not isinstance(parsed, dict):
                raise AliasConfigError(config_path, "top-level value is not an object")
            return parsed
        except (OSError, UnicodeDecodeError, json.JSONDecodeError, AliasConfigError) as e:
            if self.strict:
                if isinstance(e, AliasConfigError):
                    raise
                raise AliasConfigError(config_path, e) from e
            if config_path not in self._invalid:
                self._invalid.add(config_path)
                logger.warning("Invalid alias config at %s; treating it as having no aliases", config_path)
            return None

    def _config(self, config_path: str) -> dict[str, Any] | None:
        if config_path not in self._parsed:
            self._parsed[config_path] = self._read_config(config_path)
        return self._parsed[config_path]

    def load_alias_entries(self, config_path: str) -> list[AliasEntry]:
        """
        Effective entries for config_path with its extends chain applied.
        Only whole-chain results are cached; a chain cut short by a cycle depends on its entry point.
        """
        config_path = os.path.abspath(config_path)
        with self._lock:
            if config_path not in self._entries:
                self._entries[config_path] = self._resolve_chain(config_path, set())
            return list(self._entries[config_path])

    def _resolve_chain(self, config_path: str, stack: set[str]) -> list[AliasEntry]:
        # a config already on the in-progress stack contributes nothing and is not re-entered
        if config_path in stack:
            return []

        stack.add(config_path)
        try:
            config = self._config(config_path)
            if config is None:
                return []

            base: list[AliasEntry] = []
            ext = config.get("extends")
            ext_values = ext if isinstance(ext, list) else [ext]
            for value in ext_values:
                if not isinstance(value, str):
                    continue
                parent = _resolve_extends_path(value, os.path.dirname(config_path))
                if parent is None:
                    continue
                # later extends entries override earlier ones
                base = merge_alias_entries(base, self._resolve_chain(parent, stack))

            return merge_alias_entries(base, build_alias_entries(config, config_path))
        finally:
            stack.discard(config_path)


# -----------------------------
# Resolver
# -----------------------------


class AliasResolver:
    def __init__(
            self,
            project_root: str,
            file_paths: Iterable[str],
            *,
            strict: bool = False,
            locator: ConfigLocator | None = None,
            tables: AliasTableCache | None = None,
    ):
        self.project_root = os.path.abspath(project_root)
        self.known_files: frozenset[str] = frozenset(norm_relpath(p) for p in file_paths)
        self.locator = locator or ConfigLocator()
        self.tables = tables or AliasTableCache(strict=strict)

    def _abs(self, file_path: str) -> str:
        if os.path.isabs(file_path):
            return file_path
        return os.path.join(self.project_root, file_path)

    def entries_for(self, file_path: str) -> list[AliasEntry]:
        config_path = self.locator.find_nearest_config(self._abs(file_path), self.project_root)
        if not config_path:
            return []
        return self.tables.load_alias_entries(config_path)

    def _matching(self, specifier: str, file_path: str) -> list[tuple[AliasEntry, str]]:
        if not specifier or specifier.startswith("."):
            return []
        hits: list[tuple[AliasEntry, str]] = []
        for entry in self.entries_for(file_path):
            middle = match_alias(entry, specifier)
            if middle is not None:
                hits.append((entry, middle))
        # more specific patterns first, declaration order breaks ties
        hits.sort(key=lambda h: (-h[0].specificity, h[0].order))
        return hits

    def is_alias_import(self, specifier: str, file_path: str) -> bool:
        return bool(self._matching(specifier, file_path))

    def resolve_alias_import(self, specifier: str, file_path: str) -> str | None:
        for entry, middle in self._matching(specifier, file_path):
            for target in entry.targets:
                stem = to_repo_relative(apply_alias_target(target, middle), self.project_root)
                if stem is None:
                    continue
                hit = probe_known_file(stem, self.known_files, specifier)
                if hit:
                    return hit
        return None
