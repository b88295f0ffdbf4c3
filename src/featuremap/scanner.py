# src/featuremap/scanner.py
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field

from featuremap.config import ScanFilters
from featuremap.extract import GoModule, read_go_mod
from featuremap.utils import norm_relpath

logger = logging.getLogger(__name__)

TEST_FILE_RE = re.compile(r"\.(test|spec)\.[cm]?[jt]sx?$")


@dataclass(frozen=True)
class GoSource:
    abs_path: str
    rel_path: str
    module: GoModule
    # module root relative to the scan root ("." for the root itself)
    module_root_rel: str


@dataclass
class ScanResult:
    project_root: str
    files: list[str] = field(default_factory=list)
    go_sources: list[GoSource] = field(default_factory=list)
    go_modules: list[GoModule] = field(default_factory=list)
    skipped: list[dict[str, str]] = field(default_factory=list)


def _is_wanted_source(name: str, filters: ScanFilters) -> bool:
    lower = name.lower()
    if not any(lower.endswith(ext.lower()) for ext in filters.source_exts):
        return False
    if filters.skip_declaration_files and lower.endswith(".d.ts"):
        return False
    if filters.skip_test_files and TEST_FILE_RE.search(lower):
        return False
    return True


def scan_project(scan_root: str, filters: ScanFilters) -> ScanResult:
    """
    Deterministic walk (sorted dirs and names) collecting TS/JS sources and, for every go.mod found,
    the .go files of that module. Nested modules own their own subtree.
    """
    root = os.path.abspath(scan_root)
    if not os.path.isdir(root):
        raise FileNotFoundError(f"Scan root does not exist: {root}")

    deny_dirs = set(filters.deny_dirs)
    deny_file_regex = [re.compile(p) for p in filters.deny_file_regex]

    result = ScanResult(project_root=root)
    module_for_dir: dict[str, GoModule | None] = {}

    for current, dirs, filenames in os.walk(root):
        dirs[:] = sorted(d for d in dirs if d not in deny_dirs)
        filenames = sorted(filenames)

        module = module_for_dir.get(os.path.dirname(current))
        if "go.mod" in filenames:
            own = read_go_mod(os.path.join(current, "go.mod"))
            if own is not None:
                module = own
                result.go_modules.append(own)
            else:
                logger.warning("Ignoring go.mod without a module directive at %s", current)
        module_for_dir[current] = module

        for fn in filenames:
            abs_path = os.path.join(current, fn)
            rel_path = norm_relpath(os.path.relpath(abs_path, root))

            if any(rx.search(rel_path) for rx in deny_file_regex):
                result.skipped.append({"path": rel_path, "reason": "deny_file_regex"})
                continue

            if fn.endswith(".go"):
                if fn.endswith("_test.go"):
                    continue
                if module is None:
                    result.skipped.append({"path": rel_path, "reason": "go_file_outside_module"})
                    continue
                module_root_rel = norm_relpath(os.path.relpath(module.module_root, root)) or "."
                result.go_sources.append(
                    GoSource(abs_path=abs_path, rel_path=rel_path, module=module, module_root_rel=module_root_rel)
                )
                continue

            if _is_wanted_source(fn, filters):
                result.files.append(abs_path)

    result.files.sort()
    result.go_sources.sort(key=lambda g: g.rel_path)
    result.skipped.sort(key=lambda s: s["path"])
    return result
