# src/featuremap/main.py
from __future__ import annotations

from typing import Any, Dict, Optional

from featuremap.config import runtime_config_from_env


def run(
        project_root: str = ".",
        dry_run: bool = False,
        *,
        workers: Optional[int] = None,
        min_overlap: Optional[float] = None,
        strict_aliases: Optional[bool] = None,
) -> Dict[str, Any]:
    """
    Core entrypoint used by featuremap.cli.

    featuremap.pipeline owns the full workflow
    (config -> discover -> extract -> graph -> group -> match -> persist -> validate -> result).
    Explicit arguments win over FEATUREMAP_* environment variables.
    """
    config = runtime_config_from_env(dry_run=dry_run, workers=workers, strict_aliases=strict_aliases)

    from featuremap.pipeline import run_scan_graph

    # Let ScanStageError bubble up so the CLI can render stage-aware JSON.
    return run_scan_graph(project_root=project_root, config=config, min_overlap=min_overlap)
