# src/featuremap/pipeline.py
from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, TypedDict

from featuremap.aliases import AliasResolver
from featuremap.clusters import build_cluster_record
from featuremap.config import MatchingSettings, RuntimeConfig, ScanConfig, load_scan_config
from featuremap.depgraph import DependencyGraph, build_graph, graph_stats
from featuremap.extract import ParsedFile, parse_go_file, parse_source_file
from featuremap.grouper import GroupingResult, cluster_stats, group_by_folders
from featuremap.layers import layer_distribution
from featuremap.matching import MatchingResult, apply_cluster_matching
from featuremap.models import ClusterRecord
from featuremap.scanner import GoSource, ScanResult, scan_project
from featuremap.store import (
    SaveSummary,
    build_graph_document,
    clusters_dir_for,
    graph_path_for,
    read_clusters_dir,
    save_clusters,
    save_graph,
)
from featuremap.utils import norm_relpath, to_repo_relative, utc_iso
from featuremap.validate import validate_artifacts, validate_dependency_graph

try:
    from langgraph.graph import END, StateGraph
except ImportError as e:  # pragma: no cover
    raise RuntimeError("LangGraph is required. Install 'langgraph'.") from e

logger = logging.getLogger(__name__)


# -----------------------------
# Stages (canonical)
# -----------------------------
STAGE_INIT = "init"
STAGE_LOAD_CONFIG = "load_config"
STAGE_DISCOVER_FILES = "discover_files"
STAGE_EXTRACT_FACTS = "extract_facts"
STAGE_BUILD_GRAPH = "build_graph"
STAGE_GROUP_CLUSTERS = "group_clusters"
STAGE_MATCH_CLUSTERS = "match_clusters"
STAGE_PERSIST_CLUSTERS = "persist_clusters"
STAGE_VALIDATE_ARTIFACTS = "validate_artifacts"
STAGE_EMIT_RESULT = "emit_result"
STAGE_DONE = "done"
STAGE_DONE_DRY_RUN = "done_dry_run"


class ScanStageError(RuntimeError):
    def __init__(self, stage: str, inner: Exception):
        super().__init__(str(inner))
        self.stage = stage
        self.inner = inner


class ScanState(TypedDict, total=False):
    project_root: str
    config: RuntimeConfig
    min_overlap_override: float | None
    stage: str

    scan_config: ScanConfig
    scan_root: str

    scan: ScanResult
    aliases: AliasResolver
    parsed_files: list[ParsedFile]

    graph: DependencyGraph
    grouping: GroupingResult

    existing_clusters: list[ClusterRecord]
    unreadable_clusters: list[str]
    matching: MatchingResult

    records: list[ClusterRecord]
    save_summary: SaveSummary
    graph_written: bool

    result: dict[str, Any]


def node_load_config(state: ScanState) -> ScanState:
    stage = STAGE_LOAD_CONFIG
    try:
        project_root = os.path.abspath(state["project_root"])
        if not os.path.isdir(project_root):
            raise FileNotFoundError(f"Project root does not exist: {project_root}")

        cfg = load_scan_config(project_root)
        override = state.get("min_overlap_override")
        if override is not None:
            cfg.matching = MatchingSettings(min_overlap=override)

        state["stage"] = stage
        state["project_root"] = project_root
        state["scan_config"] = cfg
        state["scan_root"] = os.path.normpath(os.path.join(project_root, cfg.project.root))
        return state
    except Exception as e:
        raise ScanStageError(stage, e) from e


def node_discover_files(state: ScanState) -> ScanState:
    stage = STAGE_DISCOVER_FILES
    try:
        scan = scan_project(state["scan_root"], state["scan_config"].scan)
        logger.info(
            "Found %d TS/JS files and %d Go files in %d Go modules",
            len(scan.files),
            len(scan.go_sources),
            len(scan.go_modules),
        )
        state["stage"] = stage
        state["scan"] = scan
        return state
    except Exception as e:
        raise ScanStageError(stage, e) from e


def _parse_go(source: GoSource) -> ParsedFile | None:
    return parse_go_file(
        source.abs_path,
        source.rel_path,
        module_path=source.module.module_path,
        module_root=source.module_root_rel,
    )


def node_extract_facts(state: ScanState) -> ScanState:
    stage = STAGE_EXTRACT_FACTS
    try:
        scan = state["scan"]
        root = scan.project_root
        workers = state["config"].workers

        rel_paths = [to_repo_relative(p, root) or norm_relpath(os.path.basename(p)) for p in scan.files]
        aliases = AliasResolver(root, rel_paths, strict=state["config"].strict_aliases)

        def parse_ts(item: tuple[str, str]) -> ParsedFile:
            abs_path, rel_path = item
            return parse_source_file(abs_path, rel_path, aliases)

        with ThreadPoolExecutor(max_workers=workers) as executor:
            ts_files = list(executor.map(parse_ts, zip(scan.files, rel_paths)))
            go_files = [p for p in executor.map(_parse_go, scan.go_sources) if p is not None]

        if aliases.tables.invalid_configs:
            logger.info("%d alias config(s) were ignored as invalid", len(aliases.tables.invalid_configs))

        state["stage"] = stage
        state["aliases"] = aliases
        state["parsed_files"] = ts_files + go_files
        return state
    except Exception as e:
        raise ScanStageError(stage, e) from e


def node_build_graph(state: ScanState) -> ScanState:
    stage = STAGE_BUILD_GRAPH
    try:
        graph = build_graph(
            state["parsed_files"],
            project_root=state["scan"].project_root,
            aliases=state["aliases"],
            workers=state["config"].workers,
        )
        stats = graph_stats(graph)
        logger.info("Built dependency graph: %d files, %d dependencies", stats["total_files"], stats["total_dependencies"])
        state["stage"] = stage
        state["graph"] = graph
        return state
    except Exception as e:
        raise ScanStageError(stage, e) from e


def node_group_clusters(state: ScanState) -> ScanState:
    stage = STAGE_GROUP_CLUSTERS
    try:
        grouping = group_by_folders(state["graph"], state["scan_config"].clustering)
        logger.info("Grouped files into %d clusters", len(grouping.clusters))
        state["stage"] = stage
        state["grouping"] = grouping
        return state
    except Exception as e:
        raise ScanStageError(stage, e) from e


def node_match_clusters(state: ScanState) -> ScanState:
    stage = STAGE_MATCH_CLUSTERS
    try:
        loaded = read_clusters_dir(clusters_dir_for(state["project_root"]))
        existing = loaded.records
        matching = apply_cluster_matching(
            state["grouping"].clusters,
            existing,
            min_overlap=state["scan_config"].matching.min_overlap,
            reserved_ids=loaded.unreadable,
        )
        logger.info(
            "%d clusters matched, %d new",
            len(matching.matched_ids),
            len(matching.clusters) - len(matching.matched_ids),
        )
        if matching.orphaned:
            logger.info("Orphaned clusters (kept on disk): %s", ", ".join(r.id for r in matching.orphaned))
        if loaded.unreadable:
            logger.warning("Cluster ids held by unreadable records (left untouched): %s", ", ".join(loaded.unreadable))

        state["stage"] = stage
        state["existing_clusters"] = existing
        state["unreadable_clusters"] = loaded.unreadable
        state["matching"] = matching
        return state
    except Exception as e:
        raise ScanStageError(stage, e) from e


def node_persist_clusters(state: ScanState) -> ScanState:
    stage = STAGE_PERSIST_CLUSTERS
    try:
        cfg = state["config"]
        now = utc_iso()
        existing_by_id = {r.id: r for r in state["existing_clusters"]}
        clusters = state["matching"].clusters

        records = [
            build_cluster_record(c, state["graph"], now=now, existing=existing_by_id.get(c.id)) for c in clusters
        ]
        summary, records = save_clusters(
            records,
            clusters_dir_for(state["project_root"]),
            existing_by_id,
            now=now,
            dry_run=cfg.dry_run,
        )
        graph_written = save_graph(
            build_graph_document(clusters, now=now),
            graph_path_for(state["project_root"]),
            dry_run=cfg.dry_run,
        )
        logger.info(
            "Clusters: %d created, %d updated, %d unchanged%s",
            len(summary.created),
            len(summary.updated),
            len(summary.unchanged),
            " (dry run, nothing written)" if cfg.dry_run else "",
        )
        logger.info("Layer distribution: %s", summary.layers)

        state["stage"] = stage
        state["records"] = records
        state["save_summary"] = summary
        state["graph_written"] = graph_written
        return state
    except Exception as e:
        raise ScanStageError(stage, e) from e


def node_validate_artifacts(state: ScanState) -> ScanState:
    stage = STAGE_VALIDATE_ARTIFACTS
    try:
        validate_dependency_graph(state["graph"])
        if not state["config"].dry_run:
            validate_artifacts(
                clusters_dir_for(state["project_root"]),
                graph_path_for(state["project_root"]),
                [c.id for c in state["matching"].clusters],
            )
        state["stage"] = stage
        return state
    except Exception as e:
        raise ScanStageError(stage, e) from e


def node_emit_result(state: ScanState) -> ScanState:
    stage = STAGE_EMIT_RESULT
    try:
        cfg = state["config"]
        scan = state["scan"]
        matching = state["matching"]
        project_root = state["project_root"]

        invalid = sorted(
            to_repo_relative(p, project_root) or p for p in state["aliases"].tables.invalid_configs
        )

        state["result"] = {
            "ok": True,
            "stage": STAGE_DONE_DRY_RUN if cfg.dry_run else STAGE_DONE,
            "project_root": project_root,
            "scan_root": to_repo_relative(state["scan_root"], project_root) or ".",
            "files": {
                "ts_js": len(scan.files),
                "go": len(scan.go_sources),
                "go_modules": sorted(m.module_path for m in scan.go_modules),
                "skipped": len(scan.skipped),
            },
            "graph": graph_stats(state["graph"]),
            "clusters": {
                **cluster_stats(matching.clusters),
                "layers": layer_distribution(r.layer for r in state["records"]),
            },
            "matching": {
                "min_overlap": state["scan_config"].matching.min_overlap,
                "matched": len(matching.matched_ids),
                "new": len(matching.clusters) - len(matching.matched_ids),
                "matches": [
                    {"suggested_id": m.suggested_id, "matched_id": m.matched_id, "confidence": round(m.confidence, 4)}
                    for m in matching.matches
                ],
                "orphaned": [r.id for r in matching.orphaned],
                "unreadable": state["unreadable_clusters"],
            },
            "persistence": {
                **state["save_summary"].to_dict(),
                "graph_written": state["graph_written"],
            },
            "invalid_alias_configs": invalid,
            "artifacts": {
                "clusters_dir": str(Path(clusters_dir_for(project_root))),
                "graph": str(Path(graph_path_for(project_root))),
            },
        }
        state["stage"] = stage
        return state
    except Exception as e:
        raise ScanStageError(stage, e) from e


def build_scan_graph():
    g = StateGraph(ScanState)

    g.add_node("load_config", node_load_config)
    g.add_node("discover_files", node_discover_files)
    g.add_node("extract_facts", node_extract_facts)
    g.add_node("build_graph", node_build_graph)
    g.add_node("group_clusters", node_group_clusters)
    g.add_node("match_clusters", node_match_clusters)
    g.add_node("persist_clusters", node_persist_clusters)
    g.add_node("validate_artifacts", node_validate_artifacts)
    g.add_node("emit_result", node_emit_result)

    g.set_entry_point("load_config")
    g.add_edge("load_config", "discover_files")
    g.add_edge("discover_files", "extract_facts")
    g.add_edge("extract_facts", "build_graph")
    g.add_edge("build_graph", "group_clusters")
    g.add_edge("group_clusters", "match_clusters")
    g.add_edge("match_clusters", "persist_clusters")
    g.add_edge("persist_clusters", "validate_artifacts")
    g.add_edge("validate_artifacts", "emit_result")
    g.add_edge("emit_result", END)

    return g.compile()


def run_scan_graph(
        *,
        project_root: str,
        config: RuntimeConfig,
        min_overlap: float | None = None,
) -> dict[str, Any]:
    app = build_scan_graph()
    state: ScanState = {
        "project_root": project_root,
        "config": config,
        "min_overlap_override": min_overlap,
        "stage": STAGE_INIT,
    }
    final_state = app.invoke(state)
    return final_state["result"]
