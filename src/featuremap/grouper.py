# src/featuremap/grouper.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from featuremap.config import ClusteringSettings
from featuremap.depgraph import DependencyGraph
from featuremap.extract import ExportSymbol
from featuremap.layers import LayerResult, detect_layer
from featuremap.models import ClusterMetadata
from featuremap.utils import slugify

logger = logging.getLogger(__name__)


@dataclass
class Cluster:
    id: str
    name: str
    files: list[str] = field(default_factory=list)
    # member files imported by other members of the same cluster
    internal_dependencies: list[str] = field(default_factory=list)
    # union of member files' external import specifiers
    external_dependencies: list[str] = field(default_factory=list)
    # ids of other clusters this cluster's files import
    cluster_dependencies: list[str] = field(default_factory=list)
    layer: LayerResult = field(default_factory=lambda: LayerResult("shared", 0.3, []))
    # carried over from a persisted cluster by the matcher
    purpose_hint: str | None = None
    entry_points: list[str] | None = None
    metadata: ClusterMetadata | None = None


@dataclass
class GroupingResult:
    clusters: list[Cluster] = field(default_factory=list)
    file_to_cluster: dict[str, str] = field(default_factory=dict)


# (package or "", folder parts after wrappers)
ClusterKey = tuple[str, tuple[str, ...]]


def cluster_key(path: str, settings: ClusteringSettings) -> ClusterKey:
    """
    packages/cli/src/commands/init.ts     -> ("cli", ("commands",))
    packages/web/src/components/ui/b.tsx -> ("web", ("components", "ui"))
    packages/cli/src/index.ts             -> ("cli", ())
    src/lib/deep/er/x.ts                  -> ("", ("lib", "deep"))     with max_depth 2
    """
    dirs = path.split("/")[:-1]

    package = ""
    rest = dirs
    if len(dirs) >= 2 and dirs[0] in settings.package_dirs:
        package = dirs[1]
        rest = dirs[2:]

    while rest and rest[0] in settings.wrapper_dirs:
        rest = rest[1:]

    return package, tuple(rest[: settings.max_depth])


def cluster_id_for_key(key: ClusterKey) -> str:
    package, folders = key
    if not folders:
        return f"{slugify(package)}-core" if package else "root"
    parts = ([package] if package else []) + list(folders)
    return slugify("-".join(parts))


def cluster_name(cluster_id: str) -> str:
    """cli-commands -> Cli Commands"""
    return " ".join(part[:1].upper() + part[1:] for part in cluster_id.split("-") if part)


def _collapse_small(members: dict[ClusterKey, list[str]], min_files: int) -> dict[ClusterKey, list[str]]:
    if min_files <= 1:
        return members

    out = {k: list(v) for k, v in members.items()}
    deepest = max((len(k[1]) for k in out), default=0)
    # deepest level first so merges cascade upward
    for depth in range(deepest, 0, -1):
        for key in sorted(k for k in out if len(k[1]) == depth):
            if len(out[key]) >= min_files:
                continue
            parent: ClusterKey = (key[0], key[1][:-1])
            out.setdefault(parent, []).extend(out.pop(key))
    return out


def group_by_folders(graph: DependencyGraph, settings: ClusteringSettings | None = None) -> GroupingResult:
    """
    Every node lands in exactly one cluster. Cluster ids are provisional here; the matcher may
    replace them with persisted ids.
    """
    settings = settings or ClusteringSettings()

    by_key: dict[ClusterKey, list[str]] = {}
    for path in graph.files:
        by_key.setdefault(cluster_key(path, settings), []).append(path)
    by_key = _collapse_small(by_key, settings.min_files)

    # two keys can slugify to the same id; they share a cluster
    by_id: dict[str, list[str]] = {}
    for key, files in by_key.items():
        by_id.setdefault(cluster_id_for_key(key), []).extend(files)

    result = GroupingResult()
    for cid, files in by_id.items():
        for path in files:
            result.file_to_cluster[path] = cid

    for cid in sorted(by_id):
        files = sorted(by_id[cid])
        internal: set[str] = set()
        other_clusters: set[str] = set()
        external: set[str] = set()
        internal_specs: list[str] = []
        exports: list[ExportSymbol] = []

        for path in files:
            node = graph.files[path]
            external.update(node.imports.external)
            internal_specs.extend(node.imports.internal)
            exports.extend(node.exports)
            for dep in graph.dependencies.get(path, []):
                dep_cluster = result.file_to_cluster.get(dep)
                if dep_cluster == cid:
                    internal.add(dep)
                elif dep_cluster:
                    other_clusters.add(dep_cluster)

        result.clusters.append(
            Cluster(
                id=cid,
                name=cluster_name(cid),
                files=files,
                internal_dependencies=sorted(internal),
                external_dependencies=sorted(external),
                cluster_dependencies=sorted(other_clusters),
                layer=detect_layer(files, external, internal_specs, exports),
            )
        )

    logger.debug("Grouped %d files into %d clusters", len(graph.files), len(result.clusters))
    return result


def cluster_stats(clusters: list[Cluster]) -> dict[str, Any]:
    total = len(clusters)
    total_files = sum(len(c.files) for c in clusters)

    largest: dict[str, Any] | None = None
    for c in clusters:
        if largest is None or len(c.files) > largest["size"]:
            largest = {"id": c.id, "size": len(c.files)}

    return {
        "total_clusters": total,
        "avg_files_per_cluster": (total_files / total) if total > 0 else 0.0,
        "largest_cluster": largest,
    }
