# src/featuremap/clusters.py
from __future__ import annotations

from typing import Iterable

from featuremap.depgraph import DependencyGraph
from featuremap.grouper import Cluster
from featuremap.models import (
    CLUSTER_RECORD_VERSION,
    ClusterExport,
    ClusterImports,
    ClusterMetadata,
    ClusterRecord,
    LayerDetection,
)
from featuremap.utils import sha256_text

SCAN_MODIFIER = "featuremap-scan"


def composition_hash(files: Iterable[str]) -> str:
    """Change detector for a cluster's file set. Not an identity."""
    content = "\n".join(sorted(files))
    return sha256_text(content)[:16]


def has_composition_changed(old_hash: str | None, files: Iterable[str]) -> bool:
    if not old_hash:
        return True
    return old_hash != composition_hash(files)


def collect_cluster_exports(cluster: Cluster, graph: DependencyGraph) -> list[ClusterExport]:
    seen: set[tuple[str, str, bool]] = set()
    out: list[ClusterExport] = []
    for path in cluster.files:
        node = graph.files.get(path)
        if node is None:
            continue
        for sym in node.exports:
            key = (sym.name, sym.kind, sym.is_default)
            if key in seen:
                continue
            seen.add(key)
            out.append(ClusterExport(name=sym.name, type=sym.kind, isDefault=True if sym.is_default else None))
    out.sort(key=lambda e: (e.name, e.type, bool(e.isDefault)))
    return out


def collect_cluster_imports(cluster: Cluster, graph: DependencyGraph) -> ClusterImports:
    internal: set[str] = set()
    external: set[str] = set()
    for path in cluster.files:
        node = graph.files.get(path)
        if node is None:
            continue
        internal.update(node.imports.internal)
        external.update(node.imports.external)
    return ClusterImports(internal=sorted(internal), external=sorted(external))


def build_cluster_record(
        cluster: Cluster,
        graph: DependencyGraph,
        *,
        now: str,
        existing: ClusterRecord | None = None,
) -> ClusterRecord:
    """
    Fresh layer, files, exports, imports and hash from this scan. purpose_hint, entry_points and
    metadata come from the cluster (the matcher copied them from the persisted record), and a
    layer lock on the existing record keeps its layer.
    """
    layer = cluster.layer.layer
    locks = existing.locks if existing is not None else None
    if locks is not None and locks.layer and existing is not None:
        layer = existing.layer

    metadata = cluster.metadata
    if metadata is None:
        metadata = existing.metadata if existing is not None and existing.metadata else None
    if metadata is None:
        metadata = ClusterMetadata(createdAt=now, updatedAt=now, lastModifiedBy=SCAN_MODIFIER)

    purpose_hint = cluster.purpose_hint
    entry_points = cluster.entry_points
    if existing is not None:
        purpose_hint = purpose_hint if purpose_hint is not None else existing.purpose_hint
        entry_points = entry_points if entry_points is not None else existing.entry_points

    return ClusterRecord(
        version=CLUSTER_RECORD_VERSION,
        id=cluster.id,
        layer=layer,
        layerDetection=LayerDetection(
            confidence=cluster.layer.confidence,
            signals=list(cluster.layer.signals),
        ),
        locks=locks.model_copy() if locks is not None else None,
        files=sorted(cluster.files),
        exports=collect_cluster_exports(cluster, graph),
        imports=collect_cluster_imports(cluster, graph),
        purpose_hint=purpose_hint,
        entry_points=list(entry_points) if entry_points is not None else None,
        compositionHash=composition_hash(cluster.files),
        metadata=metadata.model_copy(),
    )
