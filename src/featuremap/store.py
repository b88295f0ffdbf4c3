# src/featuremap/store.py
"""
.featuremap/ persistence: one YAML file per cluster plus graph.yaml.

Files are rewritten only when their content changed in a way that matters, so repeated scans of an
unchanged tree leave the directory byte-identical.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

import yaml
from pydantic import ValidationError

from featuremap.clusters import SCAN_MODIFIER
from featuremap.config import FEATUREMAP_DIR
from featuremap.grouper import Cluster
from featuremap.models import ClusterRecord, GraphDocument, GraphEdge, GraphNode

logger = logging.getLogger(__name__)

CLUSTERS_DIRNAME = "clusters"
GRAPH_FILENAME = "graph.yaml"


def clusters_dir_for(project_root: str | Path) -> Path:
    return Path(project_root) / FEATUREMAP_DIR / CLUSTERS_DIRNAME


def graph_path_for(project_root: str | Path) -> Path:
    return Path(project_root) / FEATUREMAP_DIR / GRAPH_FILENAME


def load_yaml_mapping(path: str | Path) -> dict[str, Any]:
    raw = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise TypeError(f"{path} must contain a YAML mapping.")
    return raw


def write_yaml(path: str | Path, obj: dict[str, Any]) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(
        yaml.safe_dump(obj, sort_keys=False, allow_unicode=True, default_flow_style=False),
        encoding="utf-8",
    )


def record_to_dict(record: ClusterRecord) -> dict[str, Any]:
    return record.model_dump(mode="json", exclude_none=True)


def load_cluster_record(path: str | Path) -> ClusterRecord:
    return ClusterRecord.model_validate(load_yaml_mapping(path))


@dataclass
class LoadedClusters:
    records: list[ClusterRecord] = field(default_factory=list)
    # file stems of records that could not be loaded; a scan must not write over them
    unreadable: list[str] = field(default_factory=list)


def read_clusters_dir(clusters_dir: str | Path) -> LoadedClusters:
    """
    Every readable record under clusters_dir, sorted by id. Unreadable or invalid files are
    warned about and skipped; they never fail the scan, and their stems are reported so the
    ids stay taken.
    """
    d = Path(clusters_dir)
    loaded = LoadedClusters()
    if not d.is_dir():
        return loaded

    records: dict[str, ClusterRecord] = {}
    for path in sorted(d.glob("*.yaml")):
        try:
            record = load_cluster_record(path)
        except (OSError, UnicodeDecodeError, yaml.YAMLError, TypeError, ValidationError) as e:
            logger.warning("Skipping unreadable cluster record %s: %s", path, e)
            loaded.unreadable.append(path.stem)
            continue
        if record.id in records:
            logger.warning("Skipping %s: cluster id %s already loaded", path, record.id)
            loaded.unreadable.append(path.stem)
            continue
        records[record.id] = record

    loaded.records = [records[k] for k in sorted(records)]
    return loaded


def load_existing_clusters(clusters_dir: str | Path) -> list[ClusterRecord]:
    return read_clusters_dir(clusters_dir).records


# -----------------------------
# Cluster records
# -----------------------------


def _semantic_view(record: ClusterRecord) -> dict[str, Any]:
    data = record_to_dict(record)
    data.pop("metadata", None)
    data["files"] = sorted(data.get("files", []))
    data["exports"] = sorted(
        data.get("exports", []), key=lambda e: (e.get("name", ""), e.get("type", ""), bool(e.get("isDefault")))
    )
    imports = data.get("imports") or {}
    data["imports"] = {
        "internal": sorted(imports.get("internal", [])),
        "external": sorted(imports.get("external", [])),
    }
    if data.get("entry_points") is not None:
        data["entry_points"] = sorted(data["entry_points"])
    detection = data.get("layerDetection")
    if detection is not None:
        detection["signals"] = sorted(detection.get("signals", []))
    return data


def records_equivalent(a: ClusterRecord, b: ClusterRecord) -> bool:
    return _semantic_view(a) == _semantic_view(b)


@dataclass
class SaveSummary:
    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    layers: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "created": len(self.created),
            "updated": len(self.updated),
            "unchanged": len(self.unchanged),
            "layers": dict(self.layers),
        }


def save_clusters(
        records: Iterable[ClusterRecord],
        clusters_dir: str | Path,
        existing: dict[str, ClusterRecord],
        *,
        now: str,
        dry_run: bool = False,
) -> tuple[SaveSummary, list[ClusterRecord]]:
    """
    Returns the summary and the records as they are (or, on a dry run, would be) on disk.
    Records of orphaned clusters are left alone.
    """
    d = Path(clusters_dir)
    summary = SaveSummary()
    final: list[ClusterRecord] = []

    for record in sorted(records, key=lambda r: r.id):
        summary.layers[record.layer] = summary.layers.get(record.layer, 0) + 1
        previous = existing.get(record.id)

        if previous is not None and records_equivalent(previous, record):
            summary.unchanged.append(record.id)
            final.append(previous)
            continue

        if previous is None:
            summary.created.append(record.id)
        else:
            summary.updated.append(record.id)
            if record.metadata is not None:
                record = record.model_copy(
                    update={
                        "metadata": record.metadata.model_copy(
                            update={"updatedAt": now, "lastModifiedBy": SCAN_MODIFIER}
                        )
                    }
                )

        final.append(record)
        if not dry_run:
            write_yaml(d / f"{record.id}.yaml", record_to_dict(record))

    summary.layers = dict(sorted(summary.layers.items()))
    return summary, final


# -----------------------------
# graph.yaml
# -----------------------------


def build_graph_document(clusters: Iterable[Cluster], *, now: str) -> GraphDocument:
    ordered = sorted(clusters, key=lambda c: c.id)
    ids = {c.id for c in ordered}

    nodes = [GraphNode(id=c.id, label=c.name, type="cluster", fileCount=len(c.files)) for c in ordered]
    edges = sorted(
        {(c.id, dep) for c in ordered for dep in c.cluster_dependencies if dep in ids and dep != c.id}
    )
    return GraphDocument(
        generatedAt=now,
        nodes=nodes,
        edges=[GraphEdge(source=s, target=t) for s, t in edges],
    )


def graphs_equivalent(a: GraphDocument, b: GraphDocument) -> bool:
    def view(doc: GraphDocument) -> tuple[Any, Any]:
        nodes = sorted((n.id, n.label, n.type, n.fileCount) for n in doc.nodes)
        edges = sorted((e.source, e.target) for e in doc.edges)
        return nodes, edges

    return view(a) == view(b)


def save_graph(doc: GraphDocument, path: str | Path, *, dry_run: bool = False) -> bool:
    """True when graph.yaml was (or on a dry run would be) rewritten."""
    p = Path(path)
    if p.exists():
        try:
            current = GraphDocument.model_validate(load_yaml_mapping(p))
        except (OSError, UnicodeDecodeError, yaml.YAMLError, TypeError, ValidationError) as e:
            logger.warning("Regenerating unreadable %s: %s", p, e)
        else:
            if graphs_equivalent(current, doc):
                return False

    if not dry_run:
        write_yaml(p, doc.model_dump(mode="json"))
    return True
