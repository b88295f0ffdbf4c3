# src/featuremap/validate.py
from __future__ import annotations

from pathlib import Path
from typing import Iterable

import yaml
from pydantic import ValidationError

from featuremap.depgraph import DependencyGraph, check_graph_invariants
from featuremap.models import ClusterRecord, GraphDocument
from featuremap.store import load_yaml_mapping


class ArtifactValidationError(RuntimeError):
    pass


def _must_exist(path: str | Path, label: str) -> None:
    p = Path(path)
    if not p.exists():
        raise ArtifactValidationError(f"Missing artifact: {label} at {p}")
    if not p.is_file():
        raise ArtifactValidationError(f"Artifact path is not a file: {label} at {p}")


def _load_record(path: Path) -> ClusterRecord:
    try:
        return ClusterRecord.model_validate(load_yaml_mapping(path))
    except (OSError, UnicodeDecodeError, yaml.YAMLError, TypeError, ValidationError) as e:
        raise ArtifactValidationError(f"Invalid cluster record at {path}: {e}") from e


def validate_dependency_graph(graph: DependencyGraph) -> None:
    problems = check_graph_invariants(graph)
    if problems:
        shown = "; ".join(problems[:5])
        more = f" (+{len(problems) - 5} more)" if len(problems) > 5 else ""
        raise ArtifactValidationError(f"Dependency graph is inconsistent: {shown}{more}")


def validate_artifacts(
        clusters_dir: str | Path,
        graph_path: str | Path,
        expected_ids: Iterable[str],
) -> None:
    """
    Re-reads what the scan wrote:
    - each expected cluster has a valid <id>.yaml whose id field matches the file name
    - graph.yaml validates, has a node per expected cluster, and every edge endpoint is a node
    """
    d = Path(clusters_dir)
    ids = sorted(set(expected_ids))

    for cid in ids:
        path = d / f"{cid}.yaml"
        _must_exist(path, f"cluster {cid}")
        record = _load_record(path)
        if record.id != cid:
            raise ArtifactValidationError(f"Cluster record {path} declares id {record.id!r}, expected {cid!r}")

    _must_exist(graph_path, "graph")
    try:
        doc = GraphDocument.model_validate(load_yaml_mapping(graph_path))
    except (OSError, UnicodeDecodeError, yaml.YAMLError, TypeError, ValidationError) as e:
        raise ArtifactValidationError(f"Invalid graph at {graph_path}: {e}") from e

    node_ids = {n.id for n in doc.nodes}
    missing = [cid for cid in ids if cid not in node_ids]
    if missing:
        raise ArtifactValidationError(f"graph.yaml is missing nodes for clusters: {', '.join(missing)}")
    for edge in doc.edges:
        if edge.source not in node_ids or edge.target not in node_ids:
            raise ArtifactValidationError(f"graph.yaml edge {edge.source} -> {edge.target} references an unknown node")
