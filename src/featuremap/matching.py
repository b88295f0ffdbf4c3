# src/featuremap/matching.py
"""
Cluster identity across scans.

Folder grouping mints provisional ids from paths, which shift whenever files move. Matching
carries a persisted id forward when the new cluster's file set overlaps enough (Jaccard) with
a cluster from the previous scan. Assignment is greedy over all (new, persisted) pairs, highest
score first, and each side is used at most once, so the result does not depend on input order.
"""
from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from featuremap.config import DEFAULT_MIN_OVERLAP
from featuremap.grouper import Cluster, cluster_name
from featuremap.models import ClusterRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClusterIdMatch:
    suggested_id: str
    matched_id: str
    confidence: float


@dataclass
class MatchingResult:
    clusters: list[Cluster] = field(default_factory=list)
    matched_ids: set[str] = field(default_factory=set)
    matches: list[ClusterIdMatch] = field(default_factory=list)
    orphaned: list[ClusterRecord] = field(default_factory=list)


def calculate_file_overlap(files_a: Iterable[str], files_b: Iterable[str]) -> float:
    """|A ∩ B| / |A ∪ B|; two empty sets score 0."""
    a = set(files_a)
    b = set(files_b)
    union = len(a | b)
    if union == 0:
        return 0.0
    return len(a & b) / union


def ensure_unique_id(base_id: str, used: set[str]) -> str:
    if base_id not in used:
        return base_id
    n = 2
    while f"{base_id}-{n}" in used:
        n += 1
    return f"{base_id}-{n}"


def apply_cluster_matching(
        clusters: Sequence[Cluster],
        existing: Sequence[ClusterRecord],
        *,
        min_overlap: float = DEFAULT_MIN_OVERLAP,
        reserved_ids: Iterable[str] = (),
) -> MatchingResult:
    """
    Contract:
    - a pair is eligible when its score is > 0 and >= min_overlap
    - eligible pairs are taken by (score desc, persisted id asc, provisional id asc)
    - a matched cluster takes the persisted id, purpose_hint, entry_points and metadata
    - unmatched clusters keep their provisional id unless it collides with any persisted id or an
      id already handed out or any of reserved_ids, in which case a -2, -3, ... suffix is added
    - cluster_dependencies are rewritten to final ids
    - persisted clusters left unmatched are returned as orphaned, never dropped
    """
    reserved = set(reserved_ids)
    if not existing and not reserved:
        return MatchingResult(clusters=sorted((dataclasses.replace(c) for c in clusters), key=lambda c: c.id))

    pairs: list[tuple[float, str, str, int, int]] = []
    for ci, cluster in enumerate(clusters):
        for ei, record in enumerate(existing):
            score = calculate_file_overlap(cluster.files, record.files)
            if score > 0 and score >= min_overlap:
                pairs.append((score, record.id, cluster.id, ci, ei))
    pairs.sort(key=lambda p: (-p[0], p[1], p[2]))

    assigned: dict[int, tuple[int, float]] = {}
    taken: set[int] = set()
    for score, _, _, ci, ei in pairs:
        if ci in assigned or ei in taken:
            continue
        assigned[ci] = (ei, score)
        taken.add(ei)

    result = MatchingResult()
    id_map: dict[str, str] = {}
    final: list[Cluster] = []

    for ci, (ei, score) in sorted(assigned.items(), key=lambda item: (-item[1][1], existing[item[1][0]].id)):
        cluster = clusters[ci]
        record = existing[ei]
        id_map[cluster.id] = record.id
        result.matched_ids.add(record.id)
        result.matches.append(ClusterIdMatch(suggested_id=cluster.id, matched_id=record.id, confidence=score))
        if cluster.id != record.id:
            logger.info("Cluster %s matched to existing %s (%d%% overlap)", cluster.id, record.id, round(score * 100))
        final.append(
            dataclasses.replace(
                cluster,
                id=record.id,
                name=cluster_name(record.id),
                purpose_hint=record.purpose_hint,
                entry_points=list(record.entry_points) if record.entry_points is not None else None,
                metadata=record.metadata.model_copy() if record.metadata is not None else None,
            )
        )

    used = {r.id for r in existing} | set(result.matched_ids) | reserved
    for ci in sorted((i for i in range(len(clusters)) if i not in assigned), key=lambda i: clusters[i].id):
        cluster = clusters[ci]
        new_id = ensure_unique_id(cluster.id, used)
        used.add(new_id)
        id_map[cluster.id] = new_id
        final.append(dataclasses.replace(cluster, id=new_id, name=cluster_name(new_id)))

    for i, cluster in enumerate(final):
        deps = sorted({id_map.get(d, d) for d in cluster.cluster_dependencies} - {cluster.id})
        final[i] = dataclasses.replace(cluster, cluster_dependencies=deps)

    result.clusters = sorted(final, key=lambda c: c.id)
    result.orphaned = sorted((r for r in existing if r.id not in result.matched_ids), key=lambda r: r.id)
    return result
