# src/featuremap/depgraph.py
from __future__ import annotations

import os
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Sequence

from featuremap.extract import ExportSymbol, ImportList, ParsedFile, ParsedGoFile
from featuremap.modindex import GoFileRef, GoImportIndex, ImportResolver
from featuremap.utils import norm_relpath, to_repo_relative

if TYPE_CHECKING:
    from featuremap.aliases import AliasResolver


@dataclass
class FileNode:
    path: str
    exports: list[ExportSymbol] = field(default_factory=list)
    imports: ImportList = field(default_factory=ImportList)
    lines_of_code: int = 0
    language: str = "typescript"


@dataclass
class DependencyGraph:
    files: dict[str, FileNode] = field(default_factory=dict)
    # file -> files it imports (one entry per resolved import, duplicates kept)
    dependencies: dict[str, list[str]] = field(default_factory=dict)
    # file -> files importing it
    dependents: dict[str, list[str]] = field(default_factory=dict)


def _language_for(path: str) -> str:
    if path.endswith(".go"):
        return "go"
    if path.endswith((".ts", ".tsx")):
        return "typescript"
    return "javascript"


def graph_key(path: str, project_root: str | None) -> str:
    if project_root and os.path.isabs(path):
        rel = to_repo_relative(path, project_root)
        if rel is not None:
            return rel
    return norm_relpath(path)


def build_graph(
        parsed_files: Sequence[ParsedFile],
        *,
        project_root: str | None = None,
        aliases: "AliasResolver | None" = None,
        workers: int = 1,
) -> DependencyGraph:
    """
    Nodes for every parsed file (TS/JS and Go), then one edge per internal import that resolves to a
    known node. Unresolvable specifiers are dropped silently; external imports never become edges.
    """
    graph = DependencyGraph()

    keyed: list[tuple[str, ParsedFile]] = []
    go_refs: list[GoFileRef] = []
    for parsed in parsed_files:
        key = graph_key(parsed.path, project_root)
        keyed.append((key, parsed))
        graph.files[key] = FileNode(
            path=key,
            exports=list(parsed.exports),
            imports=parsed.imports,
            lines_of_code=parsed.lines_of_code,
            language=_language_for(key),
        )
        graph.dependencies[key] = []
        graph.dependents[key] = []
        if isinstance(parsed, ParsedGoFile):
            go_refs.append(GoFileRef(path=key, module_path=parsed.module_path, module_root=parsed.module_root))

    resolver = ImportResolver(graph.files.keys(), go_index=GoImportIndex.build(go_refs), aliases=aliases)

    def resolve_for(item: tuple[str, ParsedFile]) -> list[str]:
        source, parsed = item
        targets: list[str] = []
        for spec in parsed.imports.internal:
            hit = resolver.resolve_import(spec, source)
            if hit and hit in graph.files:
                targets.append(hit)
        return targets

    # per-source shards, merged in input order
    if workers > 1 and len(keyed) > 1:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            shards = list(executor.map(resolve_for, keyed))
    else:
        shards = [resolve_for(item) for item in keyed]

    for (source, _), targets in zip(keyed, shards):
        for target in targets:
            graph.dependencies[source].append(target)
            if target in graph.dependents:
                graph.dependents[target].append(source)

    return graph


def graph_stats(graph: DependencyGraph) -> dict[str, Any]:
    total_files = len(graph.files)
    total_dependencies = sum(len(v) for v in graph.dependencies.values())
    total_exports = sum(len(f.exports) for f in graph.files.values())
    return {
        "total_files": total_files,
        "total_dependencies": total_dependencies,
        "total_exports": total_exports,
        "avg_dependencies": (total_dependencies / total_files) if total_files > 0 else 0.0,
    }


def check_graph_invariants(graph: DependencyGraph) -> list[str]:
    """
    Problems found (empty when the graph is consistent):
    - every adjacency key is a node
    - a -> b in dependencies appears as a in dependents[b], with matching multiplicity
    """
    problems: list[str] = []
    for label, adjacency in (("dependencies", graph.dependencies), ("dependents", graph.dependents)):
        for key in adjacency:
            if key not in graph.files:
                problems.append(f"{label} key {key!r} is not a node")

    forward: Counter[tuple[str, str]] = Counter()
    for src, targets in graph.dependencies.items():
        for dst in targets:
            if dst not in graph.files:
                problems.append(f"edge {src!r} -> {dst!r} targets an unknown node")
            forward[(src, dst)] += 1

    reverse: Counter[tuple[str, str]] = Counter()
    for dst, sources in graph.dependents.items():
        for src in sources:
            reverse[(src, dst)] += 1

    if forward != reverse:
        for pair in sorted(set(forward) | set(reverse)):
            if forward[pair] != reverse[pair]:
                problems.append(
                    f"edge {pair[0]!r} -> {pair[1]!r}: {forward[pair]} forward vs {reverse[pair]} reverse"
                )
    return problems

