# src/featuremap/models.py
"""
On-disk records under .featuremap/. Field names are the YAML keys.
"""
from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

CLUSTER_RECORD_VERSION = 1
GRAPH_VERSION = 1

LayerName = Literal["frontend", "backend", "shared", "infrastructure", "fullstack", "smell"]


class LayerDetection(BaseModel):
    confidence: float = Field(ge=0.0, le=1.0)
    signals: list[str] = Field(default_factory=list)


class Locks(BaseModel):
    # keep the recorded layer instead of the detected one
    layer: bool = False


class ClusterExport(BaseModel):
    name: str
    type: str
    isDefault: bool | None = None


class ClusterImports(BaseModel):
    internal: list[str] = Field(default_factory=list)
    external: list[str] = Field(default_factory=list)


class ClusterMetadata(BaseModel):
    createdAt: str
    updatedAt: str
    lastModifiedBy: str | None = None


class ClusterRecord(BaseModel):
    version: int = Field(default=CLUSTER_RECORD_VERSION, gt=0)
    id: str = Field(min_length=1)
    layer: LayerName
    layerDetection: LayerDetection | None = None
    locks: Locks | None = None
    files: list[str] = Field(default_factory=list)
    exports: list[ClusterExport] = Field(default_factory=list)
    imports: ClusterImports = Field(default_factory=ClusterImports)
    purpose_hint: str | None = None
    entry_points: list[str] | None = None
    compositionHash: str | None = None
    metadata: ClusterMetadata | None = None


class GraphNode(BaseModel):
    id: str
    label: str
    type: str = "cluster"
    fileCount: int = Field(ge=0)


class GraphEdge(BaseModel):
    source: str
    target: str


class GraphDocument(BaseModel):
    version: int = GRAPH_VERSION
    generatedAt: str
    nodes: list[GraphNode] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)
