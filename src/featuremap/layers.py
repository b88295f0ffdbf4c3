# src/featuremap/layers.py
"""
Heuristic layer classification for a cluster.

Signals come from path segments, file extensions, framework-indicative external imports and the
shape of the exports. The layer with strictly the most signals wins; ties or no signals fall back
to "shared" with low confidence.
"""
from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass, field
from typing import Iterable, Literal

from featuremap.extract import ExportSymbol

Layer = Literal["frontend", "backend", "shared", "infrastructure", "fullstack", "smell"]

CONFIDENCE_HIGH = 0.9
CONFIDENCE_MEDIUM = 0.6
CONFIDENCE_LOW = 0.3

RANKED_LAYERS: tuple[str, ...] = ("frontend", "backend", "shared", "infrastructure")

FRONTEND_IMPORTS = frozenset({
    "react", "react-dom", "vue", "svelte", "solid-js", "@xyflow/react", "tailwindcss", "styled-components",
})
FRONTEND_IMPORT_PREFIXES = ("@angular/", "@emotion/")

BACKEND_IMPORTS = frozenset({
    "express", "fastify", "koa", "hapi", "nest", "@modelcontextprotocol/sdk",
})
BACKEND_IMPORT_PREFIXES = ("@modelcontextprotocol/", "@nestjs/")

DATABASE_IMPORTS = frozenset({"pg", "mysql", "mysql2", "mongodb", "mongoose", "prisma", "@prisma/client",
                              "drizzle", "drizzle-orm", "sequelize", "typeorm", "knex"})

INFRA_IMPORTS = frozenset({"vite", "webpack", "rollup", "esbuild", "tsup"})

FULLSTACK_IMPORTS = frozenset({"next", "nuxt", "@sveltejs/kit"})
FULLSTACK_IMPORT_PREFIXES = ("@remix-run/",)

FRONTEND_PATHS = ("/web/", "/ui/", "/components/", "/pages/", "/views/", "/frontend/")
BACKEND_PATHS = ("/api/", "/server/", "/backend/", "/routes/", "/controllers/", "/handlers/", "/mcp-server/")
SHARED_PATHS = ("/shared/", "/common/", "/utils/", "/types/", "/lib/")
INFRA_PATHS = ("/scripts/", "/config/", "/build/", "/.github/", "/ci/", "/deploy/")

FRONTEND_EXTENSIONS = (".tsx", ".jsx", ".vue", ".svelte")
INFRA_FILE_PREFIXES = ("vite.config", "tsconfig", "webpack", "rollup", ".eslintrc")

COMPONENT_NAME_RE = re.compile(r"^[A-Z][A-Za-z0-9]*$")
ROUTE_EXPORT_WORDS = ("handler", "middleware", "router", "controller", "route")


@dataclass
class LayerResult:
    layer: str
    confidence: float
    signals: list[str] = field(default_factory=list)


def confidence_for(signal_count: int) -> float:
    if signal_count >= 3:
        return CONFIDENCE_HIGH
    if signal_count >= 1:
        return CONFIDENCE_MEDIUM
    return CONFIDENCE_LOW


def package_root(specifier: str) -> str:
    """"@scope/pkg/deep" -> "@scope/pkg", "pkg/deep" -> "pkg"."""
    s = specifier.strip()
    if not s:
        return ""
    parts = s.split("/")
    if s.startswith("@") and len(parts) >= 2:
        return f"{parts[0]}/{parts[1]}".lower()
    return parts[0].lower()


def _matches(value: str, exact: frozenset[str], prefixes: tuple[str, ...] = ()) -> bool:
    return value in exact or any(value.startswith(p) for p in prefixes)


def _wrap(path: str) -> str:
    return "/" + path.replace("\\", "/").lower().strip("/") + "/"


class _Signals:
    def __init__(self) -> None:
        self.by_layer: dict[str, list[str]] = {layer: [] for layer in RANKED_LAYERS}
        self.all: list[str] = []

    def add(self, layer: str, message: str) -> None:
        if message not in self.by_layer[layer]:
            self.by_layer[layer].append(message)
        if message not in self.all:
            self.all.append(message)


def detect_layer(
        files: Iterable[str],
        external_imports: Iterable[str],
        internal_imports: Iterable[str] = (),
        exports: Iterable[ExportSymbol] = (),
) -> LayerResult:
    wrapped = [_wrap(f) for f in files]
    extensions = {posixpath.splitext(w.rstrip("/"))[1] for w in wrapped}
    basenames = [posixpath.basename(w.rstrip("/")) for w in wrapped]
    roots = sorted({r for r in (package_root(s) for s in external_imports) if r})
    internal = [_wrap(s) for s in internal_imports]
    exports = list(exports)

    sig = _Signals()

    for layer, patterns in (
            ("frontend", FRONTEND_PATHS),
            ("backend", BACKEND_PATHS),
            ("shared", SHARED_PATHS),
            ("infrastructure", INFRA_PATHS),
    ):
        for pattern in patterns:
            if any(pattern in w for w in wrapped):
                sig.add(layer, f"path contains {pattern}")

    for ext in FRONTEND_EXTENSIONS:
        if ext in extensions:
            sig.add("frontend", f"file extension {ext}")

    for prefix in INFRA_FILE_PREFIXES:
        if any(name.startswith(prefix) for name in basenames):
            sig.add("infrastructure", f"file name starts with {prefix}")

    for root in roots:
        if _matches(root, FRONTEND_IMPORTS, FRONTEND_IMPORT_PREFIXES):
            sig.add("frontend", f"imports {root}")
        if _matches(root, BACKEND_IMPORTS, BACKEND_IMPORT_PREFIXES) or root in DATABASE_IMPORTS:
            sig.add("backend", f"imports {root}")
        if root in INFRA_IMPORTS:
            sig.add("infrastructure", f"imports {root}")

    frontend_framework = any(_matches(r, FRONTEND_IMPORTS, FRONTEND_IMPORT_PREFIXES) for r in roots)
    has_jsx = any(ext in extensions for ext in FRONTEND_EXTENSIONS)
    component_export = any(
        COMPONENT_NAME_RE.match(e.name) and e.kind not in ("type", "interface") for e in exports
    )
    if component_export and (has_jsx or frontend_framework):
        sig.add("frontend", "exports UI components")

    if any(
            e.kind in ("function", "variable", "class") and any(w in e.name.lower() for w in ROUTE_EXPORT_WORDS)
            for e in exports
    ):
        sig.add("backend", "exports route handlers")

    if exports and all(e.kind in ("type", "interface") for e in exports):
        sig.add("shared", "exports only types")

    if any(p in v for v in internal for p in FRONTEND_PATHS) and any(p in v for v in internal for p in BACKEND_PATHS):
        sig.add("shared", "internal imports reference frontend and backend")

    fullstack = [r for r in roots if _matches(r, FULLSTACK_IMPORTS, FULLSTACK_IMPORT_PREFIXES)]
    frontend_count = len(sig.by_layer["frontend"])
    backend_count = len(sig.by_layer["backend"])

    if fullstack and frontend_count and backend_count:
        signals = sig.all + [f"fullstack framework {fw}" for fw in fullstack]
        return LayerResult("fullstack", confidence_for(frontend_count + backend_count), signals)

    backend_or_db = any(
        _matches(r, BACKEND_IMPORTS, BACKEND_IMPORT_PREFIXES) or r in DATABASE_IMPORTS for r in roots
    )
    if frontend_framework and backend_or_db and not fullstack:
        return LayerResult("smell", CONFIDENCE_MEDIUM, sig.all + ["frontend framework mixed with backend imports"])

    ranked = sorted(
        ((layer, len(sig.by_layer[layer])) for layer in RANKED_LAYERS),
        key=lambda item: -item[1],
    )
    top_layer, top_count = ranked[0]
    second_count = ranked[1][1]

    if top_count == 0 or second_count == top_count:
        return LayerResult("shared", CONFIDENCE_LOW, sig.all)
    if second_count > 0:
        return LayerResult(top_layer, CONFIDENCE_MEDIUM, sig.all)
    return LayerResult(top_layer, confidence_for(top_count), sig.all)


def layer_distribution(layers: Iterable[str]) -> dict[str, int]:
    out: dict[str, int] = {}
    for layer in layers:
        out[layer] = out.get(layer, 0) + 1
    return dict(sorted(out.items()))
