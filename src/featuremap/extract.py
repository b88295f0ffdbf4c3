# src/featuremap/extract.py
"""
Per-file facts: exports, imports split into internal/external, line count.

Regex based and deterministic. Callers only depend on ParsedFile / ParsedGoFile, so a
syntax-tree extractor can replace this module without touching the graph code.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from featuremap.jsonc import strip_js_ts_comments

if TYPE_CHECKING:
    from featuremap.aliases import AliasResolver

ExportKind = Literal[
    "function", "class", "variable", "interface", "type", "enum", "unknown", "struct", "const", "var"
]


@dataclass(frozen=True)
class ExportSymbol:
    name: str
    kind: str
    is_default: bool = False
    is_public: bool | None = None


@dataclass
class ImportList:
    internal: list[str] = field(default_factory=list)
    external: list[str] = field(default_factory=list)


@dataclass
class ParsedFile:
    path: str
    exports: list[ExportSymbol] = field(default_factory=list)
    imports: ImportList = field(default_factory=ImportList)
    lines_of_code: int = 0


@dataclass(frozen=True)
class GoModule:
    module_path: str
    go_version: str
    dependencies: tuple[str, ...]
    module_root: str


@dataclass
class ParsedGoFile(ParsedFile):
    package: str = "unknown"
    module_path: str | None = None
    module_root: str = "."


def count_lines(text: str) -> int:
    if not text:
        return 0
    return text.replace("\r\n", "\n").replace("\r", "\n").count("\n") + 1


# --------------------------------------------------------------------------------------
# JS/TS
# --------------------------------------------------------------------------------------

JS_ANY_IMPORT_EXPORT_FROM_RE = re.compile(
    r"""(?msx)
    ^\s*
    (?:import|export)\s+
    (?:type\s+)?
    (?:[^;'"`]*?)
    \sfrom\s*
    ["'](?P<spec>[^"']+)["']
    """
)
JS_IMPORT_SIDE_EFFECT_RE = re.compile(r"""(?m)^\s*import\s*["'](?P<spec>[^"']+)["']""")
JS_DYNAMIC_IMPORT_RE = re.compile(r"""\bimport\s*\(\s*["'](?P<spec>[^"']+)["']\s*\)""")
JS_REQUIRE_RE = re.compile(r"""(?<![\w$.])require\s*\(\s*["'](?P<spec>[^"']+)["']\s*\)""")

JS_EXPORT_DECL_RE = re.compile(
    r"""(?mx)
    ^\s*export\s+
    (?P<default>default\s+)?
    (?:declare\s+)?
    (?:abstract\s+)?
    (?:async\s+)?
    (?:
        (?P<fkw>function)\s*\*?\s*(?P<function>[A-Za-z_$][\w$]*)?
      | (?P<ckw>class)\b\s*(?P<class>[A-Za-z_$][\w$]*)?
      | (?:const\s+)?enum\s+(?P<enum>[A-Za-z_$][\w$]*)
      | (?:const|let|var)\s+(?P<variable>[^=;]+?)\s*[=;:]
      | interface\s+(?P<interface>[A-Za-z_$][\w$]*)
      | type\s+(?P<type>[A-Za-z_$][\w$]*)\s*[=<]
    )
    """
)
JS_EXPORT_DEFAULT_EXPR_RE = re.compile(r"(?m)^\s*export\s+default\s+(?!function\b|class\b|async\b|abstract\b)")
JS_IDENT_RE = re.compile(r"^[A-Za-z_$][\w$]*$")


def parse_js_ts_import_specs(text: str) -> list[str]:
    """
    Every import specifier in source order, one per statement (duplicates kept).
    """
    cleaned = strip_js_ts_comments(text)
    found: list[tuple[int, str]] = []
    for rx in (
            JS_IMPORT_SIDE_EFFECT_RE,
            JS_ANY_IMPORT_EXPORT_FROM_RE,
            JS_DYNAMIC_IMPORT_RE,
            JS_REQUIRE_RE,
    ):
        for m in rx.finditer(cleaned):
            spec = m.group("spec")
            if spec:
                found.append((m.start("spec"), spec))
    # one entry per specifier offset; import x = require("y") is matched by JS_REQUIRE_RE only
    found = sorted(set(found))
    return [spec for _, spec in found]


def parse_js_ts_exports(text: str) -> list[ExportSymbol]:
    cleaned = strip_js_ts_comments(text)
    exports: list[ExportSymbol] = []

    for m in JS_EXPORT_DECL_RE.finditer(cleaned):
        is_default = bool(m.group("default"))
        if m.group("fkw"):
            exports.append(ExportSymbol(m.group("function") or "anonymous", "function", is_default))
        elif m.group("ckw"):
            exports.append(ExportSymbol(m.group("class") or "anonymous", "class", is_default))
        elif m.group("variable"):
            for part in m.group("variable").split(","):
                name = part.split(":", 1)[0].strip()
                if JS_IDENT_RE.match(name):
                    exports.append(ExportSymbol(name=name, kind="variable"))
        else:
            for kind in ("enum", "interface", "type"):
                if m.group(kind):
                    exports.append(ExportSymbol(name=m.group(kind), kind=kind))
                    break

    if JS_EXPORT_DEFAULT_EXPR_RE.search(cleaned) and not any(e.is_default for e in exports):
        exports.append(ExportSymbol(name="default", kind="unknown", is_default=True))
    return exports


def classify_js_ts_imports(specs: list[str], abs_path: str, aliases: "AliasResolver | None") -> ImportList:
    imports = ImportList()
    for spec in specs:
        if spec.startswith("."):
            imports.internal.append(spec)
            continue
        if aliases is not None:
            resolved = aliases.resolve_alias_import(spec, abs_path)
            if resolved:
                imports.internal.append(resolved)
                continue
            if aliases.is_alias_import(spec, abs_path):
                imports.internal.append(spec)
                continue
        imports.external.append(spec)
    return imports


def parse_source_file(abs_path: str, rel_path: str, aliases: "AliasResolver | None" = None) -> ParsedFile:
    # unreadable files in the scan list are fatal: let OSError propagate
    text = Path(abs_path).read_text(encoding="utf-8", errors="replace")
    return ParsedFile(
        path=rel_path,
        exports=parse_js_ts_exports(text),
        imports=classify_js_ts_imports(parse_js_ts_import_specs(text), abs_path, aliases),
        lines_of_code=count_lines(text),
    )


# --------------------------------------------------------------------------------------
# Go
# --------------------------------------------------------------------------------------

GO_MODULE_RE = re.compile(r"(?m)^\s*module\s+(\S+)")
GO_VERSION_RE = re.compile(r"(?m)^\s*go\s+([\d.]+)")
GO_REQUIRE_BLOCK_RE = re.compile(r"(?ms)^\s*require\s*\((.*?)\)")
GO_REQUIRE_SINGLE_RE = re.compile(r"(?m)^\s*require\s+([^\s(]+)\s+")

GO_PACKAGE_RE = re.compile(r"(?m)^package\s+(\w+)")
GO_IMPORT_BLOCK_RE = re.compile(r"(?ms)^\s*import\s*\((.*?)\)")
GO_IMPORT_SINGLE_RE = re.compile(r"""(?m)^\s*import\s+(?:[\w.]+\s+)?"([^"]+)\"""")
GO_IMPORT_PATH_RE = re.compile(r'"([^"]+)"')

GO_FUNC_RE = re.compile(r"(?m)^func\s+(?:\([^)]*\)\s+)?([A-Za-z_]\w*)\s*[\[(]")
GO_TYPE_STRUCT_RE = re.compile(r"(?m)^type\s+([A-Za-z_]\w*)(?:\[[^\]]*\])?\s+(struct|interface)\b")
GO_TYPE_ALIAS_RE = re.compile(r"(?m)^type\s+([A-Za-z_]\w*)\s+(?!struct\b|interface\b|\()")
GO_TYPE_BLOCK_RE = re.compile(r"(?ms)^\s*type\s*\((.*?)^\)")
GO_CONST_SINGLE_RE = re.compile(r"(?m)^\s*const\s+([A-Za-z_]\w*)\b")
GO_CONST_BLOCK_RE = re.compile(r"(?ms)^\s*const\s*\((.*?)^\)")
GO_VAR_SINGLE_RE = re.compile(r"(?m)^\s*var\s+([A-Za-z_]\w*)\b")
GO_VAR_BLOCK_RE = re.compile(r"(?ms)^\s*var\s*\((.*?)^\)")
GO_LEADING_IDENT_RE = re.compile(r"^([A-Za-z_]\w*)")
GO_BLOCK_TYPE_RE = re.compile(r"^([A-Za-z_]\w*)\s+(struct|interface)\b")


def _strip_line_comment(line: str) -> str:
    idx = line.find("//")
    return line if idx == -1 else line[:idx]


def read_go_mod(go_mod_path: str | Path) -> GoModule | None:
    p = Path(go_mod_path)
    if not p.is_file():
        return None
    content = p.read_text(encoding="utf-8", errors="replace")
    m = GO_MODULE_RE.search(content)
    if not m:
        return None

    version = GO_VERSION_RE.search(content)
    deps: set[str] = set()
    for block in GO_REQUIRE_BLOCK_RE.finditer(content):
        for line in block.group(1).splitlines():
            trimmed = _strip_line_comment(line).strip()
            if trimmed:
                deps.add(trimmed.split()[0])
    for single in GO_REQUIRE_SINGLE_RE.finditer(content):
        deps.add(single.group(1))

    return GoModule(
        module_path=m.group(1),
        go_version=version.group(1) if version else "unknown",
        dependencies=tuple(sorted(deps)),
        module_root=str(p.parent),
    )


def is_internal_go_import(import_path: str, module_path: str) -> bool:
    return import_path == module_path or import_path.startswith(f"{module_path}/")


def _parse_go_imports(content: str, module_path: str | None) -> ImportList:
    paths: set[str] = set()
    for block in GO_IMPORT_BLOCK_RE.finditer(content):
        paths.update(GO_IMPORT_PATH_RE.findall(block.group(1)))
    paths.update(GO_IMPORT_SINGLE_RE.findall(content))

    imports = ImportList()
    for value in sorted(paths):
        if module_path and is_internal_go_import(value, module_path):
            imports.internal.append(value)
        else:
            imports.external.append(value)
    return imports


def _parse_go_exports(content: str) -> list[ExportSymbol]:
    exports: list[ExportSymbol] = []
    seen: set[tuple[str, str]] = set()

    def add(name: str, kind: str) -> None:
        if not name or (name, kind) in seen:
            return
        seen.add((name, kind))
        exports.append(ExportSymbol(name=name, kind=kind, is_public=name[:1].isupper()))

    for m in GO_FUNC_RE.finditer(content):
        add(m.group(1), "function")
    for m in GO_TYPE_STRUCT_RE.finditer(content):
        add(m.group(1), m.group(2))
    for m in GO_TYPE_ALIAS_RE.finditer(content):
        add(m.group(1), "type")
    for m in GO_TYPE_BLOCK_RE.finditer(content):
        for line in m.group(1).splitlines():
            trimmed = _strip_line_comment(line).strip()
            if not trimmed:
                continue
            typed = GO_BLOCK_TYPE_RE.match(trimmed)
            if typed:
                add(typed.group(1), typed.group(2))
                continue
            ident = GO_LEADING_IDENT_RE.match(trimmed)
            if ident:
                add(ident.group(1), "type")

    for single_rx, block_rx, kind in (
            (GO_CONST_SINGLE_RE, GO_CONST_BLOCK_RE, "const"),
            (GO_VAR_SINGLE_RE, GO_VAR_BLOCK_RE, "var"),
    ):
        for m in single_rx.finditer(content):
            add(m.group(1), kind)
        for m in block_rx.finditer(content):
            for line in m.group(1).splitlines():
                ident = GO_LEADING_IDENT_RE.match(_strip_line_comment(line).strip())
                if ident:
                    add(ident.group(1), kind)
    return exports


def parse_go_file(
        abs_path: str,
        rel_path: str,
        *,
        module_path: str | None = None,
        module_root: str = ".",
) -> ParsedGoFile | None:
    """None for generated files ("// Code generated ..." header)."""
    content = Path(abs_path).read_text(encoding="utf-8", errors="replace")
    if content.lstrip().startswith("// Code generated"):
        return None

    pkg = GO_PACKAGE_RE.search(content)
    return ParsedGoFile(
        path=rel_path,
        exports=_parse_go_exports(content),
        imports=_parse_go_imports(content, module_path),
        lines_of_code=count_lines(content),
        package=pkg.group(1) if pkg else "unknown",
        module_path=module_path,
        module_root=module_root,
    )
