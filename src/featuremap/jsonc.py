# src/featuremap/jsonc.py
from __future__ import annotations

import json
from typing import Any


def strip_js_ts_comments(text: str) -> str:
    """
    Remove // and /* */ comments while preserving newlines and string contents.
    Newlines are kept so match offsets still map to the original line numbers.
    """
    out: list[str] = []
    i = 0
    n = len(text)

    in_line = False
    in_block = False
    quote = ""
    esc = False

    while i < n:
        c = text[i]
        nxt = text[i + 1] if i + 1 < n else ""

        if in_line:
            if c == "\n":
                in_line = False
                out.append("\n")
            else:
                out.append(" ")
            i += 1
            continue

        if in_block:
            if c == "*" and nxt == "/":
                in_block = False
                out.append("  ")
                i += 2
            else:
                out.append("\n" if c == "\n" else " ")
                i += 1
            continue

        if quote:
            out.append(c)
            if esc:
                esc = False
            elif c == "\\":
                esc = True
            elif c == quote:
                quote = ""
            i += 1
            continue

        if c == "/" and nxt == "/":
            in_line = True
            out.append("  ")
            i += 2
            continue

        if c == "/" and nxt == "*":
            in_block = True
            out.append("  ")
            i += 2
            continue

        if c in ("'", '"', "`"):
            quote = c

        out.append(c)
        i += 1

    return "".join(out)


def strip_trailing_commas(text: str) -> str:
    out: list[str] = []
    quote = ""
    esc = False
    n = len(text)

    for i, c in enumerate(text):
        if quote:
            out.append(c)
            if esc:
                esc = False
            elif c == "\\":
                esc = True
            elif c == quote:
                quote = ""
            continue

        if c in ("'", '"'):
            quote = c
            out.append(c)
            continue

        if c == ",":
            j = i + 1
            while j < n and text[j].isspace():
                j += 1
            if j < n and text[j] in ("}", "]"):
                continue

        out.append(c)

    return "".join(out)


def parse_json_with_comments(text: str) -> Any:
    """
    tsconfig-flavoured JSON: comments and trailing commas are tolerated.
    Raises json.JSONDecodeError on anything else that is not JSON.
    """
    cleaned = strip_trailing_commas(strip_js_ts_comments(text))
    return json.loads(cleaned)
