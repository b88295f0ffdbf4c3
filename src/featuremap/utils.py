# src/featuremap/utils.py
from __future__ import annotations

import hashlib
import os
import re
from datetime import datetime, timezone


def utc_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def sha256_bytes(b: bytes) -> str:
    h = hashlib.sha256()
    h.update(b)
    return h.hexdigest()


def sha256_text(s: str) -> str:
    return sha256_bytes(s.encode("utf-8"))


# -----------------------------
# Environment helpers
# -----------------------------


def bool_from_env(name: str, default: bool) -> bool:
    v = os.environ.get(name, "").strip()
    if not v:
        return default
    return v not in ("0", "false", "False", "no", "NO", "off", "OFF")


def int_from_env(name: str, default: int) -> int:
    v = os.environ.get(name, "").strip()
    if not v:
        return default
    try:
        return int(v)
    except ValueError:
        return default


def float_from_env(name: str, default: float) -> float:
    v = os.environ.get(name, "").strip()
    if not v:
        return default
    try:
        return float(v)
    except ValueError:
        return default


# -----------------------------
# Deterministic path helpers
# -----------------------------

_PATH_SEP_RE = re.compile(r"[\\]+")


def norm_relpath(path: str) -> str:
    """
    Repo-relative, forward-slash form used as the key everywhere downstream.
    - converts backslashes to forward slashes
    - strips leading "./" and leading "/"
    - collapses duplicate slashes
    - does NOT resolve ".." (use to_repo_relative for that)
    """
    p = (path or "").strip()
    p = _PATH_SEP_RE.sub("/", p)
    while p.startswith("./"):
        p = p[2:]
    p = p.lstrip("/")
    p = re.sub(r"/{2,}", "/", p)
    return p


def to_repo_relative(abs_path: str, project_root: str) -> str | None:
    """
    Absolute path -> normalized repo-relative key, or None when the path escapes the root.
    """
    rel = os.path.relpath(os.path.normpath(abs_path), os.path.normpath(project_root))
    rel = rel.replace("\\", "/")
    if not rel or rel == "." or rel == ".." or rel.startswith("../") or os.path.isabs(rel):
        return None
    return norm_relpath(rel)


def slugify(value: str) -> str:
    s = re.sub(r"[^a-zA-Z0-9]+", "-", value or "").strip("-").lower()
    return s or "root"
