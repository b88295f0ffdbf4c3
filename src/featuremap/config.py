# src/featuremap/config.py
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from featuremap.utils import bool_from_env, float_from_env, int_from_env

FEATUREMAP_DIR = ".featuremap"
CONFIG_FILENAME = "config.yaml"

DEFAULT_MIN_OVERLAP = 0.7


class ProjectSettings(BaseModel):
    name: str | None = None
    # scan root, relative to the project root
    root: str = "."


class ScanFilters(BaseModel):
    deny_dirs: list[str] = [
        "node_modules",
        ".git",
        ".next",
        "dist",
        "build",
        "coverage",
        ".venv",
        "vendor",
        "testdata",
        FEATUREMAP_DIR,
    ]
    deny_file_regex: list[str] = [
        r"(?i).*\.config\.(js|cjs|mjs|ts)$",
        r"(?i).*\.min\.js$",
    ]
    source_exts: list[str] = [".ts", ".tsx", ".js", ".jsx"]
    skip_declaration_files: bool = True
    skip_test_files: bool = True


class ClusteringSettings(BaseModel):
    max_depth: int = Field(default=2, ge=1)
    min_files: int = Field(default=1, ge=1)
    wrapper_dirs: list[str] = ["src"]
    package_dirs: list[str] = ["packages", "apps", "services"]


class MatchingSettings(BaseModel):
    min_overlap: float = Field(default=DEFAULT_MIN_OVERLAP, ge=0.0, le=1.0)


class ScanConfig(BaseModel):
    version: int = 1
    project: ProjectSettings = Field(default_factory=ProjectSettings)
    scan: ScanFilters = Field(default_factory=ScanFilters)
    clustering: ClusteringSettings = Field(default_factory=ClusteringSettings)
    matching: MatchingSettings = Field(default_factory=MatchingSettings)


@dataclass(frozen=True)
class RuntimeConfig:
    dry_run: bool
    workers: int
    strict_aliases: bool


def config_path_for(project_root: str | Path) -> Path:
    return Path(project_root) / FEATUREMAP_DIR / CONFIG_FILENAME


def load_scan_config(project_root: str | Path) -> ScanConfig:
    """
    Contract:
    - No config file -> all defaults (first run on a fresh repo).
    - A config file that is not YAML, not a mapping, or fails validation raises;
      the workflow reports it as a load_config failure.
    - FEATUREMAP_MIN_OVERLAP overrides matching.min_overlap.
    """
    path = config_path_for(project_root)
    if path.exists():
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise TypeError(f"{path} must contain a YAML mapping.")
        cfg = ScanConfig.model_validate(raw)
    else:
        cfg = ScanConfig()

    override = float_from_env("FEATUREMAP_MIN_OVERLAP", cfg.matching.min_overlap)
    if override != cfg.matching.min_overlap:
        cfg.matching = MatchingSettings(min_overlap=override)
    return cfg


def runtime_config_from_env(
        *,
        dry_run: bool,
        workers: int | None = None,
        strict_aliases: bool | None = None,
) -> RuntimeConfig:
    if workers is None:
        workers = int_from_env("FEATUREMAP_WORKERS", 4)
    if strict_aliases is None:
        strict_aliases = bool_from_env("FEATUREMAP_STRICT_ALIASES", False)
    return RuntimeConfig(dry_run=dry_run, workers=max(1, int(workers)), strict_aliases=bool(strict_aliases))
