import pytest
from pydantic import ValidationError

from featuremap.config import (
    DEFAULT_MIN_OVERLAP,
    ScanFilters,
    load_scan_config,
    runtime_config_from_env,
)
from featuremap.scanner import scan_project


def test_defaults_without_config_file(tmp_path, monkeypatch):
    monkeypatch.delenv("FEATUREMAP_MIN_OVERLAP", raising=False)
    cfg = load_scan_config(tmp_path)
    assert cfg.matching.min_overlap == DEFAULT_MIN_OVERLAP
    assert cfg.clustering.max_depth == 2
    assert "node_modules" in cfg.scan.deny_dirs


def test_config_file_and_env_override(write_tree, monkeypatch):
    root = write_tree({".featuremap/config.yaml": "matching:\n  min_overlap: 0.5\nclustering:\n  min_files: 3\n"})
    monkeypatch.delenv("FEATUREMAP_MIN_OVERLAP", raising=False)
    cfg = load_scan_config(root)
    assert cfg.matching.min_overlap == 0.5
    assert cfg.clustering.min_files == 3

    monkeypatch.setenv("FEATUREMAP_MIN_OVERLAP", "0.85")
    assert load_scan_config(root).matching.min_overlap == 0.85


def test_empty_config_file_means_defaults(write_tree):
    root = write_tree({".featuremap/config.yaml": ""})
    assert load_scan_config(root).clustering.wrapper_dirs == ["src"]


def test_invalid_config_raises(write_tree):
    root = write_tree({".featuremap/config.yaml": "- just\n- a list\n"})
    with pytest.raises(TypeError):
        load_scan_config(root)

    root = write_tree({".featuremap/config.yaml": "clustering:\n  max_depth: 0\n"})
    with pytest.raises(ValidationError):
        load_scan_config(root)


def test_runtime_config(monkeypatch):
    monkeypatch.setenv("FEATUREMAP_WORKERS", "8")
    monkeypatch.setenv("FEATUREMAP_STRICT_ALIASES", "1")
    cfg = runtime_config_from_env(dry_run=True)
    assert (cfg.dry_run, cfg.workers, cfg.strict_aliases) == (True, 8, True)

    cfg = runtime_config_from_env(dry_run=False, workers=0, strict_aliases=False)
    assert (cfg.workers, cfg.strict_aliases) == (1, False)


def test_scan_filters_and_go_modules(write_tree):
    root = write_tree({
        "src/a.ts": "",
        "src/b.tsx": "",
        "src/types.d.ts": "",
        "src/a.test.ts": "",
        "src/c.min.js": "",
        "vite.config.ts": "",
        "node_modules/x/index.js": "",
        "README.md": "",
        "svc/go.mod": "module example.com/svc\n",
        "svc/main.go": "package main\n",
        "svc/main_test.go": "package main\n",
        "svc/tools/nested/go.mod": "module example.com/tools\n",
        "svc/tools/nested/t.go": "package nested\n",
        "loose/x.go": "package loose\n",
    })
    result = scan_project(str(root), ScanFilters())

    assert [p[len(str(root)) + 1:] for p in result.files] == ["src/a.ts", "src/b.tsx"]
    assert [(g.rel_path, g.module.module_path, g.module_root_rel) for g in result.go_sources] == [
        ("svc/main.go", "example.com/svc", "svc"),
        ("svc/tools/nested/t.go", "example.com/tools", "svc/tools/nested"),
    ]
    assert sorted(m.module_path for m in result.go_modules) == ["example.com/svc", "example.com/tools"]

    skipped = {s["path"]: s["reason"] for s in result.skipped}
    assert skipped["loose/x.go"] == "go_file_outside_module"
    assert skipped["vite.config.ts"] == "deny_file_regex"
    assert skipped["src/c.min.js"] == "deny_file_regex"


def test_scan_missing_root(tmp_path):
    with pytest.raises(FileNotFoundError):
        scan_project(str(tmp_path / "missing"), ScanFilters())
