import json
import os
import subprocess
import sys
from pathlib import Path

SRC_DIR = str(Path(__file__).resolve().parents[1] / "src")


def run_cli(args: list[str] | None = None, env: dict[str, str] | None = None) -> subprocess.CompletedProcess:
    cmd = [sys.executable, "-m", "featuremap.cli"]
    if args:
        cmd.extend(args)
    env_vars = dict(env) if env is not None else os.environ.copy()
    env_vars["PYTHONPATH"] = os.pathsep.join(p for p in (SRC_DIR, env_vars.get("PYTHONPATH", "")) if p)
    return subprocess.run(cmd, capture_output=True, text=True, env=env_vars)


def test_cli_errors_on_missing_root(tmp_path):
    proc = run_cli([str(tmp_path / "does-not-exist")])
    assert proc.returncode == 1
    payload = json.loads(proc.stdout.strip())
    assert payload["ok"] is False
    assert payload["stage"] == "load_config"
    assert payload["error_code"] == "FEATUREMAP_FAILED_LOAD_CONFIG"
    assert "does-not-exist" in payload["error_message"]


def test_cli_dry_run_prints_one_json_object(tmp_path):
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "a.ts").write_text("import { b } from './b';\n", encoding="utf-8")
    (tmp_path / "src" / "b.ts").write_text("export const b = 1;\n", encoding="utf-8")

    proc = run_cli([str(tmp_path), "--dry-run", "--workers", "2"])
    assert proc.returncode == 0, proc.stderr
    lines = [line for line in proc.stdout.splitlines() if line.strip()]
    assert len(lines) == 1
    payload = json.loads(lines[0])
    assert payload["ok"] is True
    assert payload["stage"] == "done_dry_run"
    assert payload["graph"]["total_dependencies"] == 1
    assert not (tmp_path / ".featuremap").exists()
    # progress goes to stderr
    assert "Found 2 TS/JS files" in proc.stderr


def test_cli_min_overlap_from_dotenv(tmp_path):
    (tmp_path / "a.ts").write_text("", encoding="utf-8")
    dotenv = tmp_path / "local.env"
    dotenv.write_text("# local overrides\nexport FEATUREMAP_MIN_OVERLAP='0.9'\n", encoding="utf-8")

    env = os.environ.copy()
    env.pop("FEATUREMAP_MIN_OVERLAP", None)
    proc = run_cli([str(tmp_path), "--dry-run", "--dotenv", str(dotenv)], env=env)
    assert proc.returncode == 0, proc.stderr
    assert json.loads(proc.stdout)["matching"]["min_overlap"] == 0.9


def test_cli_rejects_out_of_range_overlap(tmp_path):
    proc = run_cli([str(tmp_path), "--min-overlap", "1.5"])
    assert proc.returncode == 2
    assert "min-overlap" in proc.stderr


def test_cli_version():
    proc = run_cli(["--version"])
    assert proc.returncode == 0
    assert proc.stdout.startswith("featuremap ")
