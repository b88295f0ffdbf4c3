# src/featuremap/cli.py
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

from . import __version__
from . import main as main_module
from .pipeline import ScanStageError

STAGE_LOAD_CONFIG = "load_config"

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


def _strip_wrapping_quotes(v: str) -> str:
    v = v.strip()
    if len(v) >= 2 and ((v[0] == v[-1] == '"') or (v[0] == v[-1] == "'")):
        return v[1:-1]
    return v


def _parse_dotenv_line(line: str) -> tuple[str, str] | None:
    """
    KEY=VALUE, optionally prefixed with "export ".
    Quoted values keep '#'; unquoted values drop a trailing "# comment". No ${...} expansion.
    """
    s = line.strip()
    if not s or s.startswith("#"):
        return None

    if s.startswith("export "):
        s = s[len("export "):].lstrip()

    key, sep, rest = s.partition("=")
    key = key.strip()
    if not sep or not key:
        return None

    val = rest.strip()
    if val[:1] in ("'", '"'):
        closing = val.find(val[0], 1)
        if closing != -1:
            return key, val[1:closing]
        return key, _strip_wrapping_quotes(val)

    return key, val.split("#", 1)[0].strip()


def _load_dotenv_file(path: str) -> bool:
    """
    Sets variables from a .env file that are not already in the environment.
    Returns True if the file existed and was read.
    """
    p = Path(path)
    if not p.is_file():
        return False

    for raw_line in p.read_text(encoding="utf-8").splitlines():
        parsed = _parse_dotenv_line(raw_line)
        if not parsed:
            continue
        k, v = parsed
        os.environ.setdefault(k, v)
    return True


def _configure_logging(verbose: bool) -> None:
    # stdout is reserved for the JSON result
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        stream=sys.stderr,
        force=True,
    )


def _print_success(obj: dict[str, Any]) -> None:
    print(json.dumps(obj, separators=(",", ":")), file=sys.stdout)


def _print_failure(stage: str, err: Exception) -> None:
    out = {
        "ok": False,
        "stage": stage,
        "error_code": f"FEATUREMAP_FAILED_{stage.upper()}",
        "error_message": str(err),
    }
    print(json.dumps(out, separators=(",", ":")), file=sys.stdout)


def _overlap(value: str) -> float:
    try:
        f = float(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}") from e
    if not 0.0 <= f <= 1.0:
        raise argparse.ArgumentTypeError("must be between 0 and 1")
    return f


def _positive_int(value: str) -> int:
    try:
        n = int(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"not an integer: {value!r}") from e
    if n < 1:
        raise argparse.ArgumentTypeError("must be >= 1")
    return n


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="featuremap",
        description="Scan a TS/JS/Go project into feature clusters with stable ids.",
    )
    parser.add_argument(
        "root",
        nargs="?",
        default=".",
        help="Project root (default: current directory). Artifacts go to <root>/.featuremap/.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Compute and report everything, write nothing.",
    )
    parser.add_argument(
        "--workers",
        type=_positive_int,
        default=None,
        metavar="N",
        help="Extraction threads (default: FEATUREMAP_WORKERS or 4).",
    )
    parser.add_argument(
        "--min-overlap",
        dest="min_overlap",
        type=_overlap,
        default=None,
        metavar="F",
        help="Jaccard threshold for keeping a persisted cluster id (default: config or 0.7).",
    )
    parser.add_argument(
        "--strict-aliases",
        dest="strict_aliases",
        action="store_true",
        default=None,
        help="Fail the scan on a malformed tsconfig/jsconfig instead of warning.",
    )
    parser.add_argument(
        "--dotenv",
        nargs="?",
        const=".env",
        default=None,
        metavar="PATH",
        help="Optional: load env vars from a local .env file (default: ./.env).",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Debug logging on stderr.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"featuremap {__version__}",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    _configure_logging(bool(args.verbose))

    if args.dotenv:
        _load_dotenv_file(str(args.dotenv))

    try:
        result = main_module.run(
            project_root=args.root,
            dry_run=bool(args.dry_run),
            workers=args.workers,
            min_overlap=args.min_overlap,
            strict_aliases=args.strict_aliases,
        )
        _print_success(result)
        return 0

    except Exception as e:  # noqa: BLE001 - top-level CLI error handler
        if isinstance(e, ScanStageError):
            _print_failure(e.stage, e)
            return 1

        # failures before the workflow starts are configuration problems
        if isinstance(e, (ValueError, TypeError, RuntimeError)):
            _print_failure(STAGE_LOAD_CONFIG, e)
            return 1

        _print_failure("unknown", e)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
