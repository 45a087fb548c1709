from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path


def _ensure_repo_root_on_path() -> None:
    """Ensure the repository root (parent of this package) is on ``sys.path``.

    If this module is executed as a script (``python ginger/__main__.py``),
    the package may not be discoverable by Python.
    """
    pkg_dir = Path(__file__).resolve().parent
    repo_root_str = str(pkg_dir.parent)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


try:
    # Works when executed as a module: python -m ginger
    from .config import (  # type: ignore[attr-defined]
        config_to_dict,
        decode_config_link,
        encode_config_link,
        load_config,
    )
    from .errors import ConfigError  # type: ignore[attr-defined]
except ImportError:
    _ensure_repo_root_on_path()
    from ginger.config import (  # type: ignore[attr-defined]
        config_to_dict,
        decode_config_link,
        encode_config_link,
        load_config,
    )
    from ginger.errors import ConfigError  # type: ignore[attr-defined]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ginger", description="Run a Go/No-Go task.")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("config", nargs="?", type=Path, help="task config JSON file")
    source.add_argument("--link", help="shareable link or '#v1/...' fragment")
    parser.add_argument(
        "--encode-link",
        metavar="BASE_URL",
        help="print the shareable link for the config under BASE_URL and exit",
    )
    parser.add_argument("--fullscreen", action="store_true")
    parser.add_argument("--log-level", default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def main(argv: list[str] | None = None) -> int:
    """Entry point for running the task from the command line."""

    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = decode_config_link(args.link) if args.link else load_config(args.config)
    except (ConfigError, OSError) as exc:
        print(f"ginger: {exc}", file=sys.stderr)
        return 2

    if args.encode_link:
        print(encode_config_link(json.dumps(config_to_dict(config), ensure_ascii=False), args.encode_link))
        return 0

    # pygame is only needed once there is something to show.
    try:
        from .app import run  # type: ignore[attr-defined]
    except ImportError:
        from ginger.app import run  # type: ignore[attr-defined]

    return run(config, fullscreen=args.fullscreen)


if __name__ == "__main__":
    raise SystemExit(main())
