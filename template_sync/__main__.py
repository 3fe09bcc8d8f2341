"""Entry point for Template Sync.

Usage:
    python -m template_sync                    Watch the current directory
    python -m template_sync --preview          Also serve a live preview
    python -m template_sync --workdir DIR      Watch another directory
"""

import argparse
import sys
from pathlib import Path

from template_sync import __app_name__, __version__


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="template-sync",
        description="Push every save of a local template to a remote template editor.",
    )
    parser.add_argument("--version", action="version", version=f"{__app_name__} {__version__}")
    parser.add_argument(
        "--workdir", type=Path, default=None,
        help="directory holding the capture, template and config files (default: cwd)",
    )
    parser.add_argument(
        "--preview", dest="preview", action="store_true", default=None,
        help="fetch a rendering after each save and serve it for live preview",
    )
    parser.add_argument("--no-preview", dest="preview", action="store_false")
    parser.add_argument("--port", type=int, default=None, help="preview server port")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR")
    return parser


def main(argv: list[str] | None = None) -> None:
    """Parse arguments, apply overrides to the config and run."""
    args = build_parser().parse_args(argv)

    from template_sync.app import App
    from template_sync.config import Config

    workdir = args.workdir or Path.cwd()
    if not workdir.is_dir():
        print(f"ERROR: {workdir} is not a directory.", file=sys.stderr)
        sys.exit(1)

    cfg = Config(workdir=workdir)
    if args.preview is not None:
        cfg.preview_enabled = args.preview
    if args.port is not None:
        cfg.preview_port = args.port
    if args.log_level:
        cfg.log_level = args.log_level

    App(cfg).run()


if __name__ == "__main__":
    main()
