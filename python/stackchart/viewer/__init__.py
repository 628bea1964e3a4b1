"""stackchart viewer - DearPyGui stacked area chart."""

from __future__ import annotations

import argparse
import sys


def launch() -> None:
    """Entry point for ``stackchart-viewer`` console script."""
    parser = argparse.ArgumentParser(
        prog="stackchart-viewer",
        description="stackchart viewer",
    )
    parser.add_argument("file", nargs="?", default=None,
                        help="Path to a sample log to open as history")
    parser.add_argument("--demo", action="store_true",
                        help="Chart a synthetic live collection task")
    args = parser.parse_args()

    if args.file and args.demo:
        parser.error("Cannot specify both a file and --demo")

    try:
        import dearpygui.dearpygui  # noqa: F401
    except ImportError:
        print("Error: dearpygui is required for the viewer.\n"
              "Install with: pip install 'stackchart[viewer]'",
              file=sys.stderr)
        sys.exit(1)

    from .app import ViewerApp

    app = ViewerApp()
    app.setup()

    if args.file:
        app.open_file(args.file)
    elif args.demo:
        app.open_demo()

    app.run()
