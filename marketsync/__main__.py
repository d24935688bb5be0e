"""
Module entrypoint for the marketsync CLI.

This file exists so that `python -m marketsync ...` works when the console
script wrapper is not installed. It contains no business logic.
"""

from __future__ import annotations

from marketsync.cli import main


def _run() -> None:
    """
    Execute the marketsync command line interface.

    Raises
    ------
    SystemExit
        Carries the CLI exit code.
    """
    raise SystemExit(main())


if __name__ == "__main__":
    _run()
