"""Process entrypoint: run the CLI and turn uncaught failures into exit codes."""

from __future__ import annotations

import sys
import traceback
from collections.abc import Sequence
from enum import IntEnum


class ExitCode(IntEnum):
    SUCCESS = 0
    NOT_FOUND = 1
    INPUT_ERROR = 2
    INTERNAL_ERROR = 4


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Used by the ``competency`` script and ``python -m competency_engine``.

    Config, catalog, store and filesystem errors (all ``ValueError`` or
    ``OSError`` somewhere in the cause chain) are input errors and print one
    line; anything else prints a traceback.
    """
    from competency_engine.ui.cli import run_cli

    try:
        return int(run_cli(argv))
    except SystemExit as exc:
        if exc.code is None:
            return ExitCode.SUCCESS
        return exc.code if isinstance(exc.code, int) else ExitCode.INPUT_ERROR
    except Exception as exc:  # noqa: BLE001
        if _caused_by_input(exc):
            print(f"error: {exc}", file=sys.stderr)
            return ExitCode.INPUT_ERROR
        traceback.print_exception(exc, file=sys.stderr)
        return ExitCode.INTERNAL_ERROR


def _caused_by_input(exc: BaseException) -> bool:
    current: BaseException | None = exc
    while current is not None:
        if isinstance(current, (ValueError, OSError)):
            return True
        current = current.__cause__
    return False


__all__ = ["ExitCode", "cli_entrypoint"]
