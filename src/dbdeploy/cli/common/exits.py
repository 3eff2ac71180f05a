"""Exit handling utilities for the CLI.

Exit codes: 0 success, 1 a database or deployment failure, 2 a bad model
definition or invalid settings.
"""

from typing import NoReturn

import typer

from dbdeploy.cli.common.output import out
from dbdeploy.core.errors import SchemaDefinitionError

EXIT_FAILED = 1
EXIT_USAGE = 2


def ok_exit(msg: str | None = None) -> NoReturn:
    """Exit successfully with an optional informational message."""
    if msg:
        out.info(msg)
    raise typer.Exit(0)


def die(msg: str, code: int = EXIT_FAILED) -> NoReturn:
    """Exit with an error message and optional exit code."""
    out.error(msg)
    raise typer.Exit(code)


def warn_exit(msg: str, code: int = 0) -> NoReturn:
    """Exit with a warning message and optional exit code."""
    out.warn(msg)
    raise typer.Exit(code)


def exit_code_for(exc: BaseException) -> int:
    if isinstance(exc, SchemaDefinitionError):
        return EXIT_USAGE
    return EXIT_FAILED


def exit_from_exc(exc: Exception, *, message: str | None = None, code: int | None = None) -> NoReturn:
    """
    Print an error message and exit, chaining the causing exception.

    The exit code follows the exception type unless `code` is given, and the
    message defaults to the exception text.
    """
    out.error(message if message is not None else str(exc))
    raise typer.Exit(exit_code_for(exc) if code is None else code) from exc
