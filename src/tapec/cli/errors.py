"""
CLI Error Reporting
===================

Maps toolchain exceptions to messages on stderr and process exit codes
for tapecc and taperun.

Exit Codes
----------
    0  success
    1  the program is wrong: compile errors, a program too large for the
       tape, or a run that fails (unbalanced loop, cursor off the tape,
       step limit)
    2  the command line is wrong: bad option values, unreadable files
    3  the toolchain is wrong: internal compiler errors and anything
       unexpected

Compiler errors are already formatted as "file:line:col: error: ..." and
are echoed unchanged. Machine errors get a prefix naming the phase, such
as "Runtime error: ".
"""

import sys
import traceback
from enum import IntEnum
from typing import NoReturn

import click


class ExitCode(IntEnum):
    """Exit codes shared by tapecc and taperun."""
    SUCCESS = 0
    BUILD_ERROR = 1      # Program failed to compile or to run
    INVALID_ARGS = 2     # Bad arguments or unreadable input file
    INTERNAL_ERROR = 3   # Compiler defect or unexpected exception


def _fail(message: str, code: ExitCode, hint: str | None = None) -> NoReturn:
    click.echo(message, err=True)
    if hint:
        click.echo(f"hint: {hint}", err=True)
    sys.exit(code)


def handle_cli_exception(
    error: Exception,
    verbose: bool = False,
    error_type: str | None = None
) -> NoReturn:
    """
    Report an exception raised by a CLI command and exit.

    Args:
        error: The exception that was raised
        verbose: If True, print a traceback for internal errors
        error_type: Phase named in machine error messages (e.g. "Runtime")

    Raises:
        SystemExit: Always
    """
    from tapec.compiler.errors import CompilerError, InternalCompilerError
    from tapec.errors import EngineError, StepLimitExceededError

    if isinstance(error, InternalCompilerError):
        click.echo(str(error), err=True)
        if verbose:
            traceback.print_exc()
        _fail(
            "This is a bug in tapec; please report it along with the source file.",
            ExitCode.INTERNAL_ERROR,
        )

    if isinstance(error, CompilerError):
        # Carries its own location, caret and hint
        _fail(str(error), ExitCode.BUILD_ERROR)

    if isinstance(error, EngineError):
        prefix = f"{error_type} error" if error_type else "Error"
        hint = None
        if isinstance(error, StepLimitExceededError):
            hint = "the program may loop forever; raise --max-steps if it is just slow"
        _fail(f"{prefix}: {error}", ExitCode.BUILD_ERROR, hint)

    if isinstance(error, click.BadParameter):
        _fail(f"Error: {error}", ExitCode.INVALID_ARGS)

    if isinstance(error, UnicodeDecodeError):
        _fail("Error: input file is not UTF-8 text", ExitCode.INVALID_ARGS)

    if isinstance(error, (FileNotFoundError, PermissionError, IsADirectoryError)):
        _fail(f"Error: {error}", ExitCode.INVALID_ARGS)

    click.echo(f"Internal error: {type(error).__name__}: {error}", err=True)
    if verbose:
        traceback.print_exc()
    sys.exit(ExitCode.INTERNAL_ERROR)
