"""
taperun - Tape Machine Command-Line Interface
=============================================

Runs a compiled program on the tape machine. Tape source files are
compiled first, so a .tape file can be run in one step.

Usage Examples
--------------
Run a compiled program:
    $ taperun hello.bf

Compile and run in one step:
    $ taperun hello.tape

Supply input:
    $ taperun echo.tape -i "abc"
    $ echo abc | taperun echo.tape

Catch runaway loops:
    $ taperun --max-steps 1000000 spin.bf
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import click

from tapec import __version__
from tapec.cli.errors import handle_cli_exception
from tapec.cli.tapecc import configure_logging
from tapec.compiler import TapeCompiler, CompilerOptions
from tapec.engine import TapeMachine, DEFAULT_TAPE_SIZE

logger = logging.getLogger(__name__)

SOURCE_SUFFIX = ".tape"


# =============================================================================
# CLI Definition
# =============================================================================

@click.command()
@click.argument(
    "input_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "-i", "--input", "input_text",
    type=str,
    default=None,
    help="Program input (default: stdin when it is not a terminal)",
)
@click.option(
    "--tape-size",
    type=click.IntRange(min=0),
    default=DEFAULT_TAPE_SIZE,
    show_default=True,
    help="Number of tape cells (0 for a tape that grows on demand)",
)
@click.option(
    "--max-steps",
    type=click.IntRange(min=1),
    default=None,
    help="Stop after this many operations",
)
@click.option(
    "-O", "--optimize",
    type=click.Choice(["none", "speed"], case_sensitive=False),
    default="speed",
    show_default=True,
    help="Optimization level when compiling .tape sources",
)
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Verbose output",
)
@click.version_option(version=__version__, prog_name="taperun")
def main(
    input_file: Path,
    input_text: Optional[str],
    tape_size: int,
    max_steps: Optional[int],
    optimize: str,
    verbose: bool,
) -> None:
    """
    Run a program on the tape machine.

    INPUT_FILE is either compiled code (.bf or any other extension) or a
    Tape source file (.tape), which is compiled before running.

    Program output is written to stdout unchanged.

    \b
    Examples:
        taperun hello.bf                  # Run compiled code
        taperun hello.tape                # Compile, then run
        taperun echo.bf -i "abc"          # Supply input
        taperun --tape-size 0 big.bf      # Unbounded tape
    """
    configure_logging(verbose)

    size = tape_size if tape_size > 0 else None

    try:
        text = input_file.read_text(encoding="utf-8")

        if input_file.suffix == SOURCE_SUFFIX:
            options = CompilerOptions(
                optimize=optimize.lower() != "none",
                address_limit=size,
            )
            code = TapeCompiler(options).compile_source(text, str(input_file)).code
            logger.debug(f"Compiled {input_file} to {len(code)} characters")
        else:
            code = text

        if input_text is not None:
            input_data = input_text.encode("utf-8")
        elif not sys.stdin.isatty():
            input_data = sys.stdin.buffer.read()
        else:
            input_data = b""

        machine = TapeMachine(tape_size=size, max_steps=max_steps)
        machine.load(code)
        output = machine.run(input_data)

        stdout = sys.stdout.buffer
        stdout.write(output)
        stdout.flush()

        logger.debug(f"Executed {machine.steps} operations, cursor at {machine.cursor}")

    except Exception as e:
        handle_cli_exception(e, verbose, "Runtime")


if __name__ == "__main__":
    main()
