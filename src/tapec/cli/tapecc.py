"""
tapecc - Tape Compiler Command-Line Interface
=============================================

This module implements the command-line interface for the Tape compiler.

Usage Examples
--------------
Basic compilation:
    $ tapecc hello.tape

With output file:
    $ tapecc hello.tape -o hello.bf

Inspect the compiler's intermediate stages:
    $ tapecc --ast hello.tape
    $ tapecc --ir hello.tape

Unoptimized output with source annotations:
    $ tapecc -O none -g hello.tape

Compile and run:
    $ tapecc hello.tape && taperun hello.bf
"""

import logging
from pathlib import Path
from typing import Optional

import click

from tapec import __version__
from tapec.cli.errors import handle_cli_exception
from tapec.compiler import TapeCompiler, CompilerOptions
from tapec.compiler.ast import ASTPrinter
from tapec.compiler.ir import format_ir

logger = logging.getLogger(__name__)


def configure_logging(verbose: bool) -> None:
    """Set up root logging for a CLI run."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(message)s" if verbose else "%(message)s",
    )


# =============================================================================
# CLI Definition
# =============================================================================

@click.command()
@click.argument(
    "input_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "-o", "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Output file (default: input.bf)",
)
@click.option(
    "-O", "--optimize",
    type=click.Choice(["none", "speed"], case_sensitive=False),
    default="speed",
    show_default=True,
    help="Optimization level",
)
@click.option(
    "-g", "--debug",
    is_flag=True,
    help="Annotate the output with source lines",
)
@click.option(
    "--ir",
    is_flag=True,
    help="Print the IR listing and exit",
)
@click.option(
    "--ast",
    is_flag=True,
    help="Print AST and exit (for debugging)",
)
@click.option(
    "--stats",
    is_flag=True,
    help="Print optimizer statistics",
)
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Verbose output",
)
@click.version_option(version=__version__, prog_name="tapecc")
def main(
    input_file: Path,
    output: Optional[Path],
    optimize: str,
    debug: bool,
    ir: bool,
    ast: bool,
    stats: bool,
    verbose: bool,
) -> None:
    """
    Compile a Tape program for the tape machine.

    INPUT_FILE is the Tape source file (.tape) to compile.

    The output uses only the eight commands > < + - . , [ ] and can be
    run with taperun.

    \b
    Examples:
        tapecc hello.tape                 # Outputs hello.bf
        tapecc hello.tape -o out.bf       # Specify output file
        tapecc -O none hello.tape         # Skip the optimizer
        tapecc -g hello.tape              # Annotated output
        tapecc --ir hello.tape            # Show the IR
    """
    configure_logging(verbose)

    if output is None:
        output = input_file.with_suffix(".bf")

    options = CompilerOptions(
        debug=debug,
        optimize=optimize.lower() != "none",
    )

    try:
        logger.debug(f"Compiling {input_file} (optimize={optimize}, debug={debug})")

        source = input_file.read_text(encoding="utf-8")
        result = TapeCompiler(options).compile_source(source, str(input_file))

        if ast:
            click.echo(ASTPrinter().print(result.ast))
            return

        if ir:
            click.echo(format_ir(result.ir))
            return

        output.write_text(result.code, encoding="utf-8")

        if stats:
            click.echo(str(result.stats))

        logger.debug(f"Tokenized: {result.token_count} tokens")
        logger.debug(f"Tape cells used: {result.address_count}")
        logger.debug(f"Wrote {len(result.code)} bytes to {output}")

        click.echo(f"Compiled {input_file} -> {output}")

    except Exception as e:
        handle_cli_exception(e, verbose)


if __name__ == "__main__":
    main()
