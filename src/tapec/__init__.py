"""
tapec - Compiler and Runtime for the Tape Language
==================================================

Tape is a small imperative language with scoped variables, constants and
borrows. tapec compiles it for a machine that has a single byte tape, a
single cursor and eight commands:

    >  <  +  -  .  ,  [  ]

Main Components
---------------
- **compiler**: Tape compiler (tapecc)
    Lexer, parser, semantic checker, scope-aware tape allocator, IR
    lowering, fixpoint optimizer and code emitter

- **engine**: Tape machine (taperun)
    Interpreter for the compiled programs

Quick Start
-----------
Compile and run a program:
    >>> from tapec import compile_tape, run_program
    >>> run_program(compile_tape('print("Hi");'))
    b'Hi'

Or use the command-line tools:
    $ tapecc hello.tape -o hello.bf
    $ taperun hello.bf

Version History
---------------
1.0.0 - Initial release with compiler, optimizer and tape machine
"""

__version__ = "1.0.0"
__author__ = "Hugo José Pinto & Contributors"

# =============================================================================
# Public API Exports
# =============================================================================

from tapec.errors import (
    TapecError,
    SourceLocation,
    EngineError,
    UnbalancedLoopError,
    CursorOutOfRangeError,
    StepLimitExceededError,
)
from tapec.compiler import (
    TapeCompiler,
    CompilerOptions,
    CompilerResult,
    CompilerError,
    compile_tape,
    compile_file,
)
from tapec.engine import TapeMachine, run_program, DEFAULT_TAPE_SIZE

__all__ = [
    "__version__",
    "__author__",
    # Errors
    "TapecError",
    "SourceLocation",
    "EngineError",
    "UnbalancedLoopError",
    "CursorOutOfRangeError",
    "StepLimitExceededError",
    "CompilerError",
    # Compiler
    "TapeCompiler",
    "CompilerOptions",
    "CompilerResult",
    "compile_tape",
    "compile_file",
    # Engine
    "TapeMachine",
    "run_program",
    "DEFAULT_TAPE_SIZE",
]
