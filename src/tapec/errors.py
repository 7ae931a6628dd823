"""
tapec Error Hierarchy
=====================

This module defines the root of the exception hierarchy for tapec.
All exceptions inherit from TapecError, allowing callers to catch every
toolchain error with a single except clause if desired.

Exception Hierarchy
-------------------
TapecError (base)
├── CompilerError (tapec.compiler.errors)
│   ├── TapeSyntaxError - lexer and parser errors
│   ├── TapeSemanticError - name, mutability and borrow errors
│   └── InternalCompilerError - broken compiler invariants
└── EngineError (tape execution)
    ├── UnbalancedLoopError - '[' and ']' do not nest
    ├── CursorOutOfRangeError - cursor left the tape
    └── StepLimitExceededError - program ran too long

Design Philosophy
-----------------
Compiler errors carry source location information (filename, line,
column) so messages point at the offending code. Engine errors carry the
program position or cursor value at which execution stopped.

Error messages follow this format:
    filename:line:column: error: description
    source_line_text
        ^ (pointer to error location)
    hint: suggestion for fixing (when available)
"""

from dataclasses import dataclass
from typing import Optional


# =============================================================================
# Base Exception Class
# =============================================================================

class TapecError(Exception):
    """
    Base exception for all tapec errors.

    All exceptions in the toolchain inherit from this class:

        try:
            compile_file("hello.tape")
        except TapecError as e:
            print(f"Error: {e}")
    """
    pass


# =============================================================================
# Source Location Tracking
# =============================================================================

@dataclass(frozen=True)
class SourceLocation:
    """
    Represents a location in source code for error reporting.

    Used throughout the front end to track where tokens, statements and
    errors occur. Frozen so that locations cannot be modified after the
    lexer creates them.

    Attributes:
        filename: Name of the source file (or "<input>" for string input)
        line: Line number (1-indexed)
        column: Column number (1-indexed)
    """
    filename: str
    line: int
    column: int

    def __str__(self) -> str:
        """Format as 'filename:line:column' for error messages."""
        return f"{self.filename}:{self.line}:{self.column}"


# =============================================================================
# Execution Engine Exceptions
# =============================================================================

class EngineError(TapecError):
    """
    Base exception for errors raised while loading or running tape code.

    Attributes:
        message: The error description
        position: Offset into the program text, when known
    """

    def __init__(self, message: str, position: Optional[int] = None):
        self.message = message
        self.position = position
        if position is not None:
            super().__init__(f"{message} (at program offset {position})")
        else:
            super().__init__(message)


class UnbalancedLoopError(EngineError):
    """
    Loop markers do not nest correctly.

    Raised when loading a program that has a ']' without a matching '['
    or a '[' that is never closed.
    """

    def __init__(self, position: int, unmatched: str):
        self.unmatched = unmatched
        if unmatched == "[":
            message = "unmatched '[': loop is never closed"
        else:
            message = "unmatched ']': no loop to close"
        super().__init__(message, position)


class CursorOutOfRangeError(EngineError):
    """
    Cursor moved outside the tape.

    Raised when '<' moves the cursor below cell 0, or when '>' moves it
    past the end of a bounded tape.
    """

    def __init__(self, cursor: int, tape_size: Optional[int], position: Optional[int] = None):
        self.cursor = cursor
        self.tape_size = tape_size
        if cursor < 0:
            message = f"cursor moved below the start of the tape (to {cursor})"
        else:
            message = f"cursor moved past the end of the tape (to {cursor}, tape has {tape_size} cells)"
        super().__init__(message, position)


class StepLimitExceededError(EngineError):
    """
    Execution exceeded the configured step limit.

    Raised by both the tape machine and the IR simulator so that runaway
    loops in tests and tools fail instead of hanging.
    """

    def __init__(self, max_steps: int):
        self.max_steps = max_steps
        super().__init__(f"step limit of {max_steps} exceeded")
