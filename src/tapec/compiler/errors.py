"""
Tape Compiler Error Hierarchy
=============================

This module defines the exception hierarchy for the Tape compiler.
All exceptions inherit from CompilerError, which itself inherits from
the base TapecError for consistent error handling across the toolchain.

Exception Hierarchy
-------------------
CompilerError (base for all compiler errors)
├── TapeSyntaxError - lexer and parser syntax errors
│   ├── UnterminatedStringError - missing closing quote
│   ├── InvalidCharacterError - unexpected character
│   ├── UnexpectedTokenError - token not valid here
│   └── MissingTokenError - expected token not found
├── TapeSemanticError - semantic analysis errors
│   ├── UndeclaredIdentifierError - undefined variable
│   ├── DuplicateDeclarationError - variable declared twice in a block
│   ├── ImmutableAssignmentError - write to a binding without 'mut'
│   ├── BorrowError - invalid '&' / '&mut' initializer
│   ├── LiteralRangeError - value does not fit in a cell
│   └── DivisionByZeroError - constant zero divisor
├── TapeSizeError - program needs more cells than the tape has
├── TapeCompilationError - aggregate of collected errors
└── InternalCompilerError - compiler invariant violated
    ├── UnboundIdentifierError - lowering saw an unknown name
    ├── ScopeUnderflowError - more scopes closed than opened
    ├── InvalidScopeNestingError - scope closed out of order
    ├── DanglingBorrowError - borrow outlives its owner
    └── IRInvariantError - malformed intermediate code

Internal errors indicate a defect in the compiler itself (or an AST that
skipped semantic checking); they are never expected for checked input.

Error Message Format
--------------------
    filename:line:column: error: description
        source_line_text
        ^ (pointer to error location)
    hint: suggestion for fixing

Example:
    count.tape:3:7: error: undeclared identifier 'cuont'
        write(cuont);
              ^
    hint: did you mean 'count'?
"""

from typing import Optional, List

from tapec.errors import TapecError, SourceLocation


# =============================================================================
# Base Compiler Exception
# =============================================================================

class CompilerError(TapecError):
    """
    Base exception for all compiler errors.

    Provides source location tracking, source line context and hints.

    Attributes:
        message: The error description
        location: Where in the source the error occurred
        hint: A suggestion for fixing the error
        source_line: The actual source text at the error location
    """

    severity = "error"

    def __init__(
        self,
        message: str,
        location: Optional[SourceLocation] = None,
        hint: Optional[str] = None,
        source_line: Optional[str] = None,
    ):
        self.message = message
        self.location = location
        self.hint = hint
        self.source_line = source_line
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """
        Format the error message with location, source context, and hint.

            hello.tape:5:12: error: undeclared identifier 'cuont'
                write(cuont);
                      ^
            hint: did you mean 'count'?
        """
        parts = []

        if self.location:
            parts.append(f"{self.location}: {self.severity}: {self.message}")
        else:
            parts.append(f"{self.severity}: {self.message}")

        if self.source_line is not None and self.location is not None:
            parts.append(f"    {self.source_line}")
            if self.location.column > 0:
                padding = " " * (4 + self.location.column - 1)
                parts.append(f"{padding}^")

        if self.hint:
            parts.append(f"hint: {self.hint}")

        return "\n".join(parts)


class TapeCompilationError(CompilerError):
    """
    Aggregate compilation error containing multiple errors.

    The message is an already formatted report from ErrorCollector and
    is passed through unchanged.
    """

    def _format_message(self) -> str:
        """Return message as-is - it's already a formatted aggregate report."""
        return self.message


# =============================================================================
# Syntax Errors (Lexer and Parser)
# =============================================================================

class TapeSyntaxError(CompilerError):
    """
    Syntax error in Tape source code.

    Raised when the lexer or parser encounters text that cannot be
    tokenized or parsed according to the Tape grammar.
    """
    pass


class UnterminatedStringError(TapeSyntaxError):
    """String literal missing its closing quote."""

    def __init__(
        self,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        super().__init__(
            "unterminated string literal",
            location=location,
            hint='add a closing " before the end of the line',
            source_line=source_line,
        )


class InvalidCharacterError(TapeSyntaxError):
    """Character that cannot start any token."""

    def __init__(
        self,
        char: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.char = char
        if char.isprintable():
            description = f"invalid character '{char}'"
        else:
            description = f"invalid character (code {ord(char)})"
        super().__init__(description, location=location, source_line=source_line)


class UnexpectedTokenError(TapeSyntaxError):
    """Token that does not fit the grammar at this point."""

    def __init__(
        self,
        found: str,
        expected: Optional[str] = None,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.found = found
        self.expected = expected
        message = f"unexpected '{found}'"
        if expected:
            message += f", expected {expected}"
        super().__init__(message, location=location, source_line=source_line)


class MissingTokenError(TapeSyntaxError):
    """A required token (such as ';' or ')') was not found."""

    def __init__(
        self,
        expected: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.expected = expected
        super().__init__(
            f"expected {expected}",
            location=location,
            source_line=source_line,
        )


# =============================================================================
# Semantic Errors
# =============================================================================

class TapeSemanticError(CompilerError):
    """
    Semantic error in Tape source code.

    The program is syntactically valid but breaks a naming, mutability
    or borrowing rule of the language.
    """
    pass


class UndeclaredIdentifierError(TapeSemanticError):
    """
    Reference to an undeclared identifier.

    The checker suggests similarly-named variables in scope to help
    catch typos.
    """

    def __init__(
        self,
        identifier: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
        similar_identifiers: Optional[List[str]] = None,
    ):
        self.identifier = identifier
        self.similar_identifiers = similar_identifiers or []

        hint = None
        if self.similar_identifiers:
            suggestions = ", ".join(f"'{s}'" for s in self.similar_identifiers[:3])
            hint = f"did you mean {suggestions}?"

        super().__init__(
            f"undeclared identifier '{identifier}'",
            location=location,
            hint=hint,
            source_line=source_line,
        )


class DuplicateDeclarationError(TapeSemanticError):
    """Variable declared twice in the same block."""

    def __init__(
        self,
        identifier: str,
        location: Optional[SourceLocation] = None,
        original_location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.identifier = identifier
        self.original_location = original_location

        hint = None
        if original_location:
            hint = f"'{identifier}' was first declared at {original_location}"

        super().__init__(
            f"redeclaration of '{identifier}'",
            location=location,
            hint=hint,
            source_line=source_line,
        )


class ImmutableAssignmentError(TapeSemanticError):
    """Assignment, compound assignment or read into an immutable binding."""

    def __init__(
        self,
        identifier: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.identifier = identifier
        super().__init__(
            f"cannot assign to immutable variable '{identifier}'",
            location=location,
            hint=f"declare it with 'let mut {identifier}'",
            source_line=source_line,
        )


class BorrowError(TapeSemanticError):
    """Invalid borrow initializer ('&name' or '&mut name')."""
    pass


class LiteralRangeError(TapeSemanticError):
    """Literal value does not fit in one 8-bit cell."""

    def __init__(
        self,
        value: int,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.value = value
        super().__init__(
            f"literal {value} does not fit in a cell",
            location=location,
            hint="cell values range from 0 to 255",
            source_line=source_line,
        )


class DivisionByZeroError(TapeSemanticError):
    """Divisor is zero at compile time."""

    def __init__(
        self,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        super().__init__(
            "division by constant zero",
            location=location,
            source_line=source_line,
        )


# =============================================================================
# Target Limits
# =============================================================================

class TapeSizeError(CompilerError):
    """
    The program needs more tape cells than the target tape provides.

    Raised when a tape size is given at compile time (for example by
    taperun --tape-size). Without one, cell addresses are unbounded.
    """

    def __init__(self, cells_needed: int, tape_size: int):
        self.cells_needed = cells_needed
        self.tape_size = tape_size
        super().__init__(
            f"program needs {cells_needed} tape cells, but the tape has only {tape_size}",
            hint="use a larger tape size",
        )


# =============================================================================
# Internal Compiler Errors
# =============================================================================

class InternalCompilerError(CompilerError):
    """
    A compiler invariant was violated.

    These errors indicate a defect in the compiler or an AST that was
    lowered without passing semantic checking first.
    """

    severity = "internal compiler error"


class UnboundIdentifierError(InternalCompilerError):
    """Lowering looked up a name that is not in the environment."""

    def __init__(self, identifier: str, location: Optional[SourceLocation] = None):
        self.identifier = identifier
        super().__init__(f"unbound identifier '{identifier}' during lowering", location)


class ScopeUnderflowError(InternalCompilerError):
    """More scopes were closed than opened."""
    pass


class InvalidScopeNestingError(InternalCompilerError):
    """A scope was closed while a more recent scope was still open."""
    pass


class DanglingBorrowError(InternalCompilerError):
    """A borrow would outlive, or die together with, the storage it refers to."""

    def __init__(self, address: int, message: str):
        self.address = address
        super().__init__(message)


class IRInvariantError(InternalCompilerError):
    """The intermediate code references storage the allocator never issued."""
    pass


# =============================================================================
# Error Collection (for multi-error reporting)
# =============================================================================

class ErrorCollector:
    """
    Collects multiple errors for batch reporting.

    The parser and the semantic checker keep going after an error so that
    one compile run reports as many problems as possible.

    Example:
        collector = ErrorCollector(max_errors=100)

        for stmt in statements:
            try:
                check(stmt)
            except CompilerError as e:
                collector.add(e)

        collector.raise_if_errors()
    """

    def __init__(self, max_errors: int = 100):
        self.errors: List[CompilerError] = []
        self.warnings: List[str] = []
        self.max_errors = max_errors

    def add(self, error: CompilerError) -> None:
        """Add an error to the collection."""
        self.errors.append(error)

    def add_warning(self, message: str, location: Optional[SourceLocation] = None) -> None:
        """Add a warning message."""
        if location:
            self.warnings.append(f"{location}: warning: {message}")
        else:
            self.warnings.append(f"warning: {message}")

    def has_errors(self) -> bool:
        """Return True if any errors have been collected."""
        return len(self.errors) > 0

    def should_stop(self) -> bool:
        """Return True if max_errors has been reached."""
        return len(self.errors) >= self.max_errors

    def error_count(self) -> int:
        return len(self.errors)

    def report(self) -> str:
        """Format all errors and warnings for display."""
        lines = []

        for error in self.errors:
            lines.append(str(error))
            lines.append("")

        for warning in self.warnings:
            lines.append(warning)

        error_word = "error" if len(self.errors) == 1 else "errors"
        warning_word = "warning" if len(self.warnings) == 1 else "warnings"
        lines.append(
            f"{len(self.errors)} {error_word}, {len(self.warnings)} {warning_word}"
        )

        return "\n".join(lines)

    def clear(self) -> None:
        """Clear all collected errors and warnings."""
        self.errors.clear()
        self.warnings.clear()

    def raise_if_errors(self) -> None:
        """
        Raise collected errors.

        A single error is re-raised as itself so callers can catch the
        specific class; several are raised as one TapeCompilationError.
        """
        if not self.has_errors():
            return
        if len(self.errors) == 1:
            raise self.errors[0]
        raise TapeCompilationError(self.report())
