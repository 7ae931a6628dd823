"""
Tape Semantic Checker
=====================

Validates a parsed program before lowering. Lowering assumes a checked
tree and treats any name, mutability or borrow problem it meets as an
internal error, so every user-facing rule is enforced here.

Checks
------
- Every name is declared before use (with "did you mean" suggestions)
- No name is declared twice in the same block
- Only mutable bindings are assigned, updated or read into
- '&mut' borrows only mutable bindings, and 'let mut' cannot hold a
  shared borrow
- A borrow refers to a binding from an enclosing block, so the borrow
  always ends before the storage it aliases
- Literals and print characters fit in one cell (0-255)
- No divisor is the constant zero

All errors are collected, then raised together.
"""

import difflib
from dataclasses import dataclass
from typing import Optional

from tapec.errors import SourceLocation
from tapec.compiler.ast import (
    ASTVisitor,
    Program,
    Block,
    LetStatement,
    AssignStatement,
    CompoundAssignStatement,
    ReadStatement,
    PrintStatement,
    NumberLiteral,
    Identifier,
    BinaryExpression,
    BorrowExpression,
    BinaryOperator,
)
from tapec.compiler.errors import (
    CompilerError,
    ErrorCollector,
    UndeclaredIdentifierError,
    DuplicateDeclarationError,
    ImmutableAssignmentError,
    BorrowError,
    LiteralRangeError,
    DivisionByZeroError,
)
from tapec.compiler.folding import fold_constant

MAX_CELL_VALUE = 255


@dataclass
class Symbol:
    """
    A declared name as seen by the checker.

    Attributes:
        name: Variable name
        writable: True if assignments through this name are allowed
        location: Declaration site
        is_borrow: True if the binding aliases another variable
    """
    name: str
    writable: bool
    location: SourceLocation
    is_borrow: bool = False


class SemanticChecker(ASTVisitor):
    """
    Checks naming, mutability and borrow rules on a Program.

    Usage:
        checker = SemanticChecker(source_lines)
        checker.check(program)   # raises on errors
    """

    def __init__(self, source_lines: Optional[list[str]] = None, max_errors: int = 100):
        self.source_lines = source_lines or []
        self.errors = ErrorCollector(max_errors=max_errors)
        self._scopes: list[dict[str, Symbol]] = []

    def check(self, program: Program) -> list[str]:
        """
        Check a program.

        Returns:
            Warning messages collected along the way

        Raises:
            TapeSemanticError: If exactly one error was found
            TapeCompilationError: If several errors were found
        """
        self.errors.clear()
        self._scopes = [{}]
        self.visit(program)
        self.errors.raise_if_errors()
        return list(self.errors.warnings)

    # =========================================================================
    # Scope Handling
    # =========================================================================

    def _lookup(self, name: str) -> Optional[Symbol]:
        for scope in reversed(self._scopes):
            if name in scope:
                return scope[name]
        return None

    def _visible_names(self) -> list[str]:
        names = set()
        for scope in self._scopes:
            names.update(scope)
        return sorted(names)

    def _report(self, error: CompilerError) -> None:
        if not self.errors.should_stop():
            self.errors.add(error)

    def _source_line(self, location: SourceLocation) -> Optional[str]:
        if 0 < location.line <= len(self.source_lines):
            return self.source_lines[location.line - 1]
        return None

    def _resolve(self, name: str, location: SourceLocation) -> Optional[Symbol]:
        """Look up a name, reporting it if undeclared."""
        symbol = self._lookup(name)
        if symbol is None:
            similar = difflib.get_close_matches(name, self._visible_names(), n=3)
            self._report(UndeclaredIdentifierError(
                name,
                location,
                self._source_line(location),
                similar_identifiers=similar,
            ))
        return symbol

    def _require_writable(self, name: str, location: SourceLocation) -> None:
        symbol = self._resolve(name, location)
        if symbol is not None and not symbol.writable:
            self._report(ImmutableAssignmentError(name, location, self._source_line(location)))

    # =========================================================================
    # Statements
    # =========================================================================

    def visit_Block(self, node: Block):
        self._scopes.append({})
        for stmt in node.statements:
            self.visit(stmt)
        self._scopes.pop()

    def visit_LetStatement(self, node: LetStatement):
        initializer = node.initializer
        is_borrow = isinstance(initializer, BorrowExpression)

        if is_borrow:
            self._check_borrow(node, initializer)
            writable = initializer.mutable
        else:
            self.visit(initializer)
            writable = node.mutable

        scope = self._scopes[-1]
        previous = scope.get(node.name)
        if previous is not None:
            self._report(DuplicateDeclarationError(
                node.name,
                node.location,
                previous.location,
                self._source_line(node.location),
            ))
            return

        scope[node.name] = Symbol(node.name, writable, node.location, is_borrow)

    def _check_borrow(self, node: LetStatement, borrow: BorrowExpression) -> None:
        source = self._resolve(borrow.name, borrow.location)
        if source is None:
            return

        source_line = self._source_line(borrow.location)

        if node.mutable and not borrow.mutable:
            self._report(BorrowError(
                f"'{node.name}' is declared mutable but holds a shared borrow of '{borrow.name}'",
                borrow.location,
                hint=f"use 'let {node.name} = &mut {borrow.name};'",
                source_line=source_line,
            ))

        if borrow.mutable and not source.writable:
            self._report(BorrowError(
                f"cannot borrow immutable variable '{borrow.name}' as mutable",
                borrow.location,
                hint=f"declare it with 'let mut {borrow.name}'",
                source_line=source_line,
            ))

        # A borrow of a borrow aliases storage from an enclosing block
        if borrow.name in self._scopes[-1] and not source.is_borrow:
            self._report(BorrowError(
                f"'{node.name}' borrows '{borrow.name}', which is declared in the same block",
                borrow.location,
                hint="borrow from an enclosing block",
                source_line=source_line,
            ))

    def visit_AssignStatement(self, node: AssignStatement):
        self.visit(node.value)
        self._require_writable(node.name, node.location)

    def visit_CompoundAssignStatement(self, node: CompoundAssignStatement):
        self.visit(node.value)
        self._require_writable(node.name, node.location)

    def visit_ReadStatement(self, node: ReadStatement):
        self._require_writable(node.name, node.location)

    def visit_PrintStatement(self, node: PrintStatement):
        for char in node.text:
            if ord(char) > MAX_CELL_VALUE:
                self._report(LiteralRangeError(ord(char), node.location, self._source_line(node.location)))

    # =========================================================================
    # Expressions
    # =========================================================================

    def visit_Identifier(self, node: Identifier):
        self._resolve(node.name, node.location)

    def visit_NumberLiteral(self, node: NumberLiteral):
        if not 0 <= node.value <= MAX_CELL_VALUE:
            self._report(LiteralRangeError(node.value, node.location, self._source_line(node.location)))

    def visit_BorrowExpression(self, node: BorrowExpression):
        self._report(BorrowError(
            "borrow is only allowed as a let initializer",
            node.location,
            source_line=self._source_line(node.location),
        ))

    def visit_BinaryExpression(self, node: BinaryExpression):
        self.visit(node.left)
        self.visit(node.right)

        if node.operator not in (BinaryOperator.DIVIDE, BinaryOperator.MODULO):
            return

        try:
            divisor = fold_constant(node.right)
        except DivisionByZeroError:
            # Already reported for the inner expression
            return
        if divisor == 0:
            self._report(DivisionByZeroError(node.right.location, self._source_line(node.right.location)))
