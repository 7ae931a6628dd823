"""
Compile-Time Constant Folding
=============================

Evaluates expressions whose value is known at compile time, using the
same 8-bit wrapping arithmetic as the target machine.

Identifiers are resolved through an optional callback so that the same
folder serves both the semantic checker (literals only) and lowering
(which also knows the values of constant bindings).
"""

from typing import Callable, Optional

from tapec.compiler.ast import (
    Expression,
    NumberLiteral,
    Identifier,
    BinaryExpression,
    UnaryExpression,
    BinaryOperator,
    UnaryOperator,
)
from tapec.compiler.errors import DivisionByZeroError

CELL_MASK = 0xFF

Resolver = Callable[[str], Optional[int]]


def fold_constant(expr: Expression, resolve: Optional[Resolver] = None) -> Optional[int]:
    """
    Fold an expression to a cell value (0-255).

    Args:
        expr: Expression to evaluate
        resolve: Returns the constant value of a name, or None if the
            name is not a compile-time constant

    Returns:
        The folded value, or None if any needed operand is unknown

    Raises:
        DivisionByZeroError: If a divisor folds to zero
    """
    if isinstance(expr, NumberLiteral):
        return expr.value & CELL_MASK

    if isinstance(expr, Identifier):
        if resolve is None:
            return None
        return resolve(expr.name)

    if isinstance(expr, UnaryExpression):
        value = fold_constant(expr.operand, resolve)
        if value is None:
            return None
        if expr.operator == UnaryOperator.NEGATE:
            return (-value) & CELL_MASK
        return int(value == 0)

    if isinstance(expr, BinaryExpression):
        return _fold_binary(expr, resolve)

    return None


def _fold_binary(expr: BinaryExpression, resolve: Optional[Resolver]) -> Optional[int]:
    op = expr.operator

    if op in (BinaryOperator.DIVIDE, BinaryOperator.MODULO):
        right = fold_constant(expr.right, resolve)
        if right == 0:
            raise DivisionByZeroError(location=expr.right.location)
        left = fold_constant(expr.left, resolve)
        if left is None or right is None:
            return None
        return left // right if op == BinaryOperator.DIVIDE else left % right

    left = fold_constant(expr.left, resolve)
    right = fold_constant(expr.right, resolve)

    # A known operand can decide a logical operator on its own
    if op == BinaryOperator.LOGICAL_AND:
        if left == 0 or right == 0:
            return 0
        if left is None or right is None:
            return None
        return 1
    if op == BinaryOperator.LOGICAL_OR:
        if (left is not None and left != 0) or (right is not None and right != 0):
            return 1
        if left is None or right is None:
            return None
        return 0

    if left is None or right is None:
        return None

    if op == BinaryOperator.ADD:
        return (left + right) & CELL_MASK
    if op == BinaryOperator.SUBTRACT:
        return (left - right) & CELL_MASK
    if op == BinaryOperator.MULTIPLY:
        return (left * right) & CELL_MASK
    if op == BinaryOperator.EQUAL:
        return int(left == right)
    if op == BinaryOperator.NOT_EQUAL:
        return int(left != right)
    if op == BinaryOperator.LESS:
        return int(left < right)
    if op == BinaryOperator.GREATER:
        return int(left > right)
    if op == BinaryOperator.LESS_EQ:
        return int(left <= right)
    if op == BinaryOperator.GREATER_EQ:
        return int(left >= right)

    return None
