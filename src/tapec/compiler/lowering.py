"""
Tape IR Lowering
================

This module walks a checked Tape AST and produces the abstract tape
operations defined in tapec.compiler.ir.

Variable Placement
------------------
Every variable becomes one of three bindings:

- ConstantBinding: the initializer folds to a constant and the name is
  never written later in its block. Reads are inlined; no cell is used.
- OwnedBinding: a cell reserved in the block's allocator scope.
- BorrowedBinding: '&x' and '&mut x' reuse x's cell.

Primitives
----------
The target machine can only loop on a cell until it is zero, so every
operator is built from two loops:

    move_add(src, targets)    while src { src -= 1; target += factor; ... }
    copy_add(src, targets)    move_add through a temporary, then move back

Multiplication is repeated copy_add, comparisons count two copies down
together, and division/modulo repeatedly subtract on top of '<='.

Temporaries
-----------
Temporaries are owned by a scope that lives exactly as long as the
expression or statement needing them. The allocator's clean set tells
lowering whether a reused cell still needs zeroing before use.

Loops and Clean Tracking
------------------------
A loop body may run many times, so lowering is conservative around
loops:

- cells owned outside the loop are treated as dirty inside it
- cells that were clean at loop entry and are released dirty inside the
  body are zeroed again at the end of the body
- after the loop only cells that were clean at entry and are still clean
  at the end of the body (or untouched by it) stay clean, plus the guard
"""

import logging
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from tapec.compiler.ast import (
    ASTVisitor,
    Program,
    Statement,
    Expression,
    Block,
    LetStatement,
    AssignStatement,
    CompoundAssignStatement,
    ReadStatement,
    WriteStatement,
    PrintStatement,
    WhileStatement,
    IfStatement,
    NumberLiteral,
    Identifier,
    BinaryExpression,
    UnaryExpression,
    BorrowExpression,
    BinaryOperator,
    UnaryOperator,
    expression_to_string,
)
from tapec.compiler.allocator import AddressAllocator, AllocatorFacts
from tapec.compiler.bindings import (
    ConstantBinding,
    OwnedBinding,
    BorrowedBinding,
    Environment,
)
from tapec.compiler.errors import InternalCompilerError, InvalidScopeNestingError
from tapec.compiler.folding import fold_constant
from tapec.compiler.ir import (
    IRInstruction,
    AddConstant,
    SetZero,
    LoopWhileNonZero,
    Input,
    Output,
    Annotation,
    normalize_delta,
    written_addresses,
    count_instructions,
)

logger = logging.getLogger(__name__)

# (address, factor) pairs receiving factor * source in move_add/copy_add
Targets = list[tuple[int, int]]


# =============================================================================
# Mutation Scanner
# =============================================================================

class _MutationScanner(ASTVisitor):
    """
    Finds any statement that may write a name.

    Shadowing is ignored, so a write to an inner variable of the same
    name also counts. That only costs a missed constant binding.
    """

    def __init__(self, name: str):
        self.name = name
        self.found = False

    def visit_AssignStatement(self, node: AssignStatement):
        if node.name == self.name:
            self.found = True
        self.generic_visit(node)

    def visit_CompoundAssignStatement(self, node: CompoundAssignStatement):
        if node.name == self.name:
            self.found = True
        self.generic_visit(node)

    def visit_ReadStatement(self, node: ReadStatement):
        if node.name == self.name:
            self.found = True

    def visit_BorrowExpression(self, node: BorrowExpression):
        if node.mutable and node.name == self.name:
            self.found = True


def is_written_later(name: str, statements: list[Statement]) -> bool:
    """Return True if any of the statements may write the named variable."""
    scanner = _MutationScanner(name)
    for stmt in statements:
        scanner.visit(stmt)
        if scanner.found:
            return True
    return False


# =============================================================================
# Lowering
# =============================================================================

class IRLowering:
    """
    Lowers a checked Program to IR.

    Usage:
        lowering = IRLowering(debug=True, source_lines=source.splitlines())
        instructions = lowering.lower(program)
        facts = lowering.facts()

    Attributes:
        allocator: Address allocator (inspected by tests and the driver)
        env: Binding environment
        warnings: Warnings produced while lowering
    """

    def __init__(self, debug: bool = False, source_lines: Optional[list[str]] = None):
        self.debug = debug
        self.source_lines = source_lines or []
        self.allocator = AddressAllocator()
        self.env = Environment()
        self.warnings: list[str] = []
        self._code: list[IRInstruction] = []

    def lower(self, program: Program) -> list[IRInstruction]:
        """
        Lower a whole program.

        Top-level statements run in the allocator's root scope, so
        top-level variables stay live until the program ends.

        Returns:
            The IR instruction list

        Raises:
            InternalCompilerError: If the tree was not checked, or the
                lowering left a scope open
        """
        self._code = []
        self._lower_statements(program.statements)

        if self.allocator.scope_depth != 0 or self.env.depth != 0:
            raise InvalidScopeNestingError(
                f"{self.allocator.scope_depth} scope(s) still open after lowering"
            )

        logger.debug(
            f"Lowered {len(program.statements)} statements into "
            f"{count_instructions(self._code)} instructions using "
            f"{self.allocator.high_water_mark} cells"
        )
        return self._code

    def facts(self) -> AllocatorFacts:
        """Return the allocator facts the optimizer and emitter need."""
        return self.allocator.facts()

    # =========================================================================
    # Emission and Scopes
    # =========================================================================

    def _emit(self, instruction: IRInstruction) -> None:
        """Append an instruction and keep the clean set current."""
        if isinstance(instruction, AddConstant):
            if normalize_delta(instruction.delta) == 0:
                return
            self.allocator.mark_dirty(instruction.target)
        elif isinstance(instruction, SetZero):
            self.allocator.mark_clean(instruction.target)
        elif isinstance(instruction, Input):
            self.allocator.mark_dirty(instruction.target)
        self._code.append(instruction)

    def _add(self, address: int, delta: int) -> None:
        delta = normalize_delta(delta)
        if delta:
            self._emit(AddConstant(address, delta))

    @contextmanager
    def _scope(self) -> Iterator[None]:
        """Allocator scope for temporaries."""
        handle = self.allocator.enter_scope()
        yield
        self.allocator.exit_scope(handle)

    def _allocate_zeroed(self) -> int:
        """Allocate a cell in the current scope, guaranteed to hold zero."""
        address = self.allocator.allocate_owned()
        if not self.allocator.is_clean(address):
            self._emit(SetZero(address))
        return address

    def _annotate(self, stmt: Statement) -> None:
        line = stmt.location.line
        if 0 < line <= len(self.source_lines):
            text = self.source_lines[line - 1].strip()
        else:
            text = type(stmt).__name__
        self._emit(Annotation(f"line {line}: {text}"))

    # =========================================================================
    # Bindings
    # =========================================================================

    def _constant_value(self, name: str) -> Optional[int]:
        binding = self.env.lookup(name)
        if isinstance(binding, ConstantBinding):
            return binding.value
        return None

    def _fold(self, expr: Expression) -> Optional[int]:
        return fold_constant(expr, self._constant_value)

    def _address_of(self, name: str, stmt: Statement) -> int:
        """Return the cell of a variable that is about to be written."""
        binding = self.env.lookup(name, stmt.location)
        if binding.address is None:
            raise InternalCompilerError(f"write to constant binding '{name}'", stmt.location)
        return binding.address

    def _reads(self, expr: Expression) -> set[int]:
        """Return the cells an expression reads."""
        if isinstance(expr, Identifier):
            address = self.env.lookup(expr.name, expr.location).address
            return set() if address is None else {address}
        if isinstance(expr, BinaryExpression):
            return self._reads(expr.left) | self._reads(expr.right)
        if isinstance(expr, UnaryExpression):
            return self._reads(expr.operand)
        return set()

    # =========================================================================
    # Statements
    # =========================================================================

    def _lower_statements(self, statements: list[Statement]) -> None:
        for index, stmt in enumerate(statements):
            self._lower_statement(stmt, statements[index + 1:])

    def _lower_block(self, block: Block) -> None:
        self.env.push()
        with self._scope():
            self._lower_statements(block.statements)
        self.env.pop()

    def _lower_statement(self, stmt: Statement, following: list[Statement]) -> None:
        """
        Lower one statement.

        Args:
            stmt: Statement to lower
            following: Statements after it in the same block
        """
        if isinstance(stmt, Block):
            self._lower_block(stmt)
            return

        if self.debug:
            self._annotate(stmt)

        if isinstance(stmt, LetStatement):
            self._lower_let(stmt, following)
            return

        with self._scope():
            if isinstance(stmt, AssignStatement):
                self._lower_assign(stmt)
            elif isinstance(stmt, CompoundAssignStatement):
                self._lower_compound_assign(stmt)
            elif isinstance(stmt, ReadStatement):
                self._emit(Input(self._address_of(stmt.name, stmt)))
            elif isinstance(stmt, WriteStatement):
                self._lower_write(stmt)
            elif isinstance(stmt, PrintStatement):
                self._lower_print(stmt)
            elif isinstance(stmt, WhileStatement):
                self._lower_while(stmt)
            elif isinstance(stmt, IfStatement):
                self._lower_if(stmt)
            else:
                raise InternalCompilerError(
                    f"cannot lower {type(stmt).__name__}", stmt.location
                )

    def _lower_let(self, stmt: LetStatement, following: list[Statement]) -> None:
        initializer = stmt.initializer

        if isinstance(initializer, BorrowExpression):
            source = self.env.lookup(initializer.name, initializer.location)
            if isinstance(source, ConstantBinding):
                self.env.define(stmt.name, source)
            else:
                address = self.allocator.bind_borrowed(source.address)
                self.env.define(
                    stmt.name,
                    BorrowedBinding(address, initializer.mutable, initializer.name),
                )
            return

        value = self._fold(initializer)
        if value is not None and not is_written_later(stmt.name, following):
            self.env.define(stmt.name, ConstantBinding(value))
            return

        address = self._allocate_zeroed()
        with self._scope():
            self._accumulate(initializer, address, 1)
        self.env.define(stmt.name, OwnedBinding(address, stmt.mutable))

    def _lower_assign(self, stmt: AssignStatement) -> None:
        dest = self._address_of(stmt.name, stmt)
        value = stmt.value

        if isinstance(value, Identifier):
            if self.env.lookup(value.name, value.location).address == dest:
                return

        if dest in self._reads(value):
            temp = self._evaluate(value)
            self._emit(SetZero(dest))
            self._move_add(temp, [(dest, 1)])
            return

        self._emit(SetZero(dest))
        self._accumulate(value, dest, 1)

    def _lower_compound_assign(self, stmt: CompoundAssignStatement) -> None:
        dest = self._address_of(stmt.name, stmt)
        factor = 1 if stmt.operator == BinaryOperator.ADD else -1

        if dest in self._reads(stmt.value):
            temp = self._evaluate(stmt.value)
            self._move_add(temp, [(dest, factor)])
        else:
            self._accumulate(stmt.value, dest, factor)

    def _lower_write(self, stmt: WriteStatement) -> None:
        if isinstance(stmt.value, Identifier):
            address = self.env.lookup(stmt.value.name, stmt.value.location).address
            if address is not None:
                self._emit(Output(address))
                return
        self._emit(Output(self._evaluate(stmt.value)))

    def _lower_print(self, stmt: PrintStatement) -> None:
        if not stmt.text:
            return
        cell = self._allocate_zeroed()
        current = 0
        for char in stmt.text:
            self._add(cell, ord(char) - current)
            self._emit(Output(cell))
            current = ord(char)

    def _lower_while(self, stmt: WhileStatement) -> None:
        condition = stmt.condition
        value = self._fold(condition)

        if value == 0:
            return

        if value is not None:
            message = f"{stmt.location}: warning: loop condition is always true"
            logger.warning(message)
            self.warnings.append(message)
            guard = self._allocate_zeroed()
            self._add(guard, 1)
            self._loop(guard, lambda: self._lower_block(stmt.body))
            return

        if isinstance(condition, Identifier):
            address = self.env.lookup(condition.name, condition.location).address
            self._loop(address, lambda: self._lower_block(stmt.body))
            return

        guard = self._evaluate(condition)

        def body():
            self._lower_block(stmt.body)
            self._emit(SetZero(guard))
            self._evaluate_into(condition, guard)

        self._loop(guard, body)

    def _lower_if(self, stmt: IfStatement) -> None:
        value = self._fold(stmt.condition)

        if value is not None:
            if value:
                self._lower_block(stmt.then_branch)
            elif stmt.else_branch is not None:
                self._lower_statement(stmt.else_branch, [])
            return

        guard = self._evaluate(stmt.condition)
        else_fn = None
        if stmt.else_branch is not None:
            else_fn = lambda: self._lower_statement(stmt.else_branch, [])
        self._branch(guard, lambda: self._lower_block(stmt.then_branch), else_fn)

    # =========================================================================
    # Control Flow Primitives
    # =========================================================================

    def _loop(self, guard: int, build_body: Callable[[], None], runs_once: bool = False) -> None:
        """
        Emit LoopWhileNonZero(guard) with a body built by build_body.

        Args:
            guard: Loop guard cell
            build_body: Emits the body instructions
            runs_once: True if the body always zeroes the guard, so clean
                state at body entry equals clean state at loop entry
        """
        allocator = self.allocator
        entry_clean = allocator.clean_snapshot()
        entry_high_water = allocator.high_water_mark

        if not runs_once:
            for address in allocator.owned_addresses():
                allocator.mark_dirty(address)

        saved = self._code
        self._code = []
        with self._scope():
            build_body()

        if not runs_once:
            for address in range(allocator.high_water_mark):
                was_clean = address in entry_clean or address >= entry_high_water
                if was_clean and allocator.is_free(address) and not allocator.is_clean(address):
                    self._emit(SetZero(address))

        body = self._code
        self._code = saved

        end_clean = allocator.clean_snapshot()
        written = written_addresses(body)
        after_clean = {
            address for address in range(allocator.high_water_mark)
            if address in end_clean and (address in entry_clean or address >= entry_high_water)
        }
        after_clean |= {address for address in entry_clean if address not in written}
        after_clean.add(guard)

        self._code.append(LoopWhileNonZero(guard, body))
        allocator.restore_clean(after_clean)

    def _run_once(self, guard: int, build_body: Callable[[], None]) -> None:
        """Loop on guard exactly once if it is non-zero, consuming it."""
        def body():
            self._emit(SetZero(guard))
            build_body()

        self._loop(guard, body, runs_once=True)

    def _branch(
        self,
        guard: int,
        then_fn: Callable[[], None],
        else_fn: Optional[Callable[[], None]] = None,
    ) -> None:
        """
        Run then_fn if guard is non-zero, else else_fn. Consumes guard.
        """
        if else_fn is None:
            self._run_once(guard, then_fn)
            return

        flag = self._allocate_zeroed()
        self._add(flag, 1)

        def then_body():
            then_fn()
            self._add(flag, -1)

        def else_body():
            self._add(flag, -1)
            else_fn()

        self._run_once(guard, then_body)
        self._loop(flag, else_body, runs_once=True)

    def _move_add(self, source: int, targets: Targets) -> None:
        """Add factor * source to each target, leaving source zero."""
        body: list[IRInstruction] = [AddConstant(source, -1)]
        for address, factor in targets:
            delta = normalize_delta(factor)
            if delta:
                body.append(AddConstant(address, delta))
                self.allocator.mark_dirty(address)
        self._code.append(LoopWhileNonZero(source, body))
        self.allocator.mark_clean(source)

    def _copy_add(self, source: int, targets: Targets) -> None:
        """Add factor * source to each target, preserving source."""
        if not any(normalize_delta(factor) for _, factor in targets):
            return
        with self._scope():
            temp = self._allocate_zeroed()
            self._move_add(source, targets + [(temp, 1)])
            self._move_add(temp, [(source, 1)])

    # =========================================================================
    # Expressions
    # =========================================================================

    def _is_linear(self, expr: Expression) -> bool:
        """True if _accumulate handles expr without a result temporary."""
        if self._fold(expr) is not None:
            return True
        if isinstance(expr, (NumberLiteral, Identifier)):
            return True
        if isinstance(expr, UnaryExpression):
            return expr.operator == UnaryOperator.NEGATE
        if isinstance(expr, BinaryExpression):
            if expr.operator in (BinaryOperator.ADD, BinaryOperator.SUBTRACT):
                return True
            if expr.operator == BinaryOperator.MULTIPLY:
                return self._fold(expr.left) is not None or self._fold(expr.right) is not None
        return False

    def _accumulate(self, expr: Expression, dest: int, factor: int) -> None:
        """
        Add factor * expr into dest.

        expr must not read dest.
        """
        value = self._fold(expr)
        if value is not None:
            self._add(dest, value * factor)
            return

        if isinstance(expr, Identifier):
            address = self.env.lookup(expr.name, expr.location).address
            self._copy_add(address, [(dest, factor)])
            return

        if isinstance(expr, UnaryExpression) and expr.operator == UnaryOperator.NEGATE:
            self._accumulate(expr.operand, dest, -factor)
            return

        if isinstance(expr, BinaryExpression):
            if expr.operator == BinaryOperator.ADD:
                self._accumulate(expr.left, dest, factor)
                self._accumulate(expr.right, dest, factor)
                return
            if expr.operator == BinaryOperator.SUBTRACT:
                self._accumulate(expr.left, dest, factor)
                self._accumulate(expr.right, dest, -factor)
                return
            if expr.operator == BinaryOperator.MULTIPLY:
                left = self._fold(expr.left)
                if left is not None:
                    self._accumulate(expr.right, dest, factor * left)
                    return
                right = self._fold(expr.right)
                if right is not None:
                    self._accumulate(expr.left, dest, factor * right)
                    return

        with self._scope():
            temp = self._evaluate(expr)
            self._move_add(temp, [(dest, factor)])

    def _evaluate(self, expr: Expression) -> int:
        """Evaluate expr into a fresh temporary of the current scope."""
        temp = self._allocate_zeroed()
        self._evaluate_into(expr, temp)
        return temp

    def _operand(self, expr: Expression) -> int:
        """Return a cell holding expr's value that may be read but not changed."""
        if isinstance(expr, Identifier):
            address = self.env.lookup(expr.name, expr.location).address
            if address is not None:
                return address
        return self._evaluate(expr)

    def _evaluate_into(self, expr: Expression, dest: int) -> None:
        """
        Compute expr into dest.

        dest must hold zero and must not be read by expr.
        """
        if self._is_linear(expr):
            self._accumulate(expr, dest, 1)
            return

        if isinstance(expr, UnaryExpression):
            # Only LOGICAL_NOT reaches here
            with self._scope():
                temp = self._evaluate(expr.operand)
                self._is_zero(temp, dest)
            return

        if not isinstance(expr, BinaryExpression):
            raise InternalCompilerError(f"cannot evaluate {expression_to_string(expr)}", expr.location)

        op = expr.operator
        with self._scope():
            if op == BinaryOperator.MULTIPLY:
                self._multiply(expr, dest)
            elif op in (BinaryOperator.DIVIDE, BinaryOperator.MODULO):
                self._divide(expr, dest, remainder=op == BinaryOperator.MODULO)
            elif op in (BinaryOperator.EQUAL, BinaryOperator.NOT_EQUAL):
                temp = self._allocate_zeroed()
                self._accumulate(expr.left, temp, 1)
                self._accumulate(expr.right, temp, -1)
                if op == BinaryOperator.EQUAL:
                    self._is_zero(temp, dest)
                else:
                    self._run_once(temp, lambda: self._add(dest, 1))
            elif op in (
                BinaryOperator.LESS,
                BinaryOperator.GREATER,
                BinaryOperator.LESS_EQ,
                BinaryOperator.GREATER_EQ,
            ):
                self._compare(expr, dest)
            elif op == BinaryOperator.LOGICAL_AND:
                self._logical_and(expr, dest)
            elif op == BinaryOperator.LOGICAL_OR:
                self._logical_or(expr, dest)
            else:
                raise InternalCompilerError(f"unknown operator {op.name}", expr.location)

    def _is_zero(self, temp: int, dest: int) -> None:
        """dest += (temp == 0). Consumes temp."""
        self._add(dest, 1)
        self._run_once(temp, lambda: self._add(dest, -1))

    def _zero_flag(self, source: int) -> int:
        """Return a new temporary holding (source == 0); source is preserved."""
        flag = self._allocate_zeroed()
        temp = self._allocate_zeroed()
        self._copy_add(source, [(temp, 1)])
        self._is_zero(temp, flag)
        return flag

    def _multiply(self, expr: BinaryExpression, dest: int) -> None:
        counter = self._evaluate(expr.left)
        factor = self._operand(expr.right)

        def body():
            self._add(counter, -1)
            self._copy_add(factor, [(dest, 1)])

        self._loop(counter, body)

    def _divide(self, expr: BinaryExpression, dest: int, remainder: bool) -> None:
        """
        Unsigned division by repeated subtraction.

        A divisor of zero at run time never terminates.
        """
        rest = self._evaluate(expr.left)
        divisor = self._operand(expr.right)
        running = self._allocate_zeroed()
        self._add(running, 1)

        def subtract():
            self._copy_add(divisor, [(rest, -1)])
            if not remainder:
                self._add(dest, 1)

        def body():
            fits = self._allocate_zeroed()
            self._less_equal(divisor, rest, fits)
            self._branch(fits, subtract, lambda: self._add(running, -1))

        self._loop(running, body)

        if remainder:
            self._move_add(rest, [(dest, 1)])

    def _compare(self, expr: BinaryExpression, dest: int) -> None:
        left = self._operand(expr.left)
        right = self._operand(expr.right)
        op = expr.operator

        if op == BinaryOperator.LESS_EQ:
            self._less_equal(left, right, dest)
        elif op == BinaryOperator.GREATER_EQ:
            self._less_equal(right, left, dest)
        else:
            # a < b is !(b <= a), a > b is !(a <= b)
            temp = self._allocate_zeroed()
            if op == BinaryOperator.LESS:
                self._less_equal(right, left, temp)
            else:
                self._less_equal(left, right, temp)
            self._add(dest, 1)
            self._move_add(temp, [(dest, -1)])

    def _less_equal(self, left: int, right: int, dest: int) -> None:
        """
        dest += (left <= right), unsigned. Both operands are preserved.

        Counts copies of both operands down together; whichever reaches
        zero first decides the result.
        """
        with self._scope():
            x = self._allocate_zeroed()
            self._copy_add(left, [(x, 1)])
            y = self._allocate_zeroed()
            self._copy_add(right, [(y, 1)])
            running = self._allocate_zeroed()
            self._add(running, 1)

            def x_done():
                self._add(dest, 1)
                self._add(running, -1)

            def y_done():
                self._add(running, -1)

            def count_down():
                self._add(x, -1)
                self._add(y, -1)

            def x_remaining():
                self._branch(self._zero_flag(y), y_done, count_down)

            def body():
                self._branch(self._zero_flag(x), x_done, x_remaining)

            self._loop(running, body)

    def _logical_and(self, expr: BinaryExpression, dest: int) -> None:
        left = self._evaluate(expr.left)

        def right_side():
            right = self._evaluate(expr.right)
            self._run_once(right, lambda: self._add(dest, 1))

        self._run_once(left, right_side)

    def _logical_or(self, expr: BinaryExpression, dest: int) -> None:
        pending = self._allocate_zeroed()
        self._add(pending, 1)
        left = self._evaluate(expr.left)

        def left_true():
            self._add(dest, 1)
            self._add(pending, -1)

        def right_side():
            right = self._evaluate(expr.right)
            self._run_once(right, lambda: self._add(dest, 1))

        self._run_once(left, left_true)
        self._run_once(pending, right_side)
