"""
Tape IR Optimizer
=================

This module implements semantics-preserving rewrites of the IR produced
by lowering. "Semantics" means the observable I/O sequence plus the final
values of the cells still owned when the program ends; every other cell
is scratch space the optimizer may stop touching.

Design Philosophy
-----------------
1. **Safety First**: every pass is a sound data-flow argument. Missing an
   optimization is acceptable; changing program output is not.

2. **Whole-IR analysis**: unlike a peephole window, the passes see loop
   structure and iterate loop effects to a fixpoint.

3. **Replace, never patch**: a pass builds new instruction lists; the
   input IR is not modified.

Supported Optimizations
-----------------------
1. **Self-assignment / dead stores**
   - AddConstant(a, 0) is removed
   - SetZero(a) immediately after SetZero(a) is removed
   - AddConstant/SetZero on a cell that is never read again (backward
     liveness, cells live at exit count as read) is removed
2. **Redundant zero**: SetZero(a) is removed when forward analysis proves
   the cell already holds zero. Every cell starts at zero.
3. **Delta coalescing**: AddConstant(a, d1) ... AddConstant(a, d2) merge
   into one when nothing in between mentions a. A loop mentions a if a is
   its guard or appears in its body.
4. **Constant cells**: top-level values known at compile time are
   tracked from the all-zero start. Additions on known cells are folded
   and written once, just before the value is read. A loop whose guard is
   known to be zero is dropped; one whose guard is known non-zero is run
   at compile time (at most MAX_UNROLL_ITERATIONS iterations, no input,
   no unknown cells) and replaced by its outputs when that is no larger.
5. **Verification**: every cell named by the IR was issued by the
   allocator. This pass never rewrites; it raises IRInvariantError.

Input and Output are never removed. Loops are removed only by the
constant-cell pass, which keeps the outputs they would produce.

Passes run iteratively until the instruction count stops changing
(fixpoint), bounded by max_passes.

Usage
-----
>>> optimizer = IROptimizer()
>>> optimized = optimizer.optimize(instructions, lowering.facts())
>>> print(optimizer.stats)

Copyright (c) 2025-2026 Hugo Jose Pinto & Contributors
"""

import logging
from copy import deepcopy
from dataclasses import dataclass
from typing import Optional

from tapec.compiler.allocator import AllocatorFacts
from tapec.compiler.errors import IRInvariantError
from tapec.compiler.ir import (
    IRInstruction,
    AddConstant,
    SetZero,
    LoopWhileNonZero,
    Input,
    Output,
    Annotation,
    CELL_MODULUS,
    normalize_delta,
    count_instructions,
    referenced_addresses,
    written_addresses,
    dirtied_addresses,
    mentions,
)

logger = logging.getLogger(__name__)

# Upper bound on loop iterations run at compile time, across nested loops
MAX_UNROLL_ITERATIONS = 10_000


# =============================================================================
# Optimization Statistics
# =============================================================================

@dataclass
class OptimizationStats:
    """
    Statistics about optimizations performed.

    Attributes:
        self_assignments: Count of no-op adds and repeated zeroings removed
        dead_stores: Count of writes to cells never read again removed
        redundant_zeros: Count of SetZero on known-zero cells removed
        coalesced_deltas: Count of AddConstant merges
        constant_cells: Instructions saved by folding known cell values
        total_passes: Number of optimization passes run
    """
    self_assignments: int = 0
    dead_stores: int = 0
    redundant_zeros: int = 0
    coalesced_deltas: int = 0
    constant_cells: int = 0
    total_passes: int = 0

    @property
    def total_optimizations(self) -> int:
        """Total number of individual optimizations applied."""
        return (
            self.self_assignments +
            self.dead_stores +
            self.redundant_zeros +
            self.coalesced_deltas +
            self.constant_cells
        )

    def __str__(self) -> str:
        """Human-readable summary of optimizations."""
        lines = ["Optimization Statistics:"]
        if self.self_assignments:
            lines.append(f"  Self-assignments removed: {self.self_assignments}")
        if self.dead_stores:
            lines.append(f"  Dead stores removed: {self.dead_stores}")
        if self.redundant_zeros:
            lines.append(f"  Redundant zeroing removed: {self.redundant_zeros}")
        if self.coalesced_deltas:
            lines.append(f"  Deltas coalesced: {self.coalesced_deltas}")
        if self.constant_cells:
            lines.append(f"  Known-value operations folded: {self.constant_cells}")
        lines.append(f"  Total optimizations: {self.total_optimizations}")
        lines.append(f"  Total passes: {self.total_passes}")
        return "\n".join(lines)


# =============================================================================
# Known Cell Values
# =============================================================================

class KnownCells:
    """
    Cell values known at compile time, for the constant-cell pass.

    Every cell starts known at zero. `known` is the value a cell has at the
    current point of the program; `real` is the value the instructions kept
    so far have actually put there. The two differ while a change is
    pending. Cells in `unknown` depend on input or on a loop run at run time.
    """

    def __init__(self):
        self.known: dict[int, int] = {}
        self.real: dict[int, int] = {}
        self.unknown: set[int] = set()

    def copy(self) -> "KnownCells":
        other = KnownCells()
        other.known = dict(self.known)
        other.real = dict(self.real)
        other.unknown = set(self.unknown)
        return other

    def is_known(self, address: int) -> bool:
        return address not in self.unknown

    def value(self, address: int) -> int:
        return self.known.get(address, 0)

    def set_value(self, address: int, value: int) -> None:
        self.known[address] = value % CELL_MODULUS

    def forget(self, address: int) -> None:
        """Mark a cell as unknown, dropping any pending change."""
        self.unknown.add(address)
        self.known.pop(address, None)
        self.real.pop(address, None)

    def cleared(self, address: int) -> None:
        """Record that the kept instructions left a cell at zero."""
        self.unknown.discard(address)
        self.known[address] = 0
        self.real[address] = 0

    def pending(self) -> list[int]:
        """Known cells whose value has not been written yet."""
        return sorted(
            address for address, value in self.known.items()
            if value != self.real.get(address, 0)
        )

    def materialize(self, address: int) -> Optional[IRInstruction]:
        """
        Return the instruction that writes a pending value, or None.

        A cell going back to zero from far away is cleared instead of
        counted down.
        """
        if address in self.unknown:
            return None
        value = self.value(address)
        current = self.real.get(address, 0)
        if value == current:
            return None
        self.real[address] = value
        delta = normalize_delta(value - current)
        if value == 0 and abs(delta) > 3:
            return SetZero(address)
        return AddConstant(address, delta)


class _NotConstant(Exception):
    """A loop cannot be run at compile time."""


# =============================================================================
# Optimizer
# =============================================================================

class IROptimizer:
    """
    Fixpoint optimizer over tape IR.

    Attributes:
        enabled: Whether optimization is enabled
        verbose: Whether to log optimization statistics
        stats: Statistics about optimizations performed
        max_passes: Maximum number of optimization passes
        fold_cells: Whether the constant-cell pass runs
    """

    def __init__(
        self,
        enabled: bool = True,
        verbose: bool = False,
        max_passes: int = 20,
        fold_cells: bool = True,
    ):
        """
        Initialize the optimizer.

        Args:
            enabled: If False, optimize() only runs verification
            verbose: If True, log optimization statistics
            max_passes: Maximum optimization passes
            fold_cells: If False, skip the constant-cell pass
        """
        self.enabled = enabled
        self.verbose = verbose
        self.max_passes = max_passes
        self.fold_cells = fold_cells
        self._iterations = 0
        self.stats = OptimizationStats()

    def optimize(
        self,
        instructions: list[IRInstruction],
        facts: AllocatorFacts,
    ) -> list[IRInstruction]:
        """
        Optimize an IR program.

        Args:
            instructions: Lowered IR
            facts: Allocator facts (issued cells, cells live at exit)

        Returns:
            Optimized IR (a new list; the input is left unchanged)

        Raises:
            IRInvariantError: If the IR names a cell that was never issued
        """
        self.stats = OptimizationStats()
        self._verify(instructions, facts)

        if not self.enabled:
            return instructions

        result = deepcopy(instructions)
        live_at_exit = set(facts.live_at_exit)

        for _ in range(self.max_passes):
            self.stats.total_passes += 1
            size_before = count_instructions(result)

            if self.fold_cells:
                result = self._constant_cell_pass(result, live_at_exit)
            result = self._self_assignment_pass(result)
            result, _ = self._dead_store_pass(result, live_at_exit)
            result, _ = self._redundant_zero_pass(result, set())
            result = self._coalesce_pass(result)

            if count_instructions(result) == size_before:
                break

        self._verify(result, facts)

        logger.debug(
            f"Optimizer: {count_instructions(instructions)} -> {count_instructions(result)} "
            f"instructions in {self.stats.total_passes} passes"
        )
        if self.verbose and self.stats.total_optimizations > 0:
            logger.info(str(self.stats))

        return result

    # =========================================================================
    # Pass 1: Self-Assignment and Dead Stores
    # =========================================================================

    def _self_assignment_pass(self, instructions: list[IRInstruction]) -> list[IRInstruction]:
        result: list[IRInstruction] = []

        for instruction in instructions:
            if isinstance(instruction, AddConstant) and normalize_delta(instruction.delta) == 0:
                self.stats.self_assignments += 1
                continue

            if isinstance(instruction, SetZero) and result:
                previous = result[-1]
                if isinstance(previous, SetZero) and previous.target == instruction.target:
                    self.stats.self_assignments += 1
                    continue

            if isinstance(instruction, LoopWhileNonZero):
                instruction = LoopWhileNonZero(
                    instruction.guard,
                    self._self_assignment_pass(instruction.body),
                )

            result.append(instruction)

        return result

    def _dead_store_pass(
        self,
        instructions: list[IRInstruction],
        live_out: set[int],
    ) -> tuple[list[IRInstruction], set[int]]:
        """
        Remove writes to cells that are never read afterwards.

        Args:
            instructions: Instruction list to process
            live_out: Cells whose value may be read after the list ends

        Returns:
            (rewritten list, cells live at the start of the list)
        """
        live = set(live_out)
        reversed_result: list[IRInstruction] = []

        for instruction in reversed(instructions):
            if isinstance(instruction, AddConstant):
                if instruction.target not in live:
                    self.stats.dead_stores += 1
                    continue
            elif isinstance(instruction, SetZero):
                if instruction.target not in live:
                    self.stats.dead_stores += 1
                    continue
                live.discard(instruction.target)
            elif isinstance(instruction, Input):
                live.discard(instruction.target)
            elif isinstance(instruction, Output):
                live.add(instruction.target)
            elif isinstance(instruction, LoopWhileNonZero):
                loop_live = self._loop_live_in(instruction, live)
                body, _ = self._dead_store_pass(instruction.body, loop_live)
                instruction = LoopWhileNonZero(instruction.guard, body)
                live = loop_live

            reversed_result.append(instruction)

        reversed_result.reverse()
        return reversed_result, live

    def _loop_live_in(self, loop: LoopWhileNonZero, live_out: set[int]) -> set[int]:
        """Cells live before a loop: iterate the body's effect to a fixpoint."""
        live = set(live_out) | {loop.guard}
        while True:
            body_live_in = self._live_in(loop.body, live)
            updated = live | body_live_in
            if updated == live:
                return live
            live = updated

    def _live_in(self, instructions: list[IRInstruction], live_out: set[int]) -> set[int]:
        """Backward liveness without rewriting (AddConstant keeps liveness)."""
        live = set(live_out)
        for instruction in reversed(instructions):
            if isinstance(instruction, (SetZero, Input)):
                live.discard(instruction.target)
            elif isinstance(instruction, Output):
                live.add(instruction.target)
            elif isinstance(instruction, LoopWhileNonZero):
                live = self._loop_live_in(instruction, live)
        return live

    # =========================================================================
    # Pass 2: Redundant Zero Elimination
    # =========================================================================

    def _redundant_zero_pass(
        self,
        instructions: list[IRInstruction],
        dirty: set[int],
    ) -> tuple[list[IRInstruction], set[int]]:
        """
        Remove SetZero on cells proven to hold zero.

        Args:
            instructions: Instruction list to process
            dirty: Cells that may be non-zero when the list starts

        Returns:
            (rewritten list, cells that may be non-zero when it ends)
        """
        dirty = set(dirty)
        result: list[IRInstruction] = []

        for instruction in instructions:
            if isinstance(instruction, SetZero):
                if instruction.target not in dirty:
                    self.stats.redundant_zeros += 1
                    continue
                dirty.discard(instruction.target)
            elif isinstance(instruction, AddConstant):
                if normalize_delta(instruction.delta) != 0:
                    dirty.add(instruction.target)
            elif isinstance(instruction, Input):
                dirty.add(instruction.target)
            elif isinstance(instruction, LoopWhileNonZero):
                body_entry = dirty | dirtied_addresses(instruction.body) | {instruction.guard}
                body, body_exit = self._redundant_zero_pass(instruction.body, body_entry)
                instruction = LoopWhileNonZero(instruction.guard, body)
                dirty = (dirty | body_exit) - {instruction.guard}

            result.append(instruction)

        return result, dirty

    # =========================================================================
    # Pass 3: Delta Coalescing
    # =========================================================================

    def _coalesce_pass(self, instructions: list[IRInstruction]) -> list[IRInstruction]:
        result: list[IRInstruction] = []

        for instruction in instructions:
            if isinstance(instruction, LoopWhileNonZero):
                result.append(LoopWhileNonZero(instruction.guard, self._coalesce_pass(instruction.body)))
                continue

            if isinstance(instruction, AddConstant):
                index = self._find_mergeable(result, instruction.target)
                if index is not None:
                    self.stats.coalesced_deltas += 1
                    total = normalize_delta(result[index].delta + instruction.delta)
                    if total == 0:
                        del result[index]
                    else:
                        result[index] = AddConstant(instruction.target, total)
                    continue

            result.append(instruction)

        return result

    def _find_mergeable(self, result: list[IRInstruction], address: int) -> Optional[int]:
        """Index of an earlier AddConstant on address with no mention in between."""
        for index in range(len(result) - 1, -1, -1):
            candidate = result[index]
            if isinstance(candidate, AddConstant) and candidate.target == address:
                return index
            if mentions(candidate, address):
                return None
        return None

    # =========================================================================
    # Pass 4: Constant Cells
    # =========================================================================

    def _constant_cell_pass(
        self,
        instructions: list[IRInstruction],
        live_at_exit: set[int],
    ) -> list[IRInstruction]:
        """
        Fold operations on cells whose value is known at compile time.

        Only the top level is tracked; loop bodies are either run here in
        full or kept as they are. The result is never longer than the
        input: each pending value is written with at most one instruction,
        and a loop is only replaced when its outputs plus the values it
        leaves pending take no more room than the loop did.
        """
        live_after = self._live_after_each(instructions, live_at_exit)
        cells = KnownCells()
        result: list[IRInstruction] = []

        for instruction, live in zip(instructions, live_after):
            if isinstance(instruction, AddConstant):
                if cells.is_known(instruction.target):
                    value = cells.value(instruction.target) + instruction.delta
                    cells.set_value(instruction.target, value)
                    continue
            elif isinstance(instruction, SetZero):
                if cells.is_known(instruction.target):
                    cells.set_value(instruction.target, 0)
                    continue
                cells.cleared(instruction.target)
            elif isinstance(instruction, Input):
                cells.forget(instruction.target)
            elif isinstance(instruction, Output):
                self._materialize(cells, [instruction.target], result)
            elif isinstance(instruction, LoopWhileNonZero):
                self._constant_loop(instruction, cells, live, result)
                continue

            result.append(instruction)

        self._materialize(cells, sorted(live_at_exit), result)

        saved = count_instructions(instructions) - count_instructions(result)
        self.stats.constant_cells += max(0, saved)
        return result

    def _constant_loop(
        self,
        loop: LoopWhileNonZero,
        cells: KnownCells,
        live_out: set[int],
        result: list[IRInstruction],
    ) -> None:
        if cells.is_known(loop.guard):
            if cells.value(loop.guard) == 0:
                logger.debug(f"Dropped loop on &{loop.guard}: guard is zero")
                return

            trial = cells.copy()
            unrolled = self._run_at_compile_time(loop, trial)
            if unrolled is not None:
                after = len(unrolled) + len(trial.pending())
                before = count_instructions([loop]) + len(cells.pending())
                if after <= before:
                    logger.debug(
                        f"Ran loop on &{loop.guard} at compile time "
                        f"({self._iterations} iterations)"
                    )
                    result.extend(unrolled)
                    cells.known, cells.real, cells.unknown = trial.known, trial.real, trial.unknown
                    return

        self._materialize(cells, sorted(self._loop_live_in(loop, live_out)), result)
        result.append(loop)
        for address in written_addresses(loop.body):
            cells.forget(address)
        cells.cleared(loop.guard)

    def _run_at_compile_time(
        self,
        loop: LoopWhileNonZero,
        cells: KnownCells,
    ) -> Optional[list[IRInstruction]]:
        """
        Run a loop on known values.

        Returns:
            The instructions that replace the loop, or None when the loop
            reads input, touches an unknown cell or runs too long
        """
        self._iterations = 0
        emitted: list[IRInstruction] = []
        try:
            self._run_loop(loop, cells, emitted)
        except _NotConstant:
            return None
        return emitted

    def _run_loop(self, loop: LoopWhileNonZero, cells: KnownCells, emitted: list) -> None:
        if not cells.is_known(loop.guard):
            raise _NotConstant()
        while cells.value(loop.guard) != 0:
            self._iterations += 1
            if self._iterations > MAX_UNROLL_ITERATIONS:
                raise _NotConstant()
            self._run_block(loop.body, cells, emitted)

    def _run_block(self, instructions: list[IRInstruction], cells: KnownCells, emitted: list) -> None:
        for instruction in instructions:
            if isinstance(instruction, Annotation):
                continue
            if isinstance(instruction, Input):
                raise _NotConstant()
            if isinstance(instruction, LoopWhileNonZero):
                self._run_loop(instruction, cells, emitted)
                continue

            address = instruction.address
            if not cells.is_known(address):
                raise _NotConstant()
            if isinstance(instruction, AddConstant):
                cells.set_value(address, cells.value(address) + instruction.delta)
            elif isinstance(instruction, SetZero):
                cells.set_value(address, 0)
            elif isinstance(instruction, Output):
                self._materialize(cells, [address], emitted)
                emitted.append(Output(address))

    def _materialize(
        self,
        cells: KnownCells,
        addresses: list[int],
        result: list[IRInstruction],
    ) -> None:
        for address in addresses:
            instruction = cells.materialize(address)
            if instruction is not None:
                result.append(instruction)

    def _live_after_each(
        self,
        instructions: list[IRInstruction],
        live_at_exit: set[int],
    ) -> list[set[int]]:
        """Cells live just after each top-level instruction."""
        live = set(live_at_exit)
        live_after: list[set[int]] = []
        for instruction in reversed(instructions):
            live_after.append(live)
            live = self._live_in([instruction], live)
        live_after.reverse()
        return live_after

    # =========================================================================
    # Pass 5: Verification
    # =========================================================================

    def _verify(self, instructions: list[IRInstruction], facts: AllocatorFacts) -> None:
        for address in referenced_addresses(instructions):
            if not facts.is_issued(address):
                raise IRInvariantError(
                    f"IR references cell {address}, but only {facts.address_count} were issued"
                )


# =============================================================================
# Convenience Function
# =============================================================================

def optimize_ir(
    instructions: list[IRInstruction],
    facts: AllocatorFacts,
    enabled: bool = True,
    verbose: bool = False,
) -> tuple[list[IRInstruction], OptimizationStats]:
    """
    Convenience function to optimize IR.

    Returns:
        Tuple of (optimized IR, optimization statistics)
    """
    optimizer = IROptimizer(enabled=enabled, verbose=verbose)
    result = optimizer.optimize(instructions, facts)
    return result, optimizer.stats
