# =============================================================================
# test_optimizer.py - IR Optimizer Tests
# =============================================================================
# Tests for the fixpoint IR optimizer.
#
# The optimizer rewrites lowered IR without changing what the program
# does. These tests verify:
#   - Each pass on hand-written IR
#   - Loops are treated conservatively
#   - Optimization can be disabled (verification still runs)
#   - Statistics are tracked correctly
#   - Known cell values are folded and known loops run at compile time
#   - Output and live cells are preserved on compiled programs
#   - A second run finds nothing left to do
# =============================================================================

import pytest
from tapec.compiler import TapeCompiler, CompilerOptions
from tapec.compiler.allocator import AllocatorFacts
from tapec.compiler.errors import IRInvariantError
from tapec.compiler.optimizer import IROptimizer, OptimizationStats, optimize_ir
from tapec.compiler.simulator import IRSimulator
from tapec.compiler.ir import (
    AddConstant,
    SetZero,
    LoopWhileNonZero,
    Input,
    Output,
    walk,
)


# =============================================================================
# Helper Functions
# =============================================================================

def facts(count: int, live=()) -> AllocatorFacts:
    return AllocatorFacts(address_count=count, live_at_exit=frozenset(live))


def optimize(instructions, count: int = 4, live=()):
    """Run the rewriting passes on hand-written IR; returns (result, stats)."""
    optimizer = IROptimizer(fold_cells=False)
    result = optimizer.optimize(instructions, facts(count, live))
    return result, optimizer.stats


def fold(instructions, count: int = 4, live=()):
    """Optimize hand-written IR with the constant-cell pass on."""
    optimizer = IROptimizer()
    result = optimizer.optimize(instructions, facts(count, live))
    return result, optimizer.stats


def compile_source(source: str):
    return TapeCompiler(CompilerOptions()).compile_source(source, "<test>")


PROGRAMS = [
    ("let mut x = 5; write(x);", b""),
    ("let mut x = 3; x = x; x += 2; write(x);", b""),
    ('let mut n = 3; while (n) { print("ab"); n -= 1; }', b""),
    ("let mut a = 0; read(a); let mut b = 0; read(b); write(a * b); write(a / b); write(a % b);", b"\x11\x05"),
    ("let mut c = 0; read(c); while (c) { write(c - 32); read(c); }", b"hey"),
    (
        "let mut a = 0; read(a);\n"
        'if (a < 10) { print("small"); } else if (a == 10) { print("ten"); } else { print("big"); }',
        b"\x0a",
    ),
    (
        "let mut i = 0; let mut total = 0;\n"
        "while (i < 5) { { let sq = i * i; total += sq; } i += 1; }\n"
        "write(total);",
        b"",
    ),
    ("let mut a = 0; read(a); write(a && !(a == 3) || a > 200);", b"\x03"),
    ("let mut x = 3; while (x) { x -= 1; }", b""),
    ("let mut i = 0; let mut t = 0; while (i < 4) { t += i; i += 1; } write(t);", b""),
    ("let mut n = 200; while (n) { n += 1; } write(n + 1);", b""),
    (
        "let mut i = 50; let mut c = 0;\n"
        "while (i) { let mut j = 250; while (j) { j -= 1; c += 1; } i -= 1; }\n"
        "write(c);",
        b"",
    ),
]


# =============================================================================
# Self-Assignment Pass
# =============================================================================

class TestSelfAssignment:
    """Additions of zero and repeated clears."""

    def test_zero_delta_removed(self):
        result, stats = optimize([AddConstant(0, 0), AddConstant(0, 256), Output(0)])
        assert result == [Output(0)]
        assert stats.self_assignments == 2

    def test_repeated_clear_removed(self):
        instructions = [Input(0), SetZero(0), SetZero(0), AddConstant(0, 1), Output(0)]
        result, stats = optimize(instructions)
        assert stats.self_assignments == 1
        assert result == [Input(0), SetZero(0), AddConstant(0, 1), Output(0)]


# =============================================================================
# Dead Store Pass
# =============================================================================

class TestDeadStores:
    """Writes that are never read are removed."""

    def test_unread_cell_removed(self):
        result, stats = optimize([AddConstant(0, 5), AddConstant(1, 3), Output(1)])
        assert result == [AddConstant(1, 3), Output(1)]
        assert stats.dead_stores == 1

    def test_live_at_exit_kept(self):
        result, _ = optimize([AddConstant(0, 5)], live={0})
        assert result == [AddConstant(0, 5)]

    def test_input_is_never_removed(self):
        result, _ = optimize([Input(0)])
        assert result == [Input(0)]

    def test_guard_updates_kept(self):
        loop = LoopWhileNonZero(0, [AddConstant(0, -1), AddConstant(1, 2)])
        result, _ = optimize([AddConstant(0, 3), loop, Output(1)])
        assert result == [AddConstant(0, 3), loop, Output(1)]

    def test_store_read_on_next_iteration_kept(self):
        """A clear at the end of a body feeds the next iteration."""
        body = [AddConstant(1, 5), Output(1), SetZero(1), AddConstant(0, -1)]
        instructions = [AddConstant(0, 2), LoopWhileNonZero(0, body)]
        result, _ = optimize(instructions)
        assert SetZero(1) in result[1].body
        assert IRSimulator().run(result).output == b"\x05\x05"


# =============================================================================
# Redundant Zero Pass
# =============================================================================

class TestRedundantZero:
    """Clears of cells already known to be zero."""

    def test_clear_at_start_removed(self):
        result, stats = optimize([SetZero(0), AddConstant(0, 2), Output(0)])
        assert result == [AddConstant(0, 2), Output(0)]
        assert stats.redundant_zeros == 1

    def test_guard_is_zero_after_loop(self):
        loop = LoopWhileNonZero(0, [AddConstant(0, -1), AddConstant(1, 1)])
        instructions = [Input(0), loop, SetZero(0), AddConstant(0, 7), Output(0), Output(1)]
        result, _ = optimize(instructions)
        assert SetZero(0) not in result

    def test_clear_inside_loop_kept(self):
        """A cell dirtied by the body may be non-zero on loop entry."""
        body = [SetZero(1), AddConstant(1, 3), Output(1), AddConstant(0, -1)]
        instructions = [AddConstant(0, 2), LoopWhileNonZero(0, body)]
        result, _ = optimize(instructions)
        assert SetZero(1) in list(walk(result))
        assert IRSimulator().run(result).output == b"\x03\x03"


# =============================================================================
# Coalescing Pass
# =============================================================================

class TestCoalesce:
    """Adjacent additions to one cell are merged."""

    def test_merge_adjacent(self):
        result, stats = optimize([AddConstant(0, 2), AddConstant(0, 3), Output(0)])
        assert result == [AddConstant(0, 5), Output(0)]
        assert stats.coalesced_deltas == 1

    def test_merge_past_other_cells(self):
        instructions = [
            AddConstant(0, 2),
            AddConstant(1, 1),
            AddConstant(0, 3),
            Output(0),
            Output(1),
        ]
        result, _ = optimize(instructions)
        assert result == [AddConstant(0, 5), AddConstant(1, 1), Output(0), Output(1)]

    def test_cancelling_deltas_vanish(self):
        result, _ = optimize([Input(0), AddConstant(0, 2), AddConstant(0, -2), Output(0)])
        assert result == [Input(0), Output(0)]

    def test_no_merge_across_use(self):
        instructions = [AddConstant(0, 1), Output(0), AddConstant(0, 1), Output(0)]
        result, _ = optimize(instructions)
        assert result == instructions

    def test_no_merge_across_loop(self):
        loop = LoopWhileNonZero(1, [AddConstant(0, 1), AddConstant(1, -1)])
        instructions = [AddConstant(0, 1), Input(1), loop, AddConstant(0, 1), Output(0)]
        result, _ = optimize(instructions)
        assert result == instructions

    def test_wrapping_merge(self):
        result, _ = optimize([AddConstant(0, 200), AddConstant(0, 100), Output(0)])
        assert result == [AddConstant(0, 44), Output(0)]


# =============================================================================
# Constant Cell Pass
# =============================================================================

class TestConstantCells:
    """Values known at compile time are folded."""

    def test_known_updates_folded(self):
        instructions = [AddConstant(0, 2), SetZero(0), AddConstant(0, 5), AddConstant(1, 1), Output(0)]
        result, stats = fold(instructions)
        assert result == [AddConstant(0, 5), Output(0)]
        assert stats.constant_cells == 3

    def test_known_loop_run_at_compile_time(self):
        loop = LoopWhileNonZero(0, [AddConstant(0, -1), AddConstant(1, 2)])
        result, _ = fold([AddConstant(0, 3), loop, Output(1)])
        assert result == [AddConstant(1, 6), Output(1)]

    def test_outputs_of_known_loop_kept(self):
        loop = LoopWhileNonZero(0, [AddConstant(1, 1), Output(1), AddConstant(0, -1)])
        instructions = [AddConstant(0, 2), loop]
        result, _ = fold(instructions)
        assert result == [AddConstant(1, 1), Output(1), AddConstant(1, 1), Output(1)]
        assert IRSimulator().run(result).output == IRSimulator().run(instructions).output

    def test_zero_guard_loop_dropped(self):
        loop = LoopWhileNonZero(0, [Output(1), AddConstant(0, -1)])
        result, _ = fold([Input(1), loop, Output(1)])
        assert result == [Input(1), Output(1)]

    def test_unknown_guard_keeps_loop(self):
        loop = LoopWhileNonZero(0, [AddConstant(0, -1), Output(1)])
        result, _ = fold([AddConstant(1, 5), Input(0), loop])
        assert result == [Input(0), AddConstant(1, 5), loop]
        assert IRSimulator().run(result, b"\x02").output == b"\x05\x05"

    def test_loop_reading_input_kept(self):
        loop = LoopWhileNonZero(0, [Input(1), Output(1), AddConstant(0, -1)])
        result, _ = fold([AddConstant(0, 2), loop])
        assert result == [AddConstant(0, 2), loop]

    def test_endless_loop_kept(self):
        """Iteration stops at the bound and the loop is left to run."""
        loop = LoopWhileNonZero(0, [])
        result, _ = fold([AddConstant(0, 1), loop])
        assert result == [AddConstant(0, 1), loop]

    def test_input_makes_cell_unknown(self):
        instructions = [AddConstant(0, 4), Input(0), AddConstant(0, 1), Output(0)]
        result, _ = fold(instructions)
        assert result == [Input(0), AddConstant(0, 1), Output(0)]

    def test_live_cell_written_at_exit(self):
        result, _ = fold([AddConstant(0, 50), Output(0), AddConstant(0, -50)], live={0})
        assert result == [AddConstant(0, 50), Output(0), SetZero(0)]

    def test_can_be_turned_off(self):
        loop = LoopWhileNonZero(0, [AddConstant(0, -1)])
        optimizer = IROptimizer(fold_cells=False)
        result = optimizer.optimize([AddConstant(0, 3), loop], facts(1, live={0}))
        assert result == [AddConstant(0, 3), loop]
        assert optimizer.stats.constant_cells == 0

    def test_stats_line(self):
        stats = OptimizationStats(constant_cells=4)
        assert stats.total_optimizations == 4
        assert "Known-value operations folded: 4" in str(stats)


# =============================================================================
# Configuration and Verification
# =============================================================================

class TestConfiguration:
    """Disabled mode, verification, statistics."""

    def test_disabled_returns_input(self):
        instructions = [AddConstant(0, 0), AddConstant(1, 1)]
        optimizer = IROptimizer(enabled=False)
        assert optimizer.optimize(instructions, facts(2)) is instructions
        assert optimizer.stats.total_optimizations == 0

    def test_verification_runs_when_disabled(self):
        with pytest.raises(IRInvariantError):
            IROptimizer(enabled=False).optimize([AddConstant(5, 1)], facts(2))

    def test_unissued_address_rejected(self):
        with pytest.raises(IRInvariantError, match="cell 3"):
            optimize([Output(3)], count=3)

    def test_input_not_modified(self):
        loop = LoopWhileNonZero(0, [AddConstant(0, -1), AddConstant(0, 0)])
        instructions = [AddConstant(0, 1), AddConstant(0, 1), loop]
        optimize(instructions, live={0})
        assert instructions[0] == AddConstant(0, 1)
        assert len(loop.body) == 2

    def test_max_passes(self):
        optimizer = IROptimizer(max_passes=1)
        optimizer.optimize([AddConstant(0, 1), AddConstant(0, 1), Output(0)], facts(1))
        assert optimizer.stats.total_passes == 1

    def test_stats_summary(self):
        stats = OptimizationStats(dead_stores=2, coalesced_deltas=1, total_passes=2)
        assert stats.total_optimizations == 3
        text = str(stats)
        assert "Dead stores removed: 2" in text
        assert "Total optimizations: 3" in text

    def test_optimize_ir_function(self):
        instructions = [Input(0), AddConstant(0, 1), AddConstant(0, 1), Output(0)]
        result, stats = optimize_ir(instructions, facts(1))
        assert result == [Input(0), AddConstant(0, 2), Output(0)]
        assert stats.coalesced_deltas == 1


# =============================================================================
# Whole-Program Properties
# =============================================================================

class TestPreservation:
    """Optimized IR behaves exactly like the lowered IR."""

    @pytest.mark.parametrize("source,input_data", PROGRAMS)
    def test_same_output_and_live_cells(self, source, input_data):
        result = compile_source(source)
        simulator = IRSimulator(max_steps=5_000_000)
        before = simulator.run(result.unoptimized_ir, input_data)
        after = simulator.run(result.ir, input_data)

        assert after.output == before.output
        for address in result.live_addresses:
            assert after.value(address) == before.value(address)

    @pytest.mark.parametrize("source,input_data", PROGRAMS)
    def test_never_grows(self, source, input_data):
        result = compile_source(source)
        assert len(list(walk(result.ir))) <= len(list(walk(result.unoptimized_ir)))

    @pytest.mark.parametrize("source,input_data", PROGRAMS)
    def test_idempotent(self, source, input_data):
        result = compile_source(source)
        again, stats = optimize_ir(
            result.ir,
            AllocatorFacts(result.address_count, result.live_addresses),
        )
        assert again == result.ir
        assert stats.total_optimizations == 0
