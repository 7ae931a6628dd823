# =============================================================================
# test_engine.py - Tape Machine Tests
# =============================================================================
# Tests for loading and running tape programs: command semantics, bracket
# matching, tape bounds, step limits and end-of-input behaviour.
# =============================================================================

import pytest
from tapec.engine import TapeMachine, run_program, DEFAULT_TAPE_SIZE
from tapec.errors import (
    EngineError,
    UnbalancedLoopError,
    CursorOutOfRangeError,
    StepLimitExceededError,
)


# =============================================================================
# Execution
# =============================================================================

class TestExecution:
    """Test command semantics."""

    def test_multiply_to_letter(self):
        assert run_program("++++++++[>++++++++<-]>+.") == b"A"

    def test_echo(self):
        assert run_program(",.,.", b"ok") == b"ok"

    def test_wrapping(self):
        assert run_program("-.") == b"\xff"
        assert run_program("-+.") == b"\x00"

    def test_comments_ignored(self):
        assert run_program("add three +++ then print .\n") == b"\x03"

    def test_skips_loop_on_zero(self):
        assert run_program("[.]+.") == b"\x01"

    def test_final_state(self):
        machine = TapeMachine(tape_size=10)
        machine.load(">>+++<")
        machine.run()
        assert machine.cursor == 1
        assert machine.tape[2] == 3
        assert machine.steps == 3

    def test_run_resets_tape(self):
        machine = TapeMachine(tape_size=4)
        machine.load("+.")
        assert machine.run() == b"\x01"
        assert machine.run() == b"\x01"

    def test_default_tape_size(self):
        machine = TapeMachine()
        assert len(machine.tape) == DEFAULT_TAPE_SIZE


# =============================================================================
# End of Input
# =============================================================================

class TestEndOfInput:
    """',' past the end of input stores eof_value."""

    def test_default_is_zero(self):
        assert run_program("+,.") == b"\x00"

    def test_custom_value(self):
        assert run_program("+,.", eof_value=255) == b"\xff"

    def test_value_is_masked(self):
        assert TapeMachine(eof_value=-1).eof_value == 255


# =============================================================================
# Errors
# =============================================================================

class TestErrors:
    """Loading and runtime errors."""

    def test_unmatched_close(self):
        with pytest.raises(UnbalancedLoopError) as exc_info:
            run_program("++]")
        assert exc_info.value.position == 2
        assert exc_info.value.unmatched == "]"

    def test_unmatched_open(self):
        with pytest.raises(UnbalancedLoopError) as exc_info:
            run_program("[[]")
        assert exc_info.value.position == 0
        assert "never closed" in str(exc_info.value)

    def test_cursor_below_zero(self):
        with pytest.raises(CursorOutOfRangeError, match="below the start"):
            run_program("<")

    def test_cursor_past_end(self):
        with pytest.raises(CursorOutOfRangeError) as exc_info:
            run_program(">>>", tape_size=3)
        assert exc_info.value.cursor == 3
        assert exc_info.value.position == 0

    def test_last_cell_reachable(self):
        assert run_program(">>+.", tape_size=3) == b"\x01"

    def test_step_limit(self):
        with pytest.raises(StepLimitExceededError):
            run_program("+[]", max_steps=100)

    def test_errors_share_base(self):
        for error in (UnbalancedLoopError, CursorOutOfRangeError, StepLimitExceededError):
            assert issubclass(error, EngineError)


# =============================================================================
# Unbounded Tape
# =============================================================================

class TestUnboundedTape:
    """A tape of size None grows on demand."""

    def test_grows(self):
        machine = TapeMachine(tape_size=None)
        machine.load(">" * 40000 + "+.")
        assert machine.run() == b"\x01"
        assert machine.cursor == 40000
        assert len(machine.tape) > 40000

    def test_left_edge_still_checked(self):
        with pytest.raises(CursorOutOfRangeError):
            run_program("><<", tape_size=None)
