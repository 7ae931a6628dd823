"""
Tape Machine
============

Executes programs written in the eight commands

    >  move the cursor right        <  move the cursor left
    +  increment the current cell   -  decrement the current cell
    .  output the current cell      ,  input into the current cell
    [  skip past the matching ] if the current cell is zero
    ]  jump back to the matching [ if the current cell is non-zero

Cells are 8-bit and wrap. Every other character is a comment.

Loading
-------
load() strips comments, folds runs of + - < > into single operations and
pre-computes the jump table, so execution never scans for brackets.
Errors report the offset of the offending character in the original
text.

Usage
-----
>>> machine = TapeMachine(tape_size=100)
>>> machine.load("++++++++[>++++++++<-]>+.")
>>> machine.run()
b'A'
"""

import logging
from typing import Optional

from tapec.errors import (
    UnbalancedLoopError,
    CursorOutOfRangeError,
    StepLimitExceededError,
)

logger = logging.getLogger(__name__)

DEFAULT_TAPE_SIZE = 30000

_FOLDABLE = "+-<>"
_COMMANDS = "+-<>.,[]"


class TapeMachine:
    """
    Single-tape machine with a bounded or growing tape.

    Attributes:
        tape_size: Number of cells, or None for a tape that grows on demand
        max_steps: Maximum operations per run, or None for no limit
        eof_value: Value stored by ',' once input is exhausted
        tape: Cell values after the last run
        cursor: Cursor position after the last run
        steps: Operations executed in the last run
    """

    def __init__(
        self,
        tape_size: Optional[int] = DEFAULT_TAPE_SIZE,
        max_steps: Optional[int] = None,
        eof_value: int = 0,
    ):
        self.tape_size = tape_size
        self.max_steps = max_steps
        self.eof_value = eof_value & 0xFF

        self._ops: list[tuple[str, int]] = []
        self._positions: list[int] = []
        self.reset()

    def reset(self) -> None:
        """Clear the tape and move the cursor home."""
        self.tape = bytearray(self.tape_size if self.tape_size is not None else 1)
        self.cursor = 0
        self.steps = 0

    # =========================================================================
    # Loading
    # =========================================================================

    def load(self, code: str) -> None:
        """
        Prepare a program for execution.

        Raises:
            UnbalancedLoopError: If brackets do not pair up
        """
        ops: list[tuple[str, int]] = []
        positions: list[int] = []
        open_loops: list[int] = []

        for offset, char in enumerate(code):
            if char not in _COMMANDS:
                continue

            if char in _FOLDABLE and ops and ops[-1][0] == char:
                ops[-1] = (char, ops[-1][1] + 1)
                continue

            if char == "[":
                open_loops.append(len(ops))
                ops.append(("[", 0))
            elif char == "]":
                if not open_loops:
                    raise UnbalancedLoopError(offset, "]")
                start = open_loops.pop()
                ops[start] = ("[", len(ops))
                ops.append(("]", start))
            else:
                ops.append((char, 1))
            positions.append(offset)

        if open_loops:
            raise UnbalancedLoopError(positions[open_loops[-1]], "[")

        self._ops = ops
        self._positions = positions
        logger.debug(f"Loaded {len(ops)} operations from {len(code)} characters")

    # =========================================================================
    # Execution
    # =========================================================================

    def run(self, input_data: bytes = b"") -> bytes:
        """
        Run the loaded program from a fresh tape.

        Args:
            input_data: Bytes consumed by ','

        Returns:
            Bytes produced by '.'

        Raises:
            CursorOutOfRangeError: If the cursor leaves the tape
            StepLimitExceededError: If max_steps operations have run
        """
        self.reset()
        ops = self._ops
        tape = self.tape
        cursor = 0
        steps = 0
        pc = 0
        input_pos = 0
        output = bytearray()
        max_steps = self.max_steps

        while pc < len(ops):
            steps += 1
            if max_steps is not None and steps > max_steps:
                self.cursor, self.steps = cursor, steps - 1
                raise StepLimitExceededError(max_steps)

            op, arg = ops[pc]

            if op == "+":
                tape[cursor] = (tape[cursor] + arg) & 0xFF
            elif op == "-":
                tape[cursor] = (tape[cursor] - arg) & 0xFF
            elif op == ">":
                cursor += arg
                if cursor >= len(tape):
                    if self.tape_size is not None:
                        self.cursor, self.steps = cursor, steps
                        raise CursorOutOfRangeError(cursor, self.tape_size, self._positions[pc])
                    tape.extend(bytes(cursor + 1 - len(tape)))
            elif op == "<":
                cursor -= arg
                if cursor < 0:
                    self.cursor, self.steps = cursor, steps
                    raise CursorOutOfRangeError(cursor, self.tape_size, self._positions[pc])
            elif op == "[":
                if tape[cursor] == 0:
                    pc = arg
            elif op == "]":
                if tape[cursor] != 0:
                    pc = arg
            elif op == ".":
                output.append(tape[cursor])
            elif op == ",":
                if input_pos < len(input_data):
                    tape[cursor] = input_data[input_pos]
                    input_pos += 1
                else:
                    tape[cursor] = self.eof_value

            pc += 1

        self.cursor = cursor
        self.steps = steps
        logger.debug(f"Ran {steps} operations, cursor at {cursor}")
        return bytes(output)


def run_program(code: str, input_data: bytes = b"", **options) -> bytes:
    """
    Load and run a program on a fresh TapeMachine.

    Args:
        code: Program text
        input_data: Bytes consumed by ','
        **options: TapeMachine constructor arguments

    Returns:
        Bytes produced by the program
    """
    machine = TapeMachine(**options)
    machine.load(code)
    return machine.run(input_data)
