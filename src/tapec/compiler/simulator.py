"""
Reference IR Simulator
======================

Runs IR directly, without emitting code. Tests use it to show that the
optimizer preserves program behaviour: the unoptimized and optimized IR
must produce the same output and the same final values in every cell
live at program exit.
"""

from collections import defaultdict
from dataclasses import dataclass, field

from tapec.errors import StepLimitExceededError
from tapec.compiler.ir import (
    IRInstruction,
    AddConstant,
    SetZero,
    LoopWhileNonZero,
    Input,
    Output,
    CELL_MODULUS,
)


@dataclass
class SimulationResult:
    """
    Outcome of a simulated run.

    Attributes:
        output: Bytes written by Output instructions
        cells: Final cell values (cells never written are absent)
        steps: Instructions executed
    """
    output: bytes
    cells: dict[int, int] = field(default_factory=dict)
    steps: int = 0

    def value(self, address: int) -> int:
        return self.cells.get(address, 0)


class IRSimulator:
    """
    Interprets IR with 8-bit wrapping cells that all start at zero.

    Input past the end of input_data stores 0.
    """

    def __init__(self, max_steps: int = 1_000_000):
        self.max_steps = max_steps

    def run(self, instructions: list[IRInstruction], input_data: bytes = b"") -> SimulationResult:
        """
        Execute instructions.

        Raises:
            StepLimitExceededError: If more than max_steps instructions run
        """
        self._cells: dict[int, int] = defaultdict(int)
        self._input = bytes(input_data)
        self._input_pos = 0
        self._output = bytearray()
        self._steps = 0

        self._run_list(instructions)

        cells = {address: value for address, value in self._cells.items() if value}
        return SimulationResult(bytes(self._output), cells, self._steps)

    def _tick(self) -> None:
        self._steps += 1
        if self._steps > self.max_steps:
            raise StepLimitExceededError(self.max_steps)

    def _run_list(self, instructions: list[IRInstruction]) -> None:
        for instruction in instructions:
            if isinstance(instruction, LoopWhileNonZero):
                while self._cells[instruction.guard]:
                    self._tick()
                    self._run_list(instruction.body)
                continue

            self._tick()
            if isinstance(instruction, AddConstant):
                address = instruction.target
                self._cells[address] = (self._cells[address] + instruction.delta) % CELL_MODULUS
            elif isinstance(instruction, SetZero):
                self._cells[instruction.target] = 0
            elif isinstance(instruction, Input):
                if self._input_pos < len(self._input):
                    self._cells[instruction.target] = self._input[self._input_pos]
                    self._input_pos += 1
                else:
                    self._cells[instruction.target] = 0
            elif isinstance(instruction, Output):
                self._output.append(self._cells[instruction.target])
