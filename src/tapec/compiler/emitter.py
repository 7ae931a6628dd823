"""
Tape Code Emitter
=================

Linearizes IR into the eight-command target text. The emitter is a
single walk over the instructions with one mutable cursor; it never
reorders anything.

| IR                      | Output                               |
|-------------------------|--------------------------------------|
| AddConstant(a, d)       | move to a, then |d| '+' or '-'       |
| SetZero(a)              | move to a, then '[-]'                |
| LoopWhileNonZero(g, b)  | move to g, '[', b, move to g, ']'    |
| Input(a) / Output(a)    | move to a, then ',' / '.'            |
| Annotation(text)        | debug only: text on its own line     |

Annotations have every command character removed, so debug output runs
exactly like the plain output.
"""

import logging
from typing import Optional

from tapec.compiler.errors import IRInvariantError, TapeSizeError
from tapec.compiler.ir import (
    IRInstruction,
    AddConstant,
    SetZero,
    LoopWhileNonZero,
    Input,
    Output,
    Annotation,
    normalize_delta,
    referenced_addresses,
)

logger = logging.getLogger(__name__)

COMMAND_CHARS = "><+-.,[]"
_STRIP_COMMANDS = str.maketrans("", "", COMMAND_CHARS)


def strip_commands(text: str) -> str:
    """Remove every command character from text."""
    return text.translate(_STRIP_COMMANDS)


class Emitter:
    """
    Converts IR to target text.

    Attributes:
        debug: Include annotations as comment lines
        address_limit: Tape size to validate addresses against, or None
        cursor: Cursor position after the last emitted instruction
    """

    def __init__(self, debug: bool = False, address_limit: Optional[int] = None):
        self.debug = debug
        self.address_limit = address_limit
        self.cursor = 0
        self._parts: list[str] = []

    def emit(self, instructions: list[IRInstruction]) -> str:
        """
        Emit a whole program. The cursor starts at cell 0.

        Raises:
            TapeSizeError: If the program needs more than address_limit cells
            IRInvariantError: If an address is negative
        """
        if self.address_limit is not None:
            highest = max(referenced_addresses(instructions), default=-1)
            if highest >= self.address_limit:
                raise TapeSizeError(highest + 1, self.address_limit)

        self.cursor = 0
        self._parts = []
        self._emit_list(instructions)

        code = "".join(self._parts)
        if self.debug:
            lines = [line for line in code.split("\n") if line]
            code = "\n".join(lines) + "\n" if lines else ""

        logger.debug(f"Emitted {len(code)} characters, cursor ends at {self.cursor}")
        return code

    def _emit_list(self, instructions: list[IRInstruction]) -> None:
        for instruction in instructions:
            self._emit_instruction(instruction)

    def _emit_instruction(self, instruction: IRInstruction) -> None:
        if isinstance(instruction, AddConstant):
            self._move_to(instruction.target)
            delta = normalize_delta(instruction.delta)
            self._parts.append("+" * delta if delta > 0 else "-" * -delta)
        elif isinstance(instruction, SetZero):
            self._move_to(instruction.target)
            self._parts.append("[-]")
        elif isinstance(instruction, LoopWhileNonZero):
            self._move_to(instruction.guard)
            self._parts.append("[")
            self._emit_list(instruction.body)
            self._move_to(instruction.guard)
            self._parts.append("]")
        elif isinstance(instruction, Input):
            self._move_to(instruction.target)
            self._parts.append(",")
        elif isinstance(instruction, Output):
            self._move_to(instruction.target)
            self._parts.append(".")
        elif isinstance(instruction, Annotation):
            if self.debug:
                text = strip_commands(instruction.text).strip()
                if text:
                    self._parts.append(f"\n{text}\n")
        else:
            raise IRInvariantError(f"cannot emit {type(instruction).__name__}")

    def _move_to(self, address: int) -> None:
        """Move the cursor to address, emitting '>' or '<' as needed."""
        if address < 0:
            raise IRInvariantError(f"negative cell address {address}")

        diff = address - self.cursor
        if diff > 0:
            self._parts.append(">" * diff)
        elif diff < 0:
            self._parts.append("<" * -diff)
        self.cursor = address


def emit_code(
    instructions: list[IRInstruction],
    debug: bool = False,
    address_limit: Optional[int] = None,
) -> str:
    """Convenience function: emit IR with a fresh Emitter."""
    return Emitter(debug=debug, address_limit=address_limit).emit(instructions)
