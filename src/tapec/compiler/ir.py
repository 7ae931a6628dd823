"""
Abstract Tape Operations (IR)
=============================

This module defines the intermediate representation produced by lowering,
rewritten by the optimizer and consumed by the emitter.

Instructions
------------
| Instruction                     | Meaning                             |
|---------------------------------|-------------------------------------|
| AddConstant(address, delta)     | cell[address] += delta (mod 256)    |
| SetZero(address)                | cell[address] = 0                   |
| LoopWhileNonZero(address, body) | while cell[address] != 0: body      |
| Input(address)                  | cell[address] = next input byte     |
| Output(address)                 | write cell[address]                 |
| Annotation(text)                | no effect; debug marker only        |

Design Notes
------------
- Instructions name absolute addresses and never carry a cursor position.
  The emitter derives all movement, so the same IR can be scheduled in
  different ways.
- Loops own their body list; bodies nest arbitrarily.
- Text listings (format_ir) use the notation:

      &3 += 5;
      &3 = 0;
      while &3 {
          &3 += -1;
      }
      read(&3);
      write(&3);
      // annotation
"""

from dataclasses import dataclass, field
from typing import Iterable, Iterator, Optional

CELL_MODULUS = 256


# =============================================================================
# Instruction Classes
# =============================================================================

@dataclass
class IRInstruction:
    """Base class for all IR instructions."""

    @property
    def address(self) -> Optional[int]:
        """Address touched by this instruction, or None for annotations."""
        return None


@dataclass
class AddConstant(IRInstruction):
    """Add a constant (mod 256) to one cell."""
    target: int = 0
    delta: int = 0

    @property
    def address(self) -> int:
        return self.target


@dataclass
class SetZero(IRInstruction):
    """Clear one cell."""
    target: int = 0

    @property
    def address(self) -> int:
        return self.target


@dataclass
class LoopWhileNonZero(IRInstruction):
    """Repeat the body while the guard cell is non-zero."""
    guard: int = 0
    body: list = field(default_factory=list)

    @property
    def address(self) -> int:
        return self.guard


@dataclass
class Input(IRInstruction):
    """Read one byte of input into a cell."""
    target: int = 0

    @property
    def address(self) -> int:
        return self.target


@dataclass
class Output(IRInstruction):
    """Write one cell as a byte of output."""
    target: int = 0

    @property
    def address(self) -> int:
        return self.target


@dataclass
class Annotation(IRInstruction):
    """Non-executable marker carrying source context for debug output."""
    text: str = ""


# =============================================================================
# Helper Functions
# =============================================================================

def normalize_delta(delta: int) -> int:
    """
    Reduce a cell delta modulo 256 into the range -127..128.

    Cells wrap, so +255 and -1 have the same effect; the short form keeps
    emitted code small.

    Examples:
        >>> normalize_delta(255)
        -1
        >>> normalize_delta(128)
        128
        >>> normalize_delta(-300)
        -44
    """
    delta %= CELL_MODULUS
    if delta > CELL_MODULUS // 2:
        delta -= CELL_MODULUS
    return delta


def walk(instructions: Iterable[IRInstruction]) -> Iterator[IRInstruction]:
    """Yield every instruction, descending into loop bodies (pre-order)."""
    for instruction in instructions:
        yield instruction
        if isinstance(instruction, LoopWhileNonZero):
            yield from walk(instruction.body)


def count_instructions(instructions: Iterable[IRInstruction]) -> int:
    """Count instructions recursively (a loop counts as one plus its body)."""
    return sum(1 for _ in walk(instructions))


def referenced_addresses(instructions: Iterable[IRInstruction]) -> set[int]:
    """Return every address used by any instruction, loop guards included."""
    return {
        instruction.address
        for instruction in walk(instructions)
        if instruction.address is not None
    }


def written_addresses(instructions: Iterable[IRInstruction]) -> set[int]:
    """Return addresses whose value may be changed by the instructions."""
    return {
        instruction.address
        for instruction in walk(instructions)
        if isinstance(instruction, (AddConstant, SetZero, Input))
    }


def dirtied_addresses(instructions: Iterable[IRInstruction]) -> set[int]:
    """
    Return addresses that may be left non-zero by the instructions.

    SetZero only ever makes a cell zero, so it is not counted.
    """
    dirtied = set()
    for instruction in walk(instructions):
        if isinstance(instruction, AddConstant):
            if normalize_delta(instruction.delta) != 0:
                dirtied.add(instruction.target)
        elif isinstance(instruction, Input):
            dirtied.add(instruction.target)
    return dirtied


def mentions(instruction: IRInstruction, address: int) -> bool:
    """
    Check whether an instruction reads or writes an address.

    A loop mentions an address if it is the guard or appears anywhere in
    the body.
    """
    if instruction.address == address:
        return True
    if isinstance(instruction, LoopWhileNonZero):
        return any(inner.address == address for inner in walk(instruction.body))
    return False


def format_ir(instructions: Iterable[IRInstruction], indent: int = 0) -> str:
    """
    Render IR as a readable listing.

    Args:
        instructions: Instructions to render
        indent: Starting indentation level (4 spaces per level)

    Returns:
        Multi-line listing, one instruction per line
    """
    lines: list[str] = []
    _format_into(instructions, indent, lines)
    return "\n".join(lines)


def _format_into(instructions: Iterable[IRInstruction], indent: int, lines: list[str]) -> None:
    pad = "    " * indent
    for instruction in instructions:
        if isinstance(instruction, AddConstant):
            lines.append(f"{pad}&{instruction.target} += {instruction.delta};")
        elif isinstance(instruction, SetZero):
            lines.append(f"{pad}&{instruction.target} = 0;")
        elif isinstance(instruction, LoopWhileNonZero):
            lines.append(f"{pad}while &{instruction.guard} {{")
            _format_into(instruction.body, indent + 1, lines)
            lines.append(f"{pad}}}")
        elif isinstance(instruction, Input):
            lines.append(f"{pad}read(&{instruction.target});")
        elif isinstance(instruction, Output):
            lines.append(f"{pad}write(&{instruction.target});")
        elif isinstance(instruction, Annotation):
            lines.append(f"{pad}// {instruction.text}")
