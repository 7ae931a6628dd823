"""
Value Bindings and the Lowering Environment
===========================================

Every source variable is bound to exactly one of three variants:

| Binding          | Address | Releases storage | Typical source             |
|------------------|---------|------------------|----------------------------|
| ConstantBinding  | no      | -                | let x = 4 * 10;            |
| OwnedBinding     | yes     | owning scope     | let mut x = 0;             |
| BorrowedBinding  | yes     | never            | let y = &x;                |

Reads of a ConstantBinding are inlined as literals, so constants never
cost tape space. Borrowed bindings alias the storage of an owned binding
in an enclosing block.

The Environment mirrors source block structure: one frame per block,
innermost frame searched first.
"""

from dataclasses import dataclass
from typing import Optional, Union

from tapec.compiler.errors import ScopeUnderflowError, UnboundIdentifierError
from tapec.errors import SourceLocation


@dataclass(frozen=True)
class ConstantBinding:
    """Value known at compile time (0-255)."""
    value: int

    @property
    def address(self) -> Optional[int]:
        return None


@dataclass(frozen=True)
class OwnedBinding:
    """Storage reserved for this binding by the allocator."""
    address: int
    mutable: bool = False


@dataclass(frozen=True)
class BorrowedBinding:
    """
    Alias of another binding's storage.

    Attributes:
        address: Address owned by the source binding
        mutable: True for '&mut' borrows
        source: Name of the borrowed variable (for diagnostics)
    """
    address: int
    mutable: bool = False
    source: str = ""


ValueBinding = Union[ConstantBinding, OwnedBinding, BorrowedBinding]


class Environment:
    """
    Scoped mapping from source identifiers to value bindings.

    The outermost frame exists from construction and cannot be popped.
    """

    def __init__(self):
        self._frames: list[dict[str, ValueBinding]] = [{}]

    @property
    def depth(self) -> int:
        return len(self._frames) - 1

    def push(self) -> None:
        self._frames.append({})

    def pop(self) -> None:
        if len(self._frames) == 1:
            raise ScopeUnderflowError("attempt to close the outermost binding scope")
        self._frames.pop()

    def define(self, name: str, binding: ValueBinding) -> None:
        """Bind a name in the innermost frame, shadowing outer bindings."""
        self._frames[-1][name] = binding

    def lookup(self, name: str, location: Optional[SourceLocation] = None) -> ValueBinding:
        """
        Find the innermost binding for a name.

        Raises:
            UnboundIdentifierError: If no frame binds the name
        """
        for frame in reversed(self._frames):
            if name in frame:
                return frame[name]
        raise UnboundIdentifierError(name, location)

    def __contains__(self, name: str) -> bool:
        return any(name in frame for frame in self._frames)
