"""
Scope-Aware Tape Address Allocator
==================================

This module maps variables and temporaries onto tape cells. The target
machine has no random access, so every value lives at a fixed offset
chosen here, and the allocator's discipline is what keeps two live values
from sharing a cell.

Model
-----
- Scopes form a strict stack. The allocator starts with a root scope
  that lives for the whole program; every other scope is entered and
  exited by lowering.
- allocate_owned() registers an address in the current top scope. It
  returns the lowest free address, or extends the high-water mark when
  the free pool is empty.
- exit_scope() releases all addresses owned by the scope in one step.
- bind_borrowed() hands out an owned address again without taking
  ownership. The owner must still be live, and must not be released at
  the same moment as the borrow.
- A clean set records which issued addresses are known to hold zero.
  Addresses at or above the high-water mark have never been touched and
  are always clean.

The clean set is updated by lowering as it emits IR (SetZero marks an
address clean, AddConstant and Input mark it dirty). Releasing an address
keeps its current state, so a reused address is handed out dirty unless
the code before it cleared the cell.

Usage
-----
>>> allocator = AddressAllocator()
>>> scope = allocator.enter_scope()
>>> allocator.allocate_owned()
0
>>> allocator.exit_scope(scope)
>>> allocator.allocate_owned()
0
"""

import heapq
from dataclasses import dataclass, field
from typing import Iterable, Optional

from tapec.compiler.errors import (
    DanglingBorrowError,
    InternalCompilerError,
    InvalidScopeNestingError,
    ScopeUnderflowError,
)


# =============================================================================
# Scope Handles
# =============================================================================

@dataclass(eq=False)
class ScopeHandle:
    """
    One frame of the allocator's scope stack.

    Attributes:
        depth: Stack depth (the root scope has depth 0)
        parent: Enclosing scope, None for the root
        owned: Addresses owned by this scope, in allocation order
        borrows: Addresses borrowed while this scope was on top
        alive: False once the scope has been exited
    """
    depth: int
    parent: Optional["ScopeHandle"] = None
    owned: list[int] = field(default_factory=list)
    borrows: list[int] = field(default_factory=list)
    alive: bool = True

    def __repr__(self) -> str:
        state = "live" if self.alive else "exited"
        return f"ScopeHandle(depth={self.depth}, owned={self.owned}, {state})"


@dataclass(frozen=True)
class AllocatorFacts:
    """
    Static facts the optimizer and emitter need after lowering.

    Attributes:
        address_count: Number of addresses ever issued (0..address_count-1)
        live_at_exit: Addresses still owned when the program ends
    """
    address_count: int
    live_at_exit: frozenset[int]

    def is_issued(self, address: int) -> bool:
        return 0 <= address < self.address_count


# =============================================================================
# Address Allocator
# =============================================================================

class AddressAllocator:
    """
    Tape address allocator with scope-stack ownership and clean tracking.

    Attributes:
        scopes_entered: Number of enter_scope() calls so far
        scopes_exited: Number of successful exit_scope() calls so far
    """

    def __init__(self):
        self._root = ScopeHandle(depth=0)
        self._stack: list[ScopeHandle] = [self._root]
        self._free: list[int] = []
        self._high_water = 0
        self._owner: dict[int, ScopeHandle] = {}
        self._clean: set[int] = set()
        self.scopes_entered = 0
        self.scopes_exited = 0

    # =========================================================================
    # Scope Management
    # =========================================================================

    @property
    def current_scope(self) -> ScopeHandle:
        return self._stack[-1]

    @property
    def root_scope(self) -> ScopeHandle:
        return self._root

    @property
    def scope_depth(self) -> int:
        """Number of scopes on the stack above the root."""
        return len(self._stack) - 1

    def enter_scope(self) -> ScopeHandle:
        """
        Push a new scope on top of the current one.

        Returns:
            Handle that must later be passed to exit_scope()
        """
        scope = ScopeHandle(depth=len(self._stack), parent=self._stack[-1])
        self._stack.append(scope)
        self.scopes_entered += 1
        return scope

    def exit_scope(self, handle: ScopeHandle) -> None:
        """
        Pop a scope and release every address it owns.

        Args:
            handle: The scope to exit; must be the current top

        Raises:
            ScopeUnderflowError: If only the root scope is left, or the
                handle is the root scope
            InvalidScopeNestingError: If the handle is not the current top
            DanglingBorrowError: If a borrow taken in this scope refers to
                an address owned by this same scope
        """
        if handle is self._root or len(self._stack) == 1:
            raise ScopeUnderflowError("attempt to exit the root scope")
        if handle is not self._stack[-1]:
            if not handle.alive:
                raise InvalidScopeNestingError(f"scope at depth {handle.depth} exited twice")
            raise InvalidScopeNestingError(
                f"scope at depth {handle.depth} exited while scope at depth "
                f"{self._stack[-1].depth} is still open"
            )

        for address in handle.borrows:
            if self._owner.get(address) is handle:
                raise DanglingBorrowError(
                    address,
                    f"borrow of address {address} is released together with its owner",
                )

        for address in handle.owned:
            del self._owner[address]
            heapq.heappush(self._free, address)

        handle.alive = False
        self._stack.pop()
        self.scopes_exited += 1

    # =========================================================================
    # Allocation
    # =========================================================================

    def allocate_owned(self) -> int:
        """
        Reserve an address for the current top scope.

        Returns:
            The lowest free address, or a brand new one past the
            high-water mark when the free pool is empty
        """
        if self._free:
            address = heapq.heappop(self._free)
        else:
            address = self._high_water
            self._high_water += 1
            self._clean.add(address)

        if address in self._owner:
            raise InternalCompilerError(f"address {address} handed out while still owned")

        scope = self._stack[-1]
        self._owner[address] = scope
        scope.owned.append(address)
        return address

    def bind_borrowed(self, address: int) -> int:
        """
        Share an owned address without taking ownership.

        The borrow is registered in the current top scope, which must be
        exited before the owner's scope.

        Args:
            address: Address owned by a live scope

        Returns:
            The same address

        Raises:
            DanglingBorrowError: If no live scope owns the address
        """
        owner = self._owner.get(address)
        if owner is None or not owner.alive:
            raise DanglingBorrowError(address, f"borrow of address {address} which has no live owner")
        self._stack[-1].borrows.append(address)
        return address

    def owner_of(self, address: int) -> Optional[ScopeHandle]:
        """Return the live scope owning an address, or None if it is free."""
        return self._owner.get(address)

    def is_free(self, address: int) -> bool:
        return address not in self._owner

    def owned_addresses(self) -> list[int]:
        """Return every currently owned address, in ascending order."""
        return sorted(self._owner)

    def live_addresses(self) -> frozenset[int]:
        """Return the addresses owned by the root scope."""
        return frozenset(self._root.owned)

    @property
    def high_water_mark(self) -> int:
        """Number of distinct addresses ever issued."""
        return self._high_water

    def facts(self) -> AllocatorFacts:
        return AllocatorFacts(
            address_count=self._high_water,
            live_at_exit=self.live_addresses(),
        )

    # =========================================================================
    # Clean Tracking
    # =========================================================================

    def is_clean(self, address: int) -> bool:
        """Return True if the address is known to hold zero."""
        return address >= self._high_water or address in self._clean

    def mark_clean(self, address: int) -> None:
        if address < self._high_water:
            self._clean.add(address)

    def mark_dirty(self, address: int) -> None:
        self._clean.discard(address)

    def clean_snapshot(self) -> frozenset[int]:
        """Return the issued addresses currently known to hold zero."""
        return frozenset(self._clean)

    def restore_clean(self, addresses: Iterable[int]) -> None:
        """Replace the clean set (addresses past the high-water mark are ignored)."""
        self._clean = {address for address in addresses if address < self._high_water}
