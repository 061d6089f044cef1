"""
procvm Register Allocator

Hands out general-purpose register ids to the code generator. Temporaries are
acquired for the lifetime of one (sub)expression and released explicitly as
soon as their value has been consumed, so freed ids are reused and register
pressure stays bounded by expression nesting depth.
"""

import heapq
from typing import List, Set

from .errors import RegisterExhaustedError


# Size of the general register file in a VM process
MAX_REGISTERS = 16


class RegisterAllocator:
    """
    Index-based register arena.

    acquire() returns the smallest released id if any, otherwise the next
    never-used id. release() puts an id back on the free-list.
    """

    def __init__(self, limit: int = MAX_REGISTERS):
        self.limit = limit
        self.next_register = 0
        self.high_water = 0
        self._free: List[int] = []
        self._live: Set[int] = set()

    def acquire(self) -> int:
        """Acquire a temporary register id."""
        if self._free:
            reg = heapq.heappop(self._free)
        else:
            if self.next_register >= self.limit:
                raise RegisterExhaustedError(
                    f"register file exhausted: expression needs more than "
                    f"{self.limit} live registers"
                )
            reg = self.next_register
            self.next_register += 1

        self._live.add(reg)
        self.high_water = max(self.high_water, len(self._live))
        return reg

    def release(self, reg: int) -> None:
        """Return a temporary register id to the free-list."""
        if reg not in self._live:
            raise ValueError(f"register r{reg} is not live")
        self._live.remove(reg)
        heapq.heappush(self._free, reg)

    @property
    def live(self) -> Set[int]:
        """Ids currently held by unfinished expressions or reservations."""
        return set(self._live)

    @property
    def free(self) -> List[int]:
        """Released ids available for reuse, smallest first."""
        return sorted(self._free)

    def __repr__(self) -> str:
        return (f"RegisterAllocator(live={sorted(self._live)}, free={self.free}, "
                f"next={self.next_register})")
