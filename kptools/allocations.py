"""Live memory allocations of one memory space, ordered largest first."""

from __future__ import annotations

import math
import sys
from collections.abc import Iterator
from dataclasses import dataclass

from kptools.stack import StackNode


def _fmt_ptr(ptr: int) -> str:
    return "0" if ptr == 0 else f"{ptr:#x}"


def _percent(part: int, whole: int) -> float:
    if whole:
        return part / whole * 100.0
    return math.nan if part == 0 else math.inf


@dataclass(eq=False)
class Allocation:
    """One allocation: its label, address, size in bytes and owning frame."""

    name: str
    ptr: int
    size: int
    frame: StackNode


def _key(size: int, ptr: int) -> tuple[int, int]:
    return size, ptr


class Allocations:
    """A set of allocations identified by size and address, with their total."""

    def __init__(self) -> None:
        self.total_size = 0
        self._entries: dict[tuple[int, int], Allocation] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Allocation]:
        """Yield allocations from largest to smallest, then by address."""
        ordered = sorted(self._entries.values(), key=lambda a: (-a.size, a.ptr))
        return iter(ordered)

    def __copy__(self) -> Allocations:
        duplicate = Allocations()
        duplicate.total_size = self.total_size
        duplicate._entries = dict(self._entries)
        return duplicate

    def allocate(self, name: str, ptr: int, size: int, frame: StackNode) -> Allocation:
        """Record an allocation; raise ValueError if it is already recorded."""
        key = _key(size, ptr)
        if key in self._entries:
            raise ValueError(
                f"allocation of {size} bytes at {_fmt_ptr(ptr)} is already recorded"
            )
        allocation = Allocation(name, ptr, size, frame)
        self._entries[key] = allocation
        self.total_size += size
        return allocation

    def deallocate(
        self, name: str, ptr: int, size: int, frame: StackNode
    ) -> Allocation | None:
        """Remove an allocation; warn on stderr and return None if it is unknown."""
        allocation = self._entries.pop(_key(size, ptr), None)
        if allocation is None:
            sys.stderr.write(
                f'WARNING! allocation("{name}", {_fmt_ptr(ptr)}, {size}), '
                f'deallocated at "{frame.full_name()}",  '
                "was not in the currently allocated set!\n"
            )
            return None
        self.total_size -= allocation.size
        return allocation

    def render(self) -> str:
        """Render the total and each allocation of at least 0.1 percent of it."""
        lines = [
            f"MAX MEMORY ALLOCATED: {self.total_size / 1024.0:.1f} kB\n",
            "ALLOCATIONS AT TIME OF HIGH WATER MARK:\n",
        ]
        for allocation in self:
            percent = _percent(allocation.size, self.total_size)
            if percent < 0.1:
                continue
            frame_name = allocation.frame.full_name()
            full_name = f"{frame_name}/{allocation.name}" if frame_name else allocation.name
            lines.append(f"  {percent:.1f}% {full_name}\n")
        lines.append("\n")
        return "".join(lines)