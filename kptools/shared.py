"""Kernel bookkeeping shared by the simple kernel timer tools."""

from __future__ import annotations

import os
import struct
import sys
from collections.abc import Iterable, Iterator
from typing import BinaryIO

from kptools.kernel_info import KernelExecutionType, KernelPerformanceInfo

_EXEC_TIME = struct.Struct("<d")


class KernelRegistry:
    """Named kernels and regions seen so far, with the active region stack."""

    def __init__(self) -> None:
        self.count_map: dict[str, KernelPerformanceInfo] = {}
        self.current_entry: KernelPerformanceInfo | None = None
        self.regions: list[KernelPerformanceInfo] = []
        self.current_region_level = 0

    @property
    def kernels(self) -> list[KernelPerformanceInfo]:
        """All entries, ordered by name."""
        return [self.count_map[name] for name in sorted(self.count_map)]

    def _lookup(self, name: str, kind: KernelExecutionType) -> KernelPerformanceInfo:
        info = self.count_map.get(name)
        if info is None:
            info = KernelPerformanceInfo(name, kind)
            self.count_map[name] = info
        return info

    def increment_counter(self, name: str, kind: KernelExecutionType) -> KernelPerformanceInfo:
        """Make the named kernel current and start its timer."""
        self.current_entry = self._lookup(name, kind)
        self.current_entry.start_timer()
        return self.current_entry

    def increment_counter_region(
        self, name: str, kind: KernelExecutionType
    ) -> KernelPerformanceInfo:
        """Push the named region onto the region stack and start its timer."""
        info = self._lookup(name, kind)
        if self.current_region_level < len(self.regions):
            self.regions[self.current_region_level] = info
        else:
            self.regions.append(info)
        info.start_timer()
        self.current_region_level += 1
        return info

    def pop_region(self) -> KernelPerformanceInfo | None:
        """Close the innermost region; warn and return None if none is open."""
        self.current_region_level -= 1
        if self.current_region_level < 0:
            self.current_region_level = 0
            previous = "".join(
                (" " if i == 0 else ";") + region.name
                for i, region in enumerate(self.regions[:5])
            )
            sys.stderr.write(
                "WARNING:: Kokkos::Profiling::popRegion() called outside "
                " of an actve region. Previous regions: " + previous + "\n"
            )
            return None
        region = self.regions[self.current_region_level]
        region.add_from_timer()
        return region


def sort_by_time(kernels: Iterable[KernelPerformanceInfo]) -> list[KernelPerformanceInfo]:
    """Return the kernels ordered by total time, longest first."""
    return sorted(kernels, key=lambda k: k.time, reverse=True)


def _iter_records(stream: BinaryIO) -> Iterator[KernelPerformanceInfo]:
    while (info := KernelPerformanceInfo.read_from(stream)) is not None:
        yield info


def read_data_file(path: str | os.PathLike) -> tuple[float, list[KernelPerformanceInfo]]:
    """Read a timing data file: its total execution time and its records."""
    with open(path, "rb") as stream:
        head = stream.read(_EXEC_TIME.size)
        execute_time = _EXEC_TIME.unpack(head)[0] if len(head) == _EXEC_TIME.size else 0.0
        return execute_time, list(_iter_records(stream))


def load_data_files(
    paths: Iterable[str | os.PathLike],
) -> tuple[float, list[KernelPerformanceInfo]]:
    """Merge several data files by kernel name, summing execution times."""
    total_time = 0.0
    merged: dict[str, KernelPerformanceInfo] = {}
    for path in paths:
        execute_time, kernels = read_data_file(path)
        total_time += execute_time
        for kernel in kernels:
            if not kernel.name:
                continue
            existing = merged.get(kernel.name)
            if existing is None:
                merged[kernel.name] = kernel
            else:
                existing.add_time(kernel.time)
                existing.add_call_count(kernel.call_count)
    return total_time, list(merged.values())