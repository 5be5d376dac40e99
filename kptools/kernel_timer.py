"""Simple kernel timer: times kernels and regions and writes a binary data file."""

from __future__ import annotations

import os
import socket
import struct
from pathlib import Path

from kptools.kernel_info import KernelExecutionType, KernelPerformanceInfo, seconds
from kptools.shared import KernelRegistry


class KernelTimer:
    """Collects per-kernel timings and writes them out on finalization."""

    def __init__(self, output_dir: str | os.PathLike | None = None) -> None:
        self.output_dir = Path(output_dir) if output_dir is not None else None
        self.registry = KernelRegistry()
        self.uniq_id = 0
        self.output_delimiter = " "
        self.init_time = seconds()

    def init_library(self, load_seq: int, interface_version: int) -> None:
        self.output_delimiter = os.environ.get("KOKKOSP_OUTPUT_DELIM", " ")
        self.registry.regions.clear()
        print(
            "KokkosP: Simple Kernel Timer Library Initialized "
            f"(sequence is {load_seq}, version: {interface_version})"
        )
        self.init_time = seconds()

    def finalize_library(self) -> Path:
        """Write the data file named after host and process; return its path."""
        finish_time = seconds()
        directory = (self.output_dir or Path.cwd()).resolve()
        file_name = f"{socket.gethostname()}-{os.getpid()}.dat"
        path = directory / file_name
        with open(path, "wb") as output:
            output.write(struct.pack("<d", finish_time - self.init_time))
            for kernel in self.registry.kernels:
                kernel.write_to(output)
        print(f"KokkosP: Kernel timing written to {directory}/{file_name} ")
        return path

    def _begin(self, name: str, kind: KernelExecutionType) -> int:
        kernel_id = self.uniq_id
        self.uniq_id += 1
        if not name:
            raise ValueError("kernel is empty")
        self.registry.increment_counter(name, kind)
        return kernel_id

    def _end(self) -> KernelPerformanceInfo:
        entry = self.registry.current_entry
        if entry is None:
            raise RuntimeError("no kernel has been started")
        entry.add_from_timer()
        return entry

    def begin_parallel_for(self, name: str, dev_id: int = 0) -> int:
        return self._begin(name, KernelExecutionType.PARALLEL_FOR)

    def end_parallel_for(self, kernel_id: int) -> None:
        self._end()

    def begin_parallel_scan(self, name: str, dev_id: int = 0) -> int:
        return self._begin(name, KernelExecutionType.PARALLEL_SCAN)

    def end_parallel_scan(self, kernel_id: int) -> None:
        self._end()

    def begin_parallel_reduce(self, name: str, dev_id: int = 0) -> int:
        return self._begin(name, KernelExecutionType.PARALLEL_REDUCE)

    def end_parallel_reduce(self, kernel_id: int) -> None:
        self._end()

    def push_region(self, name: str) -> None:
        self.registry.increment_counter_region(name, KernelExecutionType.REGION)

    def pop_region(self) -> None:
        self.registry.pop_region()