"""Kernel timer that writes its summary as a JSON document on finalization."""

from __future__ import annotations

import math
import os
import socket
from pathlib import Path

from kptools.kernel_info import KernelExecutionType, KernelPerformanceInfo, seconds
from kptools.shared import KernelRegistry

_KERNEL_INFO_INDENT = "       "


def _ratio(numerator: float, denominator: float) -> float:
    """Divide like IEEE doubles do: x/0 is +-inf, 0/0 is nan."""
    if denominator:
        return numerator / denominator
    if numerator == 0 or math.isnan(numerator):
        return math.nan
    return math.copysign(math.inf, numerator)


class KernelTimerJSON:
    """Collects per-kernel timings and writes a JSON summary per process."""

    def __init__(self, output_dir: str | os.PathLike | None = None) -> None:
        self.output_dir = Path(output_dir) if output_dir is not None else None
        self.registry = KernelRegistry()
        self.uniq_id = 0
        self.output_delimiter = " "
        self.init_time = seconds()

    def init_library(self, load_seq: int, interface_version: int) -> None:
        self.output_delimiter = os.environ.get("KOKKOSP_OUTPUT_DELIM", " ")
        print(
            "KokkosP: LDMS JSON Connector Initialized "
            f"(sequence is {load_seq}, version: {interface_version})"
        )
        self.init_time = seconds()

    def render(self, total_time: float, mpi_rank: str = "0") -> str:
        """Render the JSON summary for the given total run time."""
        kernels = self.registry.kernels
        kernel_times = sum(kernel.time for kernel in kernels)
        percent_kokkos = _ratio(kernel_times, total_time) * 100.0
        entries = ",\n".join(kernel.to_json(_KERNEL_INFO_INDENT) for kernel in kernels)
        return (
            '{\n"kokkos-kernel-data" : {\n'
            f'    "mpi-rank"               : {mpi_rank},\n'
            f'    "total-app-time"         : {total_time:10.3f},\n'
            f'    "total-kernel-times"     : {kernel_times:10.3f},\n'
            f'    "total-non-kernel-times" : {total_time - kernel_times:10.3f},\n'
            f'    "percent-in-kernels"     : {percent_kokkos:6.2f},\n'
            f'    "unique-kernel-calls"    : {len(self.registry.count_map):22d},\n'
            "\n"
            '    "kernel-perf-info"       : [\n'
            f"{entries}"
            "\n"
            "    ]\n"
            "}\n}"
        )

    def finalize_library(self) -> Path:
        """Write the JSON file named after host, process and rank; return its path."""
        finish_time = seconds()
        mpi_rank = os.environ.get("OMPI_COMM_WORLD_RANK", "0")
        directory = self.output_dir or Path.cwd()
        path = directory / f"{socket.gethostname()}-{os.getpid()}-{mpi_rank}.json"
        path.write_text(self.render(finish_time - self.init_time, mpi_rank))
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