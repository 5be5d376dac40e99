"""JSON report over one or more simple kernel timer data files."""

from __future__ import annotations

import math
import sys
from collections.abc import Iterable, Sequence

from kptools.kernel_info import KernelExecutionType, KernelPerformanceInfo
from kptools.shared import load_data_files, sort_by_time

_KIND_NAMES = {
    KernelExecutionType.PARALLEL_FOR: '"PARALLEL_FOR"',
    KernelExecutionType.PARALLEL_REDUCE: '"PARALLEL_REDUCE"',
    KernelExecutionType.PARALLEL_SCAN: '"PARALLEL_SCAN"',
    KernelExecutionType.REGION: '"REGION"',
}


def _ratio(numerator: float, denominator: float) -> float:
    """Divide like IEEE doubles do: x/0 is +-inf, 0/0 is nan."""
    if denominator:
        return numerator / denominator
    if numerator == 0 or math.isnan(numerator):
        return math.nan
    return math.copysign(math.inf, numerator)


def _num(value: float) -> str:
    """Format a double the way a default-configured output stream does."""
    return f"{value:g}"


def _entry(kernel: KernelPerformanceInfo, indent: str) -> str:
    return (
        f"{indent}{{\n"
        f'{indent}  "kernel-name": "{kernel.name}",\n'
        f'{indent}  "call-count": {kernel.call_count},\n'
        f'{indent}  "total-time": {_num(kernel.time)},\n'
        f'{indent}  "time-per-call": {_num(kernel.time / max(1, kernel.call_count))},\n'
        f'{indent}  "kernel-type": {_KIND_NAMES[kernel.kind]}\n'
        f"{indent}}}"
    )


def render_json(total_time: float, kernels: Iterable[KernelPerformanceInfo]) -> str:
    """Render the summary, regions and kernels as a JSON document."""
    ordered = sort_by_time(kernels)
    regions = [k for k in ordered if k.kind == KernelExecutionType.REGION]
    plain = [k for k in ordered if k.kind != KernelExecutionType.REGION]
    kernels_time = sum(k.time for k in plain)
    kernels_calls = sum(k.call_count for k in plain)
    region_data = ",\n".join(_entry(k, "    ") for k in regions)
    kernel_data = ",\n".join(_entry(k, "    ") for k in plain)
    return (
        "{\n"
        f'  "total-app-time" : {_num(total_time)},\n'
        f'  "total-kernel-time" : {_num(kernels_time)},\n'
        f'  "total-non-kernel-time" : {_num(total_time - kernels_time)},\n'
        f'  "percent-in-kernels" : {_num(100.0 * _ratio(kernels_time, total_time))},\n'
        f'  "unique-kernel-calls" : {kernels_calls},\n'
        '  "region-data" : [\n'
        f"{region_data}\n"
        "  ],\n"
        '  "kernel-data" : [\n'
        f"{kernel_data}\n"
        "  ]\n"
        "}\n"
    )


def main(argv: Sequence[str] | None = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        sys.stderr.write("Did you specify any data files on the command line!\n")
        sys.stderr.write("Usage: ./kp_json_writer file1.dat [fileX.dat]*\n")
        return 255

    first = 0
    while first < len(args) and args[first].startswith("-"):
        first += 1

    try:
        total_time, kernels = load_data_files(args[first:])
    except (OSError, ValueError) as exc:
        sys.stderr.write(f"{exc}\n")
        return 1
    sys.stdout.write(render_json(total_time, kernels))
    return 0


if __name__ == "__main__":
    sys.exit(main())