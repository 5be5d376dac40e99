"""Human-readable report over one or more simple kernel timer data files."""

from __future__ import annotations

import math
import sys
from collections.abc import Iterable, Sequence

from kptools.kernel_info import KernelExecutionType, KernelPerformanceInfo
from kptools.shared import load_data_files, sort_by_time

_RULE = "-" * 73

_LABELS = {
    KernelExecutionType.PARALLEL_FOR: " (ParFor)  ",
    KernelExecutionType.PARALLEL_REDUCE: " (ParRed)  ",
    KernelExecutionType.PARALLEL_SCAN: " (ParScan) ",
}


def _ratio(numerator: float, denominator: float) -> float:
    """Divide like IEEE doubles do: x/0 is +-inf, 0/0 is nan."""
    if denominator:
        return numerator / denominator
    if numerator == 0 or math.isnan(numerator):
        return math.nan
    return math.copysign(math.inf, numerator)


def _label(kind: KernelExecutionType, fixed_width: int) -> str:
    if kind in _LABELS:
        return _LABELS[kind]
    return " (Region)  " if fixed_width else " (REGION)  "


def _row(
    kernel: KernelPerformanceInfo,
    delimiter: str,
    fixed_width: int,
    total_kernels_time: float,
    total_time: float,
) -> str:
    d = delimiter
    avg = _ratio(kernel.time, float(kernel.call_count))
    pct_kernels = _ratio(kernel.time, total_kernels_time) * 100.0
    pct_total = _ratio(kernel.time, total_time) * 100.0
    label = _label(kernel.kind, fixed_width)
    if fixed_width:
        return (
            f"- {kernel.name:>100}\n"
            f"{label:>11}{d}{kernel.time:15.5f}{d}{kernel.call_count:12d}{d}"
            f"{avg:15.5f}{d}{pct_kernels:7.3f}{d}{pct_total:7.3f}\n"
        )
    return (
        f"- {kernel.name}\n"
        f"{label}{d}{kernel.time:f}{d}{kernel.call_count}{d}"
        f"{avg:f}{d}{pct_kernels:f}{d}{pct_total:f}\n"
    )


def format_report(
    total_time: float,
    kernels: Iterable[KernelPerformanceInfo],
    delimiter: str = " ",
    fixed_width: int = 0,
) -> str:
    """Format the region and kernel tables and the summary."""
    ordered = sort_by_time(kernels)
    plain = [k for k in ordered if k.kind != KernelExecutionType.REGION]
    regions = [k for k in ordered if k.kind == KernelExecutionType.REGION]
    total_kernels_time = sum(k.time for k in plain)
    total_kernels_calls = sum(k.call_count for k in plain)

    parts = [
        " (Type)   Total Time, Call Count, Avg. Time per Call, %Total Time in "
        "Kernels, %Total Program Time\n",
        f"{_RULE}\n\n",
        "Regions: \n\n",
    ]
    parts.extend(
        _row(k, delimiter, fixed_width, total_kernels_time, total_time) for k in regions
    )
    parts.append(f"\n{_RULE}\nKernels: \n\n")
    parts.extend(
        _row(k, delimiter, fixed_width, total_kernels_time, total_time) for k in plain
    )
    percent = _ratio(total_kernels_time, total_time) * 100
    parts.append(
        f"\n{_RULE}\n"
        "Summary:\n"
        "\n"
        f"Total Execution Time (incl. Kokkos + non-Kokkos):      {total_time:20.5f} seconds\n"
        f"Total Time in Kokkos kernels:                          {total_kernels_time:20.5f} seconds\n"
        f"   -> Time outside Kokkos kernels:                     "
        f"{total_time - total_kernels_time:20.5f} seconds\n"
        f"   -> Percentage in Kokkos kernels:                    {percent:20.2f} %\n"
        f"Total Calls to Kokkos Kernels:                         {total_kernels_calls:20d}\n"
        "\n"
        f"{_RULE}\n"
    )
    return "".join(parts)


def _atoi(text: str) -> int:
    """Parse a leading integer the lenient way; 0 if there is none."""
    stripped = text.lstrip()
    sign = 1
    if stripped[:1] in ("+", "-"):
        sign = -1 if stripped[0] == "-" else 1
        stripped = stripped[1:]
    digits = ""
    for ch in stripped:
        if not ch.isdigit():
            break
        digits += ch
    return sign * int(digits) if digits else 0


def main(argv: Sequence[str] | None = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        sys.stderr.write("Did you specify any data files on the command line!\n")
        sys.stderr.write("Usage: ./reader file1.dat [fileX.dat]*\n")
        return 255

    delimiter = " "
    fixed_width = 0
    i = 0
    while i < len(args) and args[i].startswith("-"):
        if args[i] == "--delimiter":
            i += 1
            if i >= len(args):
                sys.stderr.write("--delimiter needs a value\n")
                return 255
            delimiter = args[i][:1] or "\0"
        if i < len(args) and args[i] == "--fixed-width":
            i += 1
            if i >= len(args):
                sys.stderr.write("--fixed-width needs a value\n")
                return 255
            fixed_width = _atoi(args[i])
        i += 1

    try:
        total_time, kernels = load_data_files(args[i:])
    except (OSError, ValueError) as exc:
        sys.stderr.write(f"{exc}\n")
        return 1
    sys.stdout.write(format_report(total_time, kernels, delimiter, fixed_width))
    return 0


if __name__ == "__main__":
    sys.exit(main())