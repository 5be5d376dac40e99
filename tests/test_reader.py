import struct

import pytest

from kptools.kernel_info import KernelExecutionType, KernelPerformanceInfo
from kptools.reader import format_report, main


def _write(path, exec_time, kernels):
    with open(path, "wb") as stream:
        stream.write(struct.pack("<d", exec_time))
        for kernel in kernels:
            kernel.write_to(stream)
    return path


def _kernels():
    return [
        KernelPerformanceInfo("small", KernelExecutionType.PARALLEL_FOR, 3, 1.0, 1.0),
        KernelPerformanceInfo("big", KernelExecutionType.PARALLEL_SCAN, 4, 2.0, 1.0),
        KernelPerformanceInfo("outer", KernelExecutionType.REGION, 1, 5.0, 25.0),
    ]


def _section(report, start, end):
    return report.split(start, 1)[1].split(end, 1)[0]


def test_regions_and_kernels_in_their_sections():
    report = format_report(10.0, _kernels())
    regions = _section(report, "Regions:", "Kernels:")
    kernels = _section(report, "Kernels:", "Summary:")
    assert "- outer" in regions
    assert " (REGION)  " in regions
    assert "- outer" not in kernels
    assert "- big" in kernels and "- small" in kernels


def test_kernels_sorted_by_time_descending():
    report = format_report(10.0, _kernels())
    kernels = _section(report, "Kernels:", "Summary:")
    assert kernels.index("- big") < kernels.index("- small")


def test_delimited_row_values():
    report = format_report(10.0, _kernels(), delimiter=",")
    lines = report.splitlines()
    row = lines[lines.index("- big") + 1]
    parts = row.split(",")
    assert parts[0] == " (ParScan) "
    assert float(parts[1]) == pytest.approx(2.0)
    assert int(parts[2]) == 4
    assert float(parts[3]) == pytest.approx(float(parts[1]) / int(parts[2]))


def test_fixed_width_layout():
    report = format_report(10.0, _kernels(), fixed_width=1)
    lines = report.splitlines()
    name_line = next(line for line in lines if line.endswith(" big"))
    assert len(name_line) == 102
    assert " (Region)  " in report
    assert " (REGION)  " not in report


def test_regions_do_not_count_towards_totals():
    kernels = _kernels()
    report = format_report(10.0, kernels)
    calls_line = next(
        line for line in report.splitlines() if line.startswith("Total Calls to Kokkos Kernels:")
    )
    expected = sum(k.call_count for k in kernels if k.kind != KernelExecutionType.REGION)
    assert int(calls_line.split(":")[1]) == expected


def test_main_without_arguments_prints_usage(capsys):
    assert main([]) == 255
    assert "Usage: ./reader file1.dat [fileX.dat]*" in capsys.readouterr().err


def test_main_merges_files(tmp_path, capsys):
    t1, t2 = 1.0, 2.0
    c1, c2 = 3, 4
    first = _write(
        tmp_path / "a.dat", t1,
        [KernelPerformanceInfo("k", KernelExecutionType.PARALLEL_FOR, c1, 0.25, 0.0)],
    )
    second = _write(
        tmp_path / "b.dat", t2,
        [KernelPerformanceInfo("k", KernelExecutionType.PARALLEL_FOR, c2, 0.5, 0.0)],
    )
    assert main([str(first), str(second)]) == 0
    out = capsys.readouterr().out
    lines = out.splitlines()
    total_line = next(line for line in lines if line.startswith("Total Execution Time"))
    calls_line = next(line for line in lines if line.startswith("Total Calls"))
    assert float(total_line.split(":")[1].split()[0]) == pytest.approx(t1 + t2)
    assert int(calls_line.split(":")[1]) == c1 + c2
    assert lines.count("- k") == 1


def test_main_options(tmp_path, capsys):
    path = _write(tmp_path / "a.dat", 4.0, _kernels())
    assert main(["--delimiter", ";", "--fixed-width", "0", str(path)]) == 0
    out = capsys.readouterr().out
    lines = out.splitlines()
    row = lines[lines.index("- small") + 1]
    assert row.startswith(" (ParFor)  ;")
    assert len(row.split(";")) == 6


def test_main_missing_file_reports_error(tmp_path, capsys):
    assert main([str(tmp_path / "missing.dat")]) == 1
    assert capsys.readouterr().err