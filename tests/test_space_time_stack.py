import json

import pytest

from kptools.space_time_stack import (
    SpaceTimeStack,
    help_text,
    parse_args,
    process_hwm_report,
)
from kptools.stack import Space, StackKind


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def profiler(clock):
    return SpaceTimeStack(threshold=0.0, clock=clock)


def _run_simple(profiler, clock):
    clock.now = 1.0
    profiler.push_region("main")
    clock.now = 2.0
    kid = profiler.begin_kernel("work", StackKind.FOR)
    clock.now = 5.0
    profiler.end_kernel(kid)
    clock.now = 6.0
    profiler.pop_region()
    clock.now = 10.0


def test_tree_times(profiler, clock):
    _run_simple(profiler, clock)
    profiler.report()
    root = profiler.stack_root
    main = root.children[0]
    work = main.children[0]
    assert main.name == "main"
    assert work.name == "work"
    assert root.total_runtime == pytest.approx(clock.now)
    assert main.total_runtime == pytest.approx(6.0 - 1.0)
    assert work.total_runtime == pytest.approx(5.0 - 2.0)
    assert root.total_kokkos_runtime == pytest.approx(work.total_runtime)
    assert root.total_number_of_kernel_calls == 1


def test_kernel_ids_match_frames(profiler):
    kid = profiler.begin_kernel("k", StackKind.REDUCE)
    assert kid == id(profiler.stack_frame)
    profiler.end_kernel(kid)
    assert profiler.stack_frame is profiler.stack_root


def test_end_kernel_wrong_id(profiler):
    profiler.push_region("r")
    with pytest.raises(RuntimeError, match="to end, got different kernel ID"):
        profiler.end_kernel(12345)


def test_pop_without_region(profiler):
    with pytest.raises(RuntimeError):
        profiler.pop_region()


def test_finalize_with_open_region(profiler):
    profiler.push_region("outer")
    with pytest.raises(RuntimeError, match="Program ended before"):
        profiler.finalize()


def test_report_sections(profiler, clock, capsys):
    _run_simple(profiler, clock)
    text = profiler.finalize()
    assert capsys.readouterr().out == text
    assert text.startswith("\nBEGIN KOKKOS PROFILING REPORT:\n")
    assert text.endswith("END KOKKOS PROFILING REPORT.\n")
    assert "TOP-DOWN TIME TREE:" in text
    assert "BOTTOM-UP TIME TREE:" in text
    assert text.index("KOKKOS HOST SPACE:") < text.index("KOKKOS CUDA SPACE:")
    assert "work [for]" in text
    assert "main [region]" in text


def test_report_json_parses(profiler, clock):
    _run_simple(profiler, clock)
    data = json.loads(profiler.report_json())["space-time-stack-data"]
    names = [entry["name"] for entry in data]
    assert names == ["main", "work"]
    assert data[1]["parent-id"] == data[0]["id"]


def test_finalize_exports_json(profiler, clock, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("KOKKOS_PROFILE_EXPORT_JSON", "1")
    _run_simple(profiler, clock)
    text = profiler.finalize()
    assert (tmp_path / "noname.json").read_text() == text
    assert "space-time-stack-data" in json.loads(text)


def test_high_water_mark_kept(profiler):
    profiler.allocate(Space.HOST, "a", 0x10, 100)
    profiler.deallocate(Space.HOST, "a", 0x10, 100)
    profiler.allocate("Host", "b", 0x20, 50)
    assert profiler.current_allocations[Space.HOST].total_size == 50
    assert profiler.hwm_allocations[Space.HOST].total_size == 100
    assert [a.name for a in profiler.hwm_allocations[Space.HOST]] == ["a"]


def test_allocation_spaces_separate(profiler):
    profiler.allocate("Cuda", "dev", 0x10, 64)
    assert profiler.current_allocations[Space.CUDA].total_size == 64
    assert profiler.current_allocations[Space.HOST].total_size == 0


def test_allocate_unknown_space(profiler):
    with pytest.raises(ValueError):
        profiler.allocate("Mystery", "x", 0x10, 8)


def test_deep_copy_frame(profiler):
    profiler.begin_deep_copy(Space.HOST, "dst", Space.CUDA, "src")
    frame = profiler.stack_frame
    assert frame.kind == StackKind.COPY
    assert frame.name == '"dst"="src" (HOST->CUDA)'
    profiler.end_deep_copy()
    assert profiler.stack_frame is profiler.stack_root


def test_allocation_records_frame(profiler):
    profiler.push_region("phase")
    profiler.allocate(Space.HOST, "buf", 0x10, 1024)
    (allocation,) = list(profiler.current_allocations[Space.HOST])
    assert allocation.frame.full_name() == "phase"


def test_parse_args_default():
    assert parse_args(["exe"]) == 0.1


def test_parse_args_threshold():
    assert parse_args(["exe", "10"]) == 10.0
    assert parse_args(["exe", "2.5xyz"]) == 2.5
    assert parse_args(["exe", "junk"]) == 0.0


def test_parse_args_too_many(capsys):
    with pytest.raises(SystemExit) as info:
        parse_args(["prog", "1", "2"])
    assert info.value.code == 1
    assert capsys.readouterr().out == help_text("prog")


def test_help_text():
    text = help_text("prog")
    assert text.startswith("usage: prog[--kokkos-tools-args <threshold>]\n")
    assert "Default value: 0.1" in text


def test_process_hwm_report():
    text = process_hwm_report()
    assert text.startswith("Host process high water mark memory consumption: ")
    assert text.endswith(" kB\n\n")