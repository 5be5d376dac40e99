import copy

import pytest

from kptools.allocations import Allocations
from kptools.stack import StackKind, StackNode


@pytest.fixture
def root():
    return StackNode(None, "", StackKind.REGION)


@pytest.fixture
def outer(root):
    return root.get_child("outer", StackKind.REGION)


def test_allocate_sums_sizes(root):
    allocs = Allocations()
    allocs.allocate("a", 0x10, 100, root)
    allocs.allocate("b", 0x20, 300, root)
    assert allocs.total_size == 400
    assert len(allocs) == 2


def test_duplicate_allocation_rejected(root):
    allocs = Allocations()
    allocs.allocate("a", 0x10, 100, root)
    with pytest.raises(ValueError):
        allocs.allocate("again", 0x10, 100, root)
    assert allocs.total_size == 100


def test_iteration_largest_first_then_address(root):
    allocs = Allocations()
    allocs.allocate("small", 0x30, 10, root)
    allocs.allocate("big_hi", 0x20, 50, root)
    allocs.allocate("big_lo", 0x10, 50, root)
    assert [a.name for a in allocs] == ["big_lo", "big_hi", "small"]


def test_deallocate_removes(root):
    allocs = Allocations()
    allocs.allocate("a", 0x10, 100, root)
    allocs.allocate("b", 0x20, 40, root)
    removed = allocs.deallocate("a", 0x10, 100, root)
    assert removed.name == "a"
    assert allocs.total_size == 40
    assert [a.name for a in allocs] == ["b"]


def test_deallocate_unknown_warns(root, outer, capsys):
    allocs = Allocations()
    allocs.allocate("a", 0x10, 100, root)
    assert allocs.deallocate("ghost", 0x99, 7, outer) is None
    err = capsys.readouterr().err
    assert "WARNING! allocation(\"ghost\"" in err
    assert '"outer"' in err
    assert "was not in the currently allocated set!" in err
    assert allocs.total_size == 100


def test_render_single_allocation(outer):
    allocs = Allocations()
    allocs.allocate("buf", 0x10, 1024, outer)
    assert allocs.render() == (
        "MAX MEMORY ALLOCATED: 1.0 kB\n"
        "ALLOCATIONS AT TIME OF HIGH WATER MARK:\n"
        "  100.0% outer/buf\n"
        "\n"
    )


def test_render_root_frame_uses_bare_name(root):
    allocs = Allocations()
    allocs.allocate("top", 0x10, 2048, root)
    lines = allocs.render().splitlines()
    assert lines[2].endswith("% top")


def test_render_hides_tiny_allocations(root):
    allocs = Allocations()
    allocs.allocate("huge", 0x10, 1_000_000, root)
    allocs.allocate("tiny", 0x20, 1, root)
    text = allocs.render()
    assert "huge" in text
    assert "tiny" not in text


def test_copy_is_independent(root):
    allocs = Allocations()
    allocs.allocate("a", 0x10, 100, root)
    snapshot = copy.copy(allocs)
    allocs.allocate("b", 0x20, 50, root)
    assert snapshot.total_size == 100
    assert [a.name for a in snapshot] == ["a"]
    assert allocs.total_size == 150