"""Space-time stack profiler: call tree timings and memory high-water marks."""

from __future__ import annotations

import copy
import os
import re
import sys
import time
from collections.abc import Callable, Sequence
from pathlib import Path

try:
    import resource
except ImportError:  # not available on every platform
    resource = None  # type: ignore[assignment]

from kptools.allocations import Allocations
from kptools.stack import Space, StackKind, StackNode, get_space, space_name

DEFAULT_THRESHOLD = 0.1

_TOP_DOWN_HEADER = (
    "<average time> <percent of total time> <percent time in Kokkos> "
    "<percent MPI imbalance> <remainder> <kernels per second> "
    "<number of calls> <name> [type]\n"
)
_BOTTOM_UP_HEADER = (
    "<average time> <percent of total time> <percent time in Kokkos> "
    "<percent MPI imbalance> <number of calls> <name> [type]\n"
)
_RULE = "===================\n"

_USAGE = """
Default value: 0.1

Description:
  Provide a decimal threshold value of percent of parent time for output.  
  Timers below this threshold will not be output.  Set to 0 to get unfiltered
  reports.

Example:
  The following example would set the threshold to 10%
    <exe> [--kokkos-tools-args 10 ]
"""

_FLOAT_PREFIX = re.compile(
    r"\s*[+-]?(?:inf(?:inity)?|nan|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)",
    re.IGNORECASE,
)


def _as_space(space: Space | int | str) -> Space:
    return get_space(space) if isinstance(space, str) else Space(space)


class SpaceTimeStack:
    """Tracks the kernel/region call tree and per-space memory allocations."""

    def __init__(
        self,
        threshold: float = DEFAULT_THRESHOLD,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.threshold = threshold
        self.clock = clock or time.perf_counter
        self.stack_root = StackNode(None, "", StackKind.REGION)
        self.stack_frame = self.stack_root
        self.current_allocations = [Allocations() for _ in Space]
        self.hwm_allocations = [Allocations() for _ in Space]
        self._closed = False
        self._inverted: StackNode | None = None
        self.stack_frame.begin(self.clock())

    def _begin_frame(self, name: str, kind: StackKind) -> StackNode:
        self.stack_frame = self.stack_frame.get_child(name, kind)
        self.stack_frame.begin(self.clock())
        return self.stack_frame

    def _end_frame(self, end_time: float) -> None:
        if self.stack_frame.parent is None:
            raise RuntimeError("no open frame to end")
        self.stack_frame.end(end_time)
        self.stack_frame = self.stack_frame.parent

    def begin_kernel(self, name: str, kind: StackKind) -> int:
        """Open a kernel frame and return the id that must close it."""
        return id(self._begin_frame(name, StackKind(kind)))

    def end_kernel(self, kernel_id: int) -> None:
        end_time = self.clock()
        if kernel_id != id(self.stack_frame):
            raise RuntimeError(
                f'Expected "{self.stack_frame.full_name()}" to end, '
                "got different kernel ID"
            )
        self._end_frame(end_time)

    def push_region(self, name: str) -> None:
        self._begin_frame(name, StackKind.REGION)

    def pop_region(self) -> None:
        self._end_frame(self.clock())

    def allocate(self, space: Space | int | str, name: str, ptr: int, size: int) -> None:
        index = _as_space(space)
        current = self.current_allocations[index]
        current.allocate(name, ptr, size, self.stack_frame)
        if current.total_size > self.hwm_allocations[index].total_size:
            self.hwm_allocations[index] = copy.copy(current)

    def deallocate(self, space: Space | int | str, name: str, ptr: int, size: int) -> None:
        index = _as_space(space)
        self.current_allocations[index].deallocate(name, ptr, size, self.stack_frame)

    def begin_deep_copy(
        self,
        dst_space: Space | int | str,
        dst_name: str,
        src_space: Space | int | str,
        src_name: str,
    ) -> None:
        frame_name = (
            f'"{dst_name}"="{src_name}" '
            f"({space_name(_as_space(dst_space))}->{space_name(_as_space(src_space))})"
        )
        self._begin_frame(frame_name, StackKind.COPY)

    def end_deep_copy(self) -> None:
        self._end_frame(self.clock())

    def _close(self) -> None:
        if self._closed:
            return
        end_time = self.clock()
        if self.stack_frame is not self.stack_root:
            raise RuntimeError(
                f'Program ended before "{self.stack_frame.full_name()}" ended'
            )
        self.stack_root.end(end_time)
        self.stack_root.adopt()
        self.stack_root.reduce()
        self._closed = True

    @property
    def inverted(self) -> StackNode:
        """The bottom-up tree of the closed call tree."""
        self._close()
        if self._inverted is None:
            self._inverted = self.stack_root.invert()
            self._inverted.reduce()
        return self._inverted

    def report_json(self) -> str:
        """Close the tree and render it as JSON."""
        self._close()
        return self.stack_root.render_json(self.threshold)

    def report(self) -> str:
        """Close the tree and render the full text report."""
        self._close()
        parts = [
            "\nBEGIN KOKKOS PROFILING REPORT:\n",
            f"TOTAL TIME: {self.stack_root.max_runtime:g} seconds\n",
            "TOP-DOWN TIME TREE:\n",
            _TOP_DOWN_HEADER,
            _RULE,
            self.stack_root.render(self.threshold),
            "BOTTOM-UP TIME TREE:\n",
            _BOTTOM_UP_HEADER,
            _RULE,
            self.inverted.render(self.threshold),
        ]
        for space in Space:
            parts.append(f"KOKKOS {space_name(space)} SPACE:\n")
            parts.append(_RULE)
            parts.append(self.hwm_allocations[space].render())
        parts.append(process_hwm_report())
        parts.append("END KOKKOS PROFILING REPORT.\n")
        return "".join(parts)

    def finalize(self) -> str:
        """Close the tree and emit the results; return what was emitted.

        With KOKKOS_PROFILE_EXPORT_JSON set, the JSON tree goes to noname.json
        in the working directory; otherwise the text report goes to stdout.
        """
        self._close()
        if "KOKKOS_PROFILE_EXPORT_JSON" in os.environ:
            text = self.report_json()
            Path("noname.json").write_text(text)
            return text
        text = self.report()
        sys.stdout.write(text)
        sys.stdout.flush()
        return text


def process_hwm_report() -> str:
    """Report the peak resident memory of this process."""
    hwm = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss if resource else 0
    return f"Host process high water mark memory consumption: {hwm} kB\n\n"


def help_text(exe: str) -> str:
    return f"usage: {exe}[--kokkos-tools-args <threshold>]\n{_USAGE}"


def _strtod(text: str) -> float:
    match = _FLOAT_PREFIX.match(text)
    return float(match.group()) if match else 0.0


def parse_args(argv: Sequence[str]) -> float:
    """Return the output threshold from tool arguments (argv[0] is the program).

    More than one argument prints the help and exits with status 1.
    """
    if len(argv) <= 1:
        return DEFAULT_THRESHOLD
    if len(argv) == 2:
        return _strtod(argv[1])
    sys.stdout.write(help_text(argv[0]))
    raise SystemExit(1)