"""Call-stack tree of kernels and regions with timing roll-ups and reports."""

from __future__ import annotations

import math
from collections import deque
from enum import IntEnum


class Space(IntEnum):
    """Memory space a Kokkos allocation or copy belongs to."""

    HOST = 0
    CUDA = 1
    HIP = 2
    SYCL = 3
    OMPT = 4


class StackKind(IntEnum):
    """What a stack frame stands for."""

    FOR = 0
    REDUCE = 1
    SCAN = 2
    REGION = 3
    COPY = 4


_SPACE_NAMES = {
    Space.HOST: "HOST",
    Space.CUDA: "CUDA",
    Space.SYCL: "SYCL",
    Space.OMPT: "OpenMPTarget",
    Space.HIP: "HIP",
}

_KIND_NAMES = {
    StackKind.FOR: "for",
    StackKind.REDUCE: "reduce",
    StackKind.SCAN: "scan",
    StackKind.REGION: "region",
    StackKind.COPY: "copy",
}


def get_space(name: str) -> Space:
    """Map a memory space handle name to its Space; raise ValueError if unknown."""
    if name.startswith("Cuda"):
        return Space.CUDA
    if name.startswith("SYCL"):
        return Space.SYCL
    if name.startswith("OpenMPTarget"):
        return Space.OMPT
    if name.startswith("HIP"):
        return Space.HIP
    if name == "Host":
        return Space.HOST
    raise ValueError(f"unknown memory space {name!r}")


def space_name(space: int) -> str:
    """Return the report name of a memory space."""
    return _SPACE_NAMES[Space(space)]


def _ratio(numerator: float, denominator: float) -> float:
    """Divide like IEEE doubles do: x/0 is +-inf, 0/0 is nan."""
    if denominator:
        return numerator / denominator
    if numerator == 0 or math.isnan(numerator):
        return math.nan
    return math.copysign(math.inf, numerator)


def _node_id(node: StackNode | None) -> str:
    return "0" if node is None else f"{id(node):#x}"


class StackNode:
    """One frame of the call tree, with accumulated time and call counts."""

    def __init__(self, parent: StackNode | None, name: str, kind: StackKind) -> None:
        self.parent = parent
        self.name = name
        self.kind = StackKind(kind)
        self._children: dict[tuple[StackKind, str], StackNode] = {}
        self.total_runtime = 0.0
        self.total_kokkos_runtime = 0.0
        self.max_runtime = 0.0
        self.avg_runtime = 0.0
        self.number_of_calls = 0
        # Kernel calls (not region calls) at and below this node.
        self.total_number_of_kernel_calls = 0
        self.start_time = 0.0

    def __repr__(self) -> str:
        return f"StackNode({self.name!r}, {self.kind.name})"

    @property
    def children(self) -> list[StackNode]:
        """Children ordered by kind, then by name."""
        return [self._children[key] for key in sorted(self._children)]

    def get_child(self, name: str, kind: StackKind) -> StackNode:
        """Return the child with this name and kind, creating it if needed."""
        key = (StackKind(kind), name)
        child = self._children.get(key)
        if child is None:
            child = StackNode(self, name, kind)
            self._children[key] = child
        return child

    def full_name(self) -> str:
        """Slash-separated path from the root, skipping an unnamed root."""
        parts = [self.name]
        node = self.parent
        while node is not None:
            if not (node.name == "" and node.parent is None):
                parts.append(node.name)
            node = node.parent
        return "/".join(reversed(parts))

    def begin(self, now: float) -> None:
        self.number_of_calls += 1
        if self.kind != StackKind.REGION:
            self.total_number_of_kernel_calls += 1
        self.start_time = now

    def end(self, end_time: float) -> None:
        self.total_runtime += end_time - self.start_time

    def adopt(self) -> None:
        """Roll kernel time and kernel call counts up from the children."""
        if self.kind != StackKind.REGION:
            self.total_kokkos_runtime += self.total_runtime
        for child in self.children:
            child.adopt()
            self.total_kokkos_runtime += child.total_kokkos_runtime
            self.total_number_of_kernel_calls += child.total_number_of_kernel_calls

    def invert(self) -> StackNode:
        """Build the bottom-up tree: each frame's self time under its callers."""
        inv_root = StackNode(None, "", StackKind.REGION)
        queue: deque[StackNode] = deque([self])
        while queue:
            node = queue.popleft()
            self_time = node.total_runtime
            self_kokkos_time = node.total_kokkos_runtime
            calls = node.number_of_calls
            for child in node.children:
                self_time -= child.total_runtime
                self_kokkos_time -= child.total_kokkos_runtime
                queue.append(child)
            # Floating point may leave a tiny negative instead of zero.
            self_time = max(self_time, 0.0)
            self_kokkos_time = max(self_kokkos_time, 0.0)
            inv_node = inv_root
            inv_node._accumulate(self_time, calls, self_kokkos_time)
            walker: StackNode | None = node
            while walker is not None:
                inv_node = inv_node.get_child(walker.name, walker.kind)
                inv_node._accumulate(self_time, calls, self_kokkos_time)
                walker = walker.parent
        return inv_root

    def _accumulate(self, runtime: float, calls: int, kokkos_runtime: float) -> None:
        self.total_runtime += runtime
        self.number_of_calls += calls
        self.total_kokkos_runtime += kokkos_runtime

    def reduce(self) -> None:
        """Set max and average runtimes for a single process."""
        pending = [self]
        while pending:
            node = pending.pop()
            node.max_runtime = node.total_runtime
            node.avg_runtime = node.total_runtime
            pending.extend(node.children)

    def _children_by_time(self) -> list[StackNode]:
        return sorted(self.children, key=lambda c: (-c.total_runtime, c.name))

    def _region_stats(self) -> tuple[float, float]:
        child_runtime = sum(child.total_runtime for child in self.children)
        remainder = (1.0 - _ratio(child_runtime, self.total_runtime)) * 100.0
        kps = _ratio(float(self.total_number_of_kernel_calls), self.avg_runtime)
        return remainder, kps

    def render(self, threshold: float = 0.1) -> str:
        """Render the tree as indented text, hiding frames under threshold percent."""
        lines: list[str] = []
        self._render(lines, "", "", self.total_runtime, threshold)
        return "".join(lines) + "\n"

    def _render(
        self,
        out: list[str],
        my_indent: str,
        child_indent: str,
        tree_time: float,
        threshold: float,
    ) -> None:
        percent = _ratio(self.total_runtime, tree_time) * 100.0
        if percent < threshold:
            return
        if self.name:
            imbalance = (_ratio(self.max_runtime, self.avg_runtime) - 1.0) * 100.0
            percent_kokkos = _ratio(self.total_kokkos_runtime, self.total_runtime) * 100.0
            line = f"{my_indent}{self.avg_runtime:.2e} sec "
            if self.kind == StackKind.REGION:
                remainder, kps = self._region_stats()
                line += (
                    f"{percent:.1f}% {percent_kokkos:.1f}% {imbalance:.1f}% "
                    f"{remainder:.1f}% {kps:.2e} {self.number_of_calls} {self.name}"
                )
            else:
                line += (
                    f"{percent:.1f}% {percent_kokkos:.1f}% {imbalance:.1f}% "
                    f"------ {self.number_of_calls} {self.name}"
                )
            out.append(f"{line} [{_KIND_NAMES[self.kind]}]\n")
        ordered = self._children_by_time()
        for position, child in enumerate(ordered):
            is_last = position == len(ordered) - 1
            grandchild_indent = child_indent + ("    " if is_last else "|   ")
            child._render(out, child_indent + "|-> ", grandchild_indent, tree_time, threshold)

    def render_json(self, threshold: float = 0.1) -> str:
        """Render the tree as a flat JSON list of frames linked by ids."""
        entries: list[str] = []
        self._render_json(entries, None, self.total_runtime, threshold)
        return (
            '{\n"space-time-stack-data" : [\n'
            + ",\n".join(entries)
            + "\n]\n}\n"
        )

    def _render_json(
        self,
        out: list[str],
        parent: StackNode | None,
        tree_time: float,
        threshold: float,
    ) -> None:
        percent = _ratio(self.total_runtime, tree_time) * 100.0
        if percent < threshold:
            return
        if self.name:
            imbalance = (_ratio(self.max_runtime, self.avg_runtime) - 1.0) * 100.0
            percent_kokkos = _ratio(self.total_kokkos_runtime, self.total_runtime) * 100.0
            fields = [
                f'"average-time" : {self.avg_runtime:.2e}',
                f'"percent" : {percent:.1f}',
                f'"percent-kokkos" : {percent_kokkos:.1f}',
                f'"imbalance" : {imbalance:.1f}',
            ]
            if self.kind == StackKind.REGION:
                remainder, kps = self._region_stats()
                fields.append(f'"remainder" : {remainder:.1f}')
                fields.append(f'"kernels-per-second" : {kps:.2e}')
            else:
                fields.append('"remainder" : "N/A"')
                fields.append('"kernels-per-second" : "N/A"')
            escaped = self.name.replace('"', '\\"')
            fields.extend(
                [
                    f'"number-of-calls" : {self.number_of_calls}',
                    f'"name" : "{escaped}"',
                    f'"parent-id" : "{_node_id(parent)}"',
                    f'"id" : "{_node_id(self)}"',
                    f'"kernel-type" : "{_KIND_NAMES[self.kind]}"',
                ]
            )
            out.append("{\n" + ",\n".join(fields) + "\n}")
        for child in self._children_by_time():
            child._render_json(out, self, tree_time, threshold)