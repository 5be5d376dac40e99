"""Per-kernel timing records and their binary and JSON forms."""

from __future__ import annotations

import struct
import time as _time
from dataclasses import dataclass, field
from enum import IntEnum
from typing import BinaryIO

_LENGTH = struct.Struct("<I")
_TAIL = struct.Struct("<QddI")


def seconds() -> float:
    """Return the current wall-clock time in seconds."""
    return _time.time()


class KernelExecutionType(IntEnum):
    """What kind of work a timed entry describes."""

    PARALLEL_FOR = 0
    PARALLEL_REDUCE = 1
    PARALLEL_SCAN = 2
    REGION = 3


_JSON_KIND_NAMES = {
    KernelExecutionType.PARALLEL_FOR: "PARALLEL-FOR",
    KernelExecutionType.PARALLEL_REDUCE: "PARALLEL-REDUCE",
}


@dataclass
class KernelPerformanceInfo:
    """Accumulated call count and time of one named kernel or region."""

    name: str
    kind: KernelExecutionType = KernelExecutionType.PARALLEL_FOR
    call_count: int = 0
    time: float = 0.0
    time_sq: float = 0.0
    _start_time: float = field(default=0.0, init=False, repr=False, compare=False)

    @property
    def time_per_call(self) -> float:
        return self.time / max(1, self.call_count)

    def increment_count(self) -> None:
        self.call_count += 1

    def add_time(self, t: float) -> None:
        self.time += t
        self.time_sq += t * t

    def add_call_count(self, calls: int) -> None:
        self.call_count += calls

    def start_timer(self) -> None:
        self._start_time = seconds()

    def add_from_timer(self) -> None:
        """Add the time elapsed since start_timer and count one call."""
        self.add_time(seconds() - self._start_time)
        self.increment_count()

    def to_record(self) -> bytes:
        """Encode as a length-prefixed binary record."""
        name_bytes = self.name.encode("utf-8", "surrogateescape")
        entry = (
            _LENGTH.pack(len(name_bytes))
            + name_bytes
            + _TAIL.pack(self.call_count, self.time, self.time_sq, int(self.kind))
        )
        return _LENGTH.pack(len(entry)) + entry

    def write_to(self, stream: BinaryIO) -> None:
        stream.write(self.to_record())

    @classmethod
    def read_from(cls, stream: BinaryIO) -> KernelPerformanceInfo | None:
        """Read one record; return None at the end of the stream."""
        header = stream.read(_LENGTH.size)
        if len(header) < _LENGTH.size:
            return None
        (record_len,) = _LENGTH.unpack(header)
        entry = stream.read(record_len)
        if len(entry) < record_len:
            raise ValueError("truncated kernel record")
        return cls._from_entry(entry)

    @classmethod
    def _from_entry(cls, entry: bytes) -> KernelPerformanceInfo:
        try:
            (name_len,) = _LENGTH.unpack_from(entry, 0)
            name_end = _LENGTH.size + name_len
            if name_end > len(entry):
                raise ValueError("kernel name runs past the record")
            name = entry[_LENGTH.size:name_end].decode("utf-8", "surrogateescape")
            call_count, total, total_sq, raw_kind = _TAIL.unpack_from(entry, name_end)
        except struct.error as exc:
            raise ValueError(f"malformed kernel record: {exc}") from exc
        try:
            kind = KernelExecutionType(raw_kind)
        except ValueError:
            kind = KernelExecutionType.PARALLEL_FOR
        return cls(name, kind, call_count, total, total_sq)

    def to_json(self, indent: str = "") -> str:
        """Render as a JSON object, indented by the given prefix."""
        inner = indent + "    "
        kind_name = _JSON_KIND_NAMES.get(self.kind, "PARALLEL-SCAN")
        return (
            f"{indent}{{\n"
            f'{inner}"kernel-name"    : "{self.name}",\n'
            f'{inner}"call-count"     : {self.call_count},\n'
            f'{inner}"total-time"     : {self.time:f},\n'
            f'{inner}"time-per-call"  : {self.time_per_call:16.8f},\n'
            f'{inner}"kernel-type"    : "{kind_name}"\n'
            f"{indent}}}"
        )