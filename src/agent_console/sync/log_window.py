from __future__ import annotations

from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass

DEFAULT_HEAD_CAPACITY = 100
DEFAULT_TAIL_CAPACITY = 100


@dataclass(frozen=True)
class LogBuffer:
    first: tuple[str, ...] = ()
    last: tuple[str, ...] = ()
    total: int = 0

    def to_payload(self) -> dict[str, object]:
        return {"first": list(self.first), "last": list(self.last), "total": self.total}


def omitted_marker(count: int) -> str:
    noun = "line" if count == 1 else "lines"
    return f"{count} {noun} omitted"


def _unique_tail(buffer: LogBuffer) -> list[str]:
    # Short runs can land in both windows; a tail line equal to any head line
    # is treated as already shown.
    head = set(buffer.first)
    return [line for line in buffer.last if line not in head]


def render_log_buffer(buffer: LogBuffer) -> list[str]:
    """Flatten a buffer into head lines, an omission marker, and tail lines."""
    tail = _unique_tail(buffer)
    rendered = list(buffer.first)
    omitted = omitted_count(buffer)
    if omitted > 0:
        rendered.append(omitted_marker(omitted))
    rendered.extend(tail)
    return rendered


def omitted_count(buffer: LogBuffer) -> int:
    if buffer.total <= len(buffer.first) + len(buffer.last):
        return 0
    return buffer.total - len(buffer.first) - len(_unique_tail(buffer))


class LogWindow:
    """Bounded view over an unbounded line stream.

    The first ``head_capacity`` lines are kept verbatim; after that only the
    most recent ``tail_capacity`` lines are retained, plus a running total so
    the renderer can say how much was skipped.
    """

    def __init__(
        self,
        *,
        head_capacity: int = DEFAULT_HEAD_CAPACITY,
        tail_capacity: int = DEFAULT_TAIL_CAPACITY,
    ) -> None:
        if head_capacity < 1 or tail_capacity < 1:
            raise ValueError("log window capacities must be positive")
        self.head_capacity = head_capacity
        self.tail_capacity = tail_capacity
        self._first: list[str] = []
        self._last: deque[str] = deque(maxlen=tail_capacity)
        self._total = 0

    @property
    def capacity(self) -> int:
        return self.head_capacity + self.tail_capacity

    @property
    def total(self) -> int:
        return self._total

    @property
    def truncated(self) -> bool:
        return self._total > self.capacity

    def append(self, line: str) -> None:
        self._total += 1
        if len(self._first) < self.head_capacity:
            self._first.append(line)
            return
        self._last.append(line)

    def extend(self, lines: Iterable[str]) -> None:
        for line in lines:
            self.append(line)

    def clear(self) -> None:
        self._first.clear()
        self._last.clear()
        self._total = 0

    def snapshot(self) -> LogBuffer:
        return LogBuffer(first=tuple(self._first), last=tuple(self._last), total=self._total)

    def render(self) -> list[str]:
        return render_log_buffer(self.snapshot())

    def __len__(self) -> int:
        return len(self._first) + len(self._last)


__all__ = [
    "DEFAULT_HEAD_CAPACITY",
    "DEFAULT_TAIL_CAPACITY",
    "LogBuffer",
    "LogWindow",
    "omitted_count",
    "omitted_marker",
    "render_log_buffer",
]
