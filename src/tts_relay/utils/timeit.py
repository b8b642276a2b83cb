"""
Timing helpers.

    with timeit("backend") as t:
        audio = client.synthesize(request)
    info(log, "synthesized", seconds=t.timing.seconds)

Deadline tracks a fixed budget across several blocking calls:

    deadline = Deadline(30.0)
    while not deadline.expired:
        frame = ws.recv(timeout=deadline.remaining)
"""
from __future__ import annotations

from dataclasses import dataclass
from time import monotonic, perf_counter
from typing import Any, Dict, Optional


@dataclass
class Timing:
    name: str
    seconds: float
    meta: Optional[Dict[str, Any]] = None


class timeit:
    """Context manager measuring wall-clock time of its block with perf_counter()."""

    def __init__(self, name: str, meta: Optional[Dict[str, Any]] = None):
        self.name = name
        self.meta = meta
        self._t0: float | None = None
        self.timing: Timing | None = None

    def __enter__(self) -> "timeit":
        self._t0 = perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        assert self._t0 is not None
        self.timing = Timing(name=self.name, seconds=(perf_counter() - self._t0), meta=self.meta)


class Deadline:
    """A point in monotonic time, `seconds` from construction."""

    def __init__(self, seconds: float):
        self.seconds = seconds
        self._end = monotonic() + seconds

    @property
    def remaining(self) -> float:
        return max(0.0, self._end - monotonic())

    @property
    def expired(self) -> bool:
        return monotonic() >= self._end
