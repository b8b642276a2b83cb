"""
Key-scoped coalescing of identical in-flight syntheses.

When several requests miss the cache for the same content key at once,
the first one (the leader) runs the miss path; the rest (followers) wait
for it and share its outcome, result or exception alike. A follower that
waits longer than wait_timeout_s stops waiting and runs the miss path on
its own.

    registry = InflightRegistry(wait_timeout_s=60.0)
    outcome = registry.run(content_key, lambda: synthesize_and_store(request))
    outcome.value, outcome.shared

A disabled registry runs every call directly.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, Generic, Optional, TypeVar

from tts_relay.core.config import Defaults
from tts_relay.core.logging import get_logger, verbose, warn
from tts_relay.core.metrics import metrics

_LOG = get_logger("tts-relay.concurrency")

T = TypeVar("T")


@dataclass
class _Call:
    done: threading.Event = field(default_factory=threading.Event)
    value: object = None
    error: Optional[BaseException] = None
    followers: int = 0


@dataclass
class Outcome(Generic[T]):
    value: T
    shared: bool = False


class InflightRegistry:
    def __init__(self, wait_timeout_s: float = Defaults.COALESCING_WAIT_TIMEOUT_S, enabled: bool = True):
        self.wait_timeout_s = wait_timeout_s
        self.enabled = enabled
        self._calls: Dict[str, _Call] = {}
        self._lock = threading.Lock()
        self._coalesced = 0
        self._timeouts = 0

    def run(self, key: str, fn: Callable[[], T]) -> Outcome[T]:
        """
        Run fn for key, or wait for the identical call already running.

        Raises:
            Whatever fn raises; followers re-raise the leader's exception.
        """
        if not self.enabled:
            return Outcome(fn())

        with self._lock:
            call = self._calls.get(key)
            leader = call is None
            if leader:
                call = _Call()
                self._calls[key] = call
                metrics.set_inflight(len(self._calls))
            else:
                call.followers += 1

        if leader:
            return self._lead(key, call, fn)
        return self._follow(key, call, fn)

    def _lead(self, key: str, call: _Call, fn: Callable[[], T]) -> Outcome[T]:
        try:
            call.value = fn()
            return Outcome(call.value)  # type: ignore[arg-type]
        except BaseException as e:
            call.error = e
            raise
        finally:
            with self._lock:
                self._calls.pop(key, None)
                metrics.set_inflight(len(self._calls))
            call.done.set()
            if call.followers:
                verbose(_LOG, "coalesced", key=key[:8], followers=call.followers)

    def _follow(self, key: str, call: _Call, fn: Callable[[], T]) -> Outcome[T]:
        if not call.done.wait(self.wait_timeout_s):
            with self._lock:
                self._timeouts += 1
            warn(_LOG, "coalesce_timeout", key=key[:8], waited_s=self.wait_timeout_s)
            return Outcome(fn())

        with self._lock:
            self._coalesced += 1
        metrics.inc_coalesced()
        if call.error is not None:
            raise call.error
        return Outcome(call.value, shared=True)  # type: ignore[arg-type]

    def inflight(self) -> int:
        with self._lock:
            return len(self._calls)

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "enabled": int(self.enabled),
                "inflight": len(self._calls),
                "coalesced": self._coalesced,
                "timeouts": self._timeouts,
            }
