"""Shared fixtures: temporary settings and a scripted backend connection."""
from __future__ import annotations

import struct
from typing import List, Optional, Union
from unittest.mock import MagicMock

import pytest

from tts_relay.core.config import Settings
from tts_relay.services.tts_service import TTSService, reset_service
from tts_relay.tts.cache import MemoryFastCache

AUDIO_HEADERS = b"X-RequestId:5b7a1c\r\nContent-Type:audio/mpeg\r\nPath:audio\r\n"


def text_frame(path: str, body: str = "") -> str:
    return (
        "X-RequestId:5b7a1c\r\n"
        "Content-Type:application/json; charset=utf-8\r\n"
        f"Path:{path}\r\n"
        "\r\n"
        f"{body}"
    )


def audio_frame(payload: bytes, prefixed: bool = True) -> bytes:
    if prefixed:
        return struct.pack(">H", len(AUDIO_HEADERS)) + AUDIO_HEADERS + payload
    return AUDIO_HEADERS + b"\r\n" + payload


class FakeConnection:
    """
    Replays scripted messages from recv().

    Exceptions in the script are raised instead of returned; an exhausted
    script behaves like a silent backend (TimeoutError).
    """

    def __init__(self, messages: List[Union[str, bytes, BaseException]]):
        self.messages = list(messages)
        self.sent: List[Union[str, bytes]] = []
        self.closed = False

    def send(self, message):
        self.sent.append(message)

    def recv(self, timeout: Optional[float] = None):
        if not self.messages:
            raise TimeoutError("timed out during recv")
        item = self.messages.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def close(self):
        self.closed = True


class FakeConnector:
    """connect_fn that hands out one FakeConnection and records the call."""

    def __init__(self, connection: FakeConnection):
        self.connection = connection
        self.calls: List[dict] = []

    def __call__(self, url, **kwargs):
        self.calls.append({"url": url, **kwargs})
        return self.connection


@pytest.fixture
def settings(tmp_path):
    return Settings(raw={
        "tts": {"default_voice": "en-US-JennyNeural", "default_format": "mp3"},
        "storage": {"base_dir": str(tmp_path / "audio"), "cleanup_hours": 168},
        "database": {"path": str(tmp_path / "db" / "tts_cache.db")},
        "fast_cache": {"backend": "memory", "ttl_seconds": 3600, "max_items": 16},
        "coalescing": {"enabled": True, "wait_timeout_s": 5},
        "logging": {"level": 1, "text_preview_chars": 20},
    })


@pytest.fixture
def clock():
    """Settable clock: clock.now is returned by clock()."""
    class _Clock:
        now = 1_700_000_000.0

        def __call__(self):
            return self.now

    return _Clock()


@pytest.fixture
def mock_client():
    client = MagicMock()
    client.synthesize.return_value = b"ID3" + b"\x00" * 64
    return client


@pytest.fixture
def service(settings, mock_client, clock):
    svc = TTSService(
        settings,
        client=mock_client,
        fast_cache=MemoryFastCache(max_items=16, clock=clock),
        clock=clock,
    )
    yield svc
    svc.sweeper.join(5)
    reset_service()
