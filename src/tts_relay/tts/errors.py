"""
Backend failure kinds.

    BackendError
    ├── TransportError   connect refused, handshake/read timeout, unexpected close
    └── ProtocolError    malformed frame, end of stream without audio
"""
from __future__ import annotations


class BackendError(Exception):
    """A synthesis session with the backend did not produce audio."""

    def __init__(self, message: str, state: str | None = None):
        super().__init__(message)
        self.message = message
        self.state = state


class TransportError(BackendError):
    pass


class ProtocolError(BackendError):
    pass
