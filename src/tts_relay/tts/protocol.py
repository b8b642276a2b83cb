"""
Streaming protocol client for the Edge read-aloud backend.

One synthesize() call is one websocket session:

    DISCONNECTED -> CONNECTED -> CONFIG_SENT -> CONTENT_SENT -> STREAMING
                                                                 |
                                                     COMPLETED <-+-> FAILED

The client sends a speech.config frame and an ssml frame, then reads frames
until Path:turn.end. Audio payloads are appended in arrival order; nothing
is reordered or deduplicated. The whole receive loop shares one deadline
(backend.receive_timeout_s). There is no retry: any failure is raised to
the caller as a BackendError.

The connection factory is injectable so tests can script the backend:

    client = ProtocolClient(config, connect_fn=lambda url, **kw: FakeConnection([...]))
"""
from __future__ import annotations

import uuid
from enum import Enum
from typing import Callable, Dict, Optional, Protocol, Union

from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.sync.client import connect

from tts_relay.core.config import BackendConfig
from tts_relay.core.logging import debug, get_logger, info, verbose, warn
from tts_relay.core.metrics import metrics
from tts_relay.tts import endpoint
from tts_relay.tts.errors import BackendError, ProtocolError, TransportError
from tts_relay.tts.frames import (
    config_frame,
    parse_binary_frame,
    parse_text_frame,
    ssml_frame,
)
from tts_relay.tts.ssml import build_ssml
from tts_relay.utils.timeit import Deadline, timeit

_LOG = get_logger("tts-relay.protocol")


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    CONFIG_SENT = "config_sent"
    CONTENT_SENT = "content_sent"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


class Connection(Protocol):
    """The part of websockets' sync ClientConnection the session uses."""

    def send(self, message: Union[str, bytes]) -> None: ...

    def recv(self, timeout: Optional[float] = None) -> Union[str, bytes]: ...

    def close(self) -> None: ...


ConnectFn = Callable[..., Connection]


def websocket_connect(
    url: str,
    *,
    headers: Dict[str, str],
    origin: str,
    user_agent: str,
    timeout: float,
) -> Connection:
    return connect(
        url,
        additional_headers=headers,
        origin=origin,
        user_agent_header=user_agent,
        open_timeout=timeout,
        compression="deflate",
        max_size=None,
    )


class StreamSession:
    """
    A single connect/send/receive round trip.

    Attributes:
        state: Current SessionState; FAILED after any error.
        frames: Frames received.
        audio_frames: Frames that carried audio.
    """

    def __init__(self, config: BackendConfig, connect_fn: ConnectFn, request_id: Optional[str] = None):
        self._config = config
        self._connect_fn = connect_fn
        self._conn: Optional[Connection] = None
        self.request_id = request_id or uuid.uuid4().hex
        self.state = SessionState.DISCONNECTED
        self.frames = 0
        self.audio_frames = 0

    def run(
        self,
        text: str,
        voice: str,
        fmt: str = "mp3",
        speed: float = 1.0,
        pitch: int = 0,
        ssml: bool = False,
    ) -> bytes:
        try:
            self._connect()
            self._send(config_frame(fmt))
            self.state = SessionState.CONFIG_SENT
            self._send(ssml_frame(self.request_id, build_ssml(text, voice, speed, pitch, ssml=ssml)))
            self.state = SessionState.CONTENT_SENT
            audio = self._receive()
        except BackendError as e:
            e.state = self.state.value
            self.state = SessionState.FAILED
            raise
        finally:
            self._close()

        self.state = SessionState.COMPLETED
        return audio

    def _connect(self) -> None:
        url = endpoint.build_url(self._config)
        try:
            self._conn = self._connect_fn(
                url,
                headers=endpoint.handshake_headers(),
                origin=endpoint.ORIGIN,
                user_agent=endpoint.user_agent(self._config),
                timeout=self._config.connect_timeout_s,
            )
        except (OSError, WebSocketException) as e:
            raise TransportError(f"connect failed: {e}") from e
        self.state = SessionState.CONNECTED
        debug(_LOG, "connected", request_id=self.request_id)

    def _send(self, message: str) -> None:
        assert self._conn is not None
        try:
            self._conn.send(message)
        except (OSError, WebSocketException) as e:
            raise TransportError(f"send failed in state {self.state.value}: {e}") from e

    def _recv(self, deadline: Deadline) -> Union[str, bytes]:
        assert self._conn is not None
        remaining = deadline.remaining
        if remaining <= 0:
            raise TransportError(f"no end of stream within {deadline.seconds:.0f}s")
        try:
            return self._conn.recv(timeout=remaining)
        except TimeoutError as e:
            raise TransportError(f"no end of stream within {deadline.seconds:.0f}s") from e
        except ConnectionClosed as e:
            raise TransportError(f"connection closed before end of stream: {e}") from e
        except OSError as e:
            raise TransportError(f"receive failed: {e}") from e

    def _receive(self) -> bytes:
        deadline = Deadline(self._config.receive_timeout_s)
        buffer = bytearray()

        while True:
            message = self._recv(deadline)
            self.state = SessionState.STREAMING
            self.frames += 1

            if isinstance(message, bytes):
                frame = parse_binary_frame(message)
            else:
                frame = parse_text_frame(message)

            if frame.is_audio:
                self.audio_frames += 1
                buffer.extend(frame.body)
            elif frame.is_turn_end:
                break
            else:
                debug(_LOG, "control_frame", path=frame.path)

        if not buffer:
            raise ProtocolError("end of stream without audio")
        return bytes(buffer)

    def _close(self) -> None:
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        try:
            conn.close()
        except (OSError, WebSocketException) as e:
            debug(_LOG, "close_failed", error=str(e))


class ProtocolClient:
    """
    Synthesizes speech by running one StreamSession per call.

    Thread-safe: sessions share only the immutable config.
    """

    def __init__(self, config: Optional[BackendConfig] = None, connect_fn: Optional[ConnectFn] = None):
        self.config = config or BackendConfig()
        self._connect_fn = connect_fn or websocket_connect

    def open_session(self, request_id: Optional[str] = None) -> StreamSession:
        return StreamSession(self.config, self._connect_fn, request_id=request_id)

    def synthesize(
        self,
        text: str,
        voice: str,
        fmt: str = "mp3",
        speed: float = 1.0,
        pitch: int = 0,
        ssml: bool = False,
    ) -> bytes:
        """
        Run one backend session and return the reassembled audio.

        Raises:
            TransportError: Connect, send or receive failed, or the deadline elapsed.
            ProtocolError: A frame was malformed or no audio arrived.
        """
        session = self.open_session()
        verbose(_LOG, "session_start", voice=voice, format=fmt, chars=len(text))
        try:
            with timeit("backend") as t:
                audio = session.run(text, voice, fmt, speed=speed, pitch=pitch, ssml=ssml)
        except TransportError as e:
            metrics.record_backend_session("transport_error")
            warn(_LOG, "session_failed", kind="transport", state=e.state, error=e.message)
            raise
        except ProtocolError as e:
            metrics.record_backend_session("protocol_error")
            warn(_LOG, "session_failed", kind="protocol", state=e.state, error=e.message)
            raise

        metrics.record_backend_session("ok")
        info(
            _LOG,
            "session_done",
            bytes=len(audio),
            frames=session.frames,
            audio_frames=session.audio_frames,
            seconds=t.timing.seconds,
        )
        return audio
