"""
Frame codec for the read-aloud websocket protocol.

Every frame carries a block of "Name:value" header lines ahead of its body.

Outgoing text frames (client -> backend):

    X-Timestamp:2026-01-15T14:30:05.123Z\r\n
    Content-Type:application/json; charset=utf-8\r\n
    Path:speech.config\r\n
    \r\n
    {"context": ...}

Incoming text frames use the same layout (turn.start, response, audio.metadata,
turn.end). Incoming binary frames come in one of two layouts:

    1. 2-byte big-endian header length, header lines, payload
    2. header lines, blank line (\r\n\r\n or \n\n), payload

Parsing is strict: a header block is only accepted when it decodes as text
and every line is a "Name:value" pair. Nothing in the payload is ever
scanned for header text.
"""
from __future__ import annotations

import json
import struct
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional, Tuple

from tts_relay.tts.errors import ProtocolError

PATH_CONFIG = "speech.config"
PATH_SSML = "ssml"
PATH_AUDIO = "audio"
PATH_TURN_START = "turn.start"
PATH_TURN_END = "turn.end"

OUTPUT_FORMATS = {
    "mp3": "audio-24khz-48kbitrate-mono-mp3",
    "wav": "riff-24khz-16bit-mono-pcm",
    "ogg": "ogg-24khz-16bit-mono-opus",
}
DEFAULT_OUTPUT_FORMAT = OUTPUT_FORMATS["mp3"]

_SEPARATORS = (b"\r\n\r\n", b"\n\n")


@dataclass
class Frame:
    """A parsed incoming frame."""
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    binary: bool = False

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return None

    @property
    def path(self) -> Optional[str]:
        return self.header("Path")

    @property
    def is_audio(self) -> bool:
        return self.binary and self.path == PATH_AUDIO

    @property
    def is_turn_end(self) -> bool:
        return not self.binary and self.path == PATH_TURN_END


def timestamp(now: Optional[datetime] = None) -> str:
    """UTC timestamp with millisecond precision, e.g. 2026-01-15T14:30:05.123Z."""
    now = now or datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def output_format(fmt: str) -> str:
    """Backend encoding name for an audio format; unknown formats get mp3."""
    return OUTPUT_FORMATS.get(fmt.lower(), DEFAULT_OUTPUT_FORMAT)


def encode_text_frame(headers: Iterable[Tuple[str, str]], body: str) -> str:
    head = "".join(f"{name}:{value}\r\n" for name, value in headers)
    return f"{head}\r\n{body}"


def config_frame(fmt: str, now: Optional[datetime] = None) -> str:
    body = json.dumps(
        {
            "context": {
                "synthesis": {
                    "audio": {
                        "metadataoptions": {
                            "sentenceBoundaryEnabled": "false",
                            "wordBoundaryEnabled": "true",
                        },
                        "outputFormat": output_format(fmt),
                    }
                }
            }
        },
        separators=(",", ":"),
    )
    return encode_text_frame(
        [
            ("X-Timestamp", timestamp(now)),
            ("Content-Type", "application/json; charset=utf-8"),
            ("Path", PATH_CONFIG),
        ],
        body,
    )


def ssml_frame(request_id: str, ssml: str, now: Optional[datetime] = None) -> str:
    return encode_text_frame(
        [
            ("X-RequestId", request_id),
            ("Content-Type", "application/ssml+xml"),
            ("X-Timestamp", timestamp(now)),
            ("Path", PATH_SSML),
        ],
        ssml,
    )


def parse_header_block(block: bytes) -> Optional[Dict[str, str]]:
    """
    Parse "Name:value" lines.

    Returns None when the block is not a well-formed header block: it does
    not decode, a line has no colon, a name is empty, or there are no lines.
    """
    try:
        text = block.decode("utf-8")
    except UnicodeDecodeError:
        return None

    headers: Dict[str, str] = {}
    for line in text.replace("\r\n", "\n").split("\n"):
        if not line:
            continue
        name, sep, value = line.partition(":")
        name = name.strip()
        if not sep or not name or any(ch.isspace() for ch in name):
            return None
        headers[name] = value.strip()
    return headers or None


def _split_prefixed(data: bytes) -> Optional[Frame]:
    if len(data) < 2:
        return None
    (header_len,) = struct.unpack(">H", data[:2])
    if header_len == 0 or 2 + header_len > len(data):
        return None
    headers = parse_header_block(data[2:2 + header_len])
    if headers is None:
        return None
    return Frame(headers=headers, body=data[2 + header_len:], binary=True)


def _split_separated(data: bytes, binary: bool) -> Optional[Frame]:
    positions = [(data.find(sep), sep) for sep in _SEPARATORS]
    found = [(pos, sep) for pos, sep in positions if pos >= 0]
    if not found:
        return None
    pos, sep = min(found)
    headers = parse_header_block(data[:pos])
    if headers is None:
        return None
    return Frame(headers=headers, body=data[pos + len(sep):], binary=binary)


def parse_binary_frame(data: bytes) -> Frame:
    """
    Parse a binary frame, trying the length-prefixed layout first.

    Raises:
        ProtocolError: Neither layout yields a valid header block.
    """
    frame = _split_prefixed(data)
    if frame is None:
        frame = _split_separated(data, binary=True)
    if frame is None:
        raise ProtocolError(f"malformed binary frame ({len(data)} bytes)")
    return frame


def parse_text_frame(message: str) -> Frame:
    """
    Parse a text frame. A frame with no blank line is all headers.

    Raises:
        ProtocolError: The header block is malformed.
    """
    data = message.encode("utf-8")
    frame = _split_separated(data, binary=False)
    if frame is None:
        headers = parse_header_block(data)
        if headers is None:
            raise ProtocolError(f"malformed text frame: {message[:60]!r}")
        frame = Frame(headers=headers, body=b"", binary=False)
    return frame
