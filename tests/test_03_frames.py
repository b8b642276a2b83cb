"""
Tests for the frame codec.

Tests cover:
- Outgoing speech.config and ssml frames
- Strict header block parsing
- Binary frames in both layouts (length-prefixed, blank-line separated)
- Payloads that contain header-like text
- Malformed frames raising ProtocolError
"""
import json
import struct
from datetime import datetime, timezone

import pytest

from conftest import AUDIO_HEADERS, audio_frame, text_frame
from tts_relay.tts.errors import ProtocolError
from tts_relay.tts.frames import (
    config_frame,
    output_format,
    parse_binary_frame,
    parse_header_block,
    parse_text_frame,
    ssml_frame,
    timestamp,
)

NOW = datetime(2026, 1, 15, 14, 30, 5, 123456, tzinfo=timezone.utc)


class TestOutgoingFrames:

    def test_timestamp_millis(self):
        assert timestamp(NOW) == "2026-01-15T14:30:05.123Z"

    def test_output_format(self):
        assert output_format("mp3") == "audio-24khz-48kbitrate-mono-mp3"
        assert output_format("WAV") == "riff-24khz-16bit-mono-pcm"
        assert output_format("opus") == "audio-24khz-48kbitrate-mono-mp3"

    def test_config_frame(self):
        frame = config_frame("mp3", now=NOW)
        head, body = frame.split("\r\n\r\n", 1)
        assert head.split("\r\n") == [
            "X-Timestamp:2026-01-15T14:30:05.123Z",
            "Content-Type:application/json; charset=utf-8",
            "Path:speech.config",
        ]
        audio = json.loads(body)["context"]["synthesis"]["audio"]
        assert audio["outputFormat"] == "audio-24khz-48kbitrate-mono-mp3"
        assert audio["metadataoptions"]["wordBoundaryEnabled"] == "true"

    def test_ssml_frame(self):
        frame = ssml_frame("abc123", "<speak/>", now=NOW)
        head, body = frame.split("\r\n\r\n", 1)
        assert "X-RequestId:abc123" in head
        assert "Content-Type:application/ssml+xml" in head
        assert head.endswith("Path:ssml")
        assert body == "<speak/>"


class TestHeaderBlock:

    def test_valid(self):
        assert parse_header_block(b"Path:audio\r\nX-RequestId:1") == {"Path": "audio", "X-RequestId": "1"}

    def test_value_may_contain_colon(self):
        headers = parse_header_block(b"X-Timestamp:2026-01-15T14:30:05.123Z")
        assert headers == {"X-Timestamp": "2026-01-15T14:30:05.123Z"}

    @pytest.mark.parametrize("block", [
        b"",
        b"no colon here",
        b":novalue",
        b"Bad Name:x",
        b"\xff\xfe\x00binary",
    ])
    def test_rejected(self, block):
        assert parse_header_block(block) is None


class TestBinaryFrames:

    def test_prefixed_layout(self):
        frame = parse_binary_frame(audio_frame(b"\x01\x02\x03"))
        assert frame.is_audio
        assert frame.header("path") == "audio"
        assert frame.body == b"\x01\x02\x03"

    def test_separated_layout(self):
        frame = parse_binary_frame(audio_frame(b"\x01\x02\x03", prefixed=False))
        assert frame.is_audio
        assert frame.body == b"\x01\x02\x03"

    def test_lf_only_separator(self):
        frame = parse_binary_frame(b"Path:audio\n\n" + b"PAYLOAD")
        assert frame.is_audio
        assert frame.body == b"PAYLOAD"

    def test_payload_with_header_text_is_untouched(self):
        payload = b"\x00Path:turn.end\r\n\r\nmore\r\n\r\n\xff"
        frame = parse_binary_frame(audio_frame(payload))
        assert frame.is_audio
        assert frame.body == payload

    def test_empty_payload(self):
        frame = parse_binary_frame(struct.pack(">H", len(AUDIO_HEADERS)) + AUDIO_HEADERS)
        assert frame.is_audio
        assert frame.body == b""

    @pytest.mark.parametrize("data", [
        b"",
        b"\x00",
        b"\x00\x05garbage",
        b"\xff\xff" + b"x" * 10,
        b"\x00\x00" + b"\x10\x20\x30",
    ])
    def test_malformed(self, data):
        with pytest.raises(ProtocolError):
            parse_binary_frame(data)


class TestTextFrames:

    def test_turn_end(self):
        frame = parse_text_frame(text_frame("turn.end"))
        assert frame.is_turn_end
        assert not frame.is_audio

    def test_body_kept(self):
        frame = parse_text_frame(text_frame("audio.metadata", '{"Metadata":[]}'))
        assert frame.path == "audio.metadata"
        assert frame.body == b'{"Metadata":[]}'

    def test_headers_only(self):
        frame = parse_text_frame("Path:turn.start\r\nX-RequestId:1")
        assert frame.path == "turn.start"

    def test_binary_turn_end_is_not_terminal(self):
        frame = parse_binary_frame(b"Path:turn.end\r\n\r\n")
        assert frame.binary
        assert not frame.is_turn_end

    def test_text_frame_is_never_audio(self):
        frame = parse_text_frame("Path:audio\r\n\r\nabc")
        assert not frame.is_audio

    def test_malformed(self):
        with pytest.raises(ProtocolError):
            parse_text_frame("this is not a frame")
