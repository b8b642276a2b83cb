"""
Tests for SSML generation.

Tests cover:
- Rate rendering ("default" at 1.0, one decimal otherwise)
- Pitch rendering ("default" at 0, signed Hz otherwise)
- Escaping of plain text and the raw SSML passthrough
"""
import xml.etree.ElementTree as ET

import pytest

from tts_relay.tts.ssml import SSML_NAMESPACE, build_ssml, render_pitch, render_rate

NS = {"s": SSML_NAMESPACE}


class TestRenderRate:

    def test_normal_speed_is_default(self):
        assert render_rate(1.0) == "default"

    @pytest.mark.parametrize("speed,expected", [
        (1.5, "1.5"),
        (0.5, "0.5"),
        (2.0, "2.0"),
        (1.25, "1.2"),
    ])
    def test_one_decimal(self, speed, expected):
        assert render_rate(speed) == expected


class TestRenderPitch:

    def test_zero_is_default(self):
        assert render_pitch(0) == "default"

    def test_positive_has_plus_sign(self):
        assert render_pitch(5) == "+5Hz"

    def test_negative(self):
        assert render_pitch(-3) == "-3Hz"


class TestBuildSsml:

    def test_document_shape(self):
        doc = build_ssml("Hello there", "en-US-JennyNeural", speed=1.5, pitch=-3)
        root = ET.fromstring(doc)
        voice = root.find("s:voice", NS)
        prosody = voice.find("s:prosody", NS)

        assert root.tag == f"{{{SSML_NAMESPACE}}}speak"
        assert voice.get("name") == "en-US-JennyNeural"
        assert prosody.get("rate") == "1.5"
        assert prosody.get("pitch") == "-3Hz"
        assert prosody.text == "Hello there"

    def test_defaults(self):
        prosody = ET.fromstring(build_ssml("hi", "en-US-GuyNeural")).find("s:voice/s:prosody", NS)
        assert prosody.get("rate") == "default"
        assert prosody.get("pitch") == "default"

    def test_plain_text_is_escaped(self):
        doc = build_ssml("a < b & c > d", "en-US-GuyNeural")
        assert "a &lt; b &amp; c &gt; d" in doc
        prosody = ET.fromstring(doc).find("s:voice/s:prosody", NS)
        assert prosody.text == "a < b & c > d"

    def test_ssml_fragment_passthrough(self):
        doc = build_ssml('Wait<break time="500ms"/>now', "en-US-GuyNeural", ssml=True)
        assert '<break time="500ms"/>' in doc
        prosody = ET.fromstring(doc).find("s:voice/s:prosody", NS)
        assert prosody.find("s:break", NS) is not None
