"""
SSML document generation for the read-aloud backend.

    >>> render_rate(1.5)
    '1.5'
    >>> render_pitch(-3)
    '-3Hz'
"""
from __future__ import annotations

from xml.sax.saxutils import escape, quoteattr

SSML_NAMESPACE = "http://www.w3.org/2001/10/synthesis"
SSML_LANG = "en-US"


def render_rate(speed: float) -> str:
    if speed == 1.0:
        return "default"
    return f"{speed:.1f}"


def render_pitch(pitch: int) -> str:
    if pitch == 0:
        return "default"
    if pitch > 0:
        return f"+{pitch}Hz"
    return f"{pitch}Hz"


def build_ssml(text: str, voice: str, speed: float = 1.0, pitch: int = 0, ssml: bool = False) -> str:
    """
    Wrap text in a <speak><voice><prosody> document.

    Plain text is XML-escaped. With ssml=True the text is taken as a markup
    fragment and inserted as-is inside <prosody>.
    """
    body = text if ssml else escape(text)
    return (
        f'<speak version="1.0" xmlns="{SSML_NAMESPACE}" xml:lang="{SSML_LANG}">'
        f"<voice name={quoteattr(voice)}>"
        f"<prosody rate={quoteattr(render_rate(speed))} pitch={quoteattr(render_pitch(pitch))}>"
        f"{body}"
        "</prosody></voice></speak>"
    )
