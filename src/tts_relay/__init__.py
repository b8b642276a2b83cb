"""
tts-relay: cached text-to-speech relay for the Edge read-aloud service.

Speech is synthesized by streaming SSML over a websocket to the Edge
read-aloud backend. Finished audio is written to disk once and served
from a two-tier cache afterwards:

    - fast tier: Redis (or an in-process LRU) mapping content key -> file path
    - durable tier: SQLite index of every stored file

Identical requests arriving at the same time share a single backend session.

Example:
    >>> from tts_relay.services import TTSService, SynthesizeRequest
    >>> from tts_relay.core.config import Settings
    >>>
    >>> service = TTSService(Settings(raw={"storage": {"base_dir": "/tmp/audio"}}))
    >>> result = service.synthesize(SynthesizeRequest(text="Hello there"))
    >>> result.cache_status
    'miss'
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
