"""
tts-relay services layer.

    - tts_service.py: TTSService, the cache coordinator around the backend client
    - validators.py: Input validation and default filling
"""
from .tts_service import (
    ErrorCode,
    InvalidFilenameError,
    InvalidInputError,
    SynthesisError,
    SynthesizeRequest,
    SynthesizeResult,
    TTSError,
    TTSService,
)

__all__ = [
    "TTSService",
    "SynthesizeRequest",
    "SynthesizeResult",
    "TTSError",
    "SynthesisError",
    "InvalidInputError",
    "InvalidFilenameError",
    "ErrorCode",
]
