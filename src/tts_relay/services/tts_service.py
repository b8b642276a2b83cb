"""
TTSService - cache coordinator for the synthesis pipeline.

Every entry point (the REST route, the OpenAI-compatible route, the CLI)
goes through this service.

Architecture:
    Request → Normalize → Fast cache → Durable index → Backend session
            → Audio file → Durable index insert → Fast cache populate → Result

Cache Tiers:
    1. Fast cache (Redis / in-process LRU / off): content key -> file path,
       expires after fast_cache.ttl_seconds
    2. Durable index (SQLite): (content key, voice, format) -> file path

    A hit in either tier is only trusted when the referenced file still
    exists. A stale fast entry is evicted; a stale durable row is deleted.
    Durable hits are promoted to the fast tier.

Failure Policy:
    Only a failed backend session or a failed audio file write fails the
    request. Fast cache and index errors are logged and skipped.

Error Handling:
    - TTSError: Base exception with standardized error codes
    - SynthesisError: Backend or audio write failure
    - InvalidInputError: Request failed validation
    - InvalidFilenameError: Unsafe audio filename

Example:
    >>> from tts_relay.services import TTSService, SynthesizeRequest
    >>> from tts_relay.core.config import Settings
    >>>
    >>> service = TTSService(Settings(raw={}))
    >>> result = service.synthesize(SynthesizeRequest(text="hello"), request_id="req-1")
    >>> result.audio_url, result.cache_status
"""
from __future__ import annotations

import sqlite3
import threading
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

from tts_relay.core.config import ServiceConfig, Settings
from tts_relay.core.logging import debug, fail, get_level_name, get_logger, info, success, verbose, warn
from tts_relay.core.metrics import metrics
from tts_relay.services.validators import ValidationError, normalize_request
from tts_relay.tts.cache import FastCache, FastCacheError, make_fast_cache
from tts_relay.tts.concurrency import InflightRegistry
from tts_relay.tts.errors import BackendError
from tts_relay.tts.persistence import CacheEntry, CacheIndex
from tts_relay.tts.protocol import ProtocolClient
from tts_relay.tts.storage import AudioStore, SweepScheduler, UnsafeFilenameError, make_key
from tts_relay.utils.timeit import timeit

_LOG = get_logger("tts-relay.service")


# =============================================================================
# Error Codes and Exceptions
# =============================================================================

class ErrorCode:
    """Error codes returned in API error responses."""
    SYNTHESIS_FAILED = "SYNTHESIS_FAILED"   # Backend session or audio write failed
    INVALID_INPUT = "INVALID_INPUT"         # Bad request data
    INVALID_FILENAME = "INVALID_FILENAME"   # Unsafe audio filename
    INTERNAL_ERROR = "INTERNAL_ERROR"       # Unexpected error


class TTSError(Exception):
    """
    Base exception for service errors.

    Attributes:
        message: Human-readable error message.
        code: Error code from ErrorCode.
        details: Optional dictionary with additional context.
    """
    def __init__(self, message: str, code: str = ErrorCode.INTERNAL_ERROR, details: Optional[Dict] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "ok": False,
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class SynthesisError(TTSError):
    """Raised when the backend session or the audio file write fails."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.SYNTHESIS_FAILED, details)


class InvalidInputError(TTSError):
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.INVALID_INPUT, details)


class InvalidFilenameError(TTSError):
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.INVALID_FILENAME, details)


# =============================================================================
# Request/Response Dataclasses
# =============================================================================

@dataclass
class SynthesizeRequest:
    """
    Request for speech synthesis.

    Only text, voice and format select the cache entry; speed, pitch,
    volume, style and ssml shape the backend request but two requests that
    differ only in those share one cached file.

    Attributes:
        text: Text to synthesize (required).
        voice: Backend voice name ("" = default voice).
        format: Audio format ("" = default format).
        speed: Rate multiplier, 1.0 = normal.
        pitch: Pitch offset in Hz.
        volume: Accepted for compatibility; not sent to the backend.
        style: Accepted for compatibility; not sent to the backend.
        ssml: Treat text as an SSML fragment instead of plain text.
    """
    text: str
    voice: str = ""
    format: str = ""
    speed: float = 1.0
    pitch: int = 0
    volume: float = 1.0
    style: str = ""
    ssml: bool = False


@dataclass
class SynthesizeResult:
    """
    Result of a synthesis request.

    Attributes:
        audio_url: URL path the audio is served under.
        size: Audio file size in bytes.
        task_id: Identifier returned to the caller.
        audio_path: Location of the audio file.
        cache_status: "fast", "durable" or "miss".
        total_seconds: Total processing time.
        shared: True when the audio came from an identical concurrent request.
    """
    audio_url: str
    size: int
    task_id: str
    audio_path: Path
    cache_status: str
    total_seconds: float
    shared: bool = False

    @property
    def was_cached(self) -> bool:
        return self.cache_status != "miss"


# =============================================================================
# Main Service Class
# =============================================================================

class TTSService:
    """
    Coordinates the cache tiers around the backend protocol client.

    Collaborators can be injected (tests pass a scripted ProtocolClient and
    a MemoryFastCache); otherwise they are built from settings.

    Usage:
        service = TTSService(load_settings())
        result = service.synthesize(SynthesizeRequest(text="hello"), request_id="req-1")
        path = service.resolve_audio_path(result.audio_url.rsplit("/", 1)[-1])
    """

    def __init__(
        self,
        settings: Settings,
        client: Optional[ProtocolClient] = None,
        fast_cache: Optional[FastCache] = None,
        index: Optional[CacheIndex] = None,
        store: Optional[AudioStore] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._settings = settings
        self._config = ServiceConfig.from_settings(settings)
        self._clock = clock

        # ─────────────────────────────────────────────────────────────────────
        # Storage and cache tiers
        # ─────────────────────────────────────────────────────────────────────
        self._store = store if store is not None else AudioStore(self._config.storage.base_dir)
        self._index = index if index is not None else CacheIndex(self._config.database.path)
        self._fast = fast_cache if fast_cache is not None else make_fast_cache(self._config.fast_cache)
        self._fast_ttl = self._config.fast_cache.ttl_seconds

        # ─────────────────────────────────────────────────────────────────────
        # Backend and coalescing
        # ─────────────────────────────────────────────────────────────────────
        self._client = client if client is not None else ProtocolClient(self._config.backend)
        self._inflight = InflightRegistry(
            wait_timeout_s=self._config.coalescing.wait_timeout_s,
            enabled=self._config.coalescing.enabled,
        )

        # ─────────────────────────────────────────────────────────────────────
        # Background age sweep, triggered after each synthesis
        # ─────────────────────────────────────────────────────────────────────
        self._sweeper = SweepScheduler(
            lambda: self.cleanup_expired(self._config.storage.cleanup_hours),
            interval_seconds=self._config.storage.sweep_interval_s,
            clock=clock,
        )

        self._text_preview_chars = self._config.logging.text_preview_chars

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def config(self) -> ServiceConfig:
        return self._config

    @property
    def store(self) -> AudioStore:
        return self._store

    @property
    def index(self) -> CacheIndex:
        return self._index

    @property
    def fast_cache(self) -> FastCache:
        return self._fast

    @property
    def inflight(self) -> InflightRegistry:
        return self._inflight

    @property
    def sweeper(self) -> SweepScheduler:
        return self._sweeper

    def audio_url(self, path: Path) -> str:
        return f"{self._config.storage.audio_url_prefix}/{path.name}"

    # =========================================================================
    # Cache Methods
    # =========================================================================

    def _check_fast(self, key: str) -> Optional[Path]:
        """Fast tier lookup; a path whose file is gone is evicted."""
        try:
            cached = self._fast.get(key)
        except FastCacheError as e:
            warn(_LOG, "fast_cache_read_failed", key=key[:8], error=str(e))
            return None

        if cached is None:
            return None
        if self._store.exists(cached):
            return Path(cached)

        warn(_LOG, "fast_cache_stale", key=key[:8], file=Path(cached).name)
        try:
            self._fast.delete(key)
        except FastCacheError as e:
            warn(_LOG, "fast_cache_delete_failed", key=key[:8], error=str(e))
        return None

    def _check_durable(self, key: str, voice: str, fmt: str) -> Optional[Path]:
        """Durable index lookup; hits are promoted, rows whose file is gone are deleted."""
        try:
            entry = self._index.lookup(key, voice, fmt)
        except sqlite3.Error as e:
            warn(_LOG, "index_read_failed", key=key[:8], error=str(e))
            return None

        if entry is None:
            return None
        if self._store.exists(entry.audio_path):
            path = Path(entry.audio_path)
            self._populate_fast(key, path)
            return path

        warn(_LOG, "index_stale", key=key[:8], file=Path(entry.audio_path).name)
        try:
            self._index.delete(key, voice, fmt)
        except sqlite3.Error as e:
            warn(_LOG, "index_delete_failed", key=key[:8], error=str(e))
        return None

    def _check_cache(self, key: str, voice: str, fmt: str) -> Tuple[Optional[Path], str]:
        """
        Check both tiers in order.

        Returns:
            (path, cache_status) with cache_status "fast", "durable" or "miss".
        """
        path = self._check_fast(key)
        if path is not None:
            return path, "fast"

        path = self._check_durable(key, voice, fmt)
        if path is not None:
            return path, "durable"

        return None, "miss"

    def _populate_fast(self, key: str, path: Path) -> None:
        try:
            self._fast.set(key, str(path), self._fast_ttl)
        except FastCacheError as e:
            warn(_LOG, "fast_cache_write_failed", key=key[:8], error=str(e))

    def _store_cache(self, key: str, request: SynthesizeRequest, path: Path) -> None:
        """Record a fresh file in both tiers. Failures are logged only."""
        entry = CacheEntry(
            content_key=key,
            voice=request.voice,
            format=request.format,
            audio_path=str(path),
            created_at=self._clock(),
        )
        try:
            self._index.insert(entry)
        except sqlite3.IntegrityError:
            verbose(_LOG, "index_duplicate", key=key[:8])
        except sqlite3.Error as e:
            warn(_LOG, "index_write_failed", key=key[:8], error=str(e))

        self._populate_fast(key, path)

    # =========================================================================
    # Synthesis Core
    # =========================================================================

    def _synthesize_miss(self, key: str, request: SynthesizeRequest) -> Tuple[Path, str]:
        """
        Miss path: backend session, audio write, cache update.

        The tiers are checked once more first, since an identical request
        may have finished between this caller's lookup and now.

        Raises:
            SynthesisError: Backend session or audio write failed.
        """
        path, cache_status = self._check_cache(key, request.voice, request.format)
        if path is not None:
            return path, cache_status

        with timeit("synth") as t_synth:
            try:
                audio = self._client.synthesize(
                    request.text,
                    request.voice,
                    request.format,
                    speed=request.speed,
                    pitch=request.pitch,
                    ssml=request.ssml,
                )
            except BackendError as e:
                raise SynthesisError(
                    f"Synthesis failed: {e.message}",
                    {"error_type": type(e).__name__, "state": e.state},
                ) from e
        verbose(_LOG, "stage", event="synth", seconds=round(t_synth.timing.seconds, 4), bytes=len(audio))

        try:
            path = self._store.write(audio, key, request.format)
        except OSError as e:
            raise SynthesisError(
                f"Failed to store audio: {e}",
                {"error_type": type(e).__name__},
            ) from e

        self._store_cache(key, request, path)
        self._sweeper.maybe_sweep()
        return path, "miss"

    def resolve(self, request: SynthesizeRequest) -> Tuple[Path, bool]:
        """
        Resolve a normalized request to an audio file.

        Returns:
            (audio_path, was_cached)

        Raises:
            SynthesisError: Synthesis was needed and failed.
        """
        path, cache_status, _ = self._resolve(request)
        return path, cache_status != "miss"

    def _resolve(self, request: SynthesizeRequest) -> Tuple[Path, str, bool]:
        key = make_key(request.text, request.voice, request.format)
        debug(_LOG, "resolved", key=key, voice=request.voice, format=request.format)

        path, cache_status = self._check_cache(key, request.voice, request.format)
        if path is not None:
            metrics.record_cache("hit", tier=cache_status)
            return path, cache_status, False

        metrics.record_cache("miss")
        outcome = self._inflight.run(key, lambda: self._synthesize_miss(key, request))
        path, cache_status = outcome.value
        return path, cache_status, outcome.shared

    # =========================================================================
    # Public API
    # =========================================================================

    def synthesize(self, request: SynthesizeRequest, request_id: Optional[str] = None) -> SynthesizeResult:
        """
        Synthesize text to speech, serving from cache when possible.

        Args:
            request: SynthesizeRequest; missing fields get configured defaults.
            request_id: Returned as task_id (a new id is generated if absent).

        Raises:
            InvalidInputError: Request failed validation.
            SynthesisError: Backend session or audio write failed.
        """
        preview = request.text[:self._text_preview_chars] if self._text_preview_chars > 0 else ""
        info(_LOG, "request", chars=len(request.text or ""), text_preview=preview)

        try:
            req = normalize_request(request, self._config.tts)
        except ValidationError as e:
            warn(_LOG, "invalid_request", code=e.code, error=e.message)
            raise InvalidInputError(e.message, {"reason": e.code}) from e

        try:
            with timeit("request_total") as total_t:
                path, cache_status, shared = self._resolve(req)
                try:
                    size = self._store.size(path)
                except FileNotFoundError:
                    # swept between the tier hit and the stat; resolve once more
                    warn(_LOG, "audio_file_vanished", file=path.name)
                    path, cache_status, shared = self._resolve(req)
                    try:
                        size = self._store.size(path)
                    except FileNotFoundError as e:
                        raise SynthesisError(f"Audio file disappeared: {path.name}") from e
        except TTSError as e:
            fail(_LOG, "request_failed", code=e.code, error=e.message)
            metrics.record_request("error", duration=0.0, cache_status="miss")
            raise
        except Exception as e:
            fail(_LOG, "request_failed", error=str(e), error_type=type(e).__name__)
            metrics.record_request("error", duration=0.0, cache_status="miss")
            raise SynthesisError(
                f"Unexpected error: {str(e)}",
                {"error_type": type(e).__name__},
            ) from e

        total_s = total_t.timing.seconds
        success(_LOG, "done", cache=cache_status, bytes=size, shared=shared, seconds=round(total_s, 3))
        metrics.record_request(
            "success",
            duration=total_s,
            cache_status=cache_status,
            audio_bytes=size if cache_status == "miss" and not shared else 0,
        )

        return SynthesizeResult(
            audio_url=self.audio_url(path),
            size=size,
            task_id=request_id or uuid.uuid4().hex,
            audio_path=path,
            cache_status=cache_status,
            total_seconds=total_s,
            shared=shared,
        )

    def resolve_audio_path(self, filename: str) -> Path:
        """
        Map a served filename to a path inside the storage root.

        Raises:
            InvalidFilenameError: The name cannot be confined to the storage root.
        """
        try:
            return self._store.resolve(filename)
        except UnsafeFilenameError as e:
            warn(_LOG, "invalid_filename", filename=filename[:80])
            raise InvalidFilenameError(str(e), {"filename": filename[:80]}) from e

    def cleanup_expired(self, max_age_hours: float, now: Optional[float] = None) -> int:
        """
        Remove cache entries older than max_age_hours, with their audio files
        and fast tier records. An entry exactly max_age_hours old is kept.

        Returns:
            Number of durable entries removed.
        """
        max_age_s = max_age_hours * 3600
        now = now if now is not None else self._clock()

        expired = self._index.older_than(max_age_s, now=now)
        files_removed = 0
        for entry in expired:
            try:
                if self._store.remove(entry.audio_path):
                    files_removed += 1
            except OSError as e:
                warn(_LOG, "cleanup_file_failed", file=Path(entry.audio_path).name, error=str(e))
            try:
                self._fast.delete(entry.content_key)
            except FastCacheError as e:
                warn(_LOG, "fast_cache_delete_failed", key=entry.content_key[:8], error=str(e))

        removed = self._index.evict_older_than(max_age_s, now=now)
        metrics.inc_swept(removed)
        info(_LOG, "cleanup", entries_removed=removed, files_removed=files_removed, max_age_h=max_age_hours)
        return removed

    # =========================================================================
    # Health Check
    # =========================================================================

    def get_health_info(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "ok": True,
            "backend": self._config.backend.base_url,
            "defaults": {
                "voice": self._config.tts.default_voice,
                "format": self._config.tts.default_format,
            },
            "fast_cache": self._fast.stats(),
            "storage": self._store.usage(),
            "coalescing": self._inflight.stats(),
            "sweep": self._sweeper.stats(),
            "log_level": get_level_name(),
        }
        try:
            result["index"] = self._index.stats()
        except sqlite3.Error as e:
            result["ok"] = False
            result["index"] = {"error": str(e)}
        return result


# =============================================================================
# Global Service Singleton
# =============================================================================

_service: Optional[TTSService] = None
_service_lock = threading.Lock()


def get_service(settings: Settings) -> TTSService:
    """Get or create the process-wide TTSService (thread-safe lazy singleton)."""
    global _service
    if _service is None:
        with _service_lock:
            if _service is None:
                _service = TTSService(settings)
    return _service


def reset_service() -> None:
    """Drop the global service instance (used by tests)."""
    global _service
    with _service_lock:
        _service = None
