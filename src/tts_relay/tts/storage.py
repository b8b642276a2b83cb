"""
Audio file storage.

Synthesized audio lives flat under one storage root, named by content key:

    {base_dir}/
        5d41402abc4b2a76b9719d911017c592.mp3
        7d793037a0760186574b0282f2f435e7.wav

Content Key:
    MD5 hex of "{text}|{voice}|{format}". Speed, pitch, volume, style and
    the ssml flag do not take part: requests that differ only in those
    share one cache entry.

Filename Resolution:
    Names arriving from outside (the audio download route) are sanitized
    before they touch the filesystem: path separators, reserved characters,
    whitespace and control characters become "_", and the result must stay
    inside the storage root.

Sweeping:
    SweepScheduler runs an age-based cleanup callback in a background thread
    at most once per interval.

Usage:
    store = AudioStore("./storage/audio")
    key = make_key("hello", "en-US-JennyNeural", "mp3")
    path = store.write(audio_bytes, key, "mp3")
    store.resolve("../../etc/passwd")   # -> {base_dir}/.._.._etc_passwd
"""
from __future__ import annotations

import hashlib
import os
import threading
import time
from pathlib import Path
from typing import Callable, Dict, Optional

from tts_relay.core.config import Defaults
from tts_relay.core.logging import get_logger, info, verbose, warn
from tts_relay.utils.timeit import timeit

_LOG = get_logger("tts-relay.storage")

EXTENSIONS = {
    "mp3": ".mp3",
    "wav": ".wav",
    "ogg": ".ogg",
    "m4a": ".m4a",
    "flac": ".flac",
}
DEFAULT_EXTENSION = ".mp3"

CONTENT_TYPES = {
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".m4a": "audio/mp4",
    ".flac": "audio/flac",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"

_UNSAFE_CHARS = frozenset('/\\:*?"<>|')


class UnsafeFilenameError(ValueError):
    """A requested filename cannot be mapped inside the storage root."""
    pass


def make_key(text: str, voice: str, fmt: str) -> str:
    """
    Content key for a synthesis request.

    >>> make_key("hello", "en-US-JennyNeural", "mp3") == make_key("hello", "en-US-JennyNeural", "mp3")
    True
    """
    return hashlib.md5(f"{text}|{voice}|{fmt}".encode("utf-8")).hexdigest()


def extension_for(fmt: str) -> str:
    return EXTENSIONS.get(fmt.lower(), DEFAULT_EXTENSION)


def content_type_for(filename: str) -> str:
    return CONTENT_TYPES.get(Path(filename).suffix.lower(), DEFAULT_CONTENT_TYPE)


def sanitize_filename(name: str) -> str:
    """Replace separators, reserved characters, whitespace and control characters with "_"."""
    return "".join(
        "_" if ch in _UNSAFE_CHARS or ch.isspace() or ord(ch) < 32 or ord(ch) == 127 else ch
        for ch in name
    )


class AudioStore:
    """
    Content-addressed audio files under a single root directory.

    Writes are atomic (temp file + replace) and idempotent: writing the same
    key twice leaves one file holding the latest bytes.
    """

    def __init__(self, base_dir: str = Defaults.STORAGE_BASE_DIR):
        self.base_dir = Path(base_dir)
        self._root = self.base_dir.resolve()

    def filename_for(self, content_key: str, fmt: str) -> str:
        return f"{content_key}{extension_for(fmt)}"

    def path_for(self, content_key: str, fmt: str) -> Path:
        return self.base_dir / self.filename_for(content_key, fmt)

    def write(self, data: bytes, content_key: str, fmt: str) -> Path:
        """
        Write audio for a content key and return its path.

        Raises:
            OSError: The file could not be written.
        """
        path = self.path_for(content_key, fmt)
        path.parent.mkdir(parents=True, exist_ok=True)

        # Unique temp name so concurrent writers of one key never share it
        tmp = path.with_name(f".{path.name}.{os.getpid()}.{threading.get_ident()}.tmp")
        with timeit("storage_write") as t:
            try:
                tmp.write_bytes(data)
                tmp.replace(path)
            except OSError:
                tmp.unlink(missing_ok=True)
                raise

        info(_LOG, "saved", key=content_key[:8], bytes=len(data), seconds=round(t.timing.seconds, 4))
        return path

    def resolve(self, filename: str) -> Path:
        """
        Map an external filename to a path inside the storage root.

        Raises:
            UnsafeFilenameError: The sanitized name is empty, dots only, or
                would land outside the root.
        """
        safe = sanitize_filename(filename)
        if not safe or set(safe) <= {"."}:
            raise UnsafeFilenameError(f"invalid filename: {filename!r}")

        candidate = (self._root / safe).resolve()
        if candidate.parent != self._root:
            raise UnsafeFilenameError(f"filename escapes storage root: {filename!r}")
        return candidate

    def exists(self, path: str | Path) -> bool:
        return Path(path).is_file()

    def remove(self, path: str | Path) -> bool:
        """Delete a stored file; False when it was already gone."""
        try:
            Path(path).unlink()
        except FileNotFoundError:
            return False
        verbose(_LOG, "removed", file=Path(path).name)
        return True

    def size(self, path: str | Path) -> int:
        return Path(path).stat().st_size

    def content_type(self, filename: str) -> str:
        return content_type_for(filename)

    def usage(self) -> Dict[str, int]:
        """File count and total bytes currently stored."""
        if not self.base_dir.exists():
            return {"file_count": 0, "total_bytes": 0}

        file_count = 0
        total_bytes = 0
        for entry in self.base_dir.iterdir():
            if entry.suffix not in CONTENT_TYPES:
                continue
            try:
                total_bytes += entry.stat().st_size
                file_count += 1
            except FileNotFoundError:
                continue
        return {"file_count": file_count, "total_bytes": total_bytes}


class SweepScheduler:
    """
    Rate-limited background runner for the age-based sweep.

    maybe_sweep() returns immediately; the callback runs on a daemon thread
    at most once per interval and never twice at the same time.
    """

    def __init__(
        self,
        sweep_fn: Callable[[], int],
        interval_seconds: int = Defaults.STORAGE_SWEEP_INTERVAL_S,
        clock: Callable[[], float] = time.time,
    ):
        self._sweep_fn = sweep_fn
        self._interval = interval_seconds
        self._clock = clock
        self._last_sweep = 0.0
        self._running = False
        self._lock = threading.Lock()
        self._total_removed = 0
        self._thread: Optional[threading.Thread] = None

    def maybe_sweep(self) -> Optional[threading.Thread]:
        now = self._clock()
        with self._lock:
            if self._running or now - self._last_sweep < self._interval:
                return None
            self._running = True
            self._last_sweep = now

        thread = threading.Thread(target=self._run, daemon=True, name="tts-cache-sweep")
        self._thread = thread
        thread.start()
        return thread

    def _run(self) -> None:
        try:
            removed = self._sweep_fn()
            with self._lock:
                self._total_removed += removed
        except Exception as e:
            # Background thread: nobody to propagate to
            warn(_LOG, "sweep_failed", error=str(e))
        finally:
            with self._lock:
                self._running = False

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for the most recent sweep to finish."""
        thread = self._thread
        if thread is not None:
            thread.join(timeout)

    def stats(self) -> Dict[str, float]:
        with self._lock:
            return {"last_sweep": self._last_sweep, "total_removed": self._total_removed}
