"""
Command-line interface for tts-relay.

Runs the same cache pipeline as the HTTP service without starting a server.

Usage Examples:
    # Synthesize (or fetch from cache) and copy the audio out
    tts-relay --text "Hello there" --out hello.mp3

    # Positional text, explicit voice and rate
    tts-relay "Hello there" --voice en-US-GuyNeural --speed 1.2

    # Show the content key and cache filename without synthesizing
    tts-relay "Hello there" --key-only --json

    # Remove cache entries older than 48 hours
    tts-relay --cleanup 48

Environment Variables:
    TTS_RELAY_SETTINGS: settings.yaml path (default config/settings.yaml)
    TTS_RELAY_STORAGE_DIR / TTS_RELAY_DB_PATH / TTS_RELAY_REDIS_URL: overrides
"""
from __future__ import annotations

import argparse
import json
import shutil
from pathlib import Path
from typing import List, Optional
from uuid import uuid4

from tts_relay.core.config import ConfigValidationError, ServiceConfig, Settings, load_settings, settings_path
from tts_relay.core.logging import configure_logging, get_logger, info, set_request_id
from tts_relay.services.tts_service import SynthesizeRequest, TTSError, TTSService
from tts_relay.services.validators import ValidationError, normalize_request
from tts_relay.tts.storage import AudioStore, make_key


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="tts-relay CLI (serverless synth)")

    parser.add_argument("text_pos", nargs="?", help="Text to synthesize (positional)")
    parser.add_argument("--text", help="Text to synthesize")
    parser.add_argument("--voice", default="", help="Backend voice (default from settings)")
    parser.add_argument("--format", default="", help="Audio format: mp3, wav, ogg")
    parser.add_argument("--speed", type=float, default=1.0, help="Rate multiplier")
    parser.add_argument("--pitch", type=int, default=0, help="Pitch offset in Hz")
    parser.add_argument("--out", help="Copy the audio file to this path")
    parser.add_argument("--settings", help="settings.yaml path")

    parser.add_argument("--key-only", action="store_true",
                        help="Print content key and filename without synthesis")
    parser.add_argument("--cleanup", type=float, metavar="HOURS",
                        help="Remove cache entries older than HOURS and exit")
    parser.add_argument("--json", action="store_true", help="Print JSON summary")

    return parser.parse_args(argv)


def _load(path: Optional[str]) -> Settings:
    try:
        return load_settings(path or settings_path())
    except FileNotFoundError:
        if path:
            raise
        return Settings(raw={})


def _emit(payload: dict, as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, ensure_ascii=False))
    else:
        print(payload)


def main(argv: Optional[List[str]] = None) -> int:
    """
    CLI entry point.

    Returns:
        0 on success, 1 when the request fails, 2 on usage errors.
    """
    args = _parse_args(argv)

    configure_logging()
    log = get_logger("tts-relay.cli")
    set_request_id(str(uuid4())[:12])

    try:
        settings = _load(args.settings)
    except FileNotFoundError as e:
        print(f"Settings file not found: {e}")
        return 2

    try:
        config = ServiceConfig.from_settings(settings)
    except ConfigValidationError as e:
        print(f"Invalid settings: {e}")
        return 2

    if args.cleanup is not None:
        service = TTSService(settings)
        removed = service.cleanup_expired(args.cleanup)
        _emit({"ok": True, "removed": removed, "max_age_hours": args.cleanup}, args.json)
        return 0

    text = args.text or args.text_pos
    if not text:
        print("Provide --text or a positional text.")
        return 2

    request = SynthesizeRequest(
        text=text,
        voice=args.voice,
        format=args.format,
        speed=args.speed,
        pitch=args.pitch,
    )

    if args.key_only:
        try:
            req = normalize_request(request, config.tts)
        except ValidationError as e:
            _emit({"ok": False, "error": e.code, "message": e.message}, args.json)
            return 1
        key = make_key(req.text, req.voice, req.format)
        _emit(
            {
                "ok": True,
                "key": key,
                "filename": AudioStore(config.storage.base_dir).filename_for(key, req.format),
                "voice": req.voice,
                "format": req.format,
            },
            args.json,
        )
        return 0

    service = TTSService(settings)
    try:
        result = service.synthesize(request)
    except TTSError as e:
        _emit(e.to_dict(), args.json)
        return 1

    out = None
    if args.out:
        out_path = Path(args.out)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(result.audio_path, out_path)
        out = str(out_path)
        info(log, "copied", out=out, bytes=result.size)

    _emit(
        {
            "ok": True,
            "audio_url": result.audio_url,
            "audio_path": str(result.audio_path),
            "size": result.size,
            "cache": result.cache_status,
            "out": out,
        },
        args.json,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
