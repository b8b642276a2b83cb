"""
Signed connection URL and handshake headers for the read-aloud backend.

The backend only accepts a connection whose query carries a Sec-MS-GEC
token: the uppercase SHA-256 of the current Windows file time (100ns ticks
since 1601-01-01, rounded down to a 5 minute boundary) followed by the
trusted client token.
"""
from __future__ import annotations

import hashlib
import time
import uuid
from typing import Dict, Optional
from urllib.parse import urlencode

from tts_relay.core.config import BackendConfig

WIN_EPOCH_OFFSET_S = 11644473600
TOKEN_WINDOW_S = 300

ORIGIN = "chrome-extension://jdiccldimpdaibmpdkjnbmckianbfold"


def sec_ms_gec(trusted_client_token: str, now: Optional[float] = None) -> str:
    """
    Sec-MS-GEC token for the 5 minute window containing `now`.

    Args:
        trusted_client_token: Fixed client token.
        now: Unix time in seconds (defaults to time.time()).
    """
    ticks = (now if now is not None else time.time()) + WIN_EPOCH_OFFSET_S
    ticks -= ticks % TOKEN_WINDOW_S
    ticks *= 1e9 / 100
    return hashlib.sha256(f"{ticks:.0f}{trusted_client_token}".encode("ascii")).hexdigest().upper()


def connection_id() -> str:
    return uuid.uuid4().hex


def build_url(config: BackendConfig, conn_id: Optional[str] = None, now: Optional[float] = None) -> str:
    query = urlencode(
        {
            "TrustedClientToken": config.trusted_client_token,
            "Sec-MS-GEC": sec_ms_gec(config.trusted_client_token, now),
            "Sec-MS-GEC-Version": f"1-{config.chromium_version}",
            "ConnectionId": conn_id or connection_id(),
        }
    )
    return f"{config.base_url}?{query}"


def user_agent(config: BackendConfig) -> str:
    major = config.chromium_version.split(".", 1)[0]
    return (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        f"(KHTML, like Gecko) Chrome/{major}.0.0.0 Safari/537.36 Edg/{major}.0.0.0"
    )


def handshake_headers() -> Dict[str, str]:
    """Extra handshake headers; Origin and User-Agent are passed separately."""
    return {
        "Pragma": "no-cache",
        "Cache-Control": "no-cache",
        "Accept-Encoding": "gzip, deflate, br",
        "Accept-Language": "en-US,en;q=0.9",
    }
