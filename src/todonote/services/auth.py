"""
Token Signer

Builds the bearer credential for the knowledge-base provider from a
static ``<id>.<secret>`` API key: a JWT-shaped token signed with
HMAC-SHA256, recomputed for every request. Expiry is one hour from
signing and is enforced by the server only.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from collections.abc import Callable
from typing import Any, Final

TOKEN_TTL_MS: Final[int] = 3_600_000

HEADER: Final[dict[str, str]] = {"alg": "HS256", "sign_type": "SIGN"}


def b64url(data: bytes) -> str:
    """Base64url without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _encode_segment(obj: dict[str, Any]) -> str:
    return b64url(json.dumps(obj, separators=(",", ":")).encode("utf-8"))


class TokenSigner:
    """
    Produces ``Authorization`` header values.

    Keys that are not of the ``<id>.<secret>`` shape are sent verbatim
    as bearer tokens, which keeps pre-issued tokens working.

    Usage::

        signer = TokenSigner("abc.def")
        headers = {"Authorization": signer.authorization()}
    """

    def __init__(
        self,
        api_key: str,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._api_key = api_key
        self._clock = clock

    def _split_key(self) -> tuple[str, str] | None:
        parts = self._api_key.split(".")
        if len(parts) != 2 or not all(parts):
            return None
        return parts[0], parts[1]

    def token(self) -> str:
        """Signed token, or the raw key when it cannot be split."""
        split = self._split_key()
        if split is None:
            return self._api_key

        key_id, secret = split
        now_ms = int(self._clock() * 1000)
        payload = {
            "api_key": key_id,
            "exp": now_ms + TOKEN_TTL_MS,
            "timestamp": now_ms,
        }

        signing_input = f"{_encode_segment(HEADER)}.{_encode_segment(payload)}"
        signature = hmac.new(
            secret.encode("utf-8"),
            signing_input.encode("ascii"),
            hashlib.sha256,
        ).digest()
        return f"{signing_input}.{b64url(signature)}"

    def authorization(self) -> str:
        """Value for the ``Authorization`` header."""
        return f"Bearer {self.token()}"
