from __future__ import annotations

import base64
import binascii
import time
from typing import Any, Callable, Mapping, Optional

import jwt

from common.errors import StorageConfigurationError


# Configuration keys holding the component's storage credentials
STORAGE_KEY = "fusebit_storage_key"
STORAGE_KEY_ID = "fusebit_storage_key_id"
STORAGE_ISSUER_ID = "fusebit_storage_issuer_id"
STORAGE_SUBJECT = "fusebit_storage_subject"
STORAGE_AUDIENCE = "fusebit_storage_audience"

DEFAULT_LIFETIME = 15 * 60
# Re-sign when the cached token has less than this left
REFRESH_MARGIN = 60


def require(configuration: Mapping[str, Any], key: str) -> str:
    val = configuration.get(key)
    if not isinstance(val, str) or not val:
        raise StorageConfigurationError(key)
    return val


def _load_private_key(raw: str) -> str:
    """Return a PEM private key from either raw PEM text or its base64 encoding."""
    if raw.lstrip().startswith("-----BEGIN"):
        return raw
    try:
        return base64.b64decode(raw, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as ex:
        raise StorageConfigurationError(STORAGE_KEY) from ex


class JwtTokenProvider:
    """
    Signs short-lived RS256 bearer tokens for the storage service.

    Notes
    - Callable with no arguments, so it can be passed as `access_token` to
      StorageClient; a token is reused until it is about to expire.
    - `clock` returns epoch seconds; injectable for tests.
    """

    def __init__(
        self,
        private_key: str,
        *,
        audience: str,
        issuer: str,
        subject: str,
        key_id: str,
        lifetime: int = DEFAULT_LIFETIME,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._private_key = private_key
        self.audience = audience
        self.issuer = issuer
        self.subject = subject
        self.key_id = key_id
        self.lifetime = lifetime
        self._clock = clock
        self._token: Optional[str] = None
        self._expires_at = 0.0

    @classmethod
    def from_configuration(cls, configuration: Mapping[str, Any], **kwargs: Any) -> "JwtTokenProvider":
        return cls(
            _load_private_key(require(configuration, STORAGE_KEY)),
            audience=require(configuration, STORAGE_AUDIENCE),
            issuer=require(configuration, STORAGE_ISSUER_ID),
            subject=require(configuration, STORAGE_SUBJECT),
            key_id=require(configuration, STORAGE_KEY_ID),
            **kwargs,
        )

    def __call__(self) -> str:
        now = self._clock()
        if self._token is None or now >= self._expires_at - REFRESH_MARGIN:
            self._token = self._sign(now)
            self._expires_at = now + self.lifetime
        return self._token

    def _sign(self, now: float) -> str:
        issued = int(now)
        claims = {
            "aud": self.audience,
            "iss": self.issuer,
            "sub": self.subject,
            "iat": issued,
            "exp": issued + self.lifetime,
        }
        headers = {"kid": self.key_id, "jwtId": str(int(now * 1000))}
        return jwt.encode(claims, self._private_key, algorithm="RS256", headers=headers)


__all__ = [
    "STORAGE_KEY",
    "STORAGE_KEY_ID",
    "STORAGE_ISSUER_ID",
    "STORAGE_SUBJECT",
    "STORAGE_AUDIENCE",
    "JwtTokenProvider",
]
