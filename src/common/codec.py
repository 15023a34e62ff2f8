from __future__ import annotations

import base64
import binascii
import json
from typing import Any, Optional

from cryptography.fernet import Fernet, InvalidToken

from .errors import MalformedTokenError


# Configuration key holding the Fernet key used to seal `state` tokens
STATE_KEY = "fusebit_state_key"


def _to_fernet(key: str | bytes) -> Fernet:
    """Construct a Fernet instance from a user-provided key.

    The key must be a URL-safe base64-encoded 32-byte key (str or bytes),
    as returned by `cryptography.fernet.Fernet.generate_key()`.
    """
    if isinstance(key, str):
        key_bytes = key.encode("utf-8")
    else:
        key_bytes = key
    return Fernet(key_bytes)


def _dump_json(record: Any) -> bytes:
    # Compact separators keep tokens short in query strings
    return json.dumps(record, separators=(",", ":")).encode("utf-8")


def encode(record: Any) -> str:
    """Encode a JSON-representable value as a base64 token.

    The token uses the standard base64 alphabet, so callers must still
    percent-encode it when placing it in a URL query.
    """
    return base64.b64encode(_dump_json(record)).decode("ascii")


def decode(token: str) -> Any:
    """Decode a token produced by `encode`.

    Accepts both the standard and the URL-safe base64 alphabets, with or
    without padding. Raises MalformedTokenError when the token is not valid
    base64-encoded JSON.
    """
    if not isinstance(token, str) or not token:
        raise MalformedTokenError("Empty continuation token")
    normalized = token.strip().replace("-", "+").replace("_", "/")
    normalized += "=" * (-len(normalized) % 4)
    try:
        raw = base64.b64decode(normalized, validate=True)
        return json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as ex:
        raise MalformedTokenError("Continuation token is not valid encoded JSON") from ex


class StateCodec:
    """
    Codec for `state` tokens, optionally sealed with Fernet.

    Without a key it is `encode`/`decode`. With a key, tokens are encrypted
    and authenticated, so a third party handling the redirect can neither
    read nor alter the continuation state it carries back.
    """

    def __init__(self, key: Optional[str | bytes] = None) -> None:
        self._fernet = _to_fernet(key) if key else None

    @property
    def sealed(self) -> bool:
        return self._fernet is not None

    def encode(self, record: Any) -> str:
        if self._fernet is None:
            return encode(record)
        return self._fernet.encrypt(_dump_json(record)).decode("ascii")

    def decode(self, token: str) -> Any:
        if self._fernet is None:
            return decode(token)
        if not isinstance(token, str) or not token:
            raise MalformedTokenError("Empty continuation token")
        try:
            plaintext = self._fernet.decrypt(token.encode("ascii"))
        except (InvalidToken, UnicodeEncodeError) as ex:
            raise MalformedTokenError("Failed to open sealed state: invalid Fernet token") from ex
        try:
            return json.loads(plaintext.decode("utf-8"))
        except ValueError as ex:
            raise MalformedTokenError("Failed to parse sealed state JSON") from ex


__all__ = ["STATE_KEY", "encode", "decode", "StateCodec"]
