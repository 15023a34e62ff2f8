from __future__ import annotations

from typing import List, Optional

from .errors import ReturnToNotAllowedError


ALLOWED_RETURN_TO_KEY = "fusebit_allowed_return_to"
WILDCARD = "*"


def parse_allowed_return_to(raw: Optional[str]) -> List[str]:
    """Parse the comma-separated allow-list of returnTo patterns.

    Each pattern is either an exact URL or a prefix ending in `*`.
    Whitespace around patterns is ignored. Empty or missing input yields an
    empty list, which allows nothing.
    """
    if not raw or not isinstance(raw, str):
        return []
    return [tok.strip() for tok in raw.split(",") if tok.strip()]


def is_return_to_allowed(return_to: str, allowed: List[str]) -> bool:
    """Return True if `return_to` matches any pattern in `allowed`.

    Rules:
    - An empty allow-list matches nothing.
    - A pattern matches on exact string equality.
    - A pattern ending in `*` matches any URL starting with the text before it,
      so `*` alone matches everything.
    """
    for pattern in allowed:
        if pattern == return_to:
            return True
        if pattern.endswith(WILDCARD) and return_to.startswith(pattern[: -len(WILDCARD)]):
            return True
    return False


def validate_return_to(
    return_to: Optional[str],
    allowed_raw: Optional[str],
    *,
    component: str,
) -> None:
    """Raise ReturnToNotAllowedError unless `return_to` is on the allow-list.

    Nothing is checked when no `return_to` was requested; resumed steps
    carry their destination inside the continuation state instead.
    """
    if not return_to:
        return
    if not is_return_to_allowed(return_to, parse_allowed_return_to(allowed_raw)):
        raise ReturnToNotAllowedError(return_to, component)


__all__ = [
    "ALLOWED_RETURN_TO_KEY",
    "parse_allowed_return_to",
    "is_return_to_allowed",
    "validate_return_to",
]
