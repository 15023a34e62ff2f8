from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

from common import codec
from common.errors import AddOnError, StorageError
from common.models import AddOnRequest, AddOnResponse, ContinuationState

from .inputs import state_codec_for


logger = logging.getLogger(__name__)

# Characters encodeURIComponent leaves alone besides alphanumerics and "-_.~"
_URI_COMPONENT_SAFE = "!*'()"


def _q(value: str) -> str:
    return quote(value, safe=_URI_COMPONENT_SAFE)


def _with_query(url: str, params: Dict[str, Optional[str]]) -> str:
    pairs = [f"{k}={_q(v)}" for k, v in params.items() if v]
    sep = "&" if "?" in url else "?"
    return f"{url}{sep}{'&'.join(pairs)}"


def get_self_url(request: AddOnRequest) -> str:
    """Public URL of this function, used as the resume point for delegation."""
    if request.base_url:
        return request.base_url.rstrip("/")
    forwarded = request.headers.get("x-forwarded-proto")
    proto = forwarded.split(",")[0].strip() if forwarded else request.protocol
    host = request.headers.get("host", "")
    return (
        f"{proto}://{host}/v1/run/{request.subscription_id}/"
        f"{request.boundary_id}/{request.function_id}"
    )


def complete_with_success(state: ContinuationState, data: Dict[str, Any]) -> AddOnResponse:
    """Redirect to `state.return_to` with `status=success`, the data and the echoed state."""
    location = _with_query(
        state.return_to,
        {"status": "success", "data": codec.encode(data), "state": state.return_to_state},
    )
    return AddOnResponse.redirect(location)


def complete_with_error(request: AddOnRequest, error: BaseException) -> AddOnResponse:
    """
    Report `error` back to the caller.

    Redirects with `status=error` when a destination can be resolved, either
    from the state the error carries or from the request's own `returnTo`.
    Otherwise returns the error directly as `{status, body}`.
    """
    if isinstance(error, AddOnError):
        status, message, state = error.status, error.message, error.state
    elif isinstance(error, StorageError):
        status, message, state = error.status, str(error), None
    else:
        status, message, state = 500, str(error) or "Internal error", None

    return_to = (state.return_to if state else None) or request.query.get("returnTo")
    echoed = (state.return_to_state if state else None) or (
        request.query.get("state") if request.query.get("returnTo") else None
    )
    body = {"status": status, "message": message}
    logger.warning("Completing with error %s: %s", status, message)

    if return_to:
        location = _with_query(
            return_to,
            {"status": "error", "data": codec.encode(body), "state": echoed},
        )
        return AddOnResponse.redirect(location)
    return AddOnResponse(status=status, body=body)


def redirect(
    request: AddOnRequest,
    state: ContinuationState,
    data: Dict[str, Any],
    redirect_url: str,
    next_state: str,
) -> AddOnResponse:
    """
    Hand control to `redirect_url` and resume later at `next_state`.

    The third party receives `returnTo=<self>/configure` plus the encoded
    state and data, and is expected to send them back to that URL.
    """
    advanced = state.advance(next_state)
    location = _with_query(
        redirect_url,
        {
            "returnTo": f"{get_self_url(request)}/configure",
            "state": state_codec_for(request).encode(advanced.to_wire()),
            "data": codec.encode(data),
        },
    )
    return AddOnResponse.redirect(location)


__all__ = [
    "get_self_url",
    "complete_with_success",
    "complete_with_error",
    "redirect",
]
