from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from pydantic import ValidationError

from common import codec
from common.errors import (
    MalformedDataError,
    MalformedStateError,
    MalformedTokenError,
    MissingEntryParameterError,
    MissingFieldError,
    MissingInitialStateError,
    UpstreamFailureError,
)
from common.models import REQUIRED_DATA_FIELDS, AddOnRequest, ContinuationState


def state_codec_for(request: AddOnRequest) -> codec.StateCodec:
    """Codec for `state` tokens, sealed when the component has a state key."""
    return codec.StateCodec(request.configuration.get(codec.STATE_KEY))


def _decode_data(raw: Optional[str]) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        data = codec.decode(raw)
    except MalformedTokenError as ex:
        raise MalformedDataError() from ex
    if not isinstance(data, dict):
        raise MalformedDataError()
    return data


def _require_fields(data: Dict[str, Any]) -> None:
    # Fixed order so the first missing field is reported regardless of key order
    for name in REQUIRED_DATA_FIELDS:
        if not data.get(name):
            raise MissingFieldError(name)


def decode_state(token: str, state_codec: Optional[codec.StateCodec] = None) -> ContinuationState:
    """Decode a resumed `state` token into a ContinuationState.

    Raises MalformedStateError when the token cannot be decoded or does not
    describe a continuation state.
    """
    c = state_codec or codec.StateCodec()
    try:
        raw = c.decode(token)
        return ContinuationState.model_validate(raw)
    except (MalformedTokenError, ValidationError) as ex:
        raise MalformedStateError() from ex


def get_inputs(
    request: AddOnRequest,
    initial_state: Optional[str],
) -> Tuple[ContinuationState, Dict[str, Any]]:
    """
    Resolve the continuation state and flow data of a configuration request.

    - `returnTo` present: start of a flow. Requires `initial_state` and the
      six required data fields; the caller's `state` (if any) is kept
      verbatim as `return_to_state`.
    - `state` present (no `returnTo`): resume of a flow; `state` is decoded.
    - Neither: MissingEntryParameterError.

    When the request reports `status=error`, raises UpstreamFailureError with
    the status/message carried in `data` and the resolved state attached.
    """
    query = request.query
    data = _decode_data(query.get("data"))
    return_to = query.get("returnTo")
    state_token = query.get("state")

    if return_to:
        if not initial_state:
            raise MissingInitialStateError()
        _require_fields(data)
        fields = {"configurationState": initial_state, "returnTo": return_to}
        if state_token:
            fields["returnToState"] = state_token
        state = ContinuationState.model_validate(fields)
    elif state_token:
        state = decode_state(state_token, state_codec_for(request))
    else:
        raise MissingEntryParameterError()

    if query.get("status") == "error":
        status = data.get("status")
        if isinstance(status, bool) or not isinstance(status, int) or status <= 0:
            status = 500
        message = data.get("message")
        raise UpstreamFailureError(str(message) if message else None, status=status, state=state)

    return state, data
