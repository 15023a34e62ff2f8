from __future__ import annotations

from typing import Any, Dict, List
from urllib.parse import parse_qs, urlsplit

import pytest

from common import codec
from common.errors import AddOnError
from common.models import AddOnRequest, AddOnResponse, ContinuationState
from configure import ConfigurationFlow, complete_with_success, create_settings_manager, redirect


def _query(location: str) -> Dict[str, str]:
    return {k: v[0] for k, v in parse_qs(urlsplit(location).query).items()}


def _init_request(data: Dict[str, Any], allowed: str = "*") -> AddOnRequest:
    return AddOnRequest(
        method="GET",
        url="/abc/dev/configure",
        query={"returnTo": "https://contoso.com", "state": "abc", "data": codec.encode(data)},
        configuration={"fusebit_allowed_return_to": allowed},
        boundary_id="ghi",
        function_id="jkl",
    )


async def _complete(request: AddOnRequest, state: ContinuationState, data: Dict[str, Any]) -> AddOnResponse:
    return complete_with_success(state, {**data, "inner": state.to_wire()})


def test_flow_rejects_invalid_registrations():
    with pytest.raises(ValueError):
        ConfigurationFlow(states={"": _complete})
    with pytest.raises(TypeError):
        ConfigurationFlow(states={"initial": "not callable"})  # type: ignore[dict-item]


@pytest.mark.asyncio
async def test_completes_from_initial_state(init_data):
    manager = create_settings_manager(ConfigurationFlow(states={"initial": _complete}, initial_state="initial"))
    resp = await manager(_init_request(init_data))

    assert resp.status == 302
    assert resp.location.startswith("https://contoso.com?status=success&data=")
    q = _query(resp.location)
    assert q["state"] == "abc"
    assert codec.decode(q["data"]) == {
        **init_data,
        "inner": {"configurationState": "initial", "returnTo": "https://contoso.com", "returnToState": "abc"},
    }


@pytest.mark.asyncio
async def test_disallowed_return_to_redirects_with_403(init_data):
    manager = create_settings_manager(ConfigurationFlow(states={"initial": _complete}, initial_state="initial"))
    resp = await manager(_init_request(init_data, allowed="https://foo.com,https://bar.com"))

    assert resp.status == 302
    assert urlsplit(resp.location).netloc == "contoso.com"
    q = _query(resp.location)
    assert q["status"] == "error"
    assert q["state"] == "abc"
    body = codec.decode(q["data"])
    assert body["status"] == 403
    assert "does not match any of the allowed returnTo URLs" in body["message"]


@pytest.mark.asyncio
async def test_no_allow_list_configured_redirects_with_403(init_data):
    manager = create_settings_manager(ConfigurationFlow(states={"initial": _complete}, initial_state="initial"))
    req = _init_request(init_data).model_copy(update={"configuration": {}})
    resp = await manager(req)

    assert codec.decode(_query(resp.location)["data"])["status"] == 403


@pytest.mark.asyncio
async def test_unsupported_state_redirects_with_400(init_data):
    manager = create_settings_manager(ConfigurationFlow(states={}, initial_state="initial"))
    resp = await manager(_init_request(init_data))

    assert resp.status == 302
    body = codec.decode(_query(resp.location)["data"])
    assert body["status"] == 400
    assert "Unsupported configuration state 'initial'" == body["message"]


@pytest.mark.asyncio
async def test_missing_entry_parameter_is_returned_directly():
    manager = create_settings_manager(ConfigurationFlow(states={"initial": _complete}, initial_state="initial"))
    resp = await manager(AddOnRequest(url="/configure"))

    assert resp.status == 400
    assert resp.headers is None
    assert resp.body["message"] == "Either the 'returnTo' or 'state' parameter must be present."


@pytest.mark.asyncio
async def test_handler_failure_on_resume_still_reaches_caller():
    async def failing(request, state, data):
        raise RuntimeError("token exchange failed")

    async def forbidden(request, state, data):
        raise AddOnError("nope", status=403)

    flow = ConfigurationFlow(states={"exchange": failing, "check": forbidden})
    manager = create_settings_manager(flow)

    for name, status, message in (("exchange", 500, "token exchange failed"), ("check", 403, "nope")):
        state = ContinuationState(configuration_state=name, return_to="https://contoso.com", return_to_state="abc")
        resp = await manager(AddOnRequest(query={"state": codec.encode(state.to_wire())}))

        assert resp.status == 302
        q = _query(resp.location)
        assert q["status"] == "error"
        assert q["state"] == "abc"
        assert codec.decode(q["data"]) == {"status": status, "message": message}


@pytest.mark.asyncio
async def test_upstream_error_is_propagated_to_caller():
    calls: List[str] = []

    async def should_not_run(request, state, data):
        calls.append(state.configuration_state)
        return complete_with_success(state, data)

    manager = create_settings_manager(ConfigurationFlow(states={"callback": should_not_run}))
    state = ContinuationState(configuration_state="callback", return_to="https://contoso.com", return_to_state="abc")
    req = AddOnRequest(
        query={
            "status": "error",
            "state": codec.encode(state.to_wire()),
            "data": codec.encode({"status": 401, "message": "User declined"}),
        }
    )
    resp = await manager(req)

    assert calls == []
    q = _query(resp.location)
    assert q["status"] == "error"
    assert q["state"] == "abc"
    assert codec.decode(q["data"]) == {"status": 401, "message": "User declined"}


@pytest.mark.asyncio
async def test_delegation_round_trip(init_data):
    async def initial(request, state, data):
        return redirect(request, state, {**data, "step": 1}, "https://auth.example.com/authorize", "callback")

    async def callback(request, state, data):
        assert state.configuration_state == "callback"
        return complete_with_success(state, {**data, "token": "t-1"})

    flow = ConfigurationFlow(states={"initial": initial, "callback": callback}, initial_state="initial")
    manager = create_settings_manager(flow)

    first = _init_request(init_data).model_copy(update={"base_url": "https://api.fusebit.io/v1/run/s/ghi/jkl"})
    resp = await manager(first)
    assert urlsplit(resp.location).netloc == "auth.example.com"
    hop = _query(resp.location)
    assert hop["returnTo"] == "https://api.fusebit.io/v1/run/s/ghi/jkl/configure"

    # The third party sends state and data back to the resume URL unchanged
    resumed = AddOnRequest(
        url="/v1/run/s/ghi/jkl/configure",
        query={"state": hop["state"], "data": hop["data"]},
        configuration={"fusebit_allowed_return_to": "*"},
    )
    resp = await manager(resumed)

    assert resp.location.startswith("https://contoso.com?status=success")
    q = _query(resp.location)
    assert q["state"] == "abc"
    assert codec.decode(q["data"]) == {**init_data, "step": 1, "token": "t-1"}
