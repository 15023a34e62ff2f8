from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from common.errors import AddOnError, InternalError, StorageError, UnsupportedStateError
from common.models import AddOnRequest, AddOnResponse, ContinuationState
from common.return_to import ALLOWED_RETURN_TO_KEY, validate_return_to

from .completion import complete_with_error
from .inputs import get_inputs


logger = logging.getLogger(__name__)

StateHandler = Callable[[AddOnRequest, ContinuationState, Dict[str, Any]], Awaitable[AddOnResponse]]
RequestHandler = Callable[[AddOnRequest], Awaitable[AddOnResponse]]


@dataclass(frozen=True)
class ConfigurationFlow:
    """
    Named configuration states and the state a new flow starts in.

    States are checked when the flow is built: names must be non-empty
    strings and handlers callable. `initial_state` need not be registered;
    a flow that reaches an unknown state fails with UnsupportedStateError.
    """

    states: Mapping[str, StateHandler] = field(default_factory=dict)
    initial_state: Optional[str] = None

    def __post_init__(self) -> None:
        for name, handler in self.states.items():
            if not isinstance(name, str) or not name:
                raise ValueError(f"Invalid configuration state name: {name!r}")
            if not callable(handler):
                raise TypeError(f"Handler for configuration state '{name}' is not callable")
        object.__setattr__(self, "states", dict(self.states))

    def handler_for(self, state: ContinuationState) -> StateHandler:
        handler = self.states.get(state.configuration_state)
        if handler is None:
            raise UnsupportedStateError(state.configuration_state, state=state)
        return handler


def component_name(request: AddOnRequest) -> str:
    return f"{request.boundary_id}/{request.function_id}"


def check_return_to(request: AddOnRequest) -> None:
    validate_return_to(
        request.query.get("returnTo"),
        request.configuration.get(ALLOWED_RETURN_TO_KEY),
        component=component_name(request),
    )


def log_request(request: AddOnRequest) -> None:
    logger.debug(
        "DEBUGGING ENABLED. To disable debugging information, raise the log level above DEBUG."
    )
    logger.debug("NEW REQUEST %s %s %s %s", request.method, request.url, request.query, request.body)


async def run_state(
    flow: ConfigurationFlow,
    request: AddOnRequest,
    state: ContinuationState,
    data: Dict[str, Any],
) -> AddOnResponse:
    """Run the handler registered for `state`, tagging its failures with `state`."""
    handler = flow.handler_for(state)
    try:
        return await handler(request, state, data)
    except AddOnError as e:
        raise e.with_state(state)
    except StorageError as e:
        raise InternalError(str(e), status=e.status, state=state) from e
    except Exception as e:
        raise InternalError(str(e) or None, state=state) from e


def create_settings_manager(flow: ConfigurationFlow, *, log_requests: bool = True) -> RequestHandler:
    """
    Build the request handler of a configuration-only flow.

    Each call validates `returnTo`, resolves the state and data, and runs
    the handler for `state.configuration_state`. The handler returns either
    a completion or a delegation response. Every failure, including one
    reported back by a delegated step, ends in an error completion.
    """

    async def settings_manager(request: AddOnRequest) -> AddOnResponse:
        if log_requests:
            log_request(request)
        try:
            check_return_to(request)
            state, data = get_inputs(request, flow.initial_state)
            logger.debug("STATE %s", state.to_wire())
            logger.debug("DATA %s", data)
            return await run_state(flow, request, state, data)
        except Exception as e:
            return complete_with_error(request, e)

    return settings_manager


__all__ = [
    "ConfigurationFlow",
    "StateHandler",
    "RequestHandler",
    "create_settings_manager",
]
