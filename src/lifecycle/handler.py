from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional
from urllib.parse import urlparse

from common.config import configure_logging, load_configuration
from common.errors import NotFoundError
from common.models import AddOnRequest, AddOnResponse
from configure.completion import complete_with_error, complete_with_success
from configure.handler import (
    ConfigurationFlow,
    RequestHandler,
    check_return_to,
    create_settings_manager,
    log_request,
)
from configure.inputs import get_inputs


logger = logging.getLogger(__name__)

# Initial state used to resolve inputs when no configuration flow is registered
NO_CONFIGURATION_STATE = "none"

LifecycleHandler = Callable[[AddOnRequest], Awaitable[AddOnResponse]]


def _last_segment(url: str) -> Optional[str]:
    segments = [s for s in urlparse(url).path.split("/") if s]
    return segments[-1] if segments else None


def create_lifecycle_manager(
    *,
    configure: Optional[ConfigurationFlow] = None,
    install: Optional[LifecycleHandler] = None,
    uninstall: Optional[LifecycleHandler] = None,
) -> RequestHandler:
    """
    Build the single entry point of an add-on handler.

    Routes on the last non-empty path segment:
    - `configure`: runs the configuration flow, or completes immediately
      with success when none is registered.
    - `install` / `uninstall`: runs the registered handler.
    - anything else, or an unregistered handler: NotFoundError.

    Every failure ends in an error completion.
    """
    settings_manager = (
        create_settings_manager(configure, log_requests=False) if configure is not None else None
    )

    async def lifecycle_manager(request: AddOnRequest) -> AddOnResponse:
        log_request(request)
        segment = _last_segment(request.url)
        try:
            if segment == "configure":
                if settings_manager is not None:
                    return await settings_manager(request)
                check_return_to(request)
                state, data = get_inputs(request, NO_CONFIGURATION_STATE)
                return complete_with_success(state, data)
            if segment == "install":
                if install is None:
                    raise NotFoundError()
                return await install(request)
            if segment == "uninstall":
                if uninstall is None:
                    raise NotFoundError()
                return await uninstall(request)
            raise NotFoundError()
        except Exception as e:
            return complete_with_error(request, e)

    return lifecycle_manager


# -------- AWS Lambda entry --------
# Request attribute -> name in path parameters and stage variables
_IDENTITY_FIELDS = (
    ("account_id", "accountId"),
    ("subscription_id", "subscriptionId"),
    ("boundary_id", "boundaryId"),
    ("function_id", "functionId"),
)


def _identity(event: Dict[str, Any], configuration: Dict[str, Any]) -> Dict[str, Optional[str]]:
    """Resolve the component identity from path parameters, stage variables, then configuration."""
    sources = (event.get("pathParameters") or {}, event.get("stageVariables") or {})
    out: Dict[str, Optional[str]] = {}
    for attr, name in _IDENTITY_FIELDS:
        val = next((str(s[name]) for s in sources if s.get(name)), None)
        out[attr] = val or configuration.get(f"fusebit_{attr}")
    return out


def _public_path(event: Dict[str, Any]) -> str:
    # REST API events keep the stage out of `path`; requestContext.path has it.
    # HTTP API `rawPath` already includes a named stage.
    ctx = event.get("requestContext") or {}
    if event.get("rawPath"):
        return event["rawPath"]
    if ctx.get("path"):
        return ctx["path"]
    path = event.get("path") or "/"
    stage = ctx.get("stage")
    if stage and stage != "$default" and not path.startswith(f"/{stage}/"):
        path = f"/{stage}{path}"
    return path


def _request_from_event(event: Dict[str, Any], configuration: Dict[str, Any]) -> AddOnRequest:
    """Translate an API Gateway proxy event (REST or HTTP API) into an AddOnRequest."""
    ctx = event.get("requestContext") or {}
    http = ctx.get("http") or {}
    headers = {str(k).lower(): str(v) for k, v in (event.get("headers") or {}).items()}

    body: Any = event.get("body")
    if isinstance(body, str) and body:
        try:
            body = json.loads(body)
        except ValueError:
            pass

    base_url = None
    domain = ctx.get("domainName") or headers.get("host")
    path = event.get("rawPath") or event.get("path") or "/"
    if domain:
        proto = headers.get("x-forwarded-proto", "https").split(",")[0].strip()
        # Resume URL is this function's public path without its lifecycle segment
        root = _public_path(event).rstrip("/")
        if _last_segment(root) in ("configure", "install", "uninstall"):
            root = root.rsplit("/", 1)[0]
        base_url = f"{proto}://{domain}{root}"

    return AddOnRequest(
        method=event.get("httpMethod") or http.get("method") or "GET",
        url=path,
        query={str(k): str(v) for k, v in (event.get("queryStringParameters") or {}).items()},
        headers=headers,
        body=body,
        configuration=configuration,
        base_url=base_url,
        **_identity(event, configuration),
    )


def _to_lambda_response(response: AddOnResponse) -> Dict[str, Any]:
    headers = dict(response.headers or {})
    body = response.body
    if body is not None and not isinstance(body, str):
        body = json.dumps(body)
        headers.setdefault("content-type", "application/json")
    out: Dict[str, Any] = {"statusCode": response.status, "headers": headers}
    if body is not None:
        out["body"] = body
    return out


def create_lambda_handler(manager: RequestHandler) -> Callable[[Dict[str, Any], Any], Dict[str, Any]]:
    """
    Wrap an async request handler as an AWS Lambda entry for API Gateway.

    Environment:
    - PARAM_PREFIX (optional): SSM prefix holding `allowed_return_to`, `state_key`,
      the component identity and storage credentials (see common.config)
    - FUSEBIT_<NAME> (optional overrides, e.g. FUSEBIT_ALLOWED_RETURN_TO)
    - LOG_LEVEL (default: INFO)

    The component identity (`accountId`, `subscriptionId`, `boundaryId`,
    `functionId`) comes from path parameters, then stage variables, then
    configuration.
    """

    def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
        configure_logging()
        request = _request_from_event(event, load_configuration())
        response = asyncio.run(manager(request))
        return _to_lambda_response(response)

    return lambda_handler


__all__ = ["create_lifecycle_manager", "create_lambda_handler", "LifecycleHandler"]
