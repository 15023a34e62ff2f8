from __future__ import annotations

import logging
import os
from typing import Any, Dict, Iterable, Optional

import boto3
from botocore.exceptions import ClientError


# Environment variable names
ENV_PARAM_PREFIX = "PARAM_PREFIX"
ENV_LOG_LEVEL = "LOG_LEVEL"

# SSM parameter names read under PARAM_PREFIX. Each maps to the configuration
# key `fusebit_<name>` and is overridden by the env var `FUSEBIT_<NAME>`.
SSM_PARAM_NAMES = (
    "allowed_return_to",
    "state_key",
    # Identity of this component, used in error messages and self URLs
    "account_id",
    "subscription_id",
    "boundary_id",
    "function_id",
    # Storage credentials
    "storage_audience",
    "storage_account_id",
    "storage_subscription_id",
    "storage_id",
    "storage_key",
    "storage_key_id",
    "storage_issuer_id",
    "storage_subject",
)
_SSM_PARAMS = {name: (f"fusebit_{name}", f"FUSEBIT_{name.upper()}") for name in SSM_PARAM_NAMES}

PACKAGE_LOGGERS = ("common", "configure", "lifecycle", "storage")


def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.environ.get(name)
    return val if val not in (None, "") else default


def _load_ssm_params(prefix: str, names: Iterable[str]) -> Dict[str, Optional[str]]:
    ssm = boto3.client("ssm")
    out: Dict[str, Optional[str]] = {k: None for k in names}
    for name in names:
        full = f"{prefix}{name}"
        try:
            resp = ssm.get_parameter(Name=full, WithDecryption=True)
        except ClientError as e:
            # Leave as None if parameter missing or access denied
            code = e.response.get("Error", {}).get("Code")
            if code in ("ParameterNotFound", "AccessDeniedException"):
                out[name] = None
                continue
            raise
        val = resp.get("Parameter", {}).get("Value")
        out[name] = val if isinstance(val, str) and val != "" else None
    return out


def load_configuration() -> Dict[str, Any]:
    """
    Resolve the add-on component's configuration for this deployment.

    - Reads SSM_PARAM_NAMES from SSM under `PARAM_PREFIX` (when set), with
      decryption.
    - `FUSEBIT_<NAME>` environment variables override SSM values.

    Returns a mapping keyed like the request configuration
    (`fusebit_allowed_return_to`, `fusebit_state_key`, ...); unresolved keys
    are omitted.
    """
    prefix = _getenv(ENV_PARAM_PREFIX)
    params: Dict[str, Optional[str]] = {}
    if prefix:
        params = _load_ssm_params(prefix, list(_SSM_PARAMS))

    out: Dict[str, Any] = {}
    for name, (key, env_name) in _SSM_PARAMS.items():
        val = _getenv(env_name) or params.get(name)
        if val:
            out[key] = val
    return out


def configure_logging(level: Optional[str] = None) -> None:
    """Set the level of the package loggers from `level` or `LOG_LEVEL`."""
    name = (level or _getenv(ENV_LOG_LEVEL, "INFO") or "INFO").upper()
    resolved = logging.getLevelName(name)
    if not isinstance(resolved, int):
        resolved = logging.INFO
    for logger_name in PACKAGE_LOGGERS:
        logging.getLogger(logger_name).setLevel(resolved)
