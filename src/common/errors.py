from __future__ import annotations

from typing import Optional

from .models import ContinuationState


class AddOnError(Exception):
    """
    Base error for the configuration and lifecycle flow.

    Carries the HTTP `status` and `message` reported back to the caller and,
    optionally, the continuation `state` the error happened in. When a state
    is present the error completion redirects to `state.return_to`.
    """

    status: int = 500
    default_message: str = "Internal error"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        status: Optional[int] = None,
        state: Optional[ContinuationState] = None,
    ) -> None:
        self.message = message or self.default_message
        if status is not None:
            self.status = status
        self.state = state
        super().__init__(self.message)

    def with_state(self, state: ContinuationState) -> "AddOnError":
        """Attach `state` unless the error already carries one."""
        if self.state is None:
            self.state = state
        return self


class MalformedDataError(AddOnError):
    """The `data` parameter is not a valid continuation token."""

    status = 400
    default_message = "Malformed 'data' parameter"


class MalformedStateError(AddOnError):
    """The `state` parameter is not a valid continuation token."""

    status = 400
    default_message = "Malformed 'state' parameter"


class MissingInitialStateError(AddOnError):
    status = 400
    default_message = (
        "State consistency error. Initial configuration state is not specified, "
        "and 'state' parameter is missing."
    )


class MissingFieldError(AddOnError):
    """A required flow-start field is absent from `data`."""

    status = 400

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"Missing 'data.{field}' input parameter")


class MissingEntryParameterError(AddOnError):
    status = 400
    default_message = "Either the 'returnTo' or 'state' parameter must be present."


class ReturnToNotAllowedError(AddOnError):
    """The requested `returnTo` URL is not on the component's allow-list."""

    status = 403

    def __init__(self, return_to: str, component: str) -> None:
        self.return_to = return_to
        self.component = component
        super().__init__(
            f"The specified 'returnTo' URL '{return_to}' does not match any of the allowed "
            f"returnTo URLs of the '{component}' Fusebit Add-On component. If this is a valid "
            f"request, add the specified 'returnTo' URL to the 'fusebit_allowed_return_to' "
            f"configuration property of the '{component}' Fusebit Add-On component."
        )


class UnsupportedStateError(AddOnError):
    status = 400

    def __init__(self, name: str, *, state: Optional[ContinuationState] = None) -> None:
        self.name = name
        super().__init__(f"Unsupported configuration state '{name}'", state=state)


class NotFoundError(AddOnError):
    status = 404
    default_message = "Not found"


class UpstreamFailureError(AddOnError):
    """A delegated step came back with `status=error`."""

    default_message = "Unspecified error"


class InternalError(AddOnError):
    status = 500


class MalformedTokenError(ValueError):
    """Raised when a continuation token cannot be decoded."""


# -------- Storage --------
class StorageError(RuntimeError):
    """Base error for the storage client."""

    status: int = 500


class StorageConflictError(StorageError):
    """The stored etag no longer matches the one supplied to a conditional write."""

    status = 409


class RootWriteForbiddenError(StorageError):
    status = 400

    def __init__(self) -> None:
        super().__init__("Storage objects cannot be stored at the root of the hierarchy")


class RootDeleteForbiddenError(StorageError):
    status = 400

    def __init__(self) -> None:
        super().__init__(
            "Storage objects cannot be deleted at the root of the hierarchy without a "
            "storage id prefix"
        )


class RecursiveRootDeleteForbiddenError(StorageError):
    status = 400

    def __init__(self) -> None:
        super().__init__(
            "You are attempting to recursively delete all storage objects in the "
            "account. If this is your intent, set the 'force_recursive' flag."
        )


class StorageConfigurationError(StorageError):
    """A configuration property the storage client needs is missing."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Missing '{key}' configuration property")


class StorageApiError(StorageError):
    """The storage service answered with an unexpected HTTP status."""

    def __init__(self, status: int, detail: str = "") -> None:
        self.status = status
        msg = f"HTTP {status} from storage service"
        if detail:
            msg = f"{msg}: {detail[:200]}"
        super().__init__(msg)


__all__ = [
    "AddOnError",
    "MalformedDataError",
    "MalformedStateError",
    "MissingInitialStateError",
    "MissingFieldError",
    "MissingEntryParameterError",
    "ReturnToNotAllowedError",
    "UnsupportedStateError",
    "NotFoundError",
    "UpstreamFailureError",
    "InternalError",
    "MalformedTokenError",
    "StorageError",
    "StorageConflictError",
    "RootWriteForbiddenError",
    "RootDeleteForbiddenError",
    "RecursiveRootDeleteForbiddenError",
    "StorageConfigurationError",
    "StorageApiError",
]
