from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


# Fields every flow-start `data` payload must carry, in reporting order
REQUIRED_DATA_FIELDS = (
    "baseUrl",
    "accountId",
    "subscriptionId",
    "boundaryId",
    "functionId",
    "templateName",
)


class ContinuationState(BaseModel):
    """
    Where a configuration flow is and where it goes when it ends.

    Fields
    - configuration_state: name of the next handler to run.
    - return_to: URL the flow redirects to on completion.
    - return_to_state: opaque caller token, echoed back verbatim on completion.

    Notes
    - Serialized with camelCase aliases (`configurationState`, `returnTo`,
      `returnToState`) so tokens stay compatible with the hosting platform.
    - Frozen; use `advance()` to move to another step.
    - Extra keys in a resumed token are kept so they survive the next hop.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    configuration_state: str = Field(..., alias="configurationState")
    return_to: str = Field(..., alias="returnTo")
    return_to_state: Optional[str] = Field(default=None, alias="returnToState")

    def advance(self, next_state: str) -> "ContinuationState":
        return self.model_copy(update={"configuration_state": next_state})

    def to_wire(self) -> Dict[str, Any]:
        """Token payload; `returnToState` is left out only when it was never given."""
        wire = self.model_dump(by_alias=True)
        if self.return_to_state is None and "return_to_state" not in self.model_fields_set:
            wire.pop("returnToState", None)
        return wire


class AddOnRequest(BaseModel):
    """
    Inbound request as seen by the lifecycle and settings managers.

    `configuration` is the add-on component's own persisted configuration
    (e.g. `fusebit_allowed_return_to`), not anything the caller sent.
    Header names are expected lower-cased.
    """

    method: str = "GET"
    url: str = "/"
    query: Dict[str, str] = Field(default_factory=dict)
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Any = None
    configuration: Dict[str, Any] = Field(default_factory=dict)
    base_url: Optional[str] = None
    protocol: str = "https"
    account_id: Optional[str] = None
    subscription_id: Optional[str] = None
    boundary_id: Optional[str] = None
    function_id: Optional[str] = None


class AddOnResponse(BaseModel):
    """Response shape returned by every handler: `{status, headers?, body?}`."""

    status: int
    headers: Optional[Dict[str, str]] = None
    body: Any = None

    @classmethod
    def redirect(cls, location: str, *, status: int = 302) -> "AddOnResponse":
        return cls(status=status, headers={"location": location})

    @property
    def is_redirect(self) -> bool:
        return 300 <= self.status < 400

    @property
    def location(self) -> Optional[str]:
        return (self.headers or {}).get("location")

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)
