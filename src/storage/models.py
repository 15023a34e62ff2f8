from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class StorageContext(BaseModel):
    """Account and subscription a storage client is bound to."""

    base_url: str
    account_id: str
    subscription_id: str


class StorageRecord(BaseModel):
    """
    A stored value and the etag of the version it was read or written at.

    Pass `etag` back to `StorageClient.put` to make the next write
    conditional on nobody having written in between.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    data: Any = None
    etag: Optional[str] = None
    storage_id: Optional[str] = Field(default=None, alias="storageId")


class StorageItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    storage_id: str = Field(..., alias="storageId")
    etag: Optional[str] = None


class StorageListPage(BaseModel):
    """One page of a listing; `next` is the token for the following page, if any."""

    items: List[StorageItem] = Field(default_factory=list)
    next: Optional[str] = None
