from __future__ import annotations

import inspect
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Mapping, Optional, Union

import httpx
from pydantic import ValidationError

from common.errors import (
    RecursiveRootDeleteForbiddenError,
    RootDeleteForbiddenError,
    RootWriteForbiddenError,
    StorageApiError,
    StorageConflictError,
    StorageError,
)

from .models import StorageContext, StorageListPage, StorageRecord
from .tokens import STORAGE_AUDIENCE, JwtTokenProvider, require


logger = logging.getLogger(__name__)

STORAGE_ACCOUNT_ID = "fusebit_storage_account_id"
STORAGE_SUBSCRIPTION_ID = "fusebit_storage_subscription_id"
STORAGE_ID = "fusebit_storage_id"

AccessToken = Union[str, Callable[[], Union[str, Awaitable[str]]]]


def _strip(path: Optional[str]) -> str:
    return (path or "").strip("/")


def join_storage_id(prefix: Optional[str], sub_path: Optional[str]) -> str:
    """Combine prefix and sub-path, ignoring leading/trailing slashes on either."""
    return "/".join(p for p in (_strip(prefix), _strip(sub_path)) if p)


class StorageClient:
    """
    Client for the hierarchical storage service of one account/subscription.

    Notes
    - Every operation is relative to `storage_id_prefix`; keys are
      slash-delimited paths below it.
    - `put(..., etag=...)` is a compare-and-swap: the service rejects the
      write when the stored etag differs, surfaced as StorageConflictError.
      Re-read and reapply on conflict.
    - `get` and `put` remember the last etag seen in `etag`.
    - Writes and plain deletes at the root of the account are refused; a
      recursive delete there must be forced.
    - `access_token` is a bearer token or a callable returning one (sync or
      async); it is resolved on every request.
    """

    def __init__(
        self,
        context: StorageContext,
        access_token: AccessToken,
        storage_id_prefix: Optional[str] = None,
        *,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._context = context
        self._access_token = access_token
        self._prefix = _strip(storage_id_prefix)
        self._base = (
            f"{context.base_url.rstrip('/')}/v1/account/{context.account_id}"
            f"/subscription/{context.subscription_id}/storage"
        )
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self.etag: Optional[str] = None

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "StorageClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def prefix(self) -> str:
        return self._prefix

    # --------------- Public API ---------------
    async def get(self, sub_path: Optional[str] = None) -> Optional[StorageRecord]:
        """
        Read the record at `sub_path`.

        Returns None when the combined path is the root or nothing is stored
        there.
        """
        storage_id = join_storage_id(self._prefix, sub_path)
        if not storage_id:
            return None
        resp = await self._request("GET", self._url(storage_id))
        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise StorageApiError(resp.status_code, resp.text)
        record = self._parse_record(resp, storage_id)
        self.etag = record.etag
        return record

    async def put(
        self,
        data: Any,
        sub_path: Optional[str] = None,
        *,
        etag: Optional[str] = None,
    ) -> StorageRecord:
        """
        Write `data` at `sub_path` and return the stored record with its new etag.

        With `etag`, the write only succeeds if the stored record is still at
        that version; otherwise StorageConflictError is raised.
        """
        storage_id = join_storage_id(self._prefix, sub_path)
        if not storage_id:
            raise RootWriteForbiddenError()
        payload: Dict[str, Any] = {"data": data}
        headers: Dict[str, str] = {}
        if etag is not None:
            payload["etag"] = etag
            headers["If-Match"] = etag
        resp = await self._request("PUT", self._url(storage_id), json=payload, headers=headers)
        if resp.status_code in (409, 412):
            raise StorageConflictError(f"Conflict writing storage '{storage_id}': etag mismatch")
        if resp.status_code not in (200, 201):
            raise StorageApiError(resp.status_code, resp.text)
        record = self._parse_record(resp, storage_id, default_data=data)
        self.etag = record.etag
        return record

    async def delete(
        self,
        sub_path: Optional[str] = None,
        *,
        recursive: bool = False,
        force_recursive: bool = False,
    ) -> None:
        """
        Delete the record at `sub_path`; with `recursive`, its whole subtree.

        A plain delete at the root is refused. A recursive delete at the root
        of the account also requires `force_recursive`. Deleting something
        that does not exist succeeds.
        """
        storage_id = join_storage_id(self._prefix, sub_path)
        if not storage_id:
            if not recursive:
                raise RootDeleteForbiddenError()
            if not force_recursive:
                raise RecursiveRootDeleteForbiddenError()
        resp = await self._request("DELETE", self._url(storage_id, recursive=recursive))
        if resp.status_code == 404 or 200 <= resp.status_code < 300:
            return
        raise StorageApiError(resp.status_code, resp.text)

    async def list(
        self,
        sub_path: Optional[str] = None,
        *,
        count: Optional[int] = None,
        next_token: Optional[str] = None,
    ) -> StorageListPage:
        """Return one page of the records under `sub_path`."""
        storage_id = join_storage_id(self._prefix, sub_path)
        params: Dict[str, Any] = {}
        if count is not None:
            params["count"] = count
        if next_token:
            params["next"] = next_token
        resp = await self._request("GET", self._url(storage_id, recursive=True), params=params)
        if resp.status_code == 404:
            return StorageListPage()
        if resp.status_code != 200:
            raise StorageApiError(resp.status_code, resp.text)
        try:
            return StorageListPage.model_validate(resp.json())
        except (ValueError, ValidationError) as ex:
            raise StorageError("Failed to parse storage listing") from ex

    async def iter_pages(
        self,
        sub_path: Optional[str] = None,
        *,
        count: Optional[int] = None,
        next_token: Optional[str] = None,
    ) -> AsyncIterator[StorageListPage]:
        """Yield pages lazily, starting at `next_token` when given."""
        token = next_token
        while True:
            page = await self.list(sub_path, count=count, next_token=token)
            yield page
            if not page.next:
                return
            token = page.next

    # --------------- Internal ---------------
    def _url(self, storage_id: str, *, recursive: bool = False) -> str:
        url = f"{self._base}/{storage_id}" if storage_id else self._base
        return f"{url}/*" if recursive else url

    async def _token(self) -> str:
        token = self._access_token
        if callable(token):
            token = token()
            if inspect.isawaitable(token):
                token = await token
        return str(token)

    async def _request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        merged = {"Authorization": f"Bearer {await self._token()}", **(headers or {})}
        logger.debug("STORAGE %s %s", method, url)
        try:
            return await self._client.request(method, url, headers=merged, **kwargs)
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            raise StorageError(f"Storage request failed: {method} {url}") from exc

    @staticmethod
    def _parse_record(
        resp: httpx.Response,
        storage_id: str,
        *,
        default_data: Any = None,
    ) -> StorageRecord:
        try:
            body = resp.json() if resp.content else {}
        except ValueError as ex:
            raise StorageError("Failed to parse storage response JSON") from ex
        if not isinstance(body, dict):
            raise StorageError("Unexpected storage response shape")
        body.setdefault("storageId", storage_id)
        if "data" not in body:
            body["data"] = default_data
        if not body.get("etag"):
            body["etag"] = resp.headers.get("etag")
        return StorageRecord.model_validate(body)


def create_storage_client(
    context: StorageContext,
    access_token: AccessToken,
    storage_id_prefix: Optional[str] = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> StorageClient:
    return StorageClient(context, access_token, storage_id_prefix, client=client)


def storage_client_from_configuration(
    configuration: Mapping[str, Any],
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> StorageClient:
    """
    Build the storage client of an add-on component from its own configuration.

    Reads the service address from `fusebit_storage_audience`, the account
    and subscription from `fusebit_storage_account_id` and
    `fusebit_storage_subscription_id`, and scopes every key under
    `fusebit_storage_id`. Requests are authorized with tokens signed by
    JwtTokenProvider. Raises StorageConfigurationError when a property is
    missing.
    """
    context = StorageContext(
        base_url=require(configuration, STORAGE_AUDIENCE),
        account_id=require(configuration, STORAGE_ACCOUNT_ID),
        subscription_id=require(configuration, STORAGE_SUBSCRIPTION_ID),
    )
    prefix = require(configuration, STORAGE_ID)
    provider = JwtTokenProvider.from_configuration(configuration)
    return StorageClient(context, provider, prefix, client=client)


__all__ = [
    "AccessToken",
    "StorageClient",
    "create_storage_client",
    "storage_client_from_configuration",
    "join_storage_id",
]
