"""Supabase REST (PostgREST) client for disasters, reports, resources and cache rows.

Only the handful of query shapes the API needs are supported: equality and
array-contains filters, ordering, single-row reads, upsert and RPC calls.
"""

import json
import logging
from typing import Any

import httpx

from config import Settings
from errors import DatastoreError

logger = logging.getLogger(__name__)


class Datastore:
    def __init__(self, base_url: str, api_key: str, timeout: float = 5.0, transport: httpx.AsyncBaseTransport | None = None):
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/") + "/rest/v1",
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("Datastore %s %s failed: %s", method, path, e)
            raise DatastoreError("Datastore unavailable", details=str(e)) from e

        if resp.status_code >= 400:
            try:
                body = resp.json()
                message = body.get("message") or body.get("error") or resp.text
            except ValueError:
                message = resp.text
            logger.warning("Datastore %s %s -> %d: %s", method, path, resp.status_code, message)
            raise DatastoreError("Datastore request failed", details=message)

        if not resp.content:
            return None
        return resp.json()

    async def select(
        self,
        table: str,
        columns: str = "*",
        eq: dict[str, Any] | None = None,
        contains: dict[str, list] | None = None,
        order: str | None = None,
        descending: bool = False,
        single: bool = False,
    ) -> list[dict] | dict | None:
        """Select rows. With ``single=True`` returns the first row or None."""
        params = _filters(eq, contains)
        params["select"] = columns
        if order:
            params["order"] = f"{order}.{'desc' if descending else 'asc'}"
        if single:
            params["limit"] = "1"

        rows = await self._request("GET", f"/{table}", params=params) or []
        if single:
            return rows[0] if rows else None
        return rows

    async def insert(self, table: str, row: dict) -> dict:
        rows = await self._request(
            "POST",
            f"/{table}",
            json=row,
            headers={"Prefer": "return=representation"},
        )
        return rows[0] if rows else row

    async def upsert(self, table: str, row: dict, on_conflict: str = "key") -> None:
        await self._request(
            "POST",
            f"/{table}",
            params={"on_conflict": on_conflict},
            json=row,
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )

    async def update(self, table: str, values: dict, eq: dict[str, Any]) -> dict | None:
        rows = await self._request(
            "PATCH",
            f"/{table}",
            params=_filters(eq, None),
            json=values,
            headers={"Prefer": "return=representation"},
        )
        return rows[0] if rows else None

    async def delete(self, table: str, eq: dict[str, Any]) -> int:
        """Delete matching rows and return how many were removed."""
        rows = await self._request(
            "DELETE",
            f"/{table}",
            params=_filters(eq, None),
            headers={"Prefer": "return=representation"},
        )
        return len(rows or [])

    async def rpc(self, function: str, args: dict) -> Any:
        return await self._request("POST", f"/rpc/{function}", json=args)


def _filters(eq: dict[str, Any] | None, contains: dict[str, list] | None) -> dict[str, str]:
    params: dict[str, str] = {}
    for column, value in (eq or {}).items():
        params[column] = f"eq.{value}"
    for column, values in (contains or {}).items():
        params[column] = "cs." + "{" + ",".join(json.dumps(v) for v in values) + "}"
    return params


def create_datastore(settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> Datastore | None:
    """Build the datastore client if configured, else None (mock mode)."""
    if not settings.datastore_configured:
        logger.info("Datastore not configured, running in mock mode")
        return None
    return Datastore(
        settings.datastore_url,
        settings.datastore_key,
        timeout=settings.external_timeout_seconds,
        transport=transport,
    )
