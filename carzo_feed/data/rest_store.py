"""InventoryStore over a PostgREST endpoint (the hosted Supabase database)."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from typing import Any

import aiohttp

from carzo_feed.errors import DatabaseError

logger = logging.getLogger(__name__)

_PAGE_SIZE = 1000
# Keeps ``vin=in.(...)`` filters comfortably below common URL length limits.
_IN_FILTER_CHUNK = 200
_MERGE_DUPLICATES = "resolution=merge-duplicates,return=minimal"
_RETURN_MINIMAL = "return=minimal"


def _in_filter(values: list[str]) -> str:
    quoted = ",".join('"' + v.replace('"', '\\"') + '"' for v in values)
    return f"in.({quoted})"


class RestInventoryStore:
    """Async store client speaking the PostgREST dialect with a service key."""

    def __init__(
        self,
        base_url: str,
        service_key: str,
        *,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.rest_url = f"{self.base_url}/rest/v1"
        self.service_key = service_key.strip()
        self.session = session
        self._owns_session = session is None

    def _ensure_session(self) -> Any:
        if self.session is None:
            self.session = aiohttp.ClientSession(
                headers={
                    "apikey": self.service_key,
                    "Authorization": f"Bearer {self.service_key}",
                    "Content-Type": "application/json",
                },
            )
        return self.session

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: dict[str, str] | None = None,
        payload: Any = None,
        headers: dict[str, str] | None = None,
        allowed: tuple[int, ...] = (),
    ) -> tuple[int, Any]:
        session = self._ensure_session()
        url = f"{self.rest_url}/{table}"
        try:
            async with session.request(
                method,
                url,
                params=params,
                json=payload,
                headers=headers,
            ) as resp:
                raw_text = await resp.text()
                body: Any = None
                if raw_text:
                    try:
                        body = json.loads(raw_text)
                    except json.JSONDecodeError:
                        body = {"raw": raw_text}
                if resp.status >= 400 and resp.status not in allowed:
                    message = f"{method} {table} failed with HTTP {resp.status}"
                    if isinstance(body, dict) and body.get("message"):
                        message = f"{message}: {body['message']}"
                    raise DatabaseError(
                        message,
                        status=resp.status,
                        details=body if isinstance(body, dict) else {"response": body},
                    )
                return resp.status, body
        except aiohttp.ClientError as exc:
            logger.error("Store request failed (%s %s): %s", method, table, exc)
            raise DatabaseError(
                f"{method} {table} failed due to a network/client error: {exc}",
            ) from exc

    # ── Sync contract ──────────────────────────────────────────────

    async def active_vins(self) -> set[str]:
        vins: set[str] = set()
        offset = 0
        while True:
            _, body = await self._request(
                "GET",
                "vehicles",
                params={"select": "vin", "is_active": "eq.true", "order": "vin.asc"},
                headers={
                    "Range-Unit": "items",
                    "Range": f"{offset}-{offset + _PAGE_SIZE - 1}",
                },
                allowed=(416,),
            )
            page = body if isinstance(body, list) else []
            vins.update(row["vin"] for row in page if isinstance(row, dict) and row.get("vin"))
            # Servers may cap pages below the requested range; only an empty page
            # (or 416 once the offset passes the last row) ends the scan.
            if not page:
                return vins
            offset += len(page)

    async def upsert_vehicles(self, rows: list[dict[str, Any]]) -> None:
        if not rows:
            return
        await self._request(
            "POST",
            "vehicles",
            params={"on_conflict": "vin"},
            payload=rows,
            headers={"Prefer": _MERGE_DUPLICATES},
        )

    async def deactivate(self, vins: Iterable[str]) -> int:
        values = sorted(set(vins))
        for i in range(0, len(values), _IN_FILTER_CHUNK):
            chunk = values[i:i + _IN_FILTER_CHUNK]
            await self._request(
                "PATCH",
                "vehicles",
                params={"vin": _in_filter(chunk)},
                payload={"is_active": False},
                headers={"Prefer": _RETURN_MINIMAL},
            )
        return len(values)

    async def append_sync_log(self, entry: dict[str, Any]) -> None:
        await self._request(
            "POST",
            "feed_sync_logs",
            payload=entry,
            headers={"Prefer": _RETURN_MINIMAL},
        )

    async def acquire_sync_lock(
        self,
        job: str,
        *,
        owner: str,
        stale_after: float,
    ) -> bool:
        now = datetime.now(timezone.utc)
        cutoff = (now - timedelta(seconds=stale_after)).isoformat()
        await self._request(
            "DELETE",
            "feed_sync_locks",
            params={"job": f"eq.{job}", "acquired_at": f"lt.{cutoff}"},
            headers={"Prefer": _RETURN_MINIMAL},
        )
        status, _ = await self._request(
            "POST",
            "feed_sync_locks",
            payload={"job": job, "owner": owner, "acquired_at": now.isoformat()},
            headers={"Prefer": _RETURN_MINIMAL},
            allowed=(409,),
        )
        return status != 409

    async def release_sync_lock(self, job: str, *, owner: str) -> None:
        await self._request(
            "DELETE",
            "feed_sync_locks",
            params={"job": f"eq.{job}", "owner": f"eq.{owner}"},
            headers={"Prefer": _RETURN_MINIMAL},
        )

    async def close(self) -> None:
        if self.session is not None and self._owns_session:
            await self.session.close()
        self.session = None
