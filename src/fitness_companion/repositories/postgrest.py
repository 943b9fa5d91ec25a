"""Row store speaking the PostgREST dialect used by hosted Supabase projects."""

from typing import Any, Dict, List, Optional

import httpx
import structlog

from .base import RemoteStoreError, Row, RowStore

logger = structlog.get_logger()


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def _filter_params(filters: Optional[Row]) -> Dict[str, str]:
    params = {}
    for column, value in (filters or {}).items():
        op = "is" if value is None else "eq"
        params[column] = f"{op}.{_format_value(value)}"
    return params


class PostgrestRowStore(RowStore):
    """Remote tables reached over `/rest/v1`."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        access_token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ) -> None:
        headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {access_token or api_key}",
            "Content-Type": "application/json",
        }
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._client.headers.update(headers)
        self._base = base_url.rstrip("/") + "/rest/v1"
        logger.info("row_store_initialized", backend="postgrest", base_url=self._base)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        table: str,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        returning: bool = True,
    ) -> List[Row]:
        headers = {"Prefer": "return=representation"} if returning else {}
        try:
            response = await self._client.request(
                method,
                f"{self._base}/{table}",
                params=params,
                json=json,
                headers=headers,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                "remote_request_rejected",
                method=method,
                table=table,
                status=e.response.status_code,
                body=e.response.text[:200],
            )
            raise RemoteStoreError(
                f"{method} {table} failed with status {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            logger.error("remote_request_failed", method=method, table=table, error=str(e))
            raise RemoteStoreError(f"{method} {table} failed: {e}") from e

        if not response.content:
            return []
        data = response.json()
        return data if isinstance(data, list) else [data]

    async def select(
        self,
        table: str,
        filters: Optional[Row] = None,
        order_by: Optional[str] = None,
        ascending: bool = True,
        columns: str = "*",
    ) -> List[Row]:
        params = _filter_params(filters)
        params["select"] = columns
        if order_by:
            params["order"] = f"{order_by}.{'asc' if ascending else 'desc'}"
        return await self._request("GET", table, params=params, returning=False)

    async def insert(self, table: str, rows: List[Row]) -> List[Row]:
        if not rows:
            return []
        return await self._request("POST", table, json=rows)

    async def update(self, table: str, values: Row, filters: Row) -> List[Row]:
        if not filters:
            raise ValueError("Refusing to update without filters")
        return await self._request("PATCH", table, params=_filter_params(filters), json=values)

    async def delete(self, table: str, filters: Row) -> List[Row]:
        if not filters:
            raise ValueError("Refusing to delete without filters")
        return await self._request("DELETE", table, params=_filter_params(filters))
