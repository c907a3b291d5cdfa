from __future__ import annotations

import logging
from collections.abc import Sequence
from functools import lru_cache
from typing import Any

import httpx

from prompt_library.core.config import get_settings
from prompt_library.services.predicates import Predicate, dumps_filter

logger = logging.getLogger(__name__)

UNLIMITED = -1
NOT_FOUND_CODES = {"RECORD_NOT_FOUND"}
ERROR_BODY_LIMIT = 200


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the content repository cannot serve a read."""


class DirectusClient:
    """Read-only client for the content repository's REST interface."""

    def __init__(
        self,
        base_url: str | None,
        token: str | None = None,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/") if base_url else None
        self.timeout_seconds = timeout_seconds
        self.headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._transport = transport

    async def read_items(
        self,
        collection: str,
        *,
        fields: Sequence[str],
        filter: Predicate | None = None,
        sort: Sequence[str] | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"fields": ",".join(fields)}
        if filter is not None:
            params["filter"] = dumps_filter(filter)
        if sort:
            params["sort"] = ",".join(sort)
        if limit is not None:
            params["limit"] = limit
        if offset:
            params["offset"] = offset

        response = await self._get(f"/items/{collection}", params=params)
        _raise_for_status(response, collection)
        data = self._unwrap(response, collection)
        if not isinstance(data, list):
            raise RepositoryUnavailableError(f"read of {collection} returned a non-list payload")
        return [row for row in data if isinstance(row, dict)]

    async def read_item(
        self,
        collection: str,
        item_id: int | str,
        *,
        fields: Sequence[str],
    ) -> dict[str, Any] | None:
        response = await self._get(f"/items/{collection}/{item_id}", params={"fields": ",".join(fields)})
        if response.status_code == 404 or _has_not_found_code(response):
            return None
        _raise_for_status(response, f"{collection}/{item_id}")
        data = self._unwrap(response, collection)
        return data if isinstance(data, dict) else None

    async def _get(self, path: str, *, params: dict[str, Any]) -> httpx.Response:
        if not self.base_url:
            raise RepositoryUnavailableError("PL_DIRECTUS_URL is required")
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                return await client.get(f"{self.base_url}{path}", params=params, headers=self.headers)
        except httpx.HTTPError as exc:
            logger.warning("content repository request failed path=%s: %s", path, exc)
            raise RepositoryUnavailableError(f"content repository unreachable: {exc}") from exc

    @staticmethod
    def _unwrap(response: httpx.Response, collection: str) -> Any:
        try:
            payload = response.json()
        except ValueError as exc:
            raise RepositoryUnavailableError(f"read of {collection} returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise RepositoryUnavailableError(f"read of {collection} returned an unexpected payload")
        return payload.get("data")


def _raise_for_status(response: httpx.Response, target: str) -> None:
    try:
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        body = response.text[:ERROR_BODY_LIMIT]
        raise RepositoryUnavailableError(
            f"read of {target} failed with status {response.status_code}: {body}",
        ) from exc


def _has_not_found_code(response: httpx.Response) -> bool:
    if response.status_code < 400:
        return False
    try:
        payload = response.json()
    except ValueError:
        return False
    errors = payload.get("errors") if isinstance(payload, dict) else None
    if not isinstance(errors, list) or not errors:
        return False
    first = errors[0]
    extensions = first.get("extensions") if isinstance(first, dict) else None
    code = extensions.get("code") if isinstance(extensions, dict) else None
    return code in NOT_FOUND_CODES


@lru_cache
def get_directus_client() -> DirectusClient:
    settings = get_settings()
    return DirectusClient(
        base_url=settings.directus_url,
        token=settings.directus_token,
        timeout_seconds=settings.directus_timeout_seconds,
    )
