import logging
from typing import Any

import httpx
from fastapi import Depends, Header

from prompt_library.core.auth import ANONYMOUS, Viewer, viewer_from_user
from prompt_library.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

VIEWER_FIELDS = ("id", "subscription_status", "subscription_expires_at")


async def get_viewer(
    settings: Settings = Depends(get_settings),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> Viewer:
    if not authorization or not authorization.lower().startswith("bearer "):
        return ANONYMOUS

    token = authorization.split(" ", maxsplit=1)[1].strip()
    if not token or not settings.directus_url:
        return ANONYMOUS

    user = await _fetch_directus_user(
        directus_url=settings.directus_url,
        token=token,
        timeout_seconds=settings.auth_timeout_seconds,
    )
    if user is None:
        return ANONYMOUS
    return viewer_from_user(user)


async def _fetch_directus_user(
    *,
    directus_url: str,
    token: str,
    timeout_seconds: float,
) -> dict[str, Any] | None:
    url = f"{directus_url.rstrip('/')}/users/me"
    try:
        async with httpx.AsyncClient(timeout=timeout_seconds) as client:
            response = await client.get(
                url,
                params={"fields": ",".join(VIEWER_FIELDS)},
                headers={"Authorization": f"Bearer {token}"},
            )
    except httpx.HTTPError as exc:  # pragma: no cover - network dependent
        logger.warning("viewer lookup unavailable; treating request as anonymous: %s", exc)
        return None

    if response.status_code in {401, 403}:
        return None
    if response.status_code != 200:
        logger.warning("viewer lookup failed status=%s; treating request as anonymous", response.status_code)
        return None

    try:
        payload = response.json()
    except ValueError:
        return None
    user = payload.get("data") if isinstance(payload, dict) else None
    return user if isinstance(user, dict) else None
