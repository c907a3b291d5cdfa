import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status as http_status
from pydantic import ValidationError

from prompt_library.core.auth import Viewer
from prompt_library.core.config import Settings, get_settings
from prompt_library.core.security import get_viewer
from prompt_library.schemas.prompts import (
    Difficulty,
    PromptCard,
    PromptCardOut,
    PromptDetailOut,
    PromptPageOut,
    PromptQuery,
)
from prompt_library.services import catalog
from prompt_library.services.access import can_reveal, reveal_flags
from prompt_library.services.directus import DirectusClient, RepositoryUnavailableError, get_directus_client
from prompt_library.services.query import clamp_paging, get_prompt_index, parse_cards, query_content

router = APIRouter()
logger = logging.getLogger(__name__)

UNAVAILABLE_DETAIL = "content temporarily unavailable"


@router.get("", response_model=PromptPageOut)
async def list_prompts(
    page: int = Query(default=1),
    page_size: int | None = Query(default=None),
    category: list[str] | None = Query(default=None),
    job_role: list[str] | None = Query(default=None),
    difficulty: Difficulty | None = Query(default=None),
    method_type: str | None = Query(default=None),
    search: str | None = Query(default=None),
    settings: Settings = Depends(get_settings),
    viewer: Viewer = Depends(get_viewer),
    client: DirectusClient = Depends(get_directus_client),
) -> PromptPageOut:
    request = PromptQuery(
        page=page,
        page_size=page_size if page_size is not None else settings.default_page_size,
        categories=category or [],
        job_roles=job_role or [],
        difficulty=difficulty,
        method_type=method_type,
        search=search,
    )
    try:
        result = await asyncio.wait_for(
            query_content(client, request, max_page_size=settings.max_page_size),
            timeout=settings.query_timeout_seconds,
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=UNAVAILABLE_DETAIL) from exc
    except TimeoutError as exc:
        raise HTTPException(status_code=http_status.HTTP_504_GATEWAY_TIMEOUT, detail=UNAVAILABLE_DETAIL) from exc

    effective_page, effective_page_size = clamp_paging(
        request.page,
        request.page_size,
        max_page_size=settings.max_page_size,
    )
    return PromptPageOut(
        items=with_locks(
            result.items,
            viewer,
            start=(effective_page - 1) * effective_page_size,
            free_limit=settings.free_prompt_limit,
        ),
        total=result.total,
        total_pages=result.total_pages,
    )


@router.get("/{prompt_id}", response_model=PromptDetailOut)
async def get_prompt(
    prompt_id: int,
    settings: Settings = Depends(get_settings),
    viewer: Viewer = Depends(get_viewer),
    client: DirectusClient = Depends(get_directus_client),
) -> PromptDetailOut:
    try:
        row = await catalog.get_prompt(client, prompt_id)
        if row is None:
            raise HTTPException(status_code=http_status.HTTP_404_NOT_FOUND, detail="prompt not found")
        index = -1 if viewer.is_paid else await get_prompt_index(client, prompt_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=UNAVAILABLE_DETAIL) from exc

    try:
        detail = PromptDetailOut.model_validate(row)
    except ValidationError as exc:
        logger.warning("malformed prompt row id=%s: %s", prompt_id, exc.errors(include_url=False))
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=UNAVAILABLE_DETAIL) from exc
    if can_reveal(viewer, index, free_limit=settings.free_prompt_limit):
        return detail
    return detail.model_copy(update={"prompt_text": None, "locked": True})


@router.get("/{prompt_id}/related", response_model=list[PromptCardOut])
async def list_related_prompts(
    prompt_id: int,
    settings: Settings = Depends(get_settings),
    viewer: Viewer = Depends(get_viewer),
    client: DirectusClient = Depends(get_directus_client),
) -> list[PromptCardOut]:
    try:
        row = await catalog.get_prompt(client, prompt_id)
        if row is None:
            raise HTTPException(status_code=http_status.HTTP_404_NOT_FOUND, detail="prompt not found")
        rows = await catalog.list_related_prompts(client, prompt_id, row.get("subcategory_id"))
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=UNAVAILABLE_DETAIL) from exc

    return with_locks(parse_cards(rows), viewer, start=0, free_limit=settings.free_prompt_limit)


def with_locks(cards: list[PromptCard], viewer: Viewer, *, start: int, free_limit: int) -> list[PromptCardOut]:
    flags = reveal_flags(viewer, len(cards), start=start, free_limit=free_limit)
    return [
        PromptCardOut(**card.model_dump(), locked=not revealed)
        for card, revealed in zip(cards, flags)
    ]
