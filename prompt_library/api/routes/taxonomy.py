import logging
from typing import Any, TypeVar

from fastapi import APIRouter, Depends, HTTPException, Query, status as http_status
from pydantic import BaseModel, ValidationError

from prompt_library.api.routes.prompts import UNAVAILABLE_DETAIL, with_locks
from prompt_library.core.auth import Viewer
from prompt_library.core.config import Settings, get_settings
from prompt_library.core.security import get_viewer
from prompt_library.schemas.prompts import PromptPageOut
from prompt_library.schemas.taxonomy import CategoryOut, JobRoleOut, MethodTypeOut, SubcategoryOut
from prompt_library.services import catalog
from prompt_library.services.directus import DirectusClient, RepositoryUnavailableError, get_directus_client
from prompt_library.services.query import clamp_paging, list_prompts_by_subcategory

router = APIRouter()
logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


@router.get("/categories", response_model=list[CategoryOut])
async def list_categories(client: DirectusClient = Depends(get_directus_client)) -> list[CategoryOut]:
    try:
        rows = await catalog.list_categories(client)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=UNAVAILABLE_DETAIL) from exc
    return _parse_rows(CategoryOut, rows)


@router.get("/job-roles", response_model=list[JobRoleOut])
async def list_job_roles(client: DirectusClient = Depends(get_directus_client)) -> list[JobRoleOut]:
    try:
        rows = await catalog.list_job_roles(client)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=UNAVAILABLE_DETAIL) from exc
    return _parse_rows(JobRoleOut, rows)


@router.get("/method-types", response_model=list[MethodTypeOut])
async def list_method_types(client: DirectusClient = Depends(get_directus_client)) -> list[MethodTypeOut]:
    try:
        rows = await catalog.list_method_types(client)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=UNAVAILABLE_DETAIL) from exc
    return _parse_rows(MethodTypeOut, rows)


@router.get("/subcategories", response_model=list[SubcategoryOut])
async def list_subcategories(client: DirectusClient = Depends(get_directus_client)) -> list[SubcategoryOut]:
    try:
        rows = await catalog.list_subcategories(client)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=UNAVAILABLE_DETAIL) from exc
    return _parse_rows(SubcategoryOut, rows)


@router.get("/subcategories/{subcategory_id}", response_model=SubcategoryOut)
async def get_subcategory(
    subcategory_id: int,
    client: DirectusClient = Depends(get_directus_client),
) -> SubcategoryOut:
    try:
        row = await catalog.get_subcategory(client, subcategory_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=UNAVAILABLE_DETAIL) from exc
    if row is None:
        raise HTTPException(status_code=http_status.HTTP_404_NOT_FOUND, detail="subcategory not found")
    try:
        return SubcategoryOut(**row)
    except ValidationError as exc:
        logger.warning("malformed subcategory row id=%s: %s", subcategory_id, exc.errors(include_url=False))
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=UNAVAILABLE_DETAIL) from exc


@router.get("/subcategories/{subcategory_id}/prompts", response_model=PromptPageOut)
async def list_subcategory_prompts(
    subcategory_id: int,
    page: int = Query(default=1),
    page_size: int | None = Query(default=None),
    settings: Settings = Depends(get_settings),
    viewer: Viewer = Depends(get_viewer),
    client: DirectusClient = Depends(get_directus_client),
) -> PromptPageOut:
    effective_page, effective_page_size = clamp_paging(
        page,
        page_size if page_size is not None else settings.default_page_size,
        max_page_size=settings.max_page_size,
    )
    try:
        result = await list_prompts_by_subcategory(
            client,
            subcategory_id,
            page=effective_page,
            page_size=effective_page_size,
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=UNAVAILABLE_DETAIL) from exc

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


def _parse_rows(model: type[ModelT], rows: list[dict[str, Any]]) -> list[ModelT]:
    parsed: list[ModelT] = []
    for row in rows:
        try:
            parsed.append(model(**row))
        except ValidationError as exc:
            logger.warning(
                "skipping malformed %s row id=%s: %s",
                model.__name__,
                row.get("id"),
                exc.errors(include_url=False),
            )
    return parsed
