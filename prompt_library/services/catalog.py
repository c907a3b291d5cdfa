from __future__ import annotations

from typing import Any

from prompt_library.services.directus import UNLIMITED, DirectusClient
from prompt_library.services.outcomes import Identifier
from prompt_library.services.predicates import Eq, Neq, all_of
from prompt_library.services.query import NEWEST_FIRST, PROMPT_CARD_FIELDS, PROMPTS_COLLECTION, PUBLISHED

CATEGORY_FIELDS = ("id", "name", "slug", "description", "sort", "name_th", "name_en")
JOB_ROLE_FIELDS = ("id", "name", "slug", "description", "sort")
METHOD_TYPE_FIELDS = ("id", "slug", "name_th", "name_en")
SUBCATEGORY_FIELDS = (
    "id",
    "name_th",
    "name_en",
    "slug",
    "description_th",
    "description_en",
    "sort",
    "category_id.id",
    "category_id.name",
    "category_id.name_en",
    "category_id.name_th",
    "category_id.slug",
)
PROMPT_DETAIL_FIELDS = (*PROMPT_CARD_FIELDS, "status", "prompt_text", "sort")
RELATED_PROMPT_LIMIT = 3


async def list_categories(client: DirectusClient) -> list[dict[str, Any]]:
    return await client.read_items("categories", fields=CATEGORY_FIELDS, sort=("sort", "name"), limit=UNLIMITED)


async def list_job_roles(client: DirectusClient) -> list[dict[str, Any]]:
    return await client.read_items("job_roles", fields=JOB_ROLE_FIELDS, sort=("sort", "name"), limit=UNLIMITED)


async def list_method_types(client: DirectusClient) -> list[dict[str, Any]]:
    return await client.read_items("prompt_types", fields=METHOD_TYPE_FIELDS, sort=("slug",), limit=UNLIMITED)


async def list_subcategories(client: DirectusClient) -> list[dict[str, Any]]:
    rows = await client.read_items(
        "subcategories",
        fields=SUBCATEGORY_FIELDS,
        sort=("sort", "name_th"),
        limit=UNLIMITED,
    )
    return [_subcategory_row_to_dict(row) for row in rows]


async def get_subcategory(client: DirectusClient, subcategory_id: Identifier) -> dict[str, Any] | None:
    row = await client.read_item("subcategories", subcategory_id, fields=SUBCATEGORY_FIELDS)
    if row is None:
        return None
    return _subcategory_row_to_dict(row)


async def get_prompt(client: DirectusClient, prompt_id: Identifier) -> dict[str, Any] | None:
    row = await client.read_item(PROMPTS_COLLECTION, prompt_id, fields=PROMPT_DETAIL_FIELDS)
    if row is None or row.get("status") != PUBLISHED:
        return None
    return row


async def list_related_prompts(
    client: DirectusClient,
    prompt_id: Identifier,
    subcategory_id: Identifier | None,
    *,
    limit: int = RELATED_PROMPT_LIMIT,
) -> list[dict[str, Any]]:
    if subcategory_id is None or subcategory_id == "":
        return []
    return await client.read_items(
        PROMPTS_COLLECTION,
        fields=PROMPT_CARD_FIELDS,
        filter=all_of(
            Eq("status", PUBLISHED),
            Neq("id", prompt_id),
            Eq("subcategory_id", subcategory_id),
        ),
        sort=NEWEST_FIRST,
        limit=max(1, limit),
    )


def _subcategory_row_to_dict(row: dict[str, Any]) -> dict[str, Any]:
    parent = row.get("category_id")
    return {
        "id": row.get("id"),
        "slug": row.get("slug"),
        "name_th": row.get("name_th"),
        "name_en": row.get("name_en"),
        "description_th": row.get("description_th"),
        "description_en": row.get("description_en"),
        "category": parent if isinstance(parent, dict) and parent.get("slug") else None,
    }
