from __future__ import annotations

import asyncio
import copy
import json
from typing import Any

import httpx
import pytest

from prompt_library.services.directus import DirectusClient
from prompt_library.services.predicates import apply_query, parse_filter

BASE_URL = "http://directus.test"
DIRECTUS_DEFAULT_LIMIT = 100

CATALOGUE: dict[str, list[dict[str, Any]]] = {
    "categories": [
        {"id": 7, "slug": "marketing", "name": "Marketing", "name_en": "Marketing", "name_th": None, "sort": 1},
        {"id": 3, "slug": "analytics", "name": "Analytics", "name_en": "Analytics", "name_th": None, "sort": 2},
        {"id": 5, "slug": "sales", "name": "Sales", "name_en": "Sales", "name_th": None, "sort": 3},
    ],
    "job_roles": [
        {"id": 1, "slug": "manager", "name": "Manager", "sort": 1},
        {"id": 2, "slug": "writer", "name": "Copy Writer", "sort": 2},
    ],
    "prompt_types": [
        {"id": "t-framework", "slug": "framework", "name_en": "Framework", "name_th": None},
        {"id": "t-checklist", "slug": "checklist", "name_en": "Checklist", "name_th": None},
    ],
    "subcategories": [
        {
            "id": 11,
            "slug": "campaigns",
            "name_en": "Campaigns",
            "name_th": None,
            "category_id": {"id": 7, "slug": "marketing", "name": "Marketing"},
        },
        {
            "id": 12,
            "slug": "audiences",
            "name_en": "Audiences",
            "name_th": None,
            "category_id": {"id": 7, "slug": "marketing", "name": "Marketing"},
        },
    ],
    "prompts": [
        {"id": 10, "status": "published", "title_en": "Tagline generator", "description": "Brand lines",
         "prompt_text": "Write five taglines for [brand].", "difficulty_level": "beginner",
         "prompt_type_id": "t-framework", "subcategory_id": 11},
        {"id": 22, "status": "published", "title_en": "Launch plan", "description": "Go-to-market steps",
         "prompt_text": "Draft a launch plan for [product].", "difficulty_level": "intermediate",
         "prompt_type_id": "t-checklist", "subcategory_id": 11},
        {"id": 31, "status": "published", "title_en": "Persona builder", "description": "Audience personas",
         "prompt_text": "Describe three personas for [market].", "difficulty_level": "beginner",
         "prompt_type_id": "t-framework", "subcategory_id": 12},
        {"id": 40, "status": "published", "title_en": "Email sequence", "description": "Nurture emails",
         "prompt_text": "Write a five-part email sequence.", "difficulty_level": "advanced",
         "prompt_type_id": None, "subcategory_id": 12},
        {"id": 55, "status": "published", "title_en": "Ad copy variants", "description": "Paid social ads",
         "prompt_text": "Give ten ad headlines for [offer].", "difficulty_level": "beginner",
         "prompt_type_id": "t-framework", "subcategory_id": 11},
        {"id": 60, "status": "draft", "title_en": "Unreleased idea", "description": "Not ready",
         "prompt_text": "Draft only.", "difficulty_level": "beginner",
         "prompt_type_id": None, "subcategory_id": 11},
        {"id": 70, "status": "published", "title_en": "Funnel metrics", "description": "Weekly ANALYTICS digest",
         "prompt_text": "Summarise the funnel.", "difficulty_level": "intermediate",
         "prompt_type_id": None, "subcategory_id": None},
        {"id": 80, "status": "archived", "title_en": "Old analytics prompt", "description": "Retired",
         "prompt_text": "Retired.", "difficulty_level": "advanced",
         "prompt_type_id": None, "subcategory_id": None},
        {"id": 99, "status": "published", "title_en": "Dashboard review", "description": "Review weekly numbers",
         "prompt_text": "Summarise this dashboard.", "difficulty_level": "advanced",
         "prompt_type_id": None, "subcategory_id": None},
    ],
    "prompt_categories": [
        {"id": 1, "prompts_id": 10, "categories_id": 7},
        {"id": 2, "prompts_id": 22, "categories_id": 7},
        {"id": 3, "prompts_id": 31, "categories_id": 7},
        {"id": 4, "prompts_id": 40, "categories_id": 7},
        {"id": 5, "prompts_id": 55, "categories_id": 7},
        {"id": 6, "prompts_id": 55, "categories_id": 7},
        {"id": 7, "prompts_id": 60, "categories_id": 7},
        {"id": 8, "prompts_id": 404, "categories_id": 7},
        {"id": 9, "prompts_id": None, "categories_id": 7},
        {"id": 10, "prompts_id": 99, "categories_id": 3},
        {"id": 11, "prompts_id": 80, "categories_id": 3},
    ],
    "prompt_job_roles": [
        {"id": 1, "prompts_id": 10, "job_roles_id": 1},
        {"id": 2, "prompts_id": 40, "job_roles_id": 1},
        {"id": 3, "prompts_id": 22, "job_roles_id": 2},
        {"id": 4, "prompts_id": 99, "job_roles_id": 2},
    ],
}

PUBLISHED_IDS = {10, 22, 31, 40, 55, 70, 99}


class FakeDirectus:
    """In-memory content repository speaking the /items REST dialect."""

    def __init__(self, collections: dict[str, list[dict[str, Any]]] | None = None) -> None:
        self.collections = copy.deepcopy(collections if collections is not None else CATALOGUE)
        self.users: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, dict[str, str]]] = []
        self.failing: dict[str, int] = {}
        self.unreachable: set[str] = set()
        self.delays: dict[str, float] = {}
        self.cancelled: list[str] = []

    def client(self) -> DirectusClient:
        return DirectusClient(base_url=BASE_URL, token="static-token", transport=httpx.MockTransport(self.handle))

    def reads_of(self, collection: str) -> list[dict[str, str]]:
        return [params for path, params in self.calls if path == f"/items/{collection}"]

    def collections_read(self) -> list[str]:
        return [path.split("/")[2] for path, _ in self.calls if path.startswith("/items/")]

    async def handle(self, request: httpx.Request) -> httpx.Response:
        params = dict(request.url.params)
        path = request.url.path
        self.calls.append((path, params))
        segments = [segment for segment in path.split("/") if segment]

        if segments == ["users", "me"]:
            token = request.headers.get("Authorization", "").removeprefix("Bearer ").strip()
            user = self.users.get(token)
            if user is None:
                return httpx.Response(401, json={"errors": [{"message": "invalid token"}]}, request=request)
            return httpx.Response(200, json={"data": user}, request=request)

        collection = segments[1]
        if collection in self.unreachable:
            raise httpx.ConnectError("connection refused", request=request)
        if collection in self.failing:
            return httpx.Response(self.failing[collection], json={"errors": [{"message": "boom"}]}, request=request)
        if collection in self.delays:
            try:
                await asyncio.sleep(self.delays[collection])
            except asyncio.CancelledError:
                self.cancelled.append(collection)
                raise

        records = self.collections.get(collection, [])
        fields = [field for field in params.get("fields", "*").split(",") if field]
        if len(segments) == 3:
            record = next((row for row in records if str(row.get("id")) == segments[2]), None)
            if record is None:
                return httpx.Response(
                    404,
                    json={"errors": [{"message": "not found", "extensions": {"code": "RECORD_NOT_FOUND"}}]},
                    request=request,
                )
            return httpx.Response(200, json={"data": _project(record, fields)}, request=request)

        predicate = parse_filter(json.loads(params["filter"])) if "filter" in params else None
        rows = apply_query(
            records,
            predicate=predicate,
            sort=[key for key in params.get("sort", "").split(",") if key],
            limit=int(params.get("limit", DIRECTUS_DEFAULT_LIMIT)),
            offset=int(params.get("offset", 0)),
        )
        return httpx.Response(200, json={"data": [_project(row, fields) for row in rows]}, request=request)


def _project(record: dict[str, Any], fields: list[str]) -> dict[str, Any]:
    if not fields or "*" in fields:
        return dict(record)
    wanted = {field.split(".", maxsplit=1)[0] for field in fields}
    return {key: value for key, value in record.items() if key in wanted}


@pytest.fixture
def fake_directus() -> FakeDirectus:
    return FakeDirectus()


@pytest.fixture
def directus_client(fake_directus: FakeDirectus) -> DirectusClient:
    return fake_directus.client()
