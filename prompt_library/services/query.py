from __future__ import annotations

import logging
import math
from collections.abc import Awaitable, Iterable
from dataclasses import dataclass
from typing import Any

from opentelemetry import trace
from pydantic import ValidationError

from prompt_library.schemas.prompts import PromptCard, PromptPage, PromptQuery
from prompt_library.services.directus import UNLIMITED, DirectusClient, RepositoryUnavailableError
from prompt_library.services.outcomes import (
    NO_MATCH,
    Identifier,
    Matched,
    NoMatch,
    Resolution,
    gather_or_short_circuit,
    intersect_all,
    matched,
)
from prompt_library.services.predicates import Eq, In, Predicate, all_of, any_of, contains_any

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

PROMPTS_COLLECTION = "prompts"
PUBLISHED = "published"
JOIN_ITEM_KEY = "prompts_id"
NEWEST_FIRST = ("-id",)
DEFAULT_PAGE_SIZE = 20
DEFAULT_MAX_PAGE_SIZE = 100

PROMPT_CARD_FIELDS = (
    "id",
    "title_th",
    "title_en",
    "short_title_th",
    "short_title_en",
    "description",
    "difficulty_level",
    "prompt_type_id",
    "subcategory_id",
)
PROMPT_SEARCH_FIELDS = (
    "title_th",
    "title_en",
    "short_title_th",
    "short_title_en",
    "description",
    "prompt_text",
)


@dataclass(frozen=True, slots=True)
class Dimension:
    name: str
    collection: str
    search_fields: tuple[str, ...]
    join_collection: str | None = None
    join_key: str | None = None


CATEGORIES = Dimension(
    name="categories",
    collection="categories",
    search_fields=("name", "name_th", "name_en", "slug"),
    join_collection="prompt_categories",
    join_key="categories_id",
)
JOB_ROLES = Dimension(
    name="job_roles",
    collection="job_roles",
    search_fields=("name", "slug"),
    join_collection="prompt_job_roles",
    join_key="job_roles_id",
)
METHOD_TYPES = Dimension(
    name="method_types",
    collection="prompt_types",
    search_fields=("name_th", "name_en", "slug"),
)


@dataclass(frozen=True, slots=True)
class SearchExpansion:
    term: str
    related_ids: frozenset[Identifier]

    def predicate(self) -> Predicate | None:
        direct = contains_any(PROMPT_SEARCH_FIELDS, self.term)
        if not self.related_ids:
            return direct
        return any_of(direct, In.of("id", self.related_ids))


@dataclass(frozen=True, slots=True)
class QueryPlan:
    """One predicate, executed once for the page slice and once for the count."""

    predicate: Predicate
    sort: tuple[str, ...] = NEWEST_FIRST


class EntityResolver:
    def __init__(self, client: DirectusClient) -> None:
        self.client = client

    async def resolve_slugs(self, dimension: Dimension, slugs: Iterable[str]) -> Resolution:
        wanted = clean_tokens(slugs)
        if not wanted:
            return NO_MATCH
        variants = set(wanted) | {slug.lower() for slug in wanted}
        rows = await self.client.read_items(
            dimension.collection,
            fields=("id",),
            filter=In.of("slug", variants),
            limit=UNLIMITED,
        )
        return matched(row.get("id") for row in rows)

    async def search_names(self, dimension: Dimension, term: str) -> Resolution:
        rows = await self.client.read_items(
            dimension.collection,
            fields=("id",),
            filter=contains_any(dimension.search_fields, term),
            limit=UNLIMITED,
        )
        return matched(row.get("id") for row in rows)


class RelationshipIntersector:
    def __init__(self, client: DirectusClient) -> None:
        self.client = client

    async def items_for(self, dimension: Dimension, resolution: Resolution) -> Resolution:
        if isinstance(resolution, NoMatch):
            return NO_MATCH
        if dimension.join_collection is None or dimension.join_key is None:
            raise ValueError(f"dimension {dimension.name} has no join collection")
        rows = await self.client.read_items(
            dimension.join_collection,
            fields=(JOIN_ITEM_KEY,),
            filter=In.of(dimension.join_key, resolution.ids),
            limit=UNLIMITED,
        )
        return matched(_item_id(row.get(JOIN_ITEM_KEY)) for row in rows)

    @staticmethod
    def intersect(outcomes: Iterable[Resolution]) -> Resolution | None:
        return intersect_all(outcomes)


class SearchExpander:
    def __init__(self, resolver: EntityResolver, intersector: RelationshipIntersector) -> None:
        self.resolver = resolver
        self.intersector = intersector

    async def expand(self, term: str) -> SearchExpansion:
        results = await gather_or_short_circuit(
            {
                CATEGORIES.name: self._related_items(CATEGORIES, term),
                JOB_ROLES.name: self._related_items(JOB_ROLES, term),
            }
        )
        related: frozenset[Identifier] = frozenset()
        for ids in (results or {}).values():
            related |= ids
        return SearchExpansion(term=term, related_ids=related)

    async def _related_items(self, dimension: Dimension, term: str) -> frozenset[Identifier]:
        entities = await self.resolver.search_names(dimension, term)
        items = await self.intersector.items_for(dimension, entities)
        return items.ids if isinstance(items, Matched) else frozenset()


class PaginatedFetcher:
    def __init__(self, client: DirectusClient) -> None:
        self.client = client

    async def fetch(self, plan: QueryPlan | None, *, page: int, page_size: int) -> PromptPage:
        if plan is None:
            return PromptPage()

        page = max(1, page)
        page_size = max(1, page_size)
        rows = await self.client.read_items(
            PROMPTS_COLLECTION,
            fields=PROMPT_CARD_FIELDS,
            filter=plan.predicate,
            sort=plan.sort,
            limit=page_size,
            offset=(page - 1) * page_size,
        )
        id_rows = await self.client.read_items(
            PROMPTS_COLLECTION,
            fields=("id",),
            filter=plan.predicate,
            limit=UNLIMITED,
        )
        total = len({row.get("id") for row in id_rows})
        return PromptPage(
            items=parse_cards(rows),
            total=total,
            total_pages=math.ceil(total / page_size),
        )


def parse_cards(rows: Iterable[dict[str, Any]]) -> list[PromptCard]:
    cards: list[PromptCard] = []
    for row in rows:
        try:
            cards.append(PromptCard.model_validate(row))
        except ValidationError as exc:
            logger.warning("skipping malformed prompt row id=%s: %s", row.get("id"), exc.errors(include_url=False))
    return cards


def build_plan(
    *,
    item_ids: Resolution | None = None,
    difficulty: str | None = None,
    method_types: Resolution | None = None,
    search: SearchExpansion | None = None,
    extra: Predicate | None = None,
) -> QueryPlan | None:
    if isinstance(item_ids, NoMatch) or isinstance(method_types, NoMatch):
        return None
    predicate = all_of(
        Eq("status", PUBLISHED),
        In.of("id", item_ids.ids) if item_ids is not None else None,
        Eq("difficulty_level", difficulty) if difficulty else None,
        In.of("prompt_type_id", method_types.ids) if method_types is not None else None,
        search.predicate() if search is not None else None,
        extra,
    ) or Eq("status", PUBLISHED)
    return QueryPlan(predicate=predicate)


class ContentQuery:
    """Resolves a faceted prompt query into one page of results."""

    def __init__(self, client: DirectusClient, *, max_page_size: int = DEFAULT_MAX_PAGE_SIZE) -> None:
        self.max_page_size = max(1, max_page_size)
        self.resolver = EntityResolver(client)
        self.intersector = RelationshipIntersector(client)
        self.search_expander = SearchExpander(self.resolver, self.intersector)
        self.fetcher = PaginatedFetcher(client)

    async def run(self, request: PromptQuery) -> PromptPage:
        page, page_size = clamp_paging(request.page, request.page_size, max_page_size=self.max_page_size)
        with tracer.start_as_current_span("prompts.query_content") as span:
            span.set_attribute("query.page", page)
            span.set_attribute("query.page_size", page_size)
            span.set_attribute("query.dimensions", active_dimensions(request))
            try:
                plan = await self.plan(request)
                span.set_attribute("query.short_circuit", plan is None)
                result = await self.fetcher.fetch(plan, page=page, page_size=page_size)
            except RepositoryUnavailableError:
                logger.warning(
                    "prompt query failed categories=%s job_roles=%s difficulty=%s method_type=%s search=%r",
                    request.categories,
                    request.job_roles,
                    request.difficulty,
                    request.method_type,
                    request.search,
                )
                raise

        logger.info(
            "prompt query page=%s page_size=%s total=%s short_circuit=%s",
            page,
            page_size,
            result.total,
            plan is None,
        )
        return result

    async def plan(self, request: PromptQuery) -> QueryPlan | None:
        stages: dict[str, Awaitable[Any]] = {}
        categories = clean_tokens(request.categories)
        if categories:
            stages[CATEGORIES.name] = self._items_for_slugs(CATEGORIES, categories)
        job_roles = clean_tokens(request.job_roles)
        if job_roles:
            stages[JOB_ROLES.name] = self._items_for_slugs(JOB_ROLES, job_roles)
        method_types = clean_tokens([request.method_type] if request.method_type else [])
        if method_types:
            stages[METHOD_TYPES.name] = self.resolver.resolve_slugs(METHOD_TYPES, method_types)
        term = normalize_search(request.search)
        if term is not None:
            stages["search"] = self.search_expander.expand(term)

        results = await gather_or_short_circuit(stages) if stages else {}
        if results is None:
            return None

        item_ids = self.intersector.intersect(
            results[name] for name in (CATEGORIES.name, JOB_ROLES.name) if name in results
        )
        return build_plan(
            item_ids=item_ids,
            difficulty=request.difficulty,
            method_types=results.get(METHOD_TYPES.name),
            search=results.get("search"),
        )

    async def _items_for_slugs(self, dimension: Dimension, slugs: list[str]) -> Resolution:
        resolution = await self.resolver.resolve_slugs(dimension, slugs)
        return await self.intersector.items_for(dimension, resolution)


async def query_content(
    client: DirectusClient,
    request: PromptQuery,
    *,
    max_page_size: int = DEFAULT_MAX_PAGE_SIZE,
) -> PromptPage:
    return await ContentQuery(client, max_page_size=max_page_size).run(request)


async def list_prompts_by_subcategory(
    client: DirectusClient,
    subcategory_id: Identifier,
    *,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> PromptPage:
    plan = build_plan(extra=Eq("subcategory_id", subcategory_id))
    return await PaginatedFetcher(client).fetch(plan, page=page, page_size=page_size)


async def get_prompt_index(client: DirectusClient, prompt_id: Identifier) -> int:
    """Zero-based position of a prompt in the unfiltered newest-first listing, or -1."""
    rows = await client.read_items(
        PROMPTS_COLLECTION,
        fields=("id",),
        filter=Eq("status", PUBLISHED),
        sort=NEWEST_FIRST,
        limit=UNLIMITED,
    )
    wanted = str(prompt_id)
    for index, row in enumerate(rows):
        if str(row.get("id")) == wanted:
            return index
    logger.info("prompt %s not found in published listing", prompt_id)
    return -1


def clamp_paging(page: int, page_size: int, *, max_page_size: int = DEFAULT_MAX_PAGE_SIZE) -> tuple[int, int]:
    return max(1, page), min(max(1, page_size), max(1, max_page_size))


def clean_tokens(values: Iterable[str | None]) -> list[str]:
    cleaned: list[str] = []
    for value in values:
        if not isinstance(value, str):
            continue
        stripped = value.strip()
        if stripped and stripped not in cleaned:
            cleaned.append(stripped)
    return cleaned


def normalize_search(term: str | None) -> str | None:
    if term is None:
        return None
    stripped = term.strip()
    return stripped or None


def _item_id(value: Any) -> Identifier | None:
    if isinstance(value, dict):
        value = value.get("id")
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        return None
    return value


def active_dimensions(request: PromptQuery) -> list[str]:
    return [
        name
        for name, value in (
            (CATEGORIES.name, clean_tokens(request.categories)),
            (JOB_ROLES.name, clean_tokens(request.job_roles)),
            ("difficulty", request.difficulty),
            (METHOD_TYPES.name, normalize_search(request.method_type)),
            ("search", normalize_search(request.search)),
        )
        if value
    ]
