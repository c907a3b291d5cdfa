from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx
import pytest

from prompt_library.services.directus import UNLIMITED, DirectusClient, RepositoryUnavailableError
from prompt_library.services.predicates import Eq, In, all_of

from conftest import BASE_URL


def _client(handler, token: str | None = "static-token") -> DirectusClient:
    return DirectusClient(base_url=f"{BASE_URL}/", token=token, transport=httpx.MockTransport(handler))


def test_read_items_encodes_query_parameters() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"data": [{"id": 1}, "junk", {"id": 2}]})

    rows = asyncio.run(
        _client(handler).read_items(
            "prompts",
            fields=("id", "title_en"),
            filter=all_of(Eq("status", "published"), In.of("id", [2, 1])),
            sort=("-id",),
            limit=UNLIMITED,
            offset=0,
        )
    )

    assert rows == [{"id": 1}, {"id": 2}]
    request = seen[0]
    assert request.url.path == "/items/prompts"
    assert request.headers["Authorization"] == "Bearer static-token"
    params = dict(request.url.params)
    assert params["fields"] == "id,title_en"
    assert params["sort"] == "-id"
    assert params["limit"] == "-1"
    assert "offset" not in params
    assert json.loads(params["filter"]) == {
        "_and": [{"status": {"_eq": "published"}}, {"id": {"_in": [1, 2]}}]
    }


def test_requests_without_token_are_unauthenticated() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"data": []})

    asyncio.run(_client(handler, token=None).read_items("categories", fields=("id",), offset=20))

    assert "Authorization" not in seen[0].headers
    assert seen[0].url.params["offset"] == "20"


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(404, json={"errors": [{"message": "missing"}]}),
        httpx.Response(403, json={"errors": [{"message": "missing", "extensions": {"code": "RECORD_NOT_FOUND"}}]}),
        httpx.Response(200, json={"data": None}),
    ],
)
def test_read_item_reports_absence_as_none(response: httpx.Response) -> None:
    result = asyncio.run(_client(lambda _: response).read_item("prompts", 12, fields=("id",)))

    assert result is None


def test_read_item_returns_the_record() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/items/prompts/12"
        return httpx.Response(200, json={"data": {"id": 12, "status": "published"}})

    assert asyncio.run(_client(handler).read_item("prompts", 12, fields=("id", "status"))) == {
        "id": 12,
        "status": "published",
    }


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, json={"errors": [{"message": "boom"}]}),
        httpx.Response(403, json={"errors": [{"message": "forbidden", "extensions": {"code": "FORBIDDEN"}}]}),
        httpx.Response(200, content=b"<html>gateway</html>"),
        httpx.Response(200, json=[{"id": 1}]),
        httpx.Response(200, json={"data": {"id": 1}}),
    ],
)
def test_read_items_rejects_unusable_responses(response: httpx.Response) -> None:
    with pytest.raises(RepositoryUnavailableError):
        asyncio.run(_client(lambda _: response).read_items("prompts", fields=("id",)))


def test_read_item_raises_on_server_errors() -> None:
    response = httpx.Response(502, text="bad gateway")

    with pytest.raises(RepositoryUnavailableError):
        asyncio.run(_client(lambda _: response).read_item("prompts", 1, fields=("id",)))


def test_missing_base_url_is_unavailable() -> None:
    client = DirectusClient(base_url=None)

    with pytest.raises(RepositoryUnavailableError, match="PL_DIRECTUS_URL"):
        asyncio.run(client.read_items("prompts", fields=("id",)))


def test_transport_errors_are_wrapped_with_cause() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(RepositoryUnavailableError) as exc_info:
        asyncio.run(_client(handler).read_items("prompts", fields=("id",)))

    assert isinstance(exc_info.value.__cause__, httpx.ReadTimeout)


def test_fake_repository_round_trip(directus_client: DirectusClient) -> None:
    rows: list[dict[str, Any]] = asyncio.run(
        directus_client.read_items(
            "job_roles",
            fields=("id", "slug"),
            filter=In.of("slug", ["writer"]),
            limit=UNLIMITED,
        )
    )

    assert rows == [{"id": 2, "slug": "writer"}]


def test_status_failure_keeps_the_http_error_and_body() -> None:
    body = '{"errors":[{"message":"database offline"}]}' + " " * 500
    response = httpx.Response(503, text=body)

    with pytest.raises(RepositoryUnavailableError, match="status 503.*database offline") as exc_info:
        asyncio.run(_client(lambda _: response).read_items("prompts", fields=("id",)))

    assert isinstance(exc_info.value.__cause__, httpx.HTTPStatusError)
    assert exc_info.value.__cause__.response.status_code == 503
    assert len(str(exc_info.value)) < 300


def test_single_read_status_failure_keeps_the_http_error() -> None:
    response = httpx.Response(500, text="internal error")

    expected = "prompts/7 failed with status 500: internal error"
    with pytest.raises(RepositoryUnavailableError, match=expected) as exc_info:
        asyncio.run(_client(lambda _: response).read_item("prompts", 7, fields=("id",)))

    assert isinstance(exc_info.value.__cause__, httpx.HTTPStatusError)
