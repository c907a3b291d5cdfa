#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any
from urllib.parse import parse_qs, urlparse

from prompt_library.services.predicates import apply_query, parse_filter

DIRECTUS_DEFAULT_LIMIT = 100

SEED: dict[str, Any] = {
    "collections": {
        "categories": [
            {"id": 3, "slug": "analytics", "name": "Analytics", "name_en": "Analytics", "name_th": None, "sort": 2},
            {"id": 7, "slug": "marketing", "name": "Marketing", "name_en": "Marketing", "name_th": None, "sort": 1},
        ],
        "job_roles": [
            {"id": 1, "slug": "marketer", "name": "Marketer", "sort": 1},
        ],
        "prompt_types": [
            {"id": "framework", "slug": "framework", "name_en": "Framework", "name_th": None},
        ],
        "subcategories": [
            {"id": 11, "slug": "campaigns", "name_en": "Campaigns", "name_th": None, "category_id": {"id": 7, "slug": "marketing", "name": "Marketing"}},
        ],
        "prompts": [
            {"id": 10, "status": "published", "title_en": "Write a tagline", "description": "Short brand taglines", "prompt_text": "Write five taglines for [brand].", "difficulty_level": "beginner", "subcategory_id": 11, "prompt_type_id": "framework"},
            {"id": 22, "status": "published", "title_en": "Plan a launch", "description": "Launch checklist", "prompt_text": "Draft a launch plan for [product].", "difficulty_level": "intermediate", "subcategory_id": 11, "prompt_type_id": None},
            {"id": 99, "status": "published", "title_en": "Dashboard review", "description": "Review weekly numbers", "prompt_text": "Summarise this dashboard.", "difficulty_level": "advanced", "subcategory_id": None, "prompt_type_id": None},
        ],
        "prompt_categories": [
            {"id": 1, "prompts_id": 10, "categories_id": 7},
            {"id": 2, "prompts_id": 22, "categories_id": 7},
            {"id": 3, "prompts_id": 99, "categories_id": 3},
        ],
        "prompt_job_roles": [
            {"id": 1, "prompts_id": 10, "job_roles_id": 1},
        ],
    },
    "users": {
        "paid-token": {"id": "paid-user", "subscription_status": "paid", "subscription_expires_at": None},
        "free-token": {"id": "free-user", "subscription_status": "free", "subscription_expires_at": None},
    },
}


def _project(record: dict[str, Any], fields: list[str]) -> dict[str, Any]:
    if not fields or "*" in fields:
        return dict(record)
    wanted = {field.split(".", maxsplit=1)[0] for field in fields}
    return {key: value for key, value in record.items() if key in wanted}


class MockDirectusHandler(BaseHTTPRequestHandler):
    server_version = "MockDirectus/1.0"
    seed: dict[str, Any] = SEED

    def do_GET(self) -> None:  # noqa: N802 - stdlib handler signature
        parsed = urlparse(self.path)
        params = {key: values[-1] for key, values in parse_qs(parsed.query).items()}
        segments = [segment for segment in parsed.path.split("/") if segment]

        if segments == ["healthz"]:
            self._write_json(HTTPStatus.OK, {"status": "ok"})
            return
        if segments == ["users", "me"]:
            self._handle_me()
            return
        if len(segments) in {2, 3} and segments[0] == "items":
            self._handle_items(segments[1:], params)
            return
        self._write_json(HTTPStatus.NOT_FOUND, {"errors": [{"message": "route not found"}]})

    def log_message(self, _: str, *args: object) -> None:
        if args:
            print("mock-directus:", *args)

    def _handle_me(self) -> None:
        authorization = self.headers.get("Authorization", "")
        token = authorization.split(" ", maxsplit=1)[1].strip() if authorization.lower().startswith("bearer ") else ""
        user = self.seed.get("users", {}).get(token)
        if user is None:
            self._write_json(HTTPStatus.UNAUTHORIZED, {"errors": [{"message": "invalid token"}]})
            return
        self._write_json(HTTPStatus.OK, {"data": user})

    def _handle_items(self, segments: list[str], params: dict[str, str]) -> None:
        records = self.seed.get("collections", {}).get(segments[0])
        if records is None:
            self._write_json(HTTPStatus.FORBIDDEN, {"errors": [{"message": "collection not found"}]})
            return
        fields = [field for field in params.get("fields", "*").split(",") if field]

        if len(segments) == 2:
            record = next((row for row in records if str(row.get("id")) == segments[1]), None)
            if record is None:
                self._write_json(
                    HTTPStatus.NOT_FOUND,
                    {"errors": [{"message": "not found", "extensions": {"code": "RECORD_NOT_FOUND"}}]},
                )
                return
            self._write_json(HTTPStatus.OK, {"data": _project(record, fields)})
            return

        try:
            predicate = parse_filter(params["filter"]) if "filter" in params else None
            limit = int(params.get("limit", DIRECTUS_DEFAULT_LIMIT))
            offset = int(params.get("offset", 0))
        except ValueError as exc:
            self._write_json(HTTPStatus.BAD_REQUEST, {"errors": [{"message": str(exc)}]})
            return

        sort = [key for key in params.get("sort", "").split(",") if key]
        rows = apply_query(records, predicate=predicate, sort=sort, limit=limit, offset=offset)
        self._write_json(HTTPStatus.OK, {"data": [_project(row, fields) for row in rows]})

    def _write_json(self, status: HTTPStatus, payload: dict[str, Any]) -> None:
        raw = json.dumps(payload).encode("utf-8")
        self.send_response(status.value)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(raw)))
        self.end_headers()
        self.wfile.write(raw)


def main() -> None:
    parser = argparse.ArgumentParser(description="Mock content repository serving /items and /users/me.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8055)
    parser.add_argument("--seed", type=Path, default=None, help="JSON file with 'collections' and 'users' keys")
    args = parser.parse_args()

    if args.seed is not None:
        MockDirectusHandler.seed = json.loads(args.seed.read_text(encoding="utf-8"))

    server = ThreadingHTTPServer((args.host, args.port), MockDirectusHandler)
    print(f"mock-directus listening on http://{args.host}:{args.port}", flush=True)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()


if __name__ == "__main__":
    main()
