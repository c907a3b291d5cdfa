"""Filter predicates for the content repository.

A predicate is built once per request and then rendered to the repository's
filter JSON (``to_filter``) or evaluated against plain records (``matches``).
Both renderings share the same tree, so every read issued from one predicate
sees exactly the same filter.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

Scalar = str | int | float | bool | None


@dataclass(frozen=True, slots=True)
class Eq:
    field: str
    value: Scalar

    def to_filter(self) -> dict[str, Any]:
        return _nest(self.field, {"_eq": self.value})

    def matches(self, record: dict[str, Any]) -> bool:
        return any(_equals(candidate, self.value) for candidate in _resolve(record, self.field))


@dataclass(frozen=True, slots=True)
class Neq:
    field: str
    value: Scalar

    def to_filter(self) -> dict[str, Any]:
        return _nest(self.field, {"_neq": self.value})

    def matches(self, record: dict[str, Any]) -> bool:
        return not any(_equals(candidate, self.value) for candidate in _resolve(record, self.field))


@dataclass(frozen=True, slots=True)
class In:
    field: str
    values: tuple[Scalar, ...]

    @classmethod
    def of(cls, field: str, values: Iterable[Scalar]) -> In:
        return cls(field=field, values=tuple(sorted(set(values), key=_sort_key)))

    def to_filter(self) -> dict[str, Any]:
        return _nest(self.field, {"_in": list(self.values)})

    def matches(self, record: dict[str, Any]) -> bool:
        return any(
            _equals(candidate, value)
            for candidate in _resolve(record, self.field)
            for value in self.values
        )


@dataclass(frozen=True, slots=True)
class Contains:
    """Case-insensitive substring match."""

    field: str
    value: str

    def to_filter(self) -> dict[str, Any]:
        return _nest(self.field, {"_icontains": self.value})

    def matches(self, record: dict[str, Any]) -> bool:
        needle = self.value.casefold()
        return any(
            isinstance(candidate, str) and needle in candidate.casefold()
            for candidate in _resolve(record, self.field)
        )


@dataclass(frozen=True, slots=True)
class And:
    operands: tuple[Predicate, ...]

    def to_filter(self) -> dict[str, Any]:
        return {"_and": [operand.to_filter() for operand in self.operands]}

    def matches(self, record: dict[str, Any]) -> bool:
        return all(operand.matches(record) for operand in self.operands)


@dataclass(frozen=True, slots=True)
class Or:
    operands: tuple[Predicate, ...]

    def to_filter(self) -> dict[str, Any]:
        return {"_or": [operand.to_filter() for operand in self.operands]}

    def matches(self, record: dict[str, Any]) -> bool:
        return any(operand.matches(record) for operand in self.operands)


Predicate = Eq | Neq | In | Contains | And | Or

_FIELD_OPERATORS = {"_eq", "_neq", "_in", "_icontains"}


def all_of(*predicates: Predicate | None) -> Predicate | None:
    operands = _flatten(And, predicates)
    if not operands:
        return None
    if len(operands) == 1:
        return operands[0]
    return And(operands)


def any_of(*predicates: Predicate | None) -> Predicate | None:
    operands = _flatten(Or, predicates)
    if not operands:
        return None
    if len(operands) == 1:
        return operands[0]
    return Or(operands)


def contains_any(fields: Iterable[str], value: str) -> Predicate | None:
    return any_of(*(Contains(field, value) for field in fields))


def dumps_filter(predicate: Predicate) -> str:
    return json.dumps(predicate.to_filter(), separators=(",", ":"), ensure_ascii=False)


def parse_filter(raw: dict[str, Any] | str) -> Predicate:
    """Rebuild a predicate from repository filter JSON.

    Accepts the same operator subset that ``to_filter`` emits and raises
    ``ValueError`` for anything else.
    """
    decoded = json.loads(raw) if isinstance(raw, str) else raw
    if not isinstance(decoded, dict) or not decoded:
        raise ValueError("filter must be a non-empty object")
    predicate = _parse_node(decoded, prefix=None)
    return predicate


def apply_query(
    records: Iterable[dict[str, Any]],
    *,
    predicate: Predicate | None = None,
    sort: Iterable[str] = (),
    limit: int | None = None,
    offset: int = 0,
) -> list[dict[str, Any]]:
    """Evaluate a read-list request against in-memory records."""
    rows = [record for record in records if predicate is None or predicate.matches(record)]
    for key in reversed(list(sort)):
        field = key.lstrip("-")
        rows.sort(key=lambda row: _order_key(row.get(field)), reverse=key.startswith("-"))
    start = max(0, offset)
    if limit is None or limit < 0:
        return rows[start:]
    return rows[start : start + limit]


def _parse_node(node: dict[str, Any], *, prefix: str | None) -> Predicate:
    parsed: list[Predicate] = []
    for key, value in node.items():
        if key in {"_and", "_or"}:
            if not isinstance(value, list):
                raise ValueError(f"{key} expects a list")
            operands = tuple(_parse_node(_as_object(item), prefix=prefix) for item in value)
            parsed.append(And(operands) if key == "_and" else Or(operands))
        elif key in _FIELD_OPERATORS:
            if prefix is None:
                raise ValueError(f"operator {key} requires a field")
            parsed.append(_parse_operator(prefix, key, value))
        elif key.startswith("_"):
            raise ValueError(f"unsupported filter operator: {key}")
        else:
            field = key if prefix is None else f"{prefix}.{key}"
            parsed.append(_parse_node(_as_object(value), prefix=field))
    if len(parsed) == 1:
        return parsed[0]
    return And(tuple(parsed))


def _parse_operator(field: str, operator: str, value: Any) -> Predicate:
    if operator == "_eq":
        return Eq(field, value)
    if operator == "_neq":
        return Neq(field, value)
    if operator == "_in":
        if isinstance(value, str):
            value = [chunk for chunk in value.split(",") if chunk]
        if not isinstance(value, list):
            raise ValueError("_in expects a list")
        return In(field, tuple(value))
    if not isinstance(value, str):
        raise ValueError("_icontains expects a string")
    return Contains(field, value)


def _as_object(value: Any) -> dict[str, Any]:
    if not isinstance(value, dict) or not value:
        raise ValueError("filter node must be a non-empty object")
    return value


def _flatten(kind: type[And] | type[Or], predicates: Iterable[Predicate | None]) -> tuple[Predicate, ...]:
    operands: list[Predicate] = []
    for predicate in predicates:
        if predicate is None:
            continue
        if isinstance(predicate, kind):
            operands.extend(predicate.operands)
        else:
            operands.append(predicate)
    return tuple(operands)


def _nest(field: str, operation: dict[str, Any]) -> dict[str, Any]:
    node: dict[str, Any] = operation
    for part in reversed(field.split(".")):
        node = {part: node}
    return node


def _resolve(record: dict[str, Any], field: str) -> list[Any]:
    current: list[Any] = [record]
    for part in field.split("."):
        following: list[Any] = []
        for value in current:
            if not isinstance(value, dict) or part not in value:
                continue
            child = value[part]
            if isinstance(child, list):
                following.extend(child)
            else:
                following.append(child)
        current = following
    return current


def _equals(candidate: Any, expected: Any) -> bool:
    if candidate is None or expected is None:
        return candidate is expected
    if isinstance(candidate, bool) or isinstance(expected, bool):
        return candidate is expected
    return candidate == expected or str(candidate) == str(expected)


def _sort_key(value: Any) -> tuple[int, Any]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (0, value)
    return (1, str(value))


def _order_key(value: Any) -> tuple[int, Any]:
    if value is None:
        return (2, "")
    return _sort_key(value)
