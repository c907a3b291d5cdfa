from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

Identifier = int | str


@dataclass(frozen=True, slots=True)
class Matched:
    ids: frozenset[Identifier]


class NoMatch:
    """A filter dimension resolved to nothing; the whole query is empty."""

    _instance: NoMatch | None = None

    def __new__(cls) -> NoMatch:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NO_MATCH"


NO_MATCH = NoMatch()

Resolution = Matched | NoMatch


def matched(ids: Iterable[Identifier | None]) -> Resolution:
    resolved = frozenset(value for value in ids if value is not None)
    if not resolved:
        return NO_MATCH
    return Matched(resolved)


def intersect(left: Resolution, right: Resolution) -> Resolution:
    if isinstance(left, NoMatch) or isinstance(right, NoMatch):
        return NO_MATCH
    return matched(left.ids & right.ids)


def intersect_all(outcomes: Iterable[Resolution]) -> Resolution | None:
    """Fold outcomes with AND semantics; ``None`` means nothing constrained the ids."""
    folded: Resolution | None = None
    for outcome in outcomes:
        folded = outcome if folded is None else intersect(folded, outcome)
        if isinstance(folded, NoMatch):
            return NO_MATCH
    return folded


async def gather_or_short_circuit(stages: Mapping[str, Awaitable[Any]]) -> dict[str, Any] | None:
    """Run named stages concurrently.

    Returns ``None`` as soon as any stage yields ``NO_MATCH``. Stages still in
    flight at that point, or when a stage fails or the caller is cancelled,
    are cancelled before control returns. Within one batch of finished stages
    a failure takes precedence over ``NO_MATCH``, and the first failing stage
    in declaration order is the one raised.
    """
    tasks = {name: asyncio.ensure_future(stage) for name, stage in stages.items()}
    try:
        pending = set(tasks.values())
        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            finished = [task for task in tasks.values() if task in done]
            errors = [task.exception() for task in finished]
            for error in errors:
                if error is not None:
                    raise error
            if any(isinstance(task.result(), NoMatch) for task in finished):
                return None
        return {name: task.result() for name, task in tasks.items()}
    finally:
        leftovers = [task for task in tasks.values() if not task.done()]
        for task in leftovers:
            task.cancel()
        if leftovers:
            await asyncio.gather(*leftovers, return_exceptions=True)
