"""Free-tier gating.

Whether a prompt is revealed depends on the viewer and on the prompt's
position in the list being shown to that viewer, never on the prompt itself.
The same prompt can be open at position 1 of a filtered listing and locked at
position 40 of the full catalogue.
"""

from __future__ import annotations

from typing import Any

from prompt_library.core.config import get_settings


def can_reveal(viewer: Any, ordinal_index: Any, *, free_limit: int | None = None) -> bool:
    if getattr(viewer, "is_paid", False) is True:
        return True
    if isinstance(ordinal_index, bool) or not isinstance(ordinal_index, int) or ordinal_index < 0:
        return False
    return ordinal_index < _effective_limit(free_limit)


def reveal_flags(viewer: Any, count: int, *, start: int = 0, free_limit: int | None = None) -> list[bool]:
    limit = _effective_limit(free_limit)
    return [can_reveal(viewer, start + position, free_limit=limit) for position in range(max(0, count))]


def _effective_limit(free_limit: int | None) -> int:
    if free_limit is None:
        try:
            free_limit = get_settings().free_prompt_limit
        except ValueError:
            return 0
    if isinstance(free_limit, bool) or not isinstance(free_limit, int):
        return 0
    return max(0, free_limit)
