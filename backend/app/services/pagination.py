"""Page-number parsing and navigation state for post listings."""

from __future__ import annotations

import re
from dataclasses import dataclass

NO_NEXT_PAGE = -1

# Largest page index accepted; matches a signed 64-bit integer.
MAX_PAGE = 2**63 - 1

_PAGE_RE = re.compile(r"[+-]?[0-9]+")


@dataclass(frozen=True)
class PaginationState:
    """Navigation values handed to the template next to the post slice.

    ``next_page`` is :data:`NO_NEXT_PAGE` when the store reported no more
    posts. ``prev_page`` is plain ``page - 1`` and is -1 on the first page.
    """

    page: int
    next_page: int
    prev_page: int


def get_page_num(raw: str | None) -> int:
    """Return the requested page index.

    Only plain ASCII decimal digits with an optional sign are accepted.
    Absent, malformed, negative and out-of-range values all mean page 0.
    """
    if raw is None or not _PAGE_RE.fullmatch(raw):
        return 0
    page = int(raw)
    if page < 0 or page > MAX_PAGE:
        return 0
    return page


def page_window(page: int, page_size: int) -> tuple[int, int]:
    """Return ``(offset, limit)`` for *page*."""
    return page * page_size, page_size


def navigation(page: int, has_more: bool) -> PaginationState:
    next_page = page + 1 if has_more else NO_NEXT_PAGE
    return PaginationState(page=page, next_page=next_page, prev_page=page - 1)
