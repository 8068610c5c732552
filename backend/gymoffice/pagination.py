# Overview: Shared page/page_size parsing and list response envelope.

from __future__ import annotations

from typing import Callable

from flask import current_app, request


def page_args() -> tuple[int, int]:
    """
    Read ``page`` and ``page_size`` from the query string.

    Out-of-range values are clamped rather than rejected: page >= 1,
    1 <= page_size <= MAX_PAGE_SIZE.
    """
    default_size = current_app.config.get("DEFAULT_PAGE_SIZE", 10)
    max_size = current_app.config.get("MAX_PAGE_SIZE", 100)

    page = request.args.get("page", 1, type=int) or 1
    page_size = request.args.get("page_size", default_size, type=int) or default_size

    return max(page, 1), min(max(page_size, 1), max_size)


def paginated(pagination, serialize: Callable | None = None) -> dict:
    """Envelope returned by every list endpoint."""
    serialize = serialize or (lambda obj: obj.to_dict())
    return {
        "items": [serialize(obj) for obj in pagination.items],
        "total": pagination.total,
        "current_page": pagination.page,
        "total_pages": pagination.pages,
        "page_size": pagination.per_page,
    }


def flag_arg(name: str) -> bool:
    """Query-string boolean: 'true', '1' and 'yes' are truthy."""
    return (request.args.get(name) or "").strip().lower() in ("true", "1", "yes")
