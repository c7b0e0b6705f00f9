"""
api/pagination.py -- Page-link construction for list endpoints.

Links are absolute (origin + path) and carry both query params so a client
can follow them without knowing the defaults:

    {"self": {"number": 2, "href": ".../users?take=25&page=2"},
     "first": ..., "prev": ..., "next": ..., "last": ...}

first/prev appear only after page 1; next only before the last page.
"""

from __future__ import annotations

import math

from fastapi import Request

from api.models import Link


def _link(base: str, take: int, number: int) -> Link:
    return Link(number=number, href=f"{base}?take={take}&page={number}")


def build_page(request: Request, take: int, page: int, count: int) -> dict[str, Link]:
    base = f"{request.url.scheme}://{request.url.netloc}{request.url.path}"
    last_page = max(1, math.ceil(count / take))

    links = {"self": _link(base, take, page)}
    if page > 1:
        links["first"] = _link(base, take, 1)
        links["prev"] = _link(base, take, page - 1)
    if page < last_page:
        links["next"] = _link(base, take, page + 1)
    links["last"] = _link(base, take, last_page)
    return links
