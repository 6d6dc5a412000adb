"""Rendered table payload."""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlencode

PREVIOUS_LABEL = "&laquo; Previous"
NEXT_LABEL = "Next &raquo;"


@dataclass(frozen=True)
class TableResult:
    config: Mapping[str, Any]
    data: Sequence[Mapping[str, Any]]
    pagination: Mapping[str, Any]
    sort: Mapping[str, str] = field(default_factory=dict)
    search: str | None = None
    filters: Mapping[str, Any] = field(default_factory=dict)
    name: str | None = None
    actions: Sequence[Mapping[str, Any]] = ()
    bulk_actions: Sequence[Mapping[str, Any]] = ()
    header_actions: Sequence[Mapping[str, Any]] = ()
    primary_key: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "config": dict(self.config),
            "data": [dict(row) for row in self.data],
            "pagination": dict(self.pagination),
            "sort": dict(self.sort),
            "search": self.search,
            "filters": dict(self.filters),
            "name": self.name,
            "actions": list(self.actions),
            "bulkActions": list(self.bulk_actions),
            "headerActions": list(self.header_actions),
            "primaryKey": self.primary_key,
        }


def page_url(base_url: str | None, query: Mapping[str, Any], page: int) -> str:
    params = {key: value for key, value in query.items() if key != "page" and value is not None}
    params["page"] = page
    return f"{base_url or ''}?{urlencode(params, doseq=True)}"


def build_pagination(
    *,
    total: int,
    page: int,
    per_page: int,
    count: int,
    base_url: str | None = None,
    query: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    query = query or {}
    last_page = max(math.ceil(total / per_page), 1) if per_page else 1
    start = (page - 1) * per_page + 1 if count else None
    end = start + count - 1 if start is not None else None

    links: list[dict[str, Any]] = [
        {
            "url": page_url(base_url, query, page - 1) if page > 1 else None,
            "label": PREVIOUS_LABEL,
            "active": False,
        }
    ]
    for number in range(1, last_page + 1):
        links.append(
            {
                "url": page_url(base_url, query, number),
                "label": str(number),
                "active": number == page,
            }
        )
    links.append(
        {
            "url": page_url(base_url, query, page + 1) if page < last_page else None,
            "label": NEXT_LABEL,
            "active": False,
        }
    )

    return {
        "current_page": page,
        "per_page": per_page,
        "total": total,
        "last_page": last_page,
        "from": start,
        "to": end,
        "links": links,
    }
