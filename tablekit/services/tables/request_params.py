"""Parse table state (search, sort, page, filters) out of request query params.

Accepts a plain mapping or Starlette ``QueryParams``. Filters arrive either
as a JSON object in ``filters`` or with bracket syntax
(``filters[status]=active``, ``filters[score][min]=10``, ``filters[tags][]=a``).
Malformed values are dropped rather than rejected.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from tablekit.logging import get_logger

logger = get_logger(__name__)

_FILTER_KEY = re.compile(r"^filters\[([^\]]+)\](?:\[([^\]]*)\])?$")
_SORT_KEY = re.compile(r"^sort\[([^\]]+)\]$")


@dataclass(frozen=True)
class TableQueryParams:
    search: str | None = None
    sort: Mapping[str, str] = field(default_factory=dict)
    page: int = 1
    per_page: int | None = None
    filters: Mapping[str, Any] = field(default_factory=dict)

    def with_per_page_cap(self, maximum: int) -> TableQueryParams:
        if self.per_page is None or self.per_page <= maximum:
            return self
        return replace(self, per_page=maximum)


def _items(params: Any) -> list[tuple[str, Any]]:
    if params is None:
        return []
    if hasattr(params, "multi_items"):
        return list(params.multi_items())
    return list(params.items())


def _positive_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return max(parsed, 1)


def _parse_filters_json(raw: Any) -> dict[str, Any]:
    if isinstance(raw, Mapping):
        return dict(raw)
    if not isinstance(raw, str) or not raw.strip():
        return {}
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError:
        logger.debug("Ignoring malformed filters payload: %r", raw)
        return {}
    if not isinstance(decoded, dict):
        return {}
    return decoded


def parse_table_params(params: Any) -> TableQueryParams:
    search: str | None = None
    sort: dict[str, str] = {}
    sort_key: str | None = None
    direction: str | None = None
    page = 1
    per_page: int | None = None
    filters: dict[str, Any] = {}

    for key, value in _items(params):
        if key == "search":
            term = str(value).strip() if value is not None else ""
            search = term or None
        elif key == "sort":
            if isinstance(value, Mapping):
                sort.update({str(k): str(v) for k, v in value.items()})
            elif value:
                sort_key = str(value)
        elif key == "direction":
            direction = str(value)
        elif key == "page":
            page = _positive_int(value) or 1
        elif key == "per_page":
            per_page = _positive_int(value)
        elif key == "filters":
            filters.update(_parse_filters_json(value))
        elif match := _SORT_KEY.match(key):
            sort[match.group(1)] = str(value)
        elif match := _FILTER_KEY.match(key):
            name, sub_key = match.group(1), match.group(2)
            if sub_key is None:
                filters[name] = value
            elif sub_key == "":
                existing = filters.get(name)
                if not isinstance(existing, list):
                    existing = []
                existing.append(value)
                filters[name] = existing
            else:
                existing = filters.get(name)
                if not isinstance(existing, dict):
                    existing = {}
                existing[sub_key] = value
                filters[name] = existing

    if sort_key:
        sort = {sort_key: direction or "asc", **{k: v for k, v in sort.items() if k != sort_key}}

    return TableQueryParams(
        search=search,
        sort=sort,
        page=page,
        per_page=per_page,
        filters=filters,
    )
