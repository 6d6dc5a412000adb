"""Wire helpers shared by columns, filters, actions and results."""

from __future__ import annotations

import enum
from collections.abc import Iterable, Mapping
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from tablekit.services.tables.exceptions import SerializationException


def omit_defaults(
    data: Mapping[str, Any],
    *,
    defaults: Mapping[str, Any],
    always: Iterable[str],
) -> dict[str, Any]:
    """Drop fields equal to their declared default.

    Fields named in ``always`` are emitted unconditionally; fields with no
    declared default are emitted as-is.
    """
    always_present = set(always)
    compact: dict[str, Any] = {}
    for key, value in data.items():
        if key not in always_present and key in defaults and _same_value(value, defaults[key]):
            continue
        compact[key] = value
    return compact


def _same_value(value: Any, default: Any) -> bool:
    # True == 1 in Python; compare booleans by identity.
    if isinstance(value, bool) or isinstance(default, bool):
        return value is default
    return value == default


def convert_value(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    return value


def identity_string(value: Any) -> str:
    """Stable string form of a primary key, used in signed callbacks."""
    if value is None:
        raise SerializationException.failed_to_serialize("record identity", "identity is None")
    converted = convert_value(value)
    return str(converted)


_TS_SCALARS = {
    "text": "TextColumnConfig",
    "badge": "BadgeColumnConfig",
    "icon": "IconColumnConfig",
    "image": "ImageColumnConfig",
}


def generate_typescript_types(columns: Iterable[Any]) -> str:
    """Render TypeScript declarations describing a table's column configuration."""
    interface_names: list[str] = []
    for column in columns:
        column_type = getattr(column, "column_type", None)
        if not column_type:
            raise SerializationException.failed_to_serialize(
                "TypeScript types", f"{column!r} has no column type"
            )
        name = _TS_SCALARS.get(column_type, f"{column_type.capitalize()}ColumnConfig")
        if name not in interface_names:
            interface_names.append(name)

    union = " | ".join(interface_names) if interface_names else "never"
    return (
        "// Auto-generated TypeScript types\n\n"
        "export interface TableConfig {\n"
        "  columns: ColumnConfig[];\n"
        "  searchable: boolean;\n"
        "  perPage: number;\n"
        "  defaultSort: Record<string, 'asc' | 'desc'>;\n"
        "}\n\n"
        f"export type ColumnConfig = {union};"
    )
