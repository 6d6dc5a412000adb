"""Column descriptors.

Columns are immutable: every builder-style method returns a modified copy.
A column knows how to describe itself on the wire (``to_dict``) and how to
format one raw value pulled from a record (``format``). A dotted key that
crosses a to-many relationship yields a list; each item is formatted on
its own and the column value becomes a list.
"""

from __future__ import annotations

from collections.abc import Callable, Hashable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any, ClassVar

from tablekit.services.tables.exceptions import InvalidColumnException
from tablekit.services.tables.serialization import convert_value, omit_defaults

EMPTY_STATE: None = None
ELLIPSIS = "..."

AGGREGATE_KINDS = ("count", "exists", "avg", "max", "min", "sum")
SORT_DIRECTIONS = ("asc", "desc")

BadgeVariantResolver = Callable[[Any, Any], "str | None"]


def generate_label(key: str) -> str:
    text = key.split(".")[-1] if "." in key else key
    text = text.replace("_", " ").replace("-", " ")
    return text[:1].upper() + text[1:]


@dataclass(frozen=True)
class RelationshipAggregate:
    relation: str
    kind: str
    column: str | None = None

    def __post_init__(self) -> None:
        if self.kind not in AGGREGATE_KINDS:
            raise InvalidColumnException.invalid_aggregate(self.relation, self.kind)
        if self.kind in ("count", "exists"):
            if self.column is not None:
                raise InvalidColumnException(
                    f"Aggregate '{self.kind}' on '{self.relation}' does not take a column"
                )
        elif not self.column:
            raise InvalidColumnException(
                f"Aggregate '{self.kind}' on '{self.relation}' requires a column"
            )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"relation": self.relation, "kind": self.kind}
        if self.column:
            data["column"] = self.column
        return data


def counts(relation: str) -> RelationshipAggregate:
    return RelationshipAggregate(relation, "count")


def exists(relation: str) -> RelationshipAggregate:
    return RelationshipAggregate(relation, "exists")


def avg(relation: str, column: str) -> RelationshipAggregate:
    return RelationshipAggregate(relation, "avg", column)


def max_of(relation: str, column: str) -> RelationshipAggregate:
    return RelationshipAggregate(relation, "max", column)


def min_of(relation: str, column: str) -> RelationshipAggregate:
    return RelationshipAggregate(relation, "min", column)


def sum_of(relation: str, column: str) -> RelationshipAggregate:
    return RelationshipAggregate(relation, "sum", column)


@dataclass(frozen=True)
class BaseColumn:
    key: str
    label: str | None = None
    visible: bool = True
    sortable: bool = False
    searchable: bool = False
    search_column: str | None = None
    default_sort: str | None = None
    state: Mapping[str, Any] = field(default_factory=dict)
    aggregate: RelationshipAggregate | None = None

    column_type: ClassVar[str] = "base"
    wire_defaults: ClassVar[dict[str, Any]] = {
        "visible": True,
        "sortable": False,
        "searchable": False,
        "searchColumn": None,
        "defaultSort": None,
        "state": {},
        "aggregate": None,
    }
    wire_always: ClassVar[frozenset[str]] = frozenset({"key", "label", "type"})

    def __post_init__(self) -> None:
        if not self.key:
            raise InvalidColumnException("Column key is required")
        if self.default_sort is not None and self.default_sort not in SORT_DIRECTIONS:
            raise InvalidColumnException(
                f"Column '{self.key}' default sort must be 'asc' or 'desc'"
            )

    @property
    def resolved_label(self) -> str:
        return self.label if self.label is not None else generate_label(self.key)

    @property
    def search_target(self) -> str:
        return self.search_column or self.key

    @property
    def relation_path(self) -> str | None:
        """Relationship path implied by a dotted key (``author.company.name`` -> ``author.company``)."""
        if self.aggregate is not None or "." not in self.key:
            return None
        return self.key.rsplit(".", 1)[0]

    @property
    def is_aggregate(self) -> bool:
        return self.aggregate is not None

    def with_label(self, label: str):
        return replace(self, label=label)

    def hidden(self):
        return replace(self, visible=False)

    def as_sortable(self, sortable: bool = True):
        return replace(self, sortable=sortable)

    def as_searchable(self, searchable: bool = True, column: str | None = None):
        return replace(self, searchable=searchable, search_column=column)

    def sorted_by_default(self, direction: str = "asc"):
        return replace(self, default_sort=direction)

    def with_state(self, **state: Any):
        return replace(self, state={**self.state, **state})

    def counts(self, relation: str):
        return replace(self, aggregate=counts(relation))

    def exists(self, relation: str):
        return replace(self, aggregate=exists(relation))

    def avg(self, relation: str, column: str):
        return replace(self, aggregate=avg(relation, column))

    def max(self, relation: str, column: str):
        return replace(self, aggregate=max_of(relation, column))

    def min(self, relation: str, column: str):
        return replace(self, aggregate=min_of(relation, column))

    def sum(self, relation: str, column: str):
        return replace(self, aggregate=sum_of(relation, column))

    def format(self, value: Any, record: Any = None) -> Any:
        if isinstance(value, (list, tuple)):
            items = [self.format_value(item, record) for item in value if item is not None]
            return items or EMPTY_STATE
        if value is None:
            return EMPTY_STATE
        return self.format_value(value, record)

    def format_value(self, value: Any, record: Any = None) -> Any:
        """Format one non-null value."""
        return convert_value(value)

    def display_variant(self, value: Any, record: Any = None) -> str | None:
        """Per-row display variant, for columns that compute one from the record."""
        return None

    def _wire_fields(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "label": self.resolved_label,
            "type": self.column_type,
            "visible": self.visible,
            "sortable": self.sortable,
            "searchable": self.searchable,
            "searchColumn": self.search_column,
            "defaultSort": self.default_sort,
            "state": dict(self.state),
            "aggregate": self.aggregate.to_dict() if self.aggregate else None,
        }

    def to_dict(self) -> dict[str, Any]:
        return omit_defaults(
            self._wire_fields(), defaults=self.wire_defaults, always=self.wire_always
        )


@dataclass(frozen=True)
class TextColumn(BaseColumn):
    prefix: str | None = None
    suffix: str | None = None
    copyable: bool = False
    limit: int | None = None
    wrap: str = "truncate"
    badge: bool = False
    badge_variant: str | BadgeVariantResolver | None = None
    labels: Mapping[Any, str] = field(default_factory=dict)

    column_type: ClassVar[str] = "text"
    wire_defaults: ClassVar[dict[str, Any]] = {
        **BaseColumn.wire_defaults,
        "prefix": None,
        "suffix": None,
        "copyable": False,
        "limit": None,
        "badge": False,
        "badgeVariant": None,
    }
    wire_always: ClassVar[frozenset[str]] = frozenset({"key", "label", "type", "wrap"})

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.limit is not None and self.limit < 1:
            raise InvalidColumnException(f"Column '{self.key}' limit must be positive")
        if self.wrap not in ("truncate", "break-words"):
            raise InvalidColumnException(
                f"Column '{self.key}' wrap must be 'truncate' or 'break-words'"
            )

    def with_prefix(self, prefix: str):
        return replace(self, prefix=prefix)

    def with_suffix(self, suffix: str):
        return replace(self, suffix=suffix)

    def limited(self, limit: int):
        return replace(self, limit=limit)

    def wrapped(self):
        return replace(self, wrap="break-words")

    def as_badge(self, variant: str | BadgeVariantResolver | None = None):
        return replace(self, badge=True, badge_variant=variant)

    def resolve_label(self, value: Any) -> Any:
        value = convert_value(value)
        label = _lookup(self.labels, value, coerce=False)
        return value if label is None else label

    def format_value(self, value: Any, record: Any = None) -> Any:
        resolved = self.resolve_label(value)
        # exists() aggregates stay booleans on the wire
        if isinstance(resolved, bool):
            return resolved

        formatted = str(resolved)

        if self.limit and len(formatted) > self.limit:
            formatted = formatted[: self.limit] + ELLIPSIS

        if self.prefix:
            formatted = self.prefix + formatted

        if self.suffix:
            formatted = formatted + self.suffix

        return formatted

    def display_variant(self, value: Any, record: Any = None) -> str | None:
        if not self.badge or not callable(self.badge_variant):
            return None
        return self.badge_variant(convert_value(value), record)

    def _wire_fields(self) -> dict[str, Any]:
        static_variant = self.badge_variant if isinstance(self.badge_variant, str) else None
        return {
            **super()._wire_fields(),
            "prefix": self.prefix,
            "suffix": self.suffix,
            "copyable": self.copyable,
            "limit": self.limit,
            "wrap": self.wrap,
            "badge": self.badge,
            "badgeVariant": static_variant,
        }


@dataclass(frozen=True)
class BadgeColumn(BaseColumn):
    colors: Mapping[Any, str] = field(default_factory=dict)
    size: str = "md"
    variant: str = "default"
    default_color: str | None = None

    column_type: ClassVar[str] = "badge"
    wire_defaults: ClassVar[dict[str, Any]] = {
        **BaseColumn.wire_defaults,
        "colors": {},
        "size": "md",
        "variant": "default",
        "defaultColor": None,
    }

    def format_value(self, value: Any, record: Any = None) -> Any:
        value = convert_value(value)
        return {
            "value": value,
            "color": _lookup(self.colors, value) or self.default_color or "gray",
            "size": self.size,
            "variant": self.variant,
        }

    def _wire_fields(self) -> dict[str, Any]:
        return {
            **super()._wire_fields(),
            "colors": dict(self.colors),
            "size": self.size,
            "variant": self.variant,
            "defaultColor": self.default_color,
        }


@dataclass(frozen=True)
class IconColumn(BaseColumn):
    icons: Mapping[Any, str] = field(default_factory=dict)
    colors: Mapping[Any, str] = field(default_factory=dict)
    size: str = "md"
    default_icon: str | None = None
    default_color: str | None = None

    column_type: ClassVar[str] = "icon"
    wire_defaults: ClassVar[dict[str, Any]] = {
        **BaseColumn.wire_defaults,
        "icons": {},
        "colors": {},
        "size": "md",
        "defaultIcon": None,
        "defaultColor": None,
    }

    def format_value(self, value: Any, record: Any = None) -> Any:
        value = convert_value(value)
        return {
            "value": value,
            "icon": _lookup(self.icons, value) or self.default_icon or "circle",
            "color": _lookup(self.colors, value) or self.default_color or "gray",
            "size": self.size,
        }

    def _wire_fields(self) -> dict[str, Any]:
        return {
            **super()._wire_fields(),
            "icons": dict(self.icons),
            "colors": dict(self.colors),
            "size": self.size,
            "defaultIcon": self.default_icon,
            "defaultColor": self.default_color,
        }


@dataclass(frozen=True)
class ImageColumn(BaseColumn):
    fallback: str | None = None
    size: str = "md"
    rounded: bool = False
    alt: str | None = None

    column_type: ClassVar[str] = "image"
    wire_defaults: ClassVar[dict[str, Any]] = {
        **BaseColumn.wire_defaults,
        "fallback": None,
        "size": "md",
        "rounded": False,
        "alt": None,
    }

    def format_value(self, value: Any, record: Any = None) -> Any:
        return {
            "src": convert_value(value),
            "fallback": self.fallback,
            "size": self.size,
            "rounded": self.rounded,
            "alt": self.alt or "Image",
        }

    def _wire_fields(self) -> dict[str, Any]:
        return {
            **super()._wire_fields(),
            "fallback": self.fallback,
            "size": self.size,
            "rounded": self.rounded,
            "alt": self.alt,
        }


def _lookup(mapping: Mapping[Any, Any], value: Any, *, coerce: bool = True) -> Any:
    if not isinstance(value, Hashable):
        return None
    if value in mapping:
        return mapping[value]
    return mapping.get(str(value)) if coerce else None
