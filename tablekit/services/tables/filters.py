"""Filter descriptors.

A filter turns one request value into a SQL predicate. Column lookups go
through a ``PredicateResolver`` supplied by the query assembler, so dotted
keys (``company.name``) and relationship aggregates resolve the same way
for filters as they do for search.
"""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, ClassVar

from sqlalchemy import String, and_, cast, func, or_

from tablekit.services.tables.columns import generate_label
from tablekit.services.tables.exceptions import InvalidFilterException
from tablekit.services.tables.serialization import omit_defaults

ClauseBuilder = Callable[[Any], Any]
PredicateResolver = Callable[[str, ClauseBuilder], Any]

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def contains_pattern(term: str) -> str:
    return f"%{escape_like(term)}%"


def ilike_contains(expression: Any, term: str) -> Any:
    column_type = getattr(expression, "type", None)
    if not isinstance(column_type, String):
        expression = cast(expression, String)
    return expression.ilike(contains_pattern(term), escape="\\")


def coerce_to_column(expression: Any, value: Any) -> Any:
    """Convert a request value to the Python type the column binds."""
    try:
        python_type = expression.type.python_type
    except (AttributeError, NotImplementedError):
        return value

    if isinstance(value, python_type):
        return value
    try:
        if python_type is bool:
            token = str(value).strip().lower()
            if token in _TRUE_VALUES:
                return True
            if token in _FALSE_VALUES:
                return False
            raise ValueError(value)
        if issubclass(python_type, enum.Enum):
            try:
                return python_type(value)
            except ValueError:
                return python_type[str(value)]
        if python_type in (int, float, Decimal):
            return python_type(str(value).strip())
        if python_type is datetime:
            return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        if python_type is date:
            return date.fromisoformat(str(value)[:10])
    except (KeyError, ValueError, TypeError, InvalidOperation) as exc:
        raise InvalidFilterException(f"Cannot use {value!r} for this column") from exc
    return value


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and value.strip() == "":
        return True
    if isinstance(value, (list, tuple, dict)) and len(value) == 0:
        return True
    return False


def _parse_number(key: str, value: Any) -> float | None:
    if _is_blank(value):
        return None
    if isinstance(value, bool):
        raise InvalidFilterException.invalid_filter_value(key, value)
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidFilterException.invalid_filter_value(key, value) from exc


def _parse_date(key: str, value: Any) -> date | None:
    if _is_blank(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError as exc:
        raise InvalidFilterException.invalid_filter_value(key, value) from exc


@dataclass(frozen=True)
class BaseFilter(ABC):
    key: str
    label: str | None = None
    visible: bool = True
    default: Any = None
    state: Mapping[str, Any] = field(default_factory=dict)

    filter_type: ClassVar[str] = "base"
    wire_defaults: ClassVar[dict[str, Any]] = {
        "visible": True,
        "default": None,
        "state": {},
    }
    wire_always: ClassVar[frozenset[str]] = frozenset({"key", "label", "type"})

    @property
    def resolved_label(self) -> str:
        return self.label if self.label is not None else generate_label(self.key)

    def is_active(self, value: Any) -> bool:
        return not _is_blank(value)

    @abstractmethod
    def apply(self, resolve: PredicateResolver, value: Any) -> Any:
        """Return a predicate for ``value`` or None when the value selects nothing."""

    def _wire_fields(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "label": self.resolved_label,
            "type": self.filter_type,
            "visible": self.visible,
            "default": self.default,
            "state": dict(self.state),
        }

    def to_dict(self) -> dict[str, Any]:
        return omit_defaults(
            self._wire_fields(), defaults=self.wire_defaults, always=self.wire_always
        )


@dataclass(frozen=True)
class SearchFilter(BaseFilter):
    columns: Sequence[str] = ()
    placeholder: str | None = None

    filter_type: ClassVar[str] = "search"
    wire_defaults: ClassVar[dict[str, Any]] = {**BaseFilter.wire_defaults, "placeholder": None}
    wire_always: ClassVar[frozenset[str]] = frozenset({"key", "label", "type", "columns"})

    @property
    def target_columns(self) -> tuple[str, ...]:
        return tuple(self.columns) or (self.key,)

    def apply(self, resolve: PredicateResolver, value: Any) -> Any:
        if not isinstance(value, (str, int, float)) or isinstance(value, bool):
            raise InvalidFilterException.invalid_filter_value(self.key, value)
        term = str(value).strip()
        if not term:
            return None
        predicates = [
            predicate
            for predicate in (
                resolve(column, lambda expression: ilike_contains(expression, term))
                for column in self.target_columns
            )
            if predicate is not None
        ]
        if not predicates:
            return None
        return or_(*predicates)

    def _wire_fields(self) -> dict[str, Any]:
        return {
            **super()._wire_fields(),
            "columns": list(self.target_columns),
            "placeholder": self.placeholder or f"Search {self.resolved_label.lower()}...",
        }


@dataclass(frozen=True)
class SelectFilter(BaseFilter):
    options: Sequence[Mapping[str, Any]] | Mapping[Any, str] = ()
    multiple: bool = False
    placeholder: str | None = None

    filter_type: ClassVar[str] = "select"
    wire_defaults: ClassVar[dict[str, Any]] = {
        **BaseFilter.wire_defaults,
        "multiple": False,
        "placeholder": None,
    }
    wire_always: ClassVar[frozenset[str]] = frozenset({"key", "label", "type", "options"})

    @property
    def normalized_options(self) -> list[dict[str, Any]]:
        if isinstance(self.options, Mapping):
            return [{"value": value, "label": label} for value, label in self.options.items()]
        normalized = []
        for option in self.options:
            if isinstance(option, Mapping):
                normalized.append({"value": option["value"], "label": option.get("label", option["value"])})
            else:
                normalized.append({"value": option, "label": str(option)})
        return normalized

    def apply(self, resolve: PredicateResolver, value: Any) -> Any:
        if isinstance(value, Mapping):
            raise InvalidFilterException.invalid_filter_value(self.key, value)
        if isinstance(value, (list, tuple)):
            values = [item for item in value if not _is_blank(item)]
            if not values:
                return None
            if not self.multiple:
                values = values[:1]
            return resolve(
                self.key,
                lambda expression: expression.in_(
                    [coerce_to_column(expression, item) for item in values]
                ),
            )
        return resolve(self.key, lambda expression: expression == coerce_to_column(expression, value))

    def _wire_fields(self) -> dict[str, Any]:
        return {
            **super()._wire_fields(),
            "options": self.normalized_options,
            "multiple": self.multiple,
            "placeholder": self.placeholder,
        }


@dataclass(frozen=True)
class NumberRangeFilter(BaseFilter):
    min: float | None = None
    max: float | None = None
    step: float | None = None
    min_placeholder: str | None = None
    max_placeholder: str | None = None

    filter_type: ClassVar[str] = "number_range"
    wire_defaults: ClassVar[dict[str, Any]] = {
        **BaseFilter.wire_defaults,
        "min": None,
        "max": None,
        "step": None,
        "minPlaceholder": None,
        "maxPlaceholder": None,
    }

    def is_active(self, value: Any) -> bool:
        if isinstance(value, Mapping):
            return any(not _is_blank(value.get(bound)) for bound in ("min", "max"))
        return False

    def apply(self, resolve: PredicateResolver, value: Any) -> Any:
        if not isinstance(value, Mapping):
            raise InvalidFilterException.invalid_filter_value(self.key, value)
        lower = _parse_number(self.key, value.get("min"))
        upper = _parse_number(self.key, value.get("max"))
        if lower is None and upper is None:
            return None

        def build(expression: Any) -> Any:
            conditions = []
            if lower is not None:
                conditions.append(expression >= lower)
            if upper is not None:
                conditions.append(expression <= upper)
            return and_(*conditions)

        return resolve(self.key, build)

    def _wire_fields(self) -> dict[str, Any]:
        return {
            **super()._wire_fields(),
            "min": self.min,
            "max": self.max,
            "step": self.step,
            "minPlaceholder": self.min_placeholder,
            "maxPlaceholder": self.max_placeholder,
        }


@dataclass(frozen=True)
class DateRangeFilter(BaseFilter):
    min_date: date | None = None
    max_date: date | None = None
    format: str = "Y-m-d"
    start_placeholder: str | None = None
    end_placeholder: str | None = None

    filter_type: ClassVar[str] = "date_range"
    wire_defaults: ClassVar[dict[str, Any]] = {
        **BaseFilter.wire_defaults,
        "minDate": None,
        "maxDate": None,
        "format": "Y-m-d",
        "startPlaceholder": None,
        "endPlaceholder": None,
    }

    def is_active(self, value: Any) -> bool:
        if isinstance(value, Mapping):
            return any(not _is_blank(value.get(bound)) for bound in ("start", "end"))
        return False

    def apply(self, resolve: PredicateResolver, value: Any) -> Any:
        if not isinstance(value, Mapping):
            raise InvalidFilterException.invalid_filter_value(self.key, value)
        start = _parse_date(self.key, value.get("start"))
        end = _parse_date(self.key, value.get("end"))
        if start is None and end is None:
            return None

        def build(expression: Any) -> Any:
            day = func.date(expression)
            conditions = []
            if start is not None:
                conditions.append(day >= start.isoformat())
            if end is not None:
                conditions.append(day <= end.isoformat())
            return and_(*conditions)

        return resolve(self.key, build)

    def _wire_fields(self) -> dict[str, Any]:
        return {
            **super()._wire_fields(),
            "minDate": self.min_date.isoformat() if self.min_date else None,
            "maxDate": self.max_date.isoformat() if self.max_date else None,
            "format": self.format,
            "startPlaceholder": self.start_placeholder,
            "endPlaceholder": self.end_placeholder,
        }
