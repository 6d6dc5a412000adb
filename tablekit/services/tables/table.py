"""Table declarations.

A ``Table`` pairs a base query with columns, filters and actions. Tables are
built by registry factories for every request and bound to their registry key
before rendering, which is what lets actions sign callbacks.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import Any, Union

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from tablekit.config import settings
from tablekit.services.tables.actions import (
    Action,
    ActionGroup,
    BaseAction,
    BulkAction,
    flatten_actions,
)
from tablekit.services.tables.builder import QueryAssembler, primary_key_attribute, statement_entity
from tablekit.services.tables.columns import BaseColumn
from tablekit.services.tables.exceptions import TableConfigurationError, UnresolvableIdentityError
from tablekit.services.tables.filters import BaseFilter
from tablekit.services.tables.request_params import TableQueryParams
from tablekit.services.tables.result import TableResult
from tablekit.services.tables.signing import KIND_ACTION, KIND_BULK_ACTION, CallbackSigner

QuerySource = Union[type, Select, Callable[[], Select]]


@dataclass(frozen=True)
class Table:
    query: QuerySource
    columns: Sequence[BaseColumn] = ()
    filters: Sequence[BaseFilter] = ()
    actions: Sequence[Action | ActionGroup] = ()
    bulk_actions: Sequence[BulkAction | ActionGroup] = ()
    header_actions: Sequence[Action | ActionGroup] = ()
    searchable: bool = False
    per_page: int = field(default_factory=lambda: settings.default_per_page)
    default_sort: Mapping[str, str] = field(default_factory=dict)
    name: str | None = None
    key: str | None = None

    def __post_init__(self) -> None:
        for attribute in ("columns", "filters", "actions", "bulk_actions", "header_actions"):
            object.__setattr__(self, attribute, tuple(getattr(self, attribute)))
        if self.per_page < 1:
            raise TableConfigurationError("per_page must be at least 1")
        self._check_unique("column", [column.key for column in self.columns])
        self._check_unique("filter", [table_filter.key for table_filter in self.filters])
        self._check_unique(
            "operation",
            [action.name for action in self.row_actions() + self.all_header_actions()],
        )
        self._check_unique("bulk operation", [action.name for action in self.all_bulk_actions()])
        for action in self.all_bulk_actions():
            if not isinstance(action, BulkAction):
                raise TableConfigurationError(
                    f"Bulk action slot holds {type(action).__name__} '{action.name}'"
                )
            action.require_authorization()

    @staticmethod
    def _check_unique(kind: str, names: list[str]) -> None:
        seen: set[str] = set()
        for name in names:
            if name in seen:
                raise TableConfigurationError(f"Duplicate {kind} name: {name}")
            seen.add(name)

    def statement(self) -> Select:
        source = self.query
        if isinstance(source, Select):
            return source
        if isinstance(source, type):
            return select(source)
        if callable(source):
            statement = source()
            if not isinstance(statement, Select):
                raise TableConfigurationError("Table query factory must return a select() statement")
            return statement
        raise TableConfigurationError(f"Unsupported table query source: {source!r}")

    @property
    def model(self) -> type:
        return statement_entity(self.statement())

    @property
    def primary_key_name(self) -> str:
        return primary_key_attribute(self.model)

    def row_actions(self) -> list[BaseAction]:
        return flatten_actions(self.actions)

    def all_bulk_actions(self) -> list[BaseAction]:
        return flatten_actions(self.bulk_actions)

    def all_header_actions(self) -> list[BaseAction]:
        return flatten_actions(self.header_actions)

    def bind(self, key: str) -> Table:
        """Attach the registry key to this table and every action it declares."""
        return replace(
            self,
            key=key,
            actions=tuple(entry.bind(key) for entry in self.actions),
            bulk_actions=tuple(entry.bind(key) for entry in self.bulk_actions),
            header_actions=tuple(entry.bind(key) for entry in self.header_actions),
        )

    def find_operation(self, kind: str, name: str) -> BaseAction:
        if kind == KIND_BULK_ACTION:
            candidates = self.all_bulk_actions()
        elif kind == KIND_ACTION:
            candidates = self.row_actions() + self.all_header_actions()
        else:
            raise UnresolvableIdentityError(f"Unknown operation kind: {kind}")
        for action in candidates:
            if action.name == name:
                return action
        raise UnresolvableIdentityError(f"Operation '{name}' is not declared on table '{self.key}'")

    def config(self) -> dict[str, Any]:
        return {
            "columns": [column.to_dict() for column in self.columns],
            "filters": [table_filter.to_dict() for table_filter in self.filters],
            "searchable": self.searchable,
            "perPage": self.per_page,
            "defaultSort": dict(self.default_sort),
        }

    def _row_decorator(self, signer: CallbackSigner) -> Callable[[Any, dict[str, Any]], None]:
        row_actions = self.row_actions()

        def decorate(record: Any, row: dict[str, Any]) -> None:
            row["_actions"] = {
                action.name: action.to_row_dict(record, signer=signer)
                for action in row_actions
                if action.is_visible(record) and action.is_authorized(record)
            }

        return decorate

    def build(
        self,
        db: Session,
        params: TableQueryParams | None = None,
        *,
        base_url: str | None = None,
        signer: CallbackSigner | None = None,
    ) -> TableResult:
        if self.key is None:
            raise TableConfigurationError(
                "Table must be bound to a registry key before it is rendered"
            )
        params = params or TableQueryParams()
        signer = signer or CallbackSigner()

        assembler = QueryAssembler(
            db,
            self.statement(),
            self.columns,
            self.filters,
            searchable=self.searchable,
            default_sort=self.default_sort,
            per_page=self.per_page,
        )
        page = assembler.assemble(
            params,
            base_url=base_url,
            decorate_row=self._row_decorator(signer) if self.actions else None,
        )

        header_actions = _table_level_entries(
            self.header_actions,
            lambda action: {**action.to_dict(), **action.to_row_dict(None, signer=signer)},
        )
        bulk_actions = _table_level_entries(
            self.bulk_actions,
            lambda action: action.to_bound_dict(signer=signer),
        )

        return TableResult(
            config=self.config(),
            data=page.rows,
            pagination=page.pagination,
            sort=page.sort,
            search=page.search,
            filters=page.filters,
            name=self.name or self.key,
            actions=[entry.to_dict() for entry in self.actions],
            bulk_actions=bulk_actions,
            header_actions=header_actions,
            primary_key=self.primary_key_name,
        )


def _table_level_entries(
    entries: Sequence[Any],
    serialize: Callable[[Any], dict[str, Any]],
) -> list[dict[str, Any]]:
    """Serialize header or bulk entries that are available without a record."""
    serialized: list[dict[str, Any]] = []
    for entry in entries:
        if isinstance(entry, ActionGroup):
            members = entry.visible_actions(None)
            if entry.is_visible(None) and members:
                serialized.append(
                    {**entry.to_dict(), "actions": [serialize(member) for member in members]}
                )
        elif entry.is_visible(None) and entry.is_authorized(None):
            serialized.append(serialize(entry))
    return serialized
