"""Query assembly: search, filters, aggregates, sort and pagination.

``QueryAssembler`` takes a base ``select()`` over one ORM entity plus the
column and filter declarations of a table, applies the request state and
returns one page of formatted rows. Stages run in a fixed order:

1. relationship aggregates are added as labelled scalar subqueries,
2. the global search term narrows the statement (OR over searchable columns),
3. active filters narrow it further (AND),
4. the total is counted over the narrowed statement,
5. the effective sort is applied (request sort, else declared defaults),
6. the page is fetched with ``offset``/``limit`` and eager loads.

Storage errors are not caught here.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from sqlalchemy import Select, func, inspect as sa_inspect, or_, select
from sqlalchemy.orm import QueryableAttribute, Session, aliased, selectinload

from tablekit.logging import get_logger
from tablekit.services.tables.columns import SORT_DIRECTIONS, BaseColumn, RelationshipAggregate
from tablekit.services.tables.exceptions import InvalidColumnException, InvalidFilterException
from tablekit.services.tables.filters import BaseFilter, ClauseBuilder, ilike_contains
from tablekit.services.tables.request_params import TableQueryParams
from tablekit.services.tables.result import build_pagination
from tablekit.services.tables.serialization import convert_value

logger = get_logger(__name__)

RowDecorator = Callable[[Any, dict[str, Any]], None]


@dataclass(frozen=True)
class AssembledPage:
    rows: list[dict[str, Any]]
    pagination: dict[str, Any]
    sort: dict[str, str]
    search: str | None
    filters: dict[str, Any]
    per_page: int


def normalize_direction(direction: Any) -> str:
    value = str(direction).lower() if direction is not None else ""
    return value if value in SORT_DIRECTIONS else "asc"


def resolve_value(record: Any, key: str) -> Any:
    """Read a possibly dotted attribute path; to-many hops yield one flat list."""
    value = record
    for part in key.split("."):
        if value is None:
            return None
        if isinstance(value, (list, tuple)):
            collected: list[Any] = []
            for item in value:
                if item is None:
                    continue
                child = getattr(item, part, None)
                if isinstance(child, (list, tuple)):
                    collected.extend(child)
                else:
                    collected.append(child)
            value = collected
        else:
            value = getattr(value, part, None)
    return value


def statement_entity(statement: Select) -> type:
    descriptions = statement.column_descriptions
    if not descriptions or descriptions[0].get("entity") is None:
        raise InvalidColumnException("Table query must select an ORM entity")
    return descriptions[0]["entity"]


def primary_key_column(model: type) -> Any:
    primary_key = sa_inspect(model).primary_key
    if len(primary_key) != 1:
        raise InvalidColumnException(
            f"{model.__name__} must have a single-column primary key to be rendered as a table"
        )
    return primary_key[0]


def primary_key_attribute(model: type) -> str:
    mapper = sa_inspect(model)
    return mapper.get_property_by_column(primary_key_column(model)).key


def aggregate_expression(model: type, key: str, aggregate: RelationshipAggregate) -> Any:
    mapper = sa_inspect(model)
    if aggregate.relation not in mapper.relationships:
        raise InvalidColumnException.invalid_relationship(key, aggregate.relation)
    relationship = mapper.relationships[aggregate.relation]
    relation_attr = getattr(model, relationship.key)

    if aggregate.kind == "exists":
        return relation_attr.any()

    target = relationship.mapper.class_
    if aggregate.kind == "count":
        function = func.count()
    else:
        target_column = getattr(target, aggregate.column, None)
        if target_column is None:
            raise InvalidColumnException.invalid_aggregate(key, f"{aggregate.kind}({aggregate.column})")
        function = getattr(func, aggregate.kind)(target_column)

    subquery = select(function).select_from(target)
    if relationship.secondary is not None:
        subquery = subquery.join(relationship.secondary, relationship.secondaryjoin)
    return subquery.where(relationship.primaryjoin).correlate(model).scalar_subquery()


class QueryAssembler:
    def __init__(
        self,
        db: Session,
        statement: Select,
        columns: Sequence[BaseColumn],
        filters: Sequence[BaseFilter] = (),
        *,
        searchable: bool = False,
        default_sort: Mapping[str, str] | None = None,
        per_page: int = 25,
    ) -> None:
        self.db = db
        self.statement = statement
        self.columns = list(columns)
        self.filters = list(filters)
        self.searchable = searchable
        self.default_sort = dict(default_sort or {})
        self.per_page = per_page
        self.model = statement_entity(statement)
        self._columns_by_key = {column.key: column for column in self.columns}
        self._aggregates: dict[str, Any] = {
            column.key: aggregate_expression(self.model, column.key, column.aggregate)
            for column in self.columns
            if column.aggregate is not None
        }

    # -- path resolution -------------------------------------------------

    def _split_path(self, key: str) -> tuple[list[Any], Any] | None:
        """Return (relationship hops, target attribute) for a dotted key."""
        parts = key.split(".")
        mapper = sa_inspect(self.model)
        hops = []
        for part in parts[:-1]:
            if part not in mapper.relationships:
                return None
            relationship = mapper.relationships[part]
            hops.append(relationship)
            mapper = relationship.mapper
        attribute_name = parts[-1]
        if attribute_name in mapper.relationships:
            return None
        attribute = getattr(mapper.class_, attribute_name, None)
        if not isinstance(attribute, QueryableAttribute):
            return None
        return hops, attribute

    def resolve_predicate(self, key: str, build: ClauseBuilder) -> Any:
        """Build a predicate against ``key``, wrapping relationship hops in has()/any()."""
        if key in self._aggregates:
            return build(self._aggregates[key])
        split = self._split_path(key)
        if split is None:
            logger.debug("table_path_unresolved key=%s model=%s", key, self.model.__name__)
            return None
        hops, attribute = split
        clause = build(attribute)
        for relationship in reversed(hops):
            relation_attr = getattr(relationship.parent.class_, relationship.key)
            clause = relation_attr.any(clause) if relationship.uselist else relation_attr.has(clause)
        return clause

    # -- stages ----------------------------------------------------------

    def _apply_aggregates(self, statement: Select) -> Select:
        for key, expression in self._aggregates.items():
            statement = statement.add_columns(expression.label(key))
        return statement

    def _apply_search(self, statement: Select, term: str | None) -> Select:
        if not self.searchable or not term:
            return statement
        predicates = []
        for column in self.columns:
            if not column.searchable or column.aggregate is not None:
                continue
            predicate = self.resolve_predicate(
                column.search_target, lambda expression: ilike_contains(expression, term)
            )
            if predicate is not None:
                predicates.append(predicate)
        if not predicates:
            return statement
        return statement.where(or_(*predicates))

    def resolve_filter_values(self, requested: Mapping[str, Any]) -> dict[str, Any]:
        """Request values, falling back to declared defaults; inactive values are dropped."""
        values: dict[str, Any] = {}
        for table_filter in self.filters:
            value = requested.get(table_filter.key, table_filter.default)
            if table_filter.is_active(value):
                values[table_filter.key] = value
        return values

    def _apply_filters(self, statement: Select, values: Mapping[str, Any]) -> tuple[Select, dict[str, Any]]:
        applied: dict[str, Any] = {}
        for table_filter in self.filters:
            if table_filter.key not in values:
                continue
            value = values[table_filter.key]
            try:
                clause = table_filter.apply(self.resolve_predicate, value)
            except InvalidFilterException as exc:
                logger.info("table_filter_ignored key=%s reason=%s", table_filter.key, exc)
                continue
            if clause is None:
                continue
            statement = statement.where(clause)
            applied[table_filter.key] = value
        return statement, applied

    def effective_sort(self, requested: Mapping[str, str]) -> dict[str, str]:
        sort: dict[str, str] = {}
        for key, direction in requested.items():
            column = self._columns_by_key.get(key)
            if column is None or not column.sortable:
                logger.debug("table_sort_ignored key=%s", key)
                continue
            sort[key] = normalize_direction(direction)
        if sort:
            return sort

        if self.default_sort:
            return {key: normalize_direction(direction) for key, direction in self.default_sort.items()}
        return {
            column.key: column.default_sort
            for column in self.columns
            if column.default_sort is not None
        }

    def _sort_expression(self, statement: Select, key: str) -> tuple[Select, Any]:
        if key in self._aggregates:
            return statement, self._aggregates[key]
        split = self._split_path(key)
        if split is None:
            return statement, None
        hops, attribute = split
        if not hops:
            return statement, attribute
        if any(relationship.uselist for relationship in hops):
            logger.debug("table_sort_ignored key=%s reason=to_many_path", key)
            return statement, None
        current = self.model
        for relationship in hops:
            target = aliased(relationship.mapper.class_)
            statement = statement.outerjoin(getattr(current, relationship.key).of_type(target))
            current = target
        return statement, getattr(current, attribute.key)

    def _apply_sort(self, statement: Select, sort: Mapping[str, str]) -> Select:
        for key, direction in sort.items():
            statement, expression = self._sort_expression(statement, key)
            if expression is None:
                continue
            statement = statement.order_by(expression.desc() if direction == "desc" else expression.asc())
        # Stable paging across equal sort keys.
        return statement.order_by(primary_key_column(self.model).asc())

    def _eager_loads(self, statement: Select) -> Select:
        paths = sorted({column.relation_path for column in self.columns if column.relation_path})
        for path in paths:
            option = None
            entity = self.model
            for part in path.split("."):
                mapper = sa_inspect(entity)
                if part not in mapper.relationships:
                    option = None
                    break
                attribute = getattr(entity, part)
                option = selectinload(attribute) if option is None else option.selectinload(attribute)
                entity = mapper.relationships[part].mapper.class_
            if option is not None:
                statement = statement.options(option)
        return statement

    # -- formatting ------------------------------------------------------

    def format_row(self, record: Any, aggregates: Mapping[str, Any]) -> dict[str, Any]:
        row: dict[str, Any] = {}
        meta: dict[str, Any] = {}
        for column in self.columns:
            if column.key in aggregates:
                raw = aggregates[column.key]
            else:
                raw = resolve_value(record, column.key)
            row[column.key] = column.format(raw, record)
            if raw is not None:
                variant = column.display_variant(raw, record)
                if variant is not None:
                    meta.setdefault(column.key, {})["badgeVariant"] = variant
        row["_key"] = convert_value(getattr(record, primary_key_attribute(self.model)))
        if meta:
            row["_meta"] = meta
        return row

    # -- entry point -----------------------------------------------------

    def assemble(
        self,
        params: TableQueryParams,
        *,
        base_url: str | None = None,
        decorate_row: RowDecorator | None = None,
    ) -> AssembledPage:
        page = max(params.page, 1)
        per_page = max(params.per_page or self.per_page, 1)

        statement = self._apply_aggregates(self.statement)
        statement = self._apply_search(statement, params.search)
        filter_values = self.resolve_filter_values(params.filters)
        statement, applied_filters = self._apply_filters(statement, filter_values)

        count_statement = select(func.count()).select_from(statement.order_by(None).subquery())
        total = int(self.db.scalar(count_statement) or 0)

        sort = self.effective_sort(params.sort)
        statement = self._apply_sort(statement, sort)
        statement = self._eager_loads(statement)
        statement = statement.limit(per_page).offset((page - 1) * per_page)

        rows: list[dict[str, Any]] = []
        aggregate_keys = list(self._aggregates)
        for result_row in self.db.execute(statement).all():
            record = result_row[0]
            mapping = result_row._mapping
            aggregates = {key: mapping[key] for key in aggregate_keys}
            row = self.format_row(record, aggregates)
            if decorate_row is not None:
                decorate_row(record, row)
            rows.append(row)

        query: dict[str, Any] = {"per_page": params.per_page, "search": params.search}
        if params.sort:
            first_key, first_direction = next(iter(params.sort.items()))
            query["sort"] = first_key
            query["direction"] = first_direction
        pagination = build_pagination(
            total=total,
            page=page,
            per_page=per_page,
            count=len(rows),
            base_url=base_url,
            query=query,
        )

        logger.debug(
            "table_assembled model=%s total=%s page=%s per_page=%s",
            self.model.__name__,
            total,
            page,
            per_page,
        )
        return AssembledPage(
            rows=rows,
            pagination=pagination,
            sort=sort,
            search=params.search,
            filters=applied_filters,
            per_page=per_page,
        )


def assemble(
    db: Session,
    statement: Select,
    columns: Sequence[BaseColumn],
    filters: Sequence[BaseFilter] = (),
    *,
    params: TableQueryParams,
    searchable: bool = False,
    default_sort: Mapping[str, str] | None = None,
    per_page: int = 25,
    base_url: str | None = None,
    decorate_row: RowDecorator | None = None,
) -> AssembledPage:
    assembler = QueryAssembler(
        db,
        statement,
        columns,
        filters,
        searchable=searchable,
        default_sort=default_sort,
        per_page=per_page,
    )
    return assembler.assemble(params, base_url=base_url, decorate_row=decorate_row)
