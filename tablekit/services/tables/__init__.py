"""Declarative tables with signed row, bulk and header actions.

    from tablekit.services.tables import Table, TableRegistry, TextColumn

    @TableRegistry.table("users")
    def users_table() -> Table:
        return Table(
            query=User,
            columns=[TextColumn("name", searchable=True, sortable=True)],
            searchable=True,
        )
"""

from tablekit.services.tables.actions import (
    Action,
    ActionGroup,
    BulkAction,
    BulkActionGroup,
    BulkDeleteAction,
    Confirmation,
    DeleteAction,
    ReplicateAction,
)
from tablekit.services.tables.builder import QueryAssembler, assemble
from tablekit.services.tables.columns import (
    EMPTY_STATE,
    BadgeColumn,
    IconColumn,
    ImageColumn,
    RelationshipAggregate,
    TextColumn,
)
from tablekit.services.tables.dispatcher import (
    ActionDispatcher,
    ActionInvocation,
    ActionResult,
    DispatchState,
)
from tablekit.services.tables.exceptions import (
    InvalidCallbackSignature,
    InvalidColumnException,
    InvalidFilterException,
    SerializationException,
    TableConfigurationError,
    UnresolvableIdentityError,
)
from tablekit.services.tables.filters import (
    DateRangeFilter,
    NumberRangeFilter,
    SearchFilter,
    SelectFilter,
)
from tablekit.services.tables.registry import TableRegistry
from tablekit.services.tables.request_params import TableQueryParams, parse_table_params
from tablekit.services.tables.result import TableResult
from tablekit.services.tables.serialization import generate_typescript_types
from tablekit.services.tables.signing import CallbackSigner, SignedCallback
from tablekit.services.tables.table import Table

__all__ = [
    "EMPTY_STATE",
    "Action",
    "ActionDispatcher",
    "ActionGroup",
    "ActionInvocation",
    "ActionResult",
    "BadgeColumn",
    "BulkAction",
    "BulkActionGroup",
    "BulkDeleteAction",
    "CallbackSigner",
    "Confirmation",
    "DateRangeFilter",
    "DeleteAction",
    "DispatchState",
    "IconColumn",
    "ImageColumn",
    "InvalidCallbackSignature",
    "InvalidColumnException",
    "InvalidFilterException",
    "NumberRangeFilter",
    "QueryAssembler",
    "RelationshipAggregate",
    "ReplicateAction",
    "SearchFilter",
    "SelectFilter",
    "SerializationException",
    "SignedCallback",
    "Table",
    "TableConfigurationError",
    "TableQueryParams",
    "TableRegistry",
    "TableResult",
    "TextColumn",
    "UnresolvableIdentityError",
    "assemble",
    "generate_typescript_types",
    "parse_table_params",
]
