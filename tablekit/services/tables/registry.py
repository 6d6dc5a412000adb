from __future__ import annotations

from collections.abc import Callable

from tablekit.services.tables.exceptions import TableConfigurationError, UnresolvableIdentityError
from tablekit.services.tables.signing import decode_identity
from tablekit.services.tables.table import Table

TableFactory = Callable[[], Table]


class TableRegistry:
    """Allow-list of renderable tables.

    Only keys registered here can be rendered or targeted by an action
    callback; the wire carries the encoded key, never a class or module path.
    """

    _tables: dict[str, TableFactory] = {}

    @classmethod
    def register(cls, *, table_key: str, factory: TableFactory) -> None:
        if not table_key:
            raise ValueError("table_key is required")
        if not callable(factory):
            raise ValueError(f"Factory for table {table_key} must be callable")
        existing = cls._tables.get(table_key)
        if existing is not None and existing is not factory:
            raise TableConfigurationError(f"Duplicate table key in registry: {table_key}")
        cls._tables[table_key] = factory

    @classmethod
    def table(cls, table_key: str) -> Callable[[TableFactory], TableFactory]:
        """Decorator form of ``register``."""

        def decorator(factory: TableFactory) -> TableFactory:
            cls.register(table_key=table_key, factory=factory)
            return factory

        return decorator

    @classmethod
    def unregister(cls, table_key: str) -> None:
        cls._tables.pop(table_key, None)

    @classmethod
    def exists(cls, table_key: str) -> bool:
        return table_key in cls._tables

    @classmethod
    def get(cls, table_key: str) -> Table:
        """Build a fresh table for ``table_key`` and bind it to that key."""
        factory = cls._tables.get(table_key)
        if factory is None:
            raise UnresolvableIdentityError(f"Unregistered table key: {table_key}")
        table = factory()
        if not isinstance(table, Table):
            raise TableConfigurationError(
                f"Factory for table {table_key} returned {type(table).__name__}, not Table"
            )
        return table.bind(table_key)

    @classmethod
    def from_identity(cls, identity: str) -> Table:
        """Resolve the encoded table identity carried by a callback."""
        return cls.get(decode_identity(identity))
