from tablekit.db import get_db
from tablekit.services.tables.dispatcher import ActionDispatcher


def get_dispatcher() -> ActionDispatcher:
    """Dispatcher bound to the process-wide table registry.

    Override in tests to inject a signer with a fixed key.
    """
    return ActionDispatcher()


__all__ = [
    "get_db",
    "get_dispatcher",
]
