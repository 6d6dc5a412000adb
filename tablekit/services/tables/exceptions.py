"""Error types raised while declaring, rendering and dispatching tables."""

from __future__ import annotations


class TableConfigurationError(RuntimeError):
    """A table, column or action declaration is unusable as written."""


class UnresolvableIdentityError(LookupError):
    """A table key or operation name does not resolve to any declaration."""


class InvalidCallbackSignature(Exception):
    """A signed action callback failed verification (signature, issuer, expiry or binding)."""


class InvalidColumnException(ValueError):
    @classmethod
    def invalid_relationship(cls, key: str, relation: str) -> InvalidColumnException:
        return cls(f"Column '{key}' references unknown relationship '{relation}'.")

    @classmethod
    def invalid_aggregate(cls, key: str, kind: str) -> InvalidColumnException:
        return cls(f"Column '{key}' requests unsupported aggregate '{kind}'.")


class InvalidFilterException(ValueError):
    @classmethod
    def invalid_filter_value(cls, key: str, value: object) -> InvalidFilterException:
        return cls(f"Invalid value of type '{type(value).__name__}' provided for filter '{key}'.")


class SerializationException(ValueError):
    @classmethod
    def failed_to_serialize(cls, kind: str, reason: str) -> SerializationException:
        return cls(f"Failed to serialize {kind}: {reason}")
