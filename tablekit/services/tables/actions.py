"""Action descriptors.

Actions are immutable descriptors. A table binds them to its registry key
(``bind``) before any callback URL can be generated. Predicates
(``visible``, ``hidden``, ``disabled``, ``authorize``) may be booleans or
callables taking the record; execution bodies are called with only as many
positional arguments as they declare (see ``evaluate``).
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import Any, ClassVar, Union

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import object_session

from tablekit.services.tables.exceptions import TableConfigurationError
from tablekit.services.tables.serialization import identity_string, omit_defaults
from tablekit.services.tables.signing import (
    KIND_ACTION,
    KIND_BULK_ACTION,
    CallbackSigner,
    SignedCallback,
)

Predicate = Union[bool, Callable[..., bool]]


def evaluate(callback: Any, *args: Any) -> Any:
    """Call ``callback`` with the leading ``args`` it accepts; return plain values as-is."""
    if not callable(callback):
        return callback
    try:
        signature = inspect.signature(callback)
    except (TypeError, ValueError):
        return callback(*args)
    parameters = list(signature.parameters.values())
    if any(p.kind is inspect.Parameter.VAR_POSITIONAL for p in parameters):
        return callback(*args)
    positional = [
        p
        for p in parameters
        if p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
    ]
    return callback(*args[: len(positional)])


def action_label(name: str) -> str:
    return name.replace("_", " ").replace("-", " ").title()


@dataclass(frozen=True)
class Confirmation:
    title: str = "Confirm Action"
    message: str = "Are you sure you want to perform this action?"
    confirm_label: str | None = None
    cancel_label: str | None = None


@dataclass(frozen=True)
class BaseAction:
    name: str
    label: str | None = None
    color: str = "primary"
    icon: str | None = None
    style: str = "button"
    confirmation: Confirmation | None = None
    handler: Callable[..., Any] | None = None
    visible: Predicate = True
    hidden: Predicate = False
    disabled: Predicate = False
    authorize: Predicate | None = None
    table_key: str | None = None

    kind: ClassVar[str] = KIND_ACTION
    wire_defaults: ClassVar[dict[str, Any]] = {
        "icon": None,
        "style": "button",
        "requiresConfirmation": False,
        "confirmationTitle": None,
        "confirmationMessage": None,
        "confirmationButton": None,
        "cancelButton": None,
        "hasAction": False,
    }
    wire_always: ClassVar[frozenset[str]] = frozenset({"name", "label", "color"})

    def __post_init__(self) -> None:
        if not self.name:
            raise TableConfigurationError("Action name is required")

    @property
    def resolved_label(self) -> str:
        return self.label if self.label is not None else action_label(self.name)

    @property
    def has_handler(self) -> bool:
        return self.handler is not None

    def bind(self, table_key: str):
        return replace(self, table_key=table_key)

    def with_color(self, color: str):
        return replace(self, color=color)

    def danger(self):
        return self.with_color("danger")

    def success(self):
        return self.with_color("success")

    def warning(self):
        return self.with_color("warning")

    def info(self):
        return self.with_color("info")

    def gray(self):
        return self.with_color("gray")

    def primary(self):
        return self.with_color("primary")

    def secondary(self):
        return self.with_color("secondary")

    def requires_confirmation(
        self,
        title: str = "Confirm Action",
        message: str = "Are you sure you want to perform this action?",
        *,
        confirm_label: str | None = None,
        cancel_label: str | None = None,
    ):
        return replace(
            self,
            confirmation=Confirmation(title, message, confirm_label, cancel_label),
        )

    def action(self, handler: Callable[..., Any]):
        return replace(self, handler=handler)

    def is_hidden(self, record: Any = None) -> bool:
        return bool(evaluate(self.hidden, record))

    def is_visible(self, record: Any = None) -> bool:
        return bool(evaluate(self.visible, record)) and not self.is_hidden(record)

    def is_disabled(self, record: Any = None) -> bool:
        return bool(evaluate(self.disabled, record))

    def is_authorized(self, record: Any = None) -> bool:
        if self.authorize is None:
            return True
        return bool(evaluate(self.authorize, record))

    def callback(
        self,
        record: Any = None,
        *,
        signer: CallbackSigner | None = None,
    ) -> SignedCallback:
        if not self.table_key:
            raise TableConfigurationError(
                f"Action '{self.name}' is not bound to a registered table; "
                "callbacks cannot be generated before the table key is known."
            )
        signer = signer or CallbackSigner()
        return signer.issue(
            table_key=self.table_key,
            name=self.name,
            kind=self.kind,
            record=self._record_identity(record),
        )

    def _record_identity(self, record: Any) -> str | None:
        if record is None:
            return None
        return identity_string(primary_key_value(record))

    def _additional_wire_fields(self) -> dict[str, Any]:
        return {}

    def to_dict(self) -> dict[str, Any]:
        confirmation = self.confirmation
        data = {
            "name": self.name,
            "label": self.resolved_label,
            "color": self.color,
            "icon": self.icon,
            "style": self.style,
            "requiresConfirmation": confirmation is not None,
            "confirmationTitle": confirmation.title if confirmation else None,
            "confirmationMessage": confirmation.message if confirmation else None,
            "confirmationButton": confirmation.confirm_label if confirmation else None,
            "cancelButton": confirmation.cancel_label if confirmation else None,
            "hasAction": self.has_handler,
            **self._additional_wire_fields(),
        }
        return omit_defaults(data, defaults=self.wire_defaults, always=self.wire_always)


@dataclass(frozen=True)
class Action(BaseAction):
    """Single-record (or header) action."""

    url: Callable[..., str | None] | None = None
    open_url_in_new_tab: bool = False

    wire_defaults: ClassVar[dict[str, Any]] = {
        **BaseAction.wire_defaults,
        "hasUrl": False,
        "openUrlInNewTab": False,
    }

    def with_url(self, url: Callable[..., str | None], *, new_tab: bool = False):
        return replace(self, url=url, open_url_in_new_tab=new_tab)

    def resolve_url(self, record: Any = None) -> str | None:
        if self.url is None:
            return None
        return evaluate(self.url, record)

    def execute(self, record: Any, params: Mapping[str, Any] | None = None) -> Any:
        if self.handler is None:
            return None
        return evaluate(self.handler, record, dict(params or {}))

    def _additional_wire_fields(self) -> dict[str, Any]:
        return {"hasUrl": self.url is not None, "openUrlInNewTab": self.open_url_in_new_tab}

    def to_row_dict(self, record: Any = None, *, signer: CallbackSigner | None = None) -> dict[str, Any]:
        """Per-record state: disabled, or the signed callback and navigation URL."""
        if self.is_disabled(record):
            return {"disabled": True}
        data: dict[str, Any] = {}
        if self.has_handler or self.url is None:
            data["callback"] = self.callback(record, signer=signer).url
        url = self.resolve_url(record)
        if url:
            data["url"] = url
        return data


@dataclass(frozen=True)
class BulkAction(BaseAction):
    """Action applied to a set of selected records.

    Bulk actions must declare ``authorize``; the check runs once for the whole
    selection, with no record.
    """

    deselect_records_after_completion: bool = True

    kind: ClassVar[str] = KIND_BULK_ACTION
    wire_defaults: ClassVar[dict[str, Any]] = {
        **BaseAction.wire_defaults,
        "deselectRecordsAfterCompletion": True,
    }

    def keep_selection(self):
        return replace(self, deselect_records_after_completion=False)

    def require_authorization(self) -> None:
        if self.authorize is None:
            raise TableConfigurationError(
                f"BulkAction '{self.name}' must have an authorize() method defined for security purposes."
            )

    def is_authorized(self, record: Any = None) -> bool:
        self.require_authorization()
        return bool(evaluate(self.authorize, record))

    def execute(self, records: Sequence[Any], params: Mapping[str, Any] | None = None) -> Any:
        if self.handler is None:
            return None
        return evaluate(self.handler, list(records), dict(params or {}))

    def _record_identity(self, record: Any) -> str | None:
        return None

    def _additional_wire_fields(self) -> dict[str, Any]:
        return {"deselectRecordsAfterCompletion": self.deselect_records_after_completion}

    def to_bound_dict(self, *, signer: CallbackSigner | None = None) -> dict[str, Any]:
        data = self.to_dict()
        if self.is_disabled(None):
            data["disabled"] = True
        else:
            data["callback"] = self.callback(None, signer=signer).url
        return data


@dataclass(frozen=True)
class ActionGroup:
    name: str
    actions: Sequence[BaseAction] = ()
    label: str | None = None
    icon: str | None = None
    color: str = "gray"
    size: str = "md"
    style: str = "button"
    outlined: bool = False
    tooltip: str | None = None
    extra_attributes: Mapping[str, Any] = field(default_factory=dict)
    hidden: Predicate = False

    member_type: ClassVar[type[BaseAction]] = Action
    wire_defaults: ClassVar[dict[str, Any]] = {
        "icon": None,
        "size": "md",
        "style": "button",
        "outlined": False,
        "tooltip": None,
        "extraAttributes": {},
    }
    wire_always: ClassVar[frozenset[str]] = frozenset({"name", "label", "color", "actions", "type"})

    def __post_init__(self) -> None:
        object.__setattr__(self, "actions", tuple(self.actions))
        for member in self.actions:
            if not isinstance(member, self.member_type):
                raise TableConfigurationError(
                    f"{type(self).__name__} '{self.name}' only accepts "
                    f"{self.member_type.__name__} members, got {type(member).__name__}"
                )

    @property
    def resolved_label(self) -> str:
        return self.label if self.label is not None else action_label(self.name)

    def bind(self, table_key: str):
        return replace(self, actions=tuple(member.bind(table_key) for member in self.actions))

    def is_visible(self, record: Any = None) -> bool:
        if evaluate(self.hidden, record):
            return False
        return any(member.is_visible(record) for member in self.actions)

    def visible_actions(self, record: Any = None) -> list[BaseAction]:
        return [
            member
            for member in self.actions
            if member.is_visible(record) and member.is_authorized(record)
        ]

    def to_dict(self) -> dict[str, Any]:
        data = {
            "name": self.name,
            "label": self.resolved_label,
            "icon": self.icon,
            "color": self.color,
            "size": self.size,
            "style": self.style,
            "outlined": self.outlined,
            "tooltip": self.tooltip,
            "extraAttributes": dict(self.extra_attributes),
            "actions": [member.to_dict() for member in self.actions],
            "type": "group",
        }
        return omit_defaults(data, defaults=self.wire_defaults, always=self.wire_always)


@dataclass(frozen=True)
class BulkActionGroup(ActionGroup):
    member_type: ClassVar[type[BaseAction]] = BulkAction


def flatten_actions(entries: Sequence[Any]) -> list[BaseAction]:
    flat: list[BaseAction] = []
    for entry in entries:
        if isinstance(entry, ActionGroup):
            flat.extend(entry.actions)
        else:
            flat.append(entry)
    return flat


def primary_key_value(record: Any) -> Any:
    identity = sa_inspect(record).mapper.primary_key_from_instance(record)
    if len(identity) != 1:
        raise TableConfigurationError(
            f"{type(record).__name__} must have a single-column primary key to carry actions"
        )
    return identity[0]


def _delete_record(record: Any) -> None:
    if record is None:
        return
    session = object_session(record)
    if session is None:
        raise TableConfigurationError("Cannot delete a record that is not attached to a session")
    session.delete(record)


def _delete_records(records: Sequence[Any]) -> int:
    for record in records:
        _delete_record(record)
    return len(records)


def _replicate_record(record: Any) -> Any:
    if record is None:
        return None
    session = object_session(record)
    if session is None:
        raise TableConfigurationError("Cannot replicate a record that is not attached to a session")
    mapper = sa_inspect(record).mapper
    values = {
        attribute.key: getattr(record, attribute.key)
        for attribute in mapper.column_attrs
        if not any(column.primary_key for column in attribute.columns)
    }
    clone = mapper.class_(**values)
    session.add(clone)
    return clone


@dataclass(frozen=True)
class DeleteAction(Action):
    name: str = "delete"
    label: str | None = "Delete"
    color: str = "danger"
    confirmation: Confirmation | None = Confirmation(
        title="Confirm Deletion",
        message="Are you sure you want to delete this record? This action cannot be undone.",
        confirm_label="Delete",
        cancel_label="Cancel",
    )
    handler: Callable[..., Any] | None = _delete_record


@dataclass(frozen=True)
class ReplicateAction(Action):
    name: str = "replicate"
    label: str | None = "Duplicate"
    color: str = "secondary"
    handler: Callable[..., Any] | None = _replicate_record


@dataclass(frozen=True)
class BulkDeleteAction(BulkAction):
    """Bulk delete; callers still supply ``authorize``."""

    name: str = "bulk_delete"
    label: str | None = "Delete selected"
    color: str = "danger"
    confirmation: Confirmation | None = Confirmation(
        title="Confirm Deletion",
        message="Are you sure you want to delete the selected records? This action cannot be undone.",
        confirm_label="Delete",
        cancel_label="Cancel",
    )
    handler: Callable[..., Any] | None = _delete_records
