"""Action dispatch.

One invocation walks a fixed sequence of states::

    received -> signature_validated -> table_resolved -> operation_resolved
             -> records_resolved -> authorization_checked -> executed
             -> response_emitted

Any state before ``executed`` may end in ``rejected``. Callers only ever see
a uniform 403 for signature and authorization failures; the cause is logged.
Identities that pass signature checks but do not resolve are a server error.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse, RedirectResponse, Response
from sqlalchemy.orm import Session

from tablekit.logging import get_logger
from tablekit.schemas.tables import ActionResponse
from tablekit.services.tables.actions import BaseAction, BulkAction
from tablekit.services.tables.builder import primary_key_column
from tablekit.services.tables.exceptions import (
    InvalidCallbackSignature,
    InvalidFilterException,
    UnresolvableIdentityError,
)
from tablekit.services.tables.filters import coerce_to_column
from tablekit.services.tables.registry import TableRegistry
from tablekit.services.tables.signing import (
    KIND_BULK_ACTION,
    CallbackSigner,
    decode_identity,
)
from tablekit.services.tables.table import Table

logger = get_logger(__name__)


class DispatchState(enum.Enum):
    received = "received"
    signature_validated = "signature_validated"
    table_resolved = "table_resolved"
    operation_resolved = "operation_resolved"
    records_resolved = "records_resolved"
    authorization_checked = "authorization_checked"
    executed = "executed"
    response_emitted = "response_emitted"
    rejected = "rejected"


@dataclass(frozen=True)
class ActionInvocation:
    table: str
    name: str
    action: str
    signature: str | None = None
    record: str | None = None
    records: Sequence[Any] | None = None
    params: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ActionResult:
    """Optional return value of an execution body."""

    redirect_url: str | None = None
    message: str | None = None


@dataclass
class DispatchOutcome:
    table_key: str | None = None
    operation: str | None = None
    executed: bool = False
    result: Any = None
    redirect_url: str | None = None
    message: str | None = None
    states: list[DispatchState] = field(default_factory=list)

    @property
    def state(self) -> DispatchState:
        return self.states[-1]


def _forbidden() -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")


def _unresolvable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Action target could not be resolved",
    )


class ActionDispatcher:
    def __init__(
        self,
        registry: type[TableRegistry] = TableRegistry,
        signer: CallbackSigner | None = None,
    ) -> None:
        self.registry = registry
        self.signer = signer or CallbackSigner()

    def _reject(self, outcome: DispatchOutcome, reason: str, **context: Any) -> HTTPException:
        outcome.states.append(DispatchState.rejected)
        details = " ".join(f"{key}={value}" for key, value in context.items())
        logger.warning("table_action_rejected reason=%s %s", reason, details)
        return _forbidden()

    def dispatch(self, db: Session, invocation: ActionInvocation) -> DispatchOutcome:
        outcome = DispatchOutcome(operation=invocation.name, states=[DispatchState.received])

        try:
            self.signer.verify(
                table=invocation.table,
                name=invocation.name,
                kind=invocation.action,
                signature=invocation.signature,
                record=invocation.record,
            )
        except InvalidCallbackSignature as exc:
            raise self._reject(outcome, "signature", name=invocation.name, error=exc) from exc
        outcome.states.append(DispatchState.signature_validated)

        try:
            kind = decode_identity(invocation.action)
            table = self.registry.from_identity(invocation.table)
        except UnresolvableIdentityError as exc:
            outcome.states.append(DispatchState.rejected)
            logger.error("table_action_unresolvable stage=table error=%s", exc)
            raise _unresolvable() from exc
        table_key = table.key
        outcome.table_key = table_key
        outcome.states.append(DispatchState.table_resolved)

        try:
            action = table.find_operation(kind, invocation.name)
        except UnresolvableIdentityError as exc:
            outcome.states.append(DispatchState.rejected)
            logger.error(
                "table_action_unresolvable stage=operation table=%s error=%s", table_key, exc
            )
            raise _unresolvable() from exc
        outcome.states.append(DispatchState.operation_resolved)

        if kind == KIND_BULK_ACTION:
            subject: Any = self._resolve_records(db, table, invocation.records or [])
            outcome.states.append(DispatchState.records_resolved)
            allowed = self._check_bulk(action, table_key)
        else:
            subject = self._resolve_record(db, table, invocation.record)
            outcome.states.append(DispatchState.records_resolved)
            allowed = self._check_single(action, subject, table_key)
        if not allowed:
            raise self._reject(outcome, "authorization", table=table_key, name=action.name)
        outcome.states.append(DispatchState.authorization_checked)

        if action.has_handler:
            try:
                result = action.execute(subject, invocation.params)
                db.commit()
            except Exception:
                db.rollback()
                raise
            outcome.executed = True
            outcome.result = result
            outcome.redirect_url, outcome.message = _redirect_from_result(result)
            logger.info(
                "table_action_executed table=%s name=%s records=%s",
                table_key,
                action.name,
                len(subject) if isinstance(subject, list) else int(subject is not None),
            )
        else:
            logger.info("table_action_skipped table=%s name=%s reason=no_handler", table_key, action.name)
        outcome.states.append(DispatchState.executed)
        return outcome

    def _check_single(self, action: BaseAction, record: Any, table_key: str) -> bool:
        if not action.is_visible(record):
            logger.warning("table_action_denied table=%s name=%s check=visible", table_key, action.name)
            return False
        if action.is_disabled(record):
            logger.warning("table_action_denied table=%s name=%s check=disabled", table_key, action.name)
            return False
        return action.is_authorized(record)

    def _check_bulk(self, action: BaseAction, table_key: str) -> bool:
        # Once for the whole set, with no record.
        if not isinstance(action, BulkAction):
            return False
        if not action.is_visible(None) or action.is_disabled(None):
            logger.warning("table_action_denied table=%s name=%s check=available", table_key, action.name)
            return False
        return action.is_authorized(None)

    @staticmethod
    def _coerce_identities(table: Table, identities: Sequence[Any]) -> list[Any]:
        column = primary_key_column(table.model)
        coerced = []
        for identity in identities:
            try:
                coerced.append(coerce_to_column(column, identity))
            except InvalidFilterException:
                logger.debug("table_action_identity_dropped identity=%r", identity)
        return coerced

    def _resolve_record(self, db: Session, table: Table, identity: str | None) -> Any:
        if identity is None:
            return None
        values = self._coerce_identities(table, [identity])
        if not values:
            return None
        column = primary_key_column(table.model)
        return db.scalars(table.statement().where(column == values[0])).first()

    def _resolve_records(self, db: Session, table: Table, identities: Sequence[Any]) -> list[Any]:
        values = self._coerce_identities(table, identities)
        if not values:
            return []
        column = primary_key_column(table.model)
        records = list(db.scalars(table.statement().where(column.in_(values))).all())
        if len(records) != len(set(values)):
            logger.info(
                "table_action_records_missing requested=%s found=%s",
                len(set(values)),
                len(records),
            )
        return records


def _redirect_from_result(result: Any) -> tuple[str | None, str | None]:
    if isinstance(result, RedirectResponse):
        return result.headers.get("location"), None
    if isinstance(result, ActionResult):
        return result.redirect_url, result.message
    return None, None


def wants_structured_response(request: Request) -> bool:
    if request.headers.get("x-inertia"):
        return False
    accept = request.headers.get("accept", "")
    return "application/json" in accept.lower()


def previous_location(request: Request) -> str:
    return request.headers.get("referer") or "/"


def build_action_response(
    outcome: DispatchOutcome,
    *,
    structured: bool,
    back_url: str,
) -> Response:
    redirect_url = outcome.redirect_url or back_url
    outcome.states.append(DispatchState.response_emitted)
    if structured:
        payload = ActionResponse(
            success=True, redirect_url=redirect_url, message=outcome.message
        ).model_dump(exclude_none=True)
        return JSONResponse(payload)
    return RedirectResponse(url=redirect_url, status_code=status.HTTP_303_SEE_OTHER)
