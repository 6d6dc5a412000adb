"""Signed action callbacks.

A callback is a URL the client posts back to the action endpoint. Its
``signature`` query parameter is a short-lived JWT whose claims bind the
table identity, the operation name, the operation kind and (for
single-record actions) the record identity. Any change to those values
invalidates the callback.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, cast
from urllib.parse import urlencode

from jose import JWTError, jwt

from tablekit.config import settings
from tablekit.services.tables.exceptions import InvalidCallbackSignature, UnresolvableIdentityError

CALLBACK_TOKEN_TYPE = "table_action"

KIND_ACTION = "action"
KIND_BULK_ACTION = "bulk_action"
OPERATION_KINDS = (KIND_ACTION, KIND_BULK_ACTION)


def encode_identity(value: str) -> str:
    """Opaque, URL-safe form of a registry key or operation kind."""
    return base64.urlsafe_b64encode(value.encode("utf-8")).decode("ascii").rstrip("=")


def decode_identity(value: str) -> str:
    if not value:
        raise UnresolvableIdentityError("Empty identity")
    padded = value + "=" * (-len(value) % 4)
    try:
        return base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError) as exc:
        raise UnresolvableIdentityError(f"Cannot decode identity {value!r}") from exc


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class SignedCallback:
    table: str
    name: str
    kind: str
    signature: str
    expires_at: datetime
    record: str | None = None
    action_path: str = "/tables/action"

    def query_params(self) -> dict[str, str]:
        params = {"table": self.table, "name": self.name, "action": self.kind}
        if self.record is not None:
            params["record"] = self.record
        params["expires"] = str(int(self.expires_at.timestamp()))
        params["signature"] = self.signature
        return params

    @property
    def url(self) -> str:
        return f"{self.action_path}?{urlencode(self.query_params())}"


class CallbackSigner:
    def __init__(
        self,
        secret: str | None = None,
        *,
        algorithm: str | None = None,
        issuer: str | None = None,
        ttl_minutes: int | None = None,
        action_path: str | None = None,
    ) -> None:
        self._secret = secret
        self.algorithm = algorithm or settings.signing_algorithm
        self.issuer = issuer or settings.callback_issuer
        self.ttl = timedelta(
            minutes=ttl_minutes if ttl_minutes is not None else settings.callback_ttl_minutes
        )
        self.action_path = action_path or settings.action_path

    @property
    def secret(self) -> str:
        return self._secret or settings.require_signing_key()

    def issue(
        self,
        *,
        table_key: str,
        name: str,
        kind: str,
        record: str | None = None,
        now: datetime | None = None,
    ) -> SignedCallback:
        if kind not in OPERATION_KINDS:
            raise ValueError(f"Unknown operation kind: {kind}")
        issued_at = now or _now()
        expires_at = issued_at + self.ttl
        table = encode_identity(table_key)
        encoded_kind = encode_identity(kind)
        payload: dict[str, Any] = {
            "iss": self.issuer,
            "typ": CALLBACK_TOKEN_TYPE,
            "tbl": table,
            "op": name,
            "kind": encoded_kind,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        if record is not None:
            payload["rec"] = record
        token = cast(str, jwt.encode(payload, self.secret, algorithm=self.algorithm))
        return SignedCallback(
            table=table,
            name=name,
            kind=encoded_kind,
            signature=token,
            expires_at=expires_at,
            record=record,
            action_path=self.action_path,
        )

    def verify(
        self,
        *,
        table: str,
        name: str,
        kind: str,
        signature: str | None,
        record: str | None = None,
    ) -> dict[str, Any]:
        """Check a presented callback and return its claims.

        Raises InvalidCallbackSignature when the token is missing, tampered
        with, expired, from another issuer, or bound to different values than
        the ones presented.
        """
        if not signature:
            raise InvalidCallbackSignature("Missing signature")
        try:
            claims = cast(
                dict[str, Any],
                jwt.decode(
                    signature,
                    self.secret,
                    algorithms=[self.algorithm],
                    issuer=self.issuer,
                ),
            )
        except JWTError as exc:
            raise InvalidCallbackSignature(str(exc)) from exc

        if claims.get("typ") != CALLBACK_TOKEN_TYPE:
            raise InvalidCallbackSignature("Unexpected token type")

        presented = {"tbl": table, "op": name, "kind": kind, "rec": record}
        for claim, value in presented.items():
            if claims.get(claim) != value:
                raise InvalidCallbackSignature(f"Callback claim '{claim}' does not match request")
        return claims
