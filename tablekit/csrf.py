"""CSRF protection for action invocations (double-submit cookie)."""

import secrets

from fastapi import HTTPException, Request
from starlette.responses import Response

from tablekit.config import settings

CSRF_COOKIE_NAME = "csrf_token"
CSRF_HEADER_NAME = "X-CSRF-Token"
CSRF_TOKEN_LENGTH = 32


def generate_csrf_token() -> str:
    return secrets.token_urlsafe(CSRF_TOKEN_LENGTH)


def _is_https_request(request: Request | None) -> bool:
    if not request:
        return False
    forwarded_proto = request.headers.get("x-forwarded-proto", "")
    if forwarded_proto:
        return forwarded_proto.split(",")[0].strip().lower() == "https"
    return request.url.scheme == "https"


def set_csrf_cookie(response: Response, token: str, request: Request | None = None) -> None:
    secure_cookie = settings.secure_cookies and _is_https_request(request)
    response.set_cookie(
        key=CSRF_COOKIE_NAME,
        value=token,
        httponly=False,  # read by the table client to echo in the header
        samesite="strict",
        secure=secure_cookie,
        max_age=3600 * 24,
    )


def validate_csrf_token(request: Request) -> bool:
    """The header token must equal the cookie token."""
    cookie_token = request.cookies.get(CSRF_COOKIE_NAME)
    header_token = request.headers.get(CSRF_HEADER_NAME)
    if not cookie_token or not header_token:
        return False
    return secrets.compare_digest(cookie_token, header_token)


class CSRFValidationError(HTTPException):
    def __init__(self):
        super().__init__(
            status_code=403,
            detail={
                "code": "csrf_failed",
                "message": "CSRF token validation failed. Please refresh the page and try again.",
            },
        )
