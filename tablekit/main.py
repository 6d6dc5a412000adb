import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tablekit.api.tables import action_router
from tablekit.api.tables import router as tables_router
from tablekit.config import settings
from tablekit.csrf import (
    CSRF_COOKIE_NAME,
    CSRFValidationError,
    generate_csrf_token,
    set_csrf_cookie,
    validate_csrf_token,
)
from tablekit.errors import register_error_handlers
from tablekit.logging import configure_logging

app = FastAPI(title="tablekit API")
logger = logging.getLogger(__name__)
configure_logging()
register_error_handlers(app)

_STATE_CHANGING_METHODS = ("POST", "PUT", "DELETE", "PATCH")


@app.middleware("http")
async def csrf_middleware(request: Request, call_next):
    """
    CSRF protection middleware using double-submit cookie pattern.

    Safe requests receive a CSRF cookie when none is present.
    State-changing requests to the action endpoint must echo the cookie
    in the X-CSRF-Token header.
    """
    if not settings.csrf_enabled:
        return await call_next(request)

    method = request.method.upper()
    cookie_token = request.cookies.get(CSRF_COOKIE_NAME)

    if method in _STATE_CHANGING_METHODS and request.url.path == settings.action_path:
        if not validate_csrf_token(request):
            logger.warning("csrf_rejected path=%s cookie_present=%s", request.url.path, bool(cookie_token))
            error = CSRFValidationError()
            return JSONResponse(
                status_code=error.status_code,
                content={
                    **error.detail,
                    "details": None,
                    "request_id": request.headers.get("x-request-id") or "unknown",
                },
            )

    response = await call_next(request)

    if not cookie_token:
        set_csrf_cookie(response, generate_csrf_token(), request)

    return response


app.include_router(action_router)
app.include_router(tables_router)


@app.get("/health")
def health_check():
    return {"status": "ok"}
