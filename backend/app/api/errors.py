"""Exception handlers turning auth/session failures into JSON responses."""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api.cookies import clear_auth_cookies
from app.services.errors import AuthError, PersistenceFailure

logger = logging.getLogger(__name__)


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    response = JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.error_code},
    )
    if exc.clear_cookies:
        clear_auth_cookies(response)
    return response


async def persistence_failure_handler(request: Request, exc: PersistenceFailure) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path} failed: {exc.error_code}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.error_code},
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(PersistenceFailure, persistence_failure_handler)
