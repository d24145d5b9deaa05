from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..core.errors import (
    InvalidArgumentError,
    LedgerError,
    NotFoundError,
    UnauthorizedError,
)


def _error_body(exc: LedgerError) -> dict:
    return {"detail": str(exc), "kind": exc.kind, "retryable": exc.retryable}


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content=_error_body(exc))

    @app.exception_handler(InvalidArgumentError)
    async def invalid_argument_handler(
        request: Request, exc: InvalidArgumentError
    ) -> JSONResponse:
        return JSONResponse(status_code=400, content=_error_body(exc))

    @app.exception_handler(UnauthorizedError)
    async def unauthorized_handler(
        request: Request, exc: UnauthorizedError
    ) -> JSONResponse:
        return JSONResponse(status_code=401, content=_error_body(exc))

    # Conflicts, inactive accounts, balance and state violations.
    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
        return JSONResponse(status_code=409, content=_error_body(exc))
