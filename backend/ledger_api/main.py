import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ledger_api.core.config import settings
from ledger_api.core.errors import NotFound, StoreFailure, ValidationFailed
from ledger_api.core.log import setup_logging
from ledger_api.db.pool import close_db_pool, init_schema, open_db_pool
from ledger_api.routers.transactions import router as transactions_router
from ledger_api.routers.users import router as users_router

setup_logging(settings)
logger = logging.getLogger("ledger_api.main")

TRANSPORT_LOC = ("body", "query", "path", "header")


@asynccontextmanager
async def lifespan(_: FastAPI):
    open_db_pool()
    if settings.db_init_schema:
        init_schema()
    try:
        yield
    finally:
        close_db_pool()


app = FastAPI(title="Pocket Ledger API", lifespan=lifespan)

app.include_router(users_router)
app.include_router(transactions_router)


@app.get("/health")
def health():
    return {"ok": True}


def error_response(status_code: int, detail, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, "detail": detail}, headers=headers)


@app.exception_handler(StarletteHTTPException)
def http_exc_handler(_: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, exc.detail, getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
def request_validation_handler(_: Request, exc: RequestValidationError):
    errors: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in TRANSPORT_LOC]
        errors.setdefault(".".join(loc) or "__all__", []).append(err.get("msg", "Invalid value"))
    return error_response(422, errors)


@app.exception_handler(ValidationFailed)
def validation_failed_handler(_: Request, exc: ValidationFailed):
    return error_response(422, exc.errors)


@app.exception_handler(NotFound)
def not_found_handler(_: Request, exc: NotFound):
    return error_response(404, exc.message)


@app.exception_handler(StoreFailure)
def store_failure_handler(request: Request, exc: StoreFailure):
    logger.error("Store failure while handling %s %s", request.method, request.url.path)
    return error_response(500, exc.message)
