from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from . import __version__
from .config import Settings
from .db import RecordStore
from .errors import NotFoundError, PartialFailureError, StoreError, ValidationError
from .routes import family, media, people, relationships

log = logging.getLogger(__name__)


def _pydantic_error_message(err: dict[str, Any]) -> str:
    loc = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
    msg = err.get("msg", "invalid value")
    return f"{loc}: {msg}" if loc else msg


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse({"detail": "Validation failed", "errors": exc.errors}, status_code=400)

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [_pydantic_error_message(e) for e in exc.errors()]
        return JSONResponse({"detail": "Validation failed", "errors": errors}, status_code=400)

    @app.exception_handler(NotFoundError)
    async def _not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse({"detail": str(exc)}, status_code=404)

    @app.exception_handler(PartialFailureError)
    async def _partial_failure(request: Request, exc: PartialFailureError) -> JSONResponse:
        log.warning("partial failure on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            {"detail": str(exc), "partial": True, "person_id": exc.person_id},
            status_code=500,
        )

    @app.exception_handler(StoreError)
    async def _store_error(request: Request, exc: StoreError) -> JSONResponse:
        log.error("store failure on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse({"detail": "Store failure"}, status_code=500)


def create_app(settings: Settings | None = None, store: RecordStore | None = None) -> FastAPI:
    """Assemble the service.

    The store handle is injected (or built from ``settings``) and its pool is
    opened and closed by the application lifespan.
    """

    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if store is None:
        store = RecordStore(
            settings.database_url,
            min_size=settings.pool_min_size,
            max_size=settings.pool_max_size,
            atomic_writes=settings.atomic_writes,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store.open()
        try:
            yield
        finally:
            store.close()

    app = FastAPI(title="Family Tree API", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _install_error_handlers(app)

    for module in (people, relationships, family, media):
        app.include_router(module.router, prefix="/api")

    settings.upload_dir.mkdir(parents=True, exist_ok=True)
    app.mount("/uploads", StaticFiles(directory=str(settings.upload_dir)), name="uploads")

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    return app
