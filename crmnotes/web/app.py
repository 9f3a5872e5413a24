"""FastAPI application factory for the meeting-notes API."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import config
from ..database import init_db

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    if not config.INTERNAL_DOMAIN:
        log.warning(
            "INTERNAL_DOMAIN is not set; every contact will be classified external",
        )
    yield


async def _storage_error(request: Request, exc: sqlite3.Error) -> JSONResponse:
    log.exception("Storage error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse({"error": str(exc)}, status_code=500)


def create_app() -> FastAPI:
    app = FastAPI(title="CRM Notes", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(sqlite3.Error, _storage_error)

    from .routes import (
        accounts, activities, analytics, contacts, data, notes, search, tags, todos,
    )

    app.include_router(accounts.router, prefix="/api")
    app.include_router(notes.router, prefix="/api")
    app.include_router(todos.router, prefix="/api")
    app.include_router(tags.router, prefix="/api")
    app.include_router(search.router, prefix="/api")
    app.include_router(contacts.router, prefix="/api")
    app.include_router(activities.router, prefix="/api")
    app.include_router(analytics.router, prefix="/api")
    app.include_router(data.router, prefix="/api")

    return app
