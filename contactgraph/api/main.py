"""FastAPI application factory.

Assembles CORS and the API routers.  ``contactgraph.main`` re-exports the
app object for ``uvicorn contactgraph.main:app``.
"""
from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from contactgraph.api.routes.health import router as health_router
from contactgraph.api.routes.identify import router as identify_router
from contactgraph.core.logging import setup_logging
from contactgraph.core.settings import get_settings


@asynccontextmanager
async def lifespan(_: FastAPI):
    setup_logging()
    yield


settings = get_settings()

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router)
app.include_router(identify_router)
