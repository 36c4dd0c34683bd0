"""
api/server.py
-------------
FastAPI application entry point.

Run dev server:
    cd backend
    uvicorn api.server:app --reload --port 8000

Endpoints:
    GET  /v1/health
    GET  /v1/setup/auto-detect
    GET  /v1/setup/check-database
    GET  /v1/setup/migrations
    POST /v1/setup/migrations
    GET  /v1/admin/settings
    GET  /v1/admin/settings/{key}
    PUT  /v1/admin/settings/{key}
    GET  /v1/admin/audit-logs
    POST /v1/associations
    GET  /v1/associations/{association_id}
    GET  /v1/associations/{association_id}/conventions
    POST /v1/associations/{association_id}/conventions
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import config
from api.exceptions import register_exception_handlers
from api.routes import associations, health, settings, setup
from db.connection import close_pool
from db.redis_client import close_redis

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    close_pool()
    close_redis()


app = FastAPI(
    title="KonBase API",
    version="1.0.0",
    description="Association, convention and inventory data service for KonBase.",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Allow the Next.js frontend (any origin during development)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(health.router,       prefix="/v1",              tags=["Health"])
app.include_router(setup.router,        prefix="/v1/setup",        tags=["Setup"])
app.include_router(settings.router,     prefix="/v1/admin",        tags=["Admin"])
app.include_router(associations.router, prefix="/v1/associations", tags=["Associations"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.server:app", host="0.0.0.0", port=8000, reload=True)
