"""
harvester.api.main — FastAPI application entry point
=====================================================

Run with::

    uvicorn harvester.api.main:app --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from harvester.api.deps import _sync_context, get_engine  # noqa: E402
from harvester.api.interactions import router as interactions_router  # noqa: E402
from harvester.api.routes.admin import router as admin_router  # noqa: E402
from harvester.api.routes.user import router as user_router  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Allowed CORS origins from ``CORS_ALLOW_ORIGINS`` (comma-separated)."""
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Warm the DB engine; close the Discord client on shutdown if one was made."""
    engine = get_engine()
    logger.info("Harvester API started — engine ready (%s)", engine.url.database)
    yield
    if _sync_context.cache_info().currsize:
        await _sync_context().discord.close()
    logger.info("Harvester API shutting down")


app = FastAPI(
    title="Harvester API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(user_router, prefix="/api")
app.include_router(admin_router, prefix="/api")
app.include_router(interactions_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
