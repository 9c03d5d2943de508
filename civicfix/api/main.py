"""
civicfix.api.main — FastAPI application entry point
====================================================

Run with::

    uvicorn civicfix.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from civicfix.api.deps import get_engine  # noqa: E402
from civicfix.api.routes.admin import router as admin_router  # noqa: E402
from civicfix.api.routes.authority import router as authority_router  # noqa: E402
from civicfix.api.routes.citizen import router as citizen_router  # noqa: E402
from civicfix.services.log_buffer import install_handler  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Uvicorn reconfigures logging on startup, so attach the buffer here.
    install_handler()

    engine = get_engine()
    logger.info("CivicFix API started (%s)", engine.url.database)
    yield
    logger.info("CivicFix API shutting down")


app = FastAPI(
    title="CivicFix API",
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

app.include_router(authority_router, prefix="/api")
app.include_router(citizen_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
