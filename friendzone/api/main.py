"""
friendzone.api.main — FastAPI application entry point
=======================================================

Run with::

    uvicorn friendzone.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from friendzone.api.deps import get_engine  # noqa: E402
from friendzone.api.exception_handlers import setup_exception_handlers  # noqa: E402
from friendzone.api.routes.admin import router as admin_router  # noqa: E402
from friendzone.api.routes.communities import router as communities_router  # noqa: E402
from friendzone.api.routes.feed import router as feed_router  # noqa: E402
from friendzone.api.routes.me import router as me_router  # noqa: E402
from friendzone.api.routes.social import router as social_router  # noqa: E402
from friendzone.database.engine import init_db, run_db  # noqa: E402

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Browser origins allowed to call the API.

    ``CORS_ALLOW_ORIGINS`` (comma-separated) wins over ``FRONTEND_URL``;
    with neither set, cross-origin calls are refused.
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
    """Startup/shutdown lifecycle — verify the schema and seed badges."""
    engine = get_engine()
    await run_db(init_db, engine)
    logger.info("Friends Zone API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("Friends Zone API shutting down")


app = FastAPI(
    title="Friends Zone API",
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

setup_exception_handlers(app)

# Mount routers
app.include_router(feed_router, prefix="/api")
app.include_router(me_router, prefix="/api")
app.include_router(social_router, prefix="/api")
app.include_router(communities_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
