"""FastAPI application entrypoint."""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from sitelog.config import get_settings
from sitelog.db.session import SessionLocal
from sitelog.routers import analytics, reports, review
from sitelog.services.pipeline import list_reports

logger = logging.getLogger(__name__)


def _warm_backend_state() -> None:
    """Prime the DB connection and the report listing query at process start."""

    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
            list_reports(db, status="pending_analysis", limit=1)
    except Exception:
        logger.exception("Backend warm-up failed; continuing without startup pre-warm.")


@asynccontextmanager
async def lifespan(_: FastAPI):
    _warm_backend_state()
    yield


app = FastAPI(title=get_settings().app_name, version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(reports.router, tags=["reports"])
app.include_router(review.router, tags=["review"])
app.include_router(analytics.router, tags=["analytics"])


@app.get("/health")
def health() -> dict[str, str]:
    """Simple health check endpoint."""

    return {"status": "ok"}
