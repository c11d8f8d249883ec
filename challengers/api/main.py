"""FastAPI application exposing the scheduler trigger and administrative API."""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, List

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..auth.gate import get_cron_gate, get_scheduler_gate
from ..auth.vault import get_token_vault
from ..config import CONFIG, reload_config
from ..logger import configure_logging
from .routes import cron, permissions, scheduled_challenges, user_tokens

load_dotenv()
reload_config()

logger = logging.getLogger(__name__)


def validate_startup_configuration() -> None:
    """Build the vault and both gates so a bad key or short secret stops startup."""

    get_token_vault()
    get_cron_gate()
    get_scheduler_gate()


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    configure_logging()
    validate_startup_configuration()
    logger.info(
        "Scheduler API ready (grace period %s min, batch limit %s)",
        CONFIG.grace_period_minutes,
        CONFIG.batch_limit,
    )
    yield


app = FastAPI(
    title=os.getenv("API_TITLE", "Challengers Scheduler API"),
    version=os.getenv("API_VERSION", "1.0.0"),
    description=(
        "Schedules osu! multiplayer challenge rooms and runs them when due. "
        "Authenticate with the cron or scheduler shared secret."
    ),
    lifespan=lifespan,
)


def _configure_cors(api_app: FastAPI) -> None:
    origins: List[str] = list(getattr(CONFIG, "api_cors_origins", ()) or ())
    if not origins:
        return

    api_app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


_configure_cors(app)


@app.get("/health", tags=["health"])  # pragma: no cover - trivial fast check
def healthcheck() -> dict[str, str]:
    """Simple health endpoint for load balancers and smoke tests."""

    return {"status": "ok"}


app.include_router(cron.router, prefix="/api", tags=["cron"])
app.include_router(scheduled_challenges.router, prefix="/api", tags=["scheduled-challenges"])
app.include_router(user_tokens.router, prefix="/api", tags=["user-tokens"])
app.include_router(permissions.router, prefix="/api", tags=["permissions"])
