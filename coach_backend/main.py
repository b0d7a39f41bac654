"""
FastAPI application bootstrap with: \n
- Lifespan-managed persistence: schema creation, snapshot rehydration and
  recovery of turns interrupted by the previous process on startup; a fresh
  snapshot on shutdown \n
- CORS configured for the frontend \n
- The conversation router \n

Environment contract (from `settings`): \n
- RESTORE_ON_STARTUP: rehydrate an empty entity store from SNAPSHOT_PATH. \n
- SNAPSHOT_ON_SHUTDOWN: write SNAPSHOT_PATH when the app stops. \n
- FRONTEND_URL: allowed CORS origin. \n
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from coach_backend.api.fast_api import router
from coach_backend.database.config.config import settings
from coach_backend.database.config.connection_engine import init_schema
from coach_backend.database.core import funcs
from coach_backend.database.core.errors import SnapshotCorrupt
from coach_backend.database.core.upgrade_manager import upgrade_manager

logger = logging.getLogger("uvicorn")
"""Logger instance for capturing and emitting Uvicorn server logs."""


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    App lifespan manager.

    Notes
    ------------
    - On startup (before yielding):
        * Create the entity table if missing.
        * If RESTORE_ON_STARTUP and the store is empty: rehydrate the
          snapshot. A corrupt snapshot leaves the store blocked (every
          request answers 503) instead of serving a partial image.
        * Fail assistant messages still pending from the previous process.
    - On shutdown (after yielding):
        * If SNAPSHOT_ON_SHUTDOWN and the store is usable: write a snapshot.
    """
    init_schema()

    if settings.RESTORE_ON_STARTUP:
        try:
            restored = upgrade_manager.rehydrate()
            logger.info("Entity store ready (%d entries restored)", restored)
        except SnapshotCorrupt as e:
            logger.error("Snapshot rejected, store blocked: %s", e.detail)

    if not upgrade_manager.store.blocked:
        interrupted = funcs.manager.fail_interrupted_turns()
        if interrupted:
            logger.info("Marked %d interrupted turns as failed", interrupted)

    try:
        yield
    finally:
        if settings.SNAPSHOT_ON_SHUTDOWN and not upgrade_manager.store.blocked:
            path = upgrade_manager.snapshot()
            logger.info("Snapshot written to %s", path)
        else:
            logger.info("App shutting down without snapshot.")


# Instantiate the FastAPI app with lifespan handler
app = FastAPI(lifespan=lifespan)
"""Instantiates a FastAPI application object.
    The lifespan=lifespan argument registers the startup/shutdown lifecycle:\n
        - On startup: rehydrates persisted state and recovers interrupted turns.\n
        - On shutdown: snapshots the entity store. \n
"""

# -----------------------
# CORS configuration
# -----------------------
url = settings.FRONTEND_URL
"""The allowed frontend origin (URL) used for CORS configuration."""

app.add_middleware(
    CORSMiddleware,
    allow_origins=[url],      # Frontend origin
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -----------------------
# API routes
# -----------------------
app.include_router(router)
