"""Session Assistant API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map SessionAssistantError → structured JSON responses
    - CORS configured from settings (not hardcoded)
    - Gateway, store and wizard are built once in the lifespan and kept on app.state

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - A missing API key fails startup (ConfigurationError from create_gateway)
      instead of failing the first request
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from session_assistant.api.error_handlers import register_error_handlers
from session_assistant.api.routes import active_session, analysis, health, wizard
from session_assistant.config import get_settings
from session_assistant.infrastructure.database import init_db
from session_assistant.infrastructure.observability import setup_logging
from session_assistant.infrastructure.session_store import SqlSessionStore
from session_assistant.services.plan_gateway import create_gateway
from session_assistant.services.wizard import SessionWizard

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    db = init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    if settings.database_url.startswith("sqlite"):
        await db.create_schema()

    app.state.wizard = SessionWizard(
        create_gateway(settings),
        SqlSessionStore(db, settings.storage_key),
        default_jurisdiction=settings.default_jurisdiction,
    )
    await app.state.wizard.start()
    logger.info("Session Assistant API started")
    yield
    logger.info("Session Assistant API shutting down")
    await db.dispose()


app = FastAPI(
    title="Session Assistant API", version="1.0.0", lifespan=lifespan,
)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(wizard.router)
app.include_router(active_session.router)
app.include_router(analysis.router)

register_error_handlers(app)
