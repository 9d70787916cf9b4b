"""FastAPI server for the appointment agent.

Run with:
    uvicorn appointment_agent.server:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from appointment_agent.agent import Orchestrator
from appointment_agent.api.routes import router
from appointment_agent.api.webhooks import router as webhook_router
from appointment_agent.config import BUSINESS_SEED_PATH, CORS_ORIGINS, SERVER_HOST, SERVER_PORT
from appointment_agent.dispatcher import InboundDispatcher
from appointment_agent.services.google_calendar import GoogleCalendarClient
from appointment_agent.services.metrics import metrics
from appointment_agent.services.repository import InMemoryBookingRepository

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)

SHUTDOWN_DRAIN_SECONDS = 20.0


# ── Lifespan: initialise / tear-down shared resources ────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Wire repository, calendar, orchestrator and dispatcher once per process."""
    repository = InMemoryBookingRepository()
    if BUSINESS_SEED_PATH:
        repository.load_seed(BUSINESS_SEED_PATH)
    else:
        logger.warning("BUSINESS_SEED_PATH is not set; no businesses are configured")

    calendar = GoogleCalendarClient(repository)
    orchestrator = Orchestrator(repository, calendar)

    application.state.repository = repository
    application.state.dispatcher = InboundDispatcher(orchestrator)
    logger.info("Appointment agent ready.")
    yield

    await application.state.dispatcher.drain(timeout=SHUTDOWN_DRAIN_SECONDS)
    await calendar.aclose()
    metrics.close()


# ── FastAPI application ──────────────────────────────────────────────
app = FastAPI(
    title="Appointment Agent",
    description="WhatsApp scheduling assistant: book and cancel appointments against a real calendar.",
    version="1.0.0",
    lifespan=lifespan,
)

# ── CORS ─────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Request-ID middleware ────────────────────────────────────────────
@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a request ID to every request and echo it as ``X-Request-ID``."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info("[%s] %s %s", request_id, request.method, request.url.path)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ── Register routes ──────────────────────────────────────────────────
app.include_router(router, prefix="/api")
app.include_router(webhook_router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "Appointment Agent",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
        "webhook": "/api/webhooks/whatsapp",
    }


# ── CLI entry point ──────────────────────────────────────────────────

if __name__ == "__main__":
    logger.info("Starting appointment agent API server on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run(
        "appointment_agent.server:app",
        host=SERVER_HOST,
        port=SERVER_PORT,
        reload=True,
    )
