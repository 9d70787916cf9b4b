"""FastAPI route definitions for the appointment agent API."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request

from appointment_agent.api.schemas import ChatRequest, ChatResponse, HealthResponse
from appointment_agent.dispatcher import InboundDispatcher

logger = logging.getLogger(__name__)

router = APIRouter()


def get_dispatcher(request: Request) -> InboundDispatcher:
    """Retrieve the inbound dispatcher from app state.

    It is created once during the FastAPI lifespan (see ``server.py``).
    """
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is None:
        raise HTTPException(
            status_code=503,
            detail="The agent is still starting up. Please try again in a moment.",
        )
    return dispatcher


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check(http_request: Request):
    """Health check endpoint, with background work counters once ready."""
    dispatcher = getattr(http_request.app.state, "dispatcher", None)
    if dispatcher is None:
        return HealthResponse(status="starting")
    stats = dispatcher.stats()
    return HealthResponse(
        in_flight=stats.in_flight, completed=stats.completed, failed=stats.failed,
    )


@router.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest, http_request: Request):
    """Run one conversational turn synchronously and return the reply.

    The reply is also sent to the customer over the business's WhatsApp
    channel, exactly as for a webhook delivery.
    """
    dispatcher = get_dispatcher(http_request)
    request_id = getattr(http_request.state, "request_id", "?")
    logger.debug("[%s] Chat message for business %s", request_id, request.business_id)

    reply = await dispatcher.handle_inbound_message(
        request.business_id, request.customer_phone, request.message,
    )
    if reply is None:
        logger.error("[%s] Dispatcher produced no reply", request_id)
        raise HTTPException(status_code=500, detail="An internal error occurred. Please try again.")
    return ChatResponse(reply=reply)
