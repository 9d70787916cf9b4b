"""Pydantic schemas for the FastAPI endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    """A customer message delivered straight to the API (no messaging provider)."""

    business_id: str = Field(..., min_length=1, max_length=100, description="The business being contacted")
    customer_phone: str = Field(
        ...,
        min_length=1,
        max_length=32,
        description="The customer's phone number; identifies the conversation",
    )
    message: str = Field(..., min_length=1, max_length=2000, description="The customer's message")


class ChatResponse(BaseModel):
    """Reply produced by the assistant."""

    reply: str = Field(..., description="The assistant's reply, also sent over WhatsApp")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    service: str = "appointment-agent"
    in_flight: int = 0
    completed: int = 0
    failed: int = 0


class WebhookAck(BaseModel):
    received: bool = True
