"""Appointment Agent: a WhatsApp scheduling assistant for small businesses.

Architecture Overview
=====================

Customers write to a business over WhatsApp.  Each inbound message runs one
*turn* of a LangGraph StateGraph with two nodes:

1. **model** asks the business's model backend (Claude or OpenAI) for a
   reply given the system prompt, the five scheduling tools and the
   conversation so far.

2. **tools** executes the requested tool calls against the Booking
   Repository, the Calendar Gateway and the pure Slot Engine, and feeds the
   structured results back to the model.

Routing: model → (tool calls?) → tools → model (loop, bounded) → END

Key Design Decisions
--------------------
- **Availability**: computed from business hours and the calendar's
  free/busy intervals by a pure function, so the same inputs always give
  the same slots.
- **No double booking**: ``book_appointment`` re-checks free/busy right
  before creating the calendar event; the event is the point of truth and
  the local appointment write is an idempotent, retried upsert.
- **Serialized conversations**: one asyncio lock per (business, customer)
  so rapid messages never lose a turn.
- **Bounded everything**: 20-turn transcripts, 6 tool rounds per turn, a
  timeout on every external call.
- **Dual Interface**: FastAPI server (webhooks + chat endpoint) and a CLI
  chat loop for development.

Package Structure
-----------------
- ``appointment_agent/agent.py``: orchestrator and turn graph
- ``appointment_agent/dispatcher.py``: inbound boundary, background units
- ``appointment_agent/config.py``: configuration from env / SSM
- ``appointment_agent/prompts.py``: system prompt
- ``appointment_agent/server.py``: FastAPI application
- ``appointment_agent/main.py``: CLI chat interface
- ``appointment_agent/drivers/``: model backends
- ``appointment_agent/tools/``: scheduling tools and registry
- ``appointment_agent/services/``: slot engine, calendar, repository,
  conversation store, messaging, cache, metrics
- ``appointment_agent/api/``: FastAPI routes, webhooks and schemas
"""
