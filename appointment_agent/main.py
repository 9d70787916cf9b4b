"""CLI entry point for the appointment agent.

A terminal chat with a demo business, backed by an in-memory calendar.
Replies are printed instead of being sent over WhatsApp.  For production,
use the FastAPI server (appointment_agent/server.py).

Usage:
    python -m appointment_agent.main                       # quiet
    python -m appointment_agent.main --debug               # show tool calls and HTTP
    python -m appointment_agent.main --provider OPENAI
    python -m appointment_agent.main --seed businesses.json --business acme
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import uuid

from dotenv import load_dotenv

from appointment_agent.agent import Orchestrator
from appointment_agent.config import DEFAULT_AI_PROVIDER
from appointment_agent.defaults import default_services
from appointment_agent.dispatcher import InboundDispatcher
from appointment_agent.models import (
    AIProvider,
    BusinessHours,
    BusinessProfile,
    DayHours,
    MessagingChannel,
    MessagingProvider,
    Service,
)
from appointment_agent.services.calendar import InMemoryCalendar
from appointment_agent.services.repository import InMemoryBookingRepository

logger = logging.getLogger(__name__)

DEMO_BUSINESS_ID = "demo"


class ConsoleMessenger:
    """Prints outbound replies instead of delivering them."""

    async def send(self, to: str, body: str) -> None:
        print(f"\nAssistant → {to}: {body}\n")


def _configure_logging(debug: bool = False) -> None:
    """Set up logging: WARNING by default, DEBUG when --debug is passed."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )
    if not debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("appointment_agent").setLevel(logging.DEBUG if debug else logging.INFO)


def _demo_repository(provider: AIProvider, timezone: str) -> InMemoryBookingRepository:
    weekday = DayHours("09:00", "17:00")
    hours = BusinessHours(
        days={
            "monday": weekday,
            "tuesday": weekday,
            "wednesday": weekday,
            "thursday": weekday,
            "friday": weekday,
            "saturday": DayHours("10:00", "14:00"),
        }
    )
    repository = InMemoryBookingRepository()
    repository.add_business(
        BusinessProfile(
            business_id=DEMO_BUSINESS_ID,
            business_name="Bright Smile Dental",
            profession="Dentist",
            timezone=timezone,
            hours=hours,
            ai_provider=provider,
            channel=MessagingChannel(provider=MessagingProvider.META, phone_number_id="cli"),
        )
    )
    for index, default in enumerate(default_services("DENTIST"), start=1):
        repository.add_service(
            Service(
                service_id=f"svc-{index}",
                business_id=DEMO_BUSINESS_ID,
                name=default.name,
                description=default.description,
                price=default.price,
                duration_minutes=default.duration_minutes,
            )
        )
    return repository


async def _chat(dispatcher: InboundDispatcher, business_id: str) -> None:
    customer_phone = f"+1555{uuid.uuid4().int % 10_000_000:07d}"
    logger.info("Chatting as %s", customer_phone)

    while True:
        try:
            user_input = (await asyncio.to_thread(input, "You: ")).strip()
        except (KeyboardInterrupt, EOFError):
            print("\n\nGoodbye!")
            break

        if not user_input:
            continue

        if user_input.lower() in ("exit", "quit", "q"):
            print("\nGoodbye! Have a great day!")
            break

        if user_input.lower() == "new":
            customer_phone = f"+1555{uuid.uuid4().int % 10_000_000:07d}"
            print(f"\n>> New conversation as {customer_phone}\n")
            continue

        # Successful replies are printed by ConsoleMessenger.
        failed_before = dispatcher.stats().failed
        reply = await dispatcher.handle_inbound_message(business_id, customer_phone, user_input)
        if dispatcher.stats().failed > failed_before:
            print(f"\nAssistant: {reply}\n")


def main():
    """Run the interactive CLI chat loop."""
    parser = argparse.ArgumentParser(description="Appointment agent CLI")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including tool calls and HTTP requests",
    )
    parser.add_argument(
        "--provider", choices=[p.value for p in AIProvider], default=DEFAULT_AI_PROVIDER,
        help="Model backend for the demo business",
    )
    parser.add_argument("--timezone", default="UTC", help="IANA timezone of the demo business")
    parser.add_argument("--seed", help="JSON seed file with businesses (instead of the demo)")
    parser.add_argument("--business", help="Business id from the seed file to chat with")
    args = parser.parse_args()

    load_dotenv()
    _configure_logging(debug=args.debug)

    if args.seed:
        if not args.business:
            parser.error("--business is required with --seed")
        repository = InMemoryBookingRepository()
        repository.load_seed(args.seed)
        business_id = args.business
    else:
        repository = _demo_repository(AIProvider(args.provider), args.timezone)
        business_id = DEMO_BUSINESS_ID

    orchestrator = Orchestrator(
        repository,
        InMemoryCalendar(),
        messenger_factory=lambda channel: ConsoleMessenger(),
    )
    dispatcher = InboundDispatcher(orchestrator)

    print("\n" + "=" * 60)
    print("  Appointment Agent - CLI Chat")
    print("=" * 60)
    print("  Type your message and press Enter.")
    print("  Commands: 'quit' to exit, 'new' for a new customer.")
    print("=" * 60 + "\n")

    asyncio.run(_chat(dispatcher, business_id))


if __name__ == "__main__":
    main()
