"""Inbound boundary: hands each message to the orchestrator as its own unit.

Webhook transports deliver at least once and expect a fast acknowledgement,
so :meth:`InboundDispatcher.submit` schedules the turn as a background task
and returns immediately.  :meth:`InboundDispatcher.handle_inbound_message`
never raises: every failure becomes a safe default reply and a log line.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from appointment_agent.agent import Orchestrator
from appointment_agent.config import INBOUND_DEDUP_TTL_SECONDS
from appointment_agent.errors import NotConfigured
from appointment_agent.services.cache import TTLCache
from appointment_agent.services.metrics import metrics

logger = logging.getLogger(__name__)

NOT_CONFIGURED_REPLY = (
    "Sorry, this business isn't set up to take bookings over chat yet. "
    "Please contact them directly."
)
ERROR_REPLY = "I'm sorry, something went wrong on our side. Please try again in a moment."

_CK_MESSAGE = "inbound:"


@dataclass(frozen=True)
class DispatcherStats:
    in_flight: int
    completed: int
    failed: int
    duplicates: int


class InboundDispatcher:
    def __init__(
        self,
        orchestrator: Orchestrator,
        *,
        dedup_cache: TTLCache | None = None,
        dedup_ttl_seconds: float = INBOUND_DEDUP_TTL_SECONDS,
    ):
        self._orchestrator = orchestrator
        self._seen = dedup_cache or TTLCache(max_bytes=1024 * 1024)
        self._dedup_ttl = dedup_ttl_seconds
        self._tasks: set[asyncio.Task] = set()
        self._completed = 0
        self._failed = 0
        self._duplicates = 0

    def _is_duplicate(self, business_id: str, message_id: str | None) -> bool:
        if not message_id:
            return False
        fresh = self._seen.add_if_absent(
            f"{_CK_MESSAGE}{business_id}:{message_id}", ttl_seconds=self._dedup_ttl,
        )
        if not fresh:
            self._duplicates += 1
            logger.info("Skipping duplicate inbound message %s", message_id)
        return not fresh

    async def handle_inbound_message(
        self,
        business_id: str,
        customer_phone: str,
        text: str,
        message_id: str | None = None,
    ) -> str | None:
        """Run one turn and return the reply text.

        Returns ``None`` for a duplicate ``message_id``.  Never raises.
        """
        if self._is_duplicate(business_id, message_id):
            return None

        try:
            reply = await self._orchestrator.handle_message(business_id, customer_phone, text)
        except NotConfigured as exc:
            logger.warning("Inbound message for unconfigured business: %s", exc)
            self._failed += 1
            metrics.record_outcome("not_configured")
            return NOT_CONFIGURED_REPLY
        except Exception:
            logger.exception(
                "Failed to process message from %s for business %s", customer_phone, business_id,
            )
            self._failed += 1
            metrics.record_outcome("failed")
            return ERROR_REPLY

        self._completed += 1
        return reply

    def submit(
        self,
        business_id: str,
        customer_phone: str,
        text: str,
        message_id: str | None = None,
    ) -> asyncio.Task:
        """Schedule the turn in the background and return its task."""
        task = asyncio.create_task(
            self.handle_inbound_message(business_id, customer_phone, text, message_id),
            name=f"inbound:{business_id}:{customer_phone}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def stats(self) -> DispatcherStats:
        return DispatcherStats(
            in_flight=len(self._tasks),
            completed=self._completed,
            failed=self._failed,
            duplicates=self._duplicates,
        )

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for in-flight turns (used on shutdown)."""
        if not self._tasks:
            return
        logger.info("Waiting for %d in-flight message(s)", len(self._tasks))
        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning("Cancelled %d message(s) still running at shutdown", len(pending))
