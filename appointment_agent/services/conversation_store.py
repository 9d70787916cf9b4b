"""Per-(business, customer) transcript storage with serialized updates.

Two inbound messages from the same customer must never interleave their
read-modify-write of the transcript, otherwise one of the turns is silently
lost.  :meth:`ConversationStore.open` holds a per-pair ``asyncio.Lock`` for
the whole turn; different pairs never wait on each other.  ``asyncio.Lock``
wakes waiters in FIFO order, so turns are recorded in arrival order.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from appointment_agent.config import HISTORY_LIMIT
from appointment_agent.models import Conversation, utcnow
from appointment_agent.services.repository import BookingRepository

logger = logging.getLogger(__name__)


@dataclass
class _LockEntry:
    lock: asyncio.Lock
    holders: int = 0


class KeyedLock:
    """One ``asyncio.Lock`` per key, discarded once nobody holds or awaits it."""

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str], _LockEntry] = {}

    @asynccontextmanager
    async def hold(self, key: tuple[str, str]) -> AsyncIterator[None]:
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _LockEntry(asyncio.Lock())
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)


class ConversationStore:
    """Loads and saves bounded transcripts through the booking repository."""

    def __init__(self, repository: BookingRepository, max_turns: int = HISTORY_LIMIT):
        self._repository = repository
        self._max_turns = max_turns
        self._locks = KeyedLock()

    @property
    def max_turns(self) -> int:
        return self._max_turns

    @asynccontextmanager
    async def open(self, business_id: str, customer_phone: str) -> AsyncIterator[Conversation]:
        """Lock the pair and yield its conversation (created empty if new).

        Nothing is written unless the caller calls :meth:`save` inside the
        block.
        """
        async with self._locks.hold((business_id, customer_phone)):
            conversation = await self._repository.get_conversation(business_id, customer_phone)
            if conversation is None:
                logger.info("Starting conversation %s/%s", business_id, customer_phone)
                conversation = Conversation(
                    business_id=business_id,
                    customer_phone=customer_phone,
                    max_turns=self._max_turns,
                )
            elif conversation.max_turns != self._max_turns:
                conversation = Conversation(
                    business_id=conversation.business_id,
                    customer_phone=conversation.customer_phone,
                    max_turns=self._max_turns,
                    turns=conversation.turns,
                    customer_name=conversation.customer_name,
                    last_message_at=conversation.last_message_at,
                )
            yield conversation

    async def save(self, conversation: Conversation) -> None:
        """Persist the (already bounded) transcript and bump last activity."""
        conversation.last_message_at = utcnow()
        await self._repository.save_conversation(conversation)
        logger.debug(
            "Saved conversation %s/%s (%d turns)",
            conversation.business_id, conversation.customer_phone, len(conversation.turns),
        )
