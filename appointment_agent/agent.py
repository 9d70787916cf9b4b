"""Conversational booking orchestrator.

Architecture:
  Each inbound message runs one *turn*, a small LangGraph StateGraph with
  two nodes:

    1. **model**  asks the business's model driver for a reply given the
                  system prompt, the tool schemas and the history so far
    2. **tools**  executes the requested tool calls in order and appends
                  their results to the history

  Routing:
    model → (tool calls?) → tools → model (loop)
          → (final text?) → END

  The loop is bounded by ``MAX_TOOL_ROUNDS``: one tool request past the
  limit raises :class:`ToolLoopExceeded`, and the customer gets a short
  apology instead of a hung conversation.

  Memory:
    The transcript lives in the :class:`ConversationStore`, not in a graph
    checkpointer.  Only customer and assistant text turns are persisted;
    tool traffic exists for the duration of one turn.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from langchain_core.runnables import RunnableConfig
from langgraph.errors import GraphRecursionError
from langgraph.graph import END, StateGraph
from typing_extensions import TypedDict

from appointment_agent.config import EXTERNAL_CALL_TIMEOUT_SECONDS, MAX_TOOL_ROUNDS
from appointment_agent.drivers.base import (
    AssistantMessage,
    FinalText,
    ModelDriver,
    NeutralMessage,
    ToolCall,
    ToolResultMessage,
    UserMessage,
)
from appointment_agent.drivers.factory import get_driver
from appointment_agent.errors import DeliveryFailed, NotConfigured, ToolLoopExceeded
from appointment_agent.models import AIProvider, ConversationTurn, MessagingChannel, Role, utcnow
from appointment_agent.prompts import build_system_prompt
from appointment_agent.services.calendar import CalendarGateway
from appointment_agent.services.conversation_store import ConversationStore
from appointment_agent.services.messaging import OutboundMessenger, get_messenger
from appointment_agent.services.metrics import metrics
from appointment_agent.services.repository import BookingRepository
from appointment_agent.tools.registry import ToolRegistry
from appointment_agent.tools.scheduling import SchedulingTools, ToolContext

logger = logging.getLogger(__name__)

TOOL_LOOP_APOLOGY = (
    "I'm sorry, I'm having trouble completing that right now. "
    "Could you try again in a moment?"
)


# ── State schema ─────────────────────────────────────────────────────


class TurnState(TypedDict):
    """State flowing through one turn.

    ``pending`` holds the tool calls the model just asked for; the tools
    node drains it.  ``rounds`` counts executed tool rounds.
    """

    history: list[NeutralMessage]
    pending: list[ToolCall]
    rounds: int
    reply: str


@dataclass
class _Turn:
    driver: ModelDriver
    registry: ToolRegistry
    system_prompt: str
    context: ToolContext


def _turn(config: RunnableConfig) -> _Turn:
    return config["configurable"]["turn"]


# ── Nodes ────────────────────────────────────────────────────────────


def _make_model_node(max_tool_rounds: int):
    async def model_node(state: TurnState, config: RunnableConfig) -> dict[str, Any]:
        turn = _turn(config)
        reply = await turn.driver.respond(turn.system_prompt, turn.registry, state["history"])
        if isinstance(reply, FinalText):
            return {"reply": reply.text, "pending": []}

        if state["rounds"] >= max_tool_rounds:
            raise ToolLoopExceeded(
                f"Model requested tools after {max_tool_rounds} tool rounds"
            )
        return {
            "history": [*state["history"], AssistantMessage(reply.text, reply.calls)],
            "pending": list(reply.calls),
            "rounds": state["rounds"] + 1,
        }

    return model_node


async def tools_node(state: TurnState, config: RunnableConfig) -> dict[str, Any]:
    """Execute pending tool calls sequentially, in the order requested."""
    turn = _turn(config)
    results: list[NeutralMessage] = []
    for call in state["pending"]:
        payload = await turn.registry.execute(turn.context, call.name, call.arguments)
        results.append(ToolResultMessage(call.call_id, call.name, payload))
    return {"history": [*state["history"], *results], "pending": []}


def should_run_tools(state: TurnState) -> str:
    if state.get("pending"):
        return "tools"
    return END


# ── Graph assembly ───────────────────────────────────────────────────


def build_turn_graph(max_tool_rounds: int = MAX_TOOL_ROUNDS):
    """Build and compile the model/tools loop for one conversational turn."""
    graph = StateGraph(TurnState)
    graph.add_node("model", _make_model_node(max_tool_rounds))
    graph.add_node("tools", tools_node)
    graph.set_entry_point("model")
    graph.add_conditional_edges("model", should_run_tools, {"tools": "tools", END: END})
    graph.add_edge("tools", "model")
    return graph.compile()


def to_history(turns: Sequence[ConversationTurn]) -> list[NeutralMessage]:
    turns = list(turns)
    # A trimmed transcript can start mid-exchange; the model context opens with the customer.
    while turns and turns[0].role != Role.CUSTOMER:
        turns.pop(0)
    return [
        UserMessage(t.content) if t.role == Role.CUSTOMER else AssistantMessage(t.content)
        for t in turns
    ]


# ── Orchestrator ─────────────────────────────────────────────────────


class Orchestrator:
    """Runs one conversational turn per inbound message."""

    def __init__(
        self,
        repository: BookingRepository,
        calendar: CalendarGateway,
        *,
        store: ConversationStore | None = None,
        driver_factory: Callable[[AIProvider], ModelDriver] = get_driver,
        messenger_factory: Callable[[MessagingChannel], OutboundMessenger] = get_messenger,
        max_tool_rounds: int = MAX_TOOL_ROUNDS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._repository = repository
        self._store = store or ConversationStore(repository)
        self._registry = ToolRegistry(SchedulingTools(repository, calendar))
        self._driver_factory = driver_factory
        self._messenger_factory = messenger_factory
        self._max_tool_rounds = max_tool_rounds
        self._clock = clock
        self._graph = build_turn_graph(max_tool_rounds)

    @property
    def store(self) -> ConversationStore:
        return self._store

    async def _run_turn(self, turn: _Turn, history: list[NeutralMessage]) -> str:
        config: RunnableConfig = {
            "configurable": {"turn": turn},
            # model + tools per round, plus the final model call
            "recursion_limit": 2 * (self._max_tool_rounds + 1) + 1,
        }
        try:
            result = await self._graph.ainvoke(
                {"history": history, "pending": [], "rounds": 0, "reply": ""}, config,
            )
        except GraphRecursionError as exc:
            raise ToolLoopExceeded(str(exc)) from exc
        return result["reply"]

    async def handle_message(self, business_id: str, customer_phone: str, text: str) -> str:
        """Process one inbound message and return the reply that was sent.

        Raises:
            NotConfigured: unknown business or no active messaging channel.
                Nothing is written in that case.
        """
        profile = await self._repository.get_business(business_id)
        if profile is None:
            raise NotConfigured(f"Business {business_id!r} is not configured")
        if profile.channel is None or not profile.channel.is_active:
            raise NotConfigured(f"Business {business_id!r} has no active messaging channel")

        driver = self._driver_factory(profile.ai_provider)
        messenger = self._messenger_factory(profile.channel)

        async with self._store.open(business_id, customer_phone) as conversation:
            conversation.append(Role.CUSTOMER, text)
            context = ToolContext(
                profile=profile,
                customer_phone=customer_phone,
                customer_name=conversation.customer_name,
                now=self._clock,
            )
            turn = _Turn(
                driver=driver,
                registry=self._registry,
                system_prompt=build_system_prompt(
                    profile.business_name, profile.profession, profile.timezone, self._clock(),
                ),
                context=context,
            )

            outcome = "replied"
            try:
                reply = await self._run_turn(turn, to_history(conversation.turns))
            except ToolLoopExceeded as exc:
                logger.warning(
                    "Tool loop limit hit for %s/%s: %s", business_id, customer_phone, exc,
                )
                reply = TOOL_LOOP_APOLOGY
                outcome = "tool_loop_exceeded"

            conversation.append(Role.ASSISTANT, reply)
            if context.customer_name:
                conversation.customer_name = context.customer_name
            await self._store.save(conversation)

            # Sent under the pair lock so replies go out in turn order.
            try:
                await asyncio.wait_for(
                    messenger.send(customer_phone, reply), timeout=EXTERNAL_CALL_TIMEOUT_SECONDS,
                )
            except (DeliveryFailed, TimeoutError) as exc:
                logger.error("Reply to %s was not delivered: %s", customer_phone, exc)
                outcome = "undelivered"

        metrics.record_outcome(outcome)
        return reply
