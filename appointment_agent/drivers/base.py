"""Backend-neutral model driver interface.

The orchestrator speaks in a small vocabulary of neutral messages
(``UserMessage``, ``AssistantMessage``, ``ToolResultMessage``) and gets back
a :data:`Reply`: either the final text or a batch of tool calls.  Concrete
drivers translate to and from a LangChain chat model.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage

from appointment_agent.config import EXTERNAL_CALL_TIMEOUT_SECONDS
from appointment_agent.services.metrics import metrics
from appointment_agent.tools.schemas import ToolSpec

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "I'm sorry, I couldn't process that. Could you try again?"


# ── Neutral reply types ──────────────────────────────────────────────


@dataclass(frozen=True)
class ToolCall:
    name: str
    arguments: dict[str, Any]
    call_id: str


@dataclass(frozen=True)
class FinalText:
    text: str


@dataclass(frozen=True)
class ToolCalls:
    calls: tuple[ToolCall, ...]
    text: str = ""


Reply = FinalText | ToolCalls


# ── Neutral history ──────────────────────────────────────────────────


@dataclass(frozen=True)
class UserMessage:
    text: str


@dataclass(frozen=True)
class AssistantMessage:
    text: str = ""
    tool_calls: tuple[ToolCall, ...] = ()


@dataclass(frozen=True)
class ToolResultMessage:
    call_id: str
    tool_name: str
    payload: dict[str, Any]


NeutralMessage = UserMessage | AssistantMessage | ToolResultMessage


class ToolSource(Protocol):
    def specs(self) -> Sequence[ToolSpec]: ...


# ── Driver ───────────────────────────────────────────────────────────


class ModelDriver(ABC):
    """Turns (system prompt, tools, history) into a :data:`Reply`."""

    provider: str = "model"

    @abstractmethod
    async def respond(
        self,
        system_prompt: str,
        registry: ToolSource,
        history: Sequence[NeutralMessage],
    ) -> Reply: ...


class LangChainDriver(ModelDriver):
    """Shared plumbing for drivers backed by a LangChain chat model.

    Subclasses build the chat model and encode tool schemas in their
    provider's native format.
    """

    def __init__(
        self,
        llm: BaseChatModel | None = None,
        *,
        timeout_seconds: float = EXTERNAL_CALL_TIMEOUT_SECONDS,
    ):
        self._llm = llm
        self._timeout = timeout_seconds

    @abstractmethod
    def _build_llm(self) -> BaseChatModel: ...

    @abstractmethod
    def encode_tool(self, spec: ToolSpec) -> dict[str, Any]: ...

    @property
    def llm(self) -> BaseChatModel:
        # Built lazily so a process only needs keys for backends it uses.
        if self._llm is None:
            self._llm = self._build_llm()
        return self._llm

    def encode_tools(self, specs: Sequence[ToolSpec]) -> list[dict[str, Any]]:
        return [self.encode_tool(spec) for spec in specs]

    # ── Translation ─────────────────────────────────────────────────

    @staticmethod
    def to_langchain(history: Sequence[NeutralMessage]) -> list[BaseMessage]:
        messages: list[BaseMessage] = []
        for message in history:
            if isinstance(message, UserMessage):
                messages.append(HumanMessage(content=message.text))
            elif isinstance(message, AssistantMessage):
                messages.append(
                    AIMessage(
                        content=message.text,
                        tool_calls=[
                            {"name": c.name, "args": c.arguments, "id": c.call_id, "type": "tool_call"}
                            for c in message.tool_calls
                        ],
                    )
                )
            elif isinstance(message, ToolResultMessage):
                messages.append(
                    ToolMessage(
                        content=json.dumps(message.payload, default=str),
                        tool_call_id=message.call_id,
                        name=message.tool_name,
                    )
                )
            else:
                raise TypeError(f"Unsupported history message: {type(message).__name__}")
        return messages

    def extract_text(self, content: Any) -> str:
        if isinstance(content, str):
            return content
        return ""

    def parse(self, response: AIMessage) -> Reply:
        calls = tuple(
            ToolCall(
                name=tc["name"],
                arguments=dict(tc.get("args") or {}),
                call_id=tc.get("id") or f"call_{uuid.uuid4().hex[:12]}",
            )
            for tc in (response.tool_calls or [])
        )
        text = self.extract_text(response.content).strip()
        if calls:
            return ToolCalls(calls=calls, text=text)
        return FinalText(text or FALLBACK_REPLY)

    # ── Invocation ──────────────────────────────────────────────────

    async def respond(
        self,
        system_prompt: str,
        registry: ToolSource,
        history: Sequence[NeutralMessage],
    ) -> Reply:
        messages = [SystemMessage(content=system_prompt), *self.to_langchain(history)]
        bound = self.llm.bind_tools(self.encode_tools(registry.specs()))
        async with metrics.track(self.provider, "llm_invoke"):
            response = await asyncio.wait_for(bound.ainvoke(messages), timeout=self._timeout)
        reply = self.parse(response)
        if isinstance(reply, ToolCalls):
            logger.debug(
                "%s requested tools: %s", self.provider, [c.name for c in reply.calls],
            )
        return reply
