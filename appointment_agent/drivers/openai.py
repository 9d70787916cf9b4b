"""OpenAI backend via ``langchain_openai``."""

from __future__ import annotations

from typing import Any

from langchain_openai import ChatOpenAI

from appointment_agent.config import (
    EXTERNAL_CALL_TIMEOUT_SECONDS,
    MODEL_MAX_TOKENS,
    MODEL_TEMPERATURE,
    OPENAI_MODEL_NAME,
    get_secret,
)
from appointment_agent.drivers.base import LangChainDriver
from appointment_agent.tools.schemas import ToolSpec


class OpenAIDriver(LangChainDriver):
    provider = "openai"

    def _build_llm(self) -> ChatOpenAI:
        return ChatOpenAI(
            model=OPENAI_MODEL_NAME,
            api_key=get_secret("OPENAI_API_KEY"),
            temperature=MODEL_TEMPERATURE,
            max_tokens=MODEL_MAX_TOKENS,
            timeout=EXTERNAL_CALL_TIMEOUT_SECONDS,
        )

    def encode_tool(self, spec: ToolSpec) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": spec.name.value,
                "description": spec.description,
                "parameters": spec.parameters(),
            },
        }
