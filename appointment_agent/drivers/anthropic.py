"""Claude backend via ``langchain_anthropic``."""

from __future__ import annotations

from typing import Any

from langchain_anthropic import ChatAnthropic

from appointment_agent.config import (
    ANTHROPIC_MODEL_NAME,
    EXTERNAL_CALL_TIMEOUT_SECONDS,
    MODEL_MAX_TOKENS,
    MODEL_TEMPERATURE,
    get_secret,
)
from appointment_agent.drivers.base import LangChainDriver
from appointment_agent.tools.schemas import ToolSpec


class AnthropicDriver(LangChainDriver):
    provider = "anthropic"

    def _build_llm(self) -> ChatAnthropic:
        return ChatAnthropic(
            model=ANTHROPIC_MODEL_NAME,
            api_key=get_secret("ANTHROPIC_API_KEY"),
            temperature=MODEL_TEMPERATURE,
            max_tokens=MODEL_MAX_TOKENS,
            timeout=EXTERNAL_CALL_TIMEOUT_SECONDS,
        )

    def encode_tool(self, spec: ToolSpec) -> dict[str, Any]:
        return {
            "name": spec.name.value,
            "description": spec.description,
            "input_schema": spec.parameters(),
        }

    def extract_text(self, content: Any) -> str:
        # Claude returns a list of content blocks when tools are bound.
        if isinstance(content, str):
            return content
        parts = []
        for block in content or []:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        return "".join(parts)
