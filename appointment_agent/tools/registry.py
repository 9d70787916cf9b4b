"""Dispatches model-requested tool calls to the scheduling tools.

:meth:`ToolRegistry.execute` is total: whatever goes wrong comes back as
``{"error": <code>, "message": <text>}`` so the tool loop always has a
result to feed to the model.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from appointment_agent.errors import AppointmentAgentError
from appointment_agent.tools.scheduling import SchedulingTools, ToolContext
from appointment_agent.tools.schemas import TOOL_SPECS, TOOLSET_VERSION, ToolName, ToolSpec

logger = logging.getLogger(__name__)


def _error(code: str, message: str) -> dict[str, Any]:
    return {"error": code, "message": message}


class ToolRegistry:
    def __init__(self, tools: SchedulingTools):
        self._tools = tools
        self._specs = {spec.name: spec for spec in TOOL_SPECS}

    @property
    def version(self) -> str:
        return TOOLSET_VERSION

    def specs(self) -> tuple[ToolSpec, ...]:
        return TOOL_SPECS

    async def execute(
        self, ctx: ToolContext, name: str, arguments: dict[str, Any] | None,
    ) -> dict[str, Any]:
        """Run one tool call for the business in ``ctx``."""
        try:
            tool = ToolName(name)
        except ValueError:
            logger.warning("Model requested unknown tool %r", name)
            return _error("unknown_tool", f"Unknown tool: {name}")

        spec = self._specs[tool]
        try:
            args = spec.args_model.model_validate(arguments or {})
        except ValidationError as exc:
            return _error("invalid_arguments", str(exc))

        handler = getattr(self._tools, tool.value)
        logger.debug("Executing tool %s (toolset %s) with %s", tool.value, self.version, arguments)
        try:
            return await handler(ctx, args)
        except AppointmentAgentError as exc:
            logger.info("Tool %s returned %s: %s", tool.value, exc.code, exc)
            return _error(exc.code, str(exc))
        except ValueError as exc:
            # Malformed dates / times supplied by the model.
            return _error("invalid_arguments", str(exc))
        except Exception:
            logger.exception("Tool %s failed unexpectedly", tool.value)
            return _error("internal_error", "The operation failed unexpectedly.")
