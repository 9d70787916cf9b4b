"""Per-provider driver lookup."""

from __future__ import annotations

import logging

from appointment_agent.drivers.anthropic import AnthropicDriver
from appointment_agent.drivers.base import ModelDriver
from appointment_agent.drivers.openai import OpenAIDriver
from appointment_agent.models import AIProvider

logger = logging.getLogger(__name__)

_DRIVER_CLASSES: dict[AIProvider, type[ModelDriver]] = {
    AIProvider.ANTHROPIC: AnthropicDriver,
    AIProvider.OPENAI: OpenAIDriver,
}

_drivers: dict[AIProvider, ModelDriver] = {}


def get_driver(provider: AIProvider | str) -> ModelDriver:
    """Return the shared driver for ``provider``, creating it on first use."""
    provider = AIProvider(provider)
    driver = _drivers.get(provider)
    if driver is None:
        driver = _drivers[provider] = _DRIVER_CLASSES[provider]()
        logger.debug("Created %s driver", provider.value)
    return driver
