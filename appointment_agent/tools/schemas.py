"""Names, descriptions and argument models of the scheduling tools.

The drivers encode these into each backend's tool-schema format; the
registry validates model-supplied arguments against the same models.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

TOOLSET_VERSION = "1.0"


class ToolName(str, Enum):
    GET_SERVICES = "get_services"
    GET_AVAILABILITY = "get_availability"
    BOOK_APPOINTMENT = "book_appointment"
    CANCEL_APPOINTMENT = "cancel_appointment"
    GET_BUSINESS_HOURS = "get_business_hours"


# ── Argument models ──────────────────────────────────────────────────


class NoArgs(BaseModel):
    pass


class GetAvailabilityArgs(BaseModel):
    date: str = Field(description="The date to check in YYYY-MM-DD format")
    service_id: str = Field(description="The ID of the service to check availability for")


class BookAppointmentArgs(BaseModel):
    service_id: str = Field(description="The ID of the service to book")
    customer_name: str = Field(description="The customer's name")
    customer_phone: str = Field(description="The customer's phone number")
    datetime: str = Field(
        description=(
            "The appointment start time in ISO 8601 format (e.g. 2025-03-15T14:00:00). "
            "Times without an offset are in the business's timezone."
        )
    )


class CancelAppointmentArgs(BaseModel):
    appointment_id: str = Field(description="The appointment ID to cancel")


# ── Tool specs ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class ToolSpec:
    name: ToolName
    description: str
    args_model: type[BaseModel]

    def parameters(self) -> dict[str, Any]:
        """JSON schema of the arguments, without pydantic's ``title`` noise."""
        schema = self.args_model.model_json_schema()
        schema.pop("title", None)
        for prop in schema.get("properties", {}).values():
            prop.pop("title", None)
        schema.setdefault("properties", {})
        return schema


TOOL_SPECS: tuple[ToolSpec, ...] = (
    ToolSpec(
        ToolName.GET_SERVICES,
        "Get the list of services offered by this business with their prices and durations",
        NoArgs,
    ),
    ToolSpec(
        ToolName.GET_AVAILABILITY,
        "Check available appointment slots for a given date and service. "
        "Returns a list of available time slots.",
        GetAvailabilityArgs,
    ),
    ToolSpec(
        ToolName.BOOK_APPOINTMENT,
        "Book an appointment for a customer. Creates an event in the business's calendar.",
        BookAppointmentArgs,
    ),
    ToolSpec(
        ToolName.CANCEL_APPOINTMENT,
        "Cancel an existing appointment by its ID",
        CancelAppointmentArgs,
    ),
    ToolSpec(
        ToolName.GET_BUSINESS_HOURS,
        "Get the business hours for each day of the week",
        NoArgs,
    ),
)
