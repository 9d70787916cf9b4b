"""Error taxonomy for the booking core.

Tool-level failures (``ServiceNotFound``, ``AppointmentNotFound``,
``CalendarUnavailable``) are caught by the tool registry and turned into
structured results the model can react to.  Boundary-level failures
(``NotConfigured``, ``ToolLoopExceeded``) are turned into safe default
replies by the orchestrator / dispatcher.  ``DeliveryFailed`` is logged and
never rolls back a persisted transcript.
"""

from __future__ import annotations


class AppointmentAgentError(Exception):
    """Base class for every error raised by this package."""

    code = "internal_error"


class NotConfigured(AppointmentAgentError):
    """The business has no profile or no active messaging channel."""

    code = "not_configured"


class ServiceNotFound(AppointmentAgentError):
    """The requested service does not exist for this business (or is inactive)."""

    code = "service_not_found"


class AppointmentNotFound(AppointmentAgentError):
    """The requested appointment does not exist for this business."""

    code = "appointment_not_found"


class CalendarUnavailable(AppointmentAgentError):
    """The external calendar could not be reached or rejected the request."""

    code = "calendar_unavailable"

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class SlotUnavailable(AppointmentAgentError):
    """The requested start time collides with an existing calendar entry."""

    code = "slot_unavailable"


class ToolLoopExceeded(AppointmentAgentError):
    """The model kept requesting tools past the configured round limit."""

    code = "tool_loop_exceeded"


class DeliveryFailed(AppointmentAgentError):
    """The outbound messaging provider did not accept the reply."""

    code = "delivery_failed"
