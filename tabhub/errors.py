"""
Error taxonomy shared by the command surface, broadcaster and transports.
"""

from typing import Any, Dict, Optional


class TabHubError(Exception):
    """Base error with a stable machine-readable code."""

    code = "error"

    def to_dict(self) -> Dict[str, Any]:
        return {"error": {"code": self.code, "message": str(self)}}


class NotFound(TabHubError):
    """A tab or window id did not resolve."""

    code = "not_found"

    def __init__(self, kind: str, ident: Any):
        super().__init__(f"No {kind} with id {ident}")
        self.kind = kind
        self.ident = ident


class InvalidInput(TabHubError, ValueError):
    """Malformed command arguments."""

    code = "invalid_input"


class DeliveryFailure(TabHubError):
    """An extension host rejected or failed an event delivery."""

    code = "delivery_failure"

    def __init__(self, host_id: Any, event_name: str, reason: Optional[str] = None):
        message = f"Delivery of {event_name} to host {host_id} failed"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.host_id = host_id
        self.event_name = event_name


class CommandTimeout(TabHubError, TimeoutError):
    """A command did not complete on the control loop in time."""

    code = "timeout"
