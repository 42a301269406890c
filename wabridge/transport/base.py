"""Event transport interface."""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

# Client -> server
START_SESSION = "start-session"

# Server -> requester
QR = "qr"
PAIRING_ERROR = "pairing-error"

# Server -> all observers
READY = "ready"
STATUS_UPDATE = "status-update"
NUMBER_DELETED = "number-deleted"


@dataclass
class Event:
    """A named event with a JSON payload."""
    name: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps({"event": self.name, "data": self.data})

    @classmethod
    def from_json(cls, raw: str) -> "Event":
        """Parse a ``{"event": ..., "data": ...}`` frame.

        Raises ValueError on anything that is not such a frame.
        """
        message = json.loads(raw)
        if not isinstance(message, dict) or not isinstance(message.get("event"), str):
            raise ValueError("frame must be an object with an 'event' name")
        data = message.get("data") or {}
        if not isinstance(data, dict):
            raise ValueError("'data' must be an object")
        return cls(name=message["event"], data=data)


class Transport(ABC):
    """
    Delivers events to connected observers.

    Both methods return immediately; delivery happens in the background and
    failures are never reported back to the caller.
    """

    @abstractmethod
    def emit_to(self, observer_id: str, event: Event) -> None:
        """Send an event to a single observer."""
        pass

    @abstractmethod
    def broadcast(self, event: Event) -> None:
        """Send an event to every connected observer."""
        pass
