"""Channel record types."""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ChannelStatus(str, Enum):
    """Channel lifecycle states."""
    PENDING = "pending"    # Credential issued, waiting for the handshake
    ONLINE = "online"      # Linked and usable
    OFFLINE = "offline"    # Linked but disconnected
    EXPIRED = "expired"    # Link no longer valid


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Format a UTC timestamp the way the dashboard expects (``...Z``)."""
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass
class ChannelRecord:
    """A paired (or pairing) WhatsApp number."""
    identity: str
    display_name: str
    registered_by: str
    status: ChannelStatus = ChannelStatus.PENDING
    last_transition_at: datetime | None = None
    document_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the dashboard's wire keys."""
        return {
            "id": self.identity,
            "docId": self.document_id,
            "name": self.display_name,
            "status": self.status.value,
            "lastPairedAt": (
                format_timestamp(self.last_transition_at)
                if self.last_transition_at else None
            ),
            "pairedBy": self.registered_by,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChannelRecord":
        last = data.get("lastPairedAt")
        return cls(
            identity=data["id"],
            display_name=data.get("name", ""),
            registered_by=data.get("pairedBy", ""),
            status=ChannelStatus(data.get("status", ChannelStatus.PENDING.value)),
            last_transition_at=parse_timestamp(last) if last else None,
            document_id=data.get("docId") or "",
        )
