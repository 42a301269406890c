"""Channel registry."""

from wabridge.registry.store import JsonFileRegistry, SessionRegistry
from wabridge.registry.types import ChannelRecord, ChannelStatus

__all__ = ["ChannelRecord", "ChannelStatus", "SessionRegistry", "JsonFileRegistry"]
