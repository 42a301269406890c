"""Event transport: unicast and broadcast delivery to dashboards."""

from wabridge.transport.base import Event, Transport
from wabridge.transport.hub import WebSocketHub

__all__ = ["Event", "Transport", "WebSocketHub"]
