"""Pairing gateway server."""

from wabridge.gateway.server import GatewayServer

__all__ = ["GatewayServer"]
