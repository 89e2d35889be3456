"""
Connector module - Bridge to the external code-editing subprocess.

Components:
- protocol: Typed inbound/outbound wire messages
- connector: One live session and its outbound sends
- manager: Registry and inbound dispatch
- app: Starlette websocket transport
"""

from .connector import Channel, Connector
from .manager import ConnectorManager
from .protocol import INBOUND_ACTIONS, OUTBOUND_ACTIONS, build_outbound, parse_message

__all__ = [
	"Channel",
	"Connector",
	"ConnectorManager",
	"INBOUND_ACTIONS",
	"OUTBOUND_ACTIONS",
	"build_outbound",
	"parse_message",
]
