"""Host-authoritative replication of a cardtable engine between peers."""

from .coordinator import ReplicationCoordinator
from .transport import BaseTransport, InMemoryHub, InMemoryTransport, Transport, WebSocketTransport

__all__ = [
    "BaseTransport",
    "InMemoryHub",
    "InMemoryTransport",
    "ReplicationCoordinator",
    "Transport",
    "WebSocketTransport",
]
