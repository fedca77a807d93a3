"""Registry of live streaming chat connections."""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from enum import Enum


class MembershipState(str, Enum):
    REGISTERED = "registered"
    UNREGISTERED = "unregistered"


@dataclass(eq=False)
class Connection:
    """One live streaming session.

    Owned by the session that accepted it. The registry only keeps a
    reference for bookkeeping.
    """

    transport: object  # the WebSocket
    connection_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: MembershipState = MembershipState.UNREGISTERED


class ConnectionRegistry:
    """Lock-guarded membership set of open connections, keyed by connection id.

    Insert and delete only: nothing iterates the members to broadcast.
    Safe to call from any task or thread; the lock is never held across
    I/O.
    """

    def __init__(self) -> None:
        self._connections: dict[str, Connection] = {}
        self._lock = threading.Lock()

    def register(self, conn: Connection) -> None:
        with self._lock:
            self._connections[conn.connection_id] = conn
            conn.state = MembershipState.REGISTERED

    def unregister(self, conn: Connection) -> bool:
        """Remove ``conn``. Returns False if it was not registered."""
        with self._lock:
            removed = self._connections.pop(conn.connection_id, None)
            conn.state = MembershipState.UNREGISTERED
            return removed is not None

    def __contains__(self, conn: object) -> bool:
        if not isinstance(conn, Connection):
            return False
        with self._lock:
            return self._connections.get(conn.connection_id) is conn

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)
