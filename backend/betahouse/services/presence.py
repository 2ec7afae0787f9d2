"""Process-wide map of connected accounts for live notification push.

A client connects to the websocket and announces its account id; the
mapping is removed when that connection closes. The map is keyed by account
id with last-write-wins, so an account with several open connections is
only reachable at the most recently registered one.

The table is guarded by a lock so it stays consistent if connection events
and dispatches ever run on different threads. Sends happen outside the lock.
"""

import threading
from typing import Any, Protocol

from core.errors import DownstreamDegraded
from core.logging import logger
from core.result import Err, Ok, Result


class Connection(Protocol):
    async def send_json(self, data: Any) -> None: ...


class PresenceRegistry:
    provider = "presence"

    def __init__(self) -> None:
        self._connections: dict[int, Connection] = {}
        self._lock = threading.Lock()

    def register(self, account_id: int, connection: Connection) -> None:
        with self._lock:
            self._connections[account_id] = connection
        logger.info("Account {} registered for live notifications", account_id)

    def unregister(self, connection: Connection) -> list[int]:
        """Drop every mapping that points at `connection`.

        Returns:
            list[int]: Account ids that were removed.
        """
        with self._lock:
            removed = [aid for aid, conn in self._connections.items() if conn is connection]
            for account_id in removed:
                del self._connections[account_id]
        if removed:
            logger.info("Accounts {} went offline", removed)
        return removed

    def discard(self, account_id: int, connection: Connection) -> None:
        """Remove `account_id` only if it still maps to `connection`."""
        with self._lock:
            if self._connections.get(account_id) is connection:
                del self._connections[account_id]

    def get(self, account_id: int) -> Connection | None:
        with self._lock:
            return self._connections.get(account_id)

    def is_online(self, account_id: int) -> bool:
        return self.get(account_id) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    async def push(self, account_id: int, payload: dict) -> Result[bool]:
        """Send `payload` to the account's live connection, if any.

        Returns:
            Result[bool]: ``Ok(True)`` when delivered; ``Err`` when the account
                is offline or the send failed (the stale entry is dropped).
        """
        connection = self.get(account_id)
        if connection is None:
            return Err(DownstreamDegraded(self.provider, "recipient offline"))
        try:
            await connection.send_json(payload)
        except Exception as exc:  # websocket closed mid-send, runtime errors
            logger.warning("Live push to account {} failed: {}", account_id, exc)
            self.discard(account_id, connection)
            return Err(DownstreamDegraded(self.provider, str(exc)))
        return Ok(True)


presence = PresenceRegistry()


def get_presence() -> PresenceRegistry:
    """FastAPI dependency returning the process-wide presence registry."""
    return presence
