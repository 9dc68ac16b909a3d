from fastapi import WebSocket
from typing import Dict, Optional, Set
import logging

logger = logging.getLogger(__name__)


class ConnectionHub:
    """Publish/subscribe over live WebSocket connections.

    Connections are addressed by id; groups are named sets of connection ids
    (one group per room code).
    """

    def __init__(self):
        self.connections: Dict[str, WebSocket] = {}
        self.groups: Dict[str, Set[str]] = {}

    def register(self, connection_id: str, websocket: WebSocket):
        self.connections[connection_id] = websocket

    def unregister(self, connection_id: str):
        self.connections.pop(connection_id, None)
        for members in self.groups.values():
            members.discard(connection_id)

    def join(self, group: str, connection_id: str):
        self.groups.setdefault(group, set()).add(connection_id)

    def leave(self, group: str, connection_id: str):
        members = self.groups.get(group)
        if members is not None:
            members.discard(connection_id)
            if not members:
                del self.groups[group]

    def discard_group(self, group: str):
        self.groups.pop(group, None)

    def members(self, group: str) -> Set[str]:
        return set(self.groups.get(group, ()))

    async def send(self, connection_id: Optional[str], event: str, payload: Optional[dict] = None):
        ws = self.connections.get(connection_id) if connection_id else None
        if not ws:
            return
        message = {"type": event, **(payload or {})}
        try:
            await ws.send_json(message)
        except Exception:
            logger.info("Dropping connection %s after failed send", connection_id)
            self.connections.pop(connection_id, None)

    async def broadcast(self, group: str, event: str, payload: Optional[dict] = None):
        # Sorted copy: membership can change while a send is awaited, and
        # every member receives the broadcasts in the same fixed order
        for connection_id in sorted(self.groups.get(group, ())):
            await self.send(connection_id, event, payload)
