import json
import logging
import uuid
from typing import Any, Dict, List, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Open WebSocket connections and the documents each one follows."""

    def __init__(self):
        self.active_connections: Dict[str, WebSocket] = {}
        # document_hash -> client ids subscribed to it
        self.subscriptions: Dict[str, Set[str]] = {}

    async def connect(self, websocket: WebSocket) -> str:
        await websocket.accept()
        client_id = uuid.uuid4().hex
        self.active_connections[client_id] = websocket
        logger.info("WebSocket client %s connected", client_id)
        await self.send(client_id, {"type": "connected", "data": {"client_id": client_id}})
        return client_id

    def disconnect(self, client_id: str):
        self.active_connections.pop(client_id, None)
        for document_hash in list(self.subscriptions):
            self.subscriptions[document_hash].discard(client_id)
            if not self.subscriptions[document_hash]:
                del self.subscriptions[document_hash]
        logger.info("WebSocket client %s disconnected", client_id)

    def subscribe(self, client_id: str, document_hash: str):
        self.subscriptions.setdefault(document_hash, set()).add(client_id)

    def unsubscribe(self, client_id: str, document_hash: str):
        subscribers = self.subscriptions.get(document_hash)
        if subscribers is None:
            return
        subscribers.discard(client_id)
        if not subscribers:
            del self.subscriptions[document_hash]

    def subscriptions_of(self, client_id: str) -> List[str]:
        return sorted(h for h, clients in self.subscriptions.items() if client_id in clients)

    async def send(self, client_id: str, message: Dict[str, Any]) -> bool:
        websocket = self.active_connections.get(client_id)
        if websocket is None:
            return False
        try:
            await websocket.send_text(json.dumps(message))
            return True
        except Exception as e:
            logger.warning("Dropping WebSocket client %s after failed send: %s", client_id, e)
            self.disconnect(client_id)
            return False

    async def broadcast_to_document(self, document_hash: str, message: Dict[str, Any]) -> int:
        delivered = 0
        for client_id in list(self.subscriptions.get(document_hash, ())):
            if await self.send(client_id, message):
                delivered += 1
        return delivered

    async def broadcast_all(self, message: Dict[str, Any]) -> int:
        delivered = 0
        for client_id in list(self.active_connections):
            if await self.send(client_id, message):
                delivered += 1
        return delivered

    def stats(self) -> Dict[str, Any]:
        return {
            "connected_clients": len(self.active_connections),
            "clients": [
                {"client_id": client_id, "subscriptions": self.subscriptions_of(client_id)}
                for client_id in self.active_connections
            ],
            "document_subscriptions": {h: len(c) for h, c in self.subscriptions.items()},
        }


manager = ConnectionManager()
