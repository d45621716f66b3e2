import json
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from modules.documents.services.validation import is_valid_document_hash
from modules.notifications.services.connection_manager import manager

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Ledger event stream; clients subscribe to the documents they care about"""
    client_id = await manager.connect(websocket)
    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await manager.send(client_id, {"type": "error", "data": {"message": "Invalid JSON"}})
                continue
            if not isinstance(message, dict):
                await manager.send(client_id, {"type": "error", "data": {"message": "Message must be an object"}})
                continue

            message_type = message.get("type")
            document_hash = message.get("document_hash")

            if message_type in ("subscribe", "unsubscribe"):
                if not is_valid_document_hash(document_hash):
                    await manager.send(client_id, {"type": "error", "data": {"message": "Invalid document hash"}})
                    continue
                document_hash = document_hash.lower()
                if message_type == "subscribe":
                    manager.subscribe(client_id, document_hash)
                    reply = "subscribed"
                else:
                    manager.unsubscribe(client_id, document_hash)
                    reply = "unsubscribed"
                await manager.send(client_id, {"type": reply, "data": {"document_hash": document_hash}})

            elif message_type == "heartbeat":
                await manager.send(client_id, {
                    "type": "heartbeat",
                    "data": {"timestamp": datetime.now(timezone.utc).isoformat()},
                })

            else:
                await manager.send(client_id, {
                    "type": "error",
                    "data": {"message": f"Unknown message type: {message_type}"},
                })

    except WebSocketDisconnect:
        manager.disconnect(client_id)


@router.get("/websocket/stats")
async def websocket_stats():
    return manager.stats()
