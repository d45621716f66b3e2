import asyncio
import logging
from concurrent.futures import Future
from typing import Any, Dict, List, Optional, Tuple

from modules.documents.services.ledger_client import LedgerClient, LedgerSubscription
from modules.ledger.models import LedgerEventKind
from modules.ledger.services import LedgerEvent
from modules.notifications.services.connection_manager import ConnectionManager

logger = logging.getLogger(__name__)

# None as target means every connected client
Outgoing = Tuple[Optional[str], Dict[str, Any]]


class LedgerEventRelay:
    """
    Forwards ledger events to WebSocket clients.

    Events are polled on a scheduler thread; sends are handed over to the
    server's event loop, which owns every WebSocket.
    """

    def __init__(self, client: LedgerClient, manager: ConnectionManager):
        self.client = client
        self.manager = manager
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self.subscription: Optional[LedgerSubscription] = None

    def build_messages(self, event: LedgerEvent) -> List[Outgoing]:
        messages: List[Outgoing] = [
            (event.document_hash, {"type": "ledger:event", "data": event.to_dict()}),
            (None, {"type": "ledger:update", "data": {
                "type": event.kind,
                "document_hash": event.document_hash,
                "block_number": event.position,
            }}),
        ]

        if event.kind == LedgerEventKind.DOCUMENT_SIGNED.value:
            completion = self.client.is_document_fully_signed(event.document_hash)
            if not completion.success:
                logger.warning("Could not read completion of %s: %s", event.document_hash, completion.error)
            elif completion["is_fully_signed"]:
                messages.append((event.document_hash, {"type": "document:completed", "data": {
                    "document_hash": event.document_hash,
                    "block_number": event.position,
                    "timestamp": event.timestamp,
                }}))
        return messages

    async def deliver(self, messages: List[Outgoing]) -> None:
        for target, message in messages:
            if target is None:
                await self.manager.broadcast_all(message)
            else:
                await self.manager.broadcast_to_document(target, message)

    def handle_event(self, event: LedgerEvent) -> None:
        messages = self.build_messages(event)
        if self.loop is None or self.loop.is_closed():
            logger.debug("No event loop attached, dropping %s for %s", event.kind, event.document_hash)
            return
        future = asyncio.run_coroutine_threadsafe(self.deliver(messages), self.loop)
        future.add_done_callback(self._log_failure)

    @staticmethod
    def _log_failure(future: Future) -> None:
        if not future.cancelled() and future.exception() is not None:
            logger.error("Failed to relay ledger event: %s", future.exception())

    def start(self, interval_seconds: int, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self.loop = loop or asyncio.get_running_loop()
        self.subscription = self.client.subscribe(self.handle_event, kinds=tuple(LedgerEventKind))
        self.subscription.start(interval_seconds)

    def stop(self) -> None:
        if self.subscription is not None:
            self.subscription.stop()
            self.subscription = None
