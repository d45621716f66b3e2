import asyncio

from conftest import sha
from modules.notifications.services import ConnectionManager, LedgerEventRelay

DOC = sha(b"board minutes")


class RecordingManager(ConnectionManager):
    def __init__(self):
        super().__init__()
        self.sent = []

    async def broadcast_to_document(self, document_hash, message):
        self.sent.append((document_hash, message))
        return 1

    async def broadcast_all(self, message):
        self.sent.append((None, message))
        return 1


def events_after(ledger_client, position):
    return ledger_client.events_since(position)["events"]


def test_messages_for_created_document(ledger_client, wallets):
    a, b, creator = (w.address for w in wallets)
    ledger_client.create_document(DOC, [a, b], creator)
    relay = LedgerEventRelay(ledger_client, RecordingManager())

    (event,) = events_after(ledger_client, 0)
    messages = relay.build_messages(event)

    assert [(target, m["type"]) for target, m in messages] == [
        (DOC, "ledger:event"),
        (None, "ledger:update"),
    ]
    assert messages[0][1]["data"]["type"] == "DocumentCreated"
    assert messages[0][1]["data"]["block_number"] == 1


def test_completion_message_after_last_signature(ledger_client, wallets):
    a, b, creator = (w.address for w in wallets)
    ledger_client.create_document(DOC, [a, b], creator)
    relay = LedgerEventRelay(ledger_client, RecordingManager())

    ledger_client.sign_document(DOC, a)
    (first,) = events_after(ledger_client, 1)
    assert "document:completed" not in [m["type"] for _, m in relay.build_messages(first)]

    ledger_client.sign_document(DOC, b)
    (last,) = events_after(ledger_client, 2)
    completed = [m for _, m in relay.build_messages(last) if m["type"] == "document:completed"]
    assert completed[0]["data"] == {"document_hash": DOC, "block_number": 3, "timestamp": last.timestamp}


def test_handle_event_hands_off_to_event_loop(ledger_client, wallets):
    a, _, creator = (w.address for w in wallets)
    manager = RecordingManager()
    relay = LedgerEventRelay(ledger_client, manager)
    subscription = ledger_client.subscribe(relay.handle_event)

    async def scenario():
        relay.loop = asyncio.get_running_loop()
        ledger_client.create_document(DOC, [a], creator)
        await asyncio.to_thread(subscription.poll)
        for _ in range(50):
            if manager.sent:
                break
            await asyncio.sleep(0.01)

    asyncio.run(scenario())
    assert [m["type"] for _, m in manager.sent] == ["ledger:event", "ledger:update"]


def test_handle_event_without_loop_is_dropped(ledger_client, wallets):
    a, _, creator = (w.address for w in wallets)
    manager = RecordingManager()
    relay = LedgerEventRelay(ledger_client, manager)
    ledger_client.create_document(DOC, [a], creator)

    relay.handle_event(events_after(ledger_client, 0)[0])
    assert manager.sent == []


def test_websocket_subscription_protocol(client):
    with client.websocket_connect("/ws") as ws:
        connected = ws.receive_json()
        assert connected["type"] == "connected"

        ws.send_json({"type": "subscribe", "document_hash": DOC.upper()})
        assert ws.receive_json() == {"type": "subscribed", "data": {"document_hash": DOC}}

        stats = client.get("/websocket/stats").json()
        assert stats["connected_clients"] == 1
        assert stats["document_subscriptions"] == {DOC: 1}

        ws.send_json({"type": "heartbeat"})
        assert ws.receive_json()["type"] == "heartbeat"

        ws.send_json({"type": "subscribe", "document_hash": "xyz"})
        assert ws.receive_json()["type"] == "error"

        ws.send_text("not json")
        assert ws.receive_json()["type"] == "error"

        ws.send_json({"type": "unsubscribe", "document_hash": DOC})
        assert ws.receive_json()["type"] == "unsubscribed"

    assert client.get("/websocket/stats").json()["connected_clients"] == 0


def test_stats_endpoint_runs_on_the_event_loop():
    import inspect

    from modules.notifications.controllers.websocket_controller import websocket_stats

    # connection maps are owned by the event loop
    assert inspect.iscoroutinefunction(websocket_stats)
