"""Tests for the in-process event bus and the outbound notifiers."""

import json

import httpx

from draft.logic.enums import DraftStatus
from draft.logic.events import StatusChangedEvent
from draft.session.broadcast import DraftEventBus
from draft.session.notifier import WebhookNotifier
from draft.tests.mocks.clock import DEFAULT_START


def _event(session_id: str = "s-1") -> StatusChangedEvent:
    return StatusChangedEvent(
        session_id=session_id,
        occurred_at=DEFAULT_START,
        status=DraftStatus.ACTIVE,
        previous_status=DraftStatus.SCHEDULED,
    )


class TestDraftEventBus:
    async def test_delivers_only_to_own_session(self):
        bus = DraftEventBus()
        mine = bus.subscribe("s-1")
        other = bus.subscribe("s-2")
        bus.publish(_event("s-1"))
        assert mine.get_nowait().session_id == "s-1"
        assert other.empty()

    async def test_unsubscribe(self):
        bus = DraftEventBus()
        queue = bus.subscribe("s-1")
        assert bus.subscriber_count("s-1") == 1
        bus.unsubscribe("s-1", queue)
        bus.unsubscribe("s-1", queue)
        assert bus.subscriber_count("s-1") == 0
        bus.publish(_event())
        assert queue.empty()

    async def test_full_queue_drops_for_that_subscriber_only(self):
        bus = DraftEventBus(max_queue_size=1)
        slow = bus.subscribe("s-1")
        fast = bus.subscribe("s-1")
        bus.publish(_event())
        fast.get_nowait()
        bus.publish(_event())
        assert slow.qsize() == 1
        assert fast.qsize() == 1

    async def test_listener_failure_does_not_block_delivery(self):
        bus = DraftEventBus()
        seen = []

        def broken(_event):
            raise RuntimeError("boom")

        bus.add_listener(broken)
        bus.add_listener(seen.append)
        queue = bus.subscribe("s-1")
        bus.publish(_event())
        assert len(seen) == 1
        assert queue.qsize() == 1

        bus.remove_listener(seen.append)
        bus.remove_listener(seen.append)
        bus.publish(_event())
        assert len(seen) == 1


class TestWebhookNotifier:
    async def test_posts_event_as_json(self):
        received = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append((request.url, json.loads(request.content)))
            return httpx.Response(204)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            notifier = WebhookNotifier("https://hooks.example.com/draft", client=client)
            await notifier.notify(_event())
            await notifier.aclose()
            assert not client.is_closed

        url, body = received[0]
        assert str(url) == "https://hooks.example.com/draft"
        assert body["type"] == "status_changed"
        assert body["status"] == "active"
        assert body["session_id"] == "s-1"

    async def test_server_error_is_swallowed(self):
        transport = httpx.MockTransport(lambda _request: httpx.Response(500))
        async with httpx.AsyncClient(transport=transport) as client:
            await WebhookNotifier("https://hooks.example.com/draft", client=client).notify(_event())

    async def test_connection_error_is_swallowed(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            await WebhookNotifier("https://hooks.example.com/draft", client=client).notify(_event())

    async def test_owned_client_closed(self):
        notifier = WebhookNotifier("https://hooks.example.com/draft")
        await notifier.aclose()
        assert notifier._client.is_closed
