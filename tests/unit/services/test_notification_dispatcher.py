"""
Notification Dispatcher Tests.

WHAT: Tests for outbox delivery, failure recording, redelivery and the
webhook consumer.

WHY: Notifications must never block the workflow, but they must not be
lost either. A failing consumer leaves the row FAILED so the scheduled
job can try again.
"""

import json
from datetime import timedelta

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import select

from app.core.exceptions import NotificationDeliveryError
from app.dao.order_event import OrderEventDAO
from app.models.base import utc_now
from app.models.order_event import OrderEvent, OrderEventStatus, OrderEventType
from app.models.payment_order import PaymentOrder, PaymentOrderStatus
from app.services.notification_dispatcher import (
    NotificationDispatcher,
    OrderEventMessage,
    WebhookNotificationConsumer,
    status_changed_payload,
)

from tests.factories import PaymentOrderFactory


async def record_event(session_factory, order_id, created_at=None):
    async with session_factory() as session:
        event = await OrderEventDAO(session).record(
            order_id,
            OrderEventType.STATUS_CHANGED,
            {"new_status": "APPROVED", "notification_type": "ORDER_APPROVED"},
        )
        if created_at is not None:
            event.created_at = created_at
        await session.commit()
        return event.id


async def load_event(session_factory, event_id) -> OrderEvent:
    async with session_factory() as session:
        result = await session.execute(select(OrderEvent).where(OrderEvent.id == event_id))
        return result.scalar_one()


def order_stub() -> PaymentOrder:
    return PaymentOrder(
        id=1, profile_id=2, created_by_id=3, title="Chairs", status=PaymentOrderStatus.APPROVED
    )


@pytest_asyncio.fixture
async def order(db_session, workspace):
    return await PaymentOrderFactory.create(db_session, workspace.profile, workspace.member)


class TestPayloads:
    def test_status_payload_maps_notification(self):
        payload = status_changed_payload(
            order_stub(),
            PaymentOrderStatus.IN_REVIEW,
            PaymentOrderStatus.APPROVED,
            actor_id=3,
            comment=None,
        )
        assert payload["notification_type"] == "ORDER_APPROVED"
        assert payload["previous_status"] == "IN_REVIEW"
        assert payload["new_status"] == "APPROVED"
        assert payload["actor_id"] == 3

    def test_unmapped_status_has_no_notification(self):
        payload = status_changed_payload(
            order_stub(),
            PaymentOrderStatus.CREATED,
            PaymentOrderStatus.IN_REVIEW,
            actor_id=3,
            comment=None,
        )
        assert payload["notification_type"] is None


class TestDelivery:
    @pytest.mark.asyncio
    async def test_delivered_events_are_marked(self, session_factory, recorder, order):
        dispatcher = NotificationDispatcher(session_factory, consumers=[recorder])
        event_id = await record_event(session_factory, order.id)

        await dispatcher.publish([event_id])
        await dispatcher.drain()

        assert [m.event_id for m in recorder.messages] == [event_id]
        event = await load_event(session_factory, event_id)
        assert event.status == OrderEventStatus.DELIVERED
        assert event.attempts == 1
        assert event.delivered_at is not None

    @pytest.mark.asyncio
    async def test_consumer_failure_marks_failed(self, session_factory, recorder, order):
        """
        Test that a failing consumer never raises out of publish.

        WHY: Delivery runs after commit; the workflow operation has
        already succeeded and must not see the failure.
        """
        recorder.fail = True
        dispatcher = NotificationDispatcher(session_factory, consumers=[recorder])
        event_id = await record_event(session_factory, order.id)

        await dispatcher.publish([event_id])
        await dispatcher.drain()

        event = await load_event(session_factory, event_id)
        assert event.status == OrderEventStatus.FAILED
        assert event.attempts == 1
        assert "recording: consumer unavailable" in event.last_error

    @pytest.mark.asyncio
    async def test_publish_nothing(self, session_factory, recorder):
        dispatcher = NotificationDispatcher(session_factory, consumers=[recorder])
        await dispatcher.publish([])
        await dispatcher.drain()
        assert recorder.messages == []


class TestRedelivery:
    @pytest.mark.asyncio
    async def test_retries_failed_and_stale_pending(self, session_factory, recorder, order):
        """
        Test which rows the scheduled job picks up.

        WHY: Fresh pending rows are probably still being dispatched after
        commit; delivering them again would notify people twice.
        """
        dispatcher = NotificationDispatcher(session_factory, consumers=[recorder])
        stale_id = await record_event(session_factory, order.id, created_at=utc_now() - timedelta(minutes=5))
        fresh_id = await record_event(session_factory, order.id)

        recorder.fail = True
        failed_id = await record_event(session_factory, order.id)
        await dispatcher.deliver([failed_id])
        recorder.fail = False

        delivered = await dispatcher.redeliver_pending()

        assert delivered == 2
        assert sorted(m.event_id for m in recorder.messages) == sorted([stale_id, failed_id])
        assert (await load_event(session_factory, fresh_id)).status == OrderEventStatus.PENDING
        failed = await load_event(session_factory, failed_id)
        assert failed.status == OrderEventStatus.DELIVERED
        assert failed.attempts == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, session_factory, recorder, order):
        recorder.fail = True
        dispatcher = NotificationDispatcher(session_factory, consumers=[recorder], max_attempts=2)
        event_id = await record_event(session_factory, order.id)

        await dispatcher.deliver([event_id])
        await dispatcher.redeliver_pending()
        assert await dispatcher.redeliver_pending() == 0

        event = await load_event(session_factory, event_id)
        assert event.status == OrderEventStatus.FAILED
        assert event.attempts == 2


class TestWebhookConsumer:
    def message(self, notification_type="ORDER_APPROVED") -> OrderEventMessage:
        return OrderEventMessage(
            event_id=11,
            payment_order_id=4,
            event_type=OrderEventType.STATUS_CHANGED,
            payload={"new_status": "APPROVED", "notification_type": notification_type},
        )

    @pytest.mark.asyncio
    async def test_posts_json(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(202)

        consumer = WebhookNotificationConsumer(
            "https://notify.example.com/hook", transport=httpx.MockTransport(handler)
        )
        await consumer.handle(self.message())

        assert len(seen) == 1
        request = seen[0]
        assert request.headers["X-Event-Type"] == "STATUS_CHANGED"
        assert request.headers["X-Event-ID"] == "11"
        body = json.loads(request.content)
        assert body["notification_type"] == "ORDER_APPROVED"
        assert body["payment_order_id"] == 4
        assert body["event_type"] == "STATUS_CHANGED"

    @pytest.mark.asyncio
    async def test_skips_events_without_notification(self):
        seen = []
        consumer = WebhookNotificationConsumer(
            "https://notify.example.com/hook",
            transport=httpx.MockTransport(lambda request: seen.append(request) or httpx.Response(200)),
        )
        await consumer.handle(self.message(notification_type=None))
        assert seen == []

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        consumer = WebhookNotificationConsumer(
            "https://notify.example.com/hook",
            transport=httpx.MockTransport(lambda request: httpx.Response(500)),
        )
        with pytest.raises(NotificationDeliveryError):
            await consumer.handle(self.message())

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        consumer = WebhookNotificationConsumer(
            "https://notify.example.com/hook", transport=httpx.MockTransport(handler)
        )
        with pytest.raises(NotificationDeliveryError):
            await consumer.handle(self.message())
