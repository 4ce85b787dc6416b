"""
Notification Dispatcher.

WHAT: Delivers committed order events from the outbox to notification
consumers (log, webhook).

WHY: The workflow must not wait on, or fail because of, email or chat
delivery. Events are written in the same transaction as the change;
this dispatcher runs after commit and records the outcome on the row.

HOW:
1. Services call ``publish(event_ids)`` from an after-commit callback
2. A background task loads the rows and hands each to every consumer
3. Rows are marked delivered, or failed with the error text
4. The scheduler calls ``redeliver_pending`` for leftovers

Consumers raise on failure; the dispatcher never lets that escape.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional, Set

import httpx
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.config import settings
from app.core.exceptions import NotificationDeliveryError
from app.dao.order_event import OrderEventDAO
from app.db.session import AsyncSessionLocal
from app.models.base import utc_now
from app.models.document import PaymentOrderDocument
from app.models.order_event import (
    NotificationType,
    OrderEvent,
    OrderEventType,
    STATUS_NOTIFICATIONS,
)
from app.models.payment_order import PaymentOrder

logger = logging.getLogger(__name__)


# ============================================================================
# Event payloads
# ============================================================================


def order_created_payload(order: PaymentOrder) -> Dict[str, Any]:
    return {
        "actor_id": order.created_by_id,
        "profile_id": order.profile_id,
        "title": order.title,
        "new_status": order.status.value,
        "notification_type": NotificationType.ORDER_CREATED.value,
    }


def status_changed_payload(
    order: PaymentOrder,
    previous_status,
    new_status,
    actor_id: Optional[int],
    comment: Optional[str],
    is_system: bool = False,
) -> Dict[str, Any]:
    """Status events carry a notification type only for the mapped statuses."""
    notification = STATUS_NOTIFICATIONS.get(new_status)
    return {
        "actor_id": actor_id,
        "is_system": is_system,
        "profile_id": order.profile_id,
        "title": order.title,
        "previous_status": previous_status.value,
        "new_status": new_status.value,
        "comment": comment,
        "notification_type": notification.value if notification else None,
    }


def document_added_payload(
    order: PaymentOrder, document: PaymentOrderDocument
) -> Dict[str, Any]:
    return {
        "actor_id": document.uploaded_by_id,
        "profile_id": order.profile_id,
        "title": order.title,
        "document_id": document.id,
        "document_name": document.file_name,
        "requirement_label": document.requirement_label,
        "notification_type": NotificationType.DOCUMENT_ADDED.value,
    }


# ============================================================================
# Consumers
# ============================================================================


@dataclass(frozen=True)
class OrderEventMessage:
    """Detached copy of an outbox row handed to consumers."""

    event_id: int
    payment_order_id: int
    event_type: OrderEventType
    payload: Dict[str, Any]

    @classmethod
    def from_row(cls, event: OrderEvent) -> "OrderEventMessage":
        return cls(
            event_id=event.id,
            payment_order_id=event.payment_order_id,
            event_type=event.event_type,
            payload=dict(event.payload or {}),
        )

    @property
    def notification_type(self) -> Optional[str]:
        return self.payload.get("notification_type")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "payment_order_id": self.payment_order_id,
            "event_type": self.event_type.value,
            **self.payload,
        }


class NotificationConsumer:
    """Base class for event consumers. ``handle`` raises on failure."""

    name = "consumer"

    async def handle(self, message: OrderEventMessage) -> None:
        raise NotImplementedError


class LoggingNotificationConsumer(NotificationConsumer):
    """Writes every event to the application log."""

    name = "log"

    async def handle(self, message: OrderEventMessage) -> None:
        logger.info(
            f"Order event {message.event_type.value} for order #{message.payment_order_id} "
            f"(notification={message.notification_type})"
        )


class WebhookNotificationConsumer(NotificationConsumer):
    """
    Posts events as JSON to the notification service.

    Only events with a notification type are posted; the rest are not
    something a person is told about.
    """

    name = "webhook"

    def __init__(
        self,
        url: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.timeout = timeout if timeout is not None else settings.NOTIFICATION_TIMEOUT_SECONDS
        self._transport = transport

    async def handle(self, message: OrderEventMessage) -> None:
        if message.notification_type is None:
            return

        headers = {
            "Content-Type": "application/json",
            "X-Event-Type": message.event_type.value,
            "X-Event-ID": str(message.event_id),
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.url, json=message.to_dict(), headers=headers)
        except httpx.TimeoutException as e:
            raise NotificationDeliveryError(message="Notification webhook timed out") from e
        except httpx.HTTPError as e:
            raise NotificationDeliveryError(message=f"Notification webhook error: {e}") from e

        if not 200 <= response.status_code < 300:
            raise NotificationDeliveryError(
                message=f"Notification webhook returned HTTP {response.status_code}",
                status=response.status_code,
            )


# ============================================================================
# Dispatcher
# ============================================================================


class NotificationDispatcher:
    """
    Post-commit delivery of outbox events.

    Example:
        uow.after_commit(lambda: dispatcher.publish([event.id]))
        ...
        await dispatcher.drain()  # tests and shutdown
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        consumers: Optional[Iterable[NotificationConsumer]] = None,
        max_attempts: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.consumers: List[NotificationConsumer] = list(consumers or [])
        self.max_attempts = max_attempts or settings.OUTBOX_MAX_ATTEMPTS
        self._tasks: Set[asyncio.Task] = set()

    async def publish(self, event_ids: Iterable[int]) -> None:
        """Schedule delivery and return immediately."""
        ids = list(event_ids)
        if not ids:
            return
        task = asyncio.create_task(self._deliver_safe(ids))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for every scheduled delivery to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _deliver_safe(self, event_ids: List[int]) -> None:
        try:
            await self.deliver(event_ids)
        except Exception as e:
            logger.error(f"Event dispatch failed for {event_ids}: {e}", exc_info=True)

    async def deliver(self, event_ids: List[int]) -> int:
        """
        Deliver the given events and record the outcome.

        Returns:
            Number of events delivered to every consumer
        """
        async with self.session_factory() as session:
            dao = OrderEventDAO(session)
            events = await dao.get_by_ids(event_ids)
            delivered = await self._deliver_rows(dao, sorted(events, key=lambda e: e.id))
            await session.commit()
        return delivered

    async def redeliver_pending(self) -> int:
        """
        Retry failed events and pending events past the grace period.

        Called by the scheduler.
        """
        pending_before = utc_now() - timedelta(seconds=settings.OUTBOX_REDELIVERY_GRACE_SECONDS)
        async with self.session_factory() as session:
            dao = OrderEventDAO(session)
            events = await dao.list_undelivered(self.max_attempts, pending_before)
            if not events:
                return 0
            delivered = await self._deliver_rows(dao, events)
            await session.commit()

        logger.info(f"Outbox redelivery: {delivered}/{len(events)} events delivered")
        return delivered

    async def _deliver_rows(self, dao: OrderEventDAO, events: List[OrderEvent]) -> int:
        delivered = 0
        for event in events:
            message = OrderEventMessage.from_row(event)
            error = await self._run_consumers(message)
            if error is None:
                dao.mark_delivered(event)
                delivered += 1
            else:
                dao.mark_failed(event, error)
        return delivered

    async def _run_consumers(self, message: OrderEventMessage) -> Optional[str]:
        errors = []
        for consumer in self.consumers:
            try:
                await consumer.handle(message)
            except Exception as e:
                logger.error(
                    f"Consumer {consumer.name} failed on event {message.event_id}: {e}",
                    exc_info=True,
                )
                errors.append(f"{consumer.name}: {e}")
        return "; ".join(errors) if errors else None


def build_consumers() -> List[NotificationConsumer]:
    consumers: List[NotificationConsumer] = [LoggingNotificationConsumer()]
    if settings.NOTIFICATION_WEBHOOK_URL:
        consumers.append(WebhookNotificationConsumer(settings.NOTIFICATION_WEBHOOK_URL))
    return consumers


_dispatcher: Optional[NotificationDispatcher] = None


def get_notification_dispatcher() -> NotificationDispatcher:
    """Process-wide dispatcher bound to the application session factory."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = NotificationDispatcher(AsyncSessionLocal, build_consumers())
    return _dispatcher
