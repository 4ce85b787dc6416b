"""
Payment Order Service.

WHAT: Creation, scoped reads, status transitions, detail updates and
comments for payment orders.

WHY: This is where access, the requirement gate, the state machine and
the history ledger meet. Each mutation:
1. Opens its own unit of work keyed by the order id (creation is keyed
   by the organization so the monthly quota is counted one at a time)
2. Re-reads the order and the caller inside that transaction
3. Validates everything before writing anything
4. Writes order state, the history entry and the outbox event together
5. Hands the events to the dispatcher only after commit

HOW: Public methods are wrapped with ``as_result`` and return ``Ok`` or
``Err``. Reads never raise for missing access; they return empty
results so order existence does not leak.
"""

import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import (
    AppException,
    AuthorizationError,
    InvalidStateTransitionError,
    ResourceNotFoundError,
    ValidationError,
    LimitExceededError,
)
from app.core.result import as_result
from app.dao.document import DocumentDAO
from app.dao.order_event import OrderEventDAO
from app.dao.organization import OrganizationDAO
from app.dao.payment_order import PaymentOrderDAO
from app.dao.profile import ProfileDAO, TagDAO
from app.dao.user import UserDAO
from app.db.unit_of_work import OrderLockRegistry, UnitOfWork, retry_on_conflict
from app.models.history import HistoryAction
from app.models.order_event import OrderEventType
from app.models.payment_order import PaymentOrder, PaymentOrderStatus
from app.models.tag import Tag
from app.models.user import User
from app.services import requirement_gate
from app.services.access_resolver import AccessResolver
from app.services.history_ledger import HistoryLedger, HistoryView
from app.services.notification_dispatcher import (
    NotificationDispatcher,
    order_created_payload,
    status_changed_payload,
)
from app.services.order_state_machine import (
    OrderAction,
    TransitionPlan,
    available_actions,
    plan_transition,
)
from app.services.requirement_gate import RequirementStatus
from app.services.usage_limits import UsageLimitChecker

logger = logging.getLogger(__name__)

CURRENCY_PATTERN = re.compile(r"^[A-Z]{3}$")

# Statuses in which the creator may still edit the order
EDITABLE_STATUSES = frozenset({PaymentOrderStatus.CREATED, PaymentOrderStatus.NEEDS_SUPPORT})

UPDATABLE_FIELDS = ("title", "description", "reason", "amount", "currency", "tag_id")


@dataclass(frozen=True)
class OrderView:
    """An order with its creator and tag for display."""

    order: PaymentOrder
    creator: Optional[User] = None
    tag: Optional[Tag] = None


@dataclass(frozen=True)
class SubmissionReadiness:
    """Requirement completeness plus whether submit is possible now."""

    complete: bool
    can_submit: bool
    missing: List[str] = field(default_factory=list)
    required: List[str] = field(default_factory=list)


# ============================================================================
# Shared validation helpers (also used by the document service)
# ============================================================================


def normalize_amount(value: Any) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(message="Amount must be a number", amount=str(value)) from e
    if not amount.is_finite() or amount <= 0:
        raise ValidationError(message="Amount must be greater than zero", amount=str(value))
    return amount


def normalize_currency(value: str) -> str:
    currency = (value or "").strip().upper()
    if not CURRENCY_PATTERN.match(currency):
        raise ValidationError(message="Currency must be a 3-letter code", currency=value)
    return currency


def normalize_text(value: Optional[str], field_name: str, required: bool = True) -> Optional[str]:
    text = value.strip() if value else ""
    if not text:
        if required:
            raise ValidationError(message=f"{field_name.capitalize()} cannot be empty", field=field_name)
        return None
    return text


async def load_order_tag(session: AsyncSession, order: PaymentOrder) -> Optional[Tag]:
    if order.tag_id is None:
        return None
    return await TagDAO(session).get_by_id(order.tag_id)


async def requirement_status_for(session: AsyncSession, order: PaymentOrder) -> RequirementStatus:
    tag = await load_order_tag(session, order)
    documents = await DocumentDAO(session).list_for_order(order.id)
    return requirement_gate.evaluate(tag, (doc.requirement_label for doc in documents))


async def validate_tag_for_profile(
    session: AsyncSession, tag_id: Optional[int], profile_id: int
) -> Optional[Tag]:
    """The tag must exist and belong to the order's profile."""
    if tag_id is None:
        return None
    tag = await TagDAO(session).get_by_id(tag_id)
    if tag is None or tag.profile_id != profile_id:
        raise ValidationError(message="Tag does not belong to this profile", tag_id=tag_id)
    return tag


class PaymentOrderService:
    """
    Service for the payment order workflow.

    Example:
        service = PaymentOrderService(session_factory, dispatcher)
        result = await service.transition(user.id, order.id, OrderAction.APPROVE)
        if not result.ok:
            print(result.kind)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        dispatcher: NotificationDispatcher,
        usage_limits: Optional[UsageLimitChecker] = None,
        locks: Optional[OrderLockRegistry] = None,
    ):
        """
        Args:
            session_factory: Opens one session per unit of work
            dispatcher: Receives committed event ids
            usage_limits: Creation quota check (defaults to unlimited)
            locks: Per-order lock registry (defaults to the process-wide one)
        """
        self.session_factory = session_factory
        self.dispatcher = dispatcher
        self.usage_limits = usage_limits or UsageLimitChecker()
        self.locks = locks

    def _unit_of_work(
        self, order_id: Optional[int] = None, organization_id: Optional[int] = None
    ) -> UnitOfWork:
        return UnitOfWork(
            self.session_factory, order_id=order_id, locks=self.locks, organization_id=organization_id
        )

    def _publish_after_commit(self, uow: UnitOfWork, event_ids: List[int]) -> None:
        uow.after_commit(lambda: self.dispatcher.publish(event_ids))

    async def _load_visible_order(
        self, session: AsyncSession, order_id: int, user_id: Optional[int], for_update: bool = True
    ):
        """
        Common guard sequence for order mutations.

        NotFound -> Unauthorized -> Forbidden, in that order.
        """
        dao = PaymentOrderDAO(session)
        order = await (dao.get_for_update(order_id) if for_update else dao.get_by_id(order_id))
        if order is None:
            raise ResourceNotFoundError(message="Payment order not found", order_id=order_id)

        resolver = AccessResolver(session)
        user = await resolver.load_caller(user_id)
        access = await resolver.resolve_for_order(user, order)
        if not access.can_view_order(order):
            raise AuthorizationError(
                message="You do not have access to this payment order",
                order_id=order_id,
            )
        return order, user, access

    async def _read_access(
        self, session: AsyncSession, order_id: int, user_id: Optional[int]
    ):
        """Order and access for reads; None when missing or not visible."""
        order = await PaymentOrderDAO(session).get_by_id(order_id)
        if order is None:
            return None, None
        resolver = AccessResolver(session)
        user = await resolver.find_caller(user_id)
        access = await resolver.resolve_for_order(user, order)
        if not access.can_view_order(order):
            return None, None
        return order, access

    async def _enrich(self, session: AsyncSession, orders: List[PaymentOrder]) -> List[OrderView]:
        users = await UserDAO(session).get_map(order.created_by_id for order in orders)
        tag_ids = [order.tag_id for order in orders if order.tag_id is not None]
        tags = {tag.id: tag for tag in await TagDAO(session).get_by_ids(tag_ids)}
        return [
            OrderView(
                order=order,
                creator=users.get(order.created_by_id),
                tag=tags.get(order.tag_id) if order.tag_id is not None else None,
            )
            for order in orders
        ]

    # =========================================================================
    # Creation
    # =========================================================================

    @as_result
    async def create_order(
        self,
        user_id: Optional[int],
        profile_id: int,
        title: str,
        reason: str,
        amount: Any,
        currency: str,
        description: Optional[str] = None,
        tag_id: Optional[int] = None,
    ) -> OrderView:
        """
        Create an order in CREATED.

        Raises (converted to Err):
            ResourceNotFoundError: Unknown profile
            AuthenticationError: Unknown caller
            AuthorizationError: Caller has no access to the profile
            ValidationError: Bad amount, currency, text or tag
            LimitExceededError: Organization quota reached
        """
        async with self.session_factory() as session:
            profile = await ProfileDAO(session).get_by_id(profile_id)
            if profile is None:
                raise ResourceNotFoundError(message="Profile not found", profile_id=profile_id)
            organization_id = profile.organization_id

        # Creations in one organization are serialized so the quota holds
        async with self._unit_of_work(organization_id=organization_id) as uow:
            session = uow.session
            profile = await ProfileDAO(session).get_by_id(profile_id)
            if profile is None:
                raise ResourceNotFoundError(message="Profile not found", profile_id=profile_id)

            resolver = AccessResolver(session)
            user = await resolver.load_caller(user_id)
            access = await resolver.resolve(user, profile)
            if not access.has_access:
                raise AuthorizationError(
                    message="You do not have access to this profile",
                    profile_id=profile_id,
                )

            clean_title = normalize_text(title, "title")
            clean_reason = normalize_text(reason, "reason")
            clean_description = normalize_text(description, "description", required=False)
            clean_amount = normalize_amount(amount)
            clean_currency = normalize_currency(currency)
            tag = await validate_tag_for_profile(session, tag_id, profile.id)

            await OrganizationDAO(session).lock_for_update(profile.organization_id)
            decision = await self.usage_limits.check_order_limit(session, profile.organization_id)
            if not decision.allowed:
                raise LimitExceededError(
                    message="Monthly payment order limit reached",
                    limit=decision.limit,
                    remaining=decision.remaining,
                )

            order = await PaymentOrderDAO(session).create(
                profile_id=profile.id,
                created_by_id=user.id,
                title=clean_title,
                description=clean_description,
                reason=clean_reason,
                amount=clean_amount,
                currency=clean_currency,
                status=PaymentOrderStatus.CREATED,
                tag_id=tag.id if tag else None,
            )
            await HistoryLedger(session).record_created(order.id, user.id)
            event = await OrderEventDAO(session).record(
                order.id, OrderEventType.ORDER_CREATED, order_created_payload(order)
            )
            self._publish_after_commit(uow, [event.id])

        logger.info(f"Payment order #{order.id} created by user {user.id} on profile {profile.id}")
        return OrderView(order=order, creator=user, tag=tag)

    # =========================================================================
    # Reads
    # =========================================================================

    @as_result
    async def list_orders(
        self,
        user_id: Optional[int],
        profile_id: int,
        status: Optional[PaymentOrderStatus] = None,
    ) -> List[OrderView]:
        """
        Orders of a profile visible to the caller, newest first.

        Allow-listed callers only get their own orders; callers without
        access get an empty list.
        """
        async with self.session_factory() as session:
            profile = await ProfileDAO(session).get_by_id(profile_id)
            if profile is None:
                raise ResourceNotFoundError(message="Profile not found", profile_id=profile_id)

            resolver = AccessResolver(session)
            user = await resolver.find_caller(user_id)
            access = await resolver.resolve(user, profile)
            if not access.has_access:
                return []

            orders = await PaymentOrderDAO(session).list_for_profile(
                profile.id, created_by_id=access.creator_filter(), status=status
            )
            return await self._enrich(session, orders)

    @as_result
    async def get_order(self, user_id: Optional[int], order_id: int) -> Optional[OrderView]:
        """The order, or None when it does not exist or is not visible."""
        async with self.session_factory() as session:
            order, _ = await self._read_access(session, order_id, user_id)
            if order is None:
                return None
            return (await self._enrich(session, [order]))[0]

    @as_result
    async def list_history(self, user_id: Optional[int], order_id: int) -> List[HistoryView]:
        async with self.session_factory() as session:
            order, _ = await self._read_access(session, order_id, user_id)
            if order is None:
                return []
            return await HistoryLedger(session).list_for_order(order.id)

    @as_result
    async def get_available_actions(self, user_id: Optional[int], order_id: int) -> List[OrderAction]:
        async with self.session_factory() as session:
            order, access = await self._read_access(session, order_id, user_id)
            if order is None:
                return []
            requirements = await requirement_status_for(session, order)
            return available_actions(order, access, requirements)

    @as_result
    async def get_requirements(
        self, user_id: Optional[int], order_id: int
    ) -> Optional[SubmissionReadiness]:
        """Missing required documents and whether the order can be submitted."""
        async with self.session_factory() as session:
            order, _ = await self._read_access(session, order_id, user_id)
            if order is None:
                return None
            status = await requirement_status_for(session, order)
            return SubmissionReadiness(
                complete=status.complete,
                can_submit=order.status == PaymentOrderStatus.CREATED and status.complete,
                missing=list(status.missing),
                required=list(status.required),
            )

    # =========================================================================
    # Transitions
    # =========================================================================

    @as_result
    async def transition(
        self,
        user_id: Optional[int],
        order_id: int,
        action: OrderAction,
        comment: Optional[str] = None,
    ) -> OrderView:
        """
        Apply a manual status change.

        A concurrent write on the same order is retried after re-reading;
        if it still conflicts the caller gets INVALID_STATE.
        """
        return await retry_on_conflict(
            lambda: self._transition_once(user_id, order_id, action, comment),
            order_id=order_id,
        )

    async def _transition_once(
        self,
        user_id: Optional[int],
        order_id: int,
        action: OrderAction,
        comment: Optional[str],
    ) -> OrderView:
        async with self._unit_of_work(order_id) as uow:
            session = uow.session
            try:
                order, user, access = await self._load_visible_order(session, order_id, user_id)
                requirements = await requirement_status_for(session, order)
                plan = plan_transition(order, access, action, comment, requirements)
            except AppException as e:
                logger.info(
                    f"Rejected {action.value} on order #{order_id} by user {user_id}: {e.kind.value}"
                )
                raise

            event_id = await self.apply_plan(session, order, plan)
            self._publish_after_commit(uow, [event_id])
            tag = await load_order_tag(session, order)
            creator = await UserDAO(session).get_by_id(order.created_by_id)

        logger.info(
            f"Order #{order.id} {plan.previous_status.value} -> {plan.new_status.value} "
            f"by user {user.id} ({action.value})"
        )
        return OrderView(order=order, creator=creator, tag=tag)

    @staticmethod
    async def apply_plan(
        session: AsyncSession,
        order: PaymentOrder,
        plan: TransitionPlan,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> int:
        """
        Write a planned transition: order status, history entry, outbox event.

        Returns:
            Id of the STATUS_CHANGED outbox event

        Raises:
            StaleDataError: If another transaction updated the order meanwhile
        """
        if order.status != plan.previous_status:
            raise InvalidStateTransitionError(
                message="Order status changed while the transition was being applied",
                order_id=order.id,
            )
        order.status = plan.new_status
        await session.flush()

        await HistoryLedger(session).record_status_change(plan, metadata)
        event = await OrderEventDAO(session).record(
            order.id,
            OrderEventType.STATUS_CHANGED,
            status_changed_payload(
                order,
                plan.previous_status,
                plan.new_status,
                None if plan.is_system else plan.actor_id,
                plan.comment,
                is_system=plan.is_system,
            ),
        )
        return event.id

    # =========================================================================
    # Details and comments
    # =========================================================================

    @as_result
    async def update_order(self, user_id: Optional[int], order_id: int, **changes: Any) -> OrderView:
        """
        Edit title, description, reason, amount, currency or tag.

        Only the creator may edit, and only while the order is CREATED or
        NEEDS_SUPPORT. Records UPDATED with the changed fields.
        """
        unknown = set(changes) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(message="Unknown fields", fields=sorted(unknown))

        return await retry_on_conflict(
            lambda: self._update_once(user_id, order_id, changes),
            order_id=order_id,
        )

    async def _update_once(
        self, user_id: Optional[int], order_id: int, changes: Dict[str, Any]
    ) -> OrderView:
        async with self._unit_of_work(order_id) as uow:
            session = uow.session
            order, user, access = await self._load_visible_order(session, order_id, user_id)
            if not access.is_creator(order):
                raise AuthorizationError(
                    message="Only the creator can edit this payment order",
                    order_id=order_id,
                )
            if order.status not in EDITABLE_STATUSES:
                raise InvalidStateTransitionError(
                    message=f"Orders in status {order.status.value} cannot be edited",
                    order_id=order_id,
                    status=order.status.value,
                )

            cleaned = await self._clean_changes(session, order, changes)
            diff = {
                name: {"from": _jsonable(getattr(order, name)), "to": _jsonable(value)}
                for name, value in cleaned.items()
                if getattr(order, name) != value
            }

            if diff:
                for name in diff:
                    setattr(order, name, cleaned[name])
                await session.flush()
                await HistoryLedger(session).append(
                    order.id,
                    HistoryAction.UPDATED,
                    user.id,
                    metadata={"changes": diff},
                )
            tag = await load_order_tag(session, order)

        if diff:
            logger.info(f"Order #{order.id} updated by user {user.id}: {sorted(diff)}")
        return OrderView(order=order, creator=user, tag=tag)

    async def _clean_changes(
        self, session: AsyncSession, order: PaymentOrder, changes: Dict[str, Any]
    ) -> Dict[str, Any]:
        cleaned: Dict[str, Any] = {}
        if "title" in changes:
            cleaned["title"] = normalize_text(changes["title"], "title")
        if "reason" in changes:
            cleaned["reason"] = normalize_text(changes["reason"], "reason")
        if "description" in changes:
            cleaned["description"] = normalize_text(changes["description"], "description", required=False)
        if "amount" in changes:
            cleaned["amount"] = normalize_amount(changes["amount"])
        if "currency" in changes:
            cleaned["currency"] = normalize_currency(changes["currency"])
        if "tag_id" in changes:
            tag = await validate_tag_for_profile(session, changes["tag_id"], order.profile_id)
            cleaned["tag_id"] = tag.id if tag else None
        return cleaned

    @as_result
    async def add_comment(self, user_id: Optional[int], order_id: int, comment: str) -> HistoryView:
        """
        Append a COMMENT_ADDED entry.

        History is never edited; a correction is a new comment.
        """
        text = normalize_text(comment, "comment")
        async with self._unit_of_work(order_id) as uow:
            session = uow.session
            order, user, _ = await self._load_visible_order(
                session, order_id, user_id, for_update=False
            )
            ledger = HistoryLedger(session)
            entry = await ledger.append(order.id, HistoryAction.COMMENT_ADDED, user.id, comment=text)
            view = HistoryLedger.to_view(entry, {user.id: user})

        logger.info(f"Comment added to order #{order.id} by user {user.id}")
        return view


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    return value
