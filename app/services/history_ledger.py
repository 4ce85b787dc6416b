"""
History Ledger.

WHAT: Appends audit entries for payment orders and reads the timeline
back with actor display info.

WHY: Every state-changing operation must leave exactly one entry, and
the entries must read the same forever. Keeping the append helpers in
one place means the shape of each entry kind (which statuses, which
comment, which metadata) is defined once.

HOW: Writes go through HistoryDAO inside the caller's unit of work.
Reads join users at read time; names and avatars are never copied onto
the history row.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.dao.history import HistoryDAO
from app.dao.user import UserDAO
from app.models.history import (
    HistoryAction,
    PaymentOrderHistory,
    SYSTEM_ACTOR_NAME,
    SYSTEM_STATUS_COMMENT,
)
from app.models.payment_order import PaymentOrderStatus
from app.models.user import User
from app.services.order_state_machine import TransitionPlan


@dataclass(frozen=True)
class ActorInfo:
    """Display info for whoever wrote a history entry."""

    id: Optional[int]
    name: str
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    is_system: bool = False

    @classmethod
    def system(cls) -> "ActorInfo":
        return cls(id=None, name=SYSTEM_ACTOR_NAME, is_system=True)

    @classmethod
    def from_user(cls, user: Optional[User], user_id: Optional[int]) -> "ActorInfo":
        if user is None:
            # Actor account was removed; keep the id for the record
            return cls(id=user_id, name="Unknown user")
        return cls(id=user.id, name=user.name, email=user.email, avatar_url=user.avatar_url)


@dataclass(frozen=True)
class HistoryView:
    """A history entry enriched for display."""

    id: int
    payment_order_id: int
    action: HistoryAction
    previous_status: Optional[PaymentOrderStatus]
    new_status: Optional[PaymentOrderStatus]
    comment: Optional[str]
    metadata: Optional[Dict[str, Any]]
    created_at: datetime
    actor: ActorInfo


class HistoryLedger:
    """
    Append and read order history.

    Example:
        ledger = HistoryLedger(uow.session)
        await ledger.record_status_change(plan)
    """

    def __init__(self, session: AsyncSession):
        self.history_dao = HistoryDAO(session)
        self.user_dao = UserDAO(session)

    async def append(
        self,
        payment_order_id: int,
        action: HistoryAction,
        actor_id: Optional[int],
        is_system: bool = False,
        previous_status: Optional[PaymentOrderStatus] = None,
        new_status: Optional[PaymentOrderStatus] = None,
        comment: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PaymentOrderHistory:
        """
        Insert one entry in the current transaction.

        The system actor is stored as a NULL user with is_system_actor set;
        the id of whoever triggered it belongs in ``metadata``.
        """
        if is_system and actor_id is not None:
            raise ValueError("System entries must not carry a user id")
        if not is_system and actor_id is None:
            raise ValueError("User entries need an actor id")

        return await self.history_dao.create(
            payment_order_id=payment_order_id,
            action=action,
            user_id=actor_id,
            is_system_actor=is_system,
            previous_status=previous_status,
            new_status=new_status,
            comment=comment,
            extra_data=metadata or None,
        )

    async def record_created(self, payment_order_id: int, actor_id: int) -> PaymentOrderHistory:
        return await self.append(
            payment_order_id,
            HistoryAction.CREATED,
            actor_id,
            new_status=PaymentOrderStatus.CREATED,
        )

    async def record_status_change(
        self,
        plan: TransitionPlan,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PaymentOrderHistory:
        """
        Entry for an applied transition.

        Automatic transitions are written as the system actor with the
        fixed comment; the triggering user goes into metadata.
        """
        if plan.is_system:
            extra = {"triggered_by_user_id": plan.actor_id}
            extra.update(metadata or {})
            return await self.append(
                plan.order_id,
                HistoryAction.STATUS_CHANGED,
                None,
                is_system=True,
                previous_status=plan.previous_status,
                new_status=plan.new_status,
                comment=SYSTEM_STATUS_COMMENT,
                metadata=extra,
            )

        extra = {"action": plan.action.value} if plan.action else {}
        extra.update(metadata or {})
        return await self.append(
            plan.order_id,
            HistoryAction.STATUS_CHANGED,
            plan.actor_id,
            previous_status=plan.previous_status,
            new_status=plan.new_status,
            comment=plan.comment,
            metadata=extra,
        )

    async def list_for_order(self, payment_order_id: int) -> List[HistoryView]:
        """
        Timeline of an order, oldest first, with actor info.

        Callers are responsible for the visibility check.
        """
        entries = await self.history_dao.list_for_order(payment_order_id)
        users = await self.user_dao.get_map(entry.user_id for entry in entries)
        return [self.to_view(entry, users) for entry in entries]

    @staticmethod
    def to_view(entry: PaymentOrderHistory, users: Dict[int, User]) -> HistoryView:
        if entry.is_system_actor:
            actor = ActorInfo.system()
        else:
            actor = ActorInfo.from_user(users.get(entry.user_id), entry.user_id)
        return HistoryView(
            id=entry.id,
            payment_order_id=entry.payment_order_id,
            action=entry.action,
            previous_status=entry.previous_status,
            new_status=entry.new_status,
            comment=entry.comment,
            metadata=entry.extra_data,
            created_at=entry.created_at,
            actor=actor,
        )
