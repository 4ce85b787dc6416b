"""
Access Scoping and Concurrency Tests.

WHY: Allow-listed outsiders must only ever see their own orders, and
two people acting on one order at the same moment must not both win.
"""

import asyncio
from collections import Counter

import pytest
from sqlalchemy.orm.exc import StaleDataError

from app.core.exceptions import ErrorKind
from app.models.history import HistoryAction
from app.models.payment_order import PaymentOrder, PaymentOrderStatus
from app.services.order_state_machine import OrderAction

from tests.factories import PaymentOrderFactory, document_fields


class TestOrderVisibility:
    @pytest.mark.asyncio
    async def test_allow_listed_user_sees_only_own_orders(self, order_service, db_session, workspace):
        own = await PaymentOrderFactory.create(db_session, workspace.profile, workspace.whitelisted)
        await PaymentOrderFactory.create(db_session, workspace.profile, workspace.member)

        orders = (await order_service.list_orders(workspace.whitelisted.id, workspace.profile.id)).unwrap()

        assert [view.order.id for view in orders] == [own.id]

    @pytest.mark.asyncio
    async def test_member_sees_every_order(self, order_service, db_session, workspace):
        await PaymentOrderFactory.create(db_session, workspace.profile, workspace.whitelisted)
        await PaymentOrderFactory.create(db_session, workspace.profile, workspace.member)

        orders = (await order_service.list_orders(workspace.member.id, workspace.profile.id)).unwrap()

        assert len(orders) == 2
        assert {view.creator.id for view in orders} == {workspace.whitelisted.id, workspace.member.id}

    @pytest.mark.asyncio
    async def test_outsider_sees_nothing(self, order_service, db_session, workspace):
        order = await PaymentOrderFactory.create(db_session, workspace.profile, workspace.member)

        assert (await order_service.list_orders(workspace.outsider.id, workspace.profile.id)).unwrap() == []
        assert (await order_service.get_order(workspace.outsider.id, order.id)).unwrap() is None
        assert (await order_service.list_history(workspace.outsider.id, order.id)).unwrap() == []
        assert (await order_service.get_available_actions(workspace.outsider.id, order.id)).unwrap() == []

    @pytest.mark.asyncio
    async def test_allow_listed_user_cannot_read_others_order(self, order_service, db_session, workspace):
        order = await PaymentOrderFactory.create(db_session, workspace.profile, workspace.member)
        assert (await order_service.get_order(workspace.whitelisted.id, order.id)).unwrap() is None

    @pytest.mark.asyncio
    async def test_allow_listed_user_gets_no_history_or_documents_of_others(
        self, order_service, document_service, db_session, workspace
    ):
        """
        Test that allow-listed callers see no rows from another creator's order.

        WHY: The allow-list grants a view of one's own orders only; history
        and documents must be scoped the same way as the order itself.
        """
        order = await PaymentOrderFactory.create(db_session, workspace.profile, workspace.member)
        assert (await document_service.upload(workspace.member.id, order.id, **document_fields())).ok

        assert (await order_service.list_history(workspace.whitelisted.id, order.id)).unwrap() == []
        assert (await document_service.list_documents(workspace.whitelisted.id, order.id)).unwrap() == []

        assert len((await order_service.list_history(workspace.member.id, order.id)).unwrap()) == 1
        assert len((await document_service.list_documents(workspace.member.id, order.id)).unwrap()) == 1

    @pytest.mark.asyncio
    async def test_unknown_order_reads_as_none(self, order_service, workspace):
        assert (await order_service.get_order(workspace.member.id, 98765)).unwrap() is None

    @pytest.mark.asyncio
    async def test_unknown_profile(self, order_service, workspace):
        result = await order_service.list_orders(workspace.member.id, 98765)
        assert result.kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_status_filter(self, order_service, db_session, workspace):
        await PaymentOrderFactory.create(db_session, workspace.profile, workspace.member)
        in_review = await PaymentOrderFactory.create(
            db_session, workspace.profile, workspace.member, status=PaymentOrderStatus.IN_REVIEW
        )

        orders = (
            await order_service.list_orders(
                workspace.admin.id, workspace.profile.id, status=PaymentOrderStatus.IN_REVIEW
            )
        ).unwrap()

        assert [view.order.id for view in orders] == [in_review.id]


class TestMutationGuards:
    @pytest.mark.asyncio
    async def test_unknown_order(self, order_service, workspace):
        result = await order_service.transition(workspace.admin.id, 98765, OrderAction.APPROVE)
        assert result.kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_outsider_forbidden(self, order_service, db_session, workspace):
        order = await PaymentOrderFactory.create(
            db_session, workspace.profile, workspace.member, status=PaymentOrderStatus.IN_REVIEW
        )
        result = await order_service.transition(workspace.outsider.id, order.id, OrderAction.APPROVE)
        assert result.kind == ErrorKind.FORBIDDEN

    @pytest.mark.asyncio
    async def test_allow_listed_user_cannot_touch_others_order(self, order_service, db_session, workspace):
        order = await PaymentOrderFactory.create(db_session, workspace.profile, workspace.member)
        result = await order_service.transition(workspace.whitelisted.id, order.id, OrderAction.CANCEL)
        assert result.kind == ErrorKind.FORBIDDEN

    @pytest.mark.asyncio
    async def test_unknown_caller(self, order_service, db_session, workspace):
        order = await PaymentOrderFactory.create(db_session, workspace.profile, workspace.member)
        result = await order_service.transition(424242, order.id, OrderAction.CANCEL)
        assert result.kind == ErrorKind.UNAUTHORIZED


class TestConcurrentTransitions:
    @pytest.mark.asyncio
    async def test_approve_and_cancel_race(self, order_service, db_session, workspace):
        """
        Test that simultaneous approve and cancel resolve to one winner.

        WHY: The loser must see INVALID_STATE against the committed
        status, and the timeline must hold exactly one status change.
        """
        order = await PaymentOrderFactory.create(
            db_session, workspace.profile, workspace.member, status=PaymentOrderStatus.IN_REVIEW
        )

        results = await asyncio.gather(
            order_service.transition(workspace.admin.id, order.id, OrderAction.APPROVE),
            order_service.transition(workspace.member.id, order.id, OrderAction.CANCEL),
        )

        outcomes = Counter("ok" if r.ok else r.kind for r in results)
        assert outcomes == {"ok": 1, ErrorKind.INVALID_STATE: 1}

        winner = next(r for r in results if r.ok).unwrap()
        current = (await order_service.get_order(workspace.admin.id, order.id)).unwrap()
        assert current.order.status == winner.order.status

        history = (await order_service.list_history(workspace.admin.id, order.id)).unwrap()
        assert [h.action for h in history] == [HistoryAction.STATUS_CHANGED]

    @pytest.mark.asyncio
    async def test_stale_write_is_detected(self, session_factory, db_session, workspace):
        """
        Test that a write based on an outdated version fails.

        WHY: Lock-free writers (another process) are caught by the
        version counter instead of silently overwriting each other.
        """
        order = await PaymentOrderFactory.create(
            db_session, workspace.profile, workspace.member, status=PaymentOrderStatus.IN_REVIEW
        )

        async with session_factory() as stale_session:
            stale = await stale_session.get(PaymentOrder, order.id)

            async with session_factory() as other_session:
                fresh = await other_session.get(PaymentOrder, order.id)
                fresh.status = PaymentOrderStatus.APPROVED
                await other_session.commit()

            stale.status = PaymentOrderStatus.CANCELLED
            with pytest.raises(StaleDataError):
                await stale_session.flush()
            await stale_session.rollback()

        async with session_factory() as check_session:
            current = await check_session.get(PaymentOrder, order.id)
            assert current.status == PaymentOrderStatus.APPROVED
            assert current.version_id == 2
