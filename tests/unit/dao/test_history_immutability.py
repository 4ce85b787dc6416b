"""
History immutability tests.

WHY: The order timeline is the audit record. Once written, an entry can
neither be edited nor deleted, through the DAO or through the ORM.
"""

import pytest

from app.core.exceptions import HistoryImmutableError
from app.dao.history import HistoryDAO
from app.models.history import HistoryAction, PaymentOrderHistory
from app.models.payment_order import PaymentOrderStatus

from tests.factories import PaymentOrderFactory


class TestHistoryDAO:
    @pytest.mark.asyncio
    async def test_entries_read_back_in_order(self, db_session, workspace):
        order = await PaymentOrderFactory.create(db_session, workspace.profile, workspace.member)
        dao = HistoryDAO(db_session)

        first = await dao.create(
            order.id, HistoryAction.CREATED, user_id=workspace.member.id, new_status=PaymentOrderStatus.CREATED
        )
        second = await dao.create(order.id, HistoryAction.COMMENT_ADDED, user_id=workspace.admin.id, comment="ok")
        await db_session.commit()

        entries = await dao.list_for_order(order.id)
        assert [e.id for e in entries] == [first.id, second.id]
        assert await dao.count_for_order(order.id) == 2
        assert await dao.count_for_order(order.id, HistoryAction.COMMENT_ADDED) == 1

    @pytest.mark.asyncio
    async def test_dao_refuses_update_and_delete(self, db_session):
        dao = HistoryDAO(db_session)
        with pytest.raises(HistoryImmutableError):
            await dao.update(1, comment="rewritten")
        with pytest.raises(HistoryImmutableError):
            await dao.delete(1)


class TestOrmGuards:
    @pytest.mark.asyncio
    async def test_orm_update_is_rejected(self, db_session, workspace):
        """
        Test that changing a loaded entry fails at flush.

        WHY: Code that bypasses the DAO must still not rewrite history.
        """
        order = await PaymentOrderFactory.create(db_session, workspace.profile, workspace.member)
        entry = await HistoryDAO(db_session).create(
            order.id, HistoryAction.COMMENT_ADDED, user_id=workspace.member.id, comment="original"
        )
        await db_session.commit()

        entry.comment = "rewritten"
        with pytest.raises(HistoryImmutableError):
            await db_session.flush()
        await db_session.rollback()

    @pytest.mark.asyncio
    async def test_orm_delete_is_rejected(self, db_session, workspace):
        order = await PaymentOrderFactory.create(db_session, workspace.profile, workspace.member)
        entry = await HistoryDAO(db_session).create(
            order.id, HistoryAction.COMMENT_ADDED, user_id=workspace.member.id, comment="original"
        )
        await db_session.commit()

        await db_session.delete(entry)
        with pytest.raises(HistoryImmutableError):
            await db_session.flush()
        await db_session.rollback()


class TestSchemaGuards:
    def test_actor_cannot_be_rewritten_by_user_deletion(self):
        """
        Test that deleting a user cannot rewrite the actor of an entry.

        WHY: A cascading SET NULL would change history below the ORM guards.
        """
        (foreign_key,) = PaymentOrderHistory.__table__.c.user_id.foreign_keys
        assert foreign_key.column.table.name == "users"
        assert foreign_key.ondelete == "RESTRICT"
