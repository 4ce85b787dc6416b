"""
Tag Service Integration Tests.

WHY: Tags carry the file requirements that gate submission, so only
the profile owner may shape them and definitions are checked on write.
"""

import pytest

from app.core.exceptions import ErrorKind
from app.dao.payment_order import PaymentOrderDAO

from tests.factories import INVOICE_REQUIREMENTS, PaymentOrderFactory, TagFactory


class TestCreateTag:
    @pytest.mark.asyncio
    async def test_profile_owner_creates(self, tag_service, workspace):
        tag = (
            await tag_service.create_tag(
                workspace.profile_owner.id,
                workspace.profile.id,
                "  Travel  ",
                "#00AA00",
                file_requirements=[dict(req) for req in INVOICE_REQUIREMENTS],
            )
        ).unwrap()

        assert tag.name == "Travel"
        assert [req["label"] for req in tag.file_requirements] == ["Invoice", "Quote"]

    @pytest.mark.asyncio
    async def test_organization_owner_cannot_manage_tags(self, tag_service, workspace):
        """
        Test that org-level rank does not grant tag management.

        WHY: Tags belong to the profile; its owner decides what
        documents orders need.
        """
        result = await tag_service.create_tag(workspace.org_owner.id, workspace.profile.id, "Travel", "#00AA00")
        assert result.kind == ErrorKind.FORBIDDEN

    @pytest.mark.asyncio
    async def test_duplicate_name(self, tag_service, workspace):
        result = await tag_service.create_tag(
            workspace.profile_owner.id, workspace.profile.id, workspace.invoice_tag.name, "#00AA00"
        )
        assert result.kind == ErrorKind.ALREADY_EXISTS

    @pytest.mark.asyncio
    async def test_bad_color(self, tag_service, workspace):
        result = await tag_service.create_tag(workspace.profile_owner.id, workspace.profile.id, "Travel", "green")
        assert result.kind == ErrorKind.INVALID_INPUT

    @pytest.mark.asyncio
    async def test_bad_requirements(self, tag_service, workspace):
        result = await tag_service.create_tag(
            workspace.profile_owner.id,
            workspace.profile.id,
            "Travel",
            "#00AA00",
            file_requirements=[{"label": "", "required": True}],
        )
        assert result.kind == ErrorKind.INVALID_INPUT

    @pytest.mark.asyncio
    async def test_unknown_profile(self, tag_service, workspace):
        result = await tag_service.create_tag(workspace.profile_owner.id, 98765, "Travel", "#00AA00")
        assert result.kind == ErrorKind.NOT_FOUND


class TestListTags:
    @pytest.mark.asyncio
    async def test_sorted_by_name(self, tag_service, db_session, workspace):
        await TagFactory.create(db_session, workspace.profile, name="Equipment")
        await TagFactory.create(db_session, workspace.profile, name="Catering")

        tags = (await tag_service.list_tags(workspace.whitelisted.id, workspace.profile.id)).unwrap()

        assert [t.name for t in tags] == ["Catering", "Equipment", "Supplier invoice"]

    @pytest.mark.asyncio
    async def test_outsider_gets_nothing(self, tag_service, workspace):
        assert (await tag_service.list_tags(workspace.outsider.id, workspace.profile.id)).unwrap() == []

    @pytest.mark.asyncio
    async def test_unknown_profile(self, tag_service, workspace):
        result = await tag_service.list_tags(workspace.member.id, 98765)
        assert result.kind == ErrorKind.NOT_FOUND


class TestUpdateAndDelete:
    @pytest.mark.asyncio
    async def test_update(self, tag_service, workspace):
        tag = (
            await tag_service.update_tag(
                workspace.profile_owner.id,
                workspace.invoice_tag.id,
                color="#FF0000",
                file_requirements=None,
            )
        ).unwrap()

        assert tag.color == "#FF0000"
        assert not tag.file_requirements

    @pytest.mark.asyncio
    async def test_unknown_field(self, tag_service, workspace):
        result = await tag_service.update_tag(workspace.profile_owner.id, workspace.invoice_tag.id, owner_id=1)
        assert result.kind == ErrorKind.INVALID_INPUT

    @pytest.mark.asyncio
    async def test_admin_cannot_update(self, tag_service, workspace):
        result = await tag_service.update_tag(workspace.admin.id, workspace.invoice_tag.id, color="#FF0000")
        assert result.kind == ErrorKind.FORBIDDEN

    @pytest.mark.asyncio
    async def test_delete_detaches_orders(self, tag_service, session_factory, db_session, workspace):
        """
        Test that deleting a tag untags its orders instead of failing.

        WHY: Orders outlive their tag; they simply stop being gated.
        """
        first = await PaymentOrderFactory.create(
            db_session, workspace.profile, workspace.member, tag=workspace.invoice_tag
        )
        second = await PaymentOrderFactory.create(
            db_session, workspace.profile, workspace.member, tag=workspace.invoice_tag
        )

        deletion = (await tag_service.delete_tag(workspace.profile_owner.id, workspace.invoice_tag.id)).unwrap()

        assert deletion.deleted_id == workspace.invoice_tag.id
        assert deletion.orders_updated == 2
        async with session_factory() as session:
            dao = PaymentOrderDAO(session)
            assert (await dao.get_by_id(first.id)).tag_id is None
            assert (await dao.get_by_id(second.id)).tag_id is None
        assert (await tag_service.list_tags(workspace.member.id, workspace.profile.id)).unwrap() == []
