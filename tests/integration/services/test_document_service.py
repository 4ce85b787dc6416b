"""
Document Service Integration Tests.

WHY: Documents gate submission and are what reviewers check. These
tests cover validation against tag requirements, replacement by label,
who may add or remove files, and storage cleanup after commit.
"""

import pytest
from botocore.exceptions import ClientError

from app.core.exceptions import ErrorKind
from app.models.history import HistoryAction
from app.models.organization import MembershipRole
from app.models.payment_order import PaymentOrderStatus
from app.services.order_state_machine import OrderAction

from tests.factories import OrganizationFactory, PaymentOrderFactory, TagFactory, UserFactory, document_fields


async def draft_for(db_session, workspace, creator=None, status=PaymentOrderStatus.CREATED):
    return await PaymentOrderFactory.create(
        db_session,
        workspace.profile,
        creator or workspace.member,
        status=status,
        tag=workspace.invoice_tag,
    )


class TestUploadValidation:
    @pytest.mark.asyncio
    async def test_unknown_label(self, document_service, db_session, workspace):
        order = await draft_for(db_session, workspace)
        result = await document_service.upload(workspace.member.id, order.id, **document_fields("Receipt"))
        assert result.kind == ErrorKind.INVALID_INPUT

    @pytest.mark.asyncio
    async def test_wrong_mime_type(self, document_service, db_session, workspace):
        order = await draft_for(db_session, workspace)
        result = await document_service.upload(
            workspace.member.id, order.id, **document_fields("Invoice", mime_type="image/png")
        )
        assert result.kind == ErrorKind.INVALID_INPUT

    @pytest.mark.asyncio
    async def test_oversized_file(self, document_service, db_session, workspace):
        order = await draft_for(db_session, workspace)
        result = await document_service.upload(
            workspace.member.id, order.id, **document_fields("Invoice", file_size=5 * 1024 * 1024 + 1)
        )
        assert result.kind == ErrorKind.INVALID_INPUT

    @pytest.mark.asyncio
    async def test_mime_type_is_case_insensitive(self, document_service, db_session, workspace):
        order = await draft_for(db_session, workspace)
        result = await document_service.upload(
            workspace.member.id, order.id, **document_fields("Invoice", mime_type="Application/PDF")
        )
        assert result.unwrap().document.mime_type == "application/pdf"

    @pytest.mark.asyncio
    async def test_mixed_case_tag_definition_accepts_matching_upload(
        self, document_service, tag_service, db_session, workspace
    ):
        """
        Test that a tag declared with mixed-case MIME types accepts uploads.

        WHY: Otherwise no file could ever satisfy the requirement and the
        order could never be submitted.
        """
        tag = (
            await tag_service.create_tag(
                workspace.profile_owner.id,
                workspace.profile.id,
                "Scanned receipts",
                "#00AA00",
                file_requirements=[
                    {"label": "Scan", "allowed_mime_types": ["Application/PDF"], "required": True}
                ],
            )
        ).unwrap()
        order = await PaymentOrderFactory.create(db_session, workspace.profile, workspace.member, tag=tag)

        result = await document_service.upload(
            workspace.member.id, order.id, **document_fields("Scan", mime_type="Application/PDF")
        )

        assert result.unwrap().document.mime_type == "application/pdf"

    @pytest.mark.asyncio
    async def test_stored_mixed_case_requirement_still_matches(self, document_service, db_session, workspace):
        tag = await TagFactory.create(
            db_session,
            workspace.profile,
            name="Legacy scans",
            file_requirements=[{"label": "Scan", "allowed_mime_types": ["Image/PNG"], "required": True}],
        )
        order = await PaymentOrderFactory.create(db_session, workspace.profile, workspace.member, tag=tag)

        result = await document_service.upload(
            workspace.member.id, order.id, **document_fields("Scan", mime_type="image/png")
        )

        assert result.ok

    @pytest.mark.asyncio
    async def test_untagged_order_accepts_any_label(self, document_service, db_session, workspace):
        order = await PaymentOrderFactory.create(db_session, workspace.profile, workspace.member)
        result = await document_service.upload(
            workspace.member.id, order.id, **document_fields("Anything", mime_type="text/csv")
        )
        assert result.ok

    @pytest.mark.asyncio
    async def test_file_name_is_sanitized(self, document_service, db_session, workspace):
        order = await draft_for(db_session, workspace)
        result = await document_service.upload(
            workspace.member.id, order.id, **document_fields("Invoice", file_name="../../etc/passwd.pdf")
        )
        assert "/" not in result.unwrap().document.file_name

    @pytest.mark.asyncio
    async def test_unknown_order(self, document_service, workspace):
        result = await document_service.upload(workspace.member.id, 424242, **document_fields())
        assert result.kind == ErrorKind.NOT_FOUND


class TestUploadPermissions:
    @pytest.mark.asyncio
    async def test_other_member_cannot_upload(self, document_service, db_session, workspace):
        order = await draft_for(db_session, workspace)
        colleague = await UserFactory.create(db_session)
        await OrganizationFactory.add_member(db_session, workspace.org, colleague, MembershipRole.MEMBER)

        result = await document_service.upload(colleague.id, order.id, **document_fields())
        assert result.kind == ErrorKind.FORBIDDEN

    @pytest.mark.asyncio
    async def test_reviewer_can_upload(self, document_service, db_session, workspace):
        order = await draft_for(db_session, workspace)
        result = await document_service.upload(workspace.admin.id, order.id, **document_fields())
        assert result.unwrap().uploader.id == workspace.admin.id

    @pytest.mark.asyncio
    async def test_outsider_cannot_upload(self, document_service, db_session, workspace):
        order = await draft_for(db_session, workspace)
        result = await document_service.upload(workspace.outsider.id, order.id, **document_fields())
        assert result.kind == ErrorKind.FORBIDDEN

    @pytest.mark.asyncio
    async def test_allow_listed_creator_uploads_to_own_order(self, document_service, db_session, workspace):
        order = await draft_for(db_session, workspace, creator=workspace.whitelisted)
        result = await document_service.upload(workspace.whitelisted.id, order.id, **document_fields())
        assert result.ok

    @pytest.mark.asyncio
    async def test_final_order_rejects_uploads(self, document_service, db_session, workspace):
        order = await draft_for(db_session, workspace, status=PaymentOrderStatus.CANCELLED)
        result = await document_service.upload(workspace.member.id, order.id, **document_fields())
        assert result.kind == ErrorKind.FORBIDDEN


class TestReplacement:
    @pytest.mark.asyncio
    async def test_same_label_replaces(self, document_service, order_service, s3_client, db_session, workspace):
        """
        Test that a second upload under a label replaces the first.

        WHY: One document per requirement keeps the gate unambiguous;
        the old stored object is deleted once the change committed.
        """
        order = await draft_for(db_session, workspace)
        first = (await document_service.upload(workspace.member.id, order.id, **document_fields())).unwrap()

        second = (
            await document_service.upload(
                workspace.member.id,
                order.id,
                **document_fields(file_key="orders/invoice-v2.pdf", file_name="invoice-v2.pdf"),
            )
        ).unwrap()

        assert second.replaced_document_id == first.document.id
        documents = (await document_service.list_documents(workspace.member.id, order.id)).unwrap()
        assert [d.document.id for d in documents] == [second.document.id]
        assert documents[0].uploader.id == workspace.member.id
        s3_client.delete_object.assert_called_once_with(Bucket="test-bucket", Key="orders/invoice.pdf")

        history = (await order_service.list_history(workspace.member.id, order.id)).unwrap()
        added = [h for h in history if h.action == HistoryAction.DOCUMENT_ADDED]
        assert len(added) == 2
        assert added[1].metadata["replaced_document_id"] == first.document.id
        assert not [h for h in history if h.action == HistoryAction.DOCUMENT_REMOVED]

    @pytest.mark.asyncio
    async def test_same_key_is_not_deleted(self, document_service, s3_client, db_session, workspace):
        order = await draft_for(db_session, workspace)
        await document_service.upload(workspace.member.id, order.id, **document_fields())
        await document_service.upload(workspace.member.id, order.id, **document_fields())

        s3_client.delete_object.assert_not_called()


class TestDeleteDocument:
    @pytest.mark.asyncio
    async def test_uploader_deletes(self, document_service, order_service, s3_client, db_session, workspace):
        order = await draft_for(db_session, workspace)
        upload = (await document_service.upload(workspace.member.id, order.id, **document_fields())).unwrap()

        result = await document_service.delete_document(workspace.member.id, upload.document.id)

        assert result.ok
        assert (await document_service.list_documents(workspace.member.id, order.id)).unwrap() == []
        s3_client.delete_object.assert_called_once_with(Bucket="test-bucket", Key="orders/invoice.pdf")
        history = (await order_service.list_history(workspace.member.id, order.id)).unwrap()
        assert history[-1].action == HistoryAction.DOCUMENT_REMOVED
        assert history[-1].comment == "invoice.pdf"
        assert history[-1].metadata["document_id"] == upload.document.id

    @pytest.mark.asyncio
    async def test_reviewer_deletes_others_document(self, document_service, db_session, workspace):
        order = await draft_for(db_session, workspace)
        upload = (await document_service.upload(workspace.member.id, order.id, **document_fields())).unwrap()

        assert (await document_service.delete_document(workspace.admin.id, upload.document.id)).ok

    @pytest.mark.asyncio
    async def test_non_uploader_member_forbidden(self, document_service, db_session, workspace):
        order = await draft_for(db_session, workspace)
        upload = (await document_service.upload(workspace.admin.id, order.id, **document_fields())).unwrap()

        result = await document_service.delete_document(workspace.member.id, upload.document.id)
        assert result.kind == ErrorKind.FORBIDDEN

    @pytest.mark.asyncio
    async def test_final_order_forbidden(self, document_service, order_service, db_session, workspace):
        order = await draft_for(db_session, workspace)
        upload = (await document_service.upload(workspace.member.id, order.id, **document_fields())).unwrap()
        await order_service.transition(workspace.member.id, order.id, OrderAction.CANCEL)

        result = await document_service.delete_document(workspace.admin.id, upload.document.id)
        assert result.kind == ErrorKind.FORBIDDEN

    @pytest.mark.asyncio
    async def test_unknown_document(self, document_service, workspace):
        result = await document_service.delete_document(workspace.member.id, 31337)
        assert result.kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_storage_failure_does_not_undo_delete(self, document_service, s3_client, db_session, workspace):
        """
        Test that an S3 error after commit is only logged.

        WHY: The metadata change already committed; a storage outage
        leaves an orphaned object, never a dangling row.
        """
        s3_client.delete_object.side_effect = ClientError(
            {"Error": {"Code": "500", "Message": "unavailable"}}, "DeleteObject"
        )
        order = await draft_for(db_session, workspace)
        upload = (await document_service.upload(workspace.member.id, order.id, **document_fields())).unwrap()

        result = await document_service.delete_document(workspace.member.id, upload.document.id)

        assert result.ok
        assert (await document_service.list_documents(workspace.member.id, order.id)).unwrap() == []

    @pytest.mark.asyncio
    async def test_outsider_sees_no_documents(self, document_service, db_session, workspace):
        order = await draft_for(db_session, workspace)
        await document_service.upload(workspace.member.id, order.id, **document_fields())

        assert (await document_service.list_documents(workspace.outsider.id, order.id)).unwrap() == []
