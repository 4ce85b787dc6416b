"""
Document Service.

WHAT: Business logic for payment order documents: upload (with
replacement), listing and deletion.

WHY: Documents are what reviewers check before approving an order.
The service layer:
1. Enforces who may attach or remove files and when
2. Validates uploads against the order tag's file requirements
3. Keeps one document per requirement label (new uploads replace)
4. Moves an order from NEEDS_SUPPORT back to IN_REVIEW on upload

HOW: File bytes are uploaded by the client straight to storage; this
service stores metadata only. Each mutation runs in a unit of work on
the order, writes history and outbox events, and asks StorageService to
delete replaced or removed objects after commit.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.exceptions import (
    AuthorizationError,
    ResourceNotFoundError,
    ValidationError,
)
from app.core.result import as_result
from app.dao.document import DocumentDAO
from app.dao.order_event import OrderEventDAO
from app.dao.payment_order import PaymentOrderDAO
from app.dao.user import UserDAO
from app.db.unit_of_work import OrderLockRegistry, UnitOfWork, retry_on_conflict
from app.models.base import utc_now
from app.models.document import PaymentOrderDocument
from app.models.history import HistoryAction
from app.models.order_event import OrderEventType
from app.models.payment_order import PaymentOrder, PaymentOrderStatus
from app.models.user import User
from app.services import requirement_gate
from app.services.access_resolver import AccessContext, AccessResolver
from app.services.history_ledger import HistoryLedger
from app.services.notification_dispatcher import NotificationDispatcher, document_added_payload
from app.services.order_state_machine import plan_automatic_on_upload
from app.services.payment_order_service import PaymentOrderService, load_order_tag
from app.services.storage_service import StorageService

logger = logging.getLogger(__name__)

MAX_FILE_NAME_LENGTH = 255


@dataclass(frozen=True)
class DocumentView:
    """A document with its uploader for display."""

    document: PaymentOrderDocument
    uploader: Optional[User] = None


@dataclass(frozen=True)
class UploadOutcome:
    """Result of an upload, including any automatic status change."""

    document: PaymentOrderDocument
    uploader: User
    order_status: PaymentOrderStatus
    replaced_document_id: Optional[int] = None
    auto_transitioned: bool = False


def sanitize_file_name(file_name: str) -> str:
    """
    Strip path separators and control bytes, cap the length.

    WHY: The name is shown in history and notifications and must never
    be interpreted as a path.
    """
    name = (file_name or "").replace("/", "_").replace("\\", "_").replace("\x00", "").strip()
    if not name:
        raise ValidationError(message="File name cannot be empty")
    if len(name) > MAX_FILE_NAME_LENGTH:
        stem, _, ext = name.rpartition(".")
        if stem and len(ext) < 16:
            name = f"{stem[: MAX_FILE_NAME_LENGTH - len(ext) - 1]}.{ext}"
        else:
            name = name[:MAX_FILE_NAME_LENGTH]
    return name


def can_manage_documents(access: AccessContext, order: PaymentOrder) -> bool:
    """Creator or elevated callers attach documents."""
    return access.is_creator(order) or access.is_elevated


class DocumentService:
    """
    Service for payment order documents.

    Example:
        service = DocumentService(session_factory, dispatcher, storage)
        result = await service.upload(user.id, order.id, "Invoice", ...)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        dispatcher: NotificationDispatcher,
        storage: Optional[StorageService] = None,
        locks: Optional[OrderLockRegistry] = None,
    ):
        self.session_factory = session_factory
        self.dispatcher = dispatcher
        self.storage = storage or StorageService()
        self.locks = locks

    # =========================================================================
    # Upload
    # =========================================================================

    @as_result
    async def upload(
        self,
        user_id: Optional[int],
        order_id: int,
        requirement_label: str,
        file_name: str,
        file_key: str,
        file_url: str,
        mime_type: str,
        file_size: int,
    ) -> UploadOutcome:
        """
        Attach a document to an order under a requirement label.

        An existing document with the same label is replaced. Uploading
        while the order is NEEDS_SUPPORT sends it back to IN_REVIEW as
        the system actor.

        Raises (converted to Err):
            ResourceNotFoundError: Unknown order
            AuthenticationError: Unknown caller
            AuthorizationError: Not creator/elevated, or order is final
            ValidationError: Label, MIME type or size rejected by the tag
        """
        label = (requirement_label or "").strip()
        if not label:
            raise ValidationError(message="Requirement label cannot be empty")
        if file_size is None or file_size < 0:
            raise ValidationError(message="File size must not be negative", file_size=file_size)
        if not file_key or not file_url:
            raise ValidationError(message="File key and URL are required")
        clean_name = sanitize_file_name(file_name)
        clean_mime = (mime_type or "").strip().lower()

        return await retry_on_conflict(
            lambda: self._upload_once(
                user_id, order_id, label, clean_name, file_key, file_url, clean_mime, file_size
            ),
            order_id=order_id,
        )

    async def _upload_once(
        self,
        user_id: Optional[int],
        order_id: int,
        label: str,
        file_name: str,
        file_key: str,
        file_url: str,
        mime_type: str,
        file_size: int,
    ) -> UploadOutcome:
        async with UnitOfWork(self.session_factory, order_id=order_id, locks=self.locks) as uow:
            session = uow.session
            order = await PaymentOrderDAO(session).get_for_update(order_id)
            if order is None:
                raise ResourceNotFoundError(message="Payment order not found", order_id=order_id)

            resolver = AccessResolver(session)
            user = await resolver.load_caller(user_id)
            access = await resolver.resolve_for_order(user, order)
            if not access.can_view_order(order) or not can_manage_documents(access, order):
                raise AuthorizationError(
                    message="You cannot add documents to this payment order",
                    order_id=order_id,
                )
            if order.is_final:
                raise AuthorizationError(
                    message=f"Documents cannot be added to a {order.status.value} order",
                    order_id=order_id,
                    status=order.status.value,
                )

            tag = await load_order_tag(session, order)
            requirement_gate.validate_upload(tag, label, mime_type, file_size)

            document_dao = DocumentDAO(session)
            replaced = await document_dao.get_by_label(order.id, label)
            replaced_id = replaced.id if replaced else None
            old_key = replaced.file_key if replaced else None
            if replaced is not None:
                await document_dao.remove(replaced)

            document = await document_dao.create(
                payment_order_id=order.id,
                uploaded_by_id=user.id,
                requirement_label=label,
                file_name=file_name,
                file_key=file_key,
                file_url=file_url,
                mime_type=mime_type,
                file_size=file_size,
            )

            await HistoryLedger(session).append(
                order.id,
                HistoryAction.DOCUMENT_ADDED,
                user.id,
                comment=file_name,
                metadata={
                    "requirement_label": label,
                    "document_id": document.id,
                    "replaced_document_id": replaced_id,
                },
            )

            order.updated_at = utc_now()
            await session.flush()

            event_dao = OrderEventDAO(session)
            event_ids = [
                (
                    await event_dao.record(
                        order.id, OrderEventType.DOCUMENT_ADDED, document_added_payload(order, document)
                    )
                ).id
            ]

            plan = plan_automatic_on_upload(order, user.id)
            if plan is not None:
                event_ids.append(
                    await PaymentOrderService.apply_plan(
                        session, order, plan, metadata={"document_id": document.id}
                    )
                )

            uow.after_commit(lambda: self.dispatcher.publish(event_ids))
            if old_key is not None and old_key != file_key:
                uow.after_commit(lambda: self.storage.delete_object_safe(old_key))

        logger.info(
            f"Document {document.id} ({label}) added to order #{order.id} by user {user.id}"
            + (f", replacing {replaced_id}" if replaced_id else "")
        )
        if plan is not None:
            logger.info(
                f"Order #{order.id} {plan.previous_status.value} -> {plan.new_status.value} "
                f"after document upload"
            )

        return UploadOutcome(
            document=document,
            uploader=user,
            order_status=order.status,
            replaced_document_id=replaced_id,
            auto_transitioned=plan is not None,
        )

    # =========================================================================
    # Reads
    # =========================================================================

    @as_result
    async def list_documents(self, user_id: Optional[int], order_id: int) -> List[DocumentView]:
        """Documents of a visible order, oldest first; empty otherwise."""
        async with self.session_factory() as session:
            order = await PaymentOrderDAO(session).get_by_id(order_id)
            if order is None:
                return []
            resolver = AccessResolver(session)
            user = await resolver.find_caller(user_id)
            access = await resolver.resolve_for_order(user, order)
            if not access.can_view_order(order):
                return []

            documents = await DocumentDAO(session).list_for_order(order.id)
            uploaders = await UserDAO(session).get_map(doc.uploaded_by_id for doc in documents)
            return [DocumentView(doc, uploaders.get(doc.uploaded_by_id)) for doc in documents]

    # =========================================================================
    # Delete
    # =========================================================================

    @as_result
    async def delete_document(self, user_id: Optional[int], document_id: int) -> None:
        """
        Remove a document's metadata and then its stored object.

        Raises (converted to Err):
            ResourceNotFoundError: Unknown document
            AuthenticationError: Unknown caller
            AuthorizationError: Order is final, or caller is neither the
                uploader nor elevated
        """
        async with self.session_factory() as session:
            document = await DocumentDAO(session).get_by_id(document_id)
            if document is None:
                raise ResourceNotFoundError(message="Document not found", document_id=document_id)
            order_id = document.payment_order_id

        await retry_on_conflict(
            lambda: self._delete_once(user_id, order_id, document_id),
            order_id=order_id,
        )

    async def _delete_once(self, user_id: Optional[int], order_id: int, document_id: int) -> None:
        async with UnitOfWork(self.session_factory, order_id=order_id, locks=self.locks) as uow:
            session = uow.session
            document_dao = DocumentDAO(session)
            order = await PaymentOrderDAO(session).get_for_update(order_id)
            document = await document_dao.get_by_id(document_id)
            if order is None or document is None:
                raise ResourceNotFoundError(message="Document not found", document_id=document_id)

            resolver = AccessResolver(session)
            user = await resolver.load_caller(user_id)
            access = await resolver.resolve_for_order(user, order)
            if not access.can_view_order(order):
                raise AuthorizationError(
                    message="You do not have access to this payment order",
                    order_id=order_id,
                )
            if order.is_final:
                raise AuthorizationError(
                    message=f"Documents cannot be removed from a {order.status.value} order",
                    order_id=order_id,
                    status=order.status.value,
                )
            if document.uploaded_by_id != user.id and not access.is_elevated:
                raise AuthorizationError(
                    message="Only the uploader or a reviewer can remove this document",
                    document_id=document_id,
                )

            file_key = document.file_key
            file_name = document.file_name
            label = document.requirement_label
            await document_dao.remove(document)
            await HistoryLedger(session).append(
                order.id,
                HistoryAction.DOCUMENT_REMOVED,
                user.id,
                comment=file_name,
                metadata={
                    "requirement_label": label,
                    "document_id": document_id,
                },
            )
            order.updated_at = utc_now()
            await session.flush()

            uow.after_commit(lambda: self.storage.delete_object_safe(file_key))

        logger.info(f"Document {document_id} removed from order #{order_id} by user {user.id}")
