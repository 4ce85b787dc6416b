"""
Document Pydantic Schemas.

WHAT: Request/Response models for payment order document endpoints.

WHY: File bytes are uploaded to storage by the client; the API receives
the resulting metadata and links it to a requirement label.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from app.models.payment_order import PaymentOrderStatus
from app.schemas.common import UserSummary
from app.services.document_service import DocumentView, UploadOutcome


class DocumentCreate(BaseModel):
    """
    Metadata of a file already uploaded to storage.

    WHAT: Links a stored object to an order under a requirement label.
    """

    requirement_label: str = Field(..., max_length=255, description="Requirement the file satisfies")
    file_name: str = Field(..., max_length=500, description="Original file name")
    file_key: str = Field(..., max_length=1024, description="Storage object key")
    file_url: str = Field(..., max_length=2048, description="URL of the stored file")
    mime_type: str = Field(..., max_length=255, description="MIME type, e.g. application/pdf")
    file_size: int = Field(..., description="Size in bytes")

    model_config = {
        "json_schema_extra": {
            "example": {
                "requirement_label": "Invoice",
                "file_name": "invoice-2024-03.pdf",
                "file_key": "orders/42/invoice-2024-03.pdf",
                "file_url": "https://files.example.com/orders/42/invoice-2024-03.pdf",
                "mime_type": "application/pdf",
                "file_size": 183204,
            }
        }
    }


class DocumentResponse(BaseModel):
    id: int
    payment_order_id: int
    requirement_label: str
    file_name: str
    file_url: str
    mime_type: str
    file_size: int
    created_at: datetime
    uploaded_by: Optional[UserSummary] = None

    @classmethod
    def from_view(cls, view: DocumentView) -> "DocumentResponse":
        document = view.document
        return cls(
            id=document.id,
            payment_order_id=document.payment_order_id,
            requirement_label=document.requirement_label,
            file_name=document.file_name,
            file_url=document.file_url,
            mime_type=document.mime_type,
            file_size=document.file_size,
            created_at=document.created_at,
            uploaded_by=UserSummary.from_user(view.uploader),
        )


class DocumentUploadResponse(BaseModel):
    """Created document plus the order status after any automatic transition."""

    document: DocumentResponse
    order_status: PaymentOrderStatus
    replaced_document_id: Optional[int] = None
    auto_transitioned: bool = False

    @classmethod
    def from_outcome(cls, outcome: UploadOutcome) -> "DocumentUploadResponse":
        return cls(
            document=DocumentResponse.from_view(DocumentView(outcome.document, outcome.uploader)),
            order_status=outcome.order_status,
            replaced_document_id=outcome.replaced_document_id,
            auto_transitioned=outcome.auto_transitioned,
        )
