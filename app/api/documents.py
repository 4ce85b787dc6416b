"""
Payment order document API endpoints.

WHY: Documents satisfy tag file requirements. The client uploads the
bytes to storage first, then registers the stored object here:
1. POST /payment-orders/{order_id}/documents - Attach (or replace) a document
2. GET /payment-orders/{order_id}/documents - List an order's documents
3. DELETE /documents/{document_id} - Remove a document
"""

from typing import List

from fastapi import APIRouter, Depends, Response, status

from app.core.deps import get_current_user, get_document_service
from app.models.user import User
from app.schemas.document import DocumentCreate, DocumentResponse, DocumentUploadResponse
from app.services.document_service import DocumentService


router = APIRouter(tags=["documents"])


@router.post(
    "/payment-orders/{order_id}/documents",
    response_model=DocumentUploadResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Attach document",
    description="Attach a stored file to an order under a requirement label",
)
async def upload_document(
    order_id: int,
    body: DocumentCreate,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
) -> DocumentUploadResponse:
    """
    Attach a document.

    WHAT: Validates the file against the tag's requirement, replaces any
    document already stored under the same label, and moves an order in
    NEEDS_SUPPORT back to IN_REVIEW.
    """
    result = await service.upload(
        current_user.id,
        order_id,
        requirement_label=body.requirement_label,
        file_name=body.file_name,
        file_key=body.file_key,
        file_url=body.file_url,
        mime_type=body.mime_type,
        file_size=body.file_size,
    )
    return DocumentUploadResponse.from_outcome(result.unwrap())


@router.get(
    "/payment-orders/{order_id}/documents",
    response_model=List[DocumentResponse],
    summary="List documents",
)
async def list_documents(
    order_id: int,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
) -> List[DocumentResponse]:
    views = (await service.list_documents(current_user.id, order_id)).unwrap()
    return [DocumentResponse.from_view(view) for view in views]


@router.delete(
    "/documents/{document_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove document",
)
async def delete_document(
    document_id: int,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
) -> Response:
    """
    Remove a document.

    Only the uploader or a reviewer may remove it, and not once the
    order reached a final status.
    """
    (await service.delete_document(current_user.id, document_id)).unwrap()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
