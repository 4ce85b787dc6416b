"""
Payment Order Pydantic Schemas.

WHAT: Request/Response models for payment order endpoints.

WHY: Pydantic schemas provide:
1. Request shape validation (business rules stay in the service)
2. Response serialization with creator and tag enrichment
3. OpenAPI documentation

HOW: Responses are built from service views (OrderView, HistoryView,
SubmissionReadiness) rather than raw ORM rows.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from app.models.history import HistoryAction
from app.models.payment_order import PaymentOrderStatus
from app.schemas.common import UserSummary
from app.services.history_ledger import HistoryView
from app.services.order_state_machine import OrderAction
from app.services.payment_order_service import OrderView, SubmissionReadiness


# ============================================================================
# Request Schemas
# ============================================================================


class PaymentOrderCreate(BaseModel):
    """Request schema for creating a payment order."""

    title: str = Field(..., max_length=255, description="Short title")
    reason: str = Field(..., description="Why the payment is needed")
    amount: Decimal = Field(..., description="Amount, strictly positive")
    currency: str = Field(..., max_length=3, description="ISO 4217 currency code")
    description: Optional[str] = Field(default=None, description="Longer description")
    tag_id: Optional[int] = Field(default=None, description="Tag from the same profile")

    model_config = {
        "json_schema_extra": {
            "example": {
                "title": "Office chairs",
                "reason": "Replacement for the design team",
                "amount": "1250.00",
                "currency": "USD",
                "tag_id": 3,
            }
        }
    }


class PaymentOrderUpdate(BaseModel):
    """
    Partial update of an order's details.

    WHY: Only fields present in the request are applied
    (model_dump(exclude_unset=True)).
    """

    title: Optional[str] = Field(default=None, max_length=255)
    reason: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = Field(default=None, max_length=3)
    description: Optional[str] = None
    tag_id: Optional[int] = None


class TransitionRequest(BaseModel):
    """Optional comment; required for reject and needs_support."""

    comment: Optional[str] = Field(default=None, max_length=5000)


class CommentCreate(BaseModel):
    comment: str = Field(..., max_length=5000)


# ============================================================================
# Response Schemas
# ============================================================================


class TagSummary(BaseModel):
    id: int
    name: str
    color: str

    model_config = {"from_attributes": True}


class PaymentOrderResponse(BaseModel):
    """Payment order with creator and tag display info."""

    id: int
    profile_id: int
    created_by_id: int
    title: str
    description: Optional[str] = None
    reason: str
    amount: Decimal
    currency: str
    status: PaymentOrderStatus
    tag_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    creator: Optional[UserSummary] = None
    tag: Optional[TagSummary] = None

    @classmethod
    def from_view(cls, view: OrderView) -> "PaymentOrderResponse":
        order = view.order
        return cls(
            id=order.id,
            profile_id=order.profile_id,
            created_by_id=order.created_by_id,
            title=order.title,
            description=order.description,
            reason=order.reason,
            amount=order.amount,
            currency=order.currency,
            status=order.status,
            tag_id=order.tag_id,
            created_at=order.created_at,
            updated_at=order.updated_at,
            creator=UserSummary.from_user(view.creator),
            tag=TagSummary.model_validate(view.tag) if view.tag is not None else None,
        )


class PaymentOrderListResponse(BaseModel):
    items: List[PaymentOrderResponse]
    total: int


class AvailableActionsResponse(BaseModel):
    order_id: int
    actions: List[OrderAction]


class RequirementsResponse(BaseModel):
    """Submission readiness of an order."""

    order_id: int
    complete: bool
    can_submit: bool
    missing: List[str]
    required: List[str]

    @classmethod
    def from_readiness(cls, order_id: int, readiness: SubmissionReadiness) -> "RequirementsResponse":
        return cls(
            order_id=order_id,
            complete=readiness.complete,
            can_submit=readiness.can_submit,
            missing=readiness.missing,
            required=readiness.required,
        )


class HistoryActor(BaseModel):
    id: Optional[int] = None
    name: str
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    is_system: bool = False


class HistoryEntryResponse(BaseModel):
    """One timeline entry; actor info is resolved at read time."""

    id: int
    payment_order_id: int
    action: HistoryAction
    previous_status: Optional[PaymentOrderStatus] = None
    new_status: Optional[PaymentOrderStatus] = None
    comment: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime
    actor: HistoryActor

    @classmethod
    def from_view(cls, view: HistoryView) -> "HistoryEntryResponse":
        return cls(
            id=view.id,
            payment_order_id=view.payment_order_id,
            action=view.action,
            previous_status=view.previous_status,
            new_status=view.new_status,
            comment=view.comment,
            metadata=view.metadata,
            created_at=view.created_at,
            actor=HistoryActor(
                id=view.actor.id,
                name=view.actor.name,
                email=view.actor.email,
                avatar_url=view.actor.avatar_url,
                is_system=view.actor.is_system,
            ),
        )
