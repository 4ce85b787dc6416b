"""
Payment order API endpoints.

WHY: These endpoints expose the payment order workflow:
1. POST /profiles/{profile_id}/payment-orders - Create an order
2. GET /profiles/{profile_id}/payment-orders - List visible orders
3. GET/PATCH /payment-orders/{order_id} - Read or edit an order
4. POST /payment-orders/{order_id}/actions/{action} - Status change
5. GET /payment-orders/{order_id}/actions - Actions the caller may take
6. GET /payment-orders/{order_id}/requirements - Submission readiness
7. GET/POST /payment-orders/{order_id}/history|comments - Timeline

HOW: Handlers only translate HTTP to service calls. Services return
Ok/Err; ``unwrap()`` re-raises the error for the exception handlers.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from app.core.deps import get_current_user, get_payment_order_service
from app.core.exceptions import ResourceNotFoundError
from app.models.payment_order import PaymentOrderStatus
from app.models.user import User
from app.schemas.payment_order import (
    AvailableActionsResponse,
    CommentCreate,
    HistoryEntryResponse,
    PaymentOrderCreate,
    PaymentOrderListResponse,
    PaymentOrderResponse,
    PaymentOrderUpdate,
    RequirementsResponse,
    TransitionRequest,
)
from app.services.order_state_machine import OrderAction
from app.services.payment_order_service import PaymentOrderService


router = APIRouter(tags=["payment-orders"])


def _not_found(order_id: int) -> ResourceNotFoundError:
    return ResourceNotFoundError(
        message="Payment order not found",
        resource_type="PaymentOrder",
        resource_id=order_id,
    )


@router.post(
    "/profiles/{profile_id}/payment-orders",
    response_model=PaymentOrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create payment order",
)
async def create_payment_order(
    profile_id: int,
    body: PaymentOrderCreate,
    current_user: User = Depends(get_current_user),
    service: PaymentOrderService = Depends(get_payment_order_service),
) -> PaymentOrderResponse:
    """
    Create a payment order in CREATED.

    WHY: Any caller with access to the profile (owner, organization
    member, or allow-listed email) may submit orders to it.
    """
    result = await service.create_order(
        current_user.id,
        profile_id,
        title=body.title,
        reason=body.reason,
        amount=body.amount,
        currency=body.currency,
        description=body.description,
        tag_id=body.tag_id,
    )
    return PaymentOrderResponse.from_view(result.unwrap())


@router.get(
    "/profiles/{profile_id}/payment-orders",
    response_model=PaymentOrderListResponse,
    summary="List payment orders",
)
async def list_payment_orders(
    profile_id: int,
    status_filter: Optional[PaymentOrderStatus] = Query(default=None, alias="status"),
    current_user: User = Depends(get_current_user),
    service: PaymentOrderService = Depends(get_payment_order_service),
) -> PaymentOrderListResponse:
    """
    List orders of a profile, newest first.

    WHY: Allow-listed callers only see their own orders; callers without
    access get an empty list rather than an error.
    """
    views = (await service.list_orders(current_user.id, profile_id, status_filter)).unwrap()
    items = [PaymentOrderResponse.from_view(view) for view in views]
    return PaymentOrderListResponse(items=items, total=len(items))


@router.get(
    "/payment-orders/{order_id}",
    response_model=PaymentOrderResponse,
    summary="Get payment order",
)
async def get_payment_order(
    order_id: int,
    current_user: User = Depends(get_current_user),
    service: PaymentOrderService = Depends(get_payment_order_service),
) -> PaymentOrderResponse:
    # WHY: Invisible orders are reported as missing so existence does not leak
    view = (await service.get_order(current_user.id, order_id)).unwrap()
    if view is None:
        raise _not_found(order_id)
    return PaymentOrderResponse.from_view(view)


@router.patch(
    "/payment-orders/{order_id}",
    response_model=PaymentOrderResponse,
    summary="Edit payment order",
)
async def update_payment_order(
    order_id: int,
    body: PaymentOrderUpdate,
    current_user: User = Depends(get_current_user),
    service: PaymentOrderService = Depends(get_payment_order_service),
) -> PaymentOrderResponse:
    """
    Edit an order's details.

    Only the creator may edit, and only while CREATED or NEEDS_SUPPORT.
    """
    changes = body.model_dump(exclude_unset=True)
    result = await service.update_order(current_user.id, order_id, **changes)
    return PaymentOrderResponse.from_view(result.unwrap())


@router.post(
    "/payment-orders/{order_id}/actions/{action}",
    response_model=PaymentOrderResponse,
    summary="Change payment order status",
)
async def transition_payment_order(
    order_id: int,
    action: OrderAction,
    body: Optional[TransitionRequest] = None,
    current_user: User = Depends(get_current_user),
    service: PaymentOrderService = Depends(get_payment_order_service),
) -> PaymentOrderResponse:
    """
    Apply one workflow action (submit, approve, reject, ...).

    Raises:
        InvalidStateTransitionError (409): Action not allowed from the current status
        AuthorizationError (403): Caller may not take this action
        ValidationError (400): Missing comment or required documents
    """
    comment = body.comment if body is not None else None
    result = await service.transition(current_user.id, order_id, action, comment=comment)
    return PaymentOrderResponse.from_view(result.unwrap())


@router.get(
    "/payment-orders/{order_id}/actions",
    response_model=AvailableActionsResponse,
    summary="List available actions",
)
async def get_available_actions(
    order_id: int,
    current_user: User = Depends(get_current_user),
    service: PaymentOrderService = Depends(get_payment_order_service),
) -> AvailableActionsResponse:
    actions = (await service.get_available_actions(current_user.id, order_id)).unwrap()
    return AvailableActionsResponse(order_id=order_id, actions=actions)


@router.get(
    "/payment-orders/{order_id}/requirements",
    response_model=RequirementsResponse,
    summary="Get submission readiness",
)
async def get_requirements(
    order_id: int,
    current_user: User = Depends(get_current_user),
    service: PaymentOrderService = Depends(get_payment_order_service),
) -> RequirementsResponse:
    readiness = (await service.get_requirements(current_user.id, order_id)).unwrap()
    if readiness is None:
        raise _not_found(order_id)
    return RequirementsResponse.from_readiness(order_id, readiness)


@router.get(
    "/payment-orders/{order_id}/history",
    response_model=List[HistoryEntryResponse],
    summary="Get order timeline",
)
async def get_history(
    order_id: int,
    current_user: User = Depends(get_current_user),
    service: PaymentOrderService = Depends(get_payment_order_service),
) -> List[HistoryEntryResponse]:
    entries = (await service.list_history(current_user.id, order_id)).unwrap()
    return [HistoryEntryResponse.from_view(entry) for entry in entries]


@router.post(
    "/payment-orders/{order_id}/comments",
    response_model=HistoryEntryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Comment on an order",
)
async def add_comment(
    order_id: int,
    body: CommentCreate,
    current_user: User = Depends(get_current_user),
    service: PaymentOrderService = Depends(get_payment_order_service),
) -> HistoryEntryResponse:
    entry = (await service.add_comment(current_user.id, order_id, body.comment)).unwrap()
    return HistoryEntryResponse.from_view(entry)
