"""
Order State Machine.

WHAT: The closed table of payment order transitions and the rules for
who may trigger each one.

WHY: Status changes are the core of the workflow. Keeping them in a
single declarative table means:
1. Any (status, action) pair not listed is rejected with InvalidState
2. Every status must appear in the table (checked at import), so a new
   status cannot silently fall through
3. Services apply a validated plan instead of re-checking rules inline

HOW: ``plan_transition`` validates a requested action against an order
and the caller's AccessContext and returns a ``TransitionPlan``. The
service applies it together with the history entry in one unit of work.
The automatic NEEDS_SUPPORT -> IN_REVIEW move after a document upload is
described by ``AUTOMATIC_ON_UPLOAD``.
"""

import enum
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from app.core.exceptions import (
    AuthorizationError,
    InvalidStateTransitionError,
    ValidationError,
)
from app.models.payment_order import PaymentOrder, PaymentOrderStatus, FINAL_STATUSES
from app.services.access_resolver import AccessContext
from app.services.requirement_gate import RequirementStatus


class OrderAction(str, enum.Enum):
    """Manual actions a caller can request on an order."""

    SUBMIT = "submit"
    CANCEL = "cancel"
    APPROVE = "approve"
    REJECT = "reject"
    NEEDS_SUPPORT = "needs_support"
    MARK_PAID = "mark_paid"
    RECONCILE = "reconcile"


class ActorRule(str, enum.Enum):
    """Who may perform a transition."""

    CREATOR = "creator"
    ELEVATED = "elevated"
    CREATOR_OR_ELEVATED = "creator_or_elevated"


@dataclass(frozen=True)
class Transition:
    source: PaymentOrderStatus
    action: OrderAction
    target: PaymentOrderStatus
    actor: ActorRule
    comment_required: bool = False
    # Blocked until the requirement gate reports complete
    gated: bool = False


S = PaymentOrderStatus
A = OrderAction

# Outgoing transitions per status. Every status must be a key.
_OUTGOING: Dict[PaymentOrderStatus, Tuple[Transition, ...]] = {
    S.CREATED: (
        Transition(S.CREATED, A.SUBMIT, S.IN_REVIEW, ActorRule.CREATOR, gated=True),
        Transition(S.CREATED, A.CANCEL, S.CANCELLED, ActorRule.CREATOR),
    ),
    S.IN_REVIEW: (
        Transition(S.IN_REVIEW, A.APPROVE, S.APPROVED, ActorRule.ELEVATED),
        Transition(S.IN_REVIEW, A.REJECT, S.REJECTED, ActorRule.ELEVATED, comment_required=True),
        Transition(
            S.IN_REVIEW, A.NEEDS_SUPPORT, S.NEEDS_SUPPORT, ActorRule.ELEVATED, comment_required=True
        ),
        Transition(S.IN_REVIEW, A.CANCEL, S.CANCELLED, ActorRule.CREATOR_OR_ELEVATED),
    ),
    S.NEEDS_SUPPORT: (
        Transition(S.NEEDS_SUPPORT, A.SUBMIT, S.IN_REVIEW, ActorRule.CREATOR),
        Transition(S.NEEDS_SUPPORT, A.CANCEL, S.CANCELLED, ActorRule.CREATOR_OR_ELEVATED),
    ),
    S.APPROVED: (
        Transition(S.APPROVED, A.MARK_PAID, S.PAID, ActorRule.ELEVATED),
    ),
    S.PAID: (
        Transition(S.PAID, A.RECONCILE, S.RECONCILED, ActorRule.ELEVATED),
    ),
    S.RECONCILED: (),
    S.REJECTED: (),
    S.CANCELLED: (),
}

del S, A

# Transition performed by the system when a document is uploaded
AUTOMATIC_ON_UPLOAD: Dict[PaymentOrderStatus, PaymentOrderStatus] = {
    PaymentOrderStatus.NEEDS_SUPPORT: PaymentOrderStatus.IN_REVIEW,
}


def _check_table() -> Dict[Tuple[PaymentOrderStatus, OrderAction], Transition]:
    missing = set(PaymentOrderStatus) - set(_OUTGOING)
    if missing:
        raise RuntimeError(f"Transition table has no entry for: {sorted(s.value for s in missing)}")
    table: Dict[Tuple[PaymentOrderStatus, OrderAction], Transition] = {}
    for status, transitions in _OUTGOING.items():
        if status in FINAL_STATUSES and transitions:
            raise RuntimeError(f"Final status {status.value} cannot have outgoing transitions")
        for transition in transitions:
            key = (transition.source, transition.action)
            if transition.source != status or key in table:
                raise RuntimeError(f"Malformed transition entry: {transition}")
            table[key] = transition
    return table


TRANSITIONS = _check_table()


def get_transition(status: PaymentOrderStatus, action: OrderAction) -> Optional[Transition]:
    return TRANSITIONS.get((status, action))


def actor_allowed(rule: ActorRule, access: AccessContext, order: PaymentOrder) -> bool:
    """Exhaustive check of an ActorRule against the caller."""
    if rule == ActorRule.CREATOR:
        return access.is_creator(order)
    if rule == ActorRule.ELEVATED:
        return access.is_elevated
    if rule == ActorRule.CREATOR_OR_ELEVATED:
        return access.is_creator(order) or access.is_elevated
    raise ValueError(f"Unhandled actor rule: {rule}")


@dataclass(frozen=True)
class TransitionPlan:
    """A validated status change ready to be applied."""

    order_id: int
    action: Optional[OrderAction]
    previous_status: PaymentOrderStatus
    new_status: PaymentOrderStatus
    comment: Optional[str]
    actor_id: Optional[int]
    is_system: bool = False


def plan_transition(
    order: PaymentOrder,
    access: AccessContext,
    action: OrderAction,
    comment: Optional[str] = None,
    requirements: Optional[RequirementStatus] = None,
) -> TransitionPlan:
    """
    Validate ``action`` for ``order`` and the caller.

    The caller must already be known to see the order. Checks run in
    this order: table membership, actor rule, comment, requirement gate.

    Args:
        order: Order as read inside the unit of work
        access: Caller's access on the order's profile
        action: Requested action
        comment: Optional reviewer/creator comment
        requirements: Gate status; needed for gated transitions

    Raises:
        InvalidStateTransitionError: Action not allowed from the current status
        AuthorizationError: Caller does not satisfy the actor rule
        ValidationError: Missing comment or missing required documents
    """
    transition = get_transition(order.status, action)
    if transition is None:
        raise InvalidStateTransitionError(
            message=f"Cannot {action.value} an order in status {order.status.value}",
            order_id=order.id,
            status=order.status.value,
            action=action.value,
        )

    if not actor_allowed(transition.actor, access, order):
        raise AuthorizationError(
            message="You do not have permission to perform this status change",
            order_id=order.id,
            action=action.value,
        )

    cleaned_comment = comment.strip() if comment and comment.strip() else None
    if transition.comment_required and cleaned_comment is None:
        raise ValidationError(
            message=f"A comment is required to {action.value.replace('_', ' ')}",
            action=action.value,
        )

    if transition.gated:
        if requirements is None:
            raise ValueError("Gated transition planned without requirement status")
        if not requirements.complete:
            raise ValidationError(
                message=f"Missing required documents: {', '.join(requirements.missing)}",
                missing=list(requirements.missing),
            )

    return TransitionPlan(
        order_id=order.id,
        action=action,
        previous_status=order.status,
        new_status=transition.target,
        comment=cleaned_comment,
        actor_id=access.user_id,
    )


def plan_automatic_on_upload(order: PaymentOrder, uploader_id: int) -> Optional[TransitionPlan]:
    """System transition triggered by a document upload, if any."""
    target = AUTOMATIC_ON_UPLOAD.get(order.status)
    if target is None:
        return None
    return TransitionPlan(
        order_id=order.id,
        action=None,
        previous_status=order.status,
        new_status=target,
        comment=None,
        actor_id=uploader_id,
        is_system=True,
    )


def available_actions(
    order: PaymentOrder,
    access: AccessContext,
    requirements: Optional[RequirementStatus] = None,
) -> List[OrderAction]:
    """
    Actions the caller could perform right now.

    Gated actions are left out while required documents are missing.
    Comment requirements are not considered.
    """
    if not access.can_view_order(order):
        return []
    actions = []
    for transition in _OUTGOING[order.status]:
        if not actor_allowed(transition.actor, access, order):
            continue
        if transition.gated and requirements is not None and not requirements.complete:
            continue
        actions.append(transition.action)
    return actions


def requires_comment(status: PaymentOrderStatus, action: OrderAction) -> bool:
    transition = get_transition(status, action)
    return bool(transition and transition.comment_required)
