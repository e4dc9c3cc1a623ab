"""
Order status state machine.

Orders only move along ``ORDER_TRANSITIONS``. Each target status has its own
event type carrying exactly the fields that transition needs, so a
dispatch without a courier or a cancellation without a reason cannot be
built. Applying an event is a conditional write on the status the caller
observed, which keeps two concurrent transitions of the same order from
both succeeding (and a cancellation from restoring stock twice).
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, ClassVar

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from farmstand.core.access import Actor
from farmstand.core.config import settings
from farmstand.core.errors import (
    AccessDeniedError,
    InvalidArgumentError,
    InvalidTransitionError,
    MissingFieldError,
    NotFoundError,
)
from farmstand.core.money import to_money
from farmstand.models.order import Order, OrderItem
from farmstand.services.audit_service import log_audit_event
from farmstand.services.stock_service import release_stock

ORDER_STATUS_PENDING = "pending"
ORDER_STATUS_CONFIRMED = "confirmed"
ORDER_STATUS_WAITING_FOR_PAYMENT = "waiting_for_payment"
ORDER_STATUS_PROCESSING = "processing"
ORDER_STATUS_IN_TRANSIT = "in_transit"
ORDER_STATUS_DELIVERED = "delivered"
ORDER_STATUS_CANCELLED = "cancelled"

ORDER_TRANSITIONS: dict[str, frozenset[str]] = {
    ORDER_STATUS_PENDING: frozenset(
        {ORDER_STATUS_CONFIRMED, ORDER_STATUS_WAITING_FOR_PAYMENT, ORDER_STATUS_CANCELLED}
    ),
    ORDER_STATUS_CONFIRMED: frozenset(
        {ORDER_STATUS_WAITING_FOR_PAYMENT, ORDER_STATUS_PROCESSING, ORDER_STATUS_CANCELLED}
    ),
    ORDER_STATUS_WAITING_FOR_PAYMENT: frozenset(
        {ORDER_STATUS_CONFIRMED, ORDER_STATUS_PROCESSING, ORDER_STATUS_CANCELLED}
    ),
    ORDER_STATUS_PROCESSING: frozenset({ORDER_STATUS_IN_TRANSIT, ORDER_STATUS_CANCELLED}),
    ORDER_STATUS_IN_TRANSIT: frozenset({ORDER_STATUS_DELIVERED}),
    ORDER_STATUS_DELIVERED: frozenset(),
    ORDER_STATUS_CANCELLED: frozenset(),
}
ORDER_STATUSES = frozenset(ORDER_TRANSITIONS)
TERMINAL_STATUSES = frozenset(status for status, targets in ORDER_TRANSITIONS.items() if not targets)

CUSTOMER_CANCELLABLE_STATUSES = frozenset({ORDER_STATUS_PENDING})
FARM_CANCELLABLE_STATUSES = frozenset({ORDER_STATUS_PENDING, ORDER_STATUS_CONFIRMED})


def normalize_order_status(status: str | None) -> str:
    normalized = (status or "").strip().lower()
    if normalized not in ORDER_STATUSES:
        allowed = ", ".join(sorted(ORDER_STATUSES))
        raise InvalidArgumentError(
            f"Invalid order status. Allowed: {allowed}",
            details={"status": status, "allowed": sorted(ORDER_STATUSES)},
        )
    return normalized


def _required_text(value: str | None, field_name: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise MissingFieldError(field_name)
    return cleaned


@dataclass(frozen=True)
class TransitionPayload:
    """Raw, unvalidated fields a caller may send with a status change."""

    delivery_fee: Decimal | float | int | str | None = None
    cancellation_reason: str | None = None
    courier_contact: str | None = None
    courier_ref_id: str | None = None
    payment_info: dict[str, Any] | None = None


@dataclass(frozen=True)
class TransitionEvent:
    target: ClassVar[str]

    def column_values(self, order: Order) -> dict[str, Any]:
        return {}


@dataclass(frozen=True)
class ConfirmOrder(TransitionEvent):
    target: ClassVar[str] = ORDER_STATUS_CONFIRMED
    delivery_fee: Decimal | None = None

    def __post_init__(self):
        if self.delivery_fee is not None and self.delivery_fee < 0:
            raise InvalidArgumentError(
                "Delivery fee cannot be negative",
                details={"delivery_fee": str(self.delivery_fee)},
            )

    def column_values(self, order: Order) -> dict[str, Any]:
        if self.delivery_fee is None:
            return {}
        return {
            "delivery_fee": self.delivery_fee,
            "final_amount": to_money(order.total_amount) + self.delivery_fee,
        }


@dataclass(frozen=True)
class RequestPayment(TransitionEvent):
    target: ClassVar[str] = ORDER_STATUS_WAITING_FOR_PAYMENT
    payment_info: dict[str, Any] | None = None

    def column_values(self, order: Order) -> dict[str, Any]:
        if self.payment_info is None:
            return {}
        return {"payment_info": dict(self.payment_info)}


@dataclass(frozen=True)
class StartProcessing(TransitionEvent):
    target: ClassVar[str] = ORDER_STATUS_PROCESSING


@dataclass(frozen=True)
class DispatchOrder(TransitionEvent):
    target: ClassVar[str] = ORDER_STATUS_IN_TRANSIT
    courier_contact: str = ""
    courier_ref_id: str | None = None

    def __post_init__(self):
        object.__setattr__(self, "courier_contact", _required_text(self.courier_contact, "courier_contact"))

    def column_values(self, order: Order) -> dict[str, Any]:
        values: dict[str, Any] = {"courier_contact": self.courier_contact}
        if self.courier_ref_id:
            values["courier_ref_id"] = self.courier_ref_id.strip()
        return values


@dataclass(frozen=True)
class DeliverOrder(TransitionEvent):
    target: ClassVar[str] = ORDER_STATUS_DELIVERED


@dataclass(frozen=True)
class CancelOrder(TransitionEvent):
    target: ClassVar[str] = ORDER_STATUS_CANCELLED
    reason: str = ""

    def __post_init__(self):
        object.__setattr__(self, "reason", _required_text(self.reason, "cancellation_reason"))

    def column_values(self, order: Order) -> dict[str, Any]:
        return {"cancellation_reason": self.reason}


def _parse_delivery_fee(value: Decimal | float | int | str | None) -> Decimal | None:
    if value is None:
        return None
    try:
        return to_money(value)
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidArgumentError("Delivery fee must be a number", details={"delivery_fee": value}) from None


_EVENT_BUILDERS: dict[str, Callable[[TransitionPayload], TransitionEvent]] = {
    ORDER_STATUS_CONFIRMED: lambda p: ConfirmOrder(delivery_fee=_parse_delivery_fee(p.delivery_fee)),
    ORDER_STATUS_WAITING_FOR_PAYMENT: lambda p: RequestPayment(payment_info=p.payment_info),
    ORDER_STATUS_PROCESSING: lambda p: StartProcessing(),
    ORDER_STATUS_IN_TRANSIT: lambda p: DispatchOrder(
        courier_contact=p.courier_contact or "",
        courier_ref_id=p.courier_ref_id,
    ),
    ORDER_STATUS_DELIVERED: lambda p: DeliverOrder(),
    ORDER_STATUS_CANCELLED: lambda p: CancelOrder(reason=p.cancellation_reason or ""),
}


def build_transition_event(status: str, payload: TransitionPayload | None = None) -> TransitionEvent:
    target = normalize_order_status(status)
    builder = _EVENT_BUILDERS.get(target)
    if builder is None:
        raise InvalidArgumentError(f"Orders cannot be moved to '{target}'", details={"status": target})
    return builder(payload or TransitionPayload())


def ensure_transition_allowed(current_status: str, target_status: str) -> None:
    allowed = ORDER_TRANSITIONS.get(current_status, frozenset())
    if target_status not in allowed:
        raise InvalidTransitionError(current=current_status, requested=target_status, allowed=allowed)


def _lock_order(db: Session, order_id: str) -> Order:
    order = db.execute(
        select(Order)
        .where(Order.id == order_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if not order:
        raise NotFoundError("Order not found", details={"order_id": order_id})
    return order


def _ensure_farm_side(actor: Actor, order: Order) -> None:
    if not actor.manages_farm(order.farm_id):
        raise AccessDeniedError("You do not have permission to update this order")


def _claim_status(db: Session, order: Order, *, expected: str, values: dict[str, Any]) -> None:
    """Write ``values`` only if the order is still in ``expected``."""
    result = db.execute(
        update(Order)
        .where(Order.id == order.id, Order.status == expected)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        current = db.execute(select(Order.status).where(Order.id == order.id)).scalar_one()
        raise InvalidTransitionError(
            current=current,
            requested=values.get("status", current),
            allowed=ORDER_TRANSITIONS.get(current, frozenset()),
        )


def _restore_order_stock(db: Session, order: Order) -> int:
    items = db.execute(select(OrderItem).where(OrderItem.order_id == order.id)).scalars().all()
    for item in items:
        release_stock(db, store_product_id=item.store_product_id, quantity=item.quantity)
    return len(items)


def apply_transition(db: Session, order: Order, event: TransitionEvent, *, actor: Actor) -> Order:
    """Apply a validated event to a loaded order and commit."""
    current_status = order.status
    ensure_transition_allowed(current_status, event.target)

    values = event.column_values(order)
    values["status"] = event.target
    _claim_status(db, order, expected=current_status, values=values)

    restored_lines = 0
    if isinstance(event, CancelOrder):
        restored_lines = _restore_order_stock(db, order)

    db.commit()
    db.refresh(order)

    log_audit_event(
        actor_user_id=actor.user_id,
        action="order.status.update",
        target_type="order",
        target_id=order.id,
        metadata_json={
            "from_status": current_status,
            "to_status": event.target,
            "restored_lines": restored_lines,
            "final_amount": order.final_amount,
        },
    )
    return order


def transition_status(
    db: Session,
    *,
    actor: Actor,
    order_id: str,
    new_status: str,
    payload: TransitionPayload | None = None,
) -> Order:
    """Move an order to ``new_status`` on behalf of its farm (or an admin).

    Legality is checked before the payload, so a terminal order always
    reports an invalid transition whatever fields were sent.
    """
    target = normalize_order_status(new_status)
    order = _lock_order(db, order_id)
    _ensure_farm_side(actor, order)
    ensure_transition_allowed(order.status, target)
    event = build_transition_event(target, payload)
    return apply_transition(db, order, event, actor=actor)


def set_delivery_fee(db: Session, *, actor: Actor, order_id: str, delivery_fee) -> Order:
    fee = _parse_delivery_fee(delivery_fee)
    if fee is None:
        raise MissingFieldError("delivery_fee")
    if fee < 0:
        raise InvalidArgumentError("Delivery fee cannot be negative", details={"delivery_fee": str(fee)})

    order = _lock_order(db, order_id)
    _ensure_farm_side(actor, order)
    current_status = order.status
    if current_status in TERMINAL_STATUSES:
        raise InvalidTransitionError(
            current=current_status,
            requested=current_status,
            allowed=(),
            message=f"Cannot change the delivery fee of a {current_status} order",
        )

    _claim_status(
        db,
        order,
        expected=current_status,
        values={
            "delivery_fee": fee,
            "final_amount": to_money(order.total_amount) + fee,
        },
    )
    db.commit()
    db.refresh(order)

    log_audit_event(
        actor_user_id=actor.user_id,
        action="order.delivery_fee.update",
        target_type="order",
        target_id=order.id,
        metadata_json={"delivery_fee": fee, "final_amount": order.final_amount},
    )
    return order


def _cancel_with_policy(
    db: Session,
    order: Order,
    *,
    actor: Actor,
    reason: str | None,
    default_reason: str,
    cancellable: frozenset[str],
    refusal: str,
) -> Order:
    if order.status not in cancellable:
        # Nothing else is reachable from a cancel path.
        error = InvalidTransitionError(
            current=order.status,
            requested=ORDER_STATUS_CANCELLED,
            allowed=frozenset(),
            message=refusal,
        )
        error.details["cancellable_from"] = sorted(cancellable)
        raise error
    event = CancelOrder(reason=(reason or "").strip() or default_reason)
    return apply_transition(db, order, event, actor=actor)


def cancel_as_customer(db: Session, *, actor: Actor, order_id: str, reason: str | None = None) -> Order:
    order = _lock_order(db, order_id)
    if order.customer_id != actor.user_id:
        raise AccessDeniedError("You can only cancel your own orders")
    return _cancel_with_policy(
        db,
        order,
        actor=actor,
        reason=reason,
        default_reason=settings.customer_cancel_default_reason,
        cancellable=CUSTOMER_CANCELLABLE_STATUSES,
        refusal="Only pending orders can be cancelled",
    )


def cancel_as_farm(db: Session, *, actor: Actor, order_id: str, reason: str | None = None) -> Order:
    order = _lock_order(db, order_id)
    _ensure_farm_side(actor, order)
    return _cancel_with_policy(
        db,
        order,
        actor=actor,
        reason=reason,
        default_reason=settings.farm_cancel_default_reason,
        cancellable=FARM_CANCELLABLE_STATUSES,
        refusal="Only pending or confirmed orders can be cancelled",
    )
