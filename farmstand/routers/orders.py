from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from farmstand.core.access import ROLE_ADMIN, ROLE_FARM_MANAGER, Actor
from farmstand.core.api_docs import error_responses
from farmstand.core.config import settings
from farmstand.core.deps import get_db
from farmstand.core.money import money_out
from farmstand.core.permissions import require_roles
from farmstand.core.security_current import get_current_actor
from farmstand.models.order import Order, OrderItem
from farmstand.schemas.common import pagination_meta
from farmstand.schemas.order import (
    DeliveryFeeIn,
    FailedFarmOut,
    OrderCancelIn,
    OrderCreate,
    OrderCreateOut,
    OrderFromCartIn,
    OrderItemOut,
    OrderListOut,
    OrderOut,
    OrderStatusUpdateIn,
)
from farmstand.services import order_service, order_status_service
from farmstand.services.order_service import PlacementResult
from farmstand.services.order_status_service import TransitionPayload

router = APIRouter(prefix="/orders", tags=["orders"])


def _order_item_out(item: OrderItem) -> OrderItemOut:
    return OrderItemOut(
        id=item.id,
        store_product_id=item.store_product_id,
        product_name=item.product_name,
        category=item.category,
        unit=item.unit,
        quantity=item.quantity,
        unit_price=money_out(item.unit_price),
        line_total=money_out(item.line_total),
    )


def _order_out(order: Order, items: list[OrderItem]) -> OrderOut:
    return OrderOut(
        id=order.id,
        customer_id=order.customer_id,
        farm_id=order.farm_id,
        status=order.status,
        total_amount=money_out(order.total_amount),
        delivery_fee=money_out(order.delivery_fee),
        final_amount=money_out(order.final_amount),
        customer_phone=order.customer_phone,
        delivery_address=order.delivery_address,
        notes=order.notes,
        cancellation_reason=order.cancellation_reason,
        courier_contact=order.courier_contact,
        courier_ref_id=order.courier_ref_id,
        payment_info=order.payment_info,
        items=[_order_item_out(item) for item in items],
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


def _single_order_out(db: Session, order: Order) -> OrderOut:
    items_by_order = order_service.load_order_items(db, [order.id])
    return _order_out(order, items_by_order[order.id])


def _placement_out(result: PlacementResult) -> OrderCreateOut:
    count = len(result.orders)
    message = "Order placed successfully" if count == 1 else f"{count} orders placed successfully"
    if result.failed_farms:
        message = f"{message}; {len(result.failed_farms)} farm order(s) could not be placed"
    return OrderCreateOut(
        message=message,
        count=count,
        orders=[_order_out(order, result.items_by_order.get(order.id, [])) for order in result.orders],
        failed_farms=[
            FailedFarmOut(
                farm_id=failed.farm_id,
                code=failed.error.code,
                message=failed.error.message,
                details=failed.error.details or None,
            )
            for failed in result.failed_farms
        ],
    )


def _order_list_out(
    db: Session,
    *,
    total: int,
    orders: list[Order],
    status: str | None,
    limit: int,
    offset: int,
) -> OrderListOut:
    items_by_order = order_service.load_order_items(db, [order.id for order in orders])
    items = [_order_out(order, items_by_order[order.id]) for order in orders]
    return OrderListOut(
        pagination=pagination_meta(total=total, limit=limit, offset=offset, count=len(items)),
        status=status,
        items=items,
    )


@router.post(
    "",
    response_model=OrderCreateOut,
    status_code=201,
    summary="Place order",
    description=(
        "Splits the submitted items into one order per farm and reserves storefront stock. "
        "Farm groups that fail are listed in `failed_farms`; the cart is cleared when at least one order is placed."
    ),
    responses=error_responses(400, 401, 403, 404, 422, 500),
)
def create_order(
    payload: OrderCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    result = order_service.place_order(
        db,
        customer_id=actor.user_id,
        items=[(item.store_product_id, item.quantity) for item in payload.items],
        customer_phone=payload.customer_phone,
        delivery_address=payload.delivery_address,
        notes=payload.notes,
    )
    return _placement_out(result)


@router.post(
    "/place-from-cart",
    response_model=OrderCreateOut,
    status_code=201,
    summary="Place order from cart",
    responses=error_responses(400, 401, 403, 404, 422, 500),
)
def create_order_from_cart(
    payload: OrderFromCartIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    result = order_service.place_order_from_cart(
        db,
        customer_id=actor.user_id,
        customer_phone=payload.customer_phone,
        delivery_address=payload.delivery_address,
        notes=payload.notes,
    )
    return _placement_out(result)


@router.get(
    "/my-orders",
    response_model=OrderListOut,
    summary="List my orders",
    responses=error_responses(400, 401, 403, 422, 500),
)
def list_my_orders(
    status: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=settings.orders_page_size_max),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    total, orders = order_service.list_customer_orders(
        db,
        customer_id=actor.user_id,
        status=status,
        limit=limit,
        offset=offset,
    )
    return _order_list_out(db, total=total, orders=orders, status=status, limit=limit, offset=offset)


@router.get(
    "/farm/{farm_id}",
    response_model=OrderListOut,
    summary="List farm orders",
    responses=error_responses(400, 401, 403, 422, 500),
)
def list_farm_orders(
    farm_id: str,
    status: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=settings.orders_page_size_max),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(ROLE_FARM_MANAGER, ROLE_ADMIN)),
):
    total, orders = order_service.list_farm_orders(
        db,
        actor=actor,
        farm_id=farm_id,
        status=status,
        limit=limit,
        offset=offset,
    )
    return _order_list_out(db, total=total, orders=orders, status=status, limit=limit, offset=offset)


@router.get(
    "/{order_id}",
    response_model=OrderOut,
    summary="Get order",
    responses=error_responses(401, 403, 404, 500),
)
def get_order(
    order_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    order = order_service.get_order_for_actor(db, actor=actor, order_id=order_id)
    return _single_order_out(db, order)


@router.put(
    "/{order_id}/status",
    response_model=OrderOut,
    summary="Update order status",
    description=(
        "pending -> confirmed | waiting_for_payment | cancelled; "
        "confirmed -> waiting_for_payment | processing | cancelled; "
        "waiting_for_payment -> confirmed | processing | cancelled; "
        "processing -> in_transit | cancelled; in_transit -> delivered. "
        "Cancelling restores reserved stock."
    ),
    responses=error_responses(400, 401, 403, 404, 422, 500),
)
def update_order_status(
    order_id: str,
    payload: OrderStatusUpdateIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(ROLE_FARM_MANAGER, ROLE_ADMIN)),
):
    order = order_status_service.transition_status(
        db,
        actor=actor,
        order_id=order_id,
        new_status=payload.status,
        payload=TransitionPayload(
            delivery_fee=payload.delivery_fee,
            cancellation_reason=payload.cancellation_reason,
            courier_contact=payload.courier_contact,
            courier_ref_id=payload.courier_ref_id,
            payment_info=payload.payment_info,
        ),
    )
    return _single_order_out(db, order)


@router.put(
    "/{order_id}/delivery-fee",
    response_model=OrderOut,
    summary="Set delivery fee",
    responses=error_responses(400, 401, 403, 404, 422, 500),
)
def set_delivery_fee(
    order_id: str,
    payload: DeliveryFeeIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(ROLE_FARM_MANAGER, ROLE_ADMIN)),
):
    order = order_status_service.set_delivery_fee(
        db,
        actor=actor,
        order_id=order_id,
        delivery_fee=payload.delivery_fee,
    )
    return _single_order_out(db, order)


@router.post(
    "/{order_id}/cancel",
    response_model=OrderOut,
    summary="Cancel my order",
    description="Customers may cancel their own orders while they are still pending.",
    responses=error_responses(400, 401, 403, 404, 422, 500),
)
def cancel_my_order(
    order_id: str,
    payload: OrderCancelIn | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    order = order_status_service.cancel_as_customer(
        db,
        actor=actor,
        order_id=order_id,
        reason=payload.reason if payload else None,
    )
    return _single_order_out(db, order)


@router.put(
    "/{order_id}/cancel",
    response_model=OrderOut,
    summary="Cancel farm order",
    description="Farm managers and admins may cancel pending or confirmed orders.",
    responses=error_responses(400, 401, 403, 404, 422, 500),
)
def cancel_farm_order(
    order_id: str,
    payload: OrderCancelIn | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(ROLE_FARM_MANAGER, ROLE_ADMIN)),
):
    order = order_status_service.cancel_as_farm(
        db,
        actor=actor,
        order_id=order_id,
        reason=payload.reason if payload else None,
    )
    return _single_order_out(db, order)
