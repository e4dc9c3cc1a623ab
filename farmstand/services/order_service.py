from collections.abc import Iterable
from dataclasses import dataclass, field

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from farmstand.core.access import Actor
from farmstand.core.errors import (
    AccessDeniedError,
    EmptyCartError,
    InvalidArgumentError,
    MarketplaceError,
    MissingFieldError,
    NotFoundError,
)
from farmstand.core.id_utils import generate_order_id, generate_shortuuid
from farmstand.core.money import ZERO_MONEY, to_money
from farmstand.models.cart import CartLine
from farmstand.models.order import Order, OrderItem
from farmstand.models.product import StoreProduct
from farmstand.services.audit_service import log_audit_event
from farmstand.services.order_status_service import ORDER_STATUS_PENDING, normalize_order_status
from farmstand.services.stock_service import aggregate_quantities, reserve_stock, validate_requested_lines


@dataclass
class FailedFarmGroup:
    farm_id: str
    error: MarketplaceError


@dataclass
class PlacementResult:
    orders: list[Order] = field(default_factory=list)
    items_by_order: dict[str, list[OrderItem]] = field(default_factory=dict)
    failed_farms: list[FailedFarmGroup] = field(default_factory=list)


def _required_text(value: str | None, field_name: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise MissingFieldError(field_name)
    return cleaned


def _group_by_farm(
    quantity_by_product: dict[str, int],
    store_products: dict[str, StoreProduct],
) -> dict[str, list[tuple[StoreProduct, int]]]:
    groups: dict[str, list[tuple[StoreProduct, int]]] = {}
    for store_product_id, quantity in quantity_by_product.items():
        store_product = store_products[store_product_id]
        groups.setdefault(store_product.farm_id, []).append((store_product, quantity))
    return groups


def _place_farm_group(
    db: Session,
    *,
    customer_id: str,
    farm_id: str,
    lines: list[tuple[StoreProduct, int]],
    customer_phone: str,
    delivery_address: str,
    notes: str | None,
) -> tuple[Order, list[OrderItem]]:
    """Create one farm's order and reserve its stock; the caller commits."""
    order_id = generate_order_id()
    total = ZERO_MONEY
    items: list[OrderItem] = []
    for store_product, quantity in lines:
        reserve_stock(
            db,
            store_product_id=store_product.id,
            quantity=quantity,
            item_name=store_product.name,
        )
        unit_price = to_money(store_product.selling_price)
        line_total = to_money(unit_price * quantity)
        total += line_total
        items.append(
            OrderItem(
                id=generate_shortuuid(),
                order_id=order_id,
                store_product_id=store_product.id,
                quantity=quantity,
                unit_price=unit_price,
                line_total=line_total,
                product_name=store_product.name,
                category=store_product.category,
                unit=store_product.unit,
            )
        )

    order = Order(
        id=order_id,
        customer_id=customer_id,
        farm_id=farm_id,
        status=ORDER_STATUS_PENDING,
        total_amount=to_money(total),
        delivery_fee=None,
        final_amount=to_money(total),
        customer_phone=customer_phone,
        delivery_address=delivery_address,
        notes=notes,
    )
    db.add(order)
    db.flush()
    db.add_all(items)
    return order, items


def place_order(
    db: Session,
    *,
    customer_id: str,
    items: Iterable[tuple[str, int]],
    customer_phone: str | None,
    delivery_address: str | None,
    notes: str | None = None,
) -> PlacementResult:
    """Split a checkout into one order per farm.

    Every requested line is validated up front. Each farm's group is then
    reserved and committed on its own: a group that loses a stock race is
    rolled back and reported in ``failed_farms`` while the others stand.
    If no group commits, the first group's error is raised and the cart is
    left alone; otherwise the customer's cart is cleared.
    """
    customer_phone = _required_text(customer_phone, "customer_phone")
    delivery_address = _required_text(delivery_address, "delivery_address")
    notes = (notes or "").strip() or None

    quantity_by_product = aggregate_quantities(items)
    if not quantity_by_product:
        raise InvalidArgumentError("At least one item is required")
    store_products = validate_requested_lines(db, quantity_by_product)
    groups = _group_by_farm(quantity_by_product, store_products)

    result = PlacementResult()
    for farm_id, lines in groups.items():
        try:
            order, order_items = _place_farm_group(
                db,
                customer_id=customer_id,
                farm_id=farm_id,
                lines=lines,
                customer_phone=customer_phone,
                delivery_address=delivery_address,
                notes=notes,
            )
            db.commit()
        except MarketplaceError as exc:
            db.rollback()
            result.failed_farms.append(FailedFarmGroup(farm_id=farm_id, error=exc))
            log_audit_event(
                actor_user_id=customer_id,
                action="order.place.farm_failed",
                target_type="farm",
                target_id=farm_id,
                metadata_json={"code": exc.code, "message": exc.message, "details": exc.details},
            )
            continue
        db.refresh(order)
        result.orders.append(order)
        result.items_by_order[order.id] = order_items
        log_audit_event(
            actor_user_id=customer_id,
            action="order.place",
            target_type="order",
            target_id=order.id,
            metadata_json={
                "farm_id": farm_id,
                "items_count": len(order_items),
                "total": order.total_amount,
            },
        )

    if not result.orders:
        raise result.failed_farms[0].error

    db.execute(delete(CartLine).where(CartLine.customer_id == customer_id))
    db.commit()
    return result


def place_order_from_cart(
    db: Session,
    *,
    customer_id: str,
    customer_phone: str | None,
    delivery_address: str | None,
    notes: str | None = None,
) -> PlacementResult:
    lines = db.execute(
        select(CartLine).where(CartLine.customer_id == customer_id).order_by(CartLine.added_at, CartLine.id)
    ).scalars().all()
    if not lines:
        raise EmptyCartError()
    return place_order(
        db,
        customer_id=customer_id,
        items=[(line.store_product_id, line.quantity) for line in lines],
        customer_phone=customer_phone,
        delivery_address=delivery_address,
        notes=notes,
    )


def load_order_items(db: Session, order_ids: Iterable[str]) -> dict[str, list[OrderItem]]:
    ids = list(dict.fromkeys(order_ids))
    items_by_order: dict[str, list[OrderItem]] = {order_id: [] for order_id in ids}
    if not ids:
        return items_by_order
    rows = db.execute(select(OrderItem).where(OrderItem.order_id.in_(ids)).order_by(OrderItem.id)).scalars().all()
    for row in rows:
        items_by_order[row.order_id].append(row)
    return items_by_order


def _paginate_orders(db: Session, stmt, *, limit: int, offset: int) -> tuple[int, list[Order]]:
    total = int(db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one())
    rows = db.execute(
        stmt.order_by(Order.created_at.desc(), Order.id).offset(offset).limit(limit)
    ).scalars().all()
    return total, list(rows)


def list_customer_orders(
    db: Session,
    *,
    customer_id: str,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[int, list[Order]]:
    stmt = select(Order).where(Order.customer_id == customer_id)
    if status:
        stmt = stmt.where(Order.status == normalize_order_status(status))
    return _paginate_orders(db, stmt, limit=limit, offset=offset)


def list_farm_orders(
    db: Session,
    *,
    actor: Actor,
    farm_id: str,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[int, list[Order]]:
    if not actor.manages_farm(farm_id):
        raise AccessDeniedError("You do not have access to this farm's orders")
    stmt = select(Order).where(Order.farm_id == farm_id)
    if status:
        stmt = stmt.where(Order.status == normalize_order_status(status))
    return _paginate_orders(db, stmt, limit=limit, offset=offset)


def get_order_for_actor(db: Session, *, actor: Actor, order_id: str) -> Order:
    """Load an order visible to its customer, its farm's manager or an admin."""
    order = db.get(Order, order_id)
    if not order:
        raise NotFoundError("Order not found", details={"order_id": order_id})
    if order.customer_id != actor.user_id and not actor.manages_farm(order.farm_id):
        raise AccessDeniedError("You do not have access to this order")
    return order
