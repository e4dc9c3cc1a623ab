from collections.abc import Iterable

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from farmstand.core.errors import InvalidArgumentError, NotFoundError
from farmstand.core.id_utils import generate_shortuuid
from farmstand.models.cart import CartLine
from farmstand.models.product import StoreProduct
from farmstand.services.audit_service import log_audit_event
from farmstand.services.stock_service import (
    aggregate_quantities,
    ensure_purchasable,
    load_store_products,
    validate_requested_lines,
)


def _ensure_positive_quantity(quantity: int | None) -> int:
    if quantity is None or int(quantity) <= 0:
        raise InvalidArgumentError("Quantity must be greater than 0", details={"quantity": quantity})
    return int(quantity)


def _owned_line(db: Session, *, customer_id: str, line_id: str) -> CartLine:
    line = db.execute(
        select(CartLine).where(CartLine.id == line_id, CartLine.customer_id == customer_id)
    ).scalar_one_or_none()
    if not line:
        raise NotFoundError("Cart item not found", details={"line_id": line_id})
    return line


def list_cart_lines(db: Session, *, customer_id: str) -> list[CartLine]:
    return list(
        db.execute(
            select(CartLine)
            .where(CartLine.customer_id == customer_id)
            .order_by(CartLine.added_at.desc(), CartLine.id)
        ).scalars().all()
    )


def get_cart(db: Session, *, customer_id: str) -> list[tuple[CartLine, StoreProduct | None]]:
    """Cart lines newest first, paired with their listing (None if it was removed)."""
    lines = list_cart_lines(db, customer_id=customer_id)
    store_products = load_store_products(db, (line.store_product_id for line in lines))
    return [(line, store_products.get(line.store_product_id)) for line in lines]


def add_or_update_line(
    db: Session,
    *,
    customer_id: str,
    store_product_id: str,
    quantity: int,
) -> tuple[CartLine, bool]:
    """Add a listing to the cart, summing into an existing line.

    Returns the line and whether it was newly created. Nothing is reserved;
    stock is only taken when an order is placed.
    """
    quantity = _ensure_positive_quantity(quantity)
    store_product = db.get(StoreProduct, store_product_id)
    ensure_purchasable(store_product, store_product_id=store_product_id)

    for attempt in range(2):
        existing = db.execute(
            select(CartLine).where(
                CartLine.customer_id == customer_id,
                CartLine.store_product_id == store_product_id,
            )
        ).scalar_one_or_none()
        created = existing is None
        if existing:
            existing.quantity = existing.quantity + quantity
            line = existing
        else:
            line = CartLine(
                id=generate_shortuuid(),
                customer_id=customer_id,
                store_product_id=store_product_id,
                quantity=quantity,
            )
            db.add(line)
        try:
            db.commit()
        except IntegrityError:
            # A concurrent request inserted the same line first; fold into it.
            db.rollback()
            if attempt:
                raise
            continue
        db.refresh(line)
        return line, created
    raise AssertionError("unreachable")


def update_line_quantity(db: Session, *, customer_id: str, line_id: str, quantity: int) -> CartLine:
    quantity = _ensure_positive_quantity(quantity)
    line = _owned_line(db, customer_id=customer_id, line_id=line_id)
    line.quantity = quantity
    db.commit()
    db.refresh(line)
    return line


def remove_line(db: Session, *, customer_id: str, line_id: str) -> None:
    line = _owned_line(db, customer_id=customer_id, line_id=line_id)
    db.delete(line)
    db.commit()


def clear_cart(db: Session, *, customer_id: str) -> int:
    result = db.execute(delete(CartLine).where(CartLine.customer_id == customer_id))
    db.commit()
    return int(result.rowcount or 0)


def sync_cart(
    db: Session,
    *,
    customer_id: str,
    items: Iterable[tuple[str, int]],
) -> list[CartLine]:
    """Replace the whole cart with ``items`` or change nothing at all.

    Every line is checked against current publication and stock before the
    delete-and-insert runs, and both happen in one transaction.
    """
    quantity_by_product = aggregate_quantities(items)
    validate_requested_lines(db, quantity_by_product)

    try:
        db.execute(delete(CartLine).where(CartLine.customer_id == customer_id))
        for store_product_id, quantity in quantity_by_product.items():
            db.add(
                CartLine(
                    id=generate_shortuuid(),
                    customer_id=customer_id,
                    store_product_id=store_product_id,
                    quantity=quantity,
                )
            )
        db.commit()
    except Exception:
        db.rollback()
        raise

    log_audit_event(
        actor_user_id=customer_id,
        action="cart.sync",
        target_type="cart",
        target_id=customer_id,
        metadata_json={"lines": len(quantity_by_product)},
    )
    return list_cart_lines(db, customer_id=customer_id)
