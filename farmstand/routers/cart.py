from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from farmstand.core.access import Actor
from farmstand.core.api_docs import error_responses
from farmstand.core.deps import get_db
from farmstand.core.money import money_out
from farmstand.core.security_current import get_current_actor
from farmstand.models.cart import CartLine
from farmstand.models.product import StoreProduct
from farmstand.schemas.cart import (
    CartClearOut,
    CartLineIn,
    CartLineMutationOut,
    CartLineOut,
    CartLineQuantityIn,
    CartOut,
    CartProductOut,
    CartSyncIn,
)
from farmstand.services import cart_service
from farmstand.services.stock_service import load_store_products

router = APIRouter(prefix="/cart", tags=["cart"])


def _cart_line_out(line: CartLine, store_product: StoreProduct | None) -> CartLineOut:
    product = None
    if store_product is not None:
        product = CartProductOut(
            id=store_product.id,
            farm_id=store_product.farm_id,
            name=store_product.name,
            category=store_product.category,
            unit=store_product.unit,
            selling_price=money_out(store_product.selling_price),
            available_stock=store_product.available_stock,
            is_published=store_product.is_published,
        )
    return CartLineOut(
        id=line.id,
        store_product_id=line.store_product_id,
        quantity=line.quantity,
        added_at=line.added_at,
        product=product,
    )


def _cart_out(db: Session, lines: list[CartLine]) -> CartOut:
    store_products = load_store_products(db, (line.store_product_id for line in lines))
    items = [_cart_line_out(line, store_products.get(line.store_product_id)) for line in lines]
    return CartOut(count=len(items), items=items)


@router.get(
    "",
    response_model=CartOut,
    summary="Get cart",
    responses=error_responses(401, 403, 500),
)
def get_cart(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    rows = cart_service.get_cart(db, customer_id=actor.user_id)
    items = [_cart_line_out(line, store_product) for line, store_product in rows]
    return CartOut(count=len(items), items=items)


@router.post(
    "",
    response_model=CartLineMutationOut,
    summary="Add item to cart",
    description="Adds a listing to the cart or increases the quantity of the existing line. Stock is not reserved.",
    responses=error_responses(400, 401, 403, 404, 422, 500),
)
def add_to_cart(
    payload: CartLineIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    line, created = cart_service.add_or_update_line(
        db,
        customer_id=actor.user_id,
        store_product_id=payload.store_product_id,
        quantity=payload.quantity,
    )
    return CartLineMutationOut(
        message="Item added to cart" if created else "Cart updated",
        item=_cart_line_out(line, db.get(StoreProduct, line.store_product_id)),
    )


@router.put(
    "/{line_id}",
    response_model=CartLineMutationOut,
    summary="Update cart line quantity",
    responses=error_responses(400, 401, 403, 404, 422, 500),
)
def update_cart_line(
    line_id: str,
    payload: CartLineQuantityIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    line = cart_service.update_line_quantity(
        db,
        customer_id=actor.user_id,
        line_id=line_id,
        quantity=payload.quantity,
    )
    return CartLineMutationOut(
        message="Cart updated",
        item=_cart_line_out(line, db.get(StoreProduct, line.store_product_id)),
    )


@router.delete(
    "/{line_id}",
    response_model=CartClearOut,
    summary="Remove cart line",
    responses=error_responses(401, 403, 404, 500),
)
def remove_cart_line(
    line_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    cart_service.remove_line(db, customer_id=actor.user_id, line_id=line_id)
    return CartClearOut(message="Item removed from cart", removed=1)


@router.delete(
    "",
    response_model=CartClearOut,
    summary="Clear cart",
    responses=error_responses(401, 403, 500),
)
def clear_cart(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    removed = cart_service.clear_cart(db, customer_id=actor.user_id)
    return CartClearOut(message="Cart cleared", removed=removed)


@router.post(
    "/sync",
    response_model=CartOut,
    summary="Replace cart contents",
    description=(
        "Replaces the whole cart with the submitted lines. Every line is validated first; "
        "if any fails the existing cart is left unchanged."
    ),
    responses=error_responses(400, 401, 403, 404, 422, 500),
)
def sync_cart(
    payload: CartSyncIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    lines = cart_service.sync_cart(
        db,
        customer_id=actor.user_id,
        items=[(item.store_product_id, item.quantity) for item in payload.items],
    )
    return _cart_out(db, lines)
