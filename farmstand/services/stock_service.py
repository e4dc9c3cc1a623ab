from collections.abc import Iterable

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from farmstand.core.errors import InsufficientStockError, InvalidArgumentError, NotFoundError, UnavailableError
from farmstand.models.product import Product, StoreProduct
from farmstand.services.audit_service import log_audit_event


def aggregate_quantities(items: Iterable[tuple[str, int]]) -> dict[str, int]:
    """Sum requested quantities per store product, keeping first-seen order."""
    quantity_by_product: dict[str, int] = {}
    for store_product_id, quantity in items:
        if quantity is None or int(quantity) <= 0:
            raise InvalidArgumentError(
                f"Quantity must be greater than 0 for product {store_product_id}",
                details={"item_id": store_product_id, "quantity": quantity},
            )
        quantity_by_product[store_product_id] = quantity_by_product.get(store_product_id, 0) + int(quantity)
    return quantity_by_product


def load_store_products(db: Session, store_product_ids: Iterable[str]) -> dict[str, StoreProduct]:
    ids = list(dict.fromkeys(store_product_ids))
    if not ids:
        return {}
    rows = db.execute(select(StoreProduct).where(StoreProduct.id.in_(ids))).scalars().all()
    return {row.id: row for row in rows}


def ensure_purchasable(
    store_product: StoreProduct | None,
    *,
    store_product_id: str,
    requested: int | None = None,
) -> StoreProduct:
    """Raise the first failing availability check for one listing.

    With ``requested`` omitted only existence, publication and a positive
    stock level are checked (adding to a cart reserves nothing). With it,
    an empty listing reports available vs requested like any shortfall.
    """
    if store_product is None:
        raise NotFoundError(
            f"Product with ID {store_product_id} not found",
            details={"item_id": store_product_id},
        )
    if not store_product.is_published:
        raise UnavailableError(
            f"Product '{store_product.name}' is not available",
            details={"item_id": store_product.id, "item_name": store_product.name, "reason": "unpublished"},
        )
    if requested is None:
        if store_product.available_stock <= 0:
            raise UnavailableError(
                f"Product '{store_product.name}' is out of stock",
                details={"item_id": store_product.id, "item_name": store_product.name, "reason": "out_of_stock"},
            )
        return store_product
    if store_product.available_stock < requested:
        raise InsufficientStockError(
            available=store_product.available_stock,
            requested=requested,
            item_id=store_product.id,
            item_name=store_product.name,
        )
    return store_product


def validate_requested_lines(db: Session, quantity_by_product: dict[str, int]) -> dict[str, StoreProduct]:
    """Check every requested listing before anything is written.

    The stock figures read here are advisory; ``reserve_stock`` is what
    keeps stock from going negative.
    """
    store_products = load_store_products(db, quantity_by_product.keys())
    for store_product_id, requested in quantity_by_product.items():
        ensure_purchasable(
            store_products.get(store_product_id),
            store_product_id=store_product_id,
            requested=requested,
        )
    return store_products


def _current_available_stock(db: Session, store_product_id: str) -> int | None:
    return db.execute(
        select(StoreProduct.available_stock).where(StoreProduct.id == store_product_id)
    ).scalar_one_or_none()


def reserve_stock(
    db: Session,
    *,
    store_product_id: str,
    quantity: int,
    item_name: str | None = None,
) -> None:
    """Decrement storefront stock only if enough remains.

    Runs inside the caller's transaction and never commits.
    """
    result = db.execute(
        update(StoreProduct)
        .where(
            StoreProduct.id == store_product_id,
            StoreProduct.available_stock >= quantity,
        )
        .values(available_stock=StoreProduct.available_stock - quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        _expire_cached_stock(db, StoreProduct, store_product_id, "available_stock")
        return

    available = _current_available_stock(db, store_product_id)
    log_audit_event(
        actor_user_id=None,
        action="stock.reserve.conflict",
        target_type="store_product",
        target_id=store_product_id,
        metadata_json={"requested": quantity, "available": available},
    )
    if available is None:
        raise NotFoundError(
            f"Product with ID {store_product_id} not found",
            details={"item_id": store_product_id},
        )
    raise InsufficientStockError(
        available=available,
        requested=quantity,
        item_id=store_product_id,
        item_name=item_name,
    )


def release_stock(db: Session, *, store_product_id: str, quantity: int) -> None:
    """Give reserved units back to the storefront; the only path that increments it."""
    db.execute(
        update(StoreProduct)
        .where(StoreProduct.id == store_product_id)
        .values(available_stock=StoreProduct.available_stock + quantity)
        .execution_options(synchronize_session=False)
    )
    _expire_cached_stock(db, StoreProduct, store_product_id, "available_stock")


def take_product_quantity(db: Session, *, product: Product, quantity: int) -> int:
    """Conditionally decrement farm-held stock and return what is left.

    ``total_value`` is rewritten from the new quantity in the same statement.
    """
    result = db.execute(
        update(Product)
        .where(Product.id == product.id, Product.quantity >= quantity)
        .values(
            quantity=Product.quantity - quantity,
            total_value=(Product.quantity - quantity) * Product.unit_price,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.refresh(product)
        raise InsufficientStockError(
            available=product.quantity,
            requested=quantity,
            item_id=product.id,
            item_name=product.name,
            message=f"Insufficient quantity. Available: {product.quantity}, Requested: {quantity}",
        )
    db.refresh(product)
    return product.quantity


def restore_product_quantity(db: Session, *, product: Product, quantity: int) -> int:
    db.execute(
        update(Product)
        .where(Product.id == product.id)
        .values(
            quantity=Product.quantity + quantity,
            total_value=(Product.quantity + quantity) * Product.unit_price,
        )
        .execution_options(synchronize_session=False)
    )
    db.refresh(product)
    return product.quantity


def _expire_cached_stock(db: Session, model: type, row_id: str, attribute: str) -> None:
    cached = db.identity_map.get(Session.identity_key(model, row_id))
    if cached is not None:
        db.expire(cached, [attribute])
