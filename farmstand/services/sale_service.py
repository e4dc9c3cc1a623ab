from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from farmstand.core.access import Actor, ensure_farm_access
from farmstand.core.errors import AccessDeniedError, InsufficientStockError, InvalidArgumentError, NotFoundError
from farmstand.core.id_utils import generate_sale_id
from farmstand.core.money import to_money, to_unit_cost
from farmstand.models.expense import ExpenseRecord
from farmstand.models.product import PRODUCT_STATUS_SOLD, PRODUCT_STATUS_UNSOLD, Product, ProductBatch
from farmstand.models.sales import Sale
from farmstand.services.audit_service import log_audit_event
from farmstand.services.stock_service import restore_product_quantity, take_product_quantity


@dataclass
class SaleReversal:
    sale_id: str
    product_id: str
    restored_quantity: int
    product_quantity: int
    product_status: str


def batch_unit_expense(db: Session, batch_id: str | None) -> Decimal:
    """Average recorded expense per unit produced in a batch.

    Expenses are spread over every unit currently on the batch's products,
    so the figure moves whenever expenses are added or stock changes.
    """
    if not batch_id:
        return Decimal("0")
    total_expenses = db.execute(
        select(func.coalesce(func.sum(ExpenseRecord.amount), 0)).where(ExpenseRecord.product_batch_id == batch_id)
    ).scalar_one()
    total_quantity = db.execute(
        select(func.coalesce(func.sum(Product.quantity), 0)).where(Product.product_batch_id == batch_id)
    ).scalar_one()
    if not total_quantity or int(total_quantity) <= 0:
        return Decimal("0")
    return Decimal(str(total_expenses)) / Decimal(int(total_quantity))


def record_sale(
    db: Session,
    *,
    actor: Actor,
    product_id: str,
    quantity_sold: int,
    price_per_unit,
    farm_id: str,
    sale_date: datetime | None = None,
) -> Sale:
    ensure_farm_access(actor, farm_id, message="You do not have access to this farm")
    if quantity_sold is None or int(quantity_sold) <= 0:
        raise InvalidArgumentError("Quantity sold must be greater than 0", details={"quantity_sold": quantity_sold})
    price = to_money(price_per_unit)
    if price <= 0:
        raise InvalidArgumentError("Price per unit must be greater than 0", details={"price_per_unit": str(price)})
    quantity_sold = int(quantity_sold)

    product = db.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    if product.farm_id != farm_id:
        raise AccessDeniedError("Product does not belong to this farm")
    if quantity_sold > product.quantity:
        raise InsufficientStockError(
            available=product.quantity,
            requested=quantity_sold,
            item_id=product.id,
            item_name=product.name,
            message=f"Insufficient quantity. Available: {product.quantity}, Requested: {quantity_sold}",
        )

    batch = db.get(ProductBatch, product.product_batch_id) if product.product_batch_id else None
    expense_share = batch_unit_expense(db, product.product_batch_id)
    unit_cost = to_money(product.unit_price)
    total_cost_per_unit = unit_cost + expense_share
    profit_per_unit = price - total_cost_per_unit

    sale = Sale(
        id=generate_sale_id(),
        farm_id=farm_id,
        product_id=product.id,
        product_name=product.name,
        product_batch_id=product.product_batch_id,
        product_batch_name=batch.name if batch else None,
        quantity_sold=quantity_sold,
        price_per_unit=price,
        unit_cost=unit_cost,
        avg_expense_per_unit=to_unit_cost(expense_share),
        total_cost_per_unit=to_unit_cost(total_cost_per_unit),
        profit_per_unit=to_unit_cost(profit_per_unit),
        total_amount=to_money(price * quantity_sold),
        profit=to_money(profit_per_unit * quantity_sold),
        sale_date=sale_date or datetime.now(timezone.utc),
    )

    remaining = take_product_quantity(db, product=product, quantity=quantity_sold)
    product.status = PRODUCT_STATUS_SOLD if remaining == 0 else PRODUCT_STATUS_UNSOLD
    db.add(sale)
    db.commit()
    db.refresh(sale)

    log_audit_event(
        actor_user_id=actor.user_id,
        action="sale.record",
        target_type="sale",
        target_id=sale.id,
        metadata_json={
            "product_id": product.id,
            "quantity_sold": quantity_sold,
            "total_amount": sale.total_amount,
            "profit": sale.profit,
            "remaining_quantity": remaining,
        },
    )
    return sale


def get_sale(db: Session, *, actor: Actor, sale_id: str) -> Sale:
    sale = db.get(Sale, sale_id)
    if not sale:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})
    ensure_farm_access(actor, sale.farm_id, message="You do not have access to this sale")
    return sale


def reverse_sale(db: Session, *, actor: Actor, sale_id: str) -> SaleReversal:
    """Undo a sale: give its units back to the product and delete the record.

    Deletion is permanent. When the product no longer exists the record is
    still removed and committed before ``NotFoundError`` is raised.
    """
    sale = db.get(Sale, sale_id)
    if not sale:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})
    ensure_farm_access(actor, sale.farm_id, message="You do not have access to this sale")

    product = db.get(Product, sale.product_id)
    product_id = sale.product_id
    quantity = sale.quantity_sold
    if not product:
        db.delete(sale)
        db.commit()
        log_audit_event(
            actor_user_id=actor.user_id,
            action="sale.reverse",
            target_type="sale",
            target_id=sale_id,
            metadata_json={"product_id": product_id, "restored_quantity": 0, "product_missing": True},
        )
        raise NotFoundError(
            "Product not found; the sale was removed but no stock was restored",
            details={"sale_id": sale_id, "product_id": product_id, "sale_deleted": True},
        )

    new_quantity = restore_product_quantity(db, product=product, quantity=quantity)
    product.status = PRODUCT_STATUS_UNSOLD
    db.delete(sale)
    db.commit()

    log_audit_event(
        actor_user_id=actor.user_id,
        action="sale.reverse",
        target_type="sale",
        target_id=sale_id,
        metadata_json={"product_id": product_id, "restored_quantity": quantity},
    )
    return SaleReversal(
        sale_id=sale_id,
        product_id=product_id,
        restored_quantity=quantity,
        product_quantity=new_quantity,
        product_status=PRODUCT_STATUS_UNSOLD,
    )


def list_farm_sales(
    db: Session,
    *,
    actor: Actor,
    farm_id: str,
    start_date: date | None = None,
    end_date: date | None = None,
    product_id: str | None = None,
    product_batch_id: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[int, list[Sale]]:
    ensure_farm_access(actor, farm_id, message="You do not have access to this farm")
    if start_date and end_date and end_date < start_date:
        raise InvalidArgumentError("end_date cannot be before start_date")

    stmt = select(Sale).where(Sale.farm_id == farm_id)
    if start_date:
        stmt = stmt.where(func.date(Sale.sale_date) >= start_date)
    if end_date:
        stmt = stmt.where(func.date(Sale.sale_date) <= end_date)
    if product_id:
        stmt = stmt.where(Sale.product_id == product_id)
    if product_batch_id:
        stmt = stmt.where(Sale.product_batch_id == product_batch_id)

    total = int(db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one())
    rows = db.execute(
        stmt.order_by(Sale.sale_date.desc(), Sale.id).offset(offset).limit(limit)
    ).scalars().all()
    return total, list(rows)
