from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from farmstand.core.access import ROLE_ADMIN, ROLE_FARM_MANAGER, Actor
from farmstand.core.api_docs import error_responses
from farmstand.core.deps import get_db
from farmstand.core.money import money_out
from farmstand.core.permissions import require_roles
from farmstand.models.sales import Sale
from farmstand.schemas.common import pagination_meta
from farmstand.schemas.sales import SaleCreate, SaleListOut, SaleOut, SaleReverseOut
from farmstand.services import sale_service

router = APIRouter(prefix="/sales", tags=["sales"])


def _sale_out(sale: Sale) -> SaleOut:
    return SaleOut(
        id=sale.id,
        farm_id=sale.farm_id,
        product_id=sale.product_id,
        product_name=sale.product_name,
        product_batch_id=sale.product_batch_id,
        product_batch_name=sale.product_batch_name,
        quantity_sold=sale.quantity_sold,
        price_per_unit=money_out(sale.price_per_unit),
        unit_cost=money_out(sale.unit_cost),
        avg_expense_per_unit=float(sale.avg_expense_per_unit),
        total_cost_per_unit=float(sale.total_cost_per_unit),
        profit_per_unit=float(sale.profit_per_unit),
        total_amount=money_out(sale.total_amount),
        profit=money_out(sale.profit),
        sale_date=sale.sale_date,
        created_at=sale.created_at,
    )


@router.post(
    "",
    response_model=SaleOut,
    status_code=201,
    summary="Record direct sale",
    description=(
        "Records a sale made directly by the farm. Profit uses the product's unit price plus its batch's "
        "average expense per unit. Farm stock is reduced; storefront stock is untouched."
    ),
    responses=error_responses(400, 401, 403, 404, 422, 500),
)
def create_sale(
    payload: SaleCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(ROLE_FARM_MANAGER, ROLE_ADMIN)),
):
    sale = sale_service.record_sale(
        db,
        actor=actor,
        product_id=payload.product_id,
        quantity_sold=payload.quantity_sold,
        price_per_unit=payload.price_per_unit,
        farm_id=payload.farm_id,
        sale_date=payload.sale_date,
    )
    return _sale_out(sale)


@router.get(
    "/farm/{farm_id}",
    response_model=SaleListOut,
    summary="List farm sales",
    responses=error_responses(400, 401, 403, 422, 500),
)
def list_farm_sales(
    farm_id: str,
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    product_id: str | None = Query(default=None),
    product_batch_id: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(ROLE_FARM_MANAGER, ROLE_ADMIN)),
):
    total, sales = sale_service.list_farm_sales(
        db,
        actor=actor,
        farm_id=farm_id,
        start_date=start_date,
        end_date=end_date,
        product_id=product_id,
        product_batch_id=product_batch_id,
        limit=limit,
        offset=offset,
    )
    items = [_sale_out(sale) for sale in sales]
    return SaleListOut(
        pagination=pagination_meta(total=total, limit=limit, offset=offset, count=len(items)),
        start_date=start_date,
        end_date=end_date,
        product_id=product_id,
        product_batch_id=product_batch_id,
        items=items,
    )


@router.get(
    "/{sale_id}",
    response_model=SaleOut,
    summary="Get sale",
    responses=error_responses(401, 403, 404, 500),
)
def get_sale(
    sale_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(ROLE_FARM_MANAGER, ROLE_ADMIN)),
):
    return _sale_out(sale_service.get_sale(db, actor=actor, sale_id=sale_id))


@router.post(
    "/{sale_id}/reverse",
    response_model=SaleReverseOut,
    summary="Reverse sale",
    description="Restores the sold quantity to the product and permanently deletes the sale record.",
    responses=error_responses(401, 403, 404, 500),
)
def reverse_sale(
    sale_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(ROLE_FARM_MANAGER, ROLE_ADMIN)),
):
    reversal = sale_service.reverse_sale(db, actor=actor, sale_id=sale_id)
    return SaleReverseOut(
        message="Sale reversed successfully",
        sale_id=reversal.sale_id,
        product_id=reversal.product_id,
        restored_quantity=reversal.restored_quantity,
        product_quantity=reversal.product_quantity,
        product_status=reversal.product_status,
    )
