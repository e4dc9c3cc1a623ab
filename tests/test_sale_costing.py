from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import delete, func, select

from farmstand.core.access import ROLE_ADMIN, ROLE_FARM_MANAGER, Actor
from farmstand.core.errors import AccessDeniedError, InsufficientStockError, InvalidArgumentError, NotFoundError
from farmstand.models.product import Product
from farmstand.models.sales import Sale
from farmstand.services import sale_service


@pytest.fixture()
def farm(seed):
    farm_id = seed.farm()
    return {
        "farm_id": farm_id,
        "manager": Actor(user_id="manager-1", role=ROLE_FARM_MANAGER, farm_id=farm_id),
    }


def _product(db, product_id: str) -> Product:
    db.expire_all()
    return db.get(Product, product_id)


def test_batch_unit_expense_spreads_expenses_over_batch_quantity(db, seed, farm):
    batch_id = seed.batch(farm["farm_id"])
    seed.product(farm["farm_id"], quantity=40, batch_id=batch_id)
    seed.product(farm["farm_id"], quantity=20, batch_id=batch_id)
    seed.expense(farm["farm_id"], batch_id, "200.00")
    seed.expense(farm["farm_id"], batch_id, "100.00")
    seed.expense(farm["farm_id"], None, "999.00")

    assert sale_service.batch_unit_expense(db, batch_id) == Decimal("5")
    assert sale_service.batch_unit_expense(db, None) == Decimal("0")


def test_empty_batch_has_no_expense_share(db, seed, farm):
    batch_id = seed.batch(farm["farm_id"])
    seed.product(farm["farm_id"], quantity=0, batch_id=batch_id)
    seed.expense(farm["farm_id"], batch_id, "50.00")

    assert sale_service.batch_unit_expense(db, batch_id) == Decimal("0")


def test_profit_follows_price_minus_unit_and_expense_cost(db, seed, farm):
    # E = 300, Q = 60, c = 10, p = 25, n = 10 -> (25 - (10 + 5)) * 10 = 100
    batch_id = seed.batch(farm["farm_id"], name="Spring layers")
    product_id = seed.product(farm["farm_id"], quantity=40, unit_price="10.00", batch_id=batch_id, name="Eggs")
    seed.product(farm["farm_id"], quantity=20, batch_id=batch_id)
    seed.expense(farm["farm_id"], batch_id, "300.00")

    sale = sale_service.record_sale(
        db,
        actor=farm["manager"],
        product_id=product_id,
        quantity_sold=10,
        price_per_unit=Decimal("25"),
        farm_id=farm["farm_id"],
    )

    assert sale.id.startswith("sal_")
    assert sale.avg_expense_per_unit == Decimal("5.0000")
    assert sale.total_cost_per_unit == Decimal("15.0000")
    assert sale.profit_per_unit == Decimal("10.0000")
    assert sale.total_amount == Decimal("250.00")
    assert sale.profit == Decimal("100.00")
    assert sale.product_batch_name == "Spring layers"

    product = _product(db, product_id)
    assert product.quantity == 30
    assert product.status == "unsold"


def test_selling_the_last_unit_marks_the_product_sold(db, seed, farm):
    product_id = seed.product(farm["farm_id"], quantity=3, unit_price="4.00")

    sale = sale_service.record_sale(
        db,
        actor=farm["manager"],
        product_id=product_id,
        quantity_sold=3,
        price_per_unit="3.00",
        farm_id=farm["farm_id"],
    )

    assert sale.profit == Decimal("-3.00")
    product = _product(db, product_id)
    assert product.quantity == 0
    assert product.status == "sold"


def test_record_sale_validates_before_touching_stock(db, seed, farm):
    product_id = seed.product(farm["farm_id"], quantity=5)
    other_farm_id = seed.farm("Other Farm")
    foreign_product_id = seed.product(other_farm_id, quantity=5)
    base = {"actor": farm["manager"], "price_per_unit": "5.00", "farm_id": farm["farm_id"]}

    with pytest.raises(NotFoundError):
        sale_service.record_sale(db, product_id="missing", quantity_sold=1, **base)
    with pytest.raises(InsufficientStockError) as exc_info:
        sale_service.record_sale(db, product_id=product_id, quantity_sold=6, **base)
    assert exc_info.value.message == "Insufficient quantity. Available: 5, Requested: 6"
    with pytest.raises(InvalidArgumentError):
        sale_service.record_sale(db, product_id=product_id, quantity_sold=0, **base)
    with pytest.raises(InvalidArgumentError):
        sale_service.record_sale(db, product_id=product_id, quantity_sold=1, actor=farm["manager"], price_per_unit=0, farm_id=farm["farm_id"])
    with pytest.raises(AccessDeniedError):
        sale_service.record_sale(db, product_id=foreign_product_id, quantity_sold=1, **base)
    with pytest.raises(AccessDeniedError):
        sale_service.record_sale(
            db,
            actor=farm["manager"],
            product_id=foreign_product_id,
            quantity_sold=1,
            price_per_unit="5.00",
            farm_id=other_farm_id,
        )

    assert _product(db, product_id).quantity == 5
    assert db.execute(select(func.count(Sale.id))).scalar_one() == 0


def test_reverse_sale_restores_quantity_and_deletes_the_record(db, seed, farm):
    product_id = seed.product(farm["farm_id"], quantity=4)
    sale = sale_service.record_sale(
        db,
        actor=farm["manager"],
        product_id=product_id,
        quantity_sold=4,
        price_per_unit="6.00",
        farm_id=farm["farm_id"],
    )
    assert _product(db, product_id).status == "sold"

    reversal = sale_service.reverse_sale(db, actor=farm["manager"], sale_id=sale.id)

    assert reversal.restored_quantity == 4
    assert reversal.product_quantity == 4
    product = _product(db, product_id)
    assert (product.quantity, product.status) == (4, "unsold")
    assert db.get(Sale, sale.id) is None
    with pytest.raises(NotFoundError):
        sale_service.reverse_sale(db, actor=farm["manager"], sale_id=sale.id)


def test_reversing_a_sale_whose_product_is_gone_still_deletes_it(db, seed, farm):
    product_id = seed.product(farm["farm_id"], quantity=4)
    sale = sale_service.record_sale(
        db,
        actor=farm["manager"],
        product_id=product_id,
        quantity_sold=1,
        price_per_unit="6.00",
        farm_id=farm["farm_id"],
    )
    db.execute(delete(Product).where(Product.id == product_id))
    db.commit()

    with pytest.raises(NotFoundError) as exc_info:
        sale_service.reverse_sale(db, actor=farm["manager"], sale_id=sale.id)

    assert exc_info.value.details["sale_deleted"] is True
    db.expire_all()
    assert db.get(Sale, sale.id) is None


def test_list_farm_sales_filters_by_inclusive_dates_and_product(db, seed, farm):
    eggs_id = seed.product(farm["farm_id"], quantity=50, name="Eggs")
    milk_id = seed.product(farm["farm_id"], quantity=50, name="Milk")
    for product_id, day in ((eggs_id, 1), (eggs_id, 15), (milk_id, 15), (eggs_id, 28)):
        sale_service.record_sale(
            db,
            actor=farm["manager"],
            product_id=product_id,
            quantity_sold=1,
            price_per_unit="5.00",
            farm_id=farm["farm_id"],
            sale_date=datetime(2026, 3, day, 12, 0, tzinfo=timezone.utc),
        )

    total, sales = sale_service.list_farm_sales(
        db,
        actor=farm["manager"],
        farm_id=farm["farm_id"],
        start_date=date(2026, 3, 1),
        end_date=date(2026, 3, 15),
    )
    assert total == 3
    assert sales[0].sale_date.day == 15

    total, sales = sale_service.list_farm_sales(
        db,
        actor=Actor(user_id="admin-1", role=ROLE_ADMIN),
        farm_id=farm["farm_id"],
        product_id=eggs_id,
    )
    assert total == 3
    assert [sale.sale_date.day for sale in sales] == [28, 15, 1]

    with pytest.raises(InvalidArgumentError):
        sale_service.list_farm_sales(
            db,
            actor=farm["manager"],
            farm_id=farm["farm_id"],
            start_date=date(2026, 3, 15),
            end_date=date(2026, 3, 1),
        )
    with pytest.raises(AccessDeniedError):
        sale_service.list_farm_sales(
            db,
            actor=Actor(user_id="manager-2", role=ROLE_FARM_MANAGER, farm_id="another-farm"),
            farm_id=farm["farm_id"],
        )


def test_total_value_follows_quantity_through_sale_and_reversal(db, seed, farm):
    product_id = seed.product(farm["farm_id"], quantity=10, unit_price="4.00")
    sale = sale_service.record_sale(
        db,
        actor=farm["manager"],
        product_id=product_id,
        quantity_sold=4,
        price_per_unit="6.00",
        farm_id=farm["farm_id"],
    )

    product = _product(db, product_id)
    assert (product.quantity, product.total_value) == (6, Decimal("24.00"))

    sale_service.reverse_sale(db, actor=farm["manager"], sale_id=sale.id)

    product = _product(db, product_id)
    assert (product.quantity, product.total_value) == (10, Decimal("40.00"))


def test_get_sale_checks_existence_then_farm_access(db, seed, farm):
    product_id = seed.product(farm["farm_id"], quantity=5)
    sale = sale_service.record_sale(
        db,
        actor=farm["manager"],
        product_id=product_id,
        quantity_sold=2,
        price_per_unit="5.00",
        farm_id=farm["farm_id"],
    )

    assert sale_service.get_sale(db, actor=farm["manager"], sale_id=sale.id).quantity_sold == 2
    assert sale_service.get_sale(db, actor=Actor(user_id="admin-1", role=ROLE_ADMIN), sale_id=sale.id).id == sale.id
    with pytest.raises(NotFoundError):
        sale_service.get_sale(db, actor=farm["manager"], sale_id="sal_missing")
    with pytest.raises(AccessDeniedError):
        sale_service.get_sale(
            db,
            actor=Actor(user_id="manager-2", role=ROLE_FARM_MANAGER, farm_id="another-farm"),
            sale_id=sale.id,
        )


def test_list_farm_sales_filters_by_batch(db, seed, farm):
    layers_id = seed.batch(farm["farm_id"], name="Layers")
    broilers_id = seed.batch(farm["farm_id"], name="Broilers")
    eggs_id = seed.product(farm["farm_id"], quantity=50, batch_id=layers_id, name="Eggs")
    chicken_id = seed.product(farm["farm_id"], quantity=50, batch_id=broilers_id, name="Chicken")
    for product_id in (eggs_id, eggs_id, chicken_id):
        sale_service.record_sale(
            db,
            actor=farm["manager"],
            product_id=product_id,
            quantity_sold=1,
            price_per_unit="5.00",
            farm_id=farm["farm_id"],
        )

    total, sales = sale_service.list_farm_sales(
        db,
        actor=farm["manager"],
        farm_id=farm["farm_id"],
        product_batch_id=layers_id,
    )

    assert total == 2
    assert {sale.product_id for sale in sales} == {eggs_id}
