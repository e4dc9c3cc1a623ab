import pytest
from sqlalchemy import select

from farmstand.core.access import ROLE_CUSTOMER, ROLE_FARM_MANAGER, Actor
from farmstand.core.errors import InsufficientStockError, InvalidArgumentError, InvalidTransitionError, NotFoundError
from farmstand.models.order import Order
from farmstand.models.product import Product, StoreProduct
from farmstand.services import order_service, order_status_service
from farmstand.services.stock_service import (
    aggregate_quantities,
    release_stock,
    reserve_stock,
    take_product_quantity,
    validate_requested_lines,
)


def _stock(session_local, listing_id: str) -> int:
    with session_local() as db:
        return db.execute(
            select(StoreProduct.available_stock).where(StoreProduct.id == listing_id)
        ).scalar_one()


def test_aggregate_quantities_sums_and_rejects_non_positive():
    assert aggregate_quantities([("a", 1), ("b", 2), ("a", 3)]) == {"a": 4, "b": 2}
    with pytest.raises(InvalidArgumentError):
        aggregate_quantities([("a", 1), ("b", 0)])


def test_last_unit_goes_to_exactly_one_of_two_buyers(file_session_local, file_seed):
    farm_id = file_seed.farm()
    listing_id = file_seed.listing(farm_id, stock=1, name="Last melon")

    first = file_session_local()
    second = file_session_local()
    try:
        # Both buyers pass validation against the same snapshot.
        validate_requested_lines(first, {listing_id: 1})
        validate_requested_lines(second, {listing_id: 1})

        reserve_stock(first, store_product_id=listing_id, quantity=1, item_name="Last melon")
        first.commit()

        with pytest.raises(InsufficientStockError) as exc_info:
            reserve_stock(second, store_product_id=listing_id, quantity=1, item_name="Last melon")
        second.rollback()
    finally:
        first.close()
        second.close()

    assert exc_info.value.available == 0
    assert exc_info.value.requested == 1
    assert _stock(file_session_local, listing_id) == 0


def test_second_checkout_for_the_last_unit_fails_without_an_order(file_session_local, file_seed):
    farm_id = file_seed.farm()
    first_customer = file_seed.user()
    second_customer = file_seed.user()
    listing_id = file_seed.listing(farm_id, stock=1, name="Last melon")

    with file_session_local() as db:
        order_service.place_order(
            db,
            customer_id=first_customer,
            items=[(listing_id, 1)],
            customer_phone="+2348000000001",
            delivery_address="1 First Street",
        )
    with file_session_local() as db:
        with pytest.raises(InsufficientStockError):
            order_service.place_order(
                db,
                customer_id=second_customer,
                items=[(listing_id, 1)],
                customer_phone="+2348000000002",
                delivery_address="2 Second Street",
            )

    assert _stock(file_session_local, listing_id) == 0
    with file_session_local() as db:
        orders = db.execute(select(Order)).scalars().all()
    assert [order.customer_id for order in orders] == [first_customer]


def test_reserving_a_missing_listing_is_not_found(db):
    with pytest.raises(NotFoundError):
        reserve_stock(db, store_product_id="missing", quantity=1)


def test_release_refreshes_the_cached_listing(db, seed):
    farm_id = seed.farm()
    listing_id = seed.listing(farm_id, stock=2)
    listing = db.get(StoreProduct, listing_id)

    reserve_stock(db, store_product_id=listing_id, quantity=2)
    assert listing.available_stock == 0
    release_stock(db, store_product_id=listing_id, quantity=2)
    assert listing.available_stock == 2


def test_take_product_quantity_never_goes_negative(file_session_local, file_seed):
    farm_id = file_seed.farm()
    product_id = file_seed.product(farm_id, quantity=3)

    first = file_session_local()
    second = file_session_local()
    try:
        first_product = first.get(Product, product_id)
        second_product = second.get(Product, product_id)
        assert take_product_quantity(first, product=first_product, quantity=3) == 0
        first.commit()

        with pytest.raises(InsufficientStockError) as exc_info:
            take_product_quantity(second, product=second_product, quantity=2)
        second.rollback()
    finally:
        first.close()
        second.close()

    assert exc_info.value.message == "Insufficient quantity. Available: 0, Requested: 2"


def test_concurrent_cancellations_restore_stock_once(file_session_local, file_seed):
    farm_id = file_seed.farm()
    customer_id = file_seed.user()
    listing_id = file_seed.listing(farm_id, stock=5)
    with file_session_local() as db:
        result = order_service.place_order(
            db,
            customer_id=customer_id,
            items=[(listing_id, 3)],
            customer_phone="+2348000000001",
            delivery_address="1 First Street",
        )
        order_id = result.orders[0].id

    customer = Actor(user_id=customer_id, role=ROLE_CUSTOMER)
    manager = Actor(user_id="manager-1", role=ROLE_FARM_MANAGER, farm_id=farm_id)
    first = file_session_local()
    second = file_session_local()
    try:
        # The second canceller has already read the order as pending.
        assert second.get(Order, order_id).status == "pending"
        order_status_service.cancel_as_customer(first, actor=customer, order_id=order_id)

        with pytest.raises(InvalidTransitionError):
            order_status_service.cancel_as_farm(second, actor=manager, order_id=order_id)
    finally:
        first.close()
        second.close()

    assert _stock(file_session_local, listing_id) == 5
