import pytest
from sqlalchemy import select

from farmstand.core.errors import InsufficientStockError, InvalidArgumentError, NotFoundError, UnavailableError
from farmstand.models.cart import CartLine
from farmstand.models.product import StoreProduct
from farmstand.services import cart_service


def _cart_quantities(db, customer_id: str) -> dict[str, int]:
    db.expire_all()
    rows = db.execute(select(CartLine).where(CartLine.customer_id == customer_id)).scalars().all()
    return {row.store_product_id: row.quantity for row in rows}


def test_add_line_creates_then_sums_quantities(db, seed):
    farm_id = seed.farm()
    customer_id = seed.user()
    listing_id = seed.listing(farm_id, stock=5)

    line, created = cart_service.add_or_update_line(db, customer_id=customer_id, store_product_id=listing_id, quantity=2)
    assert created is True
    assert line.quantity == 2

    line, created = cart_service.add_or_update_line(db, customer_id=customer_id, store_product_id=listing_id, quantity=4)
    assert created is False
    # Adding reserves nothing, so the cart may exceed current stock.
    assert line.quantity == 6
    assert _cart_quantities(db, customer_id) == {listing_id: 6}
    assert db.get(StoreProduct, listing_id).available_stock == 5


def test_add_line_rejects_missing_unpublished_and_sold_out_listings(db, seed):
    farm_id = seed.farm()
    customer_id = seed.user()
    hidden_id = seed.listing(farm_id, published=False)
    empty_id = seed.listing(farm_id, stock=0)

    with pytest.raises(NotFoundError):
        cart_service.add_or_update_line(db, customer_id=customer_id, store_product_id="missing", quantity=1)
    with pytest.raises(UnavailableError) as hidden_exc:
        cart_service.add_or_update_line(db, customer_id=customer_id, store_product_id=hidden_id, quantity=1)
    assert hidden_exc.value.details["reason"] == "unpublished"
    with pytest.raises(UnavailableError) as empty_exc:
        cart_service.add_or_update_line(db, customer_id=customer_id, store_product_id=empty_id, quantity=1)
    assert empty_exc.value.details["reason"] == "out_of_stock"
    assert _cart_quantities(db, customer_id) == {}


@pytest.mark.parametrize("quantity", [0, -3])
def test_non_positive_quantities_are_invalid(db, seed, quantity):
    farm_id = seed.farm()
    customer_id = seed.user()
    listing_id = seed.listing(farm_id)

    with pytest.raises(InvalidArgumentError):
        cart_service.add_or_update_line(db, customer_id=customer_id, store_product_id=listing_id, quantity=quantity)
    with pytest.raises(InvalidArgumentError):
        cart_service.sync_cart(db, customer_id=customer_id, items=[(listing_id, quantity)])


def test_update_and_remove_only_touch_own_lines(db, seed):
    farm_id = seed.farm()
    owner_id = seed.user()
    other_id = seed.user()
    listing_id = seed.listing(farm_id)
    line, _ = cart_service.add_or_update_line(db, customer_id=owner_id, store_product_id=listing_id, quantity=1)

    with pytest.raises(NotFoundError):
        cart_service.update_line_quantity(db, customer_id=other_id, line_id=line.id, quantity=3)
    with pytest.raises(NotFoundError):
        cart_service.remove_line(db, customer_id=other_id, line_id=line.id)

    updated = cart_service.update_line_quantity(db, customer_id=owner_id, line_id=line.id, quantity=3)
    assert updated.quantity == 3

    cart_service.remove_line(db, customer_id=owner_id, line_id=line.id)
    assert _cart_quantities(db, owner_id) == {}


def test_sync_replaces_cart_and_merges_duplicate_lines(db, seed):
    farm_id = seed.farm()
    customer_id = seed.user()
    old_id = seed.listing(farm_id, name="Kale")
    eggs_id = seed.listing(farm_id, stock=12, name="Eggs")
    milk_id = seed.listing(farm_id, stock=4, name="Milk")
    cart_service.add_or_update_line(db, customer_id=customer_id, store_product_id=old_id, quantity=1)

    lines = cart_service.sync_cart(
        db,
        customer_id=customer_id,
        items=[(eggs_id, 2), (milk_id, 1), (eggs_id, 4)],
    )

    assert {line.store_product_id: line.quantity for line in lines} == {eggs_id: 6, milk_id: 1}
    assert _cart_quantities(db, customer_id) == {eggs_id: 6, milk_id: 1}


def test_failed_sync_leaves_cart_unchanged_and_names_the_shortfall(db, seed):
    farm_id = seed.farm()
    customer_id = seed.user()
    eggs_id = seed.listing(farm_id, stock=12, name="Eggs")
    honey_id = seed.listing(farm_id, stock=2, name="Honey")
    cart_service.sync_cart(db, customer_id=customer_id, items=[(eggs_id, 3)])

    with pytest.raises(InsufficientStockError) as exc_info:
        cart_service.sync_cart(db, customer_id=customer_id, items=[(eggs_id, 1), (honey_id, 5)])

    error = exc_info.value
    assert error.item_id == honey_id
    assert error.details["item_name"] == "Honey"
    assert error.available == 2
    assert error.requested == 5
    assert _cart_quantities(db, customer_id) == {eggs_id: 3}


def test_clear_cart_removes_every_line(db, seed):
    farm_id = seed.farm()
    customer_id = seed.user()
    first_id = seed.listing(farm_id, name="Kale")
    second_id = seed.listing(farm_id, name="Leeks")
    cart_service.sync_cart(db, customer_id=customer_id, items=[(first_id, 1), (second_id, 2)])

    assert cart_service.clear_cart(db, customer_id=customer_id) == 2
    assert cart_service.get_cart(db, customer_id=customer_id) == []


def test_get_cart_pairs_lines_with_their_listing(db, seed):
    farm_id = seed.farm()
    customer_id = seed.user()
    listing_id = seed.listing(farm_id, price="3.50", name="Basil")
    cart_service.add_or_update_line(db, customer_id=customer_id, store_product_id=listing_id, quantity=2)

    rows = cart_service.get_cart(db, customer_id=customer_id)

    assert len(rows) == 1
    line, listing = rows[0]
    assert line.quantity == 2
    assert listing.name == "Basil"
