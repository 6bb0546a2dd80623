import json

import pytest
from ordering.cart.items import AddToCart
from ordering.catalog import reset_catalog, reset_coupon_book, set_catalog, set_coupon_book
from ordering.catalog.memory_adapter import InMemoryCatalog, InMemoryCouponBook
from ordering.catalog.port import (
    AttributeGroup,
    AttributeValue,
    Coupon,
    ProductInfo,
    ProductVariant,
    WarrantyPackage,
)
from ordering.gateway import reset_gateway, set_gateway
from ordering.gateway.fake_adapter import FakeGateway
from ordering.order.checkout import PlaceOrder
from ordering.utils.locking import process_under_cart_lock
from ordering.utils.settings import get_settings
from protean import current_domain
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def ordering_bed():
    from ordering.domain import ordering

    bed = DomainFixture(ordering)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(ordering_bed):
    with ordering_bed.domain_context():
        yield

        # Clear all databases
        for _, provider in current_domain.providers.items():
            provider._data_reset()

        # Drain event stores
        current_domain.event_store.store._data_reset()


@pytest.fixture(autouse=True)
def _settings(monkeypatch):
    """Retry without sleeping and read settings afresh in every test."""
    monkeypatch.setenv("GATEWAY_BACKOFF_INITIAL", "0")
    monkeypatch.setenv("GATEWAY_BACKOFF_MAX", "0")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def gateway():
    fake = FakeGateway()
    set_gateway(fake)
    yield fake
    reset_gateway()


@pytest.fixture(autouse=True)
def catalog():
    memory = InMemoryCatalog()
    memory.add_warranty_package(
        WarrantyPackage(package_id="care-12", name="Care 12 months", duration_months=12, price=1_000_000.0)
    )
    memory.add_warranty_package(
        WarrantyPackage(package_id="care-24", name="Care 24 months", duration_months=24, price=1_800_000.0)
    )
    memory.add_product(
        ProductInfo(
            product_id="phone-x",
            name="Phone X",
            base_price=40_000_000.0,
            sku="PHX",
            attribute_groups=(
                AttributeGroup(
                    group_id="storage",
                    name="Storage",
                    required=True,
                    values=(
                        AttributeValue(value_id="128gb", label="128GB"),
                        AttributeValue(value_id="256gb", label="256GB", price_adjustment=3_000_000.0),
                        AttributeValue(value_id="512gb", label="512GB", price_adjustment=5_990_000.0),
                    ),
                ),
                AttributeGroup(
                    group_id="color",
                    name="Color",
                    values=(
                        AttributeValue(value_id="black", label="Black"),
                        AttributeValue(value_id="gold", label="Gold", price_adjustment=500_000.0),
                    ),
                ),
            ),
            variants=(ProductVariant(variant_id="phx-pro", sku="PHX-PRO", price=42_000_000.0),),
            warranty_package_ids=("care-12",),
        )
    )
    memory.add_product(
        ProductInfo(
            product_id="case",
            name="Leather Case",
            base_price=250_000.0,
            sku="CASE-01",
        )
    )
    set_catalog(memory)
    yield memory
    reset_catalog()


@pytest.fixture(autouse=True)
def coupons():
    book = InMemoryCouponBook()
    book.add(Coupon(code="SAVE10", type="percent", value=10, max_discount=500_000.0, min_order_amount=1_000_000.0))
    book.add(Coupon(code="FLAT200K", type="fixed", value=200_000.0))
    book.add(Coupon(code="RETIRED", type="fixed", value=100_000.0, is_active=False))
    set_coupon_book(book)
    yield book
    reset_coupon_book()


# ---------------------------------------------------------------------------
# Shared data
# ---------------------------------------------------------------------------
@pytest.fixture()
def address():
    return {
        "full_name": "Nguyen Van A",
        "phone": "0901234567",
        "address_line1": "12 Le Loi",
        "city": "Ho Chi Minh City",
        "country": "VN",
    }


@pytest.fixture()
def place_order(address):
    """Fill the customer's cart and check it out. Returns the new order id."""

    def _place(customer_id="cust-001", payment_method="stripe", storage="512gb", warranty_package_id=None):
        process_under_cart_lock(
            customer_id,
            AddToCart(
                customer_id=customer_id,
                product_id="phone-x",
                attribute_selection=json.dumps({"storage": storage}),
                warranty_package_id=warranty_package_id,
            ),
        )
        return process_under_cart_lock(
            customer_id,
            PlaceOrder(
                customer_id=customer_id,
                payment_method=payment_method,
                shipping_address=json.dumps(address),
            ),
        )

    return _place
