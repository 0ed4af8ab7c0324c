import pytest
from pydantic import ValidationError

from schemas import (
    CartItemRequest,
    CheckoutRequest,
    Product,
    ProductCreateRequest,
    ShippingAddress,
    Variant,
    VariantOption,
)
from tests.conftest import USER


def sized(sku, size, price):
    return Variant(sku=sku, price=price, stock=5, attributes={"size": size})


def test_product_rejects_duplicate_skus():
    with pytest.raises(ValidationError, match="Duplicate variant sku X"):
        Product(title="Tee", category="T-Shirts", variants=[sized("X", "S", 10.0), sized("X", "M", 50.0)])


def test_product_create_request_rejects_duplicate_skus():
    with pytest.raises(ValidationError, match="Duplicate variant sku X"):
        ProductCreateRequest(title="Tee", category="T-Shirts", variants=[sized("X", "S", 10.0), sized("X", "M", 50.0)])


def test_each_variant_gets_its_own_row_and_price(cart_manager, checkout, gateway, products):
    tee = products.add(Product(title="Tee", category="T-Shirts",
                               variants=[sized("X-S", "S", 10.0), sized("X-M", "M", 50.0)]))
    for size in ("S", "M"):
        cart = cart_manager.add_to_cart(USER, CartItemRequest(
            product=tee.id, variant=[VariantOption(name="size", value=size)]))

    assert [(i.sku, i.price) for i in cart.items] == [("X-S", 10.0), ("X-M", 50.0)]

    address = ShippingAddress(street="1 Pond Lane", city="Seattle", state="WA", postal_code="98101", country="US")
    checkout.initiate_checkout(USER, CheckoutRequest(shipping_address=address, payment_method="stripe"))
    assert gateway.calls[0]["amount"] == 6000
