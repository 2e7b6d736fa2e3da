from decimal import Decimal

import pytest
from pydantic import ValidationError

from schemas import ORDER_STATUSES, OrderCreate, OrderStatusUpdate, ProductCreate, ReviewIn


def make_order(**overrides):
    data = {
        "customerName": "Rahim",
        "phone": "01712345678",
        "address": "House 1, Dhaka",
        "productId": 1,
        "quantity": 1,
    }
    data.update(overrides)
    return OrderCreate.model_validate(data)


@pytest.mark.parametrize("phone", ["01712345678", "8801712345678", "+8801712345678", "017 1234 5678"])
def test_phone_accepted(phone):
    assert make_order(phone=phone).phone == phone.replace(" ", "")


@pytest.mark.parametrize("phone", ["12345", "02812345678", "01212345678", "0171234567"])
def test_phone_rejected(phone):
    with pytest.raises(ValidationError) as exc:
        make_order(phone=phone)
    assert "Invalid phone number format" in str(exc.value)


def test_email_optional_but_checked():
    assert make_order().email is None
    assert make_order(email="buyer@example.com").email == "buyer@example.com"
    assert make_order(email="   ").email is None
    for bad in ("not-an-email", "a@b..c", "buyer@.example.com"):
        with pytest.raises(ValidationError):
            make_order(email=bad)


def test_product_id_is_opaque_string():
    assert make_order(productId=7).product_id == "7"
    assert make_order(productId="65a4e9f5c8f9f0a1b2c3d4e5").product_id == "65a4e9f5c8f9f0a1b2c3d4e5"


def test_quantity_must_be_positive():
    with pytest.raises(ValidationError):
        make_order(quantity=0)


def test_features_parsed_from_json_string():
    product = ProductCreate(title="Tea", price="10", features='["Fresh", "Organic"]')
    assert product.features == ["Fresh", "Organic"]
    assert product.price == Decimal("10")
    assert product.discount == 0


def test_features_reject_bad_json():
    with pytest.raises(ValidationError):
        ProductCreate(title="Tea", price="10", features="[not json")


@pytest.mark.parametrize("discount", [-1, 101])
def test_discount_bounds(discount):
    with pytest.raises(ValidationError):
        ProductCreate(title="Tea", price="10", discount=discount)


@pytest.mark.parametrize("rating", [1, 5])
def test_rating_accepted(rating):
    assert ReviewIn.model_validate({"name": "Karim", "rating": rating, "comment": "ok"}).rating == rating


@pytest.mark.parametrize("rating", [0, 6])
def test_rating_rejected(rating):
    with pytest.raises(ValidationError):
        ReviewIn.model_validate({"name": "Karim", "rating": rating, "comment": "ok"})


def test_review_accepts_customer_name_alias():
    review = ReviewIn.model_validate({"customerName": "Karim", "rating": 4, "comment": "Nice"})
    assert review.customer_name == "Karim"


def test_order_status_is_closed_set():
    for status in ORDER_STATUSES:
        assert OrderStatusUpdate(status=status).status == status
    with pytest.raises(ValidationError):
        OrderStatusUpdate(status="Lost")
