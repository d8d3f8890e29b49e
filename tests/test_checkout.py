import pytest
import stripe

from cart import add_to_cart
from conftest import product_doc
from errors import InsufficientStock, PaymentError, ValidationFailed
from orders import cancel_order, create_checkout_session, get_order_by_session_id, get_orders


def test_empty_cart_checkout_creates_no_order(mongo, user, stripe_sessions):
    with pytest.raises(ValidationFailed, match="Cart is empty"):
        create_checkout_session(user)

    assert mongo["order"].count_documents({}) == 0
    assert stripe_sessions == []


def test_checkout_creates_pending_order_with_frozen_prices(mongo, user, make_product, stripe_sessions):
    product_id = make_product(price_cents=4000, title="Denim Jacket")
    add_to_cart(user, product_id, quantity=2)

    result = create_checkout_session(user)

    order = mongo["order"].find_one({})
    assert order["status"] == "PENDING"
    assert order["total_cents"] == 8000
    assert order["items"][0]["price_cents"] == 4000
    assert order["items"][0]["quantity"] == 2
    assert order["stripe_session_id"] == "cs_test_1"
    assert result["url"].startswith("https://checkout.stripe.com")
    assert result["order_id"] == str(order["_id"])

    session = stripe_sessions[0]
    assert session["metadata"] == {"order_id": str(order["_id"]), "user_id": str(user["_id"])}
    assert session["line_items"][0]["price_data"]["unit_amount"] == 4000
    assert session["line_items"][0]["quantity"] == 2

    mongo["product"].update_many({}, {"$set": {"price_cents": 9999}})
    assert get_orders(user)[0]["items"][0]["price_cents"] == 4000


def test_checkout_rechecks_stock(mongo, user, make_product, stripe_sessions):
    product_id = make_product(stock=3, title="Linen Shirt")
    add_to_cart(user, product_id, quantity=3)
    mongo["product"].update_one({}, {"$set": {"stock": 1}})

    with pytest.raises(InsufficientStock, match="Linen Shirt"):
        create_checkout_session(user)

    assert mongo["order"].count_documents({}) == 0


def test_stock_untouched_until_payment(user, make_product, stripe_sessions):
    product_id = make_product(stock=5)
    add_to_cart(user, product_id, quantity=2)

    create_checkout_session(user)

    assert product_doc(product_id)["stock"] == 5


def test_payment_failure_leaves_pending_order(mongo, user, make_product, monkeypatch):
    def fail(**kwargs):
        raise stripe.APIConnectionError("network down")

    monkeypatch.setattr(stripe.checkout.Session, "create", fail)
    add_to_cart(user, make_product(), quantity=1)

    with pytest.raises(PaymentError):
        create_checkout_session(user)

    order = mongo["order"].find_one({})
    assert order["status"] == "PENDING"
    assert order["stripe_session_id"] is None


def test_order_lookup_by_session_is_owner_scoped(user, other_user, make_product, stripe_sessions):
    add_to_cart(user, make_product(), quantity=1)
    create_checkout_session(user)

    assert get_order_by_session_id(user, "cs_test_1") is not None
    assert get_order_by_session_id(other_user, "cs_test_1") is None


def test_cancel_order(mongo, user, make_product, stripe_sessions):
    add_to_cart(user, make_product(), quantity=1)
    order_id = create_checkout_session(user)["order_id"]

    cancel_order(user, order_id)
    assert mongo["order"].find_one({})["status"] == "CANCELLED"

    with pytest.raises(ValidationFailed):
        cancel_order(user, order_id)


def test_checkout_api(client, auth_headers, make_product, stripe_sessions):
    product_id = make_product()
    client.post("/api/cart/items", json={"product_id": product_id, "quantity": 1}, headers=auth_headers)

    resp = client.post("/api/checkout", headers=auth_headers)

    assert resp.status_code == 200
    assert resp.json()["url"] == "https://checkout.stripe.com/pay/cs_test"
    orders = client.get("/api/orders", headers=auth_headers).json()["orders"]
    assert len(orders) == 1
    assert orders[0]["total"] == 25.0


def test_checkout_api_empty_cart(client, auth_headers, stripe_sessions):
    resp = client.post("/api/checkout", headers=auth_headers)

    assert resp.status_code == 400
    assert resp.json() == {"detail": "Cart is empty"}
