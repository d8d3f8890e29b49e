"""
Checkout and order lifecycle.

An order is created PENDING when the shopper starts a Stripe Checkout session
and moves on when Stripe reports back through the webhook:

    PENDING    --checkout.session.completed-->     PROCESSING
    PENDING    --checkout.session.expired-->       CANCELLED
    any        --payment_intent.payment_failed-->  CANCELLED

Stock is decremented and the cart emptied on the move to PROCESSING. The
order insert and the Stripe call are separate steps: if Stripe fails, the
PENDING order stays behind.
"""
import json
import logging
import uuid
from typing import List, Optional

import stripe
from fastapi import APIRouter, Depends

import cache
import settings
from auth import full_name, require_user, user_id
from cart import available_stock, delete_cart_lines
from catalog import get_product
from database import collection, create_document, now, oid, serialize
from errors import InsufficientStock, NotFound, PaymentError, StoreError, ValidationFailed
from schemas import Order, OrderItem, OrderStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["orders"])

if settings.STRIPE_SECRET_KEY:
    stripe.api_key = settings.STRIPE_SECRET_KEY

PREMIUM_PURCHASE = "premium_purchase"
CANCELLABLE = {OrderStatus.PENDING.value, OrderStatus.PROCESSING.value}


def generate_order_number() -> str:
    return f"ORD-{now():%Y%m%d}-{uuid.uuid4().hex[:8].upper()}"


def present_order(doc: dict) -> dict:
    order = serialize(doc)
    order["total"] = round(order.get("total_cents", 0) / 100, 2)
    for item in order.get("items", []):
        item["price"] = round(item.get("price_cents", 0) / 100, 2)
    return order


def create_checkout_session(user: dict) -> dict:
    if not settings.STRIPE_SECRET_KEY:
        raise StoreError("Stripe not configured", 500)

    uid = user_id(user)
    cart = collection("cart").find_one({"user_id": uid})
    lines = list(collection("cartitem").find({"cart_id": str(cart["_id"])})) if cart else []
    if not lines:
        raise ValidationFailed("Cart is empty")

    order_items: List[OrderItem] = []
    line_items = []
    total_cents = 0
    for line in lines:
        product = get_product(line["product_id"])
        if not product:
            raise NotFound("Product not found")
        quantity = int(line.get("quantity", 1))
        if available_stock(product, line.get("size")) < quantity:
            raise InsufficientStock(f"Insufficient stock for {product.get('title')}")

        price_cents = int(product.get("price_cents", 0))
        total_cents += price_cents * quantity
        order_items.append(OrderItem(
            product_id=line["product_id"],
            title=product.get("title", ""),
            size=line.get("size"),
            quantity=quantity,
            price_cents=price_cents,
        ))
        product_data = {
            "name": product.get("title", "Product"),
            "images": product.get("images", [])[:1],
        }
        if product.get("description"):
            product_data["description"] = product["description"]
        if line.get("size"):
            product_data["name"] = f"{product_data['name']} ({line['size']})"
        line_items.append({
            "quantity": quantity,
            "price_data": {
                "currency": settings.CURRENCY,
                "unit_amount": price_cents,
                "product_data": product_data,
            },
        })

    order_id = create_document("order", Order(
        order_number=generate_order_number(),
        user_id=uid,
        items=order_items,
        total_cents=total_cents,
        currency=settings.CURRENCY,
        customer_email=user.get("email", ""),
        customer_name=full_name(user),
    ))

    try:
        session = stripe.checkout.Session.create(
            mode="payment",
            payment_method_types=["card"],
            line_items=line_items,
            customer_email=user.get("email") or None,
            metadata={"order_id": order_id, "user_id": uid},
            success_url=f"{settings.FRONTEND_URL}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{settings.FRONTEND_URL}/cart",
        )
    except Exception as e:
        logger.error("Error creating checkout session for order %s: %s", order_id, e)
        raise PaymentError("Failed to create checkout session")

    collection("order").update_one(
        {"_id": oid(order_id)},
        {"$set": {"stripe_session_id": session.id, "updated_at": now()}},
    )
    cache.invalidate("admin-orders")
    return {"url": session.url, "session_id": session.id, "order_id": order_id}


def get_orders(user: dict) -> List[dict]:
    docs = collection("order").find({"user_id": user_id(user)}).sort("created_at", -1)
    return [present_order(d) for d in docs]


def get_order_by_id(user: dict, order_id: str) -> Optional[dict]:
    doc = collection("order").find_one({"_id": oid(order_id), "user_id": user_id(user)})
    return present_order(doc) if doc else None


def get_order_by_session_id(user: dict, session_id: str) -> Optional[dict]:
    doc = collection("order").find_one({"stripe_session_id": session_id, "user_id": user_id(user)})
    return present_order(doc) if doc else None


def cancel_order(user: dict, order_id: str) -> dict:
    doc = collection("order").find_one({"_id": oid(order_id), "user_id": user_id(user)})
    if not doc:
        raise NotFound("Order not found")
    if doc.get("status") not in CANCELLABLE:
        raise ValidationFailed(f"Cannot cancel an order that is {str(doc.get('status')).lower()}")
    set_order_status(doc["_id"], OrderStatus.CANCELLED)
    logger.info("Order %s cancelled by customer", order_id)
    return {"success": True, "message": "Order cancelled"}


def set_order_status(order_oid, status: OrderStatus, **fields):
    fields.update({"status": status.value, "updated_at": now()})
    collection("order").update_one({"_id": order_oid}, {"$set": fields})
    cache.invalidate("admin-orders")


# ---------- Stripe webhook ----------

def _decrement_stock(item: dict):
    products = collection("product")
    product_oid = oid(item["product_id"])
    quantity = int(item.get("quantity", 0))
    products.update_one({"_id": product_oid}, {"$inc": {"stock": -quantity}})
    if item.get("size"):
        products.update_one(
            {"_id": product_oid, "size_stock.size": item["size"]},
            {"$inc": {"size_stock.$.quantity": -quantity}},
        )


def complete_order(order_id: str, payment_intent: Optional[str], shipping_details: Optional[dict]):
    order_oid = oid(order_id)
    set_order_status(
        order_oid,
        OrderStatus.PROCESSING,
        stripe_payment_id=payment_intent,
        shipping_address=json.dumps(shipping_details) if shipping_details else None,
    )

    order = collection("order").find_one({"_id": order_oid})
    if order:
        for item in order.get("items", []):
            _decrement_stock(item)
        delete_cart_lines(order["user_id"])
        cache.invalidate("products", "featured", "trial-products")
    logger.info("Order %s completed successfully", order_id)


def grant_premium(uid: str):
    collection("user").update_one(
        {"_id": oid(uid)},
        {"$set": {"has_premium": True, "ai_enabled": True, "updated_at": now()}},
    )
    logger.info("User %s upgraded to premium", uid)


def handle_stripe_event(event: dict):
    event_type = event.get("type")
    obj = (event.get("data") or {}).get("object") or {}
    metadata = obj.get("metadata") or {}

    if event_type == "checkout.session.completed":
        if metadata.get("type") == PREMIUM_PURCHASE:
            if not metadata.get("user_id"):
                raise ValueError("No user ID in premium session metadata")
            grant_premium(metadata["user_id"])
            return
        if not metadata.get("order_id"):
            raise ValueError("No order ID in session metadata")
        complete_order(metadata["order_id"], obj.get("payment_intent"), obj.get("shipping_details"))

    elif event_type == "checkout.session.expired":
        if metadata.get("order_id"):
            set_order_status(oid(metadata["order_id"]), OrderStatus.CANCELLED)
            logger.info("Order %s expired", metadata["order_id"])

    elif event_type == "payment_intent.payment_failed":
        order = collection("order").find_one({"stripe_payment_id": obj.get("id")})
        if order:
            set_order_status(order["_id"], OrderStatus.CANCELLED)
            logger.info("Order %s payment failed", order["_id"])

    else:
        logger.info("Unhandled event type: %s", event_type)


@router.post("/checkout")
def checkout(user: dict = Depends(require_user)):
    return create_checkout_session(user)


@router.get("/orders")
def list_orders(user: dict = Depends(require_user)):
    return {"orders": get_orders(user)}


@router.get("/orders/session/{session_id}")
def order_by_session(session_id: str, user: dict = Depends(require_user)):
    order = get_order_by_session_id(user, session_id)
    if not order:
        raise NotFound("Order not found")
    return order


@router.get("/orders/{order_id}")
def order_detail(order_id: str, user: dict = Depends(require_user)):
    order = get_order_by_id(user, order_id)
    if not order:
        raise NotFound("Order not found")
    return order


@router.post("/orders/{order_id}/cancel")
def cancel(order_id: str, user: dict = Depends(require_user)):
    return cancel_order(user, order_id)
