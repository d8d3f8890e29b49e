"""
Per-user shopping cart.

Stock is checked whenever a line is added or its quantity changes; nothing
is reserved. The cart page and navbar badge are memoized per user and
invalidated by every mutation.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends

import cache
from auth import require_user, user_id
from catalog import get_product, present_product
from database import collection, create_document, now, oid
from errors import InsufficientStock, NotFound, ValidationFailed
from schemas import AddToCartRequest, Cart, CartItem, UpdateQuantityRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cart", tags=["cart"])

CART_TTL = 30


def cart_tag(uid: str) -> str:
    return f"cart-{uid}"


def available_stock(product: dict, size: Optional[str] = None) -> int:
    """
    Stock for the requested size when the product tracks stock per size,
    otherwise the aggregate stock. A product with per-size rows needs one of
    its sizes.
    """
    size_stock = product.get("size_stock") or []
    if not size_stock:
        return int(product.get("stock", 0))
    for entry in size_stock:
        if size and entry.get("size") == size:
            return int(entry.get("quantity", 0))
    raise ValidationFailed("Invalid size")


def _shown_stock(product: dict, size: Optional[str]) -> int:
    try:
        return available_stock(product, size)
    except ValidationFailed:
        return 0


def _find_cart(uid: str) -> Optional[dict]:
    return collection("cart").find_one({"user_id": uid})


def _owned_item(user: dict, item_id: str) -> dict:
    item = collection("cartitem").find_one({"_id": oid(item_id)})
    cart = _find_cart(user_id(user))
    if not item or not cart or item.get("cart_id") != str(cart["_id"]):
        raise NotFound("Cart item not found")
    return item


def get_cart(user: dict) -> Optional[dict]:
    uid = user_id(user)

    def load():
        cart = _find_cart(uid)
        if not cart:
            return None
        items = []
        total_items = 0
        total_cents = 0
        for it in collection("cartitem").find({"cart_id": str(cart["_id"])}).sort("created_at", 1):
            product = get_product(it["product_id"])
            if not product:
                continue
            quantity = int(it.get("quantity", 1))
            total_items += quantity
            total_cents += int(product.get("price_cents", 0)) * quantity
            shown = present_product(product)
            items.append({
                "id": str(it["_id"]),
                "quantity": quantity,
                "size": it.get("size"),
                "product": {
                    "id": shown["id"],
                    "title": shown.get("title"),
                    "slug": shown.get("slug"),
                    "price": shown["price"],
                    "images": shown.get("images", []),
                    "stock": _shown_stock(product, it.get("size")),
                },
            })
        return {
            "id": str(cart["_id"]),
            "items": items,
            "total_items": total_items,
            "total_price": round(total_cents / 100, 2),
        }

    try:
        return cache.cached(f"cart-{uid}", load, CART_TTL, tags=[cart_tag(uid)])
    except Exception as e:
        logger.error("Error fetching cart: %s", e)
        return None


def get_cart_count(user: dict) -> int:
    cart = get_cart(user)
    return cart["total_items"] if cart else 0


def add_to_cart(user: dict, product_id: str, quantity: int = 1, size: Optional[str] = None) -> dict:
    if quantity < 1:
        raise ValidationFailed("Quantity must be at least 1")

    product = get_product(product_id)
    if not product:
        raise NotFound("Product not found")

    stock = available_stock(product, size)
    if stock < quantity:
        raise InsufficientStock()

    uid = user_id(user)
    cart = _find_cart(uid)
    if not cart:
        create_document("cart", Cart(user_id=uid))
        cart = _find_cart(uid)
    cart_id = str(cart["_id"])

    items = collection("cartitem")
    existing = items.find_one({"cart_id": cart_id, "product_id": product_id, "size": size})
    if existing:
        new_quantity = int(existing.get("quantity", 0)) + quantity
        if stock < new_quantity:
            raise InsufficientStock()
        items.update_one({"_id": existing["_id"]}, {"$set": {"quantity": new_quantity, "updated_at": now()}})
    else:
        create_document("cartitem", CartItem(cart_id=cart_id, product_id=product_id, size=size, quantity=quantity))

    cache.invalidate(cart_tag(uid))
    return {"success": True, "message": "Added to cart"}


def remove_from_cart(user: dict, item_id: str) -> dict:
    item = _owned_item(user, item_id)
    collection("cartitem").delete_one({"_id": item["_id"]})
    cache.invalidate(cart_tag(user_id(user)))
    return {"success": True, "message": "Removed from cart"}


def update_cart_item_quantity(user: dict, item_id: str, quantity: int) -> dict:
    if quantity < 1:
        raise ValidationFailed("Quantity must be at least 1")

    item = _owned_item(user, item_id)
    product = get_product(item["product_id"])
    if not product:
        raise NotFound("Product not found")
    if available_stock(product, item.get("size")) < quantity:
        raise InsufficientStock()

    collection("cartitem").update_one({"_id": item["_id"]}, {"$set": {"quantity": quantity, "updated_at": now()}})
    cache.invalidate(cart_tag(user_id(user)))
    return {"success": True, "message": "Cart updated"}


def delete_cart_lines(uid: str):
    cart = _find_cart(uid)
    if cart:
        collection("cartitem").delete_many({"cart_id": str(cart["_id"])})
    cache.invalidate(cart_tag(uid))


def clear_cart(user: dict) -> dict:
    delete_cart_lines(user_id(user))
    return {"success": True, "message": "Cart cleared"}


@router.get("")
def read_cart(user: dict = Depends(require_user)):
    cart = get_cart(user)
    if cart is None:
        return {"id": None, "items": [], "total_items": 0, "total_price": 0}
    return cart


@router.get("/count")
def read_cart_count(user: dict = Depends(require_user)):
    return {"count": get_cart_count(user)}


@router.post("/items")
def add_item(payload: AddToCartRequest, user: dict = Depends(require_user)):
    return add_to_cart(user, payload.product_id, payload.quantity, payload.size)


@router.patch("/items/{item_id}")
def update_item(item_id: str, payload: UpdateQuantityRequest, user: dict = Depends(require_user)):
    return update_cart_item_quantity(user, item_id, payload.quantity)


@router.delete("/items/{item_id}")
def remove_item(item_id: str, user: dict = Depends(require_user)):
    return remove_from_cart(user, item_id)


@router.delete("")
def clear(user: dict = Depends(require_user)):
    return clear_cart(user)
