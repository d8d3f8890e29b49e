import logging
from typing import List

from fastapi import APIRouter, Depends

import cache
from auth import require_user, user_id
from catalog import categories_by_id, get_product, present_product
from database import collection, create_document, oid
from errors import NotFound, ValidationFailed
from schemas import WishlistItem, WishlistRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/wishlist", tags=["wishlist"])

WISHLIST_TTL = 10


def wishlist_tag(uid: str) -> str:
    return f"wishlist-{uid}"


def _changed(uid: str):
    cache.invalidate(wishlist_tag(uid))


def get_wishlist(user: dict) -> List[dict]:
    uid = user_id(user)

    def load():
        entries = list(collection("wishlistitem").find({"user_id": uid}).sort("created_at", -1))
        products = {}
        for entry in entries:
            product = get_product(entry["product_id"])
            if product:
                products[entry["product_id"]] = product
        categories = categories_by_id(list(products.values()))
        return [
            {
                "id": str(entry["_id"]),
                "product_id": entry["product_id"],
                "product": present_product(products[entry["product_id"]], categories),
                "created_at": entry.get("created_at"),
            }
            for entry in entries
            if entry["product_id"] in products
        ]

    try:
        return cache.cached(wishlist_tag(uid), load, WISHLIST_TTL, tags=["wishlist", wishlist_tag(uid)])
    except Exception as e:
        logger.error("Error fetching wishlist: %s", e)
        return []


def is_in_wishlist(user: dict, product_id: str) -> bool:
    try:
        return collection("wishlistitem").find_one({"user_id": user_id(user), "product_id": product_id}) is not None
    except Exception as e:
        logger.error("Error checking wishlist: %s", e)
        return False


def add_to_wishlist(user: dict, product_id: str) -> dict:
    uid = user_id(user)
    if not get_product(product_id):
        raise NotFound("Product not found")
    if collection("wishlistitem").find_one({"user_id": uid, "product_id": product_id}):
        raise ValidationFailed("Product already in wishlist")
    create_document("wishlistitem", WishlistItem(user_id=uid, product_id=product_id))
    _changed(uid)
    return {"success": True, "message": "Added to wishlist"}


def remove_from_wishlist(user: dict, product_id: str) -> dict:
    uid = user_id(user)
    result = collection("wishlistitem").delete_one({"user_id": uid, "product_id": product_id})
    if result.deleted_count == 0:
        raise NotFound("Product not in wishlist")
    _changed(uid)
    return {"success": True, "message": "Removed from wishlist"}


def toggle_wishlist(user: dict, product_id: str) -> dict:
    uid = user_id(user)
    items = collection("wishlistitem")
    existing = items.find_one({"user_id": uid, "product_id": product_id})
    if existing:
        items.delete_one({"_id": existing["_id"]})
        _changed(uid)
        return {"success": True, "in_wishlist": False, "message": "Removed from wishlist"}

    if not get_product(product_id):
        raise NotFound("Product not found")
    create_document("wishlistitem", WishlistItem(user_id=uid, product_id=product_id))
    _changed(uid)
    return {"success": True, "in_wishlist": True, "message": "Added to wishlist"}


@router.get("")
def read_wishlist(user: dict = Depends(require_user)):
    return {"items": get_wishlist(user)}


@router.get("/{product_id}")
def wishlist_status(product_id: str, user: dict = Depends(require_user)):
    return {"in_wishlist": is_in_wishlist(user, product_id)}


@router.post("")
def add(payload: WishlistRequest, user: dict = Depends(require_user)):
    return add_to_wishlist(user, payload.product_id)


@router.delete("/{product_id}")
def remove(product_id: str, user: dict = Depends(require_user)):
    return remove_from_wishlist(user, product_id)


@router.post("/{product_id}/toggle")
def toggle(product_id: str, user: dict = Depends(require_user)):
    return toggle_wishlist(user, product_id)
