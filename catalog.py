"""
Public catalog reads: categories, product listings, search and detail.

List reads degrade to empty results when the database is unreachable so the
storefront still renders.
"""
import logging
import re
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query

import cache
from auth import get_current_user
from database import collection, oid, serialize
from errors import NotFound
from images import resolve_product_images

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["catalog"])

CATALOG_TTL = 60
FEATURED_LIMIT = 6


def present_product(doc: dict, categories: Optional[Dict[str, dict]] = None) -> dict:
    product = serialize(doc)
    product["price"] = round(product.get("price_cents", 0) / 100, 2)
    if categories is not None:
        product["category"] = categories.get(product.get("category_id"))
    return product


def categories_by_id(products: List[dict]) -> Dict[str, dict]:
    ids = {p.get("category_id") for p in products if p.get("category_id")}
    if not ids:
        return {}
    docs = collection("category").find({"_id": {"$in": [oid(i) for i in ids]}})
    return {str(d["_id"]): serialize(d) for d in docs}


def _page(filt: dict, page: int, limit: int) -> dict:
    page = max(1, page)
    products = list(
        collection("product").find(filt).sort("created_at", -1).skip((page - 1) * limit).limit(limit)
    )
    total = collection("product").count_documents(filt)
    categories = categories_by_id(products)
    return {"products": [present_product(p, categories) for p in products], "total": total}


def _category_filter(category_slug: Optional[str]) -> Optional[dict]:
    """Product filter for a category slug, ``None`` if the category does not exist."""
    if not category_slug:
        return {}
    category = collection("category").find_one({"slug": category_slug})
    if not category:
        return None
    return {"category_id": str(category["_id"])}


def get_product(product_id: str) -> Optional[dict]:
    return collection("product").find_one({"_id": oid(product_id)})


def get_categories() -> List[dict]:
    def load():
        return [serialize(c) for c in collection("category").find({}).sort("name", 1)]

    try:
        return cache.cached("categories", load, CATALOG_TTL, tags=["categories"])
    except Exception as e:
        logger.error("Error fetching categories: %s", e)
        return []


def get_products(category_slug: Optional[str] = None, page: int = 1, limit: int = 12) -> dict:
    try:
        filt = _category_filter(category_slug)
        if filt is None:
            return {"products": [], "total": 0}
        return _page(filt, page, limit)
    except Exception as e:
        logger.error("Error fetching products: %s", e)
        return {"products": [], "total": 0}


def get_featured_products() -> List[dict]:
    def load():
        docs = list(collection("product").find({"featured": True}).sort("created_at", -1).limit(FEATURED_LIMIT))
        categories = categories_by_id(docs)
        return [present_product(p, categories) for p in docs]

    try:
        return cache.cached("featured-products", load, CATALOG_TTL, tags=["products", "featured"])
    except Exception as e:
        logger.error("Error fetching featured products: %s", e)
        return []


def get_product_by_slug(slug: str) -> Optional[dict]:
    doc = collection("product").find_one({"slug": slug})
    if not doc:
        return None
    return present_product(doc, categories_by_id([doc]))


def search_products(query: str, page: int = 1, limit: int = 12) -> dict:
    pattern = {"$regex": re.escape(query), "$options": "i"}
    try:
        return _page({"$or": [{"title": pattern}, {"description": pattern}]}, page, limit)
    except Exception as e:
        logger.error("Error searching products: %s", e)
        return {"products": [], "total": 0}


def get_trial_products(category_slug: Optional[str] = None, limit: int = 100, trial_only: bool = True) -> List[dict]:
    def load():
        filt = dict(base)
        if trial_only:
            filt["is_trial"] = True
        docs = collection("product").find(filt).sort("created_at", -1).limit(limit)
        return [present_product(p) for p in docs]

    try:
        # unknown categories are answered without a cache entry
        base = _category_filter(category_slug)
        if base is None:
            return []
        key = f"trial-products-{base.get('category_id', 'all')}-{limit}-{trial_only}"
        return cache.cached(key, load, CATALOG_TTL, tags=["products", "trial-products"])
    except Exception as e:
        logger.error("Error fetching trial products: %s", e)
        return []


@router.get("/categories")
def list_categories():
    return {"categories": get_categories()}


@router.get("/products")
def list_products(category: Optional[str] = None, page: int = Query(1, ge=1), limit: int = Query(12, ge=1, le=100)):
    return get_products(category, page, limit)


@router.get("/products/featured")
def featured_products():
    return {"products": get_featured_products()}


@router.get("/search")
def search(q: str = "", page: int = Query(1, ge=1), limit: int = Query(12, ge=1, le=100)):
    if not q.strip():
        return {"products": [], "total": 0}
    return search_products(q.strip(), page, limit)


@router.get("/products/{slug}")
def product_detail(slug: str, user: Optional[dict] = Depends(get_current_user)):
    product = get_product_by_slug(slug)
    if not product:
        raise NotFound("Product not found")
    product["display_images"] = resolve_product_images(product, user)
    return product
