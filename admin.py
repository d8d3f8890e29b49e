"""
Admin back-office.

All routes except login sit behind the shared admin session cookie. Catalog
writes answer with ``{"success": bool, "error": str}`` so the admin forms
can show the message inline.
"""
import logging
import math
import re
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from pymongo.errors import DuplicateKeyError

import cache
from auth import create_admin_session, destroy_admin_session, full_name, require_admin, verify_admin_credentials
from catalog import categories_by_id, present_product
from database import collection, create_document, now, oid, serialize
from errors import NotFound
from orders import present_order, set_order_status
from schemas import AdminLoginRequest, Category, CategoryForm, OrderStatus, OrderStatusUpdate, Product, ProductForm
from seed import seed_catalog

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["admin"])
protected = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])

ADMIN_ORDERS_TTL = 15
CATALOG_TAGS = ("categories", "products", "featured", "trial-products")


def pagination(total: int, page: int, limit: int) -> dict:
    return {"total": total, "page": page, "limit": limit, "total_pages": math.ceil(total / limit) if limit else 0}


def _contains(text: str) -> dict:
    return {"$regex": re.escape(text), "$options": "i"}


# ---------- Session ----------

@router.post("/admin/login")
def login(payload: AdminLoginRequest, response: Response):
    try:
        if not verify_admin_credentials(payload.email, payload.password):
            return {"success": False, "error": "Invalid email or password"}
    except RuntimeError as e:
        logger.error("Admin login error: %s", e)
        return {"success": False, "error": "Login failed. Please try again."}
    create_admin_session(response)
    return {"success": True}


@router.post("/admin/logout")
def logout(response: Response):
    destroy_admin_session(response)
    return {"success": True}


@router.get("/revalidate", dependencies=[Depends(require_admin)])
def revalidate():
    cache.invalidate(*CATALOG_TAGS)
    return {"revalidated": True, "now": now(), "message": "Cache cleared successfully"}


# ---------- Categories ----------

def _category_conflict(data: CategoryForm, exclude_id=None) -> Optional[str]:
    filt = {"$or": [{"name": data.name}, {"slug": data.slug}]}
    if exclude_id is not None:
        filt = {"$and": [{"_id": {"$ne": exclude_id}}, filt]}
    existing = collection("category").find_one(filt)
    if not existing:
        return None
    if existing.get("name") == data.name:
        return "A category with this name already exists"
    return "A category with this slug already exists"


def list_categories_with_counts() -> list:
    result = []
    for category in collection("category").find({}).sort("name", 1):
        shown = serialize(category)
        shown["product_count"] = collection("product").count_documents({"category_id": shown["id"]})
        result.append(shown)
    return result


def create_category(data: CategoryForm) -> dict:
    try:
        conflict = _category_conflict(data)
        if conflict:
            return {"success": False, "error": conflict}
        category_id = create_document("category", Category(
            name=data.name, slug=data.slug, description=data.description or None,
        ))
    except Exception as e:
        logger.error("Error creating category: %s", e)
        return {"success": False, "error": str(e) or "Failed to create category"}
    cache.invalidate(*CATALOG_TAGS)
    return {"success": True, "category": serialize(collection("category").find_one({"_id": oid(category_id)}))}


def update_category(category_id: str, data: CategoryForm) -> dict:
    category_oid = oid(category_id)
    try:
        conflict = _category_conflict(data, exclude_id=category_oid)
        if conflict:
            return {"success": False, "error": conflict}
        result = collection("category").update_one(
            {"_id": category_oid},
            {"$set": {"name": data.name, "slug": data.slug, "description": data.description or None,
                      "updated_at": now()}},
        )
        if result.matched_count == 0:
            return {"success": False, "error": "Category not found"}
    except Exception as e:
        logger.error("Error updating category: %s", e)
        return {"success": False, "error": str(e) or "Failed to update category"}
    cache.invalidate(*CATALOG_TAGS)
    return {"success": True, "category": serialize(collection("category").find_one({"_id": category_oid}))}


def delete_category(category_id: str) -> dict:
    category_oid = oid(category_id)
    try:
        products_count = collection("product").count_documents({"category_id": category_id})
        if products_count > 0:
            return {
                "success": False,
                "error": f"Cannot delete category. It has {products_count} associated product(s). "
                         f"Please reassign or delete products first.",
            }
        result = collection("category").delete_one({"_id": category_oid})
        if result.deleted_count == 0:
            return {"success": False, "error": "Category not found"}
    except Exception as e:
        logger.error("Error deleting category: %s", e)
        return {"success": False, "error": str(e) or "Failed to delete category"}
    cache.invalidate(*CATALOG_TAGS)
    return {"success": True}


@protected.get("/categories")
def admin_categories():
    return {"categories": list_categories_with_counts()}


@protected.get("/categories/{category_id}")
def admin_category(category_id: str):
    category = collection("category").find_one({"_id": oid(category_id)})
    if not category:
        raise NotFound("Category not found")
    shown = serialize(category)
    shown["product_count"] = collection("product").count_documents({"category_id": category_id})
    return shown


@protected.post("/categories")
def admin_create_category(payload: CategoryForm):
    return create_category(payload)


@protected.put("/categories/{category_id}")
def admin_update_category(category_id: str, payload: CategoryForm):
    return update_category(category_id, payload)


@protected.delete("/categories/{category_id}")
def admin_delete_category(category_id: str):
    return delete_category(category_id)


# ---------- Products ----------

def _product_fields(data: ProductForm) -> dict:
    return Product(**data.model_dump()).model_dump(mode="json")


def list_admin_products(search: str = "", category_id: Optional[str] = None, page: int = 1, limit: int = 10) -> dict:
    filt = {}
    if search:
        filt["$or"] = [{"title": _contains(search)}, {"slug": _contains(search)}]
    if category_id:
        filt["category_id"] = category_id
    docs = list(collection("product").find(filt).sort("created_at", -1).skip((page - 1) * limit).limit(limit))
    total = collection("product").count_documents(filt)
    categories = categories_by_id(docs)
    return {"products": [present_product(d, categories) for d in docs], "pagination": pagination(total, page, limit)}


def create_product(data: ProductForm) -> dict:
    try:
        if not collection("category").find_one({"_id": oid(data.category_id)}):
            return {"success": False, "error": "Category not found"}
        product_id = create_document("product", _product_fields(data))
    except DuplicateKeyError:
        return {"success": False, "error": "A product with this slug already exists"}
    except Exception as e:
        logger.error("Error creating product: %s", e)
        return {"success": False, "error": str(e) or "Failed to create product"}
    cache.invalidate(*CATALOG_TAGS)
    return {"success": True, "product": present_product(collection("product").find_one({"_id": oid(product_id)}))}


def update_product(product_id: str, data: ProductForm) -> dict:
    product_oid = oid(product_id)
    fields = _product_fields(data)
    fields["updated_at"] = now()
    try:
        # size_stock is replaced as a whole, never merged
        result = collection("product").update_one({"_id": product_oid}, {"$set": fields})
        if result.matched_count == 0:
            return {"success": False, "error": "Product not found"}
    except DuplicateKeyError:
        return {"success": False, "error": "A product with this slug already exists"}
    except Exception as e:
        logger.error("Error updating product: %s", e)
        return {"success": False, "error": str(e) or "Failed to update product"}
    cache.invalidate(*CATALOG_TAGS)
    return {"success": True, "product": present_product(collection("product").find_one({"_id": product_oid}))}


def delete_product(product_id: str) -> dict:
    try:
        result = collection("product").delete_one({"_id": oid(product_id)})
        if result.deleted_count == 0:
            return {"success": False, "error": "Product not found"}
    except Exception as e:
        logger.error("Error deleting product: %s", e)
        return {"success": False, "error": str(e) or "Failed to delete product"}
    cache.invalidate(*CATALOG_TAGS)
    return {"success": True}


@protected.get("/products")
def admin_products(
    search: str = "",
    category_id: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    return list_admin_products(search, category_id, page, limit)


@protected.get("/products/{product_id}")
def admin_product(product_id: str):
    doc = collection("product").find_one({"_id": oid(product_id)})
    if not doc:
        raise NotFound("Product not found")
    return present_product(doc, categories_by_id([doc]))


@protected.post("/products")
def admin_create_product(payload: ProductForm):
    return create_product(payload)


@protected.put("/products/{product_id}")
def admin_update_product(product_id: str, payload: ProductForm):
    return update_product(product_id, payload)


@protected.delete("/products/{product_id}")
def admin_delete_product(product_id: str):
    return delete_product(product_id)


# ---------- Orders ----------

def _attach_customer(order: dict, users: dict) -> dict:
    user = users.get(order["user_id"])
    order["user"] = {"email": user.get("email"), "name": full_name(user)} if user else None
    return order


def _users_by_id(ids) -> dict:
    docs = collection("user").find({"_id": {"$in": [oid(i) for i in set(ids)]}})
    return {str(d["_id"]): d for d in docs}


def list_admin_orders(search: str = "", status: Optional[OrderStatus] = None, page: int = 1, limit: int = 20) -> dict:
    def load():
        filt = {}
        if search:
            user_ids = [str(u["_id"]) for u in collection("user").find({"email": _contains(search)})]
            filt["$or"] = [{"order_number": _contains(search)}, {"user_id": {"$in": user_ids}}]
        if status:
            filt["status"] = status.value
        docs = list(collection("order").find(filt).sort("created_at", -1).skip((page - 1) * limit).limit(limit))
        total = collection("order").count_documents(filt)
        users = _users_by_id(d["user_id"] for d in docs)
        return {
            "orders": [_attach_customer(present_order(d), users) for d in docs],
            "pagination": pagination(total, page, limit),
        }

    status_key = status.value if status else "all"
    key = f"admin-orders-{search}-{status_key}-{page}-{limit}"
    return cache.cached(key, load, ADMIN_ORDERS_TTL, tags=["admin-orders", f"admin-orders-{status_key}"])


def order_statistics() -> dict:
    orders = collection("order")
    revenue = 0
    for doc in orders.find({"status": {"$ne": OrderStatus.CANCELLED.value}}, {"total_cents": 1}):
        revenue += int(doc.get("total_cents", 0))
    return {
        "total_orders": orders.count_documents({}),
        "pending_orders": orders.count_documents({"status": OrderStatus.PENDING.value}),
        "processing_orders": orders.count_documents({"status": OrderStatus.PROCESSING.value}),
        "delivered_orders": orders.count_documents({"status": OrderStatus.DELIVERED.value}),
        "total_revenue": round(revenue / 100, 2),
    }


@protected.get("/orders")
def admin_orders(
    search: str = "",
    status: Optional[OrderStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    return list_admin_orders(search, status, page, limit)


@protected.get("/orders/stats")
def admin_order_stats():
    return order_statistics()


@protected.get("/orders/{order_id}")
def admin_order(order_id: str):
    doc = collection("order").find_one({"_id": oid(order_id)})
    if not doc:
        raise NotFound("Order not found")
    return _attach_customer(present_order(doc), _users_by_id([doc["user_id"]]))


@protected.put("/orders/{order_id}/status")
def admin_update_order_status(order_id: str, payload: OrderStatusUpdate):
    order_oid = oid(order_id)
    if not collection("order").find_one({"_id": order_oid}):
        raise NotFound("Order not found")
    set_order_status(order_oid, payload.status)
    logger.info("Order %s set to %s by admin", order_id, payload.status.value)
    return {"success": True, "status": payload.status.value}


# ---------- Customers ----------

def _customer_stats(user: dict) -> tuple:
    orders = list(collection("order").find({"user_id": str(user["_id"])}).sort("created_at", -1))
    shown = serialize(user)
    shown["total_orders"] = len(orders)
    spent = sum(int(o.get("total_cents", 0)) for o in orders if o.get("status") != OrderStatus.CANCELLED.value)
    shown["total_spent"] = round(spent / 100, 2)
    shown["last_order_date"] = orders[0].get("created_at") if orders else None
    return shown, orders


def list_customers(search: str = "", page: int = 1, limit: int = 20) -> dict:
    filt = {}
    if search:
        pattern = _contains(search)
        filt["$or"] = [{"email": pattern}, {"first_name": pattern}, {"last_name": pattern}]
    docs = collection("user").find(filt).sort("created_at", -1).skip((page - 1) * limit).limit(limit)
    total = collection("user").count_documents(filt)
    return {"customers": [_customer_stats(u)[0] for u in docs], "pagination": pagination(total, page, limit)}


@protected.get("/customers")
def admin_customers(search: str = "", page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=100)):
    return list_customers(search, page, limit)


@protected.get("/customers/{customer_id}")
def admin_customer(customer_id: str):
    user = collection("user").find_one({"_id": oid(customer_id)})
    if not user:
        raise NotFound("Customer not found")
    shown, orders = _customer_stats(user)
    shown["orders"] = [present_order(o) for o in orders]
    return shown


# ---------- Seed ----------

@protected.post("/seed")
def admin_seed(force: bool = False):
    result = seed_catalog(force=force)
    cache.invalidate(*CATALOG_TAGS)
    return result
