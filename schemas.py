"""
Database Schemas

MongoDB collection schemas for the store, defined as Pydantic models.
Model name is converted to lowercase for the collection name:
- User -> "user" collection
- Product -> "product" collection
- CartItem -> "cartitem" collection
- WishlistItem -> "wishlistitem" collection

Request bodies accepted by the API live at the bottom of the module.
"""
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class User(BaseModel):
    """
    Users collection schema
    Collection name: "user"
    """
    auth_id: str = Field(..., description="Identity provider user id")
    email: str = Field("", description="Email address")
    first_name: Optional[str] = Field(None, description="First name")
    last_name: Optional[str] = Field(None, description="Last name")
    image_url: Optional[str] = Field(None, description="Avatar URL")
    has_premium: bool = Field(False, description="One-time premium purchase unlocked")
    ai_enabled: bool = Field(False, description="AI try-on images enabled")
    trial_used: bool = Field(False, description="Free try-on trial already taken")


class Category(BaseModel):
    """
    Categories collection schema
    Collection name: "category"
    """
    name: str = Field(..., description="Display name")
    slug: str = Field(..., description="URL-friendly unique identifier")
    description: Optional[str] = Field(None, description="Category description")


class SizeStock(BaseModel):
    size: str = Field(..., description="Size label")
    quantity: int = Field(0, ge=0, description="Units in stock for this size")


class Product(BaseModel):
    """
    Products collection schema
    Collection name: "product"
    """
    title: str = Field(..., description="Product title")
    slug: str = Field(..., description="URL-friendly unique identifier")
    description: Optional[str] = Field(None, description="Product description")
    price_cents: int = Field(..., ge=0, description="Price in cents")
    currency: str = Field("usd", description="ISO currency code")
    stock: int = Field(0, ge=0, description="Units in stock across all sizes")
    images: List[str] = Field(default_factory=list, description="Image URLs")
    featured: bool = Field(False, description="Shown on the homepage")
    is_trial: bool = Field(False, description="Eligible for the free try-on trial")
    sizes: List[str] = Field(default_factory=list, description="Available sizes")
    size_stock: List[SizeStock] = Field(default_factory=list, description="Per-size inventory")
    category_id: str = Field(..., description="Owning category id")


class Cart(BaseModel):
    """Carts collection schema, one per user"""
    user_id: str


class CartItem(BaseModel):
    """Cart lines; (cart_id, product_id, size) is unique"""
    cart_id: str
    product_id: str
    size: Optional[str] = None
    quantity: int = Field(1, ge=1)


class OrderItem(BaseModel):
    product_id: str = Field(..., description="Product ID")
    title: str = Field(..., description="Snapshot of the product title at purchase time")
    size: Optional[str] = None
    quantity: int = Field(..., ge=1, description="Quantity ordered")
    price_cents: int = Field(..., ge=0, description="Unit price at purchase time")


class Order(BaseModel):
    """Orders collection schema"""
    order_number: str = Field(..., description="Human readable order number")
    user_id: str = Field(..., description="ID of the user placing the order")
    status: OrderStatus = Field(OrderStatus.PENDING, description="Order status")
    items: List[OrderItem] = Field(..., description="Line items")
    total_cents: int = Field(..., ge=0, description="Total amount in cents")
    currency: str = Field("usd", description="Currency")
    customer_email: str = Field("", description="Customer email")
    customer_name: str = Field("", description="Customer name")
    stripe_session_id: Optional[str] = Field(None, description="Stripe checkout session id")
    stripe_payment_id: Optional[str] = Field(None, description="Stripe payment intent id")
    shipping_address: Optional[str] = Field(None, description="JSON snapshot of shipping details")


class WishlistItem(BaseModel):
    """Wishlist collection schema; (user_id, product_id) is unique"""
    user_id: str
    product_id: str


# ---------- Request bodies ----------

class AddToCartRequest(BaseModel):
    product_id: str
    quantity: int = 1
    size: Optional[str] = None


class UpdateQuantityRequest(BaseModel):
    quantity: int


class WishlistRequest(BaseModel):
    product_id: str


class AdminLoginRequest(BaseModel):
    email: str
    password: str


class CategoryForm(BaseModel):
    name: str
    slug: str
    description: Optional[str] = None


class ProductForm(BaseModel):
    title: str
    slug: str
    description: Optional[str] = None
    price_cents: int = Field(..., ge=0)
    stock: int = Field(0, ge=0)
    category_id: str
    images: List[str] = Field(default_factory=list)
    featured: bool = False
    is_trial: bool = False
    sizes: List[str] = Field(default_factory=list)
    size_stock: List[SizeStock] = Field(default_factory=list)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class EnableAIRequest(BaseModel):
    plan: str


class TryOnRequest(BaseModel):
    person_image: Optional[str] = None
    garment_images: Optional[Dict[str, str]] = None
