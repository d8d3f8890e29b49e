import logging

from database import collection, create_document
from schemas import Category, Product, SizeStock

logger = logging.getLogger(__name__)

SEED_CATEGORIES = [
    Category(name="Men's Fashion", slug="mens-fashion", description="Stylish clothing and accessories for men"),
    Category(name="Women's Fashion", slug="womens-fashion", description="Elegant clothing and accessories for women"),
    Category(name="Kids", slug="kids", description="Stylish and comfortable fashion for kids"),
]

APPAREL_SIZES = ["S", "M", "L", "XL"]


def _sized(*quantities: int) -> list:
    return [SizeStock(size=size, quantity=qty) for size, qty in zip(APPAREL_SIZES, quantities)]


# (category slug, product)
SEED_PRODUCTS = [
    ("mens-fashion", dict(
        title="Classic White T-Shirt",
        slug="classic-white-tshirt",
        description="Premium quality cotton t-shirt. Comfortable and versatile.",
        price_cents=2999,
        featured=True,
        is_trial=True,
        images=[
            "https://images.unsplash.com/photo-1521572163474-6864f9cf17ab",
            "https://images.unsplash.com/photo-1583743814966-8936f5b7be1a",
        ],
        sizes=APPAREL_SIZES,
        size_stock=_sized(25, 30, 30, 15),
    )),
    ("mens-fashion", dict(
        title="Slim Fit Jeans",
        slug="slim-fit-jeans",
        description="Modern slim fit jeans with stretch fabric for ultimate comfort.",
        price_cents=7999,
        featured=True,
        images=["https://images.unsplash.com/photo-1542272604-787c3835535d"],
        sizes=APPAREL_SIZES,
        size_stock=_sized(10, 15, 15, 10),
    )),
    ("mens-fashion", dict(
        title="Leather Jacket",
        slug="leather-jacket",
        description="Genuine leather jacket with premium stitching and classic design.",
        price_cents=29999,
        images=["https://images.unsplash.com/photo-1551028719-00167b16eac5"],
        sizes=APPAREL_SIZES,
        size_stock=_sized(5, 5, 5, 5),
    )),
    ("womens-fashion", dict(
        title="Summer Dress",
        slug="summer-dress",
        description="Flowy summer dress perfect for warm weather. Light and breathable.",
        price_cents=8999,
        featured=True,
        is_trial=True,
        images=["https://images.unsplash.com/photo-1572804013309-59a88b7e92f1"],
        sizes=APPAREL_SIZES,
        size_stock=_sized(10, 10, 10, 10),
    )),
    ("womens-fashion", dict(
        title="Silk Blouse",
        slug="silk-blouse",
        description="Elegant silk blouse for formal and casual occasions.",
        price_cents=12999,
        featured=True,
        images=["https://images.unsplash.com/photo-1564859228273-274232fdb516"],
        sizes=APPAREL_SIZES,
        size_stock=_sized(8, 8, 8, 6),
    )),
    ("kids", dict(
        title="Kids Rain Jacket",
        slug="kids-rain-jacket",
        description="Waterproof jacket with a soft fleece lining.",
        price_cents=4999,
        is_trial=True,
        images=["https://images.unsplash.com/photo-1519238263530-99bdd11df2ea"],
        stock=40,
    )),
]


def seed_catalog(force: bool = False) -> dict:
    """Insert the demo catalog. Only runs on an empty catalog unless ``force``."""
    products = collection("product")
    categories = collection("category")
    if not force and products.count_documents({}) > 0:
        return {"status": "ok", "message": "Already seeded"}

    if force:
        products.delete_many({})
        categories.delete_many({})

    category_ids = {}
    for category in SEED_CATEGORIES:
        existing = categories.find_one({"slug": category.slug})
        category_ids[category.slug] = str(existing["_id"]) if existing else create_document("category", category)

    for slug, fields in SEED_PRODUCTS:
        fields = dict(fields)
        if fields.get("size_stock"):
            fields["stock"] = sum(s.quantity for s in fields["size_stock"])
        create_document("product", Product(category_id=category_ids[slug], **fields))

    logger.info("Seeded %d products", len(SEED_PRODUCTS))
    return {"status": "ok", "seeded": len(SEED_PRODUCTS)}
