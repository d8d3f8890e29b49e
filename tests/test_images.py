import cloudinary.api
import cloudinary.exceptions
import pytest

import images
from images import get_best_image_url, resolve_product_images, sanitize_name, user_image_public_id

ORIGINAL = "https://img.example.com/tee.jpg"


@pytest.fixture
def lookups(monkeypatch):
    """Fake Cloudinary resource lookup; ``found`` maps public ids to URLs."""
    calls = []
    found = {}

    def resource(public_id, **options):
        calls.append(public_id)
        if public_id not in found:
            raise cloudinary.exceptions.NotFound(f"Resource not found - {public_id}")
        return {"public_id": public_id, "secure_url": found[public_id]}

    monkeypatch.setattr(cloudinary.api, "resource", resource)
    return {"calls": calls, "found": found}


def test_public_id_naming():
    assert user_image_public_id("u1", "p1", is_premium=True) == "ecommerce-products/users/p1_u1"
    assert user_image_public_id("u1", "p1", is_premium=False) == "ecommerce-products/users/u1_p1"
    assert user_image_public_id("u1", "p1", 2, is_premium=True) == "ecommerce-products/users/p1_u1_2"


def test_anonymous_viewer_gets_original(lookups):
    assert get_best_image_url(ORIGINAL, None, "p1", True, True, True) == ORIGINAL
    assert lookups["calls"] == []


def test_premium_viewer_without_generated_image_gets_original(lookups):
    assert get_best_image_url(ORIGINAL, "u1", "p1", True, False, False) == ORIGINAL
    assert lookups["calls"] == ["ecommerce-products/users/p1_u1"]


def test_premium_viewer_with_generated_image(lookups):
    lookups["found"]["ecommerce-products/users/p1_u1_1"] = "https://res.cloudinary.com/gen.jpg"

    assert get_best_image_url(ORIGINAL, "u1", "p1", True, False, False, 1) == "https://res.cloudinary.com/gen.jpg"


def test_trial_viewer_only_on_trial_products(lookups):
    lookups["found"]["ecommerce-products/users/u1_p1"] = "https://res.cloudinary.com/trial.jpg"

    assert get_best_image_url(ORIGINAL, "u1", "p1", False, True, True) == "https://res.cloudinary.com/trial.jpg"
    assert get_best_image_url(ORIGINAL, "u1", "p1", False, True, False) == ORIGINAL
    assert get_best_image_url(ORIGINAL, "u1", "p1", False, False, True) == ORIGINAL


def test_cloudinary_error_falls_back(monkeypatch):
    def broken(public_id, **options):
        raise cloudinary.exceptions.Error("rate limited")

    monkeypatch.setattr(cloudinary.api, "resource", broken)

    assert get_best_image_url(ORIGINAL, "u1", "p1", True, True, True) == ORIGINAL


def test_resolve_product_images_marks_generated(lookups):
    user = {"_id": "u1", "has_premium": True, "ai_enabled": True}
    product = {"id": "p1", "images": [ORIGINAL, "https://img.example.com/back.jpg"], "is_trial": False}
    lookups["found"]["ecommerce-products/users/p1_u1"] = "https://res.cloudinary.com/gen.jpg"

    resolved = resolve_product_images(product, user)

    assert resolved[0] == {"original": ORIGINAL, "generated": "https://res.cloudinary.com/gen.jpg", "url": "https://res.cloudinary.com/gen.jpg"}
    assert resolved[1]["generated"] is None
    assert resolved[1]["url"] == "https://img.example.com/back.jpg"


def test_product_detail_for_anonymous_viewer(client, make_product, lookups):
    make_product(slug="plain-tee")

    body = client.get("/api/products/plain-tee").json()

    assert body["display_images"] == [{"original": ORIGINAL, "generated": None, "url": ORIGINAL}]
    assert lookups["calls"] == []


def test_product_detail_for_premium_viewer(client, mongo, auth_headers, user, make_product, lookups):
    product_id = make_product(slug="plain-tee")
    mongo["user"].update_one({"_id": user["_id"]}, {"$set": {"has_premium": True}})
    lookups["found"][f"ecommerce-products/users/{product_id}_{user['_id']}"] = "https://res.cloudinary.com/me.jpg"

    body = client.get("/api/products/plain-tee", headers=auth_headers).json()

    assert body["display_images"][0]["url"] == "https://res.cloudinary.com/me.jpg"


def test_resolve_endpoint(client, make_product, lookups):
    product_id = make_product()

    resp = client.get("/api/images/resolve", params={"product_id": product_id, "url": ORIGINAL})

    assert resp.json() == {"url": ORIGINAL, "original": ORIGINAL, "generated": False}


def test_product_upload_requires_admin(client):
    resp = client.post("/api/upload", files={"file": ("a.jpg", b"img", "image/jpeg")})

    assert resp.status_code == 401


def test_avatar_upload_uses_sanitized_name(client, auth_headers, user, monkeypatch):
    uploads = []

    def upload(file, **options):
        uploads.append(options)
        return {"secure_url": "https://res.cloudinary.com/avatar.jpg", "public_id": options["public_id"]}

    monkeypatch.setattr(images.cloudinary.uploader, "upload", upload)

    resp = client.post(
        "/api/upload/avatar",
        files={"file": ("me.jpg", b"img", "image/jpeg")},
        data={"userName": "Sam Shopper!"},
        headers=auth_headers,
    )

    assert resp.status_code == 200
    assert uploads[0]["folder"] == "avatar"
    assert uploads[0]["public_id"] == f"{user['_id']}_sam_shopper_"


def test_sanitize_name():
    assert sanitize_name("Zoë Smith") == "zo__smith"
    assert sanitize_name(None) == ""
