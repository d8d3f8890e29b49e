from types import SimpleNamespace

import pytest
import requests

import settings
from errors import Forbidden, UpstreamError, ValidationFailed
from tryon import create_premium_checkout, enable_ai, garment_images, request_trial

GARMENTS = {"p1": "https://img.example.com/tee.jpg"}


@pytest.fixture
def try_on_service(monkeypatch):
    """Fake try-on service; set ``reply`` to change what it answers."""
    state = {"calls": [], "reply": SimpleNamespace(ok=True, status_code=200, reason="OK", text="",
                                                   json=lambda: {"job_id": "job_1"})}

    def post(url, **kwargs):
        state["calls"].append({"url": url, **kwargs})
        return state["reply"]

    monkeypatch.setattr(settings, "TRY_ON_API_URL", "https://tryon.example.com/")
    monkeypatch.setattr(settings, "TRY_ON_API_SECRET_KEY", "tryon-key")
    monkeypatch.setattr(requests, "post", post)
    return state


def reload(mongo, user):
    return mongo["user"].find_one({"_id": user["_id"]})


def test_enable_trial_once(mongo, user):
    enable_ai(user, "trial")

    updated = reload(mongo, user)
    assert updated["ai_enabled"] is True
    assert updated["trial_used"] is True


def test_trial_cannot_be_taken_twice(mongo, user):
    mongo["user"].update_one({"_id": user["_id"]}, {"$set": {"trial_used": True}})

    with pytest.raises(ValidationFailed, match="already used"):
        enable_ai(reload(mongo, user), "trial")


def test_premium_plan_does_not_enable_ai(mongo, user):
    enable_ai(user, "premium")

    assert reload(mongo, user)["ai_enabled"] is False


def test_premium_checkout(mongo, user, stripe_sessions):
    result = create_premium_checkout(user)

    assert result["url"].startswith("https://checkout.stripe.com")
    session = stripe_sessions[0]
    assert session["metadata"]["type"] == "premium_purchase"
    assert session["metadata"]["user_id"] == str(user["_id"])
    assert session["line_items"][0]["price_data"]["unit_amount"] == 5000


def test_premium_checkout_rejected_for_premium_user(mongo, user, stripe_sessions):
    mongo["user"].update_one({"_id": user["_id"]}, {"$set": {"has_premium": True}})

    with pytest.raises(ValidationFailed):
        create_premium_checkout(reload(mongo, user))
    assert stripe_sessions == []


def test_garment_images_follow_plan(make_product):
    trial_id = make_product(is_trial=True, images=["https://img.example.com/trial.jpg"])
    regular_id = make_product(images=["https://img.example.com/regular.jpg"])
    make_product(is_trial=True, images=[])

    assert garment_images(plan="trial") == {trial_id: "https://img.example.com/trial.jpg"}
    assert set(garment_images(plan="premium")) == {trial_id, regular_id}


def test_garment_images_for_unknown_category(make_product):
    make_product(is_trial=True)

    assert garment_images("no-such-category") == {}


def test_trial_requires_entitlement(user, try_on_service):
    with pytest.raises(Forbidden):
        request_trial(user, "https://img.example.com/me.jpg", GARMENTS)
    assert try_on_service["calls"] == []


def test_trial_validates_input(user, try_on_service):
    with pytest.raises(ValidationFailed):
        request_trial(user, None, GARMENTS)
    with pytest.raises(ValidationFailed):
        request_trial(user, "https://img.example.com/me.jpg", {})


def test_trial_forwards_to_service(mongo, user, try_on_service):
    mongo["user"].update_one({"_id": user["_id"]}, {"$set": {"ai_enabled": True}})

    result = request_trial(reload(mongo, user), "https://img.example.com/me.jpg", GARMENTS)

    assert result == {"success": True, "job_id": "job_1"}
    call = try_on_service["calls"][0]
    assert call["url"] == "https://tryon.example.com/api/v1/trial"
    assert call["headers"]["Authorization"] == "Bearer tryon-key"
    assert call["json"]["garment_images"] == GARMENTS
    assert call["json"]["email"] == "shopper@example.com"


def test_service_error_is_passed_through(client, mongo, auth_headers, user, try_on_service):
    mongo["user"].update_one({"_id": user["_id"]}, {"$set": {"has_premium": True}})
    try_on_service["reply"] = SimpleNamespace(ok=False, status_code=429, reason="Too Many Requests",
                                              text="slow down", json=lambda: {})

    resp = client.post(
        "/api/try-on/trial",
        json={"person_image": "https://img.example.com/me.jpg", "garment_images": GARMENTS},
        headers=auth_headers,
    )

    assert resp.status_code == 429
    assert resp.json() == {"detail": "External API error: Too Many Requests", "details": "slow down"}


def test_unreachable_service(mongo, user, monkeypatch):
    def refuse(url, **kwargs):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(requests, "post", refuse)
    mongo["user"].update_one({"_id": user["_id"]}, {"$set": {"has_premium": True}})

    with pytest.raises(UpstreamError) as exc:
        request_trial(reload(mongo, user), "https://img.example.com/me.jpg", GARMENTS)
    assert exc.value.status_code == 502


def test_status_and_enable_api(client, auth_headers):
    assert client.get("/api/user/status", headers=auth_headers).json() == {
        "has_premium": False, "ai_enabled": False, "trial_used": False,
    }

    client.post("/api/user/enable-ai", json={"plan": "trial"}, headers=auth_headers)
    status = client.get("/api/user/status", headers=auth_headers).json()
    assert status["ai_enabled"] is True
    assert status["trial_used"] is True

    client.post("/api/user/enable-ai", json={"plan": "trial"}, headers=auth_headers)
    assert client.get("/api/user/status", headers=auth_headers).json()["ai_enabled"] is True


def test_activate_premium_api(client, auth_headers):
    resp = client.post("/api/user/activate-premium", headers=auth_headers)

    assert resp.json()["has_premium"] is True
    assert client.get("/api/user/status", headers=auth_headers).json()["has_premium"] is True
