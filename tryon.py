"""
AI virtual try-on.

Entitlements live on the user document: ``ai_enabled`` turns on generated
images for trial products, ``has_premium`` (bought once through Stripe)
unlocks every product, ``trial_used`` records that the free trial was taken.
Image generation itself runs on an external service.
"""
import logging
from typing import Dict, Optional

import requests
import stripe
from fastapi import APIRouter, Depends

import settings
from auth import require_user, user_id
from catalog import get_trial_products
from database import collection, now
from errors import Forbidden, PaymentError, StoreError, UpstreamError, ValidationFailed
from orders import PREMIUM_PURCHASE, grant_premium
from schemas import EnableAIRequest, TryOnRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["try-on"])

TRIAL_PATH = "/api/v1/trial"


def user_status(user: dict) -> dict:
    return {
        "has_premium": bool(user.get("has_premium")),
        "ai_enabled": bool(user.get("ai_enabled")),
        "trial_used": bool(user.get("trial_used")),
    }


def enable_ai(user: dict, plan: str) -> dict:
    # Premium turns AI on through the payment webhook.
    if plan == "trial" and not user.get("ai_enabled"):
        if user.get("trial_used"):
            raise ValidationFailed("Free trial already used")
        collection("user").update_one(
            {"_id": user["_id"]},
            {"$set": {"ai_enabled": True, "trial_used": True, "updated_at": now()}},
        )
        logger.info("AI enabled for user %s (trial plan)", user["_id"])
    return {"success": True}


def activate_premium(user: dict) -> dict:
    if user.get("has_premium"):
        return {"success": True, "message": "User already has premium", "has_premium": True,
                "ai_enabled": bool(user.get("ai_enabled"))}
    grant_premium(user_id(user))
    return {"success": True, "message": "Premium activated successfully", "has_premium": True, "ai_enabled": True}


def create_premium_checkout(user: dict) -> dict:
    if not settings.STRIPE_SECRET_KEY:
        raise StoreError("Stripe not configured", 500)
    if user.get("has_premium"):
        raise ValidationFailed("You already have Premium access")
    if not user.get("email"):
        raise ValidationFailed("Missing required fields")

    try:
        session = stripe.checkout.Session.create(
            mode="payment",
            payment_method_types=["card"],
            line_items=[{
                "quantity": 1,
                "price_data": {
                    "currency": settings.CURRENCY,
                    "unit_amount": settings.PREMIUM_PRICE_CENTS,
                    "product_data": {
                        "name": "Premium Virtual Try-On Access",
                        "description": "Lifetime access to all products in virtual try-on",
                    },
                },
            }],
            customer_email=user["email"],
            metadata={"user_id": user_id(user), "auth_id": user.get("auth_id", ""), "type": PREMIUM_PURCHASE},
            success_url=f"{settings.FRONTEND_URL}/tryonyou?premium=success",
            cancel_url=f"{settings.FRONTEND_URL}/tryonyou?premium=cancelled",
        )
    except Exception as e:
        logger.error("Error creating premium checkout session: %s", e)
        raise PaymentError("Failed to create checkout session")
    return {"url": session.url}


def garment_images(category_slug: Optional[str] = None, plan: str = "trial") -> Dict[str, str]:
    """Map of product id to first image URL for the try-on picker."""
    premium = plan in ("premium", "subscribed")
    products = get_trial_products(category_slug, 100, trial_only=not premium)
    images = {}
    for product in products:
        if product.get("images"):
            images[product["id"]] = product["images"][0]
        else:
            logger.warning("Product %s has no images", product["id"])
    return images


def request_trial(user: dict, person_image: Optional[str], garments: Optional[Dict[str, str]]) -> dict:
    if not user.get("email"):
        raise ValidationFailed("User email not found. Please update your profile with an email address.")
    if not person_image:
        raise ValidationFailed("person_image is required")
    if not garments:
        raise ValidationFailed("garment_images is required and must not be empty")
    if not user.get("has_premium") and not user.get("ai_enabled"):
        raise Forbidden("Enable the free trial or upgrade to Premium to use virtual try-on")

    headers = {"Content-Type": "application/json"}
    if settings.TRY_ON_API_SECRET_KEY:
        headers["Authorization"] = f"Bearer {settings.TRY_ON_API_SECRET_KEY}"

    url = f"{settings.TRY_ON_API_URL.rstrip('/')}{TRIAL_PATH}"
    logger.info("Sending try-on request for user %s with %d garments", user["_id"], len(garments))
    try:
        response = requests.post(
            url,
            json={
                "user_id": user_id(user),
                "email": user["email"],
                "garment_images": garments,
                "person_image": person_image,
            },
            headers=headers,
            timeout=settings.TRY_ON_TIMEOUT,
        )
    except requests.RequestException as e:
        logger.error("Try-on service unreachable: %s", e)
        raise UpstreamError("Try-on service unavailable", 502, str(e))

    if not response.ok:
        logger.error("Try-on service error %s: %s", response.status_code, response.text)
        raise UpstreamError(f"External API error: {response.reason}", response.status_code, response.text)

    return {"success": True, **response.json()}


@router.get("/user/status")
def status(user: dict = Depends(require_user)):
    return user_status(user)


@router.post("/user/enable-ai")
def enable_ai_route(payload: EnableAIRequest, user: dict = Depends(require_user)):
    return enable_ai(user, payload.plan)


@router.post("/user/activate-premium")
def activate_premium_route(user: dict = Depends(require_user)):
    return activate_premium(user)


@router.post("/payment/premium-checkout")
def premium_checkout(user: dict = Depends(require_user)):
    return create_premium_checkout(user)


@router.get("/products/trial")
def trial_products(category: Optional[str] = None, plan: str = "trial"):
    return {"success": True, "garment_images": garment_images(category, plan)}


@router.post("/try-on/trial")
def try_on_trial(payload: TryOnRequest, user: dict = Depends(require_user)):
    return request_trial(user, payload.person_image, payload.garment_images)
