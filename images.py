"""
Smart image resolution.

Decides per product image whether the viewer sees the stock photo or an
AI-generated image of themselves wearing the product. Generated images are
stored on Cloudinary under a deterministic public id, so resolving one is a
single Admin API lookup.

Resolution never fails: a missing image and a Cloudinary error both fall back
to the original URL.
"""
import logging
from typing import List, Optional

import cloudinary
import cloudinary.api
import cloudinary.exceptions
import cloudinary.uploader
from fastapi import APIRouter, Depends, File, Form, UploadFile

import settings
from auth import get_current_user, require_admin, user_id as current_user_id
from database import collection, oid
from errors import NotFound, UpstreamError, ValidationFailed

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["images"])

USER_IMAGE_FOLDER = "ecommerce-products/users"
PRODUCT_IMAGE_FOLDER = "ecommerce-products"
AVATAR_FOLDER = "avatar"

if settings.CLOUDINARY_CLOUD_NAME:
    cloudinary.config(
        cloud_name=settings.CLOUDINARY_CLOUD_NAME,
        api_key=settings.CLOUDINARY_API_KEY,
        api_secret=settings.CLOUDINARY_API_SECRET,
        secure=True,
    )


def user_image_public_id(user_id: str, product_id: str, image_index: int = 0, is_premium: bool = False) -> str:
    # premium: <product>_<user>, trial: <user>_<product>
    suffix = f"_{image_index}" if image_index > 0 else ""
    if is_premium:
        return f"{USER_IMAGE_FOLDER}/{product_id}_{user_id}{suffix}"
    return f"{USER_IMAGE_FOLDER}/{user_id}_{product_id}{suffix}"


def get_user_specific_image_url(user_id: str, product_id: str, image_index: int = 0, is_premium: bool = False) -> Optional[str]:
    public_id = user_image_public_id(user_id, product_id, image_index, is_premium)
    try:
        resource = cloudinary.api.resource(public_id, resource_type="image")
    except cloudinary.exceptions.NotFound:
        logger.debug("No generated image at %s", public_id)
        return None
    except Exception as e:
        logger.error("Error checking Cloudinary resource %s: %s", public_id, e)
        return None
    return resource.get("secure_url") or None


def get_best_image_url(
    original_url: str,
    user_id: Optional[str],
    product_id: str,
    has_premium: bool,
    ai_enabled: bool,
    is_trial_product: bool,
    image_index: int = 0,
) -> str:
    if not user_id:
        return original_url

    if has_premium:
        return get_user_specific_image_url(user_id, product_id, image_index, is_premium=True) or original_url

    if ai_enabled and is_trial_product:
        return get_user_specific_image_url(user_id, product_id, image_index, is_premium=False) or original_url

    return original_url


def resolve_product_images(product: dict, user: Optional[dict]) -> List[dict]:
    """
    Resolve every image of a presented product for the viewer.

    Each entry has the ``original`` URL, the ``generated`` URL (or ``None``) and
    the ``url`` to show first. Clients offer an original/generated toggle only
    when ``generated`` is set.
    """
    uid = current_user_id(user) if user else None
    resolved = []
    for index, original in enumerate(product.get("images", [])):
        url = get_best_image_url(
            original,
            uid,
            product["id"],
            bool(user and user.get("has_premium")),
            bool(user and user.get("ai_enabled")),
            bool(product.get("is_trial")),
            index,
        )
        generated = url if url != original else None
        resolved.append({"original": original, "generated": generated, "url": url})
    return resolved


def upload_image(file, folder: str, public_id: Optional[str] = None) -> dict:
    options = {"folder": folder, "resource_type": "auto"}
    if public_id:
        options["public_id"] = public_id
    try:
        result = cloudinary.uploader.upload(file, **options)
    except Exception as e:
        logger.error("Cloudinary upload failed: %s", e)
        raise UpstreamError("Failed to upload to Cloudinary. Please check your configuration.", 500, str(e))
    return {
        "url": result["secure_url"],
        "public_id": result["public_id"],
        "width": result.get("width"),
        "height": result.get("height"),
    }


def sanitize_name(name: Optional[str]) -> str:
    if not name:
        return ""
    return "".join(c if c.isascii() and c.isalnum() else "_" for c in name).lower()[:20]


@router.get("/images/resolve")
def resolve_image(product_id: str, url: str, index: int = 0, user: Optional[dict] = Depends(get_current_user)):
    product = collection("product").find_one({"_id": oid(product_id)})
    if not product:
        raise NotFound("Product not found")
    resolved = get_best_image_url(
        url,
        current_user_id(user) if user else None,
        product_id,
        bool(user and user.get("has_premium")),
        bool(user and user.get("ai_enabled")),
        bool(product.get("is_trial")),
        index,
    )
    return {"url": resolved, "original": url, "generated": resolved != url}


@router.post("/upload", dependencies=[Depends(require_admin)])
def upload_product_image(file: Optional[UploadFile] = File(None)):
    if file is None:
        raise ValidationFailed("No file provided")
    return upload_image(file.file, PRODUCT_IMAGE_FOLDER)


@router.post("/upload/avatar")
def upload_avatar(
    file: Optional[UploadFile] = File(None),
    user_name: Optional[str] = Form(None, alias="userName"),
    user: Optional[dict] = Depends(get_current_user),
):
    if file is None:
        raise ValidationFailed("No file provided")
    uid = current_user_id(user) if user else "anonymous"
    name = sanitize_name(user_name)
    public_id = f"{uid}_{name}" if name else uid
    return upload_image(file.file, AVATAR_FOLDER, public_id)
