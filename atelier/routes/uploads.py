"""
Image upload and deletion routes used by the editor and the gallery form.
Uploads are converted to WebP before they go to Cloudinary.
"""
from fastapi import APIRouter, Depends, HTTPException, status, UploadFile, File, Form, Request
from cloudinary.exceptions import Error as CloudinaryError
from typing import Optional
import logging

from atelier.config import settings
from atelier.models import User
from atelier.schemas import ImageDeleteRequest, UploadResponse
from atelier.services.cloudinary_service import delete_image, extract_public_id_from_url, upload_image
from atelier.services.post_images import temp_folder, uploads_folder
from atelier.utils.image_converter import convert_to_webp, get_image_dimensions
from atelier.utils.jwt_auth import require_roles
from atelier.utils.permissions import EDITOR_ROLES
from atelier.utils.rate_limit import limiter, RATE_LIMITS

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_UPLOAD_BYTES = 20 * 1024 * 1024
UPLOAD_TARGETS = ("posts", "gallery")


@router.post("/upload", response_model=UploadResponse)
@limiter.limit(RATE_LIMITS["upload"])
async def upload(
    request: Request,
    file: UploadFile = File(...),
    isTemp: Optional[str] = Form(None),
    target: str = Form("posts"),
    user: User = Depends(require_roles(*EDITOR_ROLES)),
):
    """
    Upload one image.

    Args:
        file: Image file (multipart field "file")
        isTemp: "true" to park the image in the caller's temp folder until the post is saved
        target: "posts" (default) or "gallery"

    Returns:
        UploadResponse: url, width, height

    Raises:
        HTTPException: 400 for non-image or oversized files, 500 if the upload fails
    """
    if not file.content_type or not file.content_type.startswith("image/"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Invalid file type", "detail": f"File '{file.filename}' is not a valid image file"}
        )
    if target not in UPLOAD_TARGETS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Invalid upload target", "allowed": list(UPLOAD_TARGETS)}
        )

    try:
        content = await file.read()
        if not content:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"error": "Empty file"}
            )
        if len(content) > MAX_UPLOAD_BYTES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"error": "File too large", "detail": f"Maximum size is {MAX_UPLOAD_BYTES // (1024 * 1024)}MB"}
            )

        converted, conversion_success = await convert_to_webp(content, quality=85, skip_if_webp=True)
        if conversion_success and len(converted) < len(content):
            content = converted
        elif not conversion_success:
            logger.warning(f"WebP conversion failed for {file.filename}, uploading original format")

        if target == "gallery":
            folder = settings.CLOUDINARY_GALLERY_FOLDER
        elif isTemp == "true":
            folder = temp_folder(user.id)
        else:
            folder = uploads_folder()

        result = await upload_image(content, folder=folder)

        width, height = result.get("width"), result.get("height")
        if not width or not height:
            dimensions = get_image_dimensions(content)
            if dimensions:
                width, height = dimensions

        logger.info(f"Uploaded {file.filename} to {folder} by {user.id}: {result['url']}")

        return UploadResponse(url=result["url"], width=width, height=height)

    except HTTPException:
        raise
    except CloudinaryError as e:
        logger.error(f"Cloudinary upload failed for {file.filename}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Image upload failed", "detail": str(e)}
        )
    except Exception as e:
        logger.error(f"Error uploading image: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Image upload failed", "detail": str(e)}
        )


@router.post("/images/delete")
async def delete_uploaded_image(
    payload: ImageDeleteRequest,
    user: User = Depends(require_roles(*EDITOR_ROLES)),
):
    """
    Remove a stored image by URL.

    Raises:
        HTTPException: 400 if the URL is not a Cloudinary URL, 500 if deletion fails
    """
    try:
        public_id = extract_public_id_from_url(payload.image_url)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Invalid image URL", "detail": str(e)}
        )

    try:
        result = await delete_image(public_id)
        logger.info(f"User {user.id} deleted image {public_id}")
        return {"success": True, "result": result.get("result")}

    except Exception as e:
        logger.error(f"Error deleting image {public_id}: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to delete image", "detail": str(e)}
        )
