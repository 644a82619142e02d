"""
Cloudinary service for image upload, relocation and deletion.
All object storage for gallery items, post images and banners lives here.
"""
import cloudinary
import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError
from atelier.config import settings
import logging
import asyncio
import re
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)

# Configure Cloudinary with credentials from settings
cloudinary.config(
    cloud_name=settings.CLOUDINARY_CLOUD_NAME,
    api_key=settings.CLOUDINARY_API_KEY,
    api_secret=settings.CLOUDINARY_API_SECRET,
    secure=True
)

# https://res.cloudinary.com/{cloud}/image/upload[/v{version}]/{public_id}.{ext}
PUBLIC_ID_PATTERN = re.compile(r'/image/upload(?:/v\d+)?/(.+)$')


async def upload_image(
    file: Any,
    folder: str = "gallery",
    public_id: Optional[str] = None,
    max_retries: int = 3
) -> Dict[str, Any]:
    """
    Upload image to Cloudinary with automatic optimization and retry logic.

    Args:
        file: File object, file path, or bytes to upload
        folder: Cloudinary folder path
        public_id: Optional custom public ID for the image
        max_retries: Maximum number of retry attempts for transient failures

    Returns:
        dict: url, public_id, format, width, height, bytes

    Raises:
        CloudinaryError: If upload fails after all retries
    """
    for attempt in range(max_retries):
        try:
            result = await asyncio.to_thread(
                cloudinary.uploader.upload,
                file,
                folder=folder,
                public_id=public_id,
                fetch_format="auto",
                quality="auto",
                transformation=[
                    {
                        "width": 1920,
                        "height": 1920,
                        "crop": "limit"  # Limit max dimensions, maintain aspect ratio
                    }
                ]
            )

            logger.info(f"Successfully uploaded image: {result['public_id']}")

            return {
                "url": result["secure_url"],
                "public_id": result["public_id"],
                "format": result.get("format"),
                "width": result.get("width"),
                "height": result.get("height"),
                "bytes": result.get("bytes")
            }

        except CloudinaryError as e:
            logger.warning(f"Cloudinary upload error (attempt {attempt + 1}/{max_retries}): {str(e)}")

            if attempt < max_retries - 1:
                await asyncio.sleep(2 ** attempt)  # 1s, 2s, 4s backoff
                continue

            logger.error(f"Cloudinary upload failed after {max_retries} attempts: {str(e)}")
            raise


async def delete_image(public_id: str, max_retries: int = 3) -> Dict[str, Any]:
    """
    Delete image from Cloudinary with retry logic.

    Args:
        public_id: Cloudinary public ID of the image to delete
        max_retries: Maximum number of retry attempts for transient failures

    Returns:
        dict: Deletion result from Cloudinary ("ok" or "not found" are both success)

    Raises:
        CloudinaryError: If deletion fails after all retries
    """
    for attempt in range(max_retries):
        try:
            result = await asyncio.to_thread(
                cloudinary.uploader.destroy,
                public_id,
                invalidate=True,  # Invalidate CDN cache
                resource_type='image'
            )

            if result.get('result') in ('ok', 'not found'):
                logger.info(f"Deleted image from Cloudinary: {public_id} (result: {result.get('result')})")
            else:
                logger.warning(f"Unexpected Cloudinary delete result for {public_id}: {result}")
            return result

        except CloudinaryError as e:
            logger.warning(f"Cloudinary delete error (attempt {attempt + 1}/{max_retries}) for {public_id}: {str(e)}")

            if attempt < max_retries - 1:
                await asyncio.sleep(2 ** attempt)
                continue

            logger.error(f"Cloudinary delete failed after {max_retries} attempts for {public_id}: {str(e)}")
            raise


async def rename_image(from_public_id: str, to_public_id: str) -> Dict[str, Any]:
    """
    Move an image to a new public ID (Cloudinary's equivalent of a file move).

    Returns:
        dict: url and public_id of the moved image
    """
    result = await asyncio.to_thread(
        cloudinary.uploader.rename,
        from_public_id,
        to_public_id,
        overwrite=True,
        invalidate=True
    )
    logger.info(f"Moved image on Cloudinary: {from_public_id} -> {to_public_id}")
    return {"url": result["secure_url"], "public_id": result["public_id"]}


def extract_public_id_from_url(cloudinary_url: str) -> str:
    """
    Extract Cloudinary public_id from a delivery URL.

    Example:
        https://res.cloudinary.com/demo/image/upload/v1712/gallery/cat.webp
        -> "gallery/cat"

    Raises:
        ValueError: If URL format is invalid
    """
    match = PUBLIC_ID_PATTERN.search(cloudinary_url or "")
    if not match:
        raise ValueError(f"Invalid Cloudinary URL format: {cloudinary_url}")

    parts = match.group(1).split('/')
    # public_id carries no file extension
    if '.' in parts[-1]:
        parts[-1] = parts[-1].rsplit('.', 1)[0]
    return '/'.join(parts)


async def delete_image_by_url(image_url: str) -> bool:
    """
    Delete the Cloudinary object behind a URL.
    URLs that do not point at Cloudinary are skipped.

    Returns:
        bool: True if a deletion was issued
    """
    try:
        public_id = extract_public_id_from_url(image_url)
    except ValueError as e:
        logger.warning(f"Skipping storage deletion: {str(e)}")
        return False

    await delete_image(public_id)
    return True


def validate_cloudinary_config() -> bool:
    """
    Validate that Cloudinary is properly configured.
    """
    if not settings.CLOUDINARY_CLOUD_NAME:
        logger.warning("CLOUDINARY_CLOUD_NAME not configured")
        return False
    if not settings.CLOUDINARY_API_KEY:
        logger.warning("CLOUDINARY_API_KEY not configured")
        return False
    if not settings.CLOUDINARY_API_SECRET:
        logger.warning("CLOUDINARY_API_SECRET not configured")
        return False

    logger.info("Cloudinary configuration validated successfully")
    return True
