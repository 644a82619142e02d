"""
Image helpers built on Pillow.
Converts uploads to WebP before they go to Cloudinary and reads pixel dimensions
for gallery items.
"""
import io
import logging
from typing import Optional, Tuple
from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

# WebP conversion settings
DEFAULT_WEBP_QUALITY = 85  # Balance between quality and file size (0-100)
DEFAULT_WEBP_METHOD = 6    # Compression method (0-6, higher = better compression but slower)
MAX_DIMENSION = 3840       # Maximum width or height before downscaling


async def convert_to_webp(
    image_bytes: bytes,
    quality: int = DEFAULT_WEBP_QUALITY,
    method: int = DEFAULT_WEBP_METHOD,
    max_dimension: Optional[int] = MAX_DIMENSION,
    skip_if_webp: bool = True
) -> Tuple[bytes, bool]:
    """
    Convert image bytes to WebP format to reduce file size.

    Args:
        image_bytes: Original image file bytes
        quality: WebP quality (0-100, default: 85)
        method: WebP compression method (0-6, default: 6)
        max_dimension: Maximum width or height before downscaling (None to disable)
        skip_if_webp: If True, return original bytes if already WebP format

    Returns:
        Tuple[bytes, bool]:
            - Converted image bytes (or original if skipped/failed)
            - Whether conversion was successful/skipped (True) or failed (False)
    """
    try:
        image = Image.open(io.BytesIO(image_bytes))

        if skip_if_webp and image.format == 'WEBP':
            logger.debug("Image is already WebP format, skipping conversion")
            return image_bytes, True

        # WebP supports transparency, so palette images keep their alpha channel
        if image.mode == 'P':
            image = image.convert('RGBA')
        elif image.mode not in ('RGB', 'RGBA', 'LA'):
            if image.mode not in ('CMYK', 'L'):
                logger.warning(f"Unusual image mode '{image.mode}', converting to RGB")
            image = image.convert('RGB')

        if max_dimension:
            width, height = image.size
            if width > max_dimension or height > max_dimension:
                if width > height:
                    new_width = max_dimension
                    new_height = int(height * (max_dimension / width))
                else:
                    new_height = max_dimension
                    new_width = int(width * (max_dimension / height))

                logger.info(
                    f"Downscaling image from {width}x{height} to {new_width}x{new_height} "
                    f"(max dimension: {max_dimension})"
                )
                image = image.resize((new_width, new_height), Image.Resampling.LANCZOS)

        webp_buffer = io.BytesIO()
        save_kwargs = {
            'format': 'WEBP',
            'quality': quality,
            'method': method,
        }
        if quality == 100:
            save_kwargs['lossless'] = True

        image.save(webp_buffer, **save_kwargs)
        webp_bytes = webp_buffer.getvalue()

        original_size = len(image_bytes)
        converted_size = len(webp_bytes)
        reduction = ((original_size - converted_size) / original_size) * 100

        logger.info(
            f"Converted image to WebP: "
            f"{original_size:,} bytes -> {converted_size:,} bytes "
            f"({reduction:.1f}% reduction, quality={quality})"
        )

        return webp_bytes, True

    except UnidentifiedImageError as e:
        logger.warning(f"Cannot identify image format: {str(e)}")
        return image_bytes, False

    except Exception as e:
        logger.error(f"Error converting image to WebP: {str(e)}", exc_info=True)
        return image_bytes, False


def get_image_dimensions(image_bytes: bytes) -> Optional[Tuple[int, int]]:
    """
    Read (width, height) from image bytes without decoding the pixel data.

    Returns:
        Tuple[int, int] or None if the bytes are not a readable image
    """
    try:
        with Image.open(io.BytesIO(image_bytes)) as image:
            width, height = image.size
        if width and height:
            return width, height
        return None
    except (UnidentifiedImageError, OSError) as e:
        logger.debug(f"Error reading image dimensions: {str(e)}")
        return None
