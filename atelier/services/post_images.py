"""
Post image placement on Cloudinary.

Images dropped into the editor before a post exists are uploaded to the
author's temp folder (posts/temp/{user_id}). Once the post is saved they are
moved to posts/{type}/{post_id} and the document is rewritten to the new URLs.
"""
import logging
from typing import Dict, Iterable, Optional

from atelier.config import settings
from atelier.services.cloudinary_service import extract_public_id_from_url, rename_image

logger = logging.getLogger(__name__)


def temp_folder(user_id: str) -> str:
    return f"{settings.CLOUDINARY_POSTS_FOLDER}/temp/{user_id}"


def uploads_folder() -> str:
    return f"{settings.CLOUDINARY_POSTS_FOLDER}/uploads"


def post_folder(post_type: str, post_id: int) -> str:
    return f"{settings.CLOUDINARY_POSTS_FOLDER}/{post_type}/{post_id}"


def temp_public_id(url: str, user_id: str) -> Optional[str]:
    """Public ID of url if it lives in the user's temp folder, else None."""
    try:
        public_id = extract_public_id_from_url(url)
    except ValueError:
        return None
    if public_id.startswith(temp_folder(user_id) + "/"):
        return public_id
    return None


async def move_temp_images(
    urls: Iterable[str],
    user_id: str,
    post_type: str,
    post_id: int,
) -> Dict[str, str]:
    """
    Move the user's temp images among urls into the post folder.
    An image that fails to move keeps its temp URL.

    Returns:
        dict: old URL -> new URL for every moved image
    """
    mapping = {}
    destination = post_folder(post_type, post_id)

    for url in dict.fromkeys(urls):
        public_id = temp_public_id(url, user_id)
        if public_id is None:
            continue

        target = f"{destination}/{public_id.rsplit('/', 1)[-1]}"
        try:
            moved = await rename_image(public_id, target)
            mapping[url] = moved["url"]
        except Exception as e:
            logger.error(f"Failed to move post image {public_id} -> {target}: {str(e)}")

    if mapping:
        logger.info(f"Moved {len(mapping)} temp image(s) into {destination}")
    return mapping
