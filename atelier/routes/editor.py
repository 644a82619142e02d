"""
Editor document operations.
Stateless endpoints that apply one gallery/columns edit to a posted document
and return the new document.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from typing import Any, Callable, Dict
import logging

from atelier.editor import document as doc_ops
from atelier.models import User
from atelier.schemas import (
    ColumnsRequest,
    ColumnsSetRequest,
    DocumentRequest,
    DocumentResponse,
    GalleryAddRequest,
    GalleryImageRequest,
    GalleryLayoutRequest,
    GalleryMoveRequest,
    MergeRequest,
)
from atelier.utils.jwt_auth import require_roles
from atelier.utils.permissions import EDITOR_ROLES

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/editor")


def _apply(operation: Callable[..., Dict[str, Any]], document: Dict[str, Any], *args) -> DocumentResponse:
    """Validate the input, run one pure operation and turn DocumentError into a 400."""
    try:
        doc_ops.validate_document(document)
        return DocumentResponse(document=operation(document, *args))
    except doc_ops.DocumentError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Invalid document operation", "detail": str(e)}
        )


@router.post("/validate")
async def validate(payload: DocumentRequest, user: User = Depends(require_roles(*EDITOR_ROLES))):
    try:
        doc_ops.validate_document(payload.document)
    except doc_ops.DocumentError as e:
        return {"valid": False, "error": str(e)}
    return {"valid": True, "images": list(doc_ops.iter_image_urls(payload.document))}


@router.post("/merge", response_model=DocumentResponse)
async def merge(payload: MergeRequest, user: User = Depends(require_roles(*EDITOR_ROLES))):
    """
    Merge the selected block with the clicked one into a gallery.
    Two plain images keep click order: [selected, clicked].

    Raises:
        HTTPException: 400 if a position is not an image or gallery, or both are galleries
    """
    return _apply(doc_ops.merge_images, payload.document, payload.selected, payload.clicked)


@router.post("/gallery/add", response_model=DocumentResponse)
async def add_to_gallery(payload: GalleryAddRequest, user: User = Depends(require_roles(*EDITOR_ROLES))):
    return _apply(doc_ops.add_image_to_gallery, payload.document, payload.gallery, payload.image)


@router.post("/gallery/remove", response_model=DocumentResponse)
async def remove_from_gallery(payload: GalleryImageRequest, user: User = Depends(require_roles(*EDITOR_ROLES))):
    return _apply(doc_ops.remove_gallery_image, payload.document, payload.path, payload.index)


@router.post("/gallery/extract", response_model=DocumentResponse)
async def extract_from_gallery(payload: GalleryImageRequest, user: User = Depends(require_roles(*EDITOR_ROLES))):
    return _apply(doc_ops.extract_gallery_image, payload.document, payload.path, payload.index)


@router.post("/gallery/move", response_model=DocumentResponse)
async def move_in_gallery(payload: GalleryMoveRequest, user: User = Depends(require_roles(*EDITOR_ROLES))):
    return _apply(doc_ops.move_gallery_image, payload.document, payload.path, payload.old_index, payload.new_index)


@router.post("/gallery/layout", response_model=DocumentResponse)
async def toggle_layout(payload: GalleryLayoutRequest, user: User = Depends(require_roles(*EDITOR_ROLES))):
    return _apply(doc_ops.toggle_gallery_layout, payload.document, payload.path)


@router.post("/columns")
async def columns(payload: ColumnsRequest, user: User = Depends(require_roles(*EDITOR_ROLES))):
    """A fresh columns block ready to insert into a document."""
    return {"node": doc_ops.make_columns(payload.columns)}


@router.post("/columns/set", response_model=DocumentResponse)
async def set_columns(payload: ColumnsSetRequest, user: User = Depends(require_roles(*EDITOR_ROLES))):
    return _apply(doc_ops.set_columns, payload.document, payload.path, payload.columns)
