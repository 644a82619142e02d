"""
Pydantic schemas for request and response data validation.
Defines data structures for API endpoints with automatic validation and serialization.

Required fields that the API reports with a custom 400 body (posts, references)
are declared Optional here and checked in the route handlers.
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime
from typing import Any, Dict, List, Optional, Union


# --- users ------------------------------------------------------------------

class UserResponse(BaseModel):
    id: str
    email: str
    role: str
    nickname: Optional[str] = None
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    phone: Optional[str] = None
    tel: Optional[str] = None
    status: str
    last_login_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProfileUpdate(BaseModel):
    """Fields a user may change on their own account."""
    nickname: Optional[str] = None
    avatar_url: Optional[str] = None


class UserUpdate(ProfileUpdate):
    """
    Request schema for PATCH /api/users/{id}.
    Omitted fields are left untouched; role changes go through extra checks.
    Fields beyond ProfileUpdate are only editable by a manager on someone else.
    """
    name: Optional[str] = None
    phone: Optional[str] = None
    tel: Optional[str] = None
    status: Optional[str] = None
    role: Optional[str] = None


class AuthorSummary(BaseModel):
    id: str
    email: str

    model_config = ConfigDict(from_attributes=True)


# --- gallery ----------------------------------------------------------------

class GalleryItemResponse(BaseModel):
    """
    Gallery item as returned by list and detail endpoints.
    The embedding vector is not exposed; has_embedding tells whether it exists.
    """
    id: int
    title: str
    description: Optional[str] = None
    image_url: str
    image_width: Optional[int] = None
    image_height: Optional[int] = None
    tags: List[str] = []
    category: Optional[str] = None
    range: List[str] = []
    author: Optional[str] = None
    gemini_category: Optional[str] = None
    gemini_description: Optional[str] = None
    gemini_tags: List[str] = []
    has_embedding: bool = False
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_item(cls, item) -> "GalleryItemResponse":
        response = cls.model_validate(item)
        response.has_embedding = bool(item.embedding)
        return response


class GalleryItemCreate(BaseModel):
    """
    Request schema for POST /api/gallery.
    AI fields are usually filled from a prior /api/gallery/analyze call.
    """
    title: Optional[str] = None
    image_url: Optional[str] = None
    description: Optional[str] = None
    image_width: Optional[int] = None
    image_height: Optional[int] = None
    tags: List[str] = []
    category: Optional[str] = None
    range: List[str] = []
    embedding: Optional[List[float]] = None
    gemini_category: Optional[str] = None
    gemini_description: Optional[str] = None
    gemini_tags: List[str] = []


class GalleryItemUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    image_width: Optional[int] = None
    image_height: Optional[int] = None
    tags: Optional[List[str]] = None
    category: Optional[str] = None
    range: Optional[List[str]] = None
    gemini_category: Optional[str] = None
    gemini_description: Optional[str] = None
    gemini_tags: Optional[List[str]] = None


class AnalyzeRequest(BaseModel):
    image_url: str = Field(..., alias="imageUrl", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class AnalyzeResponse(BaseModel):
    category: str
    summary: str
    visual_detail: str
    tags: List[str]
    embedding: List[float]
    embedding_source: str


class MigrateRequest(BaseModel):
    limit: int = Field(5, ge=1, le=50)


class SimilarRequest(BaseModel):
    limit: int = Field(10, ge=1, le=100)


# --- posts ------------------------------------------------------------------

class PostCreate(BaseModel):
    title: Optional[str] = None
    slug: Optional[str] = None
    content: Optional[Dict[str, Any]] = None
    type: str = "blog"
    subtitle: Optional[str] = None
    summary: Optional[str] = None
    category_id: Optional[int] = None
    tags: List[str] = []
    title_style: str = "text"
    title_image_url: Optional[str] = None


class PostUpdate(BaseModel):
    title: Optional[str] = None
    slug: Optional[str] = None
    content: Optional[Dict[str, Any]] = None
    subtitle: Optional[str] = None
    summary: Optional[str] = None
    category_id: Optional[int] = None
    tags: Optional[List[str]] = None
    title_style: Optional[str] = None
    title_image_url: Optional[str] = None


class PostSummaryResponse(BaseModel):
    """Post without its document body, for list endpoints."""
    id: int
    type: str
    title: str
    subtitle: Optional[str] = None
    summary: Optional[str] = None
    slug: str
    category_id: Optional[int] = None
    tags: List[str] = []
    title_style: str
    title_image_url: Optional[str] = None
    author_id: Optional[str] = None
    is_published: bool
    published_at: Optional[datetime] = None
    view_count: int
    scrap_count: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PostResponse(PostSummaryResponse):
    content: Dict[str, Any]


class PostDetailResponse(PostResponse):
    author: Optional[AuthorSummary] = None
    userScraped: bool = False
    currentSlug: Optional[str] = None


class PublishRequest(BaseModel):
    is_published: bool


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1)
    type: str = "blog"


class CategoryResponse(BaseModel):
    id: int
    name: str
    slug: str
    type: str
    order_index: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# --- references -------------------------------------------------------------

class ReferenceCreate(BaseModel):
    title: Optional[str] = None
    url: Optional[str] = None
    image_url: Optional[str] = None
    logo_url: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    range: List[str] = []


class ReferenceUpdate(BaseModel):
    """
    Request schema for PUT /api/references/{id}.
    A body carrying clicks is a click-count increment and ignores every other field.
    """
    title: Optional[str] = None
    url: Optional[str] = None
    image_url: Optional[str] = None
    logo_url: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    range: Optional[List[str]] = None
    clicks: Optional[int] = None


class ReferenceResponse(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    url: str
    image_url: str
    logo_url: str
    category: Optional[str] = None
    range: List[str] = []
    clicks: int
    author: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BulkDeleteRequest(BaseModel):
    """
    Request schema for bulk deleting references.
    Used by DELETE /api/references/bulk endpoint.
    """
    ids: List[int]

    @field_validator('ids')
    @classmethod
    def validate_unique_ids(cls, v):
        return list(dict.fromkeys(v))


class ReferenceCategoryCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None


class ReferenceCategoryResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# --- archiving --------------------------------------------------------------

class ArchivingCreate(BaseModel):
    title: Optional[str] = None
    url: Optional[str] = None
    image_url: Optional[str] = None
    image_original: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    range: List[str] = []


class ArchivingUpdate(BaseModel):
    title: Optional[str] = None
    url: Optional[str] = None
    image_url: Optional[str] = None
    image_original: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    range: Optional[List[str]] = None


class ArchivingResponse(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    url: str
    image_url: str
    image_original: Optional[str] = None
    category: Optional[str] = None
    range: List[str] = []
    clicks: int
    author: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ArchivingCategoryUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


# --- post writing assistance ------------------------------------------------

class PostTextRequest(BaseModel):
    """Request schema for POST /api/posts/generate-summary and /generate-tags."""
    title: Optional[str] = None
    subtitle: Optional[str] = None
    content: Union[Dict[str, Any], str, None] = None


# --- site settings ----------------------------------------------------------

class SiteSettingsUpdate(BaseModel):
    site_name: Optional[str] = None
    site_description: Optional[str] = None
    site_language: Optional[str] = None
    organization_name: Optional[str] = None
    logo_url: Optional[str] = None
    favicon_url: Optional[str] = None
    theme_color: Optional[str] = None


class SiteSettingsResponse(BaseModel):
    id: int
    site_name: str
    site_description: Optional[str] = None
    site_language: str
    organization_name: Optional[str] = None
    logo_url: Optional[str] = None
    favicon_url: Optional[str] = None
    theme_color: str
    updated_by: Optional[str] = None
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# --- banners ----------------------------------------------------------------

class BannerCreate(BaseModel):
    title: str = Field(..., min_length=1)
    image_url: str = Field(..., min_length=1)
    subtitle: Optional[str] = None
    label: Optional[str] = None
    link: Optional[str] = None
    is_continuous: bool = True
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    order_index: int = 0
    is_active: bool = True


class BannerUpdate(BaseModel):
    title: Optional[str] = None
    image_url: Optional[str] = None
    subtitle: Optional[str] = None
    label: Optional[str] = None
    link: Optional[str] = None
    is_continuous: Optional[bool] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    order_index: Optional[int] = None
    is_active: Optional[bool] = None


class BannerResponse(BaseModel):
    id: int
    title: str
    subtitle: Optional[str] = None
    label: Optional[str] = None
    image_url: str
    link: Optional[str] = None
    is_continuous: bool
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    order_index: int
    is_active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# --- uploads ----------------------------------------------------------------

class UploadResponse(BaseModel):
    url: str
    width: Optional[int] = None
    height: Optional[int] = None


class ImageDeleteRequest(BaseModel):
    image_url: str = Field(..., alias="imageUrl", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


# --- editor -----------------------------------------------------------------

class DocumentRequest(BaseModel):
    document: Dict[str, Any]


class MergeRequest(DocumentRequest):
    selected: List[int]
    clicked: List[int]


class GalleryAddRequest(DocumentRequest):
    gallery: List[int]
    image: List[int]


class GalleryImageRequest(DocumentRequest):
    path: List[int]
    index: int = Field(..., ge=0)


class GalleryMoveRequest(DocumentRequest):
    path: List[int]
    old_index: int = Field(..., ge=0)
    new_index: int = Field(..., ge=0)


class GalleryLayoutRequest(DocumentRequest):
    path: List[int]


class ColumnsRequest(BaseModel):
    columns: int = Field(2, ge=2, le=3)


class ColumnsSetRequest(DocumentRequest):
    path: List[int]
    columns: int = Field(..., ge=2, le=3)


class DocumentResponse(BaseModel):
    document: Dict[str, Any]
