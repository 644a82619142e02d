"""
Configuration management for the FastAPI application.
Uses Pydantic Settings for environment variable management.
"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Configuration
    API_TITLE: str = "Atelier CMS API"
    API_VERSION: str = "0.1.0"
    API_DESCRIPTION: str = "Backend API for the gallery, blog and reference directory"

    # CORS Configuration
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Database Configuration
    # Empty value falls back to an in-memory SQLite database
    DATABASE_URL: str = ""

    # Cloudinary Configuration
    CLOUDINARY_CLOUD_NAME: str = ""
    CLOUDINARY_API_KEY: str = ""
    CLOUDINARY_API_SECRET: str = ""
    CLOUDINARY_POSTS_FOLDER: str = "posts"
    CLOUDINARY_GALLERY_FOLDER: str = "gallery"

    # JWT Configuration
    # SECRET_KEY should be a long random string (e.g., generated with: openssl rand -hex 32)
    JWT_SECRET_KEY: str = "your-secret-key-change-this-in-production-use-openssl-rand-hex-32"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # Gemini Configuration
    GEMINI_API_KEY: str = ""
    GEMINI_VISION_MODEL: str = "gemini-2.0-flash"
    GEMINI_MULTIMODAL_EMBEDDING_MODEL: str = "embedding-001"
    GEMINI_TEXT_EMBEDDING_MODEL: str = "text-embedding-004"
    GEMINI_TEXT_MODEL: str = "gemini-2.0-flash"

    # Image analysis tuning
    MULTIMODAL_EMBEDDING_MAX_KB: float = 30.0
    ANALYSIS_MAX_TAGS: int = 15
    SIMILARITY_THRESHOLD: float = 0.75

    # Post view counting: one increment per visitor within this window
    VIEW_DEDUP_MINUTES: int = 60

    # Shared secrets for batch maintenance endpoints (empty disables the bypass)
    MIGRATION_TOKEN: str = ""
    ADMIN_API_KEY: str = ""

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env that aren't defined in Settings


# Global settings instance
settings = Settings()
