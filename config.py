import os
import logging

from dotenv import load_dotenv

load_dotenv(override=True)


def normalize_database_url(url):
    """Point postgres URLs at the pg8000 driver.

    pg8000 rejects libpq query parameters such as ``sslmode``, so the query
    string is dropped for postgres URLs. Other URLs are returned untouched.
    """
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+pg8000://", 1)
    elif url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+pg8000://", 1)

    if url.startswith("postgresql+pg8000://") and "?" in url:
        url = url.split("?")[0]
    return url


def _engine_options(url):
    if url.startswith("sqlite"):
        return {}
    return {
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "pool_size": 10,
        "max_overflow": 20,
    }


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key-change-in-production")

    # --- DATABASE ---
    SQLALCHEMY_DATABASE_URI = normalize_database_url(
        os.getenv("DATABASE_URL", "sqlite:///interview.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = _engine_options(SQLALCHEMY_DATABASE_URI)

    # --- MEDIA STORAGE ---
    STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "local")
    UPLOAD_FOLDER = os.getenv("UPLOAD_FOLDER", os.path.join("static", "uploads", "videos"))
    UPLOAD_URL_PREFIX = "/uploads/videos"
    MAX_CONTENT_LENGTH = int(os.getenv("MAX_UPLOAD_MB", "200")) * 1024 * 1024

    CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME")
    CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY")
    CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET")
    CLOUDINARY_FOLDER = os.getenv("CLOUDINARY_FOLDER", "interview_videos")

    # --- RECRUITER LOGIN ---
    ADMIN_USERNAME = os.getenv("ADMIN_USERNAME", "admin")
    ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin")
    CANDIDATE_SITE_URL = os.getenv("CANDIDATE_SITE_URL", "http://127.0.0.1:5001")

    # --- INTERVIEW POLICY ---
    MAX_ATTEMPTS = int(os.getenv("MAX_ATTEMPTS", "3"))
    COUNTDOWN_SECONDS = int(os.getenv("COUNTDOWN_SECONDS", "3"))
    MIN_TIME_LIMIT = 10
    MAX_TIME_LIMIT = 30

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def configure_logging(level=None):
    level = level or Config.LOG_LEVEL
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
