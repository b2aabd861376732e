import os
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
STORAGE_PATH = os.path.abspath(os.getenv('STORAGE_PATH', os.path.join(BASE_DIR, '..', 'storage')))


def _optional_float(name):
    value = os.getenv(name)
    return float(value) if value else None


class Config:
    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'your-secret-key-change-in-production')
    BASE_URL = os.getenv('BASE_URL', 'http://localhost:3000')
    CORS_ORIGINS = os.getenv('CORS_ORIGINS', '*').split(',')
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    # Database
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///tapsign.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # File Storage
    UPLOAD_FOLDER = os.path.join(STORAGE_PATH, 'pdfs')
    SIGNED_FOLDER = os.path.join(STORAGE_PATH, 'signed')
    SIGNATURES_FOLDER = os.path.join(STORAGE_PATH, 'signatures')

    # Max file sizes
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024  # 16MB max request
    MAX_PDF_SIZE = 10 * 1024 * 1024
    MAX_SIGNATURE_SIZE = 5 * 1024 * 1024

    ALLOWED_PDF_EXTENSIONS = {'pdf'}
    ALLOWED_IMAGE_EXTENSIONS = {'png', 'jpg', 'jpeg'}

    # Signing
    # Width in pixels of the preview the sign areas are drawn on.
    # Unset means preview pixels map 1:1 to PDF points.
    PREVIEW_WIDTH = _optional_float('PREVIEW_WIDTH')
    SIGNATURE_MAX_WIDTH = int(os.getenv('SIGNATURE_MAX_WIDTH', 300))

    # WhatsApp
    DEFAULT_COUNTRY_CODE = os.getenv('DEFAULT_COUNTRY_CODE', '60')
