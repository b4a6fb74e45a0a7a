"""
Configuration settings for the deepfake analysis proxy.
Supports both development and production environments via environment variables.
"""
import os
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()

# ============================================================================
# Paths
# ============================================================================
BASE_DIR = Path(__file__).parent
REPORTS_DIR = Path(os.getenv("REPORTS_DIR", str(BASE_DIR / "reports")))

# Empty LOG_FILE disables the rotating file handler
_log_file = os.getenv("LOG_FILE", str(BASE_DIR / "logs" / "app.log"))
LOG_FILE = Path(_log_file) if _log_file else None
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# ============================================================================
# Upstream API
# ============================================================================
PROOFLY_API_BASE_URL = os.getenv("PROOFLY_API_BASE_URL", "https://api.proofly.ai/api").rstrip("/")

# Mount point of the proxy routes
API_PREFIX = os.getenv("API_PREFIX", "/api/proofly").rstrip("/")

# Timeouts (seconds)
URL_FETCH_TIMEOUT = float(os.getenv("URL_FETCH_TIMEOUT", "20"))
UPLOAD_TIMEOUT = float(os.getenv("UPLOAD_TIMEOUT", "60"))
UPSTREAM_TIMEOUT = float(os.getenv("UPSTREAM_TIMEOUT", "30"))

# ============================================================================
# Upload Settings
# ============================================================================
MAX_URL_LENGTH = int(os.getenv("MAX_URL_LENGTH", "512"))
MAX_UPLOAD_SIZE_MB = int(os.getenv("MAX_UPLOAD_SIZE_MB", "25"))
MAX_REMOTE_IMAGE_MB = int(os.getenv("MAX_REMOTE_IMAGE_MB", "25"))
URL_FETCH_USER_AGENT = os.getenv(
    "URL_FETCH_USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36",
)
DEFAULT_UPLOAD_FILENAME = "image.jpg"
DEFAULT_IMAGE_CONTENT_TYPE = "image/jpeg"
IMAGE_CACHE_CONTROL = "public, max-age=3600"

# ============================================================================
# Polling Settings
# ============================================================================
POLL_INTERVAL_SECONDS = float(os.getenv("POLL_INTERVAL_SECONDS", "2.0"))
POLL_MAX_ATTEMPTS = int(os.getenv("POLL_MAX_ATTEMPTS", "60"))

# ============================================================================
# Diagnostics
# ============================================================================
API_LOG_CAPACITY = int(os.getenv("API_LOG_CAPACITY", "100"))

# ============================================================================
# Security Configuration
# ============================================================================
# CORS Settings - include your frontend origin (e.g. Vite default 5173, Next 3000)
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:8000,http://localhost:5173,http://127.0.0.1:3000,http://127.0.0.1:5173,http://127.0.0.1:8000").split(",") if o.strip()]

# Trusted Hosts
TRUSTED_HOSTS = os.getenv("TRUSTED_HOSTS", "localhost,127.0.0.1").split(",")

# Rate Limiting
RATE_LIMIT_PER_MINUTE = int(os.getenv("RATE_LIMIT_PER_MINUTE", "60"))
RATE_LIMIT_PER_HOUR = int(os.getenv("RATE_LIMIT_PER_HOUR", "1000"))

# ============================================================================
# Application Settings
# ============================================================================
APP_NAME = os.getenv("APP_NAME", "Proofly Analysis Proxy")
APP_VERSION = os.getenv("APP_VERSION", "1.0.0")
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")  # development, staging, production
