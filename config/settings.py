import os
from typing import List, Literal


DEFAULT_CORS_ORIGIN = "https://melodycompare.com,https://www.melodycompare.com"

# Local development frontends on any port
LOCAL_ORIGIN_REGEX = r"http://(localhost|127\.0\.0\.1):\d+"


def detect_platform() -> Literal["railway", "render", "fly", "generic"]:
    """Auto-detect deployment platform based on environment variables."""
    if os.getenv("RAILWAY_ENVIRONMENT_ID"):
        return "railway"
    if os.getenv("RENDER"):
        return "render"
    if os.getenv("FLY_APP_NAME"):
        return "fly"
    return "generic"


def get_port() -> int:
    """Get port from environment, with the frontend's expected default."""
    return int(os.getenv("PORT", "3001"))


def get_host() -> str:
    """Get host binding address."""
    return os.getenv("HOST", "0.0.0.0")


def get_cors_origins(raw: str) -> List[str]:
    """Split a comma separated origin list, dropping blanks and trailing slashes."""
    return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]


def is_production() -> bool:
    """Check if running in production."""
    return detect_platform() != "generic"


def get_log_level() -> str:
    """LOG_LEVEL if set, else INFO on a hosting platform and DEBUG locally."""
    default = "INFO" if is_production() else "DEBUG"
    return os.getenv("LOG_LEVEL", default).upper()


class Config:
    """Global configuration."""

    PLATFORM = detect_platform()
    PORT = get_port()
    HOST = get_host()
    VERSION = "1.2.0"
    LOG_LEVEL = get_log_level()

    # CORS
    CORS_ORIGINS = get_cors_origins(os.getenv("CORS_ORIGIN", DEFAULT_CORS_ORIGIN))
    CORS_ORIGIN_REGEX = LOCAL_ORIGIN_REGEX

    # Request limits
    MAX_UPLOAD_MB = int(os.getenv("MAX_UPLOAD_MB", "20"))
    MAX_UPLOAD_BYTES = MAX_UPLOAD_MB * 1024 * 1024
    MAX_JSON_MB = int(os.getenv("MAX_JSON_MB", "10"))
    MAX_JSON_BYTES = MAX_JSON_MB * 1024 * 1024

    # Share links
    SHARE_TTL_SECONDS = int(os.getenv("SHARE_TTL_SECONDS", str(24 * 60 * 60)))

    # Fingerprinting: synthetic | acrcloud | acoustid
    FINGERPRINT_PROVIDER = os.getenv("FINGERPRINT_PROVIDER", "synthetic").strip().lower()
    ACR_HOST = os.getenv("ACR_HOST")
    ACR_ACCESS_KEY = os.getenv("ACR_ACCESS_KEY")
    ACR_ACCESS_SECRET = os.getenv("ACR_ACCESS_SECRET")
    ACOUSTID_API_KEY = os.getenv("ACOUSTID_API_KEY")
    FINGERPRINT_TIMEOUT = float(os.getenv("FINGERPRINT_TIMEOUT", "60"))

    # Generative text (OpenRouter, OpenAI-compatible API)
    OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY")
    OPENROUTER_BASE_URL = os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")
    OPENROUTER_MODEL = os.getenv("OPENROUTER_MODEL", "google/gemini-2.5-flash")
    PUBLIC_URL = os.getenv("PUBLIC_URL", "https://melodycompare.com")

    # Built single-page frontend
    STATIC_DIR = os.getenv("STATIC_DIR", "dist")
