import os
from dotenv import load_dotenv

load_dotenv()

STORAGE_URL = os.getenv("STORAGE_URL", "sqlite:///./blobstore.db")
DB_CONNECT_ARGS = {"check_same_thread": False} if STORAGE_URL.startswith("sqlite") else {}
STORAGE_TIMEOUT_SECONDS = float(os.getenv("STORAGE_TIMEOUT_SECONDS", "30"))

# 100 MiB
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * (10 << 20))))
ACCEPTED_CONTENT_TYPES = frozenset(
    value.strip().lower()
    for value in os.getenv("ACCEPTED_CONTENT_TYPES", "application/x-tar").split(",")
    if value.strip()
)

CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
RATE_LIMIT_PER_MINUTE = int(os.getenv("RATE_LIMIT_PER_MINUTE", "60"))
CACHE_MAX_AGE_SECONDS = int(os.getenv("CACHE_MAX_AGE_SECONDS", "3600"))

# Comma separated "key:principal" pairs. Empty disables API key checks.
API_KEYS = {
    key.strip(): principal.strip()
    for key, _, principal in (
        pair.partition(":") for pair in os.getenv("API_KEYS", "").split(",") if pair.strip()
    )
    if key.strip() and principal.strip()
}
DEFAULT_PRINCIPAL = os.getenv("DEFAULT_PRINCIPAL", "anonymous")

# Redis Configuration
REDIS_URL = os.getenv("REDIS_URL", "")
