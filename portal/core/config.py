import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


DEFAULT_API_URL = "http://localhost:5000/api"

API_URL = os.getenv("API_URL") or DEFAULT_API_URL
API_VERIFY_TLS = _get_bool(os.getenv("API_VERIFY_TLS"), default=True)

ACCESS_TOKEN = os.getenv("PORTAL_ACCESS_TOKEN", "")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
