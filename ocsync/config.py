# ----------------------------------------------------------------
# Import configuration variables to be used throughout the project
# ----------------------------------------------------------------
import os
from dotenv import load_dotenv

# Load .env (allow container env to override file values)
load_dotenv(override=True)


def _rstrip_slash(s: str) -> str:
    return (s or "").rstrip("/")


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not str(raw).strip():
        return default
    try:
        return int(str(raw).strip())
    except ValueError:
        return default


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not str(raw).strip():
        return default
    try:
        return float(str(raw).strip())
    except ValueError:
        return default


def _get_optional_int(name: str) -> int | None:
    raw = os.getenv(name)
    if raw is None or not str(raw).strip():
        return None
    try:
        return int(str(raw).strip())
    except ValueError:
        return None


class Settings:
    # ── OpenCart source database ─────────────────────────────────────────────
    OC_DB_HOST: str = os.getenv("OC_DB_HOST", "")
    OC_DB_PORT: int = _get_int("OC_DB_PORT", 3306)
    OC_DB_NAME: str = os.getenv("OC_DB_NAME", "")
    OC_DB_USER: str = os.getenv("OC_DB_USER", "")
    OC_DB_PASSWORD: str = os.getenv("OC_DB_PASSWORD", "")
    # Full SQLAlchemy URL; wins over the individual fields above when set
    OC_DATABASE_URL: str = os.getenv("OC_DATABASE_URL", "")

    OC_TABLE_PREFIX: str = os.getenv("OC_TABLE_PREFIX", "oc_")
    OC_LANGUAGE_ID: int = _get_int("OC_LANGUAGE_ID", 1)
    # Product images are stored as relative paths (catalog/foo.jpg); blank disables import
    OC_IMAGE_BASE_URL: str = _rstrip_slash(os.getenv("OC_IMAGE_BASE_URL", ""))

    # ── WooCommerce ──────────────────────────────────────────────────────────
    WC_BASE_URL: str = _rstrip_slash(os.getenv("WC_BASE_URL", ""))
    WC_API_KEY: str = os.getenv("WC_API_KEY", "")
    WC_API_SECRET: str = os.getenv("WC_API_SECRET", "")
    WC_TIMEOUT: float = _get_float("WC_TIMEOUT", 30.0)

    # ── Sync engine ──────────────────────────────────────────────────────────
    SYNC_VARIATION_CHUNK_SIZE: int = _get_int("SYNC_VARIATION_CHUNK_SIZE", 20)
    SYNC_STEP_DELAY: float = _get_float("SYNC_STEP_DELAY", 0.3)
    SYNC_RETRY_DELAY: float = _get_float("SYNC_RETRY_DELAY", 5.0)
    SYNC_MAX_RETRIES: int | None = _get_optional_int("SYNC_MAX_RETRIES")  # None = retry forever
    SYNC_API_URL: str = _rstrip_slash(os.getenv("SYNC_API_URL", "http://localhost:8000"))

    # ── Admin Panel ──────────────────────────────────────────────────────────
    ADMIN_USER: str = os.getenv("ADMIN_USER", "admin")
    ADMIN_PASS: str = os.getenv("ADMIN_PASS", "changeme")

    # ── CORS ─────────────────────────────────────────────────────────────────
    # Comma-separated list in .env, e.g. "https://example.com, https://foo.bar"
    CORS_ORIGINS: list[str] = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

    def missing_source_settings(self) -> list[str]:
        """
        Names of the OpenCart connection settings that are required but blank.
        The password may legitimately be empty.
        """
        if self.OC_DATABASE_URL:
            return []
        missing = []
        for key in ("OC_DB_HOST", "OC_DB_USER", "OC_DB_NAME"):
            if not (getattr(self, key, "") or "").strip():
                missing.append(key)
        return missing


settings = Settings()
