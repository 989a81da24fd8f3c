# ocsync/exceptions.py
# ---------------------------------------------------------------------------
# Error taxonomy for the OpenCart → WooCommerce sync.
# Each class carries a short machine code that ends up in failure responses.
# ---------------------------------------------------------------------------
from __future__ import annotations

from typing import Any, Dict, Optional


class SyncError(Exception):
    """Base class for every error raised by the sync service."""

    code = "sync_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "error": self.code}


class ConfigurationMissing(SyncError):
    """Required OpenCart connection settings are blank."""

    code = "configuration_missing"

    def __init__(self, missing: list[str]):
        self.missing = list(missing)
        super().__init__(
            "Missing DB credentials. Please configure settings.",
            details={"missing": self.missing},
        )


class SourceConnectionError(SyncError):
    """The OpenCart database is unreachable. Fatal for the whole run."""

    code = "connection_failure"


class StepFailure(SyncError):
    """A single step failed on the server. Never retried automatically."""

    code = "step_failure"


class TransportFailure(SyncError):
    """The step call itself did not complete (network, timeout, 5xx)."""

    code = "transport_failure"


class WooCommerceError(SyncError):
    """A WooCommerce REST call returned an error status."""

    code = "woocommerce_error"

    def __init__(self, message: str, status_code: int | None = None,
                 wc_code: str | None = None, data: Any = None):
        self.status_code = status_code
        self.wc_code = wc_code
        self.data = data
        super().__init__(message, details={"status_code": status_code, "wc_code": wc_code})
