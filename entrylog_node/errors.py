# entrylog_node/errors.py
"""
Error types shared by the Fabric client layer, the allocator and the HTTP
routes.

Every error carries the HTTP status it maps to and a short machine readable
code. The API layer installs one exception handler for EntryLogError, so
route functions just let these propagate.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class EntryLogError(Exception):
    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str = "", *, detail: Optional[Dict[str, Any]] = None):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.detail = detail or {}

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"ok": False, "error": self.code, "detail": self.message}
        if self.detail:
            out["context"] = self.detail
        return out


class IdentityNotFoundError(EntryLogError):
    status_code = 401
    code = "identity_not_enrolled"


class ProfileError(EntryLogError):
    status_code = 500
    code = "connection_profile_invalid"


class WalletError(EntryLogError):
    status_code = 500
    code = "wallet_invalid"


class AllocatorError(EntryLogError):
    status_code = 500
    code = "allocator_unavailable"


class GatewayError(EntryLogError):
    status_code = 503
    code = "gateway_unavailable"


class GatewayTimeoutError(GatewayError):
    status_code = 504
    code = "gateway_timeout"


class TransactionError(EntryLogError):
    status_code = 502
    code = "transaction_failed"


class RecordMismatchError(EntryLogError):
    status_code = 502
    code = "ledger_result_mismatch"


class RecordDecodeError(EntryLogError):
    status_code = 502
    code = "ledger_result_invalid"
