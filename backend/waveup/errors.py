"""Recoverable error types raised by the entitlement subsystem.

None of these are fatal: callers either surface them to the user (quota,
promo) or fall back to the restrictive default state (store, corrupt record).
"""

from typing import Any


class EntitlementError(Exception):
    code = "entitlement_error"

    def __init__(self, message: str, *, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class QuotaExceededError(EntitlementError):
    """Daily generation quota is used up; the UI should show an upsell."""

    code = "quota_exceeded"

    def __init__(self, message: str = "Daily idea quota reached", *, decision: Any = None):
        super().__init__(message)
        self.decision = decision


class ModuleDisabledError(EntitlementError):
    code = "module_disabled"

    def __init__(self, message: str, *, module: str):
        super().__init__(message)
        self.module = module


class InvalidPromoCodeError(EntitlementError, ValueError):
    code = "invalid_promo_code"

    def __init__(self, message: str, *, reason: str):
        super().__init__(message)
        self.reason = reason


class StoreUnavailableError(EntitlementError):
    code = "store_unavailable"


class CorruptRecordError(EntitlementError, ValueError):
    code = "corrupt_record"

    def __init__(self, message: str, *, key: str):
        super().__init__(message)
        self.key = key
