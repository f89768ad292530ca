from __future__ import annotations


class MarketError(Exception):
    """Base class for errors raised by the service layer."""

    code = "market_error"

    def __init__(self, message: str = "", *, listing_id: str | None = None):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.listing_id = listing_id


# Form errors: shown inline on the originating form.

class ValidationError(MarketError):
    code = "validation_error"


class DuplicateEmail(MarketError):
    code = "duplicate_email"


class InvalidCredentials(MarketError):
    code = "invalid_credentials"


class NoSuchAccount(MarketError):
    code = "no_such_account"


class TokenInvalidOrExpired(MarketError):
    code = "token_invalid_or_expired"


# Guard failures: turned into redirects by the web layer.

class Forbidden(MarketError):
    code = "forbidden"


class NotFound(MarketError):
    code = "not_found"


class Conflict(MarketError):
    code = "conflict"


# Backing service failures: generic 500, logged.

class StorageFailure(MarketError):
    code = "storage_failure"
