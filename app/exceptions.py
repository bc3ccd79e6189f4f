"""Exception hierarchy shared by the Daekho services."""

from __future__ import annotations


class DaekhoError(Exception):
    """Base class for errors raised by the service layer."""


class CatalogError(DaekhoError):
    """Raised when the movie catalog cannot serve a request."""


class CatalogConfigurationError(CatalogError):
    """The catalog credential is missing or still set to a placeholder."""


class CatalogTransportError(CatalogError):
    """The catalog answered with a failure status or could not be reached."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class StoreError(DaekhoError):
    """Raised when the profile store cannot complete a read or write."""


class ProfileNotFoundError(StoreError):
    """The requested user profile does not exist."""

    def __init__(self, user_id: str):
        super().__init__(f"Profile {user_id} not found")
        self.user_id = user_id


class IdentityError(DaekhoError):
    """Raised when the identity provider rejects or fails a request."""

    def __init__(self, code: str, message: str | None = None):
        super().__init__(message or code)
        self.code = code
