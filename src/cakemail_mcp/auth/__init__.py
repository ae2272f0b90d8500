"""Authentication for the Cakemail API."""

from .credentials import EXPIRY_MARGIN, REFRESH_WINDOW, CredentialManager

__all__ = ["CredentialManager", "EXPIRY_MARGIN", "REFRESH_WINDOW"]
