"""Authentication services package."""

from fintrack.services.auth.firebase_auth import (
    AuthenticationError,
    AuthSession,
    FirebaseAuthService,
)

__all__ = ["AuthenticationError", "AuthSession", "FirebaseAuthService"]
