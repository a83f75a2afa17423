"""
Firebase Authentication (Identity Toolkit REST API)

Email/password sign-in, registration, password reset and sign-out.

The rest of the application only ever sees AuthSession.user_id, an
opaque string stored as `userId` on every document.
"""

from typing import Optional

import requests
import structlog
from pydantic import BaseModel, Field

from fintrack.config import get_settings
from fintrack.config.settings import FirebaseSettings


IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"

# Provider error codes mapped to messages we can show users
_FRIENDLY_MESSAGES = {
    "EMAIL_EXISTS": "An account with this email already exists",
    "EMAIL_NOT_FOUND": "Invalid email or password",
    "INVALID_PASSWORD": "Invalid email or password",
    "INVALID_LOGIN_CREDENTIALS": "Invalid email or password",
    "USER_DISABLED": "This account has been disabled",
    "INVALID_EMAIL": "The email address is not valid",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "Too many attempts, try again later",
}


class AuthenticationError(Exception):
    """Sign-in, registration or reset failed."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class AuthSession(BaseModel):
    """An authenticated user."""

    user_id: str = Field(..., min_length=1)
    email: str
    id_token: str = Field(default="", repr=False)
    refresh_token: str = Field(default="", repr=False)


class FirebaseAuthService:
    """
    Thin client over the Identity Toolkit REST endpoints.

    Failed calls raise AuthenticationError immediately; nothing is retried.
    """

    def __init__(
        self,
        settings: Optional[FirebaseSettings] = None,
        session: Optional[requests.Session] = None,
    ):
        self._settings = settings or get_settings().firebase
        self._http = session or requests.Session()
        self._logger = structlog.get_logger(__name__)

    def _post(self, endpoint: str, payload: dict) -> dict:
        url = f"{IDENTITY_TOOLKIT_URL}/{endpoint}"
        try:
            response = self._http.post(
                url,
                params={"key": self._settings.web_api_key},
                json=payload,
                timeout=self._settings.auth_timeout_seconds,
            )
        except requests.RequestException as e:
            self._logger.error("auth_request_failed", endpoint=endpoint, error=str(e))
            raise AuthenticationError(f"Authentication service unavailable: {e}")

        if response.status_code != 200:
            try:
                code = response.json().get("error", {}).get("message", "")
            except ValueError:
                code = ""
            # Codes can carry a suffix: "TOO_MANY_ATTEMPTS_TRY_LATER : ..."
            key = code.split(":")[0].strip()
            self._logger.warning("auth_rejected", endpoint=endpoint, code=key)
            raise AuthenticationError(
                _FRIENDLY_MESSAGES.get(key, code or "Authentication failed"),
                code=key or None,
            )

        return response.json()

    def sign_in(self, email: str, password: str) -> AuthSession:
        data = self._post(
            "accounts:signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        return self._session_from(data)

    def sign_up(self, email: str, password: str) -> AuthSession:
        data = self._post(
            "accounts:signUp",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        return self._session_from(data)

    def send_password_reset(self, email: str) -> None:
        self._post(
            "accounts:sendOobCode",
            {"requestType": "PASSWORD_RESET", "email": email},
        )

    def sign_out(self, session: Optional[AuthSession]) -> None:
        """
        Forget a session locally.

        ID tokens are short-lived bearer tokens, so signing out only drops them.
        """
        if session is not None:
            self._logger.info("signed_out", user_id=session.user_id)

    @staticmethod
    def _session_from(data: dict) -> AuthSession:
        return AuthSession(
            user_id=data["localId"],
            email=data.get("email", ""),
            id_token=data.get("idToken", ""),
            refresh_token=data.get("refreshToken", ""),
        )
