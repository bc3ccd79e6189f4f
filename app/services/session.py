"""Current-user state backed by the Firebase Identity Toolkit REST API."""

from __future__ import annotations

import logging
from contextlib import suppress
from dataclasses import dataclass
from typing import Any, Callable

import httpx

from ..config import Settings
from ..exceptions import IdentityError
from .profiles import ProfileStore

logger = logging.getLogger(__name__)

SessionListener = Callable[["SessionUser | None"], None]


@dataclass(slots=True)
class SessionUser:
    """The authenticated account as reported by the identity provider."""

    uid: str
    email: str
    id_token: str | None = None
    refresh_token: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "uid": self.uid,
            "email": self.email,
            "idToken": self.id_token,
            "refreshToken": self.refresh_token,
        }


class IdentityClient:
    """Email/password accounts via ``accounts:*`` Identity Toolkit endpoints."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self._settings = settings
        self._client = http_client

    def is_configured(self) -> bool:
        return bool(self._settings.firebase_api_key)

    async def sign_up(self, email: str, password: str) -> SessionUser:
        data = await self._post(
            "/accounts:signUp",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        return self._user_from_token_response(data, email)

    async def sign_in(self, email: str, password: str) -> SessionUser:
        data = await self._post(
            "/accounts:signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        return self._user_from_token_response(data, email)

    async def lookup(self, id_token: str) -> SessionUser:
        """Resolve the account behind an ID token."""

        data = await self._post("/accounts:lookup", {"idToken": id_token})
        users = data.get("users")
        if not isinstance(users, list) or not users or not isinstance(users[0], dict):
            raise IdentityError("USER_NOT_FOUND", "No account matches the supplied token")
        account = users[0]
        uid = account.get("localId")
        if not uid:
            raise IdentityError("USER_NOT_FOUND", "No account matches the supplied token")
        return SessionUser(
            uid=str(uid), email=str(account.get("email") or ""), id_token=id_token
        )

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        if not self.is_configured():
            raise IdentityError(
                "IDENTITY_NOT_CONFIGURED",
                "FIREBASE_API_KEY must be configured to authenticate users.",
            )
        try:
            response = await self._client.post(
                path, params={"key": self._settings.firebase_api_key}, json=payload
            )
        except httpx.HTTPError as exc:
            logger.warning("Identity provider request %s failed: %s", path, exc)
            raise IdentityError(
                "NETWORK_ERROR", "Unable to reach the identity provider."
            ) from exc

        data = _response_json(response)
        if response.status_code >= 400:
            code = _error_code(data)
            logger.info(
                "Identity provider rejected %s with %s (%s)",
                path,
                code,
                response.status_code,
            )
            raise IdentityError(code, _ERROR_MESSAGES.get(code))
        return data

    @staticmethod
    def _user_from_token_response(data: dict[str, Any], email: str) -> SessionUser:
        uid = data.get("localId")
        if not uid:
            raise IdentityError("INVALID_RESPONSE", "Identity provider returned no user id")
        return SessionUser(
            uid=str(uid),
            email=str(data.get("email") or email),
            id_token=data.get("idToken"),
            refresh_token=data.get("refreshToken"),
        )


class SessionManager:
    """Tracks the signed-in user and notifies subscribers when it changes."""

    def __init__(self, identity: IdentityClient, profiles: ProfileStore):
        self._identity = identity
        self._profiles = profiles
        self._current: SessionUser | None = None
        self._listeners: list[SessionListener] = []

    @property
    def current_user(self) -> SessionUser | None:
        return self._current

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register ``listener`` and call it with the current state right away.

        Returns a callable that removes the listener again.
        """

        self._listeners.append(listener)
        listener(self._current)

        def unsubscribe() -> None:
            with suppress(ValueError):
                self._listeners.remove(listener)

        return unsubscribe

    async def sign_in(self, email: str, password: str) -> SessionUser:
        user = await self._identity.sign_in(email, password)
        logger.info("Signed in user %s", user.uid)
        self._set_user(user)
        return user

    async def sign_up(self, email: str, password: str) -> SessionUser:
        """Create the account, make it current and write its empty profile."""

        user = await self._identity.sign_up(email, password)
        logger.info("Signed up user %s", user.uid)
        self._set_user(user)
        await self._profiles.create_user_profile(user.uid, user.email)
        return user

    async def restore(self, id_token: str) -> SessionUser:
        user = await self._identity.lookup(id_token)
        self._set_user(user)
        return user

    def sign_out(self) -> None:
        self._set_user(None)

    def _set_user(self, user: SessionUser | None) -> None:
        self._current = user
        for listener in list(self._listeners):
            try:
                listener(user)
            except Exception:  # pragma: no cover - listener bugs must not break auth
                logger.exception("Session listener failed")


_ERROR_MESSAGES: dict[str, str] = {
    "EMAIL_EXISTS": "An account already exists for this email address.",
    "EMAIL_NOT_FOUND": "No account exists for this email address.",
    "INVALID_PASSWORD": "The password is invalid.",
    "INVALID_LOGIN_CREDENTIALS": "The email or password is incorrect.",
    "INVALID_ID_TOKEN": "The session has expired. Please sign in again.",
    "USER_DISABLED": "This account has been disabled.",
    "WEAK_PASSWORD": "Password should be at least 6 characters.",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "Too many attempts. Please try again later.",
}


def _response_json(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    if isinstance(data, dict):
        return data
    return {}


def _error_code(data: dict[str, Any]) -> str:
    error = data.get("error")
    message = error.get("message") if isinstance(error, dict) else None
    if not isinstance(message, str) or not message.strip():
        return "IDENTITY_ERROR"
    # Messages look like "WEAK_PASSWORD : Password should be at least 6 characters".
    return message.split(":", 1)[0].strip()
