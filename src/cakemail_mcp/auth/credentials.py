"""Cakemail access credential lifecycle.

This module owns the single access credential of a client. It acquires a
credential with the password grant, refreshes it with the refresh grant
shortly before it expires, and falls back to a full password login
whenever a refresh fails. Token endpoint calls are serialized so that
concurrent callers never trigger more than one authentication request at
a time; callers that arrive while one is in flight wait for its result.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import httpx

from ..exceptions import AuthenticationError
from ..models import Credential, TokenStatus

logger = logging.getLogger(__name__)

# Credentials are treated as expired this long before the server says so
EXPIRY_MARGIN = timedelta(minutes=1)
# Refresh proactively once the credential is this close to expiry
REFRESH_WINDOW = timedelta(minutes=5)

_FORM_HEADERS = {
    "Accept": "application/json",
    "Content-Type": "application/x-www-form-urlencoded",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_error_body(response: httpx.Response) -> Any:
    """Parse an error response body, falling back to its text.

    :param response: Failed HTTP response
    :return: Parsed JSON body, or ``{"detail": text}``
    """
    try:
        return response.json()
    except ValueError:
        text = response.text
        return {"detail": text or response.reason_phrase}


class CredentialManager:
    """Manage acquisition and refresh of the Cakemail access credential.

    :param http_client: Client used for token endpoint calls
    :param username: Account username for the password grant
    :param password: Account password for the password grant
    :param token_url: Token endpoint, relative to the client's base URL
    :param now: Time source returning an aware UTC datetime
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        username: str,
        password: str,
        token_url: str = "/token",
        now: Callable[[], datetime] = _utcnow,
    ):
        if not username or not password:
            logger.warning(
                "Cakemail username/password not configured; "
                "set CAKEMAIL_USERNAME and CAKEMAIL_PASSWORD"
            )
        self._http = http_client
        self._username = username
        self._password = password
        self._token_url = token_url
        self._now = now
        self._credential: Optional[Credential] = None
        self._lock = asyncio.Lock()

    @property
    def credential(self) -> Optional[Credential]:
        """The current credential, if any."""
        return self._credential

    def _is_expired(self, credential: Credential) -> bool:
        return self._now() >= credential.expires_at

    def _needs_refresh(self, credential: Credential) -> bool:
        return self._now() >= credential.expires_at - REFRESH_WINDOW

    async def ensure_valid(self) -> Credential:
        """Return a live credential, acquiring or refreshing as needed.

        :return: Credential that is not expired
        :raises AuthenticationError: If a full login fails
        """
        credential = self._credential
        if credential and not self._needs_refresh(credential):
            return credential

        async with self._lock:
            # Another caller may have authenticated while we waited
            credential = self._credential
            if credential and not self._needs_refresh(credential):
                return credential

            if (
                credential
                and credential.refresh_token
                and not self._is_expired(credential)
            ):
                try:
                    return await self._refresh()
                except AuthenticationError as e:
                    logger.info(
                        "Token refresh failed, falling back to password authentication: %s",
                        e.message,
                    )

            return await self._acquire()

    async def acquire(self) -> Credential:
        """Authenticate with username and password.

        :return: Newly issued credential
        :raises AuthenticationError: On rejected credentials or network failure
        """
        async with self._lock:
            return await self._acquire()

    async def refresh(self) -> Credential:
        """Exchange the stored refresh token for a new credential.

        A 401/403 answer discards the stored credential, refresh token
        included, so the next ``ensure_valid`` performs a full login.

        :return: Refreshed credential
        :raises AuthenticationError: If no refresh token is stored or the
                                     refresh is rejected
        """
        async with self._lock:
            return await self._refresh()

    def invalidate(self, rejected_access_token: Optional[str] = None) -> None:
        """Drop the stored credential.

        With ``rejected_access_token`` the credential is dropped only if it
        still carries that token, so a late 401 for a stale token cannot
        discard a credential another caller has just obtained.

        :param rejected_access_token: Access token the API answered 401 to
        """
        credential = self._credential
        if credential is None:
            return
        if (
            rejected_access_token is not None
            and credential.access_token != rejected_access_token
        ):
            logger.debug("Stale token rejected, keeping the newer credential")
            return
        logger.debug("Invalidating stored access credential")
        self._credential = None

    async def _acquire(self) -> Credential:
        logger.debug("Requesting Cakemail access token (password grant)")
        response = await self._post_token(
            {
                "grant_type": "password",
                "username": self._username,
                "password": self._password,
                "scopes": "user",
            }
        )

        if not response.is_success:
            body = parse_error_body(response)
            detail = response.reason_phrase
            if isinstance(body, dict):
                detail = (
                    body.get("error_description")
                    or body.get("message")
                    or body.get("error")
                    or body.get("detail")
                    or detail
                )
            raise AuthenticationError(
                f"Authentication failed ({response.status_code}): {detail}",
                response_body=body,
                status_code=response.status_code,
            )

        self._credential = self._store(response)
        logger.info("Cakemail token obtained, expires at %s", self._credential.expires_at)
        return self._credential

    async def _refresh(self) -> Credential:
        credential = self._credential
        if not credential or not credential.refresh_token:
            raise AuthenticationError("No refresh token available")

        logger.debug("Refreshing Cakemail access token")
        response = await self._post_token(
            {
                "grant_type": "refresh_token",
                "refresh_token": credential.refresh_token,
            }
        )

        if not response.is_success:
            body = parse_error_body(response)
            if response.status_code in (401, 403):
                self._credential = None
                raise AuthenticationError(
                    "Refresh token invalid, password authentication required",
                    response_body=body,
                    status_code=response.status_code,
                )
            raise AuthenticationError(
                f"Token refresh failed ({response.status_code}): {response.reason_phrase}",
                response_body=body,
                status_code=response.status_code,
            )

        self._credential = self._store(response, previous=credential)
        logger.info("Cakemail token refreshed, expires at %s", self._credential.expires_at)
        return self._credential

    async def _post_token(self, form: Dict[str, str]) -> httpx.Response:
        try:
            return await self._http.post(self._token_url, data=form, headers=_FORM_HEADERS)
        except httpx.HTTPError as e:
            logger.error("Token endpoint unreachable: %s", e)
            raise AuthenticationError(f"Authentication request failed: {e}") from e

    def _store(self, response: httpx.Response, previous: Optional[Credential] = None) -> Credential:
        try:
            data = response.json()
        except ValueError as e:
            raise AuthenticationError("Token endpoint returned a non-JSON body") from e

        access_token = data.get("access_token")
        if not access_token:
            raise AuthenticationError("No access token in Cakemail response", response_body=data)

        expires_in = int(data.get("expires_in", 3600))
        refresh_token = data.get("refresh_token")
        if refresh_token is None and previous is not None:
            refresh_token = previous.refresh_token

        return Credential(
            access_token=access_token,
            refresh_token=refresh_token,
            token_type=data.get("token_type", "bearer"),
            expires_in=expires_in,
            expires_at=self._now() + timedelta(seconds=expires_in) - EXPIRY_MARGIN,
            accounts=data.get("accounts") or [],
        )

    def get_token_status(self) -> TokenStatus:
        """Return a snapshot of the credential lifecycle."""
        credential = self._credential
        if credential is None:
            return TokenStatus(has_token=False, is_expired=True, needs_refresh=True)

        return TokenStatus(
            has_token=True,
            is_expired=self._is_expired(credential),
            expires_at=credential.expires_at,
            time_until_expiry=(credential.expires_at - self._now()).total_seconds(),
            needs_refresh=self._needs_refresh(credential),
            token_type=credential.token_type,
            has_refresh_token=bool(credential.refresh_token),
        )

    async def force_refresh(self) -> Dict[str, Any]:
        """Refresh the credential now, reporting the outcome instead of raising."""
        previous = self._credential.expires_at if self._credential else None
        try:
            credential = await self.refresh()
        except AuthenticationError as e:
            return {
                "success": False,
                "previous_expiry": previous,
                "new_expiry": self._credential.expires_at if self._credential else None,
                "error": e.message,
            }
        return {
            "success": True,
            "token_type": credential.token_type,
            "expires_in": credential.expires_in,
            "previous_expiry": previous,
            "new_expiry": credential.expires_at,
        }

    def get_token_scopes(self) -> Dict[str, Any]:
        """Return the accounts reachable with the credential.

        The token endpoint does not report scopes, so permissions are
        inferred from whether any account is attached.
        """
        accounts: List[int] = self._credential.accounts if self._credential else []
        permissions: List[str] = []
        if accounts:
            permissions = [
                "account_access",
                "email_send",
                "campaign_management",
                "contact_management",
                "list_management",
                "template_management",
                "analytics_access",
            ]
        return {"accounts": accounts, "scopes": None, "permissions": permissions}
