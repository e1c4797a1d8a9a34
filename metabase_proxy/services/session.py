"""
Session service - owns the backend session token.

The backend is the only authority on session expiry, so the token is probed on
every inbound request and replaced by a fresh login whenever the probe reports
it invalid.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

import httpx

from metabase_proxy.errors import AuthError, UpstreamError
from metabase_proxy.logging import get_logger

logger = get_logger(__name__)

SESSION_HEADER = "X-Metabase-Session"


@dataclass(frozen=True)
class Credentials:
    """Backend account used to obtain sessions."""
    email: str
    password: str

    def __repr__(self) -> str:
        return f"Credentials(email={self.email!r}, password='***')"


class SessionManager:
    """
    Holds at most one session token and keeps it valid.
    
    ensure_valid() is the only mutator of the token. Calls are serialized so
    that concurrent requests arriving with a stale token trigger one login,
    not one each.
    """

    def __init__(
        self,
        target: str,
        credentials: Credentials,
        client: httpx.AsyncClient,
        api_path: str = "/api",
    ):
        self.target = target.rstrip("/")
        self.api_path = api_path
        self.credentials = credentials
        self.client = client
        self._token: Optional[str] = None
        self._lock = asyncio.Lock()

    @property
    def token(self) -> Optional[str]:
        return self._token

    def _url(self, endpoint: str) -> str:
        return f"{self.target}{self.api_path}{endpoint}"

    async def probe_valid(self, token: Optional[str]) -> bool:
        """
        Ask the backend whether `token` is still a live session.
        
        Returns:
            True on a 2xx answer, False on 401 or when there is no token
            
        Raises:
            UpstreamError: On any other status or a transport failure
        """
        if token is None:
            return False

        url = self._url("/user/current")
        try:
            response = await self.client.get(url, headers={SESSION_HEADER: token})
        except httpx.HTTPError as e:
            logger.error(f"Session probe to {url} failed: {e!r}")
            raise UpstreamError(f"Session probe failed: {e}") from e

        if response.status_code == 401:
            logger.debug("Session token rejected by backend")
            return False
        if not response.is_success:
            logger.error(f"Session probe to {url} returned {response.status_code}")
            raise UpstreamError(
                f"Unexpected status {response.status_code} from session probe",
                status_code=response.status_code,
            )
        return True

    async def login(self) -> str:
        """
        Exchange the configured credentials for a new session token.
        
        Raises:
            AuthError: If the backend rejects the login or cannot be reached
        """
        url = self._url("/session")
        payload = {"username": self.credentials.email, "password": self.credentials.password}
        try:
            response = await self.client.post(url, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Login request to {url} failed: {e!r}")
            raise AuthError(f"Login request failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"Login as {self.credentials.email} rejected with status {response.status_code}")
            raise AuthError(f"Login rejected with status {response.status_code}")

        try:
            token = response.json()["id"]
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Login response from {url} has no session id")
            raise AuthError("Login response did not contain a session id") from e

        if not isinstance(token, str) or not token:
            raise AuthError("Login response contained an invalid session id")
        return token

    async def ensure_valid(self) -> str:
        """Return a token believed valid, logging in again if needed."""
        async with self._lock:
            if await self.probe_valid(self._token):
                return self._token

            logger.info(f"Obtaining new backend session for {self.credentials.email}")
            self._token = await self.login()
            logger.info("Backend session refreshed")
            return self._token
