"""
TravelDiary Backend: Authentication Service Interface
======================================================

What:  Bearer-token verification against an external identity provider.
Why:   Sign-in, sign-up and sign-out happen between the browser and the
       identity provider. The backend only needs one question answered:
       "which principal does this access token belong to?"
How:   Routes depend on `AuthService.verify_token()`. The concrete
       SupabaseAuthService calls the provider's `GET /auth/v1/user`
       endpoint with the user's token and the project's service key.

Failure mapping:
    provider says 401/403        → AuthenticationError (401)
    provider unreachable / 5xx   → AuthServiceUnavailableError (503)
    No retries: a failed verification is reported immediately.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx

from travel_diary.exceptions import AuthenticationError, AuthServiceUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    """The authenticated caller."""

    user_id: str
    email: Optional[str] = None


class AuthService(ABC):
    """
    Abstract interface for access-token verification.

    Implementations:
        - SupabaseAuthService: Supabase GoTrue `/auth/v1/user`
        - Test doubles subclass this directly
    """

    @abstractmethod
    async def verify_token(self, token: str) -> Principal:
        """
        Resolve `token` to the principal it was issued to.

        Raises:
            AuthenticationError: token missing, expired or rejected.
            AuthServiceUnavailableError: the provider could not be asked.
        """
        ...

    async def close(self) -> None:
        return None


class SupabaseAuthService(AuthService):
    """
    Verifies Supabase access tokens.

    Args:
        base_url:    Supabase project URL (https://<ref>.supabase.co)
        api_key:     Project service key, sent as the `apikey` header
        timeout:     Seconds before the provider is considered unreachable
        client:      Optional pre-built httpx.AsyncClient (tests inject one
                     with a MockTransport)
    """

    USER_PATH = "/auth/v1/user"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    async def verify_token(self, token: str) -> Principal:
        if not token:
            raise AuthenticationError(message="Access token is required")

        try:
            response = await self._client.get(
                f"{self.base_url}{self.USER_PATH}",
                headers={
                    "Authorization": f"Bearer {token}",
                    "apikey": self._api_key,
                },
            )
        except httpx.HTTPError as e:
            logger.error("Identity provider request failed: %s", str(e))
            raise AuthServiceUnavailableError(context={"error_type": type(e).__name__})

        if response.status_code in (400, 401, 403, 404):
            raise AuthenticationError(
                message="Invalid or expired token",
                context={"provider_status": response.status_code},
            )
        if response.status_code >= 400:
            logger.error("Identity provider returned HTTP %d", response.status_code)
            raise AuthServiceUnavailableError(context={"provider_status": response.status_code})

        try:
            payload = response.json()
        except ValueError:
            raise AuthServiceUnavailableError(context={"error": "non-JSON user response"})

        user_id = payload.get("id") if isinstance(payload, dict) else None
        if not user_id:
            raise AuthenticationError(message="Invalid or expired token")

        return Principal(user_id=str(user_id), email=payload.get("email"))

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
