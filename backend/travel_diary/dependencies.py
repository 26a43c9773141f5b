"""
TravelDiary Backend: FastAPI Dependencies
==========================================

What:  Accessors for the per-application services and the bearer-token check.
How:   `create_app()` builds one EntryService, ImageService and (optionally)
       AuthService per application and stores them on `app.state`. Routes
       receive them through Depends(), so two apps built in one process
       (tests) never share a store.
"""

import logging
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from travel_diary.config import Settings
from travel_diary.exceptions import AuthenticationError, AuthServiceUnavailableError
from travel_diary.services.auth_service import AuthService, Principal
from travel_diary.services.entry_service import EntryService
from travel_diary.services.image_service import ImageService

logger = logging.getLogger(__name__)

# auto_error=False: a missing header reaches require_principal, which raises
# our AuthenticationError (401 with the standard error body) when auth is on.
_bearer = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_entry_service(request: Request) -> EntryService:
    return request.app.state.entry_service


def get_image_service(request: Request) -> ImageService:
    return request.app.state.image_service


def get_auth_service(request: Request) -> Optional[AuthService]:
    return request.app.state.auth_service


async def require_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Optional[Principal]:
    """
    Verify the bearer token when REQUIRE_AUTH is enabled.

    Returns the Principal, or None when authentication is disabled.
    The principal is also stored on `request.state.principal`.
    """
    if not get_settings(request).require_auth:
        return None

    if credentials is None or not credentials.credentials:
        raise AuthenticationError(message="Authorization header is required")

    auth_service = get_auth_service(request)
    if auth_service is None:
        # Misconfiguration: reported at startup, refused per request.
        raise AuthServiceUnavailableError(context={"reason": "no identity provider configured"})

    principal = await auth_service.verify_token(credentials.credentials)
    request.state.principal = principal
    return principal
