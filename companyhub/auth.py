"""
Bearer token authentication and local user resolution.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, Header

from companyhub.db import DbClient, UserRecord
from companyhub.dependencies import get_db_client, get_identity_provider
from companyhub.errors import AuthenticationError
from companyhub.identity import IdentityProvider, Principal, TokenVerificationError

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


def extract_bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise AuthenticationError(
            "Unauthorized: No token provided", reason="No token provided"
        )
    if not authorization.startswith(BEARER_PREFIX):
        raise AuthenticationError(
            "Unauthorized: Invalid token format", reason="Invalid token format"
        )
    token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        raise AuthenticationError(
            "Unauthorized: Invalid token format", reason="No token found"
        )
    return token


def get_principal(
    authorization: Optional[str] = Header(None),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> Principal:
    token = extract_bearer_token(authorization)
    try:
        principal = identity.verify(token)
    except TokenVerificationError as exc:
        logger.warning("Token verification failed for %s...: %s", token[:10], exc)
        raise AuthenticationError(
            "Unauthorized: Invalid token", reason="Token verification failed"
        ) from exc
    logger.debug("Token verified for uid=%s", principal.uid)
    return principal


def resolve_user(
    principal: Principal, db: DbClient, identity: IdentityProvider
) -> UserRecord:
    """Find the local user for a principal, creating it on first sight."""
    user = db.get_user_by_uid(principal.uid)
    if user:
        return user

    profile = identity.get_profile(principal.uid) or {}
    logger.info("Creating local user for uid=%s", principal.uid)
    return db.create_user(
        uid=principal.uid,
        email=principal.email or "",
        display_name=profile.get("displayName"),
        photo_url=profile.get("photoURL"),
    )


def get_current_user(
    principal: Principal = Depends(get_principal),
    db: DbClient = Depends(get_db_client),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> UserRecord:
    return resolve_user(principal, db, identity)
