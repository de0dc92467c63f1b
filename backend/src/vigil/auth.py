"""Request identity verification."""

import asyncio
import logging
from dataclasses import dataclass

from fastapi import Header
from firebase_admin import auth

from vigil.config import settings
from vigil.errors import Internal, Unauthenticated
from vigil.firebase import get_firebase_app

logger = logging.getLogger(__name__)

UNAUTHENTICATED_MESSAGE = "User must be authenticated"


@dataclass
class AuthenticatedUser:
    """A verified caller."""

    uid: str
    email: str | None = None
    provider: str | None = None


async def verify_id_token(id_token: str) -> AuthenticatedUser:
    """Verify a Firebase ID token and return the caller it identifies."""
    try:
        app = get_firebase_app()
    except Exception as e:
        logger.error(f"Firebase Admin is not available: {e}")
        raise Internal("Failed to verify credentials") from e

    try:
        decoded = await asyncio.to_thread(auth.verify_id_token, id_token, app=app)
    except (auth.InvalidIdTokenError, auth.UserDisabledError, ValueError) as e:
        logger.info(f"Rejected ID token: {e}")
        raise Unauthenticated(UNAUTHENTICATED_MESSAGE) from e
    except auth.CertificateFetchError as e:
        logger.error(f"Could not fetch token signing certificates: {e}")
        raise Internal("Failed to verify credentials") from e

    return AuthenticatedUser(
        uid=decoded["uid"],
        email=decoded.get("email"),
        provider=decoded.get("firebase", {}).get("sign_in_provider"),
    )


async def get_current_user(
    authorization: str | None = Header(None),
    x_user_id: str | None = Header(None, alias="X-User-ID"),
) -> AuthenticatedUser:
    """FastAPI dependency resolving the caller or raising Unauthenticated."""
    if settings.auth_mode == "header":
        # Local development only: trust the header as-is
        if not x_user_id:
            raise Unauthenticated(UNAUTHENTICATED_MESSAGE)
        return AuthenticatedUser(uid=x_user_id, provider="header")

    if not authorization or not authorization.startswith("Bearer "):
        raise Unauthenticated(UNAUTHENTICATED_MESSAGE)

    user = await verify_id_token(authorization[len("Bearer "):].strip())
    logger.debug(f"Authenticated {user.uid} via {user.provider or 'unknown'}")
    return user
