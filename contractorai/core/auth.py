"""
Auth utilities for the ContractorAI API.

Validates Supabase-issued JWTs and extracts user_id from request context.
Falls back to the X-User-Id header only when ALLOW_USER_ID_HEADER is on
(development and tests).
"""
from fastapi import Header, Request
from typing import Optional
from contractorai.core.config import settings
from contractorai.core.errors import AuthorizationError, ConfigurationError
import jwt
import logging

logger = logging.getLogger("contractorai")


def verify_supabase_jwt(token: str, secret: Optional[str] = None, audience: Optional[str] = None) -> str:
    """
    Verify a Supabase JWT and extract user_id.

    Args:
        token: JWT from Authorization header (Bearer {token})

    Returns:
        user_id: Extracted from the token's 'sub' claim

    Raises:
        AuthorizationError: Invalid or expired token
        ConfigurationError: No signing secret configured
    """
    signing_secret = secret or settings.SUPABASE_JWT_SECRET
    if not signing_secret:
        raise ConfigurationError("SUPABASE_JWT_SECRET is not configured")

    try:
        payload = jwt.decode(
            token,
            signing_secret,
            algorithms=["HS256"],
            audience=audience or settings.SUPABASE_JWT_AUDIENCE,
            options={"verify_signature": True, "verify_exp": True},
        )
    except jwt.ExpiredSignatureError:
        raise AuthorizationError("Token expired")
    except jwt.InvalidTokenError as e:
        logger.debug(f"Invalid token: {e}")
        raise AuthorizationError("Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise AuthorizationError("No 'sub' claim in token")
    return user_id


async def get_current_user_id(
    request: Request,
    x_user_id: Optional[str] = Header(None, description="Development only: caller user ID"),
) -> str:
    """
    Extract current user ID from request context.

    Priority:
    1. Supabase JWT from Authorization header
    2. X-User-Id header (only when ALLOW_USER_ID_HEADER is enabled)
    3. Raise AuthorizationError (401)
    """
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        # An invalid token is final; never fall through to the header
        return verify_supabase_jwt(auth_header[7:])

    if x_user_id and settings.ALLOW_USER_ID_HEADER:
        return x_user_id

    raise AuthorizationError("Missing Authorization (Bearer JWT)")
