# forecast_recon/dependencies.py

"""
Request dependencies.

Every reconciliation, GL and order forecast route runs as a signed-in user.
The Supabase JWT is verified server-side and only the user id flows on, so
runs can record who triggered them.
"""

import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from forecast_recon.database import get_supabase_admin

logger = logging.getLogger(__name__)

bearer = HTTPBearer()


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired token",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer),
) -> str:
    """Return the id of the user owning the bearer token (sync, runs in a threadpool)."""
    try:
        user_response = get_supabase_admin().auth.get_user(credentials.credentials)
    except Exception as e:
        logger.warning(f"Token verification failed: {e}")
        raise _unauthorized() from e

    user = getattr(user_response, "user", None)
    if user is None:
        raise _unauthorized()
    return user.id
