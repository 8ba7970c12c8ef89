"""Requesting-user resolution.

The mode comes from ``[cont3xt] user_name_header``:

- ``anonymous``: every request is the ``anonymous`` user
- ``jwt``: a bearer token signed with ``password_secret``
- anything else: the name of a header set by a trusted proxy
"""

import logging
from datetime import UTC, datetime, timedelta

from fastapi import Depends, Request
from jose import JWTError, jwt

from cont3xt.api.deps import get_app_settings, get_db
from cont3xt.config import Settings
from cont3xt.database import Db
from cont3xt.exceptions import AuthenticationError
from cont3xt.models.user import User

logger = logging.getLogger(__name__)

ANONYMOUS_USER_ID = "anonymous"


def create_access_token(
    user_id: str,
    secret: str,
    algorithm: str = "HS256",
    expires_delta: timedelta | None = None,
) -> str:
    """Create a JWT access token for ``user_id``."""
    expire = datetime.now(UTC) + (expires_delta or timedelta(hours=1))
    return jwt.encode({"sub": user_id, "exp": expire}, secret, algorithm=algorithm)


def _bearer_token(request: Request) -> str:
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise AuthenticationError("Bearer token required")
    return token


async def _load_user(db: Db, user_id: str) -> User:
    user = await db.get_user(user_id)
    if user is None:
        logger.info("Rejected unknown user %s", user_id)
        raise AuthenticationError("Unknown user")
    if not user.enabled:
        logger.info("Rejected disabled user %s", user_id)
        raise AuthenticationError("User is disabled")
    return user


async def get_current_user(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    db: Db = Depends(get_db),
) -> User:
    """Resolve the requesting user for the configured auth mode."""
    config = settings.cont3xt
    mode = config.user_name_header

    if mode == "anonymous":
        user = await db.get_user(ANONYMOUS_USER_ID)
        if user is None:
            user = User(
                user_id=ANONYMOUS_USER_ID,
                user_name=ANONYMOUS_USER_ID,
                roles=frozenset(config.anonymous_roles),
            )
    elif mode == "jwt":
        try:
            payload = jwt.decode(
                _bearer_token(request),
                config.password_secret,
                algorithms=[config.jwt_algorithm],
            )
        except JWTError:
            raise AuthenticationError("Could not validate credentials") from None
        user_id = payload.get("sub")
        if not user_id:
            raise AuthenticationError("Could not validate credentials")
        user = await _load_user(db, user_id)
    else:
        user_id = request.headers.get(mode)
        if not user_id:
            raise AuthenticationError(f"Missing {mode} header")
        user = await _load_user(db, user_id)

    request.state.user = user
    return user
