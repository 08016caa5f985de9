"""
Session tokens issued by the sign-in front end.

The OAuth sign-in flow runs outside this service; it hands the browser an
HS256 JWT signed with ``AUTH_SECRET`` carrying the user's ``email`` and
``name``. The role is not trusted from the token: it is recomputed from
the configured allowlists on every decode.

CHANGELOG:
- 2026-10-01: Recompute role from allowlists on decode (STORY-105)
- 2026-09-30: Initial creation (STORY-104)

TODO:
- None
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import jwt

from energyshare.auth.roles import Role, get_user_role
from energyshare.config import Settings, get_settings

logger = logging.getLogger(__name__)

_DEFAULT_TTL = timedelta(days=30)


@dataclass(frozen=True)
class SessionUser:
    """Authenticated caller.

    Attributes:
        email: Email of the signed-in user.
        name: Display name, may be empty.
        role: Role derived from the allowlists.
    """

    email: str
    name: str
    role: Role


def create_session_token(
    email: str,
    name: str = "",
    settings: Settings | None = None,
    expires_in: timedelta = _DEFAULT_TTL,
) -> str:
    """Sign a session token for *email*.

    Args:
        email: Email of the user.
        name: Display name.
        settings: Settings holding the secret; loaded when omitted.
        expires_in: Token lifetime.

    Returns:
        str: Encoded JWT.
    """
    if settings is None:
        settings = get_settings()
    now = datetime.now(UTC)
    payload = {
        "sub": email,
        "email": email,
        "name": name,
        "iat": now,
        "exp": now + expires_in,
    }
    return jwt.encode(payload, settings.AUTH_SECRET, algorithm=settings.AUTH_ALGORITHM)


def decode_session_token(token: str, settings: Settings | None = None) -> SessionUser | None:
    """Verify a session token and return its user.

    Args:
        token: Encoded JWT.
        settings: Settings holding the secret; loaded when omitted.

    Returns:
        SessionUser or None: None when the token is expired, malformed,
        badly signed, or carries no email.
    """
    if settings is None:
        settings = get_settings()
    try:
        payload = jwt.decode(token, settings.AUTH_SECRET, algorithms=[settings.AUTH_ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired session token")
        return None
    except jwt.InvalidTokenError as exc:
        logger.warning("Rejected invalid session token: %s", exc)
        return None

    email = payload.get("email") or payload.get("sub")
    if not email or not isinstance(email, str):
        return None
    return SessionUser(
        email=email,
        name=payload.get("name") or "",
        role=get_user_role(email, settings),
    )
