"""Identity supplied by the external auth provider.

The provider issues a signed session token (JWT) that reaches the service
either as a ``Bearer`` token or in the provider's session cookie. Only the
claims needed to stamp forms are read: ``sub``, ``email`` and the first name.
"""

from fastapi import Depends, HTTPException, Request
from jose import JWTError, jwt

from reimburse.core.models import CurrentUser
from reimburse.core.settings import Settings, get_settings
from reimburse.core.utils import get_logger

logger = get_logger("reimburse.auth")


def decode_session_token(token: str, settings: Settings) -> CurrentUser | None:
    """Verify a session token and map its claims, or return None when it is invalid."""
    try:
        payload = jwt.decode(
            token,
            settings.auth_secret_key,
            algorithms=[settings.auth_algorithm],
            options={"verify_aud": False},
        )
    except JWTError as exc:
        logger.warning(f"Rejected session token: {exc}")
        return None
    subject = payload.get("sub")
    if not subject:
        logger.warning("Rejected session token without a subject")
        return None
    return CurrentUser(
        id=str(subject),
        email=payload.get("email"),
        first_name=payload.get("first_name") or payload.get("given_name") or payload.get("name"),
    )


def session_token(request: Request, settings: Settings) -> str | None:
    """Return the bearer token or session cookie carried by a request."""
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[len("bearer ") :].strip() or None
    return request.cookies.get(settings.auth_session_cookie)


def get_optional_user(request: Request, settings: Settings = Depends(get_settings)) -> CurrentUser | None:
    """Provide the signed-in user, or None for anonymous requests."""
    token = session_token(request, settings)
    if not token:
        return None
    return decode_session_token(token, settings)


def get_current_user(user: CurrentUser | None = Depends(get_optional_user)) -> CurrentUser:
    """Provide the signed-in user, rejecting anonymous requests with 401."""
    if user is None:
        raise HTTPException(status_code=401, detail="Could not validate credentials")
    return user
