"""FastAPI dependencies for DI (settings, DB session, current user)."""

from reimburse.api.auth import get_current_user, get_optional_user
from reimburse.core.db import get_session
from reimburse.core.settings import get_settings

__all__ = ["get_current_user", "get_optional_user", "get_session", "get_settings"]
