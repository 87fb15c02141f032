"""API package: provides FastAPI dependencies, JSON routes and HTML pages."""

from .dependencies import get_current_user, get_session, get_settings  # noqa: F401
from .pages import router as pages_router  # noqa: F401
from .routes import router  # noqa: F401
