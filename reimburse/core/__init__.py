"""Core package: provides ORM models, pydantic schemas, settings, errors and shared utilities."""

from .db import Base, get_session, init_db  # noqa: F401
from .errors import ActionError, ErrorCode  # noqa: F401
from .settings import Settings, get_settings  # noqa: F401
from .utils import get_logger, setup_logging  # noqa: F401
