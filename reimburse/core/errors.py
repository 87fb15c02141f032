"""Error taxonomy shared by the data-access layer and the HTTP surface."""

from enum import StrEnum
from typing import Any

from pydantic import ValidationError
from sqlalchemy.exc import DBAPIError, SQLAlchemyError


class ErrorCode(StrEnum):
    """Kinds of failure an operation can report."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    PERSISTENCE = "persistence"
    INTERNAL = "internal"


HTTP_STATUS = {
    ErrorCode.VALIDATION: 400,
    ErrorCode.UNAUTHORIZED: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.PERSISTENCE: 500,
    ErrorCode.INTERNAL: 500,
}


class ActionError(Exception):
    """A failure detected inside an operation, turned into a result envelope at its boundary."""

    def __init__(self, code: ErrorCode, message: str, details: Any = None) -> None:
        """Initialize the error with its kind, a user-facing message and optional diagnostics."""
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details

    @property
    def status_code(self) -> int:
        """HTTP status matching the error kind."""
        return HTTP_STATUS[self.code]


def _field_path(loc: tuple[int | str, ...]) -> str:
    return ".".join(str(part) for part in loc)


def validation_details(exc: ValidationError) -> list[dict[str, str]]:
    """Convert a pydantic ValidationError into field-attributed ``{field, message}`` entries."""
    details = []
    for err in exc.errors():
        message = err["msg"].removeprefix("Value error, ")
        details.append({"field": _field_path(err["loc"]), "message": message})
    return details


def validation_error(exc: ValidationError) -> ActionError:
    """Build a validation ActionError whose message names every failing field."""
    details = validation_details(exc)
    summary = "; ".join(f"{d['field']}: {d['message']}" if d["field"] else d["message"] for d in details)
    return ActionError(ErrorCode.VALIDATION, f"Invalid form data: {summary}", details)


def persistence_details(exc: SQLAlchemyError) -> dict[str, Any]:
    """Extract as much engine-level diagnostic information as the store exposes."""
    details: dict[str, Any] = {"type": type(exc).__name__, "code": getattr(exc, "code", None)}
    if isinstance(exc, DBAPIError) and exc.orig is not None:
        orig = exc.orig
        engine_code = getattr(orig, "sqlite_errorname", None) or getattr(orig, "pgcode", None)
        if engine_code is None and orig.args and isinstance(orig.args[0], int):
            engine_code = orig.args[0]
        details["engineCode"] = engine_code
        details["message"] = str(orig)
    else:
        details["message"] = str(exc)
    return details


def persistence_error(exc: SQLAlchemyError, message: str) -> ActionError:
    """Wrap a store failure with its diagnostics."""
    return ActionError(ErrorCode.PERSISTENCE, message, persistence_details(exc))
