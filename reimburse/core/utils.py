"""Shared utility functions for the reimbursement forms service."""

import base64
import binascii
import logging
from datetime import UTC, datetime
from pathlib import Path

import colorlog

from reimburse.core.settings import Settings

ROOT_LOGGER = "reimburse"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def get_logger(name: str) -> logging.Logger:
    """Get a logger with a colorized format for the project.

    Module loggers under ``reimburse.`` propagate to the ``reimburse`` logger,
    which owns the console handler and, after ``setup_logging``, the file handler.
    """
    logger = logging.getLogger(name)
    if name.startswith(f"{ROOT_LOGGER}."):
        get_logger(ROOT_LOGGER)
        logger.propagate = True
        return logger
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = colorlog.ColoredFormatter(
            "%(log_color)s" + LOG_FORMAT,
            datefmt="%Y-%m-%d %H:%M:%S",
            log_colors={
                "DEBUG": "cyan",
                "INFO": "green",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "bold_red",
            },
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.propagate = False
    return logger


def setup_logging(settings: Settings) -> logging.Logger:
    """Configure the application logger with a persistent (non-colorized) file handler."""
    Path(settings.log_dir).mkdir(parents=True, exist_ok=True)
    logger = get_logger(ROOT_LOGGER)
    logger.setLevel(settings.log_level.upper())
    if not any(isinstance(h, logging.FileHandler) for h in logger.handlers):
        file_handler = logging.FileHandler(Path(settings.log_dir) / settings.log_file)
        file_handler.setLevel(settings.log_level.upper())
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(file_handler)
    return logger


def utcnow() -> datetime:
    """Get the current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


def split_data_url(content: str) -> tuple[str | None, str]:
    """Split a ``data:<mime>;base64,<payload>`` URL into its MIME type and payload.

    Raw base64 strings are returned unchanged with a ``None`` MIME type.
    """
    if content.startswith("data:") and "," in content:
        header, payload = content.split(",", 1)
        mime = header[len("data:") :].split(";", 1)[0] or None
        return mime, payload
    return None, content


def decode_base64_content(content: str) -> bytes:
    """Decode a data URL or raw base64 string into bytes.

    Raises ValueError when the payload is not valid base64.
    """
    _, payload = split_data_url(content.strip())
    payload = "".join(payload.split())
    try:
        return base64.b64decode(payload, validate=True)
    except binascii.Error as exc:
        msg = f"Invalid base64 content: {exc}"
        raise ValueError(msg) from exc


def encode_data_url(data: bytes, mime: str) -> str:
    """Encode raw bytes as a base64 data URL."""
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"
