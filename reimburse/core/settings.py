"""Configuration and environment settings for the reimbursement forms service."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings for the reimbursement forms service."""

    database_url: str = "sqlite:///reimbursements.db"
    auth_secret_key: str = "change-me"
    auth_publishable_key: str = ""
    auth_algorithm: str = "HS256"
    auth_session_cookie: str = "__session"
    server_host: str = "127.0.0.1"
    server_port: int = 8000
    log_dir: str = "logs"
    log_file: str = "reimburse.log"
    log_level: str = "INFO"
    receipt_batch_size: int = 10
    max_receipts_per_transaction: int = 2
    min_base64_length: int = 16
    default_form_type: str = "REIMBURSEMENT"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


def get_settings() -> "Settings":
    """Return an instance of the application settings."""
    return Settings()
