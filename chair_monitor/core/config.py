from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "Smart Chair Monitor"

    # HTTP listener
    host: str = "0.0.0.0"
    port: int = 3000

    # Storage: "json" (single rewritten array) or "sqlite"
    storage_backend: str = Field(default="json")
    data_file: str = Field(default="data.json")
    sqlite_path: str = Field(default="smart_chair.db")

    # Upper bound on one durable write before the request fails
    write_timeout_seconds: float = 5.0

    # Request bodies above this are rejected with 413
    max_body_bytes: int = 1_000_000

    cors_allow_origins: list[str] = ["*"]

    # When True, GET /alert acknowledges the alert it reports
    alert_ack_on_read: bool = False

    csv_filename: str = "smart-chair-history.csv"

    # Logging
    log_level: str = "INFO"
    log_file: str = "smart_chair.log"  # empty = console only


settings = Settings()
