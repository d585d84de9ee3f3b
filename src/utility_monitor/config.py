"""Application configuration."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Loads and validates application settings from the environment."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    BOT_TOKEN: str = "YOUR_TELEGRAM_BOT_TOKEN"
    ADMIN_IDS: list[int] = []
    NOTIFY_CHAT_IDS: list[int] = []

    UTILITY_CONFIG_PATH: str = "utility_config.json"
    SWEEP_INTERVAL_SECONDS: int = 60
    LOG_LEVEL: str = "INFO"
    DB_GENERATE_SCHEMAS: bool = False


settings = Settings()
