"""Application configuration using Pydantic Settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Mercado Libre OAuth2
    meli_client_id: str
    meli_client_secret: str
    meli_redirect_uri: str
    meli_auth_url: str = "https://auth.mercadolibre.com.ar/authorization"

    # Telegram
    telegram_bot_token: str
    telegram_chat_id: str
    telegram_webhook_secret: str | None = None

    # App
    app_base_url: str
    secret_key: str = "dev-secret-key-not-for-production"
    database_url: str = "sqlite:///./data/meli_bot.db"
    request_timeout: float = 15.0
    command_timeout: float = 45.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def database_path(self) -> str:
        """Filesystem path of the SQLite database."""
        db_path = self.database_url.replace("sqlite:///", "")
        if db_path.startswith("./"):
            db_path = db_path[2:]
        return db_path


def get_settings() -> Settings:
    """Get application settings instance."""
    return Settings()
