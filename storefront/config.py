from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    # Application settings
    app_name: str = "Storefront Plugin Runtime"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: str = "development"

    # Database settings
    database_url: str = "sqlite+aiosqlite:///./storefront.db"

    # Security settings
    secret_key: str = "change-me"
    access_token_algorithm: str = "HS256"
    access_token_expire_minutes: int = 30

    # Controller sandbox
    controller_timeout_seconds: float = 5.0
    controller_max_workers: int = 16
    # Unfinished invocations one plugin may hold before new ones are refused
    controller_max_pending_per_plugin: int = 4

    # Slot composition
    default_viewport: str = "desktop"
    viewports: list[str] = ["desktop", "tablet", "mobile"]

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    # CORS settings
    allowed_origins: list[str] = ["http://localhost:3000", "http://localhost:8000"]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


settings = Settings()
