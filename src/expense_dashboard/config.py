from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).parent.parent.parent / ".env"),
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Ramp developer API
    ramp_api_base_url: str = "https://demo-api.ramp.com"
    ramp_client_id: str = ""
    ramp_client_secret: str = ""
    ramp_timeout_seconds: float = 30.0
    ramp_max_retries: int = 3
    ramp_token_scope: str = "transactions:read users:read cards:read business:read"

    # Remote classifier (disabled when no key is configured)
    openai_api_key: str | None = None
    openai_model: str = "gpt-3.5-turbo"
    openai_max_tokens: int = 200
    openai_temperature: float = 0.3
    openai_timeout_seconds: float = 30.0

    # Categorization
    categorize_max_batch: int = 100
    categorize_pacing_ms: int = 100

    # Pagination / search
    pagination_chunk_size: int = 100
    pagination_page_size: int = 20
    total_count_max_calls: int = 20
    search_min_fetch: int = 100

    # UI sessions (least recently used dropped beyond this)
    session_max_count: int = 1000

    @property
    def ramp_configured(self) -> bool:
        return bool(self.ramp_client_id and self.ramp_client_secret)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
