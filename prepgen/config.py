"""Configuration management for the question generation pipeline."""

from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_GENERATION_MODELS = (
    "anthropic/claude-3.5-sonnet,"
    "openai/gpt-4o-mini,"
    "google/gemini-flash-1.5,"
    "meta-llama/llama-3.1-70b-instruct,"
    "mistralai/mistral-large,"
    "qwen/qwen-2.5-72b-instruct"
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Settings
    env: str = "development"
    log_level: str = "INFO"
    log_format: str = "text"  # "text" or "json"

    # Generation Service
    openrouter_api_key: Optional[str] = None
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    app_title: str = "Test Prep Question Generator"
    app_referer: str = "http://localhost"
    request_timeout: float = 60.0

    # Generation Settings
    generation_models: str = DEFAULT_GENERATION_MODELS  # Comma-separated, in fallback order
    max_retries: int = 5
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0
    retry_jitter: float = 1.0
    temperature: float = 0.7
    max_tokens: int = 1000

    # Usage Limits
    rate_limit_enforced: bool = False
    min_call_interval: float = 2.0
    questions_per_hour: int = 50
    questions_per_day: int = 200
    questions_per_session: int = 30
    evaluations_per_hour: int = 20
    evaluations_per_day: int = 100
    usage_store_path: str = "./data/usage.json"

    # Prefetch delays in seconds, comma-separated
    prefetch_delays_start: str = "0.5,1.0"
    prefetch_delays_advance: str = "0.1,0.3"

    def model_list(self) -> List[str]:
        """Return the configured generation models in fallback order."""
        return [m.strip() for m in self.generation_models.split(",") if m.strip()]

    def start_delays(self) -> List[float]:
        """Return the prefetch delays used when a test starts."""
        return _parse_delays(self.prefetch_delays_start)

    def advance_delays(self) -> List[float]:
        """Return the prefetch delays used after advancing."""
        return _parse_delays(self.prefetch_delays_advance)


def _parse_delays(raw: str) -> List[float]:
    return [float(part) for part in raw.split(",") if part.strip()]


# Global settings instance
settings = Settings()
