"""Application configuration using pydantic-settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # LLM (Ollama-compatible /api/chat endpoint)
    llm_base_url: str = "http://localhost:11434"
    llm_model: str = "llama3.1:8b"
    llm_timeout_seconds: float = 60.0
    llm_tools_enabled: bool = True

    # Assistant
    default_location: str = "San Francisco"

    # OpenWeather
    openweather_api_key: str = ""
    openweather_api_endpoint: str = "https://api.openweathermap.org/data/2.5"
    weather_timeout_seconds: float = 10.0
    daily_forecast_count: int = 10
    map_zoom: int = 10

    # Geocoding (OpenCage-compatible)
    geocoding_url: str = "https://api.opencagedata.com/geocode/v1/json"
    geocoding_api_key: str = ""
    geocoding_timeout_seconds: float = 10.0

    # App
    host: str = "0.0.0.0"
    port: int = 8000
    turn_history_limit: int = 20
    debug: bool = False
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
