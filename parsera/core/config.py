"""
Client configuration
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Client settings"""

    # Logging Settings
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # API Settings
    PARSERA_API_KEY: str = ""
    PARSERA_BASE_URL: str = "https://api.parsera.org/v1"
    PARSERA_DEFAULT_PROXY_COUNTRY: str = "US"
    API_KEY_HEADER: str = "X-API-KEY"

    # Request Timeouts (seconds)
    PARSERA_TIMEOUT: float = 30.0

    # Retry Settings
    PARSERA_MAX_RETRIES: int = 3
    PARSERA_BACKOFF_FACTOR: float = 2.0
    PARSERA_INITIAL_DELAY: float = 1.0
    PARSERA_RETRY_ON_TIMEOUT: bool = False

    # Spacing between outbound attempts of one client (seconds)
    PARSERA_MIN_REQUEST_INTERVAL: float = 0.1

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


# Create global settings instance
settings = Settings()
