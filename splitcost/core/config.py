from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # API Settings
    PROJECT_NAME: str = "SplitCost API"
    API_V1_STR: str = "/api/v1"
    PROJECT_VERSION: str = "0.1.0"
    DESCRIPTION: str = "Shared expense ledger with real-time settlement"

    # MongoDB
    MONGODB_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "splitcost"

    # JWT (tokens are issued elsewhere, we only verify them)
    JWT_SECRET: str = "change-this-in-production"
    JWT_ALGORITHM: str = "HS256"

    # Ledger
    DEFAULT_CURRENCY: str = "USD"
    STORE_TIMEOUT_SECONDS: float = 5.0
    LEDGER_RETRY_ATTEMPTS: int = 3
    LEDGER_RETRY_BASE_DELAY: float = 0.05

    # Realtime
    WS_HEARTBEAT_INTERVAL: int = 30
    WS_HEARTBEAT_TIMEOUT: int = 90
    WS_SEND_QUEUE_SIZE: int = 100
    WS_SEND_TIMEOUT: float = 5.0
    WS_RECONNECT_BASE_DELAY: float = 1.0
    WS_RECONNECT_MAX_ATTEMPTS: int = 5

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env"
    )

settings = Settings()
