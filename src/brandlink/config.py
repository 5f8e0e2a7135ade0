"""
# Configuration Management Module

Settings for the BrandLink backend, built on **Pydantic Settings**.

## Loading Hierarchy

Higher layers override lower layers:

1. **Environment variables** (OS, Docker/K8s secrets, CI variables)
2. **`BRANDLINK_CONFIG_PATH`**: custom config file path from the environment
3. **`.brandlink` file** in the project root (development)
4. **`.env` file** in the project root (docker-compose compatible)
5. **Defaults** declared on `Settings`

If no file is found the application runs in environment-only mode.

## Configuration Groups

| Group | Purpose |
|-------|---------|
| **Server** | Host, port, debug mode, public URLs |
| **JWT** | Signing key, algorithm, token and session lifetimes |
| **MongoDB** | Connection URL, database name, timeouts, credentials |
| **Redis** | Cache / rate limiting connection |
| **Rate Limiting** | Global and login limits |
| **Security** | Retention windows, suspicious activity thresholds, lockout |
| **Blockchain** | External NFT service URL, API key, relayer wallet |
| **Media** | Upload directory, size limit, public URL prefix |

## Usage

```python
from brandlink.config import settings

secret_key = settings.SECRET_KEY.get_secret_value()
if settings.is_production:
    ...
```

Secrets use `SecretStr` and are validated at startup so that placeholders such as
`"change-me"` never reach production.
"""

import os
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Constants ---
BRANDLINK_FILENAME: str = ".brandlink"
DEFAULT_ENV_FILENAME: str = ".env"
CONFIG_ENV_VAR: str = "BRANDLINK_CONFIG_PATH"
PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent.parent


# --- Config file discovery (no logging) ---
def get_config_path() -> Optional[str]:
    """
    Determine the configuration file path.

    Order: `BRANDLINK_CONFIG_PATH` (if the file exists), `.brandlink` in the project
    root, `.env` in the project root. Returns `None` when nothing is found, which
    leaves configuration to environment variables only.

    Returns:
        Optional[str]: Absolute path to the configuration file, or `None`.
    """
    env_path: Optional[str] = os.environ.get(CONFIG_ENV_VAR)
    if env_path and os.path.exists(env_path):
        return env_path
    brandlink_path: Path = PROJECT_ROOT / BRANDLINK_FILENAME
    if brandlink_path.exists():
        return str(brandlink_path)
    env_path_file: Path = PROJECT_ROOT / DEFAULT_ENV_FILENAME
    if env_path_file.exists():
        return str(env_path_file)
    return None


CONFIG_PATH: Optional[str] = get_config_path()
if CONFIG_PATH:
    load_dotenv(dotenv_path=CONFIG_PATH, override=False)


class Settings(BaseSettings):
    """
    Application configuration settings model.

    **Configuration Groups:**
    *   **Server**: Host, port, debug mode, base URLs.
    *   **Database**: MongoDB connection details.
    *   **Redis**: Cache and rate limiting.
    *   **Security**: JWT key, session lifetime, lockout and anomaly thresholds.
    *   **Blockchain**: External NFT/supply chain service.
    *   **Media**: Local upload storage.
    """

    model_config = SettingsConfigDict(
        env_file=CONFIG_PATH if CONFIG_PATH else None,
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="allow",
    )

    # Server configuration
    HOST: str = "127.0.0.1"
    PORT: int = 8000
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    BASE_URL: str = "http://localhost:8000"
    FRONTEND_BASE_URL: str = "http://localhost:3000"
    CORS_ORIGINS: Optional[str] = None

    # JWT configuration
    SECRET_KEY: SecretStr = SecretStr("")  # Must be set in .brandlink or environment
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24
    SESSION_EXPIRE_HOURS: int = 24

    # MongoDB configuration
    MONGODB_URL: str = ""  # Must be set in .brandlink or environment
    MONGODB_DATABASE: str = "brandlink"
    MONGODB_CONNECTION_TIMEOUT: int = 10000
    MONGODB_SERVER_SELECTION_TIMEOUT: int = 5000
    MONGODB_USERNAME: Optional[str] = None
    MONGODB_PASSWORD: Optional[SecretStr] = None

    # Redis configuration
    # REDIS_URL is the effective URL; it is built from host/port/credentials when absent.
    REDIS_URL: Optional[str] = None
    REDIS_HOST: str = "127.0.0.1"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_USERNAME: Optional[str] = None
    REDIS_PASSWORD: Optional[SecretStr] = None
    CACHE_DEFAULT_TTL: int = 300

    # Rate limiting configuration
    RATE_LIMIT_REQUESTS: int = 100
    RATE_LIMIT_PERIOD_SECONDS: int = 60
    LOGIN_RATE_LIMIT: int = 10  # Login attempts per IP per period
    LOGIN_RATE_LIMIT_PERIOD_SECONDS: int = 900

    # Security layer
    SECURITY_EVENT_RETENTION_DAYS: int = 90
    BLACKLIST_DEFAULT_TTL_HOURS: int = 24
    SUSPICIOUS_WINDOW_MINUTES: int = 60
    SUSPICIOUS_FAILED_LOGIN_THRESHOLD: int = 5
    SUSPICIOUS_UNIQUE_IP_THRESHOLD: int = 3
    SUSPICIOUS_SESSION_THRESHOLD: int = 10
    MAX_LOGIN_ATTEMPTS: int = 5
    LOCKOUT_HOURS: int = 2

    # Blockchain service
    BLOCKCHAIN_SERVICE_URL: str = "http://localhost:8545"
    BLOCKCHAIN_API_KEY: Optional[SecretStr] = None
    BLOCKCHAIN_TIMEOUT_SECONDS: float = 30.0
    BLOCKCHAIN_NETWORK: str = "base"
    RELAYER_WALLET_ADDRESS: str = ""

    # Media storage
    UPLOAD_DIR: str = "uploads"
    UPLOAD_URL_PREFIX: str = "/uploads"
    MEDIA_MAX_FILE_SIZE: int = 15 * 1024 * 1024

    # Background tasks
    PENDING_TRANSFER_INTERVAL_SECONDS: int = 60
    TRANSFER_RETRY_INTERVAL_SECONDS: int = 300
    CLEANUP_INTERVAL_SECONDS: int = 3600

    # Operator endpoints under /admin; disabled while unset
    ADMIN_API_TOKEN: Optional[SecretStr] = None

    @field_validator("SECRET_KEY", mode="before")
    @classmethod
    def no_hardcoded_secrets(cls, v: Any, info: Any) -> Any:
        """
        Validates that critical secrets are not hardcoded or empty.

        Rejects empty values and placeholder text like "change" or "0000".

        Raises:
            ValueError: If the value is empty, hardcoded, or insecure.
        """
        if not v or "change" in str(v).lower() or "0000" in str(v) or not str(v).strip():
            raise ValueError(f"{info.field_name} must be set via environment or .brandlink and not hardcoded!")
        return v

    @field_validator("MONGODB_URL", "BLOCKCHAIN_SERVICE_URL", mode="before")
    @classmethod
    def no_empty_urls(cls, v: Any, info: Any) -> Any:
        """Validates that service URLs are not empty."""
        if not v or not str(v).strip():
            raise ValueError(f"{info.field_name} must be set via environment or .brandlink and not empty!")
        return v

    @field_validator(
        "ACCESS_TOKEN_EXPIRE_MINUTES",
        "SESSION_EXPIRE_HOURS",
        "RATE_LIMIT_REQUESTS",
        "RATE_LIMIT_PERIOD_SECONDS",
        "LOGIN_RATE_LIMIT",
        "MAX_LOGIN_ATTEMPTS",
        "MEDIA_MAX_FILE_SIZE",
        "PENDING_TRANSFER_INTERVAL_SECONDS",
        "TRANSFER_RETRY_INTERVAL_SECONDS",
        "CLEANUP_INTERVAL_SECONDS",
        mode="before",
    )
    @classmethod
    def validate_positive_integers(cls, v: Any, info: Any) -> int:
        """
        Validates that numeric settings are positive integers.

        Raises:
            ValueError: If the value is not a positive integer.
        """
        value = int(v)
        if value <= 0:
            raise ValueError(f"{info.field_name} must be a positive integer")
        return value

    @property
    def is_production(self) -> bool:
        """`True` when running with `DEBUG=False`."""
        return not self.DEBUG

    @property
    def cors_origins_list(self) -> list:
        """Configured CORS origins as a list."""
        if not self.CORS_ORIGINS:
            return []
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


# Global settings instance
settings: Settings = Settings()

# Compute effective REDIS_URL if not explicitly provided.
if not settings.REDIS_URL:
    creds = ""
    if settings.REDIS_USERNAME or settings.REDIS_PASSWORD:
        username = settings.REDIS_USERNAME or ""
        password = settings.REDIS_PASSWORD.get_secret_value() if settings.REDIS_PASSWORD else ""
        if username and password:
            creds = f"{username}:{password}@"
        elif password and not username:
            creds = f":{password}@"

    settings.REDIS_URL = f"redis://{creds}{settings.REDIS_HOST}:{settings.REDIS_PORT}/{settings.REDIS_DB}"
