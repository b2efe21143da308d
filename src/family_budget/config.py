"""Configuration module for the Family Budget API.

Configuration is discovered in the following order: (1) via the
`FAMILY_BUDGET_CONFIG_PATH` environment variable, (2) `.fbconfig` in the project
root, (3) `.env` in the project root, (4) environment variables only.

Secrets (the JWT signing key, the MongoDB URL) are never hardcoded and must be
provided through the environment or the config file; validators reject empty
or placeholder values at startup.
"""

import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Constants ---
FBCONFIG_FILENAME: str = ".fbconfig"
DEFAULT_ENV_FILENAME: str = ".env"
CONFIG_ENV_VAR: str = "FAMILY_BUDGET_CONFIG_PATH"
PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent.parent


# --- Config file discovery (no logging) ---
def get_config_path() -> Optional[str]:
    """Determine the config file path to use, in order of precedence:
    1. Environment variable FAMILY_BUDGET_CONFIG_PATH
    2. .fbconfig in project root
    3. .env in project root
    4. None (fallback to environment variables only)

    Returns:
        Optional[str]: Path to config file, or None if not found.
    """
    env_path: Optional[str] = os.environ.get(CONFIG_ENV_VAR)
    if env_path and os.path.exists(env_path):
        return env_path
    fbconfig_path: Path = PROJECT_ROOT / FBCONFIG_FILENAME
    if fbconfig_path.exists():
        return str(fbconfig_path)
    env_path_file: Path = PROJECT_ROOT / DEFAULT_ENV_FILENAME
    if env_path_file.exists():
        return str(env_path_file)
    return None


CONFIG_PATH: Optional[str] = get_config_path()
if CONFIG_PATH:
    load_dotenv(dotenv_path=CONFIG_PATH, override=False)


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All fields are loaded from the environment or the discovered config file.
    """

    model_config = SettingsConfigDict(
        env_file=CONFIG_PATH if CONFIG_PATH else None,
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="allow",
    )

    # Server configuration
    HOST: str = "127.0.0.1"
    PORT: int = 5000
    DEBUG: bool = False
    API_PREFIX: str = ""

    # Comma-separated allowed origins, "*" allows any
    CORS_ORIGINS: str = "*"

    # JWT configuration
    SECRET_KEY: SecretStr = SecretStr("")  # Must be set in .fbconfig or environment
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 24 * 60

    # Password hashing
    BCRYPT_ROUNDS: int = 10

    # MongoDB configuration
    MONGODB_URL: str = ""  # Must be set in .fbconfig or environment
    MONGODB_DATABASE: str = "family-expense-tracker"
    MONGODB_USERNAME: Optional[str] = None
    MONGODB_PASSWORD: Optional[SecretStr] = None
    MONGODB_CONNECTION_TIMEOUT: int = 10000
    MONGODB_SERVER_SELECTION_TIMEOUT: int = 5000
    MONGODB_SOCKET_TIMEOUT: int = 45000

    # Connection lifecycle
    MONGODB_CONNECT_RETRIES: int = 5
    MONGODB_RECONNECT_BASE_DELAY: float = 5.0  # seconds, doubled per attempt
    MONGODB_RECONNECT_MAX_DELAY: float = 60.0  # seconds, backoff ceiling
    MONGODB_HEALTH_CHECK_INTERVAL: float = 15.0  # seconds between supervisor pings

    FAMILIES_COLLECTION: str = "families"

    # Logging configuration
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    @field_validator("SECRET_KEY", mode="before")
    @classmethod
    def no_hardcoded_secrets(cls, v, info):
        if not v or "change" in str(v).lower() or "0000" in str(v) or not str(v).strip():
            raise ValueError(f"{info.field_name} must be set via environment or .fbconfig and not hardcoded!")
        return v

    @field_validator("MONGODB_URL", mode="before")
    @classmethod
    def no_empty_urls(cls, v, info):
        if not v or not str(v).strip():
            raise ValueError(f"{info.field_name} must be set via environment or .fbconfig and not empty!")
        return v

    @field_validator("BCRYPT_ROUNDS", mode="before")
    @classmethod
    def validate_bcrypt_rounds(cls, v):
        """bcrypt accepts log rounds between 4 and 31."""
        rounds = int(v)
        if rounds < 4 or rounds > 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31")
        return rounds

    @field_validator("MONGODB_CONNECT_RETRIES", "ACCESS_TOKEN_EXPIRE_MINUTES", mode="before")
    @classmethod
    def validate_positive_integers(cls, v, info):
        value = int(v)
        if value <= 0:
            raise ValueError(f"{info.field_name} must be a positive integer")
        return value

    @field_validator(
        "MONGODB_RECONNECT_BASE_DELAY",
        "MONGODB_RECONNECT_MAX_DELAY",
        "MONGODB_HEALTH_CHECK_INTERVAL",
        mode="before",
    )
    @classmethod
    def validate_positive_delays(cls, v, info):
        value = float(v)
        if value <= 0:
            raise ValueError(f"{info.field_name} must be greater than zero")
        return value

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return not self.DEBUG

    @property
    def cors_origins_list(self) -> List[str]:
        """Get list of allowed CORS origins."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


# Global settings instance
settings: Settings = Settings()
