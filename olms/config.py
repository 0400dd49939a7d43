"""
Configuration Management Module

Process settings read from OLMS_* environment variables (or a .env file) via pydantic-settings.
Business settings (LTV limits, risk thresholds) are not configured here; they live in the
settings store and are read fresh on every loan operation.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class OLMSConfig(BaseSettings):
    """Ornament loan management system configuration"""

    model_config = SettingsConfigDict(
        env_prefix="OLMS_",
        env_file=".env",
        case_sensitive=False,
    )

    # Database configuration
    database_url: str = "sqlite:///olms.db"  # "memory://" for the in-memory store

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090
    cors_origins: str = "*"  # Comma separated

    # Security configuration
    auth_enabled: bool = True
    jwt_secret: str = "change-me-in-production"
    jwt_expiry_hours: int = 24
    jwt_algorithm: str = "HS256"
    bootstrap_admin_username: str = "admin"
    bootstrap_admin_password: str = "admin"

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # stderr when unset

    # Pagination
    default_page_size: int = 20
    max_page_size: int = 100


# Global configuration instance
config = OLMSConfig()


def get_config() -> OLMSConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> OLMSConfig:
    """Reload configuration from environment"""
    global config
    config = OLMSConfig()
    return config
