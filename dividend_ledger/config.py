"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class LedgerConfig(BaseSettings):
    """Dividend ledger configuration"""

    # Storage configuration
    database_url: str = "sqlite:///dividend_ledger.db"  # or memory://

    # Amount configuration
    amount_bits: int = 256  # Unsigned integer width for every amount

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stderr

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Payout gateway configuration
    payout_gateway_url: str = ""  # Empty = in-memory gateway
    payout_timeout: float = 5.0
    payout_api_key: str = ""

    # Feature flags
    enable_audit_logging: bool = True
    enable_events: bool = True

    class Config:
        env_prefix = "DIVLEDGER_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = LedgerConfig()


def get_config() -> LedgerConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LedgerConfig:
    """Reload configuration from environment"""
    global config
    config = LedgerConfig()
    return config
