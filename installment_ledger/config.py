"""
Configuration Management Module

Centralized settings for the installment ledger, read from the environment
(prefix ``LEDGER_``) or a ``.env`` file through pydantic-settings.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class LedgerConfig(BaseSettings):
    """Installment ledger configuration"""

    # Storage configuration
    database_url: str = "sqlite:///installment_ledger.db"  # or memory://

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Business rules configuration
    default_currency: str = "EGP"
    max_plan_months: int = 60
    notes_max_length: int = 500
    enforce_plan_reconciliation: bool = False  # Reject plans whose schedule != financed amount

    # Feature flags
    enable_audit_logging: bool = True

    class Config:
        env_prefix = "LEDGER_"
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
