"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import List, Optional


class PiggybankConfig(BaseSettings):
    """Piggybank savings ledger configuration"""
    
    # Storage configuration
    database_path: str = "piggybank.db"  # SQLite file, ":memory:" for throwaway runs
    
    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stderr
    
    # Interest schedule configuration
    interest_anchor_weekday: int = 0  # 0 = Monday ... 6 = Sunday
    interest_anchor_hour: int = 10
    interest_timezone: str = "UTC"
    scheduler_interval_seconds: int = 3600  # Hourly is enough for weekly accrual
    
    # Feature flags
    enable_audit_logging: bool = True
    
    # CSV import configuration
    import_directory: str = "imports"
    import_date_formats: List[str] = ["%Y-%m-%d", "%m/%d/%Y", "%d.%m.%Y", "%b %d, %Y"]
    
    class Config:
        env_prefix = "PIGGYBANK_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = PiggybankConfig()


def get_config() -> PiggybankConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> PiggybankConfig:
    """Reload configuration from environment"""
    global config
    config = PiggybankConfig()
    return config
