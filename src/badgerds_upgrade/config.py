"""Configuration settings for badgerds-upgrade.

This module provides Pydantic Settings for configuration management.
All settings are loaded from environment variables with the
BADGERDS_UPGRADE_ prefix. Every setting has a default so a bare
repository path is enough to run an upgrade.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from badgerds_upgrade.constants import (
    BACKUP_DIR_PREFIX,
    DEFAULT_PROGRESS_INTERVAL,
    TEMP_DIR_PREFIX,
)


class UpgradeSettings(BaseSettings):
    """Configuration settings for an upgrade run.

    Attributes:
        log_level: Logging level used by the CLI
        progress_interval: Report progress every N migrated entries
        sync_writes: Open every store with synchronous writes
        temp_prefix: Name prefix of temporary destination directories
        backup_prefix: Name prefix of backup directories
        verify: Re-count the migrated store before swapping it in
    """

    model_config = SettingsConfigDict(
        env_prefix="BADGERDS_UPGRADE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Allow extra env vars without error
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    progress_interval: int = Field(
        default=DEFAULT_PROGRESS_INTERVAL,
        ge=1,
        description="Number of entries between progress reports",
    )
    sync_writes: bool = Field(
        default=True,
        description="Fsync store writes before acknowledging them",
    )
    temp_prefix: str = Field(
        default=TEMP_DIR_PREFIX,
        min_length=1,
        description="Prefix for temporary destination directories",
    )
    backup_prefix: str = Field(
        default=BACKUP_DIR_PREFIX,
        min_length=1,
        description="Prefix for backup directories",
    )
    verify: bool = Field(
        default=True,
        description="Verify the entry count of the migrated store before swapping",
    )
