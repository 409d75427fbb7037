"""
Core module for tube-mirror.

This module provides the foundational components used throughout the application:
    - exceptions: Custom exception classes for error handling
    - config: Configuration loading and validation
    - catalog: The persisted stats.json catalog
    - instance_lock: Single-instance coordination
    - logger: Logging system with multiple outputs

Usage:
    from tube_mirror.core import (
        Config, load_config,
        Catalog, InstanceLock,
        setup_logging, get_logger,
        MirrorError, ConfigError, CatalogError
    )
"""

from tube_mirror.core.catalog import STATS_FILENAME, Catalog, ChannelRecord, ListRecord
from tube_mirror.core.config import (
    Config,
    DownloaderConfig,
    InputConfig,
    OutputConfig,
    ProberConfig,
    load_config,
)
from tube_mirror.core.exceptions import (
    CatalogError,
    ConfigError,
    ConsistencyError,
    DownloaderError,
    DownloaderTimeoutError,
    InstanceLockError,
    InvalidJsonError,
    MirrorError,
    NonZeroReturnCodeError,
    ProbeError,
    ResourceError,
)
from tube_mirror.core.instance_lock import InstanceLock
from tube_mirror.core.logger import (
    get_logger,
    log_unavailable_video,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    # Config
    "Config",
    "OutputConfig",
    "InputConfig",
    "DownloaderConfig",
    "ProberConfig",
    "load_config",
    # Catalog
    "Catalog",
    "ListRecord",
    "ChannelRecord",
    "STATS_FILENAME",
    # Instance lock
    "InstanceLock",
    # Exceptions
    "MirrorError",
    "ConfigError",
    "CatalogError",
    "InstanceLockError",
    "ResourceError",
    "DownloaderError",
    "NonZeroReturnCodeError",
    "DownloaderTimeoutError",
    "InvalidJsonError",
    "ProbeError",
    "ConsistencyError",
    # Logger
    "setup_logging",
    "get_logger",
    "log_unavailable_video",
    "shutdown_logging",
]
