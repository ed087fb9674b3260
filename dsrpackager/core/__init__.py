"""Core package containing configuration and logging."""

from dsrpackager.core.config_manager import ConfigManager, ConfigSchema, PackagerSettings
from dsrpackager.core.logging_manager import LoggingManager, LoggingReporter, Reporter
