"""ServerConfig dataclass and global configuration state.

This module defines the ``ServerConfig`` class (field declarations and simple
accessor methods) and the global ``get_config`` helper.
Loading and validation logic lives in the ``_ServerConfigLoader`` mixin
(``loader.py``) which ``ServerConfig`` inherits from.
"""

import logging
from dataclasses import dataclass, field
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_package_version
from pathlib import Path
from typing import List, Optional

from hypoforge.config.loader import _ServerConfigLoader
from hypoforge.config.orchestration import (
    ContinuationConfig,
    GatewayConfig,
    OrchestrationConfig,
    RecoveryConfig,
)


def _get_version() -> str:
    """Get package version from metadata (single source of truth: pyproject.toml)."""
    try:
        return get_package_version("hypoforge")
    except PackageNotFoundError:
        return "0.1.0"  # Fallback for dev without install


_PACKAGE_VERSION = _get_version()

DEFAULT_STORAGE_DIR = Path(".hypoforge")


@dataclass
class ServerConfig(_ServerConfigLoader):
    """Server configuration with support for env vars and TOML overrides."""

    # Storage configuration
    storage_dir: Optional[Path] = None

    # Logging configuration
    log_level: str = "INFO"
    structured_logging: bool = True

    # Server configuration
    server_name: str = "hypoforge"
    server_version: str = field(default_factory=lambda: _PACKAGE_VERSION)

    # Run execution
    orchestration: OrchestrationConfig = field(default_factory=OrchestrationConfig)

    # AI gateway client
    gateway: GatewayConfig = field(default_factory=GatewayConfig)

    # Self-chaining continuation
    continuation: ContinuationConfig = field(default_factory=ContinuationConfig)

    # Stale-run watchdog
    recovery: RecoveryConfig = field(default_factory=RecoveryConfig)

    startup_warnings: List[str] = field(default_factory=list, repr=False)

    def _add_startup_warning(self, message: str) -> None:
        if message and message not in self.startup_warnings:
            self.startup_warnings.append(message)

    def get_storage_dir(self) -> Path:
        """
        Get the resolved storage directory path.

        Priority:
        1. Explicitly configured storage_dir (from TOML or env var)
        2. Default: ./.hypoforge

        Returns:
            Path to storage directory
        """
        if self.storage_dir is not None:
            return self.storage_dir.expanduser()
        return DEFAULT_STORAGE_DIR

    def resolve_process_secret(self) -> str:
        """Return the process-endpoint secret, provisioning one if unset."""
        if not self.continuation.secret:
            from hypoforge.core.runs.server_secret import load_or_create_secret

            self.continuation.secret = load_or_create_secret(self.get_storage_dir())
        return self.continuation.secret

    def setup_logging(self) -> None:
        """Configure logging based on settings."""
        level = getattr(logging, self.log_level, logging.INFO)

        if self.structured_logging:
            # JSON-style structured logging
            formatter = logging.Formatter(
                '{"timestamp":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","message":"%(message)s"}'
            )
        else:
            formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

        handler = logging.StreamHandler()
        handler.setFormatter(formatter)

        root_logger = logging.getLogger("hypoforge")
        root_logger.setLevel(level)
        root_logger.addHandler(handler)


# Global configuration instance
_config: Optional[ServerConfig] = None


def get_config() -> ServerConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = ServerConfig.from_env()
    return _config
