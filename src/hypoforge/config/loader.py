"""ServerConfig loading and validation logic.

Provides ``_ServerConfigLoader``, a mixin class whose methods are inherited by
``ServerConfig`` (defined in ``server.py``). Loading is layered: TOML files
from the XDG directory, the home directory and the project directory are
applied in order, then ``HYPOFORGE_*`` environment variables override them.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any, List, Optional, cast

if TYPE_CHECKING:
    from hypoforge.config.server import ServerConfig

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # Python < 3.11 fallback

from hypoforge.config.orchestration import (
    _BASE_URL_ENV_VAR,
    _BUDGET_SECONDS_ENV_VAR,
    _FANOUT_WIDTH_ENV_VAR,
    _GATEWAY_API_KEY_ENV_VAR,
    _GATEWAY_URL_ENV_VAR,
    _LOG_LEVEL_ENV_VAR,
    _MAX_ITERATIONS_ENV_VAR,
    _OPERATION_TIMEOUT_ENV_VAR,
    _PROCESS_SECRET_ENV_VAR,
    _STALE_AFTER_ENV_VAR,
    _STORAGE_DIR_ENV_VAR,
    _STRUCTURED_LOGGING_ENV_VAR,
    ContinuationConfig,
    GatewayConfig,
    OrchestrationConfig,
    RecoveryConfig,
)
from hypoforge.config.parsing import (
    _parse_bool,
    _parse_positive_float,
    _parse_positive_int,
    _try_parse_bool,
)

logger = logging.getLogger(__name__)

_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class _ServerConfigLoader:
    """Mixin providing config-loading methods for ``ServerConfig``.

    These methods are inherited by the ``ServerConfig`` dataclass defined in
    ``server.py``. At runtime ``self`` is always a ``ServerConfig`` instance.
    """

    if TYPE_CHECKING:

        def __init_subclass__(cls, **kwargs: Any) -> None: ...

        storage_dir: Optional[Path]
        log_level: str
        structured_logging: bool
        server_name: str
        server_version: str
        orchestration: OrchestrationConfig
        gateway: GatewayConfig
        continuation: ContinuationConfig
        recovery: RecoveryConfig
        startup_warnings: List[str]

        def _add_startup_warning(self, message: str) -> None: ...

    @classmethod
    def from_env(cls, config_file: Optional[str] = None) -> "ServerConfig":
        """
        Create configuration from environment variables and optional TOML file.

        Priority (highest to lowest):
        1. Environment variables
        2. Explicit config file (argument or HYPOFORGE_CONFIG_FILE)
        3. Project TOML config (./hypoforge.toml)
        4. User TOML config (~/.hypoforge.toml)
        5. XDG config (~/.config/hypoforge/config.toml)
        6. Default values
        """
        config = cls()

        xdg_config_home = os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")
        xdg_config = Path(xdg_config_home) / "hypoforge" / "config.toml"
        if xdg_config.exists():
            config._load_toml(xdg_config)
            logger.debug(f"Loaded XDG config from {xdg_config}")

        home_config = Path.home() / ".hypoforge.toml"
        if home_config.exists():
            config._load_toml(home_config)
            logger.debug(f"Loaded user config from {home_config}")

        project_config = Path("hypoforge.toml")
        if project_config.exists():
            config._load_toml(project_config)
            logger.debug(f"Loaded project config from {project_config}")

        toml_path = config_file or os.environ.get("HYPOFORGE_CONFIG_FILE")
        if toml_path:
            config._load_toml(Path(toml_path))

        # Override with environment variables
        config._load_env()
        config._validate_startup_configuration()

        return cast("ServerConfig", config)

    def _load_toml(self, path: Path) -> None:
        """Load configuration from TOML file."""
        if not path.exists():
            logger.warning(f"Config file not found: {path}")
            return

        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            # Storage settings
            if "storage" in data:
                storage = data["storage"]
                if "dir" in storage:
                    self.storage_dir = Path(storage["dir"])

            # Logging settings
            if "logging" in data:
                log = data["logging"]
                if "level" in log:
                    self.log_level = str(log["level"]).upper()
                if "structured" in log:
                    self.structured_logging = _parse_bool(log["structured"])

            # Server settings
            if "server" in data:
                srv = data["server"]
                if "name" in srv:
                    self.server_name = srv["name"]

            if "orchestration" in data:
                self.orchestration = OrchestrationConfig.from_toml_dict(data["orchestration"])

            if "gateway" in data:
                self.gateway = GatewayConfig.from_toml_dict(data["gateway"])

            if "continuation" in data:
                self.continuation = ContinuationConfig.from_toml_dict(data["continuation"])

            if "recovery" in data:
                self.recovery = RecoveryConfig.from_toml_dict(data["recovery"])

        except Exception as e:
            logger.error(f"Error loading config file {path}: {e}")

    def _load_env(self) -> None:
        """Load configuration from environment variables."""
        if storage := os.environ.get(_STORAGE_DIR_ENV_VAR):
            self.storage_dir = Path(storage)

        if level := os.environ.get(_LOG_LEVEL_ENV_VAR):
            self.log_level = level.upper()

        if structured := os.environ.get(_STRUCTURED_LOGGING_ENV_VAR):
            parsed = _try_parse_bool(structured)
            if parsed is None:
                self._add_startup_warning(
                    f"Ignoring {_STRUCTURED_LOGGING_ENV_VAR}={structured!r}: expected a boolean"
                )
            else:
                self.structured_logging = parsed

        if secret := os.environ.get(_PROCESS_SECRET_ENV_VAR):
            self.continuation.secret = secret

        if base_url := os.environ.get(_BASE_URL_ENV_VAR):
            self.continuation.base_url = base_url.rstrip("/")

        if gateway_url := os.environ.get(_GATEWAY_URL_ENV_VAR):
            self.gateway.base_url = gateway_url.rstrip("/")

        if gateway_key := os.environ.get(_GATEWAY_API_KEY_ENV_VAR):
            self.gateway.api_key = gateway_key

        if budget := os.environ.get(_BUDGET_SECONDS_ENV_VAR):
            self.orchestration.budget_seconds = _parse_positive_float(
                budget, name=_BUDGET_SECONDS_ENV_VAR, default=self.orchestration.budget_seconds
            )

        if iterations := os.environ.get(_MAX_ITERATIONS_ENV_VAR):
            self.orchestration.max_iterations = _parse_positive_int(
                iterations, name=_MAX_ITERATIONS_ENV_VAR, default=self.orchestration.max_iterations
            )

        if width := os.environ.get(_FANOUT_WIDTH_ENV_VAR):
            self.orchestration.fanout_width = _parse_positive_int(
                width, name=_FANOUT_WIDTH_ENV_VAR, default=self.orchestration.fanout_width
            )

        if op_timeout := os.environ.get(_OPERATION_TIMEOUT_ENV_VAR):
            self.orchestration.operation_timeout_seconds = _parse_positive_float(
                op_timeout,
                name=_OPERATION_TIMEOUT_ENV_VAR,
                default=self.orchestration.operation_timeout_seconds,
            )

        if stale_after := os.environ.get(_STALE_AFTER_ENV_VAR):
            self.recovery.stale_after_seconds = _parse_positive_float(
                stale_after, name=_STALE_AFTER_ENV_VAR, default=self.recovery.stale_after_seconds
            )

    def _validate_startup_configuration(self) -> None:
        """Normalize values that would otherwise fail late, recording warnings."""
        if self.log_level not in _VALID_LOG_LEVELS:
            self._add_startup_warning(f"Unknown log level {self.log_level!r}; using INFO")
            self.log_level = "INFO"

        orch = self.orchestration
        if orch.rate_limit_max_backoff_seconds < orch.rate_limit_base_backoff_seconds:
            self._add_startup_warning(
                "rate_limit_max_backoff_seconds is below rate_limit_base_backoff_seconds; "
                "raising the ceiling to match"
            )
            orch.rate_limit_max_backoff_seconds = orch.rate_limit_base_backoff_seconds

        if orch.poll_interval_seconds < 0:
            self._add_startup_warning("poll_interval_seconds cannot be negative; using 0")
            orch.poll_interval_seconds = 0.0

        if orch.poll_interval_seconds >= orch.budget_seconds:
            self._add_startup_warning(
                "poll_interval_seconds is not below budget_seconds; polls will end each invocation"
            )

        for warning in self.startup_warnings:
            logger.warning(warning)
