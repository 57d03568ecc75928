"""Tests for layered ServerConfig loading.

Covers:
- Defaults
- TOML sections (storage, logging, server, orchestration, gateway,
  continuation, recovery)
- Environment variable overrides and precedence over TOML
- Startup warnings for values that would fail late
- Process secret provisioning
- Logging formatter selection
"""

import logging
import stat
from pathlib import Path

import pytest

from hypoforge.config import DEFAULT_STORAGE_DIR, ServerConfig
from hypoforge.config.orchestration import OrchestrationConfig
from hypoforge.core.runs.server_secret import SECRET_FILENAME

ENV_VARS = [
    "HYPOFORGE_CONFIG_FILE",
    "HYPOFORGE_STORAGE_DIR",
    "HYPOFORGE_LOG_LEVEL",
    "HYPOFORGE_STRUCTURED_LOGGING",
    "HYPOFORGE_PROCESS_SECRET",
    "HYPOFORGE_BASE_URL",
    "HYPOFORGE_GATEWAY_URL",
    "HYPOFORGE_GATEWAY_API_KEY",
    "HYPOFORGE_BUDGET_SECONDS",
    "HYPOFORGE_MAX_ITERATIONS",
    "HYPOFORGE_FANOUT_WIDTH",
    "HYPOFORGE_OPERATION_TIMEOUT_SECONDS",
    "HYPOFORGE_STALE_AFTER_SECONDS",
]


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Isolate config discovery from the developer's machine."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    workdir = tmp_path / "work"
    workdir.mkdir()
    monkeypatch.chdir(workdir)
    return workdir


def _write_toml(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


# =============================================================================
# Defaults and TOML
# =============================================================================


class TestDefaults:
    def test_defaults(self):
        config = ServerConfig.from_env()

        assert config.get_storage_dir() == DEFAULT_STORAGE_DIR
        assert config.log_level == "INFO"
        assert config.orchestration.budget_seconds == 50.0
        assert config.orchestration.fanout_width == 5
        assert config.recovery.stale_after_seconds == 300.0
        assert config.startup_warnings == []


class TestTomlLoading:
    def test_all_sections(self, tmp_path):
        path = _write_toml(
            tmp_path / "custom.toml",
            """
[storage]
dir = "/data/runs"

[logging]
level = "debug"
structured = false

[server]
name = "hypoforge-test"

[orchestration]
budget_seconds = 25
max_iterations = 8
fanout_width = 2
default_model_choice = "FLASH"
structure_with_model = "no"

[gateway]
base_url = "https://gateway.internal/"
pro_model = "research-xl"

[continuation]
base_url = "https://app.example.com/"
max_attempts = 5

[recovery]
stale_after_seconds = 120
""",
        )

        config = ServerConfig.from_env(str(path))

        assert config.storage_dir == Path("/data/runs")
        assert config.log_level == "DEBUG"
        assert config.structured_logging is False
        assert config.server_name == "hypoforge-test"
        assert config.orchestration.budget_seconds == 25.0
        assert config.orchestration.max_iterations == 8
        assert config.orchestration.fanout_width == 2
        assert config.orchestration.default_model_choice == "flash"
        assert config.orchestration.structure_with_model is False
        assert config.gateway.base_url == "https://gateway.internal"
        assert config.gateway.pro_model == "research-xl"
        assert config.continuation.base_url == "https://app.example.com"
        assert config.continuation.max_attempts == 5
        assert config.recovery.stale_after_seconds == 120.0

    def test_project_file_overrides_home_file(self, isolated_env):
        _write_toml(Path.home() / ".hypoforge.toml", '[server]\nname = "home"\n[storage]\ndir = "home-dir"\n')
        _write_toml(isolated_env / "hypoforge.toml", '[server]\nname = "project"\n')

        config = ServerConfig.from_env()

        assert config.server_name == "project"
        assert config.storage_dir == Path("home-dir")

    def test_xdg_file_loaded(self):
        _write_toml(Path.home() / ".config" / "hypoforge" / "config.toml", "[recovery]\nstale_after_seconds = 60\n")

        assert ServerConfig.from_env().recovery.stale_after_seconds == 60.0

    def test_invalid_positive_values_fall_back(self):
        config = OrchestrationConfig.from_toml_dict({"budget_seconds": -1, "fanout_width": "wide"})

        assert config.budget_seconds == 50.0
        assert config.fanout_width == 5

    def test_missing_file_ignored(self, tmp_path):
        config = ServerConfig.from_env(str(tmp_path / "absent.toml"))
        assert config.server_name == "hypoforge"

    def test_malformed_file_ignored(self, tmp_path):
        path = _write_toml(tmp_path / "broken.toml", "[storage\ndir = ")

        config = ServerConfig.from_env(str(path))

        assert config.storage_dir is None


# =============================================================================
# Environment overrides
# =============================================================================


class TestEnvironment:
    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("HYPOFORGE_STORAGE_DIR", "/env/store")
        monkeypatch.setenv("HYPOFORGE_LOG_LEVEL", "warning")
        monkeypatch.setenv("HYPOFORGE_PROCESS_SECRET", "x" * 40)
        monkeypatch.setenv("HYPOFORGE_BASE_URL", "https://svc.example.com/")
        monkeypatch.setenv("HYPOFORGE_GATEWAY_URL", "https://gw.example.com")
        monkeypatch.setenv("HYPOFORGE_GATEWAY_API_KEY", "key-123")
        monkeypatch.setenv("HYPOFORGE_BUDGET_SECONDS", "40")
        monkeypatch.setenv("HYPOFORGE_MAX_ITERATIONS", "12")
        monkeypatch.setenv("HYPOFORGE_FANOUT_WIDTH", "3")
        monkeypatch.setenv("HYPOFORGE_OPERATION_TIMEOUT_SECONDS", "600")
        monkeypatch.setenv("HYPOFORGE_STALE_AFTER_SECONDS", "90")

        config = ServerConfig.from_env()

        assert config.get_storage_dir() == Path("/env/store")
        assert config.log_level == "WARNING"
        assert config.continuation.secret == "x" * 40
        assert config.continuation.base_url == "https://svc.example.com"
        assert config.gateway.base_url == "https://gw.example.com"
        assert config.gateway.api_key == "key-123"
        assert config.orchestration.budget_seconds == 40.0
        assert config.orchestration.max_iterations == 12
        assert config.orchestration.fanout_width == 3
        assert config.orchestration.operation_timeout_seconds == 600.0
        assert config.recovery.stale_after_seconds == 90.0

    def test_env_wins_over_toml(self, isolated_env, monkeypatch):
        _write_toml(isolated_env / "hypoforge.toml", "[orchestration]\nbudget_seconds = 30\n")
        monkeypatch.setenv("HYPOFORGE_BUDGET_SECONDS", "45")

        assert ServerConfig.from_env().orchestration.budget_seconds == 45.0

    def test_config_file_env_var(self, tmp_path, monkeypatch):
        path = _write_toml(tmp_path / "via-env.toml", '[server]\nname = "from-env-file"\n')
        monkeypatch.setenv("HYPOFORGE_CONFIG_FILE", str(path))

        assert ServerConfig.from_env().server_name == "from-env-file"

    def test_invalid_number_keeps_default(self, monkeypatch):
        monkeypatch.setenv("HYPOFORGE_FANOUT_WIDTH", "zero")

        assert ServerConfig.from_env().orchestration.fanout_width == 5


# =============================================================================
# Startup validation
# =============================================================================


class TestStartupWarnings:
    def test_unknown_log_level(self, monkeypatch):
        monkeypatch.setenv("HYPOFORGE_LOG_LEVEL", "chatty")

        config = ServerConfig.from_env()

        assert config.log_level == "INFO"
        assert any("log level" in w for w in config.startup_warnings)

    def test_invalid_structured_flag(self, monkeypatch):
        monkeypatch.setenv("HYPOFORGE_STRUCTURED_LOGGING", "maybe")

        config = ServerConfig.from_env()

        assert config.structured_logging is True
        assert any("HYPOFORGE_STRUCTURED_LOGGING" in w for w in config.startup_warnings)

    def test_backoff_ceiling_raised(self, isolated_env):
        _write_toml(
            isolated_env / "hypoforge.toml",
            "[orchestration]\nrate_limit_base_backoff_seconds = 20\nrate_limit_max_backoff_seconds = 10\n",
        )

        config = ServerConfig.from_env()

        assert config.orchestration.rate_limit_max_backoff_seconds == 20.0
        assert len(config.startup_warnings) == 1

    def test_negative_poll_interval(self, isolated_env):
        _write_toml(isolated_env / "hypoforge.toml", "[orchestration]\npoll_interval_seconds = -3\n")

        config = ServerConfig.from_env()

        assert config.orchestration.poll_interval_seconds == 0.0

    def test_poll_interval_exceeding_budget(self, isolated_env):
        _write_toml(
            isolated_env / "hypoforge.toml",
            "[orchestration]\nbudget_seconds = 10\npoll_interval_seconds = 15\n",
        )

        config = ServerConfig.from_env()

        assert any("budget_seconds" in w for w in config.startup_warnings)


# =============================================================================
# Process secret
# =============================================================================


class TestProcessSecret:
    def test_configured_secret_used(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HYPOFORGE_PROCESS_SECRET", "configured-secret")
        monkeypatch.setenv("HYPOFORGE_STORAGE_DIR", str(tmp_path / "store"))

        config = ServerConfig.from_env()

        assert config.resolve_process_secret() == "configured-secret"
        assert not (tmp_path / "store" / SECRET_FILENAME).exists()

    def test_generated_secret_persisted(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HYPOFORGE_STORAGE_DIR", str(tmp_path / "store"))

        first = ServerConfig.from_env().resolve_process_secret()
        second = ServerConfig.from_env().resolve_process_secret()

        path = tmp_path / "store" / SECRET_FILENAME
        assert first == second
        assert stat.S_IMODE(path.stat().st_mode) == 0o600


# =============================================================================
# Logging setup
# =============================================================================


class TestSetupLogging:
    @pytest.fixture
    def package_logger(self):
        logger = logging.getLogger("hypoforge")
        saved_handlers, saved_level = list(logger.handlers), logger.level
        yield logger
        logger.handlers[:] = saved_handlers
        logger.setLevel(saved_level)

    def test_structured_formatter(self, package_logger):
        ServerConfig(log_level="DEBUG", structured_logging=True).setup_logging()

        handler = package_logger.handlers[-1]
        record = logging.LogRecord("hypoforge.test", logging.INFO, __file__, 1, "hello", None, None)
        assert package_logger.level == logging.DEBUG
        assert handler.format(record).startswith('{"timestamp":')
        assert '"message":"hello"' in handler.format(record)

    def test_plain_formatter(self, package_logger):
        ServerConfig(structured_logging=False).setup_logging()

        record = logging.LogRecord("hypoforge.test", logging.WARNING, __file__, 1, "plain", None, None)
        assert package_logger.handlers[-1].format(record).endswith("hypoforge.test - WARNING - plain")
