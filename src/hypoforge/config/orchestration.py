"""Run orchestration configuration dataclasses.

Contains configuration for the step executor and fan-out coordinator, the
invocation scheduler budget, the AI gateway client, continuation delivery
and the stale-run recovery watchdog.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from hypoforge.config.parsing import (
    _normalize_model_choice,
    _parse_bool,
    _parse_positive_float,
    _parse_positive_int,
)


@dataclass
class OrchestrationConfig:
    """Configuration for run execution.

    Attributes:
        budget_seconds: Wall-clock budget for one scheduler invocation.
            Kept below the host's hard limit so a response can still be
            written. Default: 50.
        max_iterations: Safety ceiling on executor calls per invocation.
            Default: 20.
        poll_interval_seconds: Pause between consecutive polling iterations
            inside one invocation. Default: 2.
        fanout_width: Maximum hypotheses with research in flight at once,
            and maximum hypotheses advanced per executor call. Default: 5.
        operation_timeout_seconds: Ceiling for a single external research
            interaction before it is treated as a hard timeout. Default: 7200.
        rate_limit_base_backoff_seconds: Backoff used when a rate-limit
            response carries no retry hint. Default: 5.
        rate_limit_max_backoff_seconds: Upper bound for any single backoff.
            Default: 30.
        rate_limit_max_retries: Consecutive rate limits tolerated before the
            error becomes terminal for its scope. Default: 5.
        run_lock_timeout_seconds: How long an executor call waits for the
            per-run step lock before yielding to the current holder.
            Default: 1.
        default_hypothesis_count: Candidate count for new runs. Default: 5.
        default_model_choice: Model tier for new runs (pro|flash).
        structure_with_model: Whether divergent output is structured with a
            generation call before regex fallbacks. Default: True.
    """

    budget_seconds: float = 50.0
    max_iterations: int = 20
    poll_interval_seconds: float = 2.0
    fanout_width: int = 5
    operation_timeout_seconds: float = 7200.0
    rate_limit_base_backoff_seconds: float = 5.0
    rate_limit_max_backoff_seconds: float = 30.0
    rate_limit_max_retries: int = 5
    run_lock_timeout_seconds: float = 1.0
    default_hypothesis_count: int = 5
    default_model_choice: str = "pro"
    structure_with_model: bool = True

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "OrchestrationConfig":
        """Create config from TOML dict (typically [orchestration] section).

        Args:
            data: Dict from TOML parsing

        Returns:
            OrchestrationConfig instance
        """
        defaults = cls()
        return cls(
            budget_seconds=_parse_positive_float(
                data.get("budget_seconds", defaults.budget_seconds),
                name="budget_seconds",
                default=defaults.budget_seconds,
            ),
            max_iterations=_parse_positive_int(
                data.get("max_iterations", defaults.max_iterations),
                name="max_iterations",
                default=defaults.max_iterations,
            ),
            poll_interval_seconds=float(data.get("poll_interval_seconds", defaults.poll_interval_seconds)),
            fanout_width=_parse_positive_int(
                data.get("fanout_width", defaults.fanout_width),
                name="fanout_width",
                default=defaults.fanout_width,
            ),
            operation_timeout_seconds=_parse_positive_float(
                data.get("operation_timeout_seconds", defaults.operation_timeout_seconds),
                name="operation_timeout_seconds",
                default=defaults.operation_timeout_seconds,
            ),
            rate_limit_base_backoff_seconds=float(
                data.get("rate_limit_base_backoff_seconds", defaults.rate_limit_base_backoff_seconds)
            ),
            rate_limit_max_backoff_seconds=float(
                data.get("rate_limit_max_backoff_seconds", defaults.rate_limit_max_backoff_seconds)
            ),
            rate_limit_max_retries=int(data.get("rate_limit_max_retries", defaults.rate_limit_max_retries)),
            run_lock_timeout_seconds=float(data.get("run_lock_timeout_seconds", defaults.run_lock_timeout_seconds)),
            default_hypothesis_count=_parse_positive_int(
                data.get("default_hypothesis_count", defaults.default_hypothesis_count),
                name="default_hypothesis_count",
                default=defaults.default_hypothesis_count,
            ),
            default_model_choice=_normalize_model_choice(
                str(data.get("default_model_choice", defaults.default_model_choice))
            ),
            structure_with_model=_parse_bool(data.get("structure_with_model", defaults.structure_with_model)),
        )


@dataclass
class GatewayConfig:
    """Connection settings for the AI gateway.

    Attributes:
        base_url: Gateway root URL
        api_key: Bearer token sent on every request (never logged)
        timeout_seconds: Per-request HTTP timeout
        pro_model: Model identifier used for ``model_choice="pro"`` runs
        flash_model: Model identifier used for ``model_choice="flash"`` runs
    """

    base_url: str = "http://localhost:8080"
    api_key: Optional[str] = None
    timeout_seconds: float = 60.0
    pro_model: str = "deep-research-pro"
    flash_model: str = "deep-research-flash"

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "GatewayConfig":
        defaults = cls()
        return cls(
            base_url=str(data.get("base_url", defaults.base_url)).rstrip("/"),
            api_key=data.get("api_key", defaults.api_key),
            timeout_seconds=float(data.get("timeout_seconds", defaults.timeout_seconds)),
            pro_model=str(data.get("pro_model", defaults.pro_model)),
            flash_model=str(data.get("flash_model", defaults.flash_model)),
        )


@dataclass
class ContinuationConfig:
    """Settings for the self-chaining process call.

    Attributes:
        base_url: Public base URL of this service, used to call
            ``/runs/{id}/process``
        secret: Shared secret sent in the process header. Resolved at
            startup when not configured explicitly.
        max_attempts: Delivery attempts before giving up. Default: 3.
        backoff_seconds: Linear backoff unit between attempts. Default: 1.
        timeout_seconds: Per-attempt HTTP timeout. Default: 30.
    """

    base_url: str = "http://localhost:8000"
    secret: Optional[str] = None
    max_attempts: int = 3
    backoff_seconds: float = 1.0
    timeout_seconds: float = 30.0

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "ContinuationConfig":
        defaults = cls()
        return cls(
            base_url=str(data.get("base_url", defaults.base_url)).rstrip("/"),
            secret=data.get("secret", defaults.secret),
            max_attempts=_parse_positive_int(
                data.get("max_attempts", defaults.max_attempts),
                name="max_attempts",
                default=defaults.max_attempts,
            ),
            backoff_seconds=float(data.get("backoff_seconds", defaults.backoff_seconds)),
            timeout_seconds=float(data.get("timeout_seconds", defaults.timeout_seconds)),
        )


@dataclass
class RecoveryConfig:
    """Settings for the stale-run watchdog.

    Attributes:
        stale_after_seconds: A running/pending run whose ``updated_at`` is
            older than this is re-triggered. Default: 300.
    """

    stale_after_seconds: float = 300.0

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "RecoveryConfig":
        return cls(
            stale_after_seconds=_parse_positive_float(
                data.get("stale_after_seconds", 300.0),
                name="stale_after_seconds",
                default=300.0,
            ),
        )


# ---------------------------------------------------------------------------
# Env var names
# ---------------------------------------------------------------------------

_STORAGE_DIR_ENV_VAR = "HYPOFORGE_STORAGE_DIR"
_LOG_LEVEL_ENV_VAR = "HYPOFORGE_LOG_LEVEL"
_STRUCTURED_LOGGING_ENV_VAR = "HYPOFORGE_STRUCTURED_LOGGING"
_PROCESS_SECRET_ENV_VAR = "HYPOFORGE_PROCESS_SECRET"
_BASE_URL_ENV_VAR = "HYPOFORGE_BASE_URL"
_GATEWAY_URL_ENV_VAR = "HYPOFORGE_GATEWAY_URL"
_GATEWAY_API_KEY_ENV_VAR = "HYPOFORGE_GATEWAY_API_KEY"
_BUDGET_SECONDS_ENV_VAR = "HYPOFORGE_BUDGET_SECONDS"
_MAX_ITERATIONS_ENV_VAR = "HYPOFORGE_MAX_ITERATIONS"
_FANOUT_WIDTH_ENV_VAR = "HYPOFORGE_FANOUT_WIDTH"
_OPERATION_TIMEOUT_ENV_VAR = "HYPOFORGE_OPERATION_TIMEOUT_SECONDS"
_STALE_AFTER_ENV_VAR = "HYPOFORGE_STALE_AFTER_SECONDS"
