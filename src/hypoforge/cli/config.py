"""CLI configuration and collaborator wiring.

Holds the effective ``ServerConfig`` for a CLI invocation and builds the
run store, gateway and dispatchers from it on first use.
"""

from pathlib import Path
from typing import Optional

from hypoforge.config import ServerConfig
from hypoforge.core.runs.continuation import DeferredContinuationDispatcher, HttpContinuationDispatcher
from hypoforge.core.runs.control import RunControl
from hypoforge.core.runs.executor import StepExecutor
from hypoforge.core.runs.gateway import AIGateway, HttpAIGateway
from hypoforge.core.runs.memory import RunStorage
from hypoforge.core.runs.recovery import RecoveryWatchdog
from hypoforge.core.runs.scheduler import ContinuationDispatcher, InvocationScheduler


class CLIContext:
    """CLI execution context with resolved configuration.

    Holds the effective configuration for a CLI command, including
    any overrides from command-line options.
    """

    def __init__(
        self,
        server_config: ServerConfig,
        *,
        storage: Optional[RunStorage] = None,
        gateway: Optional[AIGateway] = None,
        dispatcher: Optional[ContinuationDispatcher] = None,
    ):
        self._config = server_config
        self._storage = storage
        self._gateway = gateway
        self._dispatcher = dispatcher

    @property
    def config(self) -> ServerConfig:
        """Get the underlying server configuration."""
        return self._config

    @property
    def storage(self) -> RunStorage:
        if self._storage is None:
            self._storage = RunStorage(self._config.get_storage_dir())
        return self._storage

    @property
    def gateway(self) -> AIGateway:
        if self._gateway is None:
            self._gateway = HttpAIGateway(self._config.gateway)
        return self._gateway

    @property
    def dispatcher(self) -> ContinuationDispatcher:
        """Dispatcher that hands runs to the running service, synchronously."""
        if self._dispatcher is None:
            self._config.resolve_process_secret()
            self._dispatcher = HttpContinuationDispatcher(self._config.continuation, background=False)
        return self._dispatcher

    def control(self) -> RunControl:
        return RunControl(self.storage, self.dispatcher)

    def watchdog(self) -> RecoveryWatchdog:
        return RecoveryWatchdog(self.storage, self.dispatcher, self._config.recovery.stale_after_seconds)

    def local_scheduler(self, dispatcher: DeferredContinuationDispatcher) -> InvocationScheduler:
        """Scheduler that drives runs in this process, recording continuations."""
        executor = StepExecutor(self.storage, self.gateway, self._config.orchestration)
        return InvocationScheduler(executor, dispatcher, self._config.orchestration)


def create_context(
    config_file: Optional[str] = None,
    storage_dir: Optional[str] = None,
) -> CLIContext:
    """Create a CLI context from the environment, config file and overrides.

    Args:
        config_file: Explicit TOML config path from --config.
        storage_dir: Storage directory override from --storage-dir.
    """
    config = ServerConfig.from_env(config_file)
    if storage_dir:
        config.storage_dir = Path(storage_dir)
    return CLIContext(config)
