"""Configuration package for hypoforge.

Callers use ``from hypoforge.config import ServerConfig`` etc.

Sub-modules:
    parsing       – Boolean/number parsing helpers
    orchestration – OrchestrationConfig, GatewayConfig, ContinuationConfig,
                    RecoveryConfig, env var names
    server        – ServerConfig dataclass, get_config global
    loader        – ServerConfig loading/validation mixin (_ServerConfigLoader)
    decorators    – timed
"""

from hypoforge.config.decorators import timed  # noqa: F401
from hypoforge.config.orchestration import (  # noqa: F401
    ContinuationConfig,
    GatewayConfig,
    OrchestrationConfig,
    RecoveryConfig,
)
from hypoforge.config.parsing import _parse_bool, _try_parse_bool  # noqa: F401
from hypoforge.config.server import (  # noqa: F401
    _PACKAGE_VERSION,
    DEFAULT_STORAGE_DIR,
    ServerConfig,
    get_config,
)
