"""hypoforge: resumable hypothesis pipeline orchestrator."""

from hypoforge.config.server import _PACKAGE_VERSION as __version__

__all__ = ["__version__"]
