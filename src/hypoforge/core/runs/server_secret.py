"""Shared secret for the self-chaining process endpoint.

The process endpoint is invoked by the service itself (continuations) and by
the recovery watchdog. Both sides must present the same secret in the
``X-Process-Secret`` header.

Secret provisioning:
- Use ``ContinuationConfig.secret`` when configured (HYPOFORGE_PROCESS_SECRET)
- Otherwise load ``{storage_dir}/.process_secret`` (mode 0600)
- Otherwise generate a 32-byte random token and write it there
"""

from __future__ import annotations

import hmac
import logging
import os
import secrets
import stat
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

SECRET_FILENAME = ".process_secret"

# Owner read/write only
SECRET_FILE_MODE = stat.S_IRUSR | stat.S_IWUSR  # 0o600

_MIN_SECRET_LENGTH = 32


def get_secret_path(data_dir: Path) -> Path:
    return Path(data_dir) / SECRET_FILENAME


def generate_secret() -> str:
    """Generate a new random URL-safe secret."""
    return secrets.token_urlsafe(_MIN_SECRET_LENGTH)


def load_or_create_secret(data_dir: Path) -> str:
    """Load the stored process secret or create a new one.

    Args:
        data_dir: Storage directory holding the secret file

    Returns:
        Process secret

    Raises:
        OSError: If the secret file cannot be created
    """
    secret_path = get_secret_path(data_dir)

    if secret_path.exists():
        try:
            secret = secret_path.read_text(encoding="utf-8").strip()
            if len(secret) >= _MIN_SECRET_LENGTH:
                logger.debug("Loaded existing process secret from %s", secret_path)
                return secret
            logger.warning("Existing process secret too short (%d chars), regenerating", len(secret))
        except OSError as e:
            logger.warning("Failed to read process secret file: %s, regenerating", e)

    secret_path.parent.mkdir(parents=True, exist_ok=True)
    secret = generate_secret()
    try:
        secret_path.write_text(secret, encoding="utf-8")
        os.chmod(secret_path, SECRET_FILE_MODE)
        logger.info("Generated new process secret at %s", secret_path)
        return secret
    except OSError as e:
        logger.error("Failed to write process secret file: %s", e)
        raise


def verify_secret(expected: Optional[str], provided: Optional[str]) -> bool:
    """Compare a presented secret against the expected one in constant time."""
    if not expected or not provided:
        return False
    return hmac.compare_digest(expected.encode(), provided.encode())


# =============================================================================
# Module Exports
# =============================================================================

__all__ = [
    "SECRET_FILENAME",
    "generate_secret",
    "get_secret_path",
    "load_or_create_secret",
    "verify_secret",
]
