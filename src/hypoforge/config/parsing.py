"""Parsing and normalization helpers for configuration values.

Provides boolean and numeric parsing used by the other config sub-modules.
"""

import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)

_VALID_MODEL_CHOICES = {"pro", "flash"}


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"true", "1", "yes", "on"}


def _try_parse_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    normalized = str(value).strip().lower()
    if normalized in {"true", "1", "yes", "on"}:
        return True
    if normalized in {"false", "0", "no", "off"}:
        return False
    return None


def _parse_positive_float(value: Any, *, name: str, default: float) -> float:
    """Parse a strictly positive float, falling back to ``default`` with a warning."""
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        logger.warning("Invalid value for %s: %r. Using default %s", name, value, default)
        return default
    if parsed <= 0:
        logger.warning("%s must be positive, got %s. Using default %s", name, parsed, default)
        return default
    return parsed


def _parse_positive_int(value: Any, *, name: str, default: int) -> int:
    """Parse a strictly positive int, falling back to ``default`` with a warning."""
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid value for %s: %r. Using default %s", name, value, default)
        return default
    if parsed <= 0:
        logger.warning("%s must be positive, got %s. Using default %s", name, parsed, default)
        return default
    return parsed


def _normalize_model_choice(value: str) -> str:
    normalized = value.strip().lower()
    if normalized not in _VALID_MODEL_CHOICES:
        logger.warning(
            "Invalid model choice '%s'. Falling back to 'pro'. Valid options: %s",
            value,
            ", ".join(sorted(_VALID_MODEL_CHOICES)),
        )
        return "pro"
    return normalized
