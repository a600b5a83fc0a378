"""Phrase sets and thresholds driving answer classification."""

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple, Union

import yaml
from loguru import logger

from notebook_relay.constants import (
    ELLIPSIS_SUFFIXES,
    HARD_ERROR_PHRASES,
    INPUT_RATE_LIMIT_PHRASES,
    PLACEHOLDER_PHRASES,
    RATE_LIMIT_PHRASES,
    StabilityConfig,
)
from notebook_relay.core.exceptions import ConfigurationError

DEFAULT_PHRASES_FILE = Path("config/phrases.yaml")

_PHRASE_KEYS = ("placeholder", "hard_error", "rate_limit", "input_rate_limit")


def _normalize(phrases: Iterable[str]) -> Tuple[str, ...]:
    """Lowercase, strip and de-duplicate while keeping order."""
    seen: Dict[str, None] = {}
    for phrase in phrases:
        cleaned = str(phrase).strip().lower()
        if cleaned:
            seen.setdefault(cleaned, None)
    return tuple(seen)


def _contains_any(text: str, phrases: Tuple[str, ...]) -> bool:
    lower = text.lower()
    return any(phrase in lower for phrase in phrases)


@dataclass(frozen=True)
class PhraseSets:
    """
    Case-insensitive substring phrase sets used by the response classifier.

    The service rewords its UI messages from time to time, so the lists are
    data: defaults come from ``notebook_relay.constants.phrases`` and a YAML
    file can extend or replace them.
    """

    placeholder: Tuple[str, ...] = field(default_factory=lambda: _normalize(PLACEHOLDER_PHRASES))
    hard_error: Tuple[str, ...] = field(default_factory=lambda: _normalize(HARD_ERROR_PHRASES))
    rate_limit: Tuple[str, ...] = field(default_factory=lambda: _normalize(RATE_LIMIT_PHRASES))
    input_rate_limit: Tuple[str, ...] = field(
        default_factory=lambda: _normalize(INPUT_RATE_LIMIT_PHRASES)
    )
    stability_threshold: int = StabilityConfig.REQUIRED_STABLE_POLLS
    placeholder_max_length: int = StabilityConfig.PLACEHOLDER_MAX_LENGTH

    def is_placeholder(self, text: str) -> bool:
        """Known loading phrase, or a short text ending in an ellipsis."""
        if _contains_any(text, self.placeholder):
            return True
        stripped = text.strip()
        return len(stripped) < self.placeholder_max_length and stripped.endswith(ELLIPSIS_SUFFIXES)

    def is_hard_error(self, text: str) -> bool:
        return _contains_any(text, self.hard_error)

    def is_rate_limit(self, text: str) -> bool:
        return _contains_any(text, self.rate_limit)

    def is_input_rate_limit(self, text: Optional[str]) -> bool:
        """Rate-limit wording on the prompt input surface."""
        return bool(text) and _contains_any(text, self.input_rate_limit)  # type: ignore[arg-type]

    def merged(self, data: Dict[str, Any]) -> "PhraseSets":
        """
        Return a copy with the overrides in ``data`` applied.

        Phrase lists are appended to the current ones unless
        ``replace_defaults`` is true. ``stability_threshold`` and
        ``placeholder_max_length`` replace the current values.

        Raises:
            ConfigurationError: If the data has the wrong shape
        """
        if not isinstance(data, dict):
            raise ConfigurationError("Phrase configuration must be a mapping")

        replace_defaults = bool(data.get("replace_defaults", False))
        changes: Dict[str, Any] = {}

        for key in _PHRASE_KEYS:
            if key not in data or data[key] is None:
                continue
            value = data[key]
            if not isinstance(value, list):
                raise ConfigurationError(f"Phrase set '{key}' must be a list of strings")
            current = () if replace_defaults else getattr(self, key)
            changes[key] = _normalize(list(current) + value)

        for key in ("stability_threshold", "placeholder_max_length"):
            if key in data and data[key] is not None:
                try:
                    number = int(data[key])
                except (TypeError, ValueError) as e:
                    raise ConfigurationError(f"'{key}' must be an integer") from e
                if number < (1 if key == "stability_threshold" else 0):
                    raise ConfigurationError(f"'{key}' is out of range: {number}")
                changes[key] = number

        return replace(self, **changes)

    @classmethod
    def from_yaml(cls, path: Union[str, Path], base: Optional["PhraseSets"] = None) -> "PhraseSets":
        """
        Load overrides from a YAML file on top of ``base`` (or the defaults).

        Raises:
            ConfigurationError: If the file is missing or invalid
        """
        path = Path(path)
        base = base or cls()
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except FileNotFoundError as e:
            raise ConfigurationError(f"Phrase file not found: {path}") from e
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load phrase file {path}: {e}") from e

        phrases = base.merged(data)
        logger.info(
            f"📚 Loaded phrase overrides from {path} "
            f"({len(phrases.placeholder)} placeholder, {len(phrases.hard_error)} error, "
            f"{len(phrases.rate_limit)} rate-limit phrases)"
        )
        return phrases

    @classmethod
    def load(
        cls,
        phrases_file: Optional[Union[str, Path]] = None,
        stability_threshold: int = StabilityConfig.REQUIRED_STABLE_POLLS,
        placeholder_max_length: int = StabilityConfig.PLACEHOLDER_MAX_LENGTH,
    ) -> "PhraseSets":
        """
        Build phrase sets from thresholds plus an optional YAML file.

        An explicit ``phrases_file`` must exist; otherwise ``config/phrases.yaml``
        is used when present.
        """
        base = cls(
            stability_threshold=stability_threshold,
            placeholder_max_length=placeholder_max_length,
        )
        if phrases_file is not None:
            return cls.from_yaml(phrases_file, base)
        if DEFAULT_PHRASES_FILE.exists():
            return cls.from_yaml(DEFAULT_PHRASES_FILE, base)
        logger.debug("No phrase file found, using built-in phrase sets")
        return base
