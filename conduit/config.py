"""
Configuration loading for Conduit.

Reads the dotenv-style configuration file, tightens its permissions, and
produces the read-only Config and Credential values used by one session.
"""

import logging
import os
import re
import stat
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import dotenv_values

from .exceptions import ConfigurationError, CredentialMissingError

logger = logging.getLogger(__name__)

# Environment variable that points at an explicit configuration file
CONFIG_ENV_VAR = "CONDUIT_CONFIG"

PLACEHOLDER_KEY = "your_api_key_here"

# Groq keys are "gsk_" followed by 52 alphanumeric characters
API_KEY_PATTERN = re.compile(r"gsk_[A-Za-z0-9]{52}")

# Default configuration values
DEFAULT_CONFIG: Dict[str, Any] = {
    "CONDUIT_MAX_DURATION": 120,
    "CONDUIT_LONG_MAX_DURATION": 300,
    "CONDUIT_LANGUAGE": "en",
    "CONDUIT_MODEL": "whisper-large-v3",
    "CONDUIT_AUTO_PASTE": True,
    "CONDUIT_INDICATOR": True,
}

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class Credential:
    """
    The transcription API key.

    The value is only reachable through ``reveal()`` so that it never ends
    up in log records, tracebacks or reprs by accident.
    """

    __slots__ = ("_value",)

    def __init__(self, value: str) -> None:
        self._value = value

    def reveal(self) -> str:
        return self._value

    def is_well_formed(self) -> bool:
        """Check the key against the provider's prefix and length rule."""
        return validate_api_key_format(self._value)

    def __repr__(self) -> str:
        return "Credential('****')"

    __str__ = __repr__

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Credential):
            return NotImplemented
        return self._value == other._value

    def __hash__(self) -> int:
        return hash(self._value)


@dataclass(frozen=True)
class Config:
    """Settings for one invocation, read-only for the whole session."""

    source: Optional[Path]
    credential: Credential
    max_duration: int = 120
    long_max_duration: int = 300
    language: str = "en"
    model: str = "whisper-large-v3"
    auto_paste: bool = True
    indicator: bool = True


def validate_api_key_format(key: str) -> bool:
    """
    Check whether ``key`` looks like a Groq API key.

    A mismatch is only worth a warning: the provider may change its key
    format, so callers still attempt the request.
    """
    return API_KEY_PATTERN.fullmatch(key or "") is not None


def candidate_config_paths() -> List[Path]:
    """
    Return the configuration file locations in lookup order.

    Returns:
        Paths checked by find_config_file(); the first existing one wins.
    """
    candidates: List[Path] = []

    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        candidates.append(Path(override).expanduser())

    if sys.argv and sys.argv[0]:
        candidates.append(Path(sys.argv[0]).resolve().parent / ".env")

    candidates.append(Path.home() / ".local" / "bin" / "speech-tools" / ".env")

    config_home = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    candidates.append(config_home / "conduit" / ".env")

    return candidates


def find_config_file(candidates: Optional[List[Path]] = None) -> Path:
    """
    Locate the configuration file.

    Raises:
        ConfigurationError: If none of the candidate files exists.
    """
    paths = candidates if candidates is not None else candidate_config_paths()
    for path in paths:
        if path.is_file():
            return path

    checked = "\n".join(f"  - {p}" for p in paths)
    raise ConfigurationError(
        f".env file not found. Checked locations:\n{checked}"
    )


def secure_permissions(path: Path) -> bool:
    """
    Restrict the configuration file to owner read/write.

    Returns:
        True if the permissions had to be changed.
    """
    try:
        mode = stat.S_IMODE(path.stat().st_mode)
    except OSError as e:
        logger.warning(f"Could not stat {path}: {e}")
        return False

    if mode & 0o077 == 0:
        return False

    logger.warning(
        f"Configuration file {path} has permissions {mode:o}, fixing to 600"
    )
    try:
        path.chmod(0o600)
    except OSError as e:
        logger.warning(f"Failed to tighten permissions of {path}: {e}")
        return False
    return True


def _clean_value(raw: Optional[str]) -> str:
    value = (raw or "").strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        value = value[1:-1]
    return value.replace(" ", "")


def _as_int(values: Dict[str, Optional[str]], key: str) -> int:
    default = DEFAULT_CONFIG[key]
    raw = (values.get(key) or "").strip()
    if not raw:
        return default
    try:
        parsed = int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {key}={raw!r}, using {default}")
        return default
    if parsed <= 0:
        logger.warning(f"Ignoring non-positive {key}={parsed}, using {default}")
        return default
    return parsed


def _as_bool(values: Dict[str, Optional[str]], key: str) -> bool:
    default = DEFAULT_CONFIG[key]
    raw = (values.get(key) or "").strip().lower()
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    if raw:
        logger.warning(f"Ignoring invalid boolean {key}={raw!r}")
    return default


def _as_str(values: Dict[str, Optional[str]], key: str) -> str:
    raw = (values.get(key) or "").strip()
    return raw or DEFAULT_CONFIG[key]


def load_credential(values: Dict[str, Optional[str]]) -> Credential:
    """
    Extract and check the API key from parsed configuration values.

    Raises:
        CredentialMissingError: If the key is absent or still the placeholder.
    """
    key = _clean_value(values.get("GROQ_API_KEY"))
    if not key:
        raise CredentialMissingError(
            "Groq API key not found. Please check your .env file"
        )
    if key == PLACEHOLDER_KEY:
        raise CredentialMissingError(
            f"Please replace '{PLACEHOLDER_KEY}' with your actual Groq API key"
        )
    return Credential(key)


def load_config(path: Optional[Path] = None) -> Config:
    """
    Load the configuration for one invocation.

    Args:
        path: Explicit configuration file. If None, the candidate locations
            are searched and the first existing file is used.

    Returns:
        The parsed Config, including the Credential.

    Raises:
        ConfigurationError: If the file is missing or unreadable.
        CredentialMissingError: If the API key is missing or a placeholder.
    """
    if path is not None:
        if not path.is_file():
            raise ConfigurationError(f"Configuration file not found: {path}")
        config_path = path
    else:
        config_path = find_config_file()

    secure_permissions(config_path)

    try:
        values = dotenv_values(config_path)
    except OSError as e:
        raise ConfigurationError(f"Failed to read config file: {e}") from e

    logger.info(f"Loaded configuration from {config_path}")

    credential = load_credential(values)

    return Config(
        source=config_path,
        credential=credential,
        max_duration=_as_int(values, "CONDUIT_MAX_DURATION"),
        long_max_duration=_as_int(values, "CONDUIT_LONG_MAX_DURATION"),
        language=_as_str(values, "CONDUIT_LANGUAGE"),
        model=_as_str(values, "CONDUIT_MODEL"),
        auto_paste=_as_bool(values, "CONDUIT_AUTO_PASTE"),
        indicator=_as_bool(values, "CONDUIT_INDICATOR"),
    )
