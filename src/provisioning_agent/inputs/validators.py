"""
Format checks for operator-supplied provisioning inputs.

Every validator either returns the normalized value or raises
:class:`ValidationError` with a message that can be shown to the operator
as-is.
"""
import os
import re
from pathlib import Path
from typing import Union

from ..core.state import Environment, Site
from ..error.exceptions import ValidationError

API_KEY_LENGTH = 32
MAX_SERVICE_NAME_LENGTH = 100
MIN_PORT = 1
MAX_PORT = 65535

# Characters that would break the rendered YAML or a shell command line.
SERVICE_NAME_DENYLIST = frozenset("\"'\\$|&;()<>[]{}`")

# Path traversal and command substitution markers.
DANGEROUS_PATH_PATTERN = re.compile(r"\.\./|\$\(|`|\|")


def validate_api_key(value: str) -> str:
    """Reject an empty api key. Length is checked by :func:`has_expected_key_length`."""
    value = (value or "").strip()
    if not value:
        raise ValidationError("API Key cannot be empty!")
    return value


def has_expected_key_length(value: str) -> bool:
    return len(value) == API_KEY_LENGTH


def validate_service_name(value: str, field_name: str = "Service name") -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(f"{field_name} cannot be empty!")
    if any(ch in SERVICE_NAME_DENYLIST for ch in value):
        raise ValidationError(
            f"{field_name} contains invalid characters that could break YAML configuration"
        )
    if len(value) > MAX_SERVICE_NAME_LENGTH:
        raise ValidationError(f"{field_name} is too long (max {MAX_SERVICE_NAME_LENGTH} characters)")
    return value


def validate_logs_dir(value: Union[str, Path], field_name: str = "Logs directory") -> Path:
    """Expand ``~`` and ``$VAR`` references and require an absolute path."""
    raw = str(value or "").strip()
    if not raw:
        raise ValidationError(f"{field_name} cannot be empty!")
    if DANGEROUS_PATH_PATTERN.search(raw):
        raise ValidationError(f"{field_name} contains potentially dangerous path characters")

    expanded = os.path.expandvars(os.path.expanduser(raw))
    if not os.path.isabs(expanded):
        raise ValidationError(f"{field_name} must be an absolute path")
    # Expansion may have pulled traversal markers in from the environment.
    if DANGEROUS_PATH_PATTERN.search(expanded):
        raise ValidationError(f"{field_name} contains potentially dangerous path characters")
    return Path(os.path.normpath(expanded))


def validate_environment(value: str) -> Environment:
    try:
        return Environment((value or "").strip())
    except ValueError:
        raise ValidationError(
            "Environment must be either 'development', 'production', or 'sandbox'!"
        )


def validate_port(value: Union[str, int]) -> int:
    text = str(value).strip() if value is not None else ""
    if not text.isdigit():
        raise ValidationError(f"Port must be a valid number between {MIN_PORT} and {MAX_PORT}!")
    port = int(text)
    if port < MIN_PORT or port > MAX_PORT:
        raise ValidationError(f"Port must be a valid number between {MIN_PORT} and {MAX_PORT}!")
    return port


def validate_site(value: str) -> Site:
    try:
        return Site((value or "").strip())
    except ValueError:
        valid = ", ".join(site.value for site in Site)
        raise ValidationError(f"Invalid Datadog site. Must be one of: {valid}")
