"""Input validation for blob key prefixes and application properties."""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Any

from claimcheck.constants import (
    MAX_APPLICATION_PROPERTIES_SIZE,
    MAX_BLOB_KEY_PREFIX_LENGTH,
    RESERVED_PROPERTY_NAMES,
)
from claimcheck.errors import ConfigurationError, InvalidPropertiesError

_PREFIX_PATTERN = re.compile(r"^[a-zA-Z0-9._/-]*$")


def validate_blob_key_prefix(prefix: str | None) -> str:
    """Validate a blob key prefix and return it normalized.

    None and empty are allowed and normalize to "".

    Raises:
        ConfigurationError: If the prefix is too long or has invalid characters
    """
    if not prefix:
        return ""

    if len(prefix) > MAX_BLOB_KEY_PREFIX_LENGTH:
        raise ConfigurationError(
            f"Blob key prefix exceeds {MAX_BLOB_KEY_PREFIX_LENGTH} characters "
            f"(got {len(prefix)})"
        )

    if not _PREFIX_PATTERN.match(prefix):
        raise ConfigurationError(
            f"Blob key prefix contains invalid characters: {prefix!r}. "
            "Allowed: letters, digits, '.', '_', '/', '-'"
        )

    return prefix


def is_reserved(name: str) -> bool:
    """Check if a property name is reserved for internal use."""
    return name in RESERVED_PROPERTY_NAMES


def _property_size(key: str, value: Any) -> int:
    return len(key.encode("utf-8")) + len(str(value).encode("utf-8"))


def validate_application_properties(
    properties: dict[str, Any] | None,
    max_allowed: int,
    reserved: Iterable[str] = (),
) -> None:
    """Validate user-supplied application properties.

    Args:
        properties: Properties supplied by the caller
        max_allowed: Maximum number of properties
        reserved: Extra names reserved by the current configuration

    Raises:
        InvalidPropertiesError: On reserved names, too many properties, or
            oversized properties
    """
    if not properties:
        return

    extra = set(reserved)
    clashes = sorted(name for name in properties if is_reserved(name) or name in extra)
    if clashes:
        raise InvalidPropertiesError(
            f"Application properties use reserved names: {', '.join(clashes)}"
        )

    if len(properties) > max_allowed:
        raise InvalidPropertiesError(
            f"Too many application properties: {len(properties)} "
            f"(maximum {max_allowed})"
        )

    total = sum(_property_size(key, value) for key, value in properties.items())
    if total > MAX_APPLICATION_PROPERTIES_SIZE:
        raise InvalidPropertiesError(
            f"Application properties total {total} bytes "
            f"(maximum {MAX_APPLICATION_PROPERTIES_SIZE})"
        )
