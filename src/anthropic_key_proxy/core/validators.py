"""Pydantic-based validation utilities for the proxy configuration."""

from typing import Annotated

from pydantic import Field


__all__ = [
    "Port",
    "PositiveTimeout",
    "parse_comma_separated",
]


# Custom annotated types using Pydantic Field constraints
Port = Annotated[int, Field(ge=1, le=65535, description="TCP/UDP port number")]
PositiveTimeout = Annotated[float, Field(gt=0, description="Timeout value in seconds")]


def parse_comma_separated(
    value: str | list[str],
    strip: bool = True,
    filter_empty: bool = True,
) -> list[str]:
    """Parse comma-separated string into list of values.

    This is a utility function for parsing config values that may
    be provided as comma-separated strings or lists.

    Args:
        value: Comma-separated string or list
        strip: Whether to strip whitespace from each item
        filter_empty: Whether to filter out empty strings

    Returns:
        List of parsed values
    """
    if isinstance(value, list):
        items = value
    else:
        items = value.split(",")

    if strip:
        items = [item.strip() for item in items]

    if filter_empty:
        items = [item for item in items if item]

    return items
