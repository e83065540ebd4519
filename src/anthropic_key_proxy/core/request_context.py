"""Minimal request context for tracking request IDs.

Only provides request ID tracking plus free-form metadata that the proxy
router fills in (attempt count, key index) for the access log.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class RequestContext:
    """Minimal request context holding the request ID and basic metadata."""

    request_id: str
    method: str = ""
    path: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    def add_metadata(self, **kwargs: Any) -> None:
        """Add metadata to the context."""
        self.metadata.update(kwargs)
