"""Shared rotation cursor over the configured API keys.

A single cursor is shared by every in-flight request. Requests read whatever
position it currently holds, so rotations triggered by one request are seen
by the others and load spreads across keys over time.
"""

import threading

from structlog import get_logger

from anthropic_key_proxy.rotation.credentials import CredentialSet


logger = get_logger(__name__)


class RotationCursor:
    """Process-wide pointer into a CredentialSet.

    Reads and advances are serialized by a lock, so concurrent rotations are
    never lost and the position always stays within ``[0, len(credentials))``.
    """

    def __init__(self, credentials: CredentialSet, start: int = 0):
        """Initialize the cursor.

        Args:
            credentials: Keys to rotate through
            start: Initial position
        """
        if not 0 <= start < len(credentials):
            raise ValueError(
                f"Start position {start} outside [0, {len(credentials)})"
            )
        self._credentials = credentials
        self._position = start
        self._lock = threading.Lock()

    @property
    def credentials(self) -> CredentialSet:
        return self._credentials

    @property
    def position(self) -> int:
        """Current cursor position."""
        with self._lock:
            return self._position

    def current(self) -> tuple[int, str]:
        """Return the current index together with its key."""
        with self._lock:
            index = self._position
        return index, self._credentials[index]

    def rotate(self) -> tuple[int, int]:
        """Advance the cursor by one, wrapping at the end.

        Returns:
            Tuple of (previous index, new index)
        """
        with self._lock:
            previous = self._position
            self._position = (previous + 1) % len(self._credentials)
            new = self._position

        logger.info("api_key_rotated", previous_index=previous, new_index=new)
        return previous, new
