"""Immutable, ordered set of upstream API keys."""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from anthropic_key_proxy.exceptions import CredentialsNotFoundError


# Characters of a key shown in logs and CLI output
MASK_PREFIX_LENGTH = 8


def mask_key(key: str) -> str:
    """Render a key for display without exposing the secret."""
    if len(key) <= MASK_PREFIX_LENGTH:
        return "***"
    return key[:MASK_PREFIX_LENGTH] + "..."


@dataclass(frozen=True)
class CredentialSet:
    """Ordered, non-empty sequence of opaque API keys.

    Loaded once at startup and never mutated afterwards.
    """

    keys: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.keys:
            raise CredentialsNotFoundError()

    @classmethod
    def from_keys(cls, keys: Iterable[str]) -> "CredentialSet":
        """Create from any iterable of keys, preserving order."""
        return cls(keys=tuple(keys))

    def __len__(self) -> int:
        return len(self.keys)

    def __getitem__(self, index: int) -> str:
        return self.keys[index]

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys)

    def __repr__(self) -> str:
        return f"CredentialSet(count={len(self.keys)})"

    def mask(self, index: int) -> str:
        """Masked form of the key at index."""
        return mask_key(self.keys[index])
