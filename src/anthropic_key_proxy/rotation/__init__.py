"""API key rotation for the proxy.

Holds the configured keys and the shared cursor that selects which key the
next upstream attempt uses.
"""

from anthropic_key_proxy.rotation.credentials import CredentialSet, mask_key
from anthropic_key_proxy.rotation.cursor import RotationCursor


__all__ = [
    "CredentialSet",
    "RotationCursor",
    "mask_key",
]
