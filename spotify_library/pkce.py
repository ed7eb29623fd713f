"""PKCE (RFC 7636) verifier and S256 challenge generation.

Both capabilities are injectable so the helpers stay pure:

- ``SecureRandomSource``: anything exposing ``choice(seq)`` backed by a CSPRNG
  (``secrets.SystemRandom()`` by default).
- ``HashFunction``: ``bytes -> bytes`` digest (SHA-256 by default).
"""

import base64
import hashlib
import secrets
import string
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Sequence

VERIFIER_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits
DEFAULT_VERIFIER_LENGTH = 64

HashFunction = Callable[[bytes], bytes]


class SecureRandomSource(Protocol):
    def choice(self, seq: Sequence[str]) -> str:
        ...


def sha256_digest(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def _base64url_no_pad(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")


def generate_verifier(
    length: int = DEFAULT_VERIFIER_LENGTH,
    *,
    random_source: Optional[SecureRandomSource] = None,
) -> str:
    """Return ``length`` alphanumeric characters from a secure random source."""

    if int(length) <= 0:
        raise ValueError("Verifier length must be positive")

    rng = random_source if random_source is not None else secrets.SystemRandom()
    return "".join(rng.choice(VERIFIER_ALPHABET) for _ in range(int(length)))


def derive_challenge(verifier: str, *, hash_function: Optional[HashFunction] = None) -> str:
    """Compute the PKCE S256 code_challenge for ``verifier``."""

    digest = (hash_function or sha256_digest)((verifier or "").encode("utf-8"))
    return _base64url_no_pad(digest)


@dataclass(frozen=True)
class PKCEPair:
    code_verifier: str
    code_challenge: str


def generate_pkce_pair(
    length: int = DEFAULT_VERIFIER_LENGTH,
    *,
    random_source: Optional[SecureRandomSource] = None,
    hash_function: Optional[HashFunction] = None,
) -> PKCEPair:
    verifier = generate_verifier(length, random_source=random_source)
    return PKCEPair(
        code_verifier=verifier,
        code_challenge=derive_challenge(verifier, hash_function=hash_function),
    )
