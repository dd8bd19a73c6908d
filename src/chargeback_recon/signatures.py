"""HMAC signature verification for inbound webhooks.

Each webhook source signs the exact raw request body with HMAC-SHA256 and a
pre-shared secret, but the sources disagree on the header name and on how the
digest is encoded. Those differences live in a ``SignatureProfile`` table
(see ``Settings.signature_profiles``) rather than at the call sites.
"""

import base64
import hashlib
import hmac
import enum
import logging
from dataclasses import dataclass
from typing import Mapping, Optional, Union

logger = logging.getLogger(__name__)


class SignatureEncoding(str, enum.Enum):
    """How a source encodes the HMAC digest in its signature header."""
    HEX = "hex"
    BASE64 = "base64"


SUPPORTED_ALGORITHMS = {
    "sha256": hashlib.sha256,
}


@dataclass(frozen=True)
class SignatureProfile:
    """Verification convention for a single webhook source."""
    source: str
    header: str
    encoding: SignatureEncoding
    secret: Optional[str] = None
    algorithm: str = "sha256"

    def signature_from(self, headers: Mapping[str, str]) -> Optional[str]:
        """Read this profile's signature header (case-insensitive)."""
        wanted = self.header.lower()
        for name, value in headers.items():
            if name.lower() == wanted:
                return value
        return None


def compute_signature(
    raw_body: bytes,
    secret: Union[str, bytes],
    encoding: SignatureEncoding,
    algorithm: str = "sha256",
) -> str:
    """Compute the encoded HMAC digest of ``raw_body``."""
    key = secret.encode("utf-8") if isinstance(secret, str) else secret
    digest = hmac.new(key, raw_body, SUPPORTED_ALGORITHMS[algorithm]).digest()
    if encoding == SignatureEncoding.HEX:
        return digest.hex()
    return base64.b64encode(digest).decode("ascii")


def verify(
    raw_body: bytes,
    signature_header: Optional[str],
    secret: Optional[Union[str, bytes]],
    encoding: SignatureEncoding,
    algorithm: str = "sha256",
) -> bool:
    """Verify a webhook signature against the exact raw body bytes.

    Fails closed: a missing secret, a missing or empty signature, a body that
    is not raw bytes, an unknown algorithm or a digest mismatch all return False.
    The comparison is constant-time.
    """
    if not secret:
        logger.error("Webhook secret is not configured; rejecting request")
        return False
    if not signature_header:
        return False
    if not isinstance(raw_body, (bytes, bytearray)) or len(raw_body) == 0:
        return False
    if algorithm not in SUPPORTED_ALGORITHMS:
        logger.error(f"Unsupported signature algorithm: {algorithm}")
        return False

    expected = compute_signature(bytes(raw_body), secret, encoding, algorithm)
    return hmac.compare_digest(
        expected.encode("utf-8"), signature_header.encode("utf-8")
    )


def verify_profile(
    profile: SignatureProfile,
    raw_body: bytes,
    headers: Mapping[str, str],
) -> bool:
    """Verify a request using the profile's header, encoding and secret."""
    return verify(
        raw_body,
        profile.signature_from(headers),
        profile.secret,
        profile.encoding,
        profile.algorithm,
    )
