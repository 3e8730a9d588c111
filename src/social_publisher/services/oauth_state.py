"""OAuth state value and PKCE verifier/challenge generation."""

import base64
import hashlib
import secrets

from social_publisher.domain.enums import ChallengeEncoding, Platform
from social_publisher.domain.models import ParsedState

STATE_DELIMITER = ":"
# 20 bytes = 160 bits, hex encoded
NONCE_BYTES = 20
# 32 bytes = 256 bits, base64url without padding (43 chars)
VERIFIER_BYTES = 32


def generate_state(user_id: str, platform: Platform | str) -> str:
    """Build the opaque state value ``user_id:platform:nonce``."""
    platform = Platform(platform)
    if not user_id or STATE_DELIMITER in user_id:
        raise ValueError("user_id must be non-empty and must not contain ':'")
    nonce = secrets.token_hex(NONCE_BYTES)
    return STATE_DELIMITER.join((user_id, platform.value, nonce))


def parse_state(state: str | None) -> ParsedState | None:
    """Split a state value into its parts. Returns None for anything malformed."""
    if not state:
        return None

    parts = state.split(STATE_DELIMITER)
    if len(parts) != 3:
        return None

    user_id, platform_value, nonce = parts
    if not user_id or len(nonce) != NONCE_BYTES * 2:
        return None
    try:
        bytes.fromhex(nonce)
        platform = Platform(platform_value)
    except ValueError:
        return None

    return ParsedState(user_id=user_id, platform=platform, nonce=nonce)


def generate_code_verifier() -> str:
    return base64.urlsafe_b64encode(secrets.token_bytes(VERIFIER_BYTES)).rstrip(b"=").decode("ascii")


def generate_code_challenge(
    verifier: str, encoding: ChallengeEncoding = ChallengeEncoding.BASE64URL
) -> str:
    """SHA-256 of the verifier, encoded as the platform expects.

    RFC 7636 S256 uses unpadded base64url of the digest; TikTok's web flow
    expects the hex digest instead.
    """
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    if encoding == ChallengeEncoding.HEX:
        return digest.hex()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
