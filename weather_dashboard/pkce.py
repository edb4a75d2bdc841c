"""
PKCE (RFC 7636) and CSRF state helpers for login initiation.
S256 only. Every value comes from the secrets CSPRNG.
"""
import hashlib
import secrets
import string
from base64 import urlsafe_b64encode

STATE_LENGTH = 64
VERIFIER_LENGTH = 128

_STATE_ALPHABET = string.ascii_letters + string.digits
# RFC 7636 section 4.1 unreserved characters
_VERIFIER_ALPHABET = string.ascii_letters + string.digits + "-._~"


def random_token(length: int = STATE_LENGTH) -> str:
    """Alphanumeric token; used for state values and session ids."""
    return "".join(secrets.choice(_STATE_ALPHABET) for _ in range(length))


def generate_state() -> str:
    """Opaque value for CSRF protection; round-tripped through the provider."""
    return random_token(STATE_LENGTH)


def generate_code_verifier() -> str:
    return "".join(secrets.choice(_VERIFIER_ALPHABET) for _ in range(VERIFIER_LENGTH))


def code_challenge(code_verifier: str) -> str:
    """base64url(SHA256(verifier)) without padding."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
