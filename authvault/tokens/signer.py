"""
Token Signer Module

Issues and verifies short-lived, self-contained tokens using
AES-256-GCM authenticated encryption.

Token Format:
    v1.local.<base64url(nonce | ciphertext | tag)>

    - Header "v1.local." is bound to the ciphertext as associated data
    - Nonce (12 bytes): fresh random per token
    - Ciphertext: JSON-serialized claims
    - Tag (16 bytes): GCM authentication tag

Security features:
- Claims are confidential and tamper-evident (no key, no read, no forge)
- Audience check is mandatory on verification
- Expiry and not-before are compared against an explicit clock
  with a configurable leeway (0 by default)
"""

import base64
import binascii
import json
import secrets
import time
import uuid
from dataclasses import dataclass, asdict
from typing import Dict, Optional, Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..config import AuthConfig
from ..errors import TokenExpired, TokenInvalid


# Constants
TOKEN_HEADER = b"v1.local."
KEY_SIZE = 32       # 256-bit key
NONCE_SIZE = 12     # 96-bit nonce for GCM
TAG_SIZE = 16       # 128-bit GCM tag

_CLAIM_FIELDS = (
    'issuer', 'audience', 'subject', 'jti',
    'issued_at', 'not_before', 'expires_at',
)


@dataclass(frozen=True)
class TokenClaims:
    """Fixed claim set carried inside every token."""
    issuer: str
    audience: str
    subject: str
    jti: str
    issued_at: int
    not_before: int
    expires_at: int

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> 'TokenClaims':
        """
        Rebuild claims from a decoded payload.

        Raises:
            TokenInvalid: If a claim is missing or has the wrong type
        """
        if not isinstance(data, dict):
            raise TokenInvalid("claims must be an object")
        missing = [f for f in _CLAIM_FIELDS if f not in data]
        if missing:
            raise TokenInvalid(f"missing claims: {', '.join(missing)}")
        for name in ('issuer', 'audience', 'subject', 'jti'):
            if not isinstance(data[name], str):
                raise TokenInvalid(f"claim {name} must be a string")
        for name in ('issued_at', 'not_before', 'expires_at'):
            if isinstance(data[name], bool) or not isinstance(data[name], int):
                raise TokenInvalid(f"claim {name} must be an integer")
        return cls(**{f: data[f] for f in _CLAIM_FIELDS})


def generate_key() -> bytes:
    """Generate a random 256-bit token key."""
    return secrets.token_bytes(KEY_SIZE)


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode('ascii').rstrip('=')


def _b64url_decode(encoded: str) -> bytes:
    padding = -len(encoded) % 4
    return base64.urlsafe_b64decode(encoded + '=' * padding)


class TokenSigner:
    """
    AES-256-GCM token issuer/verifier.

    Example:
        >>> signer = TokenSigner(generate_key())
        >>> token, claims = signer.mint("user-1", "app", ttl=900)
        >>> signer.verify(token, audience="app") == claims
        True
    """

    def __init__(self, key: bytes, issuer: str = "authvault",
                 leeway: int = 0):
        """
        Initialize the signer.

        Args:
            key: 256-bit (32-byte) server-held secret
            issuer: Value written to and required in the issuer claim
            leeway: Clock-skew tolerance in seconds for exp/nbf checks
        """
        if not isinstance(key, (bytes, bytearray)) or len(key) != KEY_SIZE:
            raise ValueError(f"Key must be {KEY_SIZE} bytes")
        if leeway < 0:
            raise ValueError("Leeway must be non-negative")
        self._aesgcm = AESGCM(bytes(key))
        self._issuer = issuer
        self._leeway = leeway

    @classmethod
    def from_config(cls, key: bytes, config: AuthConfig) -> 'TokenSigner':
        """Build a signer using the issuer and leeway of an AuthConfig."""
        return cls(key, issuer=config.token_issuer,
                   leeway=config.token_leeway_seconds)

    @property
    def issuer(self) -> str:
        return self._issuer

    @property
    def leeway(self) -> int:
        return self._leeway

    def issue(self, claims: TokenClaims) -> str:
        """
        Encrypt claims into an opaque token string.

        Args:
            claims: Claims to seal

        Returns:
            Token string
        """
        payload = json.dumps(
            claims.to_dict(), separators=(',', ':'), sort_keys=True
        ).encode('utf-8')
        nonce = secrets.token_bytes(NONCE_SIZE)
        sealed = self._aesgcm.encrypt(nonce, payload, TOKEN_HEADER)
        return TOKEN_HEADER.decode('ascii') + _b64url_encode(nonce + sealed)

    def mint(self, subject: str, audience: str, ttl: int,
             now: Optional[float] = None) -> Tuple[str, TokenClaims]:
        """
        Build claims for a subject and issue them.

        Args:
            subject: Identity id
            audience: Intended consumer ("app", "mfa-challenge", ...)
            ttl: Lifetime in seconds
            now: Unix timestamp (uses current time if None)

        Returns:
            Tuple of (token, claims)
        """
        issued = int(time.time() if now is None else now)
        claims = TokenClaims(
            issuer=self._issuer,
            audience=audience,
            subject=subject,
            jti=str(uuid.uuid4()),
            issued_at=issued,
            not_before=issued,
            expires_at=issued + ttl,
        )
        return self.issue(claims), claims

    def verify(self, token: str, audience: str,
               now: Optional[float] = None) -> TokenClaims:
        """
        Decrypt and validate a token.

        Args:
            token: Token string
            audience: Required audience
            now: Unix timestamp (uses current time if None)

        Returns:
            The token's claims

        Raises:
            TokenInvalid: Wrong format, failed authentication, bad claims,
                wrong issuer or wrong audience
            TokenExpired: now is past expiry or before not-before
        """
        claims = self._open(token)

        if claims.issuer != self._issuer:
            raise TokenInvalid("issuer mismatch")
        if claims.audience != audience:
            raise TokenInvalid("audience mismatch")

        if now is None:
            now = time.time()
        if now > claims.expires_at + self._leeway:
            raise TokenExpired("token expired")
        if now < claims.not_before - self._leeway:
            raise TokenExpired("token not yet valid")

        return claims

    def _open(self, token: str) -> TokenClaims:
        if not isinstance(token, str):
            raise TokenInvalid("token must be a string")
        header = TOKEN_HEADER.decode('ascii')
        if not token.startswith(header):
            raise TokenInvalid("unknown token header")

        try:
            raw = _b64url_decode(token[len(header):])
        except (binascii.Error, ValueError) as e:
            raise TokenInvalid("token is not valid base64") from e
        if len(raw) < NONCE_SIZE + TAG_SIZE:
            raise TokenInvalid("token too short")

        nonce, sealed = raw[:NONCE_SIZE], raw[NONCE_SIZE:]
        try:
            payload = self._aesgcm.decrypt(nonce, sealed, TOKEN_HEADER)
        except InvalidTag as e:
            raise TokenInvalid("token authentication failed") from e

        try:
            data = json.loads(payload.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise TokenInvalid("token payload is not valid JSON") from e

        return TokenClaims.from_dict(data)
