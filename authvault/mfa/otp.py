"""
One-Time Password Primitives

Implements RFC 4226 HOTP and RFC 6238 TOTP.

Features:
- HOTP/TOTP code generation and verification
- Configurable digits, time step and hash algorithm
- Secret key generation and base32 encoding
- otpauth:// provisioning URIs and QR rendering for authenticator apps
- Time drift tolerance (TOTP) and look-ahead window (HOTP)

Compatible with Google Authenticator, Authy, Microsoft Authenticator and
any RFC 6238 compliant app.
"""

import base64
import binascii
import hashlib
import hmac
import io
import secrets
import struct
import time
from typing import Optional
from urllib.parse import quote

import qrcode
from qrcode.constants import ERROR_CORRECT_L
from qrcode.image.svg import SvgPathImage


# OTP configuration (RFC 6238 defaults)
OTP_DIGITS = 6            # Number of digits in OTP
TOTP_TIME_STEP = 30       # Time step in seconds
SECRET_BYTES = 20         # Secret key length (160 bits for SHA-1)
OTP_ALGORITHM = 'SHA1'    # Hash algorithm
TOTP_DRIFT_TOLERANCE = 1  # Accept codes from +/- this many time steps

_HASHES = {
    'SHA1': hashlib.sha1,
    'SHA256': hashlib.sha256,
    'SHA512': hashlib.sha512,
}


def generate_secret(length: int = SECRET_BYTES) -> bytes:
    """
    Generate a cryptographically secure random secret.

    Args:
        length: Secret length in bytes (default 20 for SHA-1)

    Returns:
        Random bytes for use as an OTP secret
    """
    return secrets.token_bytes(length)


def secret_to_base32(secret: bytes) -> str:
    """Encode secret as base32 without padding (authenticator app format)."""
    return base64.b32encode(secret).decode('ascii').rstrip('=')


def base32_to_secret(encoded: str) -> bytes:
    """
    Decode a base32 secret string to bytes.

    Raises:
        ValueError: If the string is not valid base32
    """
    cleaned = encoded.replace(' ', '').upper()
    padding = -len(cleaned) % 8
    try:
        return base64.b32decode(cleaned + '=' * padding)
    except binascii.Error as e:
        raise ValueError(f"Invalid base32 secret: {e}") from e


def get_time_counter(timestamp: Optional[float] = None,
                     time_step: int = TOTP_TIME_STEP) -> int:
    """Time counter T = floor(time / time_step)."""
    if timestamp is None:
        timestamp = time.time()
    return int(timestamp) // time_step


def hotp(secret: bytes, counter: int, digits: int = OTP_DIGITS,
         algorithm: str = OTP_ALGORITHM) -> str:
    """
    Generate an HOTP (HMAC-based OTP) value, RFC 4226.

    Args:
        secret: Shared secret key
        counter: Counter value (8-byte integer)
        digits: Number of digits in OTP
        algorithm: Hash algorithm (SHA1, SHA256, SHA512)

    Returns:
        Zero-padded OTP string
    """
    if counter < 0:
        raise ValueError("Counter must be non-negative")
    hash_algo = _HASHES.get(algorithm.upper())
    if hash_algo is None:
        raise ValueError(f"Unsupported algorithm: {algorithm}")

    digest = hmac.new(secret, struct.pack('>Q', counter), hash_algo).digest()

    # Dynamic truncation
    offset = digest[-1] & 0x0F
    truncated = struct.unpack('>I', digest[offset:offset + 4])[0] & 0x7FFFFFFF

    return str(truncated % (10 ** digits)).zfill(digits)


def totp(secret: bytes, timestamp: Optional[float] = None,
         digits: int = OTP_DIGITS,
         time_step: int = TOTP_TIME_STEP,
         algorithm: str = OTP_ALGORITHM) -> str:
    """Generate a TOTP (time-based OTP) value, RFC 6238."""
    counter = get_time_counter(timestamp, time_step)
    return hotp(secret, counter, digits, algorithm)


def _normalize(code, digits: int) -> Optional[str]:
    if code is None:
        return None
    code = str(code).replace(' ', '').strip()
    if len(code) != digits or not code.isdigit():
        return None
    return code


def verify_totp(secret: bytes, code: str,
                timestamp: Optional[float] = None,
                digits: int = OTP_DIGITS,
                time_step: int = TOTP_TIME_STEP,
                algorithm: str = OTP_ALGORITHM,
                drift_tolerance: int = TOTP_DRIFT_TOLERANCE) -> bool:
    """
    Verify a TOTP code with drift tolerance.

    Checks the current time step and +/- drift_tolerance steps.

    Returns:
        True if the code is valid
    """
    code = _normalize(code, digits)
    if code is None:
        return False

    if timestamp is None:
        timestamp = time.time()
    current = get_time_counter(timestamp, time_step)

    matched = False
    for offset in range(-drift_tolerance, drift_tolerance + 1):
        counter = current + offset
        if counter < 0:
            continue
        expected = hotp(secret, counter, digits, algorithm)
        # no early exit: every window slot is compared
        if hmac.compare_digest(code, expected):
            matched = True
    return matched


def verify_hotp(secret: bytes, code: str, counter: int,
                window: int = 0,
                digits: int = OTP_DIGITS,
                algorithm: str = OTP_ALGORITHM) -> Optional[int]:
    """
    Verify an HOTP code against counter .. counter + window.

    Args:
        secret: Shared secret key
        code: Submitted code
        counter: Next unused counter value
        window: Look-ahead window (0 = only counter itself)

    Returns:
        The counter value that matched, or None
    """
    code = _normalize(code, digits)
    if code is None:
        return None

    matched = None
    for candidate in range(counter, counter + window + 1):
        expected = hotp(secret, candidate, digits, algorithm)
        if hmac.compare_digest(code, expected) and matched is None:
            matched = candidate
    return matched


def provisioning_uri(secret_b32: str, account_name: str,
                     issuer: str, kind: str = 'totp',
                     counter: int = 0,
                     digits: int = OTP_DIGITS,
                     time_step: int = TOTP_TIME_STEP,
                     algorithm: str = OTP_ALGORITHM) -> str:
    """
    Generate an otpauth:// URI for QR enrollment.

    Args:
        secret_b32: Base32 secret
        account_name: Account label, usually the email
        issuer: Service name shown in the app
        kind: 'totp' or 'hotp'

    Returns:
        otpauth:// URI string
    """
    if kind not in ('totp', 'hotp'):
        raise ValueError(f"Unknown OTP kind: {kind}")

    label = f"{issuer}:{account_name}"
    params = {
        'secret': secret_b32,
        'issuer': issuer,
        'algorithm': algorithm,
        'digits': str(digits),
    }
    if kind == 'totp':
        params['period'] = str(time_step)
    else:
        params['counter'] = str(counter)

    param_str = '&'.join(f"{k}={quote(str(v))}" for k, v in params.items())
    return f"otpauth://{kind}/{quote(label)}?{param_str}"


def _build_qr(uri: str) -> qrcode.QRCode:
    qr = qrcode.QRCode(
        version=1,
        error_correction=ERROR_CORRECT_L,
        box_size=10,
        border=4,
    )
    qr.add_data(uri)
    qr.make(fit=True)
    return qr


def render_qr_ascii(uri: str) -> str:
    """Render a provisioning URI as a terminal-friendly QR code."""
    out = io.StringIO()
    _build_qr(uri).print_ascii(out=out)
    return out.getvalue()


def render_qr_svg(uri: str) -> bytes:
    """Render a provisioning URI as an SVG document."""
    img = _build_qr(uri).make_image(image_factory=SvgPathImage)
    buffer = io.BytesIO()
    img.save(buffer)
    return buffer.getvalue()
