# MFA Module
"""
Second-factor implementations including:
- HOTP/TOTP primitives (RFC 4226 / RFC 6238) and QR provisioning - otp.py
- Per-method enrollment and verification engine - methods.py
- Out-of-band code delivery interface - notifier.py

Supported methods: TOTP, HOTP, SMS codes, email codes, backup codes.
"""

from .otp import (
    hotp,
    totp,
    verify_hotp,
    verify_totp,
    generate_secret,
    secret_to_base32,
    base32_to_secret,
    provisioning_uri,
    render_qr_ascii,
    render_qr_svg,
)

from .methods import (
    MFAEngine,
    OTPEnrollment,
    CodeDispatch,
    generate_code,
)

from .notifier import (
    Notifier,
    RecordingNotifier,
    SentMessage,
)

__all__ = [
    # OTP
    'hotp',
    'totp',
    'verify_hotp',
    'verify_totp',
    'generate_secret',
    'secret_to_base32',
    'base32_to_secret',
    'provisioning_uri',
    'render_qr_ascii',
    'render_qr_svg',
    # Engine
    'MFAEngine',
    'OTPEnrollment',
    'CodeDispatch',
    'generate_code',
    # Notifier
    'Notifier',
    'RecordingNotifier',
    'SentMessage',
]
