# Integration Module
"""
Audit trail for security events raised by the engine.

All events are recorded with privacy-preserving user hashes.
"""

from .audit import (
    EventType,
    SecurityEvent,
    AuditLog,
    get_user_hash,
    get_user_hash_short,
    setup_logging,
)

__all__ = [
    'EventType',
    'SecurityEvent',
    'AuditLog',
    'get_user_hash',
    'get_user_hash_short',
    'setup_logging',
]
