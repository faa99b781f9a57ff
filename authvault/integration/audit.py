"""
Audit Trail Module

Records security events raised by the authentication engine.

Features:
- Login, MFA, token and enrollment events
- Privacy-preserving user hashes (SHA-256), never plaintext emails
- Compact JSON lines written to the "authvault.audit" logger
- Subscriber callbacks for forwarding events elsewhere
- Bounded in-memory history of recent events

Codes, secrets and token values are never part of an event.
"""

import hashlib
import json
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)


# ============================================================================
# Constants
# ============================================================================

AUDIT_LOGGER_NAME = "authvault.audit"
EVENT_VERSION = "1.0"
DEFAULT_HISTORY_SIZE = 1000
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """Configure a basic root handler for the engine's loggers."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    logging.getLogger("authvault").setLevel(
        getattr(logging, level.upper(), logging.INFO)
    )


# ============================================================================
# Privacy Functions
# ============================================================================

def get_user_hash(identifier: str) -> str:
    """
    Compute a privacy-preserving hash of a user identifier.

    Lets events for the same user be correlated without storing the
    email or id in plaintext.

    Args:
        identifier: Email address or identity id

    Returns:
        Hex-encoded SHA-256 hash
    """
    return hashlib.sha256(identifier.strip().lower().encode('utf-8')).hexdigest()


def get_user_hash_short(identifier: str) -> str:
    """First 16 hex characters of get_user_hash()."""
    return get_user_hash(identifier)[:16]


# ============================================================================
# Event Types
# ============================================================================

class EventType(Enum):
    """Types of security events that can be recorded."""

    # Authentication events
    REGISTERED = "registered"
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILED = "login_failed"
    MFA_CHALLENGE_ISSUED = "mfa_challenge_issued"
    MFA_VERIFIED = "mfa_verified"
    MFA_FAILED = "mfa_failed"
    LOGOUT = "logout"
    PASSWORD_CHANGED = "password_changed"
    PASSWORD_REHASHED = "password_rehashed"

    # Token events
    TOKEN_REFRESHED = "token_refreshed"
    TOKEN_REFRESH_FAILED = "token_refresh_failed"

    # MFA lifecycle events
    MFA_ENROLLED = "mfa_enrolled"
    MFA_CODE_SENT = "mfa_code_sent"
    MFA_CODE_SEND_FAILED = "mfa_code_send_failed"
    BACKUP_CODES_GENERATED = "backup_codes_generated"
    BACKUP_CODE_USED = "backup_code_used"
    MFA_REVOKED = "mfa_revoked"


_WARNING_EVENTS = {
    EventType.LOGIN_FAILED,
    EventType.MFA_FAILED,
    EventType.TOKEN_REFRESH_FAILED,
    EventType.MFA_CODE_SEND_FAILED,
}


# ============================================================================
# Event Structure
# ============================================================================

@dataclass
class SecurityEvent:
    """
    A security event.

    All user-identifying information is hashed.
    """
    event_type: EventType
    user_hash: str
    timestamp: int
    details: Dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        """Serialize the event as a compact JSON line."""
        return json.dumps({
            'version': EVENT_VERSION,
            'type': self.event_type.value,
            'user': self.user_hash,
            'time': self.timestamp,
            'iso_time': datetime.fromtimestamp(self.timestamp, tz=timezone.utc).isoformat(),
            'details': self.details,
        }, separators=(',', ':'), sort_keys=True)

    @classmethod
    def from_json(cls, line: str) -> 'SecurityEvent':
        """Parse an event written by to_json()."""
        data = json.loads(line)
        return cls(
            event_type=EventType(data['type']),
            user_hash=data['user'],
            timestamp=data['time'],
            details=data.get('details', {}),
        )

    def __str__(self) -> str:
        dt = datetime.fromtimestamp(self.timestamp, tz=timezone.utc)
        return (
            f"[{dt.strftime('%Y-%m-%d %H:%M:%S')}] "
            f"{self.event_type.value} | "
            f"user:{self.user_hash[:8]}..."
        )


# ============================================================================
# Audit Log
# ============================================================================

class AuditLog:
    """
    Security audit trail for the authentication engine.

    Every event is written as one JSON line to the "authvault.audit"
    logger and kept in a bounded in-memory history.
    """

    def __init__(self, history_size: int = DEFAULT_HISTORY_SIZE,
                 sink: Optional[logging.Logger] = None):
        """
        Initialize the audit log.

        Args:
            history_size: Number of recent events kept in memory
            sink: Logger receiving the JSON lines
        """
        self._sink = sink or logging.getLogger(AUDIT_LOGGER_NAME)
        self._history: Deque[SecurityEvent] = deque(maxlen=history_size)
        self._callbacks: List[Callable[[SecurityEvent], None]] = []
        self._lock = threading.Lock()

    def record(self, event_type: EventType, identifier: Optional[str] = None,
               **details) -> SecurityEvent:
        """
        Record an event.

        Args:
            event_type: What happened
            identifier: Email or identity id (hashed before storage)
            **details: Extra non-sensitive fields

        Returns:
            The recorded event
        """
        event = SecurityEvent(
            event_type=event_type,
            user_hash=get_user_hash(identifier) if identifier else "anonymous",
            timestamp=int(time.time()),
            details={k: v for k, v in details.items() if v is not None},
        )

        with self._lock:
            self._history.append(event)
            callbacks = list(self._callbacks)

        level = logging.WARNING if event_type in _WARNING_EVENTS else logging.INFO
        self._sink.log(level, event.to_json())

        for callback in callbacks:
            try:
                callback(event)
            except Exception:
                logger.exception("Audit callback %r failed", callback)

        return event

    def add_callback(self, callback: Callable[[SecurityEvent], None]) -> None:
        """Add a callback to be notified of new events."""
        with self._lock:
            self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[SecurityEvent], None]) -> None:
        """Remove a callback."""
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def get_all_events(self) -> List[SecurityEvent]:
        with self._lock:
            return list(self._history)

    def get_user_events(self, identifier: str) -> List[SecurityEvent]:
        """Events recorded for one email or identity id."""
        user_hash = get_user_hash(identifier)
        return [e for e in self.get_all_events() if e.user_hash == user_hash]

    def get_events_by_type(self, event_type: EventType) -> List[SecurityEvent]:
        return [e for e in self.get_all_events() if e.event_type == event_type]

    def get_recent_events(self, count: int = 10) -> List[SecurityEvent]:
        events = self.get_all_events()
        return events[-count:]

    def export_log(self) -> str:
        """Export the in-memory history as JSON lines."""
        return "\n".join(e.to_json() for e in self.get_all_events())
