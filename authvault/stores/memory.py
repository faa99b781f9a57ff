"""
In-memory reference stores.

Implement the identity and refresh-token store interfaces with plain dicts
guarded by a lock, so every operation (including the conditional ones) is
atomic within one process. Records handed out are copies; mutating them
does not touch the stored state.

Intended for tests and local development, not production persistence.
"""

import copy
import hmac
import threading
import time
import uuid
from typing import Dict, Optional

from ..identity import Identity, IdentityStore
from ..errors import DuplicateIdentity, NotFound
from ..tokens.refresh import RefreshTokenRecord, RefreshTokenStore


def _normalize_email(email: str) -> str:
    return email.strip().lower()


class InMemoryIdentityStore(IdentityStore):
    """Identity store backed by a dict of id -> Identity."""

    def __init__(self):
        self._identities: Dict[str, Identity] = {}
        self._by_email: Dict[str, str] = {}
        self._lock = threading.Lock()

    def create(self, identity: Identity) -> Identity:
        key = _normalize_email(identity.email)
        with self._lock:
            if key in self._by_email:
                raise DuplicateIdentity(f"email already registered: {identity.email}")
            stored = copy.deepcopy(identity)
            stored.id = stored.id or uuid.uuid4().hex
            self._identities[stored.id] = stored
            self._by_email[key] = stored.id
            return copy.deepcopy(stored)

    def find_by_email(self, email: str) -> Identity:
        with self._lock:
            identity_id = self._by_email.get(_normalize_email(email))
            if identity_id is None:
                raise NotFound("identity not found")
            return copy.deepcopy(self._identities[identity_id])

    def find_by_id(self, identity_id: str) -> Identity:
        with self._lock:
            return copy.deepcopy(self._get(identity_id))

    def update(self, identity_id: str, **fields) -> Identity:
        with self._lock:
            stored = self._get(identity_id)
            for name in fields:
                if name in ('id', 'email') or not hasattr(stored, name):
                    raise ValueError(f"cannot update field: {name}")
            for name, value in fields.items():
                setattr(stored, name, copy.deepcopy(value))
            return copy.deepcopy(stored)

    def remove_backup_code(self, identity_id: str, code: str) -> bool:
        with self._lock:
            stored = self._get(identity_id)
            for i, candidate in enumerate(stored.mfa_backup_codes):
                if hmac.compare_digest(candidate.encode(), code.encode()):
                    del stored.mfa_backup_codes[i]
                    return True
            return False

    def advance_hotp_counter(self, identity_id: str, expected: int,
                             new: int) -> bool:
        with self._lock:
            stored = self._get(identity_id)
            if stored.mfa_counter != expected or new <= expected:
                return False
            stored.mfa_counter = new
            return True

    def consume_otp_code(self, identity_id: str, code: str) -> bool:
        with self._lock:
            stored = self._get(identity_id)
            current = stored.mfa_otp_code
            if not current or not hmac.compare_digest(current.encode(), code.encode()):
                return False
            stored.mfa_otp_code = None
            stored.mfa_otp_expiry = None
            return True

    def _get(self, identity_id: str) -> Identity:
        stored = self._identities.get(identity_id)
        if stored is None:
            raise NotFound("identity not found")
        return stored

    def __len__(self) -> int:
        return len(self._identities)


class InMemoryRefreshTokenStore(RefreshTokenStore):
    """Refresh token store backed by a dict of id -> record."""

    def __init__(self):
        self._records: Dict[str, RefreshTokenRecord] = {}
        self._by_value: Dict[str, str] = {}
        self._lock = threading.Lock()

    def create(self, record: RefreshTokenRecord) -> RefreshTokenRecord:
        with self._lock:
            if record.value in self._by_value:
                raise ValueError("token value collision")
            stored = copy.copy(record)
            self._records[stored.id] = stored
            self._by_value[stored.value] = stored.id
            return copy.copy(stored)

    def find_by_value(self, value: str) -> RefreshTokenRecord:
        with self._lock:
            record_id = self._by_value.get(value)
            if record_id is None:
                raise NotFound("token not found")
            return copy.copy(self._records[record_id])

    def delete_by_id(self, record_id: str) -> bool:
        with self._lock:
            record = self._records.pop(record_id, None)
            if record is None:
                return False
            del self._by_value[record.value]
            return True

    def delete_expired(self, now: Optional[float] = None) -> int:
        if now is None:
            now = time.time()
        with self._lock:
            expired = [r for r in self._records.values() if r.is_expired(now)]
            for record in expired:
                del self._records[record.id]
                del self._by_value[record.value]
            return len(expired)

    def delete_for_user(self, user_id: str) -> int:
        with self._lock:
            owned = [r for r in self._records.values() if r.user_id == user_id]
            for record in owned:
                del self._records[record.id]
                del self._by_value[record.value]
            return len(owned)

    def __len__(self) -> int:
        return len(self._records)
