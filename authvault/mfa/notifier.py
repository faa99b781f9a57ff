"""
Out-of-band delivery of one-time codes.

The engine only talks to the Notifier interface; SMS gateways and SMTP
clients live in the embedding application and are injected at
construction time.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


class Notifier(ABC):
    """Delivers one-time codes. Return False (or raise) on failure."""

    @abstractmethod
    def send_sms(self, phone_number: str, text: str) -> bool:
        """Send a text message."""

    @abstractmethod
    def send_email(self, address: str, subject: str, body: str) -> bool:
        """Send an email."""


@dataclass
class SentMessage:
    """A message captured by RecordingNotifier."""
    channel: str            # 'sms' or 'email'
    recipient: str
    body: str
    subject: Optional[str] = None


class RecordingNotifier(Notifier):
    """
    Notifier that keeps every message in memory.

    Used for tests and local development. Set fail=True to simulate a
    gateway outage.
    """

    def __init__(self, fail: bool = False):
        self.fail = fail
        self._messages: List[SentMessage] = []
        self._lock = threading.Lock()

    def send_sms(self, phone_number: str, text: str) -> bool:
        if self.fail:
            return False
        with self._lock:
            self._messages.append(SentMessage('sms', phone_number, text))
        return True

    def send_email(self, address: str, subject: str, body: str) -> bool:
        if self.fail:
            return False
        with self._lock:
            self._messages.append(SentMessage('email', address, body, subject))
        return True

    @property
    def messages(self) -> List[SentMessage]:
        with self._lock:
            return list(self._messages)

    def last(self, channel: Optional[str] = None) -> Optional[SentMessage]:
        """Most recent message, optionally restricted to one channel."""
        for message in reversed(self.messages):
            if channel is None or message.channel == channel:
                return message
        return None
