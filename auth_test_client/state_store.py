"""
Anti-CSRF state tokens issued at /login and checked at the callback.
Single-use and time-bounded (TTL); used records are kept until they expire so replays are
reported as replays rather than as unknown state.
"""
import logging
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Callable, Protocol

from auth_test_client.config import DEFAULT_STATE_TTL_SECONDS
from auth_test_client.errors import ExpiredStateError, MissingStateError, ReplayedStateError

logger = logging.getLogger(__name__)

# 32 bytes = 256 bits of entropy, 64 hex chars
STATE_TOKEN_BYTES = 32


@dataclass
class StateRecord:
    token: str
    created_at: float
    used: bool = False

    def age(self, now: float) -> float:
        return now - self.created_at


class StateStore(Protocol):
    """What the flow controller needs from a state store. A shared store (e.g. Redis) fits here."""

    def create(self) -> str:
        ...

    def validate_and_consume(self, token: str) -> None:
        ...


class InMemoryStateStore:
    """Process-local store; all access to the mapping goes through one lock."""

    def __init__(self, ttl_seconds: int = DEFAULT_STATE_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._records: dict[str, StateRecord] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def create(self) -> str:
        """Issue a fresh token. Expired records are swept first."""
        token = secrets.token_hex(STATE_TOKEN_BYTES)
        with self._lock:
            now = self._clock()
            self._sweep_locked(now)
            self._records[token] = StateRecord(token=token, created_at=now)
        return token

    def validate_and_consume(self, token: str) -> None:
        """
        Mark token used. Raises MissingStateError (unknown), ExpiredStateError (older than TTL,
        used or not) or ReplayedStateError (already used). Only one caller can ever succeed.
        """
        with self._lock:
            record = self._records.get(token)
            if record is None:
                raise MissingStateError()
            if record.age(self._clock()) > self.ttl_seconds:
                raise ExpiredStateError()
            if record.used:
                raise ReplayedStateError()
            record.used = True

    def sweep(self) -> int:
        """Remove expired records; returns how many were removed."""
        with self._lock:
            return self._sweep_locked(self._clock())

    def _sweep_locked(self, now: float) -> int:
        expired = [t for t, r in self._records.items() if r.age(now) > self.ttl_seconds]
        for t in expired:
            del self._records[t]
        if expired:
            logger.debug("Swept %d expired state token(s)", len(expired))
        return len(expired)
