"""
Timer Store - Cooldown and permit bookkeeping
=============================================

Timers are keyed by a digest of (kind, scope, identity) and hold an
expiry timestamp. Expired entries are treated as absent; nothing has
to delete them for correctness, `cleanup_expired` only frees memory.

Two backends share the same contract:
- TimerStore: in-memory, guarded by a lock
- SQLiteTimerStore: rows in the sqlite `timers` table, survives restarts
"""

import hashlib
import threading
import time
from datetime import datetime, timedelta
from enum import IntEnum
from typing import Callable, Dict, Optional, Union

from .database import Database
from .logging import get_logger


logger = get_logger("core.timers")

Expiry = Union[datetime, float]


class TimerType(IntEnum):
    """Kind of a timer, part of its key."""
    PERMIT = 0
    COOLDOWN = 1


def cooldown_key(kind: TimerType, scope: str, identity: str) -> str:
    """Build the storage key of a cooldown timer."""
    raw = f"{int(kind)}:{scope}:{identity}"
    return "sha256:" + hashlib.sha256(raw.encode("utf-8")).hexdigest()


def permit_key(channel: str, username: str) -> str:
    """Build the storage key of a permit; the username is case-insensitive."""
    return cooldown_key(TimerType.PERMIT, channel, username.lstrip("@").lower())


def _to_timestamp(expiry: Expiry) -> float:
    if isinstance(expiry, datetime):
        return expiry.timestamp()
    return float(expiry)


class TimerStore:
    """
    In-memory timer store safe for concurrent use.

    Attributes:
        permit_timeout (timedelta): Validity window of new permits
    """

    def __init__(
        self,
        permit_timeout: timedelta = timedelta(minutes=1),
        clock: Optional[Callable[[], float]] = None
    ):
        """
        Initialize the store.

        Args:
            permit_timeout: Validity window of new permits
            clock: Function returning the current unix time, defaults
                to time.time
        """
        self.permit_timeout = permit_timeout
        self.clock = clock or time.time
        self._timers: Dict[str, float] = {}
        self._lock = threading.Lock()

    def now(self) -> float:
        return self.clock()

    def update_permit_timeout(self, timeout: timedelta) -> None:
        """Set the validity window for permits granted from now on."""
        self.permit_timeout = timeout

    # Cooldown timers

    def add_cooldown(self, kind: TimerType, scope: str, identity: str, expiry: Expiry) -> None:
        """Store a cooldown expiry; the last write wins."""
        self._set_timer(cooldown_key(kind, scope, identity), _to_timestamp(expiry))

    def in_cooldown(self, kind: TimerType, scope: str, identity: str) -> bool:
        """Check whether a cooldown exists and has not yet expired."""
        return self._has_timer(cooldown_key(kind, scope, identity))

    # Permit timers

    def add_permit(self, channel: str, username: str) -> None:
        """Grant a permit for the user in the channel."""
        expiry = self.now() + self.permit_timeout.total_seconds()
        self._set_timer(permit_key(channel, username), expiry)
        logger.debug("Permit added", extra={"channel": channel, "user": username})

    def has_permit(self, channel: str, username: str) -> bool:
        """Check whether the user holds a valid permit in the channel."""
        return self._has_timer(permit_key(channel, username))

    # Generic timers

    def _set_timer(self, key: str, expires_at: float) -> None:
        with self._lock:
            self._timers[key] = expires_at

    def _has_timer(self, key: str) -> bool:
        with self._lock:
            expires_at = self._timers.get(key)
        return expires_at is not None and expires_at > self.now()

    def cleanup_expired(self) -> int:
        """
        Drop expired timers.

        Returns:
            Number of removed entries
        """
        now = self.now()
        with self._lock:
            expired = [k for k, v in self._timers.items() if v <= now]
            for key in expired:
                del self._timers[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._timers)


class SQLiteTimerStore(TimerStore):
    """
    Timer store persisting timers into the sqlite database.

    Cooldowns recorded before a restart are still honoured afterwards
    because rule identities are stable content hashes.
    """

    def __init__(
        self,
        database: Database,
        permit_timeout: timedelta = timedelta(minutes=1),
        clock: Optional[Callable[[], float]] = None
    ):
        super().__init__(permit_timeout=permit_timeout, clock=clock)
        self.database = database

    def _set_timer(self, key: str, expires_at: float) -> None:
        self.database.set_timer(key, expires_at)

    def _has_timer(self, key: str) -> bool:
        expires_at = self.database.get_timer(key)
        return expires_at is not None and expires_at > self.now()

    def cleanup_expired(self) -> int:
        return self.database.delete_expired_timers(self.now())

    def __len__(self) -> int:
        return self.database.count_timers()
