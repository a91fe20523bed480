"""Reuse of authenticated clients across operations."""

import atexit
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .client import AdtClient, connect
from .exceptions import AbaperError
from .models import ConnectionProfile
from .session import Session

logger = logging.getLogger("abaper.cache")

DEFAULT_TTL = 30 * 60.0


@dataclass
class CachedConnection:
    """An authenticated client and when it was created."""
    fingerprint: str
    client: AdtClient
    created_at: float

    @property
    def session(self) -> Optional[Session]:
        return self.client.session


class ConnectionCache:
    """Hands out authenticated clients, reusing them while they are fresh and alive.

    Entries are slotted by host, client and username, so a rotated password
    replaces the user's entry instead of adding one. Concurrent callers for
    the same slot are serialized, so a cache miss authenticates once. Expiry
    is checked lazily on access.

    A replaced client is not closed here: callers may still be in the middle
    of a lock/write/unlock sequence on it. It is released once nothing
    references it; :meth:`clear` closes the clients still cached.
    """

    def __init__(self, ttl: float = DEFAULT_TTL,
                 connector: Callable[[ConnectionProfile], AdtClient] = connect,
                 clock: Callable[[], float] = time.monotonic):
        """Initialize the cache.

        Args:
            ttl: Seconds a client is reused before re-authenticating
            connector: Builds and authenticates a client for a profile
            clock: Monotonic time source
        """
        self.ttl = ttl
        self.connector = connector
        self.clock = clock
        self._entries: Dict[str, CachedConnection] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    @staticmethod
    def _slot(profile: ConnectionProfile) -> str:
        return "|".join((profile.host, profile.client, profile.username))

    def _lock_for(self, slot: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(slot)
            if lock is None:
                lock = self._locks[slot] = threading.Lock()
            return lock

    def _is_usable(self, entry: CachedConnection, fingerprint: str) -> bool:
        if entry.fingerprint != fingerprint:
            logger.info("ADT cache miss (credentials_changed=True)")
            return False
        age = self.clock() - entry.created_at
        if age >= self.ttl:
            logger.info("ADT cache miss (cache_expired=True, age=%.0fs)", age)
            return False
        if not entry.client.is_authenticated:
            logger.info("ADT cache miss (not_authenticated=True)")
            return False
        try:
            entry.client.ping()
        except AbaperError as e:
            logger.info("Cached ADT client failed ping test, creating new client: %s", e)
            return False
        logger.debug("Using cached ADT client (host=%s, cache_age=%.0fs)", entry.client.profile.host, age)
        return True

    def get_or_create(self, profile: ConnectionProfile) -> AdtClient:
        """Return an authenticated client for the profile.

        Args:
            profile: Connection profile

        Returns:
            Cached client on a hit, otherwise a freshly authenticated one
        """
        slot = self._slot(profile)
        fingerprint = profile.fingerprint
        with self._lock_for(slot):
            with self._guard:
                entry = self._entries.get(slot)
            if entry is not None:
                if self._is_usable(entry, fingerprint):
                    return entry.client
                # Stale entries never survive a failed reconnect.
                with self._guard:
                    if self._entries.get(slot) is entry:
                        del self._entries[slot]
            else:
                logger.info("Creating ADT client for %s", profile.host)

            client = self.connector(profile)
            with self._guard:
                self._entries[slot] = CachedConnection(fingerprint, client, self.clock())

            logger.info("ADT client cached successfully (host=%s, cache_timeout=%.0fs)", profile.host, self.ttl)
            return client

    def clear(self) -> None:
        """Drop and close every cached client."""
        with self._guard:
            entries = list(self._entries.values())
            self._entries.clear()
            self._locks.clear()
        if entries:
            logger.debug("Cleaning up ADT cache (%d entries)", len(entries))
        for entry in entries:
            entry.client.close()

    def register_shutdown(self) -> None:
        """Clear the cache when the interpreter exits."""
        atexit.register(self.clear)

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.clear()
