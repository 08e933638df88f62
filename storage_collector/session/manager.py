"""Per-identity session lifecycle.

The SessionManager owns every authenticated session, keyed by the config's
identity key (endpoint plus credentials fingerprint). A session is created
on first use, reused while valid, and replaced after expiry or rejection.
Only one login runs at a time per identity; callers holding a valid session
never wait on that lock.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

from ..core.config import PolicySettings, VendorConfig
from ..core.errors import StorageCollectorError
from ..transport.base import Transport

LOG = logging.getLogger(__name__)

IdentityKey = Tuple[str, str]


@dataclass
class Session:
    """Authenticated context for one vendor identity."""
    config: VendorConfig
    cookies: Dict[str, str] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict, repr=False)
    auth: Optional[Tuple[str, str]] = field(default=None, repr=False)
    created_at: float = field(default_factory=time.time)
    expires_at: Optional[float] = None
    invalidated: bool = False
    authenticator: Any = field(default=None, repr=False, compare=False)
    extras: Dict[str, Any] = field(default_factory=dict, repr=False)

    def is_valid(self, now: Optional[float] = None) -> bool:
        if self.invalidated:
            return False
        if self.expires_at is None:
            return True
        return (now if now is not None else time.time()) < self.expires_at

    def invalidate(self) -> None:
        self.invalidated = True


class SessionManager:
    """Creates, caches and refreshes sessions keyed by config identity."""

    def __init__(self, transport: Transport, policy: Optional[PolicySettings] = None,
                 clock: Callable[[], float] = time.time):
        self.transport = transport
        self.policy = policy or PolicySettings()
        self._clock = clock
        self._sessions: Dict[IdentityKey, Session] = {}
        self._locks: Dict[IdentityKey, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        self.login_count = 0

    def ensure_session(self, config: VendorConfig, authenticator) -> 'SessionHandle':
        """Return a handle whose session is valid right now.

        Logs in on first use for this identity, or when the stored session
        has expired or been invalidated.
        """
        handle = SessionHandle(self, config, authenticator)
        handle.current()
        return handle

    def _lock_for(self, key: IdentityKey) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def get_valid(self, config: VendorConfig, authenticator) -> Session:
        key = config.identity_key
        session = self._sessions.get(key)
        if session is not None and session.is_valid(self._clock()):
            return session

        with self._lock_for(key):
            # Another thread may have logged in while we waited
            session = self._sessions.get(key)
            if session is not None and session.is_valid(self._clock()):
                return session
            if session is not None:
                LOG.info(f"Session for {config.vendor}@{config.endpoint} expired or invalidated, logging in again")
            return self._login(key, config, authenticator)

    def reauthenticate(self, config: VendorConfig, authenticator, stale: Session) -> Session:
        """Replace a session the vendor rejected.

        If another caller already replaced ``stale`` the newer session is
        returned without a second login.
        """
        key = config.identity_key
        with self._lock_for(key):
            current = self._sessions.get(key)
            if current is not None and current is not stale and current.is_valid(self._clock()):
                return current
            stale.invalidate()
            LOG.info(f"Session for {config.vendor}@{config.endpoint} rejected, re-authenticating")
            return self._login(key, config, authenticator)

    def _login(self, key: IdentityKey, config: VendorConfig, authenticator) -> Session:
        timeout = config.request_timeout or self.policy.request_timeout
        session = authenticator.login(config, self.transport, timeout)
        session.authenticator = authenticator
        session.created_at = self._clock()
        ttl = session.extras.get('ttl') or self.policy.session_ttl
        if session.expires_at is None and ttl:
            session.expires_at = session.created_at + ttl
        self._sessions[key] = session
        self.login_count += 1
        LOG.debug(f"Logged in to {config.vendor}@{config.endpoint} as {config.username or '<token>'}")
        return session

    def invalidate(self, config: VendorConfig) -> None:
        session = self._sessions.get(config.identity_key)
        if session is not None:
            session.invalidate()

    def logout(self, config: VendorConfig) -> None:
        """Log out and forget the session for this identity (best effort)."""
        key = config.identity_key
        with self._lock_for(key):
            session = self._sessions.pop(key, None)
        if session is None or session.authenticator is None:
            return
        try:
            session.authenticator.logout(session, self.transport,
                                         config.request_timeout or self.policy.request_timeout)
        except StorageCollectorError as e:
            LOG.warning(f"Logout from {config.vendor}@{config.endpoint} failed: {e}")

    def close(self) -> None:
        """Log out of every held session."""
        for session in list(self._sessions.values()):
            self.logout(session.config)

    def __len__(self) -> int:
        return len(self._sessions)


class SessionHandle:
    """A caller's view of the session for one config.

    ``current()`` is called before every request so expired sessions are
    renewed before they are used.
    """

    def __init__(self, manager: SessionManager, config: VendorConfig, authenticator):
        self.manager = manager
        self.config = config
        self.authenticator = authenticator

    def current(self) -> Session:
        return self.manager.get_valid(self.config, self.authenticator)

    def reauthenticate(self, stale: Session) -> Session:
        return self.manager.reauthenticate(self.config, self.authenticator, stale)

    def invalidate(self) -> None:
        self.manager.invalidate(self.config)
