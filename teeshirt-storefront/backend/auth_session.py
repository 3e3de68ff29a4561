"""
Resolving who is signed in.

A remote session alone is not enough: the user's profile row (role and
display name) has to load as well, otherwise the session resolves as
anonymous.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from session_gate import ANONYMOUS, ROLE_USER, AuthState, Resolution, Session
from supabase_store import StoreError

logger = logging.getLogger(__name__)

SIGNED_OUT = "SIGNED_OUT"


class ProfileNotFound(Exception):
    pass


def fixed_delay(seconds: float) -> Callable[[int], float]:
    return lambda attempt: seconds


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff: Callable[[int], float] = field(default=fixed_delay(1.0))
    sleep: Callable[[float], None] = field(default=time.sleep)

    def run(self, operation: Callable[[], Any], retry_on=(Exception,)) -> Any:
        """Call ``operation`` until it succeeds or attempts run out.

        The last error is re-raised once every attempt has failed.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return operation()
            except retry_on as e:
                if attempt == self.max_attempts:
                    raise
                delay = self.backoff(attempt)
                logger.debug(f"Attempt {attempt}/{self.max_attempts} failed ({e}), retrying in {delay}s")
                self.sleep(delay)


@dataclass(frozen=True)
class Profile:
    id: str
    email: Optional[str]
    role: str = ROLE_USER
    full_name: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Profile":
        return cls(
            id=str(row["id"]),
            email=row.get("email"),
            role=row.get("role") or ROLE_USER,
            full_name=row.get("full_name"),
            created_at=row.get("created_at"),
        )


class ProfileLoader:
    def __init__(self, store, policy: Optional[RetryPolicy] = None):
        self.store = store
        self.policy = policy or RetryPolicy()

    def _fetch(self, user_id: str) -> Profile:
        row = self.store.get_profile(user_id)
        if not row:
            raise ProfileNotFound(user_id)
        return Profile.from_row(row)

    def load(self, user_id: str, email: Optional[str] = None, full_name: Optional[str] = None) -> Optional[Profile]:
        try:
            return self.policy.run(lambda: self._fetch(user_id), retry_on=(StoreError, ProfileNotFound))
        except (StoreError, ProfileNotFound) as e:
            logger.warning(f"Profile for {user_id} unavailable after {self.policy.max_attempts} attempts: {e}")

        # The signup trigger may never have created the row
        try:
            self.store.insert_default_profile(user_id, email, full_name)
            return self._fetch(user_id)
        except (StoreError, ProfileNotFound) as e:
            logger.error(f"Could not create profile for {user_id}: {e}")
            return None


def session_from_profile(profile: Profile) -> Session:
    return Session(
        user_id=profile.id,
        email=profile.email,
        role=profile.role,
        authenticated=True,
        full_name=profile.full_name,
    )


class SessionResolver:
    """Tracks the Unresolved -> Resolving -> Resolved lifecycle of one session.

    Subscribes to remote auth changes on creation; each notification starts
    a new resolution.
    """

    def __init__(self, auth, profiles: ProfileLoader, tokens: Optional[Dict[str, Any]] = None):
        self.auth = auth
        self.profiles = profiles
        self.tokens = tokens
        self.state = AuthState(Resolution.UNRESOLVED, ANONYMOUS)
        self.remote_session = None
        self.profile_missing = False
        self._subscription = auth.subscribe(self.handle_auth_event)

    def resolve(self, remote=None, full_name: Optional[str] = None) -> AuthState:
        self.state = AuthState(Resolution.RESOLVING, ANONYMOUS)
        self.profile_missing = False

        if remote is None:
            remote = self.auth.get_current_session(self.tokens)
        self.remote_session = remote
        if remote is None:
            self.state = AuthState(Resolution.RESOLVED, ANONYMOUS)
            return self.state

        profile = self.profiles.load(remote.identity_id, remote.email, full_name)
        if profile is None:
            logger.error(f"Session for {remote.identity_id} has no usable profile, treating as signed out")
            self.profile_missing = True
            self.state = AuthState(Resolution.RESOLVED, ANONYMOUS)
            return self.state

        self.state = AuthState(Resolution.RESOLVED, session_from_profile(profile))
        return self.state

    def handle_auth_event(self, event, remote) -> None:
        if event == SIGNED_OUT:
            self.remote_session = None
            self.state = AuthState(Resolution.RESOLVED, ANONYMOUS)
            return
        # Events fired by our own session restore arrive mid-resolution
        if self.state.resolution is Resolution.RESOLVING:
            return
        self.resolve(remote)

    def close(self) -> None:
        unsubscribe = getattr(self._subscription, "unsubscribe", None)
        if unsubscribe:
            unsubscribe()
