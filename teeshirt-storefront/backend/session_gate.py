"""
Route gate: decides whether a page renders for the current session.
"""
from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass, replace
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)

AUTH_SNAPSHOT_KEY = "auth"

ROLE_USER = "user"
ROLE_ADMIN = "admin"

LANDING_VIEW = "/"
DEFAULT_AUTHENTICATED_VIEW = "/dashboard"
ADMIN_VIEW = "/admin"


class Resolution(enum.Enum):
    UNRESOLVED = "unresolved"
    RESOLVING = "resolving"
    RESOLVED = "resolved"


@dataclass(frozen=True)
class Session:
    user_id: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    authenticated: bool = False
    full_name: Optional[str] = None

    @property
    def display_name(self) -> str:
        if self.full_name:
            return self.full_name
        return (self.email or "").split("@")[0]


ANONYMOUS = Session()


@dataclass(frozen=True)
class AuthState:
    resolution: Resolution = Resolution.UNRESOLVED
    session: Session = ANONYMOUS

    @property
    def pending(self) -> bool:
        return self.resolution is not Resolution.RESOLVED

    @property
    def authenticated(self) -> bool:
        return self.resolution is Resolution.RESOLVED and self.session.authenticated


class DecisionKind(enum.Enum):
    SHOW_LOADING = "show_loading"
    REDIRECT = "redirect"
    RENDER = "render"


@dataclass(frozen=True)
class Decision:
    kind: DecisionKind
    target: Optional[str] = None

    @classmethod
    def show_loading(cls) -> "Decision":
        return cls(DecisionKind.SHOW_LOADING)

    @classmethod
    def redirect(cls, target: str) -> "Decision":
        return cls(DecisionKind.REDIRECT, target)

    @classmethod
    def render(cls, target: str) -> "Decision":
        return cls(DecisionKind.RENDER, target)


@dataclass(frozen=True)
class GateResult:
    decision: Decision
    state: AuthState
    # set when the session was adopted from the cached snapshot
    recovered: bool = False


def dump_auth_snapshot(session: Session) -> str:
    return json.dumps({
        "user": session.email,
        "role": session.role,
        "isAuthenticated": session.authenticated,
        "userId": session.user_id,
        "name": session.full_name,
    })


def load_auth_snapshot(raw: Any) -> Optional[Session]:
    """Parse the cached ``auth`` blob. Corrupt blobs count as absent."""
    if not raw:
        return None
    try:
        parsed = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
        return Session(
            user_id=parsed.get("userId"),
            email=parsed.get("user"),
            role=parsed.get("role") or ROLE_USER,
            authenticated=bool(parsed.get("isAuthenticated")),
            full_name=parsed.get("name"),
        )
    except (ValueError, TypeError, AttributeError) as e:
        logger.debug("Ignoring unreadable auth snapshot: %s", e)
        return None


def home_for_role(role: Optional[str]) -> str:
    return ADMIN_VIEW if role == ROLE_ADMIN else DEFAULT_AUTHENTICATED_VIEW


def authorize(state: AuthState, target_view: str, required_role: Optional[str] = None,
              snapshots: Optional[Mapping[str, Any]] = None) -> GateResult:
    """Decide what to show for ``target_view``.

    ``snapshots`` holds the locally cached ``auth`` blob. When there is no
    live session but the cache says the user is signed in, the cached
    session is adopted and returned as the next state.
    """
    if state.pending:
        return GateResult(Decision.show_loading(), state)

    recovered = False
    if not state.session.authenticated:
        cached = load_auth_snapshot((snapshots or {}).get(AUTH_SNAPSHOT_KEY))
        if not cached or not cached.authenticated:
            return GateResult(Decision.redirect(LANDING_VIEW), state)
        state = replace(state, session=cached)
        recovered = True

    if required_role and state.session.role != required_role:
        return GateResult(Decision.redirect(DEFAULT_AUTHENTICATED_VIEW), state, recovered)

    return GateResult(Decision.render(target_view), state, recovered)
