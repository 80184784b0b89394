"""Session manager state snapshot."""

from dataclasses import dataclass
from enum import StrEnum

from kaamconnect.domain.entities.profile import Profile
from kaamconnect.domain.entities.session import User


class StatePhase(StrEnum):
    """Coarse state derived from (initialized, user, profile)."""

    UNRESOLVED = "unresolved"
    ANONYMOUS = "anonymous"
    ONBOARDING = "onboarding"
    ACTIVE = "active"


@dataclass(frozen=True, slots=True)
class ManagerState:
    """Read-only value object: what the presentation layer renders from."""

    user: User | None = None
    profile: Profile | None = None
    loading: bool = True
    error: str | None = None
    error_code: str | None = None
    initialized: bool = False

    @property
    def phase(self) -> StatePhase:
        if not self.initialized:
            return StatePhase.UNRESOLVED
        if self.user is None:
            return StatePhase.ANONYMOUS
        if self.profile is None:
            return StatePhase.ONBOARDING
        return StatePhase.ACTIVE

    def check_invariants(self) -> None:
        if self.profile is not None and self.user is None:
            raise AssertionError("profile present without user")
        if self.profile is not None and self.user is not None and self.profile.id != self.user.id:
            raise AssertionError("profile belongs to a different user")
        if not self.loading and not self.initialized:
            raise AssertionError("settled before initialization")
