"""Two-phase record for optimistic profile writes."""

from dataclasses import dataclass

from kaamconnect.domain.entities.profile import Profile


@dataclass(frozen=True, slots=True)
class OptimisticUpdate:
    """Captured at the optimistic write and resolved exactly once.

    ``version`` is the profile field version produced by writing
    ``attempted``; settling is only applied while it is still current.
    """

    previous: Profile
    attempted: Profile
    version: int

    def commit(self, remote_result: Profile) -> Profile:
        return remote_result

    def rollback(self) -> Profile:
        return self.previous
