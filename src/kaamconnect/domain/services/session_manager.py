"""Session and profile manager.

Keeps a locally consistent view of who is signed in and what their profile
is. The remote auth service and profile table are the source of truth; the
manager's ``ManagerState`` is a cache reconciled from three sources that can
interleave at every remote call: initialization, direct operations
(refresh, update, sign-out, onboarding) and the auth event stream.

Reconciliation rules:
    - Auth events are handled one at a time in delivery order and always
      leave the state settled (``initialized=True``, ``loading=False``).
    - ``user`` and ``profile`` carry a version that is bumped on every write.
      An operation that reads, suspends on a remote call, then writes, only
      applies its write if the versions it started from are still current.
      A stale fetch therefore never overwrites a newer event's result.
    - ``error`` is last-writer-wins.
    - Teardown cancels every tracked task, so a suspended operation never
      mutates state afterwards.
    - Once closed, no write reaches the state or its watchers.
"""

import asyncio
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import replace
from datetime import datetime
from typing import Any, NoReturn, TypeVar
from uuid import UUID

import structlog
from pydantic import ValidationError

from kaamconnect.core.channel import Channel, Subscription
from kaamconnect.core.exceptions import (
    AppException,
    AuthenticationError,
    DuplicateProfileError,
    InvalidProfileDataError,
    ManagerClosedError,
    MalformedRowError,
    NoProfileToUpdateError,
    NoUserLoggedInError,
    ProfileCreateError,
    ProfileFetchError,
    ProfileUpdateError,
    RemoteError,
    SessionRetrievalError,
    SignOutError,
)
from kaamconnect.domain.entities.optimistic import OptimisticUpdate
from kaamconnect.domain.entities.profile import Profile, Role, utcnow
from kaamconnect.domain.entities.session import AuthChangeEvent, AuthEvent, Session, User
from kaamconnect.domain.entities.state import ManagerState, StatePhase
from kaamconnect.domain.repositories.auth_gateway import IAuthGateway
from kaamconnect.domain.repositories.profile_repository import IProfileRepository
from kaamconnect.schemas.profile import ProfileCreate, ProfileUpdate

logger = structlog.get_logger()

T = TypeVar("T")

MAX_PROFILE_FETCH_RETRIES = 3
RETRY_BASE_DELAY_SECONDS = 1.0
# Snapshots a slow watch() reader may lag behind before the oldest are dropped
WATCH_BUFFER_SIZE = 100

_USER = "user"
_PROFILE = "profile"

# Events that adopt the session's user and re-fetch the profile
_FETCHING_EVENTS = frozenset({AuthChangeEvent.SIGNED_IN, AuthChangeEvent.TOKEN_REFRESHED})


def _reason(exc: BaseException) -> tuple[str, str | None]:
    """Human-readable reason and remote code for a failure."""
    if isinstance(exc, AppException):
        return exc.message, exc.remote_code
    return str(exc) or type(exc).__name__, None


class SessionManager:
    """Owns authentication and profile state for one UI context."""

    def __init__(
        self,
        auth: IAuthGateway,
        profiles: IProfileRepository,
        *,
        max_retries: int = MAX_PROFILE_FETCH_RETRIES,
        retry_base_delay: float = RETRY_BASE_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._auth = auth
        self._profiles = profiles
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._sleep = sleep
        self._clock = clock

        self._state = ManagerState()
        self._versions = {_USER: 0, _PROFILE: 0}
        self._watchers: Channel[ManagerState] = Channel(WATCH_BUFFER_SIZE)

        self._events: Subscription[AuthEvent] | None = None
        self._listener: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self._started = False
        self._closed = False

    # --- State readers ---

    @property
    def state(self) -> ManagerState:
        return self._state

    @property
    def user(self) -> User | None:
        return self._state.user

    @property
    def profile(self) -> Profile | None:
        return self._state.profile

    @property
    def loading(self) -> bool:
        return self._state.loading

    @property
    def error(self) -> str | None:
        return self._state.error

    @property
    def initialized(self) -> bool:
        return self._state.initialized

    @property
    def phase(self) -> StatePhase:
        return self._state.phase

    @property
    def closed(self) -> bool:
        return self._closed

    def watch(self) -> Subscription[ManagerState]:
        """Stream of every committed state snapshot, in commit order.

        A reader that lags more than WATCH_BUFFER_SIZE snapshots behind loses
        the oldest ones; the newest state is always delivered.
        """
        if self._closed:
            raise ManagerClosedError()
        return self._watchers.subscribe()

    # --- Lifecycle ---

    async def start(self) -> None:
        """Subscribe to auth events, then resolve the initial session."""
        if self._closed:
            raise ManagerClosedError()
        if self._started:
            return
        self._started = True
        self._events = self._auth.subscribe()
        self._listener = asyncio.create_task(
            self._listen(self._events), name="kaamconnect-auth-events"
        )
        await self.initialize()

    async def close(self) -> None:
        """Tear down: stop listening and cancel in-flight operations."""
        if self._closed:
            return
        self._closed = True

        if self._events is not None:
            self._events.close()

        current = asyncio.current_task()
        pending = [
            task
            for task in (*self._tasks, self._listener)
            if task is not None and task is not current and not task.done()
        ]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        self._watchers.close()
        logger.debug("session_manager_closed", cancelled_tasks=len(pending))

    async def __aenter__(self) -> "SessionManager":
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    # --- Operations ---

    async def initialize(self) -> None:
        """Resolve the current session and its profile.

        A no-op once initialized without error; re-runs after a failed attempt.
        """
        await self._run(self._initialize())

    async def fetch_profile(self, user_id: UUID, attempt: int = 0) -> Profile | None:
        """Fetch the profile row for ``user_id`` without touching state.

        Returns None when no row exists. Transient failures are retried with
        exponential backoff; anything else raises ProfileFetchError at once.
        """
        try:
            return await self._profiles.get(user_id)
        except RemoteError as exc:
            if exc.is_not_found:
                logger.info("profile_not_found", user_id=str(user_id))
                return None
            if exc.is_transient and attempt < self._max_retries:
                delay = self._retry_base_delay * 2**attempt
                logger.warning(
                    "profile_fetch_retry",
                    user_id=str(user_id),
                    attempt=attempt + 1,
                    delay_seconds=delay,
                    error=exc.message,
                )
                await self._sleep(delay)
                return await self.fetch_profile(user_id, attempt + 1)
            logger.error(
                "profile_fetch_failed",
                user_id=str(user_id),
                attempts=attempt + 1,
                error=exc.message,
                code=exc.code,
            )
            raise ProfileFetchError(exc.message, exc.code) from exc
        except MalformedRowError as exc:
            logger.error("profile_row_malformed", user_id=str(user_id), details=exc.details)
            raise ProfileFetchError(exc.message) from exc
        except Exception as exc:
            raise ProfileFetchError(*_reason(exc)) from exc

    async def refresh_profile(self) -> Profile | None:
        """Re-fetch the current user's profile into state."""
        return await self._run(self._refresh_profile())

    async def update_profile(self, **changes: Any) -> Profile:
        """Optimistically apply ``changes`` and persist them.

        Returns the stored row. On failure the previous profile is restored
        and ProfileUpdateError is raised.
        """
        return await self._run(self._update_profile(changes))

    async def create_profile(
        self,
        full_name: str,
        mobile_number: str,
        village: str,
        role: Role | str,
        profile_picture_url: str | None = None,
    ) -> Profile:
        """Onboarding: insert the first profile row for the signed-in user."""
        fields = {
            "full_name": full_name,
            "mobile_number": mobile_number,
            "village": village,
            "role": role,
            "profile_picture_url": profile_picture_url,
        }
        return await self._run(self._create_profile(fields))

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        """Sign in; the state change arrives as a SIGNED_IN event."""
        return await self._run(
            self._authenticate(
                "sign_in", lambda: self._auth.sign_in_with_password(email, password)
            )
        )

    async def sign_up(
        self, email: str, password: str, metadata: dict[str, Any] | None = None
    ) -> Session | None:
        """Register; returns None when the server wants email confirmation first."""
        return await self._run(
            self._authenticate("sign_up", lambda: self._auth.sign_up(email, password, metadata))
        )

    async def sign_out(self) -> None:
        """Request sign-out; the state change arrives as a SIGNED_OUT event."""
        await self._run(self._sign_out())

    async def retry(self) -> None:
        """Retry whatever failed last: initialization or the profile load."""
        state = self._state
        if not state.initialized or (state.user is None and state.error is not None):
            await self.initialize()
        elif state.user is not None and state.profile is None:
            await self.refresh_profile()

    def clear_error(self) -> None:
        if self._closed:
            raise ManagerClosedError()
        self._write(error=None, error_code=None)

    async def handle_auth_event(
        self, event: AuthChangeEvent | str, session: Session | None
    ) -> None:
        """Reconcile one auth notification into state. Never raises.

        Runs as a tracked task, so teardown cancels it like any operation.
        """
        if self._closed:
            return
        try:
            await self._run(self._handle_auth_event(event, session))
        except asyncio.CancelledError:
            if not self._closed:
                raise

    # --- Operation bodies ---

    async def _handle_auth_event(
        self, event: AuthChangeEvent | str, session: Session | None
    ) -> None:
        try:
            kind: AuthChangeEvent | None = AuthChangeEvent(event)
        except ValueError:
            kind = None
        user = session.user if session is not None else None
        logger.info(
            "auth_event_received",
            auth_event=str(event),
            user_id=str(user.id) if user else None,
        )

        self._write(error=None, error_code=None)
        changes: dict[str, Any] = {"loading": False, "initialized": True}

        if kind is AuthChangeEvent.SIGNED_OUT or user is None:
            changes.update(user=None, profile=None)
        elif kind is AuthChangeEvent.USER_UPDATED:
            # Credential or metadata change; the profile row is untouched
            changes["user"] = user
        else:
            if kind not in _FETCHING_EVENTS:
                logger.debug("auth_event_treated_as_sign_in", auth_event=str(event))
            changes["user"] = user
            try:
                changes["profile"] = await self.fetch_profile(user.id)
            except ProfileFetchError as exc:
                changes.update(profile=None, error=exc.message, error_code=self._code_of(exc))

        self._write(**changes)

    async def _initialize(self) -> None:
        if self._state.initialized and self._state.error is None:
            return

        self._write(loading=True, error=None, error_code=None)
        expected = self._snapshot()

        try:
            session = await self._auth.get_session()
        except Exception as exc:
            failure = SessionRetrievalError(*_reason(exc))
            logger.error("session_retrieval_failed", error=failure.message)
            changes: dict[str, Any] = {
                "loading": False,
                "initialized": True,
                "error": failure.message,
                "error_code": self._code_of(failure),
            }
            if self._is_current(expected):
                changes.update(user=None, profile=None)
            self._write(**changes)
            return

        user = session.user if session is not None else None
        profile: Profile | None = None
        failure_message: str | None = None
        failure_code: str | None = None
        if user is not None:
            try:
                profile = await self.fetch_profile(user.id)
            except ProfileFetchError as exc:
                # The session is still adopted; only the profile is unknown
                logger.warning(
                    "initial_profile_fetch_failed", user_id=str(user.id), error=exc.message
                )
                failure_message, failure_code = exc.message, self._code_of(exc)

        changes = {"loading": False, "initialized": True}
        if self._is_current(expected):
            changes.update(user=user, profile=profile)
        else:
            logger.info("initial_session_superseded_by_event")
        if failure_message is not None:
            changes.update(error=failure_message, error_code=failure_code)
        self._write(**changes)
        logger.info(
            "session_initialized",
            phase=str(self._state.phase),
            user_id=str(user.id) if user else None,
        )

    async def _refresh_profile(self) -> Profile | None:
        user = self._state.user
        if user is None:
            raise NoUserLoggedInError()

        self._write(error=None, error_code=None)
        expected = self._snapshot()
        try:
            profile = await self.fetch_profile(user.id)
        except ProfileFetchError as exc:
            self._record_error(exc)
            raise

        if self._is_current(expected):
            self._write(profile=profile)
        else:
            logger.info("profile_refresh_discarded", user_id=str(user.id))
        return profile

    async def _update_profile(self, raw_changes: dict[str, Any]) -> Profile:
        user, previous = self._state.user, self._state.profile
        if user is None:
            self._fail_precondition(NoUserLoggedInError())
        if previous is None:
            self._fail_precondition(NoProfileToUpdateError())

        try:
            changes = ProfileUpdate.model_validate(raw_changes).changes()
        except ValidationError as exc:
            raise InvalidProfileDataError(
                "Invalid profile changes", details=exc.errors(include_url=False)
            ) from exc
        if not changes:
            raise InvalidProfileDataError("No profile changes given")

        updated_at = self._clock()
        attempted = previous.merged(changes, updated_at)
        self._write(profile=attempted, error=None, error_code=None)
        pending = OptimisticUpdate(
            previous=previous, attempted=attempted, version=self._versions[_PROFILE]
        )

        try:
            stored = await self._profiles.update(user.id, changes, updated_at)
        except Exception as exc:
            failure = ProfileUpdateError(*_reason(exc))
            if self._versions[_PROFILE] == pending.version:
                self._write(
                    profile=pending.rollback(),
                    error=failure.message,
                    error_code=self._code_of(failure),
                )
                logger.warning("profile_update_rolled_back", user_id=str(user.id))
            else:
                # Someone else wrote the profile meanwhile; their value stands
                self._record_error(failure)
                logger.warning("profile_rollback_superseded", user_id=str(user.id))
            logger.error(
                "profile_update_failed", user_id=str(user.id), error=failure.message
            )
            raise failure from exc

        if self._versions[_PROFILE] == pending.version:
            self._write(profile=pending.commit(stored))
        else:
            logger.info("profile_update_superseded", user_id=str(user.id))
        return stored

    async def _create_profile(self, fields: dict[str, Any]) -> Profile:
        user = self._state.user
        if user is None:
            self._fail_precondition(NoUserLoggedInError())
        if self._state.profile is not None:
            self._fail_precondition(DuplicateProfileError(str(user.id)))

        try:
            draft = ProfileCreate.model_validate({**fields, "id": user.id}).to_draft()
        except ValidationError as exc:
            raise InvalidProfileDataError(
                "Invalid profile details", details=exc.errors(include_url=False)
            ) from exc

        self._write(error=None, error_code=None)
        expected = self._snapshot()
        try:
            created = await self._profiles.create(draft)
        except RemoteError as exc:
            failure: AppException
            if exc.is_duplicate:
                failure = DuplicateProfileError(str(user.id), exc.code)
            else:
                failure = ProfileCreateError(exc.message, exc.code)
            self._record_error(failure)
            logger.error("profile_create_failed", user_id=str(user.id), error=failure.message)
            raise failure from exc
        except Exception as exc:
            failure = ProfileCreateError(*_reason(exc))
            self._record_error(failure)
            raise failure from exc

        if self._is_current(expected):
            self._write(profile=created)
        logger.info("profile_created", user_id=str(user.id), role=str(created.role))
        return created

    async def _authenticate(self, action: str, call: Callable[[], Awaitable[T]]) -> T:
        self._write(error=None, error_code=None)
        try:
            return await call()
        except Exception as exc:
            failure = AuthenticationError(*_reason(exc))
            self._record_error(failure)
            logger.warning("authentication_failed", action=action, error=failure.message)
            raise failure from exc

    async def _sign_out(self) -> None:
        self._write(error=None, error_code=None)
        try:
            await self._auth.sign_out()
        except Exception as exc:
            failure = SignOutError(*_reason(exc))
            self._record_error(failure)
            logger.error("sign_out_failed", error=failure.message)
            raise failure from exc

    async def _listen(self, events: Subscription[AuthEvent]) -> None:
        async for item in events:
            try:
                await self._handle_auth_event(item.event, item.session)
            except Exception as exc:
                logger.exception("auth_event_handler_failed", auth_event=str(item.event))
                message, code = _reason(exc)
                self._write(loading=False, initialized=True, error=message, error_code=code)

    # --- State plumbing ---

    async def _run(self, coro: Coroutine[Any, Any, T]) -> T:
        """Run an operation as a task that teardown can cancel."""
        if self._closed:
            coro.close()
            raise ManagerClosedError()
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return await task

    def _snapshot(self) -> dict[str, int]:
        return dict(self._versions)

    def _is_current(self, expected: dict[str, int]) -> bool:
        return all(self._versions[name] == version for name, version in expected.items())

    def _write(self, **changes: Any) -> None:
        """Single funnel for state mutation: versions, invariants, watchers."""
        if self._closed:
            return
        for name in (_USER, _PROFILE):
            if name in changes:
                self._versions[name] += 1

        state = replace(self._state, **changes)
        profile, user = state.profile, state.user
        if profile is not None and (user is None or profile.id != user.id):
            state = replace(state, profile=None)
            if _PROFILE not in changes:
                self._versions[_PROFILE] += 1

        self._state = state
        self._watchers.publish(state)

    def _record_error(self, exc: AppException) -> None:
        self._write(error=exc.message, error_code=self._code_of(exc))

    def _fail_precondition(self, exc: AppException) -> NoReturn:
        self._record_error(exc)
        raise exc

    @staticmethod
    def _code_of(exc: AppException) -> str:
        return exc.remote_code or exc.error_code.value
