"""Custom exceptions and error codes."""

from enum import StrEnum
from typing import Any

# PostgREST / Postgres codes the client reacts to
NOT_FOUND_CODE = "PGRST116"
DUPLICATE_KEY_CODE = "23505"
NETWORK_ERROR_CODE = "NETWORK_ERROR"
TIMEOUT_CODE = "TIMEOUT"

_TRANSIENT_CODES = frozenset({NETWORK_ERROR_CODE, TIMEOUT_CODE})
_TRANSIENT_MARKERS = ("network", "timeout")


class ErrorCode(StrEnum):
    """Standardized error codes for the client."""

    # Precondition errors (caller misuse)
    NO_USER_LOGGED_IN = "NO_USER_LOGGED_IN"
    NO_PROFILE_TO_UPDATE = "NO_PROFILE_TO_UPDATE"
    INVALID_PROFILE_DATA = "INVALID_PROFILE_DATA"
    MANAGER_CLOSED = "MANAGER_CLOSED"

    # Remote errors
    REMOTE_ERROR = "REMOTE_ERROR"
    AUTH_API_ERROR = "AUTH_API_ERROR"
    SESSION_RETRIEVAL_FAILED = "SESSION_RETRIEVAL_FAILED"
    PROFILE_FETCH_FAILED = "PROFILE_FETCH_FAILED"
    PROFILE_UPDATE_FAILED = "PROFILE_UPDATE_FAILED"
    PROFILE_CREATE_FAILED = "PROFILE_CREATE_FAILED"
    SIGN_OUT_FAILED = "SIGN_OUT_FAILED"
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"

    # Conflict errors
    DUPLICATE_PROFILE = "DUPLICATE_PROFILE"

    # Wire format errors
    MALFORMED_ROW = "MALFORMED_ROW"


class AppException(Exception):
    """Base client exception."""

    def __init__(
        self,
        error_code: ErrorCode,
        message: str,
        details: Any | None = None,
        remote_code: str | None = None,
    ) -> None:
        self.error_code = error_code
        self.message = message
        self.details = details
        self.remote_code = remote_code
        super().__init__(self.message)


# --- Precondition errors ---


class NoUserLoggedInError(AppException):
    """Operation needs a signed-in user."""

    def __init__(self) -> None:
        super().__init__(
            error_code=ErrorCode.NO_USER_LOGGED_IN,
            message="No user logged in",
        )


class NoProfileToUpdateError(AppException):
    """Update requested before a profile was loaded."""

    def __init__(self) -> None:
        super().__init__(
            error_code=ErrorCode.NO_PROFILE_TO_UPDATE,
            message="No profile found to update",
        )


class InvalidProfileDataError(AppException):
    """Profile fields failed validation."""

    def __init__(self, message: str, details: Any | None = None) -> None:
        super().__init__(
            error_code=ErrorCode.INVALID_PROFILE_DATA,
            message=message,
            details=details,
        )


class ManagerClosedError(AppException):
    """Operation attempted after teardown."""

    def __init__(self) -> None:
        super().__init__(
            error_code=ErrorCode.MANAGER_CLOSED,
            message="Session manager is closed",
        )


# --- Remote errors ---


class RemoteError(AppException):
    """Error reported by the remote data service or its transport."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: Any | None = None,
        hint: str | None = None,
        status: int | None = None,
        error_code: ErrorCode = ErrorCode.REMOTE_ERROR,
    ) -> None:
        super().__init__(
            error_code=error_code,
            message=message,
            details=details,
            remote_code=code,
        )
        self.code = code
        self.hint = hint
        self.status = status

    @property
    def is_not_found(self) -> bool:
        """A single-row query matched no row."""
        return self.code == NOT_FOUND_CODE

    @property
    def is_duplicate(self) -> bool:
        """An insert hit a unique constraint."""
        return self.code == DUPLICATE_KEY_CODE

    @property
    def is_transient(self) -> bool:
        """Network or timeout class failure, eligible for retry."""
        if self.code in _TRANSIENT_CODES:
            return True
        lowered = self.message.lower()
        return any(marker in lowered for marker in _TRANSIENT_MARKERS)


class AuthApiError(RemoteError):
    """Error reported by the auth service."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        status: int | None = None,
    ) -> None:
        super().__init__(
            message=message,
            code=code,
            status=status,
            error_code=ErrorCode.AUTH_API_ERROR,
        )


class MalformedRowError(AppException):
    """A wire response did not match the expected record shape."""

    def __init__(self, record: str, details: Any | None = None) -> None:
        super().__init__(
            error_code=ErrorCode.MALFORMED_ROW,
            message=f"Malformed {record} received from remote",
            details=details,
        )


class SessionRetrievalError(AppException):
    """Current session could not be read."""

    def __init__(self, reason: str, remote_code: str | None = None) -> None:
        super().__init__(
            error_code=ErrorCode.SESSION_RETRIEVAL_FAILED,
            message=f"Session retrieval failed: {reason}",
            remote_code=remote_code,
        )


class ProfileFetchError(AppException):
    """Profile could not be fetched (after retries for transient failures)."""

    def __init__(self, reason: str, remote_code: str | None = None) -> None:
        super().__init__(
            error_code=ErrorCode.PROFILE_FETCH_FAILED,
            message=f"Profile fetch failed: {reason}",
            remote_code=remote_code,
        )


class ProfileUpdateError(AppException):
    """Remote profile update failed; local state was rolled back."""

    def __init__(self, reason: str, remote_code: str | None = None) -> None:
        super().__init__(
            error_code=ErrorCode.PROFILE_UPDATE_FAILED,
            message=f"Profile update failed: {reason}",
            remote_code=remote_code,
        )


class ProfileCreateError(AppException):
    """Onboarding insert failed."""

    def __init__(self, reason: str, remote_code: str | None = None) -> None:
        super().__init__(
            error_code=ErrorCode.PROFILE_CREATE_FAILED,
            message=f"Profile creation failed: {reason}",
            remote_code=remote_code,
        )


class DuplicateProfileError(AppException):
    """A profile already exists for this user."""

    def __init__(self, user_id: str, remote_code: str | None = None) -> None:
        super().__init__(
            error_code=ErrorCode.DUPLICATE_PROFILE,
            message="A profile with this information already exists",
            details={"user_id": user_id},
            remote_code=remote_code,
        )


class SignOutError(AppException):
    """Remote sign-out failed; the session is still active."""

    def __init__(self, reason: str, remote_code: str | None = None) -> None:
        super().__init__(
            error_code=ErrorCode.SIGN_OUT_FAILED,
            message=f"Sign out failed: {reason}",
            remote_code=remote_code,
        )


class AuthenticationError(AppException):
    """Sign-in or sign-up was rejected."""

    def __init__(self, reason: str, remote_code: str | None = None) -> None:
        super().__init__(
            error_code=ErrorCode.AUTHENTICATION_FAILED,
            message=f"Authentication error: {reason}",
            remote_code=remote_code,
        )
