"""GoTrue (Supabase Auth) client over httpx."""

import asyncio
from dataclasses import replace
from datetime import timedelta
from typing import Any

import httpx
import structlog

from kaamconnect.core.channel import Channel, Subscription
from kaamconnect.core.config import Settings
from kaamconnect.core.exceptions import AuthApiError, MalformedRowError
from kaamconnect.domain.entities.session import AuthChangeEvent, AuthEvent, Session, User
from kaamconnect.infrastructure.auth.claims import token_subject
from kaamconnect.infrastructure.storage.base import StorageAdapter
from kaamconnect.infrastructure.supabase.schemas import (
    SessionPayload,
    UserPayload,
    parse_record,
)
from kaamconnect.infrastructure.supabase.transport import send

logger = structlog.get_logger()

# Logout answers meaning the server-side session is already gone
_SESSION_GONE_STATUSES = frozenset({401, 403, 404})


class GoTrueClient:
    """Auth gateway backed by the Supabase Auth REST API.

    Session material lives in memory and, when ``auth_persist_session`` is
    on, in the storage adapter. Every state change is announced on the event
    channel in the order it happened.
    """

    def __init__(
        self,
        settings: Settings,
        http: httpx.AsyncClient,
        storage: StorageAdapter,
    ) -> None:
        self._url = settings.supabase_auth_url
        self._api_key = settings.supabase_anon_key
        self._http = http
        self._storage = storage
        self._storage_key = settings.session_storage_key
        self._persist = settings.auth_persist_session
        self._auto_refresh = settings.auth_auto_refresh_token
        self._refresh_margin = timedelta(seconds=settings.auth_refresh_margin_seconds)

        self._session: Session | None = None
        self._loaded = False
        self._refresh_lock = asyncio.Lock()
        self._events: Channel[AuthEvent] = Channel()

    # --- Events ---

    def subscribe(self) -> Subscription[AuthEvent]:
        return self._events.subscribe()

    def close(self) -> None:
        self._events.close()

    def _emit(self, event: AuthChangeEvent, session: Session | None) -> None:
        logger.info(
            "auth_state_changed",
            auth_event=str(event),
            user_id=str(session.user.id) if session else None,
        )
        self._events.publish(AuthEvent(event=event, session=session))

    # --- Session ---

    async def get_session(self) -> Session | None:
        """Current session, refreshed first if it is (about to be) expired."""
        session = await self._current()
        if session is None or not session.is_expired(self._refresh_margin):
            return session

        if not self._auto_refresh:
            return None if session.is_expired() else session

        try:
            return await self.refresh_session(stale=session)
        except AuthApiError as exc:
            if exc.is_transient:
                raise
            logger.warning("stored_session_refresh_rejected", error=exc.message)
            await self._clear()
            self._emit(AuthChangeEvent.SIGNED_OUT, None)
            return None

    async def access_token(self) -> str | None:
        session = await self.get_session()
        return session.access_token if session else None

    async def refresh_session(self, stale: Session | None = None) -> Session:
        """Exchange the refresh token for a new session.

        With ``stale``, a caller that waited on another refresh gets the
        session that refresh produced instead of refreshing again.
        """
        async with self._refresh_lock:
            current = self._session
            if current is None:
                raise AuthApiError("Auth session missing", code="session_not_found")
            if (
                stale is not None
                and current is not stale
                and not current.is_expired(self._refresh_margin)
            ):
                return current
            response = await send(
                self._http,
                "POST",
                f"{self._url}/token",
                auth=True,
                params={"grant_type": "refresh_token"},
                json={"refresh_token": current.refresh_token},
                headers=self._headers(),
            )
            session = parse_record(SessionPayload, response.content, "session").to_entity()
            await self._save(session)
        self._emit(AuthChangeEvent.TOKEN_REFRESHED, session)
        return session

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        response = await send(
            self._http,
            "POST",
            f"{self._url}/token",
            auth=True,
            params={"grant_type": "password"},
            json={"email": email, "password": password},
            headers=self._headers(),
        )
        session = parse_record(SessionPayload, response.content, "session").to_entity()
        await self._save(session)
        self._emit(AuthChangeEvent.SIGNED_IN, session)
        return session

    async def sign_up(
        self, email: str, password: str, metadata: dict[str, Any] | None = None
    ) -> Session | None:
        response = await send(
            self._http,
            "POST",
            f"{self._url}/signup",
            auth=True,
            json={"email": email, "password": password, "data": metadata or {}},
            headers=self._headers(),
        )
        try:
            body = response.json()
        except ValueError as exc:
            raise MalformedRowError("sign-up response") from exc
        if not isinstance(body, dict) or "access_token" not in body:
            # Email confirmation pending: the server returns only the user
            user = parse_record(UserPayload, body, "user").to_entity()
            logger.info("sign_up_confirmation_required", user_id=str(user.id))
            return None

        session = parse_record(SessionPayload, body, "session").to_entity()
        await self._save(session)
        self._emit(AuthChangeEvent.SIGNED_IN, session)
        return session

    async def sign_out(self) -> None:
        session = await self._current()
        if session is not None:
            try:
                await send(
                    self._http,
                    "POST",
                    f"{self._url}/logout",
                    auth=True,
                    headers=self._headers(session.access_token),
                )
            except AuthApiError as exc:
                if exc.status not in _SESSION_GONE_STATUSES:
                    raise
                logger.info("sign_out_session_already_gone", status=exc.status)
        await self._clear()
        self._emit(AuthChangeEvent.SIGNED_OUT, None)

    async def get_user(self) -> User | None:
        """Fetch the user for the current session from the server."""
        session = await self.get_session()
        if session is None:
            return None
        response = await send(
            self._http,
            "GET",
            f"{self._url}/user",
            auth=True,
            headers=self._headers(session.access_token),
        )
        return parse_record(UserPayload, response.content, "user").to_entity()

    async def update_user(self, attributes: dict[str, Any]) -> User:
        """Change email, phone, password or metadata of the signed-in user."""
        session = await self.get_session()
        if session is None:
            raise AuthApiError("Auth session missing", code="session_not_found")
        response = await send(
            self._http,
            "PUT",
            f"{self._url}/user",
            auth=True,
            json=attributes,
            headers=self._headers(session.access_token),
        )
        user = parse_record(UserPayload, response.content, "user").to_entity()
        updated = replace(session, user=user)
        await self._save(updated)
        self._emit(AuthChangeEvent.USER_UPDATED, updated)
        return user

    # --- Internals ---

    def _headers(self, access_token: str | None = None) -> dict[str, str]:
        headers = {"apikey": self._api_key}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    async def _current(self) -> Session | None:
        if not self._loaded:
            self._session = await self._load()
            self._loaded = True
        return self._session

    async def _load(self) -> Session | None:
        if not self._persist:
            return None
        raw = await self._storage.get_item(self._storage_key)
        if raw is None:
            return None
        try:
            session = parse_record(SessionPayload, raw, "stored session").to_entity()
        except MalformedRowError:
            logger.warning("stored_session_discarded", key=self._storage_key)
            await self._storage.remove_item(self._storage_key)
            return None

        subject = token_subject(session.access_token)
        if subject is not None and subject != str(session.user.id):
            logger.warning("stored_session_subject_mismatch", key=self._storage_key)
            await self._storage.remove_item(self._storage_key)
            return None
        return session

    async def _save(self, session: Session) -> None:
        self._session = session
        self._loaded = True
        if self._persist:
            payload = SessionPayload.from_entity(session)
            await self._storage.set_item(self._storage_key, payload.model_dump_json())

    async def _clear(self) -> None:
        self._session = None
        self._loaded = True
        if self._persist:
            await self._storage.remove_item(self._storage_key)
