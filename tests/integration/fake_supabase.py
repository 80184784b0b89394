"""In-process stand-in for the Supabase auth and REST endpoints.

Only what the client talks to is implemented: GoTrue password/refresh
grants, sign-up, logout and the user endpoint, plus single-object
PostgREST access to ``profiles`` with owner-only write policies.
"""

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from jose import jwt

from tests.conftest import TEST_ANON_KEY, TEST_JWT_SECRET

SINGLE_OBJECT = "application/vnd.pgrst.object+json"
PROFILE_COLUMNS = ("full_name", "mobile_number", "village", "role", "profile_picture_url")


@dataclass
class Fault:
    method: str
    path: str
    status: int
    body: dict[str, Any]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _auth_error(status: int, code: str, message: str) -> JSONResponse:
    return JSONResponse({"code": status, "error_code": code, "msg": message}, status_code=status)


def _rest_error(status: int, code: str, message: str, details: str | None = None) -> JSONResponse:
    return JSONResponse(
        {"code": code, "message": message, "details": details, "hint": None},
        status_code=status,
    )


def _no_rows() -> JSONResponse:
    return _rest_error(
        406,
        "PGRST116",
        "JSON object requested, multiple (or no) rows returned",
        "The result contains 0 rows",
    )


class FakeSupabase:
    """Holds users, sessions and profile rows; ``app`` serves them."""

    def __init__(self, token_ttl: int = 3600) -> None:
        self.token_ttl = token_ttl
        self.confirm_email = False
        self.users: dict[str, dict[str, Any]] = {}
        self.profiles: dict[str, dict[str, Any]] = {}
        self.access_tokens: dict[str, str] = {}
        self.refresh_tokens: dict[str, str] = {}
        self.faults: list[Fault] = []
        self.requests: list[tuple[str, str]] = []
        self.app = self._build_app()

    # --- Test helpers ---

    def add_user(self, email: str, password: str, **metadata: Any) -> str:
        user_id = str(uuid4())
        self.users[email] = {
            "id": user_id,
            "email": email,
            "password": password,
            "user_metadata": dict(metadata),
            "created_at": _now().isoformat(),
        }
        return user_id

    def add_profile(self, user_id: str, **fields: Any) -> dict[str, Any]:
        stamp = _now().isoformat()
        row = {
            "id": user_id,
            "full_name": "Ramesh Kumar",
            "mobile_number": "9876543210",
            "village": "Sundarpur",
            "role": "worker",
            "profile_picture_url": None,
            "rating": 4.5,
            "total_ratings": 10,
            "created_at": stamp,
            "updated_at": stamp,
        }
        row.update(fields)
        self.profiles[user_id] = row
        return row

    def issue_session(self, email: str, expires_in: int | None = None) -> dict[str, Any]:
        """Session body for ``email`` as the token endpoint would return it."""
        user = self.users[email]
        ttl = self.token_ttl if expires_in is None else expires_in
        expires_at = _now() + timedelta(seconds=ttl)
        access_token = jwt.encode(
            {
                "sub": user["id"],
                "email": email,
                "role": "authenticated",
                "aud": "authenticated",
                "exp": int(expires_at.timestamp()),
                "jti": secrets.token_hex(8),
            },
            TEST_JWT_SECRET,
            algorithm="HS256",
        )
        refresh_token = secrets.token_urlsafe(16)
        self.access_tokens[access_token] = user["id"]
        self.refresh_tokens[refresh_token] = user["id"]
        return {
            "access_token": access_token,
            "token_type": "bearer",
            "expires_in": ttl,
            "expires_at": int(expires_at.timestamp()),
            "refresh_token": refresh_token,
            "user": self._public_user(user),
        }

    def fail_next(self, method: str, path: str, status: int, body: dict[str, Any]) -> None:
        """Answer the next matching request with an error instead."""
        self.faults.append(Fault(method, path, status, body))

    def count(self, method: str, path: str) -> int:
        return self.requests.count((method, path))

    # --- Internals ---

    @staticmethod
    def _public_user(user: dict[str, Any]) -> dict[str, Any]:
        return {
            "id": user["id"],
            "aud": "authenticated",
            "role": "authenticated",
            "email": user["email"],
            "phone": "",
            "app_metadata": {"provider": "email", "providers": ["email"]},
            "user_metadata": user["user_metadata"],
            "created_at": user["created_at"],
        }

    def _user_by_id(self, user_id: str) -> dict[str, Any] | None:
        return next((u for u in self.users.values() if u["id"] == user_id), None)

    def _bearer(self, request: Request) -> str | None:
        header = request.headers.get("authorization", "")
        return header[7:] if header.lower().startswith("bearer ") else None

    def _revoke(self, user_id: str) -> None:
        for store in (self.access_tokens, self.refresh_tokens):
            for token in [t for t, owner in store.items() if owner == user_id]:
                del store[token]

    def _build_app(self) -> FastAPI:
        app = FastAPI()

        @app.middleware("http")
        async def gate(request: Request, call_next):
            self.requests.append((request.method, request.url.path))
            if request.headers.get("apikey") != TEST_ANON_KEY:
                return JSONResponse({"message": "Invalid API key"}, status_code=401)
            for fault in self.faults:
                if fault.method == request.method and fault.path == request.url.path:
                    self.faults.remove(fault)
                    return JSONResponse(fault.body, status_code=fault.status)
            return await call_next(request)

        # --- GoTrue ---

        @app.post("/auth/v1/token")
        async def token(request: Request) -> Response:
            grant = request.query_params.get("grant_type")
            body = await request.json()
            if grant == "password":
                user = self.users.get(body.get("email"))
                if user is None or user["password"] != body.get("password"):
                    return _auth_error(400, "invalid_credentials", "Invalid login credentials")
                return JSONResponse(self.issue_session(user["email"]))
            if grant == "refresh_token":
                user_id = self.refresh_tokens.pop(body.get("refresh_token", ""), None)
                user = self._user_by_id(user_id) if user_id else None
                if user is None:
                    return _auth_error(
                        400,
                        "refresh_token_not_found",
                        "Invalid Refresh Token: Refresh Token Not Found",
                    )
                return JSONResponse(self.issue_session(user["email"]))
            return _auth_error(400, "unsupported_grant_type", "Unsupported grant type")

        @app.post("/auth/v1/signup")
        async def signup(request: Request) -> Response:
            body = await request.json()
            email = body.get("email")
            if email in self.users:
                return _auth_error(422, "user_already_exists", "User already registered")
            self.add_user(email, body.get("password"), **(body.get("data") or {}))
            if self.confirm_email:
                return JSONResponse(self._public_user(self.users[email]))
            return JSONResponse(self.issue_session(email))

        @app.post("/auth/v1/logout")
        async def logout(request: Request) -> Response:
            user_id = self.access_tokens.get(self._bearer(request) or "")
            if user_id is None:
                return _auth_error(403, "session_not_found", "Session from session_id claim in JWT does not exist")
            self._revoke(user_id)
            return Response(status_code=204)

        @app.get("/auth/v1/user")
        async def get_user(request: Request) -> Response:
            user = self._user_by_id(self.access_tokens.get(self._bearer(request) or "", ""))
            if user is None:
                return _auth_error(401, "bad_jwt", "invalid JWT")
            return JSONResponse(self._public_user(user))

        @app.put("/auth/v1/user")
        async def update_user(request: Request) -> Response:
            user = self._user_by_id(self.access_tokens.get(self._bearer(request) or "", ""))
            if user is None:
                return _auth_error(401, "bad_jwt", "invalid JWT")
            body = await request.json()
            user["user_metadata"].update(body.get("data") or {})
            if body.get("password"):
                user["password"] = body["password"]
            return JSONResponse(self._public_user(user))

        # --- PostgREST ---

        def caller(request: Request) -> tuple[str | None, Response | None]:
            token = self._bearer(request)
            if token is None or token == TEST_ANON_KEY:
                return None, None
            user_id = self.access_tokens.get(token)
            if user_id is None:
                return None, _rest_error(401, "PGRST301", "JWT expired")
            return user_id, None

        def single(row: dict[str, Any], request: Request, status: int = 200) -> Response:
            if request.headers.get("accept") == SINGLE_OBJECT:
                return JSONResponse(row, status_code=status)
            return JSONResponse([row], status_code=status)

        def target(request: Request) -> str:
            return request.query_params.get("id", "").removeprefix("eq.")

        @app.get("/rest/v1/profiles")
        async def select_profile(request: Request) -> Response:
            user_id, denied = caller(request)
            if denied:
                return denied
            row = self.profiles.get(target(request))
            # Rows are only visible to signed-in users
            if row is None or user_id is None:
                return _no_rows()
            return single(row, request)

        @app.patch("/rest/v1/profiles")
        async def update_profile(request: Request) -> Response:
            user_id, denied = caller(request)
            if denied:
                return denied
            row = self.profiles.get(target(request))
            if row is None or row["id"] != user_id:
                return _no_rows()
            body = await request.json()
            row.update({k: v for k, v in body.items() if k in (*PROFILE_COLUMNS, "updated_at")})
            return single(row, request)

        @app.post("/rest/v1/profiles")
        async def insert_profile(request: Request) -> Response:
            user_id, denied = caller(request)
            if denied:
                return denied
            body = await request.json()
            if body.get("id") != user_id:
                return _rest_error(
                    403,
                    "42501",
                    'new row violates row-level security policy for table "profiles"',
                )
            if body["id"] in self.profiles:
                return _rest_error(
                    409,
                    "23505",
                    'duplicate key value violates unique constraint "profiles_pkey"',
                    f"Key (id)=({body['id']}) already exists.",
                )
            row = self.add_profile(body["id"], **{k: body[k] for k in PROFILE_COLUMNS if k in body})
            row.update(rating=body.get("rating", 0), total_ratings=body.get("total_ratings", 0))
            return single(row, request, status=201)

        return app
