"""PostgREST table access for single-row operations."""

from typing import Any, Protocol

import httpx

from kaamconnect.core.exceptions import MalformedRowError
from kaamconnect.infrastructure.supabase.transport import send

# Ask for exactly one object; zero rows answer 406 with code PGRST116
SINGLE_OBJECT = "application/vnd.pgrst.object+json"
RETURN_REPRESENTATION = "return=representation"


class AccessTokenSource(Protocol):
    async def access_token(self) -> str | None: ...


class PostgrestTable:
    """Filtered single-row create/read/update on one table.

    Requests carry the signed-in user's token so row-level security
    policies apply; without a session the anon key is used.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        rest_url: str,
        name: str,
        api_key: str,
        tokens: AccessTokenSource | None = None,
    ) -> None:
        self._http = http
        self._url = f"{rest_url}/{name}"
        self._name = name
        self._api_key = api_key
        self._tokens = tokens

    @property
    def name(self) -> str:
        return self._name

    async def select_single(self, column: str, value: Any, columns: str = "*") -> dict[str, Any]:
        response = await send(
            self._http,
            "GET",
            self._url,
            params={"select": columns, column: f"eq.{value}"},
            headers=await self._headers(),
        )
        return self._single(response)

    async def update_single(
        self, column: str, value: Any, values: dict[str, Any]
    ) -> dict[str, Any]:
        response = await send(
            self._http,
            "PATCH",
            self._url,
            params={"select": "*", column: f"eq.{value}"},
            json=values,
            headers=await self._headers(prefer=RETURN_REPRESENTATION),
        )
        return self._single(response)

    async def insert_single(self, values: dict[str, Any]) -> dict[str, Any]:
        response = await send(
            self._http,
            "POST",
            self._url,
            params={"select": "*"},
            json=values,
            headers=await self._headers(prefer=RETURN_REPRESENTATION),
        )
        return self._single(response)

    async def _headers(self, prefer: str | None = None) -> dict[str, str]:
        token = await self._tokens.access_token() if self._tokens else None
        headers = {
            "apikey": self._api_key,
            "Authorization": f"Bearer {token or self._api_key}",
            "Accept": SINGLE_OBJECT,
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _single(self, response: httpx.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError as exc:
            raise MalformedRowError(f"{self._name} row") from exc
        if not isinstance(body, dict):
            raise MalformedRowError(f"{self._name} row", details={"type": type(body).__name__})
        return body
