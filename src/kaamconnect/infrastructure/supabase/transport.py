"""HTTP transport helpers shared by the auth and table clients."""

from typing import Any

import httpx
import structlog

from kaamconnect.core.exceptions import (
    NETWORK_ERROR_CODE,
    TIMEOUT_CODE,
    AuthApiError,
    RemoteError,
)
from kaamconnect.infrastructure.supabase.schemas import ApiErrorPayload

logger = structlog.get_logger()


def error_from_response(response: httpx.Response, auth: bool = False) -> RemoteError:
    """Map an error response body to RemoteError (or AuthApiError)."""
    try:
        payload = ApiErrorPayload.model_validate(response.json())
        message, code = payload.text, payload.remote_code
        details, hint = payload.details, payload.hint
    except ValueError:
        message = f"HTTP {response.status_code}: {response.text[:200]}"
        code, details, hint = None, None, None

    if auth:
        return AuthApiError(message, code=code, status=response.status_code)
    return RemoteError(
        message,
        code=code,
        details=details,
        hint=hint,
        status=response.status_code,
    )


async def send(
    http: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    auth: bool = False,
    **kwargs: Any,
) -> httpx.Response:
    """Send a request, raising RemoteError for transport and HTTP failures.

    Timeouts map to code TIMEOUT and other transport failures to
    NETWORK_ERROR so callers can tell them apart from server answers.
    """
    error_cls = AuthApiError if auth else RemoteError
    try:
        response = await http.request(method, url, **kwargs)
    except httpx.TimeoutException as exc:
        logger.warning("supabase_request_timeout", method=method, url=url)
        raise error_cls(f"Request timeout: {exc}", code=TIMEOUT_CODE) from exc
    except httpx.TransportError as exc:
        logger.warning("supabase_network_error", method=method, url=url, error=str(exc))
        raise error_cls(f"Network request failed: {exc}", code=NETWORK_ERROR_CODE) from exc

    if response.is_error:
        error = error_from_response(response, auth=auth)
        logger.debug(
            "supabase_request_failed",
            method=method,
            url=url,
            status_code=response.status_code,
            code=error.code,
        )
        raise error
    return response
