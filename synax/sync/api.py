"""
Synax API Client - aiohttp wrapper for the Synax REST API

Sends replayed mutations and photo uploads with the bearer token from the
credential slot. Failures surface as ApiError subclasses so the sync engine
can record them against the queued item.
"""

import asyncio
import json
import logging
import mimetypes
from collections.abc import Callable
from typing import Any

from aiohttp import ClientSession, ClientTimeout, FormData, client_exceptions

from synax.config import load_token
from synax.exceptions import ApiConnectionError, RemoteRejectedError
from synax.sync.mapping import ApiRequest, UploadRequest

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0  # seconds per request


def _is_success(status: int) -> bool:
    return 200 <= status < 300


def _parse_body(raw: bytes) -> Any:
    """Parse a JSON response body, returning None when it is empty or not JSON."""
    text = raw.decode("utf-8", errors="replace")
    if not text.strip():
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


def rejection_message(status: int, payload: Any) -> str:
    """Message for a non-2xx response: the body's error string, else 'HTTP <status>'."""
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, str) and error:
            return error
    return f"HTTP {status}"


class SynaxApiClient:
    """
    Client for the Synax REST API.

    The aiohttp session is created lazily inside the running event loop and
    recreated if the loop changes, so one client can outlive several
    asyncio.run() calls.
    """

    def __init__(
        self,
        base_url: str,
        token_provider: Callable[[], str | None] = load_token,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """
        Initialize API client.

        Args:
            base_url: API root, e.g. http://localhost:3000/api
            token_provider: Returns the bearer token (read on every request)
            timeout: Total seconds allowed per request
        """
        self.base_url = base_url.rstrip("/")
        self._token_provider = token_provider
        self._timeout = ClientTimeout(total=timeout)

        self._session: ClientSession | None = None
        self._session_loop: asyncio.AbstractEventLoop | None = None

        self.request_count = 0

    async def _get_session(self) -> ClientSession:
        """Get or create the ClientSession, recreating it if the event loop changed."""
        current_loop = asyncio.get_running_loop()

        if self._session is not None and (
            self._session_loop is not current_loop or self._session.closed
        ):
            self._session = None
            self._session_loop = None

        if self._session is None:
            self._session = ClientSession(timeout=self._timeout)
            self._session_loop = current_loop

        return self._session

    async def close(self) -> None:
        """Close the session and release connections."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
        self._session_loop = None

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _headers(self, json_body: bool) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if json_body:
            headers["Content-Type"] = "application/json"
        token = self._token_provider()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def send(self, request: ApiRequest) -> Any:
        """
        Send a JSON request.

        Args:
            request: Method, relative path and body

        Returns:
            Parsed JSON response body (None if empty)

        Raises:
            RemoteRejectedError: On non-2xx status
            ApiConnectionError: If the API is unreachable or times out
        """
        session = await self._get_session()
        url = self._url(request.path)
        body = json.dumps(request.body) if request.body is not None else None

        try:
            async with session.request(
                request.method,
                url,
                data=body,
                headers=self._headers(json_body=body is not None),
            ) as resp:
                self.request_count += 1
                payload = _parse_body(await resp.read())
                if not _is_success(resp.status):
                    raise RemoteRejectedError(rejection_message(resp.status, payload), resp.status)
                logger.debug(f"{request.method} {request.path} -> {resp.status}")
                return payload
        except client_exceptions.ClientError as e:
            raise ApiConnectionError(
                f"Request to {request.method} {request.path} failed: {e}",
                {"url": url},
            ) from e
        except asyncio.TimeoutError as e:
            raise ApiConnectionError(
                f"Request to {request.method} {request.path} timed out",
                {"url": url},
            ) from e

    async def upload(self, request: UploadRequest) -> Any:
        """
        Upload a file as multipart form data.

        Raises:
            RemoteRejectedError: On non-2xx status ("Image upload failed: <status>")
            ApiConnectionError: If the API is unreachable or times out
        """
        session = await self._get_session()
        url = self._url(request.path)

        form = FormData()
        form.add_field(
            request.field_name,
            request.content,
            filename=request.filename,
            content_type=mimetypes.guess_type(request.filename)[0] or "application/octet-stream",
        )

        try:
            async with session.request(
                request.method,
                url,
                data=form,
                headers=self._headers(json_body=False),
            ) as resp:
                self.request_count += 1
                if not _is_success(resp.status):
                    raise RemoteRejectedError(f"Image upload failed: {resp.status}", resp.status)
                logger.debug(f"Uploaded {request.filename} to {request.path}")
                return _parse_body(await resp.read())
        except client_exceptions.ClientError as e:
            raise ApiConnectionError(
                f"Upload of {request.filename} failed: {e}",
                {"url": url},
            ) from e
        except asyncio.TimeoutError as e:
            raise ApiConnectionError(
                f"Upload of {request.filename} timed out",
                {"url": url},
            ) from e

    async def ping(self, path: str = "/health") -> bool:
        """
        Check whether the API answers at all.

        Returns:
            True if the server responded with a status below 500
        """
        try:
            session = await self._get_session()
            async with session.get(self._url(path)) as resp:
                return resp.status < 500
        except (client_exceptions.ClientError, asyncio.TimeoutError) as e:
            logger.debug(f"API ping failed: {e}")
            return False
