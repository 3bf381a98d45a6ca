"""Async HTTP client for the hosted backend (REST rows, object storage, auth).

All calls go through one ``httpx.AsyncClient``. The client is usually
created once in the application lifespan and shared by every request; each
request builds a lightweight :class:`BackendClient` over it carrying the
credentials appropriate to that request.

Design decisions:
- Credentials live on the BackendClient, not the transport, so elevated
  and caller-scoped clients can share connection pooling.
- Transport failures are converted to :class:`BackendError` so the
  deletion fallbacks treat "could not reach the backend" like any other
  failed write.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from clientvault.infra.backend.errors import BackendError
from clientvault.infra.backend.query import TableQuery

if TYPE_CHECKING:
    from collections.abc import Collection, Sequence

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 10.0


@dataclass(frozen=True, slots=True)
class BackendUser:
    """Identity returned by token introspection."""

    id: str
    email: str


class StorageBucket:
    """Operations on one named container of the object store."""

    def __init__(self, client: BackendClient, bucket: str) -> None:
        self._client = client
        self.name = bucket

    async def remove(self, paths: Sequence[str]) -> list[dict[str, Any]]:
        """Delete objects at ``paths`` in one call.

        Returns:
            Metadata of the objects the store reports as removed.

        Raises:
            BackendError: On any storage failure, including "not found".
        """
        response = await self._client.request(
            "DELETE",
            f"/storage/v1/object/{self.name}",
            json={"prefixes": list(paths)},
        )
        body = response.json() if response.content else []
        return body if isinstance(body, list) else []

    async def upload(
        self,
        path: str,
        content: bytes,
        content_type: str,
        *,
        cache_seconds: int = 3600,
    ) -> None:
        """Store a new object at ``path``; an existing object is never replaced.

        Raises:
            BackendError: On any storage failure, including a duplicate path.
        """
        await self._client.request(
            "POST",
            f"/storage/v1/object/{self.name}/{quote(path)}",
            content=content,
            headers={
                "Content-Type": content_type,
                "Cache-Control": f"max-age={cache_seconds}",
                "x-upsert": "false",
            },
        )

    async def create_signed_url(self, path: str, expires_in: int) -> str:
        """Absolute URL granting read access to ``path`` for ``expires_in`` seconds."""
        response = await self._client.request(
            "POST",
            f"/storage/v1/object/sign/{self.name}/{quote(path)}",
            json={"expiresIn": expires_in},
        )
        body = response.json()
        if not isinstance(body, dict):
            body = {}
        signed = body.get("signedURL") or body.get("signedUrl")
        if not signed:
            raise BackendError("Storage returned no signed URL", response.status_code)
        return f"{self._client.base_url}/storage/v1{signed}"


class BackendClient:
    """Credentialed view of the hosted backend.

    Args:
        base_url: Backend project URL (e.g., "https://abc.supabase.co").
        api_key: Project API key sent as ``apikey`` (anon or service role).
        access_token: Bearer token for row-level security. Defaults to
            ``api_key``, which is what the elevated client uses.
        timeout: HTTP request timeout in seconds.
        client: Optional shared httpx.AsyncClient instance.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        access_token: str | None = None,
        *,
        timeout: float = _DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._access_token = access_token or api_key
        self._timeout = timeout
        self._external_client = client is not None
        self._client: httpx.AsyncClient | None = client

    def __repr__(self) -> str:
        return f"BackendClient(base_url={self._base_url!r})"

    @property
    def base_url(self) -> str:
        return self._base_url

    def table(self, name: str) -> TableQuery:
        """Start a query against table ``name``."""
        return TableQuery(self, name)

    def storage(self, bucket: str) -> StorageBucket:
        """Address the object-store container ``bucket``."""
        return StorageBucket(self, bucket)

    async def get_user(self, token: str) -> BackendUser:
        """Introspect a caller's access token.

        Raises:
            BackendError: If the token is rejected or the call fails.
        """
        response = await self.request(
            "GET",
            "/auth/v1/user",
            headers={"Authorization": f"Bearer {token}"},
        )
        body = response.json()
        if not isinstance(body, dict) or not body.get("id"):
            raise BackendError("Token introspection returned no user", response.status_code)
        return BackendUser(id=str(body["id"]), email=str(body.get("email") or ""))

    async def rest(
        self,
        method: str,
        table: str,
        *,
        params: Sequence[tuple[str, str]] = (),
        json: Any = None,
        headers: dict[str, str] | None = None,
        allow_status: Collection[int] = (),
    ) -> httpx.Response:
        """Issue a REST row request against ``table``."""
        return await self.request(
            method,
            f"/rest/v1/{table}",
            params=list(params),
            json=json,
            headers=headers,
            allow_status=allow_status,
        )

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: list[tuple[str, str]] | None = None,
        json: Any = None,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
        allow_status: Collection[int] = (),
    ) -> httpx.Response:
        """Send an authenticated request and raise on failure.

        ``allow_status`` lists error statuses the caller interprets itself.

        Raises:
            BackendError: On other non-2xx responses and transport errors.
        """
        merged = {
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._access_token}",
            **(headers or {}),
        }
        client = self._get_client()
        try:
            response = await client.request(
                method,
                f"{self._base_url}{path}",
                params=params,
                json=json,
                content=content,
                headers=merged,
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            logger.warning(
                "backend_transport_error",
                extra={"method": method, "path": path, "error": str(exc)},
            )
            raise BackendError(str(exc) or type(exc).__name__) from exc

        if response.is_error and response.status_code not in allow_status:
            raise BackendError.from_response(response)
        return response

    def _get_client(self) -> httpx.AsyncClient:
        """Return the shared or lazily-created httpx.AsyncClient."""
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def aclose(self) -> None:
        """Close the internal httpx.AsyncClient if we own it.

        No-op if the client was provided externally or not yet created.
        """
        if self._client is not None and not self._external_client:
            await self._client.aclose()
            self._client = None
