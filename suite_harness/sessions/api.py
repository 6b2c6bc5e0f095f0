"""Authenticated HTTP API execution contexts."""

import json
import logging
from collections.abc import AsyncGenerator, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Literal

import aiohttp
from pydantic import BaseModel

from suite_harness.cleanup import Deleter
from suite_harness.config import ApiSettings, HarnessSettings
from suite_harness.credentials import CredentialCache
from suite_harness.errors import CleanupError, InteractionTimeout, ProvisioningError
from suite_harness.sessions.base import SessionManager, Snapshot
from suite_harness.sessions.manifest import SessionManifest

log = logging.getLogger(__name__)

type HttpMethod = Literal["GET", "POST", "PUT", "DELETE"]

# Statuses accepted as a completed deletion; 404 means it is already gone
DELETED_STATUSES = frozenset([200, 202, 204, 404])


@dataclass(frozen=True, kw_only=True)
class ApiResponse:
    """Status and decoded body of an API response."""

    status: int
    text: str
    body: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def parse[M: BaseModel](self, model: type[M]) -> M:
        """Validate the JSON body into a model."""
        return model.model_validate(self.body)


@dataclass(kw_only=True)
class ApiClient:
    """HTTP client bound to the API base URL with a bearer token."""

    base_url: str
    session: aiohttp.ClientSession = field(repr=False)
    timeout_ms: int
    last_exchange: dict[str, Any] | None = field(default=None, repr=False)

    def url_for(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"

    async def get(self, path: str) -> ApiResponse:
        return await self.request("GET", path)

    async def post(self, path: str, payload: Any = None) -> ApiResponse:
        return await self.request("POST", path, payload)

    async def put(self, path: str, payload: Any = None) -> ApiResponse:
        return await self.request("PUT", path, payload)

    async def delete(self, path: str) -> ApiResponse:
        return await self.request("DELETE", path)

    async def request(
        self, method: HttpMethod, path: str, payload: Any = None
    ) -> ApiResponse:
        """Send a request with an optional JSON body.

        Raises:
            InteractionTimeout: If no response arrives within the timeout

        """
        if isinstance(payload, BaseModel):
            payload = payload.model_dump(mode="json", by_alias=True)

        url = self.url_for(path)
        try:
            async with self.session.request(method, url, json=payload) as response:
                status = response.status
                text = await response.text()
        except TimeoutError as exc:
            raise InteractionTimeout(
                f"{method} {path} timed out after {self.timeout_ms} ms"
            ) from exc

        log.debug("%s %s -> %s", method, url, status)
        body = _decode(text)
        self.last_exchange = {
            "request": {"method": method, "url": url, "body": payload},
            "response": {"status": status, "body": body if body is not None else text},
        }
        return ApiResponse(status=status, text=text, body=body)

    async def close(self) -> None:
        await self.session.close()


def _decode(text: str) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return None


@dataclass(kw_only=True)
class ApiSessionManager(SessionManager[ApiClient]):
    """Creates one authenticated client per test case.

    The bearer token comes from the shared credential cache, so clients
    created within the token lifetime cost no extra authentication.
    """

    settings: ApiSettings
    credentials: CredentialCache

    @classmethod
    @asynccontextmanager
    async def from_settings(
        cls, settings: HarnessSettings
    ) -> AsyncGenerator["ApiSessionManager", None]:
        """Create a manager with a credential cache scoped to the block."""
        if settings.api is None:
            raise ProvisioningError("API settings are required for api sessions")

        async with CredentialCache.from_settings(settings.api) as credentials:
            yield cls(
                settings=settings.api,
                credentials=credentials,
                artifacts_dir=settings.run.artifacts_dir,
            )

    async def open_handle(self, label: str) -> ApiClient:
        """Obtain a token and open a client that sends it on every request."""
        token = await self.credentials.get_token()
        session = aiohttp.ClientSession(
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
            },
            timeout=aiohttp.ClientTimeout(
                total=self.settings.request_timeout_ms / 1000
            ),
        )
        log.debug("API client initialized for %s", label)
        return ApiClient(
            base_url=self.settings.base_url,
            session=session,
            timeout_ms=self.settings.request_timeout_ms,
        )

    async def close_handle(self, handle: ApiClient) -> None:
        await handle.close()

    async def snapshot(self, handle: ApiClient) -> Snapshot | None:
        """Dump the last request and response as JSON."""
        if handle.last_exchange is None:
            return None
        content = json.dumps(handle.last_exchange, indent=2, default=str)
        return Snapshot(content=content.encode("utf-8"), extension="json")

    def deleters(self) -> Mapping[str, Deleter]:
        """One REST deletion per configured resource endpoint."""
        return {
            kind: self._rest_deleter(kind, template)
            for kind, template in self.settings.resource_endpoints.items()
        }

    def _rest_deleter(self, kind: str, template: str) -> Deleter:
        async def delete(resource_id: str) -> None:
            path = template.format(id=resource_id)
            async with self.session(f"cleanup {kind}") as context:
                response = await context.handle.delete(path)
            if response.status not in DELETED_STATUSES:
                raise CleanupError(
                    f"DELETE {path} returned {response.status}: {response.text}"
                )

        return delete


api_manifest = SessionManifest(
    kind="api",
    session_factory=ApiSessionManager.from_settings,
)
