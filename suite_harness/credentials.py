"""Expiry-aware cache for OAuth client-credentials tokens."""

import asyncio
import logging
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import aiohttp
from pydantic import ValidationError

from suite_harness.config import ApiSettings
from suite_harness.errors import AuthenticationError, InteractionTimeout
from suite_harness.models.credential import Credential, TokenResponse

log = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass(kw_only=True)
class CredentialCache:
    """Obtains and reuses a bearer token for authenticated calls.

    A cached token is served while it is valid minus the safety margin.
    Concurrent misses are coalesced so that at most one exchange is in flight.
    """

    settings: ApiSettings
    session: aiohttp.ClientSession = field(repr=False)
    clock: Callable[[], datetime] = utcnow
    _credential: Credential | None = field(default=None, init=False, repr=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False, repr=False)

    @classmethod
    @asynccontextmanager
    async def from_settings(
        cls, settings: ApiSettings
    ) -> AsyncGenerator["CredentialCache", None]:
        """Create a cache with its own HTTP session for the token endpoint."""
        async with aiohttp.ClientSession() as session:
            yield cls(settings=settings, session=session)

    @property
    def safety_margin(self) -> timedelta:
        return timedelta(seconds=self.settings.token_safety_margin)

    @property
    def credential(self) -> Credential | None:
        """The currently cached credential, valid or not."""
        return self._credential

    async def get_token(self) -> str:
        """Return a valid access token, exchanging credentials when needed.

        Raises:
            AuthenticationError: If the exchange fails or returns an unusable body
            InteractionTimeout: If the token endpoint does not answer in time

        """
        if (credential := self._valid_credential()) is not None:
            return credential.value

        async with self._lock:
            # Another caller may have refreshed while we waited for the lock
            if (credential := self._valid_credential()) is not None:
                return credential.value

            credential = await self._exchange()
            self._credential = credential
            return credential.value

    def invalidate(self) -> None:
        """Forget the cached credential so the next call exchanges again."""
        self._credential = None

    def _valid_credential(self) -> Credential | None:
        credential = self._credential
        if credential is not None and credential.is_valid(
            self.clock(), self.safety_margin
        ):
            return credential
        return None

    async def _exchange(self) -> Credential:
        """Perform a client-credentials exchange against the token endpoint."""
        settings = self.settings
        form = {
            "client_id": settings.client_id.get_secret_value(),
            "client_secret": settings.client_secret.get_secret_value(),
            "scope": settings.scope,
            "grant_type": settings.grant_type,
        }
        timeout = aiohttp.ClientTimeout(total=settings.request_timeout_ms / 1000)

        log.debug(
            "Requesting access token: url=%s, scope=%s, grant_type=%s",
            settings.token_url,
            settings.scope,
            settings.grant_type,
        )

        try:
            async with self.session.post(
                settings.token_url, data=form, timeout=timeout
            ) as response:
                status = response.status
                text = await response.text()
        except TimeoutError as exc:
            raise InteractionTimeout(
                f"Token request timed out after {settings.request_timeout_ms} ms"
            ) from exc
        except aiohttp.ClientError as exc:
            raise AuthenticationError(f"Token request failed: {exc}") from exc

        if not 200 <= status < 300:
            log.error("Failed to get access token: status=%s body=%s", status, text)
            raise AuthenticationError(
                f"Token request failed with status {status}: {text}"
            )

        try:
            token = TokenResponse.model_validate_json(text)
        except ValidationError as exc:
            log.error("Invalid token response: %s", text)
            raise AuthenticationError(
                "Failed to obtain access token: invalid response"
            ) from exc

        if token.expires_in <= settings.token_safety_margin:
            log.warning(
                "Token lifetime (%ds) does not exceed the safety margin (%ds); "
                "it will be refreshed on every request",
                token.expires_in,
                settings.token_safety_margin,
            )

        log.info(
            "Obtained new access token, expires in %d seconds", token.expires_in
        )
        return Credential(
            value=token.access_token,
            expires_at=self.clock() + timedelta(seconds=token.expires_in),
        )
