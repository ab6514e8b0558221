"""Mercado Libre OAuth2 credential lifecycle with single-flight refresh."""

import asyncio
import logging
import time
from typing import Callable, Optional
from urllib.parse import urlencode

import httpx

from app.models.domain import Credential
from app.storage.base import CredentialStore

logger = logging.getLogger(__name__)

MELI_TOKEN_URL = "https://api.mercadolibre.com/oauth/token"
MELI_AUTH_URL = "https://auth.mercadolibre.com.ar/authorization"

# Refresh this long before the upstream expiry
REFRESH_SKEW_SECONDS = 60


class TokenManagerError(Exception):
    """Base exception for TokenLifecycleManager errors."""

    pass


class ConfigurationError(TokenManagerError):
    """Raised when the token endpoint rejects the request (400/401)."""

    pass


class AuthRequired(TokenManagerError):
    """Raised when no credential is on file; the operator must authorize."""

    pass


class RefreshFailed(TokenManagerError):
    """Raised when the refresh grant could not be completed."""

    pass


class TokenLifecycleManager:
    """Hands out a Mercado Libre credential that is valid for immediate use.

    Features:
    - Credential cached in memory after the first load from the store
    - Refresh 60s before expiry, merged with the previous record
    - Single-flight refresh: concurrent callers share one refresh task
    - Retry with exponential backoff on transient token endpoint errors
    """

    def __init__(
        self,
        store: CredentialStore,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        auth_url: str = MELI_AUTH_URL,
        token_url: str = MELI_TOKEN_URL,
        skew_seconds: float = REFRESH_SKEW_SECONDS,
        max_retries: int = 3,
        base_delay: float = 1.0,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize TokenLifecycleManager.

        Args:
            store: Durable credential storage
            client_id: Mercado Libre application ID
            client_secret: Mercado Libre application secret
            redirect_uri: Redirect URI registered for the application
            auth_url: Consent page URL for the account's site
            token_url: OAuth2 token endpoint
            skew_seconds: Refresh margin before expiry
            max_retries: Maximum token request attempts per refresh
            base_delay: Base delay for exponential backoff (seconds)
            timeout: HTTP timeout for token requests (seconds)
            transport: Optional httpx transport (used by tests)
            clock: Returns the current time in epoch seconds
        """
        self._store = store
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_uri = redirect_uri
        self._auth_url = auth_url
        self._token_url = token_url
        self._skew = skew_seconds
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._timeout = timeout
        self._transport = transport
        self._clock = clock

        self._credential: Optional[Credential] = None
        self._loaded = False
        self._load_lock = asyncio.Lock()
        self._stale_token: Optional[str] = None
        self._refresh_task: Optional[asyncio.Task[Credential]] = None

    async def current(self) -> Optional[Credential]:
        """Return the stored credential without any network call."""
        if not self._loaded:
            async with self._load_lock:
                if not self._loaded:
                    self._credential = await self._store.load()
                    self._loaded = True
        return self._credential

    async def ensure_valid(self) -> Credential:
        """Get a credential valid for immediate use, refreshing if necessary.

        Returns:
            Valid Credential

        Raises:
            AuthRequired: If no credential is on file
            RefreshFailed: If the refresh was rejected or could not complete
        """
        credential = await self.current()
        if credential is None:
            raise AuthRequired("No Mercado Libre credential on file")

        if not self._needs_refresh(credential):
            return credential

        # No await between the check and the assignment: only one task is
        # ever created per refresh round.
        if self._refresh_task is None:
            self._refresh_task = asyncio.create_task(self._refresh(credential))
            self._refresh_task.add_done_callback(self._on_refresh_done)

        return await asyncio.shield(self._refresh_task)

    def _needs_refresh(self, credential: Credential) -> bool:
        if credential.access_token == self._stale_token:
            return True
        return credential.expires_within(self._skew, now=self._clock())

    def _on_refresh_done(self, task: asyncio.Task) -> None:
        if self._refresh_task is task:
            self._refresh_task = None

    async def _refresh(self, credential: Credential) -> Credential:
        """Exchange the refresh token and persist the merged credential."""
        logger.info("Refreshing Mercado Libre token for account %s", credential.account_id)
        try:
            data = await self._request_token_with_retry(
                {
                    "grant_type": "refresh_token",
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "refresh_token": credential.refresh_token,
                }
            )
            refreshed = Credential.from_token_response(
                data, now=self._clock(), previous=credential
            )
        except TokenManagerError as e:
            logger.error("Token refresh failed: %s", e)
            raise RefreshFailed(str(e)) from e
        except (KeyError, ValueError) as e:
            logger.error("Malformed token refresh response: %s", e)
            raise RefreshFailed(f"Malformed token response: {e}") from e

        # A re-authorization completed while this refresh was in flight
        if self._credential is not credential and self._credential is not None:
            return self._credential

        await self._store.save(refreshed)
        self._credential = refreshed
        self._stale_token = None
        logger.info("Token refreshed successfully, expires in %ss", data["expires_in"])
        return refreshed

    async def authorize(self, code: str) -> Credential:
        """Exchange an authorization code for the initial credential.

        Args:
            code: Code received on the OAuth redirect

        Returns:
            The new Credential, already persisted

        Raises:
            TokenManagerError: If the exchange fails
        """
        data = await self._request_token_with_retry(
            {
                "grant_type": "authorization_code",
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "code": code,
                "redirect_uri": self._redirect_uri,
            }
        )
        try:
            credential = Credential.from_token_response(data, now=self._clock())
        except (KeyError, ValueError) as e:
            raise TokenManagerError(f"Malformed token response: {e}") from e

        await self._store.save(credential)
        self._credential = credential
        self._loaded = True
        self._stale_token = None
        logger.info("Mercado Libre account %s authorized", credential.account_id)
        return credential

    def authorization_url(self, state: str) -> str:
        """Build the consent page URL the operator must visit."""
        query = urlencode(
            {
                "response_type": "code",
                "client_id": self._client_id,
                "redirect_uri": self._redirect_uri,
                "state": state,
            }
        )
        return f"{self._auth_url}?{query}"

    def mark_stale(self, access_token: str) -> None:
        """Force a refresh on the next call (e.g., after receiving 401)."""
        if self._credential is not None and self._credential.access_token == access_token:
            self._stale_token = access_token
            logger.info("Access token marked stale")

    async def _request_token_with_retry(self, form: dict) -> dict:
        """Call the token endpoint with exponential backoff retry.

        Raises:
            ConfigurationError: If the request is rejected (not retried)
            TokenManagerError: If all retries fail
        """
        last_error: Optional[Exception] = None

        for attempt in range(self._max_retries):
            try:
                return await self._request_token(form)
            except ConfigurationError:
                # Rejected grants are not retried
                raise
            except TokenManagerError as e:
                last_error = e
                if attempt < self._max_retries - 1:
                    delay = self._base_delay * (2**attempt)
                    logger.warning(
                        "Token request failed (attempt %d/%d), retrying in %.1fs: %s",
                        attempt + 1,
                        self._max_retries,
                        delay,
                        str(e),
                    )
                    await asyncio.sleep(delay)

        raise TokenManagerError(
            f"Token request failed after {self._max_retries} attempts: {last_error}"
        )

    async def _request_token(self, form: dict) -> dict:
        """Post a grant to the Mercado Libre token endpoint.

        Raises:
            ConfigurationError: On 400/401 (invalid grant or client)
            TokenManagerError: On network or API errors
        """
        async with httpx.AsyncClient(
            timeout=self._timeout, transport=self._transport
        ) as client:
            try:
                response = await client.post(
                    self._token_url,
                    data=form,
                    headers={"Accept": "application/json"},
                )

                if response.status_code in (400, 401):
                    logger.error("Token grant rejected: %s", response.text)
                    raise ConfigurationError(
                        f"Token grant rejected ({response.status_code}): {response.text}"
                    )

                if response.status_code == 429:
                    retry_after = response.headers.get("Retry-After", "60")
                    raise TokenManagerError(
                        f"Rate limited, retry after {retry_after}s"
                    )

                response.raise_for_status()
                return response.json()

            except httpx.TimeoutException as e:
                raise TokenManagerError(f"Token request timed out: {e}")
            except httpx.HTTPStatusError as e:
                raise TokenManagerError(f"HTTP error: {e.response.status_code}")
            except httpx.RequestError as e:
                raise TokenManagerError(f"Network error: {e}")
            except ValueError as e:
                raise TokenManagerError(f"Invalid token response body: {e}")
