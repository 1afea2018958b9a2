import asyncio
import base64
import contextlib
import email.utils as eut
import logging
import math
import time
from datetime import timezone
from typing import Any, Callable, Union

from .adapters import HttpResponse, HttpxTransport
from .errors import ApiStatusError, AuthError, RateLimited, RateLimitedAuthError
from .state import TokenState, UsageStats
from .types import ApiConfig, Credential, RateLimitConfig

# Statuses from the token endpoint that mean "throttled", not "bad credentials"
THROTTLED_AUTH_STATUSES = frozenset({400, 429})
HTTP_TOO_MANY_REQUESTS = 429


def _parse_delay(value: Union[str, None], now: float) -> Union[float, None]:
    """Parse a delay header given in seconds or as an HTTP-date; None if unusable."""
    if value is None:
        return None
    try:
        delay = float(value)
    except ValueError:
        try:
            ts = eut.parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        if ts.tzinfo is None:
            # "-0000" zones parse as naive datetimes; they are still UTC
            ts = ts.replace(tzinfo=timezone.utc)
        # Round up to the next whole second so short delays are not cut short
        return max(0.0, float(math.ceil(ts.timestamp() - now)))
    if not math.isfinite(delay) or delay < 0:
        return None
    return delay


def _basic_authorization(credential: Credential) -> str:
    raw = f"{credential.client_id}:{credential.client_secret}".encode()
    return f"Basic {base64.b64encode(raw).decode('ascii')}"


class CredentialClient:
    """Serve API calls with exactly one credential pair.

    The client keeps its own bearer token fresh and records the rate-limit feedback of
    every response. While cooling down, ``is_rate_limited`` is true; it turns false on
    its own once the signalled delay has passed.
    """

    def __init__(
        self,
        credential: Credential,
        transport=None,
        api_config: Union[ApiConfig, None] = None,
        rate_limit_config: Union[RateLimitConfig, None] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.credential = credential
        self._own_transport = transport is None
        self.transport = transport or HttpxTransport()
        self.api_config = api_config or ApiConfig()
        self.rate_limit_config = rate_limit_config or RateLimitConfig()
        self._clock = clock
        self.token = TokenState()
        self.usage = UsageStats()
        self._authorization = _basic_authorization(credential)
        self._refresh_lock = asyncio.Lock()
        self._logger = logging.getLogger("credpool")
        # Warm the token in the background when constructed inside a running loop
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._prime_task = None
        else:
            self._prime_task = loop.create_task(self._prime())

    def __repr__(self) -> str:
        return (
            f"CredentialClient({self.label!r}, requests={self.usage.request_count}, "
            f"rate_limited={self.is_rate_limited})"
        )

    @property
    def label(self) -> str:
        return self.credential.label

    @property
    def request_count(self) -> int:
        return self.usage.request_count

    @property
    def is_rate_limited(self) -> bool:
        return self.usage.is_rate_limited(self._now())

    @property
    def rate_limit_until(self) -> float:
        return self.usage.rate_limit_until

    def _now(self) -> float:
        return self._clock()

    # ---------- token lifecycle ----------

    async def _prime(self):
        try:
            await self.ensure_fresh_token()
        except AuthError as e:
            self._logger.warning(f"initial token refresh failed for credential={self.label}: {e}")

    async def ensure_fresh_token(self) -> str:
        """Return a usable bearer token, refreshing it first if it is empty or expired.

        Raises:
            RateLimitedAuthError: the token endpoint throttled the refresh
            AuthError: the refresh failed for any other reason
        """
        margin = self.api_config.expiry_margin
        if self.token.is_fresh(self._now(), margin):
            return self.token.bearer_token
        async with self._refresh_lock:
            # Another task may have refreshed while we waited for the lock
            if not self.token.is_fresh(self._now(), margin):
                await self._refresh_token()
        return self.token.bearer_token

    async def _refresh_token(self):
        self._logger.debug(f"refreshing token for credential={self.label}")
        try:
            resp = await self.transport.request(
                "POST",
                self.api_config.token_url,
                headers={
                    "Authorization": self._authorization,
                    "Content-Type": "application/x-www-form-urlencoded",
                },
                params={"grant_type": "client_credentials"},
            )
        except Exception as e:
            self._logger.warning(f"token request failed for credential={self.label}: {e!r}")
            raise AuthError(f"credpool: token request failed for {self.label}: {e}") from e

        if resp.status in THROTTLED_AUTH_STATUSES:
            self._logger.warning(
                f"token endpoint throttled credential={self.label} status={resp.status}"
            )
            raise RateLimitedAuthError(
                f"credpool: token endpoint rate limited credential {self.label}",
                status=resp.status,
            )
        if not resp.ok:
            self._logger.warning(
                f"token endpoint rejected credential={self.label} status={resp.status}"
            )
            raise AuthError(
                f"credpool: token endpoint returned HTTP {resp.status} for {self.label}",
                status=resp.status,
            )

        try:
            payload = resp.json()
        except ValueError as e:
            raise AuthError(f"credpool: token response for {self.label} is not JSON") from e
        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise AuthError(f"credpool: failed to fetch access token for {self.label}")
        expires_in = payload.get("expires_in")
        if isinstance(expires_in, bool) or not isinstance(expires_in, (int, float)):
            raise AuthError(f"credpool: token response for {self.label} has no usable expires_in")
        if not math.isfinite(expires_in) or expires_in <= 0:
            raise AuthError(f"credpool: token response for {self.label} expires_in={expires_in}")

        self.token.bearer_token = payload["access_token"]
        self.token.expires_at = self._now() + float(expires_in)
        self._logger.debug(f"token refreshed for credential={self.label} expires_in={expires_in}s")

    # ---------- rate limits ----------

    def _enter_cooldown(self, delay: float):
        now = self._now()
        self.usage.rate_limit_until = max(self.usage.rate_limit_until, now + delay)
        self._logger.info(f"credential={self.label} rate limited; cooling down {delay:.1f}s")

    def _cooldown_from(self, resp: HttpResponse) -> Union[float, None]:
        """Return the cooldown a response asks for, or None if it is not rate limited."""
        rl = self.rate_limit_config
        now = self._now()
        remaining = resp.header(rl.remaining_header)
        reset = _parse_delay(resp.header(rl.reset_header), now)
        if resp.status == HTTP_TOO_MANY_REQUESTS:
            retry_after = _parse_delay(resp.header("retry-after"), now)
            if retry_after is not None:
                return retry_after
            return reset if reset is not None else rl.default_cooldown
        if remaining is not None and remaining.strip() == "0":
            return reset if reset is not None else rl.default_cooldown
        return None

    # ---------- data calls ----------

    def _url_for(self, endpoint: str) -> str:
        if endpoint.startswith(("http://", "https://")):
            raise ValueError(
                f"endpoint must be a relative path, got {endpoint!r}; use fetch_absolute for URLs"
            )
        return f"{self.api_config.api_root.rstrip('/')}/{endpoint.lstrip('/')}"

    async def fetch(self, endpoint: str) -> Any:
        """GET ``endpoint`` (a path relative to the API root) and return the JSON body."""
        return await self.fetch_absolute(self._url_for(endpoint))

    async def fetch_absolute(self, url: str) -> Any:
        """GET a fully-qualified ``url``, such as a pagination link, and return the JSON body.

        Raises:
            AuthError: the token could not be refreshed
            RateLimited: the response signalled exhausted quota; the client is now cooling down
            ApiStatusError: any other non-2xx response
        """
        token = await self.ensure_fresh_token()
        self._logger.debug(f"req start credential={self.label} url={url}")
        resp = await self.transport.request("GET", url, headers={"Authorization": f"Bearer {token}"})
        self._logger.debug(f"req done credential={self.label} status={resp.status}")

        cooldown = self._cooldown_from(resp)
        if cooldown is not None:
            self._enter_cooldown(cooldown)
            raise RateLimited(self.label, cooldown)
        if not resp.ok:
            try:
                error_body = resp.json()
            except ValueError:
                error_body = resp.content
            raise ApiStatusError(resp.status, url, error_body)
        body = resp.json()
        self.usage.request_count += 1
        return body

    def cancel_refresh(self):
        """Cancel a construction-time refresh that has not finished yet."""
        if self._prime_task is not None and not self._prime_task.done():
            self._prime_task.cancel()

    async def close(self):
        self.cancel_refresh()
        if self._prime_task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._prime_task
        self._prime_task = None
        if self._own_transport:
            await self.transport.aclose()
