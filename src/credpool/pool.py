import asyncio
import contextlib
import logging
import time
from collections.abc import Iterable, Mapping
from typing import Any, Literal, Union

from .adapters import AiohttpTransport, HttpxTransport
from .client import CredentialClient
from .env import load_credentials_from_env, read_env
from .errors import AllCredentialsRateLimited
from .policies import coerce_policy
from .types import Credential

Mode = Literal["single", "multiple"]


def _coerce_credential(entry: Any) -> Credential:
    if isinstance(entry, Credential):
        return entry
    if isinstance(entry, Mapping):
        return Credential(
            client_id=entry["client_id"],
            client_secret=entry["client_secret"],
            name=entry.get("name"),
        )
    if isinstance(entry, tuple) and len(entry) == 2:  # noqa: PLR2004
        return Credential(client_id=entry[0], client_secret=entry[1])
    raise TypeError(
        "clients entries must be Credential, (client_id, client_secret) or a mapping with "
        "'client_id' and 'client_secret'"
    )


class CredentialPool:
    """One logical API client backed by one or more credentials.

    Calls go through ``fetch(endpoint)`` or ``fetch_absolute(url)``. In "multiple" mode
    each call is routed to an eligible credential chosen by the selection policy; a
    credential that is cooling down is skipped until its delay has passed.
    """

    def __init__(
        self,
        clients: Union[Iterable[Any], None] = None,
        client_id: Union[str, None] = None,
        client_secret: Union[str, None] = None,
        policy: Union[object, None] = None,
        log_level: Union[int, None] = None,
        **kwargs,
    ):
        """Initialize a CredentialPool.

        Args:
            clients (Iterable | None): credentials for "multiple" mode; Credential objects,
                (client_id, client_secret) tuples or mappings
            client_id (str | None): client id for "single" mode, used when clients is empty
            client_secret (str | None): client secret for "single" mode
            policy (object | None): policy object, string ("least-used" | "random") or
                a ranking key function
            log_level (int | None): log level for the "credpool" logger
            kwargs:
            - api_config: ApiConfig object
            - rate_limit_config: RateLimitConfig object
            - http_client: httpx.AsyncClient to share between credentials
            - aiohttp_session: aiohttp.ClientSession to share between credentials
            - transport: any object with async request(method, url, headers, params)
            - clock: callable returning the current time in seconds

        Raises:
            ValueError: if neither a non-empty clients list nor a client id/secret is given
        """
        credentials = [_coerce_credential(c) for c in (clients or [])]
        if credentials:
            self._mode: Mode = "multiple"
        elif client_id and client_secret:
            credentials = [Credential(client_id=client_id, client_secret=client_secret)]
            self._mode = "single"
        else:
            raise ValueError(
                "CredentialPool needs either a non-empty 'clients' list or client_id and "
                "client_secret"
            )

        self._policy = coerce_policy(policy)
        self._transport, self._own_transport = self._resolve_transport(kwargs)
        self._clock = kwargs.get("clock", time.time)
        self._clients: list[CredentialClient] = [
            CredentialClient(
                cred,
                transport=self._transport,
                api_config=kwargs.get("api_config"),
                rate_limit_config=kwargs.get("rate_limit_config"),
                clock=self._clock,
            )
            for cred in credentials
        ]
        self._closed = False
        self._logger = logging.getLogger("credpool")
        if log_level is not None:
            with contextlib.suppress(Exception):
                self._logger.setLevel(log_level)
        self._logger.debug(f"pool ready mode={self._mode} credentials={len(self._clients)}")

    @staticmethod
    def _resolve_transport(kwargs: dict):
        if kwargs.get("transport") is not None:
            return kwargs["transport"], False
        if kwargs.get("aiohttp_session") is not None:
            return AiohttpTransport(kwargs["aiohttp_session"]), False
        if kwargs.get("http_client") is not None:
            return HttpxTransport(kwargs["http_client"]), False
        return HttpxTransport(), True

    def __len__(self) -> int:
        return len(self._clients)

    def __repr__(self) -> str:
        return f"CredentialPool(mode={self._mode!r}, credentials={len(self._clients)})"

    @property
    def mode(self) -> Mode:
        return self._mode

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
        return False

    async def close(self):
        if self._closed:
            return
        self._closed = True
        # Cancel every pending refresh before yielding to the loop
        for client in self._clients:
            client.cancel_refresh()
        await asyncio.gather(*(client.close() for client in self._clients))
        if self._own_transport:
            await self._transport.aclose()

    # ---------- public API ----------

    async def fetch(self, endpoint: str) -> Any:
        """GET ``endpoint`` relative to the API root through one credential.

        Raises:
            AllCredentialsRateLimited: every credential is cooling down ("multiple" mode)
        """
        return await self._select().fetch(endpoint)

    async def fetch_absolute(self, url: str) -> Any:
        """GET a fully-qualified ``url`` (e.g. a pagination link) through one credential."""
        return await self._select().fetch_absolute(url)

    # ---------- convenience: build pool from env ----------
    @classmethod
    def from_env(
        cls,
        names=None,
        prefix: Union[str, None] = None,
        env_path: Union[str, None] = None,
        client_id_var: str = "SPOTIFY_CLIENT_ID",
        client_secret_var: str = "SPOTIFY_CLIENT_SECRET",
        **kwargs,
    ):
        """Create a pool from environment variables.

        Pair lists found through ``names``/``prefix`` give a "multiple" mode pool. Without
        them the pool falls back to "single" mode using ``client_id_var`` and
        ``client_secret_var``.

        Args:
            names (Iterable[str] | None): env vars holding client_id:client_secret pairs
            prefix (str | None): prefix of env vars holding client_id:client_secret pairs
            env_path (str | None): optional .env file; the process environment wins

            kwargs keywords:
            to_lower_names: make names lowercase
            split_commas: split comma-separated values
            strip_prefix: strip prefix from names
            anything else is passed to the pool constructor
        """
        loader_keys = {
            k: kwargs.pop(k)
            for k in list(kwargs.keys())
            if k in {"to_lower_names", "split_commas", "strip_prefix"}
        }
        credentials = load_credentials_from_env(
            names=names, prefix=prefix, env_path=env_path, **loader_keys
        )
        if credentials:
            return cls(credentials, **kwargs)
        env_map = read_env(env_path)
        return cls(
            client_id=env_map.get(client_id_var),
            client_secret=env_map.get(client_secret_var),
            **kwargs,
        )

    # internal
    def _select(self) -> CredentialClient:
        if self._mode == "single":
            return self._clients[0]
        now = self._clock()
        available = [c for c in self._clients if not c.usage.is_rate_limited(now)]
        if not available:
            wake = min(c.usage.next_available_at(now) for c in self._clients)
            self._logger.info(f"all {len(self._clients)} credentials rate limited")
            raise AllCredentialsRateLimited(max(0.0, wake - now))
        return self._policy.select(available)
