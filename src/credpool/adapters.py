import contextlib
import json
from dataclasses import dataclass, field
from typing import Any, Union


@dataclass
class HttpResponse:
    status: int
    # Header names are lower-cased so lookups do not depend on the backend.
    headers: dict[str, str] = field(default_factory=dict)
    content: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300  # noqa: PLR2004

    def header(self, name: str) -> Union[str, None]:
        return self.headers.get(name.lower())

    def json(self) -> Any:
        """Decode the body as JSON; an empty body decodes to None.

        Raises:
            ValueError: if the body is not valid JSON
        """
        if not self.content.strip():
            return None
        return json.loads(self.content)


def _lower_headers(headers) -> dict[str, str]:
    return {str(k).lower(): str(v) for k, v in (headers or {}).items()}


# ---------- httpx (async) ----------
class HttpxTransport:
    """Issue requests through an ``httpx.AsyncClient``.

    If no client is given one is created on first use and closed by ``aclose``.
    """

    def __init__(self, client=None):
        self.client = client
        self._internal_client = None

    async def request(
        self,
        method: str,
        url: str,
        headers: Union[dict[str, str], None] = None,
        params: Union[dict[str, str], None] = None,
    ) -> HttpResponse:
        import httpx  # noqa: PLC0415

        client = self.client or self._internal_client
        if client is None:
            self._internal_client = client = httpx.AsyncClient()
        resp = await client.request(method, url, headers=headers, params=params)
        return HttpResponse(resp.status_code, _lower_headers(resp.headers), resp.content)

    async def aclose(self):
        if self._internal_client is not None:
            with contextlib.suppress(Exception):
                await self._internal_client.aclose()
            self._internal_client = None


# ---------- aiohttp (async) ----------
class AiohttpTransport:
    """Issue requests through an ``aiohttp.ClientSession``, reusing its connector."""

    def __init__(self, session=None):
        self.session = session
        self._own_session = False

    async def request(
        self,
        method: str,
        url: str,
        headers: Union[dict[str, str], None] = None,
        params: Union[dict[str, str], None] = None,
    ) -> HttpResponse:
        if self.session is None:
            import aiohttp  # noqa: PLC0415

            self.session = aiohttp.ClientSession()
            self._own_session = True
        resp = await self.session.request(method, url, headers=headers, params=params)
        try:
            content = await resp.read()
        finally:
            # Ensure the connection goes back to the pool
            if not resp.closed:
                await resp.release()
        return HttpResponse(resp.status, _lower_headers(resp.headers), content)

    async def aclose(self):
        if self._own_session and self.session is not None:
            await self.session.close()
            self.session = None
            self._own_session = False
