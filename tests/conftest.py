import base64

import httpx
import pytest


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeSpotify:
    """MockTransport handler standing in for the token endpoint and the API."""

    def __init__(self, expires_in=3600):
        self.expires_in = expires_in
        self.token_calls = []  # client ids, one per refresh
        self.api_calls = []  # (bearer token, url)
        self.token_status = 200
        self.token_body = None
        self.api_status = 200
        self.api_headers = {}
        self.api_body = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/token":
            return self._token(request)
        token = request.headers["Authorization"].removeprefix("Bearer ")
        self.api_calls.append((token, str(request.url)))
        body = self.api_body if self.api_body is not None else {"served_by": token}
        return httpx.Response(self.api_status, json=body, headers=self.api_headers)

    def _token(self, request):
        assert request.method == "POST"
        assert request.url.params["grant_type"] == "client_credentials"
        assert request.headers["Content-Type"] == "application/x-www-form-urlencoded"
        basic = request.headers["Authorization"].removeprefix("Basic ")
        client_id = base64.b64decode(basic).decode().split(":", 1)[0]
        self.token_calls.append(client_id)
        if self.token_body is not None:
            return httpx.Response(self.token_status, json=self.token_body)
        body = {"access_token": f"{client_id}-{len(self.token_calls)}", "expires_in": self.expires_in}
        return httpx.Response(self.token_status, json=body)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def spotify():
    return FakeSpotify()


@pytest.fixture
def http_client(spotify):
    return httpx.AsyncClient(transport=httpx.MockTransport(spotify))
