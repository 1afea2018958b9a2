import httpx
import pytest

from credpool import (
    AllCredentialsRateLimited,
    Credential,
    CredentialPool,
    RateLimited,
)


def _pool(http_client, clock, n=2, **kwargs):
    creds = [Credential(f"c{i}", f"s{i}") for i in range(n)]
    return CredentialPool(creds, http_client=http_client, clock=clock, **kwargs)


def _served_by(spotify):
    return [token.split("-")[0] for token, _ in spotify.api_calls]


@pytest.mark.parametrize("n", [1, 2, 5])
def test_pool_builds_one_client_per_credential(http_client, n):
    pool = CredentialPool([(f"id{i}", f"secret{i}") for i in range(n)], http_client=http_client)
    assert len(pool) == n
    assert [c.credential.client_id for c in pool._clients] == [f"id{i}" for i in range(n)]
    assert pool.mode == "multiple"


def test_single_pair_gives_single_mode(http_client):
    pool = CredentialPool(client_id="id", client_secret="secret", http_client=http_client)
    assert len(pool) == 1
    assert pool.mode == "single"


def test_one_element_client_list_still_uses_multiple_mode(http_client):
    # Same content as the single-pair path, but routed through selection.
    pool = CredentialPool([{"client_id": "id", "client_secret": "secret"}], http_client=http_client)
    assert pool.mode == "multiple"


def test_client_list_wins_over_single_pair(http_client):
    pool = CredentialPool(
        [("a", "x"), ("b", "y")], client_id="id", client_secret="secret", http_client=http_client
    )
    assert pool.mode == "multiple"
    assert len(pool) == 2  # noqa: PLR2004


def test_pool_needs_credentials(http_client):
    with pytest.raises(ValueError):
        CredentialPool(http_client=http_client)
    with pytest.raises(ValueError):
        CredentialPool([], client_id="id", http_client=http_client)


def test_pool_rejects_bad_client_entries(http_client):
    with pytest.raises(TypeError):
        CredentialPool(["id:secret"], http_client=http_client)


@pytest.mark.asyncio
async def test_routes_to_least_used_client(spotify, http_client, clock):
    async with _pool(http_client, clock) as pool:
        a, b = pool._clients
        a.usage.request_count = 5
        b.usage.request_count = 2
        await pool.fetch("/tracks/1")
        assert _served_by(spotify) == ["c1"]
        assert b.request_count == 3  # noqa: PLR2004
        assert a.request_count == 5  # noqa: PLR2004


@pytest.mark.asyncio
async def test_ties_go_to_registration_order(spotify, http_client, clock):
    async with _pool(http_client, clock, n=3) as pool:
        for _ in range(6):
            await pool.fetch("/me")
        assert _served_by(spotify) == ["c0", "c1", "c2", "c0", "c1", "c2"]
        assert [c.request_count for c in pool._clients] == [2, 2, 2]


@pytest.mark.asyncio
async def test_skips_rate_limited_clients(spotify, http_client, clock):
    async with _pool(http_client, clock) as pool:
        a, b = pool._clients
        b.usage.request_count = 10
        a.usage.rate_limit_until = clock.now + 30
        await pool.fetch("/me")
        assert _served_by(spotify) == ["c1"]

        clock.advance(30)
        await pool.fetch("/me")
        assert _served_by(spotify) == ["c1", "c0"]


@pytest.mark.asyncio
async def test_all_rate_limited_fails_without_contacting_clients(spotify, http_client, clock):
    async with _pool(http_client, clock) as pool:
        a, b = pool._clients
        a.usage.rate_limit_until = clock.now + 30
        b.usage.rate_limit_until = clock.now + 12
        with pytest.raises(AllCredentialsRateLimited) as excinfo:
            await pool.fetch("/me")
        assert excinfo.value.retry_after == 12  # noqa: PLR2004
        with pytest.raises(AllCredentialsRateLimited):
            await pool.fetch_absolute("https://api.spotify.com/v1/me")
        assert spotify.api_calls == []


@pytest.mark.asyncio
async def test_one_element_list_fails_when_rate_limited(spotify, http_client, clock):
    pool = CredentialPool([("solo", "secret")], http_client=http_client, clock=clock)
    pool._clients[0].usage.rate_limit_until = clock.now + 5
    with pytest.raises(AllCredentialsRateLimited):
        await pool.fetch("/me")
    assert spotify.api_calls == []
    await pool.close()


@pytest.mark.asyncio
async def test_single_mode_always_delegates(spotify, http_client, clock):
    pool = CredentialPool(
        client_id="solo", client_secret="secret", http_client=http_client, clock=clock
    )
    pool._clients[0].usage.rate_limit_until = clock.now + 5
    # no selection in single mode: the one client is called and answers for itself
    await pool.fetch("/me")
    assert _served_by(spotify) == ["solo"]
    await pool.close()


@pytest.mark.asyncio
async def test_single_mode_fetch_absolute_uses_url_verbatim(spotify, http_client, clock):
    pool = CredentialPool(
        client_id="solo", client_secret="secret", http_client=http_client, clock=clock
    )
    url = "https://api.spotify.com/v1/albums/a1/tracks?offset=50&limit=50"
    await pool.fetch_absolute(url)
    assert spotify.api_calls[0][1] == url
    await pool.close()


@pytest.mark.asyncio
async def test_cooldown_is_local_to_one_client(spotify, http_client, clock):
    async with _pool(http_client, clock) as pool:
        a, b = pool._clients
        spotify.api_headers = {"x-ratelimit-remaining": "0", "x-ratelimit-reset": "30"}
        with pytest.raises(RateLimited) as excinfo:
            await pool.fetch("/me")
        assert excinfo.value.client == "c0"
        assert a.is_rate_limited
        assert not b.is_rate_limited

        spotify.api_headers = {}
        body = await pool.fetch("/me")
        assert body["served_by"].startswith("c1")

        clock.advance(30)
        assert not a.is_rate_limited
        await pool.fetch("/me")
        assert _served_by(spotify)[-1] == "c0"


@pytest.mark.asyncio
async def test_random_policy_only_picks_available(spotify, http_client, clock):
    async with _pool(http_client, clock, n=3, policy="random") as pool:
        pool._clients[0].usage.rate_limit_until = clock.now + 60
        pool._clients[2].usage.rate_limit_until = clock.now + 60
        for _ in range(5):
            await pool.fetch("/me")
        assert set(_served_by(spotify)) == {"c1"}


@pytest.mark.asyncio
async def test_key_function_policy(spotify, http_client, clock):
    async with _pool(http_client, clock, n=3, policy=lambda c: -c.request_count) as pool:
        pool._clients[1].usage.request_count = 4
        await pool.fetch("/me")
        assert _served_by(spotify) == ["c1"]


@pytest.mark.asyncio
async def test_close_releases_owned_transport(clock):
    pool = CredentialPool(client_id="id", client_secret="secret", clock=clock)
    transport = pool._transport
    transport._internal_client = httpx.AsyncClient()
    await pool.close()
    assert transport._internal_client is None
    await pool.close()


@pytest.mark.asyncio
async def test_close_leaves_shared_client_open(http_client, clock):
    async with CredentialPool([("a", "x")], http_client=http_client, clock=clock):
        pass
    assert not http_client.is_closed


@pytest.mark.asyncio
async def test_close_right_after_construction_sends_no_token_requests(spotify, http_client, clock):
    pool = CredentialPool([("a", "x"), ("b", "y"), ("c", "z")], http_client=http_client, clock=clock)
    await pool.close()
    assert spotify.token_calls == []
    assert all(c._prime_task is None for c in pool._clients)
