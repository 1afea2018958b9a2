from typing import Any, Union


class CredpoolError(Exception):
    """Base class for every error raised by credpool itself."""


class AuthError(CredpoolError):
    """Token refresh failed: transport failure, rejected credentials or a malformed reply."""

    def __init__(self, message: str, status: Union[int, None] = None):
        super().__init__(message)
        self.status = status


class RateLimitedAuthError(AuthError):
    """The authorization endpoint itself refused the refresh because of throttling."""


class RateLimited(CredpoolError):
    """A data call completed but reported the credential's quota as exhausted."""

    def __init__(self, client: str, retry_after: float):
        super().__init__(f"credpool: credential {client} is rate limited for {retry_after:.1f}s")
        self.client = client
        self.retry_after = retry_after


class AllCredentialsRateLimited(CredpoolError):
    """Every credential in the pool is cooling down. Add credentials or retry later."""

    def __init__(self, retry_after: float):
        super().__init__(
            "credpool: all credentials are rate limited; add more credentials or retry in "
            f"{retry_after:.1f}s"
        )
        self.retry_after = retry_after


class ApiStatusError(CredpoolError):
    def __init__(self, status: int, url: str, body: Any = None):
        super().__init__(f"credpool: GET {url} returned HTTP {status}")
        self.status = status
        self.url = url
        self.body = body
