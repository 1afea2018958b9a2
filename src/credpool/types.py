from dataclasses import dataclass, field
from typing import Union


@dataclass(frozen=True)
class Credential:
    client_id: str
    client_secret: str = field(repr=False)
    # Optional: human-readable label used in logs. Defaults to a masked client id.
    name: Union[str, None] = None

    @property
    def label(self) -> str:
        if self.name:
            return self.name
        return f"{self.client_id[:6]}..." if len(self.client_id) > 6 else self.client_id  # noqa: PLR2004


@dataclass(frozen=True)
class ApiConfig:
    api_root: str = "https://api.spotify.com/v1"
    token_url: str = "https://accounts.spotify.com/api/token"  # nosec B105 - public endpoint URL
    # Seconds before expiry at which a token is already treated as stale.
    expiry_margin: float = 0.0


@dataclass(frozen=True)
class RateLimitConfig:
    remaining_header: str = "x-ratelimit-remaining"
    reset_header: str = "x-ratelimit-reset"
    # Cooldown used when a rate-limited response carries no usable delay.
    default_cooldown: float = 1.0
