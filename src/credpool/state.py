from dataclasses import dataclass


@dataclass
class TokenState:
    bearer_token: str = ""
    expires_at: float = 0.0

    def is_fresh(self, now: float, margin: float = 0.0) -> bool:
        return bool(self.bearer_token) and now < self.expires_at - margin


@dataclass
class UsageStats:
    request_count: int = 0
    rate_limit_until: float = 0.0

    def is_rate_limited(self, now: float) -> bool:
        return now < self.rate_limit_until

    def next_available_at(self, now: float) -> float:
        return max(now, self.rate_limit_until)
