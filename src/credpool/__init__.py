from .adapters import AiohttpTransport, HttpResponse, HttpxTransport
from .client import CredentialClient
from .env import load_credentials_from_env
from .errors import (
    AllCredentialsRateLimited,
    ApiStatusError,
    AuthError,
    CredpoolError,
    RateLimited,
    RateLimitedAuthError,
)
from .policies import (
    KeyFunctionPolicy,
    LeastUsedPolicy,
    RandomPolicy,
    SelectionPolicy,
    coerce_policy,
)
from .pool import CredentialPool
from .types import ApiConfig, Credential, RateLimitConfig

__all__ = [
    "Credential",
    "ApiConfig",
    "RateLimitConfig",
    "CredentialClient",
    "CredentialPool",
    "SelectionPolicy",
    "LeastUsedPolicy",
    "RandomPolicy",
    "KeyFunctionPolicy",
    "coerce_policy",
    "HttpResponse",
    "HttpxTransport",
    "AiohttpTransport",
    "load_credentials_from_env",
    "CredpoolError",
    "AuthError",
    "RateLimitedAuthError",
    "RateLimited",
    "AllCredentialsRateLimited",
    "ApiStatusError",
]
