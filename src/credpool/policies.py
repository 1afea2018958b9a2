import random
from typing import Callable, Union

from .client import CredentialClient


class SelectionPolicy:
    """Decides which credential serves a call when several are eligible.

    ``available`` is never empty and holds only clients that are not cooling down,
    in registration order.
    """

    def select(self, available: list[CredentialClient]) -> CredentialClient:
        raise NotImplementedError


class LeastUsedPolicy(SelectionPolicy):
    def select(self, available: list[CredentialClient]) -> CredentialClient:
        # sorted() is stable, so ties go to the earliest registered client
        return sorted(available, key=lambda c: c.request_count)[0]


class RandomPolicy(SelectionPolicy):
    def select(self, available: list[CredentialClient]) -> CredentialClient:
        return random.choice(available)


class KeyFunctionPolicy(SelectionPolicy):
    """Wrap a user-supplied ranking function ``key_fn(client) -> comparable``.

    The lowest-ranked client wins; ties keep registration order.
    """

    def __init__(self, key_fn: Callable):
        self.key_fn = key_fn

    def select(self, available: list[CredentialClient]) -> CredentialClient:
        return sorted(available, key=self.key_fn)[0]


def coerce_policy(policy: Union[object, None]) -> SelectionPolicy:
    """Turn None | str | SelectionPolicy | callable into a SelectionPolicy.

    Accepted inputs:
      - None          -> LeastUsedPolicy
      - "least-used"  -> LeastUsedPolicy
      - "random"      -> RandomPolicy
      - SelectionPolicy instance (returned as-is)
      - callable: a ranking key function, wrapped into KeyFunctionPolicy
    """
    if policy is None:
        return LeastUsedPolicy()
    if isinstance(policy, SelectionPolicy):
        return policy
    if isinstance(policy, str):
        name = policy.lower().replace("_", "-")
        if name == "least-used":
            return LeastUsedPolicy()
        if name == "random":
            return RandomPolicy()
        raise ValueError(
            "Unknown policy string. Use 'least-used' or 'random', or pass a callable/SelectionPolicy."
        )
    if callable(policy):
        return KeyFunctionPolicy(policy)
    raise TypeError("policy must be None, 'least-used'|'random', SelectionPolicy, or a callable")
