import os
from collections.abc import Iterable

from .types import Credential


def _parse_env_file(env_path: str) -> dict[str, str]:
    """Parse a simple .env file into a dict without modifying os.environ.

    Supports basic KEY=VALUE pairs, ignoring comments and blank lines.
    Surrounding single/double quotes are stripped if present.
    """
    values: dict[str, str] = {}
    try:
        with open(env_path) as f:
            for raw_line in f:
                line = raw_line.strip()
                if not line or line.startswith("#"):
                    continue
                if "=" not in line:
                    continue
                key, val = line.split("=", 1)
                key = key.strip()
                val = val.strip().strip('"').strip("'")
                if key:
                    values[key] = val
    except FileNotFoundError:
        pass
    return values


def read_env(env_path: str | None = None) -> dict[str, str]:
    """Merge a .env file with the process environment; the environment wins."""
    file_env = _parse_env_file(env_path) if env_path else {}
    return {**file_env, **os.environ}


def _split_pair(raw: str, var: str) -> tuple[str, str]:
    client_id, sep, client_secret = raw.partition(":")
    client_id, client_secret = client_id.strip(), client_secret.strip()
    if not sep or not client_id or not client_secret:
        raise ValueError(f"{var}: expected 'client_id:client_secret', got a malformed value")
    return client_id, client_secret


def _credentials_for(var: str, cfg_name: str, value: str, split_commas: bool) -> list[Credential]:
    parts = [p.strip() for p in value.split(",") if p.strip()] if split_commas else [value]
    if len(parts) == 1:
        return [Credential(*_split_pair(parts[0], var), name=cfg_name)]
    return [
        Credential(*_split_pair(part, var), name=f"{cfg_name}_{idx + 1}")
        for idx, part in enumerate(parts)
    ]


def load_credentials_from_env(
    names: Iterable[str] | None = None,
    prefix: str | None = None,
    env_path: str | None = None,
    **kwargs,
) -> list[Credential]:
    """Create Credential objects from environment variables.

    Each variable holds ``client_id:client_secret``; several pairs may be given in one
    variable separated by commas.

    - If 'names' is provided, look up each explicit env var name.
    - If 'prefix' is provided, use every env var whose name starts with the prefix. The
        credential name is the variable name, optionally without the prefix.
    - If both are provided, results are combined (names first).
    - If 'env_path' is provided, variables from the .env file augment lookups (without
        mutating the process environment). Values in the actual environment take
        precedence over the file.

    kwargs keywords:
    to_lower_names: make names lowercase (default False)
    split_commas: split comma-separated values (default True)
    strip_prefix: strip prefix from names (default False)

    Raises:
        ValueError: if a variable does not hold ``client_id:client_secret`` pairs
    """
    env_map = read_env(env_path)

    results: list[Credential] = []
    split_commas = kwargs.get("split_commas", True)
    to_lower_names = kwargs.get("to_lower_names", False)
    strip_prefix = kwargs.get("strip_prefix", False)

    if names:
        for var in names:
            value = env_map.get(var)
            if not value:
                continue
            cfg_name = var.lower() if to_lower_names else var
            results.extend(_credentials_for(var, cfg_name, value, split_commas))

    if prefix:
        for var in sorted(env_map):
            value = env_map[var]
            if not (var.startswith(prefix) and value):
                continue
            name_part = var[len(prefix) :] if strip_prefix else var
            cfg_name = name_part.lower() if to_lower_names else name_part
            results.extend(_credentials_for(var, cfg_name, value, split_commas))

    return results
