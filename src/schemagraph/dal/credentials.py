"""Secret resolution for source connections.

Secrets are never stored in the source registry; the crawl service asks a
`CredentialProvider` for them right before building an adapter.
"""

import re
from typing import Dict, Mapping, Optional, Protocol

from schemagraph.common.config.env import get_env_str
from schemagraph.schema.sources import SourceRecord

_SECRET_NAMES = ("password", "uri")


class CredentialProvider(Protocol):
    """Resolve the secret fields of one source's connection config."""

    async def resolve(self, source: SourceRecord) -> Dict[str, str]:
        ...


class StaticCredentialProvider:
    """Serve secrets from an in-process mapping keyed by source id."""

    def __init__(self, secrets: Optional[Mapping[str, Mapping[str, str]]] = None) -> None:
        self._secrets = {key: dict(value) for key, value in (secrets or {}).items()}

    def set(self, source_id: str, **secrets: str) -> None:
        self._secrets[source_id] = dict(secrets)

    def forget(self, source_id: str) -> None:
        self._secrets.pop(source_id, None)

    async def resolve(self, source: SourceRecord) -> Dict[str, str]:
        return dict(self._secrets.get(source.id, {}))


def secret_env_var(source_id: str, name: str) -> str:
    """Return the variable name holding one secret, e.g. `SCHEMAGRAPH_SECRET_SALES_DB_PASSWORD`."""
    slug = re.sub(r"[^A-Za-z0-9]+", "_", source_id).strip("_").upper()
    return f"SCHEMAGRAPH_SECRET_{slug}_{name.upper()}"


class EnvCredentialProvider:
    """Read secrets from `SCHEMAGRAPH_SECRET_<SOURCE>_<FIELD>` environment variables."""

    async def resolve(self, source: SourceRecord) -> Dict[str, str]:
        resolved: Dict[str, str] = {}
        for name in _SECRET_NAMES:
            value = get_env_str(secret_env_var(source.id, name))
            if value:
                resolved[name] = value
        return resolved
