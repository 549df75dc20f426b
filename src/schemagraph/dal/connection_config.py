"""Pydantic connection configs, one per source kind.

Secrets are `SecretStr` so they never appear in `repr` or logs, and
`public_settings()` returns the subset safe to persist in the source registry.
"""

from __future__ import annotations

from typing import Any, ClassVar, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator


class ConnectionConfig(BaseModel):
    """Base for per-kind connection configs."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    secret_fields: ClassVar[tuple] = ()

    def identity(self) -> str:
        """Return the connection identity used to reject duplicate registrations."""
        raise NotImplementedError

    def public_settings(self) -> Dict[str, Any]:
        """Return non-secret settings for persistence."""
        return self.model_dump(exclude=set(self.secret_fields), exclude_none=True)

    def with_secrets(self, secrets: Optional[Mapping[str, str]]) -> "ConnectionConfig":
        """Return a copy with secrets resolved by a credential provider merged in."""
        updates = {
            key: SecretStr(value)
            for key, value in (secrets or {}).items()
            if key in self.secret_fields and value is not None
        }
        return self.model_copy(update=updates) if updates else self


class PostgresConnectionConfig(ConnectionConfig):
    secret_fields: ClassVar[tuple] = ("password",)

    host: str
    port: int = Field(default=5432, gt=0, lt=65536)
    database: str
    user: str
    password: Optional[SecretStr] = None
    ssl: bool = False

    def identity(self) -> str:
        return f"postgres://{self.host.lower()}:{self.port}/{self.database}"


class MysqlConnectionConfig(ConnectionConfig):
    secret_fields: ClassVar[tuple] = ("password",)

    host: str
    port: int = Field(default=3306, gt=0, lt=65536)
    database: str
    user: str
    password: Optional[SecretStr] = None

    def identity(self) -> str:
        return f"mysql://{self.host.lower()}:{self.port}/{self.database}"


class DuckDBConnectionConfig(ConnectionConfig):
    file_path: str

    @field_validator("file_path")
    @classmethod
    def _reject_memory(cls, value: str) -> str:
        if not value.strip() or value.strip() == ":memory:":
            raise ValueError("DuckDB sources must point at a database file.")
        return value

    def identity(self) -> str:
        return f"duckdb://{self.file_path}"


class MongoConnectionConfig(ConnectionConfig):
    secret_fields: ClassVar[tuple] = ("uri",)

    uri: Optional[SecretStr] = None
    database: str
    replica_set: Optional[str] = None
    connect_timeout_ms: int = Field(default=5000, gt=0)

    def identity(self) -> str:
        return f"mongo://{self.database}"
