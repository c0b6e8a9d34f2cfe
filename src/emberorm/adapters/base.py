"""
Adapter protocol and connection configuration for EmberORM.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Protocol, Sequence
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from ..dialects.base import Dialect

DATABASE_URL_ENV = "EMBERORM_DATABASE_URL"


class AdapterError(RuntimeError):
    """Base error for adapter-related failures."""


class AdapterConfigurationError(AdapterError):
    """Raised when configuration or required dependencies are invalid."""


class AdapterConnectionError(AdapterError):
    """Raised when establishing or using a connection fails."""


class AdapterExecutionError(AdapterError):
    """Raised when SQL execution or parameter validation fails."""


class ConstraintViolationError(AdapterExecutionError):
    """
    The storage engine rejected a write (NOT NULL, UNIQUE, FOREIGN KEY, CHECK).
    """

    def __init__(self, message: str, *, sql: str | None = None) -> None:
        super().__init__(message)
        self.sql = sql


_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _parse_bool(value: str, *, key: str) -> bool:
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise AdapterConfigurationError(f"Invalid boolean value for '{key}': {value!r}")


def _parse_float(value: str, *, key: str) -> float:
    try:
        return float(value)
    except ValueError as exc:
        raise AdapterConfigurationError(f"Invalid float value for '{key}': {value!r}") from exc


@dataclass
class ConnectionConfig:
    """
    Normalized connection configuration for adapters.
    """

    url: str
    autocommit: bool = False
    isolation_level: str | None = None
    timeout: float | None = None
    options: dict[str, Any] | None = None
    source: str | None = None

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> "ConnectionConfig":
        """
        Build a config from a URL; ``autocommit``, ``timeout`` and
        ``isolation_level`` query parameters are lifted into attributes, the
        rest become driver options. Keyword arguments win over the URL.
        """
        parts = urlsplit(url)
        query = dict(parse_qsl(parts.query))

        autocommit = _parse_bool(query.pop("autocommit"), key="autocommit") if "autocommit" in query else False
        timeout = _parse_float(query.pop("timeout"), key="timeout") if "timeout" in query else None
        isolation_level = query.pop("isolation_level", None)

        options: dict[str, Any] = dict(query)
        options.update(kwargs.pop("options", None) or {})

        base_url = url.split("?", 1)[0]
        if query:
            base_url = f"{base_url}?{urlencode(query)}"
        return cls(
            url=base_url,
            autocommit=kwargs.pop("autocommit", autocommit),
            isolation_level=kwargs.pop("isolation_level", isolation_level),
            timeout=kwargs.pop("timeout", timeout),
            options=options or None,
            **kwargs,
        )

    @classmethod
    def from_env(cls, env_var: str = DATABASE_URL_ENV, **kwargs: Any) -> "ConnectionConfig":
        value = os.getenv(env_var)
        if not value:
            raise AdapterConfigurationError(f"Environment variable {env_var} is not set")
        return cls.from_url(value, source=env_var, **kwargs)

    @property
    def scheme(self) -> str:
        return urlsplit(self.url).scheme

    def redacted_url(self) -> str:
        """
        URL safe for logging (password removed).
        """
        parts = urlsplit(self.url)
        if parts.password is None:
            return self.url
        netloc = parts.hostname or ""
        if parts.username:
            netloc = f"{parts.username}:***@{netloc}"
        if parts.port:
            netloc = f"{netloc}:{parts.port}"
        return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))

    def descriptive_label(self) -> str:
        redacted = self.redacted_url()
        if self.source:
            return f"{self.source} ({redacted})"
        return redacted


class DatabaseAdapter(Protocol):
    """
    Storage engine interface consumed by the persistence context.
    """

    dialect: Dialect

    def connect(self, config: ConnectionConfig) -> Any:
        """
        Establish a connection handle using the supplied configuration.
        """

    def close(self) -> None:
        """
        Close underlying resources. Implementations should be idempotent.
        """

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> Any:
        """
        Execute a single SQL statement returning a cursor-like object.
        Integrity failures surface as :class:`ConstraintViolationError`.
        """

    def executemany(self, sql: str, seq_of_params: Sequence[Sequence[Any]]) -> Any:
        """
        Execute a prepared statement against multiple parameter sets.
        """

    def begin(self) -> None:
        """
        Start a transaction.
        """

    def commit(self) -> None:
        """
        Commit the current transaction.
        """

    def rollback(self) -> None:
        """
        Roll back the current transaction.
        """

    def last_insert_id(self, cursor: Any, table: str, pk_column: str) -> Any:
        """
        Retrieve the primary key value generated by the previous insert.
        """
