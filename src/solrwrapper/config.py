"""
Configuration for the Solr wrapper.

All configuration is validated at construction time, not per-call.
Environment variables are read once via ``SolrConfig.from_env()`` and
the resulting object is immutable.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlsplit, urlunsplit

logger = logging.getLogger(__name__)

_DEFAULT_SERVER_URL = "http://127.0.0.1:8983/solr/collection1"
_DEFAULT_ROWS = 10
_DEFAULT_TIMEOUT_CONNECT = 5.0
_DEFAULT_TIMEOUT_READ = 30.0
_DEFAULT_TIMEOUT_POOL = 10.0
_DEFAULT_RETRIES = 0
_DEFAULT_MAX_CONNECTIONS = 20
_DEFAULT_MAX_KEEPALIVE = 10
_MAX_QUERY_LENGTH = 10_000


@dataclass(frozen=True)
class SolrConfig:
    """Validated, immutable configuration for a :class:`~solrwrapper.SolrWrapper`.

    Exactly one connection mode is selected: an embedded core living in
    this process (``embedded=True`` plus ``core``) or a remote Solr core
    reached over HTTP (``server_url``, optionally ``server_port``).

    Args:
        server_url: Remote core URL, e.g. ``http://host:8983/solr/genomics``.
        server_port: Port to use when ``server_url`` does not name one.
        embedded: Run against an in-process core instead of a server.
        core: Directory holding the embedded core's index.
        rows: Default number of documents a query returns.
        timeout_connect: TCP connect timeout in seconds.
        timeout_read: HTTP read timeout in seconds.
        timeout_pool: Connection pool acquisition timeout in seconds.
        retries: Transport-level retries on connection failure.
        max_connections: Upper bound on pooled HTTP connections.
        max_keepalive: Idle connections kept open in the pool.
        verify_ssl: TLS verification (True, False, or path to CA bundle).
        max_query_length: Maximum allowed query string length.
    """

    server_url: str = _DEFAULT_SERVER_URL
    server_port: int | None = None
    embedded: bool = False
    core: str = ""
    rows: int = _DEFAULT_ROWS
    timeout_connect: float = _DEFAULT_TIMEOUT_CONNECT
    timeout_read: float = _DEFAULT_TIMEOUT_READ
    timeout_pool: float = _DEFAULT_TIMEOUT_POOL
    retries: int = _DEFAULT_RETRIES
    max_connections: int = _DEFAULT_MAX_CONNECTIONS
    max_keepalive: int = _DEFAULT_MAX_KEEPALIVE
    verify_ssl: bool | str = True
    max_query_length: int = _MAX_QUERY_LENGTH

    def __post_init__(self) -> None:
        errors: list[str] = []

        if self.embedded:
            if not self.core:
                errors.append("core must be set when embedded is true")
        else:
            if not self.server_url:
                errors.append("server_url must be set when embedded is false")
            else:
                errors.extend(self._check_url())

        if self.rows < 1:
            errors.append(f"rows must be >= 1, got {self.rows}")
        if self.timeout_connect <= 0:
            errors.append(f"timeout_connect must be > 0, got {self.timeout_connect}")
        if self.timeout_read <= 0:
            errors.append(f"timeout_read must be > 0, got {self.timeout_read}")
        if self.timeout_pool <= 0:
            errors.append(f"timeout_pool must be > 0, got {self.timeout_pool}")
        if self.retries < 0:
            errors.append(f"retries must be >= 0, got {self.retries}")
        if self.max_connections < 1:
            errors.append(f"max_connections must be >= 1, got {self.max_connections}")
        if self.max_keepalive < 0 or self.max_keepalive > self.max_connections:
            errors.append(
                f"max_keepalive must be 0-{self.max_connections}, got {self.max_keepalive}"
            )
        if self.max_query_length < 1:
            errors.append(f"max_query_length must be >= 1, got {self.max_query_length}")

        if errors:
            raise ValueError("Invalid Solr configuration: " + "; ".join(errors))

    def _check_url(self) -> list[str]:
        parts = urlsplit(self.server_url)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            return [f"server_url must be an http(s) URL, got {self.server_url!r}"]
        if self.server_port is None:
            return []
        if not 1 <= self.server_port <= 65535:
            return [f"server_port must be 1-65535, got {self.server_port}"]
        try:
            url_port = parts.port
        except ValueError:
            return [f"server_url has an invalid port: {self.server_url!r}"]
        if url_port is not None and url_port != self.server_port:
            return [f"server_port {self.server_port} conflicts with port {url_port} in server_url"]
        return []

    @property
    def url(self) -> str:
        """Remote core URL with ``server_port`` applied and no trailing slash."""
        parts = urlsplit(self.server_url.rstrip("/"))
        if self.server_port is not None and parts.port is None:
            netloc = f"{parts.netloc}:{self.server_port}"
            parts = parts._replace(netloc=netloc)
        return urlunsplit(parts)

    @property
    def mode(self) -> str:
        return "embedded" if self.embedded else "remote"

    @classmethod
    def from_env(cls, **overrides: object) -> SolrConfig:
        """Build config from environment variables with optional overrides.

        Environment variables:
            SOLRWRAPPER_URL              -- Remote core URL
            SOLRWRAPPER_PORT             -- Server port (default: taken from the URL)
            SOLRWRAPPER_EMBEDDED         -- "true" to run an embedded core
            SOLRWRAPPER_CORE             -- Embedded core directory
            SOLRWRAPPER_ROWS             -- Default rows (default 10)
            SOLRWRAPPER_TIMEOUT_CONNECT  -- Connect timeout seconds (default 5.0)
            SOLRWRAPPER_TIMEOUT_READ     -- Read timeout seconds (default 30.0)
            SOLRWRAPPER_TIMEOUT_POOL     -- Pool timeout seconds (default 10.0)
            SOLRWRAPPER_RETRIES          -- Transport retries (default 0)
            SOLRWRAPPER_MAX_CONNECTIONS  -- Pool size (default 20)
            SOLRWRAPPER_MAX_KEEPALIVE    -- Idle pooled connections (default 10)
            SOLRWRAPPER_VERIFY_SSL       -- "true", "false", or path to CA bundle
            SOLRWRAPPER_MAX_QUERY_LENGTH -- Max query length (default 10000)

        Explicit keyword arguments override environment variables.
        """

        def _env(key: str, default: str) -> str:
            return os.environ.get(key, default)

        def _env_float(key: str, default: float) -> float:
            raw = os.environ.get(key)
            if raw is None:
                return default
            try:
                return float(raw)
            except ValueError:
                raise ValueError(f"Environment variable {key}={raw!r} is not a valid number")

        def _env_int(key: str, default: int | None) -> int | None:
            raw = os.environ.get(key)
            if raw is None or raw == "":
                return default
            try:
                return int(raw)
            except ValueError:
                raise ValueError(f"Environment variable {key}={raw!r} is not a valid integer")

        def _env_bool(key: str, default: bool) -> bool:
            raw = os.environ.get(key)
            if raw is None:
                return default
            return raw.strip().lower() in ("true", "1", "yes")

        def _env_verify(key: str, default: bool | str) -> bool | str:
            raw = os.environ.get(key)
            if raw is None:
                return default
            low = raw.strip().lower()
            if low in ("true", "1", "yes"):
                return True
            if low in ("false", "0", "no"):
                return False
            return raw  # treat as CA bundle path

        kwargs: dict[str, object] = {
            "server_url": _env("SOLRWRAPPER_URL", _DEFAULT_SERVER_URL).rstrip("/"),
            "server_port": _env_int("SOLRWRAPPER_PORT", None),
            "embedded": _env_bool("SOLRWRAPPER_EMBEDDED", False),
            "core": _env("SOLRWRAPPER_CORE", ""),
            "rows": _env_int("SOLRWRAPPER_ROWS", _DEFAULT_ROWS),
            "timeout_connect": _env_float("SOLRWRAPPER_TIMEOUT_CONNECT", _DEFAULT_TIMEOUT_CONNECT),
            "timeout_read": _env_float("SOLRWRAPPER_TIMEOUT_READ", _DEFAULT_TIMEOUT_READ),
            "timeout_pool": _env_float("SOLRWRAPPER_TIMEOUT_POOL", _DEFAULT_TIMEOUT_POOL),
            "retries": _env_int("SOLRWRAPPER_RETRIES", _DEFAULT_RETRIES),
            "max_connections": _env_int("SOLRWRAPPER_MAX_CONNECTIONS", _DEFAULT_MAX_CONNECTIONS),
            "max_keepalive": _env_int("SOLRWRAPPER_MAX_KEEPALIVE", _DEFAULT_MAX_KEEPALIVE),
            "verify_ssl": _env_verify("SOLRWRAPPER_VERIFY_SSL", True),
            "max_query_length": _env_int("SOLRWRAPPER_MAX_QUERY_LENGTH", _MAX_QUERY_LENGTH),
        }
        kwargs.update({k: v for k, v in overrides.items() if v is not None})

        config = cls(**kwargs)  # type: ignore[arg-type]
        if config.embedded:
            logger.info("Solr config: mode=embedded core=%s rows=%d", config.core, config.rows)
        else:
            logger.info(
                "Solr config: mode=remote url=%s rows=%d timeout_connect=%.1f"
                " timeout_read=%.1f retries=%d max_connections=%d",
                config.url,
                config.rows,
                config.timeout_connect,
                config.timeout_read,
                config.retries,
                config.max_connections,
            )
        return config
