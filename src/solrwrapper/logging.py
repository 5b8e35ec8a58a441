"""
Logging for solrwrapper: one line per engine round-trip.

Every facade operation (``select``, ``get``, ``add``, ``add_xml``,
``commit``, ``delete``) is wrapped in :func:`log_operation`, which writes a
single line carrying the operation name, its parameters (``mode``,
``query``, ``rows``, ``doc_id`` ...), what came back (``num_found``,
``returned``, ``found``) and ``elapsed_ms``. Under :class:`JSONFormatter`
those become top-level keys, so a log shipper can filter on
``operation == "commit"`` without parsing the message.

A request id bound with :func:`bind_request_id` is stamped on every line
emitted from the same thread or task; the CLI binds a fresh one per run.

Usage::

    from solrwrapper.logging import bind_request_id, configure_logging
    configure_logging()             # JSON lines on stderr at INFO
    bind_request_id("ingest-0042")  # correlate one batch of updates
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone

_LOGGER_NAME = "solrwrapper"

_request_id_var: ContextVar[str] = ContextVar("solrwrapper_request_id", default="")

# Attributes every LogRecord has; anything else on a record came from ``extra``.
_RECORD_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__)


def bind_request_id(request_id: str | None = None) -> str:
    """Bind *request_id* (or a fresh 12-hex-digit id) to the current context."""
    rid = request_id or uuid.uuid4().hex[:12]
    _request_id_var.set(rid)
    return rid


def get_request_id() -> str:
    """Return the bound request id, or ``""``."""
    return _request_id_var.get()


class _RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id_var.get()  # type: ignore[attr-defined]
        return True


class JSONFormatter(logging.Formatter):
    """Render a record as one JSON object per line.

    Keys: ``timestamp`` (UTC, ISO 8601), ``level``, ``logger``, ``message``,
    ``request_id`` when one is bound, ``exception`` for tracebacks, and the
    operation fields attached by :func:`log_operation`.
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: dict[str, object] = {
            "timestamp": created.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        request_id = getattr(record, "request_id", "") or _request_id_var.get()
        if request_id:
            entry["request_id"] = request_id
        entry.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and key != "request_id"
        )
        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


_TEXT_FORMAT = "%(asctime)s %(levelname)-5s %(name)s [%(request_id)s] %(message)s"


def configure_logging(level: int = logging.INFO, json_format: bool = True) -> None:
    """Send ``solrwrapper`` logs to stderr, replacing any earlier setup.

    Args:
        level: Threshold for the ``solrwrapper`` logger tree.
        json_format: Emit :class:`JSONFormatter` lines; ``False`` gives a
            plain text line that still shows the request id.
    """
    if json_format:
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(_TEXT_FORMAT, defaults={"request_id": ""})
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    handler.addFilter(_RequestIdFilter())

    package_logger = logging.getLogger(_LOGGER_NAME)
    package_logger.handlers.clear()
    package_logger.addHandler(handler)
    package_logger.setLevel(level)
    package_logger.propagate = False


class _OperationLog:
    """Mutable bag of fields reported when a :func:`log_operation` block ends."""

    def __init__(self, fields: dict[str, object]) -> None:
        self.fields = fields
        self.t0 = time.monotonic()

    def add(self, **fields: object) -> None:
        self.fields.update(fields)

    @property
    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.t0) * 1000


@contextmanager
def log_operation(
    logger: logging.Logger, operation: str, **fields: object
) -> Iterator[_OperationLog]:
    """Log one engine round-trip with its elapsed time.

    On success an INFO line ``<operation> k=v ... elapsed_ms=N`` is written;
    if the block raises, the same line goes out at WARNING with the error
    appended and the exception propagates unchanged. The fields are also
    attached as ``extra`` so :class:`JSONFormatter` emits them as keys.

    Usage::

        with log_operation(logger, "select", query=q) as op:
            result = backend.select(q, rows)
            op.add(num_found=result.num_found)
    """
    op = _OperationLog(dict(fields))
    try:
        yield op
    except Exception as exc:
        elapsed = op.elapsed_ms
        logger.warning(
            "%s %s elapsed_ms=%.1f failed: %s",
            operation,
            _format_fields(op.fields),
            elapsed,
            exc,
            extra={"operation": operation, "elapsed_ms": round(elapsed, 1), **op.fields},
        )
        raise
    elapsed = op.elapsed_ms
    logger.info(
        "%s %s elapsed_ms=%.1f",
        operation,
        _format_fields(op.fields),
        elapsed,
        extra={"operation": operation, "elapsed_ms": round(elapsed, 1), **op.fields},
    )


def _format_fields(fields: dict[str, object]) -> str:
    return " ".join(f"{k}={v!r}" if isinstance(v, str) else f"{k}={v}" for k, v in fields.items())
