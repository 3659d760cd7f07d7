"""Logging helpers shared by every autocert module.

The package logger only carries a ``NullHandler``; applications attach their
own handlers. Loggers returned by ``get_logger`` tag each record with the
domains of the lifecycle operation running in the current context.
"""

import logging
import time
from collections.abc import Iterator, MutableMapping, Sequence
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

logging.getLogger("autocert").addHandler(logging.NullHandler())

_operation_domains: ContextVar[tuple[str, ...]] = ContextVar("autocert_operation_domains", default=())


@contextmanager
def domain_context(domains: Sequence[str]) -> Iterator[None]:
    """Tag records logged inside the block with ``domains``.

    Usage:
        with domain_context(["example.com", "www.example.com"]):
            logger.info("Created order")  # record.domains == [...]
    """
    token = _operation_domains.set(tuple(domains))
    try:
        yield
    finally:
        _operation_domains.reset(token)


def domain_extra() -> dict[str, Any]:
    """Return the current domains as log ``extra`` fields.

    One domain is reported as ``domain``, several as ``domains``; outside any
    ``domain_context`` the result is empty.
    """
    domains = _operation_domains.get()
    if not domains:
        return {}
    if len(domains) == 1:
        return {"domain": domains[0]}
    return {"domains": list(domains)}


class DomainLoggerAdapter(logging.LoggerAdapter):
    """Merges ``domain_extra()`` into every record. Explicit ``extra`` keys win."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        context = domain_extra()
        if context:
            kwargs["extra"] = {**context, **(kwargs.get("extra") or {})}
        return msg, kwargs


def get_logger(name: str) -> DomainLoggerAdapter:
    """Return the logger for an autocert module; pass ``__name__``."""
    return DomainLoggerAdapter(logging.getLogger(name), {})


class Timer:
    """Wall time of a ``with`` block in milliseconds.

    ``elapsed_ms`` is set on exit, also when the block raises.

    Usage:
        with Timer() as timer:
            handler.handle(client, authorization)
        telemetry.record_challenge_duration(timer.elapsed_ms, handler.challenge_type)
    """

    def __init__(self) -> None:
        self.elapsed_ms = 0.0
        self._started = 0.0

    def __enter__(self) -> "Timer":
        self._started = time.perf_counter()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._started) * 1000
