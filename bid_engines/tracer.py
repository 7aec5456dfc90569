"""
bid_engines.tracer -- BID_ENGINE_TRACE records for pure engine calls.

Responsibility:
    ``@traced_engine`` logs one structured record per call to a classifier,
    advisor or worklist builder: engine name and version, a short SHA-256
    fingerprint of the chosen keyword inputs, and the elapsed time.  Two
    calls with the same fingerprint saw the same inputs, which is how a
    reviewer ties a recommendation back to the quantities behind it.

Architecture position:
    Engines -- support code for the pure layer.  Emits a log record and
    nothing else.  The logger sits under ``bid_kernel.engines`` so the
    kernel's logging configuration applies without an import.

Invariants enforced:
    - Equal inputs give equal fingerprints: mappings are key-sorted,
      Decimals normalized (``140`` == ``140.000``), enums reduced to their
      values, dataclasses expanded field by field.
    - Only keyword arguments are fingerprinted; a field passed positionally
      or omitted contributes ``null``.

Usage:
    @traced_engine("variance", "1.0", fingerprint_fields=("governing_quantity",))
    def classify(self, *, governing_quantity, reference_quantity):
        ...
"""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import logging
import time
from collections.abc import Callable, Mapping
from decimal import Decimal
from enum import Enum
from typing import Any

_logger = logging.getLogger("bid_kernel.engines.tracer")

TRACE_TYPE = "BID_ENGINE_TRACE"
FINGERPRINT_LENGTH = 16


@functools.singledispatch
def _canonical(value: Any) -> str:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _canonical({f.name: getattr(value, f.name) for f in dataclasses.fields(value)})
    return str(value)


@_canonical.register(type(None))
def _(value) -> str:
    return "null"


@_canonical.register(bool)
def _(value) -> str:
    return "true" if value else "false"


@_canonical.register(Enum)
def _(value) -> str:
    return _canonical(value.value)


@_canonical.register(Decimal)
def _(value) -> str:
    return format(value.normalize(), "f") if value.is_finite() else str(value)


@_canonical.register(Mapping)
def _(value) -> str:
    pairs = sorted((str(k), _canonical(v)) for k, v in value.items())
    return "{" + ",".join(f"{k}:{v}" for k, v in pairs) + "}"


@_canonical.register(list)
@_canonical.register(tuple)
def _(value) -> str:
    return "[" + ",".join(_canonical(v) for v in value) + "]"


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: Mapping[str, Any],
) -> str:
    """Truncated SHA-256 over ``name=value`` pairs for the named kwargs."""
    canonical = "|".join(
        f"{name}={_canonical(kwargs.get(name))}" for name in fingerprint_fields
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable[[Callable], Callable]:
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fingerprint = (
                compute_input_fingerprint(fingerprint_fields, kwargs)
                if fingerprint_fields else ""
            )
            started = time.perf_counter()
            result = func(*args, **kwargs)
            _logger.info(
                TRACE_TYPE,
                extra={
                    "trace_type": TRACE_TYPE,
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fingerprint,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator
