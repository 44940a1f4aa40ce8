"""
payroll_engines.tracer -- Engine invocation tracer emitting PAYROLL_ENGINE_TRACE.

Responsibility:
    ``@traced_engine`` wraps a pure engine entry point with one structured
    log record carrying the engine name and version, a fingerprint of the
    selected inputs, and the wall-clock duration.

Architecture position:
    Engines -- infrastructure support for the pure calculation layer.  It
    emits a log record only; engines stay free of I/O.  The logger lives
    under ``payroll_kernel.engines.tracer`` so the kernel's logging
    configuration picks it up.

Invariants enforced:
    - The fingerprint is deterministic: value objects with ``to_dict()``
      are canonicalized through it, dict keys are sorted, and the hash is
      SHA-256 truncated to 16 hex characters.
    - Inputs are read, never mutated.

Audit relevance:
    Two traces with the same fingerprint and engine version must have
    produced the same result; comparing them is a cheap replay check.

Usage:
    from payroll_engines.tracer import traced_engine

    @traced_engine("payroll_calculation", "1.0", fingerprint_fields=("snapshot",))
    def compute(self, *, snapshot, rates, ...):
        ...
"""

from __future__ import annotations

import functools
import hashlib
import logging
import time
from collections.abc import Callable
from decimal import Decimal
from enum import Enum
from typing import Any

_logger = logging.getLogger("payroll_kernel.engines.tracer")


def _canonicalize(value: Any) -> str:
    """Produce a stable string representation of a value for fingerprinting."""
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, Decimal):
        return str(value.normalize())
    if isinstance(value, (bool, int, str)):
        return str(value)
    if hasattr(value, "to_dict"):
        return _canonicalize(value.to_dict())
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "{" + ",".join(f"{k}:{_canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: dict[str, Any],
) -> str:
    """Deterministic 16-hex-char fingerprint of the named keyword arguments.

    Missing fields are recorded as "null".
    """
    parts = [f"{name}={_canonicalize(kwargs.get(name))}" for name in fingerprint_fields]
    canonical = "|".join(parts)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Decorator that emits PAYROLL_ENGINE_TRACE for pure engine invocations.

    Args:
        engine_name: Engine identifier (e.g. "payroll_calculation").
        engine_version: Engine version (e.g. "1.0").
        fingerprint_fields: Keyword argument names to include in the
            input fingerprint.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fp = compute_input_fingerprint(fingerprint_fields, kwargs) if fingerprint_fields else ""

            t0 = time.monotonic()
            result = func(*args, **kwargs)
            duration_ms = round((time.monotonic() - t0) * 1000, 2)

            _logger.info(
                "PAYROLL_ENGINE_TRACE",
                extra={
                    "trace_type": "PAYROLL_ENGINE_TRACE",
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fp,
                    "duration_ms": duration_ms,
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator
