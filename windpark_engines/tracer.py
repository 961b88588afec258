"""
windpark_engines.tracer -- Engine invocation tracer emitting ENGINE_TRACE.

Responsibility:
    Lightweight decorator (``@traced_engine``) that wraps pure calculator
    invocations with a structured trace record: engine name, version, input
    fingerprint and duration.

Invariants enforced:
    - The fingerprint is deterministic: dict keys are sorted and the hash is
      a 16-character SHA-256 prefix over canonicalized keyword arguments.
    - The decorator only reads kwargs and emits a log record.
"""

from __future__ import annotations

import functools
import hashlib
import time
from collections.abc import Callable
from typing import Any

from windpark_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")


def _canonicalize(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, str):
        return value
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
    """Deterministic 16-char fingerprint of selected keyword arguments.

    Missing fields are recorded as "null".
    """
    parts = [f"{name}={_canonicalize(kwargs.get(name))}" for name in fingerprint_fields]
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Decorator that emits ENGINE_TRACE for pure calculator invocations."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fp = ""
            if fingerprint_fields:
                fp = compute_input_fingerprint(fingerprint_fields, kwargs)

            t0 = time.monotonic()
            result = func(*args, **kwargs)
            duration_ms = round((time.monotonic() - t0) * 1000, 2)

            _logger.debug(
                "ENGINE_TRACE",
                extra={
                    "trace_type": "ENGINE_TRACE",
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
