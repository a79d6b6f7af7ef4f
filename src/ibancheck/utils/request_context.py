from __future__ import annotations

import contextvars
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator

# Kept per thread / async task.
correlation_id_var = contextvars.ContextVar("correlation_id", default=None)
command_var = contextvars.ContextVar("command", default=None)
batch_size_var = contextvars.ContextVar("batch_size", default=None)

_VARS: Dict[str, contextvars.ContextVar] = {
    "correlation_id": correlation_id_var,
    "command": command_var,
    "batch_size": batch_size_var,
}


def new_correlation_id() -> str:
    return str(uuid.uuid4())


def get_request_fields() -> Dict[str, Any]:
    """Current values of all request context vars."""
    return {name: var.get() for name, var in _VARS.items()}


@contextmanager
def request_scope(**fields: Any) -> Iterator[None]:
    """
    Temporarily set the given context vars; previous values are restored on exit.
    Unknown field names raise KeyError.
    """
    unknown = set(fields) - set(_VARS)
    if unknown:
        raise KeyError(f"unknown request context fields: {sorted(unknown)}")
    tokens = [(_VARS[name], _VARS[name].set(value)) for name, value in fields.items()]
    try:
        yield
    finally:
        for var, tok in reversed(tokens):
            var.reset(tok)
