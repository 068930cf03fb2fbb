"""Working floating point precision and the tolerances derived from it."""

from contextlib import contextmanager
from contextvars import ContextVar

import numpy as np


__all__ = [
    "get_dtype",
    "with_precision",
    "get_floating_point_info",
    "get_switching_epsilon",
]

_working_dtype: ContextVar[np.typing.DTypeLike] = ContextVar(
    "_working_dtype", default=np.float64
)


def get_dtype() -> np.typing.DTypeLike:
    """Floating point type of the current context. `float64` unless overridden."""
    return _working_dtype.get()


@contextmanager
def with_precision(dtype: np.typing.DTypeLike):
    """
    Temporarily switch the floating point type.

    Example usage:
    ```python
    with with_precision(np.float32):
        epsilon = get_switching_epsilon()
    ```
    """
    token = _working_dtype.set(dtype)
    try:
        yield
    finally:
        _working_dtype.reset(token)


def get_floating_point_info() -> np.finfo:
    return np.finfo(get_dtype())  # type: ignore


def get_switching_epsilon() -> float:
    """
    Saturation used to mark a phase at the edge of appearing or disappearing.

    Equal to the square root of the machine epsilon of the working precision.
    """
    return float(np.sqrt(get_floating_point_info().eps))
