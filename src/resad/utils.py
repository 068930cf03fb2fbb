import numba
import numpy as np

__all__ = ["clip", "chop_increment", "safe_relative_norm"]


@numba.vectorize(cache=True)
def clip(val, min_, max_):
    return np.maximum(np.minimum(val, max_), min_)


@numba.vectorize(cache=True)
def chop_increment(increment, limit):
    """
    Cap the magnitude of `increment` at `limit`, keeping its sign.

    A NaN limit (e.g. `inf * 0` for a relative limit on a zero value) leaves
    the increment unchanged.
    """
    if limit != limit:
        return increment
    if increment > limit:
        return limit
    if increment < -limit:
        return -limit
    return increment


def safe_relative_norm(increment: np.ndarray, reference: np.ndarray) -> float:
    """`max|increment| / max|reference|`, or `max|increment|` when the reference is zero."""
    increment = np.asarray(increment, dtype=np.float64)
    if increment.size == 0:
        return 0.0
    numerator = float(np.max(np.abs(increment)))
    reference = np.asarray(reference, dtype=np.float64)
    denominator = float(np.max(np.abs(reference))) if reference.size else 0.0
    if denominator == 0.0:
        return numerator
    return numerator / denominator
