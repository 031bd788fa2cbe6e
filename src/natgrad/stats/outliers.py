"""Discarding of extreme local-energy samples."""
from __future__ import annotations

from natgrad import config  # noqa: F401 - JAX config must be imported first

import logging

import jax
import jax.numpy as jnp
import numpy as np
from plum import dispatch

from natgrad.stats.weighted import weighted_mean

logger = logging.getLogger(__name__)

__all__ = ["remove_outliers", "take_samples"]


@dispatch
def take_samples(x: jax.Array | np.ndarray, keep: np.ndarray):
    """Select the rows ``keep`` of per-sample data, keeping its container type."""
    return x[keep]


@dispatch
def take_samples(x: list | tuple, keep: np.ndarray):
    return [x[int(i)] for i in keep]


@dispatch
def take_samples(x: object, keep: np.ndarray):
    # Opaque sample containers select their own rows.
    if not hasattr(x, "__getitem__"):
        raise TypeError(
            f"cannot select samples from {type(x).__name__}; sample containers "
            "must be arrays, lists, tuples or support indexing with an index array"
        )
    return x[keep]


def remove_outliers(
    Eks,
    Oks,
    log_psis,
    samples,
    importance_weights=None,
    *,
    cut: float,
    verbose: bool = False,
):
    """Drop the ``int(cut * N)`` samples whose energy deviates most from the mean.

    The deviation is ``|E - weighted_mean(E)|``. Survivors keep their relative
    order, and all per-sample inputs are sliced with the same indices.

    Returns:
        ``(Eks, Oks, log_psis, samples, importance_weights)`` restricted to the
        surviving samples.
    """
    if not 0.0 <= cut < 1.0:
        raise ValueError(f"cut must lie in [0, 1), got {cut}")
    eks = jnp.asarray(Eks).reshape(-1)
    n_samples = int(eks.shape[0])
    n_remove = int(cut * n_samples)
    if n_remove == 0:
        return Eks, Oks, log_psis, samples, importance_weights

    deviation = jnp.abs(eks - weighted_mean(eks, importance_weights))
    order = np.argsort(np.asarray(deviation), kind="stable")
    keep = np.sort(order[: n_samples - n_remove])

    if verbose:
        logger.info(
            "Discarded %d of %d samples (max |E - <E>| = %.6g, threshold %.6g)",
            n_remove,
            n_samples,
            float(deviation[order[-1]]),
            float(deviation[order[n_samples - n_remove - 1]]),
        )

    return (
        take_samples(Eks, keep),
        take_samples(Oks, keep),
        take_samples(log_psis, keep),
        take_samples(samples, keep),
        None
        if importance_weights is None
        else take_samples(jnp.asarray(importance_weights), keep),
    )
