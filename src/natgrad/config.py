"""Process-wide settings for natgrad.

Importing this module switches JAX to 64-bit floats, which the QGT solves
rely on, and sets up logging. Every natgrad module imports it before touching
JAX so that no array is created in single precision first.
"""
from __future__ import annotations

import logging
import os

from jax import config

config.update("jax_enable_x64", True)

LOG_LEVEL_ENV = "NATGRAD_LOG_LEVEL"


def log_level() -> int:
    """Level named by ``NATGRAD_LOG_LEVEL``; WARNING when unset or unknown."""
    name = os.environ.get(LOG_LEVEL_ENV, "WARNING").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.WARNING


def setup_logging() -> None:
    """Attach a root handler at :func:`log_level`.

    WARNING shows only CG non-convergence. INFO adds the sampler and solver
    timings of each step, outlier removal and per-cycle CG residuals.
    DEBUG adds the eigen solve residual, which costs an extra matvec.
    Applications that configure logging themselves keep their handlers.
    """
    logging.basicConfig(
        level=log_level(),
        format="%(name)s - %(levelname)s - %(message)s",
    )


setup_logging()
