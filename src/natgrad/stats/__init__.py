"""Sample statistics for local energies."""
from __future__ import annotations

from natgrad.stats.energy import CENTERING_MODES, EnergySummary, check_centering_mode
from natgrad.stats.outliers import remove_outliers
from natgrad.stats.weighted import (
    normalize_weights,
    weighted_mean,
    weighted_mean_and_var,
    weighted_var,
)

__all__ = [
    "CENTERING_MODES",
    "EnergySummary",
    "check_centering_mode",
    "remove_outliers",
    "normalize_weights",
    "weighted_mean",
    "weighted_mean_and_var",
    "weighted_var",
]
