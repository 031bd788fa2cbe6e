"""Core natural-gradient step and diagnostics."""
from __future__ import annotations

from natgrad.core.diagnostics import tdvp_error, tdvp_relative_error
from natgrad.core.natural_gradient import (
    OPTIONAL_SAMPLER_KEYS,
    REQUIRED_SAMPLER_KEYS,
    NaturalGradient,
)

__all__ = [
    "NaturalGradient",
    "REQUIRED_SAMPLER_KEYS",
    "OPTIONAL_SAMPLER_KEYS",
    "tdvp_error",
    "tdvp_relative_error",
]
