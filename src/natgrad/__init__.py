"""Stochastic-reconfiguration (natural-gradient) core for variational Monte Carlo."""
from __future__ import annotations

from natgrad import config  # noqa: F401 - JAX config must be imported first
from natgrad.core import NaturalGradient, tdvp_error, tdvp_relative_error
from natgrad.preconditioners import EigenSolver, KrylovSolver, Solver
from natgrad.qgt import QGT, Jacobian, ParameterSpace, SampleSpace, dense_S, dense_T
from natgrad.stats import EnergySummary, remove_outliers

__all__ = [
    "NaturalGradient",
    "EnergySummary",
    "Jacobian",
    "QGT",
    "ParameterSpace",
    "SampleSpace",
    "dense_S",
    "dense_T",
    "Solver",
    "EigenSolver",
    "KrylovSolver",
    "remove_outliers",
    "tdvp_error",
    "tdvp_relative_error",
]
