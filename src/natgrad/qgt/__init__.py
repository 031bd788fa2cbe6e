"""Quantum geometric tensor module."""
from __future__ import annotations

from natgrad.qgt.jacobian import Jacobian, dense_T
from natgrad.qgt.qgt import QGT, ParameterSpace, SampleSpace, dense_S
from natgrad.qgt.solvers import DEFAULT_TOL, CGInfo, solve_cg, solve_eigh

__all__ = [
    "Jacobian",
    "dense_T",
    "dense_S",
    "QGT",
    "ParameterSpace",
    "SampleSpace",
    "CGInfo",
    "DEFAULT_TOL",
    "solve_cg",
    "solve_eigh",
]
