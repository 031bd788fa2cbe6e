"""Pluggable solvers for the natural-gradient linear system."""
from __future__ import annotations

from natgrad.preconditioners.preconditioners import EigenSolver, KrylovSolver, Solver
from natgrad.qgt.solvers import solve_cg, solve_eigh

__all__ = [
    "Solver",
    "EigenSolver",
    "KrylovSolver",
    "solve_cg",
    "solve_eigh",
]
