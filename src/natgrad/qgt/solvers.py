"""Linear solvers for QGT systems."""
from __future__ import annotations

from natgrad import config  # noqa: F401 - JAX config must be imported first

import functools
import logging
from dataclasses import dataclass

import jax
import jax.numpy as jnp
import jax.scipy.sparse.linalg as jspsl
import numpy as np
from jax.tree_util import Partial
from plum import dispatch

from natgrad.qgt.qgt import QGT

logger = logging.getLogger(__name__)

__all__ = ["CGInfo", "DEFAULT_TOL", "solve_cg", "solve_eigh"]

# Relative residual target used when no positive tolerance is configured.
DEFAULT_TOL = 1e-12


@dataclass(frozen=True)
class CGInfo:
    """Convergence record of a restarted conjugate-gradient solve.

    ``residual_history`` holds the true residual norm before the first cycle
    and after every cycle, so it has ``n_cycles + 1`` entries.
    """

    converged: bool
    n_cycles: int
    n_restarts: int
    residual_norm: float
    residual_history: jax.Array


@dispatch
def _as_operator(A: jax.Array | np.ndarray):
    return jnp.asarray(A)


@dispatch
def _as_operator(A: QGT):
    return A.operator()


@dispatch
def _as_operator(A: Partial):
    return A


@dispatch
def _as_operator(A: object):
    if not callable(A):
        raise TypeError(
            f"A must be a matrix, a QGT or a callable v -> A v, got {type(A).__name__}"
        )
    return Partial(A)


def _apply(op, v: jax.Array) -> jax.Array:
    return op(v) if callable(op) else op @ v


@jax.jit
def _residual(op, b: jax.Array, x: jax.Array) -> jax.Array:
    return b - _apply(op, x)


@functools.partial(jax.jit, static_argnames=("tol", "maxiter"))
def _cg_cycle(op, b: jax.Array, x0: jax.Array, *, tol: float, maxiter: int) -> jax.Array:
    x, _ = jspsl.cg(op, b, x0=x0, tol=tol, maxiter=maxiter)
    return x


def solve_cg(
    A,
    b: jax.Array,
    *,
    x0: jax.Array | None = None,
    tol: float = 1e-5,
    krylovdim: int = 200,
    maxiter: int = 100,
    verbose: bool = False,
) -> tuple[jax.Array, CGInfo]:
    """Solve the Hermitian positive-definite system ``A x = b`` with restarted CG.

    Each cycle is ``jax.scipy.sparse.linalg.cg`` with at most ``krylovdim``
    iterations, warm-started from the previous iterate.

    Args:
        A: Matrix, :class:`QGT`, or callable ``v -> A v``.
        b: Right-hand side.
        x0: Initial guess (zeros by default).
        tol: Relative residual target ``||b - A x|| <= tol * ||b||``. Values
            ``<= 0`` select ``DEFAULT_TOL``.
        krylovdim: Iterations per cycle before restarting.
        maxiter: Maximum number of cycles.
        verbose: Log the residual after every cycle.

    Returns:
        The best available solution and a :class:`CGInfo`. Running out of
        cycles is not an error: ``info.converged`` is False in that case.
    """
    op = _as_operator(A)
    b = jnp.asarray(b)
    x = jnp.zeros_like(b) if x0 is None else jnp.asarray(x0)
    r = _residual(op, b, x)
    dtype = jnp.result_type(b, r)
    b, x = b.astype(dtype), x.astype(dtype)

    rel_tol = tol if tol > 0 else DEFAULT_TOL
    threshold = rel_tol * float(jnp.linalg.norm(b))

    residual_norm = float(jnp.linalg.norm(r))
    history = [residual_norm]
    converged = residual_norm <= threshold
    n_cycles = 0
    while not converged and n_cycles < maxiter:
        x = _cg_cycle(op, b, x, tol=rel_tol, maxiter=krylovdim)
        n_cycles += 1
        residual_norm = float(jnp.linalg.norm(_residual(op, b, x)))
        history.append(residual_norm)
        converged = residual_norm <= threshold
        if verbose:
            logger.info(
                "CG cycle %d: residual %.3e (target %.3e)",
                n_cycles,
                residual_norm,
                threshold,
            )

    if not converged:
        logger.warning(
            "CG did not converge after %d cycles of %d iterations: "
            "residual %.3e, target %.3e",
            n_cycles,
            krylovdim,
            residual_norm,
            threshold,
        )
    info = CGInfo(
        converged=converged,
        n_cycles=n_cycles,
        n_restarts=max(n_cycles - 1, 0),
        residual_norm=residual_norm,
        residual_history=jnp.asarray(history),
    )
    return x, info


@functools.partial(jax.jit, static_argnames=("cutoff",))
def solve_eigh(mat: jax.Array, rhs: jax.Array, *, cutoff: float = 1e-6) -> jax.Array:
    """Solve a Hermitian system in its eigenbasis.

    Eigenvalues with ``|lambda| <= cutoff * max|lambda|`` are dropped, which
    gives the pseudo-inverse on the well-conditioned subspace.
    """
    ev, V = jnp.linalg.eigh(mat)
    threshold = cutoff * jnp.max(jnp.abs(ev))
    keep = jnp.abs(ev) > threshold
    ev_inv = jnp.where(keep, 1.0 / jnp.where(keep, ev, 1.0), 0.0)
    return V @ (ev_inv * (V.conj().T @ rhs))
