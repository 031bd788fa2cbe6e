"""Solvers turning a NaturalGradient into an update direction.

Every solver finds ``x`` with ``(S + diagshift * I) x = grad / 2`` and stores
``theta_dot = -x`` on the step, followed by its TDVP error.
"""
from __future__ import annotations

from natgrad import config  # noqa: F401 - JAX config must be imported first

import abc
import logging

import jax
import jax.numpy as jnp
from plum import dispatch

from natgrad.core.natural_gradient import NaturalGradient
from natgrad.qgt import QGT, CGInfo, ParameterSpace, SampleSpace, solve_cg, solve_eigh

logger = logging.getLogger(__name__)

__all__ = [
    "Solver",
    "EigenSolver",
    "KrylovSolver",
]


class Solver(abc.ABC):
    """Strategy producing the natural-gradient update of one step."""

    @abc.abstractmethod
    def solve(self, ng: NaturalGradient) -> jax.Array:
        """Return ``x`` solving ``(S + diagshift * I) x = grad / 2``."""

    def __call__(self, ng: NaturalGradient) -> NaturalGradient:
        x = self.solve(ng)
        ng.set_theta_dot(-x)
        ng.compute_tdvp_error()
        return ng


# --------------------------------------------------------------------------- #
# Direct solve dispatch
# --------------------------------------------------------------------------- #


@dispatch
def _direct_solve(
    space: ParameterSpace,
    ng: NaturalGradient,
    diag_shift: float,
    cutoff: float,
) -> tuple[jax.Array, dict]:
    rhs = ng.gradient() / 2
    mat = QGT(ng.jacobian, space=space, diag_shift=diag_shift).to_dense()
    x = solve_eigh(mat, rhs, cutoff=cutoff)
    metrics = {
        "residual_error": jnp.linalg.norm(mat @ x - rhs) ** 2 / jnp.linalg.norm(rhs) ** 2,
    }
    return x, metrics


@dispatch
def _direct_solve(
    space: SampleSpace,
    ng: NaturalGradient,
    diag_shift: float,
    cutoff: float,
) -> tuple[jax.Array, dict]:
    dv = ng.energy.centered() / len(ng)
    mat = QGT(ng.jacobian, space=space, diag_shift=diag_shift).to_dense()
    y = solve_eigh(mat, dv, cutoff=cutoff)
    x = ng.jacobian.centered().conj().T @ y
    metrics = {
        "residual_error": jnp.linalg.norm(mat @ y - dv) ** 2 / jnp.linalg.norm(dv) ** 2,
    }
    return x, metrics


class EigenSolver(Solver):
    """Dense solve through the eigendecomposition of the (shifted) QGT.

    Eigenvalues below ``cutoff`` times the largest one are discarded. In
    ``SampleSpace`` the equivalent n_samples x n_samples system is solved,
    which is cheaper when there are fewer samples than parameters.
    """

    def __init__(
        self,
        cutoff: float = 1e-6,
        diagshift: float = 0.0,
        space: ParameterSpace | SampleSpace = ParameterSpace(),
    ):
        self.cutoff = float(cutoff)
        self.diagshift = float(diagshift)
        self.space = space
        self._metrics: dict = {}

    @property
    def residual_error(self) -> jax.Array | None:
        """Return residual error from last solve."""
        return self._metrics.get("residual_error")

    def solve(self, ng: NaturalGradient) -> jax.Array:
        x, self._metrics = _direct_solve(self.space, ng, self.diagshift, self.cutoff)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Eigen solve in %s: residual error %.3e",
                type(self.space).__name__,
                float(self._metrics["residual_error"]),
            )
        return x

    def __repr__(self) -> str:
        return (
            f"EigenSolver(cutoff={self.cutoff}, diagshift={self.diagshift}, "
            f"space={type(self.space).__name__}())"
        )


class KrylovSolver(Solver):
    """Matrix-free conjugate-gradient solve of the shifted QGT system.

    S is never formed: CG only sees ``v -> J^H (J v) / N + diagshift * v``,
    which is Hermitian positive definite for ``diagshift > 0``.

    Args:
        diagshift: Diagonal regularization added to S.
        tol: Relative residual target; ``<= 0`` uses ``DEFAULT_TOL``.
        krylovdim: CG iterations per cycle before a restart.
        maxiter: Maximum number of restart cycles.
        verbose: Log the residual after every cycle.
        save_info: Keep the :class:`CGInfo` of the last solve in ``info``.
            Not safe to share between concurrent solves.
    """

    def __init__(
        self,
        diagshift: float = 1e-5,
        tol: float = 1e-5,
        krylovdim: int = 200,
        maxiter: int = 100,
        verbose: bool = False,
        save_info: bool = False,
    ):
        self.diagshift = float(diagshift)
        self.tol = float(tol)
        self.krylovdim = int(krylovdim)
        self.maxiter = int(maxiter)
        self.verbose = verbose
        self.save_info = save_info
        self.info: CGInfo | None = None

    def solve(self, ng: NaturalGradient) -> jax.Array:
        qgt = QGT(ng.jacobian, space=ParameterSpace(), diag_shift=self.diagshift)
        grad_half = ng.gradient() / 2
        x, info = solve_cg(
            qgt,
            grad_half,
            tol=self.tol,
            krylovdim=self.krylovdim,
            maxiter=self.maxiter,
            verbose=self.verbose,
        )
        if self.save_info:
            self.info = info
        return x

    def __repr__(self) -> str:
        return (
            f"KrylovSolver(diagshift={self.diagshift}, tol={self.tol}, "
            f"krylovdim={self.krylovdim}, maxiter={self.maxiter})"
        )
