"""Quantum geometric tensor (Fisher matrix) with lazy matvec."""
from __future__ import annotations

from natgrad import config  # noqa: F401 - JAX config must be imported first

from dataclasses import dataclass
from typing import Any

import jax
import jax.numpy as jnp
from jax.tree_util import Partial
from plum import dispatch

from natgrad.qgt.jacobian import Jacobian

__all__ = ["QGT", "ParameterSpace", "SampleSpace", "dense_S"]

_HIGHEST = jax.lax.Precision.HIGHEST


@dataclass(frozen=True)
class ParameterSpace:
    """J†J / N formulation (n_params x n_params)."""

    pass


@dataclass(frozen=True)
class SampleSpace:
    """JJ† / N formulation (n_samples x n_samples)."""

    pass


# Leafless pytrees, so a space can ride along in an operator passed to jax.jit.
for _space in (ParameterSpace, SampleSpace):
    jax.tree_util.register_dataclass(_space, data_fields=[], meta_fields=[])


@dataclass
class QGT:
    """Lazy S + diag_shift * I built on the centered Jacobian.

    Only matrix-vector products are exposed to iterative solvers; the dense
    matrix is built on request by :meth:`to_dense`.
    """

    jac: Jacobian
    space: ParameterSpace | SampleSpace = ParameterSpace()
    diag_shift: float = 0.0

    @property
    def shape(self) -> tuple[int, int]:
        n = _dim(self.jac, self.space)
        return (n, n)

    def operator(self) -> Partial:
        """``v -> (S + diag_shift) v`` as a pytree callable that can cross ``jax.jit``."""
        return Partial(
            _shifted_matvec, self.space, self.jac.centered(), jnp.asarray(self.diag_shift)
        )

    def __matmul__(self, v):
        """S @ v without building S explicitly."""
        return self.operator()(jnp.asarray(v))

    def to_dense(self) -> jax.Array:
        """Build explicit S matrix."""
        S = _to_dense(self.space, self.jac.centered())
        if self.diag_shift:
            S = S + self.diag_shift * jnp.eye(S.shape[0], dtype=S.dtype)
        return S


@dispatch
def _dim(jac: Jacobian, space: ParameterSpace) -> int:
    return jac.n_parameters


@dispatch
def _dim(jac: Jacobian, space: SampleSpace) -> int:
    return jac.n_samples


# --------------------------------------------------------------------------- #
# Matvec dispatch
# --------------------------------------------------------------------------- #


@dispatch
def _matvec(space: ParameterSpace, J: Any, v: Any) -> jax.Array:
    return (J.conj().T @ (J @ v)) / J.shape[0]


@dispatch
def _matvec(space: SampleSpace, J: Any, v: Any) -> jax.Array:
    return (J @ (J.conj().T @ v)) / J.shape[0]


def _shifted_matvec(space, J, diag_shift, v):
    return _matvec(space, J, v) + diag_shift * v


# --------------------------------------------------------------------------- #
# to_dense dispatch
# --------------------------------------------------------------------------- #


@dispatch
def _to_dense(space: ParameterSpace, J: Any) -> jax.Array:
    return jnp.matmul(J.conj().T, J, precision=_HIGHEST) / J.shape[0]


@dispatch
def _to_dense(space: SampleSpace, J: Any) -> jax.Array:
    return jnp.matmul(J, J.conj().T, precision=_HIGHEST) / J.shape[0]


def dense_S(jac: Jacobian) -> jax.Array:
    """Parameter-space Fisher matrix ``J^H J / N`` of shape (n_params, n_params)."""
    return QGT(jac, space=ParameterSpace()).to_dense()
