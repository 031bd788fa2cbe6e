"""Natural-gradient (stochastic reconfiguration) step object.

A :class:`NaturalGradient` is built from one batch of samples, handed to
exactly one solver, read by the caller and discarded. Its derived fields are
staged: the gradient is computed lazily once, ``theta_dot`` is filled in by a
solver and the TDVP error can only be evaluated after that.
"""
from __future__ import annotations

from natgrad import config  # noqa: F401 - JAX config must be imported first

import logging
import time
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

import jax
import jax.numpy as jnp
import numpy as np

from natgrad.core.diagnostics import tdvp_error, tdvp_relative_error
from natgrad.qgt.jacobian import Jacobian
from natgrad.stats.energy import EnergySummary
from natgrad.stats.outliers import remove_outliers
from natgrad.stats.weighted import normalize_weights

if TYPE_CHECKING:
    from natgrad.preconditioners import Solver

logger = logging.getLogger(__name__)

__all__ = ["NaturalGradient", "REQUIRED_SAMPLER_KEYS", "OPTIONAL_SAMPLER_KEYS"]

REQUIRED_SAMPLER_KEYS = ("Eks", "Oks", "log_psis", "samples")
OPTIONAL_SAMPLER_KEYS = ("weights",)


def _ndim(x) -> int:
    """Array rank of ``x``, reading nested lists and tuples as extra axes."""
    if isinstance(x, (list, tuple)):
        return 1 + (_ndim(x[0]) if len(x) else 0)
    return np.ndim(x)


def _unpack_oks(Oks) -> tuple[Any, Any]:
    # A tuple whose first entry is a whole matrix carries (Oks, Oks_mean);
    # a tuple of 1-D rows is the per-sample data itself.
    if not isinstance(Oks, tuple) or not Oks or _ndim(Oks[0]) != 2:
        return Oks, None
    if len(Oks) != 2 or _ndim(Oks[1]) != 1:
        raise ValueError(
            "Oks should be a tuple with 2 elements, (Oks, Oks_mean), with a 1-D "
            f"mean; got {len(Oks)} elements"
        )
    return Oks


def _unpack_eks(Eks) -> tuple[Any, Any, Any]:
    # Same rule: a leading vector means (Eks, Eks_mean, Eks_var), scalars mean data.
    if not isinstance(Eks, tuple) or not Eks or _ndim(Eks[0]) != 1:
        return Eks, None, None
    if len(Eks) != 3 or _ndim(Eks[1]) != 0 or _ndim(Eks[2]) != 0:
        raise ValueError(
            "Eks should be a tuple with 3 elements, (Eks, Eks_mean, Eks_var), with "
            f"scalar statistics; got {len(Eks)} elements"
        )
    return Eks


class NaturalGradient:
    """Samples, Jacobian and energies of one SR step plus the derived update."""

    def __init__(
        self,
        samples,
        jacobian: Jacobian,
        energy: EnergySummary,
        log_psis,
        *,
        importance_weights: jax.Array | None = None,
        saved_properties: dict[str, Any] | None = None,
    ):
        if jacobian.n_samples != len(energy):
            raise ValueError(
                f"Jacobian has {jacobian.n_samples} samples but the energy "
                f"summary has {len(energy)}"
            )
        self.samples = samples
        self.jacobian = jacobian
        self.energy = energy
        self.log_psis = jnp.asarray(log_psis)
        self.importance_weights = importance_weights
        self.saved_properties = {} if saved_properties is None else saved_properties
        self._grad: jax.Array | None = None
        self._theta_dot: jax.Array | None = None
        self._tdvp_error: float | None = None

    # ------------------------------------------------------------------ #
    # Construction
    # ------------------------------------------------------------------ #

    @classmethod
    def from_arrays(
        cls,
        Oks,
        Eks,
        log_psis,
        samples,
        *,
        importance_weights=None,
        Eks_mean=None,
        Eks_var=None,
        Oks_mean=None,
        solver: "Solver | None" = None,
        discard_outliers: float = 0.0,
        verbose: bool = True,
        saved_properties: dict[str, Any] | None = None,
    ) -> "NaturalGradient":
        """Build a step from raw sampler arrays.

        Args:
            Oks: (n_samples, n_params) log-derivatives or a sequence of
                per-sample parameter vectors.
            Eks: Per-sample local energies.
            log_psis: Per-sample log-amplitudes.
            samples: Sample configurations, passed through untouched.
            importance_weights: Non-negative per-sample weights; rescaled to
                mean 1 here.
            Eks_mean, Eks_var, Oks_mean: Precomputed statistics from the
                sampler; used verbatim instead of recomputing.
            solver: Applied immediately if given.
            discard_outliers: Fraction of most extreme energies to drop.
            verbose: Log outlier removal.
            saved_properties: Extra sampler outputs kept for the caller.
        """
        if importance_weights is not None:
            importance_weights = normalize_weights(importance_weights)

        if discard_outliers > 0:
            Eks, Oks, log_psis, samples, importance_weights = remove_outliers(
                Eks,
                Oks,
                log_psis,
                samples,
                importance_weights,
                cut=discard_outliers,
                verbose=verbose,
            )

        energy = EnergySummary.from_samples(
            Eks, importance_weights=importance_weights, mean=Eks_mean, var=Eks_var
        )
        jacobian = Jacobian.from_samples(
            Oks, importance_weights=importance_weights, mean=Oks_mean
        )
        ng = cls(
            samples,
            jacobian,
            energy,
            log_psis,
            importance_weights=importance_weights,
            saved_properties=saved_properties,
        )

        if solver is not None:
            log_timing = logger.isEnabledFor(logging.INFO)
            t0 = time.perf_counter() if log_timing else 0.0
            solver(ng)
            if log_timing:
                jax.block_until_ready(ng.theta_dot)
                logger.info("solver %.3fs", time.perf_counter() - t0)
        return ng

    @classmethod
    def from_sampler(
        cls,
        theta,
        oks_and_eks: Callable[..., Mapping[str, Any]],
        sample_nr: int = 100,
        *,
        sampler_kwargs: Mapping[str, Any] | None = None,
        **kwargs,
    ) -> "NaturalGradient":
        """Sample with ``oks_and_eks(theta, sample_nr)`` and build the step.

        The sampler must return a mapping with keys ``"Eks"``, ``"Oks"``,
        ``"log_psis"`` and ``"samples"``, and may add ``"weights"``.
        ``"Oks"`` may be a pair ``(Oks, Oks_mean)`` and ``"Eks"`` a triple
        ``(Eks, Eks_mean, Eks_var)`` carrying precomputed statistics; they are
        told apart from tuples of per-sample values by the rank of the first
        entry (a matrix for ``Oks``, a vector for ``Eks``). Any other
        key ends up in ``saved_properties``. Remaining keyword arguments are
        forwarded to :meth:`from_arrays`.
        """
        log_timing = logger.isEnabledFor(logging.INFO)
        t0 = time.perf_counter() if log_timing else 0.0
        out = oks_and_eks(theta, sample_nr, **(sampler_kwargs or {}))
        if log_timing:
            logger.info("Oks_and_Eks %.3fs", time.perf_counter() - t0)

        for key in REQUIRED_SAMPLER_KEYS:
            if key not in out:
                raise KeyError(f"Oks_and_Eks should return a mapping with key {key!r}")

        if "weights" in out:
            kwargs["importance_weights"] = out["weights"]
        kwargs["saved_properties"] = {
            key: value
            for key, value in out.items()
            if key not in REQUIRED_SAMPLER_KEYS + OPTIONAL_SAMPLER_KEYS
        }

        Oks, Oks_mean = _unpack_oks(out["Oks"])
        Eks, Eks_mean, Eks_var = _unpack_eks(out["Eks"])
        if Oks_mean is not None:
            kwargs["Oks_mean"] = Oks_mean
        if Eks_mean is not None:
            kwargs["Eks_mean"] = Eks_mean
        if Eks_var is not None:
            kwargs["Eks_var"] = Eks_var

        return cls.from_arrays(Oks, Eks, out["log_psis"], out["samples"], **kwargs)

    # ------------------------------------------------------------------ #
    # Staged fields
    # ------------------------------------------------------------------ #

    def __len__(self) -> int:
        return len(self.energy)

    @property
    def n_parameters(self) -> int:
        return self.jacobian.n_parameters

    @property
    def grad(self) -> jax.Array:
        return self.gradient()

    def gradient(self) -> jax.Array:
        """Energy gradient ``J^H (E - <E>) * 2 / N``, computed once."""
        if self._grad is None:
            J = self.jacobian.centered()
            self._grad = (J.conj().T @ self.energy.centered()) * (2 / len(self))
        return self._grad

    @property
    def theta_dot(self) -> jax.Array | None:
        return self._theta_dot

    def set_theta_dot(self, theta_dot) -> None:
        """Store the update direction; a previous TDVP error becomes stale."""
        theta_dot = jnp.asarray(theta_dot).reshape(-1)
        if theta_dot.shape != (self.n_parameters,):
            raise ValueError(
                f"theta_dot must have {self.n_parameters} entries, got {theta_dot.shape[0]}"
            )
        self._theta_dot = theta_dot
        self._tdvp_error = None

    def get_theta_dot(self, dtype=jnp.complex128) -> jax.Array:
        """Update direction cast to the parameter dtype.

        Real parameter types take the real part of a complex direction.
        """
        theta_dot = self._require_theta_dot()
        if jnp.issubdtype(dtype, jnp.complexfloating):
            return theta_dot.astype(dtype)
        return jnp.real(theta_dot).astype(dtype)

    @property
    def tdvp_error(self) -> float | None:
        return self._tdvp_error

    def _require_theta_dot(self) -> jax.Array:
        if self._theta_dot is None:
            raise RuntimeError(
                "theta_dot is not set; apply a solver to this NaturalGradient first"
            )
        return self._theta_dot

    def evaluate_tdvp_error(self, control: "NaturalGradient | None" = None) -> float:
        """TDVP error of ``theta_dot``, on an independent ``control`` batch if given."""
        theta_dot = self._require_theta_dot()
        ref = self if control is None else control
        return tdvp_error(ref.jacobian, ref.energy, ref.gradient() / 2, theta_dot)

    def compute_tdvp_error(self, control: "NaturalGradient | None" = None) -> float:
        """Evaluate the TDVP error and store it on this object."""
        self._tdvp_error = self.evaluate_tdvp_error(control)
        return self._tdvp_error

    def tdvp_relative_error(self, control: "NaturalGradient | None" = None) -> float:
        theta_dot = self._require_theta_dot()
        ref = self if control is None else control
        return tdvp_relative_error(ref.jacobian, ref.energy, theta_dot)

    def __repr__(self) -> str:
        return f"NaturalGradient({self.energy!r}, tdvp_error={self._tdvp_error})"
