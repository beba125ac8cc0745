"""
Simulation grid for the 1D FDTD Schrödinger engine.

Natural units: ℏ = 1, m = 1.

The grid holds N samples on [0, L] with x_i = i·dx, dx = L/(N−1).
dx is always derived from L and N, never stored.

Stability of the explicit schemes is set by the spectral radius of

    H = −½ ∂²/∂x² + V

on the grid: its eigenvalues lie in [min V, 2/dx² + max V].
"""

import math
from dataclasses import dataclass, field

import numpy as np

from .errors import PreconditionError


def _require_positive(name, value):
    if not math.isfinite(value) or value <= 0:
        raise PreconditionError(name, f"must be a finite number > 0, got {value!r}")


def spectral_radius(dx, v_min=0.0, v_max=0.0):
    """Largest |λ| of the discrete Hamiltonian with potential in [v_min, v_max]."""
    return max(abs(v_min), abs(2.0 / (dx * dx) + v_max))


def max_stable_dt(dx, potential=None, factor=1.0):
    """
    Largest Δt keeping an explicit scheme bounded.

    factor = 1 for leapfrog (dt·λ < 1) and 2 for the staggered scheme
    (−2/dt ≤ λ ≤ 2/dt). For V = 0 these reduce to dx²/2 and dx².
    """
    _require_positive("dx", dx)
    if potential is None or len(potential) == 0:
        v_min = v_max = 0.0
    else:
        v_min, v_max = float(np.min(potential)), float(np.max(potential))
    return factor / spectral_radius(dx, v_min, v_max)


@dataclass(frozen=True)
class GridParameters:
    """Immutable simulation constants: Δt, N, L and V[N]."""

    dt: float
    n: int
    length: float
    potential: np.ndarray = field(default=None, compare=False, repr=False)

    def __post_init__(self):
        if isinstance(self.n, bool) or int(self.n) != self.n:
            raise PreconditionError("n", f"must be an integer, got {self.n!r}")
        if self.n < 3:
            raise PreconditionError("n", f"needs at least 3 grid points, got {self.n}")
        _require_positive("dt", self.dt)
        _require_positive("length", self.length)

        if self.potential is None:
            V = np.zeros(int(self.n))
        else:
            V = np.array(self.potential, dtype=np.float64).reshape(-1)
        if V.shape[0] != self.n:
            raise PreconditionError(
                "potential", f"expected {self.n} samples, got {V.shape[0]}")
        if not np.all(np.isfinite(V)):
            raise PreconditionError("potential", "contains non-finite values")
        V.flags.writeable = False

        object.__setattr__(self, "n", int(self.n))
        object.__setattr__(self, "dt", float(self.dt))
        object.__setattr__(self, "length", float(self.length))
        object.__setattr__(self, "potential", V)

    def __eq__(self, other):
        if not isinstance(other, GridParameters):
            return NotImplemented
        return ((self.dt, self.n, self.length) == (other.dt, other.n, other.length)
                and np.array_equal(self.potential, other.potential))

    @classmethod
    def from_function(cls, dt, n, length, V_func):
        """Sample V_func(x) on the grid."""
        if n < 3:
            raise PreconditionError("n", f"needs at least 3 grid points, got {n}")
        x = np.arange(n) * (length / (n - 1))
        return cls(dt, n, length, V_func(x))

    @property
    def dx(self):
        return self.length / (self.n - 1)

    @property
    def x(self):
        return np.arange(self.n) * self.dx

    def spectral_radius(self):
        return spectral_radius(self.dx, float(self.potential.min()),
                               float(self.potential.max()))

    def max_stable_dt(self, factor=1.0):
        return max_stable_dt(self.dx, self.potential, factor)

    def with_dt(self, dt):
        """Same grid and potential with a different time step."""
        return GridParameters(dt, self.n, self.length, self.potential)
