"""
Gaussian wave packet: closed-form free-particle solution.

Natural units: ℏ = 1, m = 1.

For a packet centred at x0 with width w and wave number k:

    θ(t) = ½·atan(2t/w²)        φ = −θ − k²t/2
    a = w⁴ + 4t²                b = (x − x0 − kt)²
    c = φ + k(x − x0) + 2t·b/a

    Ψ(x, t) = (2w²/(πa))^¼ · exp(−b·w²/a) · (cos c + i sin c)

At t = 0 this is the normalised Gaussian (2/(πw²))^¼ exp(−(x−x0)²/w²) e^{ik(x−x0)}.
It seeds the integrator buffers and doubles as the exact reference for
free-particle runs.
"""

import math
from dataclasses import dataclass

import numpy as np

from .errors import PreconditionError


def free_particle(x, t, x0, w, k):
    """Ψ(x, t) of a free Gaussian packet, as a complex array."""
    x = np.asarray(x, dtype=np.float64)
    w2 = w * w
    theta = 0.5 * np.arctan(2.0 * t / w2)
    phi = -theta - k * k * t / 2.0
    a = w2 * w2 + 4.0 * t * t
    dX = x - x0
    b = (dX - k * t) ** 2
    c = phi + k * dX + 2.0 * t * b / a
    magnitude = (2.0 * w2 / (np.pi * a)) ** 0.25 * np.exp(-b * w2 / a)
    return magnitude * (np.cos(c) + 1j * np.sin(c))


def to_pairs(psi):
    """Complex array → (n, 2) array of (re, im)."""
    out = np.empty((len(psi), 2))
    out[:, 0] = psi.real
    out[:, 1] = psi.imag
    return out


def staggered_pairs(at_t, at_half_step):
    """Re from the state at t, Im from the state at t + dt/2."""
    out = np.empty((len(at_t), 2))
    out[:, 0] = np.real(at_t)
    out[:, 1] = np.imag(at_half_step)
    return out


@dataclass(frozen=True)
class WavePacket:
    """Gaussian packet centred at x0 with width w and wave number k."""

    x0: float
    w: float
    k: float

    def __post_init__(self):
        for name in ("x0", "w", "k"):
            if not math.isfinite(getattr(self, name)):
                raise PreconditionError(name, "must be finite")
        if self.w <= 0:
            raise PreconditionError("w", f"packet width must be > 0, got {self.w}")

    @property
    def energy(self):
        """Kinetic energy of the carrier wave, k²/2."""
        return 0.5 * self.k * self.k

    @property
    def phase_velocity(self):
        return math.sqrt(0.5 * self.energy)

    def evaluate(self, grid, t=0.0):
        return free_particle(grid.x, t, self.x0, self.w, self.k)

    def staggered_buffer(self, grid, t=0.0):
        """Re Ψ at t with Im Ψ at t + Δt/2, the staggered-time layout."""
        return staggered_pairs(self.evaluate(grid, t), self.evaluate(grid, t + 0.5 * grid.dt))
