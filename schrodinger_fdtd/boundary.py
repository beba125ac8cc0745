"""
Mur absorbing boundary.

A discretised one-way wave equation ∂Ψ/∂t ± vp ∂Ψ/∂x = 0 at both edges,
centred half a cell in from the edge and half a step forward in time:

    Ψ_new[e] = Ψ_old[e'] + (vp·dt − dx)/(vp·dt + dx) · (Ψ_new[e'] − Ψ_old[e])

with e ∈ {0, N−1} and e' the point one step in. A plane wave with phase
velocity vp leaves the grid without reflection; other wave numbers k'
reflect with |R| ≈ |k − k'| / (k + k').

For a packet of energy E the phase velocity is ω/k = √(E/2) (m = 1, V = 0).
"""

import math
from dataclasses import dataclass

from .errors import PreconditionError


@dataclass(frozen=True)
class MurBoundary:
    """Stateless boundary update; holds only the phase velocity."""

    phase_velocity: float

    def __post_init__(self):
        if not math.isfinite(self.phase_velocity) or self.phase_velocity <= 0:
            raise PreconditionError(
                "phase_velocity", f"must be > 0, got {self.phase_velocity!r}")

    @classmethod
    def from_energy(cls, energy):
        if not math.isfinite(energy) or energy <= 0:
            raise PreconditionError("energy", f"must be > 0, got {energy!r}")
        return cls(math.sqrt(0.5 * energy))

    @classmethod
    def for_packet(cls, packet):
        return cls.from_energy(packet.energy)

    def coefficient(self, grid):
        """(vp·dt − dx)/(vp·dt + dx); zero when vp·dt == dx."""
        vdt = self.phase_velocity * grid.dt
        return (vdt - grid.dx) / (vdt + grid.dx)
