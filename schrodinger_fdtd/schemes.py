"""
Time-step schemes and their buffer topologies.

Each scheme is a TimeStepKernel: it names the kernel entry points it needs,
how many buffers it cycles through, how to seed them from Ψ at one or two
instants, and which buffers each pass of a step reads and writes.

    ForwardEuler   2 buffers, ping-pong          step s: b[s%2] → b[(s+1)%2]
    Leapfrog       3 buffers, rotation           step s: b[s%3], b[(s+1)%3] → b[(s+2)%3]
    Staggered      psi + old, two passes         Re at t, Im at t + dt/2, in place
    FusedEuler     2 buffers, one dispatch runs `iterations` steps
"""

import math
from collections import namedtuple

import numpy as np

from .errors import PreconditionError
from .wavepacket import staggered_pairs, to_pairs

Pass = namedtuple("Pass", "entry bindings boundary boundary_bindings")


class TimeStepKernel:
    """Common buffer-rotation logic, parameterised by the scheme's history."""

    name = None
    n_buffers = 2
    # Instants (in units of dt after t0) the seeded states must describe.
    seed_times = (0.0,)
    # How far (in dt) the newest seeded state is ahead of t0.
    time_lead = 0
    steps_per_dispatch = 1
    stability_factor = 1.0
    fused = False
    # (dst, src) buffer copies made on the device after seeding.
    device_copies = ()
    # True when rendered() names a buffer that steps rewrite in place.
    renders_in_place = False

    def entries(self, boundary):
        raise NotImplementedError

    def layout(self, states):
        """Complex states at `seed_times` → host arrays for every buffer."""
        n = len(states[0])
        return [to_pairs(states[0])] + [np.zeros((n, 2)) for _ in range(self.n_buffers - 1)]

    def seed(self, grid, packet, t0=0.0):
        states = [packet.evaluate(grid, t0 + s * grid.dt) for s in self.seed_times]
        return self.layout(states)

    def passes(self, step, buffers, potential):
        raise NotImplementedError

    def rendered(self, step, buffers):
        return buffers[step % self.n_buffers]

    def dispatch_size(self, n, workgroup_size):
        """(local size, workgroup count) for the interior dispatch."""
        return workgroup_size, -(-n // workgroup_size)

    def max_stable_dt(self, grid):
        return grid.max_stable_dt(self.stability_factor)

    def __repr__(self):
        return f"{type(self).__name__}()"


class ForwardEuler(TimeStepKernel):
    """
    First order in time; two-buffer ping-pong.

    Forward Euler is unstable for every dt: each step multiplies a mode of
    frequency λ by √(1 + (λ·dt)²). max_stable_dt is therefore 0, and
    amplification() reports the per-step growth of the stiffest mode, which
    over s steps amounts to roughly exp(s·(λ·dt)²/2).
    """

    name = "euler"

    def max_stable_dt(self, grid):
        return 0.0

    def amplification(self, grid):
        return math.sqrt(1.0 + (grid.dt * grid.spectral_radius()) ** 2)

    def steps_within(self, grid, growth):
        """Largest step count keeping the stiffest mode's growth below `growth`."""
        x = grid.dt * grid.spectral_radius()
        return int(2.0 * math.log(growth) / math.log1p(x * x))

    def entries(self, boundary):
        return ["euler_step"] + (["mur_boundary"] if boundary else [])

    def passes(self, step, buffers, potential):
        src, dst = buffers[step % 2], buffers[(step + 1) % 2]
        return [Pass("euler_step", {"potential": potential, "psi": src, "updated": dst},
                     "mur_boundary", {"psi": src, "updated": dst})]


class Leapfrog(TimeStepKernel):
    """Central difference in time over three rotating buffers."""

    name = "leapfrog"
    n_buffers = 3
    seed_times = (0.0, 1.0)
    time_lead = 1

    def entries(self, boundary):
        return ["leapfrog_step"] + (["mur_boundary"] if boundary else [])

    def layout(self, states):
        n = len(states[0])
        return [to_pairs(states[0]), to_pairs(states[1]), np.zeros((n, 2))]

    def passes(self, step, buffers, potential):
        old = buffers[step % 3]
        cur = buffers[(step + 1) % 3]
        dst = buffers[(step + 2) % 3]
        return [Pass("leapfrog_step",
                     {"potential": potential, "old": old, "psi": cur, "updated": dst},
                     "mur_boundary", {"psi": cur, "updated": dst})]

    def rendered(self, step, buffers):
        return buffers[(step + 1) % 3]


class Staggered(TimeStepKernel):
    """
    Staggered-time leapfrog: one buffer holds Re Ψ(t) and Im Ψ(t + dt/2).

    A step is a real pass then an imaginary pass with a full barrier between
    them. `old` keeps the pre-update component for the boundary.
    """

    name = "staggered"
    seed_times = (0.0, 0.5)
    stability_factor = 2.0
    device_copies = ((1, 0),)
    renders_in_place = True

    def entries(self, boundary):
        names = ["staggered_real", "staggered_imag"]
        if boundary:
            names += ["mur_real", "mur_imag"]
        return names

    def layout(self, states):
        # `old` is filled from psi on the device
        return [staggered_pairs(states[0], states[1])]

    def seed(self, grid, packet, t0=0.0):
        return [packet.staggered_buffer(grid, t0)]

    def passes(self, step, buffers, potential):
        psi, old = buffers
        bindings = {"potential": potential, "psi": psi, "old": old}
        edges = {"psi": psi, "old": old}
        return [Pass("staggered_real", bindings, "mur_real", edges),
                Pass("staggered_imag", bindings, "mur_imag", edges)]

    def rendered(self, step, buffers):
        return buffers[0]


class FusedEuler(ForwardEuler):
    """
    First-order scheme with `iterations` steps fused into one dispatch.

    The whole grid is a single workgroup synchronised with barriers, so the
    grid size is bounded by the backend's workgroup limit and a stop request
    only takes effect between dispatches.
    """

    name = "fused"
    fused = True

    def __init__(self, iterations=250):
        if isinstance(iterations, bool) or int(iterations) != iterations or iterations < 1:
            raise PreconditionError("iterations", f"must be an integer >= 1, got {iterations!r}")
        self.steps_per_dispatch = int(iterations)

    @property
    def iterations(self):
        return self.steps_per_dispatch

    def entries(self, boundary):
        return ["fused_euler"]

    def passes(self, step, buffers, potential):
        src, dst = buffers[step % 2], buffers[(step + 1) % 2]
        return [Pass("fused_euler", {"potential": potential, "psi": src, "scratch": dst},
                     None, None)]

    def dispatch_size(self, n, workgroup_size):
        return n, 1

    def __repr__(self):
        return f"FusedEuler(iterations={self.iterations})"


SCHEMES = {cls.name: cls for cls in (ForwardEuler, Leapfrog, Staggered, FusedEuler)}


def get_scheme(scheme, iterations=None):
    """Resolve a scheme name (or pass through an instance)."""
    if isinstance(scheme, TimeStepKernel):
        return scheme
    try:
        cls = SCHEMES[scheme]
    except KeyError:
        raise PreconditionError(
            "scheme", f"unknown scheme {scheme!r}, expected one of {sorted(SCHEMES)}") from None
    if cls is FusedEuler and iterations is not None:
        return cls(iterations)
    return cls()
