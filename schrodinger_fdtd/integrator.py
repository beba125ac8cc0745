"""
Time-evolution engine.

The Integrator owns every device buffer and compiled kernel of one run. A
step is a sequence of dispatches queued on the backend's command queue:

    for each pass of the scheme:
        interior kernel over all N points
        Mur boundary (2 invocations), when enabled
        full barrier

The step counter doubles as the rotation index and is bumped only after a
step's dispatches are issued, so `rendered_buffer` never names the
destination of an in-flight step.
"""

import threading
import warnings

import numpy as np

from .backend import ArrayBackend
from .boundary import MurBoundary
from .errors import (
    PreconditionError,
    UnstableTimeStepWarning,
    UnsupportedConfigurationError,
)
from .grid import GridParameters
from .schemes import get_scheme


def _count(name, value, minimum):
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)) or value < minimum:
        raise PreconditionError(name, f"must be an integer >= {minimum}, got {value!r}")
    return int(value)


class Integrator:
    """
    Steps a wave function forward with one scheme on one backend.

    Parameters
    ----------
    grid : GridParameters
    scheme : str or TimeStepKernel
        "euler", "leapfrog", "staggered" or "fused".
    backend : ComputeBackend, optional
        A CPU ArrayBackend is created (and later released) when omitted.
    boundary : MurBoundary, optional
        Absorbing edges. Without it the edges are clamped (closed box).
    workgroup_size : int
        Local size of the interior kernels.
    iterations : int, optional
        Steps per dispatch for the fused scheme.
    """

    def __init__(self, grid, scheme="leapfrog", backend=None, boundary=None,
                 workgroup_size=64, iterations=None):
        if not isinstance(grid, GridParameters):
            raise PreconditionError("grid", f"expected GridParameters, got {type(grid).__name__}")
        if boundary is not None and not isinstance(boundary, MurBoundary):
            raise PreconditionError("boundary", f"expected MurBoundary, got {type(boundary).__name__}")
        self.grid = grid
        self.scheme = get_scheme(scheme, iterations)
        self.boundary = boundary
        self.workgroup_size = _count("workgroup_size", workgroup_size, 1)

        self._owns_backend = backend is None
        self.backend = ArrayBackend() if backend is None else backend
        self._buffers = []
        self._kernels = {}
        self._potential = None
        self._released = False

        self._lock = threading.Lock()
        self._steps = 0
        self._t0 = 0.0
        self._generation = 0
        self._boundary_enabled = boundary is not None

        try:
            self.check_capabilities(self.backend, self.scheme, grid.n, self.workgroup_size)
            self._local_size, self._groups = self.scheme.dispatch_size(grid.n, self.workgroup_size)
            self.backend.run(self._setup)
        except Exception:
            self._discard()
            raise

        if self.max_stable_dt == 0.0:
            warnings.warn(
                f"{self.scheme.name} is unstable for every dt; the stiffest mode grows "
                f"by {self.scheme.amplification(grid):.6g} per step "
                f"(at most {self.scheme.steps_within(grid, 1e6)} steps for 1e6 growth)",
                UnstableTimeStepWarning, stacklevel=2)
        elif grid.dt > self.max_stable_dt:
            warnings.warn(
                f"dt = {grid.dt:g} exceeds the {self.scheme.name} stability limit "
                f"{self.max_stable_dt:g}; the solution will grow without bound",
                UnstableTimeStepWarning, stacklevel=2)

    # ── Capabilities ─────────────────────────────────────

    @staticmethod
    def check_capabilities(backend, scheme, n, workgroup_size=64):
        """Raise UnsupportedConfigurationError if the backend cannot run this."""
        scheme = get_scheme(scheme)
        local, _ = scheme.dispatch_size(n, workgroup_size)
        limit = backend.max_workgroup_size
        if local > limit:
            if scheme.fused:
                raise UnsupportedConfigurationError(
                    f"fused scheme runs the whole grid in one workgroup: "
                    f"N = {n} exceeds the backend limit of {limit}")
            raise UnsupportedConfigurationError(
                f"workgroup size {local} exceeds the backend limit of {limit}")

    @classmethod
    def supports(cls, backend, scheme, n, workgroup_size=64):
        try:
            cls.check_capabilities(backend, scheme, n, workgroup_size)
        except UnsupportedConfigurationError:
            return False
        return True

    # ── Resources (queue thread) ─────────────────────────

    def _setup(self):
        self._potential = self.backend.allocate(self.grid.n, components=1)
        self.backend.upload(self._potential, self.grid.potential)
        for _ in range(self.scheme.n_buffers):
            self._buffers.append(self.backend.allocate(self.grid.n))
        for entry in self.scheme.entries(self.boundary is not None):
            self._kernels[entry] = self.backend.compile(entry, self._local_size)

    def _free(self):
        for kernel in self._kernels.values():
            self.backend.release_kernel(kernel)
        for buffer in self._buffers:
            self.backend.release_buffer(buffer)
        if self._potential is not None:
            self.backend.release_buffer(self._potential)
        self._kernels = {}
        self._buffers = []
        self._potential = None

    def _discard(self):
        if not self.backend.released:
            self.backend.run(self._free)
        if self._owns_backend:
            self.backend.release()

    def release(self):
        """Free buffers and kernels, and the backend if this created it."""
        if self._released:
            return
        self.stop()
        self._released = True
        self._discard()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.release()

    def _check_open(self):
        if self._released:
            raise RuntimeError("Integrator has been released")

    # ── Seeding ──────────────────────────────────────────

    def initialize(self, packet, t0=0.0):
        """Seed every buffer from the packet's closed form at t0."""
        self._check_open()
        self._load(self.scheme.seed(self.grid, packet, t0), t0)

    def load(self, states, t0=0.0):
        """
        Seed from complex states sampled at t0 + seed_times·dt.

        Leapfrog needs (Ψ(t0), Ψ(t0 + dt)), staggered (Ψ(t0), Ψ(t0 + dt/2)),
        the first-order schemes just Ψ(t0).
        """
        self._check_open()
        expected = len(self.scheme.seed_times)
        if len(states) != expected:
            raise PreconditionError(
                "states", f"{self.scheme.name} needs {expected} state(s), got {len(states)}")
        arrays = []
        for state in states:
            state = np.asarray(state, dtype=np.complex128)
            if state.shape != (self.grid.n,):
                raise PreconditionError("states", f"expected shape ({self.grid.n},), got {state.shape}")
            arrays.append(state)
        self._load(self.scheme.layout(arrays), t0)

    def _load(self, host, t0):
        def upload():
            for buffer, data in zip(self._buffers, host):
                self.backend.upload(buffer, data)
            for dst, src in self.scheme.device_copies:
                self.backend.copy(self._buffers[dst], self._buffers[src])
            self.backend.barrier()
            with self._lock:
                self._steps = 0
                self._t0 = float(t0)

        self.backend.run(upload)

    # ── Stepping ─────────────────────────────────────────

    def step(self, count=1):
        """
        Queue `count` steps; returns a Future resolving to the steps done.

        Fewer than `count` are done if stop() is called before the batch
        finishes. Errors raised on the queue surface through the Future.
        """
        self._check_open()
        count = _count("count", count, 0)
        with self._lock:
            generation = self._generation
        return self.backend.submit(self._run, count, generation)

    def stop(self):
        """Cancel queued and in-flight batches at the next step boundary."""
        with self._lock:
            self._generation += 1

    def wait(self):
        """Block until everything queued so far has run."""
        self._check_open()
        return self.backend.run(lambda: self.steps_completed)

    def _running(self, generation):
        with self._lock:
            return self._generation == generation

    def _run(self, count, generation):
        done = 0
        per_dispatch = self.scheme.steps_per_dispatch
        while done < count and self._running(generation):
            n_steps = min(per_dispatch, count - done)
            self._issue(n_steps)
            with self._lock:
                self._steps += n_steps
            done += n_steps
        return done

    def _uniforms(self, n_steps):
        enabled = self._boundary_enabled
        return {
            "dt": self.grid.dt,
            "dx": self.grid.dx,
            "n": self.grid.n,
            "mur": self.boundary.coefficient(self.grid) if enabled else 0.0,
            "iterations": n_steps,
            "boundary": int(enabled),
        }

    def _issue(self, n_steps):
        u = self._uniforms(n_steps)
        for p in self.scheme.passes(self._steps, self._buffers, self._potential):
            self.backend.dispatch(self._kernels[p.entry], p.bindings, self._groups, u)
            if p.boundary and u["boundary"]:
                self.backend.barrier()
                self.backend.dispatch(self._kernels[p.boundary], p.boundary_bindings, 1, u)
            self.backend.barrier()

    # ── Readback ─────────────────────────────────────────

    def snapshot(self):
        """Future of a complex host copy, ordered after all queued work."""
        self._check_open()
        return self.backend.submit(self._read)

    def _read(self):
        pairs = np.asarray(self.backend.read(self.rendered_buffer), dtype=np.float64)
        return pairs[:, 0] + 1j * pairs[:, 1]

    def psi(self):
        return self.snapshot().result()

    # ── State ────────────────────────────────────────────

    @property
    def steps_completed(self):
        with self._lock:
            return self._steps

    @property
    def time(self):
        """Time of the state in rendered_buffer."""
        with self._lock:
            steps, t0 = self._steps, self._t0
        return t0 + (steps + self.scheme.time_lead) * self.grid.dt

    @property
    def dx(self):
        return self.grid.dx

    @property
    def max_stable_dt(self):
        return self.scheme.max_stable_dt(self.grid)

    @property
    def rendered_buffer(self):
        """
        Handle of the most recently completed state.

        When scheme.renders_in_place is set (staggered) this is the live `psi`
        buffer that queued steps rewrite; read it through snapshot().
        """
        return self.scheme.rendered(self.steps_completed, self._buffers)

    @property
    def buffers(self):
        return tuple(self._buffers)

    @property
    def boundary_enabled(self):
        return self._boundary_enabled

    @boundary_enabled.setter
    def boundary_enabled(self, enabled):
        if enabled and self.boundary is None:
            raise PreconditionError("boundary_enabled", "no MurBoundary was configured")
        self._boundary_enabled = bool(enabled)

    def __repr__(self):
        return (f"Integrator({self.scheme!r}, n={self.grid.n}, dt={self.grid.dt:g}, "
                f"boundary={'on' if self._boundary_enabled else 'off'})")
