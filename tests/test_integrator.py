import time
import warnings
from types import SimpleNamespace

import numpy as np
import pytest

from schrodinger_fdtd import (
    ArrayBackend,
    GridParameters,
    Integrator,
    MurBoundary,
    PreconditionError,
    ResourceExhaustedError,
    UnstableTimeStepWarning,
    UnsupportedConfigurationError,
    WavePacket,
)
from schrodinger_fdtd.diagnostics import max_error, trapezoid_norm


# ── Conservation and accuracy ────────────────────────────

@pytest.mark.parametrize("scheme", ["leapfrog", "staggered"])
def test_norm_is_conserved_in_closed_box(free_grid, packet, scheme):
    with Integrator(free_grid, scheme) as integ:
        integ.initialize(packet)
        n0 = trapezoid_norm(integ.psi(), free_grid.length)
        integ.step(400).result()
        n1 = trapezoid_norm(integ.psi(), free_grid.length)
    assert abs(n1 / n0 - 1.0) < 1e-3


def _error_at(grid, packet, scheme, steps, evolve):
    psi, t = evolve(grid, packet, scheme, steps)
    return max_error(psi, packet.evaluate(grid, t))


def test_leapfrog_converges_second_order_in_space(evolve):
    packet = WavePacket(10.0, 1.0, 3.0)
    # dt/dx² = 0.2 on both grids, t = 0.2
    coarse = GridParameters(2e-3, 201, 20.0)
    fine = GridParameters(5e-4, 401, 20.0)
    e_coarse = _error_at(coarse, packet, "leapfrog", 99, evolve)
    e_fine = _error_at(fine, packet, "leapfrog", 399, evolve)
    assert e_coarse < 2e-2
    assert e_coarse / e_fine > 3.0


def test_forward_euler_error_shrinks_under_refinement(evolve):
    packet = WavePacket(10.0, 1.0, 3.0)
    # dt/dx² = 0.05, t = 0.05
    coarse = GridParameters(5e-4, 201, 20.0)
    fine = GridParameters(1.25e-4, 401, 20.0)
    e_coarse = _error_at(coarse, packet, "euler", 100, evolve)
    e_fine = _error_at(fine, packet, "euler", 400, evolve)
    assert e_fine < e_coarse / 2


def test_staggered_tracks_free_particle(free_grid, packet, evolve):
    psi, t = evolve(free_grid, packet, "staggered", 200)
    assert t == pytest.approx(200 * free_grid.dt)
    exact = packet.evaluate(free_grid, t)
    np.testing.assert_allclose(psi.real, exact.real, atol=2e-2)


def test_leapfrog_beyond_stability_bound_blows_up():
    grid = GridParameters(0.6 * 0.1 ** 2, 201, 20.0)
    with pytest.warns(UnstableTimeStepWarning):
        integ = Integrator(grid, "leapfrog")
    with integ:
        integ.initialize(WavePacket(10.0, 1.0, 3.0))
        integ.step(500).result()
        psi = integ.psi()
    assert not np.all(np.isfinite(psi)) or np.max(np.abs(psi)) > 1e3


def test_staggered_allows_twice_the_leapfrog_step():
    grid = GridParameters(0.75 * 0.1 ** 2, 201, 20.0)
    with pytest.warns(UnstableTimeStepWarning):
        Integrator(grid, "leapfrog").release()
    with warnings.catch_warnings():
        warnings.simplefilter("error", UnstableTimeStepWarning)
        Integrator(grid, "staggered").release()


@pytest.mark.parametrize("scheme", ["euler", "fused"])
def test_first_order_schemes_always_warn(scheme):
    grid = GridParameters(4e-4, 1001, 40.0)
    assert grid.dt < grid.max_stable_dt()
    with pytest.warns(UnstableTimeStepWarning, match="unstable for every dt"):
        integ = Integrator(grid, scheme)
    with integ:
        assert integ.max_stable_dt == 0.0


# ── Buffer rotation ──────────────────────────────────────

def test_euler_ping_pong(free_grid, packet):
    with Integrator(free_grid, "euler") as integ:
        integ.initialize(packet)
        assert len(integ.buffers) == 2
        assert integ.rendered_buffer is integ.buffers[0]
        for k in range(1, 6):
            integ.step(1).result()
            assert integ.rendered_buffer is integ.buffers[k % 2]


def test_leapfrog_three_buffer_rotation(free_grid, packet):
    with Integrator(free_grid, "leapfrog") as integ:
        integ.initialize(packet)
        assert len(integ.buffers) == 3
        for k in range(0, 7):
            assert integ.rendered_buffer is integ.buffers[(k + 1) % 3]
            integ.step(1).result()


class RecordingBackend(ArrayBackend):
    """Checks every dispatch against the integrator's rendered buffer."""

    def __init__(self):
        super().__init__()
        self.integrator = None
        self.writes = 0
        self.clashes = 0

    def dispatch(self, kernel, bindings, workgroups, uniforms):
        if self.integrator is not None and "updated" in bindings:
            self.writes += 1
            if self.integrator.rendered_buffer is bindings["updated"]:
                self.clashes += 1
        super().dispatch(kernel, bindings, workgroups, uniforms)


@pytest.mark.parametrize("scheme", ["euler", "leapfrog"])
def test_rendered_buffer_is_never_being_written(free_grid, packet, scheme):
    backend = RecordingBackend()
    boundary = MurBoundary.for_packet(packet)
    with Integrator(free_grid, scheme, backend=backend, boundary=boundary) as integ:
        integ.initialize(packet)
        backend.integrator = integ
        integ.step(20).result()
    backend.release()
    assert backend.writes == 40
    assert backend.clashes == 0


def test_seeding_layouts(free_grid, packet):
    dt = free_grid.dt
    with Integrator(free_grid, "leapfrog") as integ:
        integ.initialize(packet)
        assert integ.time == pytest.approx(dt)
        np.testing.assert_allclose(integ.psi(), packet.evaluate(free_grid, dt), atol=1e-12)
        integ.step(10).result()
        assert integ.time == pytest.approx(11 * dt)

    with Integrator(free_grid, "staggered") as integ:
        integ.initialize(packet, t0=0.25)
        assert integ.time == pytest.approx(0.25)
        psi = integ.psi()
        np.testing.assert_allclose(psi.real, packet.evaluate(free_grid, 0.25).real, atol=1e-12)
        np.testing.assert_allclose(psi.imag, packet.evaluate(free_grid, 0.25 + dt / 2).imag, atol=1e-12)


def test_staggered_old_buffer_is_copied_from_psi_on_device(free_grid, packet):
    with Integrator(free_grid, "staggered") as integ:
        integ.initialize(packet)
        psi, old = (integ.backend.run(integ.backend.read, b) for b in integ.buffers)
        np.testing.assert_array_equal(old, psi)
        np.testing.assert_array_equal(psi[:, 0], packet.evaluate(free_grid).real)


def test_array_backend_copy(backend):
    src = backend.run(backend.allocate, 4)
    dst = backend.run(backend.allocate, 4)
    backend.run(backend.upload, src, np.arange(8.0).reshape(4, 2))
    backend.run(backend.copy, dst, src)
    np.testing.assert_array_equal(backend.run(backend.read, dst), np.arange(8.0).reshape(4, 2))
    assert dst is not src


def test_staggered_renders_in_place_and_snapshots_stay_ordered(free_grid, packet):
    with Integrator(free_grid, "staggered") as integ:
        assert integ.scheme.renders_in_place
        integ.initialize(packet)
        integ.step(20)
        after_20 = integ.snapshot()
        integ.step(30)
        assert integ.rendered_buffer is integ.buffers[0]
        after_50 = integ.snapshot().result()
        first = after_20.result()

    with Integrator(free_grid, "staggered") as reference:
        reference.initialize(packet)
        reference.step(20).result()
        np.testing.assert_array_equal(first, reference.psi())
        reference.step(30).result()
        np.testing.assert_array_equal(after_50, reference.psi())


def test_load_requires_one_state_per_seed_time(free_grid, packet):
    with Integrator(free_grid, "leapfrog") as integ:
        with pytest.raises(PreconditionError):
            integ.load([packet.evaluate(free_grid)])
        with pytest.raises(PreconditionError):
            integ.load([np.zeros(3), np.zeros(3)])
        integ.load([packet.evaluate(free_grid, 0.0), packet.evaluate(free_grid, free_grid.dt)])
        assert integ.steps_completed == 0


# ── Fused mode ───────────────────────────────────────────

@pytest.mark.parametrize("with_boundary", [False, True])
def test_fused_matches_repeated_euler(with_boundary):
    grid = GridParameters(1e-3, 101, 10.0)
    packet = WavePacket(5.0, 1.0, 2.0)
    boundary = MurBoundary.for_packet(packet) if with_boundary else None
    results = []
    for scheme in ("euler", "fused"):
        with Integrator(grid, scheme, boundary=boundary, iterations=7) as integ:
            integ.initialize(packet)
            assert integ.step(20).result() == 20
            assert integ.steps_completed == 20
            results.append(integ.psi())
    np.testing.assert_allclose(results[1], results[0], rtol=0, atol=1e-14)


def test_fused_renders_from_the_right_buffer_after_odd_count():
    grid = GridParameters(1e-3, 64, 10.0)
    with Integrator(grid, "fused", iterations=7) as integ:
        integ.initialize(WavePacket(5.0, 1.0, 2.0))
        integ.step(7).result()
        assert integ.rendered_buffer is integ.buffers[1]


# ── Capabilities and resources ───────────────────────────

def test_fused_grid_beyond_workgroup_limit_is_unsupported():
    backend = ArrayBackend(max_workgroup_size=64)
    grid = GridParameters(1e-3, 101, 10.0)
    with pytest.raises(UnsupportedConfigurationError):
        Integrator(grid, "fused", backend=backend)
    assert not Integrator.supports(backend, "fused", 101)
    assert Integrator.supports(backend, "fused", 64)
    assert Integrator.supports(backend, "leapfrog", 10000)
    backend.release()


def test_workgroup_size_beyond_limit_is_unsupported():
    backend = ArrayBackend(max_workgroup_size=64)
    grid = GridParameters(1e-3, 101, 10.0)
    with pytest.raises(UnsupportedConfigurationError):
        Integrator(grid, "leapfrog", backend=backend, workgroup_size=128)
    assert not backend.released
    backend.release()


class ExhaustedBackend(ArrayBackend):
    """Fails the third allocation."""

    def __init__(self):
        super().__init__()
        self.allocated = 0
        self.freed = 0

    def allocate(self, n, components=2):
        if self.allocated == 2:
            raise ResourceExhaustedError("out of device memory")
        self.allocated += 1
        return super().allocate(n, components)

    def release_buffer(self, buffer):
        self.freed += 1


def test_allocation_failure_releases_partial_buffers(free_grid):
    backend = ExhaustedBackend()
    with pytest.raises(ResourceExhaustedError):
        Integrator(free_grid, "leapfrog", backend=backend)
    assert backend.freed == backend.allocated == 2
    backend.release()


def test_array_backend_reports_memory_errors(monkeypatch, backend):
    def zeros(shape, dtype):
        raise MemoryError

    monkeypatch.setattr(backend, "xp", SimpleNamespace(zeros=zeros))
    with pytest.raises(ResourceExhaustedError):
        backend.allocate(10)


def test_release_frees_owned_backend_only(free_grid, backend):
    integ = Integrator(free_grid)
    integ.release()
    assert integ.backend.released
    with pytest.raises(RuntimeError):
        integ.step(1)

    shared = Integrator(free_grid, backend=backend)
    shared.release()
    assert not backend.released
    shared.release()


# ── Preconditions ────────────────────────────────────────

def test_step_count_must_be_non_negative(free_grid, packet):
    with Integrator(free_grid) as integ:
        integ.initialize(packet)
        with pytest.raises(PreconditionError) as err:
            integ.step(-1)
        assert err.value.parameter == "count"
        assert integ.step(0).result() == 0


@pytest.mark.parametrize("kwargs, parameter", [
    (dict(scheme="rk4"), "scheme"),
    (dict(workgroup_size=0), "workgroup_size"),
    (dict(boundary=1.0), "boundary"),
    (dict(scheme="fused", iterations=0), "iterations"),
])
def test_integrator_preconditions(free_grid, kwargs, parameter):
    with pytest.raises(PreconditionError) as err:
        Integrator(free_grid, **kwargs)
    assert err.value.parameter == parameter


def test_boundary_toggle_requires_boundary(free_grid):
    with Integrator(free_grid) as integ:
        assert not integ.boundary_enabled
        with pytest.raises(PreconditionError):
            integ.boundary_enabled = True


# ── Stop and readback ────────────────────────────────────

def test_stop_halts_within_one_step(packet):
    grid = GridParameters(2e-3, 201, 20.0)
    count = 10 ** 6
    with Integrator(grid, "leapfrog") as integ:
        integ.initialize(packet)
        future = integ.step(count)
        time.sleep(0.05)
        integ.stop()
        observed = integ.steps_completed
        final = future.result()
        assert final - observed <= 1
        assert final < count
        assert integ.steps_completed == final
        stopped = integ.psi()

    with Integrator(grid, "leapfrog") as reference:
        reference.initialize(packet)
        reference.step(final).result()
        np.testing.assert_array_equal(stopped, reference.psi())


def test_stop_cancels_queued_batches_and_step_resumes(free_grid, packet):
    with Integrator(free_grid) as integ:
        integ.initialize(packet)
        first = integ.step(10 ** 6)
        queued = integ.step(10)
        integ.stop()
        first.result()
        assert queued.result() == 0
        before = integ.steps_completed
        assert integ.step(5).result() == 5
        assert integ.steps_completed == before + 5


def test_snapshot_is_ordered_after_queued_steps(free_grid, packet):
    with Integrator(free_grid) as integ:
        integ.initialize(packet)
        batch = integ.step(50)
        psi = integ.snapshot().result()
        assert batch.done()
        assert integ.steps_completed == 50
        assert integ.wait() == 50
        np.testing.assert_array_equal(psi, integ.psi())


def test_snapshot_is_an_independent_copy(free_grid, packet):
    with Integrator(free_grid) as integ:
        integ.initialize(packet)
        first = integ.psi()
        kept = first.copy()
        first[:] = 0
        assert np.any(integ.psi() != 0)
        integ.step(10).result()
        np.testing.assert_allclose(kept, packet.evaluate(free_grid, free_grid.dt), rtol=0, atol=1e-14)
