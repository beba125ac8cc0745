import numpy as np
import pytest

from schrodinger_fdtd import (
    GLBackend,
    GridParameters,
    Integrator,
    MurBoundary,
    UnsupportedConfigurationError,
    WavePacket,
)

GRID = GridParameters(2e-3, 201, 20.0)
PACKET = WavePacket(10.0, 1.0, 3.0)


@pytest.fixture(scope="module")
def gl():
    try:
        backend = GLBackend()
    except UnsupportedConfigurationError as exc:
        pytest.skip(str(exc))
    yield backend
    backend.release()


def _run(grid, scheme, steps, backend=None, **kwargs):
    with Integrator(grid, scheme, backend=backend, **kwargs) as integ:
        integ.initialize(PACKET)
        integ.step(steps).result()
        return integ.psi()


def test_workgroup_limit_is_queried(gl):
    assert gl.max_workgroup_size >= 64


@pytest.mark.parametrize("scheme", ["euler", "leapfrog", "staggered"])
def test_gl_matches_array_backend(gl, scheme):
    boundary = MurBoundary.for_packet(PACKET)
    expected = _run(GRID, scheme, 50, boundary=boundary)
    got = _run(GRID, scheme, 50, gl, boundary=boundary)
    np.testing.assert_allclose(got, expected, atol=1e-4)


def test_gl_fused_matches_array_backend(gl):
    grid = GridParameters(1e-3, 101, 10.0)
    packet = WavePacket(5.0, 1.0, 2.0)
    results = []
    for backend in (None, gl):
        with Integrator(grid, "fused", backend=backend, iterations=9) as integ:
            integ.initialize(packet)
            integ.step(40).result()
            results.append(integ.psi())
    np.testing.assert_allclose(results[1], results[0], atol=1e-4)


def test_gl_rejects_oversized_fused_grid(gl):
    grid = GridParameters(1e-3, gl.max_workgroup_size + 1, 10.0)
    with pytest.raises(UnsupportedConfigurationError):
        Integrator(grid, "fused", backend=gl)
