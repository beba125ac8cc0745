import pytest

from schrodinger_fdtd import ArrayBackend, GridParameters, Integrator, WavePacket


@pytest.fixture
def backend():
    b = ArrayBackend()
    yield b
    b.release()


@pytest.fixture
def free_grid():
    # dx = 0.05, dt/dx² = 0.2
    return GridParameters(5e-4, 401, 20.0)


@pytest.fixture
def packet():
    return WavePacket(10.0, 1.0, 5.0)


@pytest.fixture
def evolve():
    """Run `steps` steps from the packet's closed form; returns (psi, time)."""

    def run(grid, packet, scheme="leapfrog", steps=0, **kwargs):
        with Integrator(grid, scheme, **kwargs) as integ:
            integ.initialize(packet)
            integ.step(steps).result()
            return integ.psi(), integ.time

    return run
