import numpy as np
import pytest

from schrodinger_fdtd import GridParameters, Integrator, MurBoundary, WavePacket
from schrodinger_fdtd.diagnostics import reflected_amplitude

# The packet starts 15 units from the right edge moving at k = 8, so by t = 4
# its transmitted part is several widths past the edge while anything
# reflected is still on the grid.
LENGTH = 40.0
GRID = GridParameters(4e-4, 1001, LENGTH)
PACKET = WavePacket(25.0, 3.0, 8.0)
STEPS = 10000


def _remaining(scheme, boundary):
    with Integrator(GRID, scheme, boundary=boundary) as integ:
        integ.initialize(PACKET)
        initial = integ.psi()
        integ.step(STEPS).result()
        return reflected_amplitude(integ.psi(), initial, LENGTH)


# leapfrog uses the whole-sample Mur kernel, staggered the per-component pair
@pytest.mark.parametrize("scheme", ["leapfrog", "staggered"])
def test_mur_boundary_absorbs_outgoing_packet(scheme):
    assert _remaining(scheme, MurBoundary.for_packet(PACKET)) < 0.05


@pytest.mark.parametrize("scheme", ["leapfrog", "staggered"])
def test_closed_box_reflects_packet(scheme):
    assert _remaining(scheme, None) > 0.9


def test_disabled_boundary_matches_closed_box(free_grid, packet):
    results = []
    for boundary in (None, MurBoundary.for_packet(packet)):
        with Integrator(free_grid, "leapfrog", boundary=boundary) as integ:
            integ.boundary_enabled = False
            integ.initialize(packet)
            integ.step(30).result()
            results.append(integ.psi())
    np.testing.assert_array_equal(results[0], results[1])


@pytest.mark.parametrize("scheme", ["euler", "leapfrog", "staggered"])
def test_boundary_only_changes_points_near_edges(scheme):
    grid = GridParameters(1e-3, 101, 10.0)
    packet = WavePacket(9.0, 0.5, 4.0)
    results = []
    for boundary in (None, MurBoundary.for_packet(packet)):
        with Integrator(grid, scheme, boundary=boundary) as integ:
            integ.initialize(packet)
            integ.step(1).result()
            results.append(integ.psi())
    closed, absorbing = results
    # staggered: the imaginary pass reads the corrected real edge
    np.testing.assert_array_equal(closed[2:-2], absorbing[2:-2])
    assert closed[-1] != absorbing[-1]
