import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np
import pytest

from schrodinger_fdtd import GridParameters, Integrator, WavePacket
from schrodinger_fdtd.visualize import animate, frame_time


def test_frame_time_without_times_uses_save_interval():
    assert frame_time(2, 0.1, 5) == pytest.approx(1.0)


def test_frame_time_prefers_recorded_times():
    # leapfrog renders one step ahead of the step counter
    assert frame_time(2, 0.1, 5, [0.1, 0.6, 1.1]) == 1.1


@pytest.fixture
def no_show(monkeypatch):
    monkeypatch.setattr(plt, "show", lambda: None)
    yield
    plt.close("all")


def test_leapfrog_frames_lead_the_step_count():
    grid = GridParameters(5e-4, 101, 10.0)
    with Integrator(grid, "leapfrog") as integ:
        integ.initialize(WavePacket(5.0, 1.0, 2.0))
        integ.step(4).result()
        assert integ.time == pytest.approx(5 * grid.dt)
        assert integ.time != pytest.approx(frame_time(1, grid.dt, 4))


def test_animate_labels_frames_with_recorded_times(no_show):
    x = np.linspace(0.0, 1.0, 5)
    frames = [np.full(5, 0.5 + 0.5j)] * 3
    anim = animate(x, np.zeros(5), frames, 0.1, 1, times=[0.0, 0.5, 1.25])
    assert anim._func(2)[-1].get_text() == "t = 1.25"
    fallback = animate(x, np.zeros(5), frames, 0.1, 1)
    assert fallback._func(2)[-1].get_text() == "t = 0.20"


def test_animate_rejects_mismatched_times(no_show):
    x = np.linspace(0.0, 1.0, 5)
    frames = [np.ones(5, dtype=complex)] * 3
    with pytest.raises(ValueError):
        animate(x, np.zeros(5), frames, 0.1, 1, times=[0.0, 0.1])
