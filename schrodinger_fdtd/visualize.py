"""Animated visualization for the 1D FDTD Schrödinger engine."""

import numpy as np
import matplotlib.pyplot as plt
from matplotlib.animation import FuncAnimation


def _style(fig, axes):
    fig.patch.set_facecolor("#0e0e0e")
    for ax in axes:
        ax.set_facecolor("#0e0e0e")
        ax.tick_params(colors="white")
        for spine in ax.spines.values():
            spine.set_color("#333")


def frame_time(idx, dt, save_every, times=None):
    """Time shown on frame idx; `times` overrides the idx·save_every·dt estimate."""
    if times is not None:
        return times[idx]
    return idx * save_every * dt


def animate(x, V, frames, dt, save_every, save_path=None, reference=None, title=None,
            times=None):
    """
    Two-panel animation of complex snapshots.

      top     |ψ(x)|² probability density (dashed: exact reference, if given)
      bottom  Re(ψ) and Im(ψ)

    The potential V(x) is shaded in both panels. `reference` is a list of
    complex arrays aligned with `frames`, e.g. the free-particle closed form.
    `times` holds the simulation time of each frame.
    """
    frames = [np.asarray(f) for f in frames]
    if reference is not None and len(reference) != len(frames):
        raise ValueError(f"reference has {len(reference)} frames, expected {len(frames)}")
    if times is not None and len(times) != len(frames):
        raise ValueError(f"times has {len(times)} entries, expected {len(frames)}")

    prob_max = max(np.max(np.abs(f)**2) for f in frames) * 1.15
    wave_max = max(np.max(np.abs(f)) for f in frames) * 1.15
    V_max = V.max() if V.max() > 0 else 1.0

    fig, (ax_p, ax_w) = plt.subplots(
        2, 1, figsize=(11, 6), sharex=True,
        gridspec_kw={"hspace": 0.08},
    )
    _style(fig, (ax_p, ax_w))
    fig.suptitle(title or "Schrödinger 1D  ·  FDTD", color="white", fontsize=13, y=0.96)

    # ── Potential overlay ────────────────────────────────
    V_prob = V / V_max * prob_max * 0.35
    V_wave = V / V_max * wave_max * 0.30
    ax_p.fill_between(x, 0, V_prob, color="#FF9800", alpha=0.25)
    ax_p.plot(x, V_prob, color="#FF9800", lw=0.8, alpha=0.5)
    ax_w.fill_between(x, -V_wave, V_wave, color="#FF9800", alpha=0.15)

    # ── Probability panel ────────────────────────────────
    (line_prob,) = ax_p.plot([], [], color="#29B6F6", lw=1.4, label=r"$|\psi|^2$")
    lines = [line_prob]
    line_ref = None
    if reference is not None:
        (line_ref,) = ax_p.plot([], [], color="white", lw=0.8, ls="--", alpha=0.6,
                                label="exato")
        lines.append(line_ref)
    ax_p.set_ylim(0, prob_max)
    ax_p.set_xlim(x[0], x[-1])
    ax_p.set_ylabel(r"$|\psi(x)|^2$", color="white")
    ax_p.legend(loc="upper right", framealpha=0.3, facecolor="#222", labelcolor="white")

    # ── Wave function panel ──────────────────────────────
    (line_re,) = ax_w.plot([], [], color="#66BB6A", lw=0.9, alpha=0.85, label=r"Re $\psi$")
    (line_im,) = ax_w.plot([], [], color="#EF5350", lw=0.9, alpha=0.85, label=r"Im $\psi$")
    lines += [line_re, line_im]
    ax_w.set_ylim(-wave_max, wave_max)
    ax_w.set_ylabel(r"$\psi(x)$", color="white")
    ax_w.set_xlabel("x", color="white")
    ax_w.legend(loc="upper right", framealpha=0.3, facecolor="#222", labelcolor="white")

    time_text = ax_p.text(
        0.02, 0.88, "", transform=ax_p.transAxes,
        fontsize=10, color="white", family="monospace",
    )

    def _init():
        for line in lines:
            line.set_data([], [])
        time_text.set_text("")
        return (*lines, time_text)

    def _update(idx):
        psi = frames[idx]
        line_prob.set_data(x, np.abs(psi)**2)
        line_re.set_data(x, psi.real)
        line_im.set_data(x, psi.imag)
        if line_ref is not None:
            line_ref.set_data(x, np.abs(reference[idx])**2)
        time_text.set_text(f"t = {frame_time(idx, dt, save_every, times):.2f}")
        return (*lines, time_text)

    anim = FuncAnimation(
        fig, _update, init_func=_init,
        frames=len(frames), interval=30, blit=True,
    )

    if save_path:
        anim.save(save_path, fps=30, dpi=150,
                  savefig_kwargs={"facecolor": fig.get_facecolor()})
        print(f"Salvo: {save_path}")
    else:
        plt.show()
    return anim
