"""
Experimento: tunelamento quântico em FDTD
=========================================
Pacote de onda gaussiano incidindo em uma barreira retangular de potencial.
Resolve a equação de Schrödinger 1D dependente do tempo por diferenças
finitas no domínio do tempo (FDTD), com o estêncil executado em um backend
de computação (NumPy, CuPy ou shaders de computação OpenGL).

Unidades naturais: ℏ = 1, m = 1.

Uso:
    python -m schrodinger_fdtd.main                      # visualização interativa
    python -m schrodinger_fdtd.main --scheme staggered   # outro esquema
    python -m schrodinger_fdtd.main --backend gl         # GPU via OpenGL 4.3
    python -m schrodinger_fdtd.main --free               # partícula livre + solução exata
    python -m schrodinger_fdtd.main --save               # salva animação em fdtd.mp4
"""

import argparse
import warnings

import numpy as np

from .backend import ArrayBackend, GLBackend
from .boundary import MurBoundary
from .diagnostics import max_error, norm, reflected_amplitude
from .errors import UnstableTimeStepWarning
from .grid import GridParameters
from .integrator import Integrator
from .schemes import SCHEMES, ForwardEuler, get_scheme
from .visualize import animate
from .wavepacket import WavePacket

# ── Grade espacial ───────────────────────────────────────
LENGTH = 40.0                  # domínio [0, L]
N      = 1001                  # pontos  →  dx = 0.04 (fundido exige N ≤ 1024)

# ── Tempo ────────────────────────────────────────────────
DT         = 4e-4              # passo temporal  (leapfrog: dt < dx²/2)
N_STEPS    = 10000             # passos totais  (t_max = 4)
SAVE_EVERY = 50                # 1 frame a cada 50 passos → 200 frames

# ── Esquemas de primeira ordem (euler, fused) ───────────
# Euler explícito cresce a cada passo para qualquer dt; uma grade mais
# grossa e um dt menor mantêm o modo mais rígido abaixo de ~1e4 em N_STEPS.
N_FIRST_ORDER  = 401           # dx = 0.1
DT_FIRST_ORDER = 2e-4          # t_max = 2

# ── Pacote de onda ───────────────────────────────────────
X0 = 12.0                      # posição inicial
W  = 2.0                       # largura
K0 = 5.0                       # momento  →  E_cin = k₀²/2 = 12.5

# ── Barreira de potencial ────────────────────────────────
V0     = 15.0                  # altura (> E_cin → regime de tunelamento)
WIDTH  = 0.5                   # largura
CENTER = 20.0                  # posição


def potential(x):
    """Barreira retangular."""
    return V0 * (np.abs(x - CENTER) < WIDTH / 2).astype(float)


def make_backend(name):
    if name == "gl":
        return GLBackend()
    return ArrayBackend(use_gpu=name == "cuda")


def main():
    parser = argparse.ArgumentParser(description="Tunelamento quântico 1D (FDTD)")
    parser.add_argument("--scheme", choices=sorted(SCHEMES), default="leapfrog")
    parser.add_argument("--backend", choices=["cpu", "cuda", "gl"], default="cpu")
    parser.add_argument("--no-boundary", action="store_true", help="bordas fechadas (sem Mur)")
    parser.add_argument("--free", action="store_true", help="sem barreira; compara com a solução exata")
    parser.add_argument("--save", action="store_true", help="salva em fdtd.mp4")
    args = parser.parse_args()

    if isinstance(get_scheme(args.scheme), ForwardEuler):
        n, dt = N_FIRST_ORDER, DT_FIRST_ORDER
    else:
        n, dt = N, DT
    if args.free:
        grid = GridParameters(dt, n, LENGTH)
    else:
        grid = GridParameters.from_function(dt, n, LENGTH, potential)
    packet = WavePacket(X0, W, K0)
    boundary = None if args.no_boundary else MurBoundary.for_packet(packet)

    E_kin = packet.energy
    if args.free:
        print(f"E_cin = {E_kin:.1f}  |  partícula livre")
    else:
        print(f"E_cin = {E_kin:.1f}  |  V_barreira = {V0}  |  regime: ", end="")
        print("tunelamento" if V0 > E_kin else "transmissão parcial")

    backend = make_backend(args.backend)
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", UnstableTimeStepWarning)
        integ = Integrator(grid, args.scheme, backend=backend, boundary=boundary)
    for w in caught:
        print(f"Aviso: {w.message}")

    print(f"Backend: {backend.label}  |  esquema: {integ.scheme.name}  |  "
          f"dx = {grid.dx:.4f}  |  dt_max = {integ.max_stable_dt:.2e}")
    print(f"Simulando {N_STEPS} passos (dt={dt}, t_max={N_STEPS*dt:.1f}) ...")

    with integ:
        integ.initialize(packet)
        t_start = integ.time
        snapshots = [integ.snapshot()]
        times = [t_start]
        for k in range(N_STEPS // SAVE_EVERY):
            integ.step(SAVE_EVERY)
            snapshots.append(integ.snapshot())
            times.append(t_start + (k + 1) * SAVE_EVERY * dt)
        frames = [s.result() for s in snapshots]
        t_final = integ.time
    backend.release()

    # Checar conservação da norma
    norm_0 = norm(frames[0], LENGTH, rule="simpson")
    norm_final = norm(frames[-1], LENGTH, rule="simpson")
    print(f"Norma final: {norm_final:.6f}  (desvio: {abs(norm_0 - norm_final):.2e})")
    if boundary is not None:
        print(f"Amplitude remanescente na grade: {reflected_amplitude(frames[-1], frames[0], LENGTH):.3f}")

    reference = None
    if args.free:
        reference = [packet.evaluate(grid, t) for t in times]
        print(f"Erro máximo vs. solução exata (t = {t_final:.2f}): "
              f"{max_error(frames[-1], reference[-1]):.2e}")

    print(f"{len(frames)} frames capturados. Animando...")
    save_path = "fdtd.mp4" if args.save else None
    animate(grid.x, grid.potential, frames, dt, SAVE_EVERY, save_path,
            reference=reference, times=times)


if __name__ == "__main__":
    main()
