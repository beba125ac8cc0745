"""
Diagnostics on sampled wave functions.

All functions accept complex arrays or (n, 2) arrays of (re, im) pairs, the
layout the device buffers use.
"""

import numpy as np
from scipy.integrate import simpson

from .errors import PreconditionError


def as_complex(psi):
    psi = np.asarray(psi)
    if psi.ndim == 2 and psi.shape[1] == 2 and not np.iscomplexobj(psi):
        return psi[:, 0].astype(np.float64) + 1j * psi[:, 1].astype(np.float64)
    if psi.ndim != 1:
        raise PreconditionError("psi", f"expected a complex vector or (n, 2) pairs, got shape {psi.shape}")
    return psi.astype(np.complex128)


def probability_density(psi):
    psi = as_complex(psi)
    return psi.real ** 2 + psi.imag ** 2


def _spacing(n, length):
    if n < 2:
        raise PreconditionError("psi", "needs at least 2 samples")
    if not np.isfinite(length) or length <= 0:
        raise PreconditionError("length", f"must be > 0, got {length!r}")
    return length / (n - 1)


def trapezoid_norm(psi, length):
    """∫|Ψ|² dx by the trapezoid rule over [0, length]."""
    rho = probability_density(psi)
    return float(np.trapezoid(rho, dx=_spacing(len(rho), length)))


def simpson_norm(psi, length):
    """
    ∫|Ψ|² dx by composite Simpson.

    For an even sample count SciPy closes the last interval with a parabola
    through the final three samples, so quadratic densities stay exact.
    """
    rho = probability_density(psi)
    return float(simpson(rho, dx=_spacing(len(rho), length)))


_RULES = {"trapezoid": trapezoid_norm, "simpson": simpson_norm}


def norm(psi, length, rule="trapezoid"):
    try:
        integrate = _RULES[rule]
    except KeyError:
        raise PreconditionError("rule", f"unknown rule {rule!r}, expected one of {sorted(_RULES)}") from None
    return integrate(psi, length)


def max_error(psi, reference):
    """max_i |Ψ_i − Ψref_i|."""
    psi, reference = as_complex(psi), as_complex(reference)
    if psi.shape != reference.shape:
        raise PreconditionError("reference", f"shape {reference.shape} does not match {psi.shape}")
    return float(np.max(np.abs(psi - reference)))


def reflected_amplitude(psi, initial, length, rule="trapezoid"):
    """
    √(‖Ψ‖² / ‖Ψ₀‖²): the amplitude left on the grid.

    Once a packet has reached the edge this is the reflected fraction; it
    stays near 1 in a closed box and near 0 with a perfect absorber.
    """
    return float(np.sqrt(norm(psi, length, rule) / norm(initial, length, rule)))
