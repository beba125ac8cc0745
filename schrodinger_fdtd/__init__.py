"""1D Schrödinger FDTD engine with pluggable compute backends."""

from .backend import ArrayBackend, ComputeBackend, GLBackend
from .boundary import MurBoundary
from .errors import (
    PreconditionError,
    ResourceExhaustedError,
    UnstableTimeStepWarning,
    UnsupportedConfigurationError,
)
from .grid import GridParameters, max_stable_dt
from .integrator import Integrator
from .schemes import (
    SCHEMES,
    ForwardEuler,
    FusedEuler,
    Leapfrog,
    Staggered,
    TimeStepKernel,
    get_scheme,
)
from .wavepacket import WavePacket, free_particle

__all__ = [
    "ArrayBackend", "ComputeBackend", "GLBackend",
    "MurBoundary",
    "PreconditionError", "ResourceExhaustedError",
    "UnstableTimeStepWarning", "UnsupportedConfigurationError",
    "GridParameters", "max_stable_dt",
    "Integrator",
    "SCHEMES", "ForwardEuler", "FusedEuler", "Leapfrog", "Staggered",
    "TimeStepKernel", "get_scheme",
    "WavePacket", "free_particle",
]
