"""Error taxonomy for the FDTD engine."""


class PreconditionError(ValueError):
    """A parameter failed validation before any allocation or dispatch."""

    def __init__(self, parameter, message):
        super().__init__(f"{parameter}: {message}")
        self.parameter = parameter


class UnsupportedConfigurationError(RuntimeError):
    """The compute backend cannot run the requested configuration."""


class ResourceExhaustedError(RuntimeError):
    """A backend allocation failed while building an integrator."""


class UnstableTimeStepWarning(RuntimeWarning):
    """dt exceeds the stability bound of the selected scheme."""
