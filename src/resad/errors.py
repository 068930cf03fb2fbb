__all__ = [
    "ResadError",
    "ValidationError",
    "ConfigurationError",
    "UnsupportedControlError",
    "UnknownOptionError",
    "InvariantViolationError",
    "ComputationError",
    "SolverError",
    "PreconditionerError",
]


class ResadError(Exception):
    """Base class for all resad-related errors."""

    pass


class ValidationError(ResadError, ValueError):
    """Raised when input data fails validation checks."""

    pass


class ConfigurationError(ResadError):
    """Raised when a model, option or control combination is not supported."""

    pass


class UnsupportedControlError(ConfigurationError, ValueError):
    """Raised when a well control type is not recognized."""

    pass


class UnknownOptionError(ConfigurationError, TypeError):
    """Raised when an unrecognized optional parameter name is passed to an assembler."""

    pass


class InvariantViolationError(ResadError):
    """
    Raised when a state produced by a nonlinear update breaks a physical invariant.

    Saturations not summing to one, negative saturations or ratios, and
    dissolved ratios above their solubility limit all end up here.
    """

    pass


class ComputationError(ResadError, ArithmeticError):
    """Raised when there is an error during numerical computations."""

    pass


class SolverError(ResadError):
    """Raised when a solver fails to converge within the specified iterations."""

    pass


class PreconditionerError(SolverError):
    """Raised when there is an error related to preconditioners."""

    pass
