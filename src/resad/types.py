import enum
import typing

from typing_extensions import TypeAlias


__all__ = [
    "ThreeDimensions",
    "FluidPhase",
    "PhaseStatus",
    "EquationSet",
    "EquationType",
    "LinearSolverName",
    "PreconditionerName",
]

ThreeDimensions: TypeAlias = typing.Tuple[int, int, int]
"""3D indices or cell counts"""

class FluidPhase(enum.Enum):
    """Enum representing the phase of the fluid in the reservoir."""

    WATER = "water"
    OIL = "oil"
    GAS = "gas"

    @property
    def column(self) -> int:
        """Column of this phase in a saturation array (water, oil, gas)."""
        return _PHASE_COLUMNS[self]

    @property
    def rate_name(self) -> str:
        """Name of the surface rate primary variable of this phase."""
        return _RATE_NAMES[self]


_PHASE_COLUMNS = {FluidPhase.WATER: 0, FluidPhase.OIL: 1, FluidPhase.GAS: 2}
_RATE_NAMES = {FluidPhase.WATER: "qWs", FluidPhase.OIL: "qOs", FluidPhase.GAS: "qGs"}


class PhaseStatus(enum.IntEnum):
    """
    Hydrocarbon phase status of a cell in a black-oil model.

    Selects what the `x` primary variable stands for in the cell.
    """

    UNDERSATURATED_OIL = 1
    """Free gas absent, `x` is the dissolved gas ratio `rs`."""
    UNDERSATURATED_GAS = 2
    """Liquid oil absent, `x` is the vaporized oil ratio `rv`."""
    SATURATED = 3
    """Oil and gas both present, `x` is the gas saturation."""


class EquationSet(enum.Enum):
    """Which set of residual equations a model assembles."""

    FULLY_IMPLICIT = "fully_implicit"
    PRESSURE = "pressure"
    TRANSPORT = "transport"


EquationType = typing.Literal["cell", "well", "perf"]
"""Entity an equation is posed on"""

LinearSolverName = typing.Literal["direct", "bicgstab", "gmres", "cg"]
PreconditionerName = typing.Literal["ilu", "amg", "diagonal"]
