"""Standard well model: perforation inflow, well rate equations and control equations."""

import logging
import typing

import attrs
import numpy as np

from resad.ad.forward import value_of
from resad.ad.functions import accumulate_at, spread, where
from resad.config import AssemblyOptions
from resad.errors import ValidationError
from resad.states import WellSolution, initialize_well_solutions
from resad.types import FluidPhase
from resad.wells.base import Well
from resad.wells.controls import build_control_equations

logger = logging.getLogger(__name__)

__all__ = [
    "WellFluxes",
    "StandardWellModel",
    "PHASE_WELL_EQUATION_NAMES",
    "surface_volume_fluxes",
]


PHASE_WELL_EQUATION_NAMES = {
    FluidPhase.WATER: "waterWells",
    FluidPhase.OIL: "oilWells",
    FluidPhase.GAS: "gasWells",
}


@attrs.frozen
class WellFluxes:
    """Result of a well flux evaluation."""

    perforation_fluxes: typing.Dict[FluidPhase, typing.Any]
    """Surface volume flux of each phase into the reservoir at every perforation."""
    well_equations: typing.Dict[FluidPhase, typing.Any]
    """Per-well residual `q_phase - sum(perforation fluxes)` of each phase."""
    control_equations: typing.Any
    """Per-well control residuals."""
    perforation_cells: np.ndarray
    """Cell of every perforation, wells in order."""
    well_solutions: typing.Tuple[WellSolution, ...]
    """Well solutions holding the values of this evaluation."""
    reservoir_fluxes: typing.Dict[FluidPhase, typing.Any]
    """Reservoir condition flux of each phase into the reservoir at every perforation."""

    def __iter__(self) -> typing.Iterator[typing.Any]:
        yield self.perforation_fluxes
        yield self.well_equations
        yield self.control_equations
        yield self.perforation_cells
        yield self.well_solutions
        yield self.reservoir_fluxes


def _sum_phases(values: typing.Iterable[typing.Any]) -> typing.Any:
    total = None
    for value in values:
        total = value if total is None else total + value
    return total


def surface_volume_fluxes(
    reservoir_fluxes: typing.Mapping[FluidPhase, typing.Any],
    b_factors: typing.Mapping[FluidPhase, typing.Any],
    rs: typing.Any,
    rv: typing.Any,
    disgas: bool,
    vapoil: bool,
) -> typing.Dict[FluidPhase, typing.Any]:
    """
    Convert reservoir condition phase fluxes to surface volume component fluxes.

    Oil carries dissolved gas (`rs`) into the gas component and gas carries
    vaporized oil (`rv`) into the oil component.
    """
    surface = {
        phase: b_factors[phase] * flux for phase, flux in reservoir_fluxes.items()
    }
    free_oil = surface.get(FluidPhase.OIL)
    free_gas = surface.get(FluidPhase.GAS)
    if vapoil:
        surface[FluidPhase.OIL] = free_oil + rv * free_gas
    if disgas:
        surface[FluidPhase.GAS] = free_gas + rs * free_oil
    return surface


@attrs.frozen
class StandardWellModel:
    """
    Wells with a single bottom-hole pressure and instantaneous wellbore flow.

    Perforation inflow is `WI * mobility * (p_wellbore - p_cell)`, positive
    into the reservoir. Injecting perforations of injectors use the total
    mobility and the injected composition. The wellbore pressure at a
    perforation adds a mixture density head below the first perforation.
    """

    def prepare_well_solutions(
        self,
        wells: typing.Sequence[Well],
        well_solutions: typing.Sequence[WellSolution],
        pressure: np.ndarray,
        iteration: int,
    ) -> typing.Tuple[WellSolution, ...]:
        """
        Well solutions to linearize around.

        Missing solutions are initialized. On the first nonlinear iteration
        bhp controlled wells start from their target.
        """
        if len(well_solutions) != len(wells):
            if well_solutions:
                raise ValidationError(
                    f"Got {len(well_solutions)} well solutions for {len(wells)} wells"
                )
            return initialize_well_solutions(wells, pressure)

        prepared = []
        for well, solution in zip(wells, well_solutions):
            if solution.name != well.name:
                raise ValidationError(
                    f"Well solution {solution.name!r} does not belong to well {well.name!r}"
                )
            changes = {"control": well.control.type.value}
            if iteration == 1 and not well.control.is_rate_control:
                changes["bhp"] = well.control.target
            prepared.append(solution.evolve(**changes))
        return tuple(prepared)

    def mixture_fractions(
        self,
        wells: typing.Sequence[Well],
        perforation_mobilities: typing.Mapping[FluidPhase, typing.Any],
        b_factors: typing.Mapping[FluidPhase, typing.Any],
        perforation_saturations: typing.Optional[typing.Mapping[FluidPhase, typing.Any]] = None,
    ) -> np.ndarray:
        """
        (wells x 3) phase fractions of the fluid in each well.

        Injectors carry their injected composition. Producers carry the
        surface volume mobility fractions of their perforated cells. Where no
        perforation of a producer has mobile fluid, the surface volume
        saturation fractions are used instead.
        """
        counts = np.array([well.num_perforations for well in wells])
        well_of_perforation = np.repeat(np.arange(len(wells)), counts)
        fractions = np.zeros((len(wells), 3))
        for phase, mobility in perforation_mobilities.items():
            weight = value_of(mobility) * value_of(b_factors[phase])
            fractions[:, phase.column] = np.bincount(
                well_of_perforation,
                weights=np.broadcast_to(weight, (counts.sum(),)),
                minlength=len(wells),
            )
        totals = fractions.sum(axis=1, keepdims=True)
        if perforation_saturations is not None and np.any(totals == 0.0):
            immobile = totals[:, 0] == 0.0
            for phase, saturation in perforation_saturations.items():
                weight = value_of(saturation) * value_of(b_factors[phase])
                fractions[immobile, phase.column] = np.bincount(
                    well_of_perforation,
                    weights=np.broadcast_to(weight, (counts.sum(),)),
                    minlength=len(wells),
                )[immobile]
            totals = fractions.sum(axis=1, keepdims=True)
        fractions = np.divide(
            fractions, totals, out=np.zeros_like(fractions), where=totals > 0.0
        )
        for index, well in enumerate(wells):
            if well.is_injector:
                fractions[index] = well.composition
        return fractions

    def compute_well_flux(
        self,
        model,
        wells: typing.Sequence[Well],
        well_solutions: typing.Sequence[WellSolution],
        bhp: typing.Any,
        surface_rates: typing.Mapping[FluidPhase, typing.Any],
        perforation_pressure: typing.Any,
        surface_densities: typing.Sequence[float],
        perforation_mobilities: typing.Mapping[FluidPhase, typing.Any],
        b_factors: typing.Mapping[FluidPhase, typing.Any],
        perforation_saturations: typing.Mapping[FluidPhase, typing.Any],
        dissolution: typing.Mapping[str, typing.Any],
        options: AssemblyOptions,
    ) -> WellFluxes:
        """
        Perforation fluxes, well equations and control equations of all wells.

        :param model: The reservoir model.
        :param wells: The wells, in the order of `bhp` and `surface_rates`.
        :param well_solutions: Current well solutions.
        :param bhp: Bottom-hole pressure of every well.
        :param surface_rates: Surface rate of every active phase, per well.
        :param perforation_pressure: Cell pressure at every perforation.
        :param surface_densities: Surface densities of water, oil and gas.
        :param perforation_mobilities: Mobility of every active phase at the perforations.
        :param b_factors: b-factor of every active phase at the perforations.
        :param perforation_saturations: Saturation of every active phase at the perforations.
        :param dissolution: `rs` and `rv` at the perforations, under the same keys.
        :param options: Assembly options.
        :return: The well fluxes.
        """
        phases = tuple(perforation_mobilities)
        capabilities = model.capabilities
        num_wells = len(wells)
        counts = np.array([well.num_perforations for well in wells])
        well_of_perforation = np.repeat(np.arange(num_wells), counts)
        cells = np.concatenate([well.cells for well in wells])
        well_indices = np.concatenate([well.well_indices for well in wells])

        mixture = self.mixture_fractions(
            wells, perforation_mobilities, b_factors, perforation_saturations
        )
        mixture_density = mixture @ np.asarray(surface_densities, dtype=np.float64)
        depths = model.grid.depths[cells]
        top_depths = np.array([model.grid.depths[well.cells[0]] for well in wells])
        head = (
            model.gravity
            * mixture_density[well_of_perforation]
            * (depths - top_depths[well_of_perforation])
        )

        wellbore_pressure = spread(bhp, counts) + head
        drawdown = wellbore_pressure - perforation_pressure
        injector = np.array([well.is_injector for well in wells])[well_of_perforation]
        injecting = injector & (value_of(drawdown) > 0.0)
        total_mobility = _sum_phases(perforation_mobilities.values())
        compositions = np.vstack([well.composition for well in wells])[well_of_perforation]

        reservoir_fluxes = {}
        for phase in phases:
            mobility = where(
                injecting,
                total_mobility * compositions[:, phase.column],
                perforation_mobilities[phase],
            )
            reservoir_fluxes[phase] = well_indices * mobility * drawdown

        perforation_fluxes = surface_volume_fluxes(
            reservoir_fluxes,
            b_factors,
            dissolution.get("rs"),
            dissolution.get("rv"),
            capabilities.disgas,
            capabilities.vapoil,
        )

        well_equations = {}
        for phase in phases:
            well_equations[phase] = surface_rates[phase] - accumulate_at(
                well_of_perforation, perforation_fluxes[phase], num_wells
            )

        control_equations = build_control_equations(
            [well.control for well in wells], bhp, surface_rates, mixture, phases
        )

        flux_table = np.zeros((cells.size, 3))
        for phase in phases:
            flux_table[:, phase.column] = value_of(reservoir_fluxes[phase])
        bhp_values = np.asarray(value_of(bhp), dtype=np.float64)
        updated = []
        for index, (well, solution) in enumerate(zip(wells, well_solutions)):
            rates = {
                phase: float(np.asarray(value_of(surface_rates[phase]))[index])
                for phase in phases
            }
            updated.append(
                solution.evolve(
                    bhp=bhp_values[index],
                    water_rate=rates.get(FluidPhase.WATER, 0.0),
                    oil_rate=rates.get(FluidPhase.OIL, 0.0),
                    gas_rate=rates.get(FluidPhase.GAS, 0.0),
                    flux=flux_table[well_of_perforation == index],
                    control=well.control.type.value,
                )
            )
        if options.iteration == 1:
            logger.debug(f"Evaluated {num_wells} well(s) with {cells.size} perforation(s)")
        return WellFluxes(
            perforation_fluxes=perforation_fluxes,
            well_equations=well_equations,
            control_equations=control_equations,
            perforation_cells=cells,
            well_solutions=tuple(updated),
            reservoir_fluxes=reservoir_fluxes,
        )
