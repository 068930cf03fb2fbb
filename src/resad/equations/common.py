"""
Building blocks shared by the residual assemblers: phase properties and
fluxes, accumulation terms, sources, boundary conditions and well coupling.
"""

import logging
import typing

import attrs
import numpy as np

from resad.ad.forward import ADArray, initialize_variables, value_of
from resad.ad.functions import accumulate_at
from resad.ad.jacobians import ZeroJacobian
from resad.config import AssemblyOptions
from resad.equations.base import DrivingForces
from resad.errors import ValidationError
from resad.states import WellSolution
from resad.status import compute_cell_status, hydrocarbons_from_status, status_masks
from resad.types import FluidPhase
from resad.wells.model import PHASE_WELL_EQUATION_NAMES, surface_volume_fluxes

logger = logging.getLogger(__name__)

__all__ = [
    "PHASE_EQUATION_NAMES",
    "ContinuumVariables",
    "cell_status_masks",
    "continuum_variables",
    "saturation_variable_names",
    "PhaseProperties",
    "FlowContext",
    "WellVariables",
    "resolve_options",
    "get_multipliers",
    "face_transmissibility",
    "phase_flux",
    "water_flux_and_properties",
    "oil_flux_and_properties",
    "gas_flux_and_properties",
    "evaluate_phase_properties",
    "previous_b_factors",
    "conservation_equations",
    "add_boundary_conditions_and_sources",
    "well_primary_variables",
    "split_well_variables",
    "insert_well_equations",
    "initialize_primary_variables",
    "declare_primary_variables",
    "stored_continuum_variables",
    "flow_context",
    "ensure_differentiable",
    "stack_fluxes",
]

PHASE_EQUATION_NAMES = {
    FluidPhase.WATER: "water",
    FluidPhase.OIL: "oil",
    FluidPhase.GAS: "gas",
}


@attrs.frozen
class ContinuumVariables:
    """Cell unknowns of one continuum (fracture or matrix), plain or AD."""

    pressure: typing.Any
    sw: typing.Any
    so: typing.Any
    sg: typing.Any
    rs: typing.Any
    rv: typing.Any
    oil_saturated: np.ndarray
    """Cells whose oil carries the saturated amount of dissolved gas."""
    gas_saturated: np.ndarray
    """Cells whose gas carries the saturated amount of vaporized oil."""

    def saturation(self, phase: FluidPhase) -> typing.Any:
        return {FluidPhase.WATER: self.sw, FluidPhase.OIL: self.so, FluidPhase.GAS: self.sg}[
            phase
        ]


def saturation_variable_names(capabilities) -> typing.Tuple[typing.Optional[str], typing.Optional[str]]:
    """
    Names of the saturation unknowns: `sW` when water shares the pore space
    with a hydrocarbon phase, and `x` (or `sG` without phase status) when oil
    and gas are both active. Absent unknowns are `None`.
    """
    water_name = "sW" if capabilities.water and (capabilities.oil or capabilities.gas) else None
    gas_name = None
    if capabilities.oil and capabilities.gas:
        gas_name = "x" if capabilities.uses_phase_status else "sG"
    return water_name, gas_name


def cell_status_masks(
    capabilities,
    so: np.ndarray,
    sw: np.ndarray,
    sg: np.ndarray,
    status: typing.Optional[np.ndarray] = None,
) -> typing.Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Status masks of a continuum. Models without phase status count every cell as saturated."""
    if not capabilities.uses_phase_status:
        size = np.size(sw)
        return np.zeros(size, dtype=bool), np.zeros(size, dtype=bool), np.ones(size, dtype=bool)
    return status_masks(
        compute_cell_status(so, sw, sg, capabilities.disgas, capabilities.vapoil, status)
    )


def continuum_variables(
    model,
    fluid,
    masks: typing.Tuple[np.ndarray, np.ndarray, np.ndarray],
    pressure: typing.Any,
    sw: typing.Any,
    x: typing.Any,
    sg: np.ndarray,
    rs: typing.Any,
    rv: typing.Any,
) -> ContinuumVariables:
    """
    Cell unknowns of a continuum from its primary variables.

    :param sw: Water saturation, the `sW` variable or the stored values.
    :param x: The `x` (or `sG`) variable, or `None` when the model has none.
    :param sg: Stored gas saturation, used when `x` is `None`.
    :param rs: Stored dissolved gas ratio.
    :param rv: Stored vaporized oil ratio.
    """
    capabilities = model.capabilities
    if capabilities.uses_phase_status and x is not None:
        sg, rs, rv, _, _ = hydrocarbons_from_status(
            fluid,
            masks,
            1.0 - sw,
            x,
            rs,
            rv,
            pressure,
            capabilities.disgas,
            capabilities.vapoil,
        )
    elif x is not None:
        sg = x
    elif capabilities.gas and capabilities.water and not capabilities.oil:
        sg = 1.0 - sw
    if capabilities.oil:
        so = 1.0 - sw - sg
    else:
        so = np.zeros(np.size(value_of(pressure)))
    return ContinuumVariables(
        pressure=pressure,
        sw=sw,
        so=so,
        sg=sg,
        rs=rs,
        rv=rv,
        oil_saturated=~masks[0],
        gas_saturated=~masks[1],
    )


@attrs.frozen
class PhaseProperties:
    """Cell properties of one phase and, for flowing continua, its face flux."""

    b: typing.Any
    """b-factor."""
    mobility: typing.Any
    density: typing.Any
    """Reservoir condition density."""
    pressure: typing.Any
    """Phase pressure."""
    flux: typing.Any = None
    """Reservoir condition face flux, positive from `N1` to `N2`."""
    upstream: typing.Optional[np.ndarray] = None
    """Upstream flag per face, true where `N1` is upstream."""
    dp: typing.Any = None
    """Phase potential difference per face."""


@attrs.frozen
class FlowContext:
    """Per-cell phase quantities handed to sources and boundary conditions."""

    phases: typing.Tuple[FluidPhase, ...]
    pressures: typing.Mapping[FluidPhase, typing.Any]
    saturations: typing.Mapping[FluidPhase, typing.Any]
    mobilities: typing.Mapping[FluidPhase, typing.Any]
    b_factors: typing.Mapping[FluidPhase, typing.Any]
    rs: typing.Any
    rv: typing.Any
    disgas: bool = False
    vapoil: bool = False

    def total_mobility(self) -> typing.Any:
        total = None
        for phase in self.phases:
            mobility = self.mobilities[phase]
            total = mobility if total is None else total + mobility
        return total


@attrs.frozen
class WellVariables:
    """Well unknowns: surface rate of every active phase and bottom-hole pressure."""

    rates: typing.Dict[FluidPhase, typing.Any]
    bhp: typing.Any


def resolve_options(
    options: typing.Optional[AssemblyOptions], kwargs: typing.Mapping[str, typing.Any]
) -> AssemblyOptions:
    """Merge keyword options into an `AssemblyOptions`, rejecting unknown names."""
    if options is None:
        return AssemblyOptions.from_kwargs(**kwargs)
    if kwargs:
        AssemblyOptions.from_kwargs(**kwargs)
        return attrs.evolve(options, **kwargs)
    return options


def get_multipliers(
    fluid, pressure: typing.Any, pressure0: typing.Any
) -> typing.Tuple[typing.Any, typing.Any, typing.Any]:
    """
    Pressure dependent multipliers: `(pv_mult, trans_mult, pv_mult0)`.

    Missing multipliers evaluate to 1 and `trans_mult` to `None`.
    """
    pv_mult, pv_mult0, trans_mult = 1.0, 1.0, None
    if fluid.pore_volume_multiplier is not None:
        pv_mult = fluid.pore_volume_multiplier(pressure)
        pv_mult0 = fluid.pore_volume_multiplier(pressure0)
    if fluid.transmissibility_multiplier is not None:
        trans_mult = fluid.transmissibility_multiplier(pressure)
    return pv_mult, trans_mult, pv_mult0


def face_transmissibility(operators, trans_mult: typing.Any = None) -> typing.Any:
    """Interior face transmissibility scaled by the face average of the cell multipliers."""
    if trans_mult is None:
        return operators.transmissibility
    return operators.face_average(trans_mult) * operators.transmissibility


def phase_flux(
    operators,
    pressure: typing.Any,
    density: typing.Any,
    mobility: typing.Any,
    transmissibility: typing.Any,
    gdz: np.ndarray,
) -> typing.Tuple[typing.Any, np.ndarray, typing.Any]:
    """
    Two-point phase flux.

    `dp = grad(p) - avg(rho) * g * dz` and `v = -T * upstream(mobility) * dp`,
    with `N1` upstream where `dp <= 0`.

    :return: `(v, upstream, dp)`.
    """
    dp = operators.grad(pressure) - operators.face_average(density) * gdz
    upstream = np.asarray(value_of(dp)) <= 0.0
    v = -(operators.face_upstream(upstream, mobility) * transmissibility * dp)
    return v, upstream, dp


def water_flux_and_properties(
    model,
    fluid,
    pressure: typing.Any,
    sw: typing.Any,
    krw: typing.Any,
    transmissibility: typing.Any,
    gdz: np.ndarray,
    with_flux: bool = True,
) -> PhaseProperties:
    b = fluid.water_b(pressure)
    mobility = krw / fluid.water_viscosity(pressure)
    density = b * fluid.water_surface_density
    water_pressure = pressure
    if fluid.capillary_pressure_ow is not None:
        water_pressure = pressure - fluid.capillary_pressure_ow(sw)
    if not with_flux:
        return PhaseProperties(b=b, mobility=mobility, density=density, pressure=water_pressure)
    v, upstream, dp = phase_flux(
        model.operators, water_pressure, density, mobility, transmissibility, gdz
    )
    return PhaseProperties(
        b=b,
        mobility=mobility,
        density=density,
        pressure=water_pressure,
        flux=v,
        upstream=upstream,
        dp=dp,
    )


def oil_flux_and_properties(
    model,
    fluid,
    pressure: typing.Any,
    so: typing.Any,
    kro: typing.Any,
    transmissibility: typing.Any,
    gdz: np.ndarray,
    rs: typing.Any = None,
    is_saturated: typing.Optional[np.ndarray] = None,
    with_flux: bool = True,
) -> PhaseProperties:
    disgas = model.capabilities.disgas
    if disgas:
        b = fluid.oil_b(pressure, rs, is_saturated)
        viscosity = fluid.oil_viscosity(pressure, rs, is_saturated)
        density = b * (fluid.oil_surface_density + rs * fluid.gas_surface_density)
    else:
        b = fluid.oil_b(pressure)
        viscosity = fluid.oil_viscosity(pressure)
        density = b * fluid.oil_surface_density
    mobility = kro / viscosity
    if not with_flux:
        return PhaseProperties(b=b, mobility=mobility, density=density, pressure=pressure)
    v, upstream, dp = phase_flux(
        model.operators, pressure, density, mobility, transmissibility, gdz
    )
    return PhaseProperties(
        b=b,
        mobility=mobility,
        density=density,
        pressure=pressure,
        flux=v,
        upstream=upstream,
        dp=dp,
    )


def gas_flux_and_properties(
    model,
    fluid,
    pressure: typing.Any,
    sg: typing.Any,
    krg: typing.Any,
    transmissibility: typing.Any,
    gdz: np.ndarray,
    rv: typing.Any = None,
    is_saturated: typing.Optional[np.ndarray] = None,
    with_flux: bool = True,
) -> PhaseProperties:
    vapoil = model.capabilities.vapoil
    if vapoil:
        b = fluid.gas_b(pressure, rv, is_saturated)
        viscosity = fluid.gas_viscosity(pressure, rv, is_saturated)
        density = b * (fluid.gas_surface_density + rv * fluid.oil_surface_density)
    else:
        b = fluid.gas_b(pressure)
        viscosity = fluid.gas_viscosity(pressure)
        density = b * fluid.gas_surface_density
    mobility = krg / viscosity
    gas_pressure = pressure
    if fluid.capillary_pressure_og is not None:
        gas_pressure = pressure + fluid.capillary_pressure_og(sg)
    if not with_flux:
        return PhaseProperties(b=b, mobility=mobility, density=density, pressure=gas_pressure)
    v, upstream, dp = phase_flux(
        model.operators, gas_pressure, density, mobility, transmissibility, gdz
    )
    return PhaseProperties(
        b=b,
        mobility=mobility,
        density=density,
        pressure=gas_pressure,
        flux=v,
        upstream=upstream,
        dp=dp,
    )


def evaluate_phase_properties(
    model,
    fluid,
    variables: ContinuumVariables,
    transmissibility: typing.Any = None,
    with_flux: bool = True,
) -> typing.Dict[FluidPhase, PhaseProperties]:
    """Properties (and fluxes, if `with_flux`) of every active phase of a continuum."""
    capabilities = model.capabilities
    krw, kro, krg = fluid.relative_permeability(
        variables.sw,
        variables.so,
        variables.sg,
        water=capabilities.water,
        oil=capabilities.oil,
        gas=capabilities.gas,
    )
    gdz = model.gravity_gradient() if with_flux else None
    properties = {}
    if capabilities.water:
        properties[FluidPhase.WATER] = water_flux_and_properties(
            model, fluid, variables.pressure, variables.sw, krw, transmissibility, gdz, with_flux
        )
    if capabilities.oil:
        properties[FluidPhase.OIL] = oil_flux_and_properties(
            model,
            fluid,
            variables.pressure,
            variables.so,
            kro,
            transmissibility,
            gdz,
            rs=variables.rs,
            is_saturated=variables.oil_saturated,
            with_flux=with_flux,
        )
    if capabilities.gas:
        properties[FluidPhase.GAS] = gas_flux_and_properties(
            model,
            fluid,
            variables.pressure,
            variables.sg,
            krg,
            transmissibility,
            gdz,
            rv=variables.rv,
            is_saturated=variables.gas_saturated,
            with_flux=with_flux,
        )
    return properties


def previous_b_factors(
    model, fluid, previous: ContinuumVariables
) -> typing.Dict[FluidPhase, typing.Any]:
    """b-factors at the previous time step."""
    capabilities = model.capabilities
    b0 = {}
    if capabilities.water:
        b0[FluidPhase.WATER] = fluid.water_b(previous.pressure)
    if capabilities.oil:
        if capabilities.disgas:
            b0[FluidPhase.OIL] = fluid.oil_b(
                previous.pressure, previous.rs, previous.oil_saturated
            )
        else:
            b0[FluidPhase.OIL] = fluid.oil_b(previous.pressure)
    if capabilities.gas:
        if capabilities.vapoil:
            b0[FluidPhase.GAS] = fluid.gas_b(
                previous.pressure, previous.rv, previous.gas_saturated
            )
        else:
            b0[FluidPhase.GAS] = fluid.gas_b(previous.pressure)
    return b0


def _component_masses(
    capabilities,
    variables: ContinuumVariables,
    b: typing.Mapping[FluidPhase, typing.Any],
) -> typing.Dict[FluidPhase, typing.Any]:
    """Surface volume of each component per unit pore volume."""
    masses = {}
    if capabilities.water:
        masses[FluidPhase.WATER] = b[FluidPhase.WATER] * variables.sw
    if capabilities.oil:
        masses[FluidPhase.OIL] = b[FluidPhase.OIL] * variables.so
    if capabilities.gas:
        masses[FluidPhase.GAS] = b[FluidPhase.GAS] * variables.sg
    if capabilities.vapoil:
        masses[FluidPhase.OIL] = masses[FluidPhase.OIL] + (
            variables.rv * b[FluidPhase.GAS] * variables.sg
        )
    if capabilities.disgas:
        masses[FluidPhase.GAS] = masses[FluidPhase.GAS] + (
            variables.rs * b[FluidPhase.OIL] * variables.so
        )
    return masses


def conservation_equations(
    model,
    pore_volume: np.ndarray,
    dt: float,
    current: ContinuumVariables,
    previous: ContinuumVariables,
    properties: typing.Mapping[FluidPhase, PhaseProperties],
    b0: typing.Mapping[FluidPhase, typing.Any],
    pv_mult: typing.Any = 1.0,
    pv_mult0: typing.Any = 1.0,
) -> typing.Dict[FluidPhase, typing.Any]:
    """
    Surface volume conservation residual of every component.

    `(pv/dt) * (pv_mult * m - pv_mult0 * m0) + div(F)`, where the component
    flux `F` is the upstream b-factor times the phase flux, plus the dissolved
    gas carried by oil (upstream by the oil flag) and the vaporized oil carried
    by gas (upstream by the gas flag). Without fluxes only the accumulation
    term is assembled.
    """
    capabilities = model.capabilities
    operators = model.operators
    b = {phase: props.b for phase, props in properties.items()}
    masses = _component_masses(capabilities, current, b)
    masses0 = _component_masses(capabilities, previous, b0)
    scale = pore_volume / dt

    equations = {
        phase: scale * (pv_mult * masses[phase] - pv_mult0 * masses0[phase])
        for phase in masses
    }
    if any(props.flux is None for props in properties.values()):
        return equations

    surface_fluxes = {
        phase: operators.face_upstream(props.upstream, props.b) * props.flux
        for phase, props in properties.items()
    }
    component_fluxes = dict(surface_fluxes)
    if capabilities.vapoil:
        gas = properties[FluidPhase.GAS]
        component_fluxes[FluidPhase.OIL] = component_fluxes[FluidPhase.OIL] + (
            operators.face_upstream(gas.upstream, current.rv) * surface_fluxes[FluidPhase.GAS]
        )
    if capabilities.disgas:
        oil = properties[FluidPhase.OIL]
        component_fluxes[FluidPhase.GAS] = component_fluxes[FluidPhase.GAS] + (
            operators.face_upstream(oil.upstream, current.rs) * surface_fluxes[FluidPhase.OIL]
        )
    for phase, flux in component_fluxes.items():
        equations[phase] = equations[phase] + operators.div(flux)
    return equations


def add_boundary_conditions_and_sources(
    model,
    equations: typing.Dict[FluidPhase, typing.Any],
    context: FlowContext,
    forces: DrivingForces,
) -> typing.Dict[FluidPhase, typing.Any]:
    """
    Subtract boundary and source inflow from the cell equations.

    Every boundary condition and source provides `reservoir_rates(model,
    context) -> (cells, {phase: rate})`, reservoir condition rates positive
    into the reservoir. They are converted to surface volumes with the cell
    b-factors.
    """
    num_cells = model.grid.num_cells
    for term in (*forces.boundary_conditions, *forces.sources):
        cells, rates = term.reservoir_rates(model, context)
        cells = np.asarray(cells, dtype=np.int64)
        if cells.size == 0:
            continue
        b_factors = {phase: context.b_factors[phase][cells] for phase in rates}
        rs = context.rs[cells] if context.disgas else None
        rv = context.rv[cells] if context.vapoil else None
        surface = surface_volume_fluxes(
            rates, b_factors, rs, rv, context.disgas, context.vapoil
        )
        for phase, rate in surface.items():
            equations[phase] = equations[phase] - accumulate_at(cells, rate, num_cells)
    return equations


def well_primary_variables(
    capabilities, well_solutions: typing.Sequence[WellSolution]
) -> typing.Tuple[typing.List[np.ndarray], typing.List[str]]:
    """Values and names of the well unknowns: `qWs`, `qOs`, `qGs` (active phases), `bhp`."""
    if not well_solutions:
        return [], []
    values, names = [], []
    for phase in capabilities.active_phases:
        values.append(np.array([sol.surface_rate(phase) for sol in well_solutions]))
        names.append(phase.rate_name)
    values.append(np.array([sol.bhp for sol in well_solutions]))
    names.append("bhp")
    return values, names


def split_well_variables(
    capabilities, variables: typing.Sequence[typing.Any]
) -> typing.Optional[WellVariables]:
    if not variables:
        return None
    phases = capabilities.active_phases
    return WellVariables(rates=dict(zip(phases, variables[: len(phases)])), bhp=variables[-1])


def insert_well_equations(
    model,
    equations: typing.Dict[FluidPhase, typing.Any],
    forces: DrivingForces,
    well_solutions: typing.Sequence[WellSolution],
    well_variables: typing.Optional[WellVariables],
    context: FlowContext,
    options: AssemblyOptions,
) -> typing.Tuple[
    typing.Dict[FluidPhase, typing.Any],
    typing.List[typing.Any],
    typing.List[str],
    typing.Tuple[WellSolution, ...],
]:
    """
    Couple the wells to the cell equations.

    Perforation surface fluxes are subtracted from the perforated cells. The
    well rate equations and the control equations are returned in the order
    `waterWells`, `oilWells`, `gasWells`, `closureWells`. With
    `options.static_wells` the stored perforation fluxes are used instead and
    no well equations are produced.

    :return: `(cell equations, well equations, well equation names, well solutions)`.
    """
    wells = forces.wells
    if not wells:
        return equations, [], [], tuple(well_solutions)

    num_cells = model.grid.num_cells
    cells = np.concatenate([well.cells for well in wells])
    b_factors = {phase: context.b_factors[phase][cells] for phase in context.phases}
    rs = context.rs[cells] if context.disgas else None
    rv = context.rv[cells] if context.vapoil else None

    if options.static_wells:
        reservoir_fluxes = {}
        for phase in context.phases:
            stored = []
            for well, solution in zip(wells, well_solutions):
                if solution.flux is None:
                    raise ValidationError(
                        f"Well {well.name!r} has no stored perforation flux for static wells"
                    )
                stored.append(solution.flux[:, phase.column])
            reservoir_fluxes[phase] = np.concatenate(stored)
        surface = surface_volume_fluxes(
            reservoir_fluxes, b_factors, rs, rv, context.disgas, context.vapoil
        )
        for phase, flux in surface.items():
            equations[phase] = equations[phase] - accumulate_at(cells, flux, num_cells)
        return equations, [], [], tuple(well_solutions)

    if FluidPhase.OIL in context.pressures:
        reference_pressure = context.pressures[FluidPhase.OIL]
    else:
        reference_pressure = context.pressures[context.phases[0]]
    fluxes = model.well_model.compute_well_flux(
        model,
        wells,
        well_solutions,
        well_variables.bhp,
        well_variables.rates,
        reference_pressure[cells],
        model.fluid.surface_densities,
        {phase: context.mobilities[phase][cells] for phase in context.phases},
        b_factors,
        {phase: context.saturations[phase][cells] for phase in context.phases},
        {"rs": rs, "rv": rv},
        options,
    )
    for phase, flux in fluxes.perforation_fluxes.items():
        equations[phase] = equations[phase] - accumulate_at(
            fluxes.perforation_cells, flux, num_cells
        )

    well_equations, names = [], []
    for phase in context.phases:
        well_equations.append(fluxes.well_equations[phase])
        names.append(PHASE_WELL_EQUATION_NAMES[phase])
    well_equations.append(fluxes.control_equations)
    names.append("closureWells")
    return equations, well_equations, names, fluxes.well_solutions


def initialize_primary_variables(
    values: typing.Sequence[typing.Any], res_only: bool
) -> typing.List[typing.Any]:
    """AD primary variables, or plain float arrays for residual-only assemblies."""
    if res_only:
        return [np.asarray(value, dtype=np.float64).copy() for value in values]
    return initialize_variables(*values)


def declare_primary_variables(
    names: typing.Sequence[str],
    current: typing.Sequence[typing.Any],
    previous: typing.Sequence[typing.Any],
    options: AssemblyOptions,
) -> typing.Tuple[typing.Dict[str, typing.Any], typing.Dict[str, typing.Any]]:
    """
    Current and previous time step unknowns, keyed by primary variable name.

    In reverse mode the previous step values carry the derivatives and the
    current values are plain arrays.
    """
    differentiate_previous = options.reverse_mode and not options.res_only
    current_variables = initialize_primary_variables(
        current, options.res_only or differentiate_previous
    )
    previous_variables = initialize_primary_variables(previous, not differentiate_previous)
    return dict(zip(names, current_variables)), dict(zip(names, previous_variables))


def stored_continuum_variables(
    model, state, masks: typing.Tuple[np.ndarray, np.ndarray, np.ndarray], matrix: bool = False
) -> ContinuumVariables:
    """Cell unknowns of a continuum taken as stored on a state."""
    if matrix:
        saturations = state.matrix_saturations
        pressure, rs, rv = state.matrix_pressure, state.matrix_rs, state.matrix_rv
    else:
        saturations = state.saturations
        pressure, rs, rv = state.pressure, state.rs, state.rv
    return ContinuumVariables(
        pressure=pressure,
        sw=saturations[:, 0],
        so=saturations[:, 1],
        sg=saturations[:, 2],
        rs=rs,
        rv=rv,
        oil_saturated=~masks[0],
        gas_saturated=~masks[1],
    )


def flow_context(
    model,
    variables: ContinuumVariables,
    properties: typing.Mapping[FluidPhase, PhaseProperties],
) -> FlowContext:
    capabilities = model.capabilities
    phases = tuple(properties)
    return FlowContext(
        phases=phases,
        pressures={phase: properties[phase].pressure for phase in phases},
        saturations={phase: variables.saturation(phase) for phase in phases},
        mobilities={phase: properties[phase].mobility for phase in phases},
        b_factors={phase: properties[phase].b for phase in phases},
        rs=variables.rs,
        rv=variables.rv,
        disgas=capabilities.disgas,
        vapoil=capabilities.vapoil,
    )


def ensure_differentiable(
    equations: typing.Sequence[typing.Any],
    variable_sizes: typing.Sequence[int],
    res_only: bool,
) -> typing.List[typing.Any]:
    """
    Give equations that do not depend on any primary variable zero Jacobians,
    so every equation of a differentiated assembly is an `ADArray`.
    """
    if res_only:
        return [np.asarray(value_of(eq), dtype=np.float64) for eq in equations]
    lifted = []
    for equation in equations:
        if isinstance(equation, ADArray):
            lifted.append(equation)
            continue
        values = np.atleast_1d(np.asarray(equation, dtype=np.float64))
        lifted.append(
            ADArray(values, [ZeroJacobian((values.size, size)) for size in variable_sizes])
        )
    return lifted


def stack_fluxes(
    properties: typing.Mapping[FluidPhase, PhaseProperties], num_faces: int
) -> np.ndarray:
    """(faces x 3) reservoir condition fluxes of the active phases."""
    table = np.zeros((num_faces, 3))
    for phase, props in properties.items():
        if props.flux is not None:
            table[:, phase.column] = value_of(props.flux)
    return table
