"""Saturation transport of the sequential split, for a fixed total flux."""

import logging
import typing

import numpy as np

from resad.ad.forward import value_of
from resad.ad.functions import accumulate_at, where
from resad.config import AssemblyOptions
from resad.equations.base import DrivingForces, LinearizedProblem
from resad.equations.common import (
    ContinuumVariables,
    PHASE_EQUATION_NAMES,
    add_boundary_conditions_and_sources,
    ensure_differentiable,
    face_transmissibility,
    flow_context,
    get_multipliers,
    initialize_primary_variables,
    oil_flux_and_properties,
    resolve_options,
    water_flux_and_properties,
)
from resad.errors import ConfigurationError, ValidationError
from resad.states import ReservoirState
from resad.types import FluidPhase

logger = logging.getLogger(__name__)

__all__ = ["transport_equation_oil_water", "total_flux"]


def total_flux(state: ReservoirState) -> np.ndarray:
    """Total reservoir condition flux per interior face, the sum of the stored phase fluxes."""
    if state.flux is None:
        raise ValidationError(
            "Transport needs the phase fluxes of a preceding pressure solve on the state"
        )
    return np.asarray(state.flux, dtype=np.float64).sum(axis=1)


def _well_transport_terms(wells, well_solutions, mobilities, b_factors, total_saturation):
    """
    Surface volume perforation fluxes of water and oil for fixed total
    perforation fluxes, split by the cell mobility fractions. Injecting
    perforations use the injected composition.
    """
    if len(well_solutions) != len(wells):
        raise ValidationError(
            f"Got {len(well_solutions)} well solutions for {len(wells)} wells"
        )
    fluxes = []
    for well, solution in zip(wells, well_solutions):
        if solution.flux is None:
            raise ValidationError(f"Well {well.name!r} has no stored perforation flux")
        fluxes.append(np.asarray(solution.flux).sum(axis=1))
    well_flux = np.concatenate(fluxes)
    cells = np.concatenate([well.cells for well in wells])
    counts = np.array([well.num_perforations for well in wells])
    compositions = np.vstack([well.composition for well in wells])
    perforation_composition = np.repeat(compositions, counts, axis=0)

    water, oil = FluidPhase.WATER, FluidPhase.OIL
    water_mobility = mobilities[water][cells]
    oil_mobility = mobilities[oil][cells]
    total_mobility = water_mobility + oil_mobility
    injecting = well_flux > 0.0
    saturation = total_saturation[cells]

    water_fraction = saturation * water_mobility / total_mobility
    oil_fraction = saturation * oil_mobility / total_mobility
    water_fraction = where(injecting, perforation_composition[:, 0], water_fraction)
    oil_fraction = where(injecting, perforation_composition[:, 1], oil_fraction)

    surface = {
        water: b_factors[water][cells] * water_fraction * well_flux,
        oil: b_factors[oil][cells] * oil_fraction * well_flux,
    }
    return cells, counts, surface


def transport_equation_oil_water(
    state0: ReservoirState,
    state: ReservoirState,
    model,
    dt: float,
    forces: typing.Optional[DrivingForces] = None,
    options: typing.Optional[AssemblyOptions] = None,
    **kwargs: typing.Any,
) -> typing.Tuple[LinearizedProblem, ReservoirState]:
    """
    Assemble the oil-water transport equations for the total flux stored on `state`.

    The water flux is split into a viscous and a gravity part::

        bW * vW = up(sT * bW) * f_w * vT + up_g(bW) * f_g * T * (Gw - Go)

    with `f_w = lambda_w / (lambda_w + lambda_o)` upstream by the total flux
    direction, `f_g = lambda_w * lambda_o / (lambda_w + lambda_o)` upstream by
    the density difference, and `G = rho * g * dz` (plus capillary
    contributions). The oil flux is symmetric. Pressure is held fixed.

    With `options.solve_for_water` and `options.solve_for_oil` both set, `sW`
    and `sO` are unknowns and their sum `sT` scales the fluxes. Otherwise
    `sW` is the only unknown and `sO = 1 - sW`. Equations are scaled by
    `dt / pv`.

    :raises ConfigurationError: In reverse mode, for models other than
        oil-water models, and when neither equation is selected.
    """
    options = resolve_options(options, kwargs)
    if options.reverse_mode:
        raise ConfigurationError("Reverse mode is not supported by the transport equations")
    capabilities = model.capabilities
    if capabilities.gas or not (capabilities.water and capabilities.oil):
        raise ConfigurationError("Transport equations support oil-water models only")
    if not (options.solve_for_water or options.solve_for_oil):
        raise ConfigurationError("Select at least one of the water and oil transport equations")
    forces = forces if forces is not None else DrivingForces()
    fluid = model.fluid
    operators = model.operators
    water, oil = FluidPhase.WATER, FluidPhase.OIL

    pressure = state.pressure
    pressure0 = state0.pressure
    solve_all = options.solve_for_water and options.solve_for_oil
    if solve_all:
        names = ["sW", "sO"]
        sw, so = initialize_primary_variables([state.sw, state.so], options.res_only)
        total_saturation = so + sw
        krw, kro, _ = fluid.relative_permeability(
            sw / total_saturation,
            so / total_saturation,
            np.zeros(state.num_cells),
            water=True,
            oil=True,
            gas=False,
        )
    else:
        names = ["sW"]
        (sw,) = initialize_primary_variables([state.sw], options.res_only)
        so = 1.0 - sw
        total_saturation = np.ones(state.num_cells)
        krw, kro, _ = fluid.relative_permeability(
            sw, so, np.zeros(state.num_cells), water=True, oil=True, gas=False
        )

    pv_mult, trans_mult, pv_mult0 = get_multipliers(fluid, pressure, pressure0)
    transmissibility = face_transmissibility(operators, trans_mult)
    gdz = model.gravity_gradient()
    water_props = water_flux_and_properties(
        model, fluid, pressure, sw, krw, transmissibility, gdz
    )
    oil_props = oil_flux_and_properties(model, fluid, pressure, so, kro, transmissibility, gdz)

    pressure_gradient = operators.grad(pressure)
    water_gravity = pressure_gradient - water_props.dp
    oil_gravity = pressure_gradient - oil_props.dp
    gravity_difference = water_gravity - oil_gravity
    vt = total_flux(state)

    viscous_upstream = vt >= 0.0
    water_gravity_upstream = np.asarray(value_of(gravity_difference)) > 0.0
    oil_gravity_upstream = np.asarray(value_of(gravity_difference)) < 0.0

    water_mobility_face = operators.face_upstream(viscous_upstream, water_props.mobility)
    oil_mobility_face = operators.face_upstream(viscous_upstream, oil_props.mobility)
    total_mobility_face = water_mobility_face + oil_mobility_face
    water_mobility_gravity = operators.face_upstream(water_gravity_upstream, water_props.mobility)
    oil_mobility_gravity = operators.face_upstream(oil_gravity_upstream, oil_props.mobility)
    gravity_fraction = (
        water_mobility_gravity
        * oil_mobility_gravity
        / (water_mobility_gravity + oil_mobility_gravity)
    )

    scale = operators.pore_volume / dt
    b_water, b_oil = water_props.b, oil_props.b
    water_flux = operators.face_upstream(
        viscous_upstream, total_saturation * b_water
    ) * (water_mobility_face / total_mobility_face) * vt + operators.face_upstream(
        water_gravity_upstream, b_water
    ) * gravity_fraction * transmissibility * gravity_difference
    oil_flux = operators.face_upstream(
        viscous_upstream, total_saturation * b_oil
    ) * (oil_mobility_face / total_mobility_face) * vt - operators.face_upstream(
        oil_gravity_upstream, b_oil
    ) * gravity_fraction * transmissibility * gravity_difference

    equations = {
        water: scale * (pv_mult * b_water * sw - pv_mult0 * fluid.water_b(pressure0) * state0.sw)
        + operators.div(water_flux),
        oil: scale * (pv_mult * b_oil * so - pv_mult0 * fluid.oil_b(pressure0) * state0.so)
        + operators.div(oil_flux),
    }

    well_solutions = state.well_solutions
    if forces.wells:
        cells, counts, surface = _well_transport_terms(
            forces.wells,
            well_solutions,
            {water: water_props.mobility, oil: oil_props.mobility},
            {water: b_water, oil: b_oil},
            total_saturation,
        )
        for phase, flux in surface.items():
            equations[phase] = equations[phase] - accumulate_at(
                cells, flux, model.grid.num_cells
            )
        perforation_well = np.repeat(np.arange(len(forces.wells)), counts)
        water_rates = np.bincount(
            perforation_well, weights=value_of(surface[water]), minlength=len(forces.wells)
        )
        oil_rates = np.bincount(
            perforation_well, weights=value_of(surface[oil]), minlength=len(forces.wells)
        )
        well_solutions = tuple(
            solution.evolve(water_rate=water_rates[index], oil_rate=oil_rates[index])
            for index, solution in enumerate(well_solutions)
        )

    variables = ContinuumVariables(
        pressure=pressure,
        sw=sw,
        so=so,
        sg=np.zeros(state.num_cells),
        rs=None,
        rv=None,
        oil_saturated=np.ones(state.num_cells, dtype=bool),
        gas_saturated=np.ones(state.num_cells, dtype=bool),
    )
    context = flow_context(model, variables, {water: water_props, oil: oil_props})
    equations = add_boundary_conditions_and_sources(model, equations, context, forces)

    selected = []
    if options.solve_for_water:
        selected.append(water)
    if options.solve_for_oil:
        selected.append(oil)
    scaled = [equations[phase] * (dt / operators.pore_volume) for phase in selected]
    scaled = ensure_differentiable(
        scaled, [state.num_cells] * len(names), options.res_only
    )

    state = state.evolve(well_solutions=well_solutions)
    logger.debug(
        f"Transport equations {[PHASE_EQUATION_NAMES[p] for p in selected]} assembled "
        f"for {len(names)} unknown(s)"
    )
    problem = LinearizedProblem(
        equations=scaled,
        types=["cell"] * len(selected),
        names=[PHASE_EQUATION_NAMES[phase] for phase in selected],
        primary_variables=names,
        state=state,
        dt=dt,
        iteration=options.iteration,
    )
    return problem, state
