"""
Pressure equations of the sequential (pressure then transport) split.

The component equations are weighted so that, with saturations and
dissolution held at their current values, their combination depends on
pressure (and the well unknowns) only.
"""

import logging
import typing

import attrs
import numpy as np

from resad.ad.forward import value_of
from resad.config import AssemblyOptions
from resad.equations.base import DrivingForces, LinearizedProblem
from resad.equations.blackoil import previous_well_solutions, prepare_well_solutions
from resad.equations.common import (
    add_boundary_conditions_and_sources,
    cell_status_masks,
    conservation_equations,
    continuum_variables,
    declare_primary_variables,
    ensure_differentiable,
    evaluate_phase_properties,
    face_transmissibility,
    flow_context,
    get_multipliers,
    insert_well_equations,
    previous_b_factors,
    resolve_options,
    split_well_variables,
    stack_fluxes,
    stored_continuum_variables,
    well_primary_variables,
)
from resad.equations.dual_porosity import apply_transfer, continuum_fields
from resad.errors import ConfigurationError
from resad.states import ReservoirState
from resad.status import status_variable
from resad.types import FluidPhase

logger = logging.getLogger(__name__)

__all__ = [
    "pressure_equation_black_oil",
    "pressure_equation_oil_water_dp",
    "pressure_weights",
]


def pressure_weights(
    capabilities, b_factors: typing.Mapping[FluidPhase, typing.Any], rs=None, rv=None
) -> typing.Dict[FluidPhase, typing.Any]:
    """
    Weights that eliminate the accumulation of saturations and dissolution
    from the sum of the component equations.

    With `c = 1 / (1 - disgas * vapoil * rs * rv)`::

        a_w = 1 / bW
        a_o = c * (1 / bO - disgas * rs / bG)
        a_g = c * (1 / bG - vapoil * rv / bO)
    """
    disgas, vapoil = capabilities.disgas, capabilities.vapoil
    factor = 1.0
    if disgas and vapoil:
        factor = 1.0 / (1.0 - rs * rv)

    weights = {}
    if capabilities.water:
        weights[FluidPhase.WATER] = 1.0 / b_factors[FluidPhase.WATER]
    if capabilities.oil:
        weight = 1.0 / b_factors[FluidPhase.OIL]
        if disgas:
            weight = weight - rs / b_factors[FluidPhase.GAS]
        weights[FluidPhase.OIL] = factor * weight
    if capabilities.gas:
        weight = 1.0 / b_factors[FluidPhase.GAS]
        if vapoil:
            weight = weight - rv / b_factors[FluidPhase.OIL]
        weights[FluidPhase.GAS] = factor * weight
    return weights


def _correct_fluxes(model, properties, pressure, property_pressure, transmissibility):
    """
    Re-evaluate the phase fluxes with the pressure gradient of the unknown
    pressure, keeping properties and upstream flags from `property_pressure`.
    """
    operators = model.operators
    correction = operators.grad(pressure) - operators.grad(property_pressure)
    corrected = {}
    for phase, props in properties.items():
        dp = props.dp + correction
        flux = -(
            operators.face_upstream(props.upstream, props.mobility) * transmissibility * dp
        )
        corrected[phase] = attrs.evolve(
            props, flux=flux, dp=dp, pressure=props.pressure + (pressure - property_pressure)
        )
    return corrected


def pressure_equation_black_oil(
    state0: ReservoirState,
    state: ReservoirState,
    model,
    dt: float,
    forces: typing.Optional[DrivingForces] = None,
    options: typing.Optional[AssemblyOptions] = None,
    **kwargs: typing.Any,
) -> typing.Tuple[LinearizedProblem, ReservoirState]:
    """
    Assemble the black-oil pressure equation.

    Unknowns are `pressure` and the well variables. Saturations, and the
    dissolution of undersaturated cells, are frozen at `state`. The single
    cell equation `pressure` is `(dt / pv) * sum(a_i * eq_i)` over the
    component equations `eq_i` with the weights of `pressure_weights`. Well
    equations are kept unchanged. The phase fluxes are stored on the returned
    state for the following transport solve.

    With `options.props_pressure`, fluid properties and upstream directions
    are evaluated at that pressure, while fluxes still follow the gradient of
    the unknown pressure.

    :raises ConfigurationError: In reverse mode.
    """
    options = resolve_options(options, kwargs)
    if options.reverse_mode:
        raise ConfigurationError("Reverse mode is not supported by the pressure equation")
    forces = forces if forces is not None else DrivingForces()
    capabilities = model.capabilities
    fluid = model.fluid
    operators = model.operators

    well_solutions = prepare_well_solutions(model, state, forces, options)
    well_solutions0 = previous_well_solutions(state0, well_solutions)

    masks = cell_status_masks(capabilities, state.so, state.sw, state.sg, state.status)
    masks0 = cell_status_masks(capabilities, state0.so, state0.sw, state0.sg, state0.status)
    x = None
    if capabilities.oil and capabilities.gas:
        if capabilities.uses_phase_status:
            x = status_variable(masks, state.rs, state.rv, state.sg)
        else:
            x = state.sg

    if options.static_wells:
        well_values, well_names, well_values0 = [], [], []
    else:
        well_values, well_names = well_primary_variables(capabilities, well_solutions)
        well_values0, _ = well_primary_variables(capabilities, well_solutions0)

    names = ["pressure", *well_names]
    current_values = [state.pressure, *well_values]
    variables, _ = declare_primary_variables(
        names, current_values, [state0.pressure, *well_values0], options
    )
    pressure = variables["pressure"]
    if options.props_pressure is not None:
        property_pressure = np.asarray(options.props_pressure, dtype=np.float64)
    else:
        property_pressure = pressure

    current = continuum_variables(
        model, fluid, masks, property_pressure, state.sw, x, state.sg, state.rs, state.rv
    )
    previous = stored_continuum_variables(model, state0, masks0)

    pv_mult, trans_mult, pv_mult0 = get_multipliers(fluid, property_pressure, previous.pressure)
    transmissibility = face_transmissibility(operators, trans_mult)
    properties = evaluate_phase_properties(model, fluid, current, transmissibility)
    if property_pressure is not pressure:
        properties = _correct_fluxes(
            model, properties, pressure, property_pressure, transmissibility
        )
    cell_equations = conservation_equations(
        model,
        operators.pore_volume,
        dt,
        current,
        previous,
        properties,
        previous_b_factors(model, fluid, previous),
        pv_mult,
        pv_mult0,
    )

    context = flow_context(model, current, properties)
    cell_equations = add_boundary_conditions_and_sources(
        model, cell_equations, context, forces
    )
    well_variables = split_well_variables(
        capabilities, [variables[name] for name in well_names]
    )
    cell_equations, well_equations, well_equation_names, well_solutions = (
        insert_well_equations(
            model, cell_equations, forces, well_solutions, well_variables, context, options
        )
    )

    weights = pressure_weights(
        capabilities,
        {phase: props.b for phase, props in properties.items()},
        current.rs,
        current.rv,
    )
    combined = None
    for phase in capabilities.active_phases:
        term = cell_equations[phase] * weights[phase]
        combined = term if combined is None else combined + term
    pressure_equation = (dt / operators.pore_volume) * combined

    equations = ensure_differentiable(
        [pressure_equation, *well_equations],
        [np.size(value) for value in current_values],
        options.res_only,
    )
    state = state.evolve(
        flux=stack_fluxes(properties, operators.num_faces),
        well_solutions=well_solutions,
    )
    logger.debug(
        f"Pressure equation assembled, max residual {np.max(np.abs(value_of(pressure_equation))):.3e}"
    )
    problem = LinearizedProblem(
        equations=equations,
        types=["cell"] + ["well"] * len(well_equations),
        names=["pressure", *well_equation_names],
        primary_variables=names,
        state=state,
        dt=dt,
        iteration=options.iteration,
    )
    return problem, state


def pressure_equation_oil_water_dp(
    state0: ReservoirState,
    state: ReservoirState,
    model,
    dt: float,
    forces: typing.Optional[DrivingForces] = None,
    options: typing.Optional[AssemblyOptions] = None,
    **kwargs: typing.Any,
) -> typing.Tuple[LinearizedProblem, ReservoirState]:
    """
    Assemble the oil-water pressure equations of a dual-porosity model.

    Unknowns are the fracture oil pressure `pressure`, the matrix oil
    pressure `pom` and the well variables. Water saturations of both
    continua are frozen. The equations are

        pressure        = (dt / pv)   * (oil / bO + water / bW)
        pressure_matrix = (dt / pv_m) * (oil_m / bO_m + water_m / bW_m)

    followed by the well equations.

    :raises ConfigurationError: For models other than dual-porosity
        oil-water models, and in reverse mode.
    """
    options = resolve_options(options, kwargs)
    capabilities = model.capabilities
    if not capabilities.dual_porosity:
        raise ConfigurationError(
            "The dual-porosity pressure equation needs a dual-porosity model"
        )
    if capabilities.gas or not (capabilities.water and capabilities.oil):
        raise ConfigurationError(
            "The dual-porosity pressure equation supports oil-water models only"
        )
    if options.reverse_mode:
        raise ConfigurationError("Reverse mode is not supported by the pressure equation")
    forces = forces if forces is not None else DrivingForces()
    fluid = model.fluid
    matrix_fluid = model.matrix_fluid
    operators = model.operators

    well_solutions = prepare_well_solutions(model, state, forces, options)
    well_solutions0 = previous_well_solutions(state0, well_solutions)
    if options.static_wells:
        well_values, well_names, well_values0 = [], [], []
    else:
        well_values, well_names = well_primary_variables(capabilities, well_solutions)
        well_values0, _ = well_primary_variables(capabilities, well_solutions0)

    names = ["pressure", "pom", *well_names]
    current_values = [state.pressure, state.matrix_pressure, *well_values]
    variables, _ = declare_primary_variables(
        names,
        current_values,
        [state0.pressure, state0.matrix_pressure, *well_values0],
        options,
    )

    masks = cell_status_masks(capabilities, state.so, state.sw, state.sg)
    masks0 = cell_status_masks(capabilities, state0.so, state0.sw, state0.sg)
    current = continuum_variables(
        model, fluid, masks, variables["pressure"], state.sw, None, state.sg, state.rs, state.rv
    )
    matrix_current = continuum_variables(
        model,
        matrix_fluid,
        masks,
        variables["pom"],
        state.matrix_saturations[:, 0],
        None,
        state.matrix_saturations[:, 2],
        state.matrix_rs,
        state.matrix_rv,
    )
    previous = stored_continuum_variables(model, state0, masks0)
    matrix_previous = stored_continuum_variables(model, state0, masks0, matrix=True)

    pv_mult, trans_mult, pv_mult0 = get_multipliers(fluid, current.pressure, previous.pressure)
    transmissibility = face_transmissibility(operators, trans_mult)
    properties = evaluate_phase_properties(model, fluid, current, transmissibility)
    fracture_equations = conservation_equations(
        model,
        operators.pore_volume,
        dt,
        current,
        previous,
        properties,
        previous_b_factors(model, fluid, previous),
        pv_mult,
        pv_mult0,
    )
    matrix_pv_mult, _, matrix_pv_mult0 = get_multipliers(
        matrix_fluid, matrix_current.pressure, matrix_previous.pressure
    )
    matrix_properties = evaluate_phase_properties(
        model, matrix_fluid, matrix_current, with_flux=False
    )
    matrix_equations = conservation_equations(
        model,
        operators.pore_volume_matrix,
        dt,
        matrix_current,
        matrix_previous,
        matrix_properties,
        previous_b_factors(model, matrix_fluid, matrix_previous),
        matrix_pv_mult,
        matrix_pv_mult0,
    )
    apply_transfer(
        model,
        fracture_equations,
        matrix_equations,
        continuum_fields(current, properties),
        continuum_fields(matrix_current, matrix_properties),
    )

    context = flow_context(model, current, properties)
    fracture_equations = add_boundary_conditions_and_sources(
        model, fracture_equations, context, forces
    )
    well_variables = split_well_variables(
        capabilities, [variables[name] for name in well_names]
    )
    fracture_equations, well_equations, well_equation_names, well_solutions = (
        insert_well_equations(
            model, fracture_equations, forces, well_solutions, well_variables, context, options
        )
    )

    water, oil = FluidPhase.WATER, FluidPhase.OIL
    fracture_pressure = (dt / operators.pore_volume) * (
        fracture_equations[oil] / properties[oil].b
        + fracture_equations[water] / properties[water].b
    )
    matrix_pressure = (dt / operators.pore_volume_matrix) * (
        matrix_equations[oil] / matrix_properties[oil].b
        + matrix_equations[water] / matrix_properties[water].b
    )
    equations = ensure_differentiable(
        [fracture_pressure, matrix_pressure, *well_equations],
        [np.size(value) for value in current_values],
        options.res_only,
    )
    state = state.evolve(
        flux=stack_fluxes(properties, operators.num_faces),
        well_solutions=well_solutions,
    )
    problem = LinearizedProblem(
        equations=equations,
        types=["cell", "cell"] + ["well"] * len(well_equations),
        names=["pressure", "pressure_matrix", *well_equation_names],
        primary_variables=names,
        state=state,
        dt=dt,
        iteration=options.iteration,
    )
    return problem, state
