"""Fully implicit black-oil equations of dual-porosity (fracture and matrix) reservoirs."""

import logging
import typing

import numpy as np

from resad.config import AssemblyOptions
from resad.equations.base import DrivingForces, LinearizedProblem
from resad.equations.blackoil import previous_well_solutions, prepare_well_solutions
from resad.equations.common import (
    PHASE_EQUATION_NAMES,
    ContinuumVariables,
    PhaseProperties,
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
    saturation_variable_names,
    split_well_variables,
    stack_fluxes,
    stored_continuum_variables,
    well_primary_variables,
)
from resad.equations.transfer import ContinuumFields
from resad.errors import ConfigurationError
from resad.states import ReservoirState
from resad.status import status_variable
from resad.types import FluidPhase

logger = logging.getLogger(__name__)

__all__ = ["equations_black_oil_dp", "continuum_fields", "apply_transfer"]


def continuum_fields(
    variables: ContinuumVariables, properties: typing.Mapping[FluidPhase, PhaseProperties]
) -> ContinuumFields:
    return ContinuumFields(
        pressure=variables.pressure,
        sw=variables.sw,
        so=variables.so,
        sg=variables.sg,
        rs=variables.rs,
        rv=variables.rv,
        mobilities={phase: props.mobility for phase, props in properties.items()},
        b_factors={phase: props.b for phase, props in properties.items()},
        phase_pressures={phase: props.pressure for phase, props in properties.items()},
    )


def apply_transfer(
    model,
    fracture_equations: typing.Dict[FluidPhase, typing.Any],
    matrix_equations: typing.Dict[FluidPhase, typing.Any],
    fracture: ContinuumFields,
    matrix: ContinuumFields,
) -> None:
    """
    Add the bulk volume scaled transfer to the fracture equations and
    subtract it from the matrix equations, in place.
    """
    rates = model.transfer_model.calculate_transfer(model, fracture, matrix)
    bulk_volume = model.grid.cell_volumes
    for phase in fracture_equations:
        transfer = bulk_volume * rates[phase.column]
        fracture_equations[phase] = fracture_equations[phase] + transfer
        matrix_equations[phase] = matrix_equations[phase] - transfer


def matrix_variable_names(capabilities) -> typing.Tuple[typing.Optional[str], typing.Optional[str]]:
    water_name, gas_name = saturation_variable_names(capabilities)
    return (
        "swm" if water_name is not None else None,
        None if gas_name is None else ("xm" if gas_name == "x" else "sgm"),
    )


def equations_black_oil_dp(
    state0: ReservoirState,
    state: ReservoirState,
    model,
    dt: float,
    forces: typing.Optional[DrivingForces] = None,
    options: typing.Optional[AssemblyOptions] = None,
    **kwargs: typing.Any,
) -> typing.Tuple[LinearizedProblem, ReservoirState]:
    """
    Assemble the dual-porosity black-oil equations.

    Fracture equations (`water`, `oil`, `gas`) carry fluxes, wells, sources
    and boundary conditions. Matrix equations (`water_matrix`, `oil_matrix`,
    `gas_matrix`) carry accumulation only. The transfer, scaled by bulk
    volume, enters the fracture equations with a plus sign and the matrix
    equations with a minus sign, so it cancels in their sum.

    Primary variables are `pressure`, `sW`, `x`, `pom`, `swm`, `xm` (each
    where the model needs it) followed by the well variables.
    """
    options = resolve_options(options, kwargs)
    forces = forces if forces is not None else DrivingForces()
    capabilities = model.capabilities
    if not capabilities.dual_porosity:
        raise ConfigurationError("Dual-porosity equations need a dual-porosity model")
    fluid = model.fluid
    matrix_fluid = model.matrix_fluid
    operators = model.operators

    well_solutions = prepare_well_solutions(model, state, forces, options)
    well_solutions0 = previous_well_solutions(state0, well_solutions)

    masks = cell_status_masks(capabilities, state.so, state.sw, state.sg, state.status)
    masks0 = cell_status_masks(capabilities, state0.so, state0.sw, state0.sg, state0.status)
    matrix_saturations = state.matrix_saturations
    matrix_saturations0 = state0.matrix_saturations
    matrix_masks = cell_status_masks(
        capabilities, matrix_saturations[:, 1], matrix_saturations[:, 0], matrix_saturations[:, 2]
    )
    matrix_masks0 = cell_status_masks(
        capabilities,
        matrix_saturations0[:, 1],
        matrix_saturations0[:, 0],
        matrix_saturations0[:, 2],
    )

    water_name, gas_name = saturation_variable_names(capabilities)
    matrix_water_name, matrix_gas_name = matrix_variable_names(capabilities)
    if capabilities.uses_phase_status:
        x = status_variable(masks, state.rs, state.rv, state.sg)
        x0 = status_variable(masks0, state0.rs, state0.rv, state0.sg)
        xm = status_variable(
            matrix_masks, state.matrix_rs, state.matrix_rv, matrix_saturations[:, 2]
        )
        xm0 = status_variable(
            matrix_masks0, state0.matrix_rs, state0.matrix_rv, matrix_saturations0[:, 2]
        )
    else:
        x, x0 = state.sg, state0.sg
        xm, xm0 = matrix_saturations[:, 2], matrix_saturations0[:, 2]

    if options.static_wells:
        well_values, well_names, well_values0 = [], [], []
    else:
        well_values, well_names = well_primary_variables(capabilities, well_solutions)
        well_values0, _ = well_primary_variables(capabilities, well_solutions0)

    candidates = [
        ("pressure", state.pressure, state0.pressure),
        (water_name, state.sw, state0.sw),
        (gas_name, x, x0),
        ("pom", state.matrix_pressure, state0.matrix_pressure),
        (matrix_water_name, matrix_saturations[:, 0], matrix_saturations0[:, 0]),
        (matrix_gas_name, xm, xm0),
    ]
    names, current_values, previous_values = [], [], []
    for name, value, value0 in candidates:
        if name is not None:
            names.append(name)
            current_values.append(value)
            previous_values.append(value0)
    names.extend(well_names)
    current_values.extend(well_values)
    previous_values.extend(well_values0)

    variables, variables0 = declare_primary_variables(
        names, current_values, previous_values, options
    )
    current = continuum_variables(
        model,
        fluid,
        masks,
        variables["pressure"],
        variables.get(water_name, state.sw),
        variables.get(gas_name),
        state.sg,
        state.rs,
        state.rv,
    )
    matrix_current = continuum_variables(
        model,
        matrix_fluid,
        matrix_masks,
        variables["pom"],
        variables.get(matrix_water_name, matrix_saturations[:, 0]),
        variables.get(matrix_gas_name),
        matrix_saturations[:, 2],
        state.matrix_rs,
        state.matrix_rv,
    )
    if options.reverse_mode and not options.res_only:
        previous = continuum_variables(
            model,
            fluid,
            masks0,
            variables0["pressure"],
            variables0.get(water_name, state0.sw),
            variables0.get(gas_name),
            state0.sg,
            state0.rs,
            state0.rv,
        )
        matrix_previous = continuum_variables(
            model,
            matrix_fluid,
            matrix_masks0,
            variables0["pom"],
            variables0.get(matrix_water_name, matrix_saturations0[:, 0]),
            variables0.get(matrix_gas_name),
            matrix_saturations0[:, 2],
            state0.matrix_rs,
            state0.matrix_rv,
        )
    else:
        previous = stored_continuum_variables(model, state0, masks0)
        matrix_previous = stored_continuum_variables(model, state0, matrix_masks0, matrix=True)

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

    phases = capabilities.active_phases
    equations = (
        [fracture_equations[phase] for phase in phases]
        + [matrix_equations[phase] for phase in phases]
        + well_equations
    )
    equation_names = (
        [PHASE_EQUATION_NAMES[phase] for phase in phases]
        + [f"{PHASE_EQUATION_NAMES[phase]}_matrix" for phase in phases]
        + well_equation_names
    )
    types = ["cell"] * (2 * len(phases)) + ["well"] * len(well_equations)
    equations = ensure_differentiable(
        equations, [np.size(value) for value in current_values], options.res_only
    )

    state = state.evolve(
        flux=stack_fluxes(properties, operators.num_faces),
        well_solutions=well_solutions,
    )
    problem = LinearizedProblem(
        equations=equations,
        types=types,
        names=equation_names,
        primary_variables=names,
        state=state,
        dt=dt,
        iteration=options.iteration,
    )
    return problem, state
