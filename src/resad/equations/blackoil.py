"""Fully implicit black-oil residual equations."""

import logging
import typing

import numpy as np

from resad.config import AssemblyOptions
from resad.equations.base import DrivingForces, LinearizedProblem
from resad.equations.common import (
    PHASE_EQUATION_NAMES,
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
from resad.states import ReservoirState
from resad.status import status_variable

logger = logging.getLogger(__name__)

__all__ = ["equations_black_oil", "prepare_well_solutions", "previous_well_solutions"]


def prepare_well_solutions(model, state: ReservoirState, forces: DrivingForces, options):
    """Well solutions of `state` prepared by the model's well model."""
    if not forces.wells:
        return ()
    return model.well_model.prepare_well_solutions(
        forces.wells, state.well_solutions, state.pressure, options.iteration
    )


def previous_well_solutions(state0: ReservoirState, well_solutions: typing.Sequence):
    if len(state0.well_solutions) == len(well_solutions):
        return state0.well_solutions
    return tuple(well_solutions)


def equations_black_oil(
    state0: ReservoirState,
    state: ReservoirState,
    model,
    dt: float,
    forces: typing.Optional[DrivingForces] = None,
    options: typing.Optional[AssemblyOptions] = None,
    **kwargs: typing.Any,
) -> typing.Tuple[LinearizedProblem, ReservoirState]:
    """
    Assemble the fully implicit black-oil equations.

    One surface volume conservation equation per active component (`water`,
    `oil`, `gas`) plus, with wells, the well rate equations and the control
    equations. Primary variables are `pressure`, `sW`, `x` (or `sG` without
    dissolution), then `qWs`, `qOs`, `qGs` and `bhp`, each only where the
    model needs it.

    :param state0: State at the start of the time step.
    :param state: Current nonlinear iterate.
    :param model: The `ReservoirModel`.
    :param dt: Time step length.
    :param forces: Wells, boundary conditions and sources.
    :param options: Assembly options. Keyword arguments are merged into them.
    :return: The linearized problem and `state` with fluxes and well solutions updated.
    :raises UnknownOptionError: For unrecognized keyword options.
    """
    options = resolve_options(options, kwargs)
    forces = forces if forces is not None else DrivingForces()
    capabilities = model.capabilities
    fluid = model.fluid
    operators = model.operators

    well_solutions = prepare_well_solutions(model, state, forces, options)
    well_solutions0 = previous_well_solutions(state0, well_solutions)

    masks = cell_status_masks(capabilities, state.so, state.sw, state.sg, state.status)
    masks0 = cell_status_masks(capabilities, state0.so, state0.sw, state0.sg, state0.status)
    water_name, gas_name = saturation_variable_names(capabilities)

    if capabilities.uses_phase_status:
        x = status_variable(masks, state.rs, state.rv, state.sg)
        x0 = status_variable(masks0, state0.rs, state0.rv, state0.sg)
    else:
        x, x0 = state.sg, state0.sg

    if options.static_wells:
        well_values, well_names, well_values0 = [], [], []
    else:
        well_values, well_names = well_primary_variables(capabilities, well_solutions)
        well_values0, _ = well_primary_variables(capabilities, well_solutions0)

    names = ["pressure"]
    current_values = [state.pressure]
    previous_values = [state0.pressure]
    if water_name is not None:
        names.append(water_name)
        current_values.append(state.sw)
        previous_values.append(state0.sw)
    if gas_name is not None:
        names.append(gas_name)
        current_values.append(x)
        previous_values.append(x0)
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
    else:
        previous = stored_continuum_variables(model, state0, masks0)

    pv_mult, trans_mult, pv_mult0 = get_multipliers(
        fluid, current.pressure, previous.pressure
    )
    transmissibility = face_transmissibility(operators, trans_mult)
    properties = evaluate_phase_properties(model, fluid, current, transmissibility)
    b0 = previous_b_factors(model, fluid, previous)
    cell_equations = conservation_equations(
        model,
        operators.pore_volume,
        dt,
        current,
        previous,
        properties,
        b0,
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

    phases = capabilities.active_phases
    equations = [cell_equations[phase] for phase in phases] + well_equations
    equation_names = [PHASE_EQUATION_NAMES[phase] for phase in phases] + well_equation_names
    types = ["cell"] * len(phases) + ["well"] * len(well_equations)
    equations = ensure_differentiable(
        equations, [np.size(value) for value in current_values], options.res_only
    )

    state = state.evolve(
        flux=stack_fluxes(properties, operators.num_faces),
        well_solutions=well_solutions,
    )
    if options.iteration >= 0:
        logger.debug(
            f"Assembled {len(equations)} black-oil equations at iteration {options.iteration}"
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
