"""
Nonlinear state updates: map Newton increments onto an admissible state.

Increments are chopped to the limits of `Config`, applied, clamped to their
physical ranges and, for models with dissolution, passed through the
Appleyard phase switching rule before saturations are re-normalized.
"""

import logging
import typing

import attrs
import numba
import numpy as np

from resad._precision import get_switching_epsilon
from resad.config import Config
from resad.equations.common import cell_status_masks
from resad.errors import ComputationError, InvariantViolationError
from resad.states import ReservoirState, WellSolution
from resad.status import compute_cell_status
from resad.types import EquationSet
from resad.utils import chop_increment, clip, safe_relative_norm

logger = logging.getLogger(__name__)

__all__ = [
    "UpdateReport",
    "appleyard_switch",
    "update_state",
    "update_pressure_state",
    "update_transport_state",
    "apply_update",
    "relative_pressure_change",
]


@attrs.frozen
class UpdateReport:
    """Summary of one nonlinear update."""

    increment_norm: float
    """`max(|dp|/|p|, |dsw|, |dsg|, |drs|/|rs|)`, infinity norms after chopping."""
    max_pressure_change: float = 0.0
    max_saturation_change: float = 0.0
    phase_switches: int = 0
    """Number of cells where a hydrocarbon phase appeared or disappeared."""


@numba.njit(cache=True)
def appleyard_switch(saturation0, saturation, ratio, ratio_sat, adjust, epsilon):
    """
    Appleyard chopping of one hydrocarbon phase and the ratio it controls.

    For gas and the dissolved gas ratio:

    - gas disappearing (`s0 > 0`, `s <= 0`) snaps `s` to `epsilon` when
      `s0 > epsilon` and to 0 otherwise.
    - gas appearing (`s0 < epsilon`, and `s > 0` or the ratio above
      `adjust * ratio_sat`) sets `s = epsilon`.
    - the ratio is pinned to `ratio_sat` wherever `s > 0`, and capped at it
      wherever it exceeds `adjust * ratio_sat`.

    The same rule with oil and the vaporized oil ratio handles vaporization.

    :return: `(saturation, ratio, number of switched cells)`.
    """
    n = saturation.shape[0]
    s_out = saturation.copy()
    r_out = ratio.copy()
    switched = 0
    for i in range(n):
        disappears = saturation0[i] > 0.0 and saturation[i] <= 0.0
        oversaturated = (
            saturation[i] > 0.0 or ratio[i] > ratio_sat[i] * adjust
        ) and not disappears
        appears = saturation0[i] < epsilon and oversaturated
        if disappears:
            s_out[i] = epsilon if saturation0[i] > epsilon else 0.0
            switched += 1
        elif appears:
            s_out[i] = epsilon
            switched += 1
        if s_out[i] > 0.0:
            r_out[i] = ratio_sat[i]
        if r_out[i] > ratio_sat[i] * adjust:
            r_out[i] = ratio_sat[i]
    return s_out, r_out, switched


def _pressure_limit(config: Config, reference: np.ndarray) -> np.ndarray:
    with np.errstate(invalid="ignore"):
        relative = config.dp_max_rel * np.abs(reference)
    return np.fmin(relative, config.dp_max_abs)


def _chop_pressure(increment, reference, config: Config) -> np.ndarray:
    return chop_increment(
        np.asarray(increment, dtype=np.float64), _pressure_limit(config, reference)
    )


def _chop_ratio(increment, reference, config: Config) -> np.ndarray:
    with np.errstate(invalid="ignore"):
        limit = np.fmin(config.drs_max_rel * np.abs(reference), config.drs_max_abs)
    return chop_increment(np.asarray(increment, dtype=np.float64), limit)


def _chop_saturation(increment, config: Config) -> np.ndarray:
    return chop_increment(np.asarray(increment, dtype=np.float64), config.ds_max_abs)


def _clamp_pressure(pressure: np.ndarray, config: Config) -> np.ndarray:
    return clip(pressure, config.minimum_pressure, config.maximum_pressure)


def _increment(increments, name, size) -> np.ndarray:
    if name is None or name not in increments:
        return np.zeros(size)
    return np.asarray(increments[name], dtype=np.float64)


@attrs.frozen
class _ContinuumUpdate:
    pressure: np.ndarray
    saturations: np.ndarray
    rs: np.ndarray
    rv: np.ndarray
    status: typing.Optional[np.ndarray]
    norm_terms: typing.Tuple[float, ...]
    max_pressure_change: float
    max_saturation_change: float
    phase_switches: int


def _update_continuum(
    capabilities,
    fluid,
    pressure0: np.ndarray,
    saturations0: np.ndarray,
    rs0: np.ndarray,
    rv0: np.ndarray,
    status0: typing.Optional[np.ndarray],
    dp: np.ndarray,
    dsw: np.ndarray,
    dx: np.ndarray,
    dx_name: typing.Optional[str],
    config: Config,
) -> _ContinuumUpdate:
    epsilon = get_switching_epsilon()
    sw0, so0, sg0 = saturations0[:, 0], saturations0[:, 1], saturations0[:, 2]
    num_cells = sw0.size

    dp = _chop_pressure(dp, pressure0, config)
    dsw = _chop_saturation(dsw, config)
    drs = np.zeros(num_cells)
    drv = np.zeros(num_cells)
    if capabilities.uses_phase_status and dx_name is not None:
        undersaturated_oil, undersaturated_gas, saturated = cell_status_masks(
            capabilities, so0, sw0, sg0, status0
        )
        dsg = np.where(saturated, dx, 0.0) - np.where(undersaturated_gas, dsw, 0.0)
        if capabilities.disgas:
            drs = np.where(undersaturated_oil, dx, 0.0)
        if capabilities.vapoil:
            drv = np.where(undersaturated_gas, dx, 0.0)
    elif dx_name is not None:
        dsg = dx
    elif capabilities.gas and capabilities.water and not capabilities.oil:
        dsg = -dsw
    else:
        dsg = np.zeros(num_cells)
    dsg = _chop_saturation(dsg, config)
    if capabilities.disgas:
        drs = _chop_ratio(drs, rs0, config)
    if capabilities.vapoil:
        drv = _chop_ratio(drv, rv0, config)

    norm_terms = (
        safe_relative_norm(dp, pressure0),
        float(np.max(np.abs(dsw))) if dsw.size else 0.0,
        float(np.max(np.abs(dsg))) if dsg.size else 0.0,
        safe_relative_norm(drs, rs0) if capabilities.disgas else 0.0,
        safe_relative_norm(drv, rv0) if capabilities.vapoil else 0.0,
    )
    _finite_norm(norm_terms)

    pressure = _clamp_pressure(pressure0 + dp, config)
    sw = clip(sw0 + dsw, 0.0, 1.0) if capabilities.water else np.zeros(num_cells)
    sg = sg0 + dsg
    rs, rv = rs0.copy(), rv0.copy()
    phase_switches = 0
    rs_sat = rv_sat = None
    if capabilities.disgas:
        rs = np.maximum(rs0 + drs, 0.0)
        rs_sat = np.maximum(np.asarray(fluid.rs_sat(pressure), dtype=np.float64), 0.0)
        sg, rs, switched = appleyard_switch(
            sg0, sg, rs, np.broadcast_to(rs_sat, rs.shape).copy(), config.rs_adjust, epsilon
        )
        phase_switches += switched
    if not capabilities.gas:
        sg = np.zeros(num_cells)
    sg = clip(sg, 0.0, 1.0)

    if capabilities.oil:
        so = 1.0 - sw - sg
        if capabilities.vapoil:
            rv = np.maximum(rv0 + drv, 0.0)
            rv_sat = np.maximum(np.asarray(fluid.rv_sat(pressure), dtype=np.float64), 0.0)
            so, rv, switched = appleyard_switch(
                so0, so, rv, np.broadcast_to(rv_sat, rv.shape).copy(), config.rs_adjust, epsilon
            )
            phase_switches += switched
        so = clip(so, 0.0, 1.0)
    else:
        so = np.zeros(num_cells)
    if capabilities.gas and capabilities.water and not capabilities.oil:
        sg = 1.0 - sw

    total = sw + so + sg
    saturations = np.column_stack([sw, so, sg]) / total[:, None]
    sw = saturations[:, 0]
    if rs_sat is not None:
        rs = np.where(sw == 1.0, rs_sat, rs)
    if rv_sat is not None:
        rv = np.where(sw == 1.0, rv_sat, rv)

    _check_invariants(saturations, rs, rs_sat, rv, rv_sat, config)
    status = status0
    if capabilities.uses_phase_status:
        status = compute_cell_status(
            saturations[:, 1],
            saturations[:, 0],
            saturations[:, 2],
            capabilities.disgas,
            capabilities.vapoil,
        )
    return _ContinuumUpdate(
        pressure=pressure,
        saturations=saturations,
        rs=rs,
        rv=rv,
        status=status,
        norm_terms=norm_terms,
        max_pressure_change=float(np.max(np.abs(pressure - pressure0))) if num_cells else 0.0,
        max_saturation_change=(
            float(np.max(np.abs(saturations - saturations0))) if num_cells else 0.0
        ),
        phase_switches=phase_switches,
    )


def _check_invariants(saturations, rs, rs_sat, rv, rv_sat, config: Config) -> None:
    deviation = np.abs(saturations.sum(axis=1) - 1.0)
    if not np.all(deviation < config.saturation_sum_tolerance):
        raise InvariantViolationError(
            f"Saturations do not sum to one after the update (largest deviation {deviation.max():.3e})"
        )
    if np.any(saturations < 0.0):
        raise InvariantViolationError("Negative saturation after the update")
    for name, ratio, ratio_sat in (("rs", rs, rs_sat), ("rv", rv, rv_sat)):
        if ratio_sat is None:
            continue
        excess = ratio - ratio_sat * max(config.rs_adjust, 1.0)
        if np.any(excess > np.spacing(np.abs(ratio))):
            raise InvariantViolationError(
                f"`{name}` exceeds its saturated value after the update by up to {excess.max():.3e}"
            )
        if np.any(ratio < 0.0):
            raise InvariantViolationError(f"Negative `{name}` after the update")


def _update_well_solutions(
    well_solutions: typing.Sequence[WellSolution],
    increments: typing.Mapping[str, np.ndarray],
    config: Config,
) -> typing.Tuple[WellSolution, ...]:
    if not well_solutions or "bhp" not in increments:
        return tuple(well_solutions)
    bhp = np.array([solution.bhp for solution in well_solutions])
    dbhp = _chop_pressure(increments["bhp"], bhp, config)
    updated = []
    for index, solution in enumerate(well_solutions):
        changes = {"bhp": bhp[index] + dbhp[index]}
        for name, field in (("qWs", "water_rate"), ("qOs", "oil_rate"), ("qGs", "gas_rate")):
            if name in increments:
                changes[field] = getattr(solution, field) + increments[name][index]
        updated.append(solution.evolve(**changes))
    return tuple(updated)


def _finite_norm(terms: typing.Sequence[float]) -> float:
    norm = float(np.max(terms)) if len(terms) else 0.0
    if not np.isfinite(norm):
        raise ComputationError(f"Non-finite increment norm {norm}")
    return norm


def update_state(
    state: ReservoirState,
    problem,
    increments: typing.Mapping[str, np.ndarray],
    model,
    config: typing.Optional[Config] = None,
) -> typing.Tuple[ReservoirState, UpdateReport]:
    """
    Apply Newton increments to the state of a fully implicit assembly.

    Steps, in order: chop the pressure, saturation and ratio increments,
    map the `x` increment through the phase status of `state`, apply and
    clamp, run the Appleyard switching rule, re-normalize the saturations,
    pin the ratios of water filled cells to their saturated values and check
    the post-conditions. Dual-porosity matrix fields and well variables are
    updated alongside.

    :param state: The current iterate.
    :param problem: The `LinearizedProblem` the increments solve.
    :param increments: Increment of every primary variable, keyed by name.
    :param model: The `ReservoirModel`.
    :param config: Update limits and tolerances.
    :return: The updated state and an update report.
    :raises ComputationError: If the increment norm is not finite.
    :raises InvariantViolationError: If the updated state breaks a post-condition.
    """
    config = config or Config()
    capabilities = model.capabilities
    num_cells = state.num_cells
    names = set(problem.primary_variables)
    unknown = set(increments) - names
    if unknown:
        raise KeyError(f"Increments given for undeclared variables: {sorted(unknown)}")

    gas_name = "x" if "x" in names else ("sG" if "sG" in names else None)
    fracture = _update_continuum(
        capabilities,
        model.fluid,
        state.pressure,
        state.saturations,
        state.rs,
        state.rv,
        state.status,
        _increment(increments, "pressure", num_cells),
        _increment(increments, "sW", num_cells),
        _increment(increments, gas_name, num_cells),
        gas_name,
        config,
    )
    changes = dict(
        pressure=fracture.pressure,
        saturations=fracture.saturations,
        rs=fracture.rs,
        rv=fracture.rv,
        status=fracture.status,
    )
    norm_terms = list(fracture.norm_terms)
    phase_switches = fracture.phase_switches

    if capabilities.dual_porosity and state.has_matrix:
        matrix_gas_name = "xm" if "xm" in names else ("sgm" if "sgm" in names else None)
        matrix = _update_continuum(
            capabilities,
            model.matrix_fluid,
            state.matrix_pressure,
            state.matrix_saturations,
            state.matrix_rs,
            state.matrix_rv,
            None,
            _increment(increments, "pom", num_cells),
            _increment(increments, "swm", num_cells),
            _increment(increments, matrix_gas_name, num_cells),
            matrix_gas_name,
            config,
        )
        changes.update(
            matrix_pressure=matrix.pressure,
            matrix_saturations=matrix.saturations,
            matrix_rs=matrix.rs,
            matrix_rv=matrix.rv,
        )
        norm_terms.extend(matrix.norm_terms)
        phase_switches += matrix.phase_switches

    increment_norm = _finite_norm(norm_terms)
    changes["well_solutions"] = _update_well_solutions(state.well_solutions, increments, config)
    new_state = state.evolve(**changes)
    report = UpdateReport(
        increment_norm=increment_norm,
        max_pressure_change=fracture.max_pressure_change,
        max_saturation_change=fracture.max_saturation_change,
        phase_switches=phase_switches,
    )
    logger.debug(
        f"Updated state: increment norm {increment_norm:.3e}, "
        f"{phase_switches} phase switch(es)"
    )
    return new_state, report


def relative_pressure_change(pressure: np.ndarray, pressure0: np.ndarray) -> np.ndarray:
    """`(p - p0) / (max(p0) - min(p0))`, with a range of 1 for uniform `p0`."""
    pressure0 = np.asarray(pressure0, dtype=np.float64)
    spread = float(pressure0.max() - pressure0.min()) if pressure0.size else 0.0
    if spread == 0.0:
        spread = 1.0
    return (np.asarray(pressure, dtype=np.float64) - pressure0) / spread


def update_pressure_state(
    state: ReservoirState,
    problem,
    increments: typing.Mapping[str, np.ndarray],
    model,
    config: typing.Optional[Config] = None,
) -> typing.Tuple[ReservoirState, UpdateReport]:
    """
    Update after a pressure equation solve.

    Only pressures and well variables change, and the relative pressure
    change is stored as `dp_rel` for increment based convergence checks.
    Saturated cells get the dissolution ratios of the new pressure.
    """
    pressure_only = {
        name: increments[name]
        for name in ("pressure", "pom", "qWs", "qOs", "qGs", "bhp")
        if name in increments
    }
    new_state, report = update_state(state, problem, pressure_only, model, config)
    new_state = new_state.evolve(
        dp_rel=relative_pressure_change(new_state.pressure, state.pressure)
    )
    return new_state, report


def update_transport_state(
    state: ReservoirState,
    problem,
    increments: typing.Mapping[str, np.ndarray],
    model,
    config: typing.Optional[Config] = None,
) -> typing.Tuple[ReservoirState, UpdateReport]:
    """
    Update after an oil-water transport solve. Only saturations change.

    With both `sW` and `sO` unknowns the chopped saturations are clamped and
    re-normalized. Otherwise `sO = 1 - sW`.
    """
    config = config or Config()
    sw0, so0 = state.sw, state.so
    dsw = _chop_saturation(_increment(increments, "sW", state.num_cells), config)
    sw = clip(sw0 + dsw, 0.0, 1.0)
    if "sO" in increments:
        dso = _chop_saturation(increments["sO"], config)
        so = clip(so0 + dso, 0.0, 1.0)
    else:
        dso = -dsw
        so = clip(1.0 - sw, 0.0, 1.0)
    saturations = np.column_stack([sw, so, np.zeros_like(sw)])
    saturations = saturations / saturations.sum(axis=1)[:, None]
    _check_invariants(saturations, state.rs, None, state.rv, None, config)

    increment_norm = _finite_norm(
        [
            float(np.max(np.abs(dsw))) if dsw.size else 0.0,
            float(np.max(np.abs(dso))) if np.size(dso) else 0.0,
        ]
    )
    new_state = state.evolve(saturations=saturations)
    return new_state, UpdateReport(
        increment_norm=increment_norm,
        max_saturation_change=float(np.max(np.abs(saturations - state.saturations))),
    )


def apply_update(
    state: ReservoirState,
    problem,
    increments: typing.Mapping[str, np.ndarray],
    model,
    config: typing.Optional[Config] = None,
) -> typing.Tuple[ReservoirState, UpdateReport]:
    """Dispatch to the update matching the model's equation set."""
    if model.equation_set is EquationSet.PRESSURE:
        return update_pressure_state(state, problem, increments, model, config)
    if model.equation_set is EquationSet.TRANSPORT:
        return update_transport_state(state, problem, increments, model, config)
    return update_state(state, problem, increments, model, config)
