from types import SimpleNamespace
import warnings

import numpy as np
import pytest

from resad import (
    BlackOilFluid,
    Config,
    ConstantCompressibilityB,
    EquationSet,
    LiveOilB,
    PhaseStatus,
    appleyard_switch,
    apply_update,
    build_reservoir_model,
    initialize_state,
    relative_pressure_change,
    update_pressure_state,
    update_state,
    update_transport_state,
)
from resad._precision import get_switching_epsilon
from resad.errors import ComputationError, InvariantViolationError
from resad.updates import _check_invariants

from .conftest import make_rock

THREE_PHASE = SimpleNamespace(primary_variables=("pressure", "sW", "x"))
OIL_WATER = SimpleNamespace(primary_variables=("pressure", "sW"))


def oil_water_model(grid, equation_set):
    fluid = BlackOilFluid(
        water_b=ConstantCompressibilityB(compressibility=1e-4),
        oil_b=LiveOilB(compressibility=2e-4),
    )
    return build_reservoir_model(
        grid, make_rock(3), fluid, gas=False, equation_set=equation_set, pore_volume=np.ones(3)
    )


def test_gas_appears_when_oil_becomes_oversaturated(live_oil_model):
    state = initialize_state(live_oil_model, 100.0, sw=0.2, rs=40.0)
    new_state, report = update_state(state, THREE_PHASE, {"x": np.array([20.0])}, live_oil_model)

    epsilon = get_switching_epsilon()
    np.testing.assert_allclose(new_state.sg, [epsilon])
    np.testing.assert_allclose(new_state.rs, [50.0])
    np.testing.assert_allclose(new_state.saturations.sum(axis=1), 1.0)
    assert new_state.status[0] == PhaseStatus.SATURATED
    assert report.phase_switches == 1


def test_disappearing_gas_keeps_a_trace(live_oil_model):
    state = initialize_state(live_oil_model, 100.0, sw=0.2, sg=0.1, rs=50.0)
    new_state, report = update_state(
        state, THREE_PHASE, {"x": np.array([-0.3])}, live_oil_model, Config(ds_max_abs=1.0)
    )

    np.testing.assert_allclose(new_state.sg, [get_switching_epsilon()])
    np.testing.assert_allclose(new_state.rs, [50.0])
    assert report.phase_switches == 1


def test_zero_increments_leave_a_saturated_state_unchanged(live_oil_model):
    state = initialize_state(live_oil_model, 100.0, sw=0.2, sg=0.1, rs=50.0)
    new_state, report = update_state(state, THREE_PHASE, {}, live_oil_model)

    np.testing.assert_allclose(new_state.pressure, state.pressure)
    np.testing.assert_allclose(new_state.saturations, state.saturations)
    np.testing.assert_allclose(new_state.rs, state.rs)
    assert report.phase_switches == 0
    assert report.increment_norm == 0.0


def test_appleyard_switch_without_changes():
    saturation = np.array([0.3, 0.0])
    ratio = np.array([10.0, 5.0])
    ratio_sat = np.array([10.0, 10.0])
    s, r, switched = appleyard_switch(saturation, saturation.copy(), ratio, ratio_sat, 1.0, 1e-8)

    np.testing.assert_array_equal(s, saturation)
    np.testing.assert_array_equal(r, ratio)
    assert switched == 0


def test_saturation_increments_are_chopped(oil_water_line_model):
    state = initialize_state(oil_water_line_model, 100.0, sw=0.2)
    new_state, report = update_state(
        state, OIL_WATER, {"sW": np.full(3, 0.5)}, oil_water_line_model
    )

    np.testing.assert_allclose(new_state.sw, 0.4)
    np.testing.assert_allclose(new_state.so, 0.6)
    assert report.increment_norm == pytest.approx(0.2)


def test_pressure_increments_are_chopped_and_clamped(oil_water_line_model):
    state = initialize_state(oil_water_line_model, 100.0, sw=0.2)
    config = Config(dp_max_rel=0.1, minimum_pressure=95.0)
    new_state, _ = update_state(
        state, OIL_WATER, {"pressure": np.array([50.0, -50.0, 5.0])}, oil_water_line_model, config
    )
    np.testing.assert_allclose(new_state.pressure, [110.0, 95.0, 105.0])


def test_non_finite_increments_are_rejected(oil_water_line_model):
    state = initialize_state(oil_water_line_model, 100.0, sw=0.2)
    with pytest.raises(ComputationError):
        update_state(
            state, OIL_WATER, {"pressure": np.array([np.nan, 0.0, 0.0])}, oil_water_line_model
        )


def test_undeclared_increments_are_rejected(oil_water_line_model):
    state = initialize_state(oil_water_line_model, 100.0, sw=0.2)
    with pytest.raises(KeyError):
        update_state(state, OIL_WATER, {"sG": np.zeros(3)}, oil_water_line_model)


def test_relative_pressure_change():
    np.testing.assert_allclose(
        relative_pressure_change(np.array([110.0, 210.0, 310.0]), np.array([100.0, 200.0, 300.0])),
        0.05,
    )
    np.testing.assert_allclose(relative_pressure_change(np.array([105.0]), np.array([100.0])), 5.0)


def test_pressure_update_keeps_saturations_and_stores_the_change(line_grid):
    model = oil_water_model(line_grid, EquationSet.PRESSURE)
    state = initialize_state(model, np.array([100.0, 200.0, 300.0]), sw=0.2)
    increments = {"pressure": np.full(3, 10.0), "sW": np.full(3, 0.1)}
    new_state, _ = update_pressure_state(state, OIL_WATER, increments, model)

    np.testing.assert_allclose(new_state.pressure, [110.0, 210.0, 310.0])
    np.testing.assert_allclose(new_state.sw, 0.2)
    np.testing.assert_allclose(new_state.dp_rel, 0.05)


def test_transport_update_without_an_oil_unknown(line_grid):
    model = oil_water_model(line_grid, EquationSet.TRANSPORT)
    state = initialize_state(model, 100.0, sw=0.3)
    problem = SimpleNamespace(primary_variables=("sW",))
    new_state, report = update_transport_state(state, problem, {"sW": np.full(3, 0.1)}, model)

    np.testing.assert_allclose(new_state.sw, 0.4)
    np.testing.assert_allclose(new_state.so, 0.6)
    np.testing.assert_allclose(new_state.pressure, state.pressure)
    assert report.increment_norm == pytest.approx(0.1)


def test_transport_update_with_both_unknowns_renormalizes(line_grid):
    model = oil_water_model(line_grid, EquationSet.TRANSPORT)
    state = initialize_state(model, 100.0, sw=0.3)
    problem = SimpleNamespace(primary_variables=("sW", "sO"))
    increments = {"sW": np.full(3, 0.1), "sO": np.full(3, 0.1)}
    new_state, _ = update_transport_state(state, problem, increments, model)

    np.testing.assert_allclose(new_state.sw, 0.4 / 1.2)
    np.testing.assert_allclose(new_state.saturations.sum(axis=1), 1.0)


def test_apply_update_dispatches_on_the_equation_set(line_grid):
    model = oil_water_model(line_grid, EquationSet.TRANSPORT)
    state = initialize_state(model, 100.0, sw=0.3)
    problem = SimpleNamespace(primary_variables=("sW",))
    new_state, _ = apply_update(state, problem, {"sW": np.full(3, 0.1)}, model)
    np.testing.assert_allclose(new_state.sw, 0.4)

    model = oil_water_model(line_grid, EquationSet.PRESSURE)
    new_state, _ = apply_update(state, OIL_WATER, {"pressure": np.full(3, 1.0)}, model)
    assert new_state.dp_rel is not None


def test_oil_appears_when_gas_becomes_oversaturated(wet_gas_model):
    state = initialize_state(wet_gas_model, 100.0, sw=0.25, sg=0.75, rv=0.005)
    assert state.status is None
    new_state, report = update_state(state, THREE_PHASE, {"x": np.array([0.01])}, wet_gas_model)

    np.testing.assert_allclose(new_state.so, [get_switching_epsilon()], rtol=1e-6)
    np.testing.assert_allclose(new_state.rv, [0.01])
    np.testing.assert_allclose(new_state.saturations.sum(axis=1), 1.0)
    assert new_state.status[0] == PhaseStatus.SATURATED
    assert report.phase_switches == 1


def test_disappearing_oil_keeps_a_trace(wet_gas_model):
    state = initialize_state(wet_gas_model, 100.0, sw=0.25, sg=0.65, rv=0.01)
    new_state, report = update_state(
        state, THREE_PHASE, {"x": np.array([0.3])}, wet_gas_model, Config(ds_max_abs=1.0)
    )

    # The gas overshoot is removed when the saturations are renormalized
    np.testing.assert_allclose(new_state.so, [get_switching_epsilon() / 1.2], rtol=1e-6)
    np.testing.assert_allclose(new_state.rv, [0.01])
    assert report.phase_switches == 1


def test_pressure_update_from_zero_pressure_is_silent(oil_water_line_model):
    state = initialize_state(oil_water_line_model, 0.0, sw=0.2)
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        new_state, _ = update_state(
            state, OIL_WATER, {"pressure": np.full(3, 5.0)}, oil_water_line_model
        )
    np.testing.assert_allclose(new_state.pressure, 5.0)


def test_saturations_above_one_violate_the_invariants():
    with pytest.raises(InvariantViolationError):
        _check_invariants(np.array([[0.6, 0.6, 0.0]]), None, None, None, None, Config())


def test_non_finite_saturations_violate_the_invariants():
    with pytest.raises(InvariantViolationError):
        _check_invariants(np.array([[np.nan, 0.5, 0.5]]), None, None, None, None, Config())


def test_oversaturated_ratio_violates_the_invariants():
    saturations = np.array([[0.2, 0.8, 0.0]])
    with pytest.raises(InvariantViolationError):
        _check_invariants(
            saturations, np.array([60.0]), np.array([50.0]), None, None, Config()
        )
    # Tolerated up to `rs_adjust * rs_sat`
    _check_invariants(
        saturations, np.array([60.0]), np.array([50.0]), None, None, Config(rs_adjust=1.5)
    )
