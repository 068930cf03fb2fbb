import numpy as np

from resad import (
    BlackOilFluid,
    LinearSolubility,
    PhaseStatus,
    compute_cell_status,
    get_switching_epsilon,
    hydrocarbons_from_status,
    status_masks,
    status_variable,
)


def test_cell_status_classification():
    status = compute_cell_status(
        so=np.array([0.8, 0.0, 0.5]),
        sw=np.array([0.2, 0.5, 0.2]),
        sg=np.array([0.0, 0.5, 0.3]),
        disgas=True,
        vapoil=True,
    )
    np.testing.assert_array_equal(
        status,
        [PhaseStatus.UNDERSATURATED_OIL, PhaseStatus.UNDERSATURATED_GAS, PhaseStatus.SATURATED],
    )


def test_water_filled_cells_count_as_saturated():
    status = compute_cell_status(
        so=np.zeros(1), sw=np.ones(1), sg=np.zeros(1), disgas=True, vapoil=True
    )
    assert status[0] == PhaseStatus.SATURATED


def test_gas_free_cells_are_saturated_without_dissolution():
    status = compute_cell_status(
        so=np.ones(1), sw=np.zeros(1), sg=np.zeros(1), disgas=False, vapoil=True
    )
    assert status[0] == PhaseStatus.SATURATED


def test_stored_status_wins():
    stored = np.array([PhaseStatus.SATURATED])
    status = compute_cell_status(np.ones(1), np.zeros(1), np.zeros(1), True, False, stored)
    np.testing.assert_array_equal(status, stored)


def test_status_variable_picks_rs_rv_or_sg():
    status = np.array(
        [PhaseStatus.UNDERSATURATED_OIL, PhaseStatus.UNDERSATURATED_GAS, PhaseStatus.SATURATED]
    )
    x = status_variable(
        status_masks(status),
        rs=np.array([10.0, 20.0, 30.0]),
        rv=np.array([1.0, 2.0, 3.0]),
        sg=np.array([0.1, 0.2, 0.3]),
    )
    np.testing.assert_allclose(x, [10.0, 2.0, 0.3])


def test_hydrocarbons_from_status():
    fluid = BlackOilFluid(rs_sat=LinearSolubility(slope=0.5))
    status = np.array([PhaseStatus.UNDERSATURATED_OIL, PhaseStatus.SATURATED])
    sg, rs, rv, rs_sat, _ = hydrocarbons_from_status(
        fluid,
        status_masks(status),
        hydrocarbon_saturation=np.array([0.8, 0.8]),
        x=np.array([12.0, 0.3]),
        rs=np.zeros(2),
        rv=np.zeros(2),
        pressure=np.array([100.0, 100.0]),
        disgas=True,
        vapoil=False,
    )
    np.testing.assert_allclose(sg, [0.0, 0.3])
    np.testing.assert_allclose(rs, [12.0, 50.0])
    np.testing.assert_allclose(rs_sat, [50.0, 50.0])
    np.testing.assert_allclose(rv, [0.0, 0.0])


def test_switching_epsilon_is_the_root_of_machine_epsilon():
    assert get_switching_epsilon() == np.sqrt(np.finfo(np.float64).eps)
