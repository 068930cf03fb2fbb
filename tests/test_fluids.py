import numpy as np
import pytest

from resad import (
    BlackOilFluid,
    ConstantCompressibilityB,
    CoreyRelativePermeability,
    LinearSolubility,
    LiveOilB,
    SaturationFunctionTable,
    initialize_variables,
    to_sparse,
)
from resad.errors import ValidationError


def test_constant_compressibility_b_factor():
    b = ConstantCompressibilityB(reference_b=2.0, compressibility=1e-3, reference_pressure=100.0)
    np.testing.assert_allclose(b(np.array([100.0, 1100.0])), [2.0, 2.0 * np.e])


def test_b_factor_derivative():
    b = ConstantCompressibilityB(compressibility=0.5)
    (p,) = initialize_variables(np.array([0.0, 2.0]))
    result = b(p)

    np.testing.assert_allclose(to_sparse(result.jac[0]).diagonal(), 0.5 * np.exp([0.0, 1.0]))


def test_dissolved_gas_swells_the_oil():
    b = LiveOilB(rs_expansion=0.01)
    np.testing.assert_allclose(b(np.zeros(2), np.array([0.0, 100.0])), [1.0, 0.5])


def test_linear_solubility():
    np.testing.assert_allclose(LinearSolubility(slope=0.5, intercept=1.0)(np.array([2.0])), [2.0])
    np.testing.assert_allclose(LinearSolubility(intercept=3.0)(np.zeros(2)), [3.0, 3.0])


def test_corey_curves_are_clamped():
    relperm = CoreyRelativePermeability(connate_water_saturation=0.2)
    np.testing.assert_allclose(relperm.water(np.array([0.1, 0.6, 1.0])), [0.0, 0.25, 1.0])


def test_two_phase_corey_relative_permeabilities():
    relperm = CoreyRelativePermeability()
    krw, kro, krg = relperm(
        np.array([0.5]), np.array([0.5]), np.zeros(1), water=True, oil=True, gas=False
    )

    np.testing.assert_allclose(krw, [0.25])
    np.testing.assert_allclose(kro, [0.25])
    assert krg is None


def test_three_phase_oil_is_saturation_weighted():
    relperm = CoreyRelativePermeability()
    sw, so, sg = np.array([0.2]), np.array([0.6]), np.array([0.2])
    _, kro, _ = relperm(sw, so, sg)

    # Both oil curves coincide when the residuals are zero
    np.testing.assert_allclose(kro, [0.36])


def test_three_phase_oil_without_water_or_gas_falls_back_to_oil_water():
    relperm = CoreyRelativePermeability()
    _, kro, _ = relperm(np.zeros(1), np.ones(1), np.zeros(1))
    np.testing.assert_allclose(kro, [1.0])


def test_fluid_rejects_non_positive_densities():
    with pytest.raises(ValueError):
        BlackOilFluid(water_surface_density=0.0)


def test_saturation_table_interpolation():
    table = SaturationFunctionTable(np.array([[0.2, 0.0, 2.0], [0.8, 0.5, 0.0]]))

    np.testing.assert_allclose(table.krw(np.array([0.0, 0.5, 1.0])), [0.0, 0.25, 0.5])
    np.testing.assert_allclose(table.pcow(np.array([0.5])), [1.0])
    np.testing.assert_allclose(table.connate_water_saturation, [0.2])


def test_saturation_table_regions():
    table = SaturationFunctionTable(
        (
            np.array([[0.0, 0.0, 0.0], [1.0, 1.0, 0.0]]),
            np.array([[0.0, 0.0, 0.0], [1.0, 0.5, 0.0]]),
        ),
        regions=np.array([0, 1]),
    )
    np.testing.assert_allclose(table.krw(np.array([0.5, 0.5])), [0.5, 0.25])


def test_tabulated_water_curve_replaces_corey():
    table = SaturationFunctionTable(np.array([[0.0, 0.0, 0.0], [1.0, 0.8, 0.0]]))
    relperm = CoreyRelativePermeability(water_table=table)
    np.testing.assert_allclose(relperm.water(np.array([0.5])), [0.4])


@pytest.mark.parametrize(
    "table",
    [
        np.array([[0.8, 0.0, 0.0], [0.2, 1.0, 0.0]]),
        np.array([[0.2, 0.5, 0.0], [0.8, 0.1, 0.0]]),
        np.array([[0.2, 0.5, 0.0]]),
    ],
)
def test_invalid_saturation_tables(table):
    with pytest.raises(ValidationError):
        SaturationFunctionTable(table)


def test_saturation_regions_must_reference_tables():
    with pytest.raises(ValidationError):
        SaturationFunctionTable(np.array([[0.0, 0.0, 0.0], [1.0, 1.0, 0.0]]), regions=[0, 1])
