import numpy as np
import pytest

from resad import (
    BlackOilFluid,
    ConstantCompressibilityB,
    LinearSolubility,
    LiveOilB,
    RockPermeability,
    RockProperties,
    Well,
    build_cartesian_grid,
    build_reservoir_model,
    rate_control,
)


def make_rock(num_cells: int, porosity: float = 0.2, permeability: float = 1.0) -> RockProperties:
    return RockProperties(
        porosity=np.full(num_cells, porosity),
        permeability=RockPermeability(x=np.full(num_cells, permeability)),
    )


@pytest.fixture
def single_cell_grid():
    return build_cartesian_grid((1, 1, 1))


@pytest.fixture
def line_grid():
    """Three unit cells along x."""
    return build_cartesian_grid((3, 1, 1))


@pytest.fixture
def water_cell_model(single_cell_grid):
    """A single water filled cell with pore volume 100 and water compressibility 1e-3."""
    fluid = BlackOilFluid(water_b=ConstantCompressibilityB(compressibility=1e-3))
    return build_reservoir_model(
        single_cell_grid,
        make_rock(1),
        fluid,
        water=True,
        oil=False,
        gas=False,
        pore_volume=np.array([100.0]),
    )


@pytest.fixture
def water_injector():
    return Well(
        name="INJ",
        cells=[0],
        well_indices=[1.0],
        control=rate_control(10.0),
        is_injector=True,
    )


@pytest.fixture
def water_line_model(line_grid):
    """Incompressible water in three cells along x, unit transmissibilities."""
    return build_reservoir_model(
        line_grid, make_rock(3), BlackOilFluid(), water=True, oil=False, gas=False
    )


@pytest.fixture
def oil_water_line_model(line_grid):
    fluid = BlackOilFluid(
        water_b=ConstantCompressibilityB(compressibility=1e-4),
        oil_b=LiveOilB(compressibility=2e-4),
    )
    return build_reservoir_model(
        line_grid,
        make_rock(3),
        fluid,
        water=True,
        oil=True,
        gas=False,
        pore_volume=np.ones(3),
    )


@pytest.fixture
def live_oil_model(single_cell_grid):
    """Three-phase cell with dissolved gas, `rs_sat(p) = 0.5 * p`."""
    fluid = BlackOilFluid(rs_sat=LinearSolubility(slope=0.5))
    return build_reservoir_model(
        single_cell_grid,
        make_rock(1),
        fluid,
        water=True,
        oil=True,
        gas=True,
        disgas=True,
    )


@pytest.fixture
def wet_gas_model(single_cell_grid):
    """Three-phase cell with vaporized oil, `rv_sat(p) = 1e-4 * p`."""
    fluid = BlackOilFluid(rv_sat=LinearSolubility(slope=1e-4))
    return build_reservoir_model(
        single_cell_grid,
        make_rock(1),
        fluid,
        water=True,
        oil=True,
        gas=True,
        vapoil=True,
    )
