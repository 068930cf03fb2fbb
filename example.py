import logging

import numpy as np

import resad

np.set_printoptions(precision=3, linewidth=120)

DAY = resad.c.DAY
BAR = resad.c.BAR


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    grid_shape = (10, 10, 1)
    grid = resad.build_cartesian_grid(
        grid_shape, cell_size=(10.0, 10.0, 5.0), top_depth=1000.0
    )
    num_cells = grid.num_cells
    rock = resad.RockProperties(
        porosity=np.full(num_cells, 0.2),
        permeability=resad.RockPermeability(x=np.full(num_cells, 100 * resad.c.MILLIDARCY)),
    )
    fluid = resad.BlackOilFluid(
        water_b=resad.ConstantCompressibilityB(compressibility=4e-10, reference_pressure=200 * BAR),
        oil_b=resad.LiveOilB(compressibility=1e-9, reference_pressure=200 * BAR),
        water_viscosity=resad.ConstantViscosity(1.0 * resad.c.CENTIPOISE),
        oil_viscosity=resad.ConstantViscosity(5.0 * resad.c.CENTIPOISE),
        relative_permeability=resad.CoreyRelativePermeability(
            connate_water_saturation=0.1, residual_oil_saturation_water=0.15
        ),
    )
    model = resad.build_reservoir_model(grid, rock, fluid, water=True, oil=True, gas=False)

    # Quarter five-spot: injector and producer in opposite corners
    injector = resad.build_vertical_well(
        grid,
        rock,
        "INJ",
        0,
        0,
        resad.rate_control(50.0 / DAY),
        is_injector=True,
    )
    producer = resad.build_vertical_well(
        grid, rock, "PROD", grid_shape[0] - 1, grid_shape[1] - 1, resad.bhp_control(180 * BAR)
    )
    forces = resad.DrivingForces(wells=[injector, producer])
    state0 = resad.initialize_state(model, 200 * BAR, sw=0.1, wells=[injector, producer])

    config = resad.Config(dp_max_rel=0.2, ds_max_abs=0.2, linear_solver="bicgstab")
    timesteps = [1.0 * DAY] * 5 + [10.0 * DAY] * 9
    for result in resad.run_simulation(state0, model, timesteps, forces=forces, config=config):
        state = result.state
        production = state.well_solution("PROD")
        print(
            f"t = {result.time / DAY:6.1f} d | "
            f"avg p = {state.pressure.mean() / BAR:7.2f} bar | "
            f"avg sw = {state.sw.mean():.3f} | "
            f"oil rate = {-production.oil_rate * DAY:7.2f} m3/d | "
            f"water rate = {-production.water_rate * DAY:7.2f} m3/d"
        )

    print("Final water saturation:")
    print(state.sw.reshape(grid_shape[1], grid_shape[0]))


if __name__ == "__main__":
    main()
