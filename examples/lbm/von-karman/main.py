import logging
import os
import warnings

import numpy as np
import netCDF4

from tqdm.rich import tqdm
from tqdm import TqdmExperimentalWarning

from parlbm import lbm

warnings.filterwarnings("ignore", category=TqdmExperimentalWarning)


def cylinder_mask(rows, cols, center, radius):
    """Boolean mask of a cylinder, true on the solid nodes."""
    Y, X = np.meshgrid(np.arange(rows), np.arange(cols), indexing="ij")
    return (X - center[0]) ** 2 + (Y - center[1]) ** 2 < radius**2


def init_ncfile(path, sim, results_type):
    """Creates a new netCDF4 file, using the specified path and simulation."""
    with netCDF4.Dataset(path, "w", format="NETCDF4") as ncfile:
        ncfile.createDimension("nrows", sim.shape[0])
        ncfile.createDimension("ncols", sim.shape[1])
        ncfile.createDimension("time", None)

        ncfile.createVariable("step", "i4", ("time",))
        ncfile.createVariable(
            results_type.value,
            "f4",
            ("time", "nrows", "ncols"),
            compression="zlib",
            least_significant_digit=4,
        )


def write_ncfile(path, time_index, step, results_type, field):
    """Append one results field to a netCDF file."""
    with netCDF4.Dataset(path, "a") as ncfile:
        ncfile.variables["step"][time_index] = step
        ncfile.variables[results_type.value][time_index, :, :] = field[:, :]


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(threadName)s %(message)s")

    nc_path = "outputs.nc"
    config_path = os.path.join(os.path.dirname(__file__), "config.yml")

    # Simulation parameters
    rows, cols = 96, 384
    steps = 20000
    frames = 100

    config = lbm.load_config(config_path)
    obstacles = cylinder_mask(rows, cols, center=(cols // 5, rows // 2), radius=rows // 10)

    sim = lbm.Simulation(obstacles, config)
    init_ncfile(nc_path, sim, config.results_type)

    # The simulation runs in its own threads, this loop only reads the results field
    sim.start(max_steps=steps)
    # Number of refreshes between two frames written to the netCDF file
    frame_every = max(1, (steps - config.warmup_steps) // (frames * config.refresh_steps))
    time_index = 0
    last_refresh = 0
    with tqdm(total=steps) as pbar:
        while not sim.join(timeout=0.1):
            pbar.update(sim.step_count - pbar.n)

            refreshes = sim.results_field.refreshes
            if refreshes < last_refresh + frame_every:
                continue
            last_refresh = refreshes

            field = sim.get_results()
            write_ncfile(nc_path, time_index, sim.step_count, config.results_type, field)
            time_index += 1

            if np.isnan(field).any():
                print("NaNs detected, stopping simulation.")
                sim.stop()
                break

        pbar.update(sim.step_count - pbar.n)

    print(f"Wrote {time_index} frames to {nc_path}")
