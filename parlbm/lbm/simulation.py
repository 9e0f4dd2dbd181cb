import logging
import threading
from typing import List, Optional, Sequence, Tuple

import numpy as np

from parlbm.lbm.barrier import RunContext
from parlbm.lbm.boundary import BoundaryPolicy, solid_mask
from parlbm.lbm.config import LatticeConfig, ResultsType
from parlbm.lbm.errors import ConfigurationError, SimulationStateError, WorkerError
from parlbm.lbm.lattice import CellModel, FluidLattice, KernelParams
from parlbm.lbm.results import ResultsField
from parlbm.lbm.stencil import D2Q9
from parlbm.lbm.worker import CollideStreamWorker

__all__ = ["GridPair", "partition_columns", "Simulation"]

logger = logging.getLogger(__name__)


class GridPair:
    """The read and write grids of a run. Swapping exchanges their roles without
    copying any cell."""

    def __init__(self, read: np.ndarray, write: np.ndarray):
        if read.shape != write.shape:
            raise ValueError(
                f"Both grids must have the same shape, but got {read.shape} and "
                f"{write.shape} instead."
            )
        self.read = read
        self.write = write

    def swap(self) -> None:
        self.read, self.write = self.write, self.read

    @property
    def shape(self):
        return self.read.shape


def partition_columns(cols: int, num_threads: int) -> List[Tuple[int, int]]:
    """Splits the columns [0, cols) into `num_threads` contiguous ranges. Every range
    has cols // num_threads columns, except the last one which also takes the
    remainder."""
    stride = cols // num_threads
    ranges = []
    start = 0
    for t in range(num_threads):
        end = cols if t == num_threads - 1 else start + stride
        ranges.append((start, end))
        start = end
    return ranges


class Simulation:
    """A lattice-Boltzmann run over an obstacle mask, advanced by a pool of worker
    threads.

    Each worker owns a fixed range of columns for the whole run. On every step the
    controller releases the workers, waits until they all wrote their columns of the
    write grid, and swaps the read and write grids. After `warmup_steps` steps, the
    results field is refreshed every `refresh_steps` steps.

    Args:
        obstacles: Boolean mask of shape (rows, cols), true on solid nodes.
        config (LatticeConfig, optional): The run options.
        model (CellModel, optional): The per-cell physics. Defaults to a D2Q9 BGK fluid.
    """

    def __init__(
        self,
        obstacles: Sequence,
        config: Optional[LatticeConfig] = None,
        model: Optional[CellModel] = None,
    ) -> None:
        self.obstacles = np.array(obstacles, dtype=bool)
        self.config = config if config is not None else LatticeConfig()
        self.model = model if model is not None else FluidLattice(D2Q9)
        self.results_type = self.config.results_type

        self.step_count = 0
        self._results = ResultsField()
        self._grids: Optional[GridPair] = None
        self._solid: Optional[np.ndarray] = None
        self._context: Optional[RunContext] = None
        self._workers: List[CollideStreamWorker] = []
        self._controller: Optional[threading.Thread] = None
        self._controller_error: Optional[BaseException] = None
        self._keep_simulating = False
        self._running = False
        self._max_steps: Optional[int] = None

    @property
    def shape(self) -> Tuple[int, int]:
        return self.obstacles.shape

    @property
    def keep_simulating(self) -> bool:
        return self._keep_simulating

    @keep_simulating.setter
    def keep_simulating(self, value: bool) -> None:
        self._keep_simulating = bool(value)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def results_lock(self) -> threading.Lock:
        return self._results.lock

    @property
    def results(self) -> np.ndarray:
        return self._results.snapshot()

    def get_results(self) -> np.ndarray:
        """Returns a copy of the results field, taken under the results lock."""
        return self._results.snapshot()

    @property
    def results_field(self) -> ResultsField:
        return self._results

    @property
    def lattice(self) -> np.ndarray:
        """The current read grid. Only meaningful while no step is in flight."""
        if self._grids is None:
            raise SimulationStateError("The simulation has not been initialized.")
        return self._grids.read

    @property
    def solid(self) -> np.ndarray:
        if self._solid is None:
            raise SimulationStateError("The simulation has not been initialized.")
        return self._solid

    def macroscopics(self) -> Tuple[np.ndarray, np.ndarray]:
        """Returns the density (rows, cols) and velocity (rows, cols, 2) of the read
        grid."""
        df = self.lattice
        return np.asarray(self.model.density(df)), np.asarray(self.model.velocity(df))

    def initialize(self) -> None:
        """Validate the configuration and build the grids and the results field.

        Obstacles, and the top and bottom rows unless the boundaries are periodic, are
        set to the inert zero state. Every other node is at rest with the initial
        density.
        """
        if self._running:
            raise SimulationStateError("Cannot initialize a running simulation.")

        config = self.config.validate()
        if self.obstacles.ndim != 2:
            raise ConfigurationError(
                f"The obstacle mask must be 2D, but got shape {self.obstacles.shape}."
            )
        rows, cols = self.obstacles.shape
        if rows < 3 or cols < 1:
            raise ConfigurationError(
                f"The lattice needs at least 3 rows and 1 column, but got {rows}x{cols}."
            )
        if cols < config.num_threads:
            raise ConfigurationError(
                f"Cannot split {cols} columns between {config.num_threads} threads."
            )

        self._results.allocate((rows, cols))

        self._solid = solid_mask(self.obstacles, config.boundary_conditions)
        read = self.model.initialize((rows, cols), config.initial_density)
        read[self._solid] = 0.0
        self._grids = GridPair(read, np.empty_like(read))
        self.step_count = 0

    def kernel_params(self) -> KernelParams:
        config = self.config
        return KernelParams(
            tau=float(config.tau),
            accel_x=float(config.accel_x),
            use_accel_x=bool(config.use_accel_x),
            cols=self.shape[1],
        )

    def _start_run(self, max_steps: Optional[int]) -> None:
        if self._running:
            raise SimulationStateError("The simulation is already running.")
        if max_steps is not None and max_steps < 0:
            raise ConfigurationError(f"max_steps must not be negative, but got {max_steps}.")

        self.initialize()

        num_threads = int(self.config.num_threads)
        params = self.kernel_params()
        boundaries = BoundaryPolicy.from_config(self.config)
        boundaries.check(self.model)

        self._context = RunContext(num_threads)
        self._max_steps = max_steps
        self._keep_simulating = True
        self._controller_error = None

        self._workers = [
            CollideStreamWorker(
                tid,
                self._context,
                self._grids,
                self._solid,
                start,
                end,
                self.model,
                params,
                boundaries,
            )
            for tid, (start, end) in enumerate(
                partition_columns(self.shape[1], num_threads)
            )
        ]
        self._running = True
        for worker in self._workers:
            worker.start()

        logger.info(
            "Started a %dx%d run on %d threads (%s boundaries)",
            *self.shape,
            num_threads,
            self.config.boundary_conditions.value,
        )

    def _step_loop(self) -> None:
        context = self._context
        barrier = context.barrier
        warmup = int(self.config.warmup_steps)
        refresh = int(self.config.refresh_steps)

        try:
            step = 0
            while self._keep_simulating:
                if self._max_steps is not None and self.step_count >= self._max_steps:
                    break

                barrier.release_all()
                barrier.await_all_done()
                if context.error is not None or not self._keep_simulating:
                    break

                self._grids.swap()
                self.step_count += 1

                if step > warmup and step % refresh == 0:
                    self.refresh_results()
                step += 1
        finally:
            self._keep_simulating = False
            self._shutdown_workers()

        if context.error is not None:
            tid, error = context.error
            raise WorkerError(tid, error) from error

    def _shutdown_workers(self) -> None:
        # Every worker is parked in the barrier here. One last cycle lets them observe
        # the shutdown and report it.
        context = self._context
        context.simulate = False
        context.barrier.release_all()
        context.barrier.await_all_done()

        for worker in self._workers:
            worker.join()
        self._workers = []
        self._running = False
        logger.info("Stopped the run after %d steps", self.step_count)

    def run(self, max_steps: Optional[int] = None) -> int:
        """Run the simulation in the calling thread until `keep_simulating` is cleared
        or `max_steps` steps are done.

        Returns:
            int: The number of steps done.
        """
        self._start_run(max_steps)
        self._step_loop()
        return self.step_count

    def start(self, max_steps: Optional[int] = None) -> None:
        """Start the simulation in a background controller thread.

        The configuration is checked and the workers are spawned before returning, so
        a ConfigurationError is raised here.
        """
        if self._controller is not None and self._controller.is_alive():
            raise SimulationStateError("The simulation is already running.")
        self._start_run(max_steps)
        self._controller = threading.Thread(
            target=self._run_controller, name="parlbm-controller", daemon=True
        )
        self._controller.start()

    def _run_controller(self) -> None:
        try:
            self._step_loop()
        except BaseException as e:
            self._controller_error = e

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for a background run to finish on its own.

        Returns:
            bool: True if the run is over.
        """
        if self._controller is None:
            return True
        self._controller.join(timeout)
        if self._controller.is_alive():
            return False
        self._controller = None
        self._raise_controller_error()
        return True

    def stop(self, timeout: Optional[float] = None) -> bool:
        """Stop the run. The workers see the shutdown on their next release, exit, and
        are joined. Calling it on a stopped simulation does nothing.

        For a run started with `run`, this only clears `keep_simulating`; the thread
        blocked in `run` performs the shutdown.

        Returns:
            bool: True if the run is over.
        """
        self._keep_simulating = False
        return self.join(timeout) and not self._running

    def _raise_controller_error(self) -> None:
        error, self._controller_error = self._controller_error, None
        if error is not None:
            raise error

    def refresh_results(self, results_type: Optional[ResultsType] = None) -> None:
        """Reduce the read grid into the results field. Must be called by the thread
        driving the steps, or while the simulation is stopped."""
        if results_type is not None:
            self.results_type = results_type
        self.results_type = ResultsType.parse(self.results_type)

        self._results.refresh(
            self.model, self.lattice, self.results_type, self.config.periodic
        )
        logger.debug(
            "Refreshed the %s field at step %d", self.results_type.value, self.step_count
        )
