from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Tuple

import numpy as np

from parlbm.lbm.barrier import RunContext
from parlbm.lbm.boundary import BoundaryPolicy
from parlbm.lbm.lattice import CellModel, KernelParams

if TYPE_CHECKING:
    from parlbm.lbm.simulation import GridPair

__all__ = ["CollideStreamWorker", "gather_halo"]

logger = logging.getLogger(__name__)


def gather_halo(
    df: np.ndarray,
    solid: np.ndarray,
    start: int,
    end: int,
    wrap: bool,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Returns the columns [start - 1, end] of the grid and of the solid mask, with the
    global index of each column.

    Halo columns lying outside the domain wrap around when `wrap` is set, otherwise
    they are reported as solid.
    """
    cols = df.shape[1]
    columns = np.arange(start - 1, end + 1)
    index = columns % cols

    block = np.take(df, index, axis=1)
    block_solid = np.take(solid, index, axis=1)

    if wrap:
        columns = index
    else:
        outside = (columns < 0) | (columns >= cols)
        block_solid[:, outside] = True

    return block, block_solid, columns


class CollideStreamWorker(threading.Thread):
    """A persistent worker thread advancing the columns [start, end) of the grid.

    The worker parks in the barrier between steps. On every release it reads the
    current read grid of `grids`, writes its columns of the write grid, applies the
    inlet and outlet of its columns and reports done. It exits after reporting the
    cycle on which the run context asks to stop.
    """

    def __init__(
        self,
        tid: int,
        context: RunContext,
        grids: GridPair,
        solid: np.ndarray,
        start: int,
        end: int,
        model: CellModel,
        params: KernelParams,
        boundaries: BoundaryPolicy,
    ):
        super().__init__(name=f"parlbm-worker-{tid}", daemon=True)
        self.tid = tid
        self.context = context
        self.grids = grids
        self.solid = solid
        self.start_col = start
        self.end_col = end
        self.model = model
        self.params = params
        self.boundaries = boundaries
        self.cycles = 0

    def run(self):
        barrier = self.context.barrier
        while True:
            barrier.await_release(self.tid)
            if not self.context.simulate:
                barrier.report_done()
                break

            try:
                self.step()
            except Exception as e:
                logger.exception("Worker %d failed on cycle %d", self.tid, self.cycles)
                self.context.record_error(self.tid, e)

            self.cycles += 1
            barrier.report_done()

        logger.debug("Worker %d exiting after %d cycles", self.tid, self.cycles)

    def step(self):
        """Collide and stream the worker's columns, then apply the edge boundaries."""
        read, write = self.grids.read, self.grids.write

        block, block_solid, columns = gather_halo(
            read, self.solid, self.start_col, self.end_col, self.params.use_accel_x
        )
        write[:, self.start_col:self.end_col, :] = self.model.collide_and_stream(
            block, block_solid, columns, self.params
        )

        self.boundaries.apply(
            self.model, write, self.solid, self.start_col, self.end_col
        )
