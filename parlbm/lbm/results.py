from __future__ import annotations

import threading
from functools import partial
from typing import TYPE_CHECKING, Tuple

import chex
import jax
import numpy as np
from jax import numpy as jnp

from parlbm.lbm.config import ResultsType

if TYPE_CHECKING:
    from parlbm.lbm.lattice import CellModel

__all__ = ["vorticity", "compute_field", "ResultsField"]


def vorticity(u: chex.Array, periodic: bool) -> chex.Array:
    """Finite difference vorticity of a velocity field of shape (rows, cols, 2).

    The row neighbour is the next row and always wraps around to the first row. The
    column neighbour is the previous column; on the first column it wraps around to
    the last column when the boundaries are periodic and is taken at rest otherwise.
    """
    row_next = jnp.roll(u, shift=-1, axis=0)
    col_prev = jnp.roll(u, shift=1, axis=1)
    if not periodic:
        col_prev = col_prev.at[:, 0, :].set(0.0)

    return (col_prev[..., 1] - u[..., 1]) - (row_next[..., 0] - u[..., 0])


@partial(jax.jit, static_argnums=(0, 2, 3))
def compute_field(
    lattice: CellModel, df: chex.Array, results_type: ResultsType, periodic: bool
) -> chex.Array:
    """Reduces a grid to one scalar per cell."""
    if results_type is ResultsType.DENSITY:
        return lattice.density(df)

    u = lattice.velocity(df)
    if results_type is ResultsType.SPEED:
        return jnp.sqrt(u[..., 0] ** 2 + u[..., 1] ** 2)
    return vorticity(u, periodic)


class ResultsField:
    """The scalar field published to consumers outside the simulation.

    The field is only written under `lock`, and in place, so a reader holding the lock
    sees either the previous refresh or the next one, never a mix of both.
    """

    def __init__(self):
        self.lock = threading.Lock()
        self._values = np.zeros((0, 0))
        self.refreshes = 0

    def allocate(self, shape: Tuple[int, int]) -> None:
        with self.lock:
            self._values = np.zeros(shape)
            self.refreshes = 0

    @property
    def shape(self) -> Tuple[int, int]:
        return self._values.shape

    @property
    def values(self) -> np.ndarray:
        """The field itself. Hold `lock` while reading it."""
        return self._values

    def snapshot(self) -> np.ndarray:
        with self.lock:
            return self._values.copy()

    def refresh(
        self,
        lattice: CellModel,
        df: np.ndarray,
        results_type: ResultsType,
        periodic: bool,
    ) -> None:
        with self.lock:
            self._values[...] = np.asarray(
                compute_field(lattice, jnp.asarray(df), results_type, periodic)
            )
            self.refreshes += 1
