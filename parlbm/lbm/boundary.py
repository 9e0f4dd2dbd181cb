from __future__ import annotations

import abc
from collections.abc import Iterable
from typing import TYPE_CHECKING, Dict, Union, Sequence

from functools import partial
from multipledispatch import dispatch

import chex
import jax
import numpy as np
from jax import numpy as jnp

from parlbm.lbm.config import BoundaryConditions, BoundaryOption, LatticeConfig
from parlbm.lbm.errors import ConfigurationError

if TYPE_CHECKING:
    from parlbm.lbm.lattice import CellModel

__all__ = [
    "solid_mask",
    "Boundary",
    "InletBoundary",
    "OutletBoundary",
    "BoundaryPolicy",
]


def solid_mask(
    obstacles: np.ndarray, boundary_conditions: BoundaryConditions
) -> np.ndarray:
    """Returns the mask of the inert nodes: the obstacles and, unless the boundary
    conditions are periodic, the top and bottom rows."""
    solid = np.array(obstacles, dtype=bool)
    if boundary_conditions is not BoundaryConditions.PERIODIC:
        solid[0, :] = True
        solid[-1, :] = True
    return solid


class Boundary(abc.ABC):
    """A boundary acting on one column of the domain after streaming."""

    _name: str

    def __init__(self, name: str, option: BoundaryOption, density: float, speed: float):
        self._name = name
        self.option = BoundaryOption.parse(option)
        self.density = float(density)
        self.speed = float(speed)

    @property
    def name(self):
        return self._name

    @abc.abstractmethod
    def column(self, cols: int) -> int:
        """Returns the index of the column the boundary acts on."""
        pass

    def __call__(
        self, lattice: CellModel, df: chex.Array, solid: chex.Array
    ) -> chex.Array:
        """Apply the boundary condition to the given column.

        Args:
            lattice (CellModel): The lattice.
            df (chex.Array): The streamed distribution function of the column,
                shape (rows, Q).
            solid (chex.Array): Mask of the solid nodes of the column, shape (rows,).

        Returns:
            chex.Array: The distribution function of the column after the application
                of the boundary condition.
        """
        if self.option is BoundaryOption.NONE:
            return df
        return self._apply(lattice, df, solid)

    @partial(jax.jit, static_argnums=(0, 1))
    def _apply(self, lattice, df, solid):
        fluid_state = lattice.get_macroscopics(df)

        if self.option is BoundaryOption.DENSITY:
            rho = jnp.full_like(fluid_state.rho, self.density)
            u = fluid_state.u
        else:
            rho = fluid_state.rho
            u = jnp.zeros_like(fluid_state.u).at[..., 0].set(self.speed)

        eq = lattice.equilibrium(rho, u)
        return jnp.where(solid[..., jnp.newaxis], df, eq)


class InletBoundary(Boundary):
    """An inlet on the left column of the domain. Depending on its option it prescribes
    the density or the horizontal velocity of the incoming fluid."""

    def __init__(self, option: BoundaryOption, density: float, speed: float):
        super().__init__("Inlet", option, density, speed)

    def column(self, cols: int) -> int:
        return 0


class OutletBoundary(Boundary):
    """An outlet on the right column of the domain."""

    def __init__(self, option: BoundaryOption, density: float, speed: float):
        super().__init__("Outlet", option, density, speed)

    def column(self, cols: int) -> int:
        return cols - 1


class BoundaryPolicy:
    _boundary_dict: Dict[str, Boundary]

    def __init__(self, boundary: Union[Boundary, Sequence[Boundary]] = None):
        self._boundary_dict = dict()
        if boundary is not None:
            self.add(boundary)

    @classmethod
    def from_config(cls, config: LatticeConfig) -> "BoundaryPolicy":
        """Builds the inlet and outlet of a run. A domain that wraps around
        horizontally has neither."""
        if config.use_accel_x:
            return cls()
        return cls(
            [
                InletBoundary(
                    config.inlet_option, config.inlet_density, config.inlet_speed
                ),
                OutletBoundary(
                    config.outlet_option, config.outlet_density, config.outlet_speed
                ),
            ]
        )

    @dispatch(Boundary)
    def add(self, boundary: Boundary) -> None:
        """Add a boundary to the policy.

        Args:
            boundary (Boundary): The boundary to add.
        """
        if boundary.name in self._boundary_dict:
            raise ValueError(f"Boundary {boundary.name} already exists.")
        self._boundary_dict[boundary.name] = boundary

    @dispatch(Iterable)
    def add(self, boundary: Sequence[Boundary]) -> None:
        """Add several boundaries to the policy.

        Args:
            boundary (Sequence[Boundary]): The boundaries to add.
        """
        for bdy in boundary:
            self.add(bdy)

    def __getitem__(self, name: str) -> Boundary:
        return self._boundary_dict[name]

    def __len__(self):
        return len(self._boundary_dict)

    def __iter__(self):
        return iter(self._boundary_dict.values())

    def check(self, lattice: CellModel) -> None:
        """Raises a ConfigurationError if a boundary needs an equilibrium that the
        lattice does not provide."""
        active = [bdy.name for bdy in self if bdy.option is not BoundaryOption.NONE]
        if active and not lattice.has_equilibrium():
            raise ConfigurationError(
                f"{type(lattice).__name__} has no equilibrium, which is needed by the "
                f"{' and '.join(active)} options. Set them to 'none' instead."
            )

    def apply(
        self,
        lattice: CellModel,
        df: np.ndarray,
        solid: np.ndarray,
        start: int,
        end: int,
    ) -> None:
        """Apply the boundaries whose column lies in [start, end) to the write grid,
        in place. Only these columns are read and written.

        Args:
            lattice (CellModel): The lattice.
            df (np.ndarray): The write grid, shape (rows, cols, Q).
            solid (np.ndarray): The solid mask, shape (rows, cols).
            start (int): First column of the range.
            end (int): End of the range (excluded).
        """
        cols = df.shape[1]
        for bdy in self._boundary_dict.values():
            col = bdy.column(cols)
            if start <= col < end:
                df[:, col, :] = np.asarray(
                    bdy(lattice, jnp.asarray(df[:, col, :]), jnp.asarray(solid[:, col]))
                )
