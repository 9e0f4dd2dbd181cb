from __future__ import annotations

import abc
import inspect
from collections import namedtuple
from collections.abc import Iterable
from dataclasses import dataclass
from multipledispatch import dispatch

from functools import partial
from typing import Sequence, Tuple, Type

import chex
import jax
import numpy as np
from jax import numpy as jnp

from parlbm.lbm.stencil import Stencil, D2Q9
from parlbm.lbm.collisions import collide
from parlbm.lbm.stream import stream

__all__ = ["KernelParams", "CellModel", "FluidLattice"]


@dataclass(frozen=True)
class KernelParams:
    """Per-run constants of the collide-and-stream kernel. Hashable so that it can be
    passed as a static argument to jitted functions."""

    tau: float
    accel_x: float
    use_accel_x: bool
    cols: int


class CellModel(abc.ABC):
    """The per-cell physics used by the simulation.

    A grid is an array of shape (rows, cols, Q). The model knows how to initialize
    it, how to derive the macroscopic fields of a block of cells, and how to advance
    a block of columns by one collide-and-stream step.
    """

    Macroscopics = namedtuple("FluidMacroscopics", ("rho", "u"))
    Q: int
    dtype = np.float32

    @abc.abstractmethod
    def initialize(self, shape: Tuple[int, int], density: float) -> np.ndarray:
        """Returns a grid of the given shape at rest with the given density."""
        pass

    @abc.abstractmethod
    def density(self, df: chex.Array) -> chex.Array:
        pass

    @abc.abstractmethod
    def velocity(self, df: chex.Array) -> chex.Array:
        pass

    @abc.abstractmethod
    def collide_and_stream(
        self,
        block: chex.Array,
        solid: chex.Array,
        columns: chex.Array,
        params: KernelParams,
    ) -> chex.Array:
        """Advance a block of columns by one step.

        Args:
            block (chex.Array): The distribution function of the worker's columns with
                one halo column on each side, shape (rows, n + 2, Q).
            solid (chex.Array): The solid mask of the same columns, shape (rows, n + 2).
            columns (chex.Array): The global index of every column of the block.
            params (KernelParams): The run constants.

        Returns:
            chex.Array: The updated distribution function of the n inner columns.
        """
        pass

    def equilibrium(self, rho: chex.Array, u: chex.Array) -> chex.Array:
        """Returns the equilibrium of a density (..., 1) and a velocity (..., 2).

        Only needed by density and velocity inlets and outlets. A run using them with a
        model that does not override this method is rejected before it starts.
        """
        raise NotImplementedError(f"{type(self).__name__} has no equilibrium.")

    @classmethod
    def has_equilibrium(cls) -> bool:
        base = CellModel.__dict__["equilibrium"]
        return inspect.getattr_static(cls, "equilibrium") is not base


class FluidLattice(CellModel):
    _stencil: Type[Stencil]

    def __init__(self, stencil: Type[Stencil] = D2Q9, name: str = "FluidLattice"):
        self._stencil = stencil
        self.name = name

    @property
    def stencil(self):
        return self._stencil

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return getattr(self.stencil, name)
        except AttributeError:
            raise AttributeError(
                f"'{type(self).__name__}' object has no attribute '{name}'"
            )

    @partial(jax.jit, static_argnums=(0, 2))
    def get_moment(self, dist_function: chex.Array, order: int) -> chex.Array:
        return self.stencil.get_moment(
            dist_function=dist_function,
            order=order,
        )

    def initialize(self, shape: Tuple[int, int], density: float) -> np.ndarray:
        rho = density * jnp.ones((*shape, 1), dtype=self.dtype)
        u = jnp.zeros((*shape, self.D), dtype=self.dtype)
        return np.array(self.equilibrium(rho, u), dtype=self.dtype)

    @dispatch(object, object)
    @partial(jax.jit, static_argnums=(0))
    def equilibrium(self, rho: chex.Array, u: chex.Array) -> chex.Array:
        """Computes the equilibrium distribution function.

        Args:
            rho (chex.Array): The density, shape (..., 1).
            u (chex.Array): The velocity, shape (..., D).

        Returns:
            chex.Array: The equilibrium distribution function, shape (..., Q).
        """
        u_norm2 = jnp.sum(u ** 2, axis=-1, keepdims=True)

        e = self.e.astype(u.dtype)
        e_dot_u = jnp.einsum("dQ,...d->...Q", e, u)

        cs = self.cs
        w = self.w.astype(u.dtype)

        df_eq = (
            rho
            * w
            * (
                1
                + e_dot_u / cs**2
                + 0.5 * e_dot_u**2 / cs**4
                - 0.5 * u_norm2 / cs**2
            )
        )

        return df_eq

    @dispatch(Iterable)
    def equilibrium(self, fluid_state: Sequence[chex.Array]) -> chex.Array:
        return self.equilibrium(fluid_state.rho, fluid_state.u)

    @partial(jax.jit, static_argnums=(0))
    def get_macroscopics(self, df: chex.Array) -> Sequence[chex.Array]:
        """Returns the density (..., 1) and velocity (..., D) of the cells. Inert cells
        have a zero density and a zero velocity."""
        rho = self.get_moment(df, order=0)[..., jnp.newaxis]
        momentum = self.get_moment(df, order=1)
        safe_rho = jnp.where(rho > 0, rho, 1.0)
        u = jnp.where(rho > 0, momentum / safe_rho, 0.0)
        return self.Macroscopics(rho, u)

    def density(self, df: chex.Array) -> chex.Array:
        return self.get_macroscopics(jnp.asarray(df)).rho[..., 0]

    def velocity(self, df: chex.Array) -> chex.Array:
        return self.get_macroscopics(jnp.asarray(df)).u

    def collide_and_stream(self, block, solid, columns, params):
        return np.asarray(
            self._collide_and_stream(
                jnp.asarray(block), jnp.asarray(solid), jnp.asarray(columns), params
            )
        )

    @partial(jax.jit, static_argnums=(0, 4))
    def _collide_and_stream(self, block, solid, columns, params: KernelParams):
        # Columns on the domain edges are only forced when the horizontal direction
        # wraps around.
        forced = params.use_accel_x | ((columns > 0) & (columns < params.cols - 1))
        df = collide(self, block, solid, forced, params.tau, params.accel_x)
        df = stream(self, df, solid)
        return df[:, 1:-1, :]
