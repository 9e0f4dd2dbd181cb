from __future__ import annotations

from typing import TYPE_CHECKING

import chex
from jax import numpy as jnp

if TYPE_CHECKING:
    from parlbm.lbm.lattice import FluidLattice

__all__ = ["collide"]


def collide(
    lattice: FluidLattice,
    df: chex.Array,
    solid: chex.Array,
    forced: chex.Array,
    tau: float,
    accel_x: float,
) -> chex.Array:
    """Perform a BGK collision step.

    The body force is applied by shifting the equilibrium velocity of the forced
    columns by ``accel_x * tau`` along the horizontal direction.

    Args:
        lattice (FluidLattice): The lattice.
        df (chex.Array): The distribution function, shape (rows, cols, Q).
        solid (chex.Array): Mask of the solid nodes, shape (rows, cols). Solid nodes
            are left untouched.
        forced (chex.Array): Mask of the forced columns, shape (cols,).
        tau (float): The relaxation time.
        accel_x (float): The horizontal acceleration.

    Returns:
        chex.Array: The post-collision distribution function.
    """
    fluid_state = lattice.get_macroscopics(df)

    shift = jnp.where(forced, accel_x * tau, 0.0).astype(df.dtype)
    u = fluid_state.u.at[..., 0].add(shift[jnp.newaxis, :])

    eq = lattice.equilibrium(fluid_state.rho, u)

    return jnp.where(
        solid[..., jnp.newaxis],
        df,
        df - (df - eq) / tau,
    )
