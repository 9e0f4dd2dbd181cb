from __future__ import annotations

from typing import TYPE_CHECKING

import chex
import numpy as np

from jax import numpy as jnp

if TYPE_CHECKING:
    from parlbm.lbm.lattice import FluidLattice

__all__ = ["stream"]


def stream(lattice: FluidLattice, df: chex.Array, solid: chex.Array) -> chex.Array:
    """This function streams a post-collision distribution function by pulling every
    component from the upstream node. Components whose upstream node is solid are
    bounced back from the opposite direction of the node itself, and solid nodes are
    set to the inert zero state.

    Rolling wraps around both axes of the block. Along the rows this is the periodic
    boundary (when the top and bottom rows are walls they are solid, so nothing wraps
    through them). Along the columns only the two halo columns receive wrapped values,
    and the caller drops them.

    Args:
        lattice (FluidLattice): The lattice on which the streaming is performed.
        df (chex.Array): The post-collision distribution function, shape (rows, cols, Q).
        solid (chex.Array): Mask of the solid nodes, shape (rows, cols).

    Returns:
        chex.Array: The streamed distribution function.
    """
    opposite = [int(i) for i in np.asarray(lattice.opposite)]

    streamed = []
    for i, (ex, ey) in enumerate(lattice.shifts()):
        upstream = jnp.roll(df[..., i], shift=(ey, ex), axis=(0, 1))
        upstream_solid = jnp.roll(solid, shift=(ey, ex), axis=(0, 1))
        streamed.append(jnp.where(upstream_solid, df[..., opposite[i]], upstream))

    streamed = jnp.stack(streamed, axis=-1)
    return jnp.where(solid[..., jnp.newaxis], jnp.zeros_like(streamed), streamed)
