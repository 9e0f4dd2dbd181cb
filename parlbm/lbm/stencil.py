import string
from functools import partial

import chex
import jax
import numpy as np

from jax import numpy as jnp

__all__ = ["Stencil", "D2Q9"]


class Stencil:
    e: chex.Array = jnp.array([])
    w: chex.Array = jnp.array([])
    opposite: chex.Array = jnp.array([])
    cs: float = 0.0
    D: int = 0
    Q: int = 0

    @classmethod
    @partial(jax.jit, static_argnums=(0, 2))
    def get_moment(cls, dist_function: chex.Array, order: int) -> chex.Array:
        """Returns the moment of the distribution function.
        """
        dim = len(dist_function.shape) - 1

        # Create the einsum litteral
        lowercase = string.ascii_lowercase
        uppercase = string.ascii_uppercase

        e_litteral = "".join([f",{lowercase[i%26]}Q" for i in range(order)])
        d_litteral = "".join([f"{uppercase[i%26]}" for i in range(dim)])

        output_litteral = "".join([f"{lowercase[i%26]}" for i in range(order)])

        # The einsum litteral is of the form: "AB,Qa,Qb->ABab"
        einsum_litteral = d_litteral + "Q" + e_litteral + "->" + d_litteral + output_litteral

        # Get the distribution function moments
        stacked_e = [cls.e.astype(dist_function.dtype)] * order
        return jnp.einsum(einsum_litteral, dist_function, *stacked_e)

    @classmethod
    def shifts(cls):
        """Returns the (column, row) offset of every lattice direction as python ints.

        The offsets are used as static shifts when streaming, so they are kept out of
        the traced computation.
        """
        e = np.asarray(cls.e)
        return [(int(e[0, i]), int(e[1, i])) for i in range(cls.Q)]


class D2Q9(Stencil):
    r"""
    Stencil: D2Q9
        6   2   5
          \ | /
        3 - 0 - 1
          / | \
        7   4   8

    The first component of a direction is the column offset, the second one the
    row offset.
    """
    e = jnp.array([[0, 1, 0, -1, 0, 1, -1, -1, 1], [0, 0, 1, 0, -1, 1, 1, -1, -1]])
    w = jnp.array(
        [
            4.0 / 9,
            1.0 / 9,
            1.0 / 9,
            1.0 / 9,
            1.0 / 9,
            1.0 / 36,
            1.0 / 36,
            1.0 / 36,
            1.0 / 36,
        ]
    )
    opposite = jnp.array([0, 3, 4, 1, 2, 7, 8, 5, 6])
    cs = float(1 / np.sqrt(3))
    D = 2
    Q = 9
