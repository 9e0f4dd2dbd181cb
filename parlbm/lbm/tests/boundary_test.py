import jax
import jax.numpy as jnp
import numpy as np
import pytest

from parlbm.lbm import (
    BoundaryConditions,
    BoundaryOption,
    BoundaryPolicy,
    D2Q9,
    FluidLattice,
    InletBoundary,
    LatticeConfig,
    OutletBoundary,
    solid_mask,
)


@pytest.fixture
def lattice():
    return FluidLattice(D2Q9)


def test_solid_mask_walls():
    obstacles = np.zeros((5, 4), dtype=bool)
    obstacles[2, 1] = True

    solid = solid_mask(obstacles, BoundaryConditions.BOUNCE_BACK)

    assert solid[0].all() and solid[-1].all()
    assert solid[2, 1]
    assert solid.sum() == 9
    # The mask given by the caller is left untouched
    assert obstacles.sum() == 1


def test_solid_mask_periodic():
    obstacles = np.zeros((5, 4), dtype=bool)
    obstacles[2, 1] = True

    solid = solid_mask(obstacles, BoundaryConditions.PERIODIC)

    np.testing.assert_array_equal(solid, obstacles)


def test_policy_from_config():
    policy = BoundaryPolicy.from_config(LatticeConfig())
    assert len(policy) == 2
    assert policy["Inlet"].column(10) == 0
    assert policy["Outlet"].column(10) == 9

    assert len(BoundaryPolicy.from_config(LatticeConfig(use_accel_x=True))) == 0


def test_policy_rejects_duplicates():
    policy = BoundaryPolicy(InletBoundary("none", 1.0, 0.0))
    with pytest.raises(ValueError):
        policy.add(InletBoundary("density", 1.0, 0.0))


def test_density_inlet(lattice):
    rows, cols = 5, 6
    df = lattice.initialize((rows, cols), 1.0)
    solid = solid_mask(np.zeros((rows, cols)), BoundaryConditions.BOUNCE_BACK)
    df[solid] = 0.0

    policy = BoundaryPolicy(InletBoundary(BoundaryOption.DENSITY, 1.05, 0.5))
    policy.apply(lattice, df, solid, 0, 3)

    rho = np.asarray(lattice.density(df))
    np.testing.assert_allclose(rho[1:-1, 0], 1.05, rtol=1e-6)
    np.testing.assert_allclose(rho[1:-1, 1:], 1.0, rtol=1e-6)
    # Walls stay inert
    assert (df[0] == 0).all() and (df[-1] == 0).all()


def test_velocity_outlet(lattice):
    rows, cols = 5, 6
    df = lattice.initialize((rows, cols), 1.0)
    solid = np.zeros((rows, cols), dtype=bool)

    policy = BoundaryPolicy(OutletBoundary("velocity", 1.0, 0.1))
    policy.apply(lattice, df, solid, 3, 6)

    u = np.asarray(lattice.velocity(df))
    rho = np.asarray(lattice.density(df))
    np.testing.assert_allclose(u[:, -1, 0], 0.1, rtol=1e-5)
    np.testing.assert_allclose(u[:, -1, 1], 0.0, atol=1e-7)
    np.testing.assert_allclose(rho[:, -1], 1.0, rtol=1e-6)


def test_policy_only_touches_columns_in_range(lattice):
    rows, cols = 4, 6
    df = lattice.initialize((rows, cols), 1.0)
    before = df.copy()
    solid = np.zeros((rows, cols), dtype=bool)

    policy = BoundaryPolicy(
        [InletBoundary("density", 2.0, 0.0), OutletBoundary("density", 2.0, 0.0)]
    )
    policy.apply(lattice, df, solid, 1, 5)

    np.testing.assert_array_equal(df, before)


def test_none_option_leaves_column(lattice):
    rows, cols = 4, 3
    df = lattice.initialize((rows, cols), 1.0)
    before = df.copy()

    policy = BoundaryPolicy(InletBoundary("none", 2.0, 0.3))
    policy.apply(lattice, df, np.zeros((rows, cols), dtype=bool), 0, cols)

    np.testing.assert_array_equal(df, before)


@pytest.mark.parametrize("option", ["density", "velocity"])
def test_boundary_inside_jit(lattice, option):
    column = jnp.asarray(lattice.initialize((1, 5), 1.0)[0])
    solid = jnp.zeros(5, dtype=bool).at[0].set(True)
    inlet = InletBoundary(option, 1.05, 0.05)

    direct = inlet._apply(lattice, column, solid)
    traced = jax.jit(lambda df, s: inlet._apply(lattice, df, s))(column, solid)

    np.testing.assert_allclose(traced, direct, rtol=1e-6)
    np.testing.assert_array_equal(traced[0], column[0])
    if option == "density":
        np.testing.assert_allclose(lattice.density(traced[1:]), 1.05, rtol=1e-6)
    else:
        np.testing.assert_allclose(lattice.velocity(traced[1:])[:, 0], 0.05, rtol=1e-5)
