"""
Property tests of the bounded solver on random closed graphs and a 2-D block.

On a closed mesh with a divergence-free flux the upwind solve is bounded
and conservative, so the corrected solve must be too.
"""

import pytest
import numpy as np
from numpy.testing import assert_allclose

from bounded_transport.config.schema import BoundedSolverConfig
from bounded_transport.grid import FVMesh, cartesian_mesh
from bounded_transport.grid.generators import cartesian_flux
from bounded_transport.numerics.fluxes import (
    correction_flux, net_outflow, upwind_face_flux, boundary_net_outflow, total_quantity,
)
from bounded_transport.solvers.bounded_solver import bounded_solve_unit_density


def _circulation_case(rng, n_cells):
    """Ring plus chords carrying a divergence-free flux.

    Each chord a -> b sends q forward and the ring returns it from b to a.
    """
    n_chords = n_cells // 3
    a = rng.integers(0, n_cells, n_chords)
    b = (a + rng.integers(2, n_cells - 1, n_chords)) % n_cells
    q = rng.uniform(0.1, 1.0, n_chords)

    ring_flux = np.full(n_cells, rng.uniform(-1.0, 1.0))
    for start, end, amount in zip(a, b, q):
        for k in range((start - end) % n_cells):
            ring_flux[(end + k) % n_cells] += amount

    owner = np.concatenate([np.arange(n_cells), a])
    neighbour = np.concatenate([(np.arange(n_cells) + 1) % n_cells, b])
    mesh = FVMesh(owner, neighbour, rng.uniform(0.5, 2.0, n_cells))
    return mesh, np.concatenate([ring_flux, q])


class TestClosedGraphs:

    @pytest.mark.parametrize("seed", range(6))
    def test_flux_is_divergence_free(self, seed):
        mesh, phi = _circulation_case(np.random.default_rng(seed), 15)
        assert_allclose(net_outflow(mesh, phi), 0.0, atol=1e-12)

    @pytest.mark.parametrize("seed", range(6))
    @pytest.mark.parametrize("scheme", ["central", "downwind"])
    def test_bounded_and_conservative(self, seed, scheme):
        rng = np.random.default_rng(seed)
        mesh, phi = _circulation_case(rng, int(rng.integers(6, 25)))
        psi_old = rng.uniform(0.0, 1.0, mesh.n_cells)
        psi = psi_old.copy()
        phi_corr = correction_flux(mesh, phi, psi_old, scheme=scheme)
        delta_t = rng.uniform(0.2, 3.0)

        result = bounded_solve_unit_density(mesh, psi, phi, phi_corr, 1.0, 0.0, delta_t)

        assert result.converged
        assert result.bounds.contains(psi, tolerance=1e-10)
        assert np.all(psi >= -1e-10) and np.all(psi <= 1.0 + 1e-10)
        assert total_quantity(mesh, 1.0, psi) == pytest.approx(
            total_quantity(mesh, 1.0, psi_old), rel=1e-12)
        assert np.all((result.coefficients >= 0.0) & (result.coefficients <= 1.0))

    @pytest.mark.parametrize("seed", range(4))
    def test_narrow_bounds(self, seed):
        rng = np.random.default_rng(50 + seed)
        mesh, phi = _circulation_case(rng, 12)
        psi_old = rng.uniform(0.3, 0.7, mesh.n_cells)
        psi = psi_old.copy()
        phi_corr = rng.uniform(-0.5, 0.5, mesh.n_faces)

        result = bounded_solve_unit_density(mesh, psi, phi, phi_corr, 0.7, 0.3, 1.0)

        assert result.converged
        assert np.all(psi >= 0.3 - 1e-10) and np.all(psi <= 0.7 + 1e-10)


class TestCartesianBlock:

    @pytest.fixture
    def block(self):
        nx, ny = 8, 6
        mesh = cartesian_mesh(nx, ny)
        phi = cartesian_flux(nx, ny, 1.0, 0.5)
        # Square of ones in a field of zeros
        psi = np.zeros((ny, nx))
        psi[1:4, 2:5] = 1.0
        return mesh, phi, psi.ravel()

    @pytest.mark.parametrize("courant", [0.5, 2.0, 8.0])
    def test_square_stays_bounded(self, block, courant):
        mesh, phi, psi_old = block
        delta_t = courant * mesh.volumes[0] / np.max(np.abs(phi))
        psi = psi_old.copy()
        phi_corr = correction_flux(mesh, phi, psi_old, scheme="downwind")

        result = bounded_solve_unit_density(mesh, psi, phi, phi_corr, 1.0, 0.0, delta_t)

        assert result.converged
        assert np.all(psi >= -1e-10) and np.all(psi <= 1.0 + 1e-10)
        assert result.max_courant == pytest.approx(courant)

        boundary = boundary_net_outflow(mesh, upwind_face_flux(mesh, phi, psi) + phi_corr)
        change = total_quantity(mesh, 1.0, psi) - total_quantity(mesh, 1.0, psi_old)
        assert change + delta_t * boundary == pytest.approx(0.0, abs=1e-12)

    def test_iterations_within_cap(self, block):
        mesh, phi, psi_old = block
        psi = psi_old.copy()
        phi_corr = correction_flux(mesh, phi, psi_old, scheme="downwind")
        config = BoundedSolverConfig(max_iter=4)
        result = bounded_solve_unit_density(mesh, psi, phi, phi_corr, 1.0, 0.0, 0.2,
                                            config=config)
        assert 1 <= result.iterations <= 3
        assert result.converged
