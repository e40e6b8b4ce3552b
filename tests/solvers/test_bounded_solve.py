"""
Tests for the implicit bounded solver loop.

Tests cover:
1. Hand-checked chain cases (converged field, coefficients, mass balance)
2. Iteration cap and the uniform last-iteration scaling
3. Iteration count as the flux grows, and bounds taken from the old field
4. Input validation and stage-tagged solver failures
5. Courant-based start and density/time-step invariance
"""

import pytest
import numpy as np
from numpy.testing import assert_allclose

from bounded_transport.config.schema import BoundedSolverConfig, LimiterConfig
from bounded_transport.constants import PROCESSOR, ZERO_GRADIENT
from bounded_transport.grid import FVMesh, BoundaryPatch, MeshError, chain_flux, chain_mesh
from bounded_transport.numerics.bounds import BoundsError, compute_bounds
from bounded_transport.numerics.fluxes import (
    correction_flux, upwind_face_flux, boundary_net_outflow, total_quantity,
)
from bounded_transport.solvers.bounded_solver import (
    SolveStage, SolverStageError, bounded_solve, bounded_solve_unit_density,
)
from bounded_transport.solvers.realizer import LinearSolveError, UpwindRealizer


def _mass_balance(mesh, psi_old, psi_new, phi, phi_corr, delta_t, rho=1.0):
    """Change of the total quantity plus what left through the boundary."""
    boundary = boundary_net_outflow(mesh, upwind_face_flux(mesh, phi, psi_new) + phi_corr)
    return (total_quantity(mesh, rho, psi_new) - total_quantity(mesh, rho, psi_old)
            + delta_t * boundary)


class CountingRealizer:
    """UpwindRealizer that counts its solves and can fail on a chosen call."""

    def __init__(self, fail_on=None):
        self.calls = 0
        self.fail_on = fail_on
        self._inner = UpwindRealizer()

    def solve(self, equation):
        self.calls += 1
        if self.fail_on == self.calls:
            raise LinearSolveError("factorisation failed")
        return self._inner.solve(equation)


# =============================================================================
# Hand-checked cases
# =============================================================================

class TestChainCases:
    """Three unit cells, dt = 1, correction 0.4 on the first internal face."""

    @pytest.fixture
    def phi_corr(self):
        return np.array([0.4, 0.0, 0.0, 0.0])

    def test_no_advection(self, chain3, phi_corr):
        psi = np.array([1.0, 0.0, 0.5])
        result = bounded_solve_unit_density(chain3, psi, np.zeros(4), phi_corr, 1.0, 0.0, 1.0)

        assert result.converged
        assert result.stage == SolveStage.CONVERGED
        assert result.iterations == 1
        assert_allclose(psi, [0.6, 0.4, 0.5])
        assert_allclose(result.coefficients, 1.0)
        assert_allclose(phi_corr, [0.4, 0.0, 0.0, 0.0])

    def test_overshoot_is_limited(self, chain3, phi_corr):
        psi = np.array([1.0, 0.0, 0.5])
        phi = chain_flux(chain3, 1.0)
        result = bounded_solve_unit_density(chain3, psi, phi, phi_corr, 1.0, 0.0, 1.0)

        # The unlimited correction would give [0.8, 0.6, 0.55]
        assert result.converged
        assert result.iterations == 2
        assert_allclose(psi, [1.0, 0.5, 0.5])
        assert result.coefficients[0] == 0.0
        assert_allclose(phi_corr, 0.0)
        assert_allclose(result.bounds.upper, [1.0, 1.0, 0.5])
        assert_allclose(result.bounds.lower, 0.0)

        # Inlet brings in 1.0, the outlet carries 0.5 away
        assert total_quantity(chain3, 1.0, psi) - 1.5 == pytest.approx(0.5)

    def test_zero_correction(self, chain3):
        psi = np.array([1.0, 0.0, 0.5])
        phi_corr = np.zeros(4)
        result = bounded_solve_unit_density(chain3, psi, chain_flux(chain3, 1.0),
                                            phi_corr, 1.0, 0.0, 1.0)
        assert result.converged
        assert result.iterations == 1
        assert_allclose(psi, [1.0, 0.5, 0.5])
        assert_allclose(phi_corr, 0.0)

    def test_repeat_without_correction_is_unchanged(self, chain3):
        psi = np.array([0.6, 0.4, 0.5])
        result = bounded_solve_unit_density(chain3, psi, np.zeros(4), np.zeros(4),
                                            1.0, 0.0, 1.0)
        assert result.converged
        assert_allclose(psi, [0.6, 0.4, 0.5])

    def test_step_profile(self, chain3_open):
        # Downwind correction on a rising profile pushes cell 2 above 1
        psi_old = np.array([0.0, 0.5, 1.0])
        psi = psi_old.copy()
        phi = chain_flux(chain3_open, 2.0)
        phi_corr = correction_flux(chain3_open, phi, psi_old, scheme="downwind")
        requested = phi_corr.copy()

        result = bounded_solve_unit_density(chain3_open, psi, phi, phi_corr, 1.0, 0.0, 1.0)

        assert result.converged
        assert np.all(psi >= 0.0 - 1e-10) and np.all(psi <= 1.0 + 1e-10)
        assert np.all(np.abs(phi_corr) <= np.abs(requested) + 1e-15)
        assert _mass_balance(chain3_open, psi_old, psi, phi, phi_corr, 1.0) == pytest.approx(
            0.0, abs=1e-12)


# =============================================================================
# Iteration cap
# =============================================================================

class TestIterationCap:

    @pytest.fixture
    def case(self, chain3):
        return chain3, np.array([1.0, 0.0, 0.5]), chain_flux(chain3, 1.0)

    def test_single_iteration_reports_violation(self, case, log_messages):
        mesh, psi, phi = case
        phi_corr = np.array([0.4, 0.0, 0.0, 0.0])
        result = bounded_solve_unit_density(mesh, psi, phi, phi_corr, 1.0, 0.0, 1.0,
                                            config=BoundedSolverConfig(max_iter=1))

        assert not result.converged
        assert result.stage == SolveStage.MAX_ITER_REACHED
        assert result.max_violation == pytest.approx(0.05)
        assert_allclose(psi, [0.8, 0.6, 0.55])
        assert any("reached 1 iterations" in m for m in log_messages)

    def test_uniform_scaling_on_last_iteration(self, case):
        mesh, psi, phi = case
        phi_corr = np.array([0.4, 0.0, 0.0, 0.0])
        result = bounded_solve_unit_density(mesh, psi, phi, phi_corr, 1.0, 0.0, 1.0,
                                            config=BoundedSolverConfig(max_iter=2))

        assert result.converged
        assert result.iterations == 2
        assert [r.uniform_scaling for r in result.history] == [False, True]
        assert_allclose(psi, [1.0, 0.5, 0.5])

    def test_history(self, case):
        mesh, psi, phi = case
        phi_corr = np.array([0.4, 0.0, 0.0, 0.0])
        result = bounded_solve_unit_density(mesh, psi, phi, phi_corr, 1.0, 0.0, 1.0,
                                            config=BoundedSolverConfig(keep_history=True))

        assert len(result.history) == result.iterations
        assert result.history[0].max_violation == pytest.approx(0.05)
        assert result.history[0].n_violations == 1
        assert result.history[-1].max_violation <= 1e-10
        assert_allclose(result.history[0].psi, [0.8, 0.6, 0.55])

    def test_coefficients_never_grow(self):
        rng = np.random.default_rng(21)
        mesh = FVMesh(np.arange(7), np.arange(1, 8), np.full(8, 0.5),
                      [BoundaryPatch("in", [0], value=0.0),
                       BoundaryPatch("out", [7], kind=ZERO_GRADIENT)])
        phi = np.concatenate([np.full(7, 1.5), [-1.5, 1.5]])
        psi_old = rng.uniform(0.0, 1.0, 8)
        psi = psi_old.copy()
        phi_corr = correction_flux(mesh, phi, psi_old, scheme="downwind")

        result = bounded_solve_unit_density(mesh, psi, phi, phi_corr, 1.0, 0.0, 1.0,
                                            config=BoundedSolverConfig(max_iter=5,
                                                                       keep_history=True))
        coeffs = [r.coefficients for r in result.history]
        for earlier, later in zip(coeffs, coeffs[1:]):
            assert np.all(later <= earlier + 1e-15)


# =============================================================================
# Iteration count and bounds as the flux grows
# =============================================================================

class TestIterationScaling:
    """chain3 from [1, 0, 0.5] with correction 0.4 on the first internal face.

    The step stays bounded without correction up to a flux of about 0.45;
    above 1 the base solve alone pushes cell 2 past the old field's range.
    """

    FLUXES = [0.0, 0.25, 0.5, 1.0, 2.0, 4.0]

    def _solve(self, mesh, flux, **config):
        psi = np.array([1.0, 0.0, 0.5])
        phi_corr = np.array([0.4, 0.0, 0.0, 0.0])
        result = bounded_solve_unit_density(mesh, psi, chain_flux(mesh, flux), phi_corr,
                                            1.0, 0.0, 1.0,
                                            config=BoundedSolverConfig(**config))
        return result, psi

    def test_iterations_never_drop_as_flux_grows(self, chain3):
        counts = []
        for flux in self.FLUXES:
            result, _ = self._solve(chain3, flux)
            assert result.converged
            counts.append(result.iterations)

        assert counts == [1, 1, 2, 2, 2, 2]
        assert all(later >= earlier for earlier, later in zip(counts, counts[1:]))

    @pytest.mark.parametrize("flux", [0.5, 1.0, 2.0, 4.0])
    def test_one_tightening_lands_inside(self, chain3, flux):
        result, psi = self._solve(chain3, flux, max_iter=10)

        assert result.converged
        assert result.iterations == 2
        assert not result.history[-1].uniform_scaling
        assert result.bounds.contains(psi, tolerance=1e-10)

    def test_bounds_from_old_field(self, chain3):
        psi_old = np.array([1.0, 0.0, 0.5])
        result, psi = self._solve(chain3, 1.0, keep_history=True)
        expected = compute_bounds(psi_old, chain3, 0.0, 1.0)

        assert_allclose(result.bounds.upper, expected.upper)
        assert_allclose(result.bounds.lower, expected.lower)
        # The first pass overshoots cell 2 and is not accepted
        assert result.history[0].psi[2] == pytest.approx(0.55)
        assert psi[2] == pytest.approx(0.5)

    def test_bound_widened_to_base_solve(self, chain3):
        result, psi = self._solve(chain3, 2.0)

        # Base solve gives 11/18 in cell 2, above the old maximum 0.5
        assert result.bounds.upper[2] == pytest.approx(11.0 / 18.0)
        assert result.coefficients[0] == 0.0
        assert_allclose(psi, [1.0, 2.0 / 3.0, 11.0 / 18.0])

    @pytest.mark.parametrize("flux", [0.05, 0.4, 1.6])
    def test_long_chain_converges_quickly(self, flux):
        rng = np.random.default_rng(20)
        mesh = chain_mesh(20, length=20.0)
        psi_old = rng.uniform(0.0, 1.0, 20)
        psi = psi_old.copy()
        phi = chain_flux(mesh, flux)
        phi_corr = correction_flux(mesh, phi, psi_old, scheme="downwind")

        result = bounded_solve_unit_density(mesh, psi, phi, phi_corr, 1.0, 0.0, 1.0,
                                            config=BoundedSolverConfig(max_iter=10))

        assert result.converged
        assert result.iterations <= 3
        assert result.bounds.contains(psi, tolerance=1e-10)


# =============================================================================
# Errors
# =============================================================================

class TestErrors:

    def test_reversed_bounds_before_any_solve(self, chain3):
        realizer = CountingRealizer()
        with pytest.raises(BoundsError):
            bounded_solve_unit_density(chain3, np.zeros(3), np.zeros(4), np.zeros(4),
                                       0.0, 1.0, 1.0, realizer=realizer)
        assert realizer.calls == 0

    def test_wrong_field_size(self, chain3):
        with pytest.raises(MeshError, match="psi"):
            bounded_solve_unit_density(chain3, np.zeros(4), np.zeros(4), np.zeros(4),
                                       1.0, 0.0, 1.0)

    def test_wrong_flux_size(self, chain3):
        with pytest.raises(MeshError, match="phi_corr"):
            bounded_solve_unit_density(chain3, np.zeros(3), np.zeros(4), np.zeros(3),
                                       1.0, 0.0, 1.0)

    def test_field_must_be_float_array(self, chain3):
        with pytest.raises(TypeError):
            bounded_solve_unit_density(chain3, [0.0, 0.0, 0.0], np.zeros(4), np.zeros(4),
                                       1.0, 0.0, 1.0)
        with pytest.raises(TypeError):
            bounded_solve_unit_density(chain3, np.zeros(3, dtype=int), np.zeros(4),
                                       np.zeros(4), 1.0, 0.0, 1.0)

    @pytest.mark.parametrize("delta_t", [0.0, -1.0, np.nan])
    def test_invalid_time_step(self, chain3, delta_t):
        with pytest.raises(ValueError, match="delta_t"):
            bounded_solve_unit_density(chain3, np.zeros(3), np.zeros(4), np.zeros(4),
                                       1.0, 0.0, delta_t)

    def test_invalid_config(self, chain3):
        with pytest.raises(ValueError, match="max_iter"):
            bounded_solve_unit_density(chain3, np.zeros(3), np.zeros(4), np.zeros(4),
                                       1.0, 0.0, 1.0, config=BoundedSolverConfig(max_iter=0))

    def test_processor_patch_needs_exchange(self):
        mesh = FVMesh([0], [1], np.ones(2), [BoundaryPatch("proc0", [1], kind=PROCESSOR)])
        with pytest.raises(MeshError, match="halo exchange"):
            bounded_solve_unit_density(mesh, np.zeros(2), np.zeros(2), np.zeros(2),
                                       1.0, 0.0, 1.0)

    def test_base_solve_failure(self, chain3):
        psi = np.array([1.0, 0.0, 0.5])
        with pytest.raises(SolverStageError) as excinfo:
            bounded_solve_unit_density(chain3, psi, chain_flux(chain3, 1.0), np.zeros(4),
                                       1.0, 0.0, 1.0, realizer=CountingRealizer(fail_on=1))
        assert excinfo.value.stage == SolveStage.BASE_SOLVE
        assert excinfo.value.iteration == 0
        assert_allclose(psi, [1.0, 0.0, 0.5])

    def test_apply_failure(self, chain3):
        psi = np.array([1.0, 0.0, 0.5])
        phi_corr = np.array([0.4, 0.0, 0.0, 0.0])
        with pytest.raises(SolverStageError) as excinfo:
            bounded_solve_unit_density(chain3, psi, chain_flux(chain3, 1.0), phi_corr,
                                       1.0, 0.0, 1.0, realizer=CountingRealizer(fail_on=2))
        assert excinfo.value.stage == SolveStage.APPLY
        assert excinfo.value.iteration == 1
        assert isinstance(excinfo.value, LinearSolveError)
        # Inputs are untouched on failure
        assert_allclose(psi, [1.0, 0.0, 0.5])
        assert_allclose(phi_corr, [0.4, 0.0, 0.0, 0.0])

    def test_unbounded_base_solve_warns(self, chain3, log_messages):
        psi = np.array([1.0, 0.5, 0.5])
        result = bounded_solve_unit_density(chain3, psi, np.zeros(4), np.zeros(4),
                                            1.0, 0.0, 1.0, su=1.0)
        assert result.base_unboundedness == pytest.approx(1.0)
        assert any("Uncorrected solve" in m for m in log_messages)


# =============================================================================
# Courant start and scaling
# =============================================================================

class TestScaling:

    def test_courant_start_caps_coefficients(self, chain3):
        psi = np.array([1.0, 0.0, 0.5])
        phi_corr = np.array([0.4, 0.0, 0.0, 0.0])
        config = BoundedSolverConfig(limiter=LimiterConfig(courant_coefficient=4.0))
        result = bounded_solve_unit_density(chain3, psi, chain_flux(chain3, 1.0), phi_corr,
                                            1.0, 0.0, 1.0, config=config)
        assert result.max_courant == pytest.approx(1.0)
        assert np.all(result.coefficients <= 0.25)

    def test_density_and_time_step_scale_together(self, chain3):
        phi = chain_flux(chain3, 1.0)

        psi_a = np.array([1.0, 0.0, 0.5])
        corr_a = np.array([0.4, 0.0, 0.0, 0.0])
        res_a = bounded_solve(chain3, 2.0, psi_a, phi, corr_a, 0.0, 0.0, 1.0, 0.0, 2.0)

        psi_b = np.array([1.0, 0.0, 0.5])
        corr_b = np.array([0.4, 0.0, 0.0, 0.0])
        res_b = bounded_solve_unit_density(chain3, psi_b, phi, corr_b, 1.0, 0.0, 1.0)

        assert_allclose(psi_a, psi_b)
        assert_allclose(corr_a, corr_b)
        assert res_a.iterations == res_b.iterations
        assert res_a.max_courant == pytest.approx(res_b.max_courant)
