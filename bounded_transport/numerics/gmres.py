"""
GMRES(m) solver for the sparse transport systems.

Implements restarted GMRES with:
- Configurable restart parameter (m)
- Left preconditioning support (Jacobi for the assembled CSR operator)
- Modified Gram-Schmidt orthogonalization
- Givens rotations for least-squares
- All operations on device via JAX (using lax control flow)

The matrix enters as a pytree `operator` plus a pure function
`matvec(operator, v)`, so one compiled cycle serves every matrix of the
same size and sparsity layout.

Reference: Saad & Schultz (1986), "GMRES: A Generalized Minimal Residual
Algorithm for Solving Nonsymmetric Linear Systems"
"""

from dataclasses import dataclass
from typing import Any, Callable, NamedTuple, Optional

import numpy as np
import scipy.sparse as sp

from bounded_transport.numerics.jax_config import jax, jnp


# Cache for JIT-compiled GMRES cycles to avoid retracing
_gmres_cycle_cache = {}


@dataclass
class GMRESResult:
    """Result of GMRES solve.

    Attributes
    ----------
    x : jnp.ndarray
        Solution vector.
    residual_norm : float
        Final (preconditioned) residual norm.
    converged : bool
        Whether the solver converged to tolerance.
    iterations : int
        Number of iterations performed.
    residual_history : list
        History of residual norms per restart.
    """
    x: jnp.ndarray
    residual_norm: float
    converged: bool
    iterations: int
    residual_history: list


# =============================================================================
# Sparse operator
# =============================================================================

class CSROperator(NamedTuple):
    """Device copy of a CSR matrix in COO-like row form."""
    data: jnp.ndarray
    indices: jnp.ndarray
    rows: jnp.ndarray
    inv_diag: jnp.ndarray


def csr_operator(matrix: sp.spmatrix) -> CSROperator:
    """Convert a square scipy sparse matrix to a CSROperator."""
    csr = sp.csr_matrix(matrix)
    n = csr.shape[0]
    rows = np.repeat(np.arange(n), np.diff(csr.indptr))
    diag = csr.diagonal()
    inv_diag = np.where(diag != 0.0, 1.0 / np.where(diag != 0.0, diag, 1.0), 1.0)
    return CSROperator(
        data=jnp.asarray(csr.data, dtype=jnp.float64),
        indices=jnp.asarray(csr.indices),
        rows=jnp.asarray(rows),
        inv_diag=jnp.asarray(inv_diag, dtype=jnp.float64),
    )


def csr_matvec(op: CSROperator, v: jnp.ndarray) -> jnp.ndarray:
    """A @ v for a CSROperator."""
    return jax.ops.segment_sum(op.data * v[op.indices], op.rows,
                               num_segments=v.shape[0])


def jacobi_preconditioner(op: CSROperator, v: jnp.ndarray) -> jnp.ndarray:
    """D^{-1} v."""
    return op.inv_diag * v


# =============================================================================
# GMRES
# =============================================================================

def gmres(
    matvec: Callable[[Any, jnp.ndarray], jnp.ndarray],
    operator: Any,
    b: jnp.ndarray,
    x0: Optional[jnp.ndarray] = None,
    tol: float = 1e-6,
    restart: int = 20,
    maxiter: int = 100,
    preconditioner: Optional[Callable[[Any, jnp.ndarray], jnp.ndarray]] = None,
) -> GMRESResult:
    """Solve Ax = b using restarted GMRES.

    Parameters
    ----------
    matvec : callable
        Pure function matvec(operator, v) returning A @ v.
    operator : pytree
        Matrix data consumed by `matvec` and `preconditioner`.
    b : jnp.ndarray
        Right-hand side vector.
    x0 : jnp.ndarray, optional
        Initial guess. Defaults to zeros.
    tol : float
        Relative tolerance for convergence: ||r|| < tol * ||b||.
    restart : int
        Number of iterations before restart (GMRES(m) parameter).
    maxiter : int
        Maximum total iterations across all restarts.
    preconditioner : callable, optional
        Left preconditioner preconditioner(operator, v) = P^{-1} v.

    Returns
    -------
    GMRESResult
        Solution and convergence information.
    """
    n = b.size
    b = b.flatten()

    def precondition(v):
        if preconditioner is None:
            return v
        return preconditioner(operator, v)

    b_norm = jnp.linalg.norm(precondition(b))
    if b_norm < 1e-30:
        return GMRESResult(
            x=jnp.zeros(n),
            residual_norm=0.0,
            converged=True,
            iterations=0,
            residual_history=[0.0]
        )

    x = jnp.zeros(n) if x0 is None else jnp.asarray(x0, dtype=jnp.float64).flatten()
    tol_abs = tol * float(b_norm)

    cache_key = (matvec, preconditioner, n, restart)
    if cache_key not in _gmres_cycle_cache:
        _gmres_cycle_cache[cache_key] = _make_gmres_cycle_jit(matvec, preconditioner, n, restart)
    gmres_cycle_jit = _gmres_cycle_cache[cache_key]

    residual_history = []
    total_iters = 0
    max_restarts = (maxiter + restart - 1) // restart

    for _ in range(max_restarts):
        if total_iters >= maxiter:
            break

        r = precondition(b - matvec(operator, x))
        r_norm_jax = jnp.linalg.norm(r)
        r_norm = float(r_norm_jax)
        residual_history.append(r_norm)

        if r_norm < tol_abs:
            return GMRESResult(x, r_norm, True, total_iters, residual_history)

        x, final_res, iters = gmres_cycle_jit(operator, x, r, r_norm_jax, tol_abs)
        total_iters += int(iters)

        if float(final_res) < tol_abs:
            break

    r_norm = float(jnp.linalg.norm(precondition(b - matvec(operator, x))))
    residual_history.append(r_norm)

    return GMRESResult(
        x=x,
        residual_norm=r_norm,
        converged=r_norm < tol_abs,
        iterations=total_iters,
        residual_history=residual_history
    )


def _make_gmres_cycle_jit(
    matvec: Callable,
    preconditioner: Optional[Callable],
    n: int,
    m: int,
) -> Callable:
    """Create a JIT-compiled GMRES cycle for vectors of length n."""

    if preconditioner is not None:
        def prec_matvec(op, v):
            return preconditioner(op, matvec(op, v))
    else:
        def prec_matvec(op, v):
            return matvec(op, v)

    @jax.jit
    def gmres_cycle(op, x, r, r_norm, tol_abs):
        """Run one GMRES cycle using JAX lax control flow."""

        # Arnoldi basis V (m+1 x n), Hessenberg H (m+1 x m)
        V = jnp.zeros((m + 1, n))
        V = V.at[0, :].set(r / r_norm)
        H = jnp.zeros((m + 1, m))

        # Givens rotation coefficients
        cs = jnp.zeros(m)
        sn = jnp.zeros(m)

        # RHS for least-squares
        g = jnp.zeros(m + 1)
        g = g.at[0].set(r_norm)

        init_state = (0, V, H, cs, sn, g, False, r_norm)

        def cond_fn(state):
            j, V, H, cs, sn, g, converged, res_est = state
            return (j < m) & (~converged)

        def body_fn(state):
            j, V, H, cs, sn, g, converged, res_est = state

            w = prec_matvec(op, V[j, :])

            # Modified Gram-Schmidt
            def mgs_body(i, carry):
                H_cur, w_cur = carry
                h_ij = jnp.dot(w_cur, V[i, :])
                return (H_cur.at[i, j].set(h_ij), w_cur - h_ij * V[i, :])

            H, w = jax.lax.fori_loop(0, j + 1, mgs_body, (H, w))

            h_jp1_j = jnp.linalg.norm(w)
            H = H.at[j + 1, j].set(h_jp1_j)
            v_new = jnp.where(h_jp1_j > 1e-14, w / h_jp1_j, jnp.zeros(n))
            V = V.at[j + 1, :].set(v_new)

            # Apply previous Givens rotations
            def apply_givens_body(i, H_cur):
                temp = cs[i] * H_cur[i, j] + sn[i] * H_cur[i + 1, j]
                H_new = H_cur.at[i + 1, j].set(-sn[i] * H_cur[i, j] + cs[i] * H_cur[i + 1, j])
                return H_new.at[i, j].set(temp)

            H = jax.lax.fori_loop(0, j, apply_givens_body, H)

            # New Givens rotation
            a = H[j, j]
            b = H[j + 1, j]
            r_givens = jnp.sqrt(a**2 + b**2)
            c = a / (r_givens + 1e-30)
            s = b / (r_givens + 1e-30)

            cs = cs.at[j].set(c)
            sn = sn.at[j].set(s)
            H = H.at[j, j].set(r_givens)
            H = H.at[j + 1, j].set(0.0)

            temp = c * g[j] + s * g[j + 1]
            g = g.at[j + 1].set(-s * g[j] + c * g[j + 1])
            g = g.at[j].set(temp)

            res_est_new = jnp.abs(g[j + 1])
            return (j + 1, V, H, cs, sn, g, res_est_new < tol_abs, res_est_new)

        iters, V, H, cs, sn, g, converged, res_est = jax.lax.while_loop(
            cond_fn, body_fn, init_state)

        # Back substitution on the leading iters x iters block
        def back_sub_body(i_rev, y_cur):
            i = iters - 1 - i_rev
            s = g[i] - jnp.dot(H[i, :], y_cur)
            return y_cur.at[i].set(s / (H[i, i] + 1e-30))

        y = jax.lax.fori_loop(0, iters, back_sub_body, jnp.zeros(m))
        y_masked = jnp.where(jnp.arange(m) < iters, y, 0.0)
        x_new = x + V[:m, :].T @ y_masked

        return x_new, res_est, iters

    return gmres_cycle
