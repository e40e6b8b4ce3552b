"""
Global constants for the bounded transport engine.

Face addressing used by every face field (flux, correction flux, limiter
coefficients):

    [0, n_internal)                 internal faces, owner -> neighbour
    [n_internal, n_internal + n_b)  boundary faces, patch by patch

A positive face value leaves the owner cell.
"""

# Guard for denominators in limiter ratios
ROOT_VSMALL = 1.0e-150

# Default number of bounded-solve iterations (implicit solve + re-limit)
DEFAULT_MAX_ITER = 3

# Default number of limiter sweeps within one Limit step
DEFAULT_LIMITER_SWEEPS = 3

# Default tolerance on the bound check after an implicit solve
DEFAULT_BOUND_TOLERANCE = 1.0e-10

# Boundary patch kinds
FIXED_VALUE = "fixedValue"
ZERO_GRADIENT = "zeroGradient"
PROCESSOR = "processor"
PATCH_KINDS = (FIXED_VALUE, ZERO_GRADIENT, PROCESSOR)
