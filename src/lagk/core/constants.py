"""
Numerical constants and default values for Lag and K routing.
"""
from typing import Final, Dict

# Sentinels
MISSING_VALUE: Final[float] = -999.0
# Rows flagged missing are detected with a half-unit margin
MISSING_MARGIN: Final[float] = 0.5
MISSING_THRESHOLD: Final[float] = MISSING_VALUE + MISSING_MARGIN

# Upper bound used to pad K tables and storage-outflow tables
BIG_DATA_VALUE: Final[float] = 1.0e20

# Storage routing
MAX_SEGMENT_ITERATIONS: Final[int] = 21
CONVERGENCE_TOLERANCE: Final[float] = 0.02  # fraction of the estimate
QUARTER_SUBSTEPS: Final[int] = 4
RHS_ZERO_TOLERANCE: Final[float] = 1.0e-7
STORAGE_WARNING_THRESHOLD: Final[float] = -0.5

# Storage-outflow table construction
MAX_STORAGE_SEGMENTS: Final[int] = 20
SEGMENT_K_WEIGHT: Final[float] = 12.0
SEGMENT_DIVISOR: Final[float] = 100.0

# K tables starting above this outflow get a zero-outflow row prepended
ZERO_OUTFLOW_TOLERANCE: Final[float] = 0.001

# Carryover array is the lag window in steps plus this many extra values
CARRYOVER_EXTRA_VALUES: Final[int] = 3

# Relative tolerance when checking the initial outflow against carryover
INITIAL_OUTFLOW_TOLERANCE: Final[float] = 1.0e-4

# Minutes per base time unit
MINUTES_PER_UNIT: Final[Dict[str, int]] = {
    "minute": 1,
    "hour": 60,
    "day": 1440,
}
