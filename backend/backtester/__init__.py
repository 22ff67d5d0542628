"""
Strategy Backtester
Indicator library, signal generators and portfolio simulation
"""

__version__ = "1.0.0"

DEFAULT_INITIAL_CAPITAL = 100000.0
DEFAULT_POSITION_SIZE_PERCENTAGE = 95.0
DEFAULT_FEE_PERCENTAGE = 0.03

# Tolerance used by the custom strategy "==" operator
EQUALITY_TOLERANCE = 0.01
