"""
Backtester Errors
"""


class BacktestError(Exception):
    """Base class for all backtester errors"""


class NoDataError(BacktestError):
    """No candles available for the requested instrument/range"""


class StrategyNotFoundError(BacktestError, KeyError):
    """Strategy id could not be resolved"""

    def __str__(self):
        # KeyError wraps its message in quotes
        return str(self.args[0]) if self.args else "Strategy not found"


class CustomStrategyNotFoundError(BacktestError, KeyError):
    """Custom strategy id missing from the store"""

    def __str__(self):
        return str(self.args[0]) if self.args else "Custom strategy not found"


class InvalidParameterError(BacktestError, ValueError):
    """Invalid capital, sizing, fee or strategy parameter"""
