"""
Exception hierarchy for the harvest trader.

ConfigurationError and StateInvariantViolation are fatal: the first is raised
before any simulation starts, the second halts a run that has broken the
inventory bookkeeping. SolverFailure is recovered by the MPC strategy, which
turns it into a HOLD.
"""


class HarvestTraderError(Exception):
    """Base class for all harvest trader errors"""


class ConfigurationError(HarvestTraderError, ValueError):
    """Malformed commodity, harvest or strategy configuration"""


class SolverFailure(HarvestTraderError):
    """LP solve did not reach an optimal solution"""

    def __init__(self, message, status=None):
        super().__init__(message)
        self.status = status


class StateInvariantViolation(HarvestTraderError):
    """Inventory bookkeeping was broken by a decision or trade"""

    def __init__(self, message, day=None):
        if day is not None:
            message = f"day {day}: {message}"
        super().__init__(message)
        self.day = day


__all__ = [
    'HarvestTraderError',
    'ConfigurationError',
    'SolverFailure',
    'StateInvariantViolation'
]
