"""
Exception types for TankEvo.

Only ConfigurationError raised during start-up is fatal; the others are
recovered from by the evaluator / trainer.
"""


class EvoError(Exception):
    """Base class for every TankEvo error."""


class ConfigurationError(EvoError):
    """Invalid sizes or settings, or a genome whose shapes do not match."""


class SimulationDivergence(EvoError):
    """A projectile's position or velocity became non-finite."""


class PersistenceError(EvoError):
    """The genome store could not be read or written."""
