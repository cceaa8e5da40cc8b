"""
narrative_consistency/errors.py -- Exception hierarchy.

Only programmer errors and infrastructure faults are raised; content-level
contradictions are reported through ``ValidationResult``, never as
exceptions.
"""


class ConsistencyError(Exception):
    """Base class for all engine errors."""


class UniverseStoreError(ConsistencyError):
    """The universe store could not load or persist a universe."""


class CorrectionError(ConsistencyError):
    """A single correction could not be applied to a payload."""


class PolicyError(ConsistencyError, ValueError):
    """A consistency policy file is malformed."""
