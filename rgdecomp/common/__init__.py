"""
Common infrastructure: constants, errors, status enums.
"""

from .constants import DecompositionLimits, FingerprintDefaults
from .errors import (
    ErrorSeverity,
    RGroupError,
    InvalidCoreError,
    NoMatchError,
    ConfigurationError,
    ChemistryError,
    DecompositionStateError,
    AlreadyFinalizedError,
)
from .status import DecompositionState, MatchingStrategy, ScoreMethod
