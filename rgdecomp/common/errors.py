"""
Unified Error Hierarchy
=======================
Exception-based error system for every rgdecomp module.

Per-molecule problems (a molecule that matches no core, a fragment that
cannot be sanitized) raise or are reported per call and never abort a
whole decomposition run.  Calling operations out of state-machine order
is a programming error and raises :class:`DecompositionStateError`.
"""

from enum import Enum
from typing import Any, Dict


class ErrorSeverity(Enum):
    """Error severity levels for the unified error system."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RGroupError(Exception):
    """Unified error base class for all rgdecomp errors.

    Attributes:
        code: Machine-readable error code (e.g. "INVALID_CORE").
        message: Human-readable error description.
        severity: Error severity level.
    """

    def __init__(
        self,
        code: str,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
    ):
        self.code = code
        self.message = message
        self.severity = severity
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-compatible dictionary."""
        return {
            "code": self.code,
            "message": self.message,
            "severity": self.severity.value,
        }


class InvalidCoreError(RGroupError):
    """Raised when a core definition is malformed (fatal to that add_core call only)."""

    def __init__(self, message: str):
        super().__init__("INVALID_CORE", message, ErrorSeverity.HIGH)


class NoMatchError(RGroupError):
    """Raised by ``add`` when a molecule matches none of the registered cores."""

    def __init__(self, message: str):
        super().__init__("NO_MATCH", message, ErrorSeverity.LOW)


class ConfigurationError(RGroupError):
    """Raised for unknown options or option values of the wrong type."""

    def __init__(self, message: str):
        super().__init__("INVALID_OPTION", message, ErrorSeverity.HIGH)


class ChemistryError(RGroupError):
    """Raised when an RDKit or chemistry operation fails."""
    pass


class DecompositionStateError(RGroupError):
    """Raised when an operation is called in the wrong decomposition state."""

    def __init__(self, message: str, code: str = "INVALID_STATE"):
        super().__init__(code, message, ErrorSeverity.CRITICAL)


class AlreadyFinalizedError(DecompositionStateError):
    """Raised when ``add`` or ``configure`` is called after ``process``."""

    def __init__(self, message: str):
        super().__init__(message, code="ALREADY_FINALIZED")
