"""
Typed dataclass definitions shared across all rgdecomp modules.

Re-exports every model so callers can do::

    from rgdecomp.models import Core, Match, Fragment, LabelAssignment
"""

from .core_models import AttachmentPoint, Core
from .decomposition_models import (
    CutBond,
    DecompositionRow,
    Fragment,
    LabelAssignment,
    Match,
    OptimizationResult,
    RLabel,
    TargetMolecule,
)
from .params import RGroupDecompositionParameters
