"""
rgdecomp: R-group decomposition of molecule series against shared cores.

Organized into:
- common/        : shared constants, errors, status enums
- models/        : typed dataclass definitions
- chem/          : RDKit chemistry tools (parsing, cores, matching, fragments)
- decomposition/ : label assignment, scoring, optimization and the public facade
"""

from rgdecomp.common.errors import (
    RGroupError,
    InvalidCoreError,
    NoMatchError,
    ConfigurationError,
    ChemistryError,
    DecompositionStateError,
    AlreadyFinalizedError,
)
from rgdecomp.common.status import DecompositionState, MatchingStrategy, ScoreMethod
from rgdecomp.models import AttachmentPoint, DecompositionRow, RGroupDecompositionParameters
from rgdecomp.decomposition import RGroupDecomposition, ResultTable, rgroup_decompose

__version__ = "0.1.0"
