"""
Decomposition tools: label assignment, scoring, optimization, results.
"""

from rgdecomp.decomposition.label_assigner import assign, site_options
from rgdecomp.decomposition.scoring import (
    Scorer,
    FingerprintVarianceScorer,
    MatchScorer,
    make_scorer,
)
from rgdecomp.decomposition.optimizer import SearchState, optimize
from rgdecomp.decomposition.result_table import ResultTable, build_result_table
from rgdecomp.decomposition.decomposer import RGroupDecomposition, rgroup_decompose
