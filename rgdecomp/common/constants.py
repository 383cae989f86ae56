"""
Centralized Configuration Registry
====================================

Single source of truth for the search limits and fingerprint defaults
shared by the match engine, label assigner, scorers and optimizer.

Usage::

    from rgdecomp.common.constants import DecompositionLimits

    for mapping in mol.GetSubstructMatches(query, maxMatches=DecompositionLimits.MAX_MATCHES):
        ...
"""


class DecompositionLimits:
    """Search budgets (default values for RGroupDecompositionParameters)."""

    MAX_MATCHES: int = 1000               # substructure mappings per (core, variant)
    MAX_TAUTOMERS: int = 50               # tautomer variants per molecule
    MAX_CANDIDATES: int = 256             # label assignments kept per molecule
    MAX_SITE_ORDERINGS: int = 120         # fragment orderings tried per attachment site (5!)
    CHUNK_SIZE: int = 5                   # molecules per GreedyChunks chunk
    TIMEOUT_SECONDS: float = 60.0         # wall-clock budget for process(); <= 0 disables


class FingerprintDefaults:
    """Morgan fingerprint settings for the FingerprintVariance score."""

    RADIUS: int = 2
    FP_SIZE: int = 2048


HYDROGEN_SMILES: str = "[H]*"
"""Content SMILES of the implicit hydrogen terminator."""

LABEL_PREFIX: str = "R"
"""Column names are ``R<n>``."""

CORE_COLUMN: str = "Core"
"""Column holding the labelled core SMILES in ``as_rows`` / ``as_columns``."""
