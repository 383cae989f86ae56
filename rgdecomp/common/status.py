"""
Unified Status Enums
====================

Single source of truth for the decomposition lifecycle and the
enumerated option values accepted by ``configure``.

Usage::

    from rgdecomp.common.status import DecompositionState, MatchingStrategy

    if self.state == DecompositionState.ACCEPTING:
        ...
    strategy = MatchingStrategy.from_name("GreedyChunks")
"""

from enum import Enum


class _NamedEnum(Enum):
    """Enum whose members can be looked up by value or by member name."""

    @classmethod
    def from_name(cls, name):
        if isinstance(name, cls):
            return name
        if isinstance(name, str):
            for member in cls:
                if name in (member.value, member.name):
                    return member
        raise ValueError(f"{name!r} is not a valid {cls.__name__}")


class DecompositionState(_NamedEnum):
    """Lifecycle of an RGroupDecomposition run.

    Lifecycle: ACCEPTING → OPTIMIZING → FINALIZED
        ACCEPTING: cores and molecules are being registered.
        OPTIMIZING: the single ``process`` pass is running.
        FINALIZED: results are fixed; no further add / process.
    """

    ACCEPTING = "accepting"
    OPTIMIZING = "optimizing"
    FINALIZED = "finalized"


class MatchingStrategy(_NamedEnum):
    """Search strategy for the global label assignment.

    All strategies share the chunked search and differ only in chunk size:

        GREEDY         one molecule at a time, registration order
        PAIRWISE       chunks of two molecules
        GREEDY_CHUNKS  chunks of ``chunk_size`` molecules
        EXHAUSTIVE     a single chunk holding every molecule
    """

    GREEDY = "Greedy"
    GREEDY_CHUNKS = "GreedyChunks"
    EXHAUSTIVE = "Exhaustive"
    PAIRWISE = "Pairwise"


class ScoreMethod(_NamedEnum):
    """Global score used to compare candidate assignments (lower is better)."""

    FINGERPRINT_VARIANCE = "FingerprintVariance"
    MATCH = "Match"
