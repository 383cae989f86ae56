"""
Scorers: global quality of a (partial) set of label assignments.

Sign convention: **lower is better**.  Scorers are incremental: a search
state is an immutable snapshot, ``extend`` returns a new state with one
more decided molecule, so chunks can be evaluated against a locked-in
prefix without copying or corrupting it.

FingerprintVariance
    For every label and fingerprint bit, the Bernoulli variance
    ``p * (1 - p)`` of the bit over the decided rows.  A row that lacks
    the label, or holds hydrogen there, contributes a zero vector.  The
    global score sums over labels and bits: a position holding similar
    substituents in every molecule scores low.

Match
    For every label, the number of decided rows whose fragment differs from
    the most frequent value at that label ("no substituent" is a value).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

import numpy as np

from rgdecomp.chem.fingerprints import MorganFingerprinter
from rgdecomp.common.status import ScoreMethod
from rgdecomp.models import Fragment, LabelAssignment, RLabel

__all__ = [
    "Scorer",
    "FingerprintVarianceScorer",
    "MatchScorer",
    "make_scorer",
]


class Scorer(ABC):
    """Incremental scorer over immutable states."""

    name: str = ""

    @abstractmethod
    def initial_state(self) -> Any:
        """State with no molecule decided."""

    @abstractmethod
    def extend(self, state: Any, assignment: LabelAssignment) -> Any:
        """New state with *assignment* decided on top of *state*."""

    @abstractmethod
    def score(self, state: Any) -> float:
        """Global score of *state* (lower is better)."""

    def score_assignments(self, assignments: Iterable[LabelAssignment]) -> float:
        """Score an arbitrary, possibly partial, global assignment."""
        state = self.initial_state()
        for assignment in assignments:
            state = self.extend(state, assignment)
        return self.score(state)


# ---------------------------------------------------------------------------
# FingerprintVariance
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FingerprintState:
    rows: int = 0
    bit_counts: Mapping[RLabel, np.ndarray] = field(default_factory=dict)


class FingerprintVarianceScorer(Scorer):

    name = ScoreMethod.FINGERPRINT_VARIANCE.value

    def __init__(self, fingerprinter: Optional[Callable[[Fragment], np.ndarray]] = None) -> None:
        self.fingerprinter = fingerprinter or MorganFingerprinter()

    def initial_state(self) -> FingerprintState:
        return FingerprintState()

    def extend(self, state: FingerprintState, assignment: LabelAssignment) -> FingerprintState:
        counts: Dict[RLabel, np.ndarray] = dict(state.bit_counts)
        for label, fragment in assignment.fragments:
            if fragment.is_hydrogen:
                continue
            fp = self.fingerprinter(fragment)
            previous = counts.get(label)
            counts[label] = fp.copy() if previous is None else previous + fp
        return FingerprintState(rows=state.rows + 1, bit_counts=counts)

    def score(self, state: FingerprintState) -> float:
        if state.rows == 0:
            return 0.0
        total = 0.0
        for counts in state.bit_counts.values():
            p = counts / state.rows
            total += float((p * (1.0 - p)).sum())
        return total


# ---------------------------------------------------------------------------
# Match
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MatchState:
    rows: int = 0
    values: Mapping[RLabel, Counter] = field(default_factory=dict)


class MatchScorer(Scorer):

    name = ScoreMethod.MATCH.value

    def initial_state(self) -> MatchState:
        return MatchState()

    def extend(self, state: MatchState, assignment: LabelAssignment) -> MatchState:
        values: Dict[RLabel, Counter] = dict(state.values)
        for label, fragment in assignment.fragments:
            if fragment.is_hydrogen:
                continue
            counter = Counter(values.get(label, ()))
            counter[fragment.smiles] += 1
            values[label] = counter
        return MatchState(rows=state.rows + 1, values=values)

    def score(self, state: MatchState) -> float:
        total = 0
        for counter in state.values.values():
            present = sum(counter.values())
            most_common = max(max(counter.values()), state.rows - present)
            total += state.rows - most_common
        return float(total)


def make_scorer(
    method: ScoreMethod,
    fingerprinter: Optional[Callable[[Fragment], np.ndarray]] = None,
) -> Scorer:
    """Build the scorer for a configured score method."""
    method = ScoreMethod.from_name(method)
    if method == ScoreMethod.FINGERPRINT_VARIANCE:
        return FingerprintVarianceScorer(fingerprinter)
    if method == ScoreMethod.MATCH:
        return MatchScorer()
    raise ValueError(f"Unsupported score method: {method}")
