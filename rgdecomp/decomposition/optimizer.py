"""
Decomposition Optimizer
=======================
Chooses one candidate label assignment per molecule so the global score
is minimal, one chunk of molecules at a time.

Molecules are split into consecutive chunks in registration order.
Within a chunk every combination of the members' candidates is scored
on top of the locked-in state of earlier chunks; the best combination is
locked in and the search moves on.  The strategies only differ in chunk
size: Greedy = 1, Pairwise = 2, GreedyChunks = ``chunk_size`` and
Exhaustive = all molecules.  Ties keep the first combination in
enumeration order, which makes the search deterministic for a given
input order.

When the wall-clock budget runs out, the current chunk keeps its best
combination so far and every remaining molecule takes, in order, its
best candidate on top of the decisions already made.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Iterator, Optional, Sequence, Tuple

from rgdecomp.decomposition.scoring import Scorer
from rgdecomp.models import LabelAssignment, OptimizationResult

__all__ = ["SearchState", "optimize"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchState:
    """Immutable snapshot of the decisions made so far."""

    choices: Tuple[int, ...] = ()
    score_state: Any = None

    def extend(self, scorer: Scorer, choice: int, assignment: LabelAssignment) -> "SearchState":
        return SearchState(
            choices=self.choices + (choice,),
            score_state=scorer.extend(self.score_state, assignment),
        )


def _combinations(
    chunk: Sequence[Sequence[LabelAssignment]],
    scorer: Scorer,
    state: SearchState,
) -> Iterator[SearchState]:
    """Depth-first enumeration of a chunk; prefixes are extended once."""
    if not chunk:
        yield state
        return
    head, tail = chunk[0], chunk[1:]
    for choice, assignment in enumerate(head):
        yield from _combinations(tail, scorer, state.extend(scorer, choice, assignment))


def _extend_greedily(
    member: Sequence[LabelAssignment],
    scorer: Scorer,
    state: SearchState,
) -> Tuple[SearchState, int]:
    """Lock in the best single candidate of one molecule; ties keep the first."""
    best: Optional[SearchState] = None
    best_score = 0.0
    for choice, assignment in enumerate(member):
        extended = state.extend(scorer, choice, assignment)
        value = scorer.score(extended.score_state)
        if best is None or value < best_score:
            best, best_score = extended, value
    return best, len(member)


class _Budget:

    def __init__(self, timeout: float) -> None:
        self.deadline: Optional[float] = time.monotonic() + timeout if timeout > 0 else None
        self.expired = False

    def check(self) -> bool:
        if self.deadline is not None and not self.expired and time.monotonic() > self.deadline:
            self.expired = True
        return self.expired


def optimize(
    candidates: Sequence[Sequence[LabelAssignment]],
    scorer: Scorer,
    chunk_size: int,
    timeout: float = 0.0,
) -> OptimizationResult:
    """Pick one candidate per molecule.

    Args:
        candidates: Per molecule (registration order), its non-empty
            candidate list.
        scorer: Incremental scorer, lower is better.
        chunk_size: Molecules per chunk; ``0`` puts every molecule in one
            chunk (exhaustive search).
        timeout: Wall-clock budget in seconds; ``<= 0`` disables it.
    """
    n = len(candidates)
    size = chunk_size if chunk_size > 0 else max(n, 1)
    budget = _Budget(timeout)
    state = SearchState(score_state=scorer.initial_state())
    evaluations = 0

    for start in range(0, n, size):
        chunk = candidates[start:start + size]
        if budget.expired:
            for member in chunk:
                state, tried = _extend_greedily(member, scorer, state)
                evaluations += tried
            continue

        best: Optional[SearchState] = None
        best_score = 0.0
        for combination in _combinations(chunk, scorer, state):
            value = scorer.score(combination.score_state)
            evaluations += 1
            if best is None or value < best_score:
                best, best_score = combination, value
            if budget.check():
                logger.warning(
                    "Search budget of %.1fs exhausted in chunk starting at molecule %d; "
                    "keeping best combination so far",
                    timeout, start,
                )
                break
        state = best
        logger.debug("Chunk %d-%d locked in, score %.4f", start, start + len(chunk) - 1, best_score)

    score = scorer.score(state.score_state)
    logger.info(
        "Optimization finished: %d molecules, %d evaluations, score %.4f%s",
        n, evaluations, score, " (timed out)" if budget.expired else "",
    )
    return OptimizationResult(
        choices=state.choices,
        score=score,
        evaluations=evaluations,
        timed_out=budget.expired,
    )
