"""
RGroupDecomposition
===================
Public facade of a decomposition run.

Lifecycle::

    ACCEPTING --process()--> OPTIMIZING --> FINALIZED

Cores and options are set up first, molecules are added one at a time
(or in bulk), and ``process()`` picks one decomposition per molecule and
freezes the result table.  Matching work for ``add``/``add_many`` runs
outside the instance lock, so several threads may add molecules at once;
registration itself is serialized, and indices follow registration
order.  Matching reads a snapshot of the options and cores; a molecule
whose snapshot went stale before registration is matched again.

Usage::

    decomp = RGroupDecomposition(["[*:1]c1ccc([*:2])cc1"], {"matchingStrategy": "Greedy"})
    for smi in ("Cc1ccc(Cl)cc1", "CCc1ccc(F)cc1"):
        decomp.add(smi)
    ok = decomp.process()
    decomp.as_rows()
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

import numpy as np

from rgdecomp.chem.core_registry import CoreRegistry
from rgdecomp.chem.fragment_extractor import extract
from rgdecomp.chem.match_engine import build_target, find_all_matches
from rgdecomp.chem.mol_parser import to_molecule
from rgdecomp.common.errors import (
    AlreadyFinalizedError,
    ChemistryError,
    DecompositionStateError,
    NoMatchError,
    RGroupError,
)
from rgdecomp.common.status import DecompositionState
from rgdecomp.decomposition.label_assigner import assign, placement_penalty
from rgdecomp.decomposition.optimizer import optimize
from rgdecomp.decomposition.result_table import ResultTable, build_result_table
from rgdecomp.decomposition.scoring import make_scorer
from rgdecomp.models import (
    Core,
    DecompositionRow,
    Fragment,
    LabelAssignment,
    Match,
    OptimizationResult,
    RGroupDecompositionParameters,
    TargetMolecule,
)

__all__ = ["RGroupDecomposition", "rgroup_decompose"]

logger = logging.getLogger(__name__)

_VALID_TRANSITIONS: Dict[DecompositionState, Set[DecompositionState]] = {
    DecompositionState.ACCEPTING: {DecompositionState.OPTIMIZING},
    DecompositionState.OPTIMIZING: {DecompositionState.FINALIZED},
    DecompositionState.FINALIZED: set(),  # terminal
}


class RGroupDecomposition:
    """Decompose a set of molecules against one or more cores.

    Args:
        cores: Core graphs (RDKit ``Mol`` or SMILES / SMARTS / molfile
            text) registered in order; more can be added with
            :meth:`add_core` until the first molecule is added.
        params: ``RGroupDecompositionParameters`` or an options mapping.
        fingerprinter: Replacement for the Morgan fingerprinter used by
            the FingerprintVariance score; called with a ``Fragment``,
            returns a numpy vector.
    """

    def __init__(
        self,
        cores: Optional[Iterable[Any]] = None,
        params: Optional[Any] = None,
        fingerprinter: Optional[Callable[[Fragment], np.ndarray]] = None,
    ) -> None:
        if params is None:
            self.params = RGroupDecompositionParameters()
        elif isinstance(params, RGroupDecompositionParameters):
            self.params = params
        else:
            self.params = RGroupDecompositionParameters.from_dict(params)
        self.registry = CoreRegistry()
        self.state = DecompositionState.ACCEPTING
        self._fingerprinter = fingerprinter
        self._lock = threading.Lock()
        self._generation = 0
        self._targets: List[TargetMolecule] = []
        self._matches: List[List[Match]] = []
        self._table: Optional[ResultTable] = None
        self._optimization: Optional[OptimizationResult] = None
        self._success = False
        for core in cores or ():
            self.add_core(core)

    # -- state -------------------------------------------------------------

    def _transition(self, new_state: DecompositionState) -> None:
        if new_state not in _VALID_TRANSITIONS[self.state]:
            raise DecompositionStateError(
                f"Invalid transition: {self.state.value!r} -> {new_state.value!r}"
            )
        old = self.state
        self.state = new_state
        logger.debug("Decomposition: %s -> %s", old.value, new_state.value)

    def _require_accepting(self, operation: str) -> None:
        if self.state != DecompositionState.ACCEPTING:
            raise AlreadyFinalizedError(
                f"{operation}() is not allowed once process() has been called"
            )

    def _require_finalized(self) -> ResultTable:
        if self.state != DecompositionState.FINALIZED or self._table is None:
            raise DecompositionStateError(
                "Results are only available after process()", code="NOT_FINALIZED"
            )
        return self._table

    # -- setup -------------------------------------------------------------

    def configure(self, options: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> RGroupDecompositionParameters:
        """Update options before any molecule is added.

        Raises:
            ConfigurationError: Unknown option or wrong value type.
            AlreadyFinalizedError: Called after ``process()``.
            DecompositionStateError: Molecules were already added.
        """
        merged: Dict[str, Any] = dict(options or {})
        merged.update(kwargs)
        with self._lock:
            self._require_accepting("configure")
            if self._targets:
                raise DecompositionStateError("Options cannot change after molecules were added")
            self.params = self.params.updated(merged)
            self._generation += 1
        logger.debug("Options updated: %s", sorted(merged))
        return self.params

    def add_core(self, graph: Any, attachment_points: Optional[Iterable[Any]] = None) -> int:
        """Register a core; see :meth:`CoreRegistry.add_core`."""
        with self._lock:
            self._require_accepting("add_core")
            if self._targets:
                raise DecompositionStateError("Cores cannot be added after molecules were added")
            core_id = self.registry.add_core(graph, attachment_points)
            self._generation += 1
            return core_id

    # -- adding molecules --------------------------------------------------

    def _snapshot(self) -> Tuple[int, RGroupDecompositionParameters, Tuple[Core, ...]]:
        """Setup generation, options and cores, read together under the lock."""
        with self._lock:
            self._require_accepting("add")
            if not len(self.registry):
                raise DecompositionStateError("No cores registered")
            return self._generation, self.params, tuple(self.registry)

    def _match(
        self,
        molecule: Any,
        params: RGroupDecompositionParameters,
        cores: Sequence[Core],
    ) -> Tuple[TargetMolecule, List[Match]]:
        """Parse and match one molecule against a snapshot of the setup."""
        mol = to_molecule(molecule)
        target = build_target(mol, params)
        matches = find_all_matches(cores, target, params)
        if not matches:
            raise NoMatchError(f"{target.smiles} matches none of the {len(cores)} cores")
        return target, matches

    def _register(self, generation: int, target: TargetMolecule, matches: List[Match]) -> Optional[int]:
        """Register a matched molecule; ``None`` when the setup changed since the snapshot."""
        with self._lock:
            self._require_accepting("add")
            if generation != self._generation:
                return None
            self._targets.append(target)
            self._matches.append(matches)
            index = len(self._targets) - 1
        logger.debug("Molecule %d added: %s (%d matches)", index, target.smiles, len(matches))
        return index

    def _add_matched(self, molecule: Any, outcome: Tuple[int, TargetMolecule, List[Match]]) -> int:
        generation, target, matches = outcome
        index = self._register(generation, target, matches)
        while index is None:
            logger.debug("Options or cores changed while matching %s; matching again", target.smiles)
            generation, params, cores = self._snapshot()
            target, matches = self._match(molecule, params, cores)
            index = self._register(generation, target, matches)
        return index

    def add(self, molecule: Any) -> int:
        """Match *molecule* against the cores and register it.

        Returns:
            The molecule's index (registration order, starting at 0).

        Raises:
            NoMatchError: The molecule matches no core; it is not registered.
            ChemistryError: The molecule cannot be parsed.
            AlreadyFinalizedError: Called after ``process()``.
        """
        generation, params, cores = self._snapshot()
        target, matches = self._match(molecule, params, cores)
        return self._add_matched(molecule, (generation, target, matches))

    def add_many(self, molecules: Sequence[Any], n_workers: Optional[int] = None) -> List[Optional[int]]:
        """Add molecules, matching them on a thread pool.

        Molecules are registered in input order.  A molecule that cannot be
        parsed or matches no core gets ``None`` instead of an index.
        """
        molecules = list(molecules)
        generation, params, cores = self._snapshot()

        def attempt(molecule: Any) -> Any:
            try:
                return (generation,) + self._match(molecule, params, cores)
            except (NoMatchError, ChemistryError) as exc:
                return exc

        with ThreadPoolExecutor(max_workers=n_workers) as pool:
            outcomes = list(pool.map(attempt, molecules))

        indices: List[Optional[int]] = []
        for position, (molecule, outcome) in enumerate(zip(molecules, outcomes)):
            if isinstance(outcome, RGroupError):
                logger.info("Input %d not added: %s", position, outcome.message)
                indices.append(None)
                continue
            try:
                indices.append(self._add_matched(molecule, outcome))
            except (NoMatchError, ChemistryError) as exc:
                logger.info("Input %d not added: %s", position, exc.message)
                indices.append(None)
        return indices

    # -- process -----------------------------------------------------------

    def _candidates(self, index: int, target: TargetMolecule, matches: List[Match]) -> List[LabelAssignment]:
        """Best-placed distinct candidates of one molecule, ordered by content.

        Only the candidates with the lowest placement penalty are kept, so
        substituents land on labeled points whenever some match allows it;
        ordering by content makes the choice independent of how the input
        numbered its atoms.
        """
        seen: Set[Tuple] = set()
        scored: List[Tuple[int, LabelAssignment]] = []
        for match in matches:
            core = self.registry.get(match.core_id)
            try:
                sites = extract(target, match)
            except ChemistryError as exc:
                logger.debug("Molecule %d: match on core %d skipped: %s", index, core.core_id, exc.message)
                continue
            for candidate in assign(core, target, match, sites, self.params, index):
                key = candidate.content_key()
                if key in seen:
                    continue
                seen.add(key)
                scored.append((placement_penalty(core, candidate), candidate))
                if len(scored) >= self.params.max_candidates:
                    break
            if len(scored) >= self.params.max_candidates:
                logger.debug("Molecule %d: candidate cap of %d reached", index, self.params.max_candidates)
                break
        if not scored:
            return []
        lowest = min(penalty for penalty, _ in scored)
        kept = [candidate for penalty, candidate in scored if penalty == lowest]
        if len(kept) < len(scored):
            logger.debug(
                "Molecule %d: kept %d of %d candidates with placement penalty %d",
                index, len(kept), len(scored), lowest,
            )
        return sorted(kept, key=LabelAssignment.order_key)

    def process(self) -> bool:
        """Choose a decomposition for every molecule and finalize the table.

        Returns ``True`` when every added molecule got a decomposition; a
        molecule that cannot be decomposed is left out of the rows and the
        result is ``False``.  Calling again returns the same result.
        """
        with self._lock:
            if self.state == DecompositionState.FINALIZED:
                return self._success
            self._transition(DecompositionState.OPTIMIZING)

        try:
            retained: List[List[LabelAssignment]] = []
            for index, (target, matches) in enumerate(zip(self._targets, self._matches)):
                candidates = self._candidates(index, target, matches)
                if not candidates:
                    logger.warning("Molecule %d (%s) has no valid decomposition", index, target.smiles)
                    continue
                retained.append(candidates)

            scorer = make_scorer(self.params.score_method, self._fingerprinter)
            self._optimization = optimize(
                retained,
                scorer,
                self.params.effective_chunk_size,
                self.params.timeout,
            )
            chosen = [candidates[choice] for candidates, choice in zip(retained, self._optimization.choices)]
            self._table = build_result_table(self.registry, self._targets, chosen, self.params)
        except Exception:
            logger.exception("process() failed")
            self._table = ResultTable([], [])
            self._success = False
            self._transition(DecompositionState.FINALIZED)
            raise

        self._success = len(self._table) == len(self._targets)
        self._transition(DecompositionState.FINALIZED)
        logger.info(
            "Decomposition finished: %d/%d molecules decomposed (%s, %s)",
            len(self._table), len(self._targets),
            self.params.matching_strategy.value, self.params.score_method.value,
        )
        return self._success

    # -- results -----------------------------------------------------------

    @property
    def result_table(self) -> ResultTable:
        return self._require_finalized()

    @property
    def score(self) -> float:
        """Global score of the chosen decomposition (lower is better)."""
        self._require_finalized()
        return self._optimization.score if self._optimization else 0.0

    @property
    def optimization(self) -> Optional[OptimizationResult]:
        return self._optimization

    def rows(self) -> List[DecompositionRow]:
        return self._require_finalized().rows()

    def as_rows(self) -> List[Dict[str, str]]:
        return self._require_finalized().as_rows()

    def as_columns(self) -> Dict[str, List[Optional[str]]]:
        return self._require_finalized().as_columns()

    def molecule_smiles(self, index: int) -> str:
        return self._targets[index].smiles

    def __len__(self) -> int:
        return len(self._targets)


def rgroup_decompose(
    cores: Iterable[Any],
    molecules: Iterable[Any],
    options: Optional[Mapping[str, Any]] = None,
    as_rows: bool = True,
) -> Tuple[Any, List[int]]:
    """One-shot decomposition.

    Returns the table (rows or columns) and the input positions of the
    molecules that are not in it, either because they matched no core or
    because no valid decomposition was found.
    """
    decomp = RGroupDecomposition(cores, options)
    positions: List[int] = []
    unmatched: List[int] = []
    for position, molecule in enumerate(molecules):
        try:
            decomp.add(molecule)
        except (NoMatchError, ChemistryError) as exc:
            logger.info("Input %d not added: %s", position, exc.message)
            unmatched.append(position)
            continue
        positions.append(position)

    decomp.process()
    decomposed = {row.index for row in decomp.rows()}
    unmatched.extend(pos for idx, pos in enumerate(positions) if idx not in decomposed)
    table = decomp.as_rows() if as_rows else decomp.as_columns()
    return table, sorted(unmatched)
