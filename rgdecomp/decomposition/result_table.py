"""
Result Table
============
Finalized decomposition: one row per retained molecule, one column per
R-group label plus the labelled core.

Built once from the chosen label assignments:

1. labels that are hydrogen (or absent) in every row are dropped when
   ``remove_all_hydrogen_rgroups`` is set;
2. unlabeled positions receive integer ids above the highest user label,
   in ``(core_id, core_atom, slot)`` order, so one core position is one
   column in every row;
3. each fragment is rendered with ``[*:n]`` attachment markers, hydrogen
   as ``[H][*:n]``; a ring bridging two labeled points shows both
   numbers, one per end.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from rgdecomp.chem.core_registry import CoreRegistry, labelled_core_smiles
from rgdecomp.chem.fragment_extractor import render
from rgdecomp.common.constants import CORE_COLUMN, LABEL_PREFIX
from rgdecomp.models import (
    DecompositionRow,
    Fragment,
    LabelAssignment,
    RGroupDecompositionParameters,
    RLabel,
    TargetMolecule,
)

__all__ = ["ResultTable", "build_result_table", "label_name"]

logger = logging.getLogger(__name__)


def label_name(number: int) -> str:
    return f"{LABEL_PREFIX}{number}"


class ResultTable:
    """Immutable view over finalized rows."""

    def __init__(self, rows: Sequence[DecompositionRow], labels: Sequence[str]) -> None:
        self._rows = list(rows)
        self._labels = list(labels)

    def rows(self) -> List[DecompositionRow]:
        return list(self._rows)

    def labels(self) -> List[str]:
        """R-group column names in ascending label order."""
        return list(self._labels)

    def as_rows(self) -> List[Dict[str, str]]:
        """One mapping per row: the ``Core`` column plus every label the row holds."""
        out = []
        for row in self._rows:
            record = OrderedDict([(CORE_COLUMN, row.core_smiles)])
            for name in self._labels:
                if name in row.rgroups:
                    record[name] = row.rgroups[name]
            out.append(dict(record))
        return out

    def as_columns(self) -> Dict[str, List[Optional[str]]]:
        """Column-major view; a row without a label has ``None`` in that column."""
        columns: Dict[str, List[Optional[str]]] = {CORE_COLUMN: [row.core_smiles for row in self._rows]}
        for name in self._labels:
            columns[name] = [row.rgroups.get(name) for row in self._rows]
        return columns

    def to_dict(self) -> Dict[str, Any]:
        return {
            "labels": list(self._labels),
            "rows": [row.to_dict() for row in self._rows],
        }

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[DecompositionRow]:
        return iter(self._rows)


# ---------------------------------------------------------------------------
# Finalization
# ---------------------------------------------------------------------------

def _retained_labels(
    chosen: Sequence[LabelAssignment],
    remove_all_hydrogen: bool,
) -> List[RLabel]:
    seen: Dict[RLabel, bool] = {}
    for assignment in chosen:
        for label, fragment in assignment.fragments:
            seen[label] = seen.get(label, False) or not fragment.is_hydrogen
    labels = [label for label, substituted in seen.items() if substituted or not remove_all_hydrogen]
    dropped = len(seen) - len(labels)
    if dropped:
        logger.debug("Dropped %d hydrogen-only label(s)", dropped)
    return sorted(labels, key=RLabel.sort_key)


def _number_labels(labels: Sequence[RLabel], first_free: int) -> Dict[RLabel, int]:
    numbers: Dict[RLabel, int] = {}
    next_id = first_free
    for label in labels:
        if label.is_user:
            numbers[label] = label.number
        else:
            numbers[label] = next_id
            next_id += 1
    return numbers


def _core_atom_for(core_points: Mapping[int, int], label: RLabel) -> int:
    if label.is_user:
        return core_points[label.number]
    return label.core_atom


def build_result_table(
    registry: CoreRegistry,
    targets: Sequence[TargetMolecule],
    chosen: Sequence[LabelAssignment],
    params: RGroupDecompositionParameters,
) -> ResultTable:
    """Turn the optimizer's choices into the finalized table.

    Args:
        registry: Cores the assignments refer to.
        targets: Registered molecules, indexed by ``molecule_index``.
        chosen: One assignment per retained molecule.
        params: Decomposition options in effect.
    """
    labels = _retained_labels(chosen, params.remove_all_hydrogen_rgroups)
    numbers = _number_labels(labels, registry.max_user_label() + 1)

    rows: List[DecompositionRow] = []
    for assignment in sorted(chosen, key=lambda a: a.molecule_index):
        core = registry.get(assignment.core_id)
        target = targets[assignment.molecule_index]
        user_points = {ap.label: ap.atom_idx for ap in core.attachment_points if ap.is_labeled}

        held: List[Tuple[RLabel, Fragment, int, int]] = []
        for label, fragment in assignment.fragments:
            number = numbers.get(label)
            if number is not None:
                held.append((label, fragment, number, _core_atom_for(user_points, label)))

        # a bridging fragment held at several core atoms carries each holder's number
        holders: Dict[Tuple[Fragment, int], int] = {}
        for _, fragment, number, core_atom in held:
            holders.setdefault((fragment, core_atom), number)

        fragments = {}
        rgroups = {}
        core_markers: List[Tuple[int, int]] = []
        for _, fragment, number, core_atom in held:
            name = label_name(number)
            markers = {
                cut.mol_core_atom: holders.get((fragment, cut.core_atom), number)
                for cut in fragment.cut_bonds
            }
            fragments[name] = fragment
            rgroups[name] = render(target, fragment, number, markers)
            core_markers.append((core_atom, number))

        ordered = OrderedDict(sorted(rgroups.items(), key=lambda item: int(item[0][len(LABEL_PREFIX):])))
        rows.append(
            DecompositionRow(
                index=assignment.molecule_index,
                core_id=core.core_id,
                core_smiles=labelled_core_smiles(core, core_markers),
                fragments=fragments,
                rgroups=dict(ordered),
            )
        )

    columns = [label_name(n) for n in sorted(set(numbers.values()))]
    logger.info("Result table built: %d rows, columns %s", len(rows), columns)
    return ResultTable(rows, columns)
