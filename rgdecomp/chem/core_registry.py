"""
Core Registry
=============
Owns the scaffold definitions of one decomposition run and their
attachment points.

Attachment points are either supplied explicitly or read from dummy
atoms (atomic number 0, exactly one neighbor) in the core graph.  A
dummy's R-group number is taken from the molfile R-label, the isotope or
the atom-map number, in that order; a dummy carrying none of these is an
unlabeled point.  Dummies are removed from the graph that is searched
for and the attachment point is placed on the dummy's neighbor.

Public API::

    registry = CoreRegistry()
    core_id = registry.add_core("[*:1]c1ccc([*:2])cc1")
    registry.get(core_id).attachment_points
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Iterator, List, Optional, Sequence, Tuple

from rdkit import Chem

from rgdecomp.chem.mol_parser import to_core_mol
from rgdecomp.common.errors import InvalidCoreError
from rgdecomp.models import AttachmentPoint, Core

__all__ = ["CoreRegistry", "rgroup_label", "labelled_core_smiles"]

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Dummy-atom helpers
# ---------------------------------------------------------------------------

def rgroup_label(atom: Chem.Atom) -> Optional[int]:
    """Return the R-group number carried by a dummy atom, or ``None``."""
    if atom.GetAtomicNum() != 0:
        return None
    if atom.HasProp("_MolFileRLabel"):
        label = int(atom.GetProp("_MolFileRLabel"))
        if label > 0:
            return label
    if atom.GetIsotope() > 0:
        return atom.GetIsotope()
    if atom.GetAtomMapNum() > 0:
        return atom.GetAtomMapNum()
    return None


def _is_attachment_dummy(atom: Chem.Atom) -> bool:
    if atom.GetAtomicNum() != 0:
        return False
    # an unlabeled dummy inside the scaffold is a generic query atom
    return atom.GetDegree() == 1 or rgroup_label(atom) is not None


def _coerce_points(points: Iterable[Any]) -> List[AttachmentPoint]:
    out: List[AttachmentPoint] = []
    for p in points:
        if isinstance(p, AttachmentPoint):
            out.append(p)
        elif isinstance(p, int):
            out.append(AttachmentPoint(p))
        elif isinstance(p, (tuple, list)) and len(p) == 2:
            out.append(AttachmentPoint(int(p[0]), None if p[1] is None else int(p[1])))
        else:
            raise InvalidCoreError(f"Cannot interpret attachment point: {p!r}")
    return out


def _strip_dummies(mol: Chem.Mol) -> Tuple[Chem.Mol, List[AttachmentPoint]]:
    """Remove attachment dummies; return the matching graph and its points."""
    dummies = [a for a in mol.GetAtoms() if _is_attachment_dummy(a)]
    removed = sorted(a.GetIdx() for a in dummies)

    def shifted(idx: int) -> int:
        return idx - sum(1 for r in removed if r < idx)

    points: List[AttachmentPoint] = []
    for atom in dummies:
        neighbors = atom.GetNeighbors()
        if len(neighbors) != 1:
            raise InvalidCoreError(
                f"Attachment atom {atom.GetIdx()} must have exactly one neighbor, has {len(neighbors)}"
            )
        neighbor = neighbors[0]
        if _is_attachment_dummy(neighbor):
            raise InvalidCoreError(f"Attachment atom {atom.GetIdx()} is bonded to another attachment atom")
        points.append(AttachmentPoint(shifted(neighbor.GetIdx()), rgroup_label(atom)))

    matching = Chem.RWMol(mol)
    for idx in reversed(removed):
        matching.RemoveAtom(idx)
    matching = matching.GetMol()
    matching.UpdatePropertyCache(strict=False)
    Chem.FastFindRings(matching)
    return matching, points


def _validate_points(matching: Chem.Mol, points: Sequence[AttachmentPoint]) -> None:
    if not points:
        raise InvalidCoreError("Core has no attachment points")
    labels = [p.label for p in points if p.is_labeled]
    for label in labels:
        if label < 1:
            raise InvalidCoreError(f"R-group label must be positive, got {label}")
    duplicates = sorted({label for label in labels if labels.count(label) > 1})
    if duplicates:
        raise InvalidCoreError(f"Duplicate R-group labels in core: {duplicates}")
    n_atoms = matching.GetNumAtoms()
    for p in points:
        if not 0 <= p.atom_idx < n_atoms:
            raise InvalidCoreError(f"Attachment point atom {p.atom_idx} is out of range (core has {n_atoms} atoms)")


def labelled_core_smiles(core: Core, atom_labels: Sequence[Tuple[int, int]]) -> str:
    """SMILES of the core with a ``[*:n]`` dummy for every ``(atom, label)`` pair."""
    display = Chem.RWMol(core.matching_mol)
    for atom_idx, number in atom_labels:
        dummy = Chem.Atom(0)
        dummy.SetAtomMapNum(number)
        new_idx = display.AddAtom(dummy)
        display.AddBond(atom_idx, new_idx, Chem.BondType.SINGLE)
    display.UpdatePropertyCache(strict=False)
    return Chem.MolToSmiles(display)


# ---------------------------------------------------------------------------
# CoreRegistry
# ---------------------------------------------------------------------------

class CoreRegistry:
    """Ordered, append-only set of cores; ``core_id`` is the insertion index."""

    def __init__(self) -> None:
        self._cores: List[Core] = []

    def add_core(self, graph: Any, attachment_points: Optional[Iterable[Any]] = None) -> int:
        """Register a core and return its id.

        Args:
            graph: RDKit ``Mol`` or SMILES / SMARTS / molfile text.
            attachment_points: Explicit points (``AttachmentPoint``, atom
                index or ``(atom_idx, label)``) on *graph*; when omitted they
                are read from the graph's dummy atoms.

        Raises:
            InvalidCoreError: Malformed core definition.
        """
        if graph is None:
            raise InvalidCoreError("Core graph is None")
        mol = to_core_mol(graph)
        if mol.GetNumAtoms() == 0:
            raise InvalidCoreError("Core graph is empty")

        if attachment_points is None:
            matching, points = _strip_dummies(mol)
        else:
            matching = Chem.Mol(mol)
            matching.UpdatePropertyCache(strict=False)
            Chem.FastFindRings(matching)
            points = _coerce_points(attachment_points)
        _validate_points(matching, points)
        if matching.GetNumAtoms() == 0:
            raise InvalidCoreError("Core has no atoms besides its attachment points")

        points.sort(key=lambda p: (p.atom_idx, p.label is None, p.label or 0))
        core = Core(
            core_id=len(self._cores),
            mol=Chem.Mol(mol),
            matching_mol=matching,
            attachment_points=tuple(points),
        )
        self._cores.append(core)
        logger.info(
            "Core %d registered: %s (%d attachment points, labels %s)",
            core.core_id, Chem.MolToSmarts(matching), len(points), core.labels,
        )
        return core.core_id

    def get(self, core_id: int) -> Core:
        return self._cores[core_id]

    def max_user_label(self) -> int:
        """Highest user label over every registered core (0 when none)."""
        return max((label for core in self._cores for label in core.labels), default=0)

    def __len__(self) -> int:
        return len(self._cores)

    def __iter__(self) -> Iterator[Core]:
        return iter(self._cores)
