"""
Core data models: scaffold definitions and their attachment points.

A :class:`Core` keeps two graphs: ``mol`` is the definition as supplied
(dummy atoms included, used for display) and ``matching_mol`` is the
graph actually searched for, with attachment dummies removed.  Every
atom index stored on a core refers to ``matching_mol``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from rdkit import Chem


# ---------------------------------------------------------------------------
# AttachmentPoint
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AttachmentPoint:
    """Position on the core where peripheral structure is cut away.

    ``label`` is the fixed R-group number for a labeled point, ``None``
    for an unlabeled (wildcard) point whose id is assigned during
    decomposition.
    """

    atom_idx: int
    label: Optional[int] = None

    @property
    def is_labeled(self) -> bool:
        return self.label is not None


# ---------------------------------------------------------------------------
# Core
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class Core:
    """Registered scaffold.  Immutable once the registry hands it out."""

    core_id: int
    mol: Chem.Mol
    matching_mol: Chem.Mol
    attachment_points: Tuple[AttachmentPoint, ...] = field(default_factory=tuple)

    @property
    def labels(self) -> List[int]:
        """User labels carried by this core, ascending."""
        return sorted(ap.label for ap in self.attachment_points if ap.is_labeled)

    def points_at(self, atom_idx: int) -> List[AttachmentPoint]:
        return [ap for ap in self.attachment_points if ap.atom_idx == atom_idx]

    def labels_at(self, atom_idx: int) -> List[int]:
        return sorted(ap.label for ap in self.points_at(atom_idx) if ap.is_labeled)

    def unlabeled_count_at(self, atom_idx: int) -> int:
        return sum(1 for ap in self.points_at(atom_idx) if not ap.is_labeled)

    @property
    def attachment_atoms(self) -> List[int]:
        return sorted({ap.atom_idx for ap in self.attachment_points})
