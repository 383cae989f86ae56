"""
Decomposition data models: matches, fragments, label assignments, rows.

Atoms are referenced by their stable integer index in the molecule (or
tautomer variant) they came from; a :class:`Fragment` is an index set
into that arena and never carries a copy of the graph.  Matches,
fragments and assignments are frozen so they can be shared between
candidate combinations without defensive copies.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from rdkit import Chem

from rgdecomp.common.constants import HYDROGEN_SMILES


# ---------------------------------------------------------------------------
# TargetMolecule
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class TargetMolecule:
    """Input molecule plus the variants it is matched on.

    ``variants[0]`` is always the input itself; further entries are
    tautomers when tautomer matching is enabled.
    """

    mol: Chem.Mol
    variants: Tuple[Chem.Mol, ...]
    smiles: str = ""

    def variant(self, idx: int) -> Chem.Mol:
        return self.variants[idx]


# ---------------------------------------------------------------------------
# CutBond / Match
# ---------------------------------------------------------------------------

@dataclass(frozen=True, order=True)
class CutBond:
    """Bond crossing from a matched core atom to an unmatched atom."""

    core_atom: int
    mol_core_atom: int
    mol_atom: int
    bond_idx: int


@dataclass(frozen=True)
class Match:
    """Injective core-atom → molecule-atom mapping on one variant."""

    core_id: int
    variant: int
    mapping: Tuple[int, ...]
    cut_bonds: Tuple[CutBond, ...] = ()

    @property
    def matched_atoms(self) -> FrozenSet[int]:
        return frozenset(self.mapping)

    def mol_atom(self, core_atom: int) -> int:
        return self.mapping[core_atom]


# ---------------------------------------------------------------------------
# Fragment
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Fragment:
    """Peripheral substituent content at one attachment site.

    ``atoms`` indexes the variant the fragment was cut from; ``smiles`` is
    the canonical content with unlabeled ``*`` attachment markers.  A
    fragment without heavy atoms is the hydrogen terminator ("no real
    substituent").
    """

    variant: int
    atoms: FrozenSet[int] = frozenset()
    cut_bonds: Tuple[CutBond, ...] = ()
    smiles: str = HYDROGEN_SMILES
    heavy_atoms: int = 0
    components: int = 1

    @property
    def is_hydrogen(self) -> bool:
        return self.heavy_atoms == 0

    @property
    def site(self) -> Optional[int]:
        """Core atom this fragment is attached at (lowest cut core atom)."""
        if not self.cut_bonds:
            return None
        return min(c.core_atom for c in self.cut_bonds)

    @classmethod
    def hydrogen(cls, variant: int) -> "Fragment":
        """Implicit hydrogen terminator for a position with no substituent."""
        return cls(variant=variant)

    def merge(self, other: "Fragment") -> "Fragment":
        """Combine two fragments claimed by the same label."""
        smiles = ".".join(sorted((self.smiles, other.smiles)))
        return Fragment(
            variant=self.variant,
            atoms=self.atoms | other.atoms,
            cut_bonds=tuple(sorted(self.cut_bonds + other.cut_bonds)),
            smiles=smiles,
            heavy_atoms=self.heavy_atoms + other.heavy_atoms,
            components=self.components + other.components,
        )


# ---------------------------------------------------------------------------
# RLabel
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RLabel:
    """Label key used while searching.

    User labels (``number > 0``) are shared by every core.  Unlabeled
    positions are identified by ``(core_id, core_atom, slot)`` and only
    receive an integer id when the result table is finalized, so the same
    core position maps to the same column in every row.
    """

    number: int = 0
    core_id: int = -1
    core_atom: int = -1
    slot: int = 0

    @classmethod
    def user(cls, number: int) -> "RLabel":
        return cls(number=number)

    @classmethod
    def unlabeled(cls, core_id: int, core_atom: int, slot: int = 0) -> "RLabel":
        return cls(number=0, core_id=core_id, core_atom=core_atom, slot=slot)

    @property
    def is_user(self) -> bool:
        return self.number > 0

    def sort_key(self) -> Tuple[int, int, int, int]:
        if self.is_user:
            return (0, self.number, 0, 0)
        return (1, self.core_id, self.core_atom, self.slot)

    def __str__(self) -> str:
        if self.is_user:
            return f"R{self.number}"
        return f"R?({self.core_id}:{self.core_atom}.{self.slot})"


# ---------------------------------------------------------------------------
# LabelAssignment
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LabelAssignment:
    """One candidate decomposition of a molecule: label → fragment for a match."""

    molecule_index: int
    core_id: int
    match: Match
    fragments: Tuple[Tuple[RLabel, Fragment], ...] = ()

    @property
    def labels(self) -> List[RLabel]:
        return [label for label, _ in self.fragments]

    def get(self, label: RLabel) -> Optional[Fragment]:
        for key, frag in self.fragments:
            if key == label:
                return frag
        return None

    def content_key(self) -> Tuple[Any, ...]:
        """Identity used to drop duplicate candidates (symmetric matches)."""
        return (self.core_id, tuple((label, frag.smiles) for label, frag in self.fragments))

    def order_key(self) -> Tuple[Any, ...]:
        """Sort key by content, independent of how the molecule was numbered."""
        return (self.core_id, tuple((label.sort_key(), frag.smiles) for label, frag in self.fragments))


# ---------------------------------------------------------------------------
# DecompositionRow
# ---------------------------------------------------------------------------

@dataclass
class DecompositionRow:
    """One retained decomposition, in registration order."""

    index: int = 0
    core_id: int = 0
    core_smiles: str = ""
    fragments: Dict[str, Fragment] = field(default_factory=dict)
    rgroups: Dict[str, str] = field(default_factory=dict)

    @property
    def labels(self) -> List[str]:
        return list(self.rgroups)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "core_id": self.core_id,
            "core_smiles": self.core_smiles,
            "rgroups": dict(self.rgroups),
        }


# ---------------------------------------------------------------------------
# OptimizationResult
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OptimizationResult:
    """Outcome of one optimizer pass.

    ``choices`` holds, per molecule with candidates, the index of the
    chosen candidate in that molecule's candidate list.
    """

    choices: Tuple[int, ...] = ()
    score: float = 0.0
    evaluations: int = 0
    timed_out: bool = False
