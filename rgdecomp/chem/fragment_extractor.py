"""
Fragment Extractor
==================
Cuts a matched molecule at its cut bonds and returns the peripheral
fragments, grouped by the core atom they hang off.

Peripheral atoms are grouped into connected components that never cross
a matched atom.  A component attached through several cut bonds (a ring
bridging two core atoms) is a single fragment, assigned to the lowest of
its core atoms.  Fragments are stored as atom-index sets; their SMILES is
produced by cleaving the variant with ``Chem.FragmentOnBonds`` so the
open valence is capped with an explicit ``*`` attachment marker.

Public API::

    sites = extract(target, match)            # {core_atom: [Fragment, ...]}
    render(target, fragment, label_number)    # "CC[*:1]"
    has_hydrogen_capacity(target, match, core_atom) → bool
"""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from typing import Dict, FrozenSet, List, Mapping, Optional, Sequence, Set

from rdkit import Chem

from rgdecomp.common.constants import HYDROGEN_SMILES
from rgdecomp.common.errors import ChemistryError
from rgdecomp.models import CutBond, Fragment, Match, TargetMolecule

__all__ = ["extract", "render", "has_hydrogen_capacity"]

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Sanitization with fallbacks
# ---------------------------------------------------------------------------

def _full_sanitize(frag: Chem.Mol) -> Optional[str]:
    frag_copy = Chem.RWMol(frag)
    Chem.SanitizeMol(frag_copy)
    return Chem.MolToSmiles(frag_copy, canonical=True)


def _sanitize_without_kekulize(frag: Chem.Mol) -> Optional[str]:
    frag_copy = Chem.RWMol(frag)
    Chem.SanitizeMol(
        frag_copy,
        sanitizeOps=Chem.SanitizeFlags.SANITIZE_ALL ^ Chem.SanitizeFlags.SANITIZE_KEKULIZE,
    )
    check = Chem.MolFromSmiles(Chem.MolToSmiles(frag_copy, canonical=True))
    return Chem.MolToSmiles(check, canonical=True) if check is not None else None


def _protonate_aromatic_nitrogen(frag: Chem.Mol) -> Optional[str]:
    """Put the hydrogen back on a pyrrole-type N a cut ring lost track of."""
    frag_copy = Chem.RWMol(frag)
    for atom in frag_copy.GetAtoms():
        if (atom.GetSymbol() == "N"
                and atom.GetIsAromatic()
                and atom.GetTotalNumHs() == 0
                and atom.GetFormalCharge() == 0
                and atom.GetDegree() == 2):
            atom.SetNumExplicitHs(1)
            atom.SetNoImplicit(True)
    Chem.SanitizeMol(frag_copy)
    return Chem.MolToSmiles(frag_copy, canonical=True)


def _raw_round_trip(frag: Chem.Mol) -> Optional[str]:
    check = Chem.MolFromSmiles(Chem.MolToSmiles(frag, canonical=True))
    return Chem.MolToSmiles(check, canonical=True) if check is not None else None


_SANITIZERS = (
    _full_sanitize,
    _sanitize_without_kekulize,
    _protonate_aromatic_nitrogen,
    _raw_round_trip,
)


def _sanitize_fragment(frag: Chem.Mol) -> Optional[str]:
    """Canonical SMILES of a cut fragment, trying each sanitizer in turn."""
    for position, sanitizer in enumerate(_SANITIZERS):
        try:
            smiles = sanitizer(frag)
        except (ValueError, RuntimeError):
            continue
        if not smiles:
            continue
        if position:
            logger.debug("Fragment %s sanitized by %s", smiles, sanitizer.__name__)
        return smiles
    return None


def _dearomatize_open_atoms(mol: Chem.RWMol) -> None:
    """Clear aromatic flags on atoms and bonds no longer inside a ring.

    Cutting a fused ring leaves aromatic atoms outside any ring, which
    sanitization rejects.
    """
    Chem.FastFindRings(mol)
    for bond in mol.GetBonds():
        if bond.GetIsAromatic() and not bond.IsInRing():
            bond.SetIsAromatic(False)
            bond.SetBondType(Chem.BondType.SINGLE)
    for atom in mol.GetAtoms():
        if atom.GetIsAromatic() and not atom.IsInRing():
            atom.SetIsAromatic(False)


# ---------------------------------------------------------------------------
# Cleaving
# ---------------------------------------------------------------------------

def _cleave(
    variant: Chem.Mol,
    cut_bonds: Sequence[CutBond],
    atoms: FrozenSet[int],
    label_number: int = 0,
    marker_labels: Optional[Mapping[int, int]] = None,
) -> List[str]:
    """SMILES of every peripheral piece containing one of *atoms*.

    Attachment markers are unlabeled ``*`` when *label_number* is 0 and
    ``[*:n]`` otherwise.  *marker_labels* overrides the number per core
    atom (molecule index) the marker stands for.
    """
    marker_labels = marker_labels or {}
    n_atoms = variant.GetNumAtoms()
    bond_ids = sorted({c.bond_idx for c in cut_bonds})
    pieces = Chem.FragmentOnBonds(variant, bond_ids, addDummies=True)
    mapping: List[Sequence[int]] = []
    frags = Chem.GetMolFrags(pieces, asMols=True, sanitizeFrags=False, fragsMolAtomMapping=mapping)

    out: List[str] = []
    for frag, frag_atoms in zip(frags, mapping):
        if not atoms.intersection(frag_atoms):
            continue
        rw = Chem.RWMol(frag)
        for i, orig in enumerate(frag_atoms):
            if orig >= n_atoms:
                marker = rw.GetAtomWithIdx(i)
                # FragmentOnBonds writes the replaced atom's index as the isotope
                replaced = marker.GetIsotope()
                marker.SetIsotope(0)
                marker.SetAtomMapNum(marker_labels.get(replaced, label_number))
                marker.SetIsAromatic(False)
                for bond in marker.GetBonds():
                    if bond.GetIsAromatic():
                        bond.SetIsAromatic(False)
                        bond.SetBondType(Chem.BondType.SINGLE)
        _dearomatize_open_atoms(rw)
        piece = rw.GetMol()
        if any(a.GetAtomicNum() == 1 for a in piece.GetAtoms()):
            piece = Chem.RemoveHs(piece, sanitize=False)
        smiles = _sanitize_fragment(piece)
        if smiles is None:
            raise ChemistryError(
                "FRAGMENT_SANITIZE",
                f"Cannot sanitize fragment {Chem.MolToSmiles(piece)} of {Chem.MolToSmiles(variant)}",
            )
        out.append(smiles)
    return sorted(out)


def _component(variant: Chem.Mol, start: int, matched: FrozenSet[int]) -> Set[int]:
    """Atoms reachable from *start* without entering a matched atom."""
    seen = {start}
    queue = deque([start])
    while queue:
        idx = queue.popleft()
        for neighbor in variant.GetAtomWithIdx(idx).GetNeighbors():
            n_idx = neighbor.GetIdx()
            if n_idx in matched or n_idx in seen:
                continue
            seen.add(n_idx)
            queue.append(n_idx)
    return seen


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def extract(target: TargetMolecule, match: Match) -> Dict[int, List[Fragment]]:
    """Split *target* at the cut bonds of *match*.

    Returns ``{core_atom: [Fragment, ...]}`` for every core atom with at
    least one fragment; fragments at one site are in cut-bond order.
    Deterministic for a given (target, match).

    Raises:
        ChemistryError: A fragment cannot be sanitized.
    """
    variant = target.variant(match.variant)
    matched = match.matched_atoms
    visited: Set[int] = set()
    sites: Dict[int, List[Fragment]] = defaultdict(list)

    for cut in match.cut_bonds:
        if cut.mol_atom in visited:
            continue
        component = frozenset(_component(variant, cut.mol_atom, matched))
        visited |= component
        comp_cuts = tuple(c for c in match.cut_bonds if c.mol_atom in component)
        heavy = sum(1 for i in component if variant.GetAtomWithIdx(i).GetAtomicNum() != 1)
        if heavy == 0:
            smiles = HYDROGEN_SMILES
        else:
            smiles = ".".join(_cleave(variant, comp_cuts, component))
        frag = Fragment(
            variant=match.variant,
            atoms=component,
            cut_bonds=comp_cuts,
            smiles=smiles,
            heavy_atoms=heavy,
        )
        sites[frag.site].append(frag)

    return dict(sites)


def render(
    target: TargetMolecule,
    fragment: Fragment,
    label_number: int,
    marker_labels: Optional[Mapping[int, int]] = None,
) -> str:
    """SMILES of *fragment* with its attachment markers written as ``[*:n]``.

    *marker_labels* maps the molecule index of a matched core atom to the
    number its marker carries, for fragments bridging labeled points.
    """
    if fragment.is_hydrogen:
        return f"[H][*:{label_number}]"
    variant = target.variant(fragment.variant)
    heavy_atoms = frozenset(
        i for i in fragment.atoms if variant.GetAtomWithIdx(i).GetAtomicNum() != 1
    )
    return ".".join(_cleave(variant, fragment.cut_bonds, heavy_atoms, label_number, marker_labels))


def has_hydrogen_capacity(target: TargetMolecule, match: Match, core_atom: int) -> bool:
    """Whether the atom matched to *core_atom* carries a hydrogen."""
    variant = target.variant(match.variant)
    atom = variant.GetAtomWithIdx(match.mol_atom(core_atom))
    return atom.GetTotalNumHs(includeNeighbors=True) > 0
