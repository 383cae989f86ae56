"""
Match Engine
============
Finds the substructure matches of a molecule against a registered core.

Every mapping RDKit reports (``uniquify=False``: symmetric mappings are
distinct decompositions) is turned into a :class:`Match` carrying its cut
bonds, the bonds leaving the matched atoms.  Matches are produced lazily
per variant and hold no state shared between molecules, so callers may
match different molecules on different threads.

Public API::

    target = build_target(mol, params)
    for match in find_matches(core, target, params):
        ...
    matches = find_all_matches(registry, target, params)
"""

from __future__ import annotations

import logging
from typing import Iterable, Iterator, List, Optional, Set, Tuple

from rdkit import Chem

from rgdecomp.chem.tautomers import enumerate_variants
from rgdecomp.models import Core, CutBond, Match, RGroupDecompositionParameters, TargetMolecule

__all__ = ["build_target", "find_matches", "find_all_matches", "cut_bonds_for"]

logger = logging.getLogger(__name__)


def build_target(mol: Chem.Mol, params: RGroupDecompositionParameters) -> TargetMolecule:
    """Wrap an input molecule with the variants it will be matched on."""
    variants = enumerate_variants(mol, params.do_tautomers, params.max_tautomers)
    return TargetMolecule(mol=mol, variants=variants, smiles=Chem.MolToSmiles(mol))


def cut_bonds_for(
    core: Core,
    variant: Chem.Mol,
    mapping: Tuple[int, ...],
    params: RGroupDecompositionParameters,
) -> Optional[Tuple[CutBond, ...]]:
    """Bonds leaving the matched atoms, or ``None`` if the match is not allowed.

    With ``only_match_at_rgroups`` a bond may only leave the core at an
    atom carrying an attachment point.  With ``remove_hydrogens_post_match``
    explicit hydrogen atoms on matched atoms are not cut bonds.
    """
    matched: Set[int] = set(mapping)
    cuts: List[CutBond] = []
    for core_atom, mol_idx in enumerate(mapping):
        atom = variant.GetAtomWithIdx(mol_idx)
        for bond in atom.GetBonds():
            other = bond.GetOtherAtomIdx(mol_idx)
            if other in matched:
                continue
            if params.remove_hydrogens_post_match and variant.GetAtomWithIdx(other).GetAtomicNum() == 1:
                continue
            if params.only_match_at_rgroups and not core.points_at(core_atom):
                return None
            cuts.append(CutBond(core_atom, mol_idx, other, bond.GetIdx()))
    return tuple(sorted(cuts))


def find_matches(
    core: Core,
    target: TargetMolecule,
    params: RGroupDecompositionParameters,
) -> Iterator[Match]:
    """Yield the allowed matches of *core* on every variant of *target*.

    A mapping already reported on an earlier variant (same atoms, same cut
    pattern) is not reported again, so the input form wins over its
    tautomers.
    """
    seen: Set[Tuple] = set()
    for variant_idx, variant in enumerate(target.variants):
        mappings = variant.GetSubstructMatches(
            core.matching_mol,
            uniquify=False,
            useChirality=False,
            maxMatches=params.max_matches,
        )
        for mapping in mappings:
            mapping = tuple(mapping)
            cuts = cut_bonds_for(core, variant, mapping, params)
            if cuts is None:
                continue
            key = (mapping, tuple((c.core_atom, c.mol_atom) for c in cuts))
            if key in seen:
                continue
            seen.add(key)
            yield Match(core_id=core.core_id, variant=variant_idx, mapping=mapping, cut_bonds=cuts)


def find_all_matches(
    cores: Iterable[Core],
    target: TargetMolecule,
    params: RGroupDecompositionParameters,
) -> List[Match]:
    """Matches against every core, in core registration order."""
    matches: List[Match] = []
    for core in cores:
        found = list(find_matches(core, target, params))
        if found:
            logger.debug("%s: %d matches on core %d", target.smiles, len(found), core.core_id)
        matches.extend(found)
    return matches
