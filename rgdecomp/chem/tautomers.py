"""
Tautomer variants of an input molecule.

Wraps RDKit's ``TautomerEnumerator``: the input itself always comes
first, duplicates by canonical SMILES are dropped and the list is capped.
A fresh enumerator is built per call so concurrent callers share no
state.
"""

from __future__ import annotations

import logging
from typing import List, Tuple

from rdkit import Chem
from rdkit.Chem.MolStandardize import rdMolStandardize

logger = logging.getLogger(__name__)


def enumerate_variants(mol: Chem.Mol, do_tautomers: bool, max_tautomers: int) -> Tuple[Chem.Mol, ...]:
    """Return the molecule variants to match against."""
    if not do_tautomers:
        return (mol,)

    enumerator = rdMolStandardize.TautomerEnumerator()
    enumerator.SetMaxTautomers(max_tautomers)
    variants: List[Chem.Mol] = [mol]
    seen = {Chem.MolToSmiles(mol)}
    try:
        tautomers = list(enumerator.Enumerate(mol))
    except (RuntimeError, ValueError) as exc:
        logger.warning("Tautomer enumeration failed for %s: %s", Chem.MolToSmiles(mol), exc)
        return (mol,)

    for taut in tautomers:
        if len(variants) >= max_tautomers:
            break
        smi = Chem.MolToSmiles(taut)
        if smi in seen:
            continue
        seen.add(smi)
        variants.append(taut)

    logger.debug("%s: %d tautomer variants", Chem.MolToSmiles(mol), len(variants))
    return tuple(variants)
