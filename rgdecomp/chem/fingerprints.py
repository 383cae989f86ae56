"""
Fragment fingerprints for the FingerprintVariance score.

A fingerprinter maps a :class:`Fragment` to a fixed-length numpy vector.
The default uses RDKit's Morgan generator on the fragment's unlabeled
content SMILES, so the same substituent gets the same bits whatever label
it ends up under.  Hydrogen fragments ("no substituent") map to the zero
vector.
"""

from __future__ import annotations

import logging
from typing import Dict

import numpy as np
from rdkit import Chem
from rdkit.Chem import rdFingerprintGenerator

from rgdecomp.common.constants import FingerprintDefaults
from rgdecomp.models import Fragment

logger = logging.getLogger(__name__)


def _fragment_mol(smiles: str) -> Chem.Mol:
    mol = Chem.MolFromSmiles(smiles)
    if mol is not None:
        return mol
    mol = Chem.MolFromSmiles(smiles, sanitize=False)
    mol.UpdatePropertyCache(strict=False)
    Chem.FastFindRings(mol)
    return mol


class MorganFingerprinter:
    """Cached Morgan bit-vector fingerprints of fragment content."""

    def __init__(
        self,
        radius: int = FingerprintDefaults.RADIUS,
        fp_size: int = FingerprintDefaults.FP_SIZE,
    ) -> None:
        self.radius = radius
        self.fp_size = fp_size
        self._generator = rdFingerprintGenerator.GetMorganGenerator(radius=radius, fpSize=fp_size)
        self._cache: Dict[str, np.ndarray] = {}
        self._zeros = np.zeros(fp_size, dtype=np.int64)

    def __call__(self, fragment: Fragment) -> np.ndarray:
        if fragment.is_hydrogen:
            return self._zeros
        fp = self._cache.get(fragment.smiles)
        if fp is None:
            mol = _fragment_mol(fragment.smiles)
            fp = self._generator.GetFingerprintAsNumPy(mol).astype(np.int64)
            self._cache[fragment.smiles] = fp
        return fp
