"""
Molecular Parser & SMILES Utilities
====================================
Turns user input (RDKit molecules, SMILES, SMARTS or molfile blocks)
into RDKit ``Mol`` objects for the core registry and the decomposer.

Public API:
    parse_smiles(smiles)          → Optional[Mol]   (LRU-cached)
    parse_core_text(text)         → Optional[Mol]   (molblock, else SMILES, else SMARTS)
    validate_smiles(smiles)       → Tuple[bool, str] (safety checks)
    to_molecule(obj)              → Mol              (raises ChemistryError)
    to_core_mol(obj)              → Mol              (raises InvalidCoreError)
"""

import logging
import re
from functools import lru_cache
from typing import Any, Optional, Tuple

from rdkit import Chem

from rgdecomp.common.errors import ChemistryError, InvalidCoreError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_MAX_SMILES_LENGTH = 5000
_MAX_NESTING_DEPTH = 40  # max parenthesis / bracket nesting

# Characters that may legitimately appear in a SMILES string.
# Covers atoms, bonds, branches, rings, charges, chirality, isotopes, etc.
_VALID_SMILES_CHARS = re.compile(
    r'^[A-Za-z0-9@+\-\[\]\(\)\.\#\=\:\%\/\\\*]+$'
)


# ---------------------------------------------------------------------------
# Core cached helpers
# ---------------------------------------------------------------------------

@lru_cache(maxsize=512)
def parse_smiles(smiles: str) -> Optional[Chem.Mol]:
    """Parse a SMILES string into an RDKit Mol object with sanitization.

    Results are LRU-cached (maxsize=512) so repeated calls with the same
    SMILES return the *same* object without re-parsing.  Callers must
    treat the returned molecule as read-only.

    Returns ``None`` for invalid or empty SMILES.
    """
    if not smiles:
        return None
    mol = Chem.MolFromSmiles(smiles)
    if mol is not None:
        try:
            Chem.SanitizeMol(mol)
        except Exception:
            return None
    return mol


def parse_core_text(text: str) -> Optional[Chem.Mol]:
    """Parse a core given as SMILES, SMARTS or a molfile block."""
    if not text or not text.strip():
        return None
    if "\n" in text:
        return Chem.MolFromMolBlock(text)
    mol = parse_smiles(text)
    if mol is not None:
        return mol
    return Chem.MolFromSmarts(text)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_smiles(smiles: str) -> Tuple[bool, str]:
    """Validate a SMILES string for safety and correctness.

    Checks performed (in order):
    1. Non-empty
    2. Length ≤ ``_MAX_SMILES_LENGTH``
    3. Only valid SMILES characters
    4. Nesting depth (parentheses + brackets) ≤ ``_MAX_NESTING_DEPTH``
    5. RDKit parsability

    Returns:
        ``(True, "")`` on success, or ``(False, <reason>)`` on failure.
    """
    if not smiles or not smiles.strip():
        return False, "SMILES string is empty"

    if len(smiles) > _MAX_SMILES_LENGTH:
        return False, f"SMILES exceeds maximum length ({len(smiles)} > {_MAX_SMILES_LENGTH})"

    if not _VALID_SMILES_CHARS.match(smiles):
        return False, "SMILES contains invalid characters"

    # Nesting depth check
    depth = 0
    max_depth = 0
    for ch in smiles:
        if ch in ("(", "["):
            depth += 1
            max_depth = max(max_depth, depth)
        elif ch in (")", "]"):
            depth -= 1
    if max_depth > _MAX_NESTING_DEPTH:
        return False, f"SMILES nesting depth too deep ({max_depth} > {_MAX_NESTING_DEPTH})"

    # RDKit parsability
    mol = parse_smiles(smiles)
    if mol is None:
        return False, "RDKit cannot parse this SMILES"

    return True, ""


# ---------------------------------------------------------------------------
# Input coercion
# ---------------------------------------------------------------------------

def to_molecule(obj: Any) -> Chem.Mol:
    """Return an RDKit molecule for a ``Mol`` or SMILES input.

    Raises:
        ChemistryError: If the input is empty or cannot be parsed.
    """
    if isinstance(obj, Chem.Mol):
        return obj
    if isinstance(obj, str):
        ok, reason = validate_smiles(obj)
        if not ok:
            raise ChemistryError("INVALID_SMILES", f"{reason}: {obj!r}")
        return parse_smiles(obj)
    raise ChemistryError("INVALID_MOLECULE", f"Unsupported molecule input: {type(obj).__name__}")


def to_core_mol(obj: Any) -> Chem.Mol:
    """Return an RDKit molecule for a core given as ``Mol`` or text.

    Raises:
        InvalidCoreError: If the input is missing or cannot be parsed.
    """
    if isinstance(obj, Chem.Mol):
        return obj
    if isinstance(obj, str):
        mol = parse_core_text(obj)
        if mol is None:
            raise InvalidCoreError(f"Cannot parse core: {obj!r}")
        return mol
    raise InvalidCoreError(f"Unsupported core input: {type(obj).__name__}")
