"""
Tests for fragment extraction and rendering
"""

import unittest
import sys
from pathlib import Path
from unittest import mock

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from rdkit import Chem

from rgdecomp.chem import fragment_extractor
from rgdecomp.chem.core_registry import CoreRegistry
from rgdecomp.chem.fragment_extractor import extract, has_hydrogen_capacity, render
from rgdecomp.chem.match_engine import build_target, find_matches
from rgdecomp.models import Fragment, RGroupDecompositionParameters


def canon(smiles):
    return Chem.MolToSmiles(Chem.MolFromSmiles(smiles))


class TestExtract(unittest.TestCase):
    """Test splitting matched molecules into fragments"""

    def setUp(self):
        self.registry = CoreRegistry()
        self.params = RGroupDecompositionParameters()

    def _first_match(self, core_smiles, smiles):
        core = self.registry.get(self.registry.add_core(core_smiles))
        target = build_target(Chem.MolFromSmiles(smiles), self.params)
        match = next(find_matches(core, target, self.params))
        return target, match

    def test_two_substituents(self):
        target, match = self._first_match("[*:1]c1ccc([*:2])cc1", "Cc1ccc(Cl)cc1")
        sites = extract(target, match)
        self.assertEqual(len(sites), 2)
        smiles = sorted(frag.smiles for frags in sites.values() for frag in frags)
        self.assertEqual(smiles, sorted([canon("*C"), canon("*Cl")]))
        for core_atom, frags in sites.items():
            self.assertEqual(len(frags), 1)
            self.assertEqual(frags[0].site, core_atom)
            self.assertEqual(frags[0].heavy_atoms, 1)

    def test_deterministic(self):
        target, match = self._first_match("[*:1]c1ccc([*:2])cc1", "CCOc1ccc(C(=O)N)cc1")
        self.assertEqual(extract(target, match), extract(target, match))

    def test_double_bond_kept_on_fragment(self):
        target, match = self._first_match("[*:1]c1ccccc1", "O=Cc1ccccc1")
        (frags,) = extract(target, match).values()
        self.assertEqual(frags[0].smiles, canon("*C=O"))

    def test_ring_bridging_two_core_atoms(self):
        target, match = self._first_match("*c1ccccc1", "c1ccc2c(c1)CCCC2")
        sites = extract(target, match)
        self.assertEqual(len(sites), 1)
        ((core_atom, frags),) = sites.items()
        self.assertEqual(len(frags), 1)
        bridge = frags[0]
        self.assertEqual(len(bridge.cut_bonds), 2)
        self.assertEqual(bridge.heavy_atoms, 4)
        self.assertEqual(core_atom, min(c.core_atom for c in bridge.cut_bonds))
        self.assertEqual(bridge.smiles, canon("*CCCC*"))

    def test_unsubstituted(self):
        target, match = self._first_match("[*:1]c1ccccc1", "c1ccccc1")
        self.assertEqual(extract(target, match), {})

    def test_hydrogen_capacity(self):
        target, match = self._first_match("[*:1]c1ccc([*:2])cc1", "Cc1ccc(Cl)cc1")
        substituted = {c.core_atom for c in match.cut_bonds}
        for core_atom in range(6):
            self.assertEqual(has_hydrogen_capacity(target, match, core_atom), core_atom not in substituted)


class TestRender(unittest.TestCase):
    """Test labelled SMILES output"""

    def setUp(self):
        self.registry = CoreRegistry()
        self.params = RGroupDecompositionParameters()
        core = self.registry.get(self.registry.add_core("[*:1]c1ccccc1"))
        self.target = build_target(Chem.MolFromSmiles("CCc1ccccc1"), self.params)
        self.match = next(find_matches(core, self.target, self.params))

    def test_render_label(self):
        (frags,) = extract(self.target, self.match).values()
        self.assertEqual(render(self.target, frags[0], 3), canon("CC[*:3]"))

    def test_render_hydrogen(self):
        self.assertEqual(render(self.target, Fragment.hydrogen(0), 2), "[H][*:2]")

    def test_render_merged(self):
        target = build_target(Chem.MolFromSmiles("CC1(Cl)CCCCC1"), self.params)
        core = self.registry.get(self.registry.add_core("[*:1]C1CCCCC1"))
        match = next(m for m in find_matches(core, target, self.params) if m.mapping[0] == 1)
        (frags,) = extract(target, match).values()
        self.assertEqual(len(frags), 2)
        merged = frags[0].merge(frags[1])
        rendered = render(target, merged, 1)
        self.assertEqual(sorted(rendered.split(".")), sorted([canon("C[*:1]"), canon("Cl[*:1]")]))
        self.assertEqual(merged.heavy_atoms, 2)

    def test_render_bridge_with_one_number_per_end(self):
        core = self.registry.get(self.registry.add_core("*c1ccccc1"))
        target = build_target(Chem.MolFromSmiles("c1ccc2c(c1)CCCC2"), self.params)
        match = next(find_matches(core, target, self.params))
        (frags,) = extract(target, match).values()
        bridge = frags[0]
        first, second = bridge.cut_bonds
        markers = {first.mol_core_atom: 1, second.mol_core_atom: 2}
        self.assertEqual(render(target, bridge, 1, markers), canon("[*:1]CCCC[*:2]"))
        self.assertEqual(render(target, bridge, 5), canon("[*:5]CCCC[*:5]"))


class TestSanitizeFallback(unittest.TestCase):
    """Test the layered fragment sanitizers"""

    def test_full_sanitize_first(self):
        self.assertEqual(fragment_extractor._sanitize_fragment(Chem.MolFromSmiles("*CC")), canon("*CC"))

    def test_fallback_is_logged(self):
        def refuse(frag):
            raise ValueError("refused")

        sanitizers = (refuse, fragment_extractor._raw_round_trip)
        with mock.patch.object(fragment_extractor, "_SANITIZERS", sanitizers):
            with self.assertLogs(fragment_extractor.logger, level="DEBUG") as logs:
                smiles = fragment_extractor._sanitize_fragment(Chem.MolFromSmiles("*CC"))
        self.assertEqual(smiles, canon("*CC"))
        self.assertIn("_raw_round_trip", logs.output[0])

    def test_nothing_works(self):
        def refuse(frag):
            raise RuntimeError("refused")

        with mock.patch.object(fragment_extractor, "_SANITIZERS", (refuse,)):
            self.assertIsNone(fragment_extractor._sanitize_fragment(Chem.MolFromSmiles("*CC")))


if __name__ == "__main__":
    unittest.main()
