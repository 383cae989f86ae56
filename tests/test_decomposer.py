"""
Tests for the RGroupDecomposition facade
"""

import threading
import unittest
import sys
from pathlib import Path
from unittest import mock

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from rdkit import Chem

from rgdecomp import (
    AlreadyFinalizedError,
    ChemistryError,
    ConfigurationError,
    DecompositionState,
    DecompositionStateError,
    MatchingStrategy,
    NoMatchError,
    RGroupDecomposition,
    rgroup_decompose,
)
from rgdecomp.decomposition import label_assigner

DATA = Path(__file__).parent / "data"
PARA_CORE = "[*:1]c1ccc([*:2])cc1"

TAUTOMER_OPTIONS = {
    "matchingStrategy": "GreedyChunks",
    "scoreMethod": "FingerprintVariance",
    "onlyMatchAtRGroups": False,
    "removeHydrogensPostMatch": True,
    "removeAllHydrogenRGroups": True,
    "allowMultipleRGroupsOnUnlabelled": True,
    "doTautomers": True,
}


def canon(smiles):
    return Chem.MolToSmiles(Chem.MolFromSmiles(smiles))


def strip_maps(smiles):
    mol = Chem.MolFromSmiles(smiles)
    for atom in mol.GetAtoms():
        atom.SetAtomMapNum(0)
    return Chem.MolToSmiles(mol)


class TestTautomerDecomposition(unittest.TestCase):
    """Test a pyridone core against a hydroxypyridine and a pyridone"""

    def setUp(self):
        core = Chem.MolFromMolBlock((DATA / "pyridone_core.mol").read_text())
        self.decomp = RGroupDecomposition([core], TAUTOMER_OPTIONS)

    def test_both_molecules_decompose(self):
        self.assertEqual(self.decomp.add(Chem.MolFromSmiles("Cc1cnc(O)cc1Cl")), 0)
        self.assertEqual(self.decomp.add(Chem.MolFromSmiles("CC1=CNC(=O)C=C1F")), 1)
        self.assertTrue(self.decomp.process())

        rows = self.decomp.as_rows()
        self.assertEqual(len(rows), 2)
        self.assertEqual(rows[0]["R1"], canon("Cl[*:1]"))
        self.assertEqual(rows[0]["R2"], canon("C[*:2]"))
        self.assertEqual(rows[1]["R1"], canon("F[*:1]"))
        self.assertEqual(rows[1]["R2"], canon("C[*:2]"))
        for r in rows:
            self.assertEqual(sorted(r), ["Core", "R1", "R2"])
            self.assertIn("[*:1]", r["Core"])
            self.assertIn("[*:2]", r["Core"])

    def test_unlabeled_core_gives_equivalent_rows(self):
        decomp = RGroupDecomposition(["O=c1cc(*)c(*)c[nH]1"], TAUTOMER_OPTIONS)
        self.assertEqual(decomp.add("Cc1cnc(O)cc1Cl"), 0)
        self.assertEqual(decomp.add("CC1=CNC(=O)C=C1F"), 1)
        self.assertTrue(decomp.process())
        rows = decomp.as_rows()
        self.assertEqual(len(rows), 2)
        self.assertEqual(decomp.result_table.labels(), ["R1", "R2"])
        self.assertEqual(strip_maps(rows[0]["R1"]), canon("*Cl"))
        self.assertEqual(strip_maps(rows[1]["R1"]), canon("*F"))
        self.assertEqual(rows[0]["R2"], rows[1]["R2"])

    def test_without_tautomers_hydroxypyridine_is_rejected(self):
        core = Chem.MolFromMolBlock((DATA / "pyridone_core.mol").read_text())
        decomp = RGroupDecomposition([core], dict(TAUTOMER_OPTIONS, doTautomers=False))
        with self.assertRaises(NoMatchError):
            decomp.add("Cc1cnc(O)cc1Cl")
        self.assertEqual(decomp.add("CC1=CNC(=O)C=C1F"), 0)


class TestAdd(unittest.TestCase):
    """Test molecule registration"""

    def setUp(self):
        self.decomp = RGroupDecomposition([PARA_CORE])

    def test_rejected_molecule_keeps_indices_dense(self):
        self.assertEqual(self.decomp.add("Cc1ccc(Cl)cc1"), 0)
        with self.assertRaises(NoMatchError):
            self.decomp.add("C1CCCCC1")
        self.assertEqual(self.decomp.add("CCc1ccc(F)cc1"), 1)
        self.assertEqual(len(self.decomp), 2)

    def test_unparsable_molecule(self):
        with self.assertRaises(ChemistryError):
            self.decomp.add("C1CC(")
        self.assertEqual(len(self.decomp), 0)

    def test_add_many(self):
        indices = self.decomp.add_many(
            ["Cc1ccccc1", "C1CCCCC1", "C1CC(", "CCc1ccccc1"],
            n_workers=2,
        )
        self.assertEqual(indices, [0, None, None, 1])
        self.assertEqual(self.decomp.molecule_smiles(1), canon("CCc1ccccc1"))

    def test_add_without_cores(self):
        with self.assertRaises(DecompositionStateError):
            RGroupDecomposition().add("Cc1ccccc1")


class TestStateMachine(unittest.TestCase):
    """Test operations called out of order"""

    def setUp(self):
        self.decomp = RGroupDecomposition([PARA_CORE])
        self.decomp.add("Cc1ccc(Cl)cc1")

    def test_results_before_process(self):
        with self.assertRaises(DecompositionStateError):
            self.decomp.rows()
        with self.assertRaises(DecompositionStateError):
            self.decomp.as_columns()

    def test_finalized_rejects_changes(self):
        self.assertTrue(self.decomp.process())
        self.assertEqual(self.decomp.state, DecompositionState.FINALIZED)
        with self.assertRaises(AlreadyFinalizedError):
            self.decomp.add("Cc1ccccc1")
        with self.assertRaises(AlreadyFinalizedError):
            self.decomp.add_many(["Cc1ccccc1"])
        with self.assertRaises(AlreadyFinalizedError):
            self.decomp.configure({"matchingStrategy": "Greedy"})
        with self.assertRaises(AlreadyFinalizedError):
            self.decomp.add_core("[*:1]C1CCCCC1")

    def test_process_is_idempotent(self):
        first = self.decomp.process()
        rows = self.decomp.as_rows()
        self.assertEqual(self.decomp.process(), first)
        self.assertEqual(self.decomp.as_rows(), rows)

    def test_configure_after_add(self):
        with self.assertRaises(DecompositionStateError):
            self.decomp.configure(matchingStrategy="Greedy")

    def test_add_core_after_add(self):
        with self.assertRaises(DecompositionStateError):
            self.decomp.add_core("[*:1]C1CCCCC1")

    def test_configure_rejects_unknown_option(self):
        decomp = RGroupDecomposition([PARA_CORE])
        with self.assertRaises(ConfigurationError):
            decomp.configure({"bogus": True})
        params = decomp.configure(matchingStrategy="Exhaustive", scoreMethod="Match")
        self.assertEqual(params.effective_chunk_size, 0)


class TestResults(unittest.TestCase):
    """Test result tables"""

    SERIES = ["Cc1ccccc1", "CCc1ccccc1", "Clc1ccccc1"]

    def _run(self, molecules, options=None):
        decomp = RGroupDecomposition([PARA_CORE], options)
        for smiles in molecules:
            decomp.add(smiles)
        self.assertTrue(decomp.process())
        return decomp

    def test_hydrogen_only_label_removed(self):
        decomp = self._run(self.SERIES, {"onlyMatchAtRGroups": True})
        labels = decomp.result_table.labels()
        self.assertEqual(len(labels), 1)
        for row in decomp.rows():
            self.assertEqual(row.labels, labels)
            self.assertNotIn("[H]", row.rgroups[labels[0]])

    def test_hydrogen_only_label_kept(self):
        options = {"onlyMatchAtRGroups": True, "removeAllHydrogenRGroups": False}
        decomp = self._run(self.SERIES, options)
        self.assertEqual(decomp.result_table.labels(), ["R1", "R2"])
        hydrogen_cells = 0
        for row in decomp.rows():
            self.assertEqual(row.labels, ["R1", "R2"])
            hydrogen_cells += sum(1 for v in row.rgroups.values() if v.startswith("[H]"))
        self.assertEqual(hydrogen_cells, 3)

    def test_unlabeled_point_gets_next_id(self):
        decomp = RGroupDecomposition(["[*:3]c1ccc(*)cc1"], {"onlyMatchAtRGroups": True})
        decomp.add("Cc1ccc(Cl)cc1")
        self.assertTrue(decomp.process())
        self.assertEqual(decomp.result_table.labels(), ["R3", "R4"])
        (row,) = decomp.as_rows()
        self.assertIn("[*:3]", row["Core"])
        self.assertIn("[*:4]", row["Core"])
        self.assertIn("[*:3]", row["R3"])
        self.assertIn("[*:4]", row["R4"])
        self.assertEqual(
            {strip_maps(row["R3"]), strip_maps(row["R4"])},
            {canon("*C"), canon("*Cl")},
        )

    def test_as_columns(self):
        decomp = self._run(["Cc1ccc(Cl)cc1", "Cc1ccccc1"], {"onlyMatchAtRGroups": True})
        columns = decomp.as_columns()
        self.assertEqual(set(columns), {"Core", "R1", "R2"})
        for values in columns.values():
            self.assertEqual(len(values), 2)

    def test_deterministic(self):
        molecules = ["Cc1ccc(Cl)cc1", "CCc1ccc(F)cc1", "Oc1ccc(Br)cc1", "Nc1ccccc1"]
        first = self._run(molecules).as_rows()
        second = self._run(molecules).as_rows()
        self.assertEqual(first, second)

    def test_rows_follow_registration_order(self):
        decomp = self._run(["Cc1ccc(Cl)cc1", "CCc1ccc(F)cc1", "Oc1ccc(Br)cc1"])
        self.assertEqual([row.index for row in decomp.rows()], [0, 1, 2])

    def test_strategies_agree_on_easy_series(self):
        molecules = ["Cc1ccc(Cl)cc1", "Cc1ccc(F)cc1"]
        scores = []
        for strategy in ("Greedy", "Pairwise", "GreedyChunks", "Exhaustive"):
            decomp = self._run(molecules, {"matchingStrategy": strategy, "onlyMatchAtRGroups": True})
            scores.append(decomp.score)
            for row in decomp.as_rows():
                self.assertIn(canon("*C"), {strip_maps(row["R1"]), strip_maps(row["R2"])})
        for score in scores[1:]:
            self.assertAlmostEqual(score, scores[0])

    def test_to_dict(self):
        decomp = self._run(["Cc1ccc(Cl)cc1", "Cc1ccccc1"])
        summary = decomp.result_table.to_dict()
        self.assertEqual(summary["labels"], ["R1", "R2"])
        self.assertEqual([row["index"] for row in summary["rows"]], [0, 1])
        first = decomp.as_rows()[0]
        self.assertEqual(summary["rows"][0]["core_smiles"], first.pop("Core"))
        self.assertEqual(summary["rows"][0]["rgroups"], first)

    def test_score_property(self):
        decomp = self._run(["Cc1ccc(Cl)cc1"])
        self.assertEqual(decomp.score, 0.0)


class TestPartialFailure(unittest.TestCase):
    """Test molecules that match a core but cannot be labelled"""

    def test_unlabelled_molecule_is_left_out(self):
        real_assign = label_assigner.assign

        def assign_except_first(core, target, match, sites, params, molecule_index=0):
            if molecule_index == 0:
                return iter(())
            return real_assign(core, target, match, sites, params, molecule_index)

        decomp = RGroupDecomposition([PARA_CORE])
        decomp.add("Cc1ccc(Cl)cc1")
        decomp.add("CCc1ccc(F)cc1")
        with mock.patch("rgdecomp.decomposition.decomposer.assign", side_effect=assign_except_first):
            self.assertFalse(decomp.process())
        rows = decomp.rows()
        self.assertEqual([row.index for row in rows], [1])

    def test_carbocation_has_no_decomposition(self):
        decomp = RGroupDecomposition()
        decomp.add_core("CC(C)C", attachment_points=[(1, 1)])
        decomp.add("CC(C)(C)C")
        decomp.add("C[C+](C)C")
        self.assertFalse(decomp.process())
        (row,) = decomp.rows()
        self.assertEqual(row.index, 0)
        self.assertEqual(row.rgroups["R1"], canon("C[*:1]"))


class TestAtomOrder(unittest.TestCase):
    """Test that the way a molecule is written does not change its row"""

    def _rows(self, core, molecules, options=None):
        decomp = RGroupDecomposition([core], options)
        for smiles in molecules:
            decomp.add(smiles)
        self.assertTrue(decomp.process())
        return decomp.as_rows()

    def test_single_label_core(self):
        writings = ["Cc1ccccc1", "c1ccc(C)cc1", "c1cc(C)ccc1", "c1ccccc1C", "C1=CC=CC=C1C"]
        for smiles in writings:
            (row,) = self._rows("[*:1]c1ccccc1", [smiles])
            self.assertEqual(row["R1"], canon("C[*:1]"))
            self.assertEqual(sorted(row), ["Core", "R1"])
            self.assertIn("[*:1]", row["Core"])

    def test_para_core_greedy(self):
        for smiles in ("Cc1ccc(Cl)cc1", "c1cc(C)ccc1Cl", "Clc1ccc(C)cc1", "c1c(Cl)ccc(C)c1"):
            (row,) = self._rows(PARA_CORE, [smiles], {"matchingStrategy": "Greedy"})
            self.assertEqual(sorted(row), ["Core", "R1", "R2"])
            self.assertEqual(row["R1"], canon("C[*:1]"))
            self.assertEqual(row["R2"], canon("Cl[*:2]"))

    def test_series_rows_match(self):
        written = ["Cc1ccc(Cl)cc1", "CCc1ccc(F)cc1", "Oc1ccc(Br)cc1", "Nc1ccccc1"]
        rewritten = ["c1cc(C)ccc1Cl", "Fc1ccc(cc1)CC", "c1c(Br)ccc(O)c1", "c1cccc(N)c1"]
        for strategy in ("Greedy", "GreedyChunks", "Exhaustive"):
            options = {"matchingStrategy": strategy}
            first = self._rows(PARA_CORE, written, options)
            self.assertEqual(self._rows(PARA_CORE, rewritten, options), first)
            for row in first:
                self.assertIn("R1", row)
                self.assertIn("R2", row)

    def test_ring_bridging_two_labels(self):
        core = "[*:1]c1ccccc1[*:2]"
        bridge = canon("[*:1]CCCC[*:2]")
        for smiles in ("c1ccc2c(c1)CCCC2", "C1CCc2ccccc2C1", "c1cc2CCCCc2cc1"):
            (row,) = self._rows(core, [smiles])
            self.assertEqual(sorted(row), ["Core", "R1", "R2"])
            self.assertEqual(row["R1"], bridge)
            self.assertEqual(row["R2"], bridge)
            self.assertIn("[*:1]", row["Core"])
            self.assertIn("[*:2]", row["Core"])


class TestConcurrentAdd(unittest.TestCase):
    """Test adding molecules from several threads"""

    MOLECULES = [
        "Cc1ccc(Cl)cc1", "CCc1ccc(F)cc1", "Oc1ccc(Br)cc1", "Nc1ccccc1",
        "COc1ccc(C)cc1", "Cc1ccccc1", "Fc1ccc(F)cc1", "CCCc1ccc(Cl)cc1",
    ]

    def test_threads_get_distinct_indices(self):
        decomp = RGroupDecomposition([PARA_CORE])
        indices = {}
        errors = []

        def worker(smiles):
            try:
                indices[smiles] = decomp.add(smiles)
            except Exception as exc:  # collected and checked below
                errors.append(exc)

        threads = [threading.Thread(target=worker, args=(smi,)) for smi in self.MOLECULES]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])
        self.assertEqual(sorted(indices.values()), list(range(len(self.MOLECULES))))
        for smiles, index in indices.items():
            self.assertEqual(decomp.molecule_smiles(index), canon(smiles))
        self.assertTrue(decomp.process())
        self.assertEqual([row.index for row in decomp.rows()], list(range(len(self.MOLECULES))))

    def test_options_changed_while_matching(self):
        decomp = RGroupDecomposition([PARA_CORE])
        real_match = decomp._match
        strategies = []

        def match_then_configure(molecule, params, cores):
            strategies.append(params.matching_strategy)
            if len(strategies) == 1:
                decomp.configure(matchingStrategy="Exhaustive")
            return real_match(molecule, params, cores)

        with mock.patch.object(decomp, "_match", side_effect=match_then_configure):
            self.assertEqual(decomp.add("Cc1ccc(Cl)cc1"), 0)
        self.assertEqual(strategies, [MatchingStrategy.GREEDY_CHUNKS, MatchingStrategy.EXHAUSTIVE])
        self.assertEqual(len(decomp), 1)

    def test_core_added_while_matching(self):
        decomp = RGroupDecomposition([PARA_CORE])
        real_match = decomp._match
        core_counts = []

        def match_then_add_core(molecule, params, cores):
            core_counts.append(len(cores))
            if len(core_counts) == 1:
                decomp.add_core("[*:1]C1CCCCC1")
            return real_match(molecule, params, cores)

        with mock.patch.object(decomp, "_match", side_effect=match_then_add_core):
            self.assertEqual(decomp.add_many(["Cc1ccc(Cl)cc1"], n_workers=1), [0])
        self.assertEqual(core_counts, [1, 2])


class TestOneShot(unittest.TestCase):
    """Test the rgroup_decompose helper"""

    def test_unmatched_positions(self):
        rows, unmatched = rgroup_decompose(
            [PARA_CORE],
            ["Cc1ccc(Cl)cc1", "C1CCCCC1", "CCc1ccc(F)cc1"],
        )
        self.assertEqual(len(rows), 2)
        self.assertEqual(unmatched, [1])

    def test_columns(self):
        columns, unmatched = rgroup_decompose([PARA_CORE], ["Cc1ccc(Cl)cc1"], as_rows=False)
        self.assertEqual(unmatched, [])
        self.assertEqual(len(columns["Core"]), 1)


if __name__ == "__main__":
    unittest.main()
