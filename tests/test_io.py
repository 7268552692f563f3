"""
Tests for file readers/writers and the command-line interface.
"""

import shutil
import tempfile
import unittest
from pathlib import Path

import pandas as pd

from lineagedesignator import io
from lineagedesignator.cli import main
from lineagedesignator.config import load_config_from_file

NEWICK = "((t1,t2,t3,t4,t5,t6)100,((t7,t8)40,(t9,t10)30,(t11,t12)20)10);\n"
WIDTH = 20


def write_fasta(path, sequences):
    with open(path, "w") as f:
        for seq_id, seq in sequences.items():
            f.write(f">{seq_id}\n{seq}\n")


class FileFixture(unittest.TestCase):
    """Writes a complete set of designation inputs to a temp directory."""

    def setUp(self):
        self.tmpdir = Path(tempfile.mkdtemp())

        self.tree_path = self.tmpdir / "tree.nwk"
        self.tree_path.write_text(NEWICK)

        alignment = {f"t{i}": "A" * WIDTH for i in range(1, 13)}
        for i in range(1, 7):
            alignment[f"t{i}"] = "CCC" + "A" * (WIDTH - 3)
        self.alignment_path = self.tmpdir / "aligned.fasta"
        write_fasta(self.alignment_path, alignment)

        self.ancestral_path = self.tmpdir / "ancestral.fasta"
        write_fasta(self.ancestral_path, {f"NODE_{i:07d}": "A" * WIDTH for i in range(6)})

        self.metadata_path = self.tmpdir / "metadata.csv"
        pd.DataFrame({
            "ID": list(alignment),
            "year": [2010] * 12,
            "country": ["Brazil"] * 6 + [""] * 6,
            "assignment": ["Cosmopolitan"] * 12,
        }).to_csv(self.metadata_path, index=False)

    def tearDown(self):
        shutil.rmtree(self.tmpdir)


class TestReaders(FileFixture):
    """Test input readers."""

    def test_read_tree(self):
        tree = io.read_tree(self.tree_path)
        self.assertEqual(tree.n_tips, 12)
        self.assertEqual(tree.support(14), 100.0)

    def test_read_tree_bad_format(self):
        with self.assertRaises(ValueError):
            io.read_tree(self.tree_path, "fasta")

    def test_read_alignment(self):
        alignment = io.read_alignment(self.alignment_path)
        self.assertEqual(len(alignment), 12)
        self.assertEqual(alignment["t1"], "CCC" + "A" * (WIDTH - 3))

    def test_duplicate_fasta_ids(self):
        path = self.tmpdir / "dupes.fasta"
        path.write_text(">a\nACGT\n>a\nACGT\n")
        with self.assertRaises(ValueError):
            io.read_alignment(path)

    def test_read_metadata(self):
        metadata = io.read_metadata(self.metadata_path)
        self.assertEqual(len(metadata), 12)
        self.assertTrue(pd.isna(metadata["country"].iloc[6]))

    def test_read_metadata_tsv(self):
        path = self.tmpdir / "metadata.tsv"
        pd.read_csv(self.metadata_path).to_csv(path, sep="\t", index=False)
        self.assertEqual(len(io.read_metadata(path)), 12)

    def test_metadata_missing_column(self):
        path = self.tmpdir / "bad.csv"
        pd.DataFrame({"ID": ["t1"], "year": [2010]}).to_csv(path, index=False)
        with self.assertRaises(ValueError):
            io.read_metadata(path)

    def test_missing_files(self):
        with self.assertRaises(FileNotFoundError):
            io.read_tree(self.tmpdir / "absent.nwk")
        with self.assertRaises(FileNotFoundError):
            io.read_ancestral(self.tmpdir / "absent.fasta")


class TestCommandLine(FileFixture):
    """Test the lineagedesignator command."""

    def args(self, *extra):
        return [
            "--tree", str(self.tree_path),
            "--alignment", str(self.alignment_path),
            "--ancestral", str(self.ancestral_path),
            "--metadata", str(self.metadata_path),
            "--log-level", "WARNING",
            *extra,
        ]

    def test_writes_sequence_table(self):
        output = self.tmpdir / "out" / "lineages.tsv"
        summary = self.tmpdir / "out" / "summary.csv"
        code = main(self.args("--output", str(output), "--summary", str(summary)))
        self.assertEqual(code, 0)

        table = pd.read_csv(output, sep="\t", keep_default_na=False)
        self.assertEqual(
            list(table.columns), ["ID", "n_N", "n_gap", "length", "year", "lineage", "previous"]
        )
        lineages = dict(zip(table["ID"], table["lineage"]))
        self.assertEqual(lineages["t1"], "Cosmopolitan_A1")
        self.assertEqual(lineages["t12"], "NA")

        summary_table = pd.read_csv(summary)
        self.assertEqual(summary_table["lineage"].tolist(), ["Cosmopolitan_A1"])
        self.assertEqual(summary_table["countries"].iloc[0], "Brazil")

    def test_config_file_thresholds(self):
        config_path = self.tmpdir / "run.yaml"
        config_path.write_text("designation:\n  min_tips: 7\n")
        output = self.tmpdir / "lineages.tsv"
        code = main(self.args("--output", str(output), "--config", str(config_path)))
        self.assertEqual(code, 0)
        table = pd.read_csv(output, sep="\t", keep_default_na=False)
        self.assertEqual(set(table["lineage"]), {"NA"})

    def test_save_config(self):
        saved = self.tmpdir / "out" / "run_config.yaml"
        output = self.tmpdir / "lineages.tsv"
        code = main(self.args("--output", str(output), "--min-support", "80",
                              "--save-config", str(saved)))
        self.assertEqual(code, 0)
        cfg = load_config_from_file(saved)
        self.assertEqual(cfg.designation.min_support, 80)
        self.assertEqual(cfg.designation.max_label_depth, 2)
        self.assertEqual(cfg.log_level, "WARNING")

    def test_missing_input_file(self):
        args = self.args()
        args[1] = str(self.tmpdir / "absent.nwk")
        self.assertEqual(main(args), 1)

    def test_designation_error_exit_code(self):
        write_fasta(self.ancestral_path, {"NODE_0000000": "A" * WIDTH})
        output = self.tmpdir / "lineages.tsv"
        self.assertEqual(main(self.args("--output", str(output))), 1)
        self.assertFalse(output.exists())


if __name__ == '__main__':
    unittest.main()
