"""Tests for BIMBAM files, sample alignment and result writers."""

import numpy as np
import pytest

from lmmscan.errors import DimensionError
from lmmscan.io import (
    BimbamGenotypes,
    align_samples,
    read_bimbam_genotypes,
    read_bimbam_phenotypes,
    write_bimbam_genotypes,
    write_bimbam_phenotypes,
)
from lmmscan.lmm.io import format_scan_lines, write_permutation_lods, write_scan_results
from lmmscan.lmm.scan import ScanResult


@pytest.mark.tier0
class TestBimbamGenotypes:
    def test_read(self, tmp_path):
        path = tmp_path / "geno.txt"
        path.write_text("rs1, A, G, 0, 1, 2\nrs2\tC\tT\t1.5\tNA\t0.2\n\n")

        geno = read_bimbam_genotypes(path)

        assert geno.marker_names == ["rs1", "rs2"]
        assert geno.minor_alleles == ["A", "C"]
        assert geno.major_alleles == ["G", "T"]
        assert geno.genotypes.shape == (3, 2)
        assert (geno.n_samples, geno.n_markers) == (3, 2)
        np.testing.assert_array_equal(geno.genotypes[:, 0], [0.0, 1.0, 2.0])
        assert np.isnan(geno.genotypes[1, 1])

    def test_write_then_read(self, tmp_path):
        geno = BimbamGenotypes(
            marker_names=["m1", "m2", "m3"],
            minor_alleles=["A", "C", "G"],
            major_alleles=["T", "G", "A"],
            genotypes=np.array([[0.0, 1.25, np.nan], [2.0, 0.5, 1.0]]),
        )
        path = tmp_path / "out" / "geno.txt"

        write_bimbam_genotypes(geno, path)
        loaded = read_bimbam_genotypes(path)

        assert loaded.marker_names == geno.marker_names
        np.testing.assert_array_equal(loaded.genotypes, geno.genotypes)

    def test_ragged_rows(self, tmp_path):
        path = tmp_path / "geno.txt"
        path.write_text("rs1 A G 0 1 2\nrs2 C T 1 0\n")
        with pytest.raises(DimensionError, match="rs2"):
            read_bimbam_genotypes(path)

    def test_too_few_fields(self, tmp_path):
        path = tmp_path / "geno.txt"
        path.write_text("rs1 A G\n")
        with pytest.raises(ValueError, match="fields"):
            read_bimbam_genotypes(path)

    def test_unparseable_value(self, tmp_path):
        path = tmp_path / "geno.txt"
        path.write_text("rs1 A G 0 x 2\n")
        with pytest.raises(ValueError, match="'x'"):
            read_bimbam_genotypes(path)

    def test_empty_file(self, tmp_path):
        path = tmp_path / "geno.txt"
        path.write_text("")
        with pytest.raises(ValueError, match="empty"):
            read_bimbam_genotypes(path)

    def test_annotation_length_mismatch(self, tmp_path):
        geno = BimbamGenotypes(["m1"], ["A"], ["T"], np.zeros((2, 2)))
        with pytest.raises(DimensionError):
            write_bimbam_genotypes(geno, tmp_path / "geno.txt")


@pytest.mark.tier0
class TestBimbamPhenotypes:
    def test_missing_codes(self, tmp_path):
        path = tmp_path / "pheno.txt"
        path.write_text("1.5 2\nNA 3\n-9 4.25\n")

        pheno = read_bimbam_phenotypes(path)

        assert pheno.shape == (3, 2)
        assert np.isnan(pheno[1, 0])
        assert np.isnan(pheno[2, 0])
        assert pheno[2, 1] == 4.25

    def test_write_then_read(self, tmp_path):
        pheno = np.array([0.125, np.nan, -3.5])
        path = tmp_path / "pheno.txt"

        write_bimbam_phenotypes(pheno, path)
        loaded = read_bimbam_phenotypes(path)

        np.testing.assert_array_equal(loaded[:, 0], pheno)

    def test_ragged_rows(self, tmp_path):
        path = tmp_path / "pheno.txt"
        path.write_text("1 2\n3\n")
        with pytest.raises(DimensionError):
            read_bimbam_phenotypes(path)


@pytest.mark.tier0
class TestAlignSamples:
    def test_genotype_order(self):
        pheno_idx, geno_idx = align_samples(["b", "a", "x"], ["a", "b", "c"])

        np.testing.assert_array_equal(pheno_idx, [1, 0])
        np.testing.assert_array_equal(geno_idx, [0, 1])

    def test_identical_ids(self):
        ids = ["s1", "s2", "s3"]
        pheno_idx, geno_idx = align_samples(ids, ids)
        np.testing.assert_array_equal(pheno_idx, [0, 1, 2])
        np.testing.assert_array_equal(geno_idx, [0, 1, 2])

    def test_duplicates_rejected(self):
        with pytest.raises(ValueError, match="Duplicate"):
            align_samples(["a", "a"], ["a"])
        with pytest.raises(ValueError, match="Duplicate"):
            align_samples(["a"], ["a", "a"])

    def test_no_overlap(self):
        with pytest.raises(ValueError, match="no sample IDs"):
            align_samples(["a"], ["b"])


@pytest.mark.tier0
class TestResultWriters:
    def test_null_mode_table(self, tmp_path):
        result = ScanResult(
            sigma2=1.0,
            h2=0.3,
            lod=np.array([0.5, np.nan]),
            failed=np.array([False, True]),
        )
        path = tmp_path / "res" / "scan.tsv"

        write_scan_results(result, path, marker_names=["rs1", "rs2"])

        lines = path.read_text().splitlines()
        assert lines[0] == "marker\tlod"
        assert lines[1] == "rs1\t5.000000e-01"
        assert lines[2] == "rs2\tNA"

    def test_alt_mode_has_pve(self):
        result = ScanResult(
            sigma2=1.0, h2=0.3, lod=np.array([2.0]), pve=np.array([0.25])
        )
        lines = format_scan_lines(result)
        assert lines[0] == "marker\tlod\tpve"
        assert lines[1] == "marker1\t2.000000e+00\t2.500000e-01"

    def test_marker_name_mismatch(self):
        result = ScanResult(sigma2=1.0, h2=0.3, lod=np.zeros(3))
        with pytest.raises(DimensionError):
            format_scan_lines(result, ["a", "b"])

    def test_permutation_matrix(self, tmp_path):
        path = tmp_path / "perms.tsv"
        write_permutation_lods(np.array([[0.0, 1.5], [2.0, 0.25]]), path)

        rows = [line.split("\t") for line in path.read_text().splitlines()]
        assert len(rows) == 2
        assert [float(v) for v in rows[1]] == [2.0, 0.25]

    def test_permutation_matrix_must_be_2d(self, tmp_path):
        with pytest.raises(DimensionError):
            write_permutation_lods(np.zeros(3), tmp_path / "perms.tsv")
