"""Tests for serialization and round trips through an independent parser."""

import gzip
import io

import pytest
from cyvcf2 import VCF

from vcf_io.document import VCFDocument
from vcf_io.models import Declaration, Header, Record, SampleEntry
from vcf_io.writer import (
    VCFWriter,
    format_header_lines,
    format_info,
    format_meta_line,
    format_record,
)


def make_record(**overrides) -> Record:
    values = {
        "chrom": "chr1",
        "pos": 100,
        "id": ["rs1", "rs2"],
        "ref": "A",
        "alt": ["G", "T"],
        "qual": "30",
        "filter": ["q10", "p20"],
        "info": {"DP": ["10"], "DB": [], "AF": ["0.1", "0.2"]},
        "format": ["GT", "DP"],
        "sample": [
            SampleEntry(name="S2", order=1, attrs={"GT": ["1/1"], "DP": ["7"]}),
            SampleEntry(name="S1", order=0, attrs={"GT": ["0/1"]}),
        ],
    }
    values.update(overrides)
    return Record(**values)


class TestFormatting:
    def test_format_record(self):
        line = format_record(make_record())
        assert line.split("\t") == [
            "chr1", "100", "rs1;rs2", "A", "G,T", "30", "q10;p20",
            "DP=10;DB;AF=0.1,0.2", "GT:DP", "0/1:.", "1/1:7",
        ]

    def test_record_without_samples(self):
        line = format_record(make_record(format=[], sample=[], info={}))
        assert line.split("\t")[7:] == ["."]

    def test_format_info_flags(self):
        assert format_info({"DB": [], "DP": ["3"]}) == "DB;DP=3"
        assert format_info({}) == "."

    def test_format_meta_line(self):
        declaration = Declaration(attributes={"ID": "DP", "Number": "1", "Description": '"d"'})
        assert format_meta_line("INFO", declaration) == '##INFO=<ID=DP,Number=1,Description="d">'
        assert format_meta_line("source", "me") == "##source=me"

    def test_header_emission_order(self):
        header = Header(
            meta={"source": "me", "fileformat": "VCFv4.2", "custom": "x"},
            declarations={
                "FILTER": [Declaration(attributes={"ID": "q10", "Description": '"q"'})],
                "INFO": [],
                "contig": [Declaration(attributes={"ID": "chr1"})],
            },
            other={"tool": ["v1"]},
            columns=["#CHROM", "POS", "ID", "REF", "ALT", "QUAL", "FILTER", "INFO"],
        )
        assert format_header_lines(header) == [
            "##fileformat=VCFv4.2",
            "##source=me",
            "##contig=<ID=chr1>",
            '##FILTER=<ID=q10,Description="q">',
            "##custom=x",
            "##tool=v1",
            "#CHROM\tPOS\tID\tREF\tALT\tQUAL\tFILTER\tINFO",
        ]


class TestVCFWriter:
    def test_invalid_mode(self, tmp_path):
        with pytest.raises(ValueError, match="mode"):
            VCFWriter(tmp_path / "out.vcf", mode="overwrite")

    def test_write_outside_context(self, tmp_path):
        with pytest.raises(RuntimeError):
            VCFWriter(tmp_path / "out.vcf").write("x")

    def test_new_then_append(self, tmp_path):
        path = tmp_path / "out.vcf"
        with VCFWriter(path) as writer:
            writer.write_records([make_record()])
        with VCFWriter(path, mode="append") as writer:
            writer.write_records([make_record(pos=200)])
        lines = path.read_text().splitlines()
        assert [line.split("\t")[1] for line in lines] == ["100", "200"]

    def test_new_truncates(self, tmp_path):
        path = tmp_path / "out.vcf"
        path.write_text("old\n")
        with VCFWriter(path) as writer:
            writer.write("new\n")
        assert path.read_text() == "new\n"

    def test_gzip_output(self, tmp_path):
        path = tmp_path / "out.vcf.gz"
        with VCFWriter(path) as writer:
            count = writer.write_records([make_record()])
        assert count == 1
        with gzip.open(path, "rt") as f:
            assert f.read().startswith("chr1\t100")


class TestRoundTrip:
    """Parse, validate, write, and read the output again."""

    def _validated(self, source):
        document = VCFDocument(file=source)
        assert document.parse_and_validate() == []
        return document

    @pytest.mark.parametrize("fixture", ["basic_vcf_file", "trio_vcf_file", "multiallelic_vcf_file"])
    def test_round_trip_preserves_records(self, fixture, request, tmp_path):
        original = self._validated(request.getfixturevalue(fixture))
        out = tmp_path / "round_trip.vcf"
        original.write(out)
        again = self._validated(out)

        assert len(again.records) == len(original.records)
        assert [r.identity_key for r in again.records] == [r.identity_key for r in original.records]
        for before, after in zip(original.records, again.records, strict=True):
            assert set(after.info) == set(before.info)
            assert after.format == before.format

    def test_output_is_byte_identical(self, basic_vcf_file, tmp_path):
        out = tmp_path / "copy.vcf"
        self._validated(basic_vcf_file).write(out)
        assert out.read_text() == basic_vcf_file.read_text()

    def test_gzip_round_trip(self, trio_vcf_file, tmp_path):
        out = tmp_path / "trio.vcf.gz"
        original = self._validated(trio_vcf_file)
        original.write(out)
        again = self._validated(out)
        assert again.sample_names == ["CHILD", "FATHER", "MOTHER"]
        assert [r.identity_key for r in again.records] == [r.identity_key for r in original.records]

    def test_cyvcf2_reads_output(self, trio_vcf_file, tmp_path):
        out = tmp_path / "trio_out.vcf"
        document = self._validated(trio_vcf_file)
        document.write(out)

        vcf = VCF(str(out))
        assert vcf.samples == ["CHILD", "FATHER", "MOTHER"]
        sites = []
        depths = []
        for variant in vcf:
            sites.append((variant.CHROM, variant.POS, variant.REF, variant.ALT))
            depths.append(variant.format("DP").flatten().tolist())
            if variant.POS == 1000:
                assert variant.INFO.get("DP") == 60
        vcf.close()

        assert sites == [(r.chrom, r.pos, r.ref, r.alt) for r in document.records]
        assert depths == [[20, 22, 18], [30, 25, 28]]

    def test_write_to_stream(self, basic_vcf_file):
        buffer = io.StringIO()
        count = self._validated(basic_vcf_file).write(buffer)
        assert count == 3
        assert buffer.getvalue() == basic_vcf_file.read_text()
