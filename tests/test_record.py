"""Tests for record parsing and validation against a header registry."""

import logging

import pytest
from fixtures.vcf_generator import VCFGenerator
from hypothesis import given, settings
from hypothesis import strategies as st

from vcf_io.errors import ParseError, RecordValidationError, VCFError
from vcf_io.header import VCFHeader
from vcf_io.models import IDENTITY_SEPARATOR, Record, TextRecord, ValidationLevel
from vcf_io.reader import iter_lines
from vcf_io.record import IdAccumulator, RecordValidator, VCFRecords, record_from_text


def make_registry(samples=None, extra_header=None, version="VCFv4.2"):
    header = VCFHeader(validation="basic")
    header.parse(VCFGenerator.header_lines(samples, version, extra_header))
    return header.registry


REGISTRY = make_registry()
CN0_REGISTRY = make_registry(extra_header=['##ALT=<ID=CN0,Description="Copy number 0">'])


def record_line(
    chrom="chr1",
    pos=100,
    id_=".",
    ref="A",
    alt="G",
    qual="30",
    filt="PASS",
    info="DP=10",
    fmt="GT",
    samples=("0/1",),
):
    columns = [chrom, pos, id_, ref, alt, qual, filt, info]
    if fmt is not None:
        columns += [fmt, *samples]
    return "\t".join(str(c) for c in columns)


def check(line, level="strict", registry=REGISTRY) -> Record:
    validator = RecordValidator(registry, ValidationLevel.from_string(level))
    return validator.parse_and_validate(line)


def accepts(line, level, registry=REGISTRY) -> bool:
    try:
        check(line, level, registry)
    except VCFError:
        return False
    return True


class TestRecordFromText:
    """Tests for splitting a line without validation."""

    def test_splits_every_column(self):
        line = "chr1\t100\trs1;rs2\tA\tG,T\t30\tq10;p20\tDP=10;DB\tGT:DP\t0/1:5"
        record = record_from_text(TextRecord(line, 7), ["S1"])
        assert record.chrom == "chr1"
        assert record.pos == "100"
        assert record.id == ["rs1", "rs2"]
        assert record.alt == ["G", "T"]
        assert record.filter == ["q10", "p20"]
        assert record.info == {"DP": ["10"], "DB": []}
        assert record.format == ["GT", "DP"]
        assert record.sample[0].name == "S1"
        assert record.sample[0].attrs == {"GT": ["0/1"], "DP": ["5"]}
        assert record.line_number == 7
        assert record.identity_key == IDENTITY_SEPARATOR.join(["chr1", "100", "A", "G,T"])

    def test_missing_filter_and_info(self):
        record = record_from_text(TextRecord(record_line(filt=".", info=".", fmt=None)))
        assert record.filter == ["."]
        assert record.info == {}
        assert record.format == []
        assert record.sample == []

    def test_sample_without_header_name(self):
        record = record_from_text(TextRecord(record_line()))
        assert record.sample[0].name is None
        assert record.sample[0].order == 0

    @pytest.mark.parametrize(
        "line,message",
        [
            ("", "empty record line"),
            ("   ", "empty record line"),
            ("chr1\t100\t.\tA\tG\t30\tPASS", "at least 8"),
            ("chr1\t100\t.\tA\tG\t30\tPASS\t.\tGT", "without sample columns"),
        ],
    )
    def test_structural_errors(self, line, message):
        with pytest.raises(ParseError, match=message):
            record_from_text(TextRecord(line, 3))

    def test_more_sample_fields_than_format_kept_for_validation(self):
        record = record_from_text(TextRecord(record_line(samples=("0/1:5",))))
        assert record.sample[0].attrs == {"GT": ["0/1"]}
        assert record.sample[0].overflow == ["5"]

    @pytest.mark.parametrize("level", ["basic", "relaxed", "strict"])
    def test_more_sample_fields_than_format_rejected(self, level):
        with pytest.raises(RecordValidationError, match="2 fields found but FORMAT declares 1"):
            check(record_line(samples=("0/1:5",)), level=level)


class TestColumnChecks:
    """Tests for each column stage at the three validation levels."""

    def test_valid_record_is_normalized(self):
        record = check(record_line())
        assert record.pos == 100
        assert record.sample[0].name == "SAMPLE1"
        assert record.identity_key == IDENTITY_SEPARATOR.join(["chr1", "100", "A", "G"])

    def test_pos_zero_accepted(self):
        assert check(record_line(pos=0)).pos == 0

    @pytest.mark.parametrize("pos", ["-1", "1.5", "abc", ""])
    def test_pos_rejected(self, pos):
        for level in ("basic", "relaxed", "strict"):
            assert not accepts(record_line(pos=pos), level)

    def test_negative_pos_in_mapping(self):
        validator = RecordValidator(REGISTRY, ValidationLevel.BASIC)
        with pytest.raises(RecordValidationError, match="0 or positive"):
            validator.parse_and_validate(
                {"CHROM": "chr1", "POS": -3, "ID": ".", "REF": "A", "ALT": "G",
                 "QUAL": ".", "FILTER": "PASS", "INFO": {}}
            )

    def test_pos_within_contig_length(self):
        assert accepts(record_line(chrom="chrM", pos=16570), "strict")
        assert not accepts(record_line(chrom="chrM", pos=16571), "strict")
        assert accepts(record_line(chrom="chrM", pos=16571), "relaxed")

    def test_chrom_colon(self):
        line = record_line(chrom="chr1:2")
        assert accepts(line, "basic")
        assert not accepts(line, "relaxed")

    def test_chrom_not_in_contigs(self):
        line = record_line(chrom="chr9")
        assert accepts(line, "relaxed")
        with pytest.raises(RecordValidationError, match="contig"):
            check(line)

    def test_id_whitespace_rejected_everywhere(self):
        assert not accepts(record_line(id_="rs 1"), "basic")

    def test_id_characters_checked_at_strict(self):
        line = record_line(id_="rs#1")
        assert accepts(line, "relaxed")
        assert not accepts(line, "strict")

    def test_ref_alphabet(self):
        line = record_line(ref="X")
        assert accepts(line, "basic")
        assert not accepts(line, "relaxed")
        assert accepts(record_line(ref="a"), "strict")

    def test_alt_equal_to_ref(self):
        with pytest.raises(RecordValidationError, match="same as REF"):
            check(record_line(ref="A", alt="A"), "basic")

    def test_symbolic_deletion_in_vocabulary(self):
        assert accepts(record_line(alt="<DEL>"), "strict")

    def test_symbolic_allele_must_be_declared(self):
        line = record_line(alt="<CN0>")
        assert accepts(line, "basic")
        assert not accepts(line, "relaxed")
        assert accepts(line, "strict", registry=CN0_REGISTRY)

    @pytest.mark.parametrize("qual,valid", [("30", True), ("30.5", True), ("1e3", True),
                                            (".", True), ("-1", False), ("abc", False)])
    def test_qual(self, qual, valid):
        assert accepts(record_line(qual=qual), "strict") is valid

    def test_filter_missing(self):
        assert check(record_line(filt=".")).filter == ["."]

    def test_filter_declared(self):
        assert check(record_line(filt="q10;p20")).filter == ["q10", "p20"]

    def test_filter_undeclared(self):
        line = record_line(filt="q10;p30")
        assert accepts(line, "basic")
        assert not accepts(line, "relaxed")
        with pytest.raises(RecordValidationError) as exc_info:
            check(line)
        assert exc_info.value.field == "FILTER"
        assert exc_info.value.value == "p30"

    def test_number_a_single_allele(self):
        assert check(record_line(alt="G", info="AF=1")).info == {"AF": ["1"]}

    def test_number_a_mismatch(self):
        with pytest.raises(RecordValidationError, match=r"expected 2 values \(Number=A\), found 1"):
            check(record_line(alt="G,T", info="AF=1"))

    def test_number_r(self):
        assert accepts(record_line(alt="G,T", info="AD=10,5,3"), "strict")
        assert not accepts(record_line(alt="G,T", info="AD=10,5"), "strict")

    def test_missing_value_for_any_number(self):
        assert accepts(record_line(alt="G,T", info="AF=."), "strict")

    def test_undeclared_info_key(self):
        line = record_line(info="XX=1")
        assert accepts(line, "basic")
        with pytest.raises(RecordValidationError, match="not declared"):
            check(line, "relaxed")

    def test_flag_with_value(self):
        with pytest.raises(RecordValidationError, match="flag must not carry a value"):
            check(record_line(info="DB=1"))

    def test_value_missing_for_non_flag(self):
        with pytest.raises(RecordValidationError, match="no values found for key DP"):
            check(record_line(info="DP"))

    def test_info_type(self):
        assert not accepts(record_line(info="DP=abc"), "relaxed")

    def test_gt_must_come_first(self):
        line = record_line(fmt="DP:GT", samples=("5:0/1",))
        assert accepts(line, "basic")
        with pytest.raises(RecordValidationError, match="is not GT"):
            check(line, "relaxed")

    def test_undeclared_format_key(self):
        assert not accepts(record_line(fmt="GT:XX", samples=("0/1:1",)), "relaxed")

    def test_short_sample_padded_at_basic(self):
        line = record_line(fmt="GT:DP", samples=("0/1",))
        record = check(line, "basic")
        assert record.sample[0].attrs == {"GT": ["0/1"], "DP": ["."]}
        with pytest.raises(RecordValidationError, match="no value for key DP"):
            check(line, "relaxed")

    def test_malformed_genotype(self):
        line = record_line(samples=("x/y",))
        assert accepts(line, "basic")
        assert not accepts(line, "relaxed")

    def test_sample_count_must_match_header(self):
        line = record_line(samples=("0/1", "1/1"))
        assert accepts(line, "basic")
        with pytest.raises(RecordValidationError, match="header declares 1"):
            check(line, "relaxed")

    def test_genotype_cardinality_passes_through(self):
        assert accepts(record_line(fmt="GT:PL", samples=("0/1:10",)), "strict")

    def test_sample_value_type(self):
        assert not accepts(record_line(fmt="GT:DP", samples=("0/1:deep",)), "strict")

    def test_errors_carry_line_number(self):
        validator = RecordValidator(REGISTRY, ValidationLevel.STRICT)
        with pytest.raises(RecordValidationError) as exc_info:
            validator.parse_and_validate(TextRecord(record_line(qual="abc"), 42))
        assert exc_info.value.line_number == 42
        assert "line 42" in str(exc_info.value)
        assert "Offending value: abc" in str(exc_info.value)


class TestLevelMonotonicity:
    """A record accepted at a stricter level is accepted at every looser level."""

    @given(
        chrom=st.sampled_from(["chr1", "chr9", "chr 1", "chr1:2", ""]),
        pos=st.sampled_from(["100", "0", "-5", "1e3", "300000000"]),
        id_=st.sampled_from([".", "rs1", "rs 1", "rs#1", "rs1;rs2"]),
        ref=st.sampled_from(["A", "ATG", "X", "a"]),
        alt=st.sampled_from(["G", "A", "<DEL>", "<FOO>", "G,T", "*", "."]),
        qual=st.sampled_from(["30", "30.5", ".", "-1", "abc"]),
        filt=st.sampled_from(["PASS", ".", "q10", "q10;p20", "q10;p30"]),
        info=st.sampled_from([".", "DP=5", "AF=0.5", "AF=0.5,0.1", "DB", "XX=1", "DP=a"]),
        sample_data=st.sampled_from([
            ("GT", ("0/1",)),
            ("GT:DP", ("0/1",)),
            ("GT:DP", ("0/1:5",)),
            ("DP:GT", ("5:0/1",)),
            ("GT", ("0/1", "1/1")),
            ("GT", ("x",)),
        ]),
    )
    @settings(max_examples=300)
    def test_stricter_acceptance_implies_looser(
        self, chrom, pos, id_, ref, alt, qual, filt, info, sample_data
    ):
        fmt, samples = sample_data
        line = record_line(chrom, pos, id_, ref, alt, qual, filt, info, fmt, samples)
        if accepts(line, "strict"):
            assert accepts(line, "relaxed")
        if accepts(line, "relaxed"):
            assert accepts(line, "basic")


class TestIdAccumulator:
    def test_rejects_repeated_ids(self):
        ids = IdAccumulator()
        ids.check(check(record_line(id_="rs1")))
        with pytest.raises(RecordValidationError, match="already used"):
            ids.check(check(record_line(pos=200, id_="rs1")))

    def test_missing_id_never_counts(self):
        ids = IdAccumulator()
        ids.check(check(record_line(id_=".")))
        ids.check(check(record_line(pos=200, id_=".")))
        assert ids.seen == set()


class TestVCFRecords:
    """Tests for bulk passes and record access on the collection."""

    def _parsed(self, lines, **kwargs):
        source = iter_lines(lines)
        header = VCFHeader(validation="strict")
        header.read(source)
        records = VCFRecords(**kwargs)
        records.parse_all(source, header.sample_names)
        return header, records

    def test_parse_all_keeps_raw_values(self, basic_lines):
        _, records = self._parsed(basic_lines)
        assert len(records) == 3
        assert records.has_records()
        first = records.get_record(0)
        assert first.pos == "100"
        assert first.line_number == 22

    def test_validate_all(self, basic_lines):
        header, records = self._parsed(basic_lines)
        assert records.validate_all(header.registry) == []
        assert [r.pos for r in records] == [100, 200, 300]

    def test_validate_all_collects_errors(self, basic_lines):
        lines = basic_lines + [record_line(pos=400, qual="abc")]
        header, records = self._parsed(lines, fail_fast=False)
        errors = records.validate_all(header.registry)
        assert len(errors) == 1
        assert errors[0].line_number == 25
        assert records.get_record(3).pos == "400"
        assert records.get_record(0).pos == 100

    def test_validate_all_fail_fast(self, basic_lines):
        lines = basic_lines + [record_line(pos=400, qual="abc")]
        header, records = self._parsed(lines)
        with pytest.raises(RecordValidationError):
            records.validate_all(header.registry)

    def test_parse_and_validate_all_skips_bad_lines(self, basic_lines):
        lines = basic_lines[:22] + [record_line(pos=150, qual="abc")] + basic_lines[22:]
        source = iter_lines(lines)
        header = VCFHeader()
        header.read(source, validate=True)
        records = VCFRecords(fail_fast=False)
        errors = records.parse_and_validate_all(source, header.registry)
        assert len(records) == 3
        assert errors[0].line_number == 23

    def test_unique_ids(self, basic_lines):
        lines = basic_lines + [record_line(pos=500, id_="rs100")]
        header, records = self._parsed(lines, check_unique_ids=True)
        with pytest.raises(RecordValidationError, match="already used"):
            records.validate_all(header.registry)

    def test_repeated_ids_allowed_by_default(self, basic_lines):
        lines = basic_lines + [record_line(pos=500, id_="rs100")]
        header, records = self._parsed(lines)
        assert records.validate_all(header.registry) == []

    def test_lookup(self, basic_lines):
        header, records = self._parsed(basic_lines)
        records.validate_all(header.registry)
        found = records.lookup("chr1", "200", "ATG", ["A"])
        assert found is records.get_record(1)
        assert records.lookup("chr1", 200, "ATG", "A") is found
        assert records.lookup("chr1", 201, "ATG", ["A"]) is None

    def test_lookup_requires_all_terms(self, basic_lines, caplog):
        _, records = self._parsed(basic_lines)
        with caplog.at_level(logging.WARNING):
            assert records.lookup("chr1", 100, None, ["G"]) is None
        assert "All search terms" in caplog.text

    def test_get_record_out_of_range(self, basic_lines):
        _, records = self._parsed(basic_lines)
        with pytest.raises(IndexError):
            records.get_record(3)
        with pytest.raises(IndexError):
            records.get_record(-1)

    def test_set_record_validates(self, basic_lines):
        header, records = self._parsed(basic_lines)
        replaced = records.set_record(0, record_line(pos=150, info="DP=3"), header.registry)
        assert records.get_record(0) is replaced
        assert replaced.pos == 150
        with pytest.raises(RecordValidationError):
            records.set_record(0, record_line(qual="abc"), header.registry)
        assert records.get_record(0) is replaced
