"""Record parsing, validation against a header Registry, and record mutation."""

import logging
import re
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from .errors import MutationError, ParseError, RecordValidationError
from .grammar import REF_PATTERN, SYMBOLIC_REFERENCE, get_grammar
from .models import (
    MISSING,
    Record,
    RecordInput,
    Registry,
    SampleEntry,
    TextRecord,
    ValidationLevel,
    as_values,
    make_identity_key,
    split_info,
)
from .utils.validators import check_values
from .writer import Sink, format_record

logger = logging.getLogger(__name__)

WHITESPACE = re.compile(r"\s")
CHROM_FORBIDDEN = re.compile(r"[:\s]")
POS_PATTERN = re.compile(r"^\d+$")
ID_PATTERN = re.compile(r"^[A-Za-z0-9_.\-]*$")
QUAL_PATTERN = re.compile(r"^(\d+|(?=\d|\.\d)\d*(\.\d*)?([Ee][+-]?\d+)?)$")
GT_PATTERN = re.compile(r"^(\.|\d+)([|/])?")

FILTER_SENTINELS = ("PASS", MISSING)
KEY_VALUE_KINDS = ("INFO", "SAMPLE")
KEY_KINDS = ("ALT", "FILTER", "FORMAT")
COLUMN_TARGETS = ("CHROM", "POS", "ID", "REF", "ALT", "QUAL", "FILTER")

PROGRESS_INTERVAL = 10_000


def record_from_text(item: TextRecord, sample_names: Sequence[str] = ()) -> Record:
    """Split a tab-delimited line into a Record without checking any value.

    Raises:
        ParseError: For an empty line, fewer than 8 columns, or a FORMAT
            column without any sample column
    """
    line = item.line
    if not line.strip():
        raise ParseError("empty record line", item.line_number)

    fields = line.split("\t")
    if len(fields) < 8:
        raise ParseError(
            f"expected at least 8 tab-delimited columns, found {len(fields)}", item.line_number
        )
    if len(fields) == 9:
        raise ParseError("FORMAT column found without sample columns", item.line_number)

    format_keys = fields[8].split(":") if len(fields) > 8 else []
    samples = []
    for i, column in enumerate(fields[9:]):
        values = column.split(":")
        samples.append(
            SampleEntry(
                name=sample_names[i] if i < len(sample_names) else None,
                order=i,
                attrs={k: v.split(",") for k, v in zip(format_keys, values, strict=False)},
                overflow=values[len(format_keys):],
            )
        )

    alt = fields[4].split(",")
    return Record(
        chrom=fields[0],
        pos=fields[1],
        id=fields[2].split(";"),
        ref=fields[3],
        alt=alt,
        qual=fields[5],
        filter=fields[6].split(";"),
        info=split_info(fields[7]),
        format=format_keys,
        sample=samples,
        identity_key=make_identity_key(fields[0], fields[1], fields[3], alt),
        line_number=item.line_number,
    )


def coerce_record(
    item: RecordInput | str | Mapping[str, Any], sample_names: Sequence[str] = ()
) -> Record:
    """Turn any accepted record input into a fresh Record.

    Text goes through ``record_from_text``; structured input is copied so
    validation never touches the caller's object.
    """
    if isinstance(item, str):
        item = TextRecord(item)
    if isinstance(item, TextRecord):
        return record_from_text(item, sample_names)
    if isinstance(item, Record):
        return item.copy()
    if isinstance(item, Mapping):
        return Record.from_dict(item)
    raise TypeError(f"Cannot build a VCF record from {type(item).__name__}")


@dataclass
class IdAccumulator:
    """Tracks record IDs across one bulk pass to reject repeats.

    The missing ID ``.`` never counts.
    """

    seen: set[str] = field(default_factory=set)

    def check(self, record: Record) -> None:
        tokens = [t for t in record.id if t != MISSING]
        for token in tokens:
            if token in self.seen:
                raise RecordValidationError(
                    "ID", "ID already used by a previous record.", value=token,
                    line_number=record.line_number,
                )
        self.seen.update(tokens)


class RecordValidator:
    """Checks record columns left to right against a Registry.

    Each stage normalizes its column in place and raises
    ``RecordValidationError`` at the first violation.
    """

    def __init__(self, registry: Registry, level: ValidationLevel = ValidationLevel.STRICT):
        self.registry = registry
        self.level = level
        self.grammar = get_grammar(registry.format_version)

    @property
    def relaxed(self) -> bool:
        return self.level.at_least(ValidationLevel.RELAXED)

    @property
    def strict(self) -> bool:
        return self.level.at_least(ValidationLevel.STRICT)

    def parse(self, item: RecordInput | str | Mapping[str, Any]) -> Record:
        return coerce_record(item, self.registry.sample_names)

    def parse_and_validate(self, item: RecordInput | str | Mapping[str, Any]) -> Record:
        return self.validate(self.parse(item))

    def validate(self, record: Record) -> Record:
        """Run every column stage on ``record`` and refresh its identity key."""
        self.check_chrom(record)
        self.check_pos(record)
        self.check_id(record)
        self.check_ref(record)
        self.check_alt(record)
        self.check_qual(record)
        self.check_filter(record)
        self.check_info(record)
        self.check_format(record)
        self.check_samples(record)
        record.identity_key = make_identity_key(record.chrom, record.pos, record.ref, record.alt)
        return record

    def _fail(self, record: Record, field_name: str, message: str, value: Any = None) -> None:
        raise RecordValidationError(field_name, message, value=value, line_number=record.line_number)

    def check_chrom(self, record: Record) -> None:
        chrom = record.chrom
        if not chrom:
            self._fail(record, "#CHROM", "#CHROM not found. Are there consecutive tabs in the line?")
        if self.relaxed and CHROM_FORBIDDEN.search(chrom):
            self._fail(record, "#CHROM", "#CHROM cannot contain colon (:) or white space.", chrom)
        if self.strict and self.registry.contig and chrom not in self.registry.contig:
            self._fail(
                record, "#CHROM", "#CHROM not in the contig names declared in the header.", chrom
            )

    def check_pos(self, record: Record) -> None:
        pos = record.pos
        if pos is None or pos == "":
            self._fail(record, "POS", "POS not found. Are there consecutive tabs in the line?")
        if isinstance(pos, bool) or not (
            isinstance(pos, int) or POS_PATTERN.match(str(pos).strip())
        ):
            self._fail(record, "POS", "POS must be an integer.", pos)
        pos = int(pos)
        if pos < 0:
            self._fail(record, "POS", "POS must be 0 or positive.", pos)
        record.pos = pos

        if self.strict:
            length = self.registry.contig.get(record.chrom)
            if length is not None and pos > length + 1:
                self._fail(record, "POS", f"POS exceeds the contig length {length}.", pos)

    def check_id(self, record: Record) -> None:
        if not record.id or record.id == [""]:
            self._fail(record, "ID", "ID string or missing value not found.")
        for token in record.id:
            if WHITESPACE.search(token):
                self._fail(record, "ID", "ID cannot contain white space.", token)
            if self.strict and not ID_PATTERN.match(token):
                self._fail(record, "ID", "ID must be alphanumeric, '_', '-' or '.' only.", token)

    def check_ref(self, record: Record) -> None:
        if not record.ref:
            self._fail(record, "REF", "REF base or missing value not found.")
        if self.relaxed and not REF_PATTERN.match(record.ref):
            self._fail(record, "REF", "REF is not a valid nucleotide representation.", record.ref)

    def check_alt(self, record: Record) -> None:
        if not record.alt or "" in record.alt:
            self._fail(record, "ALT", "ALT base(s) or missing value not found.", ",".join(record.alt))
        for allele in record.alt:
            if self.relaxed and not self._is_declared_or_valid_alt(allele):
                self._fail(
                    record, "ALT", "ALT is not a valid nucleotide or other valid representation.",
                    allele,
                )
            if allele == record.ref:
                self._fail(record, "ALT", "ALT cannot be the same as REF.", allele)

    def _is_declared_or_valid_alt(self, allele: str) -> bool:
        if self.grammar.is_valid_alt(allele):
            return True
        symbolic = SYMBOLIC_REFERENCE.match(allele)
        return bool(symbolic and symbolic.group(1) in self.registry.alt)

    def check_qual(self, record: Record) -> None:
        qual = record.qual
        if not qual:
            self._fail(record, "QUAL", "QUAL not found. Are there consecutive tabs in the line?")
        if self.relaxed and qual != MISSING and not QUAL_PATTERN.match(qual):
            self._fail(record, "QUAL", "QUAL must be a positive integer or float or '.'.", qual)

    def check_filter(self, record: Record) -> None:
        filters = record.filter
        if not filters or "" in filters:
            self._fail(record, "FILTER", "FILTER not found. Are there consecutive tabs in the line?")
        if filters[0] == MISSING or filters == ["PASS"]:
            return
        if self.relaxed:
            for name in filters:
                if name != "PASS" and name not in self.registry.filter:
                    self._fail(
                        record, "FILTER", "FILTER not found in the filters declared in the header.",
                        name,
                    )

    def check_info(self, record: Record) -> None:
        if "" in record.info:
            self._fail(record, "INFO", "INFO not found. Are there consecutive tabs in the line?")
        if not self.relaxed:
            return
        for key, values in record.info.items():
            declaration = self.registry.info.get(key)
            if declaration is None:
                self._fail(record, "INFO", f"key {key} not declared in the VCF header.", key)
            if not values:
                if not declaration.is_flag:
                    self._fail(
                        record, "INFO",
                        f"no values found for key {key}, but its declared type is not Flag.",
                        key,
                    )
                continue
            reason = check_values(values, declaration.number, declaration.type, record.allele_count)
            if reason is not None:
                self._fail(record, "INFO", f"key {key}: {reason}.", f"{key}={','.join(values)}")

    def check_format(self, record: Record) -> None:
        keys = record.format
        if not keys:
            if record.sample:
                self._fail(record, "FORMAT", "sample columns found without a FORMAT column.")
            return
        if "" in keys:
            self._fail(record, "FORMAT", "empty FORMAT key.", ":".join(keys))
        if not self.relaxed:
            return
        if "GT" in self.registry.format and keys[0] != "GT":
            self._fail(
                record, "FORMAT",
                f"first key {keys[0]} is not GT and GT is declared in the VCF header.",
                ":".join(keys),
            )
        for key in keys:
            if key not in self.registry.format:
                self._fail(record, "FORMAT", f"key {key} not declared in the VCF header.", key)

    def check_samples(self, record: Record) -> None:
        if not record.sample:
            return
        names = self.registry.sample_names
        if self.relaxed and len(record.sample) != len(names):
            self._fail(
                record, "SAMPLE",
                f"{len(record.sample)} sample columns found, header declares {len(names)}.",
            )

        for sample in record.sample:
            if sample.name is None and sample.order < len(names):
                sample.name = names[sample.order]
            if self.relaxed and names and sample.name not in names:
                self._fail(record, "SAMPLE", "sample name not found in the header.", sample.name)
            if sample.overflow:
                found = len(record.format) + len(sample.overflow)
                self._fail(
                    record, "SAMPLE",
                    f"{found} fields found but FORMAT declares {len(record.format)}.",
                    ":".join(sample.overflow),
                )

            for key in sample.attrs:
                if key not in record.format:
                    self._fail(record, "SAMPLE", f"key {key} not found in FORMAT.", key)

            attrs = {}
            for key in record.format:
                if key in sample.attrs:
                    attrs[key] = sample.attrs[key]
                elif self.relaxed:
                    self._fail(
                        record, "SAMPLE", f"sample {sample.name} has no value for key {key}.", key
                    )
                else:
                    attrs[key] = [MISSING]
            sample.attrs = attrs

            if not self.relaxed:
                continue
            for key, values in attrs.items():
                if key == "GT" and not GT_PATTERN.match(values[0] if values else ""):
                    self._fail(record, "SAMPLE", "malformed genotype.", ",".join(values))
                declaration = self.registry.format.get(key)
                if declaration is None:
                    continue
                reason = check_values(
                    values, declaration.number, declaration.type, record.allele_count
                )
                if reason is not None:
                    self._fail(
                        record, "SAMPLE", f"sample {sample.name} key {key}: {reason}.",
                        ",".join(values),
                    )


class VCFRecords:
    """Ordered record collection with bulk passes, lookup and mutation.

    Bulk passes raise the first error when ``fail_fast`` is set. Otherwise
    they collect one error per bad record and move on to the next one.
    """

    def __init__(
        self,
        validation: str | ValidationLevel = "strict",
        fail_fast: bool = True,
        check_unique_ids: bool = False,
    ):
        self.validation = ValidationLevel.from_string(validation)
        self.fail_fast = fail_fast
        self.check_unique_ids = check_unique_ids
        self.records: list[Record] = []

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[Record]:
        return iter(self.records)

    def has_records(self) -> bool:
        return bool(self.records)

    def validator(self, registry: Registry) -> RecordValidator:
        return RecordValidator(registry, self.validation)

    def parse_one(self, item: RecordInput | str, sample_names: Sequence[str] = ()) -> Record:
        return coerce_record(item, sample_names)

    def validate_one(self, record: Record, registry: Registry) -> Record:
        return self.validator(registry).validate(record)

    def parse_and_validate_one(
        self, item: RecordInput | str | Mapping[str, Any], registry: Registry
    ) -> Record:
        return self.validator(registry).parse_and_validate(item)

    def parse_all(
        self, lines: Iterable[tuple[int, str]], sample_names: Sequence[str] = ()
    ) -> list[Record]:
        """Split every line into a record; nothing is checked against a header."""
        records = []
        for line_number, line in lines:
            records.append(record_from_text(TextRecord(line, line_number), sample_names))
            if len(records) % PROGRESS_INTERVAL == 0:
                logger.debug("Parsed %d records", len(records))
        self.records = records
        return records

    def validate_all(self, registry: Registry) -> list[RecordValidationError]:
        """Validate every record in place; invalid records are left unchanged."""
        validator = self.validator(registry)
        ids = IdAccumulator() if self.check_unique_ids else None
        errors = []
        for i, record in enumerate(self.records, start=1):
            candidate = record.copy()
            try:
                validator.validate(candidate)
                if ids is not None:
                    ids.check(candidate)
            except RecordValidationError as e:
                if self.fail_fast:
                    raise
                errors.append(e)
                continue
            record.assign_from(candidate)
            if i % PROGRESS_INTERVAL == 0:
                logger.debug("Validated %d records", i)
        return errors

    def parse_and_validate_all(
        self, lines: Iterable[tuple[int, str]], registry: Registry
    ) -> list[RecordValidationError]:
        """Parse and validate each line in one pass; invalid lines are skipped."""
        validator = self.validator(registry)
        ids = IdAccumulator() if self.check_unique_ids else None
        records = []
        errors = []
        for line_number, line in lines:
            try:
                record = validator.parse_and_validate(TextRecord(line, line_number))
                if ids is not None:
                    ids.check(record)
            except RecordValidationError as e:
                if self.fail_fast:
                    raise
                errors.append(e)
                continue
            records.append(record)
            if len(records) % PROGRESS_INTERVAL == 0:
                logger.debug("Parsed and validated %d records", len(records))
        self.records = records
        return errors

    def get_record(self, index: int) -> Record:
        if index < 0 or index >= len(self.records):
            raise IndexError(f"record index {index} out of range")
        return self.records[index]

    def set_record(
        self, index: int, record: RecordInput | str | Mapping[str, Any], registry: Registry
    ) -> Record:
        if index < 0 or index >= len(self.records):
            raise IndexError(f"record index {index} out of range")
        validated = self.parse_and_validate_one(record, registry)
        self.records[index] = validated
        return validated

    def lookup(
        self,
        chrom: str | None,
        pos: int | str | None,
        ref: str | None,
        alt: Sequence[str] | str | None,
    ) -> Record | None:
        """Find a record by CHROM, POS, REF and ALT; all four are required."""
        if any(term is None or term == "" for term in (chrom, pos, ref, alt)) or not alt:
            logger.warning("All search terms must be specified, returning nothing")
            return None
        if isinstance(alt, str):
            alt = alt.split(",")
        key = make_identity_key(chrom, pos, ref, alt)
        return next((r for r in self.records if r.identity_key == key), None)

    def add(self, new_record: RecordInput | str | Mapping[str, Any], registry: Registry) -> Record:
        """Validate a record and append it, aligning key order with the first record."""
        record = self.parse_and_validate_one(new_record, registry)
        if self.records:
            _align_order(record, self.records[0])
        self.records.append(record)
        return record

    def add_key_value_attr(
        self,
        pairs: Mapping[str, Any],
        kind: str,
        registry: Registry,
        record: Record,
    ) -> Record:
        """Add INFO key/value pairs, or a new FORMAT key with one value per sample.

        For SAMPLE, each value is either a list with one entry per sample in
        column order or a mapping from sample name to value.

        Raises:
            MutationError: For an immutable kind, an undeclared key or a key
                already on the record
            RecordValidationError: If the new values break the declaration
        """
        if kind not in KEY_VALUE_KINDS:
            raise MutationError(
                f"Invalid or immutable type {kind}. Key-value pairs can only be added to "
                f"{', '.join(KEY_VALUE_KINDS)}."
            )
        declared = registry.info if kind == "INFO" else registry.format
        existing = record.info if kind == "INFO" else record.format
        for key in pairs:
            if key not in declared:
                raise MutationError(
                    f"{kind} attribute {key} has not been added to the VCF header yet"
                )
            if key in existing:
                raise MutationError(f"{kind} attribute {key} already exists, use change()")

        validator = self.validator(registry)
        candidate = record.copy()
        if kind == "INFO":
            for key, value in pairs.items():
                candidate.info[key] = as_values(value)
            validator.check_info(candidate)
            record.info = candidate.info
        else:
            if not candidate.sample:
                raise MutationError("Record has no sample columns to add FORMAT values to")
            for key, value in pairs.items():
                per_sample = _per_sample_values(key, value, candidate.sample)
                _insert_format_key(candidate, key)
                for sample, sample_value in zip(candidate.sample, per_sample, strict=True):
                    sample.attrs[key] = as_values(sample_value)
            validator.check_format(candidate)
            validator.check_samples(candidate)
            record.format = candidate.format
            record.sample = candidate.sample
        logger.debug("Added %s keys %s to record %s", kind, list(pairs), record.identity_key)
        return record

    def add_key_attr(
        self, keys: Sequence[str], kind: str, registry: Registry, record: Record
    ) -> Record:
        """Add ALT alleles, FILTER names or FORMAT keys declared in the header.

        A FILTER of ``.`` or ``PASS`` is replaced rather than extended. A new
        FORMAT key gets the missing value in every sample.
        """
        if kind not in KEY_KINDS:
            raise MutationError(
                f"Invalid or immutable type {kind}. Keys can only be added to "
                f"{', '.join(KEY_KINDS)}."
            )
        if isinstance(keys, str):
            keys = [keys]

        if kind == "ALT":
            keys = [k if k.startswith("<") else f"<{k}>" for k in keys]
            declared = {f"<{a}>" for a in registry.alt}
            existing = record.alt
        elif kind == "FILTER":
            declared = set(registry.filter) | {"PASS"}
            existing = record.filter
        else:
            if not record.sample:
                raise MutationError("Record has no sample columns to add FORMAT keys to")
            declared = set(registry.format)
            existing = record.format

        for key in keys:
            if key not in declared:
                raise MutationError(
                    f"{kind} attribute {key} has not been added to the VCF header yet"
                )
            if key in existing:
                raise MutationError(f"{kind} attribute {key} already exists")

        validator = self.validator(registry)
        candidate = record.copy()
        if kind == "ALT":
            base = [] if candidate.alt == [MISSING] else candidate.alt
            candidate.alt = base + list(keys)
            validator.check_alt(candidate)
            record.alt = candidate.alt
            record.identity_key = make_identity_key(record.chrom, record.pos, record.ref, record.alt)
        elif kind == "FILTER":
            if candidate.filter and candidate.filter[0] in FILTER_SENTINELS:
                candidate.filter = list(keys)
            else:
                candidate.filter = candidate.filter + list(keys)
            validator.check_filter(candidate)
            record.filter = candidate.filter
        else:
            for key in keys:
                _insert_format_key(candidate, key)
                for sample in candidate.sample:
                    sample.attrs[key] = [MISSING]
            validator.check_format(candidate)
            validator.check_samples(candidate)
            record.format = candidate.format
            record.sample = candidate.sample
        logger.debug("Added %s keys %s to record %s", kind, list(keys), record.identity_key)
        return record

    def change(
        self,
        record: Record,
        target: str,
        patch: Any,
        registry: Registry,
    ) -> Record:
        """Overwrite one value of a record and revalidate the whole record.

        Column targets (CHROM, POS, ID, REF, ALT, QUAL, FILTER) take the new
        column value. INFO takes ``{"key", "value"}`` for a key already on
        the record. SAMPLE takes ``{"sample", "key", "value"}`` where
        ``sample`` is a name or a column index. FORMAT cannot be changed.
        """
        if target == "FORMAT":
            raise MutationError("FORMAT cannot be changed, use add_key_attr()")

        candidate = record.copy()
        if target in COLUMN_TARGETS:
            if isinstance(patch, Mapping):
                raise MutationError(f"{target} takes a plain value, not a mapping")
            if target in ("ID", "FILTER"):
                candidate_value = patch.split(";") if isinstance(patch, str) else as_values(patch)
            elif target == "ALT":
                candidate_value = patch.split(",") if isinstance(patch, str) else as_values(patch)
            elif target == "POS":
                candidate_value = patch
            else:
                candidate_value = "" if patch is None else str(patch)
            setattr(candidate, target.lower(), candidate_value)
        elif target == "INFO":
            key = _require(patch, ("key", "value"), target)["key"]
            if key not in candidate.info:
                raise MutationError(f"INFO key {key} not on the record, use add_key_value_attr()")
            candidate.info[key] = as_values(patch["value"])
        elif target == "SAMPLE":
            _require(patch, ("sample", "key", "value"), target)
            sample = _find_sample(candidate, patch["sample"])
            if patch["key"] not in candidate.format:
                raise MutationError(f"FORMAT key {patch['key']} not on the record")
            sample.attrs[patch["key"]] = as_values(patch["value"])
        else:
            raise MutationError(f"Unknown record field {target}")

        self.validator(registry).validate(candidate)
        record.assign_from(candidate)
        logger.debug("Changed %s of record %s", target, record.identity_key)
        return record

    def lines(self) -> Iterator[str]:
        for record in self.records:
            yield format_record(record)

    def write(self, sink: Sink) -> int:
        count = 0
        for line in self.lines():
            sink.write(line + "\n")
            count += 1
        return count


def _require(patch: Any, keys: Sequence[str], target: str) -> Mapping[str, Any]:
    if not isinstance(patch, Mapping):
        raise MutationError(f"{target} change requires a mapping with keys {', '.join(keys)}")
    for key in keys:
        if key not in patch:
            raise MutationError(f"Required key {key} for changing {target} not found")
    return patch


def _find_sample(record: Record, which: str | int) -> SampleEntry:
    for sample in record.sample:
        if (isinstance(which, int) and sample.order == which) or sample.name == which:
            return sample
    raise MutationError(f"Sample {which} not found in the record")


def _insert_format_key(record: Record, key: str) -> None:
    if key == "GT":
        record.format.insert(0, key)
    else:
        record.format.append(key)


def _per_sample_values(key: str, value: Any, samples: list[SampleEntry]) -> list[Any]:
    if isinstance(value, Mapping):
        missing = [s.name for s in samples if s.name not in value]
        if missing:
            raise MutationError(f"No {key} value given for samples {', '.join(map(str, missing))}")
        return [value[s.name] for s in samples]
    if isinstance(value, (list, tuple)) and len(value) == len(samples):
        return list(value)
    raise MutationError(
        f"{key} needs one value per sample ({len(samples)}), "
        f"given as a list in column order or a mapping by sample name"
    )


def _align_order(record: Record, reference: Record) -> None:
    """Reorder INFO, FORMAT and sample keys to follow ``reference``."""
    order = [k for k in reference.info if k in record.info]
    order += [k for k in record.info if k not in reference.info]
    record.info = {k: record.info[k] for k in order}

    if record.format != reference.format and set(record.format) == set(reference.format):
        record.format = list(reference.format)
        for sample in record.sample:
            sample.attrs = {k: sample.attrs[k] for k in record.format if k in sample.attrs}
