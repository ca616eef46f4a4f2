"""VCFDocument: a header plus its records, and the functional API around it."""

import logging
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

from .config import ValidationConfig
from .errors import ConfigValidationError, RecordValidationError
from .header import VCFHeader, parse_sample_names, read_header
from .models import Header, Registry, ValidationLevel
from .reader import LineSource, iter_lines
from .record import VCFRecords, coerce_record
from .writer import Sink, VCFWriter

logger = logging.getLogger(__name__)


class VCFDocument:
    """A VCF file, or an in-memory ``{"header": ..., "records": [...]}`` structure.

    The header is always handled first; records are then checked against
    the Registry derived from it.
    """

    def __init__(
        self,
        file: Path | str | None = None,
        data: Mapping[str, Any] | None = None,
        validation: str | ValidationLevel = "strict",
        fail_fast: bool = True,
        check_unique_ids: bool = False,
        **unknown: Any,
    ):
        self.validation = ValidationLevel.from_string(validation)
        for name in unknown:
            logger.warning("Unknown parameter %s ignored", name)

        if file is None and data is None:
            raise ConfigValidationError("A VCF file or a data structure must be given")
        if file is not None and data is not None:
            logger.warning("Both file and data given, using file %s", file)
            data = None

        self.file = Path(file) if file is not None else None
        self.data = data
        self.header = VCFHeader(validation=self.validation)
        self.records = VCFRecords(
            validation=self.validation,
            fail_fast=fail_fast,
            check_unique_ids=check_unique_ids,
        )

    @classmethod
    def from_config(
        cls,
        config: ValidationConfig,
        file: Path | str | None = None,
        data: Mapping[str, Any] | None = None,
    ) -> "VCFDocument":
        return cls(
            file=file,
            data=data,
            validation=config.validation,
            fail_fast=config.fail_fast,
            check_unique_ids=config.check_unique_ids,
        )

    @property
    def registry(self) -> Registry:
        return self.header.registry

    @property
    def sample_names(self) -> list[str]:
        return self.header.sample_names

    def _load_data(self) -> None:
        self.header.header = Header.from_dict(self.data.get("header", {}))
        names = self.header.sample_names
        self.records.records = [
            coerce_record(item, names) for item in self.data.get("records", [])
        ]

    def parse(self) -> "VCFDocument":
        """Split the header and every record without validating anything."""
        if self.file is not None:
            lines = iter_lines(self.file)
            self.header.read(lines)
            self.records.parse_all(lines, self.header.sample_names)
        else:
            self._load_data()
        logger.info("Parsed %d records", len(self.records))
        return self

    def validate(self) -> list[RecordValidationError]:
        """Validate the parsed header, then every record against its Registry."""
        self.header.validate()
        return self.records.validate_all(self.registry)

    def parse_and_validate(self) -> list[RecordValidationError]:
        """Parse and validate in a single pass over the input.

        Accepts and rejects exactly what ``parse`` followed by ``validate``
        does; file errors carry the line they came from.
        """
        if self.file is not None:
            lines = iter_lines(self.file)
            self.header.read(lines, validate=True)
            errors = self.records.parse_and_validate_all(lines, self.registry)
        else:
            self._load_data()
            errors = self.validate()
        logger.info(
            "Validated %s file with %d samples and %d records",
            self.header.version,
            len(self.sample_names),
            len(self.records),
        )
        return errors

    def write(self, output: Path | str | Sink, mode: str = "new") -> int:
        """Write header and records; returns the number of records written."""
        def emit(sink: Sink) -> int:
            self.header.write(sink)
            return self.records.write(sink)

        return _emit(output, mode, emit)


def _emit(output: Path | str | Sink, mode: str, emit: Callable[[Sink], Any]) -> Any:
    if isinstance(output, (str, Path)):
        with VCFWriter(output, mode=mode) as writer:
            return emit(writer)
    return emit(output)


def parse_vcf_file(file: Path | str, validation: str = "strict") -> VCFDocument:
    return VCFDocument(file=file, validation=validation).parse()


def parse_and_validate_vcf_file(
    file: Path | str, validation: str = "strict", fail_fast: bool = True
) -> VCFDocument:
    document = VCFDocument(file=file, validation=validation, fail_fast=fail_fast)
    document.parse_and_validate()
    return document


def write_vcf_file(document: VCFDocument, output: Path | str | Sink, mode: str = "new") -> int:
    return document.write(output, mode=mode)


def parse_vcf_header(source: LineSource, validation: str = "strict") -> VCFHeader:
    header = VCFHeader(validation=validation)
    header.parse(source)
    return header


def validate_vcf_header(header: VCFHeader) -> VCFHeader:
    header.validate()
    return header


def parse_and_validate_vcf_header(source: LineSource, validation: str = "strict") -> VCFHeader:
    header = VCFHeader(validation=validation)
    header.parse_and_validate(source)
    return header


def parse_vcf_sample_names(source: LineSource) -> list[str]:
    return parse_sample_names(source)


def write_vcf_header(header: VCFHeader, output: Path | str | Sink, mode: str = "new") -> None:
    _emit(output, mode, header.write)


def parse_vcf_records(
    source: LineSource,
    header: VCFHeader | None = None,
    validation: str = "strict",
) -> VCFRecords:
    """Split the records of a VCF source; the header lines are skipped."""
    lines = iter_lines(source)
    parsed = read_header(lines)
    names = header.sample_names if header is not None else parsed.sample_names
    records = VCFRecords(validation=validation)
    records.parse_all(lines, names)
    return records


def validate_vcf_records(
    records: VCFRecords, header: VCFHeader
) -> list[RecordValidationError]:
    return records.validate_all(header.registry)


def parse_and_validate_vcf_records(
    source: LineSource,
    header: VCFHeader | None = None,
    validation: str = "strict",
    fail_fast: bool = True,
) -> VCFRecords:
    """Parse and validate records; the header is read and validated too when not given."""
    lines = iter_lines(source)
    if header is None:
        header = VCFHeader(validation=validation)
        header.read(lines, validate=True)
    else:
        read_header(lines)
    records = VCFRecords(validation=validation, fail_fast=fail_fast)
    records.parse_and_validate_all(lines, header.registry)
    return records


def write_vcf_records(records: VCFRecords, output: Path | str | Sink, mode: str = "new") -> int:
    return _emit(output, mode, records.write)
