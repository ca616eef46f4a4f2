"""vcf-io: parse, validate, mutate and write Variant Call Format files."""

__version__ = "0.1.0"

from .document import (
    VCFDocument,
    parse_and_validate_vcf_file,
    parse_and_validate_vcf_header,
    parse_and_validate_vcf_records,
    parse_vcf_file,
    parse_vcf_header,
    parse_vcf_records,
    parse_vcf_sample_names,
    validate_vcf_header,
    validate_vcf_records,
    write_vcf_file,
    write_vcf_header,
    write_vcf_records,
)
from .errors import (
    ConfigValidationError,
    HeaderValidationError,
    MutationError,
    ParseError,
    RecordValidationError,
    VCFError,
)
from .header import VCFHeader
from .models import Header, Record, Registry, SampleEntry, TextRecord, ValidationLevel
from .record import IdAccumulator, RecordValidator, VCFRecords

__all__ = [
    "ConfigValidationError",
    "Header",
    "HeaderValidationError",
    "IdAccumulator",
    "MutationError",
    "ParseError",
    "Record",
    "RecordValidationError",
    "RecordValidator",
    "Registry",
    "SampleEntry",
    "TextRecord",
    "VCFDocument",
    "VCFError",
    "VCFHeader",
    "VCFRecords",
    "ValidationLevel",
    "__version__",
    "parse_and_validate_vcf_file",
    "parse_and_validate_vcf_header",
    "parse_and_validate_vcf_records",
    "parse_vcf_file",
    "parse_vcf_header",
    "parse_vcf_records",
    "parse_vcf_sample_names",
    "validate_vcf_header",
    "validate_vcf_records",
    "write_vcf_file",
    "write_vcf_header",
    "write_vcf_records",
]
