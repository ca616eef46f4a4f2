"""Render headers and records back to VCF text."""

import gzip
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Protocol

from .grammar import EMIT_ORDER
from .models import MISSING, Declaration, Header, Record

logger = logging.getLogger(__name__)

WRITE_MODES = {"new": "wt", "append": "at"}


class Sink(Protocol):
    def write(self, text: str) -> object: ...


def format_attributes(attributes: dict) -> str:
    """Join declaration attributes as ``K=V,K=V`` in their stored order."""
    return ",".join(f"{k}={v}" if v != "" else k for k, v in attributes.items())


def format_meta_line(key: str, value: Declaration | str) -> str:
    if isinstance(value, Declaration):
        return f"##{key}=<{format_attributes(value.attributes)}>"
    return f"##{key}={value}"


def format_header_lines(header: Header) -> list[str]:
    """Render meta lines in the fixed emission order, then ``other``, then columns."""
    lines = []
    emitted = set()

    for key in EMIT_ORDER:
        emitted.add(key)
        if header.meta.get(key):
            lines.append(format_meta_line(key, header.meta[key]))
        for declaration in header.declarations.get(key, []):
            lines.append(format_meta_line(key, declaration))

    for key, value in header.meta.items():
        if key not in emitted and value:
            lines.append(format_meta_line(key, value))
    for key, declarations in header.declarations.items():
        if key in emitted:
            continue
        for declaration in declarations:
            lines.append(format_meta_line(key, declaration))

    for key, entries in header.other.items():
        for entry in entries:
            lines.append(format_meta_line(key, entry))

    if header.columns:
        lines.append("\t".join(header.columns))
    return lines


def format_info(info: dict[str, list[str]]) -> str:
    if not info:
        return MISSING
    return ";".join(f"{k}={','.join(v)}" if v else k for k, v in info.items())


def format_record(record: Record) -> str:
    """Render one record as a tab-delimited line without the line ending.

    Nothing is validated here; callers validate before writing.
    """
    columns = [
        record.chrom,
        str(record.pos),
        ";".join(record.id),
        record.ref,
        ",".join(record.alt),
        record.qual,
        ";".join(record.filter),
        format_info(record.info),
    ]
    if record.format:
        columns.append(":".join(record.format))
        for sample in sorted(record.sample, key=lambda s: s.order):
            values = [",".join(sample.attrs.get(k, [MISSING])) for k in record.format]
            columns.append(":".join(values + sample.overflow))
    return "\t".join(columns)


def write_header(header: Header, sink: Sink) -> None:
    for line in format_header_lines(header):
        sink.write(line + "\n")


def write_records(records: Iterable[Record], sink: Sink) -> int:
    count = 0
    for record in records:
        sink.write(format_record(record) + "\n")
        count += 1
    return count


class VCFWriter:
    """Context manager owning a plain or gzip output file.

    ``mode`` is ``"new"`` (truncate) or ``"append"``.
    """

    def __init__(self, path: Path | str, mode: str = "new"):
        if mode not in WRITE_MODES:
            raise ValueError(f"mode must be 'new' or 'append', got {mode!r}")
        self.path = Path(path)
        self.mode = mode
        self._handle = None

    def __enter__(self) -> "VCFWriter":
        opener = gzip.open if str(self.path).endswith(".gz") else open
        self._handle = opener(self.path, WRITE_MODES[self.mode])
        logger.debug("Opened %s for writing (%s)", self.path, self.mode)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None

    def write(self, text: str) -> int:
        if self._handle is None:
            raise RuntimeError("VCFWriter is not open; use it as a context manager")
        return self._handle.write(text)

    def write_header(self, header: Header) -> None:
        write_header(header, self)

    def write_records(self, records: Iterable[Record]) -> int:
        return write_records(records, self)
