"""VCF header parsing, validation, mutation and registry extraction."""

import logging
from collections.abc import Callable, Iterator, Mapping
from typing import Any

from .errors import HeaderValidationError, MutationError, ParseError, VCFError
from .grammar import (
    ALLOWED_TYPES,
    LATEST,
    MANDATORY_COLUMNS,
    REQUIRED_ATTRIBUTES,
    REQUIRED_SECTIONS,
    SCALAR_KEYS,
    Grammar,
    get_grammar,
    is_supported,
)
from .models import (
    Declaration,
    FieldDeclaration,
    Header,
    Registry,
    SimpleDeclaration,
    ValidationLevel,
)
from .reader import LineSource, iter_lines
from .writer import Sink, format_attributes, format_header_lines

logger = logging.getLogger(__name__)

FIELD_KINDS = ("INFO", "FORMAT")


def tokenize_attributes(text: str) -> tuple[dict[str, str], list[str]]:
    """Split the body of a bracketed meta line into key/value pairs.

    Commas inside double quotes or square brackets do not separate pairs.
    Only the first ``=`` of a pair splits key from value. Returns the
    attributes and the keys that were seen more than once.
    """
    parts = []
    current_part = ""
    in_quotes = False
    escaped = False
    depth = 0

    for char in text:
        if escaped:
            current_part += char
            escaped = False
        elif char == "\\" and in_quotes:
            current_part += char
            escaped = True
        elif char == '"':
            in_quotes = not in_quotes
            current_part += char
        elif char == "[" and not in_quotes:
            depth += 1
            current_part += char
        elif char == "]" and not in_quotes and depth:
            depth -= 1
            current_part += char
        elif char == "," and not in_quotes and depth == 0:
            parts.append(current_part)
            current_part = ""
        else:
            current_part += char

    if current_part.strip():
        parts.append(current_part)

    attributes: dict[str, str] = {}
    duplicates: list[str] = []
    for part in parts:
        key, sep, value = part.partition("=")
        key = key.strip()
        if not key:
            continue
        if key in attributes and key not in duplicates:
            duplicates.append(key)
        attributes[key] = value.strip() if sep else ""
    return attributes, duplicates


def parse_meta_line(line: str, line_number: int | None = None) -> tuple[str, str | Declaration]:
    """Split ``##KEY=value`` into its key and a raw value or a Declaration."""
    key, _, value = line[2:].partition("=")
    key = key.strip()
    if not value.startswith("<"):
        return key, value

    unclosed = not value.endswith(">")
    body = value[1:] if unclosed else value[1:-1]
    attributes, duplicates = tokenize_attributes(body)
    return key, Declaration(
        attributes=attributes,
        duplicate_keys=duplicates,
        unclosed=unclosed,
        line_number=line_number,
        raw=value,
    )


def quote(value: str) -> str:
    if value.startswith('"') and value.endswith('"') and len(value) >= 2:
        return value
    return '"' + value.replace('"', '\\"') + '"'


def scaffold(version: str | None) -> Header:
    """Create an empty header with every declaration section of the version."""
    grammar = get_grammar(version)
    header = Header(declarations={kind: [] for kind in grammar.declaration_kinds})
    if version is not None:
        header.meta["fileformat"] = version
    return header


def _describe(declaration: Declaration) -> str:
    if declaration.raw is not None:
        return declaration.raw
    return "<" + format_attributes(
        {k: v if isinstance(v, str) else repr(v) for k, v in declaration.attributes.items()}
    ) + ">"


def validate_declaration(
    kind: str,
    declaration: Declaration,
    grammar: Grammar,
    level: ValidationLevel,
) -> None:
    """Check one bracketed meta line against the rules of its section.

    Raises:
        HeaderValidationError: On the first violated rule
    """
    def fail(message: str) -> None:
        raise HeaderValidationError(
            kind, message, value=_describe(declaration), line_number=declaration.line_number
        )

    if declaration.unclosed:
        if level.at_least(ValidationLevel.RELAXED):
            fail("unclosed bracketed meta-information line.")
        logger.warning(
            "Unclosed VCF %s header line%s: %s",
            kind,
            f" {declaration.line_number}" if declaration.line_number else "",
            declaration.raw,
        )

    required = REQUIRED_ATTRIBUTES.get(kind)
    if required is None:
        return

    attrs = declaration.attributes
    for key in required:
        if key not in attrs:
            fail(f"required key {key} not found.")
    for key, value in attrs.items():
        if value is None or (isinstance(value, str) and len(value) == 0):
            fail(f"key {key} does not have a value.")

    if level.at_least(ValidationLevel.RELAXED):
        if kind in ALLOWED_TYPES or kind == "META":
            allowed = ALLOWED_TYPES.get(kind, ALLOWED_TYPES["FORMAT"])
            if attrs["Type"] not in allowed:
                fail(f"key Type not one of ({','.join(sorted(allowed))}).")
        if kind == "INFO" and attrs["Type"] == "Flag" and str(attrs["Number"]) != "0":
            fail("key Number is not 0 when Type is Flag.")
        if kind in FIELD_KINDS or kind == "META":
            if not grammar.number.match(str(attrs["Number"])):
                fail("key Number not an integer or a valid character.")

    if level.at_least(ValidationLevel.STRICT):
        for key in declaration.duplicate_keys:
            fail(f"key {key} found multiple times.")
        if "Description" in attrs and not isinstance(attrs["Description"], str):
            fail("key Description not a string.")
        if kind == "INFO" and grammar.info_id is not None:
            if not grammar.info_id.match(str(attrs["ID"])):
                fail("key ID not following naming specifications.")


def validate_columns(columns: list[str], level: ValidationLevel) -> None:
    if list(columns[: len(MANDATORY_COLUMNS)]) != list(MANDATORY_COLUMNS):
        for name in MANDATORY_COLUMNS:
            if name not in columns:
                raise HeaderValidationError(
                    "columns", f"required column {name} not found.", value="\t".join(columns)
                )
        raise HeaderValidationError(
            "columns", "mandatory columns out of order.", value="\t".join(columns)
        )

    if len(columns) > 8 and level.at_least(ValidationLevel.RELAXED):
        if columns[8] != "FORMAT":
            raise HeaderValidationError(
                "columns", "column 9 must be FORMAT.", value=columns[8]
            )
    if level.at_least(ValidationLevel.STRICT):
        seen = set()
        for name in columns[9:]:
            if name in seen:
                raise HeaderValidationError("columns", "duplicate sample name.", value=name)
            seen.add(name)


def validate_version(version: str | None, level: ValidationLevel) -> None:
    if is_supported(version):
        return
    if level.at_least(ValidationLevel.RELAXED):
        raise HeaderValidationError("fileformat", "unsupported VCF version.", value=version)
    logger.warning("Unsupported VCF version %s, validating as %s", version, LATEST)


def validate_structure(header: Header, level: ValidationLevel) -> None:
    """Check required sections, columns, version and (strict) the key vocabulary."""
    for name in REQUIRED_SECTIONS:
        if name not in header.meta and name not in header.declarations:
            raise HeaderValidationError(name, f"required field {name} not found.")

    validate_columns(header.columns, level)
    validate_version(header.fileformat, level)

    if level.at_least(ValidationLevel.STRICT):
        allowed = set(get_grammar(header.fileformat).meta_names)
        for key in list(header.meta) + list(header.declarations):
            if key not in allowed:
                raise HeaderValidationError(key, "field not in allowed names.", value=key)


def validate_header(header: Header, level: ValidationLevel) -> None:
    """Validate a whole header: structure first, then every declaration."""
    validate_structure(header, level)
    grammar = get_grammar(header.fileformat)
    for kind, declarations in header.declarations.items():
        for declaration in declarations:
            validate_declaration(kind, declaration, grammar, level)
    for key, entries in header.other.items():
        for entry in entries:
            if isinstance(entry, Declaration):
                validate_declaration(key, entry, grammar, level)


def read_header(
    lines: Iterator[tuple[int, str]],
    on_declaration: Callable[[str, Declaration, Grammar], None] | None = None,
    require_fileformat: bool = False,
) -> Header:
    """Consume meta lines and the column line from a numbered line iterator.

    Stops right after the ``#CHROM`` line so the iterator is positioned at
    the first record. ``on_declaration`` is called for each bracketed line
    as soon as it is read.

    Raises:
        ParseError: If the stream is empty, lacks a fileformat line while one
            is required, or reaches a record before the column line
    """
    first = next(((n, text) for n, text in lines if text.strip()), None)
    if first is None:
        raise ParseError("empty VCF stream, no header found")

    line_number, line = first
    version = None
    if line.startswith("##fileformat="):
        version = line.partition("=")[2].strip()
        pending = []
    else:
        if require_fileformat:
            raise ParseError("first line must declare fileformat", line_number)
        logger.warning(
            "No fileformat line found, assuming %s for header initialization", LATEST
        )
        pending = [first]

    header = scaffold(version)
    grammar = get_grammar(version)

    def consume(line_number: int, line: str) -> bool:
        if not line.strip():
            return True
        if line.startswith("##"):
            key, value = parse_meta_line(line, line_number)
            stored = _store(header, grammar, key, value, line_number)
            if stored is not None and on_declaration is not None:
                on_declaration(key, stored, grammar)
            return True
        if line.startswith("#"):
            header.columns = line.split("\t")
            return False
        raise ParseError("record line found before the #CHROM column line", line_number)

    for numbered in pending:
        if not consume(*numbered):
            return header
    for numbered in lines:
        if not consume(*numbered):
            return header
    return header


def _store(
    header: Header,
    grammar: Grammar,
    key: str,
    value: str | Declaration,
    line_number: int,
) -> Declaration | None:
    """File one meta line into the header; return it if it became a declaration."""
    if key in SCALAR_KEYS:
        raw = value.raw if isinstance(value, Declaration) else value
        if key in header.meta:
            logger.debug("Repeated %s line %d replaces the previous value", key, line_number)
        header.meta[key] = raw
        return None

    if key in grammar.meta_names:
        if isinstance(value, str):
            if key == "PEDIGREE":
                header.meta[key] = value
                return None
            attributes, duplicates = tokenize_attributes(value)
            value = Declaration(
                attributes=attributes,
                duplicate_keys=duplicates,
                unclosed=True,
                line_number=line_number,
                raw=value,
            )
        header.declarations.setdefault(key, []).append(value)
        return value

    header.other.setdefault(key, []).append(value)
    return value if isinstance(value, Declaration) else None


def extract_registry(header: Header) -> Registry:
    """Derive the lookup structure used to validate records."""
    contig = {}
    for declaration in header.section("contig"):
        length = str(declaration.get("length", ""))
        contig[str(declaration.id)] = int(length) if length.isdigit() else None

    return Registry(
        format_version=header.fileformat or LATEST,
        contig=contig,
        info={
            str(d.id): FieldDeclaration.from_declaration(d) for d in header.section("INFO")
        },
        format={
            str(d.id): FieldDeclaration.from_declaration(d) for d in header.section("FORMAT")
        },
        filter=frozenset(str(d.id) for d in header.section("FILTER")),
        alt=frozenset(str(d.id).strip("<>") for d in header.section("ALT")),
        sample=frozenset(str(d.id) for d in header.section("SAMPLE")),
        sample_names=tuple(header.sample_names),
    )


def parse_sample_names(source: LineSource) -> list[str]:
    """Read sample names from the column line without reading any record."""
    for _, line in iter_lines(source):
        if line.startswith("#CHROM"):
            columns = line.split("\t")
            if len(columns) > 9 and columns[8] == "FORMAT":
                return columns[9:]
            return []
        if not line.startswith("#") and line.strip():
            break
    return []


class VCFHeader:
    """Owns a Header, its validation level and the cached Registry.

    Every mutation goes through ``add`` or ``change``, which validate a
    copy before committing, so a failed call leaves the header untouched.
    """

    def __init__(self, header: Header | None = None, validation: str | ValidationLevel = "strict"):
        self.validation = ValidationLevel.from_string(validation)
        self._header = header
        self._registry: Registry | None = None

    @classmethod
    def from_dict(
        cls, data: Mapping[str, Any], validation: str | ValidationLevel = "strict"
    ) -> "VCFHeader":
        return cls(Header.from_dict(data), validation=validation)

    @property
    def header(self) -> Header:
        if self._header is None:
            raise VCFError("No VCF header information found. Parse a header first.")
        return self._header

    @header.setter
    def header(self, value: Header) -> None:
        self._header = value
        self._registry = None

    @property
    def registry(self) -> Registry:
        if self._registry is None:
            self._registry = extract_registry(self.header)
        return self._registry

    @property
    def version(self) -> str | None:
        return self.header.fileformat

    @property
    def sample_names(self) -> list[str]:
        return self.header.sample_names

    def typed_section(self, kind: str) -> list[FieldDeclaration] | list[SimpleDeclaration]:
        """Typed views of one section: INFO and FORMAT get Number and Type."""
        if kind in FIELD_KINDS:
            return [FieldDeclaration.from_declaration(d) for d in self.header.section(kind)]
        return [SimpleDeclaration.from_declaration(d) for d in self.header.section(kind)]

    def parse(self, source: LineSource) -> Header:
        return self.read(iter_lines(source))

    def parse_and_validate(self, source: LineSource) -> Header:
        return self.read(iter_lines(source), validate=True)

    def read(self, lines: Iterator[tuple[int, str]], validate: bool = False) -> Header:
        """Read a header from a numbered line iterator, optionally validating as it goes."""
        level = self.validation
        if validate:
            def check(kind: str, declaration: Declaration, grammar: Grammar) -> None:
                validate_declaration(kind, declaration, grammar, level)

            header = read_header(lines, on_declaration=check, require_fileformat=True)
            validate_structure(header, level)
        else:
            header = read_header(lines)
        self.header = header
        logger.debug(
            "Read %s header with %d INFO, %d FORMAT and %d FILTER declarations",
            header.fileformat,
            len(header.section("INFO")),
            len(header.section("FORMAT")),
            len(header.section("FILTER")),
        )
        return header

    def validate(self) -> None:
        validate_header(self.header, self.validation)

    def _canonical_kind(self, kind: str) -> str:
        grammar = get_grammar(self.header.fileformat)
        for known in grammar.meta_names:
            if known.lower() == kind.lower():
                return known
        return kind

    def add(self, attributes: Mapping[str, Any], kind: str) -> Declaration:
        """Add a declaration to a section after validating it.

        Mandatory keys come first in their canonical order, extra keys follow
        sorted by name.

        Raises:
            MutationError: If the ID is missing or already declared, or the
                section holds single values
            HeaderValidationError: If the declaration breaks its section rules
        """
        kind = self._canonical_kind(kind)
        if kind in SCALAR_KEYS:
            raise MutationError(f"{kind} holds a single value, use change() instead")
        if "ID" not in attributes:
            raise MutationError(f"Cannot add {kind} declaration without an ID")

        header = self.header
        grammar = get_grammar(header.fileformat)
        is_section = kind in grammar.meta_names
        existing = header.section(kind) if is_section else [
            e for e in header.other.get(kind, []) if isinstance(e, Declaration)
        ]
        new_id = str(attributes["ID"])
        if any(str(d.id) == new_id for d in existing):
            raise MutationError(
                f"{kind} attribute {new_id} already exists, use change() instead"
            )

        mandatory = REQUIRED_ATTRIBUTES.get(kind, ("ID",))
        ordered = {k: attributes[k] for k in mandatory if k in attributes}
        for k in sorted(k for k in attributes if k not in mandatory):
            ordered[k] = attributes[k]

        declaration = Declaration(attributes=ordered)
        validate_declaration(kind, declaration, grammar, self.validation)

        for k, v in ordered.items():
            if k == "Description" and isinstance(v, str):
                ordered[k] = quote(v)
            else:
                ordered[k] = str(v)

        updated = header.copy()
        if is_section:
            updated.declarations.setdefault(kind, []).append(declaration)
        else:
            updated.other.setdefault(kind, []).append(declaration)
        self.header = updated
        logger.debug("Added %s declaration %s", kind, new_id)
        return declaration

    def change(self, target: str, patch: str | Mapping[str, Any]) -> None:
        """Change a single-valued meta line or one attribute of a declaration.

        ``patch`` is the new value for single-valued lines, or
        ``{"id": ..., "key": ..., "value": ...}`` for a declaration section.
        The whole header is revalidated on a copy; it is committed only if
        valid. The fileformat line cannot be changed and no new attribute
        keys are added.

        Raises:
            MutationError: For an unknown target or a malformed patch
            HeaderValidationError: If the change would make the header invalid
        """
        if target == "fileformat":
            raise MutationError("fileformat cannot be changed")

        updated = self.header.copy()
        if isinstance(patch, Mapping):
            if target not in updated.declarations:
                raise MutationError(f"{target} attribute not found in the header")
            for required in ("id", "key", "value"):
                if required not in patch:
                    raise MutationError(
                        f"Required key {required} for changing header attribute not found"
                    )
            match = next(
                (d for d in updated.declarations[target] if str(d.id) == str(patch["id"])),
                None,
            )
            if match is None:
                raise MutationError(f"{target} declaration {patch['id']} not found")
            key = patch["key"]
            if key not in match.attributes:
                raise MutationError(
                    f"{target} declaration {patch['id']} has no key {key}; keys cannot be added"
                )
            value = patch["value"]
            if key == "Description" and isinstance(value, str):
                value = quote(value)
            match.attributes[key] = value if not isinstance(value, (int, float)) else str(value)
            match.raw = None
        elif isinstance(patch, str):
            if target in updated.declarations:
                raise MutationError(
                    f"{target} holds declarations, pass {{'id', 'key', 'value'}} instead"
                )
            if target not in SCALAR_KEYS and target != "PEDIGREE" and target not in updated.meta:
                raise MutationError(f"{target} attribute not found in the header")
            updated.meta[target] = patch
        else:
            raise MutationError(
                f"Cannot change {target}: expected a string or a mapping, "
                f"got {type(patch).__name__}"
            )

        validate_header(updated, self.validation)
        self.header = updated
        logger.debug("Changed header %s", target)

    def lines(self) -> list[str]:
        return format_header_lines(self.header)

    def write(self, sink: Sink) -> None:
        for line in self.lines():
            sink.write(line + "\n")
