"""Data models for VCF headers, declarations and records."""

import copy
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any

from .errors import ConfigValidationError

# Joins the identity key components; cannot occur in a tab-delimited VCF column.
IDENTITY_SEPARATOR = "\x1f"

MISSING = "."


class ValidationLevel(Enum):
    """How much VCF conformance is enforced, from most to least tolerant."""

    BASIC = "basic"
    RELAXED = "relaxed"
    STRICT = "strict"

    @classmethod
    def from_string(cls, value: "str | ValidationLevel") -> "ValidationLevel":
        if isinstance(value, cls):
            return value
        for level in cls:
            if level.value == value:
                return level
        raise ConfigValidationError(
            f"validation must be one of 'strict', 'relaxed' or 'basic', got {value!r}"
        )

    def at_least(self, other: "ValidationLevel") -> bool:
        return _LEVEL_RANK[self] >= _LEVEL_RANK[other]


_LEVEL_RANK = {
    ValidationLevel.BASIC: 0,
    ValidationLevel.RELAXED: 1,
    ValidationLevel.STRICT: 2,
}


def unquote(value: str) -> str:
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return value[1:-1]
    return value


@dataclass
class Declaration:
    """One bracketed meta-information line such as ``##INFO=<ID=DP,...>``.

    Attribute values are kept as raw text (quotes included) so that the line
    can be written back unchanged. Keys seen more than once while tokenizing
    are remembered in ``duplicate_keys``; the mapping keeps the last value.
    """

    attributes: dict[str, Any]
    duplicate_keys: list[str] = field(default_factory=list)
    unclosed: bool = False
    line_number: int | None = None
    raw: str | None = None

    @property
    def id(self) -> str | None:
        return self.attributes.get("ID")

    def get(self, key: str, default: Any = None) -> Any:
        return self.attributes.get(key, default)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "Declaration":
        return cls(attributes=dict(mapping))


@dataclass(frozen=True)
class FieldDeclaration:
    """Typed view of an INFO or FORMAT declaration."""

    id: str
    number: str
    type: str
    description: str
    extra: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_declaration(cls, declaration: Declaration) -> "FieldDeclaration":
        attrs = declaration.attributes
        extra = {
            k: v for k, v in attrs.items() if k not in ("ID", "Number", "Type", "Description")
        }
        description = attrs.get("Description", "")
        return cls(
            id=str(attrs.get("ID")),
            number=str(attrs.get("Number", MISSING)),
            type=str(attrs.get("Type", "String")),
            description=unquote(description) if isinstance(description, str) else "",
            extra=extra,
        )

    @property
    def is_flag(self) -> bool:
        return self.type == "Flag" and self.number == "0"


@dataclass(frozen=True)
class SimpleDeclaration:
    """Typed view of a FILTER, ALT or SAMPLE declaration."""

    id: str
    description: str

    @classmethod
    def from_declaration(cls, declaration: Declaration) -> "SimpleDeclaration":
        description = declaration.get("Description", "")
        return cls(
            id=str(declaration.id),
            description=unquote(description) if isinstance(description, str) else "",
        )

@dataclass(frozen=True)
class Registry:
    """Read-only lookup structure derived from a header.

    Records are validated against a registry, never against the header
    itself. A registry goes stale as soon as its header changes.
    """

    format_version: str
    contig: dict[str, int | None] = field(default_factory=dict)
    info: dict[str, FieldDeclaration] = field(default_factory=dict)
    format: dict[str, FieldDeclaration] = field(default_factory=dict)
    filter: frozenset[str] = frozenset()
    alt: frozenset[str] = frozenset()
    sample: frozenset[str] = frozenset()
    sample_names: tuple[str, ...] = ()


@dataclass
class Header:
    """Parsed meta-information lines plus the column header line.

    ``meta`` holds the single-valued lines (``##fileformat=VCFv4.2``),
    ``declarations`` the bracketed lines of recognised keys grouped by key,
    and ``other`` everything whose key is outside the version vocabulary.
    A section missing from ``declarations`` is absent, which is different
    from a section present with no entries.
    """

    meta: dict[str, str] = field(default_factory=dict)
    declarations: dict[str, list[Declaration]] = field(default_factory=dict)
    other: dict[str, list[Declaration | str]] = field(default_factory=dict)
    columns: list[str] = field(default_factory=list)

    @property
    def fileformat(self) -> str | None:
        return self.meta.get("fileformat")

    def section(self, kind: str) -> list[Declaration]:
        return self.declarations.get(kind, [])

    @property
    def sample_names(self) -> list[str]:
        if len(self.columns) > 9 and self.columns[8] == "FORMAT":
            return list(self.columns[9:])
        return []

    def copy(self) -> "Header":
        return copy.deepcopy(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Header":
        """Build a header from the nested mapping shape used for in-memory input.

        Scalars become meta lines, lists of mappings become declaration
        sections, ``other`` and ``columns`` are taken as they are.
        """
        header = cls()
        for key, value in data.items():
            if value is None:
                continue
            if key == "columns":
                header.columns = [str(c) for c in value]
            elif key == "other":
                for other_key, entries in value.items():
                    if isinstance(entries, (str, Mapping)):
                        entries = [entries]
                    header.other[other_key] = [
                        Declaration.from_mapping(e) if isinstance(e, Mapping) else str(e)
                        for e in entries
                    ]
            elif isinstance(value, Mapping):
                header.declarations[key] = [Declaration.from_mapping(value)]
            elif isinstance(value, (list, tuple)):
                header.declarations[key] = [
                    d if isinstance(d, Declaration) else Declaration.from_mapping(d)
                    for d in value
                ]
            else:
                header.meta[key] = str(value)
        return header

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = dict(self.meta)
        for kind, entries in self.declarations.items():
            data[kind] = [dict(d.attributes) for d in entries]
        data["other"] = {
            key: [dict(e.attributes) if isinstance(e, Declaration) else e for e in entries]
            for key, entries in self.other.items()
        }
        data["columns"] = list(self.columns)
        return data


@dataclass
class SampleEntry:
    """Genotype fields of one sample column, keyed by FORMAT key.

    Values past the last FORMAT key are kept in ``overflow`` so validation
    can reject them.
    """

    name: str | None
    order: int
    attrs: dict[str, list[str]] = field(default_factory=dict)
    overflow: list[str] = field(default_factory=list)


def make_identity_key(chrom: str, pos: int | str, ref: str, alt: Iterable[str]) -> str:
    return IDENTITY_SEPARATOR.join([str(chrom), str(pos), str(ref), ",".join(alt)])


def split_info(text: str) -> dict[str, list[str]]:
    """Split an INFO column into an ordered key -> values mapping.

    A key without ``=`` is a flag and maps to an empty list.
    """
    if text == MISSING:
        return {}
    info: dict[str, list[str]] = {}
    for item in text.split(";"):
        key, sep, value = item.partition("=")
        info[key] = value.split(",") if sep else []
    return info


def as_values(value: Any) -> list[str]:
    if value is None or value is True:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return [str(value)]


def _as_tokens(value: Any, sep: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return value.split(sep) if value else [""]
    return [str(v) for v in value]


@dataclass
class Record:
    """One data line. INFO flags are stored as keys with an empty value list."""

    chrom: str
    pos: int
    id: list[str]
    ref: str
    alt: list[str]
    qual: str
    filter: list[str]
    info: dict[str, list[str]] = field(default_factory=dict)
    format: list[str] = field(default_factory=list)
    sample: list[SampleEntry] = field(default_factory=list)
    identity_key: str | None = None
    line_number: int | None = None

    @property
    def allele_count(self) -> int:
        """Number of ALT alleles, zero when ALT is the missing value."""
        if self.alt == [MISSING]:
            return 0
        return len(self.alt)

    def copy(self) -> "Record":
        return copy.deepcopy(self)

    def assign_from(self, other: "Record") -> None:
        """Overwrite every field in place with the values of ``other``."""
        for f in fields(self):
            setattr(self, f.name, getattr(other, f.name))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Record":
        """Build a record from a column-keyed mapping.

        Keys may be upper case (``CHROM``, ``POS``...) or lower case. Column
        values given as delimited strings are split the same way text input
        is, so both shapes reach the validator identically.
        """
        def pick(name: str, default: Any = None) -> Any:
            if name in data:
                return data[name]
            return data.get(name.lower(), default)

        info = pick("INFO") or {}
        if isinstance(info, str):
            info = split_info(info)
        samples = []
        for i, entry in enumerate(pick("SAMPLE", []) or []):
            if isinstance(entry, SampleEntry):
                samples.append(copy.deepcopy(entry))
                continue
            attrs = {k: as_values(v) for k, v in entry.items() if k not in ("name", "order")}
            samples.append(
                SampleEntry(name=entry.get("name"), order=int(entry.get("order", i)), attrs=attrs)
            )
        chrom = pick("CHROM")
        ref = pick("REF")
        qual = pick("QUAL")
        return cls(
            chrom="" if chrom is None else str(chrom),
            pos=pick("POS"),
            id=_as_tokens(pick("ID"), ";"),
            ref="" if ref is None else str(ref),
            alt=_as_tokens(pick("ALT"), ","),
            qual="" if qual is None else str(qual),
            filter=_as_tokens(pick("FILTER"), ";"),
            info={str(k): as_values(v) for k, v in info.items()},
            format=_as_tokens(pick("FORMAT"), ":") if pick("FORMAT") else [],
            sample=samples,
            identity_key=pick("_id"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "CHROM": self.chrom,
            "POS": self.pos,
            "ID": list(self.id),
            "REF": self.ref,
            "ALT": list(self.alt),
            "QUAL": self.qual,
            "FILTER": list(self.filter),
            "INFO": {k: list(v) for k, v in self.info.items()},
            "FORMAT": list(self.format),
            "SAMPLE": [
                {"name": s.name, "order": s.order, **{k: list(v) for k, v in s.attrs.items()}}
                for s in self.sample
            ],
            "_id": self.identity_key,
        }


@dataclass(frozen=True)
class TextRecord:
    """A raw tab-delimited record line awaiting parsing."""

    line: str
    line_number: int | None = None


RecordInput = TextRecord | Record
