"""Per-version grammar: ALT alleles, Number codes, INFO IDs and meta vocabulary.

Rules are plain data keyed by the exact ``fileformat`` string. A version
outside the table falls back to the newest grammar.
"""

import re
from dataclasses import dataclass

VERSIONS = ("VCFv4.1", "VCFv4.2", "VCFv4.3")
LATEST = "VCFv4.3"

SCALAR_KEYS = (
    "fileformat",
    "fileDate",
    "source",
    "reference",
    "assembly",
    "phasing",
    "commandline",
    "pedigreeDB",
)

# Serialization order of the recognised meta keys; ``other`` follows.
EMIT_ORDER = (
    "fileformat",
    "fileDate",
    "source",
    "reference",
    "assembly",
    "phasing",
    "commandline",
    "PEDIGREE",
    "pedigreeDB",
    "contig",
    "INFO",
    "FORMAT",
    "FILTER",
    "ALT",
    "SAMPLE",
    "META",
)

MANDATORY_COLUMNS = ("#CHROM", "POS", "ID", "REF", "ALT", "QUAL", "FILTER", "INFO")

REQUIRED_SECTIONS = ("fileformat", "INFO", "FORMAT", "FILTER")

REQUIRED_ATTRIBUTES = {
    "INFO": ("ID", "Number", "Type", "Description"),
    "FORMAT": ("ID", "Number", "Type", "Description"),
    "FILTER": ("ID", "Description"),
    "ALT": ("ID", "Description"),
    "SAMPLE": ("ID", "Description"),
    "META": ("ID", "Type", "Number", "Values"),
}

ALLOWED_TYPES = {
    "INFO": frozenset({"Integer", "Float", "Flag", "Character", "String"}),
    "FORMAT": frozenset({"Integer", "Float", "Character", "String"}),
}

SYMBOLIC_ALLELES = re.compile(
    r"^<(INS|DEL|DUP|INV|CNV|DUP:TANDEM|INS:NOVEL"
    r"|INS:ME(:(ALU|L1|LINE1|SVA|HERV))?"
    r"|DEL:ME(:(ALU|L1|LINE1|SVA|HERV))?)>$"
)
SYMBOLIC_REFERENCE = re.compile(r"^<([^<>]+)>$")

_BREAKEND = r"(\](?![:\s])[^\]]+:\d+\]|\[(?![:\s])[^\[]+:\d+\[)"
_BASES_V41 = r"[ACGTN]+"
_BASES_V43 = r"[ACGTNRYSWKMBDHV-]+"

REF_PATTERN = re.compile(r"^[ACGTN]+$", re.IGNORECASE)


def _allele_pattern(bases: str, spanning_deletion: bool) -> re.Pattern:
    alternatives = [rf"\.?{_BREAKEND}?{bases}{_BREAKEND}?\.?", r"\."]
    if spanning_deletion:
        alternatives.append(r"\*")
    return re.compile("^(" + "|".join(alternatives) + ")$", re.IGNORECASE)


@dataclass(frozen=True)
class Grammar:
    """Version-specific rules consulted by header and record validation."""

    version: str
    alt: re.Pattern
    number: re.Pattern
    info_id: re.Pattern | None
    meta_names: tuple[str, ...]
    declaration_kinds: tuple[str, ...]

    def is_valid_alt(self, allele: str) -> bool:
        """Match an allele against bases, breakends, markers and the symbolic vocabulary."""
        return bool(self.alt.match(allele) or SYMBOLIC_ALLELES.match(allele))


_META_NAMES_V41 = (
    "fileformat",
    "fileDate",
    "source",
    "assembly",
    "phasing",
    "commandline",
    "pedigreeDB",
    "contig",
    "reference",
    "PEDIGREE",
    "INFO",
    "FORMAT",
    "FILTER",
    "ALT",
    "SAMPLE",
)

_GRAMMARS = {
    "VCFv4.1": Grammar(
        version="VCFv4.1",
        alt=_allele_pattern(_BASES_V41, spanning_deletion=False),
        number=re.compile(r"^\d+$|^[AG]$|^\.$"),
        info_id=None,
        meta_names=_META_NAMES_V41,
        declaration_kinds=("contig", "INFO", "FORMAT", "FILTER", "ALT", "SAMPLE"),
    ),
    "VCFv4.2": Grammar(
        version="VCFv4.2",
        alt=_allele_pattern(_BASES_V41, spanning_deletion=True),
        number=re.compile(r"^\d+$|^[AGR]$|^\.$"),
        info_id=None,
        meta_names=_META_NAMES_V41,
        declaration_kinds=("contig", "INFO", "FORMAT", "FILTER", "ALT", "SAMPLE"),
    ),
    "VCFv4.3": Grammar(
        version="VCFv4.3",
        alt=_allele_pattern(_BASES_V43, spanning_deletion=True),
        number=re.compile(r"^\d+$|^[AGR]$|^\.$"),
        info_id=re.compile(r"^([A-Za-z_][0-9A-Za-z_.]*|1000G)$"),
        meta_names=_META_NAMES_V41 + ("META",),
        declaration_kinds=("contig", "INFO", "FORMAT", "FILTER", "ALT", "SAMPLE", "META"),
    ),
}


def is_supported(version: str | None) -> bool:
    return version in _GRAMMARS


def get_grammar(version: str | None) -> Grammar:
    """Return the grammar for an exact version string, else the newest one."""
    return _GRAMMARS.get(version or LATEST, _GRAMMARS[LATEST])
