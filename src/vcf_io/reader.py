"""Line source for VCF input: paths (plain or gzip), open handles or string iterables."""

import gzip
import logging
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import IO

logger = logging.getLogger(__name__)

LineSource = Path | str | IO[str] | Iterable[str]


def open_vcf(path: Path | str) -> IO[str]:
    """Open a VCF path for text reading, decompressing ``.gz`` files."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"VCF file not found: {path}")
    opener = gzip.open if str(path).endswith(".gz") else open
    return opener(path, "rt")


def iter_lines(source: LineSource) -> Iterator[tuple[int, str]]:
    """Yield ``(line_number, line)`` pairs with line endings removed.

    Line numbers start at 1. A ``str`` or ``Path`` is treated as a file path.
    """
    if isinstance(source, (str, Path)):
        logger.debug("Reading %s", source)
        with open_vcf(source) as handle:
            yield from _numbered(handle)
    else:
        yield from _numbered(source)


def _numbered(lines: Iterable[str]) -> Iterator[tuple[int, str]]:
    for line_number, line in enumerate(lines, start=1):
        yield line_number, line.rstrip("\r\n")
