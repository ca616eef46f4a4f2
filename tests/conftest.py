"""Pytest configuration and fixtures for vcf-io tests."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent))

from fixtures.vcf_generator import (  # noqa: E402
    TRIO_SAMPLES,
    SyntheticVariant,
    VCFGenerator,
    make_basic_variants,
    make_basic_vcf_file,
    make_multiallelic_vcf_file,
    make_trio_vcf_file,
)

from vcf_io.header import VCFHeader  # noqa: E402


@pytest.fixture
def vcf_generator():
    """Provide VCFGenerator class for tests."""
    return VCFGenerator


@pytest.fixture
def synthetic_variant_factory():
    """Factory for creating SyntheticVariant instances."""

    def _factory(**kwargs):
        defaults = {
            "chrom": "chr1",
            "pos": 100,
            "ref": "A",
            "alt": ["G"],
        }
        defaults.update(kwargs)
        return SyntheticVariant(**defaults)

    return _factory


@pytest.fixture
def basic_lines() -> list[str]:
    """Lines of a valid single-sample VCF with three records."""
    return VCFGenerator.generate_lines(make_basic_variants())


@pytest.fixture
def header_factory():
    """Build a parsed VCFHeader from the generator template."""

    def _factory(samples=None, version="VCFv4.2", extra_header=None, validation="strict"):
        header = VCFHeader(validation=validation)
        header.parse_and_validate(VCFGenerator.header_lines(samples, version, extra_header))
        return header

    return _factory


@pytest.fixture
def strict_header(header_factory) -> VCFHeader:
    return header_factory()


@pytest.fixture
def trio_header(header_factory) -> VCFHeader:
    return header_factory(samples=TRIO_SAMPLES)


@pytest.fixture
def basic_vcf_file():
    """Generate a valid single-sample VCF file."""
    path = make_basic_vcf_file()
    yield path
    if path.exists():
        path.unlink()


@pytest.fixture
def trio_vcf_file():
    """Generate a VCF file with three samples."""
    path = make_trio_vcf_file()
    yield path
    if path.exists():
        path.unlink()


@pytest.fixture
def multiallelic_vcf_file():
    """Generate a VCF file with multi-allelic variants."""
    path = make_multiallelic_vcf_file(n_alts=3)
    yield path
    if path.exists():
        path.unlink()
