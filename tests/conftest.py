"""
Pytest configuration and shared fixtures.

Key fixtures:
- make_candidate: factory for CandidateDeal with sensible defaults
- make_merged: factory for MergedDeal
- sec_source / news_source: SourceRef factories

No test needs network access or a database; collaborators are faked or
mocked with unittest.mock.
"""

import sys
from datetime import date
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

# Load environment variables
from dotenv import load_dotenv

env_file = Path(__file__).parent.parent / '.env'
if env_file.exists():
    load_dotenv(env_file)

from deal_sync.models.deal import (  # noqa: E402
    CandidateDeal,
    DealStatus,
    MergedDeal,
    SourceRef,
    SourceType,
)


def _sec_source(url: str = 'https://www.sec.gov/Archives/edgar/data/1/000000000124000001') -> SourceRef:
    return SourceRef(url=url, publication='SEC EDGAR', type=SourceType.SEC_EDGAR)


def _news_source(url: str, publication: str) -> SourceRef:
    return SourceRef(url=url, publication=publication, type=SourceType.PERPLEXITY)


@pytest.fixture
def sec_source():
    """Factory for an SEC EDGAR SourceRef."""
    return _sec_source


@pytest.fixture
def news_source():
    """Factory for a news SourceRef found by discovery search."""
    return _news_source


def _deal_kwargs(**overrides) -> dict:
    kwargs = {
        'acquirer': 'Acme Corp',
        'target': 'Globex Inc',
        'value_usd': 2_000_000_000,
        'status': DealStatus.ANNOUNCED,
        'announced_date': date(2024, 1, 15),
        'sources': [],
    }
    kwargs.update(overrides)
    return kwargs


@pytest.fixture
def make_candidate():
    """Factory for CandidateDeal."""

    def _make(**overrides) -> CandidateDeal:
        return CandidateDeal(**_deal_kwargs(**overrides))

    return _make


@pytest.fixture
def make_merged():
    """Factory for MergedDeal."""

    def _make(**overrides) -> MergedDeal:
        return MergedDeal(**_deal_kwargs(**overrides))

    return _make
