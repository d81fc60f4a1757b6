"""
Tests for DealVerifier.

Tests cover:
- Structural scoring without external calls
- External verification bonus and enrichment
- Failures, timeouts and malformed answers degrade to structural scoring
- Budget enforcement and determinism across a batch
- summarize() and filter_by_verification_status()
"""

import asyncio
from datetime import date

import pytest

from deal_sync.models.deal import DealStatus, VerificationStatus
from deal_sync.models.raw import VerificationResponse
from deal_sync.pipeline.verifier import (
    DealVerifier,
    enrichment_from_details,
    filter_by_verification_status,
    summarize,
)
from deal_sync.models.raw import VerificationDetails


class FakeVerificationService:
    """Records calls and returns a canned response (or raises / stalls)."""

    def __init__(self, response=None, error: Exception | None = None, delay: float = 0.0):
        self.response = response if response is not None else VerificationResponse()
        self.error = error
        self.delay = delay
        self.calls: list[tuple[str, str, str]] = []

    async def verify_deal(self, acquirer: str, target: str, approx_date: str):
        self.calls.append((acquirer, target, approx_date))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.response


CONFIRMED = VerificationResponse.model_validate(
    {
        'verified': True,
        'details': {
            'value_usd': '3.5 billion',
            'status': 'Completed',
            'announced_date': '2024-01-10',
            'synopsis': 'Confirmed by filings',
        },
        'sources': ['https://bloomberg.com/x', 'https://reuters.com/a'],
    }
)


@pytest.fixture
def low_score_deal(make_merged, news_source):
    # 0 (no regulatory) + 0 (one publication) + 15 + 10 + 5 = 30
    return make_merged(sources=[news_source('https://reuters.com/a', 'Reuters')])


# =============================================================================
# verify()
# =============================================================================


class TestVerify:
    @pytest.mark.asyncio
    async def test_high_score_skips_external(self, make_merged, sec_source):
        service = FakeVerificationService(CONFIRMED)
        verifier = DealVerifier(service)
        outcome = await verifier.verify(make_merged(sources=[sec_source()]))

        assert outcome.score == 70
        assert outcome.status == VerificationStatus.VERIFIED
        assert outcome.external_checked is False
        assert service.calls == []

    @pytest.mark.asyncio
    async def test_confirmed_adds_bonus_and_enrichment(self, low_score_deal):
        service = FakeVerificationService(CONFIRMED)
        outcome = await DealVerifier(service).verify(low_score_deal)

        assert service.calls == [('Acme Corp', 'Globex Inc', '2024-01-15')]
        assert outcome.external_checked is True
        assert outcome.score == 50
        assert outcome.status == VerificationStatus.PENDING
        assert outcome.enrichment == {
            'value_usd': 3_500_000_000,
            'status': DealStatus.COMPLETED,
            'announced_date': date(2024, 1, 10),
            'synopsis': 'Confirmed by filings',
        }

    @pytest.mark.asyncio
    async def test_not_verified_keeps_structural(self, low_score_deal):
        service = FakeVerificationService(VerificationResponse(verified=False))
        outcome = await DealVerifier(service).verify(low_score_deal)
        assert outcome.external_checked is True
        assert outcome.score == 30
        assert outcome.enrichment == {}

    @pytest.mark.asyncio
    async def test_exception_is_swallowed(self, low_score_deal):
        service = FakeVerificationService(error=RuntimeError('boom'))
        outcome = await DealVerifier(service).verify(low_score_deal)
        assert outcome.score == 30
        assert outcome.status == VerificationStatus.UNVERIFIED
        assert outcome.external_checked is True

    @pytest.mark.asyncio
    async def test_timeout_is_not_verified(self, low_score_deal):
        service = FakeVerificationService(CONFIRMED, delay=1.0)
        outcome = await DealVerifier(service, call_timeout=0.01).verify(low_score_deal)
        assert outcome.score == 30
        assert outcome.externally_verified is False

    @pytest.mark.asyncio
    async def test_malformed_response_is_not_verified(self, low_score_deal):
        service = FakeVerificationService(response='not json at all')
        outcome = await DealVerifier(service).verify(low_score_deal)
        assert outcome.score == 30
        assert outcome.externally_verified is False

    @pytest.mark.asyncio
    async def test_dict_response_with_non_boolean_verified(self, low_score_deal):
        service = FakeVerificationService(response={'verified': 'yes', 'sources': []})
        outcome = await DealVerifier(service).verify(low_score_deal)
        assert outcome.externally_verified is False

    @pytest.mark.asyncio
    async def test_external_disallowed(self, low_score_deal):
        service = FakeVerificationService(CONFIRMED)
        outcome = await DealVerifier(service).verify(low_score_deal, allow_external_check=False)
        assert service.calls == []
        assert outcome.external_checked is False


class TestEnrichment:
    def test_non_positive_value_dropped(self):
        assert enrichment_from_details(VerificationDetails(value_usd=0)) == {}
        assert enrichment_from_details(VerificationDetails(value_usd=-5)) == {}

    def test_bad_date_dropped(self):
        assert enrichment_from_details(VerificationDetails(announced_date='soon')) == {}

    def test_numeric_value(self):
        assert enrichment_from_details(VerificationDetails(value_usd=1.2e9)) == {
            'value_usd': 1_200_000_000
        }

    def test_none(self):
        assert enrichment_from_details(None) == {}

    def test_infinite_value_dropped(self):
        # json.loads turns 1e400 into inf
        details = VerificationDetails(value_usd=float('inf'), synopsis='Confirmed')
        assert enrichment_from_details(details) == {'synopsis': 'Confirmed'}

    def test_overlong_value_string_dropped(self):
        assert enrichment_from_details(VerificationDetails(value_usd='9' * 400 + ' billion')) == {}


# =============================================================================
# verify_all()
# =============================================================================


class TestVerifyAll:
    @pytest.mark.asyncio
    async def test_budget_limits_calls(self, make_merged, news_source):
        deals = [
            make_merged(acquirer=f'Acquirer {i}', sources=[news_source(f'https://n.com/{i}', 'N')])
            for i in range(20)
        ]
        service = FakeVerificationService(VerificationResponse(verified=False))
        verifier = DealVerifier(service)

        results = await verifier.verify_all(deals, budget=5)

        assert len(service.calls) == 5
        assert verifier.external_calls == 5
        assert [r.external_checked for r in results] == [True] * 5 + [False] * 15
        assert [r.acquirer for r in results] == [d.acquirer for d in deals]

    @pytest.mark.asyncio
    async def test_high_score_deals_do_not_consume_budget(self, make_merged, sec_source):
        deals = [
            make_merged(acquirer='High', sources=[sec_source()]),
            make_merged(acquirer='Low 1', sources=[]),
            make_merged(acquirer='Low 2', sources=[]),
        ]
        service = FakeVerificationService(VerificationResponse(verified=False))
        await DealVerifier(service).verify_all(deals, budget=1)
        assert [c[0] for c in service.calls] == ['Low 1']

    @pytest.mark.asyncio
    async def test_deterministic_for_same_order(self, make_merged):
        deals = [make_merged(acquirer=f'A{i}', sources=[]) for i in range(8)]

        s1 = FakeVerificationService(VerificationResponse(verified=False))
        s2 = FakeVerificationService(VerificationResponse(verified=False))
        await DealVerifier(s1).verify_all(deals, budget=3)
        await DealVerifier(s2).verify_all(deals, budget=3)
        assert s1.calls == s2.calls

    @pytest.mark.asyncio
    async def test_enrichment_and_extra_sources_applied(self, low_score_deal):
        service = FakeVerificationService(CONFIRMED)
        [verified] = await DealVerifier(service).verify_all([low_score_deal], budget=5)

        assert verified.value_usd == 3_500_000_000
        assert verified.status == DealStatus.COMPLETED
        assert verified.announced_date == date(2024, 1, 10)
        assert verified.confidence_score == 50
        urls = [s.url for s in verified.sources]
        assert urls == ['https://reuters.com/a', 'https://bloomberg.com/x']
        assert verified.sources[1].publication == 'Perplexity'

    @pytest.mark.asyncio
    async def test_disallowed_spends_nothing(self, low_score_deal):
        service = FakeVerificationService(CONFIRMED)
        results = await DealVerifier(service).verify_all(
            [low_score_deal], budget=5, allow_external_check=False
        )
        assert service.calls == []
        assert results[0].confidence_score == 30

    @pytest.mark.asyncio
    async def test_no_service_configured(self, low_score_deal):
        results = await DealVerifier(None).verify_all([low_score_deal], budget=5)
        assert results[0].external_checked is False

    @pytest.mark.asyncio
    async def test_infinite_value_keeps_stored_value(self, low_score_deal):
        response = VerificationResponse.model_validate(
            {'verified': True, 'details': {'value_usd': float('inf')}, 'sources': []}
        )
        [verified] = await DealVerifier(FakeVerificationService(response)).verify_all(
            [low_score_deal], budget=1
        )
        assert verified.confidence_score == 50
        assert verified.value_usd == 2_000_000_000


# =============================================================================
# Reporting helpers
# =============================================================================


class TestSummaryAndFilter:
    @pytest.mark.asyncio
    async def test_summarize(self, make_merged, sec_source, news_source):
        deals = [
            make_merged(acquirer='V', sources=[sec_source()]),  # 70
            make_merged(acquirer='P', sources=[
                news_source('https://a.com', 'A'),
                news_source('https://b.com', 'B'),
                news_source('https://c.com', 'C'),
            ]),  # 50
            make_merged(acquirer='U', value_usd=None, sources=[]),  # 20
        ]
        verified = await DealVerifier(None).verify_all(deals, budget=0)
        summary = summarize(verified)

        assert summary.verified == 1
        assert summary.pending == 1
        assert summary.unverified == 1
        assert summary.avg_score == 47
        assert summary.external_checks == 0

        assert [d.acquirer for d in filter_by_verification_status(verified, VerificationStatus.PENDING)] == ['P']
        assert len(filter_by_verification_status(verified, 'all')) == 3

    def test_summarize_empty(self):
        summary = summarize([])
        assert summary.avg_score == 0
        assert summary.verified == 0
