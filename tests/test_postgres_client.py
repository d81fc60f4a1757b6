"""
Tests for the PostgresClient.

Tests cover:
- Connection management (connect, close, verify_connectivity)
- URL sanitising and driver normalisation
- Deal insert with sources in one transaction
- Column allow-lists for updates
- Public deal listing with filters and paging
- Company and sync log statements
"""

from __future__ import annotations

import json
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import UUID, uuid4

import pytest

from deal_sync.clients.postgres_client import (
    PostgresClient,
    _normalize_driver,
    _sanitize_url,
    _set_clause,
    _to_pg_date,
    _to_pg_uuid,
    DEAL_UPDATABLE_COLUMNS,
)
from deal_sync.models.listing import DealListQuery


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def mock_engine():
    """Create a mock AsyncEngine with a mock connection context manager."""
    engine = AsyncMock()

    conn = AsyncMock()
    conn.execute = AsyncMock()

    ctx = AsyncMock()
    ctx.__aenter__ = AsyncMock(return_value=conn)
    ctx.__aexit__ = AsyncMock(return_value=False)

    engine.begin = MagicMock(return_value=ctx)
    engine.dispose = AsyncMock()

    return engine, conn


@pytest.fixture
def client(mock_engine):
    """Create a PostgresClient with a pre-injected mock engine."""
    engine, _ = mock_engine
    pg = PostgresClient()
    pg._engine = engine
    return pg


def _sql(call) -> str:
    return str(call.args[0])


def _row_result(row):
    result = MagicMock()
    result.mappings.return_value.first.return_value = row
    return result


# =============================================================================
# Helper Function Tests
# =============================================================================


class TestHelpers:
    def test_to_pg_uuid(self):
        uid = uuid4()
        assert _to_pg_uuid(uid) == str(uid)
        assert _to_pg_uuid('abc-123') == 'abc-123'
        assert _to_pg_uuid(None) is None

    def test_to_pg_date(self):
        assert _to_pg_date('2024-01-15T00:00:00') == date(2024, 1, 15)
        assert _to_pg_date(date(2024, 1, 15)) == date(2024, 1, 15)
        assert _to_pg_date(None) is None

    def test_sanitize_url_strips_libpq_params(self):
        url = 'postgresql://u:p@host/db?sslmode=require&channel_binding=require&application_name=x'
        assert _sanitize_url(url) == 'postgresql://u:p@host/db?application_name=x'

    def test_sanitize_url_without_query(self):
        assert _sanitize_url('postgresql://host/db') == 'postgresql://host/db'

    def test_normalize_driver(self):
        assert _normalize_driver('postgres://h/db') == 'postgresql+asyncpg://h/db'
        assert _normalize_driver('postgresql://h/db') == 'postgresql+asyncpg://h/db'
        assert _normalize_driver('postgresql+asyncpg://h/db') == 'postgresql+asyncpg://h/db'

    def test_set_clause_rejects_unknown_columns(self):
        with pytest.raises(ValueError):
            _set_clause({'slug': 'x'}, DEAL_UPDATABLE_COLUMNS)

    def test_set_clause_sorted(self):
        assert _set_clause({'status': 1, 'confidence_score': 2}, DEAL_UPDATABLE_COLUMNS) == (
            'confidence_score = :confidence_score, status = :status'
        )


# =============================================================================
# Connection Management Tests
# =============================================================================


class TestConnectionManagement:
    @pytest.mark.asyncio
    async def test_connect_creates_engine(self):
        pg = PostgresClient()
        with patch('deal_sync.clients.postgres_client.create_async_engine') as mock_create:
            mock_create.return_value = AsyncMock()
            await pg.connect('postgres://host/db?sslmode=require')

            url = mock_create.call_args[0][0]
            assert url == 'postgresql+asyncpg://host/db'
            connect_args = mock_create.call_args.kwargs['connect_args']
            assert connect_args['prepared_statement_cache_size'] == 0
            assert connect_args['ssl'] == 'require'

    @pytest.mark.asyncio
    async def test_connect_without_ssl(self):
        pg = PostgresClient('postgresql://localhost/test', require_ssl=False)
        with patch('deal_sync.clients.postgres_client.create_async_engine') as mock_create:
            mock_create.return_value = AsyncMock()
            await pg.connect()
            assert 'ssl' not in mock_create.call_args.kwargs['connect_args']

    @pytest.mark.asyncio
    async def test_connect_idempotent(self):
        pg = PostgresClient()
        with patch('deal_sync.clients.postgres_client.create_async_engine') as mock_create:
            mock_create.return_value = AsyncMock()
            await pg.connect('postgresql://localhost/test')
            await pg.connect('postgresql://localhost/test')
            mock_create.assert_called_once()

    @pytest.mark.asyncio
    async def test_connect_requires_url(self):
        with pytest.raises(ValueError):
            await PostgresClient().connect()

    @pytest.mark.asyncio
    async def test_close_disposes_engine(self, client, mock_engine):
        engine, _ = mock_engine
        await client.close()
        engine.dispose.assert_awaited_once()
        assert client._engine is None

    def test_engine_requires_connect(self):
        with pytest.raises(RuntimeError):
            PostgresClient().engine

    @pytest.mark.asyncio
    async def test_verify_connectivity_success(self, client):
        assert await client.verify_connectivity() is True

    @pytest.mark.asyncio
    async def test_verify_connectivity_failure(self, client, mock_engine):
        _, conn = mock_engine
        conn.execute.side_effect = Exception('connection refused')
        assert await client.verify_connectivity() is False

    @pytest.mark.asyncio
    async def test_setup_schema_creates_all_tables(self, client, mock_engine):
        _, conn = mock_engine
        await client.setup_schema()
        statements = ' '.join(_sql(c) for c in conn.execute.call_args_list)
        for table in ('companies', 'deals', 'deal_sources', 'deal_status_history', 'sync_logs'):
            assert f'CREATE TABLE IF NOT EXISTS {table}' in statements


# =============================================================================
# Deal Tests
# =============================================================================


class TestDeals:
    @pytest.mark.asyncio
    async def test_get_deal_by_slug(self, client, mock_engine):
        _, conn = mock_engine
        deal_id = uuid4()
        conn.execute.return_value = _row_result({'id': deal_id, 'status': 'Announced'})

        row = await client.get_deal_by_slug('acme-globex-202401')

        assert row == {'id': deal_id, 'status': 'Announced'}
        assert conn.execute.call_args.args[1] == {'slug': 'acme-globex-202401'}

    @pytest.mark.asyncio
    async def test_get_deal_by_slug_missing(self, client, mock_engine):
        _, conn = mock_engine
        conn.execute.return_value = _row_result(None)
        assert await client.get_deal_by_slug('nope') is None

    @pytest.mark.asyncio
    async def test_insert_deal_with_sources_single_transaction(self, client, mock_engine):
        engine, conn = mock_engine
        acquirer_id = uuid4()

        deal_id = await client.insert_deal_with_sources(
            {
                'slug': 'acme-globex-202401',
                'title': 'Acme to Acquire Globex',
                'status': 'Announced',
                'announced_date': date(2024, 1, 15),
                'value_usd': 2_000_000_000,
                'acquirer_id': acquirer_id,
                'confidence_score': 70,
                'verification_status': 'verified',
            },
            [
                {'source_type': 'sec_edgar', 'source_url': 'https://sec.gov/x', 'publication_name': 'SEC EDGAR', 'is_primary': True},
                {'source_type': 'perplexity', 'source_url': 'https://reuters.com/a', 'publication_name': 'Reuters'},
            ],
        )

        assert isinstance(deal_id, UUID)
        engine.begin.assert_called_once()
        assert conn.execute.await_count == 3

        deal_params = conn.execute.call_args_list[0].args[1]
        assert 'INSERT INTO deals' in _sql(conn.execute.call_args_list[0])
        assert deal_params['id'] == str(deal_id)
        assert deal_params['acquirer_id'] == str(acquirer_id)
        assert deal_params['target_id'] is None
        assert deal_params['visibility'] == 'public'
        assert deal_params['currency'] == 'USD'
        assert deal_params['deal_terms_fetched'] is False

        source_params = [c.args[1] for c in conn.execute.call_args_list[1:]]
        assert all(p['deal_id'] == str(deal_id) for p in source_params)
        assert [p['is_primary'] for p in source_params] == [True, False]

    @pytest.mark.asyncio
    async def test_insert_failure_propagates(self, client, mock_engine):
        _, conn = mock_engine
        conn.execute.side_effect = Exception('duplicate key value violates unique constraint')
        with pytest.raises(Exception, match='duplicate key'):
            await client.insert_deal_with_sources(
                {'slug': 's', 'title': 't', 'status': 'Announced'}, []
            )

    @pytest.mark.asyncio
    async def test_update_deal(self, client, mock_engine):
        _, conn = mock_engine
        deal_id = uuid4()
        target_id = uuid4()

        await client.update_deal(deal_id, {'status': 'Completed', 'target_id': target_id})

        sql = _sql(conn.execute.call_args)
        params = conn.execute.call_args.args[1]
        assert 'UPDATE deals' in sql
        assert 'status = :status' in sql
        assert 'updated_at = now()' in sql
        assert params['deal_id'] == str(deal_id)
        assert params['target_id'] == str(target_id)

    @pytest.mark.asyncio
    async def test_update_deal_empty_is_noop(self, client, mock_engine):
        engine, _ = mock_engine
        await client.update_deal(uuid4(), {})
        engine.begin.assert_not_called()

    @pytest.mark.asyncio
    async def test_update_deal_rejects_slug(self, client):
        with pytest.raises(ValueError):
            await client.update_deal(uuid4(), {'slug': 'other'})

    @pytest.mark.asyncio
    async def test_insert_status_history(self, client, mock_engine):
        _, conn = mock_engine
        await client.insert_status_history(uuid4(), 'Announced', 'Completed', notes='Updated via sync')
        params = conn.execute.call_args.args[1]
        assert params['old_status'] == 'Announced'
        assert params['new_status'] == 'Completed'
        assert params['notes'] == 'Updated via sync'

    @pytest.mark.asyncio
    async def test_list_deals_filters_sort_and_page(self, client, mock_engine):
        _, conn = mock_engine
        deal_id = uuid4()
        count_result = MagicMock()
        count_result.scalar_one.return_value = 1
        page_result = MagicMock()
        page_result.mappings.return_value.all.return_value = [
            {
                'id': deal_id,
                'title': 'Acme to Acquire Globex',
                'sources': json.dumps([{'source_type': 'sec_edgar', 'is_primary': True}]),
            }
        ]
        conn.execute.side_effect = [count_result, page_result]

        rows, total = await client.list_deals(
            DealListQuery(status='Completed', minValue=1_000_000_000, sort='value_usd', order='asc', limit=10, offset=20)
        )

        assert total == 1
        assert rows[0]['sources'] == [{'source_type': 'sec_edgar', 'is_primary': True}]

        count_call, page_call = conn.execute.call_args_list
        count_sql = _sql(count_call)
        assert "d.visibility = 'public'" in count_sql
        assert 'd.status = :status' in count_sql
        assert 'd.value_usd >= :min_value' in count_sql
        assert 'd.value_usd <= :max_value' not in count_sql
        assert count_call.args[1] == {'status': 'Completed', 'min_value': 1_000_000_000}

        page_sql = _sql(page_call)
        assert 'ORDER BY d.value_usd ASC NULLS LAST' in page_sql
        assert page_call.args[1]['limit'] == 10
        assert page_call.args[1]['offset'] == 20

    @pytest.mark.asyncio
    async def test_list_deals_rejects_unlisted_sort(self, client, mock_engine):
        engine, _ = mock_engine
        with pytest.raises(ValueError):
            await client.list_deals(DealListQuery.model_construct(sort='id; DROP TABLE deals'))
        engine.begin.assert_not_called()


# =============================================================================
# Company Tests
# =============================================================================


class TestCompanies:
    @pytest.mark.asyncio
    async def test_insert_company_with_logo(self, client, mock_engine):
        _, conn = mock_engine
        company_id = await client.insert_company('Acme Corp', 'acme', 'acme.com', 'https://logo/acme')
        params = conn.execute.call_args.args[1]
        assert isinstance(company_id, UUID)
        assert params['id'] == str(company_id)
        assert params['logo_fetched'] is True

    @pytest.mark.asyncio
    async def test_insert_company_without_logo(self, client, mock_engine):
        _, conn = mock_engine
        await client.insert_company('Acme Corp', 'acme')
        assert conn.execute.call_args.args[1]['logo_fetched'] is False

    @pytest.mark.asyncio
    async def test_get_company_by_normalized_name(self, client, mock_engine):
        _, conn = mock_engine
        conn.execute.return_value = _row_result({'id': 'c1', 'logo_fetched': False})
        row = await client.get_company_by_normalized_name('acme')
        assert row['id'] == 'c1'

    @pytest.mark.asyncio
    async def test_update_company_allow_list(self, client):
        with pytest.raises(ValueError):
            await client.update_company(uuid4(), {'name': 'x'})


# =============================================================================
# Sync Log Tests
# =============================================================================


class TestSyncLogs:
    @pytest.mark.asyncio
    async def test_insert_sync_log(self, client, mock_engine):
        _, conn = mock_engine
        started = datetime(2024, 1, 1, tzinfo=timezone.utc)
        log_id = await client.insert_sync_log('scheduled', started)
        params = conn.execute.call_args.args[1]
        assert params == {'id': str(log_id), 'sync_type': 'scheduled', 'started_at': started}
        assert "'running'" in _sql(conn.execute.call_args)

    @pytest.mark.asyncio
    async def test_update_sync_log_serialises_errors(self, client, mock_engine):
        _, conn = mock_engine
        await client.update_sync_log('log-1', 'completed', ['a: boom'], deals_added=2, deals_updated=1)
        params = conn.execute.call_args.args[1]
        assert json.loads(params['errors']) == ['a: boom']
        assert params['deals_added'] == 2
        assert params['completed_at'] is not None

    @pytest.mark.asyncio
    async def test_update_sync_log_failed_keeps_counts(self, client, mock_engine):
        _, conn = mock_engine
        await client.update_sync_log('log-1', 'failed', ['fatal'])
        params = conn.execute.call_args.args[1]
        assert params['deals_added'] is None
        assert 'COALESCE(:deals_added, deals_added)' in _sql(conn.execute.call_args)
