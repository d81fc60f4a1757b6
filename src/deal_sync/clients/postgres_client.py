"""
Postgres client for the deal sync pipeline.

Uses SQLAlchemy 2.0 async engine + asyncpg with raw SQL. Each public method is
one transaction (engine.begin()); a deal insert and its source rows share a
single transaction so a deal never lands without its citations.

Tables:
- deals (natural key: slug)
- companies (lookup key: name_normalized)
- deal_sources (one row per citation, FK deals.id)
- deal_status_history (append-only status transitions)
- sync_logs (one row per sync run)
"""

from __future__ import annotations

import json
from datetime import date, datetime, timezone
from typing import Any
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse
from uuid import UUID

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from ..models.listing import SORTABLE_COLUMNS, DealListQuery
from ..utils import uuid7

logger = structlog.get_logger(__name__)


# Columns update_deal / update_company may write; keys outside these are rejected.
DEAL_UPDATABLE_COLUMNS = frozenset({
    'status', 'value_usd', 'synopsis', 'confidence_score', 'verification_status',
    'acquirer_id', 'target_id', 'payment_structure', 'breakup_fee', 'deal_terms_fetched',
})
COMPANY_UPDATABLE_COLUMNS = frozenset({'logo_url', 'logo_fetched', 'website'})


SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS companies (
        id UUID PRIMARY KEY,
        name TEXT NOT NULL,
        name_normalized TEXT NOT NULL UNIQUE,
        website TEXT,
        logo_url TEXT,
        logo_fetched BOOLEAN NOT NULL DEFAULT false,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS deals (
        id UUID PRIMARY KEY,
        slug TEXT NOT NULL UNIQUE,
        title TEXT NOT NULL,
        status TEXT NOT NULL,
        visibility TEXT NOT NULL DEFAULT 'public',
        announced_date DATE,
        value_usd BIGINT,
        currency TEXT NOT NULL DEFAULT 'USD',
        synopsis TEXT,
        sector TEXT,
        geography TEXT,
        payment_structure TEXT,
        breakup_fee TEXT,
        acquirer_id UUID REFERENCES companies(id),
        target_id UUID REFERENCES companies(id),
        confidence_score INTEGER NOT NULL DEFAULT 0,
        verification_status TEXT NOT NULL DEFAULT 'unverified',
        deal_terms_fetched BOOLEAN NOT NULL DEFAULT false,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS deal_sources (
        id UUID PRIMARY KEY,
        deal_id UUID NOT NULL REFERENCES deals(id) ON DELETE CASCADE,
        source_type TEXT NOT NULL,
        source_url TEXT NOT NULL,
        publication_name TEXT,
        is_primary BOOLEAN NOT NULL DEFAULT false,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS deal_status_history (
        id UUID PRIMARY KEY,
        deal_id UUID NOT NULL REFERENCES deals(id) ON DELETE CASCADE,
        old_status TEXT,
        new_status TEXT NOT NULL,
        notes TEXT,
        changed_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sync_logs (
        id UUID PRIMARY KEY,
        sync_type TEXT NOT NULL,
        status TEXT NOT NULL,
        started_at TIMESTAMPTZ NOT NULL,
        completed_at TIMESTAMPTZ,
        deals_added INTEGER NOT NULL DEFAULT 0,
        deals_updated INTEGER NOT NULL DEFAULT 0,
        errors JSONB NOT NULL DEFAULT '[]'::jsonb
    )
    """,
)


def _to_pg_uuid(val: UUID | str | None) -> str | None:
    """Convert UUID or string to plain string for Postgres, or None."""
    if val is None:
        return None
    return str(val)


def _to_pg_date(val: date | str | None) -> date | None:
    """asyncpg needs native date objects, not ISO strings."""
    if val is None or isinstance(val, date):
        return val
    return date.fromisoformat(val[:10])


def _sanitize_url(url: str) -> str:
    """Remove URL query params that asyncpg does not understand.

    Pooler URLs include ``channel_binding=require`` and ``sslmode=require``
    which are libpq parameters. asyncpg rejects unknown connection params.
    SQLAlchemy's asyncpg dialect handles SSL via ``connect_args`` instead.
    """
    _STRIP_PARAMS = {'channel_binding', 'sslmode'}
    parsed = urlparse(url)
    if not parsed.query:
        return url
    params = parse_qs(parsed.query)
    filtered = {k: v for k, v in params.items() if k not in _STRIP_PARAMS}
    new_query = urlencode(filtered, doseq=True)
    return urlunparse(parsed._replace(query=new_query))


def _normalize_driver(url: str) -> str:
    if url.startswith('postgres://'):
        return url.replace('postgres://', 'postgresql+asyncpg://', 1)
    if url.startswith('postgresql://') and '+asyncpg' not in url:
        return url.replace('postgresql://', 'postgresql+asyncpg://', 1)
    return url


def _set_clause(fields: dict[str, Any], allowed: frozenset[str]) -> str:
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f'Columns not updatable: {sorted(unknown)}')
    return ', '.join(f'{col} = :{col}' for col in sorted(fields))


class PostgresClient:
    """
    Async Postgres client for the deals schema.

    Uses SQLAlchemy 2.0 async engine with asyncpg for raw SQL execution.
    Errors propagate; callers decide whether a failure is per-record or fatal.
    """

    def __init__(self, database_url: str | None = None, require_ssl: bool = True):
        """
        Initialize with a Postgres connection URL.

        Args:
            database_url: Postgres connection URL. 'postgres://' and
                          'postgresql://' prefixes are converted to use asyncpg.
            require_ssl: Pass ssl='require' to asyncpg (hosted Postgres)
        """
        self._engine: AsyncEngine | None = None
        self._database_url = database_url
        self._require_ssl = require_ssl

    async def connect(self, database_url: str | None = None) -> None:
        """
        Create the async engine. Idempotent: no-op if already connected.

        Args:
            database_url: Override the URL from __init__.
        """
        if self._engine is not None:
            return

        url = database_url or self._database_url
        if not url:
            raise ValueError('database_url is required')

        url = _normalize_driver(_sanitize_url(url))

        connect_args: dict[str, Any] = {'prepared_statement_cache_size': 0}
        if self._require_ssl:
            connect_args['ssl'] = 'require'

        self._engine = create_async_engine(
            url,
            pool_size=5,
            max_overflow=5,
            pool_pre_ping=True,
            pool_timeout=30,
            connect_args=connect_args,
        )
        logger.info('postgres_client.connected')

    async def close(self) -> None:
        """Dispose of the engine and connection pool."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            logger.info('postgres_client.closed')

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError('PostgresClient not connected, call connect() first')
        return self._engine

    async def verify_connectivity(self) -> bool:
        """Return True if we can execute a simple query."""
        try:
            async with self.engine.begin() as conn:
                await conn.execute(text('SELECT 1'))
            return True
        except Exception:
            logger.exception('postgres_client.connectivity_check_failed')
            return False

    async def setup_schema(self) -> None:
        """Create the tables if they do not exist."""
        async with self.engine.begin() as conn:
            for statement in SCHEMA_STATEMENTS:
                await conn.execute(text(statement))
        logger.info('postgres_client.schema_ready')

    async def _fetch_one(self, sql: str, params: dict[str, Any]) -> dict[str, Any] | None:
        async with self.engine.begin() as conn:
            result = await conn.execute(text(sql), params)
            row = result.mappings().first()
        return dict(row) if row is not None else None

    # =========================================================================
    # Deals
    # =========================================================================

    async def get_deal_by_slug(self, slug: str) -> dict[str, Any] | None:
        """Existing deal row fields the upsert needs, or None."""
        return await self._fetch_one(
            """
            SELECT id, status, deal_terms_fetched, acquirer_id, target_id
            FROM deals
            WHERE slug = :slug
            """,
            {'slug': slug},
        )

    async def insert_deal_with_sources(
        self,
        deal: dict[str, Any],
        sources: list[dict[str, Any]],
    ) -> UUID:
        """
        Insert a deal row and its source rows in one transaction.

        Args:
            deal: Column values for deals (id generated when absent)
            sources: Dicts with source_type, source_url, publication_name, is_primary

        Returns:
            The new deal id
        """
        deal_id = deal.get('id') or uuid7()
        params = {
            'id': _to_pg_uuid(deal_id),
            'slug': deal['slug'],
            'title': deal['title'],
            'status': deal['status'],
            'visibility': deal.get('visibility', 'public'),
            'announced_date': _to_pg_date(deal.get('announced_date')),
            'value_usd': deal.get('value_usd'),
            'currency': deal.get('currency', 'USD'),
            'synopsis': deal.get('synopsis'),
            'sector': deal.get('sector'),
            'geography': deal.get('geography'),
            'payment_structure': deal.get('payment_structure'),
            'breakup_fee': deal.get('breakup_fee'),
            'acquirer_id': _to_pg_uuid(deal.get('acquirer_id')),
            'target_id': _to_pg_uuid(deal.get('target_id')),
            'confidence_score': deal.get('confidence_score', 0),
            'verification_status': deal.get('verification_status', 'unverified'),
            'deal_terms_fetched': bool(deal.get('deal_terms_fetched', False)),
        }

        deal_sql = """
        INSERT INTO deals (
            id, slug, title, status, visibility, announced_date, value_usd, currency,
            synopsis, sector, geography, payment_structure, breakup_fee,
            acquirer_id, target_id, confidence_score, verification_status,
            deal_terms_fetched, created_at, updated_at
        ) VALUES (
            :id, :slug, :title, :status, :visibility, :announced_date, :value_usd, :currency,
            :synopsis, :sector, :geography, :payment_structure, :breakup_fee,
            :acquirer_id, :target_id, :confidence_score, :verification_status,
            :deal_terms_fetched, now(), now()
        )
        """
        source_sql = """
        INSERT INTO deal_sources (
            id, deal_id, source_type, source_url, publication_name, is_primary
        ) VALUES (
            :id, :deal_id, :source_type, :source_url, :publication_name, :is_primary
        )
        """

        async with self.engine.begin() as conn:
            await conn.execute(text(deal_sql), params)
            for source in sources:
                await conn.execute(text(source_sql), {
                    'id': _to_pg_uuid(uuid7()),
                    'deal_id': params['id'],
                    'source_type': source['source_type'],
                    'source_url': source['source_url'],
                    'publication_name': source.get('publication_name'),
                    'is_primary': bool(source.get('is_primary', False)),
                })

        logger.info(
            'postgres_client.insert_deal',
            deal_id=params['id'],
            slug=params['slug'],
            sources=len(sources),
        )
        return UUID(params['id'])

    async def update_deal(self, deal_id: UUID | str, fields: dict[str, Any]) -> None:
        """Update the given columns of one deal and bump updated_at."""
        if not fields:
            return
        params = {
            k: _to_pg_uuid(v) if k in ('acquirer_id', 'target_id') else v
            for k, v in fields.items()
        }
        sql = f"""
        UPDATE deals
        SET {_set_clause(fields, DEAL_UPDATABLE_COLUMNS)}, updated_at = now()
        WHERE id = :deal_id
        """
        async with self.engine.begin() as conn:
            await conn.execute(text(sql), {**params, 'deal_id': _to_pg_uuid(deal_id)})

        logger.debug('postgres_client.update_deal', deal_id=str(deal_id), columns=sorted(fields))

    async def insert_status_history(
        self,
        deal_id: UUID | str,
        old_status: str | None,
        new_status: str,
        notes: str | None = None,
    ) -> None:
        sql = """
        INSERT INTO deal_status_history (id, deal_id, old_status, new_status, notes)
        VALUES (:id, :deal_id, :old_status, :new_status, :notes)
        """
        async with self.engine.begin() as conn:
            await conn.execute(text(sql), {
                'id': _to_pg_uuid(uuid7()),
                'deal_id': _to_pg_uuid(deal_id),
                'old_status': old_status,
                'new_status': new_status,
                'notes': notes,
            })

    async def list_deals(self, query: DealListQuery) -> tuple[list[dict[str, Any]], int]:
        """
        Public deals matching the filters, with their source rows.

        Args:
            query: Filters, ordering and paging (sort column already allow-listed)

        Returns:
            (page of deal dicts each with a 'sources' list, total matching rows)
        """
        conditions = ["d.visibility = 'public'"]
        params: dict[str, Any] = {}
        for column, value in (
            ('status', query.status),
            ('sector', query.sector),
            ('geography', query.geography),
            ('verification_status', query.verification),
        ):
            if value:
                conditions.append(f'd.{column} = :{column}')
                params[column] = value
        if query.min_value is not None:
            conditions.append('d.value_usd >= :min_value')
            params['min_value'] = query.min_value
        if query.max_value is not None:
            conditions.append('d.value_usd <= :max_value')
            params['max_value'] = query.max_value

        if query.sort not in SORTABLE_COLUMNS:
            raise ValueError(f'Column not sortable: {query.sort}')
        where = ' AND '.join(conditions)
        direction = 'ASC' if query.order == 'asc' else 'DESC'

        count_sql = f'SELECT count(*) FROM deals d WHERE {where}'
        page_sql = f"""
        SELECT
            d.id, d.slug, d.title, d.status, d.announced_date, d.value_usd, d.currency,
            d.synopsis, d.sector, d.geography, d.payment_structure, d.breakup_fee,
            d.acquirer_id, d.target_id, d.confidence_score, d.verification_status,
            d.created_at, d.updated_at,
            COALESCE(
                (SELECT json_agg(json_build_object(
                    'source_type', s.source_type,
                    'source_url', s.source_url,
                    'publication_name', s.publication_name,
                    'is_primary', s.is_primary
                 ) ORDER BY s.created_at)
                 FROM deal_sources s WHERE s.deal_id = d.id),
                '[]'::json
            ) AS sources
        FROM deals d
        WHERE {where}
        ORDER BY d.{query.sort} {direction} NULLS LAST, d.id
        LIMIT :limit OFFSET :offset
        """

        async with self.engine.begin() as conn:
            total = (await conn.execute(text(count_sql), params)).scalar_one()
            result = await conn.execute(
                text(page_sql),
                {**params, 'limit': query.limit, 'offset': query.offset},
            )
            rows = [dict(row) for row in result.mappings().all()]

        for row in rows:
            # asyncpg has no json codec registered, so json comes back as text
            if isinstance(row['sources'], str):
                row['sources'] = json.loads(row['sources'])

        logger.debug('postgres_client.list_deals', returned=len(rows), total=total)
        return rows, total

    # =========================================================================
    # Companies
    # =========================================================================

    async def get_company_by_normalized_name(self, name_normalized: str) -> dict[str, Any] | None:
        return await self._fetch_one(
            """
            SELECT id, logo_url, logo_fetched
            FROM companies
            WHERE name_normalized = :name_normalized
            """,
            {'name_normalized': name_normalized},
        )

    async def insert_company(
        self,
        name: str,
        name_normalized: str,
        website: str | None = None,
        logo_url: str | None = None,
    ) -> UUID:
        """Insert a company; logo_fetched follows whether a logo was found."""
        company_id = uuid7()
        sql = """
        INSERT INTO companies (
            id, name, name_normalized, website, logo_url, logo_fetched, created_at, updated_at
        ) VALUES (
            :id, :name, :name_normalized, :website, :logo_url, :logo_fetched, now(), now()
        )
        """
        async with self.engine.begin() as conn:
            await conn.execute(text(sql), {
                'id': _to_pg_uuid(company_id),
                'name': name,
                'name_normalized': name_normalized,
                'website': website,
                'logo_url': logo_url,
                'logo_fetched': logo_url is not None,
            })

        logger.debug('postgres_client.insert_company', company_id=str(company_id), name=name)
        return company_id

    async def update_company(self, company_id: UUID | str, fields: dict[str, Any]) -> None:
        if not fields:
            return
        sql = f"""
        UPDATE companies
        SET {_set_clause(fields, COMPANY_UPDATABLE_COLUMNS)}, updated_at = now()
        WHERE id = :company_id
        """
        async with self.engine.begin() as conn:
            await conn.execute(text(sql), {**fields, 'company_id': _to_pg_uuid(company_id)})

    # =========================================================================
    # Sync logs
    # =========================================================================

    async def insert_sync_log(self, sync_type: str, started_at: datetime | None = None) -> UUID:
        """Open a sync log row in 'running' state."""
        log_id = uuid7()
        sql = """
        INSERT INTO sync_logs (id, sync_type, status, started_at)
        VALUES (:id, :sync_type, 'running', :started_at)
        """
        async with self.engine.begin() as conn:
            await conn.execute(text(sql), {
                'id': _to_pg_uuid(log_id),
                'sync_type': sync_type,
                'started_at': started_at or datetime.now(tz=timezone.utc),
            })
        return log_id

    async def update_sync_log(
        self,
        log_id: UUID | str,
        status: str,
        errors: list[str],
        deals_added: int | None = None,
        deals_updated: int | None = None,
        completed_at: datetime | None = None,
    ) -> None:
        """Close a sync log row. Counts are left untouched when None."""
        sql = """
        UPDATE sync_logs
        SET status = :status,
            completed_at = :completed_at,
            deals_added = COALESCE(:deals_added, deals_added),
            deals_updated = COALESCE(:deals_updated, deals_updated),
            errors = CAST(:errors AS jsonb)
        WHERE id = :id
        """
        async with self.engine.begin() as conn:
            await conn.execute(text(sql), {
                'id': _to_pg_uuid(log_id),
                'status': status,
                'completed_at': completed_at or datetime.now(tz=timezone.utc),
                'deals_added': deals_added,
                'deals_updated': deals_updated,
                'errors': json.dumps(errors),
            })
