"""
Deal repository: upsert-by-natural-key semantics over PostgresClient.

Key design decisions:
- A deal's natural key is its slug (normalized acquirer, normalized target,
  announcement month). An existing slug is updated, never duplicated.
- On update, null values never overwrite stored values; deal terms are
  written once (guarded by deal_terms_fetched); company links are only set
  while unlinked; a status change appends a deal_status_history row.
- Companies are upserted best effort by normalized name with an optional
  logo lookup guarded by logo_fetched. A company failure never fails the deal.
"""

from typing import Any, Literal
from uuid import UUID

import structlog

from .clients.logo_client import LogoClient
from .clients.postgres_client import PostgresClient
from .errors import RepositoryError, wrap_database_error
from .models.deal import SourceType, VerifiedDeal
from .models.sync_run import SyncRun, SyncRunStatus, SyncType
from .pipeline.normalizer import generate_slug, generate_title, normalize_company_name

logger = structlog.get_logger(__name__)

UpsertOutcome = Literal['created', 'updated']

STATUS_CHANGE_NOTE = 'Updated via sync'


class DealRepository:
    """
    Persistence operations for deals, companies and sync runs.

    All writes go through the injected PostgresClient; the logo client is
    optional and only consulted for companies with a known domain.
    """

    def __init__(self, client: PostgresClient, logo_client: LogoClient | None = None):
        self.client = client
        self.logo_client = logo_client

    # =========================================================================
    # Company Operations
    # =========================================================================

    async def upsert_company(self, name: str | None, domain: str | None = None) -> UUID | None:
        """
        Find or create a company by normalized name.

        Existing companies without a fetched logo get one when a domain is
        known and a logo service answers.

        Returns:
            Company id, or None if the name is empty or the write failed
        """
        if not name:
            return None

        name_normalized = normalize_company_name(name)
        try:
            existing = await self.client.get_company_by_normalized_name(name_normalized)
            if existing:
                if not existing.get('logo_fetched') and domain:
                    logo_url = await self._resolve_logo(domain)
                    if logo_url:
                        await self.client.update_company(
                            existing['id'],
                            {'logo_url': logo_url, 'logo_fetched': True, 'website': domain},
                        )
                return existing['id']

            logo_url = await self._resolve_logo(domain) if domain else None
            return await self.client.insert_company(
                name=name,
                name_normalized=name_normalized,
                website=domain,
                logo_url=logo_url,
            )
        except Exception as exc:
            logger.warning('repository.company_upsert_failed', company=name, error=str(exc))
            return None

    async def _resolve_logo(self, domain: str) -> str | None:
        if self.logo_client is None:
            return None
        return await self.logo_client.resolve(domain)

    # =========================================================================
    # Deal Operations
    # =========================================================================

    async def upsert_deal(self, deal: VerifiedDeal) -> UpsertOutcome:
        """
        Insert or update a deal by slug.

        Args:
            deal: Scored deal to persist

        Returns:
            'created' or 'updated'

        Raises:
            RepositoryError: the deal row could not be written
        """
        slug = generate_slug(deal.acquirer, deal.target, deal.announced_date)

        acquirer_id = await self.upsert_company(deal.acquirer, deal.acquirer_domain)
        target_id = await self.upsert_company(deal.target, deal.target_domain)

        try:
            existing = await self.client.get_deal_by_slug(slug)
        except Exception as exc:
            raise RepositoryError(
                f'Failed to look up {slug}: {exc}',
                context={'slug': slug, 'db_error': type(wrap_database_error(exc)).__name__},
            ) from exc

        if existing:
            await self._update_existing(slug, existing, deal, acquirer_id, target_id)
            return 'updated'

        await self._insert_new(slug, deal, acquirer_id, target_id)
        return 'created'

    async def _update_existing(
        self,
        slug: str,
        existing: dict[str, Any],
        deal: VerifiedDeal,
        acquirer_id: UUID | None,
        target_id: UUID | None,
    ) -> None:
        fields: dict[str, Any] = {
            'status': deal.status.value,
            'confidence_score': deal.confidence_score,
            'verification_status': deal.verification_status.value,
        }
        if deal.value_usd is not None:
            fields['value_usd'] = deal.value_usd
        if deal.synopsis is not None:
            fields['synopsis'] = deal.synopsis

        if not existing.get('acquirer_id') and acquirer_id:
            fields['acquirer_id'] = acquirer_id
        if not existing.get('target_id') and target_id:
            fields['target_id'] = target_id

        if not existing.get('deal_terms_fetched') and (deal.payment_structure or deal.breakup_fee):
            if deal.payment_structure is not None:
                fields['payment_structure'] = deal.payment_structure
            if deal.breakup_fee is not None:
                fields['breakup_fee'] = deal.breakup_fee
            fields['deal_terms_fetched'] = True

        try:
            await self.client.update_deal(existing['id'], fields)
        except Exception as exc:
            raise RepositoryError(
                f'Failed to update {slug}: {exc}',
                context={'slug': slug, 'db_error': type(wrap_database_error(exc)).__name__},
            ) from exc

        old_status = existing.get('status')
        if old_status != deal.status.value:
            try:
                await self.client.insert_status_history(
                    existing['id'], old_status, deal.status.value, notes=STATUS_CHANGE_NOTE
                )
            except Exception as exc:
                logger.warning('repository.status_history_failed', slug=slug, error=str(exc))

    async def _insert_new(
        self,
        slug: str,
        deal: VerifiedDeal,
        acquirer_id: UUID | None,
        target_id: UUID | None,
    ) -> None:
        row = {
            'slug': slug,
            'title': generate_title(deal.acquirer, deal.target),
            'status': deal.status.value,
            'visibility': 'public',
            'announced_date': deal.announced_date,
            'value_usd': deal.value_usd,
            'currency': 'USD',
            'synopsis': deal.synopsis,
            'sector': deal.sector,
            'geography': deal.geography,
            'payment_structure': deal.payment_structure,
            'breakup_fee': deal.breakup_fee,
            'acquirer_id': acquirer_id,
            'target_id': target_id,
            'confidence_score': deal.confidence_score,
            'verification_status': deal.verification_status.value,
            'deal_terms_fetched': bool(deal.payment_structure or deal.breakup_fee),
        }
        sources = [
            {
                'source_type': s.type.value,
                'source_url': s.url,
                'publication_name': s.publication,
                'is_primary': s.type == SourceType.SEC_EDGAR,
            }
            for s in deal.sources
        ]

        try:
            await self.client.insert_deal_with_sources(row, sources)
        except Exception as exc:
            raise RepositoryError(
                f'Failed to insert {slug}: {exc}',
                context={'slug': slug, 'db_error': type(wrap_database_error(exc)).__name__},
            ) from exc

    # =========================================================================
    # Sync Run Operations
    # =========================================================================

    async def start_sync_run(self, sync_type: SyncType) -> SyncRun:
        """
        Open a sync run in 'running' state.

        A failure to write the log row is logged; the returned run then has no id.
        """
        run = SyncRun(sync_type=sync_type)
        try:
            log_id = await self.client.insert_sync_log(sync_type.value, run.started_at)
            run.id = str(log_id)
        except Exception as exc:
            logger.error('repository.sync_log_create_failed', error=str(exc))
        return run

    async def complete_sync_run(
        self,
        run: SyncRun,
        deals_added: int,
        deals_updated: int,
        errors: list[str],
    ) -> None:
        run.complete(deals_added, deals_updated, errors)
        await self._write_run(run)

    async def fail_sync_run(self, run: SyncRun, error: str) -> None:
        run.fail(error)
        await self._write_run(run)

    async def _write_run(self, run: SyncRun) -> None:
        if run.id is None:
            return
        try:
            await self.client.update_sync_log(
                run.id,
                status=run.status.value,
                errors=run.errors,
                deals_added=run.deals_added if run.status == SyncRunStatus.COMPLETED else None,
                deals_updated=run.deals_updated if run.status == SyncRunStatus.COMPLETED else None,
                completed_at=run.completed_at,
            )
        except Exception as exc:
            logger.error('repository.sync_log_update_failed', run_id=run.id, error=str(exc))
