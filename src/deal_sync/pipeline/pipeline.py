"""
Sync pipeline orchestrator.

Wires the stages into a single run_sync() call:

1. open a sync run (running)
2. fetch every source concurrently, isolating per-source failures
3. coerce (inside each source adapter)
4. deduplicate
5. materiality filter
6. verify / score under the external-call budget
7. upsert each deal, collecting per-record errors
8. close the sync run (completed)

Any unexpected exception closes the run as failed and surfaces as
SyncRunError. There is no retry at this level.
"""

import asyncio
import time
from typing import TYPE_CHECKING

import structlog

from ..errors import PartialSuccessResult, SyncRunError
from ..logging import PipelineTimer, logging_context
from ..models.deal import CandidateDeal, MergedDeal
from ..models.sync_run import SyncOptions, SyncRunSummary, SyncType
from ..utils import uuid7
from .deduplicator import Deduplicator
from .sources import DealSource
from .verifier import DealVerifier, summarize

if TYPE_CHECKING:
    from ..repository import DealRepository

logger = structlog.get_logger(__name__)


def passes_materiality(deal: MergedDeal, threshold_usd: int) -> bool:
    """Deals without a known value are kept; known values must reach the threshold."""
    return deal.value_usd is None or deal.value_usd >= threshold_usd


class SyncPipeline:
    """
    End-to-end deal sync: sources -> dedup -> filter -> verify -> storage.

    All collaborators are injected; the pipeline holds no module-level state.
    """

    def __init__(
        self,
        sources: list[DealSource],
        verifier: DealVerifier,
        repository: 'DealRepository',
        deduplicator: Deduplicator | None = None,
    ):
        self.sources = list(sources)
        self.verifier = verifier
        self.repository = repository
        self.deduplicator = deduplicator or Deduplicator()

    async def run_sync(
        self,
        options: SyncOptions | None = None,
        sync_type: SyncType | str = SyncType.MANUAL,
    ) -> SyncRunSummary:
        """
        Execute one sync run.

        Args:
            options: Run knobs (defaults to SyncOptions())
            sync_type: 'manual' or 'scheduled'

        Returns:
            SyncRunSummary with counts, verification summary and errors

        Raises:
            SyncRunError: the run could not complete
        """
        options = options or SyncOptions()
        sync_type = SyncType(sync_type)
        started = time.perf_counter()

        run = await self.repository.start_sync_run(sync_type)
        log_run_id = run.id or str(uuid7())

        with logging_context(run_id=log_run_id, sync_type=sync_type.value):
            logger.info(
                'sync_pipeline.started',
                sources=[s.name for s in self.sources],
                threshold_usd=options.materiality_threshold_usd,
                budget=options.external_call_budget,
                days_back=options.days_back,
            )
            try:
                summary = await self._execute(options)
            except Exception as exc:
                message = getattr(exc, 'message', None) or str(exc) or type(exc).__name__
                logger.exception('sync_pipeline.failed', error=message)
                await self.repository.fail_sync_run(run, message)
                raise SyncRunError(
                    f'Sync run failed: {message}',
                    context={'run_id': run.id, 'sync_type': sync_type.value},
                ) from exc

            await self.repository.complete_sync_run(
                run,
                deals_added=summary.deals_added,
                deals_updated=summary.deals_updated,
                errors=summary.errors,
            )

            summary.run_id = run.id
            summary.sync_type = sync_type
            summary.duration_seconds = round(time.perf_counter() - started, 3)

            logger.info(
                'sync_pipeline.complete',
                total_found=summary.total_found,
                after_dedup=summary.after_dedup_count,
                after_filter=summary.after_filter_count,
                deals_added=summary.deals_added,
                deals_updated=summary.deals_updated,
                errors=len(summary.errors),
                warnings=len(summary.warnings),
                duration_seconds=summary.duration_seconds,
            )
            return summary

    async def _execute(self, options: SyncOptions) -> SyncRunSummary:
        timer = PipelineTimer()
        summary = SyncRunSummary()

        with timer.stage('fetch'):
            candidates = await self._fetch_all(options.days_back, summary)
        summary.total_found = len(candidates)

        with timer.stage('deduplicate'):
            unique = self.deduplicator.deduplicate(candidates)
        summary.after_dedup_count = len(unique)

        with timer.stage('filter'):
            material = [d for d in unique if passes_materiality(d, options.materiality_threshold_usd)]
        summary.after_filter_count = len(material)

        with timer.stage('verify'):
            verified = await self.verifier.verify_all(
                material,
                budget=options.external_call_budget,
                allow_external_check=options.allow_external_check,
            )
        summary.verification_summary = summarize(verified)

        with timer.stage('upsert'):
            result = PartialSuccessResult()
            for deal in verified:
                try:
                    outcome = await self.repository.upsert_deal(deal)
                    result.add_success(item_id=deal.slug, data={'outcome': outcome})
                except Exception as exc:
                    logger.warning('sync_pipeline.upsert_failed', slug=deal.slug, error=str(exc))
                    result.add_failure(exc, item_id=deal.slug)

        logger.info(
            'sync_pipeline.upsert_complete',
            succeeded=result.success_count,
            failed=result.failure_count,
            partial=result.partial_success,
        )
        summary.deals_added = result.count_where('outcome', 'created')
        summary.deals_updated = result.count_where('outcome', 'updated')
        summary.errors = result.error_messages()
        summary.stage_timings = timer.summary()['stages']
        return summary

    async def _fetch_all(self, days_back: int, summary: SyncRunSummary) -> list[CandidateDeal]:
        """Fetch all sources concurrently; results flattened in declaration order."""
        results = await asyncio.gather(
            *(source.fetch(days_back) for source in self.sources),
            return_exceptions=True,
        )

        candidates: list[CandidateDeal] = []
        for source, result in zip(self.sources, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                warning = f'{source.name}: {getattr(result, "message", None) or result}'
                summary.warnings.append(warning)
                summary.sources_checked[source.name] = 0
                logger.warning('sync_pipeline.source_failed', source=source.name, error=str(result))
                continue
            summary.sources_checked[source.name] = len(result)
            candidates.extend(result)

        logger.info(
            'sync_pipeline.fetch_complete',
            sources_checked=summary.sources_checked,
            total=len(candidates),
        )
        return candidates
