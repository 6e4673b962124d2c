#!/usr/bin/env python3
"""
Batch Coordinator - Score many opportunities concurrently.

Each request runs as its own asyncio task, bounded by a semaphore. A
failing entry becomes None without affecting the others, and the batch is
billed with a single aggregated UsageEvent sized to the cache misses.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from core.exceptions import BatchTooLarge, InvalidScoreRequest, ScoringInputError
from core.scorer.models import Profile, ScoreOutcome, ScoreRequest, UsageEvent
from core.scoring_service import ScoringOrchestrator
from core.usage import UsageRecorder

logger = logging.getLogger(__name__)

DEFAULT_MAX_BATCH_SIZE = 50
DEFAULT_MAX_CONCURRENCY = 10


@dataclass
class BatchEntry:
    request: ScoreRequest
    outcome: Optional[ScoreOutcome] = None
    error: Optional[str] = None


@dataclass
class BatchResult:
    """Per-request outcomes in input order; failed or cancelled entries are None."""
    outcomes: List[Optional[ScoreOutcome]]
    entries: List[BatchEntry] = field(default_factory=list)
    cache_hits: int = 0
    cache_misses: int = 0
    processing_time_ms: int = 0
    cancelled: bool = False

    @property
    def failures(self) -> int:
        return sum(1 for o in self.outcomes if o is None)


class BatchCoordinator:
    """
    Usage:
        coordinator = BatchCoordinator(orchestrator, usage_recorder)
        batch = await coordinator.score_batch(requests)
    """

    def __init__(
        self,
        orchestrator: ScoringOrchestrator,
        usage_recorder: Optional[UsageRecorder] = None,
        max_batch_size: int = DEFAULT_MAX_BATCH_SIZE,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        resource_type: str = "match_score_calculation"
    ):
        self.orchestrator = orchestrator
        self.usage_recorder = usage_recorder
        self.max_batch_size = max_batch_size
        self.max_concurrency = max_concurrency
        self.resource_type = resource_type

    async def _validate_profiles(self, requests: Sequence[ScoreRequest]) -> Dict[tuple, Profile]:
        """Resolve every distinct (organization, profile) once. Unknown profiles fail the whole batch."""
        profiles = {}
        for request in requests:
            lookup = (request.organization_id, request.profile_id)
            if lookup not in profiles:
                if not request.organization_id:
                    raise InvalidScoreRequest("organization_id is required")
                profiles[lookup] = await self.orchestrator.resolve_profile(
                    request.organization_id, request.profile_id
                )
        return profiles

    async def score_batch(
        self,
        requests: Sequence[ScoreRequest],
        max_batch_size: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None
    ) -> BatchResult:
        """
        Score a batch.

        Raises:
            BatchTooLarge: more requests than the ceiling
            InvalidScoreRequest: empty batch
            ProfileNotFound: any referenced profile does not exist
        """
        limit = max_batch_size or self.max_batch_size
        if not requests:
            raise InvalidScoreRequest("Batch must contain at least one request")
        if len(requests) > limit:
            raise BatchTooLarge(len(requests), limit)

        started = time.monotonic()
        profiles = await self._validate_profiles(requests)

        semaphore = asyncio.Semaphore(self.max_concurrency)
        entries = [BatchEntry(request=r) for r in requests]

        async def run_one(entry: BatchEntry) -> None:
            async with semaphore:
                profile = profiles[(entry.request.organization_id, entry.request.profile_id)]
                try:
                    entry.outcome = await self.orchestrator.resolve(entry.request, bill=False, profile=profile)
                except ScoringInputError as e:
                    logger.info(f"Batch entry {entry.request.opportunity_id} rejected: {e}")
                    entry.error = str(e)
                except Exception as e:
                    logger.error(f"Batch entry {entry.request.opportunity_id} failed: {e}", exc_info=True)
                    entry.error = str(e)

        tasks = [asyncio.ensure_future(run_one(entry)) for entry in entries]
        cancelled = await self._wait(tasks, cancel_event)

        outcomes = [entry.outcome for entry in entries]
        hits = sum(1 for o in outcomes if o is not None and o.from_cache)
        misses = sum(1 for o in outcomes if o is not None and not o.from_cache)

        await self._bill(requests, profiles, hits, misses)

        result = BatchResult(
            outcomes=outcomes,
            entries=entries,
            cache_hits=hits,
            cache_misses=misses,
            processing_time_ms=int((time.monotonic() - started) * 1000),
            cancelled=cancelled,
        )
        logger.info(
            f"Batch of {len(requests)} scored: {hits} hits, {misses} misses, "
            f"{result.failures} failed{' (cancelled)' if cancelled else ''} in {result.processing_time_ms}ms"
        )
        return result

    async def _wait(self, tasks: List[asyncio.Future], cancel_event: Optional[asyncio.Event]) -> bool:
        """Wait for all tasks; cancel the stragglers if ``cancel_event`` fires first. Returns True if cancelled."""
        if cancel_event is None:
            await asyncio.gather(*tasks)
            return False

        all_done = asyncio.ensure_future(asyncio.gather(*tasks))
        cancel_waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({all_done, cancel_waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancel_waiter.cancel()

        if all_done.done():
            return False

        logger.info(f"Batch cancelled with {sum(1 for t in tasks if not t.done())} requests in flight")
        for task in tasks:
            task.cancel()
        # gather() propagates the cancellation; every task is finished once it returns.
        await asyncio.gather(*tasks, return_exceptions=True)
        all_done.cancel()
        return True

    async def _bill(self, requests: Sequence[ScoreRequest], profiles: Dict[tuple, Profile], hits: int,
                    misses: int) -> None:
        if misses == 0 or self.usage_recorder is None:
            return
        organization_id = requests[0].organization_id
        event = UsageEvent(
            organization_id=organization_id,
            quantity=misses,
            resource_type=self.resource_type,
            metadata={
                'hits': hits,
                'misses': misses,
                'opportunity_ids': [r.opportunity_id for r in requests],
                'profile_ids': sorted({p.id for p in profiles.values()}),
                'method': requests[0].method.value,
                'mode': requests[0].mode.value,
                'resource_subtype': 'batch_calculation',
            },
        )
        try:
            await self.usage_recorder.record(event)
        except Exception as e:
            logger.error(f"Failed to record batch usage for organization {organization_id}: {e}", exc_info=True)
