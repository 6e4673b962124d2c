#!/usr/bin/env python3
"""
Background Dispatcher - Enqueue score requests on Redis Queue.

Jobs run ``dispatch.tasks.process_score_task`` on a worker
(``python -m dispatch.worker``) with at most two automatic retries.
"""

import logging
from typing import List, Optional, Sequence

from redis import Redis
from rq import Queue, Retry

from core.scorer.models import ScoreRequest
from dispatch.events import requested_event
from dispatch.tasks import process_score_task

logger = logging.getLogger(__name__)


class BackgroundDispatcher:
    """
    Usage:
        dispatcher = BackgroundDispatcher.from_config(config)
        job_id = dispatcher.dispatch(request)
    """

    def __init__(
        self,
        queue: Queue,
        max_retries: int = 2,
        retry_intervals: Optional[List[int]] = None,
        job_timeout_seconds: int = 300,
        result_ttl_seconds: int = 86400
    ):
        self.queue = queue
        self.max_retries = max_retries
        self.retry_intervals = retry_intervals or [10, 30]
        self.job_timeout_seconds = job_timeout_seconds
        self.result_ttl_seconds = result_ttl_seconds

    @classmethod
    def from_config(cls, config) -> "BackgroundDispatcher":
        redis_conn = Redis.from_url(config.queue_redis_url)
        queue = Queue(config.dispatcher.queue_name, connection=redis_conn)
        return cls(
            queue,
            max_retries=config.dispatcher.max_retries,
            retry_intervals=config.dispatcher.retry_intervals_seconds,
            job_timeout_seconds=config.dispatcher.job_timeout_seconds,
        )

    def dispatch(self, request: ScoreRequest) -> str:
        """Enqueue a ``score.requested`` job and return its id."""
        event = requested_event(request)
        job = self.queue.enqueue(
            process_score_task,
            event["data"],
            job_timeout=self.job_timeout_seconds,
            result_ttl=self.result_ttl_seconds,
            retry=Retry(max=self.max_retries, interval=self.retry_intervals),
            meta={"event": event["type"], "organization_id": request.organization_id},
        )
        logger.info(f"Queued score for opportunity {request.opportunity_id} as job {job.id}")
        return job.id

    def dispatch_batch(self, requests: Sequence[ScoreRequest]) -> List[str]:
        """One job per opportunity."""
        return [self.dispatch(request) for request in requests]
