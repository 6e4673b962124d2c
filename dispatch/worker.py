#!/usr/bin/env python3
"""
RQ Worker for background match scoring.

Processes score.requested jobs from the Redis Queue. Scoring concurrency is
the number of worker processes running. The worker runs RQ's scheduler so
failed jobs come back after their retry interval.

Usage:
    python -m dispatch.worker
    python -m dispatch.worker --burst
    python -m dispatch.worker --queues scoring --verbose
"""

import argparse
import logging
import sys
from typing import List, Optional

from redis import Redis
from rq import Worker

from core.config_loader import AppConfig, load_config
from dispatch import tasks

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def build_worker(config: AppConfig, queues: Optional[List[str]] = None) -> Worker:
    """Connect to the queue Redis and build a worker for the scoring queues."""
    queues = queues or [config.dispatcher.queue_name]
    redis_conn = Redis.from_url(config.queue_redis_url)
    redis_conn.ping()

    tasks.set_config(config)

    logger.info(f"Queues: {', '.join(queues)} (retries: {config.dispatcher.max_retries}, "
                f"intervals: {config.dispatcher.retry_intervals_seconds}s)")
    return Worker(queues, connection=redis_conn)


def start_worker(burst: bool = False, queues: Optional[List[str]] = None, config_path: str = "config.yaml"):
    """Start the RQ worker."""
    config = load_config(config_path)

    try:
        worker = build_worker(config, queues)
        if burst:
            logger.info("Running in burst mode...")
        else:
            logger.info("Worker started. Press Ctrl+C to stop.")
        worker.work(burst=burst, with_scheduler=True)
    except KeyboardInterrupt:
        logger.info("Worker stopped")
    except Exception as e:
        logger.error(f"Scoring worker failed: {e}")
        sys.exit(1)


def main():
    parser = argparse.ArgumentParser(description='Match Score Background Worker')
    parser.add_argument('--burst', action='store_true', help='Process all queued jobs and exit')
    parser.add_argument('--queues', nargs='+', default=None, help='Defaults to dispatcher.queue_name')
    parser.add_argument('--config', default='config.yaml')
    parser.add_argument('--verbose', action='store_true')

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    start_worker(burst=args.burst, queues=args.queues, config_path=args.config)


if __name__ == '__main__':
    main()
