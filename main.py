import asyncio
import json
import logging
import signal
import sys
import argparse

from core.app_context import AppContext
from core.config_loader import load_config
from core.exceptions import ScoringInputError
from core.scorer.models import ScoreRequest, ScoringMethod, ScoringMode

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def build_requests(args) -> list:
    method = ScoringMethod.parse(args.method)
    mode = ScoringMode.parse(args.scoring_mode)
    return [
        ScoreRequest(
            opportunity_id=opportunity_id,
            organization_id=args.organization,
            profile_id=args.profile,
            method=method,
            mode=mode,
            save_results=not args.no_save,
        )
        for opportunity_id in args.opportunities
    ]


async def run_scoring(config, args) -> dict:
    """Score the given opportunities once and return the batch summary."""
    ctx = await AppContext.create(config)
    cancel_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, cancel_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers
            pass

    try:
        batch = await ctx.batch_coordinator.score_batch(build_requests(args), cancel_event=cancel_event)
    finally:
        await ctx.close()

    results = []
    for batch_entry, outcome in zip(batch.entries, batch.outcomes):
        if outcome is None:
            results.append({"opportunity_id": batch_entry.request.opportunity_id, "error": batch_entry.error})
            continue
        entry = outcome.result.to_dict() if args.verbose else {
            "overall_score": outcome.result.overall_score,
            "confidence": outcome.result.confidence,
            "algorithm_version": outcome.result.algorithm_version,
        }
        entry["opportunity_id"] = batch_entry.request.opportunity_id
        entry["from_cache"] = outcome.from_cache
        results.append(entry)

    return {
        "results": results,
        "cache_hits": batch.cache_hits,
        "cache_misses": batch.cache_misses,
        "processing_time_ms": batch.processing_time_ms,
        "cancelled": batch.cancelled,
    }


async def clear_cache(config) -> int:
    ctx = await AppContext.create(config)
    try:
        return await ctx.cache.clear_all()
    finally:
        await ctx.close()


def main():
    parser = argparse.ArgumentParser(description="Match Score Driver")
    parser.add_argument('--mode', type=str, choices=['score', 'serve', 'clear-cache'], default='score',
                        help='score (default): score opportunities once; serve: run the API; '
                             'clear-cache: drop every cached score')
    parser.add_argument('--config', default='config.yaml')
    parser.add_argument('--organization', '-o', help='Organization id of the caller')
    parser.add_argument('--profile', '-p', default=None, help='Profile id (defaults to the organization default)')
    parser.add_argument('--opportunities', nargs='+', default=[], help='Opportunity ids to score')
    parser.add_argument('--method', default=None, help='calculation, generative (llm) or hybrid')
    parser.add_argument('--scoring-mode', default=None, help='fast or advanced')
    parser.add_argument('--no-save', action='store_true', help='Do not store fresh results in the cache')
    parser.add_argument('--verbose', action='store_true', help='Print the full score breakdown')
    args = parser.parse_args()

    config = load_config(args.config)

    if args.mode == 'serve':
        from web.backend.app import main as serve
        serve()
        return

    if args.mode == 'clear-cache':
        removed = asyncio.run(clear_cache(config))
        logger.info(f"Removed {removed} cache keys")
        return

    if not args.organization or not args.opportunities:
        parser.error("--organization and --opportunities are required in score mode")

    try:
        summary = asyncio.run(run_scoring(config, args))
    except (ScoringInputError, ValueError) as e:
        logger.error(f"Invalid request: {e}")
        sys.exit(2)

    print(json.dumps(summary, indent=2, default=str))


if __name__ == "__main__":
    main()
