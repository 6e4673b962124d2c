from dataclasses import dataclass, field
from typing import List, Optional

from core.batch_service import BatchCoordinator
from core.cache.score_cache import FingerprintCache
from core.config_loader import AppConfig, LlmConfig
from core.data_source import FileDataSource, ScoringDataSource
from core.hooks import AuditLogHook, ScoringHook, UsageTrackingHook
from core.llm.interfaces import TextGenerationCapability
from core.llm.openai_service import OpenAIService
from core.pipeline import ScoringPipeline
from core.scorer.calculator import ScoreCalculator
from core.scoring_service import ScoringOrchestrator
from core.usage import RedisUsageRecorder, UsageRecorder, build_usage_recorder


@dataclass
class AppContext:
    """Application context container that holds all wired dependencies.

    This eliminates duplicate wiring code and provides a single source
    of truth for service instantiation. The score cache must be connected
    (see create()) before requests are served.
    """
    config: AppConfig
    ai_service: TextGenerationCapability
    data_source: ScoringDataSource
    cache: FingerprintCache
    usage_recorder: UsageRecorder
    orchestrator: ScoringOrchestrator
    batch_coordinator: BatchCoordinator
    hooks: List[ScoringHook] = field(default_factory=list)
    dispatcher: Optional[object] = None

    @classmethod
    def build(
        cls,
        config: AppConfig,
        ai_service: Optional[TextGenerationCapability] = None,
        data_source: Optional[ScoringDataSource] = None,
        cache: Optional[FingerprintCache] = None,
        usage_recorder: Optional[UsageRecorder] = None,
        with_dispatcher: bool = False
    ) -> "AppContext":
        """Build an AppContext from config.

        Args:
            config: Loaded application configuration
            ai_service: Generation provider override (tests, alternative gateways)
            data_source: Profile/opportunity source override
            cache: Score cache override
            usage_recorder: Usage recorder override
            with_dispatcher: Also wire the background dispatcher

        Returns:
            Fully wired AppContext instance
        """
        ai_service = ai_service or cls._build_ai_service(config.llm)
        data_source = data_source or FileDataSource(config.data_source.data_file)
        cache = cache or FingerprintCache.from_config(config.cache)
        usage_recorder = usage_recorder or build_usage_recorder(config.usage, config.cache.redis_url)

        calculator = ScoreCalculator(config.scoring.factor_weights)
        pipeline = ScoringPipeline(ai_service, config.llm, config.scoring.category_weights)

        hooks: List[ScoringHook] = [
            UsageTrackingHook(usage_recorder, config.scoring.resource_type),
            AuditLogHook(),
        ]
        orchestrator = ScoringOrchestrator(
            data_source, calculator, pipeline, cache, hooks, scoring_config=config.scoring
        )
        batch_coordinator = BatchCoordinator(
            orchestrator,
            usage_recorder,
            max_batch_size=config.batch.max_batch_size,
            max_concurrency=config.batch.max_concurrency,
            resource_type=config.scoring.resource_type,
        )

        dispatcher = None
        if with_dispatcher and config.dispatcher.enabled:
            dispatcher = cls._build_dispatcher(config)

        return cls(
            config=config,
            ai_service=ai_service,
            data_source=data_source,
            cache=cache,
            usage_recorder=usage_recorder,
            orchestrator=orchestrator,
            batch_coordinator=batch_coordinator,
            hooks=hooks,
            dispatcher=dispatcher,
        )

    @classmethod
    async def create(cls, config: AppConfig, **overrides) -> "AppContext":
        """Build and connect the score cache."""
        ctx = cls.build(config, **overrides)
        await ctx.cache.connect()
        return ctx

    async def close(self) -> None:
        await self.cache.close()
        if isinstance(self.usage_recorder, RedisUsageRecorder):
            await self.usage_recorder.close()

    @staticmethod
    def _build_ai_service(llm_config: LlmConfig) -> OpenAIService:
        """Build OpenAI-compatible service from LLM configuration."""
        return OpenAIService.from_config(llm_config)

    @staticmethod
    def _build_dispatcher(config: AppConfig):
        """Build the background dispatcher.

        Imported here because the worker task itself builds an AppContext.
        """
        from dispatch.dispatcher import BackgroundDispatcher

        return BackgroundDispatcher.from_config(config)
