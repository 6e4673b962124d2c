import yaml
import os
from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field, model_validator


class LlmConfig(BaseModel):
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    reasoning_model: str = "deepseek/deepseek-r1"
    analysis_model: str = "deepseek/deepseek-r1"
    verification_model: str = "openai/gpt-4o-mini"
    insight_model: str = "openai/gpt-4o-mini"
    # Cost units charged per 1k tokens, keyed by model name. Unknown models use default_cost_per_1k.
    cost_per_1k_tokens: Dict[str, float] = Field(default_factory=dict)
    default_cost_per_1k: float = 0.002
    request_timeout_seconds: float = 60.0
    # Transport-level retries (rate limits, dropped connections). Not a computation retry.
    max_transport_attempts: int = 3


class CacheConfig(BaseModel):
    enabled: bool = True
    redis_url: str = "redis://localhost:6379/0"
    password: Optional[str] = None
    ttl_seconds: int = 24 * 60 * 60
    upsert_timeout_seconds: float = 30.0
    # How long the "computation in progress" marker lives, and how long a
    # second process waits on it before computing redundantly.
    inflight_marker_seconds: int = 90
    inflight_wait_seconds: float = 20.0
    inflight_poll_interval_seconds: float = 0.5


class FactorWeights(BaseModel):
    """Weights for the deterministic calculator. Must sum to 100."""
    classification: float = 25.0
    geographic: float = 15.0
    certification: float = 15.0
    value_fit: float = 10.0
    clearance: float = 10.0
    performance_history: float = 15.0
    capability: float = 10.0

    @model_validator(mode="after")
    def _check_total(self) -> "FactorWeights":
        total = sum(self.as_dict().values())
        if abs(total - 100.0) > 1e-6:
            raise ValueError(f"Factor weights must sum to 100, got {total}")
        return self

    def as_dict(self) -> Dict[str, float]:
        return {
            "classification": self.classification,
            "geographic": self.geographic,
            "certification": self.certification,
            "value_fit": self.value_fit,
            "clearance": self.clearance,
            "performance_history": self.performance_history,
            "capability": self.capability,
        }


class CategoryWeights(BaseModel):
    """Weights for the four generative scoring categories. Must sum to 100."""
    past_performance: float = 35.0
    technical_capability: float = 35.0
    strategic_fit_relationships: float = 15.0
    credibility_market_presence: float = 15.0

    @model_validator(mode="after")
    def _check_total(self) -> "CategoryWeights":
        total = sum(self.as_dict().values())
        if abs(total - 100.0) > 1e-6:
            raise ValueError(f"Category weights must sum to 100, got {total}")
        return self

    def as_dict(self) -> Dict[str, float]:
        return {
            "past_performance": self.past_performance,
            "technical_capability": self.technical_capability,
            "strategic_fit_relationships": self.strategic_fit_relationships,
            "credibility_market_presence": self.credibility_market_presence,
        }


class HybridBlend(BaseModel):
    """hybrid score = generative_weight * G + calculation_weight * C"""
    generative_weight: float = 0.7
    calculation_weight: float = 0.3

    @model_validator(mode="after")
    def _check_total(self) -> "HybridBlend":
        if abs(self.generative_weight + self.calculation_weight - 1.0) > 1e-6:
            raise ValueError("Hybrid blend weights must sum to 1.0")
        return self


class ScoringConfig(BaseModel):
    """
    Configuration for the scoring engine (calculator, pipeline, orchestrator).
    """
    factor_weights: FactorWeights = Field(default_factory=FactorWeights)
    category_weights: CategoryWeights = Field(default_factory=CategoryWeights)
    hybrid_blend: HybridBlend = Field(default_factory=HybridBlend)
    default_method: str = "calculation"
    default_mode: str = "fast"
    resource_type: str = "match_score_calculation"


class BatchConfig(BaseModel):
    max_batch_size: int = 50
    max_concurrency: int = 10
    # Cache-only checks read and never compute, so they accept more ids
    max_bulk_check_size: int = 100


class DispatcherConfig(BaseModel):
    """
    Configuration for the background dispatcher (Redis Queue).
    """
    enabled: bool = True
    redis_url: Optional[str] = None  # Falls back to cache.redis_url
    queue_name: str = "scoring"
    max_retries: int = 2
    retry_intervals_seconds: List[int] = Field(default_factory=lambda: [10, 30])
    job_timeout_seconds: int = 300
    events_channel: str = "score.events"


class UsageConfig(BaseModel):
    # "redis" pushes events to a Redis list, "memory" keeps them in process.
    backend: str = "redis"
    redis_list_key: str = "usage:events"


class DataSourceConfig(BaseModel):
    # YAML or JSON file holding profiles and opportunities.
    data_file: str = "data/scoring_data.yaml"


class WebConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8080


class AppConfig(BaseModel):
    llm: LlmConfig = Field(default_factory=LlmConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    dispatcher: DispatcherConfig = Field(default_factory=DispatcherConfig)
    usage: UsageConfig = Field(default_factory=UsageConfig)
    data_source: DataSourceConfig = Field(default_factory=DataSourceConfig)
    web: WebConfig = Field(default_factory=WebConfig)

    @property
    def queue_redis_url(self) -> str:
        return self.dispatcher.redis_url or self.cache.redis_url


def load_config(config_path: str = "config.yaml") -> AppConfig:
    # If not found at relative path (e.g. running from root), try absolute or adjusted path
    if not os.path.exists(config_path):
        base_dir = os.path.dirname(os.path.abspath(__file__))
        config_path = os.path.join(base_dir, "..", "config.yaml")

    data: Dict[str, Any] = {}
    if os.path.exists(config_path):
        with open(config_path, "r") as f:
            data = yaml.safe_load(f) or {}

    # Allow env var override for Redis URL
    env_redis_url = os.environ.get("REDIS_URL")
    if env_redis_url:
        data.setdefault('cache', {})
        data['cache']['redis_url'] = env_redis_url

    # Allow env var overrides for the generation provider
    env_llm_base_url = os.environ.get("LLM_BASE_URL")
    if env_llm_base_url:
        data.setdefault('llm', {})
        data['llm']['base_url'] = env_llm_base_url

    env_llm_api_key = os.environ.get("LLM_API_KEY")
    if env_llm_api_key:
        data.setdefault('llm', {})
        data['llm']['api_key'] = env_llm_api_key

    env_data_file = os.environ.get("SCORING_DATA_FILE")
    if env_data_file:
        data.setdefault('data_source', {})
        data['data_source']['data_file'] = env_data_file

    return AppConfig(**data)
