import os
import unittest
from unittest.mock import patch, mock_open

from pydantic import ValidationError

from core.config_loader import (
    AppConfig,
    CategoryWeights,
    FactorWeights,
    HybridBlend,
    load_config,
)

SAMPLE_CONFIG = """
llm:
  base_url: "https://openrouter.ai/api/v1"
  cost_per_1k_tokens:
    "openai/gpt-4o-mini": 0.0006
cache:
  redis_url: "redis://cache-host:6379/1"
  ttl_seconds: 3600
batch:
  max_batch_size: 20
dispatcher:
  queue_name: "scoring-test"
"""

_ENV_KEYS = ("REDIS_URL", "LLM_BASE_URL", "LLM_API_KEY", "SCORING_DATA_FILE")


class TestConfigLoader(unittest.TestCase):

    def setUp(self):
        self._saved_env = {key: os.environ.pop(key) for key in _ENV_KEYS if key in os.environ}

    def tearDown(self):
        for key in _ENV_KEYS:
            os.environ.pop(key, None)
        os.environ.update(self._saved_env)

    @patch("builtins.open", new_callable=mock_open, read_data=SAMPLE_CONFIG)
    @patch("os.path.exists")
    def test_load_config_valid(self, mock_exists, mock_file):
        mock_exists.return_value = True

        config = load_config("dummy_path.yaml")

        self.assertIsInstance(config, AppConfig)
        self.assertEqual(config.llm.base_url, "https://openrouter.ai/api/v1")
        self.assertEqual(config.llm.cost_per_1k_tokens["openai/gpt-4o-mini"], 0.0006)
        self.assertEqual(config.cache.ttl_seconds, 3600)
        self.assertEqual(config.batch.max_batch_size, 20)
        self.assertEqual(config.dispatcher.queue_name, "scoring-test")
        # Sections absent from the file keep their defaults
        self.assertEqual(config.scoring.default_method, "calculation")
        self.assertEqual(config.scoring.hybrid_blend.generative_weight, 0.7)

    @patch("builtins.open", new_callable=mock_open, read_data="")
    @patch("os.path.exists")
    def test_empty_file_uses_defaults(self, mock_exists, mock_file):
        mock_exists.return_value = True

        config = load_config("empty.yaml")

        self.assertEqual(config.cache.ttl_seconds, 24 * 60 * 60)
        self.assertEqual(config.batch.max_batch_size, 50)
        self.assertEqual(config.dispatcher.retry_intervals_seconds, [10, 30])

    @patch("os.path.exists")
    def test_missing_file_uses_defaults(self, mock_exists):
        mock_exists.return_value = False

        config = load_config("missing.yaml")

        self.assertEqual(config, AppConfig())

    @patch("builtins.open", new_callable=mock_open, read_data=SAMPLE_CONFIG)
    @patch("os.path.exists")
    def test_env_overrides(self, mock_exists, mock_file):
        mock_exists.return_value = True
        os.environ["REDIS_URL"] = "redis://env-host:6379/0"
        os.environ["LLM_BASE_URL"] = "http://localhost:11434/v1"
        os.environ["LLM_API_KEY"] = "sk-env"
        os.environ["SCORING_DATA_FILE"] = "/data/custom.yaml"

        config = load_config("dummy_path.yaml")

        self.assertEqual(config.cache.redis_url, "redis://env-host:6379/0")
        self.assertEqual(config.llm.base_url, "http://localhost:11434/v1")
        self.assertEqual(config.llm.api_key, "sk-env")
        self.assertEqual(config.data_source.data_file, "/data/custom.yaml")

    def test_queue_url_falls_back_to_cache_url(self):
        config = AppConfig(cache={"redis_url": "redis://cache:6379/0"})
        self.assertEqual(config.queue_redis_url, "redis://cache:6379/0")

        config = AppConfig(
            cache={"redis_url": "redis://cache:6379/0"},
            dispatcher={"redis_url": "redis://queue:6379/2"},
        )
        self.assertEqual(config.queue_redis_url, "redis://queue:6379/2")


class TestWeightValidation(unittest.TestCase):

    def test_default_weights_are_valid(self):
        self.assertEqual(sum(FactorWeights().as_dict().values()), 100)
        self.assertEqual(sum(CategoryWeights().as_dict().values()), 100)

    def test_factor_weights_must_sum_to_100(self):
        with self.assertRaises(ValidationError):
            FactorWeights(classification=50)

    def test_category_weights_must_sum_to_100(self):
        with self.assertRaises(ValidationError):
            CategoryWeights(past_performance=10)

    def test_hybrid_blend_must_sum_to_one(self):
        with self.assertRaises(ValidationError):
            HybridBlend(generative_weight=0.5, calculation_weight=0.3)

        blend = HybridBlend(generative_weight=0.6, calculation_weight=0.4)
        self.assertEqual(blend.calculation_weight, 0.4)


if __name__ == "__main__":
    unittest.main()
