import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from jobmatch.extraction.config import (  # noqa: E402
    PipelineConfig,
    get_extraction_config,
    get_extraction_value,
    load_pipeline_config,
    pipeline_config_from_mapping,
)


class ExtractionConfigTests(unittest.TestCase):
    def test_repo_config_matches_documented_defaults(self):
        config = get_extraction_config()
        self.assertIsInstance(config, dict)
        self.assertEqual(load_pipeline_config(), PipelineConfig())

    def test_dotted_lookup(self):
        self.assertEqual(get_extraction_value("pipeline.chunk_prompt_threshold"), 30000)
        self.assertEqual(get_extraction_value("pipeline.missing", "fallback"), "fallback")
        self.assertIsNone(get_extraction_value(""))

    def test_mapping_overrides_single_values(self):
        config = pipeline_config_from_mapping({"chunk_prompt_threshold": 500, "resolve_batch_size": 1})
        self.assertEqual(config.chunk_prompt_threshold, 500)
        self.assertEqual(config.resolve_batch_size, 1)
        self.assertEqual(config.repo_part_chars, 25_000)

    def test_unknown_keys_are_rejected(self):
        with self.assertRaises(RuntimeError):
            pipeline_config_from_mapping({"chunk_threshold": 10})

    def test_invalid_values_are_rejected(self):
        with self.assertRaises(ValueError):
            PipelineConfig(resolve_batch_size=0)
        with self.assertRaises(ValueError):
            PipelineConfig(rate_limit_retries=-1)


if __name__ == "__main__":
    unittest.main()
