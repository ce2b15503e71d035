import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from jobmatch.ai.errors import (  # noqa: E402
    CompletionConfigError,
    CompletionError,
    CompletionRateLimited,
    CompletionRequestRejected,
)
from jobmatch.extraction.config import PipelineConfig  # noqa: E402
from jobmatch.extraction.extractor import extract_chunk, extract_single_shot  # noqa: E402
from jobmatch.extraction.planner import Chunk  # noqa: E402
from jobmatch.sources.models import Source  # noqa: E402


class ScriptedClient:
    def __init__(self, reply):
        self.reply = reply
        self.calls = []

    async def complete_json(self, messages, *, schema, schema_name, temperature=None):
        self.calls.append((schema_name, list(messages)))
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply


CONFIG = PipelineConfig(backoff_base_s=0.0, rate_limit_retries=1)

PART_CHUNK = Chunk(
    content="README: Atlas scheduler",
    source_label="https://github.com/acme/atlas [Part 2/3]",
    source_kind="project_link",
    origin_source_label="https://github.com/acme/atlas",
    part_index=2,
    part_count=3,
)


class ExtractChunkTests(unittest.IsolatedAsyncioTestCase):
    async def test_entries_are_attributed_to_the_chunk(self):
        client = ScriptedClient(
            {
                "projects": [
                    {
                        "name": "Atlas",
                        "source_names": [],
                        "hard_skills": [{"skill": "go", "evidence": ["written in Go"]}],
                    }
                ],
                "all_skills": ["go"],
            }
        )

        record = await extract_chunk(client, PART_CHUNK, CONFIG)

        self.assertEqual(record.projects[0].source_names, [PART_CHUNK.source_label])
        schema_name, messages = client.calls[0]
        self.assertEqual(schema_name, "structured_background")
        self.assertIn("=== SOURCE: https://github.com/acme/atlas [Part 2/3]", messages[-1].content)
        self.assertIn("part 2 of 3", messages[-1].content)

    async def test_completion_failure_becomes_inaccessible_source(self):
        client = ScriptedClient(CompletionError("upstream exploded"))

        record = await extract_chunk(client, PART_CHUNK, CONFIG)

        self.assertEqual(record.projects, [])
        self.assertEqual(len(record.inaccessible_sources), 1)
        self.assertEqual(record.inaccessible_sources[0].source_name, "https://github.com/acme/atlas")
        self.assertEqual(record.inaccessible_sources[0].source_type, "project_link")

    async def test_exhausted_rate_limit_names_the_retries(self):
        client = ScriptedClient(CompletionRateLimited("slow down"))

        record = await extract_chunk(client, PART_CHUNK, CONFIG)

        self.assertIn("rate limit", record.inaccessible_sources[0].reason)
        self.assertEqual(len(client.calls), 2)

    async def test_malformed_payload_becomes_inaccessible_source(self):
        client = ScriptedClient({"professional_experiences": [{"title": "Engineer"}]})

        record = await extract_chunk(client, PART_CHUNK, CONFIG)

        self.assertEqual(record.professional_experiences, [])
        self.assertIn("malformed", record.inaccessible_sources[0].reason)

    async def test_missing_credentials_propagate(self):
        client = ScriptedClient(CompletionConfigError("OPENAI_API_KEY is missing"))

        with self.assertRaises(CompletionConfigError):
            await extract_chunk(client, PART_CHUNK, CONFIG)


class ExtractSingleShotTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.sources = [
            Source(kind="free_text", label="Resume text", content="Engineer at Acme"),
            Source(
                kind="project_link",
                label="https://github.com/acme/atlas [Part 1/2]",
                content="README",
                origin_label="https://github.com/acme/atlas",
                part_index=1,
                part_count=2,
                is_repository=True,
            ),
        ]

    async def test_rejected_request_propagates_for_fallback(self):
        client = ScriptedClient(CompletionRequestRejected("context length exceeded"))

        with self.assertRaises(CompletionRequestRejected):
            await extract_single_shot(client, self.sources, CONFIG)

    async def test_other_failure_marks_every_source(self):
        client = ScriptedClient(CompletionError("upstream exploded"))

        record = await extract_single_shot(client, self.sources, CONFIG)

        self.assertEqual(
            [item.source_name for item in record.inaccessible_sources],
            ["Resume text", "https://github.com/acme/atlas"],
        )

    async def test_single_request_carries_every_source(self):
        client = ScriptedClient({"professional_experiences": [], "all_skills": []})

        await extract_single_shot(client, self.sources, CONFIG)

        self.assertEqual(len(client.calls), 1)
        user_message = client.calls[0][1][-1].content
        self.assertIn("=== SOURCE: Resume text (type: free_text)", user_message)
        self.assertIn("=== SOURCE: https://github.com/acme/atlas [Part 1/2]", user_message)


if __name__ == "__main__":
    unittest.main()
