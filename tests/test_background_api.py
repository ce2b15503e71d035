import sys
import unittest
from dataclasses import replace
from pathlib import Path
from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from jobmatch.ai.errors import CompletionConfigError  # noqa: E402
from jobmatch.core.config import settings  # noqa: E402
from jobmatch.main import app  # noqa: E402
from jobmatch.schemas.background import ExperienceEntry, InaccessibleSource, StructuredRecord  # noqa: E402


class BackgroundApiTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.client = TestClient(app)
        cls.payload = {
            "resume_text": "Backend Engineer at Acme since 2021.",
            "documents": [{"name": "cv.pdf", "url": "https://files.example.com/cv.pdf"}],
            "project_links": ["https://github.com/acme/atlas", "  "],
        }

    def test_health(self):
        response = self.client.get("/v1/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "healthy")

    def test_extract_returns_record(self):
        record = StructuredRecord(
            professional_experiences=[ExperienceEntry(company="Acme", title="Backend Engineer", source_names=["Resume text"])],
            inaccessible_sources=[
                InaccessibleSource(source_name="cv.pdf", source_type="document", reason="Failed to fetch document")
            ],
        )
        pipeline = AsyncMock(return_value=record)

        with patch("jobmatch.api.v1.background.extract_skills_visualization", pipeline):
            response = self.client.post("/v1/background/extract", json=self.payload)

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["professional_experiences"][0]["company"], "Acme")
        self.assertEqual(body["inaccessible_sources"][0]["source_name"], "cv.pdf")
        args, kwargs = pipeline.call_args
        self.assertEqual(args[0], self.payload["resume_text"])
        self.assertEqual(args[1][0].name, "cv.pdf")
        self.assertEqual(args[2], ["https://github.com/acme/atlas"])
        self.assertEqual(kwargs["previous_skills"], [])

    def test_missing_credentials_map_to_503(self):
        pipeline = AsyncMock(side_effect=CompletionConfigError("OPENAI_API_KEY is missing"))

        with patch("jobmatch.api.v1.background.extract_skills_visualization", pipeline):
            response = self.client.post("/v1/background/extract", json=self.payload)

        self.assertEqual(response.status_code, 503)
        self.assertIn("OPENAI_API_KEY", response.json()["detail"])

    def test_invalid_document_reference_is_rejected(self):
        payload = {**self.payload, "documents": [{"name": "", "url": "https://files.example.com/cv.pdf"}]}
        response = self.client.post("/v1/background/extract", json=payload)
        self.assertEqual(response.status_code, 422)

    def test_api_key_is_enforced_when_configured(self):
        pipeline = AsyncMock(return_value=StructuredRecord())
        secured = replace(settings, api_key="secret")

        with patch("jobmatch.core.security.settings", secured), patch(
            "jobmatch.api.v1.background.extract_skills_visualization", pipeline
        ):
            denied = self.client.post("/v1/background/extract", json=self.payload)
            allowed = self.client.post(
                "/v1/background/extract", json=self.payload, headers={"X-API-Key": "secret"}
            )

        self.assertEqual(denied.status_code, 401)
        self.assertEqual(allowed.status_code, 200)


if __name__ == "__main__":
    unittest.main()
