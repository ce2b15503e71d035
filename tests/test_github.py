import sys
import unittest
from pathlib import Path

import httpx

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from jobmatch.sources.github import (  # noqa: E402
    NOT_FOUND_REASON,
    RATE_LIMIT_REASON,
    GitHubRepositoryFetcher,
    is_repository_url,
    parse_github_url,
)


def _fetcher(handler, **kwargs):
    return GitHubRepositoryFetcher(
        token="test-token",
        base_url="https://api.github.test",
        timeout_s=5,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class ParseGitHubUrlTests(unittest.TestCase):
    def test_parses_owner_repo_and_strips_git_suffix(self):
        info = parse_github_url("https://github.com/acme/atlas.git")
        self.assertEqual((info.owner, info.repo, info.path), ("acme", "atlas", None))

    def test_parses_tree_path(self):
        info = parse_github_url("github.com/acme/atlas/tree/main/services/api")
        self.assertEqual(info.path, "services/api")

    def test_rejects_non_repository_links(self):
        self.assertIsNone(parse_github_url("https://example.com/acme/atlas"))
        self.assertIsNone(parse_github_url("https://github.com/acme"))
        self.assertFalse(is_repository_url("https://gitlab.com/acme/atlas"))
        self.assertTrue(is_repository_url("https://www.github.com/acme/atlas"))


class GitHubFetchTests(unittest.IsolatedAsyncioTestCase):
    async def test_readme_is_returned(self):
        seen_auth = []

        def handler(request):
            seen_auth.append(request.headers.get("authorization"))
            if request.url.path == "/repos/acme/atlas/contents/README.md":
                return httpx.Response(200, text="# Atlas\nA job scheduler written in Go.")
            return httpx.Response(404, json={"message": "Not Found"})

        result = await _fetcher(handler).fetch("https://github.com/acme/atlas")

        self.assertTrue(result.accessible)
        self.assertIn("GitHub Repository: acme/atlas", result.content)
        self.assertIn("A job scheduler written in Go.", result.content)
        self.assertEqual(seen_auth[0], "token test-token")

    async def test_missing_repository_reports_not_found(self):
        def handler(request):
            return httpx.Response(404, json={"message": "Not Found"})

        result = await _fetcher(handler).fetch("https://github.com/acme/ghost")

        self.assertFalse(result.accessible)
        self.assertEqual(result.reason, NOT_FOUND_REASON)

    async def test_rate_limit_is_reported(self):
        def handler(request):
            return httpx.Response(
                403,
                headers={"x-ratelimit-remaining": "0"},
                json={"message": "API rate limit exceeded"},
            )

        result = await _fetcher(handler).fetch("https://github.com/acme/atlas")

        self.assertFalse(result.accessible)
        self.assertEqual(result.reason, RATE_LIMIT_REASON)

    async def test_important_files_are_used_without_readme(self):
        def handler(request):
            path = request.url.path
            if path.rstrip("/") == "/repos/acme/atlas/contents":
                return httpx.Response(
                    200,
                    json=[
                        {"type": "file", "name": "package.json", "path": "package.json", "size": 40},
                        {"type": "file", "name": "index.js", "path": "index.js", "size": 400},
                        {"type": "dir", "name": "docs", "path": "docs", "size": 0},
                    ],
                )
            if path == "/repos/acme/atlas/contents/package.json":
                return httpx.Response(200, text='{"name": "atlas", "dependencies": {"react": "^18"}}')
            return httpx.Response(404, json={"message": "Not Found"})

        result = await _fetcher(handler).fetch("https://github.com/acme/atlas")

        self.assertTrue(result.accessible)
        self.assertIn("--- package.json ---", result.content)
        self.assertIn('"react"', result.content)
        self.assertNotIn("index.js", result.content)

    async def test_transport_error_is_reported_as_reason(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        result = await _fetcher(handler).fetch("https://github.com/acme/atlas")

        self.assertFalse(result.accessible)
        self.assertIn("could not be fetched", result.reason)

    async def test_invalid_url(self):
        result = await _fetcher(lambda request: httpx.Response(200)).fetch("https://example.com/x")
        self.assertFalse(result.accessible)
        self.assertEqual(result.reason, "Invalid GitHub URL format")


if __name__ == "__main__":
    unittest.main()
