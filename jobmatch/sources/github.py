from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from urllib.parse import urlparse

import httpx

from jobmatch.core.config import settings

from .models import RepositoryContent

logger = logging.getLogger(__name__)

README_FILENAMES = ("README.md", "README.txt", "README", "readme.md")
IMPORTANT_FILENAMES = {
    "package.json",
    "requirements.txt",
    "pyproject.toml",
    "pom.xml",
    "build.gradle",
    "Cargo.toml",
    "go.mod",
    "composer.json",
}
IMPORTANT_SUFFIXES = (".md", ".txt")

RATE_LIMIT_REASON = (
    "GitHub API rate limit exceeded. Set GITHUB_TOKEN for private repositories and higher rate limits."
)
FORBIDDEN_REASON = "GitHub API denied access; the repository may be private. Set GITHUB_TOKEN if it is private."
NOT_FOUND_REASON = "Repository not found or is private. If private, set GITHUB_TOKEN."
EMPTY_REASON = "Repository exists but no readable content found (may be empty or contain only binary files)"


@dataclass(frozen=True)
class GitHubRepoInfo:
    owner: str
    repo: str
    path: str | None = None


class _GitHubStatusError(Exception):
    def __init__(self, status_code: int, rate_limited: bool):
        super().__init__(f"GitHub API error: {status_code}")
        self.status_code = status_code
        self.rate_limited = rate_limited


def parse_github_url(url: str) -> GitHubRepoInfo | None:
    """Parse github.com/owner/repo[/tree|blob/<branch>/<path>] links; anything else is not a repository."""
    value = (url or "").strip()
    if not value:
        return None
    if not re.match(r"^https?://", value, flags=re.IGNORECASE):
        value = f"https://{value}"
    try:
        parsed = urlparse(value)
    except ValueError:
        return None
    if (parsed.hostname or "").lower() not in {"github.com", "www.github.com"}:
        return None

    parts = [part for part in parsed.path.split("/") if part]
    if len(parts) < 2:
        return None

    owner = parts[0]
    repo = parts[1]
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    if not repo:
        return None

    path = None
    if len(parts) > 4 and parts[2] in {"tree", "blob"}:
        path = "/".join(parts[4:])
    return GitHubRepoInfo(owner=owner, repo=repo, path=path)


def is_repository_url(url: str) -> bool:
    return parse_github_url(url) is not None


def _is_rate_limited(response: httpx.Response) -> bool:
    if response.status_code == 429:
        return True
    if response.status_code != 403:
        return False
    remaining = response.headers.get("x-ratelimit-remaining")
    if remaining is not None:
        return remaining.strip() == "0"
    return "rate limit" in response.text.lower()


def _is_important(entry: dict) -> bool:
    if entry.get("type") != "file":
        return False
    name = str(entry.get("name") or "")
    return (
        "readme" in name.lower()
        or name in IMPORTANT_FILENAMES
        or name.endswith(IMPORTANT_SUFFIXES)
    )


class GitHubRepositoryFetcher:
    def __init__(
        self,
        *,
        token: str | None = None,
        base_url: str | None = None,
        timeout_s: float | None = None,
        max_important_files: int = 10,
        max_file_bytes: int = 100_000,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._token = token if token is not None else settings.github_token
        self._base_url = (base_url or settings.github_api_base_url).rstrip("/")
        self._timeout_s = timeout_s if timeout_s is not None else settings.http_timeout_s
        self._max_important_files = max_important_files
        self._max_file_bytes = max_file_bytes
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/vnd.github.v3+json"}
        if self._token:
            headers["Authorization"] = f"token {self._token}"
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._headers(),
            timeout=self._timeout_s,
            follow_redirects=True,
            transport=self._transport,
        )

    async def _raw(self, client: httpx.AsyncClient, info: GitHubRepoInfo, path: str) -> str | None:
        response = await client.get(
            f"/repos/{info.owner}/{info.repo}/contents/{path}",
            headers={"Accept": "application/vnd.github.v3.raw"},
        )
        if response.status_code == 200:
            return response.text
        if _is_rate_limited(response):
            raise _GitHubStatusError(response.status_code, rate_limited=True)
        return None

    async def _readme(self, client: httpx.AsyncClient, info: GitHubRepoInfo) -> str | None:
        for filename in README_FILENAMES:
            content = await self._raw(client, info, filename)
            if content:
                return content
        return None

    async def _important_files(self, client: httpx.AsyncClient, info: GitHubRepoInfo) -> str | None:
        response = await client.get(f"/repos/{info.owner}/{info.repo}/contents/{info.path or ''}")
        if response.status_code != 200:
            raise _GitHubStatusError(response.status_code, rate_limited=_is_rate_limited(response))

        listing = response.json()
        if not isinstance(listing, list):
            listing = [listing]
        important = [entry for entry in listing if isinstance(entry, dict) and _is_important(entry)]
        important = important[: self._max_important_files]

        sections: list[str] = []
        for entry in important:
            if int(entry.get("size") or 0) > self._max_file_bytes:
                continue
            content = await self._raw(client, info, str(entry.get("path") or entry.get("name")))
            if content:
                sections.append(f"--- {entry.get('name')} ---\n{content}")

        if not sections:
            return None
        header = f"Repository: {info.owner}/{info.repo}\n"
        if info.path:
            header += f"Path: {info.path}\n"
        return header + "\nImportant Files:\n\n" + "\n\n".join(sections)

    async def fetch(self, url: str) -> RepositoryContent:
        info = parse_github_url(url)
        if info is None:
            return RepositoryContent(accessible=False, reason="Invalid GitHub URL format")

        try:
            async with self._client() as client:
                if info.path:
                    file_content = await self._raw(client, info, info.path)
                    if file_content:
                        return RepositoryContent(
                            accessible=True,
                            content=f"GitHub Repository: {info.owner}/{info.repo}\nFile: {info.path}\n\n{file_content}",
                        )

                readme = await self._readme(client, info)
                if readme:
                    return RepositoryContent(
                        accessible=True,
                        content=f"GitHub Repository: {info.owner}/{info.repo}\n\nREADME:\n{readme}",
                    )

                listing = await self._important_files(client, info)
                if listing:
                    return RepositoryContent(accessible=True, content=listing)
                return RepositoryContent(accessible=False, reason=EMPTY_REASON)
        except _GitHubStatusError as exc:
            logger.warning("github_fetch_failed url=%s status=%s", url, exc.status_code)
            if exc.rate_limited:
                return RepositoryContent(accessible=False, reason=RATE_LIMIT_REASON)
            if exc.status_code == 404:
                return RepositoryContent(accessible=False, reason=NOT_FOUND_REASON)
            if exc.status_code == 403:
                return RepositoryContent(accessible=False, reason=FORBIDDEN_REASON)
            return RepositoryContent(
                accessible=False,
                reason=f"Repository exists but content could not be fetched: {exc}",
            )
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
            logger.warning("github_fetch_failed url=%s: %s", url, exc)
            return RepositoryContent(
                accessible=False,
                reason=f"Repository content could not be fetched: {exc}",
            )
