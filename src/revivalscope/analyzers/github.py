"""GitHub data fetcher supplying snapshots and activity signals."""

import logging
import os
from datetime import datetime, timedelta, timezone

import httpx

from revivalscope.analyzers.activity import build_activity_signals, parse_timestamp
from revivalscope.models.schemas import ActivitySignals, RepositorySnapshot

logger = logging.getLogger(__name__)


class RepositoryNotFoundError(LookupError):
    """Raised when a repository does not exist or is not accessible."""

    def __init__(self, full_name: str) -> None:
        self.full_name = full_name
        super().__init__(f"Repository not found: {full_name}")


def parse_repo(full_name: str) -> tuple[str, str]:
    """Split ``owner/repo`` into its parts.

    Raises:
        ValueError: If the name is not of the form owner/repo.
    """
    parts = full_name.strip().strip("/").split("/")
    if len(parts) != 2 or not all(parts):
        raise ValueError(f"Expected OWNER/REPO, got '{full_name}'")
    return parts[0], parts[1]


class GitHubFetcher:
    """Fetches repository data from the GitHub REST API.

    Requires a GitHub personal access token for higher rate limits.
    Set GITHUB_TOKEN environment variable or pass token to constructor.
    """

    BASE_URL = "https://api.github.com"

    TEST_DIRS = {"test", "tests", "__tests__", "spec", "specs"}
    DOC_DIRS = {"docs", "doc", "documentation"}
    CI_FILES = {".travis.yml", ".gitlab-ci.yml", "azure-pipelines.yml", "jenkinsfile", ".circleci"}

    def __init__(
        self,
        token: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            token: GitHub personal access token. If not provided, uses GITHUB_TOKEN env var.
            client: Optional httpx client. If not provided, a new client is created per request.
        """
        self._token = token or os.environ.get("GITHUB_TOKEN")
        self._client = client

        # Rate limit tracking
        self.rate_limit_remaining: int = 5000
        self.rate_limit_total: int = 5000
        self.rate_limit_reset: datetime | None = None

    def _headers(self) -> dict[str, str]:
        """Get headers for GitHub API requests."""
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        return httpx.AsyncClient(timeout=30.0, headers=self._headers())

    def _update_rate_limits(self, response: httpx.Response) -> None:
        """Extract and store rate limit info from response headers."""
        remaining = response.headers.get("X-RateLimit-Remaining")
        limit = response.headers.get("X-RateLimit-Limit")
        reset = response.headers.get("X-RateLimit-Reset")

        if remaining is not None:
            self.rate_limit_remaining = int(remaining)
        if limit is not None:
            self.rate_limit_total = int(limit)
        if reset is not None:
            self.rate_limit_reset = datetime.fromtimestamp(int(reset), tz=timezone.utc)

        if self.rate_limit_remaining < 100:
            logger.warning(f"GitHub rate limit low: {self.rate_limit_remaining} requests left")

    async def _fetch(self, path: str, params: dict | None = None) -> dict | list | None:
        """Fetch from GitHub API.

        Returns None if 404, raises on other errors.
        """
        client = await self._get_client()
        url = f"{self.BASE_URL}{path}"

        try:
            response = await client.get(url, params=params, headers=self._headers())
            self._update_rate_limits(response)
            if response.status_code == 404:
                return None
            response.raise_for_status()
            return response.json()
        finally:
            if self._client is None:
                await client.aclose()

    async def _fetch_all_pages(
        self,
        path: str,
        params: dict | None = None,
        max_pages: int = 10,
    ) -> list:
        """Fetch all pages from a paginated endpoint.

        Missing resources (404) and empty repositories (409) yield what was
        collected so far.
        """
        client = await self._get_client()
        url = f"{self.BASE_URL}{path}"
        params = dict(params or {})
        params.setdefault("per_page", 100)

        results = []
        page = 1

        try:
            while page <= max_pages:
                params["page"] = page
                response = await client.get(url, params=params, headers=self._headers())
                self._update_rate_limits(response)
                if response.status_code in (404, 409):
                    break
                response.raise_for_status()

                data = response.json()
                if not data:
                    break

                results.extend(data)

                if len(data) < params["per_page"]:
                    break
                page += 1

            return results
        finally:
            if self._client is None:
                await client.aclose()

    async def fetch_snapshot(self, owner: str, repo: str) -> RepositorySnapshot:
        """Fetch repository facts and hygiene indicators.

        Raises:
            RepositoryNotFoundError: If the repository is missing or private.
        """
        data = await self._fetch(f"/repos/{owner}/{repo}")
        if data is None:
            raise RepositoryNotFoundError(f"{owner}/{repo}")

        hygiene = await self._fetch_hygiene(owner, repo)
        license_info = data.get("license") or {}

        return RepositorySnapshot(
            owner=data.get("owner", {}).get("login", owner),
            name=data.get("name", repo),
            description=data.get("description"),
            stars=data.get("stargazers_count", 0),
            forks=data.get("forks_count", 0),
            open_issues=data.get("open_issues_count", 0),
            watchers=data.get("subscribers_count", data.get("watchers_count", 0)),
            size=data.get("size", 0),
            created_at=parse_timestamp(data.get("created_at")),
            pushed_at=parse_timestamp(data.get("pushed_at")),
            updated_at=parse_timestamp(data.get("updated_at")),
            is_archived=data.get("archived", False),
            license=license_info.get("spdx_id") or license_info.get("name"),
            language=data.get("language"),
            topics=tuple(data.get("topics", [])),
            **hygiene,
        )

    async def _fetch_hygiene(self, owner: str, repo: str) -> dict[str, bool]:
        """Check for tests, CI, docs and a contributing guide in the root tree."""
        root = await self._fetch(f"/repos/{owner}/{repo}/contents")
        if not root or not isinstance(root, list):
            return {}

        root_files = {item.get("name", "").lower(): item for item in root}
        dirs = {name for name, item in root_files.items() if item.get("type") == "dir"}

        has_ci = any(name in self.CI_FILES for name in root_files)
        if ".github" in dirs and not has_ci:
            github_dir = await self._fetch(f"/repos/{owner}/{repo}/contents/.github")
            if github_dir and isinstance(github_dir, list):
                has_ci = any(item.get("name", "").lower() == "workflows" for item in github_dir)

        return {
            "has_tests": bool(dirs & self.TEST_DIRS),
            "has_ci": has_ci,
            "has_documentation": bool(dirs & self.DOC_DIRS)
            or any(name.startswith("readme") for name in root_files),
            "has_contributing_guide": any(name.startswith("contributing") for name in root_files),
        }

    async def fetch_issues(self, owner: str, repo: str, max_pages: int = 3) -> list[dict]:
        """Most recently created issues and pull requests, open and closed."""
        return await self._fetch_all_pages(
            f"/repos/{owner}/{repo}/issues",
            params={"state": "all", "sort": "created", "direction": "desc"},
            max_pages=max_pages,
        )

    async def fetch_commits(
        self, owner: str, repo: str, since: datetime | None = None, max_pages: int = 5
    ) -> list[dict]:
        """Commits on the default branch since a point in time."""
        params = {}
        if since is not None:
            params["since"] = since.isoformat().replace("+00:00", "Z")
        return await self._fetch_all_pages(
            f"/repos/{owner}/{repo}/commits", params=params, max_pages=max_pages
        )

    async def fetch_contributors(self, owner: str, repo: str, max_pages: int = 1) -> list[dict]:
        return await self._fetch_all_pages(
            f"/repos/{owner}/{repo}/contributors", max_pages=max_pages
        )

    async def fetch_releases(self, owner: str, repo: str) -> list[dict]:
        """Latest releases, newest first."""
        data = await self._fetch(f"/repos/{owner}/{repo}/releases", params={"per_page": 10})
        return data if isinstance(data, list) else []

    async def fetch_activity(
        self, owner: str, repo: str, now: datetime | None = None
    ) -> ActivitySignals:
        """Aggregate issues, commits, contributors and releases."""
        now = now or datetime.now(timezone.utc)
        issues = await self.fetch_issues(owner, repo)
        commits = await self.fetch_commits(owner, repo, since=now - timedelta(days=365))
        contributors = await self.fetch_contributors(owner, repo)
        releases = await self.fetch_releases(owner, repo)
        return build_activity_signals(issues, commits, contributors, releases, now=now)

    async def fetch_repository(
        self, owner: str, repo: str, now: datetime | None = None
    ) -> tuple[RepositorySnapshot, ActivitySignals | None]:
        """Fetch a snapshot plus activity signals.

        Activity is None when the activity endpoints fail; scoring then
        proceeds on the snapshot alone.

        Raises:
            RepositoryNotFoundError: If the repository is missing or private.
        """
        snapshot = await self.fetch_snapshot(owner, repo)
        try:
            activity = await self.fetch_activity(owner, repo, now=now)
        except httpx.HTTPError as e:
            logger.warning(f"Could not fetch activity for {owner}/{repo}: {e}")
            activity = None
        return snapshot, activity
