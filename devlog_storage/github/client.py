"""
GitHub REST API v3 client for devlog storage.

Thin async wrapper over the issues, search, labels and repository
endpoints. Every HTTP request passes through the shared rate limiter, and
failures are mapped onto the storage exception taxonomy:

- 404 on an issue -> DevlogNotFoundError
- 403/429 carrying a rate-limit signal -> RemoteAPIError(rate_limited=True)
- other 4xx -> RemoteAPIError
- 5xx, connection errors and timeouts -> RemoteUnavailableError
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import aiohttp

from ..config import GitHubStorageConfig
from ..exceptions import DevlogNotFoundError, RemoteAPIError, RemoteUnavailableError
from ..models import parse_timestamp
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

USER_AGENT = "devlog-storage/0.1.0"

# GitHub search returns at most 1000 results
SEARCH_PAGE_SIZE = 100
SEARCH_MAX_PAGES = 10
LIST_PAGE_SIZE = 100


@dataclass
class GitHubIssue:
    """The subset of a GitHub issue the mapper needs."""

    number: int
    title: str
    body: str | None = None
    state: str = "open"
    labels: list[str] = field(default_factory=list)
    assignees: list[str] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    html_url: str = ""

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> GitHubIssue:
        labels = []
        for label in data.get("labels") or []:
            labels.append(label["name"] if isinstance(label, dict) else str(label))
        return cls(
            number=int(data["number"]),
            title=data.get("title") or "",
            body=data.get("body"),
            state=data.get("state", "open"),
            labels=labels,
            assignees=[a["login"] for a in data.get("assignees") or []],
            created_at=parse_timestamp(data.get("created_at")),
            updated_at=parse_timestamp(data.get("updated_at")),
            html_url=data.get("html_url", ""),
        )


def _is_rate_limited(status: int, body: str, headers: Any) -> bool:
    if status not in (403, 429):
        return False
    if headers.get("X-RateLimit-Remaining") == "0" or "Retry-After" in headers:
        return True
    return "rate limit" in body.lower()


class GitHubAPIClient:
    """Async client for one GitHub repository's issues.

    Example:
        >>> client = GitHubAPIClient(config, RateLimiter(config.rate_limit))
        >>> issue = await client.get_issue(42)
        >>> await client.close()
    """

    def __init__(
        self,
        config: GitHubStorageConfig,
        rate_limiter: RateLimiter | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.config = config
        self.rate_limiter = rate_limiter or RateLimiter(config.rate_limit)
        self._session = session
        self._owns_session = session is None
        self._headers = {
            "Authorization": f"token {config.token}",
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": USER_AGENT,
            "X-GitHub-Api-Version": "2022-11-28",
        }

    @property
    def api_url(self) -> str:
        return self.config.api_url.rstrip("/")

    @property
    def repo_url(self) -> str:
        return f"{self.api_url}/repos/{self.config.owner}/{self.config.repo}"

    def retarget(self, owner: str, repo: str) -> None:
        """Point the client at another repository (same credentials)."""
        self.config.owner = owner
        self.config.repo = repo

    async def open(self) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers=self._headers,
                timeout=aiohttp.ClientTimeout(total=self.config.timeout),
            )
            self._owns_session = True

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    # Issues

    async def get_issue(self, number: int) -> GitHubIssue:
        try:
            data = await self._request("GET", f"{self.repo_url}/issues/{number}")
        except RemoteAPIError as e:
            if e.status == 404:
                raise DevlogNotFoundError(number, source="github") from e
            raise
        return GitHubIssue.from_api(data)

    async def create_issue(self, payload: dict[str, Any]) -> GitHubIssue:
        data = await self._request("POST", f"{self.repo_url}/issues", json_body=payload)
        return GitHubIssue.from_api(data)

    async def update_issue(self, number: int, payload: dict[str, Any]) -> GitHubIssue:
        try:
            data = await self._request(
                "PATCH", f"{self.repo_url}/issues/{number}", json_body=payload
            )
        except RemoteAPIError as e:
            if e.status == 404:
                raise DevlogNotFoundError(number, source="github") from e
            raise
        return GitHubIssue.from_api(data)

    async def list_issues(self, labels: str, state: str = "all") -> list[GitHubIssue]:
        """Every issue carrying ``labels``, read from the repository listing.

        Unlike search, the listing has no result cap and sees new issues
        immediately. Pull requests share the endpoint and are skipped.
        """
        issues: list[GitHubIssue] = []
        page = 1
        while True:
            items = await self._request(
                "GET",
                f"{self.repo_url}/issues",
                params={
                    "labels": labels,
                    "state": state,
                    "per_page": str(LIST_PAGE_SIZE),
                    "page": str(page),
                    "sort": "created",
                    "direction": "asc",
                },
            )
            items = items or []
            issues.extend(GitHubIssue.from_api(i) for i in items if "pull_request" not in i)
            if len(items) < LIST_PAGE_SIZE:
                return issues
            page += 1

    async def search_issues(self, query: str) -> list[GitHubIssue]:
        """Run a search query, following pagination until exhausted."""
        issues: list[GitHubIssue] = []
        for page in range(1, SEARCH_MAX_PAGES + 1):
            data = await self._request(
                "GET",
                f"{self.api_url}/search/issues",
                params={
                    "q": query,
                    "per_page": str(SEARCH_PAGE_SIZE),
                    "page": str(page),
                    "sort": "created",
                    "order": "asc",
                },
            )
            items = data.get("items") or []
            issues.extend(GitHubIssue.from_api(item) for item in items)

            total = int(data.get("total_count", 0))
            if len(items) < SEARCH_PAGE_SIZE or len(issues) >= total:
                break
        else:
            logger.warning("Search result truncated at %d issues: %s", len(issues), query)

        return issues

    async def search_issues_count(self, query: str) -> int:
        data = await self._request(
            "GET",
            f"{self.api_url}/search/issues",
            params={"q": query, "per_page": "1"},
        )
        return int(data.get("total_count", 0))

    # Repository and labels

    async def get_repository(self) -> dict[str, Any]:
        return await self._request("GET", self.repo_url)

    async def get_labels(self) -> list[dict[str, Any]]:
        return await self._request("GET", f"{self.repo_url}/labels", params={"per_page": "100"})

    async def create_label(self, name: str, color: str, description: str | None = None) -> None:
        await self._request(
            "POST",
            f"{self.repo_url}/labels",
            json_body={"name": name, "color": color, "description": description or ""},
        )

    # Transport

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> Any:
        async def send() -> Any:
            return await self._send(method, url, params=params, json_body=json_body)

        return await self.rate_limiter.execute_with_rate_limit(
            send, context_msg=f"{method} {url}"
        )

    async def _send(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> Any:
        await self.open()
        assert self._session is not None

        try:
            async with self._session.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=self._headers,
            ) as response:
                text = await response.text()
                if response.status >= 500:
                    raise RemoteUnavailableError(url, status=response.status)
                if response.status >= 400:
                    raise RemoteAPIError(
                        response.status,
                        f"GitHub API error {response.status}: {response.reason}",
                        body=text,
                        rate_limited=_is_rate_limited(response.status, text, response.headers),
                    )
                if not text:
                    return None
                return json.loads(text)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise RemoteUnavailableError(url, cause=e) from e
