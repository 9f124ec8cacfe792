"""GitHub issue tracker integration: API client, rate limiting, query building and mapping."""

from .client import GitHubAPIClient, GitHubIssue
from .labels import GitHubLabelManager, required_labels
from .mapper import DevlogGitHubMapper
from .query import build_search_query, build_text_query
from .rate_limiter import RateLimiter, is_rate_limit_error

__all__ = [
    "DevlogGitHubMapper",
    "GitHubAPIClient",
    "GitHubIssue",
    "GitHubLabelManager",
    "RateLimiter",
    "build_search_query",
    "build_text_query",
    "is_rate_limit_error",
    "required_labels",
]
