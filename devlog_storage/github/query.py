"""
Search query construction for GitHub-backed devlog storage.

Pure functions: a ``DevlogFilter`` goes in, a GitHub search query string
comes out. Clauses are joined with spaces (GitHub's implicit AND) in a
fixed order so identical filters always produce identical queries.
"""

from __future__ import annotations

from ..models import TERMINAL_STATUS, DevlogFilter, DevlogStatus
from .labels import marker_label, priority_label, status_label, type_label


def _quote(value: str) -> str:
    return '"' + value.replace('"', "") + '"'


def _label_clause(name: str) -> str:
    return f"label:{_quote(name)}"


def _group(clauses: list[str]) -> str | None:
    """A single clause stays bare; several become an OR-group."""
    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses[0]
    return "(" + " OR ".join(clauses) + ")"


def base_clause(owner: str, repo: str, prefix: str) -> str:
    return f"repo:{owner}/{repo} is:issue {_label_clause(marker_label(prefix))}"


def _status_clause(status: DevlogStatus, prefix: str) -> str:
    if status is TERMINAL_STATUS:
        return "is:closed"
    return _label_clause(status_label(prefix, status))


def build_search_query(
    devlog_filter: DevlogFilter | None,
    *,
    owner: str,
    repo: str,
    prefix: str = "devlog",
) -> str:
    """Translate a filter into a GitHub issue search query.

    Clause order: base, status, type, priority, assignee, created:>=, created:<=.

    Example:
        >>> build_search_query(
        ...     DevlogFilter(status=[DevlogStatus.IN_PROGRESS, DevlogStatus.DONE]),
        ...     owner="acme", repo="app",
        ... )
        'repo:acme/app is:issue label:"devlog" (label:"devlog-status:in-progress" OR is:closed)'
    """
    clauses = [base_clause(owner, repo, prefix)]
    if devlog_filter is None:
        return clauses[0]

    groups = [
        _group(_dedupe(_status_clause(s, prefix) for s in devlog_filter.status or [])),
        _group(_dedupe(_label_clause(type_label(prefix, t)) for t in devlog_filter.type or [])),
        _group(
            _dedupe(_label_clause(priority_label(prefix, p)) for p in devlog_filter.priority or [])
        ),
    ]
    clauses.extend(g for g in groups if g)

    if devlog_filter.assignee:
        clauses.append(f"assignee:{devlog_filter.assignee}")
    if devlog_filter.from_date:
        clauses.append(f"created:>={devlog_filter.from_date}")
    if devlog_filter.to_date:
        clauses.append(f"created:<={devlog_filter.to_date}")

    return " ".join(clauses)


def build_text_query(text: str, *, owner: str, repo: str, prefix: str = "devlog") -> str:
    """Free-text search over issue titles and bodies."""
    query = base_clause(owner, repo, prefix)
    text = text.strip()
    if text:
        query += f" {_quote(text)} in:title,body"
    return query


def _dedupe(clauses) -> list[str]:
    seen: list[str] = []
    for clause in clauses:
        if clause not in seen:
            seen.append(clause)
    return seen
