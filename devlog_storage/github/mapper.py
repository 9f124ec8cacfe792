"""
Mapping between devlog entries and GitHub issues.

The issue body carries two representations of an entry:

- human-readable markdown sections (description, contexts, acceptance
  criteria) for people browsing the tracker
- a fenced JSON metadata block between HTML comment markers holding every
  field labels and issue state cannot express

On the way back the metadata block wins over the sections, so an entry
survives a round trip unchanged. Bodies edited by hand (or missing the
block) still map from their sections.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from ..models import (
    CLOSED_STATUSES,
    AIContext,
    DevlogContext,
    DevlogEntry,
    DevlogNote,
    DevlogPriority,
    DevlogStatus,
    DevlogType,
    ExternalReference,
    _enum_value,
    format_timestamp,
    parse_timestamp,
    title_to_key,
)
from .client import GitHubIssue
from .labels import label_value, marker_label, priority_label, status_label, type_label

logger = logging.getLogger(__name__)

METADATA_VERSION = "1.0.0"
METADATA_START = "<!-- DEVLOG_METADATA_START -->"
METADATA_DATA = "<!-- DEVLOG_DATA -->"
METADATA_END = "<!-- DEVLOG_METADATA_END -->"

_METADATA_RE = re.compile(
    re.escape(METADATA_DATA) + r"\n```json\n(.*?)\n```", re.DOTALL
)
_SECTION_RE = re.compile(r"^## ", re.MULTILINE)
_CHECKBOX_RE = re.compile(r"^- \[[xX ]\] ")

_OPEN_STATUSES = frozenset(DevlogStatus) - CLOSED_STATUSES


class DevlogGitHubMapper:
    """Converts between ``DevlogEntry`` and GitHub issue payloads."""

    def __init__(self, labels_prefix: str = "devlog") -> None:
        self.prefix = labels_prefix

    # Entry -> issue

    def devlog_to_issue(self, entry: DevlogEntry) -> dict[str, Any]:
        """Build the issue payload (title, body, labels, assignees, state)."""
        return {
            "title": entry.title,
            "body": self.format_body(entry),
            "labels": self.labels_for(entry),
            "assignees": [entry.assignee] if entry.assignee else [],
            "state": "closed" if entry.status in CLOSED_STATUSES else "open",
        }

    def labels_for(self, entry: DevlogEntry) -> list[str]:
        return [
            marker_label(self.prefix),
            type_label(self.prefix, entry.type),
            priority_label(self.prefix, entry.priority),
            status_label(self.prefix, entry.status),
        ]

    def format_body(self, entry: DevlogEntry) -> str:
        parts = [METADATA_START]

        if entry.description:
            parts.append(f"## Description\n{entry.description}\n")
        if entry.context.technical_context:
            parts.append(f"## Technical Context\n{entry.context.technical_context}\n")
        if entry.context.business_context:
            parts.append(f"## Business Context\n{entry.context.business_context}\n")
        if entry.context.acceptance_criteria:
            criteria = "\n".join(f"- [ ] {c}" for c in entry.context.acceptance_criteria)
            parts.append(f"## Acceptance Criteria\n{criteria}\n")

        metadata = json.dumps(self._metadata(entry), indent=2, ensure_ascii=False)
        parts.append(f"{METADATA_DATA}\n```json\n{metadata}\n```")
        parts.append(METADATA_END)
        return "\n".join(parts) + "\n"

    def _metadata(self, entry: DevlogEntry) -> dict[str, Any]:
        return {
            "version": METADATA_VERSION,
            "key": entry.key,
            "description": entry.description,
            "notes": [n.to_dict() for n in entry.notes],
            "context": entry.context.to_dict(),
            "ai_context": entry.ai_context.to_dict(),
            "files": list(entry.files),
            "related_devlogs": list(entry.related_devlogs),
            "external_references": [r.to_dict() for r in entry.external_references],
            "created_at": format_timestamp(entry.created_at),
            "updated_at": format_timestamp(entry.updated_at),
        }

    # Issue -> entry

    def issue_to_devlog(self, issue: GitHubIssue) -> DevlogEntry:
        sections, metadata = self.parse_body(issue.body or "")
        if metadata:
            try:
                return self._build_entry(issue, sections, metadata)
            except (ValueError, KeyError, TypeError, AttributeError) as e:
                logger.warning(
                    "Ignoring invalid devlog metadata on issue #%d: %s", issue.number, e
                )
        return self._build_entry(issue, sections, {})

    def _build_entry(
        self, issue: GitHubIssue, sections: dict[str, str], meta: dict[str, Any]
    ) -> DevlogEntry:
        if "context" in meta:
            context = DevlogContext.from_dict(meta["context"])
        else:
            context = DevlogContext(
                business_context=sections.get("business context", ""),
                technical_context=sections.get("technical context", ""),
                acceptance_criteria=_criteria(sections.get("acceptance criteria", "")),
            )

        return DevlogEntry(
            id=issue.number,
            key=meta.get("key") or title_to_key(issue.title),
            title=issue.title,
            type=_enum_value(
                DevlogType, label_value(issue.labels, self.prefix, "type"), DevlogType.TASK
            ),
            description=meta.get("description", sections.get("description", "")),
            status=self.status_from_issue(issue),
            priority=_enum_value(
                DevlogPriority,
                label_value(issue.labels, self.prefix, "priority"),
                DevlogPriority.MEDIUM,
            ),
            created_at=parse_timestamp(meta.get("created_at")) or issue.created_at,
            updated_at=parse_timestamp(meta.get("updated_at")) or issue.updated_at,
            assignee=issue.assignees[0] if issue.assignees else None,
            notes=[DevlogNote.from_dict(n) for n in meta.get("notes") or []],
            files=list(meta.get("files") or []),
            related_devlogs=list(meta.get("related_devlogs") or []),
            context=context,
            ai_context=AIContext.from_dict(meta.get("ai_context")),
            external_references=[
                ExternalReference.from_dict(r) for r in meta.get("external_references") or []
            ],
        )

    def status_from_issue(self, issue: GitHubIssue) -> DevlogStatus:
        """Combine issue state and status label into a devlog status.

        The state decides open versus closed; the label refines it only when
        it agrees with the state.
        """
        labelled = _enum_value(
            DevlogStatus, label_value(issue.labels, self.prefix, "status"), None
        )
        if issue.state == "closed":
            return labelled if labelled in CLOSED_STATUSES else DevlogStatus.DONE
        return labelled if labelled in _OPEN_STATUSES else DevlogStatus.NEW

    def parse_body(self, body: str) -> tuple[dict[str, str], dict[str, Any] | None]:
        """Split a body into its markdown sections and metadata block."""
        metadata = None
        match = _METADATA_RE.search(body)
        if match:
            try:
                metadata = json.loads(match.group(1))
            except json.JSONDecodeError as e:
                logger.warning("Failed to parse devlog metadata from issue body: %s", e)
            body = body[: match.start()]

        sections: dict[str, str] = {}
        for chunk in _SECTION_RE.split(body)[1:]:
            heading, _, content = chunk.partition("\n")
            sections[heading.strip().lower()] = content.strip()
        return sections, metadata if isinstance(metadata, dict) else None


def _criteria(text: str) -> list[str]:
    return [
        _CHECKBOX_RE.sub("", line) for line in text.splitlines() if _CHECKBOX_RE.match(line)
    ]
