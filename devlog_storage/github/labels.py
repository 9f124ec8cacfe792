"""
GitHub label naming and management for devlog storage.

Devlog fields live on issues as prefixed labels:

    <prefix>                     marker carried by every devlog issue
    <prefix>-type:<value>        DevlogType
    <prefix>-priority:<value>    DevlogPriority
    <prefix>-status:<value>      DevlogStatus
    <prefix>-deleted             tombstone for deleted entries
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..exceptions import RemoteAPIError
from ..models import DevlogPriority, DevlogStatus, DevlogType

if TYPE_CHECKING:
    from .client import GitHubAPIClient

logger = logging.getLogger(__name__)


def marker_label(prefix: str) -> str:
    return prefix


def type_label(prefix: str, value: DevlogType) -> str:
    return f"{prefix}-type:{value.value}"


def priority_label(prefix: str, value: DevlogPriority) -> str:
    return f"{prefix}-priority:{value.value}"


def status_label(prefix: str, value: DevlogStatus) -> str:
    return f"{prefix}-status:{value.value}"


def deleted_label(prefix: str) -> str:
    return f"{prefix}-deleted"


def label_value(labels: list[str], prefix: str, kind: str) -> str | None:
    """Return the value of the first ``<prefix>-<kind>:<value>`` label, if any."""
    head = f"{prefix}-{kind}:"
    for name in labels:
        if name.startswith(head):
            return name[len(head) :]
    return None


@dataclass(frozen=True)
class LabelSpec:
    name: str
    color: str
    description: str


_TYPE_COLORS = {
    DevlogType.FEATURE: ("0052CC", "New feature development"),
    DevlogType.BUGFIX: ("E53E3E", "Bug fix or error correction"),
    DevlogType.TASK: ("744C9E", "General task or maintenance work"),
    DevlogType.REFACTOR: ("FFC107", "Code refactoring or restructuring"),
    DevlogType.DOCS: ("36B37E", "Documentation updates"),
}

_PRIORITY_COLORS = {
    DevlogPriority.LOW: "D3E2FF",
    DevlogPriority.MEDIUM: "579DFF",
    DevlogPriority.HIGH: "FF8B00",
    DevlogPriority.CRITICAL: "DE350B",
}

_STATUS_COLORS = {
    DevlogStatus.NEW: ("C1C7D0", "Not started"),
    DevlogStatus.IN_PROGRESS: ("0052CC", "Currently being worked on"),
    DevlogStatus.BLOCKED: ("DE350B", "Blocked by dependencies"),
    DevlogStatus.IN_REVIEW: ("FFC107", "Under review"),
    DevlogStatus.TESTING: ("FF8B00", "In testing phase"),
    DevlogStatus.DONE: ("36B37E", "Completed"),
    DevlogStatus.CLOSED: ("8993A4", "Closed without completion"),
}


def required_labels(prefix: str) -> list[LabelSpec]:
    """All labels the mapper may attach to a devlog issue."""
    labels = [LabelSpec(marker_label(prefix), "5319E7", "Devlog entry")]
    for value, (color, description) in _TYPE_COLORS.items():
        labels.append(LabelSpec(type_label(prefix, value), color, description))
    for value, color in _PRIORITY_COLORS.items():
        labels.append(
            LabelSpec(priority_label(prefix, value), color, f"{value.value.title()} priority item")
        )
    for value, (color, description) in _STATUS_COLORS.items():
        labels.append(LabelSpec(status_label(prefix, value), color, description))
    labels.append(LabelSpec(deleted_label(prefix), "8993A4", "Marked for deletion"))
    return labels


class GitHubLabelManager:
    """Ensures the devlog labels exist in the repository."""

    def __init__(self, client: GitHubAPIClient, prefix: str) -> None:
        self.client = client
        self.prefix = prefix
        self._known: set[str] = set()

    async def ensure_required_labels(self) -> list[str]:
        """Create any missing devlog labels.

        Returns:
            Names of the labels that were created
        """
        existing = await self._existing_labels()
        created: list[str] = []

        for spec in required_labels(self.prefix):
            if spec.name in existing or spec.name in self._known:
                self._known.add(spec.name)
                continue
            try:
                await self.client.create_label(spec.name, spec.color, spec.description)
                created.append(spec.name)
            except RemoteAPIError as e:
                # 422: created concurrently by someone else
                if e.status != 422:
                    raise
            self._known.add(spec.name)

        if created:
            logger.info("Created %d devlog labels in %s", len(created), self.client.config.full_name)
        return created

    async def _existing_labels(self) -> set[str]:
        labels = await self.client.get_labels()
        return {label["name"] for label in labels or []}
