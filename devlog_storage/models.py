"""
Devlog entry types and schemas.

Defines the record every storage provider persists: a devlog entry with
its append-only notes, structured context, AI-agent context and
references to external systems. Also defines the filter and stats
shapes shared by all providers.
"""

from __future__ import annotations

import math
import re
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time
from enum import Enum
from typing import Any


class DevlogType(Enum):
    """Kind of work a devlog entry tracks."""

    FEATURE = "feature"
    BUGFIX = "bugfix"
    TASK = "task"
    REFACTOR = "refactor"
    DOCS = "docs"


class DevlogStatus(Enum):
    """Lifecycle status of a devlog entry."""

    NEW = "new"
    IN_PROGRESS = "in-progress"
    BLOCKED = "blocked"
    IN_REVIEW = "in-review"
    TESTING = "testing"
    DONE = "done"
    CLOSED = "closed"


class DevlogPriority(Enum):
    """Priority of a devlog entry."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class NoteCategory(Enum):
    """Category of a progress note."""

    PROGRESS = "progress"
    ISSUE = "issue"
    SOLUTION = "solution"
    IDEA = "idea"
    REMINDER = "reminder"


# The status the remote tracker expresses as a closed issue in queries
TERMINAL_STATUS = DevlogStatus.DONE

# Statuses stored as closed issues on the remote tracker
CLOSED_STATUSES = frozenset({DevlogStatus.DONE, DevlogStatus.CLOSED})


# =============================================================================
# Timestamp and id helpers
# =============================================================================


def utc_now() -> datetime:
    return datetime.now(UTC)


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """Parse an ISO 8601 timestamp into an aware UTC datetime.

    Naive values are assumed to be UTC. ``None`` and empty strings yield ``None``.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def format_timestamp(value: datetime | None) -> str | None:
    """Format a datetime as a fixed-width UTC ISO string (sortable as text)."""
    if value is None:
        return None
    return parse_timestamp(value).isoformat(timespec="microseconds")  # type: ignore[union-attr]


def parse_devlog_id(value: Any) -> int | None:
    """Return ``value`` as a positive integer id, or None if it is structurally invalid.

    Accepts ints, integral floats and ASCII digit strings. Rejects bools,
    NaN/infinity, zero and negative numbers.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer() and value > 0:
            return int(value)
        return None
    if isinstance(value, str):
        text = value.strip()
        if text.isascii() and text.isdigit():
            number = int(text)
            return number if number > 0 else None
    return None


_KEY_STRIP = re.compile(r"[^a-z0-9\s-]")
_KEY_SPACES = re.compile(r"\s+")
_KEY_DASHES = re.compile(r"-+")


def title_to_key(title: str) -> str:
    """Derive the human-readable key (slug) for a title."""
    key = _KEY_STRIP.sub("", title.lower())
    key = _KEY_SPACES.sub("-", key)
    key = _KEY_DASHES.sub("-", key)
    return key.strip("-")[:50]


def _enum_value(enum_cls: type[Enum], value: Any, default: Enum) -> Any:
    if value is None:
        return default
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return default


# =============================================================================
# Nested context types
# =============================================================================


@dataclass
class DevlogNote:
    """A timestamped note in an entry's append-only log."""

    id: str
    timestamp: datetime
    category: NoteCategory
    content: str
    files: list[str] = field(default_factory=list)
    code_changes: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": format_timestamp(self.timestamp),
            "category": self.category.value,
            "content": self.content,
            "files": list(self.files),
            "code_changes": self.code_changes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DevlogNote:
        return cls(
            id=data["id"],
            timestamp=parse_timestamp(data["timestamp"]),  # type: ignore[arg-type]
            category=_enum_value(NoteCategory, data.get("category"), NoteCategory.PROGRESS),
            content=data.get("content", ""),
            files=list(data.get("files") or []),
            code_changes=data.get("code_changes"),
        )


@dataclass
class Dependency:
    id: str
    type: str  # blocks | blocked-by | related-to
    description: str
    external_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "description": self.description,
            "external_id": self.external_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Dependency:
        return cls(
            id=data["id"],
            type=data.get("type", "related-to"),
            description=data.get("description", ""),
            external_id=data.get("external_id"),
        )


@dataclass
class Decision:
    id: str
    timestamp: str
    decision: str
    rationale: str
    decision_maker: str
    alternatives: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "decision": self.decision,
            "rationale": self.rationale,
            "decision_maker": self.decision_maker,
            "alternatives": list(self.alternatives),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Decision:
        return cls(
            id=data["id"],
            timestamp=data.get("timestamp", ""),
            decision=data.get("decision", ""),
            rationale=data.get("rationale", ""),
            decision_maker=data.get("decision_maker", ""),
            alternatives=list(data.get("alternatives") or []),
        )


@dataclass
class Risk:
    id: str
    description: str
    impact: str  # low | medium | high
    probability: str  # low | medium | high
    mitigation: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "impact": self.impact,
            "probability": self.probability,
            "mitigation": self.mitigation,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Risk:
        return cls(
            id=data["id"],
            description=data.get("description", ""),
            impact=data.get("impact", "medium"),
            probability=data.get("probability", "medium"),
            mitigation=data.get("mitigation", ""),
        )


@dataclass
class DevlogContext:
    """Free-form structured context: the why, the constraints and the definition of done."""

    business_context: str = ""
    technical_context: str = ""
    dependencies: list[Dependency] = field(default_factory=list)
    decisions: list[Decision] = field(default_factory=list)
    acceptance_criteria: list[str] = field(default_factory=list)
    risks: list[Risk] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "business_context": self.business_context,
            "technical_context": self.technical_context,
            "dependencies": [d.to_dict() for d in self.dependencies],
            "decisions": [d.to_dict() for d in self.decisions],
            "acceptance_criteria": list(self.acceptance_criteria),
            "risks": [r.to_dict() for r in self.risks],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> DevlogContext:
        data = data or {}
        return cls(
            business_context=data.get("business_context") or "",
            technical_context=data.get("technical_context") or "",
            dependencies=[Dependency.from_dict(d) for d in data.get("dependencies") or []],
            decisions=[Decision.from_dict(d) for d in data.get("decisions") or []],
            acceptance_criteria=list(data.get("acceptance_criteria") or []),
            risks=[Risk.from_dict(r) for r in data.get("risks") or []],
        )


@dataclass
class AIContext:
    """Context preserved for AI agents across sessions."""

    current_summary: str = ""
    key_insights: list[str] = field(default_factory=list)
    open_questions: list[str] = field(default_factory=list)
    related_patterns: list[str] = field(default_factory=list)
    suggested_next_steps: list[str] = field(default_factory=list)
    last_ai_update: datetime | None = None
    context_version: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_summary": self.current_summary,
            "key_insights": list(self.key_insights),
            "open_questions": list(self.open_questions),
            "related_patterns": list(self.related_patterns),
            "suggested_next_steps": list(self.suggested_next_steps),
            "last_ai_update": format_timestamp(self.last_ai_update),
            "context_version": self.context_version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> AIContext:
        data = data or {}
        return cls(
            current_summary=data.get("current_summary") or "",
            key_insights=list(data.get("key_insights") or []),
            open_questions=list(data.get("open_questions") or []),
            related_patterns=list(data.get("related_patterns") or []),
            suggested_next_steps=list(data.get("suggested_next_steps") or []),
            last_ai_update=parse_timestamp(data.get("last_ai_update")),
            context_version=data.get("context_version", 1),
        )


@dataclass
class ExternalReference:
    """Link from an entry to a record in another system (jira, ado, github, slack, ...)."""

    system: str
    id: str
    url: str | None = None
    title: str | None = None
    status: str | None = None
    last_sync: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "system": self.system,
            "id": self.id,
            "url": self.url,
            "title": self.title,
            "status": self.status,
            "last_sync": format_timestamp(self.last_sync),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExternalReference:
        return cls(
            system=data["system"],
            id=str(data["id"]),
            url=data.get("url"),
            title=data.get("title"),
            status=data.get("status"),
            last_sync=parse_timestamp(data.get("last_sync")),
        )


# =============================================================================
# Devlog entry
# =============================================================================


@dataclass
class DevlogEntry:
    """A devlog entry.

    Drafts are created without ``id`` and timestamps; the provider assigns
    them on first save. The id never changes once assigned, ``updated_at``
    never moves backwards and ``notes`` is append-only.

    Attributes:
        id: Positive integer id, unique within a workspace
        key: Slug derived from the title
        title: Short title
        type: Kind of work
        description: Free-form description
        status: Lifecycle status
        priority: Priority
        created_at: Creation time (UTC)
        updated_at: Last mutation time (UTC)
        assignee: Optional assignee login
        notes: Append-only log of notes
        files: Paths touched by the work
        related_devlogs: References to related entries
        context: Structured business/technical context
        ai_context: Context preserved for AI agents
        external_references: Links to records in other systems
    """

    title: str
    id: int | None = None
    key: str = ""
    type: DevlogType = DevlogType.TASK
    description: str = ""
    status: DevlogStatus = DevlogStatus.NEW
    priority: DevlogPriority = DevlogPriority.MEDIUM
    created_at: datetime | None = None
    updated_at: datetime | None = None
    assignee: str | None = None
    notes: list[DevlogNote] = field(default_factory=list)
    files: list[str] = field(default_factory=list)
    related_devlogs: list[str] = field(default_factory=list)
    context: DevlogContext = field(default_factory=DevlogContext)
    ai_context: AIContext = field(default_factory=AIContext)
    external_references: list[ExternalReference] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.key:
            self.key = title_to_key(self.title)

    def touch(self, now: datetime | None = None) -> None:
        """Stamp the entry as mutated now; ``updated_at`` never decreases."""
        now = now or utc_now()
        if self.created_at is None:
            self.created_at = now
        if self.updated_at is None or now > self.updated_at:
            self.updated_at = now
        if self.updated_at < self.created_at:
            self.updated_at = self.created_at

    def add_note(
        self,
        content: str,
        category: NoteCategory = NoteCategory.PROGRESS,
        files: list[str] | None = None,
        code_changes: str | None = None,
    ) -> DevlogNote:
        """Append a note and refresh ``updated_at``."""
        note = DevlogNote(
            id=f"note-{uuid.uuid4().hex[:12]}",
            timestamp=utc_now(),
            category=category,
            content=content,
            files=list(files or []),
            code_changes=code_changes,
        )
        self.notes.append(note)
        self.touch(note.timestamp)
        return note

    def get_external_reference(self, system: str) -> ExternalReference | None:
        """Return the authoritative reference for ``system``, if any."""
        for ref in self.external_references:
            if ref.system == system:
                return ref
        return None

    def set_external_reference(self, reference: ExternalReference) -> None:
        """Insert or replace the reference for ``reference.system``."""
        for index, ref in enumerate(self.external_references):
            if ref.system == reference.system:
                self.external_references[index] = reference
                break
        else:
            self.external_references.append(reference)
        self.touch()

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-safe dictionary."""
        return {
            "id": self.id,
            "key": self.key,
            "title": self.title,
            "type": self.type.value,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority.value,
            "created_at": format_timestamp(self.created_at),
            "updated_at": format_timestamp(self.updated_at),
            "assignee": self.assignee,
            "notes": [n.to_dict() for n in self.notes],
            "files": list(self.files),
            "related_devlogs": list(self.related_devlogs),
            "context": self.context.to_dict(),
            "ai_context": self.ai_context.to_dict(),
            "external_references": [r.to_dict() for r in self.external_references],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DevlogEntry:
        """Deserialize from dictionary."""
        return cls(
            id=parse_devlog_id(data.get("id")),
            key=data.get("key") or "",
            title=data["title"],
            type=_enum_value(DevlogType, data.get("type"), DevlogType.TASK),
            description=data.get("description") or "",
            status=_enum_value(DevlogStatus, data.get("status"), DevlogStatus.NEW),
            priority=_enum_value(DevlogPriority, data.get("priority"), DevlogPriority.MEDIUM),
            created_at=parse_timestamp(data.get("created_at")),
            updated_at=parse_timestamp(data.get("updated_at")),
            assignee=data.get("assignee"),
            notes=[DevlogNote.from_dict(n) for n in data.get("notes") or []],
            files=list(data.get("files") or []),
            related_devlogs=list(data.get("related_devlogs") or []),
            context=DevlogContext.from_dict(data.get("context")),
            ai_context=AIContext.from_dict(data.get("ai_context")),
            external_references=[
                ExternalReference.from_dict(r) for r in data.get("external_references") or []
            ],
        )


# =============================================================================
# Filter and stats
# =============================================================================


def _parse_bound(value: str, end_of_day: bool) -> datetime:
    if "T" not in value and len(value) <= 10:
        day = date.fromisoformat(value)
        return datetime.combine(day, time.max if end_of_day else time.min, tzinfo=UTC)
    return parse_timestamp(value)  # type: ignore[return-value]


@dataclass
class DevlogFilter:
    """Conjunction of optional constraints; an unset field places no constraint.

    Date bounds are inclusive ISO strings. A date-only ``to_date`` covers the
    whole day.
    """

    status: list[DevlogStatus] | None = None
    type: list[DevlogType] | None = None
    priority: list[DevlogPriority] | None = None
    assignee: str | None = None
    from_date: str | None = None
    to_date: str | None = None

    def lower_bound(self) -> datetime | None:
        return _parse_bound(self.from_date, end_of_day=False) if self.from_date else None

    def upper_bound(self) -> datetime | None:
        return _parse_bound(self.to_date, end_of_day=True) if self.to_date else None

    def matches(self, entry: DevlogEntry) -> bool:
        if self.status and entry.status not in self.status:
            return False
        if self.type and entry.type not in self.type:
            return False
        if self.priority and entry.priority not in self.priority:
            return False
        if self.assignee and entry.assignee != self.assignee:
            return False
        lower = self.lower_bound()
        upper = self.upper_bound()
        if lower or upper:
            if entry.created_at is None:
                return False
            if lower and entry.created_at < lower:
                return False
            if upper and entry.created_at > upper:
                return False
        return True


@dataclass
class DevlogStats:
    """Counts over the current record set, computed on demand."""

    total_entries: int = 0
    by_status: dict[str, int] = field(
        default_factory=lambda: {s.value: 0 for s in DevlogStatus}
    )
    by_type: dict[str, int] = field(default_factory=lambda: {t.value: 0 for t in DevlogType})
    by_priority: dict[str, int] = field(
        default_factory=lambda: {p.value: 0 for p in DevlogPriority}
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_entries": self.total_entries,
            "by_status": dict(self.by_status),
            "by_type": dict(self.by_type),
            "by_priority": dict(self.by_priority),
        }


def compute_stats(entries: Iterable[DevlogEntry]) -> DevlogStats:
    """Aggregate status/type/priority counts over ``entries``."""
    stats = DevlogStats()
    for entry in entries:
        stats.total_entries += 1
        stats.by_status[entry.status.value] += 1
        stats.by_type[entry.type.value] += 1
        stats.by_priority[entry.priority.value] += 1
    return stats


def entry_matches_text(entry: DevlogEntry, query: str) -> bool:
    """Case-insensitive free-text match across title, description and notes."""
    needle = query.lower()
    return (
        needle in entry.title.lower()
        or needle in entry.description.lower()
        or any(needle in note.content.lower() for note in entry.notes)
    )
