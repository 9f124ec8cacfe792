"""Tests for the devlog <-> GitHub issue mapper."""

import pytest

from devlog_storage.github.client import GitHubIssue
from devlog_storage.github.mapper import METADATA_DATA, DevlogGitHubMapper
from devlog_storage.models import (
    Decision,
    DevlogEntry,
    DevlogPriority,
    DevlogStatus,
    DevlogType,
    ExternalReference,
    NoteCategory,
)
from conftest import ts


@pytest.fixture
def mapper():
    return DevlogGitHubMapper("devlog")


def rich_entry() -> DevlogEntry:
    entry = DevlogEntry(
        title="Add CSV export",
        id=17,
        type=DevlogType.FEATURE,
        description="Users want CSV.\n\n## Not a section\nStill description.",
        status=DevlogStatus.IN_PROGRESS,
        priority=DevlogPriority.HIGH,
        assignee="alice",
        files=["export.py"],
        related_devlogs=["12"],
    )
    entry.created_at = ts(0)
    entry.updated_at = ts(30)
    entry.context.business_context = "Finance asked for it"
    entry.context.technical_context = "Stream rows"
    entry.context.acceptance_criteria = ["Exports 10k rows", "Has header row"]
    entry.context.decisions.append(
        Decision(
            id="d1",
            timestamp="2025-01-01",
            decision="Use csv module",
            rationale="stdlib",
            decision_maker="alice",
        )
    )
    entry.ai_context.current_summary = "Halfway there"
    entry.ai_context.open_questions = ["Excel dialect?"]
    entry.add_note("Wrote writer", NoteCategory.SOLUTION, files=["export.py"])
    entry.external_references.append(
        ExternalReference(system="jira", id="FIN-7", url="https://jira/FIN-7")
    )
    entry.updated_at = ts(30)
    return entry


def to_issue(mapper, entry, number=None) -> GitHubIssue:
    payload = mapper.devlog_to_issue(entry)
    return GitHubIssue(
        number=number or entry.id,
        title=payload["title"],
        body=payload["body"],
        state=payload["state"],
        labels=payload["labels"],
        assignees=payload["assignees"],
        created_at=ts(100),
        updated_at=ts(200),
    )


class TestDevlogToIssue:
    """Tests for entry -> issue payloads."""

    def test_labels(self, mapper):
        payload = mapper.devlog_to_issue(rich_entry())
        assert payload["labels"] == [
            "devlog",
            "devlog-type:feature",
            "devlog-priority:high",
            "devlog-status:in-progress",
        ]

    @pytest.mark.parametrize(
        "status,state",
        [
            (DevlogStatus.NEW, "open"),
            (DevlogStatus.TESTING, "open"),
            (DevlogStatus.DONE, "closed"),
            (DevlogStatus.CLOSED, "closed"),
        ],
    )
    def test_state(self, mapper, status, state):
        assert mapper.devlog_to_issue(DevlogEntry(title="x", status=status))["state"] == state

    def test_body_has_readable_sections_and_metadata(self, mapper):
        body = mapper.devlog_to_issue(rich_entry())["body"]
        assert "## Description\nUsers want CSV." in body
        assert "## Acceptance Criteria\n- [ ] Exports 10k rows\n- [ ] Has header row" in body
        assert METADATA_DATA in body

    def test_no_assignee(self, mapper):
        assert mapper.devlog_to_issue(DevlogEntry(title="x"))["assignees"] == []


class TestIssueToDevlog:
    """Tests for issue -> entry mapping."""

    def test_round_trip_is_lossless(self, mapper):
        entry = rich_entry()
        assert mapper.issue_to_devlog(to_issue(mapper, entry)) == entry

    def test_issue_number_is_id(self, mapper):
        entry = rich_entry()
        assert mapper.issue_to_devlog(to_issue(mapper, entry, number=99)).id == 99

    @pytest.mark.parametrize(
        "state,label,expected",
        [
            ("closed", None, DevlogStatus.DONE),
            ("closed", "devlog-status:closed", DevlogStatus.CLOSED),
            ("closed", "devlog-status:in-progress", DevlogStatus.DONE),
            ("open", None, DevlogStatus.NEW),
            ("open", "devlog-status:blocked", DevlogStatus.BLOCKED),
            ("open", "devlog-status:done", DevlogStatus.NEW),
            ("open", "devlog-status:bogus", DevlogStatus.NEW),
        ],
    )
    def test_status_from_state_and_label(self, mapper, state, label, expected):
        issue = GitHubIssue(number=1, title="x", state=state, labels=[label] if label else [])
        assert mapper.status_from_issue(issue) is expected

    def test_hand_written_issue(self, mapper):
        """Issues without a metadata block map from labels and sections."""
        issue = GitHubIssue(
            number=5,
            title="Crash on start",
            body=(
                "## Description\nApp crashes.\n\n"
                "## Technical Context\nNull config\n\n"
                "## Acceptance Criteria\n- [x] No crash\n- [ ] Has test\n"
            ),
            labels=["devlog", "devlog-type:bugfix", "devlog-priority:critical"],
            assignees=["bob", "carol"],
            created_at=ts(1),
            updated_at=ts(2),
        )
        entry = mapper.issue_to_devlog(issue)

        assert entry.key == "crash-on-start"
        assert entry.description == "App crashes."
        assert entry.type is DevlogType.BUGFIX
        assert entry.priority is DevlogPriority.CRITICAL
        assert entry.context.technical_context == "Null config"
        assert entry.context.acceptance_criteria == ["No crash", "Has test"]
        assert entry.assignee == "bob"
        assert (entry.created_at, entry.updated_at) == (ts(1), ts(2))

    def test_empty_body_uses_defaults(self, mapper):
        entry = mapper.issue_to_devlog(GitHubIssue(number=2, title="Bare", body=None))
        assert entry.type is DevlogType.TASK
        assert entry.priority is DevlogPriority.MEDIUM
        assert entry.description == ""
        assert entry.notes == []

    def test_corrupt_metadata_falls_back_to_sections(self, mapper):
        body = f"## Description\nStill readable\n{METADATA_DATA}\n```json\n{{not json\n```\n"
        entry = mapper.issue_to_devlog(GitHubIssue(number=3, title="Corrupt", body=body))
        assert entry.description == "Still readable"

    @pytest.mark.parametrize(
        "metadata",
        [
            '{"created_at": "last tuesday", "notes": [{"content": "x"}]}',
            '{"notes": [{"content": "no id or timestamp"}]}',
            '{"context": "not an object"}',
            '{"notes": 5}',
        ],
    )
    def test_invalid_metadata_values_fall_back_to_sections(self, mapper, metadata):
        body = f"## Description\nStill readable\n{METADATA_DATA}\n```json\n{metadata}\n```\n"
        issue = GitHubIssue(
            number=4, title="Hand edited", body=body, created_at=ts(1), updated_at=ts(2)
        )

        entry = mapper.issue_to_devlog(issue)

        assert entry.id == 4
        assert entry.description == "Still readable"
        assert entry.notes == []
        assert (entry.created_at, entry.updated_at) == (ts(1), ts(2))
