"""Review data models shared by the pipeline, the formatter and the history store.

Serialized forms use camelCase keys so review data embedded by earlier
Bugment releases can still be read back.
"""

from __future__ import annotations

from dataclasses import dataclass, field

ISSUE_TYPES = ("bug", "code_smell", "security", "performance")
SEVERITIES = ("critical", "high", "medium", "low")
# Severity names written by earlier releases.
_LEGACY_SEVERITIES = {"major": "high", "minor": "low"}

# (attribute, serialized key) for the optional Issue fields.
_OPTIONAL_ISSUE_FIELDS = (
    ("file_path", "filePath"),
    ("line_number", "lineNumber"),
    ("start_line", "startLine"),
    ("end_line", "endLine"),
    ("suggestion", "suggestion"),
    ("fix_prompt", "fixPrompt"),
    ("rule_reference", "ruleReference"),
)


@dataclass(frozen=True)
class Issue:
    """A single finding parsed from the AI review.

    ``location`` is the raw text the model wrote and stays authoritative;
    ``file_path`` and the line fields are derived from it on a best-effort basis.
    """

    id: str
    type: str  # one of ISSUE_TYPES
    severity: str  # one of SEVERITIES
    title: str
    description: str
    location: str
    file_path: str | None = None
    line_number: int | None = None
    start_line: int | None = None
    end_line: int | None = None
    suggestion: str | None = None
    fix_prompt: str | None = None
    rule_reference: str | None = None

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "type": self.type,
            "severity": self.severity,
            "title": self.title,
            "description": self.description,
            "location": self.location,
        }
        for attr, key in _OPTIONAL_ISSUE_FIELDS:
            value = getattr(self, attr)
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, d: dict) -> Issue:
        kwargs = {attr: d.get(key) for attr, key in _OPTIONAL_ISSUE_FIELDS}
        return cls(
            id=d.get("id", ""),
            type=d.get("type", "bug"),
            severity=_LEGACY_SEVERITIES.get(d.get("severity"), d.get("severity") or "medium"),
            title=d.get("title", ""),
            description=d.get("description", ""),
            location=d.get("location", ""),
            **kwargs,
        )


@dataclass
class ReviewResult:
    """One complete Bugment run: the parsed AI output plus its provenance."""

    review_id: str
    timestamp: str  # ISO-8601 UTC
    commit_sha: str
    summary: list[str] = field(default_factory=list)
    issues: list[Issue] = field(default_factory=list)

    @property
    def total_issues(self) -> int:
        return len(self.issues)

    def to_dict(self) -> dict:
        return {
            "reviewId": self.review_id,
            "timestamp": self.timestamp,
            "commitSha": self.commit_sha,
            "summary": list(self.summary),
            "issues": [issue.to_dict() for issue in self.issues],
            "totalIssues": self.total_issues,
        }

    @classmethod
    def from_dict(cls, d: dict) -> ReviewResult:
        summary = d.get("summary") or []
        if isinstance(summary, str):
            summary = [summary]
        return cls(
            review_id=d.get("reviewId", ""),
            timestamp=d.get("timestamp", ""),
            commit_sha=d.get("commitSha", ""),
            summary=list(summary),
            issues=[Issue.from_dict(i) for i in d.get("issues", [])],
        )


@dataclass(frozen=True)
class ModifiedIssue:
    previous: Issue
    current: Issue


@dataclass
class ReviewComparison:
    """Diff between the current run and the newest prior run. Never persisted."""

    new_issues: list[Issue] = field(default_factory=list)
    fixed_issues: list[Issue] = field(default_factory=list)
    persistent_issues: list[Issue] = field(default_factory=list)
    modified_issues: list[ModifiedIssue] = field(default_factory=list)

    @property
    def new_count(self) -> int:
        return len(self.new_issues)

    @property
    def fixed_count(self) -> int:
        return len(self.fixed_issues)

    @property
    def persistent_count(self) -> int:
        return len(self.persistent_issues)


@dataclass
class PullRequestInfo:
    number: int
    title: str
    body: str
    base_sha: str
    head_sha: str
    owner: str
    repo: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


@dataclass(frozen=True)
class LineComment:
    """An inline review comment anchored to a single RIGHT-side line."""

    path: str
    line: int
    body: str
    side: str = "RIGHT"

    def to_api(self) -> dict:
        return {"path": self.path, "line": self.line, "body": self.body, "side": self.side}
