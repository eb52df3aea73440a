from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum


class FileStatus(StrEnum):
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"
    RENAMED = "renamed"


class ReviewState(StrEnum):
    APPROVED = "APPROVED"
    CHANGES_REQUESTED = "CHANGES_REQUESTED"
    COMMENTED = "COMMENTED"
    DISMISSED = "DISMISSED"
    PENDING = "PENDING"


class TimelineEventKind(StrEnum):
    REVIEWED = "reviewed"
    COMMENTED = "commented"
    LINE_COMMENTED = "line-commented"
    READY_FOR_REVIEW = "ready_for_review"
    CONVERT_TO_DRAFT = "convert_to_draft"
    COMMITTED = "committed"
    OTHER = "other"


REVIEW_ACTIVITY_KINDS = frozenset(
    {
        TimelineEventKind.REVIEWED,
        TimelineEventKind.COMMENTED,
        TimelineEventKind.LINE_COMMENTED,
    }
)


class DeploymentSource(StrEnum):
    RELEASE = "release"
    TAG = "tag"


@dataclass(frozen=True)
class FileChange:
    path: str
    additions: int
    deletions: int
    status: FileStatus = FileStatus.MODIFIED


@dataclass(frozen=True)
class ChangeAggregate:
    total_additions: int = 0
    total_deletions: int = 0
    files_changed: int = 0

    @property
    def total_changes(self) -> int:
        return self.total_additions + self.total_deletions


@dataclass(frozen=True)
class Commit:
    sha: str
    author_date: datetime | None = None
    committer_date: datetime | None = None
    parents: tuple[str, ...] = ()
    message: str = ""

    @property
    def is_merge(self) -> bool:
        return len(self.parents) > 1

    @property
    def authored_at(self) -> datetime | None:
        """Authorship time, falling back to the committer time."""
        return self.author_date or self.committer_date

    @property
    def committed_at(self) -> datetime | None:
        """Time the commit landed on the branch, falling back to authorship."""
        return self.committer_date or self.author_date


@dataclass(frozen=True)
class DeploymentRef:
    """A release or tag that marks a deployment."""

    name: str
    created_at: datetime
    sha: str | None = None
    draft: bool = False
    source: DeploymentSource = DeploymentSource.RELEASE


@dataclass(frozen=True)
class TagRef:
    name: str
    sha: str | None = None


@dataclass(frozen=True)
class ResolvedTag:
    name: str
    sha: str
    created_at: datetime | None = None


@dataclass(frozen=True)
class Comparison:
    commits: list[Commit] = field(default_factory=list)
    files: list[FileChange] = field(default_factory=list)
    total_commits: int = 0

    @property
    def truncated(self) -> bool:
        return len(self.commits) < self.total_commits


@dataclass(frozen=True)
class TimelineEvent:
    kind: TimelineEventKind
    created_at: datetime | None
    actor: str | None = None
    actor_is_bot: bool = False


@dataclass(frozen=True)
class Review:
    state: ReviewState
    submitted_at: datetime | None
    actor: str | None = None
    actor_is_bot: bool = False


@dataclass(frozen=True)
class PullRequest:
    number: int
    created_at: datetime
    author: str
    draft: bool = False
    merged_at: datetime | None = None
    state: str = "open"
    labels: tuple[str, ...] = ()
    commits: tuple[Commit, ...] = ()
    timeline: tuple[TimelineEvent, ...] = ()
    reviews: tuple[Review, ...] = ()

    @property
    def is_merged(self) -> bool:
        return self.merged_at is not None
