from abc import ABC, abstractmethod
from datetime import datetime

from velocity.models import (
    Commit,
    Comparison,
    DeploymentRef,
    FileChange,
    PullRequest,
    ResolvedTag,
    Review,
    TagRef,
    TimelineEvent,
)


class MetricsSource(ABC):
    """Provider data consumed by the metric calculators.

    Implementations raise ``velocity.exceptions`` errors on failure; the
    calculators recover from them per metric.
    """

    @abstractmethod
    def list_releases(self, limit: int = 100) -> list[DeploymentRef]:
        """Non-draft releases, newest first, at most ``limit``."""
        raise NotImplementedError

    @abstractmethod
    def list_tags(self, limit: int = 100) -> list[TagRef]:
        raise NotImplementedError

    @abstractmethod
    def resolve_tag(self, tag_name: str) -> ResolvedTag:
        raise NotImplementedError

    @abstractmethod
    def compare(self, base: str, head: str) -> Comparison:
        raise NotImplementedError

    @abstractmethod
    def get_commit(self, ref: str) -> Commit:
        raise NotImplementedError

    @abstractmethod
    def list_commits(self, ref: str, limit: int = 100) -> list[Commit]:
        """Commits reachable from ``ref``, newest first."""
        raise NotImplementedError

    @abstractmethod
    def get_pull_request(self, pr_number: int) -> PullRequest:
        raise NotImplementedError

    @abstractmethod
    def get_pull_request_files(self, pr_number: int) -> list[FileChange]:
        raise NotImplementedError

    @abstractmethod
    def get_pull_request_commits(self, pr_number: int) -> list[Commit]:
        raise NotImplementedError

    @abstractmethod
    def get_pull_request_reviews(self, pr_number: int) -> list[Review]:
        raise NotImplementedError

    @abstractmethod
    def get_pull_request_timeline(self, pr_number: int) -> list[TimelineEvent]:
        raise NotImplementedError

    @abstractmethod
    def post_comment(self, pr_number: int, body: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def add_label(self, pr_number: int, label: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def list_pull_requests_between(
        self, start: datetime, end: datetime
    ) -> list[PullRequest]:
        raise NotImplementedError

    @abstractmethod
    def list_releases_between(
        self, start: datetime, end: datetime
    ) -> list[DeploymentRef]:
        raise NotImplementedError
