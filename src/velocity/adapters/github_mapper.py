from datetime import datetime
from typing import Any

from github.Commit import Commit as GithubCommit
from github.File import File
from github.GitRelease import GitRelease
from github.PullRequest import PullRequest as GithubPullRequest
from github.PullRequestReview import PullRequestReview
from github.Tag import Tag

from velocity.models import (
    Commit,
    DeploymentRef,
    DeploymentSource,
    FileChange,
    FileStatus,
    PullRequest,
    Review,
    ReviewState,
    TagRef,
    TimelineEvent,
    TimelineEventKind,
)


BOT_SUFFIX = "[bot]"


def parse_timestamp(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def is_bot(user: Any) -> bool:
    """GitHub marks app accounts with type ``Bot`` and a ``[bot]`` login suffix."""
    if user is None:
        return False
    if isinstance(user, dict):
        user_type, login = user.get("type"), user.get("login")
    else:
        user_type, login = getattr(user, "type", None), getattr(user, "login", None)
    return user_type == "Bot" or bool(login and login.endswith(BOT_SUFFIX))


def _login(user: Any) -> str | None:
    if user is None:
        return None
    if isinstance(user, dict):
        return user.get("login")
    return getattr(user, "login", None)


class GitHubMapper:
    @staticmethod
    def to_deployment(release: GitRelease) -> DeploymentRef:
        try:
            return DeploymentRef(
                name=release.tag_name,
                created_at=release.created_at,
                draft=bool(release.draft),
                source=DeploymentSource.RELEASE,
            )
        except AttributeError as e:
            raise ValueError(f"Invalid GitHub release data: {e}") from e

    @staticmethod
    def to_tag(tag: Tag) -> TagRef:
        try:
            return TagRef(name=tag.name, sha=tag.commit.sha if tag.commit else None)
        except AttributeError as e:
            raise ValueError(f"Invalid GitHub tag data: {e}") from e

    @staticmethod
    def to_commit(commit: GithubCommit) -> Commit:
        try:
            git_commit = commit.commit
            author = git_commit.author
            committer = git_commit.committer
            return Commit(
                sha=commit.sha,
                author_date=author.date if author else None,
                committer_date=committer.date if committer else None,
                parents=tuple(parent.sha for parent in commit.parents),
                message=git_commit.message or "",
            )
        except AttributeError as e:
            raise ValueError(f"Invalid GitHub commit data: {e}") from e

    @staticmethod
    def to_file_change(file: File) -> FileChange:
        status_map = {
            "added": FileStatus.ADDED,
            "removed": FileStatus.REMOVED,
            "modified": FileStatus.MODIFIED,
            "renamed": FileStatus.RENAMED,
        }
        try:
            return FileChange(
                path=file.filename,
                additions=file.additions or 0,
                deletions=file.deletions or 0,
                status=status_map.get(file.status, FileStatus.MODIFIED),
            )
        except AttributeError as e:
            raise ValueError(f"Invalid GitHub file data: {e}") from e

    @staticmethod
    def to_pull_request(pr: GithubPullRequest) -> PullRequest:
        try:
            return PullRequest(
                number=pr.number,
                created_at=pr.created_at,
                author=pr.user.login,
                draft=bool(pr.draft),
                merged_at=pr.merged_at,
                state=pr.state,
                labels=tuple(label.name for label in pr.labels),
            )
        except AttributeError as e:
            raise ValueError(f"Invalid GitHub PR data: {e}") from e

    @staticmethod
    def to_review(review: PullRequestReview) -> Review:
        try:
            state = ReviewState(review.state)
        except ValueError:
            state = ReviewState.COMMENTED
        try:
            return Review(
                state=state,
                submitted_at=review.submitted_at,
                actor=_login(review.user),
                actor_is_bot=is_bot(review.user),
            )
        except AttributeError as e:
            raise ValueError(f"Invalid GitHub review data: {e}") from e

    @staticmethod
    def to_timeline_event(event: Any) -> TimelineEvent:
        """
        Map an issue timeline event.

        ``reviewed`` events carry ``submitted_at`` and ``user`` instead of
        ``created_at`` and ``actor``; ``line-commented`` events only carry
        timestamps on their nested comments.
        """
        raw = getattr(event, "raw_data", None) or {}
        name = raw.get("event") or getattr(event, "event", None)
        try:
            kind = TimelineEventKind(name)
        except ValueError:
            kind = TimelineEventKind.OTHER

        created_at = parse_timestamp(raw.get("created_at")) or parse_timestamp(
            raw.get("submitted_at")
        )
        user = raw.get("actor") or raw.get("user")
        comments = raw.get("comments") or []
        if created_at is None and comments:
            created_at = parse_timestamp(comments[0].get("created_at"))
            user = user or comments[0].get("user")

        return TimelineEvent(
            kind=kind,
            created_at=created_at,
            actor=_login(user),
            actor_is_bot=is_bot(user),
        )
