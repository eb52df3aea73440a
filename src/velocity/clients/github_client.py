from collections.abc import Callable
from datetime import datetime
import logging
import time
from typing import Any, TypeVar

from github import (
    Auth,
    BadCredentialsException,
    Github,
    GithubException,
    RateLimitExceededException,
    UnknownObjectException,
)
import requests

from velocity.adapters.github_mapper import GitHubMapper
from velocity.clients.base import BaseGitHubClient
from velocity.clients.mixins.pagination import PaginationMixin
from velocity.clients.mixins.retry import RetryMixin
from velocity.exceptions import (
    APIError,
    AuthenticationError,
    NetworkError,
    RateLimitError,
    ResourceNotFoundError,
    TimeoutError,
    ValidationError,
    VelocityException,
)
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


T = TypeVar("T")

TRANSIENT_STATUS_CODES = {502, 503, 504}


class GitHubClient(BaseGitHubClient, RetryMixin, PaginationMixin):
    MAX_FILES_PER_PR = 3000
    MAX_COMMITS_PER_PR = 250
    MAX_COMMITS_PER_COMPARISON = 250
    MAX_REVIEWS_PER_PR = 500
    MAX_TIMELINE_EVENTS = 1000
    MAX_PULL_REQUESTS = 1000

    def __init__(
        self,
        token: str,
        repo_identifier: str,
        base_url: str | None = None,
        logger: logging.Logger | None = None,
        cache_ttl: int = 300,
        cache_maxsize: int = 500,
        max_retries: int = 3,
        backoff_factor: float = 1.0,
        timeout: int = 30,
        per_page: int = 100,
    ) -> None:
        client = Github(
            auth=Auth.Token(token),
            base_url=base_url or "https://api.github.com",
            timeout=timeout,
            per_page=min(per_page, 100),
        )
        super().__init__(
            client=client,
            repo_identifier=repo_identifier,
            logger=logger,
            cache_ttl=cache_ttl,
            cache_maxsize=cache_maxsize,
            max_retries=max_retries,
            backoff_factor=backoff_factor,
        )
        self.mapper = GitHubMapper()

    @staticmethod
    def _validate_pr_number(pr_number: int) -> int:
        try:
            number = int(pr_number)
        except (TypeError, ValueError) as e:
            raise ValidationError("Invalid PR number") from e
        if not 1 <= number <= 2147483647:
            raise ValidationError("PR number out of range")
        return number

    @staticmethod
    def _reset_seconds(error: GithubException) -> int | None:
        headers = error.headers or {}
        retry_after = headers.get("retry-after")
        if retry_after and str(retry_after).isdigit():
            return int(retry_after)
        reset = headers.get("x-ratelimit-reset")
        if reset and str(reset).isdigit():
            return max(int(reset) - int(time.time()), 0)
        return None

    def _translate(self, error: GithubException, context: str) -> VelocityException:
        status = error.status
        message = str(error).lower()
        if isinstance(error, BadCredentialsException) or status == 401:
            return AuthenticationError(f"Authentication failed during {context}")
        if isinstance(error, RateLimitExceededException) or (
            status in (403, 429) and "rate limit" in message
        ):
            return RateLimitError(
                self._reset_seconds(error), f"Rate limit exceeded during {context}"
            )
        if isinstance(error, UnknownObjectException) or status == 404:
            return ResourceNotFoundError(f"Resource not found during {context}")
        if status == 403:
            return AuthenticationError(f"Access forbidden during {context}")
        if status in TRANSIENT_STATUS_CODES:
            return NetworkError(
                f"GitHub temporarily unavailable ({status}) during {context}"
            )
        return APIError(
            status_code=status, message=f"Operation failed during {context}"
        )

    def _request(self, context: str, func: Callable[[], T]) -> T:
        """Run ``func`` with retries, raising ``velocity.exceptions`` errors."""

        def attempt() -> T:
            try:
                return func()
            except GithubException as e:
                raise self._translate(e, context) from e
            except requests.exceptions.Timeout as e:
                raise TimeoutError(f"Request timed out during {context}") from e
            except requests.exceptions.ConnectionError as e:
                raise NetworkError(f"Connection failed during {context}") from e
            except ValueError as e:
                raise APIError(
                    message=f"Unexpected response during {context}: {e}"
                ) from e

        attempt.__name__ = context.replace(" ", "_")
        try:
            return self.with_retry(attempt)()
        except VelocityException as e:
            self.logger.warning(f"GitHub request failed: {e}")
            raise

    def _load_repository(self) -> Any:
        return self._request(
            "repository lookup", lambda: self.client.get_repo(self.repo_identifier)
        )

    def _raw_pull(self, pr_number: int) -> Any:
        number = self._validate_pr_number(pr_number)
        return self._cached(
            f"raw_pr:{number}",
            lambda: self._request("PR lookup", lambda: self.repo.get_pull(number)),
        )

    def list_releases(self, limit: int = 100) -> list[DeploymentRef]:
        releases = self._cached(
            f"releases:{limit}",
            lambda: self._request(
                "release listing",
                lambda: self.collect_github(
                    self.repo.get_releases(),
                    self.mapper.to_deployment,
                    max_items=limit,
                    keep=lambda release: not release.draft,
                ),
            ),
        )
        return sorted(releases, key=lambda ref: ref.created_at, reverse=True)

    def list_tags(self, limit: int = 100) -> list[TagRef]:
        return self._request(
            "tag listing",
            lambda: self.collect_github(
                self.repo.get_tags(), self.mapper.to_tag, max_items=limit
            ),
        )

    def resolve_tag(self, tag_name: str) -> ResolvedTag:
        return self._cached(
            f"tag:{tag_name}",
            lambda: self._request(
                f"tag resolution for {tag_name}", lambda: self._resolve_tag(tag_name)
            ),
        )

    def _resolve_tag(self, tag_name: str) -> ResolvedTag:
        target = self.repo.get_git_ref(f"tags/{tag_name}").object

        if target.type == "tag":
            tag = self.repo.get_git_tag(target.sha)
            created_at = tag.tagger.date if tag.tagger else None
            sha = tag.object.sha
            # one level of tag-of-tag indirection
            if tag.object.type == "tag":
                sha = self.repo.get_git_tag(tag.object.sha).object.sha
            return ResolvedTag(name=tag_name, sha=sha, created_at=created_at)

        if target.type == "commit":
            commit = self.mapper.to_commit(self.repo.get_commit(target.sha))
            return ResolvedTag(
                name=tag_name, sha=target.sha, created_at=commit.committed_at
            )

        raise ResourceNotFoundError(
            f"Tag {tag_name} points to an unsupported object: {target.type}"
        )

    def compare(self, base: str, head: str) -> Comparison:
        def load() -> Comparison:
            comparison = self.repo.compare(base, head)
            commits = self.collect_github(
                comparison.commits,
                self.mapper.to_commit,
                max_items=self.MAX_COMMITS_PER_COMPARISON,
            )
            files = [self.mapper.to_file_change(f) for f in comparison.files or []]
            return Comparison(
                commits=commits,
                files=files,
                total_commits=comparison.total_commits or len(commits),
            )

        return self._cached(
            f"compare:{base}...{head}",
            lambda: self._request(f"comparison {base[:7]}...{head[:7]}", load),
        )

    def get_commit(self, ref: str) -> Commit:
        return self._cached(
            f"commit:{ref}",
            lambda: self._request(
                "commit lookup",
                lambda: self.mapper.to_commit(self.repo.get_commit(ref)),
            ),
        )

    def list_commits(self, ref: str, limit: int = 100) -> list[Commit]:
        return self._request(
            "commit listing",
            lambda: self.collect_github(
                self.repo.get_commits(sha=ref), self.mapper.to_commit, max_items=limit
            ),
        )

    def get_pull_request(self, pr_number: int) -> PullRequest:
        return self.mapper.to_pull_request(self._raw_pull(pr_number))

    def get_pull_request_files(self, pr_number: int) -> list[FileChange]:
        pr = self._raw_pull(pr_number)
        return self._cached(
            f"pr_files:{pr.number}",
            lambda: self._request(
                "PR file listing",
                lambda: self.collect_github(
                    pr.get_files(),
                    self.mapper.to_file_change,
                    max_items=self.MAX_FILES_PER_PR,
                ),
            ),
        )

    def get_pull_request_commits(self, pr_number: int) -> list[Commit]:
        pr = self._raw_pull(pr_number)
        return self._cached(
            f"pr_commits:{pr.number}",
            lambda: self._request(
                "PR commit listing",
                lambda: self.collect_github(
                    pr.get_commits(),
                    self.mapper.to_commit,
                    max_items=self.MAX_COMMITS_PER_PR,
                ),
            ),
        )

    def get_pull_request_reviews(self, pr_number: int) -> list[Review]:
        pr = self._raw_pull(pr_number)
        return self._request(
            "PR review listing",
            lambda: self.collect_github(
                pr.get_reviews(),
                self.mapper.to_review,
                max_items=self.MAX_REVIEWS_PER_PR,
            ),
        )

    def get_pull_request_timeline(self, pr_number: int) -> list[TimelineEvent]:
        pr = self._raw_pull(pr_number)
        return self._request(
            "PR timeline listing",
            lambda: self.collect_github(
                pr.as_issue().get_timeline(),
                self.mapper.to_timeline_event,
                max_items=self.MAX_TIMELINE_EVENTS,
            ),
        )

    def post_comment(self, pr_number: int, body: str) -> None:
        pr = self._raw_pull(pr_number)
        self._request("comment posting", lambda: pr.create_issue_comment(body))
        self.logger.info(f"Posted comment to PR #{pr.number}")

    def add_label(self, pr_number: int, label: str) -> None:
        pr = self._raw_pull(pr_number)
        self._request("label update", lambda: pr.add_to_labels(label))
        self.clear_cache(f"raw_pr:{pr.number}")
        self.logger.info(f"Added label {label} to PR #{pr.number}")

    def list_pull_requests_between(
        self, start: datetime, end: datetime
    ) -> list[PullRequest]:
        def load() -> list[PullRequest]:
            pulls = self.repo.get_pulls(state="all", sort="created", direction="desc")
            found: list[PullRequest] = []
            for pr in self.paginate_github(pulls, max_items=self.MAX_PULL_REQUESTS):
                if pr.created_at > end:
                    continue
                if pr.created_at < start:
                    break
                found.append(self.mapper.to_pull_request(pr))
            return found

        return self._request("PR listing", load)

    def list_releases_between(
        self, start: datetime, end: datetime
    ) -> list[DeploymentRef]:
        return [
            release
            for release in self.list_releases()
            if start <= release.created_at <= end
        ]
