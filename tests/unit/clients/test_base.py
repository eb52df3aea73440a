from concurrent.futures import ThreadPoolExecutor
import itertools
from unittest.mock import Mock

from cachetools import TTLCache
import pytest

from velocity.clients.base import BaseGitHubClient


class InMemoryClient(BaseGitHubClient):
    def _load_repository(self) -> Mock:
        return Mock(name="repository")

    def list_releases(self, limit=100):
        return []

    def list_tags(self, limit=100):
        return []

    def resolve_tag(self, tag_name):
        raise NotImplementedError

    def compare(self, base, head):
        raise NotImplementedError

    def get_commit(self, ref):
        raise NotImplementedError

    def list_commits(self, ref, limit=100):
        return []

    def get_pull_request(self, pr_number):
        raise NotImplementedError

    def get_pull_request_files(self, pr_number):
        return []

    def get_pull_request_commits(self, pr_number):
        return []

    def get_pull_request_reviews(self, pr_number):
        return []

    def get_pull_request_timeline(self, pr_number):
        return []

    def post_comment(self, pr_number, body):
        pass

    def add_label(self, pr_number, label):
        pass

    def list_pull_requests_between(self, start, end):
        return []

    def list_releases_between(self, start, end):
        return []


def test_should_initialize_base_client_when_parameters_are_provided() -> None:
    mock_client = Mock()
    client = InMemoryClient(
        client=mock_client,
        repo_identifier="owner/repo",
        cache_ttl=600,
        cache_maxsize=50,
        max_retries=5,
        backoff_factor=2.0,
    )

    assert client.client == mock_client
    assert client.repo_identifier == "owner/repo"
    assert client.cache_ttl == 600
    assert client._cache.maxsize == 50
    assert client.max_retries == 5
    assert client.backoff_factor == 2.0
    assert client._repo is None


@pytest.mark.parametrize(
    "identifier", ["", "owner", "owner/repo/extra", "owner/re po", "../etc/passwd"]
)
def test_should_reject_malformed_repository_identifier(identifier) -> None:
    with pytest.raises(ValueError, match="Invalid repository identifier"):
        InMemoryClient(client=Mock(), repo_identifier=identifier)


def test_should_lazy_load_repository_once() -> None:
    client = InMemoryClient(client=Mock(), repo_identifier="owner/repo.name")

    assert client._repo is None
    repo = client.repo

    assert repo is client.repo


def test_should_cache_loader_results_by_key() -> None:
    client = InMemoryClient(client=Mock(), repo_identifier="owner/repo")
    loader = Mock(return_value=["v1"])

    first = client._cached("releases:10", loader)
    second = client._cached("releases:10", loader)

    assert first == second == ["v1"]
    loader.assert_called_once()


def test_should_bypass_cache_when_ttl_is_zero() -> None:
    client = InMemoryClient(client=Mock(), repo_identifier="owner/repo", cache_ttl=0)
    loader = Mock(return_value="value")

    client._cached("key", loader)
    client._cached("key", loader)

    assert loader.call_count == 2


def test_should_clear_only_matching_cache_entries() -> None:
    client = InMemoryClient(client=Mock(), repo_identifier="owner/repo")
    client._cached("raw_pr:1", lambda: "pr1")
    client._cached("raw_pr:2", lambda: "pr2")
    client._cached("releases:100", lambda: [])

    client.clear_cache("raw_pr:1")

    assert "raw_pr:1" not in client._cache
    assert "raw_pr:2" in client._cache
    assert "releases:100" in client._cache

    client.clear_cache()

    assert len(client._cache) == 0


def test_should_reload_entry_that_expired_between_lookups() -> None:
    client = InMemoryClient(client=Mock(), repo_identifier="owner/repo")
    clock = itertools.count()
    client._cache = TTLCache(maxsize=10, ttl=1, timer=lambda: next(clock))
    loader = Mock(side_effect=["first", "second"])

    assert client._cached("raw_pr:1", loader) == "first"
    assert client._cached("raw_pr:1", loader) == "second"
    assert loader.call_count == 2


def test_should_serve_cache_from_many_threads() -> None:
    client = InMemoryClient(client=Mock(), repo_identifier="owner/repo", cache_maxsize=8)
    keys = [f"raw_pr:{n % 20}" for n in range(400)]

    with ThreadPoolExecutor(max_workers=8) as executor:
        values = list(
            executor.map(lambda key: client._cached(key, lambda: key.upper()), keys)
        )

    assert values == [key.upper() for key in keys]
    assert len(client._cache) <= 8
