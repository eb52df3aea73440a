from abc import ABC
from collections.abc import Callable
import logging
import re
import threading
from typing import Any, TypeVar

from cachetools import TTLCache

from velocity.client import MetricsSource
from velocity.logger import get_logger


T = TypeVar("T")

REPO_IDENTIFIER = re.compile(r"^[a-zA-Z0-9\-_.]+/[a-zA-Z0-9\-_.]+$")

_MISSING = object()


class BaseGitHubClient(MetricsSource, ABC):
    """Shared plumbing for provider clients: lazy repository and a TTL cache."""

    def __init__(
        self,
        client: Any,
        repo_identifier: str,
        logger: logging.Logger | None = None,
        cache_ttl: int = 300,
        cache_maxsize: int = 500,
        max_retries: int = 3,
        backoff_factor: float = 1.0,
    ) -> None:
        super().__init__()
        if not REPO_IDENTIFIER.match(repo_identifier or ""):
            raise ValueError("Invalid repository identifier format")
        self.client = client
        self.repo_identifier = repo_identifier
        self.logger = logger or get_logger(f"clients.{self.__class__.__name__}")
        self.cache_ttl = cache_ttl
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self._repo: Any = None
        self._cache: TTLCache[str, Any] = TTLCache(
            maxsize=cache_maxsize, ttl=max(cache_ttl, 0)
        )
        # shared by the team collector worker threads
        self._cache_lock = threading.RLock()

    @property
    def repo(self) -> Any:
        with self._cache_lock:
            if self._repo is None:
                self._repo = self._load_repository()
        return self._repo

    def _load_repository(self) -> Any:
        raise NotImplementedError

    def _cached(self, key: str, loader: Callable[[], T]) -> T:
        if self.cache_ttl <= 0:
            return loader()
        with self._cache_lock:
            cached = self._cache.get(key, _MISSING)
        if cached is not _MISSING:
            self.logger.debug(f"Cache hit for {key}")
            return cached  # type: ignore[no-any-return]
        value = loader()
        with self._cache_lock:
            self._cache[key] = value
        return value

    def clear_cache(self, prefix: str | None = None) -> None:
        with self._cache_lock:
            if prefix is None:
                self._cache.clear()
                return
            for key in [k for k in self._cache if k.startswith(prefix)]:
                self._cache.pop(key, None)
