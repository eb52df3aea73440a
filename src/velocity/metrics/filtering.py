from collections.abc import Iterable
from dataclasses import dataclass
from functools import lru_cache
import re

from velocity.logger import get_logger
from velocity.models import ChangeAggregate, FileChange, FileStatus


logger = get_logger("metrics.filtering")


@dataclass(frozen=True)
class FilterConfig:
    files_to_ignore: tuple[str, ...] = ()
    ignore_line_deletions: bool = False
    ignore_file_deletions: bool = False


@lru_cache(maxsize=256)
def _compile_glob(pattern: str) -> re.Pattern[str]:
    parts = []
    for char in pattern:
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.DOTALL)


def matches_glob(path: str, pattern: str) -> bool:
    """Match the full path; ``*`` spans any run of characters, ``/`` included."""
    return _compile_glob(pattern).fullmatch(path) is not None


def is_ignored(file: FileChange, config: FilterConfig) -> bool:
    if any(matches_glob(file.path, pattern) for pattern in config.files_to_ignore):
        logger.debug(f"Ignoring file: {file.path}")
        return True
    if config.ignore_file_deletions and file.status == FileStatus.REMOVED:
        logger.debug(f"Ignoring deleted file: {file.path}")
        return True
    return False


def filter_files(
    files: Iterable[FileChange], config: FilterConfig
) -> list[FileChange]:
    return [file for file in files if not is_ignored(file, config)]


def aggregate_changes(
    files: Iterable[FileChange], config: FilterConfig
) -> ChangeAggregate:
    """Sum already-filtered files; deletions count only when not ignored."""
    additions = 0
    deletions = 0
    count = 0
    for file in files:
        count += 1
        additions += max(file.additions, 0)
        if not config.ignore_line_deletions:
            deletions += max(file.deletions, 0)

    return ChangeAggregate(
        total_additions=additions,
        total_deletions=deletions,
        files_changed=count,
    )


def measure(files: Iterable[FileChange], config: FilterConfig) -> ChangeAggregate:
    return aggregate_changes(filter_files(files, config), config)
