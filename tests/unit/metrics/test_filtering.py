import logging

import pytest

from velocity.metrics.filtering import (
    FilterConfig,
    aggregate_changes,
    filter_files,
    is_ignored,
    matches_glob,
    measure,
)
from velocity.models import FileChange, FileStatus


@pytest.fixture
def files() -> list[FileChange]:
    return [
        FileChange("src/app.py", additions=40, deletions=10),
        FileChange("package-lock.json", additions=500, deletions=300),
        FileChange("docs/guide.md", additions=20, deletions=0),
        FileChange("src/old.py", additions=0, deletions=80, status=FileStatus.REMOVED),
    ]


@pytest.mark.parametrize(
    ("path", "pattern", "expected"),
    [
        ("package-lock.json", "package-lock.json", True),
        ("docs/guide.md", "*.md", True),
        ("docs/deep/guide.md", "docs/*", True),
        ("src/a.py", "src/?.py", True),
        ("src/ab.py", "src/?.py", False),
        ("src/app.py", "*.md", False),
        ("file.min.js", "file.min.js", True),
        ("fileXminXjs", "file.min.js", False),
    ],
)
def test_should_match_whole_path_against_glob(path, pattern, expected) -> None:
    assert matches_glob(path, pattern) is expected


def test_should_keep_every_file_when_no_filters_are_configured(files) -> None:
    assert filter_files(files, FilterConfig()) == files


def test_should_drop_files_matching_ignore_patterns(files) -> None:
    config = FilterConfig(files_to_ignore=("package-lock.json", "*.md"))

    kept = filter_files(files, config)

    assert [f.path for f in kept] == ["src/app.py", "src/old.py"]


def test_should_drop_removed_files_when_file_deletions_are_ignored(files) -> None:
    config = FilterConfig(ignore_file_deletions=True)

    kept = filter_files(files, config)

    assert "src/old.py" not in [f.path for f in kept]
    assert len(kept) == 3


def test_should_log_ignored_files_at_debug_level(files, caplog) -> None:
    config = FilterConfig(files_to_ignore=("*.md",))

    with caplog.at_level(logging.DEBUG, logger="velocity"):
        is_ignored(files[2], config)

    assert "Ignoring file: docs/guide.md" in caplog.text


def test_should_be_idempotent_when_filtering_twice(files) -> None:
    config = FilterConfig(files_to_ignore=("*.json",), ignore_file_deletions=True)

    once = filter_files(files, config)

    assert filter_files(once, config) == once


def test_should_sum_additions_and_deletions(files) -> None:
    aggregate = aggregate_changes(files, FilterConfig())

    assert aggregate.total_additions == 560
    assert aggregate.total_deletions == 390
    assert aggregate.total_changes == 950
    assert aggregate.files_changed == 4


def test_should_count_only_additions_when_line_deletions_are_ignored(files) -> None:
    aggregate = aggregate_changes(files, FilterConfig(ignore_line_deletions=True))

    assert aggregate.total_deletions == 0
    assert aggregate.total_changes == aggregate.total_additions == 560


def test_should_clamp_negative_counts_to_zero() -> None:
    broken = [FileChange("a.py", additions=-5, deletions=-3)]

    aggregate = aggregate_changes(broken, FilterConfig())

    assert aggregate.total_changes == 0
    assert aggregate.files_changed == 1


def test_should_return_zero_aggregate_for_no_files() -> None:
    aggregate = measure([], FilterConfig())

    assert aggregate.total_changes == 0
    assert aggregate.files_changed == 0


def test_should_filter_then_aggregate_when_measuring(files) -> None:
    config = FilterConfig(files_to_ignore=("package-lock.json",))

    aggregate = measure(files, config)

    assert aggregate.total_additions == 60
    assert aggregate.total_deletions == 90
    assert aggregate.files_changed == 3
