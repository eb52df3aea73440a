import logging

from velocity.clients.mixins.pagination import PaginationMixin


class PagingSource(PaginationMixin):
    def __init__(self) -> None:
        super().__init__()


def test_should_yield_every_item_when_no_limit_is_set() -> None:
    instance = PagingSource()

    assert list(instance.paginate_github(iter(["v1", "v2", "v3"]))) == [
        "v1",
        "v2",
        "v3",
    ]


def test_should_stop_lazily_at_max_items(caplog) -> None:
    instance = PagingSource()
    consumed: list[int] = []

    def pages():
        for number in range(100):
            consumed.append(number)
            yield number

    with caplog.at_level(logging.WARNING, logger="velocity"):
        results = list(instance.paginate_github(pages(), max_items=3))

    assert results == [0, 1, 2]
    assert consumed == [0, 1, 2, 3]
    assert "Reached max_items limit (3)" in caplog.text


def test_should_not_warn_when_list_ends_at_the_limit(caplog) -> None:
    instance = PagingSource()

    with caplog.at_level(logging.WARNING, logger="velocity"):
        results = list(instance.paginate_github([1, 2], max_items=2))

    assert results == [1, 2]
    assert "Reached max_items limit" not in caplog.text


def test_should_convert_collected_items() -> None:
    instance = PagingSource()

    results = instance.collect_github(["a", "b"], str.upper)

    assert results == ["A", "B"]


def test_should_skip_rejected_items_before_applying_limit() -> None:
    instance = PagingSource()
    releases = [
        {"name": "v4", "draft": True},
        {"name": "v3", "draft": False},
        {"name": "v2", "draft": True},
        {"name": "v1", "draft": False},
    ]

    results = instance.collect_github(
        releases,
        lambda release: release["name"],
        max_items=2,
        keep=lambda release: not release["draft"],
    )

    assert results == ["v3", "v1"]


def test_should_truncate_collected_items_at_limit() -> None:
    instance = PagingSource()

    results = instance.collect_github(range(10), lambda n: n * 2, max_items=4)

    assert results == [0, 2, 4, 6]


def test_should_return_empty_list_for_empty_source() -> None:
    assert PagingSource().collect_github([], str) == []
