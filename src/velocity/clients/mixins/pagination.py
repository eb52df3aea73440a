from collections.abc import Callable, Generator, Iterable
from typing import Any, TypeVar

from velocity.logger import get_logger


T = TypeVar("T")


class PaginationMixin:
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._pagination_logger = get_logger(
            f"clients.{self.__class__.__name__}.pagination"
        )

    def paginate_github(
        self, paginated_list: Iterable[Any], max_items: int | None = None
    ) -> Generator[Any, None, None]:
        """
        Iterate a PyGithub PaginatedList, fetching pages lazily.

        Args:
            paginated_list: PyGithub PaginatedList (or any iterable)
            max_items: Stop after this many items (None for all)

        Yields:
            Individual items from the paginated list
        """
        count = 0
        for item in paginated_list:
            if max_items is not None and count >= max_items:
                self._pagination_logger.warning(
                    f"Reached max_items limit ({max_items}), truncating"
                )
                break
            yield item
            count += 1

    def collect_github(
        self,
        paginated_list: Iterable[Any],
        convert: Callable[[Any], T],
        max_items: int | None = None,
        keep: Callable[[Any], bool] | None = None,
    ) -> list[T]:
        """Convert and collect items, skipping those ``keep`` rejects."""
        results: list[T] = []
        for item in self.paginate_github(paginated_list):
            if keep is not None and not keep(item):
                continue
            if max_items is not None and len(results) >= max_items:
                self._pagination_logger.warning(
                    f"Reached max_items limit ({max_items}), truncating"
                )
                break
            results.append(convert(item))
        return results
