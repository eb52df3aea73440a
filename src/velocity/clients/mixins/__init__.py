from velocity.clients.mixins.pagination import PaginationMixin
from velocity.clients.mixins.retry import RetryMixin


__all__ = ["PaginationMixin", "RetryMixin"]
