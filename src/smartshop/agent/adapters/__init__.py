"""Infrastructure adapters for the commerce data port."""

from .postgres_commerce import (
    PostgresCommerceRepository,
    close_pool,
    create_pool,
    record_to_dict,
)

__all__ = [
    "PostgresCommerceRepository",
    "close_pool",
    "create_pool",
    "record_to_dict",
]
