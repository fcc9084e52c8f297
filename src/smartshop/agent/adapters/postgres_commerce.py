"""PostgreSQL adapter for the commerce read queries.

Implements ICommerceRepository over an asyncpg pool. Every query is a
read; rows come back as plain dicts with NUMERIC values converted to
float so tool payloads serialize cleanly.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Optional

from ..domain.ports import ICommerceRepository

if TYPE_CHECKING:
    import asyncpg

logger = logging.getLogger(__name__)

LOW_STOCK_DASHBOARD_THRESHOLD = 10


def record_to_dict(record: Any) -> dict[str, Any]:
    """Convert an asyncpg Record to a dict, turning Decimals into floats."""
    return {
        key: float(value) if isinstance(value, Decimal) else value
        for key, value in dict(record).items()
    }


def _since(days: int) -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=days)


async def create_pool(
    database_url: str,
    min_size: int = 2,
    max_size: int = 10,
    command_timeout: float = 60.0,
    **kwargs,
):
    """Create an asyncpg connection pool.

    Raises:
        ConnectionError: If the pool cannot be created
    """
    import asyncpg

    try:
        pool = await asyncpg.create_pool(
            database_url,
            min_size=min_size,
            max_size=max_size,
            command_timeout=command_timeout,
            **kwargs,
        )
    except Exception as e:
        raise ConnectionError(f"Failed to create database pool: {e}") from e

    logger.info(f"Database pool created (min={min_size}, max={max_size})")
    return pool


async def close_pool(pool, timeout: float = 10.0) -> None:
    """Close the pool gracefully, terminating it if that takes too long."""
    if pool is None:
        return

    try:
        await asyncio.wait_for(pool.close(), timeout=timeout)
        logger.info("Database pool closed")
    except asyncio.TimeoutError:
        logger.warning(f"Pool close timed out after {timeout}s, terminating")
        pool.terminate()


class PostgresCommerceRepository(ICommerceRepository):
    """PostgreSQL implementation of ICommerceRepository.

    Tables: products, categories, reviews, users, orders, order_items,
    cart_items.
    """

    def __init__(self, pool: "asyncpg.Pool"):
        """Initialize the repository.

        Args:
            pool: asyncpg connection pool for database operations
        """
        self.pool = pool

    async def _fetch(self, query: str, *args: Any) -> list[dict[str, Any]]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, *args)
        return [record_to_dict(row) for row in rows]

    async def _fetchrow(self, query: str, *args: Any) -> Optional[dict[str, Any]]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(query, *args)
        return record_to_dict(row) if row else None

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    async def search_products(
        self,
        query: str,
        category: Optional[str] = None,
        max_price: Optional[float] = None,
        limit: int = 10,
    ) -> list[dict[str, Any]]:
        sql = """
            SELECT p.id, p.name, p.description, p.price, p.stock, c.name AS category
            FROM products p
            JOIN categories c ON p.category_id = c.id
            WHERE (p.name ILIKE $1 OR p.description ILIKE $1)
        """
        args: list[Any] = [f"%{query}%"]

        if category:
            args.append(category)
            sql += f" AND c.name = ${len(args)}"
        if max_price:
            args.append(max_price)
            sql += f" AND p.price <= ${len(args)}"

        args.append(limit)
        sql += f" ORDER BY p.id LIMIT ${len(args)}"

        return await self._fetch(sql, *args)

    async def list_products(self, limit: Optional[int] = None) -> list[dict[str, Any]]:
        sql = """
            SELECT p.id, p.name, p.description, p.price, p.stock, c.name AS category
            FROM products p
            JOIN categories c ON p.category_id = c.id
            ORDER BY p.id
        """
        if limit is not None:
            return await self._fetch(sql + " LIMIT $1", limit)
        return await self._fetch(sql)

    async def get_product(self, product_id: int) -> Optional[dict[str, Any]]:
        return await self._fetchrow(
            """
            SELECT p.*, c.name AS category
            FROM products p
            JOIN categories c ON p.category_id = c.id
            WHERE p.id = $1
            """,
            product_id,
        )

    async def get_product_reviews(
        self, product_id: int, limit: int = 5
    ) -> list[dict[str, Any]]:
        return await self._fetch(
            """
            SELECT r.rating, r.comment, u.name AS user_name, r.created_at
            FROM reviews r
            JOIN users u ON r.user_id = u.id
            WHERE r.product_id = $1
            ORDER BY r.created_at DESC
            LIMIT $2
            """,
            product_id,
            limit,
        )

    # ------------------------------------------------------------------
    # Orders and cart
    # ------------------------------------------------------------------

    async def list_orders(
        self, user_id: int, status: Optional[str] = None, limit: int = 10
    ) -> list[dict[str, Any]]:
        sql = """
            SELECT o.id, o.status, o.total, o.created_at,
                (SELECT COUNT(*) FROM order_items WHERE order_id = o.id) AS item_count
            FROM orders o
            WHERE o.user_id = $1
        """
        args: list[Any] = [user_id]
        if status:
            args.append(status)
            sql += f" AND o.status = ${len(args)}"

        args.append(limit)
        sql += f" ORDER BY o.created_at DESC LIMIT ${len(args)}"
        return await self._fetch(sql, *args)

    async def get_order(self, order_id: int, user_id: int) -> Optional[dict[str, Any]]:
        return await self._fetchrow(
            "SELECT o.* FROM orders o WHERE o.id = $1 AND o.user_id = $2",
            order_id,
            user_id,
        )

    async def get_order_items(self, order_id: int) -> list[dict[str, Any]]:
        return await self._fetch(
            """
            SELECT oi.*, p.name AS product_name
            FROM order_items oi
            JOIN products p ON oi.product_id = p.id
            WHERE oi.order_id = $1
            """,
            order_id,
        )

    async def get_cart(self, user_id: int) -> list[dict[str, Any]]:
        return await self._fetch(
            """
            SELECT ci.id, ci.quantity, p.id AS product_id, p.name, p.price, p.stock
            FROM cart_items ci
            JOIN products p ON ci.product_id = p.id
            WHERE ci.user_id = $1
            """,
            user_id,
        )

    async def get_spending_summary(self, user_id: int, days: int) -> dict[str, Any]:
        row = await self._fetchrow(
            """
            SELECT
                COUNT(*) AS total_orders,
                COALESCE(SUM(total), 0) AS total_spent,
                COALESCE(AVG(total), 0) AS avg_order_value
            FROM orders
            WHERE user_id = $1 AND created_at >= $2
            """,
            user_id,
            _since(days),
        )
        return row or {"total_orders": 0, "total_spent": 0.0, "avg_order_value": 0.0}

    async def get_spending_by_category(
        self, user_id: int, days: int
    ) -> list[dict[str, Any]]:
        return await self._fetch(
            """
            SELECT c.name AS category, SUM(oi.price * oi.quantity) AS spent
            FROM orders o
            JOIN order_items oi ON o.id = oi.order_id
            JOIN products p ON oi.product_id = p.id
            JOIN categories c ON p.category_id = c.id
            WHERE o.user_id = $1 AND o.created_at >= $2
            GROUP BY c.id, c.name
            ORDER BY spent DESC
            """,
            user_id,
            _since(days),
        )

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------

    async def get_sales_dashboard(self) -> dict[str, Any]:
        row = await self._fetchrow(
            """
            SELECT
                (SELECT COUNT(*) FROM orders) AS total_orders,
                (SELECT COALESCE(SUM(total), 0) FROM orders) AS total_revenue,
                (SELECT COUNT(*) FROM users WHERE role = 'customer') AS total_customers,
                (SELECT COUNT(*) FROM products) AS total_products,
                (SELECT COUNT(*) FROM products WHERE stock < $1) AS low_stock_products
            """,
            LOW_STOCK_DASHBOARD_THRESHOLD,
        )
        return row or {}

    async def get_daily_sales(self, days: int) -> list[dict[str, Any]]:
        rows = await self._fetch(
            """
            SELECT
                DATE(created_at) AS date,
                COUNT(*) AS orders,
                SUM(total) AS revenue
            FROM orders
            WHERE created_at >= $1
            GROUP BY DATE(created_at)
            ORDER BY date ASC
            """,
            _since(days),
        )
        for row in rows:
            row["date"] = row["date"].isoformat()
        return rows

    async def get_top_products(self, limit: int) -> list[dict[str, Any]]:
        return await self._fetch(
            """
            SELECT
                p.id, p.name, p.price,
                SUM(oi.quantity) AS units_sold,
                SUM(oi.price * oi.quantity) AS revenue
            FROM order_items oi
            JOIN products p ON oi.product_id = p.id
            GROUP BY p.id, p.name, p.price
            ORDER BY revenue DESC
            LIMIT $1
            """,
            limit,
        )

    async def get_inventory_status(
        self, low_stock_threshold: int
    ) -> list[dict[str, Any]]:
        return await self._fetch(
            """
            SELECT p.id, p.name, p.stock, c.name AS category
            FROM products p
            JOIN categories c ON p.category_id = c.id
            WHERE p.stock <= $1
            ORDER BY p.stock ASC
            """,
            low_stock_threshold,
        )

    async def get_revenue_by_category(self) -> list[dict[str, Any]]:
        return await self._fetch(
            """
            SELECT c.name AS category, SUM(oi.price * oi.quantity) AS revenue
            FROM order_items oi
            JOIN products p ON oi.product_id = p.id
            JOIN categories c ON p.category_id = c.id
            GROUP BY c.id, c.name
            ORDER BY revenue DESC
            """
        )
