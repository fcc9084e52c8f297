"""
FastMCP tool server for the SmartShop assistant.

Exposes one group of read-only commerce tools per process, so the
remote tool gateway can run products, orders and analytics as
separate stdio servers.

Usage:
    python tool_server.py --group products                 # stdio transport (default)
    python tool_server.py --group analytics --transport http --port 3012
"""

from __future__ import annotations

import argparse
import logging
import os
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv
from fastmcp import Context, FastMCP

from src.smartshop.agent.adapters.postgres_commerce import (
    PostgresCommerceRepository,
    close_pool,
    create_pool,
)
from src.smartshop.agent.domain.entities import ChatContext, UserRole
from src.smartshop.agent.tools.catalog import CommerceTools
from src.smartshop.agent.tools.registry import ToolExecutionError, serialize_result

load_dotenv()

logger = logging.getLogger(__name__)

ADMIN_CONTEXT = ChatContext(user_id=0, user_role=UserRole.ADMIN, user_name="Tool Server")


@asynccontextmanager
async def lifespan(server: FastMCP):
    """Open the database pool for the lifetime of the server."""
    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        raise RuntimeError("DATABASE_URL environment variable is required")

    pool = await create_pool(
        database_url,
        min_size=int(os.environ.get("DB_POOL_MIN", "1")),
        max_size=int(os.environ.get("DB_POOL_MAX", "5")),
    )
    repository = PostgresCommerceRepository(pool)
    try:
        yield {"repository": repository, "tools": CommerceTools(repository)}
    finally:
        await close_pool(pool)


# =============================================================================
# Helper Functions
# =============================================================================


def get_tools(ctx: Context) -> CommerceTools:
    return ctx.request_context.lifespan_context["tools"]


def get_repository(ctx: Context) -> PostgresCommerceRepository:
    return ctx.request_context.lifespan_context["repository"]


def customer_context(customer_id: int) -> ChatContext:
    return ChatContext(user_id=int(customer_id))


async def run_handler(handler, args: dict[str, Any], context: ChatContext) -> str:
    """Run a catalog handler and serialize its payload or error."""
    try:
        payload = await handler({k: v for k, v in args.items() if v is not None}, context)
    except ToolExecutionError as e:
        return serialize_result({"error": str(e)})
    return serialize_result(payload)


# =============================================================================
# TOOLS: Products
# =============================================================================


async def search_products(
    query: str,
    category: str | None = None,
    maxPrice: float | None = None,
    limit: int = 10,
    ctx: Context = None,
) -> str:
    """
    Search for products by name, description, or category.

    Args:
        query: Search query to match against product name or description
        category: Optional category name to filter by
        maxPrice: Optional maximum price filter
        limit: Maximum number of results (default: 10)

    Returns:
        Matching products with prices and stock
    """
    args = {"query": query, "category": category, "maxPrice": maxPrice, "limit": limit}
    return await run_handler(get_tools(ctx).search_products, args, ADMIN_CONTEXT)


async def get_product_details(productId: int, ctx: Context = None) -> str:
    """
    Get detailed information about a specific product including recent reviews.

    Args:
        productId: The unique product ID
    """
    tools = get_tools(ctx)
    return await run_handler(tools.get_product_details, {"productId": productId}, ADMIN_CONTEXT)


async def get_product_reviews(productId: int, limit: int = 5, ctx: Context = None) -> str:
    """
    Get customer reviews for a specific product.

    Args:
        productId: The unique product ID
        limit: Maximum number of reviews (default: 5)
    """
    reviews = await get_repository(ctx).get_product_reviews(productId, limit=limit)
    return serialize_result({"productId": productId, "reviews": reviews})


async def get_similar_products(productId: int, limit: int = 5, ctx: Context = None) -> str:
    """
    Find products similar to a given product based on category.

    Args:
        productId: The product ID to find similar products for
        limit: Maximum number of similar products (default: 5)
    """
    repository = get_repository(ctx)
    product = await repository.get_product(productId)
    if product is None:
        return serialize_result({"error": "Product not found"})

    candidates = await repository.search_products(
        "", category=product.get("category"), limit=limit + 1
    )
    similar = [p for p in candidates if p.get("id") != productId][:limit]
    return serialize_result({"productId": productId, "similar": similar})


# =============================================================================
# TOOLS: Orders (scoped to customerId)
# =============================================================================


async def get_customer_orders(
    customerId: int,
    status: str | None = None,
    limit: int = 10,
    ctx: Context = None,
) -> str:
    """
    Get orders for a specific customer. Can optionally filter by status.

    Args:
        customerId: The customer (user) ID
        status: Optional order status filter (pending, confirmed, shipped, delivered, cancelled)
        limit: Maximum number of orders (default: 10)
    """
    args = {"status": status, "limit": limit}
    return await run_handler(get_tools(ctx).get_my_orders, args, customer_context(customerId))


async def get_order_details(customerId: int, orderId: int, ctx: Context = None) -> str:
    """
    Get detailed information about a customer's order including all items.

    Args:
        customerId: The customer (user) ID
        orderId: The order ID
    """
    return await run_handler(
        get_tools(ctx).get_order_details, {"orderId": orderId}, customer_context(customerId)
    )


async def get_customer_cart(customerId: int, ctx: Context = None) -> str:
    """
    Get the current shopping cart contents for a customer.

    Args:
        customerId: The customer (user) ID
    """
    return await run_handler(get_tools(ctx).get_my_cart, {}, customer_context(customerId))


async def get_customer_spending(customerId: int, days: int = 30, ctx: Context = None) -> str:
    """
    Get spending analytics for a customer including total spent, average
    order value, and spending by category.

    Args:
        customerId: The customer (user) ID
        days: Number of days to analyze (default: 30)
    """
    return await run_handler(
        get_tools(ctx).get_my_spending, {"days": days}, customer_context(customerId)
    )


# =============================================================================
# TOOLS: Analytics (admin-only server)
# =============================================================================


async def get_sales_dashboard(ctx: Context = None) -> str:
    """
    Get an overview dashboard of sales metrics: total revenue, order count,
    customer count, product count and low-stock products. Admin only.
    """
    return await run_handler(get_tools(ctx).get_sales_dashboard, {}, ADMIN_CONTEXT)


async def get_sales_analytics(days: int = 30, includeChart: bool = True, ctx: Context = None) -> str:
    """
    Get daily sales analytics with an optional trend chart. Admin only.

    Args:
        days: Number of days to analyze (default: 30)
        includeChart: Include a line chart of daily revenue (default: true)
    """
    args = {"days": days, "includeChart": includeChart}
    return await run_handler(get_tools(ctx).get_sales_analytics, args, ADMIN_CONTEXT)


async def get_top_products(limit: int = 10, includeChart: bool = False, ctx: Context = None) -> str:
    """
    Get the top selling products by revenue. Admin only.

    Args:
        limit: Number of products to return (default: 10)
        includeChart: Include a bar chart (default: false)
    """
    args = {"limit": limit, "includeChart": includeChart}
    return await run_handler(get_tools(ctx).get_top_products, args, ADMIN_CONTEXT)


async def get_revenue_by_category(includeChart: bool = True, ctx: Context = None) -> str:
    """
    Get revenue breakdown by product category. Admin only.

    Args:
        includeChart: Include a pie chart (default: true)
    """
    args = {"includeChart": includeChart}
    return await run_handler(get_tools(ctx).get_revenue_by_category, args, ADMIN_CONTEXT)


async def get_inventory_status(lowStockThreshold: int = 10, ctx: Context = None) -> str:
    """
    Get products at or below a stock threshold. Admin only.

    Args:
        lowStockThreshold: Threshold for low stock alert (default: 10)
    """
    args = {"lowStockThreshold": lowStockThreshold}
    return await run_handler(get_tools(ctx).get_inventory_status, args, ADMIN_CONTEXT)


# =============================================================================
# FastMCP Server
# =============================================================================

TOOL_GROUPS = {
    "products": [
        search_products,
        get_product_details,
        get_product_reviews,
        get_similar_products,
    ],
    "orders": [
        get_customer_orders,
        get_order_details,
        get_customer_cart,
        get_customer_spending,
    ],
    "analytics": [
        get_sales_dashboard,
        get_sales_analytics,
        get_top_products,
        get_revenue_by_category,
        get_inventory_status,
    ],
}


def build_server(group: str) -> FastMCP:
    """Create a server exposing one tool group."""
    if group not in TOOL_GROUPS:
        raise ValueError(f"Unknown tool group: {group}")

    mcp = FastMCP(
        name=f"smartshop-{group}",
        instructions=f"Read-only SmartShop {group} tools.",
        lifespan=lifespan,
    )
    for func in TOOL_GROUPS[group]:
        mcp.tool(annotations={"readOnlyHint": True})(func)
    return mcp


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="SmartShop MCP Tool Server")
    parser.add_argument(
        "--group",
        choices=sorted(TOOL_GROUPS),
        required=True,
        help="Tool group to expose",
    )
    parser.add_argument(
        "--transport",
        choices=["stdio", "http"],
        default="stdio",
        help="Transport protocol (default: stdio)",
    )
    parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Host to bind to for HTTP transport (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port for HTTP transport (default: 8000)",
    )
    args = parser.parse_args()

    server = build_server(args.group)
    if args.transport == "http":
        server.run(transport="streamable-http", host=args.host, port=args.port)
    else:
        server.run(transport="stdio")
