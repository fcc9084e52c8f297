"""
SmartShop tool catalog.

Customer tools cover product discovery, orders, cart and spending.
Admin tools add sales, inventory and revenue analytics, several of
which attach chart descriptors for the UI.

All handlers are read queries through ICommerceRepository; semantic
search additionally goes through the RAG query engine.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from ..domain.entities import ChatContext, ToolDefinition, ToolParameter
from ..domain.ports import ICommerceRepository, IVectorStore
from ..rag.query_engine import RAGQueryEngine
from .charts import (
    revenue_by_category_chart,
    sales_trend_chart,
    top_products_chart,
)
from .registry import ToolExecutionError, ToolHandler, ToolRegistry, require_admin

logger = logging.getLogger(__name__)

ORDER_STATUSES = ("pending", "confirmed", "shipped", "delivered")


# ============================================
# Tool Definitions
# ============================================

SEMANTIC_SEARCH_PRODUCTS = ToolDefinition(
    name="semantic_search_products",
    description=(
        "Perform intelligent semantic search for products. Use this when the "
        "user asks natural language questions about products, looking for "
        "recommendations, or when keyword search might miss relevant results."
    ),
    properties={
        "query": ToolParameter(
            "string",
            'Natural language search query (e.g., "something to listen to '
            'music while running")',
        ),
        "category": ToolParameter("string", "Optional category filter"),
        "limit": ToolParameter("number", "Maximum number of results (default 5)"),
    },
    required=["query"],
)

SEARCH_PRODUCTS = ToolDefinition(
    name="search_products",
    description="Search for products in the catalog by name, description, or category",
    properties={
        "query": ToolParameter("string", "Search query to find products"),
        "category": ToolParameter("string", "Filter by category name"),
        "maxPrice": ToolParameter("number", "Maximum price filter"),
        "limit": ToolParameter("number", "Maximum number of results (default 5)"),
    },
    required=["query"],
)

GET_PRODUCT_DETAILS = ToolDefinition(
    name="get_product_details",
    description="Get detailed information about a specific product including reviews",
    properties={"productId": ToolParameter("number", "The ID of the product")},
    required=["productId"],
)

GET_MY_ORDERS = ToolDefinition(
    name="get_my_orders",
    description="Get the current user's order history",
    properties={
        "status": ToolParameter("string", "Filter by order status", ORDER_STATUSES),
        "limit": ToolParameter(
            "number", "Maximum number of orders to return (default 10)"
        ),
    },
)

GET_ORDER_DETAILS = ToolDefinition(
    name="get_order_details",
    description="Get details of a specific order",
    properties={"orderId": ToolParameter("number", "The ID of the order")},
    required=["orderId"],
)

GET_MY_CART = ToolDefinition(
    name="get_my_cart",
    description="Get the current items in the user's shopping cart",
)

GET_MY_SPENDING = ToolDefinition(
    name="get_my_spending",
    description="Get the user's spending summary and analytics",
    properties={
        "days": ToolParameter("number", "Number of days to analyze (default 30)"),
    },
)

GET_SALES_DASHBOARD = ToolDefinition(
    name="get_sales_dashboard",
    description="Get overall sales statistics and dashboard data",
    admin_only=True,
)

GET_SALES_ANALYTICS = ToolDefinition(
    name="get_sales_analytics",
    description="Get sales data over time for analysis. Returns data suitable for charts.",
    properties={
        "days": ToolParameter(
            "number", "Number of days of data to retrieve (default 30)"
        ),
        "includeChart": ToolParameter(
            "boolean", "Whether to generate a chart visualization (default true)"
        ),
    },
    admin_only=True,
)

GET_TOP_PRODUCTS = ToolDefinition(
    name="get_top_products",
    description="Get the top selling products. Can include a chart visualization.",
    properties={
        "limit": ToolParameter(
            "number", "Number of top products to return (default 10)"
        ),
        "includeChart": ToolParameter(
            "boolean", "Whether to generate a chart visualization (default false)"
        ),
    },
    admin_only=True,
)

GET_INVENTORY_STATUS = ToolDefinition(
    name="get_inventory_status",
    description="Get inventory levels, optionally filtered by low stock",
    properties={
        "lowStockThreshold": ToolParameter(
            "number", "Threshold to consider as low stock (default 10)"
        ),
    },
    admin_only=True,
)

GET_REVENUE_BY_CATEGORY = ToolDefinition(
    name="get_revenue_by_category",
    description=(
        "Get revenue breakdown by product category. "
        "Can include a pie chart visualization."
    ),
    properties={
        "includeChart": ToolParameter(
            "boolean", "Whether to generate a pie chart visualization (default true)"
        ),
    },
    admin_only=True,
)


# ============================================
# Argument helpers
# ============================================


def int_arg(args: dict[str, Any], name: str, default: Optional[int] = None) -> Optional[int]:
    """Read an integer argument. Models often send 5.0 or "5"; 0 means default."""
    value = args.get(name)
    if value is None or value == "":
        return default
    try:
        number = int(float(value))
    except (TypeError, ValueError):
        raise ToolExecutionError(f"Invalid {name}: {value!r}", recoverable=True)
    return number or default


def float_arg(args: dict[str, Any], name: str) -> Optional[float]:
    value = args.get(name)
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ToolExecutionError(f"Invalid {name}: {value!r}", recoverable=True)


def bool_arg(args: dict[str, Any], name: str, default: bool) -> bool:
    value = args.get(name)
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def required_int_arg(args: dict[str, Any], name: str) -> int:
    value = int_arg(args, name)
    if value is None:
        raise ToolExecutionError(f"Missing required argument: {name}")
    return value


# ============================================
# Handlers
# ============================================


class CommerceTools:
    """Tool handlers bound to the commerce repository and RAG engine.

    Usage:
        tools = CommerceTools(repository, rag_engine, vector_store)
        registry = ToolRegistry(tools.handlers())
    """

    def __init__(
        self,
        repository: ICommerceRepository,
        rag_engine: Optional[RAGQueryEngine] = None,
        vector_store: Optional[IVectorStore] = None,
    ):
        self.repository = repository
        self.rag_engine = rag_engine
        self.vector_store = vector_store or (rag_engine.store if rag_engine else None)

    def handlers(self) -> list[ToolHandler]:
        return [
            ToolHandler(SEMANTIC_SEARCH_PRODUCTS, self.semantic_search_products),
            ToolHandler(SEARCH_PRODUCTS, self.search_products),
            ToolHandler(GET_PRODUCT_DETAILS, self.get_product_details),
            ToolHandler(GET_MY_ORDERS, self.get_my_orders),
            ToolHandler(GET_ORDER_DETAILS, self.get_order_details),
            ToolHandler(GET_MY_CART, self.get_my_cart),
            ToolHandler(GET_MY_SPENDING, self.get_my_spending),
            ToolHandler(GET_SALES_DASHBOARD, self.get_sales_dashboard),
            ToolHandler(GET_SALES_ANALYTICS, self.get_sales_analytics),
            ToolHandler(GET_TOP_PRODUCTS, self.get_top_products),
            ToolHandler(GET_INVENTORY_STATUS, self.get_inventory_status),
            ToolHandler(GET_REVENUE_BY_CATEGORY, self.get_revenue_by_category),
        ]

    # -- customer tools --------------------------------------------------

    async def semantic_search_products(
        self, args: dict[str, Any], context: ChatContext
    ) -> dict[str, Any]:
        """Embedding search with a keyword-search fallback."""
        query = str(args.get("query") or "")
        category = args.get("category") or None
        limit = int_arg(args, "limit", 5)

        if self.rag_engine is None or self.vector_store is None:
            return {
                "message": "Semantic search not available. Using keyword search.",
                "results": await self.search_products(args, context),
            }

        try:
            if await self.vector_store.count() == 0:
                return {
                    "message": (
                        "Semantic search not available (no embeddings loaded). "
                        "Using keyword search."
                    ),
                    "results": await self.search_products(args, context),
                }

            filter = {"category": category} if category else None
            result = await self.rag_engine.search(query, limit, filter)
        except Exception as e:
            logger.error(f"Semantic search error: {e}")
            return {
                "message": "Semantic search failed, using keyword search.",
                "results": await self.search_products(args, context),
            }

        return {
            "query": result.query,
            "resultCount": len(result.results),
            "products": [
                {
                    "id": r.metadata.get("productId"),
                    "name": r.metadata.get("name"),
                    "category": r.metadata.get("category"),
                    "price": r.metadata.get("price"),
                    "inStock": r.metadata.get("inStock"),
                    "relevanceScore": f"{r.score * 100:.1f}%",
                }
                for r in result.results
            ],
            "context": result.context,
        }

    async def search_products(
        self, args: dict[str, Any], context: ChatContext
    ) -> list[dict[str, Any]]:
        return await self.repository.search_products(
            query=str(args.get("query") or ""),
            category=args.get("category") or None,
            max_price=float_arg(args, "maxPrice") or None,
            limit=int_arg(args, "limit", 5),
        )

    async def get_product_details(
        self, args: dict[str, Any], context: ChatContext
    ) -> dict[str, Any]:
        product_id = required_int_arg(args, "productId")
        product = await self.repository.get_product(product_id)
        if product is None:
            raise ToolExecutionError("Product not found", "get_product_details")

        reviews = await self.repository.get_product_reviews(product_id, limit=5)
        return {**product, "reviews": reviews}

    async def get_my_orders(
        self, args: dict[str, Any], context: ChatContext
    ) -> list[dict[str, Any]]:
        status = args.get("status") or None
        if status is not None and status not in ORDER_STATUSES:
            raise ToolExecutionError(f"Invalid status: {status}", "get_my_orders")

        return await self.repository.list_orders(
            context.user_id, status=status, limit=int_arg(args, "limit", 10)
        )

    async def get_order_details(
        self, args: dict[str, Any], context: ChatContext
    ) -> dict[str, Any]:
        order_id = required_int_arg(args, "orderId")
        # Scoped to the caller so customers cannot read other users' orders
        order = await self.repository.get_order(order_id, context.user_id)
        if order is None:
            raise ToolExecutionError("Order not found", "get_order_details")

        items = await self.repository.get_order_items(order_id)
        return {**order, "items": items}

    async def get_my_cart(
        self, args: dict[str, Any], context: ChatContext
    ) -> list[dict[str, Any]]:
        return await self.repository.get_cart(context.user_id)

    async def get_my_spending(
        self, args: dict[str, Any], context: ChatContext
    ) -> dict[str, Any]:
        days = int_arg(args, "days", 30)
        return {
            "summary": await self.repository.get_spending_summary(context.user_id, days),
            "byCategory": await self.repository.get_spending_by_category(
                context.user_id, days
            ),
            "periodDays": days,
        }

    # -- admin tools -----------------------------------------------------

    async def get_sales_dashboard(
        self, args: dict[str, Any], context: ChatContext
    ) -> dict[str, Any]:
        require_admin(context, "get_sales_dashboard")
        return await self.repository.get_sales_dashboard()

    async def get_sales_analytics(
        self, args: dict[str, Any], context: ChatContext
    ) -> dict[str, Any]:
        require_admin(context, "get_sales_analytics")
        days = int_arg(args, "days", 30)
        rows = await self.repository.get_daily_sales(days)

        result: dict[str, Any] = {"data": rows}
        if bool_arg(args, "includeChart", True) and rows:
            result["chart"] = sales_trend_chart(rows, days)
        return result

    async def get_top_products(
        self, args: dict[str, Any], context: ChatContext
    ) -> dict[str, Any]:
        require_admin(context, "get_top_products")
        limit = int_arg(args, "limit", 10)
        rows = await self.repository.get_top_products(limit)

        result: dict[str, Any] = {"data": rows}
        if bool_arg(args, "includeChart", False) and rows:
            result["chart"] = top_products_chart(rows, limit)
        return result

    async def get_inventory_status(
        self, args: dict[str, Any], context: ChatContext
    ) -> list[dict[str, Any]]:
        require_admin(context, "get_inventory_status")
        return await self.repository.get_inventory_status(
            int_arg(args, "lowStockThreshold", 10)
        )

    async def get_revenue_by_category(
        self, args: dict[str, Any], context: ChatContext
    ) -> dict[str, Any]:
        require_admin(context, "get_revenue_by_category")
        rows = await self.repository.get_revenue_by_category()

        result: dict[str, Any] = {"data": rows}
        if bool_arg(args, "includeChart", True) and rows:
            result["chart"] = revenue_by_category_chart(rows)
        return result


def create_tool_registry(
    repository: ICommerceRepository,
    rag_engine: Optional[RAGQueryEngine] = None,
    vector_store: Optional[IVectorStore] = None,
) -> ToolRegistry:
    """Build the local registry over the commerce catalog."""
    return ToolRegistry(CommerceTools(repository, rag_engine, vector_store).handlers())
