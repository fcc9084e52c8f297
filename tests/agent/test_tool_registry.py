"""
Tests for the local tool registry and the commerce tool catalog.

Covers role-based visibility, dispatch error handling and the
per-tool behaviour of the catalog handlers.
"""

import json
import pytest
import pytest_asyncio

from src.smartshop.agent.domain.entities import ToolDefinition, UserRole
from src.smartshop.agent.rag.document_loader import load_products_to_vector_store
from src.smartshop.agent.rag.query_engine import RAGQueryEngine
from src.smartshop.agent.rag.vector_store import InMemoryVectorStore
from src.smartshop.agent.tools.catalog import CommerceTools, create_tool_registry
from src.smartshop.agent.tools.registry import (
    ADMIN_ONLY_MESSAGE,
    ToolExecutionError,
    ToolHandler,
    ToolRegistry,
)

CUSTOMER_TOOLS = {
    "semantic_search_products",
    "search_products",
    "get_product_details",
    "get_my_orders",
    "get_order_details",
    "get_my_cart",
    "get_my_spending",
}

ADMIN_TOOLS = {
    "get_sales_dashboard",
    "get_sales_analytics",
    "get_top_products",
    "get_inventory_status",
    "get_revenue_by_category",
}


@pytest.fixture
def registry(repository):
    return create_tool_registry(repository)


def payload(result):
    return json.loads(result.content)


class TestToolVisibility:
    """Tests for role-gated tool listing."""

    @pytest.mark.asyncio
    async def test_customer_tools(self, registry):
        tools = await registry.list_tools(UserRole.CUSTOMER)
        assert {t.name for t in tools} == CUSTOMER_TOOLS

    @pytest.mark.asyncio
    async def test_admin_superset(self, registry):
        customer = {t.name for t in await registry.list_tools(UserRole.CUSTOMER)}
        admin = {t.name for t in await registry.list_tools(UserRole.ADMIN)}

        assert customer < admin
        assert admin == CUSTOMER_TOOLS | ADMIN_TOOLS

    def test_duplicate_names_rejected(self):
        async def noop(args, context):
            return {}

        handler = ToolHandler(ToolDefinition(name="dup", description=""), noop)
        with pytest.raises(ValueError, match="Duplicate tool name"):
            ToolRegistry([handler, handler])


class TestToolDispatch:
    """Tests for ToolRegistry.execute error handling."""

    @pytest.mark.asyncio
    async def test_unknown_tool(self, registry, customer_context):
        result = await registry.execute("drop_tables", {}, customer_context, "call_1")

        assert result.tool_call_id == "call_1"
        assert payload(result) == {"error": "Unknown tool: drop_tables"}
        assert result.is_error

    @pytest.mark.asyncio
    async def test_admin_tool_rejected_for_customer(
        self, registry, repository, customer_context
    ):
        result = await registry.execute("get_sales_dashboard", {}, customer_context, "c")

        assert payload(result) == {"error": ADMIN_ONLY_MESSAGE}

    @pytest.mark.asyncio
    async def test_handler_exception_becomes_error(self, customer_context):
        async def broken(args, context):
            raise RuntimeError("connection reset")

        registry = ToolRegistry([
            ToolHandler(ToolDefinition(name="broken", description=""), broken)
        ])

        result = await registry.execute("broken", {}, customer_context, "c")

        assert payload(result) == {"error": "connection reset"}

    @pytest.mark.asyncio
    async def test_chart_extracted(self, registry, admin_context):
        result = await registry.execute("get_revenue_by_category", {}, admin_context, "c")

        assert result.chart["chartType"] == "pie"
        assert payload(result)["chart"] == result.chart


class TestCustomerTools:
    """Tests for the customer catalog handlers."""

    @pytest.mark.asyncio
    async def test_search_products(self, registry, repository, customer_context):
        result = await registry.execute(
            "search_products",
            {"query": "headphones", "maxPrice": 100, "limit": 5.0},
            customer_context,
        )

        assert [p["id"] for p in payload(result)] == [1]
        assert repository.calls[-1] == ("search_products", ("headphones", None, 100.0, 5))

    @pytest.mark.asyncio
    async def test_product_details_include_reviews(self, registry, customer_context):
        result = await registry.execute("get_product_details", {"productId": "1"}, customer_context)

        data = payload(result)
        assert data["name"] == "Trail Running Headphones"
        assert data["reviews"][0]["rating"] == 5

    @pytest.mark.asyncio
    async def test_product_not_found(self, registry, customer_context):
        result = await registry.execute("get_product_details", {"productId": 999}, customer_context)
        assert payload(result) == {"error": "Product not found"}

    @pytest.mark.asyncio
    async def test_missing_required_argument(self, registry, customer_context):
        result = await registry.execute("get_order_details", {}, customer_context)
        assert payload(result) == {"error": "Missing required argument: orderId"}

    @pytest.mark.asyncio
    async def test_orders_scoped_to_caller(self, registry, repository, customer_context):
        result = await registry.execute(
            "get_my_orders", {"status": "shipped"}, customer_context
        )

        assert [o["id"] for o in payload(result)] == [100]
        assert repository.calls[-1] == ("list_orders", (7, "shipped", 10))

    @pytest.mark.asyncio
    async def test_invalid_order_status(self, registry, customer_context):
        result = await registry.execute(
            "get_my_orders", {"status": "lost"}, customer_context
        )
        assert payload(result) == {"error": "Invalid status: lost"}

    @pytest.mark.asyncio
    async def test_other_users_order_not_visible(self, registry, customer_context):
        result = await registry.execute("get_order_details", {"orderId": 200}, customer_context)
        assert payload(result) == {"error": "Order not found"}

    @pytest.mark.asyncio
    async def test_order_details_with_items(self, registry, customer_context):
        result = await registry.execute("get_order_details", {"orderId": 100}, customer_context)
        assert payload(result)["items"][0]["productId"] == 1

    @pytest.mark.asyncio
    async def test_cart_and_spending(self, registry, customer_context):
        cart = await registry.execute("get_my_cart", {}, customer_context)
        spending = await registry.execute("get_my_spending", {}, customer_context)

        assert payload(cart)[0]["name"] == "Office Chair"
        data = payload(spending)
        assert data["periodDays"] == 30
        assert data["summary"]["orderCount"] == 2


class TestSemanticSearchTool:
    """Tests for semantic_search_products and its keyword fallback."""

    @pytest_asyncio.fixture
    async def rag_registry(self, repository, embedder):
        store = InMemoryVectorStore()
        await load_products_to_vector_store(repository, embedder, store, batch_delay=0)
        engine = RAGQueryEngine(embedder, store, min_score=0.5)
        return create_tool_registry(repository, engine, store)

    @pytest.mark.asyncio
    async def test_semantic_results(self, rag_registry, customer_context):
        result = await rag_registry.execute(
            "semantic_search_products", {"query": "running headphones"}, customer_context
        )

        data = payload(result)
        assert data["resultCount"] == 1
        assert data["products"][0]["id"] == 1
        assert data["products"][0]["relevanceScore"].endswith("%")
        assert data["context"].startswith("Found 1 relevant products")

    @pytest.mark.asyncio
    async def test_fallback_without_engine(self, registry, customer_context):
        result = await registry.execute(
            "semantic_search_products", {"query": "desk"}, customer_context
        )

        data = payload(result)
        assert data["message"] == "Semantic search not available. Using keyword search."
        assert data["results"][0]["name"] == "Standing Desk"

    @pytest.mark.asyncio
    async def test_fallback_with_empty_store(self, repository, embedder, customer_context):
        store = InMemoryVectorStore()
        registry = create_tool_registry(repository, RAGQueryEngine(embedder, store), store)

        result = await registry.execute(
            "semantic_search_products", {"query": "desk"}, customer_context
        )

        assert "no embeddings loaded" in payload(result)["message"]


class TestAdminTools:
    """Tests for the analytics handlers and their charts."""

    @pytest.mark.asyncio
    async def test_dashboard(self, registry, admin_context):
        result = await registry.execute("get_sales_dashboard", {}, admin_context)
        assert payload(result)["lowStockProducts"] == 2

    @pytest.mark.asyncio
    async def test_sales_analytics_chart(self, registry, admin_context):
        result = await registry.execute("get_sales_analytics", {"days": 7}, admin_context)

        assert result.chart["chartType"] == "line"
        assert result.chart["title"] == "Sales Trend (Last 7 Days)"
        assert result.chart["data"][0] == {"label": "Jan 5", "value": 310.0, "orders": 3}
        assert result.chart["config"] == {"showLegend": False, "showGrid": True}

    @pytest.mark.asyncio
    async def test_sales_analytics_without_chart(self, registry, admin_context):
        result = await registry.execute(
            "get_sales_analytics", {"includeChart": "false"}, admin_context
        )
        assert result.chart is None
        assert "chart" not in payload(result)

    @pytest.mark.asyncio
    async def test_top_products_chart_opt_in(self, registry, admin_context):
        plain = await registry.execute("get_top_products", {}, admin_context)
        charted = await registry.execute(
            "get_top_products", {"limit": 2, "includeChart": True}, admin_context
        )

        assert plain.chart is None
        assert charted.chart["chartType"] == "bar"
        assert charted.chart["data"][0]["label"] == "A Very Long Pro..."

    @pytest.mark.asyncio
    async def test_inventory_status(self, registry, admin_context):
        result = await registry.execute(
            "get_inventory_status", {"lowStockThreshold": 5}, admin_context
        )
        assert [p["id"] for p in payload(result)] == [2, 3]

    @pytest.mark.asyncio
    async def test_handlers_recheck_role(self, repository, customer_context):
        """Handlers refuse customers even when called outside the registry."""
        tools = CommerceTools(repository)

        with pytest.raises(ToolExecutionError, match=ADMIN_ONLY_MESSAGE):
            await tools.get_top_products({}, customer_context)
