"""
Shared fakes for the agent test suite.

No test talks to a network or a database: the language model is
scripted, the commerce store lives in memory and embeddings come from
a lookup table.
"""

import copy
from typing import Any, Optional

import pytest

from src.smartshop.agent.domain.entities import (
    ChatContext,
    Message,
    StreamChunk,
    ToolCall,
    UserRole,
)
from src.smartshop.agent.domain.ports import (
    ICommerceRepository,
    IEmbeddingProvider,
    ILLMProvider,
)


# ============================================
# Language model
# ============================================


class ScriptedLLM(ILLMProvider):
    """LLM provider that replays a fixed list of replies.

    Each entry is a Message (returned as the assistant reply) or an
    Exception (raised). Every call records a snapshot of the transcript.
    """

    def __init__(self, replies: list[Any], split_text: bool = True):
        self.replies = list(replies)
        self.split_text = split_text
        self.calls: list[list[Message]] = []
        self.tools_seen: list[Optional[list]] = []

    @property
    def model_name(self) -> str:
        return "scripted"

    @property
    def supports_native_deltas(self) -> bool:
        return True

    def _next(self, messages, tools) -> Message:
        self.calls.append(copy.deepcopy(messages))
        self.tools_seen.append(tools)
        if not self.replies:
            raise AssertionError("ScriptedLLM ran out of replies")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def chat(self, messages, tools=None) -> Message:
        return self._next(messages, tools)

    async def chat_stream(self, messages, tools=None, on_chunk=None) -> Message:
        reply = self._next(messages, tools)
        if on_chunk is not None:
            pieces = reply.content.split(" ") if self.split_text else [reply.content]
            for i, piece in enumerate(pieces):
                if not piece:
                    continue
                text = piece if i == len(pieces) - 1 else piece + " "
                result = on_chunk(StreamChunk.text(text))
                if result is not None:
                    await result
            for tool_call in reply.tool_calls or []:
                result = on_chunk(StreamChunk.tool_call_chunk(tool_call))
                if result is not None:
                    await result
            result = on_chunk(StreamChunk.done())
            if result is not None:
                await result
        return reply


def tool_reply(*calls: tuple, content: str = "") -> Message:
    """Assistant message requesting the given (name, args, id) tool calls."""
    return Message.assistant(
        content,
        [ToolCall(name=name, arguments=args, id=call_id) for name, args, call_id in calls],
    )


# ============================================
# Embeddings
# ============================================


class KeywordEmbedder(IEmbeddingProvider):
    """Embeds text by counting vocabulary words, one dimension per word."""

    VOCABULARY = ("headphones", "audio", "running", "desk", "chair", "office", "coffee")

    def __init__(self):
        self.calls: list[tuple[str, Optional[str]]] = []

    @property
    def model_name(self) -> str:
        return "keyword"

    @property
    def dimension(self) -> int:
        return len(self.VOCABULARY)

    async def embed(self, text: str, task: Optional[str] = None) -> list[float]:
        self.calls.append((text, task))
        lowered = text.lower()
        return [float(lowered.count(word)) for word in self.VOCABULARY]


# ============================================
# Commerce data
# ============================================


PRODUCTS = [
    {
        "id": 1,
        "name": "Trail Running Headphones",
        "description": "Sweat-proof audio for running",
        "price": 79.99,
        "stock": 25,
        "category": "Audio",
    },
    {
        "id": 2,
        "name": "Studio Headphones",
        "description": "Closed-back audio monitoring",
        "price": 149.0,
        "stock": 4,
        "category": "Audio",
    },
    {
        "id": 3,
        "name": "Standing Desk",
        "description": "Electric office desk",
        "price": 399.0,
        "stock": 0,
        "category": "Furniture",
    },
    {
        "id": 4,
        "name": "Office Chair",
        "description": "Ergonomic office chair",
        "price": 249.5,
        "stock": 12,
        "category": "Furniture",
    },
]


class InMemoryCommerceRepository(ICommerceRepository):
    """Commerce store backed by plain lists."""

    def __init__(self):
        self.products = [dict(p) for p in PRODUCTS]
        self.reviews = {
            1: [{"rating": 5, "comment": "Great for runs", "userName": "Ana"}],
        }
        self.orders = [
            {"id": 100, "userId": 7, "status": "shipped", "total": 79.99},
            {"id": 101, "userId": 7, "status": "pending", "total": 249.5},
            {"id": 200, "userId": 8, "status": "delivered", "total": 399.0},
        ]
        self.order_items = {
            100: [{"productId": 1, "name": "Trail Running Headphones", "quantity": 1}],
        }
        self.carts = {7: [{"productId": 4, "name": "Office Chair", "quantity": 1}]}
        self.daily_sales = [
            {"date": "2025-01-05", "orders": 3, "revenue": 310.0},
            {"date": "2025-01-06", "orders": 1, "revenue": 79.99},
        ]
        self.calls: list[tuple[str, tuple]] = []

    async def search_products(self, query, category=None, max_price=None, limit=10):
        self.calls.append(("search_products", (query, category, max_price, limit)))
        query = query.lower()
        results = [
            p for p in self.products
            if query in p["name"].lower() or query in p["description"].lower()
        ]
        if category:
            results = [p for p in results if p["category"].lower() == category.lower()]
        if max_price is not None:
            results = [p for p in results if p["price"] <= max_price]
        return results[:limit]

    async def list_products(self, limit=None):
        return list(self.products[:limit] if limit else self.products)

    async def get_product(self, product_id):
        return next((dict(p) for p in self.products if p["id"] == product_id), None)

    async def get_product_reviews(self, product_id, limit=5):
        return list(self.reviews.get(product_id, []))[:limit]

    async def list_orders(self, user_id, status=None, limit=10):
        self.calls.append(("list_orders", (user_id, status, limit)))
        orders = [o for o in self.orders if o["userId"] == user_id]
        if status:
            orders = [o for o in orders if o["status"] == status]
        return orders[:limit]

    async def get_order(self, order_id, user_id):
        return next(
            (dict(o) for o in self.orders if o["id"] == order_id and o["userId"] == user_id),
            None,
        )

    async def get_order_items(self, order_id):
        return list(self.order_items.get(order_id, []))

    async def get_cart(self, user_id):
        return list(self.carts.get(user_id, []))

    async def get_spending_summary(self, user_id, days):
        totals = [o["total"] for o in self.orders if o["userId"] == user_id]
        return {"orderCount": len(totals), "totalSpent": sum(totals)}

    async def get_spending_by_category(self, user_id, days):
        return [{"category": "Audio", "total": 79.99}]

    async def get_sales_dashboard(self):
        return {
            "totalRevenue": sum(o["total"] for o in self.orders),
            "totalOrders": len(self.orders),
            "lowStockProducts": sum(1 for p in self.products if p["stock"] < 10),
        }

    async def get_daily_sales(self, days):
        return list(self.daily_sales)

    async def get_top_products(self, limit):
        return [
            {"name": "A Very Long Product Name Indeed", "sold": 4, "revenue": 500.0},
            {"name": "Office Chair", "sold": 2, "revenue": 499.0},
        ][:limit]

    async def get_inventory_status(self, low_stock_threshold):
        return [p for p in self.products if p["stock"] <= low_stock_threshold]

    async def get_revenue_by_category(self):
        return [
            {"category": "Audio", "revenue": 228.99},
            {"category": "Furniture", "revenue": 648.5},
        ]


# ============================================
# Fixtures
# ============================================


@pytest.fixture
def customer_context():
    return ChatContext(user_id=7, user_role=UserRole.CUSTOMER, user_name="Ana")


@pytest.fixture
def admin_context():
    return ChatContext(user_id=1, user_role=UserRole.ADMIN, user_name="Root")


@pytest.fixture
def repository():
    return InMemoryCommerceRepository()


@pytest.fixture
def embedder():
    return KeywordEmbedder()


@pytest.fixture
def scripted_llm():
    """Factory for ScriptedLLM instances."""
    return ScriptedLLM


@pytest.fixture
def make_tool_reply():
    return tool_reply
