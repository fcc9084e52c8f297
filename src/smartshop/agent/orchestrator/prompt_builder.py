"""
Prompt Builder for Agent Orchestrator.

Renders the per-request system prompt. The prompt is synthesized for
every turn and never stored in conversation history.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from ..domain.entities import ChatContext

BASE_PROMPT = """You are SmartShop AI, a helpful e-commerce assistant for the SmartShop platform.
Current user: {user_name} ({user_role})
Current date: {today}

You help users with:
- Finding and learning about products
- Tracking orders and order history
- Understanding their cart and spending
- Answering questions about the shop

Be concise, friendly, and helpful. When users ask about data (orders, products, spending, etc.),
use the available tools to fetch real information. Present data clearly and in a user-friendly format.

When presenting product search results, format them nicely with name, price, and brief description.
When presenting order information, include status, total, and date.
When presenting spending analytics, summarize the key insights.
"""

ADMIN_SECTION = """
As an admin, you also have access to powerful analytics tools:
- Sales dashboards showing overall business metrics
- Revenue breakdown by category
- Top selling products analysis
- Inventory status and low stock alerts
- Sales trends and analytics over time

Help the admin understand business performance and make data-driven decisions.
Present data with clear formatting and highlight important insights.
"""


class PromptBuilder:
    """Builds the role-specific system prompt.

    Usage:
        prompt_builder = PromptBuilder()
        system_prompt = prompt_builder.build(context)
    """

    def __init__(
        self,
        base_prompt: str = BASE_PROMPT,
        admin_section: str = ADMIN_SECTION,
    ):
        self.base_prompt = base_prompt
        self.admin_section = admin_section

    def build(self, context: ChatContext, today: Optional[date] = None) -> str:
        """Render the system prompt for the caller.

        Args:
            context: Caller identity; admins get the analytics section
            today: Date shown in the prompt (defaults to today)

        Returns:
            Complete system prompt
        """
        today = today or date.today()
        prompt = self.base_prompt.format(
            user_name=context.user_name,
            user_role=context.user_role.value,
            today=today.isoformat(),
        )
        if context.is_admin:
            prompt += self.admin_section
        return prompt
