"""Agent Orchestrator.

The orchestrator coordinates all components of the SmartShop assistant:
- LLM provider for response generation
- Tool backends (local registry or remote tool servers)
- Streaming chunks for real-time UI updates

Provides:
- Main orchestrator, configuration and turn state machine
- Tool dispatch boundary
- Conversation history management
- Server-Sent Events framing
- System prompt building
"""

from .agent import APOLOGY_MESSAGE, AgentConfig, AgentOrchestrator, TurnState, TurnStateMachine
from .conversation_manager import ConversationManager
from .event_streamer import EventStreamer, format_sse
from .prompt_builder import PromptBuilder
from .tool_executor import ToolExecutor

__all__ = [
    # Main orchestrator
    "AgentOrchestrator",
    "AgentConfig",
    "APOLOGY_MESSAGE",
    "TurnState",
    "TurnStateMachine",
    # Core managers
    "ConversationManager",
    "ToolExecutor",
    "EventStreamer",
    "format_sse",
    "PromptBuilder",
]
