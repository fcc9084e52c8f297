#!/usr/bin/env python3
"""SmartShop AI Assistant CLI.

Command-line entry point for the SmartShop tool-orchestration engine.
It can index product embeddings for semantic search, run a single chat
turn and print the Server-Sent Events frames it produces, and inspect
the tools available to a role.

Architecture:
    - AgentSettings reads configuration from the environment (.env supported)
    - build_runtime() constructs every component once and owns cleanup
    - Chat turns run through ConversationManager and EventStreamer

Environment Variables:
    - LLM_PROVIDER: openai (default) or gemini
    - OPENAI_API_KEY / GEMINI_API_KEY: Model credentials
    - DATABASE_URL: PostgreSQL connection string
    - TOOL_MODE: local (default) or remote (spawn MCP tool servers)

Example Usage:
    $ python main.py --index-products             # Embed products missing from the store
    $ python main.py --index-products --force     # Re-embed every product
    $ python main.py --chat "Any headphones under $100?"
    $ python main.py --chat "How are sales?" --role admin
    $ python main.py --list-tools --role admin
"""
import argparse
import asyncio
import sys
from datetime import datetime, timezone

from src.smartshop.agent.api.schemas import (
    ChatRequest,
    ServerStatusResponse,
    ToolListResponse,
)
from src.smartshop.agent.config import AgentSettings, configure_logging
from src.smartshop.agent.domain.entities import ChatContext, UserRole
from src.smartshop.agent.factory import AgentRuntime, build_runtime
from src.smartshop.agent.rag import load_products_to_vector_store
from src.smartshop.agent.tools import RemoteToolError


async def run_index(runtime: AgentRuntime, force: bool) -> int:
    """Embed products into the vector store.

    Returns:
        Process exit code
    """
    if runtime.repository is None:
        print("[Main] DATABASE_URL is required to index products")
        return 1
    if runtime.embedder is None:
        print("[Main] No embedding provider configured")
        return 1

    result = await load_products_to_vector_store(
        runtime.repository,
        runtime.embedder,
        runtime.vector_store,
        force_reload=force,
    )
    print(f"[Main] Indexed {result.loaded} product(s), skipped {result.skipped}")
    print(f"[Main] Vector store now holds {await runtime.vector_store.count()} document(s)")
    return 0


async def run_chat(runtime: AgentRuntime, request: ChatRequest, context: ChatContext) -> int:
    """Run one chat turn and print its wire frames."""
    chunks = runtime.conversations.run_turn(
        runtime.orchestrator,
        conversation_key=context.user_id,
        user_message=request.message,
        context=context,
        clear_history=request.clear_history,
    )
    exit_code = 0
    async for frame in runtime.streamer.stream(chunks):
        sys.stdout.write(frame)
        sys.stdout.flush()
        if frame.startswith("event: error"):
            exit_code = 1
    return exit_code


async def run_list_tools(runtime: AgentRuntime, context: ChatContext) -> int:
    tools = await runtime.orchestrator.available_tools(context)
    print(ToolListResponse.from_definitions(tools).model_dump_json(indent=2))
    if runtime.gateway is not None:
        status = ServerStatusResponse(
            servers=runtime.gateway.get_status(),
            mode=runtime.settings.tool_mode,
        )
        print(status.model_dump_json(indent=2))
    return 0


async def run(args: argparse.Namespace) -> int:
    """Main orchestration function.

    Args:
        args: Parsed command-line arguments

    Returns:
        Process exit code
    """
    start_time = datetime.now(timezone.utc)

    try:
        settings = AgentSettings.from_env()
    except ValueError as e:
        print(f"[Main] Configuration error: {e}")
        return 1

    configure_logging(args.log_level or settings.log_level)

    request = None
    if args.chat is not None:
        try:
            request = ChatRequest(message=args.chat, clear_history=args.clear_history)
        except ValueError as e:
            print(f"[Main] Invalid message: {e}")
            return 2

    context = ChatContext(
        user_id=args.user_id,
        user_role=UserRole(args.role),
        user_name=args.user_name,
    )

    try:
        runtime = await build_runtime(settings)
    except (ValueError, ConnectionError, RemoteToolError) as e:
        print(f"[Main] Startup failed: {e}")
        return 1

    async with runtime:
        if args.index_products:
            exit_code = await run_index(runtime, force=args.force)
        elif request is not None:
            exit_code = await run_chat(runtime, request, context)
        else:
            exit_code = await run_list_tools(runtime, context)

    duration = (datetime.now(timezone.utc) - start_time).total_seconds()
    print(f"\n[Main] Completed in {duration:.1f} seconds", file=sys.stderr)
    return exit_code


def main():
    parser = argparse.ArgumentParser(
        description="SmartShop AI assistant: index products and run chat turns",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --index-products                 # Embed products missing from the store
  python main.py --index-products --force         # Re-embed every product
  python main.py --chat "Where is my last order?" # One turn as customer 1
  python main.py --chat "Top sellers?" --role admin --user-id 2
  python main.py --list-tools --role admin        # Tools visible to admins
        """
    )

    action_group = parser.add_mutually_exclusive_group(required=True)
    action_group.add_argument(
        "--index-products",
        action="store_true",
        help="Load product embeddings into the vector store"
    )
    action_group.add_argument(
        "--chat",
        type=str,
        metavar="MESSAGE",
        help="Run one chat turn and print the SSE frames"
    )
    action_group.add_argument(
        "--list-tools",
        action="store_true",
        help="List the tools visible to the role"
    )

    index_group = parser.add_argument_group("Indexing Options")
    index_group.add_argument(
        "--force",
        action="store_true",
        help="Re-embed products that are already indexed"
    )

    chat_group = parser.add_argument_group("Chat Options")
    chat_group.add_argument(
        "--role",
        choices=[role.value for role in UserRole],
        default=UserRole.CUSTOMER.value,
        help="Caller role (default: customer)"
    )
    chat_group.add_argument(
        "--user-id",
        type=int,
        default=1,
        help="Caller user id (default: 1)"
    )
    chat_group.add_argument(
        "--user-name",
        type=str,
        default="User",
        help="Name shown in the system prompt"
    )
    chat_group.add_argument(
        "--clear-history",
        action="store_true",
        help="Start a fresh conversation"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Override LOG_LEVEL"
    )

    args = parser.parse_args()

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
