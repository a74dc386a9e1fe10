"""
MCP (Model Context Protocol) server for lorekeeper.

Exposes the MemoryManager as a set of tools so that an AI narrator can
record and recall campaign memories.

Run as a stdio server:
    python -m lorekeeper.mcp_server

Or via the installed entry-point:
    lorekeeper-mcp

Configuration comes from the ``LOREKEEPER_*`` environment variables
documented in ``lorekeeper.config``.
"""

from __future__ import annotations

import json

from mcp.server.fastmcp import FastMCP

from .config import Settings
from .errors import LorekeeperError
from .log import configure_logging, get_logger
from .memory import MemoryManager
from .sources import JsonContextSource

logger = get_logger(__name__)

# Lazy-initialised singleton so the embedding model is only loaded once.
_manager: MemoryManager | None = None


def _get_manager() -> MemoryManager:
    global _manager
    if _manager is None:
        settings = Settings.from_env()
        source = JsonContextSource(settings.context_file) if settings.context_file else None
        _manager = MemoryManager.from_settings(settings, context_source=source)
    return _manager


def _error(exc: LorekeeperError) -> str:
    logger.info("tool_error", code=exc.code.value, error=exc.message)
    return f"Error: {exc.message}"


# ---------------------------------------------------------------------------
# FastMCP server
# ---------------------------------------------------------------------------

mcp = FastMCP(
    "lorekeeper",
    instructions=(
        "Long-term campaign memory for the narrator. "
        "Use `search_memories` before narrating to recall relevant past events. "
        "Use `add_memory` to record lore, plot points or anything the story "
        "must not forget; raise `importance_boost` (0-10) for key facts. "
        "Use `list_memories` and `count_memories` to browse a campaign, "
        "`set_memory_importance` to re-weight a memory, `delete_memory` to "
        "forget one, and `initialize_memories` to embed existing campaign "
        "context entries."
    ),
)


@mcp.tool()
def add_memory(
    campaign_id: int,
    memory_type: str,
    content: str,
    summary: str | None = None,
    tags: list[str] | None = None,
    importance_boost: int = 0,
) -> str:
    """
    Record a memory for a campaign.

    Args:
        campaign_id:      Campaign the memory belongs to.
        memory_type:      Category, e.g. lore, plot_point, npc_interaction,
                          location_discovery, item_event.  Unknown
                          categories are stored as "other".
        content:          The text to remember.
        summary:          Optional short preview.
        tags:             Optional short labels.
        importance_boost: 0-10; higher values surface more readily.

    Returns:
        A confirmation message with the new memory's ID.
    """
    try:
        memory = _get_manager().add_memory(
            campaign_id,
            memory_type,
            content,
            summary=summary,
            tags=tags,
            importance_boost=importance_boost,
        )
    except LorekeeperError as exc:
        return _error(exc)
    return f"Stored {memory.memory_type.value} memory. ID: {memory.id}"


@mcp.tool()
def search_memories(
    campaign_id: int,
    query: str,
    top_k: int | None = None,
) -> str:
    """
    Retrieve the campaign memories most relevant to a query.

    Results blend semantic similarity with each memory's importance boost.

    Args:
        campaign_id: Campaign to search.
        query:       Natural-language description of what to recall.
        top_k:       Maximum number of memories to return (1-20; defaults to LOREKEEPER_TOP_K, else 8).

    Returns:
        JSON array of memories, each with id, memory_type, content,
        session_number, importance_boost, similarity and relevance.
    """
    try:
        hits = _get_manager().search_memories(campaign_id, query, top_k=top_k)
    except LorekeeperError as exc:
        return _error(exc)
    if not hits:
        return "No memories found."

    simplified = [
        {
            "id": h.memory.id,
            "memory_type": h.memory.memory_type.value,
            "content": h.memory.content,
            "session_number": h.memory.session_number,
            "importance_boost": h.memory.importance_boost,
            "similarity": h.similarity,
            "relevance": h.relevance,
        }
        for h in hits
    ]
    return json.dumps(simplified, indent=2)


@mcp.tool()
def list_memories(campaign_id: int, limit: int = 50) -> str:
    """
    List a campaign's memories, newest first (no ranking applied).

    Args:
        campaign_id: Campaign to list.
        limit:       Maximum number of entries to return (default 50).

    Returns:
        JSON array of memory entries.
    """
    try:
        memories = _get_manager().get_memories(campaign_id)[:limit]
    except LorekeeperError as exc:
        return _error(exc)
    if not memories:
        return "No memories stored."
    return json.dumps([m.to_dict() for m in memories], indent=2)


@mcp.tool()
def delete_memory(campaign_id: int, memory_id: str) -> str:
    """
    Delete a memory of a campaign.

    Args:
        campaign_id: Campaign the memory belongs to.
        memory_id:   ID as returned by add_memory or list_memories.

    Returns:
        A confirmation message.
    """
    try:
        _get_manager().delete_memory(memory_id, campaign_id)
    except LorekeeperError as exc:
        return _error(exc)
    return f"Deleted memory {memory_id}."


@mcp.tool()
def set_memory_importance(campaign_id: int, memory_id: str, importance_boost: int) -> str:
    """
    Change how strongly a memory is favoured in searches.

    Args:
        campaign_id:      Campaign the memory belongs to.
        memory_id:        The memory to update.
        importance_boost: New value, 0-10.

    Returns:
        A confirmation message.
    """
    try:
        _get_manager().update_memory_importance(memory_id, campaign_id, importance_boost)
    except LorekeeperError as exc:
        return _error(exc)
    return f"Memory {memory_id} importance set to {importance_boost}."


@mcp.tool()
def count_memories(campaign_id: int) -> str:
    """
    Return the number of memories stored for a campaign.

    Returns:
        A short message with the count.
    """
    try:
        n = _get_manager().get_memory_count(campaign_id)
    except LorekeeperError as exc:
        return _error(exc)
    return f"{n} {'memory' if n == 1 else 'memories'} stored."


@mcp.tool()
def initialize_memories(campaign_id: int) -> str:
    """
    Embed the campaign's existing context entries that are not yet
    remembered.  Safe to run repeatedly.

    Returns:
        JSON object with embedded, skipped and failed counts.
    """
    try:
        report = _get_manager().initialize_memories(campaign_id)
    except LorekeeperError as exc:
        return _error(exc)
    return json.dumps(report.to_dict())


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------


def main() -> None:
    """Run the MCP server over stdio."""
    settings = Settings.from_env()
    configure_logging(settings.log_level, settings.log_json)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
