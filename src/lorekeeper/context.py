"""Render ranked memories into the block injected into the narrator prompt."""

from __future__ import annotations

from collections.abc import Sequence

from .models import SearchHit

HEADER = "RELEVANT MEMORIES (from past sessions and events):"
GUIDANCE = "Use these to maintain consistency and recall past events accurately."


def format_memories_for_context(hits: Sequence[SearchHit]) -> str:
    """
    Format search results for the narrator's system prompt.

    Returns an empty string when there is nothing to recall.
    """
    if not hits:
        return ""

    lines = ["", HEADER, GUIDANCE, ""]
    for i, hit in enumerate(hits, 1):
        memory = hit.memory
        type_label = memory.memory_type.value.replace("_", " ")
        session = f" (Session {memory.session_number})" if memory.session_number is not None else ""
        lines.append(f"[Memory {i} - {type_label}{session} - {hit.relevance}% relevant]")
        lines.append(memory.content)
        lines.append("")
    return "\n".join(lines) + "\n"
