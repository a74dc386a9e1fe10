"""
Domain types: memories, their categories, and the inputs the ingestion
pipeline accepts from the gameplay orchestrator.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class MemoryType(str, Enum):
    """
    Category of a memory.

    Unknown values never raise: ``MemoryType("sidequest")`` resolves to
    ``MemoryType.OTHER`` so new categories from callers degrade gracefully.
    """

    SESSION_NARRATION = "session_narration"
    PLAYER_ACTION = "player_action"
    NPC_INTERACTION = "npc_interaction"
    COMBAT_EVENT = "combat_event"
    LOCATION_DISCOVERY = "location_discovery"
    PLOT_POINT = "plot_point"
    ITEM_EVENT = "item_event"
    LORE = "lore"
    CONTEXT_ENTRY = "context_entry"
    CHARACTER_MOMENT = "character_moment"
    OTHER = "other"

    @classmethod
    def _missing_(cls, value: object) -> "MemoryType":
        if isinstance(value, str):
            normalized = value.strip().lower().replace(" ", "_").replace("-", "_")
            for member in cls:
                if member.value == normalized:
                    return member
        return cls.OTHER

    @property
    def label(self) -> str:
        return memory_type_style(self).label


@dataclass(frozen=True)
class MemoryTypeStyle:
    """Display metadata for a memory category."""

    label: str
    icon: str
    color: str


_STYLES: dict[MemoryType, MemoryTypeStyle] = {
    MemoryType.SESSION_NARRATION: MemoryTypeStyle("Narration", "scroll", "amber"),
    MemoryType.PLAYER_ACTION: MemoryTypeStyle("Player Action", "shield", "blue"),
    MemoryType.NPC_INTERACTION: MemoryTypeStyle("NPC", "users", "purple"),
    MemoryType.COMBAT_EVENT: MemoryTypeStyle("Combat", "swords", "red"),
    MemoryType.LOCATION_DISCOVERY: MemoryTypeStyle("Location", "map-pin", "green"),
    MemoryType.PLOT_POINT: MemoryTypeStyle("Plot", "sparkles", "yellow"),
    MemoryType.ITEM_EVENT: MemoryTypeStyle("Item", "book-open", "orange"),
    MemoryType.LORE: MemoryTypeStyle("Lore", "brain", "indigo"),
    MemoryType.CONTEXT_ENTRY: MemoryTypeStyle("Context", "book-open", "teal"),
    MemoryType.CHARACTER_MOMENT: MemoryTypeStyle("Character", "star", "pink"),
}

_FALLBACK_STYLE = MemoryTypeStyle("Other", "brain", "gray")


def memory_type_style(memory_type: MemoryType | str) -> MemoryTypeStyle:
    """Return display metadata for *memory_type*, with a generic fallback."""
    return _STYLES.get(MemoryType(memory_type), _FALLBACK_STYLE)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Memory:
    """
    A persisted unit of campaign knowledge.

    Everything but ``importance_boost`` is write-once.  The record is
    frozen; ``with_importance`` returns a copy and is only used by the
    store after it has persisted a new importance value.
    """

    id: str
    campaign_id: int
    memory_type: MemoryType
    content: str
    embedding: tuple[float, ...]
    summary: str | None = None
    session_number: int | None = None
    turn_number: int | None = None
    tags: frozenset[str] = frozenset()
    importance_boost: int = 0
    created_at: datetime = field(default_factory=utcnow)
    source_table: str | None = None
    source_id: str | None = None

    @property
    def dimension(self) -> int:
        return len(self.embedding)

    def with_importance(self, boost: int) -> "Memory":
        return replace(self, importance_boost=boost)

    def to_dict(self, include_embedding: bool = False) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "campaign_id": self.campaign_id,
            "memory_type": self.memory_type.value,
            "content": self.content,
            "summary": self.summary,
            "session_number": self.session_number,
            "turn_number": self.turn_number,
            "tags": sorted(self.tags),
            "importance_boost": self.importance_boost,
            "created_at": self.created_at.isoformat(),
        }
        if self.source_table is not None:
            data["source"] = {"table": self.source_table, "id": self.source_id}
        if include_embedding:
            data["embedding"] = list(self.embedding)
        return data


@dataclass(frozen=True)
class SearchHit:
    """
    One ranked search result.

    ``similarity`` is the cosine similarity scaled to 0-100; ``relevance``
    is the score after the ranking policy blends in importance.
    """

    memory: Memory
    similarity: int
    relevance: int
    cosine: float

    def to_dict(self) -> dict[str, Any]:
        data = self.memory.to_dict()
        data["similarity"] = self.similarity
        data["relevance"] = self.relevance
        return data


@dataclass(frozen=True)
class ContextEntry:
    """A campaign context entry supplied by the external context store."""

    id: str
    campaign_id: int
    entry_type: str
    title: str
    content: str
    tags: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "ContextEntry":
        tags = d.get("tags") or ()
        if isinstance(tags, str) or not isinstance(tags, (list, tuple)):
            raise TypeError(f"tags must be a list of strings, got {type(tags).__name__}")
        for tag in tags:
            if not isinstance(tag, str):
                raise TypeError(f"tags must be strings, got {type(tag).__name__}")
        return cls(
            id=str(d["id"]),
            campaign_id=int(d["campaign_id"]),
            entry_type=str(d.get("entry_type", "other")),
            title=str(d.get("title", "")),
            content=str(d["content"]),
            tags=tuple(tags),
        )


@dataclass(frozen=True)
class GameEvent:
    """
    A notable mechanical outcome of a turn (attack, check, spell...).

    ``details`` is free-form; the pipeline reads keys such as
    ``critical``, ``roll``, ``target_hp_after`` and name fields.
    """

    kind: str
    summary: str
    details: dict[str, Any] = field(default_factory=dict)
    success: bool | None = None


@dataclass(frozen=True)
class TurnRecord:
    """Everything the pipeline needs to remember one gameplay turn."""

    campaign_id: int
    session_number: int
    turn_number: int
    narration: str
    player_input: str = ""
    events: tuple[GameEvent, ...] = ()
