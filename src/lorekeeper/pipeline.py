"""
Ingestion pipeline: turns gameplay text into stored, embedded memories.

Two entry points:

* ``ingest_turn`` is called by the gameplay orchestrator after each
  turn.  It remembers the narration, meaningful player input and the
  notable mechanical events.  A provider or store failure drops that one
  memory, is logged, and is counted in the report; it never raises into
  the gameplay loop.
* ``initialize_memories`` embeds the campaign's context entries that are
  not yet remembered.  Entries are matched by their stable id, so running
  it again, or concurrently, never duplicates anything.

Nothing is persisted until the embedding is in hand: the store write is
the commit point, so an abandoned or failed embedding leaves no record.
"""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass, field
from typing import Any, Iterable

from .embeddings import EmbeddingGenerator
from .errors import EmbeddingProviderError, LorekeeperError, ValidationError
from .intelligence import (
    MAX_TAG_LENGTH,
    MIN_PLAYER_INPUT_LENGTH,
    classify_event,
    clamp_importance,
    event_importance,
    event_tags,
    extract_tags,
    generate_id,
    normalize_tags,
    should_remember_event,
    stable_memory_id,
    summarize,
)
from .log import get_logger
from .models import ContextEntry, Memory, MemoryType, TurnRecord
from .sources import ContextSource
from .store import MemoryStore, check_campaign_id

logger = get_logger(__name__)

#: ``source_table`` recorded on memories created from context entries.
CONTEXT_SOURCE_TABLE = "context_entries"

#: Context entries embedded per provider call during re-sync.
DEFAULT_BATCH_SIZE = 50

#: Importance given to user-written context entries.
CONTEXT_ENTRY_IMPORTANCE = 2


@dataclass
class IngestionReport:
    """Outcome of ingesting one turn."""

    created: int = 0
    existing: int = 0
    failed: int = 0
    memory_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ResyncReport:
    """Outcome of a bulk re-sync."""

    embedded: int = 0
    skipped: int = 0
    failed: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class IngestionPipeline:
    """
    Classify, summarize, embed and store new memories.

    Parameters
    ----------
    store:
        Destination of every memory.
    embedder:
        Embedding generator; its timeout bounds every call made here.
    context_source:
        Campaign context store used by ``initialize_memories``.
    batch_size:
        Number of context entries embedded per provider call.
    """

    def __init__(
        self,
        store: MemoryStore,
        embedder: EmbeddingGenerator,
        context_source: ContextSource | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self.context_source = context_source
        self.batch_size = max(1, batch_size)
        self._resync_locks: dict[int, threading.Lock] = {}
        self._resync_guard = threading.Lock()

    # ------------------------------------------------------------------
    # Single memory
    # ------------------------------------------------------------------

    def remember(
        self,
        campaign_id: int,
        memory_type: MemoryType | str,
        content: str,
        summary: str | None = None,
        tags: Iterable[str] | None = None,
        importance_boost: int = 0,
        session_number: int | None = None,
        turn_number: int | None = None,
        memory_id: str | None = None,
        source_table: str | None = None,
        source_id: str | None = None,
    ) -> Memory:
        """
        Embed and store one memory.

        Raises ``EmbeddingProviderError`` when the provider fails; in that
        case nothing has been written.
        """
        memory = self._build_memory(
            campaign_id,
            memory_type,
            content,
            summary=summary,
            tags=tags,
            importance_boost=importance_boost,
            session_number=session_number,
            turn_number=turn_number,
            memory_id=memory_id,
            source_table=source_table,
            source_id=source_id,
        )
        self._store.create(memory)
        return memory

    def _build_memory(
        self,
        campaign_id: int,
        memory_type: MemoryType | str,
        content: str,
        summary: str | None = None,
        tags: Iterable[str] | None = None,
        importance_boost: int = 0,
        session_number: int | None = None,
        turn_number: int | None = None,
        memory_id: str | None = None,
        source_table: str | None = None,
        source_id: str | None = None,
    ) -> Memory:
        check_campaign_id(campaign_id)
        if not isinstance(content, str) or not content.strip():
            raise ValidationError("Memory content must not be empty")
        content = content.strip()
        summary = summary.strip() if summary and summary.strip() else summarize(content)
        tag_set = normalize_tags(tags)

        embedding = self._embedder.embed(content)

        return Memory(
            id=memory_id or generate_id(),
            campaign_id=campaign_id,
            memory_type=MemoryType(memory_type),
            content=content,
            embedding=tuple(embedding),
            summary=summary,
            session_number=session_number,
            turn_number=turn_number,
            tags=tag_set,
            importance_boost=importance_boost,
            source_table=source_table,
            source_id=source_id,
        )

    # ------------------------------------------------------------------
    # Per-turn ingestion
    # ------------------------------------------------------------------

    def ingest_turn(self, turn: TurnRecord) -> IngestionReport:
        """
        Remember what happened in one gameplay turn.

        Every memory gets an id derived from the turn and its role in it,
        so submitting the same turn twice does not duplicate anything.
        """
        report = IngestionReport()
        for role, fields in self._plan_turn(turn):
            memory_id = stable_memory_id(
                "turn", turn.campaign_id, turn.session_number, turn.turn_number, role
            )
            status, mem_id = self._remember_quietly(
                campaign_id=turn.campaign_id,
                memory_id=memory_id,
                session_number=turn.session_number,
                turn_number=turn.turn_number,
                **fields,
            )
            if status == "created":
                report.created += 1
                report.memory_ids.append(mem_id)
            elif status == "existing":
                report.existing += 1
            else:
                report.failed += 1

        logger.info(
            "turn_ingested",
            campaign_id=turn.campaign_id,
            session_number=turn.session_number,
            turn_number=turn.turn_number,
            created=report.created,
            existing=report.existing,
            failed=report.failed,
        )
        return report

    def _plan_turn(self, turn: TurnRecord) -> list[tuple[str, dict[str, Any]]]:
        planned: list[tuple[str, dict[str, Any]]] = []
        prefix = f"[Turn {turn.turn_number}]"

        narration = turn.narration.strip()
        if narration:
            planned.append(("narration", {
                "memory_type": MemoryType.SESSION_NARRATION,
                "content": f"{prefix} DM: {narration}",
                "summary": summarize(narration),
                "tags": extract_tags(narration),
            }))

        player_input = turn.player_input.strip()
        if len(player_input) > MIN_PLAYER_INPUT_LENGTH:
            planned.append(("player", {
                "memory_type": MemoryType.PLAYER_ACTION,
                "content": f"{prefix} Player: {player_input}",
                "summary": summarize(player_input),
                "tags": extract_tags(player_input),
            }))

        for index, event in enumerate(turn.events):
            if not event.summary.strip() or not should_remember_event(event):
                continue
            planned.append((f"event-{index}", {
                "memory_type": classify_event(event),
                "content": f"{prefix} {event.summary.strip()}",
                "summary": summarize(event.summary),
                "tags": event_tags(event),
                "importance_boost": event_importance(event),
            }))
        return planned

    # ------------------------------------------------------------------
    # Single-entity helpers
    # ------------------------------------------------------------------

    def remember_context_entry(self, entry: ContextEntry) -> str | None:
        """Remember a context entry right after the user creates it."""
        status, mem_id = self._remember_quietly(
            campaign_id=entry.campaign_id,
            memory_id=context_memory_id(entry),
            **_context_entry_fields(entry),
        )
        return mem_id if status != "failed" else None

    def remember_npc(
        self,
        campaign_id: int,
        npc_name: str,
        description: str,
        current_goal: str | None = None,
        session_number: int | None = None,
        turn_number: int | None = None,
    ) -> str | None:
        """Remember an NPC being introduced or changing."""
        content = f"NPC {npc_name}: {description}"
        if current_goal:
            content += f" Current goal: {current_goal}"
        status, mem_id = self._remember_quietly(
            campaign_id=campaign_id,
            memory_type=MemoryType.NPC_INTERACTION,
            content=content,
            summary=f"NPC: {npc_name} - {summarize(description, 100)}",
            tags=_name_tags(npc_name, "npc"),
            importance_boost=1,
            session_number=session_number,
            turn_number=turn_number,
        )
        return mem_id if status != "failed" else None

    def remember_location(
        self,
        campaign_id: int,
        location_name: str,
        description: str,
        session_number: int | None = None,
        turn_number: int | None = None,
    ) -> str | None:
        """Remember the party discovering a location."""
        status, mem_id = self._remember_quietly(
            campaign_id=campaign_id,
            memory_type=MemoryType.LOCATION_DISCOVERY,
            content=f"Location discovered: {location_name}. {description}",
            summary=f"Discovered: {location_name}",
            tags=_name_tags(location_name, "location"),
            importance_boost=1,
            session_number=session_number,
            turn_number=turn_number,
        )
        return mem_id if status != "failed" else None

    def _remember_quietly(
        self, campaign_id: int, memory_id: str | None = None, **fields: Any
    ) -> tuple[str, str | None]:
        """
        Remember one memory without letting failures escape.

        Returns ``(status, memory_id)`` where status is ``"created"``,
        ``"existing"`` or ``"failed"``.
        """
        if memory_id is not None and self._store.exists(memory_id):
            return "existing", memory_id
        fields["importance_boost"] = clamp_importance(fields.get("importance_boost", 0))
        try:
            memory = self._build_memory(campaign_id, memory_id=memory_id, **fields)
            created = self._store.create_if_absent(memory)
        except LorekeeperError as exc:
            logger.warning(
                "ingestion_failed",
                campaign_id=campaign_id,
                turn_number=fields.get("turn_number"),
                memory_type=MemoryType(fields["memory_type"]).value,
                code=exc.code.value,
                reason=exc.details.get("reason"),
                error=exc.message,
            )
            return "failed", None
        return ("created" if created else "existing"), memory.id

    # ------------------------------------------------------------------
    # Bulk re-sync
    # ------------------------------------------------------------------

    def initialize_memories(self, campaign_id: int) -> ResyncReport:
        """
        Embed every context entry of *campaign_id* not yet remembered.

        Safe to call repeatedly and concurrently: re-syncs of one campaign
        are serialized, entries already present are skipped, and each
        entry maps to a deterministic memory id.
        """
        if self.context_source is None:
            raise ValidationError("No campaign context source configured")

        report = ResyncReport()
        with self._resync_lock(campaign_id):
            entries = [
                e for e in self.context_source.list_entries(campaign_id)
                if e.campaign_id == campaign_id and e.content.strip()
            ]
            present = self._store.source_ids(campaign_id, CONTEXT_SOURCE_TABLE)
            pending = [e for e in entries if e.id not in present]
            report.skipped = len(entries) - len(pending)

            for start in range(0, len(pending), self.batch_size):
                batch = pending[start : start + self.batch_size]
                fields = [_context_entry_fields(e) for e in batch]
                try:
                    vectors = self._embedder.embed_batch([f["content"] for f in fields])
                except EmbeddingProviderError as exc:
                    report.failed += len(batch)
                    logger.warning(
                        "resync_batch_failed",
                        campaign_id=campaign_id,
                        batch_size=len(batch),
                        reason=exc.details.get("reason"),
                        error=exc.message,
                    )
                    continue

                for entry, entry_fields, vector in zip(batch, fields, vectors):
                    created = self._store.create_if_absent(
                        Memory(
                            id=context_memory_id(entry),
                            campaign_id=campaign_id,
                            embedding=tuple(vector),
                            memory_type=entry_fields["memory_type"],
                            content=entry_fields["content"],
                            summary=entry_fields["summary"],
                            tags=normalize_tags(entry_fields["tags"]),
                            importance_boost=entry_fields["importance_boost"],
                            source_table=entry_fields["source_table"],
                            source_id=entry_fields["source_id"],
                        )
                    )
                    if created:
                        report.embedded += 1
                    else:
                        report.skipped += 1

        logger.info("resync_complete", campaign_id=campaign_id, **report.to_dict())
        return report

    def _resync_lock(self, campaign_id: int) -> threading.Lock:
        with self._resync_guard:
            lock = self._resync_locks.get(campaign_id)
            if lock is None:
                lock = self._resync_locks[campaign_id] = threading.Lock()
            return lock


def context_memory_id(entry: ContextEntry) -> str:
    """The memory id a context entry is stored under."""
    return stable_memory_id("context", entry.campaign_id, CONTEXT_SOURCE_TABLE, entry.id)


def _name_tags(name: str, kind: str) -> list[str]:
    name = name.strip() if isinstance(name, str) else ""
    return [name[:MAX_TAG_LENGTH], kind] if name else [kind]


def _context_entry_fields(entry: ContextEntry) -> dict[str, Any]:
    title = entry.title.strip()
    content = entry.content.strip()
    tags = [entry.entry_type, title, *entry.tags]
    return {
        "memory_type": MemoryType.CONTEXT_ENTRY,
        "content": f"[{entry.entry_type}] {title}: {content}" if title else f"[{entry.entry_type}] {content}",
        "summary": f"{title}: {summarize(content, 150)}" if title else summarize(content, 150),
        "tags": [t.strip()[:MAX_TAG_LENGTH] for t in tags if isinstance(t, str) and t.strip()],
        "importance_boost": CONTEXT_ENTRY_IMPORTANCE,
        "source_table": CONTEXT_SOURCE_TABLE,
        "source_id": entry.id,
    }
