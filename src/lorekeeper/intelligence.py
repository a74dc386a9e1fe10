"""
Intelligent logic layer: classification, summaries, tags, importance and ids.

These utilities decide *what* a memory looks like before it is embedded:
  - Mapping gameplay events to memory categories
  - Deciding which mechanical events are worth remembering
  - Deriving summaries and tags from free text
  - Stable ids so that re-submitted turns and re-synced entries
    never produce duplicates
"""

from __future__ import annotations

import re
import uuid
from collections.abc import Iterable
from typing import Any

from .errors import ValidationError
from .models import GameEvent, MemoryType

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Maximum length of a derived summary.
SUMMARY_LENGTH: int = 200

#: Maximum number of tags derived from free text.
MAX_DERIVED_TAGS: int = 5

#: Maximum length of a single tag.
MAX_TAG_LENGTH: int = 64

#: Player input shorter than this is not worth remembering ("ok", "yes").
MIN_PLAYER_INPUT_LENGTH: int = 10

MIN_IMPORTANCE: int = 0
MAX_IMPORTANCE: int = 10

#: Namespace for deterministic memory ids.
_ID_NAMESPACE = uuid.UUID("5b0e7d2c-3f4a-4c59-9a57-2f8f0c1d6e11")

#: Event kind -> memory category.  Unknown kinds fall back to CHARACTER_MOMENT.
EVENT_MEMORY_TYPES: dict[str, MemoryType] = {
    "attack": MemoryType.COMBAT_EVENT,
    "combat_start": MemoryType.COMBAT_EVENT,
    "combat_end": MemoryType.COMBAT_EVENT,
    "npc_goal": MemoryType.NPC_INTERACTION,
    "npc_dialogue": MemoryType.NPC_INTERACTION,
    "location_move": MemoryType.LOCATION_DISCOVERY,
    "passive_check": MemoryType.LOCATION_DISCOVERY,
    "spell_cast": MemoryType.CHARACTER_MOMENT,
    "skill_check": MemoryType.CHARACTER_MOMENT,
    "saving_throw": MemoryType.CHARACTER_MOMENT,
    "item_found": MemoryType.ITEM_EVENT,
    "item_used": MemoryType.ITEM_EVENT,
    "plot_point": MemoryType.PLOT_POINT,
    "quest_update": MemoryType.PLOT_POINT,
}

#: Event kinds that are always remembered.
_ALWAYS_REMEMBER = frozenset({
    "npc_goal", "npc_dialogue", "skill_check", "saving_throw", "spell_cast",
    "combat_start", "combat_end", "location_move", "item_found", "item_used",
    "plot_point", "quest_update",
})

#: Detail keys that name participants of an event.
_NAME_KEYS = (
    "character_name", "attacker_name", "target_name", "skill",
    "spell_name", "npc_name", "location_name", "item_name",
)

_PROPER_NOUN_RE = re.compile(r"\b[A-Z][a-z]{2,}\b")

#: Capitalized words that start sentences but are not names.
_NOT_NAMES = frozenset({
    "The", "You", "Your", "They", "Their", "She", "Her", "His", "And", "But",
    "With", "From", "This", "That", "There", "Then", "When", "What", "Where",
    "Turn", "Player",
})


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def classify_event(event: GameEvent) -> MemoryType:
    """Map a gameplay event to a memory category."""
    return EVENT_MEMORY_TYPES.get(event.kind, MemoryType.CHARACTER_MOMENT)


def should_remember_event(event: GameEvent) -> bool:
    """
    Decide whether a mechanical event is notable enough to remember.

    Every dice roll is not a memory: plain misses and ordinary hits are
    skipped; criticals, kills and story-bearing events are kept.
    """
    if event.kind in _ALWAYS_REMEMBER:
        return True
    if event.kind == "passive_check":
        return bool(event.success)
    if event.kind == "attack":
        details = event.details
        return bool(details.get("critical")) or details.get("target_hp_after") == 0
    return False


def event_importance(event: GameEvent) -> int:
    """Importance boost for an event: memorable moments surface more easily."""
    details = event.details
    if details.get("critical"):
        return 3
    if details.get("target_hp_after") == 0:
        return 2
    roll = details.get("roll")
    if roll == 20:
        return 2
    if roll == 1:
        return 1
    if event.kind in ("combat_start", "combat_end"):
        return 1
    return 0


def clamp_importance(value: Any) -> int:
    """Coerce *value* into the [0, 10] importance range."""
    try:
        number = int(value)
    except (TypeError, ValueError):
        return MIN_IMPORTANCE
    return max(MIN_IMPORTANCE, min(MAX_IMPORTANCE, number))


# ---------------------------------------------------------------------------
# Summaries and tags
# ---------------------------------------------------------------------------


def summarize(text: str, max_length: int = SUMMARY_LENGTH) -> str:
    """
    Shorten *text* for previews, cutting at a word boundary.

    Text that already fits is returned stripped and unchanged.
    """
    text = " ".join(text.split())
    if len(text) <= max_length:
        return text
    cut = text[: max_length - 3]
    space = cut.rfind(" ")
    if space > max_length // 2:
        cut = cut[:space]
    return cut.rstrip(" ,;:.") + "..."


def extract_tags(text: str, limit: int = MAX_DERIVED_TAGS) -> list[str]:
    """Pick up to *limit* distinct capitalized words, likely names of people or places."""
    tags: list[str] = []
    for word in _PROPER_NOUN_RE.findall(text):
        if word in _NOT_NAMES or word in tags:
            continue
        tags.append(word)
        if len(tags) == limit:
            break
    return tags


def event_tags(event: GameEvent) -> list[str]:
    """Tags for an event: its kind plus every participant named in its details."""
    tags = [event.kind]
    for key in _NAME_KEYS:
        value = event.details.get(key)
        if isinstance(value, str) and value.strip():
            tag = value.strip()[:MAX_TAG_LENGTH]
            if tag not in tags:
                tags.append(tag)
    return tags


def normalize_tags(tags: Iterable[str] | None) -> frozenset[str]:
    """
    Validate and normalize user-supplied tags.

    Raises ``ValidationError`` for non-string, empty or overlong tags.
    """
    if tags is None:
        return frozenset()
    if isinstance(tags, str):
        raise ValidationError("Tags must be a collection of strings, not a string")
    result = set()
    for tag in tags:
        if not isinstance(tag, str) or not tag.strip():
            raise ValidationError("Tags must be non-empty strings", details={"tag": tag})
        tag = tag.strip()
        if len(tag) > MAX_TAG_LENGTH:
            raise ValidationError(
                f"Tags must be at most {MAX_TAG_LENGTH} characters", details={"tag": tag}
            )
        result.add(tag)
    return frozenset(result)


# ---------------------------------------------------------------------------
# ID generation
# ---------------------------------------------------------------------------


def generate_id() -> str:
    """Return a new unique memory ID."""
    return str(uuid.uuid4())


def stable_memory_id(*parts: Any) -> str:
    """Return an id that is the same every time for the same *parts*."""
    return str(uuid.uuid5(_ID_NAMESPACE, "/".join(str(p) for p in parts)))
