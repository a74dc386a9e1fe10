"""
Campaign context stores that feed the bulk re-sync.

A context source only has to answer ``list_entries(campaign_id)``.  Each
entry's ``id`` must stay stable across calls; it is how re-sync knows an
entry is already remembered.
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any, Protocol

from .errors import ValidationError
from .models import ContextEntry


class ContextSource(Protocol):
    def list_entries(self, campaign_id: int) -> list[ContextEntry]: ...


class InMemoryContextSource:
    """Context entries held in a dict, keyed by campaign."""

    def __init__(self, entries: list[ContextEntry] | None = None) -> None:
        self._entries: dict[int, dict[str, ContextEntry]] = {}
        self._lock = threading.Lock()
        for entry in entries or []:
            self.add(entry)

    def add(self, entry: ContextEntry) -> None:
        with self._lock:
            self._entries.setdefault(entry.campaign_id, {})[entry.id] = entry

    def list_entries(self, campaign_id: int) -> list[ContextEntry]:
        with self._lock:
            return list(self._entries.get(campaign_id, {}).values())


class JsonContextSource:
    """
    Context entries read from a JSON file.

    The file holds either a list of entry objects or ``{"entries": [...]}``.
    Each object needs ``id``, ``campaign_id`` and ``content``; ``entry_type``,
    ``title`` and ``tags`` are optional.  The file is re-read on every call.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def list_entries(self, campaign_id: int) -> list[ContextEntry]:
        return [e for e in self._load() if e.campaign_id == campaign_id]

    def _load(self) -> list[ContextEntry]:
        try:
            data: Any = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise ValidationError(f"Context file not found: {self.path}") from exc
        except json.JSONDecodeError as exc:
            raise ValidationError(f"Context file is not valid JSON: {exc}") from exc

        if isinstance(data, dict):
            data = data.get("entries", [])
        if not isinstance(data, list):
            raise ValidationError("Context file must contain a list of entries")
        try:
            return [ContextEntry.from_dict(item) for item in data]
        except (KeyError, TypeError, ValueError) as exc:
            raise ValidationError(f"Malformed context entry: {exc}") from exc
