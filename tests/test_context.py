"""Tests for narrator context formatting and the context sources."""

from __future__ import annotations

import json

import pytest

from lorekeeper.context import HEADER, format_memories_for_context
from lorekeeper.errors import ValidationError
from lorekeeper.models import ContextEntry, Memory, MemoryType, SearchHit
from lorekeeper.sources import InMemoryContextSource, JsonContextSource


def _hit(content: str, memory_type=MemoryType.LORE, session=None, relevance=50) -> SearchHit:
    memory = Memory(
        id="m",
        campaign_id=1,
        memory_type=memory_type,
        content=content,
        embedding=(1.0,),
        session_number=session,
    )
    return SearchHit(memory=memory, similarity=relevance, relevance=relevance, cosine=relevance / 100)


class TestFormatMemoriesForContext:
    def test_empty(self):
        assert format_memories_for_context([]) == ""

    def test_contains_header_and_content(self):
        text = format_memories_for_context([_hit("The bridge is out.")])
        assert HEADER in text
        assert "The bridge is out." in text

    def test_numbering_type_session_and_relevance(self):
        text = format_memories_for_context(
            [
                _hit("First.", MemoryType.PLOT_POINT, session=2, relevance=81),
                _hit("Second.", MemoryType.NPC_INTERACTION, relevance=44),
            ]
        )
        assert "[Memory 1 - plot point (Session 2) - 81% relevant]" in text
        assert "[Memory 2 - npc interaction - 44% relevant]" in text
        assert text.index("First.") < text.index("Second.")


class TestInMemoryContextSource:
    def test_scoped_by_campaign(self):
        source = InMemoryContextSource(
            [
                ContextEntry(id="a", campaign_id=1, entry_type="npc", title="Mira", content="x"),
                ContextEntry(id="b", campaign_id=2, entry_type="npc", title="Olek", content="y"),
            ]
        )
        assert [e.id for e in source.list_entries(1)] == ["a"]
        assert source.list_entries(3) == []

    def test_add_replaces_same_id(self):
        source = InMemoryContextSource()
        source.add(ContextEntry(id="a", campaign_id=1, entry_type="npc", title="", content="old"))
        source.add(ContextEntry(id="a", campaign_id=1, entry_type="npc", title="", content="new"))
        assert [e.content for e in source.list_entries(1)] == ["new"]


class TestJsonContextSource:
    def test_reads_list(self, tmp_path):
        path = tmp_path / "context.json"
        path.write_text(json.dumps([
            {"id": "e1", "campaign_id": 1, "entry_type": "location", "title": "Port", "content": "Busy."},
            {"id": "e2", "campaign_id": 2, "content": "Elsewhere."},
        ]))
        entries = JsonContextSource(path).list_entries(1)
        assert [e.id for e in entries] == ["e1"]
        assert entries[0].entry_type == "location"

    def test_reads_entries_object(self, tmp_path):
        path = tmp_path / "context.json"
        path.write_text(json.dumps({"entries": [{"id": "e1", "campaign_id": 1, "content": "x"}]}))
        assert len(JsonContextSource(path).list_entries(1)) == 1

    def test_missing_file(self, tmp_path):
        with pytest.raises(ValidationError, match="not found"):
            JsonContextSource(tmp_path / "nope.json").list_entries(1)

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "context.json"
        path.write_text("{not json")
        with pytest.raises(ValidationError, match="not valid JSON"):
            JsonContextSource(path).list_entries(1)

    def test_malformed_entry(self, tmp_path):
        path = tmp_path / "context.json"
        path.write_text(json.dumps([{"id": "e1", "campaign_id": 1}]))
        with pytest.raises(ValidationError, match="Malformed"):
            JsonContextSource(path).list_entries(1)

    def test_wrong_top_level_type(self, tmp_path):
        path = tmp_path / "context.json"
        path.write_text(json.dumps("entries"))
        with pytest.raises(ValidationError):
            JsonContextSource(path).list_entries(1)

    def test_non_string_tag(self, tmp_path):
        path = tmp_path / "context.json"
        path.write_text(json.dumps([{"id": "e1", "campaign_id": 1, "content": "Runs the docks.", "tags": [3]}]))
        with pytest.raises(ValidationError, match="Malformed"):
            JsonContextSource(path).list_entries(1)
