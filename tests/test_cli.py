"""Tests for the CLI entry point."""

from __future__ import annotations

import io
import json

import pytest

from lorekeeper.cli import main
from lorekeeper.memory import MemoryManager


@pytest.fixture()
def patched_manager(memory_manager: MemoryManager, monkeypatch) -> MemoryManager:
    """
    Patch MemoryManager.__init__ so the CLI uses our ephemeral in-memory
    store and fake embeddings instead of touching the filesystem.
    """

    def _fake_init(self, **kwargs):
        self.__dict__.update(memory_manager.__dict__)
        if kwargs.get("context_source") is not None:
            self.pipeline.context_source = kwargs["context_source"]

    monkeypatch.setattr(MemoryManager, "__init__", _fake_init)
    return memory_manager


def _add(text: str, *extra: str, campaign: str = "1") -> None:
    assert main(["-c", campaign, "add", "lore", text, *extra]) == 0


class TestCLI:
    def test_count_empty(self, patched_manager, capsys):
        rc = main(["-c", "1", "count"])
        assert rc == 0
        assert capsys.readouterr().out.strip() == "0"

    def test_add_and_count(self, patched_manager, capsys):
        main(["-c", "1", "add", "lore", "The dragon Zephyrax sleeps."])
        out = capsys.readouterr().out
        assert out.startswith("Stored lore memory ")

        main(["-c", "1", "count"])
        assert capsys.readouterr().out.strip() == "1"

    def test_add_reads_stdin(self, patched_manager, capsys, monkeypatch):
        monkeypatch.setattr("sys.stdin", io.StringIO("Text from stdin."))
        assert main(["-c", "1", "add", "lore"]) == 0
        assert patched_manager.get_memories(1)[0].content == "Text from stdin."

    def test_add_missing_text_returns_error(self, patched_manager, capsys, monkeypatch):
        monkeypatch.setattr("sys.stdin", io.StringIO(""))
        rc = main(["-c", "1", "add", "lore"])
        assert rc == 1
        assert "no text" in capsys.readouterr().err

    def test_add_with_options(self, patched_manager, capsys):
        _add("The duke is the traitor.", "--tag", "duke", "--tag", "betrayal",
             "--importance", "7", "--session", "4")
        memory = patched_manager.get_memories(1)[0]
        assert memory.tags == frozenset({"duke", "betrayal"})
        assert memory.importance_boost == 7
        assert memory.session_number == 4

    def test_add_invalid_importance(self, patched_manager, capsys):
        rc = main(["-c", "1", "add", "lore", "Something.", "--importance", "42"])
        assert rc == 1
        assert capsys.readouterr().err.startswith("Error: Importance")

    def test_search_empty(self, patched_manager, capsys):
        rc = main(["-c", "1", "search", "anything"])
        assert rc == 0
        assert "No memories found" in capsys.readouterr().out

    def test_add_and_search(self, patched_manager, capsys):
        _add("The dragon Zephyrax sleeps beneath the mountain.", "--importance", "8")
        capsys.readouterr()
        rc = main(["-c", "1", "search", "dragon treasure"])
        assert rc == 0
        out = capsys.readouterr().out
        assert "Zephyrax" in out
        assert "relevance=" in out

    def test_search_json_output(self, patched_manager, capsys):
        _add("Paris is the capital of France.")
        capsys.readouterr()
        main(["-c", "1", "search", "--json", "capital of France"])
        results = json.loads(capsys.readouterr().out)
        assert isinstance(results, list)
        assert all({"content", "similarity", "relevance"} <= set(r) for r in results)

    def test_search_invalid_n(self, patched_manager, capsys):
        _add("Something.")
        capsys.readouterr()
        assert main(["-c", "1", "search", "-n", "50", "something"]) == 1

    def test_list_empty(self, patched_manager, capsys):
        rc = main(["-c", "1", "list"])
        assert rc == 0
        assert "No memories stored" in capsys.readouterr().out

    def test_add_and_list(self, patched_manager, capsys):
        _add("Something to list.")
        capsys.readouterr()
        rc = main(["-c", "1", "list"])
        assert rc == 0
        assert "Something to list." in capsys.readouterr().out

    def test_list_is_campaign_scoped(self, patched_manager, capsys):
        _add("Campaign two secret.", campaign="2")
        capsys.readouterr()
        main(["-c", "1", "list"])
        assert "No memories stored" in capsys.readouterr().out

    def test_add_and_delete(self, patched_manager, capsys):
        _add("To be deleted via CLI.")
        capsys.readouterr()

        main(["-c", "1", "list", "--json"])
        memories = json.loads(capsys.readouterr().out)
        mem_id = memories[0]["id"]

        rc = main(["-c", "1", "delete", mem_id])
        assert rc == 0
        assert f"Deleted memory {mem_id}." in capsys.readouterr().out

        main(["-c", "1", "count"])
        assert capsys.readouterr().out.strip() == "0"

    def test_delete_other_campaign(self, patched_manager, capsys):
        memory = patched_manager.add_memory(2, "lore", "Belongs to campaign two.")
        rc = main(["-c", "1", "delete", memory.id])
        assert rc == 1
        assert "does not belong" in capsys.readouterr().err
        assert patched_manager.get_memory_count(2) == 1

    def test_delete_unknown(self, patched_manager, capsys):
        assert main(["-c", "1", "delete", "missing"]) == 1
        assert "not found" in capsys.readouterr().err

    def test_importance(self, patched_manager, capsys):
        memory = patched_manager.add_memory(1, "lore", "Important lore.")
        rc = main(["-c", "1", "importance", memory.id, "6"])
        assert rc == 0
        assert "importance set to 6" in capsys.readouterr().out
        assert patched_manager.get_memory(memory.id, 1).importance_boost == 6

    def test_init_from_context_file(self, patched_manager, capsys, tmp_path):
        path = tmp_path / "context.json"
        path.write_text(json.dumps([
            {"id": "npc-1", "campaign_id": 1, "entry_type": "npc", "title": "Mira", "content": "A smuggler."},
            {"id": "loc-1", "campaign_id": 1, "entry_type": "location", "title": "Port", "content": "Busy."},
        ]))
        rc = main(["-c", "1", "init", "--context-file", str(path)])
        assert rc == 0
        assert "Embedded 2 context entries (0 already remembered, 0 failed)." in capsys.readouterr().out

        main(["-c", "1", "init", "--context-file", str(path)])
        assert "Embedded 0 context entries (2 already remembered" in capsys.readouterr().out

    def test_invalid_env_config(self, patched_manager, capsys, monkeypatch):
        monkeypatch.setenv("LOREKEEPER_TOP_K", "0")
        assert main(["-c", "1", "count"]) == 1
        assert capsys.readouterr().err.startswith("Error:")

    def test_campaign_required(self, patched_manager):
        with pytest.raises(SystemExit):
            main(["count"])
