"""
Command-line interface for lorekeeper.

Sub-commands
------------
add        – Add a memory to a campaign.
search     – Retrieve the memories most relevant to a query.
list       – List a campaign's memories.
delete     – Delete a memory by its ID.
importance – Set a memory's importance boost (0-10).
count      – Print the number of memories in a campaign.
init       – Embed the campaign's context entries not yet remembered.
"""

from __future__ import annotations

import argparse
import json
import sys

from .config import MAX_TOP_K, Settings
from .errors import LorekeeperError
from .log import configure_logging
from .memory import MemoryManager
from .models import MemoryType
from .sources import JsonContextSource


def _build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lorekeeper",
        description="Long-term campaign memory for an AI narrator.",
    )
    parser.add_argument(
        "--db",
        default=settings.db_path,
        metavar="PATH",
        help=f"Path to the ChromaDB persistent store (default: {settings.db_path}).",
    )
    parser.add_argument(
        "--collection",
        default=settings.collection_name,
        metavar="NAME",
        help=f"ChromaDB collection name (default: {settings.collection_name}).",
    )
    parser.add_argument(
        "-c",
        "--campaign",
        type=int,
        required=True,
        metavar="ID",
        help="Campaign the command operates on.",
    )

    sub = parser.add_subparsers(dest="command", required=True)
    type_choices = [t.value for t in MemoryType]

    # add
    p_add = sub.add_parser("add", help="Add a memory.")
    p_add.add_argument("type", help=f"Memory type ({', '.join(type_choices)}).")
    p_add.add_argument("text", nargs="?", help="Text to remember (reads stdin if omitted).")
    p_add.add_argument("--summary", default=None, help="Optional short summary.")
    p_add.add_argument("--tag", action="append", dest="tags", default=None, help="Tag (repeatable).")
    p_add.add_argument(
        "--importance",
        type=int,
        default=0,
        metavar="0-10",
        help="Importance boost (default: 0).",
    )
    p_add.add_argument("--session", type=int, default=None, help="Session number.")
    p_add.add_argument("--turn", type=int, default=None, help="Turn number.")

    # search
    p_search = sub.add_parser("search", help="Search memories.")
    p_search.add_argument("query", help="Natural-language query.")
    p_search.add_argument(
        "-n",
        type=int,
        default=settings.top_k,
        metavar="N",
        help=f"Number of results, 1-{MAX_TOP_K} (default: {settings.top_k}).",
    )
    p_search.add_argument("--type", action="append", dest="types", default=None,
                          help="Only search this memory type (repeatable).")
    p_search.add_argument("--json", action="store_true", dest="as_json", help="Output as JSON.")

    # list
    p_list = sub.add_parser("list", help="List memories, newest first.")
    p_list.add_argument(
        "--limit",
        type=int,
        default=100,
        metavar="N",
        help="Maximum number of memories to show (default: 100).",
    )
    p_list.add_argument("--type", action="append", dest="types", default=None,
                        help="Only list this memory type (repeatable).")
    p_list.add_argument("--json", action="store_true", dest="as_json", help="Output as JSON.")

    # delete
    p_delete = sub.add_parser("delete", help="Delete a memory by ID.")
    p_delete.add_argument("id", help="Memory ID to delete.")

    # importance
    p_importance = sub.add_parser("importance", help="Set a memory's importance boost.")
    p_importance.add_argument("id", help="Memory ID.")
    p_importance.add_argument("value", type=int, help="Importance boost, 0-10.")

    # count
    sub.add_parser("count", help="Print the number of memories in the campaign.")

    # init
    p_init = sub.add_parser("init", help="Embed context entries not yet remembered.")
    p_init.add_argument(
        "--context-file",
        default=settings.context_file,
        metavar="PATH",
        help="JSON file of campaign context entries.",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    try:
        settings = Settings.from_env()
    except LorekeeperError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1
    parser = _build_parser(settings)
    args = parser.parse_args(argv)
    configure_logging(settings.log_level, settings.log_json)

    context_file = getattr(args, "context_file", None)
    try:
        manager = MemoryManager(
            db_path=args.db,
            collection_name=args.collection,
            embedding_provider=settings.embedding_provider,
            embedding_model=settings.embedding_model,
            embedding_dim=settings.embedding_dim,
            embed_timeout=settings.embed_timeout,
            top_k=settings.top_k,
            min_score=settings.min_score,
            context_source=JsonContextSource(context_file) if context_file else None,
        )
        return _run(manager, args)
    except LorekeeperError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1


def _run(manager: MemoryManager, args: argparse.Namespace) -> int:
    campaign = args.campaign

    if args.command == "add":
        text = args.text
        if text is None:
            text = sys.stdin.read()
        if not text.strip():
            print("Error: no text provided.", file=sys.stderr)
            return 1
        memory = manager.add_memory(
            campaign,
            args.type,
            text,
            summary=args.summary,
            tags=args.tags,
            importance_boost=args.importance,
            session_number=args.session,
            turn_number=args.turn,
        )
        print(f"Stored {memory.memory_type.value} memory {memory.id}")

    elif args.command == "search":
        hits = manager.search_memories(campaign, args.query, top_k=args.n, memory_types=args.types)
        if not hits:
            print("No memories found.")
            return 0
        if args.as_json:
            print(json.dumps([h.to_dict() for h in hits], indent=2))
        else:
            for i, hit in enumerate(hits, 1):
                m = hit.memory
                print(f"[{i}] {m.memory_type.label} (relevance={hit.relevance}%, "
                      f"similarity={hit.similarity}%, importance={m.importance_boost})")
                print(f"    {m.content[:200]}")
                print(f"    id={m.id}")
                print()

    elif args.command == "list":
        memories = manager.get_memories(campaign, memory_types=args.types)[: args.limit]
        if not memories:
            print("No memories stored.")
            return 0
        if args.as_json:
            print(json.dumps([m.to_dict() for m in memories], indent=2))
        else:
            for m in memories:
                session = f" session={m.session_number}" if m.session_number is not None else ""
                print(f"id={m.id} type={m.memory_type.value}{session} importance={m.importance_boost}")
                print(f"    {(m.summary or m.content)[:120]}")
                print()

    elif args.command == "delete":
        manager.delete_memory(args.id, campaign)
        print(f"Deleted memory {args.id}.")

    elif args.command == "importance":
        manager.update_memory_importance(args.id, campaign, args.value)
        print(f"Memory {args.id} importance set to {args.value}.")

    elif args.command == "count":
        print(manager.get_memory_count(campaign))

    elif args.command == "init":
        report = manager.initialize_memories(campaign)
        print(f"Embedded {report.embedded} context entries "
              f"({report.skipped} already remembered, {report.failed} failed).")

    return 0


if __name__ == "__main__":
    sys.exit(main())
