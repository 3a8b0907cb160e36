"""
CLI utility for memory store management.

Usage:
    rag-memory entities
    rag-memory stats <entity>
    rag-memory list <entity> --limit 10
    rag-memory export <entity> -o backup.json
    rag-memory import <entity> backup.json --merge
    rag-memory delete <entity> <memory-id>
    rag-memory clear <entity> --yes
    rag-memory --db data/memories.db entities
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from rag_memory.errors import RagMemoryError
from rag_memory.memory.composer import truncate_summary
from rag_memory.memory.host import format_time_ago
from rag_memory.memory.store import DEFAULT_STORAGE_DIR, MemoryStore
from rag_memory.persist.backends import JsonFileBackend, SqliteBackend


def build_store(args: argparse.Namespace) -> MemoryStore:
    """MemoryStore over the SQLite file from --db, else JSON files."""
    if args.db:
        return MemoryStore(backend=SqliteBackend(args.db))
    return MemoryStore(backend=JsonFileBackend(args.storage_dir))


async def _exists(store: MemoryStore, entity_id: str) -> bool:
    return await asyncio.to_thread(store.backend.read, entity_id) is not None


async def list_entities(store: MemoryStore, args: argparse.Namespace) -> int:
    entities = store.list_entities()
    if not entities:
        print("No memory stores found")
        return 0

    print(f"{'Entity':<30} {'Count':>8} {'Updated':>20}")
    print("=" * 60)
    for entity_id in entities:
        stats = await store.stats(entity_id)
        print(f"{entity_id:<30} {stats.count:>8,} {format_time_ago(stats.updated_at):>20}")
    return 0


async def show_stats(store: MemoryStore, args: argparse.Namespace) -> int:
    if not await _exists(store, args.entity):
        print(f"❌ No memory store for {args.entity}")
        return 1

    stats = await store.stats(args.entity)
    print(f"📊 Memory Statistics: {args.entity}\n")
    print(f"   Name:      {stats.entity_name or '-'}")
    print(f"   Memories:  {stats.count:,}")
    print(f"   Created:   {stats.created_at}")
    print(f"   Updated:   {stats.updated_at} ({format_time_ago(stats.updated_at)})")
    print(f"   Oldest:    {stats.oldest_ts or '-'}")
    print(f"   Newest:    {stats.newest_ts or '-'}")
    return 0


async def list_memories(store: MemoryStore, args: argparse.Namespace) -> int:
    if not await _exists(store, args.entity):
        print(f"❌ No memory store for {args.entity}")
        return 1

    memories = await store.get_all(args.entity)
    if not memories:
        print("No memories stored yet")
        return 0

    # Newest first
    ordered = sorted(memories, key=lambda m: m.timestamp, reverse=True)
    if args.limit:
        ordered = ordered[:args.limit]

    for memory in ordered:
        print(f"[{format_time_ago(memory.timestamp)}] [{memory.role}] {memory.id}")
        print(f"   {memory.summary}")
        print(f"   > {truncate_summary(memory.original_message)}")
        print()

    print(f"Showing {len(ordered)} of {len(memories)} memories")
    return 0


async def export_memories(store: MemoryStore, args: argparse.Namespace) -> int:
    if not await _exists(store, args.entity):
        print(f"❌ No memory store for {args.entity}")
        return 1

    payload = await store.export(args.entity)
    if args.output:
        Path(args.output).write_text(payload, encoding="utf-8")
        print(f"✅ Exported {args.entity} to {args.output}")
    else:
        print(payload)
    return 0


async def import_memories(store: MemoryStore, args: argparse.Namespace) -> int:
    path = Path(args.file)
    if not path.exists():
        print(f"❌ File not found: {path}")
        return 1

    try:
        count = await store.import_memories(args.entity, path.read_bytes(), merge=args.merge)
    except RagMemoryError as e:
        print(f"❌ Import failed: {e}")
        return 1

    print(f"✅ Imported {count} memories into {args.entity}")
    return 0


async def delete_memory(store: MemoryStore, args: argparse.Namespace) -> int:
    try:
        deleted = await store.delete(args.entity, args.memory_id)
    except RagMemoryError as e:
        print(f"❌ Delete failed: {e}")
        return 1

    if not deleted:
        print(f"❌ Memory not found: {args.memory_id}")
        return 1

    print(f"🗑️  Deleted {args.memory_id}")
    return 0


async def clear_memories(store: MemoryStore, args: argparse.Namespace) -> int:
    if not args.yes:
        print(f"❌ Refusing to clear {args.entity} without --yes")
        return 1

    try:
        await store.clear(args.entity)
    except RagMemoryError as e:
        print(f"❌ Clear failed: {e}")
        return 1

    print(f"✅ Cleared all memories for {args.entity}")
    return 0


COMMANDS = {
    "entities": list_entities,
    "stats": show_stats,
    "list": list_memories,
    "export": export_memories,
    "import": import_memories,
    "delete": delete_memory,
    "clear": clear_memories,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rag-memory",
        description="Manage long-term memory stores (inspect, export, import, delete)",
    )
    parser.add_argument(
        "--storage-dir",
        type=Path,
        default=DEFAULT_STORAGE_DIR,
        help=f"JSON memory directory (default: {DEFAULT_STORAGE_DIR})",
    )
    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="Use a SQLite memory database instead of JSON files",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("entities", help="List entities with stored memories")

    p = sub.add_parser("stats", help="Show store statistics")
    p.add_argument("entity")

    p = sub.add_parser("list", help="List memories, newest first")
    p.add_argument("entity")
    p.add_argument("--limit", type=int, default=20, help="Max memories to show (0 = all)")

    p = sub.add_parser("export", help="Export a store as JSON")
    p.add_argument("entity")
    p.add_argument("-o", "--output", help="Output file (default: stdout)")

    p = sub.add_parser("import", help="Import memories from an exported file")
    p.add_argument("entity")
    p.add_argument("file")
    p.add_argument("--merge", action="store_true", help="Keep existing memories, add unseen ids")

    p = sub.add_parser("delete", help="Delete one memory")
    p.add_argument("entity")
    p.add_argument("memory_id")

    p = sub.add_parser("clear", help="Delete all memories of an entity")
    p.add_argument("entity")
    p.add_argument("--yes", action="store_true", help="Confirm")

    return parser


async def run(args: argparse.Namespace) -> int:
    store = build_store(args)
    try:
        return await COMMANDS[args.command](store, args)
    finally:
        close = getattr(store.backend, "close", None)
        if close is not None:
            close()


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entrypoint."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        print("\n❌ Error: Must specify a command")
        return 1

    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
