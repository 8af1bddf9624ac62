#!/usr/bin/env python3
"""Storehouse CLI for inspecting and cleaning up the backing stores."""

import argparse
import asyncio
import json
from contextlib import aclosing

import questionary
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from storehouse.app import Storehouse, create_app
from storehouse.config import Config
from storehouse.kv.keys import key_path
from storehouse.log import configure_logging

console = Console()


def _preview(value, width: int = 80) -> str:
    text = json.dumps(value, default=str)
    if len(text) > width:
        text = text[: width - 3] + "..."
    return escape(text)


def _path(key) -> str:
    return escape("/".join(key))


async def ping(app: Storehouse) -> None:
    """Connect to every configured store and report the result."""
    async with app.running():
        console.print(f"[green]Key-value store OK[/] ({app.config.kv.namespace})")
        if app.mongodb is None:
            console.print("[dim]MongoDB not configured (DB_HOST unset).[/]")
        else:
            console.print(f"[green]MongoDB OK[/] ({app.config.mongodb.database})")


async def kv_list(app: Storehouse, segments: list[str], limit: int) -> None:
    """List key-value entries under a key prefix."""
    async with app.running():
        table = Table(title=f"Entries under {_path(segments) or '(all)'}")
        table.add_column("Key")
        table.add_column("Versionstamp", style="dim")
        table.add_column("Value")
        count = 0
        entries = app.kv.client().list(segments)
        async with aclosing(entries):
            async for entry in entries:
                table.add_row(_path(entry.key), entry.versionstamp, _preview(entry.value))
                count += 1
                if count >= limit:
                    break
        console.print(table)


async def kv_delete(app: Storehouse, segments: list[str]) -> None:
    """Delete a single key-value entry after confirmation."""
    path = key_path(segments)
    async with app.running():
        store = app.kv.client()
        entry = await store.get(path)
        if entry is None:
            console.print(f"[red]No entry at {_path(path)}.[/]")
            return

        console.print(f"[yellow]Will delete [bold]{_path(path)}[/]: {_preview(entry.value)}[/]")
        console.print(
            "[dim]Secondary keys that point at this record are not touched; "
            "delete through the repository to keep indexes consistent.[/]"
        )
        if not questionary.confirm("Proceed with this change?").ask():
            console.print("[dim]Cancelled.[/]")
            return

        result = await store.atomic().check(path, entry.versionstamp).delete(path).commit()
        if result.ok:
            console.print(f"[green]Deleted {_path(path)}.[/]")
        else:
            console.print("[red]Entry changed concurrently; nothing deleted.[/]")


async def mongo_list(app: Storehouse, collection: str, limit: int) -> None:
    """List documents of a MongoDB collection."""
    async with app.running():
        if app.mongodb is None:
            console.print("[red]MongoDB not configured (DB_HOST unset).[/]")
            return
        documents = await app.mongodb.get_collection(collection).find({}).to_list(length=limit)
        table = Table(title=f"{collection} ({len(documents)} shown)")
        table.add_column("_id")
        table.add_column("Document")
        for document in documents:
            object_id = document.pop("_id")
            table.add_row(str(object_id), _preview(document))
        console.print(table)


async def mongo_purge(app: Storehouse, collection: str) -> None:
    """Delete every document of a MongoDB collection after confirmation."""
    async with app.running():
        if app.mongodb is None:
            console.print("[red]MongoDB not configured (DB_HOST unset).[/]")
            return
        documents = app.mongodb.get_collection(collection)
        total = await documents.count_documents({})
        console.print(f"[yellow]Will delete all {total} documents from [bold]{collection}[/].[/]")
        if not questionary.confirm("Proceed with these changes?").ask():
            console.print("[dim]Cancelled.[/]")
            return

        result = await documents.delete_many({})
        console.print(f"[green]Deleted {result.deleted_count} documents from {collection}.[/]")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Storehouse CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("ping", help="Check store connections")

    kv_list_parser = subparsers.add_parser("kv-list", help="List key-value entries by prefix")
    kv_list_parser.add_argument("segments", nargs="*", help="Key prefix segments")
    kv_list_parser.add_argument("--limit", type=int, default=50)

    kv_delete_parser = subparsers.add_parser("kv-delete", help="Delete one key-value entry")
    kv_delete_parser.add_argument("segments", nargs="+", help="Key segments")

    mongo_list_parser = subparsers.add_parser("mongo-list", help="List documents in a collection")
    mongo_list_parser.add_argument("collection")
    mongo_list_parser.add_argument("--limit", type=int, default=50)

    mongo_purge_parser = subparsers.add_parser("mongo-purge", help="Delete all documents")
    mongo_purge_parser.add_argument("collection")

    args = parser.parse_args(argv)

    config = Config.from_env()
    configure_logging(config.log_level)
    app = create_app(config)

    if args.command == "ping":
        asyncio.run(ping(app))
    elif args.command == "kv-list":
        asyncio.run(kv_list(app, args.segments, args.limit))
    elif args.command == "kv-delete":
        asyncio.run(kv_delete(app, args.segments))
    elif args.command == "mongo-list":
        asyncio.run(mongo_list(app, args.collection, args.limit))
    elif args.command == "mongo-purge":
        asyncio.run(mongo_purge(app, args.collection))


if __name__ == "__main__":
    main()
