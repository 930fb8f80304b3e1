"""Command line interface for filedrop."""
from __future__ import annotations

import argparse
import asyncio
import logging
import mimetypes
import os
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from rich.logging import RichHandler

from .cli_progress import (
    BatchUploadProgressDisplay,
    console,
    render_configuration_summary,
    render_folder_tree,
    render_items,
    render_sessions,
    render_stats,
)
from .exceptions import FileDropError
from .models import RawItem, UploadConfig
from .orchestrator import FileLibrary
from .services.snapshot import DEFAULT_STORE_DIR, DEFAULT_STORE_FILE
from .utils.formatting import format_file_size, format_megabytes

from . import __version__


class CLIError(RuntimeError):
    """Raised when CLI validation/execution fails."""


def _setup_logging(debug: bool, silent: bool, log_level: Optional[str]) -> str:
    """
    Configure logging.

    Default behavior is silent unless --debug, --log-level or LOG_LEVEL is provided.
    Returns a string describing effective mode.
    """
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    logging.disable(logging.NOTSET)

    env_level = os.getenv("LOG_LEVEL")
    if silent or (not debug and not log_level and not env_level):
        logging.disable(logging.CRITICAL)
        root_logger.setLevel(logging.CRITICAL + 1)
        return "silent"

    if debug:
        level = logging.DEBUG
    else:
        level = getattr(logging, (log_level or env_level or "INFO").upper(), logging.INFO)

    handler = RichHandler(
        console=console,
        rich_tracebacks=True,
        markup=False,
        show_time=False,
        show_path=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    return logging.getLevelName(level)


def _strip_optional_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def _load_env_file(path: Path, override: bool = False) -> None:
    """Load KEY=VALUE lines into os.environ; existing variables win unless override."""
    if not path.exists():
        raise CLIError(f"env file not found: {path}")
    if not path.is_file():
        raise CLIError(f"env path is not a file: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CLIError(f"could not read env file {path}: {exc}") from exc

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key:
            continue
        if override or key not in os.environ:
            os.environ[key] = _strip_optional_quotes(value.strip())


def _resolve_default_env_file() -> Optional[Path]:
    default_env = Path(".env")
    return default_env if default_env.is_file() else None


def _resolve_store_path(store: Optional[Path]) -> Path:
    if store is not None:
        return Path(store).expanduser()
    env_store = os.getenv("FILEDROP_STORE")
    if env_store:
        return Path(env_store).expanduser()
    return DEFAULT_STORE_DIR / DEFAULT_STORE_FILE


def _raw_items_from_paths(paths: Sequence[Path]) -> List[RawItem]:
    """Describe local files as raw upload items (name, size, MIME type, file URL)."""
    raw_items = []
    for path in paths:
        path = Path(path).expanduser()
        if not path.is_file():
            raise CLIError(f"not a file: {path}")
        mime_type, _ = mimetypes.guess_type(path.name)
        raw_items.append(
            RawItem(
                name=path.name,
                size=path.stat().st_size,
                type=mime_type or "application/octet-stream",
                url=path.resolve().as_uri(),
            )
        )
    return raw_items


async def _run_upload(library: FileLibrary, args: argparse.Namespace) -> int:
    raw_items = _raw_items_from_paths(args.paths)
    config = library.pipeline.config

    render_configuration_summary(
        {
            "Files": len(raw_items),
            "Total Size": format_file_size(sum(raw.size for raw in raw_items)),
            "Folder": library.paths.describe(args.folder),
            "Max Size": f"{format_megabytes(config.max_item_size_bytes)}MB",
            "Parallel": config.max_parallel or "unbounded",
            "Store": str(args.store_path),
            "Logging": args.log_mode,
        }
    )

    display = BatchUploadProgressDisplay(live=sys.stdout.isatty())
    pipeline = library.pipeline
    pipeline.on_item_start(display.on_item_start)
    pipeline.on_item_progress(display.on_item_progress)
    pipeline.on_item_complete(display.on_item_complete)
    pipeline.on_item_fail(display.on_item_fail)

    try:
        result = await library.upload_batch(raw_items, args.folder)
    except BaseException:
        display.close()
        raise
    display.on_rejected(result.validation_errors)
    display.on_finish(result)
    return 0 if result.all_success else 1


async def _run_command(args: argparse.Namespace) -> int:
    config = UploadConfig.from_env()
    async with FileLibrary(config=config, store_path=args.store_path) as library:
        if args.command == "upload":
            return await _run_upload(library, args)

        if args.command == "folder":
            action = args.folder_command
            if action == "create":
                folder = await library.create_folder(args.name, args.parent)
                console.print(f"Created [bold]{library.get_folder_path(folder.id)}[/bold] {folder.id}")
            elif action == "rename":
                folder = await library.rename_folder(args.id, args.name)
                console.print(f"Renamed to [bold]{library.get_folder_path(folder.id)}[/bold]")
            elif action == "move":
                folder = await library.move_folder(args.id, args.parent)
                console.print(f"Moved to [bold]{library.get_folder_path(folder.id)}[/bold]")
            elif action == "delete":
                deleted = await library.delete_folder(args.id)
                console.print(f"Deleted {len(deleted)} folder(s)")
            elif action == "toggle":
                folder = await library.toggle_expanded(args.id)
                console.print(f"{folder.name}: {'expanded' if folder.is_expanded else 'collapsed'}")
            elif action == "tree":
                render_folder_tree(library.get_folder_tree(), show_ids=not args.no_ids)
            elif action == "path":
                path = library.get_folder_path(args.id)
                if not path:
                    raise CLIError(f"folder not found: {args.id}")
                console.print(path)
            return 0

        if args.command == "items":
            if args.items_command == "list":
                render_items(
                    library.list_items(folder_id=args.folder, status=args.status),
                    folder_label=library.paths.describe,
                )
            elif args.items_command == "delete":
                item = await library.delete_item(args.id)
                console.print(f"Deleted {item.name}")
            return 0

        if args.command == "stats":
            render_stats(library.stats())
            return 0

        if args.command == "sessions":
            render_sessions(library.list_sessions())
            return 0

    raise CLIError(f"unknown command: {args.command}")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="filedrop",
        description="Organize items into folders and upload batches with progress.",
    )
    parser.add_argument(
        "--store",
        type=Path,
        default=None,
        help=(
            "JSON snapshot file (default from FILEDROP_STORE "
            f"or {DEFAULT_STORE_DIR / DEFAULT_STORE_FILE})"
        ),
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Load environment variables from this .env file",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logs")
    parser.add_argument("--silent", action="store_true", help="Only print errors")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Explicit log level (DEBUG/INFO/WARNING/ERROR)",
    )
    parser.add_argument("--version", action="version", version=f"filedrop {__version__}")

    commands = parser.add_subparsers(dest="command")

    upload = commands.add_parser("upload", help="Upload local files")
    upload.add_argument("paths", nargs="+", type=Path, help="Files to upload")
    upload.add_argument("-f", "--folder", default=None, help="Target folder id (default: root)")

    folder = commands.add_parser("folder", help="Manage folders")
    folder_commands = folder.add_subparsers(dest="folder_command", required=True)
    create = folder_commands.add_parser("create", help="Create a folder")
    create.add_argument("name")
    create.add_argument("-p", "--parent", default=None, help="Parent folder id")
    rename = folder_commands.add_parser("rename", help="Rename a folder")
    rename.add_argument("id")
    rename.add_argument("name")
    move = folder_commands.add_parser("move", help="Move a folder under another (or to root)")
    move.add_argument("id")
    move.add_argument("-p", "--parent", default=None, help="New parent id (omit for root)")
    delete = folder_commands.add_parser("delete", help="Delete a folder and its subfolders")
    delete.add_argument("id")
    toggle = folder_commands.add_parser("toggle", help="Expand or collapse a folder")
    toggle.add_argument("id")
    tree = folder_commands.add_parser("tree", help="Show the folder tree")
    tree.add_argument("--no-ids", action="store_true", help="Hide folder ids")
    path = folder_commands.add_parser("path", help="Show a folder's full path")
    path.add_argument("id")

    items = commands.add_parser("items", help="List or delete items")
    items_commands = items.add_subparsers(dest="items_command", required=True)
    items_list = items_commands.add_parser("list", help="List items")
    items_list.add_argument("-f", "--folder", default=None, help="Only items in this folder")
    items_list.add_argument(
        "-s",
        "--status",
        default=None,
        choices=["uploading", "completed", "failed"],
        help="Only items with this status",
    )
    items_delete = items_commands.add_parser("delete", help="Delete an item")
    items_delete.add_argument("id")

    commands.add_parser("stats", help="Show library totals")
    commands.add_parser("sessions", help="Show upload sessions")
    return parser


def run_cli(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    used_env_file = args.env_file or _resolve_default_env_file()
    if used_env_file is not None:
        try:
            _load_env_file(Path(used_env_file))
        except CLIError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 1

    args.log_mode = _setup_logging(
        debug=args.debug,
        silent=args.silent,
        log_level=args.log_level,
    )

    if args.command is None:
        parser.print_help()
        return 0

    args.store_path = _resolve_store_path(args.store)

    try:
        return asyncio.run(_run_command(args))
    except (CLIError, FileDropError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Cancelled.", file=sys.stderr)
        return 130


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
