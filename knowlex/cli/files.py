"""Project-file management CLI.

Uses the same component wiring as the API server (``build_components``)
against the configured database and storage directory.  Work enqueued by a
command is only processed while the command runs, so ``--wait`` keeps the
process alive until the queue drains.  Without it, the command still waits
for the tasks that already started (up to ``queue_max_concurrent`` files)
before exiting; the rest stay ``pending`` until the next server start or
``process`` run.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Any

from knowlex.config.loader import load_config
from knowlex.config.settings import Settings
from knowlex.main import build_components, start_components
from knowlex.models.pipeline import PipelineEvent, PipelineEventType
from knowlex.models.project_file import ProjectFile, UploadedFile
from knowlex.utils.errors import KnowlexError
from knowlex.utils.logging import configure_logging


def _format_file(project_file: ProjectFile) -> str:
    line = (
        f"  {project_file.id}  {project_file.status.value:<10}  "
        f"{project_file.chunk_count:>5} chunks  {project_file.size:>10} B  "
        f"{project_file.filename}"
    )
    if project_file.error:
        line += f"\n      error: {project_file.error}"
    return line


def _print_event(event: PipelineEvent) -> None:
    if event.event_type == PipelineEventType.FILE_STATUS_CHANGED and event.status:
        print(f"  {event.file_id}: {event.status.value}")
    elif event.event_type == PipelineEventType.TASK_FAILED:
        print(f"  {event.file_id}: {event.error}", file=sys.stderr)


async def _wait_for_queue(components: dict[str, Any]) -> None:
    components["broadcaster"].register_listener(_print_event)
    try:
        await components["queue"].join()
    finally:
        components["broadcaster"].unregister_listener(_print_event)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


async def _handle_upload(args: argparse.Namespace, components: dict[str, Any]) -> int:
    service = components["file_service"]
    uploads: list[UploadedFile] = []
    for raw_path in args.files:
        path = Path(raw_path)
        if not path.is_file():
            print(f"Error: {path} is not a file", file=sys.stderr)
            return 1
        uploads.append(UploadedFile(name=path.name, content=path.read_bytes()))

    created = await service.upload_project_files(args.project, uploads)
    print(f"Uploaded {len(created)} file(s) to project {args.project}:")
    for project_file in created:
        print(_format_file(project_file))

    if args.wait:
        print("\nProcessing...")
        await _wait_for_queue(components)
        print("\nFinal status:")
        failed = 0
        for project_file in created:
            current = await service.get_project_file(project_file.id)
            failed += current.error is not None
            print(_format_file(current))
        return 1 if failed else 0
    return 0


async def _handle_list(args: argparse.Namespace, components: dict[str, Any]) -> int:
    files = await components["file_service"].list_project_files(args.project)
    if not files:
        print(f"No files in project {args.project}.")
        return 0
    print(f"Project {args.project}: {len(files)} file(s)")
    for project_file in files:
        print(_format_file(project_file))
    return 0


async def _handle_retry(args: argparse.Namespace, components: dict[str, Any]) -> int:
    service = components["file_service"]
    project_file = await service.retry_file_processing(args.file_id)
    print(f"Retrying {project_file.filename} ({project_file.id})")
    if args.wait:
        await _wait_for_queue(components)
        current = await service.get_project_file(args.file_id)
        print(_format_file(current))
        return 1 if current.error else 0
    return 0


async def _handle_delete(args: argparse.Namespace, components: dict[str, Any]) -> int:
    await components["file_service"].delete_project_file(args.file_id)
    print(f"Deleted {args.file_id}")
    return 0


async def _handle_process(args: argparse.Namespace, components: dict[str, Any]) -> int:
    count = await components["file_service"].reconcile_pending_files()
    print(f"Processing {count} pending file(s)...")
    await _wait_for_queue(components)
    print("Done.")
    return 0


_HANDLERS = {
    "upload": _handle_upload,
    "list": _handle_list,
    "retry": _handle_retry,
    "delete": _handle_delete,
    "process": _handle_process,
}


async def _run_command(args: argparse.Namespace, app_settings: Settings) -> int:
    # Reconciliation is opt-in here; only "process" drains stranded files.
    app_settings = app_settings.model_copy(update={"reconcile_on_startup": False})
    components = build_components(app_settings, load_config(settings=app_settings))
    await start_components(components)
    try:
        return await _HANDLERS[args.command](args, components)
    except KnowlexError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1
    finally:
        await components["queue"].shutdown()


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the file CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m knowlex.cli",
        description="Manage Knowlex project files.",
    )
    subparsers = parser.add_subparsers(dest="command", help="File commands")

    # -- upload --
    upload_parser = subparsers.add_parser("upload", help="Upload files to a project")
    upload_parser.add_argument("--project", required=True, help="Project id")
    upload_parser.add_argument("files", nargs="+", help="Paths of files to upload")
    upload_parser.add_argument(
        "--wait", action="store_true", help="Wait until processing finishes"
    )

    # -- list --
    list_parser = subparsers.add_parser("list", help="List a project's files")
    list_parser.add_argument("--project", required=True, help="Project id")

    # -- retry --
    retry_parser = subparsers.add_parser("retry", help="Re-process a failed file")
    retry_parser.add_argument("file_id", help="File id")
    retry_parser.add_argument(
        "--wait", action="store_true", help="Wait until processing finishes"
    )

    # -- delete --
    delete_parser = subparsers.add_parser("delete", help="Delete a file and its chunks")
    delete_parser.add_argument("file_id", help="File id")

    # -- process --
    subparsers.add_parser("process", help="Process all pending files and exit")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def run(argv: list[str] | None = None) -> int:
    """Parse *argv*, run the command and return its exit code."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    app_settings = Settings()
    configure_logging(
        log_level=app_settings.log_level,
        json_output=(app_settings.app_env == "production"),
        quiet_loggers=app_settings.log_quiet_loggers,
    )
    return asyncio.run(_run_command(args, app_settings))


def main() -> None:
    """CLI entry point."""
    sys.exit(run())
