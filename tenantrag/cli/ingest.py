"""Standalone CLI for running tenantrag jobs without the web server.

Usage::

    python -m tenantrag.cli ingest --tenant acme --file ./handbook.pdf

    python -m tenantrag.cli train --agent agent-1

    python -m tenantrag.cli ask --agent agent-1 --question "What is the refund policy?"

    python -m tenantrag.cli delete --document 6f1c...

    python -m tenantrag.cli status --document 6f1c...

Jobs run in the foreground through the same job runner the API uses, so
a failing job leaves the document in ``error`` exactly as it would when
queued from an HTTP request.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import uuid
from pathlib import Path
from typing import Any

from tenantrag.config.settings import Settings
from tenantrag.interfaces.blob_storage import build_blob_path
from tenantrag.models.chat import ChatRequest
from tenantrag.models.document import Document, SourceKind
from tenantrag.models.job import EventKind, IngestionEvent
from tenantrag.services.ingestion.text_extractor import FileFormat
from tenantrag.utils.errors import TenantRAGError

_CONTENT_TYPES: dict[FileFormat, str] = {
    FileFormat.PDF: "application/pdf",
    FileFormat.DOCX: "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    FileFormat.XLSX: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    FileFormat.CSV: "text/csv",
    FileFormat.TXT: "text/plain",
    FileFormat.JSON: "application/json",
}


def _detect_format(path: Path, explicit: str | None) -> FileFormat:
    """Resolve the file format from ``--type`` or the file suffix."""
    tag = (explicit or path.suffix.lstrip(".")).lower()
    try:
        return FileFormat(tag)
    except ValueError:
        supported = ", ".join(f.value for f in FileFormat)
        raise SystemExit(f"Unsupported file type '{tag}'. Supported: {supported}") from None


async def _open(app_settings: Settings) -> dict[str, Any]:
    # Deferred so --help does not pay for chromadb and the provider SDKs.
    from tenantrag.main import build_components

    components = build_components(app_settings)
    await components["repository"].initialize()
    return components


async def _close(components: dict[str, Any]) -> None:
    from tenantrag.main import close_components

    await close_components(components)


# ---------------------------------------------------------------------------
# Subcommand handlers
# ---------------------------------------------------------------------------


async def _handle_ingest(args: argparse.Namespace, components: dict[str, Any]) -> int:
    """Store a local file and run its ingestion job."""
    path = Path(args.file)
    if not path.is_file():
        print(f"Error: file not found: {path}", file=sys.stderr)
        return 1

    file_format = _detect_format(path, args.type)
    data = path.read_bytes()
    storage_path = build_blob_path(args.tenant, path.name)
    await components["blob_storage"].upload(
        storage_path, data, content_type=_CONTENT_TYPES[file_format]
    )

    document = await components["repository"].create_document(
        Document(
            document_id=str(uuid.uuid4()),
            tenant_id=args.tenant,
            name=path.name,
            source_kind=SourceKind(file_format.value),
            size=len(data),
            storage_path=storage_path,
        )
    )
    print(f"Ingesting {path.name} ({len(data)} bytes) as {document.document_id}")

    event = IngestionEvent(
        kind=EventKind.FILE,
        tenant_id=args.tenant,
        document_id=document.document_id,
        file_name=path.name,
        file_type=file_format.value,
        storage_path=storage_path,
    )
    result = await components["job_runner"].dispatch(event)

    print("\nIngestion complete:")
    print(f"  Namespace:      {result.namespace}")
    print(f"  Chunks created: {result.chunks_created}")
    print(f"  Vectors:        {result.vectors_uploaded}")
    print(f"  Failed chunks:  {len(result.failed_chunks)}")
    print(f"  Time:           {result.elapsed_seconds:.2f}s")
    return 0


async def _handle_train(args: argparse.Namespace, components: dict[str, Any]) -> int:
    """Train an agent on its ready documents."""
    agent = await components["repository"].get_agent(args.agent)
    event = IngestionEvent(
        kind=EventKind.AGENT_TRAIN,
        tenant_id=agent.tenant_id,
        agent_id=agent.agent_id,
        agent_name=agent.name,
        document_ids=args.documents or [],
    )
    result = await components["job_runner"].dispatch(event)

    print(f"Agent '{agent.name}' trained:")
    print(f"  Namespace:      {result.namespace}")
    print(f"  Documents used: {result.details.get('documents_used', 0)}")
    print(f"  Vectors:        {result.vectors_uploaded}")
    return 0


async def _handle_ask(args: argparse.Namespace, components: dict[str, Any]) -> int:
    """Ask an agent one question and print the answer."""
    response = await components["chat_service"].answer(
        ChatRequest(question=args.question, agent_id=args.agent)
    )
    print(response.answer)
    return 0


async def _handle_delete(args: argparse.Namespace, components: dict[str, Any]) -> int:
    """Delete a document, its vectors, and its stored file."""
    if not args.yes:
        confirm = input(f"  Delete document {args.document}? [y/N] ").strip().lower()
        if confirm not in ("y", "yes"):
            print("  Aborted.")
            return 0

    removed = await components["ingestion_service"].delete_document(args.document)
    print(f"Deleted document {args.document} ({removed} vectors removed).")
    return 0


async def _handle_status(args: argparse.Namespace, components: dict[str, Any]) -> int:
    document = await components["repository"].get_document(args.document)
    print(f"{document.name}")
    print(f"  Tenant:    {document.tenant_id}")
    print(f"  Kind:      {document.source_kind.value}")
    print(f"  Status:    {document.status.value}")
    print(f"  Namespace: {document.namespace or '-'}")
    return 0


_HANDLERS = {
    "ingest": _handle_ingest,
    "train": _handle_train,
    "ask": _handle_ask,
    "delete": _handle_delete,
    "status": _handle_status,
}


async def _run(args: argparse.Namespace, app_settings: Settings) -> int:
    components = await _open(app_settings)
    try:
        return await _HANDLERS[args.command](args, components)
    except TenantRAGError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1
    finally:
        await _close(components)


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the tenantrag CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m tenantrag.cli",
        description="Run tenantrag ingestion, training, and chat from the command line.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # -- ingest --
    ingest_parser = subparsers.add_parser("ingest", help="Ingest a local file for a tenant")
    ingest_parser.add_argument("--tenant", required=True, help="Tenant id")
    ingest_parser.add_argument("--file", required=True, help="Path to the file")
    ingest_parser.add_argument(
        "--type",
        choices=[f.value for f in FileFormat],
        help="File format (default: taken from the file suffix)",
    )

    # -- train --
    train_parser = subparsers.add_parser("train", help="Train an agent on its documents")
    train_parser.add_argument("--agent", required=True, help="Agent id")
    train_parser.add_argument(
        "--document",
        action="append",
        dest="documents",
        help="Document id to train on (repeatable; default: the agent's own list)",
    )

    # -- ask --
    ask_parser = subparsers.add_parser("ask", help="Ask an agent a question")
    ask_parser.add_argument("--agent", required=True, help="Agent id")
    ask_parser.add_argument("--question", required=True, help="Question text")

    # -- delete --
    delete_parser = subparsers.add_parser("delete", help="Delete a document and its vectors")
    delete_parser.add_argument("--document", required=True, help="Document id")
    delete_parser.add_argument(
        "--yes", "-y", action="store_true", help="Skip confirmation prompt"
    )

    # -- status --
    status_parser = subparsers.add_parser("status", help="Show a document's status")
    status_parser.add_argument("--document", required=True, help="Document id")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """CLI entry point: parse arguments and dispatch to a handler."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    app_settings = Settings()
    exit_code = asyncio.run(_run(args, app_settings))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
