from __future__ import annotations

import asyncio
import dataclasses
import hashlib
import json
from pathlib import Path
from typing import Annotated, Any

import typer

from doclens.config import Settings, load_settings
from doclens.errors import DocLensError
from doclens.logging_config import configure_logging
from doclens.pipeline import Pipeline, build_pipeline
from doclens.schemas.rag_chat import ChunkEvent, DoneEvent, ErrorEvent, SourcesEvent
from doclens.services.chunker import chunk_document
from doclens.services.pdf_extraction import extract_pdf_document

app = typer.Typer(add_completion=False, help="Ask questions about PDF documents.")

DocumentOption = Annotated[
    Path,
    typer.Option(
        "--file",
        "--pdf",
        exists=True,
        readable=True,
        dir_okay=False,
        help="PDF to index for this run (in-process index).",
    ),
]


def _require_api_key(provided: str | None, settings: Settings) -> str:
    if provided and provided.strip():
        return provided.strip()
    if settings.openai_api_key:
        return settings.openai_api_key
    raise typer.BadParameter(
        "Missing OpenAI API key. Provide --openai-api-key or set OPENAI_API_KEY."
    )


def _load_settings() -> Settings:
    try:
        return load_settings()
    except DocLensError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _print_json(payload: object) -> None:
    typer.echo(json.dumps(payload, indent=2, default=str))


def _document_id_for(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()[:32]


async def _index_and_ask(
    pipeline: Pipeline,
    *,
    data: bytes,
    question: str,
    stream_output: bool,
) -> dict[str, Any]:
    document_id = _document_id_for(data)
    status = await pipeline.indexing.index_document(document_id, data)
    result: dict[str, Any] = {
        "document_id": document_id,
        "indexing": status.model_dump(mode="json", by_alias=True),
        "answer": "",
        "sources": [],
        "session_id": None,
        "error": status.error,
    }
    if status.status != "ready":
        return result

    answer: list[str] = []
    async for event in pipeline.question_answering.ask(document_id=document_id, question=question):
        if isinstance(event, ChunkEvent):
            answer.append(event.content)
            if stream_output:
                typer.echo(event.content, nl=False)
        elif isinstance(event, SourcesEvent):
            result["sources"] = [
                source.model_dump(mode="json", by_alias=True, exclude_none=True)
                for source in event.sources
            ]
        elif isinstance(event, DoneEvent):
            result["session_id"] = event.session_id
        elif isinstance(event, ErrorEvent):
            result["error"] = event.error

    result["answer"] = "".join(answer)
    return result


@app.command()
def ask(
    question: Annotated[str, typer.Argument(help="Question about the document.")],
    document: DocumentOption,
    openai_api_key: Annotated[
        str | None,
        typer.Option("--openai-api-key", help="OpenAI API key (defaults to OPENAI_API_KEY)."),
    ] = None,
    model: Annotated[
        str | None,
        typer.Option("--model", help="Override DOCLENS_CHAT_MODEL for this run."),
    ] = None,
    top_k: Annotated[
        int | None,
        typer.Option("--top-k", min=1, help="Chunks to retrieve before context expansion."),
    ] = None,
    context_window: Annotated[
        int | None,
        typer.Option("--context-window", min=0, help="Neighbouring chunks to add per hit."),
    ] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Emit JSON output.")] = False,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Log pipeline progress.")
    ] = False,
) -> None:
    """Index a PDF in-process and stream a cited answer to the question."""

    settings = _load_settings()
    configure_logging(level="INFO" if verbose else "WARNING", log_format="text")

    overrides: dict[str, Any] = {"openai_api_key": _require_api_key(openai_api_key, settings)}
    if model:
        overrides["chat_model"] = model
    if top_k is not None:
        overrides["top_k"] = top_k
    if context_window is not None:
        overrides["context_window"] = context_window
    pipeline = build_pipeline(dataclasses.replace(settings, **overrides))

    try:
        result = asyncio.run(
            _index_and_ask(
                pipeline,
                data=document.read_bytes(),
                question=question,
                stream_output=not json_output,
            )
        )
    except DocLensError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    if json_output:
        _print_json(result)
    else:
        if result["answer"]:
            typer.echo("")
        for source in result["sources"]:
            typer.echo(f"[Page {source['page']}] ({source['relevanceScore']:.3f}) {source['text']}")

    if result["error"]:
        if not json_output:
            typer.echo(f"Error: {result['error']}", err=True)
        raise typer.Exit(code=1)


@app.command()
def chunk(
    document: DocumentOption,
    max_chunk_size: Annotated[
        int, typer.Option("--max-chunk-size", min=1, help="Maximum characters per chunk.")
    ] = 2000,
    overlap: Annotated[
        int, typer.Option("--overlap", min=0, help="Characters shared by consecutive chunks.")
    ] = 200,
    json_output: Annotated[bool, typer.Option("--json", help="Emit JSON output.")] = False,
) -> None:
    """Extract and chunk a PDF without calling any model."""

    data = document.read_bytes()
    try:
        extracted = extract_pdf_document(data, _document_id_for(data))
    except DocLensError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    chunks = chunk_document(extracted, max_chunk_size=max_chunk_size, overlap_size=overlap)

    if json_output:
        _print_json(
            {
                "document_id": extracted.document_id,
                "page_count": len(extracted.pages),
                "chunks": [
                    {
                        "chunk_index": item.chunk_index,
                        "page_number": item.page_number,
                        "start_offset": item.start_offset,
                        "end_offset": item.end_offset,
                        "length": len(item.content),
                        "positions": len(item.positions or ()),
                    }
                    for item in chunks
                ],
            }
        )
        return

    typer.echo(f"{len(chunks)} chunks from {len(extracted.pages)} pages")
    for item in chunks:
        preview = item.content[:60].replace("\n", " ")
        typer.echo(
            f"#{item.chunk_index} p{item.page_number} "
            f"[{item.start_offset}:{item.end_offset}] {preview}"
        )


def main() -> None:
    app()
