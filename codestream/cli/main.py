"""CLI entry point.

Provides the main CLI application with commands for:
- generate: Stream one prompt through the gateway and apply its directives
- replay: Feed a saved model response through the parser offline
- serve: Run the API server
"""

# Configure logging early before other imports
import codestream.logging_config  # noqa: F401

import asyncio
import uuid
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from codestream.settings import get_settings

app = typer.Typer(
    name="codestream",
    help="Stream LLM directive output into files, actions and events",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()

_EVENT_STYLES = {
    "message": "bold white",
    "plan": "magenta",
    "file_start": "cyan",
    "file_complete": "green",
    "action_start": "cyan",
    "action_complete": "green",
    "file_error": "red",
    "action_error": "red",
    "error": "bold red",
    "status": "dim",
    "complete": "bold green",
}

# Partial-progress events only shown with --verbose
_PROGRESS_EVENTS = {"message_delta", "plan_streaming", "file_streaming", "file_content_delta"}


def print_event(event_type: str, payload: dict[str, Any], *, verbose: bool = False) -> None:
    """Render one event on the console."""
    if event_type in _PROGRESS_EVENTS:
        if verbose:
            text = payload.get("delta") or payload.get("message") or ""
            console.print(f"[dim]{event_type}[/dim] {escape(repr(text))}", highlight=False)
        return

    style = _EVENT_STYLES.get(event_type, "white")
    if event_type == "message":
        body = payload.get("message", "")
    elif event_type == "plan":
        body = payload.get("plan", "")
    elif event_type == "file_complete":
        body = payload.get("written_path", payload.get("path", ""))
    elif event_type in ("file_error", "action_error", "error"):
        body = payload.get("error", "")
    else:
        body = payload.get("message", "")
    console.print(f"[{style}]{event_type:<16}[/{style}] {escape(str(body))}", highlight=False)


def print_summary(files_written: list[str], errors: list[str]) -> None:
    table = Table(title="Generation Results", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value")

    table.add_row("Files Written", str(len(files_written)))
    for path in files_written:
        table.add_row("", path)
    table.add_row("Errors", str(len(errors)))
    for error in errors:
        table.add_row("", f"[red]{escape(error)}[/red]")

    console.print(table)


@app.command()
def generate(
    prompt: Annotated[str, typer.Argument(help="Prompt sent to the model")],
    system_prompt_file: Annotated[
        Path | None,
        typer.Option(
            "--system-prompt-file",
            "-s",
            help="File holding the system prompt",
            exists=True,
            dir_okay=False,
        ),
    ] = None,
    root: Annotated[
        Path | None,
        typer.Option("--root", "-r", help="Project directory generated files are written under"),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show streaming progress events"),
    ] = False,
) -> None:
    """Generate from a prompt and apply the model's directives.

    Files are written under the project root; actions need a registered
    data-layer client and fail as unsupported otherwise.
    """
    system_prompt = system_prompt_file.read_text(encoding="utf-8") if system_prompt_file else ""
    ok = asyncio.run(_run_generation(prompt, system_prompt, root, verbose))
    if not ok:
        raise typer.Exit(1)


async def _run_generation(
    prompt: str,
    system_prompt: str,
    root: Path | None,
    verbose: bool,
) -> bool:
    """Execute one generation against the gateway."""
    from codestream.actions.registry import CapabilityRegistry
    from codestream.generation.service import GenerationService
    from codestream.generation.store import GenerationStore
    from codestream.llm.gateway import GatewayClient
    from codestream.storage.file_writer import ProjectFileWriter

    settings = get_settings()
    writer = ProjectFileWriter(root or settings.project_root, settings.file_path_prefix)
    service = GenerationService(
        store=GenerationStore(retention_seconds=settings.generation_retention_seconds),
        gateway=GatewayClient(settings),
        registry=CapabilityRegistry(),
        file_writer=writer,
        settings=settings,
    )

    console.print(
        Panel(
            f"[bold blue]Generating[/bold blue]\n"
            f"Model: {settings.llm_model}\n"
            f"Output: {writer.root_dir.resolve()}",
            title="codestream",
            border_style="blue",
        )
    )

    try:
        result = await service.run(
            uuid.uuid4().hex,
            prompt,
            system_prompt=system_prompt,
            listener=lambda event_type, payload: print_event(event_type, payload, verbose=verbose),
        )
    finally:
        await service.gateway.close()

    if result is None:
        return False
    print_summary(result.files_written, result.errors)
    return True


@app.command()
def replay(
    response_file: Annotated[
        Path,
        typer.Argument(help="Saved model response", exists=True, dir_okay=False),
    ],
    chunk_size: Annotated[
        int,
        typer.Option("--chunk-size", "-n", min=1, help="Characters per simulated chunk"),
    ] = 16,
    sse: Annotated[
        bool,
        typer.Option("--sse", help="Treat the file as a raw provider event stream"),
    ] = False,
    root: Annotated[
        Path | None,
        typer.Option("--root", "-r", help="Project directory generated files are written under"),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show streaming progress events"),
    ] = False,
) -> None:
    """Feed a saved model response through the parser.

    Useful for checking how a response is parsed without calling the
    gateway. With --sse the file is decoded as the provider's raw event
    stream, split into byte chunks of --chunk-size.
    """
    asyncio.run(_run_replay(response_file, chunk_size, sse, root, verbose))


async def _run_replay(
    response_file: Path,
    chunk_size: int,
    sse: bool,
    root: Path | None,
    verbose: bool,
) -> None:
    """Replay a saved response chunk by chunk."""
    from codestream.actions.registry import CapabilityRegistry
    from codestream.generation.service import parse_text_stream
    from codestream.storage.file_writer import ProjectFileWriter
    from codestream.streaming.decoder import iter_sse_events, iter_text_deltas
    from codestream.streaming.parser import StreamingDirectiveParser

    settings = get_settings()
    parser = StreamingDirectiveParser(
        lambda event_type, payload: print_event(event_type, payload, verbose=verbose),
        file_writer=ProjectFileWriter(root or settings.project_root, settings.file_path_prefix),
        registry=CapabilityRegistry(),
        partial_min_length=settings.partial_min_length,
        file_stream_mode=settings.file_stream_mode,
    )

    if sse:
        data = response_file.read_bytes()

        async def byte_chunks():
            for start in range(0, len(data), chunk_size):
                yield data[start : start + chunk_size]

        chunks = iter_text_deltas(iter_sse_events(byte_chunks()))
    else:
        text = response_file.read_text(encoding="utf-8")

        async def text_chunks():
            for start in range(0, len(text), chunk_size):
                yield text[start : start + chunk_size]

        chunks = text_chunks()

    result = await parse_text_stream(chunks, parser)
    print_summary(result.files_written, result.errors)


@app.command()
def serve(
    host: Annotated[
        str | None,
        typer.Option("--host", "-h", help="Host to bind to"),
    ] = None,
    port: Annotated[
        int | None,
        typer.Option("--port", "-p", help="Port to bind to"),
    ] = None,
    reload: Annotated[
        bool,
        typer.Option("--reload", help="Enable auto-reload for development"),
    ] = False,
) -> None:
    """Start the codestream API server.

    Runs the FastAPI application with uvicorn.
    """
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port

    console.print(
        Panel(
            f"[bold green]Starting codestream API Server[/bold green]\n"
            f"Host: {host}\n"
            f"Port: {port}\n"
            f"Reload: {reload}",
            title="codestream",
            border_style="green",
        )
    )

    uvicorn.run(
        "codestream.api.main:get_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    app()
