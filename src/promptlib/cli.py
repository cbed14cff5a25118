"""Typer CLI for the prompt library."""

import asyncio
import json
from dataclasses import asdict
from pathlib import Path

import logfire
import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from .composer import QUICK_PROMPTS, format_item
from .config import CATEGORIES, DEFAULT_SUGGEST_LIMIT, LibrarySettings
from .data_models import SaveRequest
from .service import LibraryService

app = typer.Typer(
    name="promptlib",
    help="Search, compose, and walk through a personal prompt library",
)
console = Console()


@app.callback()
def configure(
    ctx: typer.Context,
    library: Path = typer.Option(
        None, "--library", "-l", envvar="AI_LIBRARY_PATH", help="Library root directory"
    ),
    read_only: bool = typer.Option(False, "--read-only", help="Disable saving"),
    debug: bool = typer.Option(False, "--debug", help="Print debug logs to the console"),
) -> None:
    """Load settings and configure logging."""
    load_dotenv()
    settings = LibrarySettings.from_env()
    updates = {"read_only": read_only or settings.read_only, "debug": debug or settings.debug}
    if library is not None:
        updates["library_path"] = library.expanduser().resolve()
    if ctx.invoked_subcommand != "serve":
        # One-shot commands exit before any change would be seen
        updates["watch"] = False
    settings = settings.model_copy(update=updates)

    # Console output stays off unless debugging
    logfire.configure(
        send_to_logfire=False,
        console=logfire.ConsoleOptions(min_log_level="debug") if settings.debug else False,
    )
    ctx.obj = LibraryService(settings)


def _service(ctx: typer.Context) -> LibraryService:
    return ctx.obj


def _fail(message: str) -> None:
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(1)


@app.command()
def get(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Item id or fuzzy name"),
    fmt: str = typer.Option("full", "--format", "-f", help="full, body, or prompt_only"),
) -> None:
    """Print one item."""
    if fmt not in ("full", "body", "prompt_only"):
        _fail(f"Unknown format: {fmt}")

    result = asyncio.run(_service(ctx).get_item(name))
    if result.item is None:
        typer.echo(f'"{name}" not found.', err=True)
        if result.did_you_mean:
            typer.echo("\nDid you mean:", err=True)
            for candidate in result.did_you_mean:
                typer.echo(f"  - {candidate.id}", err=True)
        raise typer.Exit(1)

    typer.echo(format_item(result.item, fmt))


@app.command()
def search(
    ctx: typer.Context,
    query: str,
    category: str = typer.Option(None, "--category", "-c", help="Restrict to a category"),
    limit: int = typer.Option(None, "--limit", "-n", min=0, help="Maximum results"),
) -> None:
    """Search items by keyword."""
    results = asyncio.run(_service(ctx).search(query, limit, category=category))
    if not results:
        typer.echo(f'No results found for "{query}".')
        return

    table = Table(title=f'Results for "{query}"')
    table.add_column("Score", justify="right")
    table.add_column("ID")
    table.add_column("Title")
    for result in results:
        table.add_row(f"{result.score:.2f}", result.item.id, result.item.title)
    console.print(table)


@app.command()
def suggest(
    ctx: typer.Context,
    message: str,
    limit: int = typer.Option(DEFAULT_SUGGEST_LIMIT, "--limit", "-n", min=0),
) -> None:
    """Suggest items for what you are trying to do."""
    suggestions = asyncio.run(_service(ctx).suggest(message, limit))
    if not suggestions:
        typer.echo("No suggestions found. Try being more specific.")
        return

    for i, suggestion in enumerate(suggestions, start=1):
        confidence = round(suggestion.confidence * 100)
        typer.echo(f"{i}. {suggestion.item.id} ({confidence}%) - {suggestion.reason}")


@app.command(name="list")
def list_items(
    ctx: typer.Context,
    category: str = typer.Argument(None, help="Category to list"),
) -> None:
    """List items, optionally within one category."""
    if category is not None and category not in CATEGORIES:
        _fail(f"Unknown category: {category}. Choose from {', '.join(CATEGORIES)}")

    service = _service(ctx)
    if category:
        items = asyncio.run(service.get_by_category(category))
    else:
        items = asyncio.run(service.get_all_items())

    if not items:
        typer.echo("No items found.")
        return
    for item in sorted(items, key=lambda i: i.id):
        typer.echo(f"  {item.id}")


@app.command()
def chains(ctx: typer.Context) -> None:
    """List workflows."""
    workflows = asyncio.run(_service(ctx).get_all_chains())
    if not workflows:
        typer.echo("No chains found.")
        return
    for workflow in sorted(workflows, key=lambda w: w.id):
        typer.echo(f"  {workflow.id} ({workflow.total_steps} steps) - {workflow.name}")


@app.command()
def walk(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Workflow id or fuzzy name"),
    var: list[str] = typer.Option(
        None, "--var", "-v", help="Context value as key=value, may be repeated"
    ),
) -> None:
    """Step through a workflow interactively."""
    context: dict[str, str] = {}
    for pair in var or []:
        key, sep, value = pair.partition("=")
        if not sep:
            _fail(f"Expected key=value, got: {pair}")
        context[key.strip()] = value.strip()

    service = _service(ctx)
    session = asyncio.run(service.start_session(name, context))
    if session is None:
        _fail(f'Chain "{name}" not found or has no steps.')

    console.print(Panel(f"[bold]{session.workflow_name}[/bold]", subtitle=session.id))
    while True:
        rendered = service.render_current_step(session)
        if rendered:
            console.print(Markdown(rendered))
        console.print(Markdown(service.sessions.format_status(session)))

        choice = typer.prompt("[n]ext, [g]oto, [q]uit", default="n").strip().lower()
        if choice.startswith("q"):
            service.end_session(session.id)
            typer.echo("Session ended.")
            return
        if choice.startswith("g"):
            step = typer.prompt("Step number", type=int)
            service.jump_to(session.id, step)
            continue

        result = service.advance(session.id)
        if result is None or result.completed:
            console.print(Panel("Chain Complete", style="green"))
            return


@app.command()
def compose(
    ctx: typer.Context,
    names: list[str] = typer.Argument(..., help="Items to combine"),
    metadata: bool = typer.Option(False, "--metadata", "-m", help="Include a component header"),
) -> None:
    """Combine several items into one prompt."""
    composed = asyncio.run(_service(ctx).compose(names, include_metadata=metadata))
    if composed is None:
        _fail(f"None of the specified items were found: {', '.join(names)}")

    typer.echo(composed.text)
    if composed.not_found and not metadata:
        typer.echo(f"Not found: {', '.join(composed.not_found)}", err=True)


@app.command()
def quick(name: str = typer.Argument(None, help="Quick prompt name")) -> None:
    """Print a one-line quick prompt, or list them all."""
    if name is None:
        for key, quick_prompt in QUICK_PROMPTS.items():
            typer.echo(f"  {key}: {quick_prompt.description}")
        return

    quick_prompt = QUICK_PROMPTS.get(name.lower())
    if quick_prompt is None:
        _fail(f'Quick prompt "{name}" not found. Available: {", ".join(QUICK_PROMPTS)}')
    typer.echo(quick_prompt.prompt)


@app.command(name="random")
def random_item(
    ctx: typer.Context,
    category: str = typer.Option(None, "--category", "-c"),
) -> None:
    """Print a random item."""
    item = asyncio.run(_service(ctx).random_item(category))
    if item is None:
        typer.echo("No items found.")
        return
    typer.echo(format_item(item, "full"))


@app.command()
def stats(ctx: typer.Context) -> None:
    """Show item counts."""
    data = asyncio.run(_service(ctx).get_stats())
    table = Table(title=f"Library: {data['total']} items")
    table.add_column("Category")
    table.add_column("Items", justify="right")
    for category, count in data["by_category"].items():
        table.add_row(category, str(count))
    console.print(table)
    typer.echo(f"Workflows: {data['workflows']}  Tags: {data['tags']}")


@app.command()
def save(
    ctx: typer.Context,
    category: str,
    name: str,
    source: Path = typer.Option(
        None, "--file", help="Read content from a file instead of stdin"
    ),
    subcategory: str = typer.Option(None, "--subcategory", "-s"),
    title: str = typer.Option(None, "--title"),
    description: str = typer.Option(None, "--description"),
    tag: list[str] = typer.Option(None, "--tag", "-t", help="May be repeated"),
) -> None:
    """Save a new item. Content is read from --file or stdin."""
    if source is not None:
        content = source.read_text(encoding="utf-8")
    else:
        content = typer.get_text_stream("stdin").read()

    metadata: dict = {}
    if title:
        metadata["title"] = title
    if description:
        metadata["description"] = description
    if tag:
        metadata["tags"] = list(tag)

    request = SaveRequest(
        category=category,
        subcategory=subcategory,
        name=name,
        content=content,
        metadata=metadata,
    )
    item = asyncio.run(_service(ctx).save(request))
    if item is None:
        _fail("Failed to save. The category may be invalid or the library read-only.")
    typer.echo(f"Saved {item.id} ({item.relative_path})")


@app.command()
def detect(
    ctx: typer.Context,
    files: list[str] = typer.Argument(..., help="Project file names"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON"),
) -> None:
    """Detect the tech stack from project file names."""
    detections = asyncio.run(_service(ctx).detect_context(files))
    if as_json:
        typer.echo(json.dumps([asdict(d) for d in detections], indent=2))
        return
    if not detections:
        typer.echo("Could not detect tech stack from the provided files.")
        return
    for detection in detections:
        typer.echo(f"  {detection.stack} ({round(detection.confidence * 100)}%)")


@app.command()
def serve(
    ctx: typer.Context,
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(8080, "--port", "-p", help="Port to bind to"),
    watch: bool = typer.Option(False, "--watch", "-w", help="Reindex files as they change"),
) -> None:
    """Start the JSON API server."""
    import uvicorn

    from .web import create_app

    service = _service(ctx)
    if watch:
        service.settings = service.settings.model_copy(update={"watch": True})

    typer.echo(f"Serving {service.settings.library_path} at http://{host}:{port}")
    typer.echo("Press Ctrl+C to stop")
    uvicorn.run(create_app(service), host=host, port=port, log_level="info")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
