"""CLI for blobflow."""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console

from .config import load_config
from .core import CollectionConfig
from .errors import BlobflowError
from .service import BlobService
from .status_display import display_collection


app = typer.Typer(help="""\
Upload files through the blob pipeline: request an upload slot, transfer
the bytes, register the blob and link it to its owner.""")

console = Console()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _effective_config(root: Path, overrides: Dict[str, Any]) -> CollectionConfig:
    """Load config from ``root`` and apply command-line overrides.

    Raises:
        typer.Exit: If the configuration is invalid
    """
    try:
        config = load_config(root)
        data = config.model_dump()
        gateway = overrides.pop("gateway_root", None)
        if gateway is not None:
            data["gateway"]["root"] = str(gateway)
        data.update({k: v for k, v in overrides.items() if v is not None})
        return CollectionConfig(**data)
    except (BlobflowError, ValidationError) as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)


@app.command()
def upload(
    files: List[Path] = typer.Argument(..., help="Files to upload"),
    root: Path = typer.Option(Path("."), "--root", help="Project directory holding .blobflow/"),
    store: Optional[Path] = typer.Option(None, "--store", help="Gateway directory (overrides config)"),
    owner_id: Optional[int] = typer.Option(None, "--owner-id", help="Entity to link blobs to"),
    link: Optional[bool] = typer.Option(None, "--link/--no-link", help="Link blobs after registering"),
    max_retries: Optional[int] = typer.Option(None, "--max-retries", help="Retry budget per blob"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """Add files and drive them through the pipeline."""
    _configure_logging(verbose)

    missing = [str(f) for f in files if not f.is_file()]
    if missing:
        console.print(f"[red]✗[/red] Not a file: {', '.join(missing)}")
        raise typer.Exit(1)

    config = _effective_config(root, {
        "gateway_root": store,
        "owner_id": owner_id,
        "auto_link": link,
        "max_retries": max_retries,
    })

    try:
        service = BlobService(config)
    except (ValueError, NotImplementedError) as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)

    added = service.add_paths(files)
    skipped = len(files) - len(added)
    if skipped:
        console.print(f"[dim]Skipped {skipped} duplicate or over-capacity file(s)[/dim]")

    try:
        service.run()
    except BlobflowError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)

    display_collection(service.collection, console)
    if service.collection.records_needing_attention():
        raise typer.Exit(1)


@app.command("config")
def show_config(
    root: Path = typer.Option(Path("."), "--root", help="Project directory holding .blobflow/"),
):
    """Show the effective configuration."""
    config = _effective_config(root, {})
    console.print(yaml.safe_dump(config.model_dump(mode="json"), sort_keys=False), end="")


def main():
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
