"""Display logic for blob collection status."""

from rich.console import Console
from rich.table import Table

from .collection import BlobCollection
from .core import BlobRecord, BlobState
from .utils import humanize_size, short_checksum

STATE_TEXT = {
    BlobState.SELECTED_FOR_UPLOAD: "[dim]selected[/dim]",
    BlobState.REQUESTING_SLOT: "[blue]… requesting slot[/blue]",
    BlobState.SLOT_READY: "[blue]slot ready[/blue]",
    BlobState.TRANSFERRING: "[blue]… uploading[/blue]",
    BlobState.TRANSFERRED: "[blue]uploaded[/blue]",
    BlobState.REGISTERING: "[blue]… registering[/blue]",
    BlobState.REGISTERED: "[cyan]registered[/cyan]",
    BlobState.LINKING: "[blue]… linking[/blue]",
    BlobState.LINKED: "[green]✓ linked[/green]",
    BlobState.MARKED_FOR_UNLINK: "[yellow]removing[/yellow]",
    BlobState.UNLINKING: "[yellow]… unlinking[/yellow]",
    BlobState.UNLINKED: "[dim]removed[/dim]",
}


def _status_cell(record: BlobRecord) -> str:
    text = STATE_TEXT[record.state]
    if record.has_error:
        return f"[red]✗[/red] {text}"
    return text


def display_collection(collection: BlobCollection, console: Console) -> None:
    """Display the visible blobs of a collection as a table.

    Args:
        collection: Collection to render
        console: Rich console for output
    """
    visible = collection.visible_records()
    table = Table(title=f"Blobs ({len(visible)}/{collection.max_items})")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Checksum", style="dim")
    table.add_column("Size", justify="right")
    table.add_column("State")
    table.add_column("Retries", justify="right")

    for position, record in enumerate(visible, start=1):
        name = record.name or "-"
        if record.checksum == collection.primary:
            name = f"{name} [bold yellow]★[/bold yellow]"
        table.add_row(
            str(position),
            name,
            short_checksum(record.checksum),
            humanize_size(record.size),
            _status_cell(record),
            str(record.retry_count),
        )

    console.print(table)

    failed = collection.records_needing_attention()
    if failed:
        console.print("\n[bold]Issues requiring attention:[/bold]")
        for record in failed:
            hint = "retry available" if record.can_retry else "no retries left"
            console.print(f"  [red]•[/red] {record.name}: {record.error_message} [dim]({hint})[/dim]")
    elif collection.is_settled:
        console.print("[green]✓ All blobs settled[/green]")
