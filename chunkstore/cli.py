#!/usr/bin/env python3
"""
chunkstore CLI

Command-line interface for splitting, distributing and reassembling files.

Usage:
    chunkstore split FILE [--encrypt] [--upload]    # Split a file into chunks
    chunkstore upload                               # Push chunks to destinations
    chunkstore download                             # Fetch chunks back
    chunkstore assemble OUTPUT [--decrypt]          # Rebuild the original file
    chunkstore show                                 # Inspect a manifest
    chunkstore cleanup                              # Remove local chunk files
"""

import asyncio
import logging
import os
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .config import load_config
from .errors import ChunkStoreError, ReplicationError
from .store import ChunkStore

console = Console()

PASSWORD_ENV = 'CHUNKSTORE_PASSWORD'


def setup_logging(verbose: bool = False, level: str = 'INFO'):
    """Configure logging with rich output."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)]
    )


def read_password(confirm: bool) -> str:
    """Password from the environment, or a hidden prompt."""
    password = os.getenv(PASSWORD_ENV)
    if password:
        return password
    return click.prompt("Enter encryption/decryption password", hide_input=True,
                        confirmation_prompt=confirm)


def run(coro):
    """Run a coroutine, turning chunkstore errors into a clean exit."""
    try:
        return asyncio.run(coro)
    except ChunkStoreError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)


def progress_bar() -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
        console=console,
    )


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--config', 'config_path', default='config.json', type=click.Path(),
              help='Configuration file path')
@click.option('--chunks-dir', type=click.Path(), help='Local chunk directory')
@click.option('--manifest', type=click.Path(), help='Manifest file path')
@click.pass_context
def cli(ctx, verbose, config_path, chunks_dir, manifest):
    """chunkstore - split, encrypt and distribute files as verifiable chunks."""
    try:
        config = load_config(Path(config_path))
    except ChunkStoreError as e:
        console.print(f"[red]Error:[/red] invalid configuration: {e}")
        raise SystemExit(1)

    if chunks_dir:
        config.chunks_dir = Path(chunks_dir)
    if manifest:
        config.manifest_path = Path(manifest)

    setup_logging(verbose, config.log_level)
    ctx.ensure_object(dict)
    ctx.obj['config'] = config


def make_store(ctx) -> ChunkStore:
    try:
        return ChunkStore(ctx.obj['config'])
    except ChunkStoreError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)


@cli.command()
@click.argument('file_path', type=click.Path(exists=True, dir_okay=False))
@click.option('--encrypt', is_flag=True, help='Encrypt chunks')
@click.option('--upload', 'do_upload', is_flag=True, help='Upload chunks after splitting')
@click.option('--cleanup', is_flag=True, help='Remove local chunks after a complete upload')
@click.pass_context
def split(ctx, file_path, encrypt, do_upload, cleanup):
    """Split a file into chunks."""
    password = read_password(confirm=True) if encrypt else None
    if cleanup:
        ctx.obj['config'].cleanup_after_upload = True
    store = make_store(ctx)

    async def go():
        with progress_bar() as progress:
            task = progress.add_task("Splitting...", total=100)

            def update_progress(p):
                progress.update(
                    task,
                    completed=p.progress_percent,
                    description=f"Splitting... ({p.completed_chunks}/{p.total_chunks} chunks)"
                )

            return await store.split(Path(file_path), password, progress_callback=update_progress)

    manifest = run(go())

    console.print(Panel.fit(
        f"[bold green]File Split Successfully[/bold green]\n\n"
        f"Name: [cyan]{manifest.original_name}[/cyan]\n"
        f"Chunks: [yellow]{manifest.chunk_count}[/yellow]\n"
        f"Stored: [yellow]{format_size(manifest.total_size)}[/yellow]\n"
        f"Encrypted: [yellow]{'Yes' if manifest.encrypted else 'No'}[/yellow]\n"
        f"Manifest: [blue]{store.manifest_path}[/blue]",
        title="Split"
    ))

    if do_upload:
        _upload(store)


@cli.command()
@click.option('--cleanup', is_flag=True, help='Remove local chunks after a complete upload')
@click.pass_context
def upload(ctx, cleanup):
    """Upload pending chunks to their destinations."""
    if cleanup:
        ctx.obj['config'].cleanup_after_upload = True
    _upload(make_store(ctx))


def _upload(store: ChunkStore):
    async def go():
        with progress_bar() as progress:
            task = progress.add_task("Uploading to destinations...", total=100)

            def update_progress(p):
                progress.update(
                    task,
                    completed=p.progress_percent,
                    description=f"Uploading... ({p.completed_chunks}/{p.total_chunks} chunks)"
                )

            return await store.upload(progress_callback=update_progress)

    try:
        manifest = asyncio.run(go())
    except ReplicationError as e:
        console.print(f"[red]✗ Upload incomplete:[/red] {e}")
        raise SystemExit(1)
    except ChunkStoreError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)

    report = store.uploader.last_report
    console.print(
        f"\n[green]✓ Upload pass finished[/green] "
        f"({len(report.uploaded)} replicas stored, {len(report.skipped)} skipped, "
        f"mode: {manifest.distribution_mode.value})"
    )
    if report.unresolved:
        console.print(f"[yellow]{len(report.unresolved)} chunks have no remote replica; "
                      f"run upload again to retry[/yellow]")


@cli.command()
@click.pass_context
def download(ctx):
    """Download missing chunks from their recorded destinations."""
    store = make_store(ctx)
    fetched = run(store.download())
    console.print(f"[green]✓ Fetched {fetched} chunks into {store.storage.chunks_dir}[/green]")


@cli.command()
@click.argument('output', type=click.Path(dir_okay=False))
@click.option('--decrypt', is_flag=True, help='Decrypt chunks')
@click.option('--download', 'do_download', is_flag=True,
              help='Download missing chunks before assembling')
@click.pass_context
def assemble(ctx, output, decrypt, do_download):
    """Rebuild the original file from its chunks."""
    store = make_store(ctx)
    password = read_password(confirm=False) if decrypt else None

    result = run(store.assemble(Path(output), password, download=do_download))
    console.print(f"\n[green]✓ Assembled to: {result}[/green]")


@cli.command()
@click.pass_context
def show(ctx):
    """Show a manifest's chunks and replicas."""
    store = make_store(ctx)
    try:
        manifest = store.load_manifest()
    except ChunkStoreError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)

    console.print(Panel.fit(
        f"Name: [cyan]{manifest.original_name}[/cyan]\n"
        f"Created: {manifest.created_at}\n"
        f"Chunks: [yellow]{manifest.chunk_count}[/yellow]\n"
        f"Stored: [yellow]{format_size(manifest.total_size)}[/yellow]\n"
        f"Encrypted: [yellow]{'Yes' if manifest.encrypted else 'No'}[/yellow]\n"
        f"Mode: [green]{manifest.distribution_mode.value}[/green]",
        title="Manifest"
    ))

    table = Table(title="Chunks")
    table.add_column("Index", justify="right")
    table.add_column("ID", style="cyan")
    table.add_column("Size", justify="right", style="yellow")
    table.add_column("Replicas", style="green")

    for chunk in manifest.sorted_chunks():
        replicas = ", ".join(f"{d.provider}/{d.account}" for d in chunk.destinations) or "-"
        table.add_row(str(chunk.index), chunk.id, format_size(chunk.size), replicas)

    console.print(table)


@cli.command()
@click.pass_context
def cleanup(ctx):
    """Remove local chunk files."""
    store = make_store(ctx)
    try:
        removed = store.cleanup()
    except ChunkStoreError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)
    console.print(f"[green]Removed {removed} chunk files[/green]")


def format_size(bytes_count: int) -> str:
    """Format bytes as human-readable size."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_count < 1024:
            return f"{bytes_count:.1f} {unit}"
        bytes_count /= 1024
    return f"{bytes_count:.1f} PB"


if __name__ == '__main__':
    cli()
