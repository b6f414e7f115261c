"""``packsmith inspect-builder NAME`` — show what a builder image carries."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from packsmith.config import PacksmithConfig
from packsmith.core.builder import BuilderImage
from packsmith.core.errors import PacksmithError
from packsmith.core.image_store import LocalImageStore

console = Console()


def inspect_builder_cmd(
    name: str = typer.Argument(..., help="Builder image name."),
    store: Optional[Path] = typer.Option(None, "--store", help="Local image store directory."),
) -> None:
    """Show a builder's stack, run image, lifecycle APIs, buildpacks and order."""
    config = PacksmithConfig()
    image_store = LocalImageStore(store or config.image_store_path)

    try:
        builder = BuilderImage(image_store.fetch(name, True, False))
        platform_api = builder.platform_api_version
    except PacksmithError as exc:
        console.print(f"[bold red]Inspect failed:[/bold red] {exc}")
        raise typer.Exit(code=1)

    metadata = builder.metadata
    run_image = metadata.stack.run_image

    summary = Table(title=f"Builder {name}", show_header=False)
    summary.add_column("Field", style="bold")
    summary.add_column("Value")
    summary.add_row("Stack", builder.stack_id)
    summary.add_row("Mixins", ", ".join(builder.mixins) or "(none)")
    summary.add_row("Run image", run_image.image or "(none)")
    summary.add_row("Mirrors", ", ".join(run_image.mirrors) or "(none)")
    summary.add_row("Platform API", str(platform_api))
    summary.add_row("Buildpack API", metadata.lifecycle.api.buildpack)
    console.print(summary)

    buildpacks = Table(title="Buildpacks")
    buildpacks.add_column("ID", style="cyan")
    buildpacks.add_column("Version", style="green")
    buildpacks.add_column("Stacks")
    layers = builder.buildpack_layers
    for bp_id in sorted(layers):
        for version in sorted(layers[bp_id]):
            stacks = ", ".join(s.id for s in layers[bp_id][version].stacks)
            buildpacks.add_row(bp_id, version, stacks or "[dim](meta)[/dim]")
    console.print(buildpacks)

    if not builder.order:
        console.print("[dim]No detection order.[/dim]")
        return
    order = Table(title="Detection order")
    order.add_column("Group", justify="right")
    order.add_column("Buildpacks")
    for index, entry in enumerate(builder.order, start=1):
        refs = [
            ref.full_name + (" (optional)" if ref.optional else "") for ref in entry.group
        ]
        order.add_row(str(index), ", ".join(refs))
    console.print(order)
