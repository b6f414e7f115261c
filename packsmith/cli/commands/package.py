"""``packsmith package-buildpack NAME`` — create a buildpack package image.

Reads a ``package.toml`` (default buildpack, buildpack locations and
supported stacks), validates the set and writes one layer per buildpack.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel

from packsmith.config import PacksmithConfig
from packsmith.core.errors import PacksmithError
from packsmith.core.layers import get_label
from packsmith.core.orchestrator import Orchestrator
from packsmith.models.labels import PACKAGE_METADATA_LABEL, PackageMetadata

console = Console()


def package_cmd(
    name: str = typer.Argument(..., help="Name of the package image."),
    package_config: Path = typer.Option(
        Path("package.toml"), "--config", "-c", help="Path to package.toml."
    ),
    publish: bool = typer.Option(False, "--publish", help="Publish to the registry."),
    infer_stacks: bool = typer.Option(
        False,
        "--infer-stacks",
        help="Use the stacks every buildpack supports instead of the declared ones.",
    ),
    store: Optional[Path] = typer.Option(None, "--store", help="Local image store directory."),
) -> None:
    """Create a buildpack package image."""
    config = PacksmithConfig()
    if store is not None:
        config = config.model_copy(update={"image_store_path": store})

    try:
        with Orchestrator(config=config) as orchestrator:
            image = orchestrator.create_package(
                package_config, name, publish=publish, infer_stacks=infer_stacks
            )
        metadata: PackageMetadata = get_label(image, PACKAGE_METADATA_LABEL, PackageMetadata)
    except PacksmithError as exc:
        console.print(f"[bold red]Packaging failed:[/bold red] {exc}")
        raise typer.Exit(code=1)

    console.print()
    console.print(
        Panel(
            "\n".join([
                "[bold green]Package created[/bold green]",
                "",
                f"[bold]Image:[/bold]     {image.name}",
                f"[bold]Default:[/bold]   {metadata.info.full_name}",
                f"[bold]Stacks:[/bold]    {', '.join(s.id for s in metadata.stacks) or '(none)'}",
                f"[bold]Published:[/bold] {'yes' if publish else 'no'}",
            ]),
            title="[bold]packsmith[/bold]",
            border_style="green",
            padding=(1, 2),
        )
    )
