"""``packsmith build IMAGE`` — build an application image.

Resolves the builder and run image, validates stack and mixin
compatibility, composes an ephemeral builder with any extra buildpacks and
hands the build to the lifecycle.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel

from packsmith.config import PacksmithConfig
from packsmith.core.errors import PacksmithError
from packsmith.core.orchestrator import Orchestrator
from packsmith.models.config import BuildOptions, ContainerConfig

console = Console()


def parse_env(entries: list[str]) -> dict[str, str]:
    """``KEY=VALUE`` pairs; a bare ``KEY`` takes its value from the environment."""
    env: dict[str, str] = {}
    for entry in entries:
        key, sep, value = entry.partition("=")
        if not key:
            raise typer.BadParameter(f"invalid env entry '{entry}'")
        env[key] = value if sep else os.environ.get(key, "")
    return env


def build_cmd(
    image: str = typer.Argument(..., help="Name of the image to build."),
    builder: str = typer.Option("", "--builder", "-B", help="Builder image."),
    path: str = typer.Option("", "--path", "-p", help="Application directory or zip."),
    run_image: str = typer.Option("", "--run-image", help="Run image (defaults to the builder's)."),
    buildpacks: Optional[list[str]] = typer.Option(
        None,
        "--buildpack",
        "-b",
        help="Buildpack ID, path or URI. Repeat to set a custom order.",
    ),
    env: Optional[list[str]] = typer.Option(
        None, "--env", "-e", help="Build-time environment variable (KEY=VALUE)."
    ),
    publish: bool = typer.Option(False, "--publish", help="Publish to the registry."),
    no_pull: bool = typer.Option(False, "--no-pull", help="Skip pulling images."),
    clear_cache: bool = typer.Option(False, "--clear-cache", help="Clear the build cache."),
    network: str = typer.Option("", "--network", help="Network mode for build containers."),
    store: Optional[Path] = typer.Option(None, "--store", help="Local image store directory."),
) -> None:
    """Build an application image from source."""
    config = PacksmithConfig()
    if store is not None:
        config = config.model_copy(update={"image_store_path": store})

    try:
        options = BuildOptions(
            image=image,
            builder=builder,
            app_path=path,
            run_image=run_image,
            env=parse_env(env or []),
            publish=publish,
            no_pull=no_pull,
            clear_cache=clear_cache,
            buildpacks=buildpacks or [],
            container_config=ContainerConfig(network=network),
        )
        with Orchestrator(config=config) as orchestrator:
            result = orchestrator.build(options)
    except PacksmithError as exc:
        console.print(f"[bold red]Build failed:[/bold red] {exc}")
        raise typer.Exit(code=1)

    buildpack_names = ", ".join(info.full_name for info in result.buildpacks) or "(builder order)"
    console.print()
    console.print(
        Panel(
            "\n".join([
                "[bold green]Build succeeded[/bold green]",
                "",
                f"[bold]Image:[/bold]      {result.image}",
                f"[bold]Builder:[/bold]    {result.builder}",
                f"[bold]Run image:[/bold]  {result.run_image}",
                f"[bold]App path:[/bold]   {result.app_path}",
                f"[bold]Buildpacks:[/bold] {buildpack_names}",
            ]),
            title="[bold]packsmith[/bold]",
            border_style="green",
            padding=(1, 2),
        )
    )
