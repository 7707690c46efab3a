"""CLI entrypoint."""

from __future__ import annotations

import asyncio
import logging

import httpx
import typer

from .errors import StorageRequestError
from .settings import Settings
from .storage_manager import StorageManager
from .workflow import WorkflowReport, run_storage_workflow

BANNER = "\n".join(
    [
        "*" * 89,
        "*           iTwin Platform Storage App" + " " * 50 + "*",
        "*" * 89,
    ]
)

app = typer.Typer(
    name="itwin-storage-sample",
    help="Run the iTwin Storage API quick-start workflow.",
    add_completion=False,
)


async def _run(settings: Settings, token: str, project_id: str) -> WorkflowReport:
    async with StorageManager.from_settings(
        settings, token=token, project_id=project_id
    ) as manager:
        return await run_storage_workflow(manager, settings.download_dir)


@app.command()
def run(
    token: str = typer.Option(
        ...,
        "--token",
        envvar="ITWIN_TOKEN",
        prompt="Copy and paste the Authorization header from the 'Try It' sample",
        hide_input=True,
        help="Authorization header value (or bare bearer token).",
    ),
    project_id: str = typer.Option(
        ...,
        "--project-id",
        envvar="ITWIN_PROJECT_ID",
        prompt="Insert project Id",
        help="Project whose storage is used.",
    ),
) -> None:
    settings = Settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    typer.echo(BANNER)
    try:
        report = asyncio.run(_run(settings, token, project_id))
    except StorageRequestError as exc:
        typer.echo(f"Storage request failed ({exc.method} {exc.url}): {exc}", err=True)
        raise typer.Exit(code=1) from exc
    except httpx.TransportError as exc:
        typer.echo(f"Could not reach the Storage API: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(
        f"Workflow completed: folder {report.folder.id}, file {report.file.id}, "
        f"recycle bin held {report.recycle_bin_folders} folders and "
        f"{report.recycle_bin_files} files."
    )


def main() -> None:
    app()


if __name__ == "__main__":
    main()
