"""Progress display for a running deployment."""

from __future__ import annotations

from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

from dbdeploy.cli.common.output import console
from dbdeploy.core.deployer import DeployResult, DeployStatus, SchemaDeployer


def deploy_with_progress(deployer: SchemaDeployer) -> list[DeployResult]:
    """
    Run `deployer.deploy()` behind an overall progress bar.

    The bar advances once per finished object (committed, failed or skipped)
    and shows the failure count and the last object that finished. Errors
    from the deployment propagate unchanged after the bar is closed.
    """
    total = max(len(deployer.model), 1)
    failures = 0

    progress = Progress(
        SpinnerColumn(),
        TextColumn("[bold]Deploying[/]"),
        BarColumn(),
        TaskProgressColumn(),
        TextColumn("failures=[bold red]{task.fields[failures]}[/]"),
        TextColumn("[dim]{task.fields[last]}[/]"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )
    task_id = progress.add_task("deploy", total=total, failures=0, last="")

    previous = deployer.on_result

    def _on_result(result: DeployResult) -> None:
        nonlocal failures
        if result.status is DeployStatus.FAILED:
            failures += 1
        progress.update(task_id, advance=1, failures=failures, last=result.name)
        if previous is not None:
            previous(result)

    deployer.on_result = _on_result
    try:
        with progress:
            return deployer.deploy()
    finally:
        deployer.on_result = previous
