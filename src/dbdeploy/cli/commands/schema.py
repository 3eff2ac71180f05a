"""Commands that deploy, inspect, drop and grant a data model."""

import typer

from dbdeploy.cli.common.context import DeployAppContext
from dbdeploy.cli.common.exits import EXIT_USAGE, die, exit_from_exc, ok_exit, warn_exit
from dbdeploy.cli.common.options import (
    ConfirmOpt,
    ContinueOnErrorOpt,
    DryRunOpt,
    GranteeOpt,
    GroupOpt,
    MaxAttemptsOpt,
    ModelOpt,
    ParallelOpt,
)
from dbdeploy.cli.common.output import out
from dbdeploy.cli.common.progress import deploy_with_progress
from dbdeploy.core.deployer import SchemaDeployer
from dbdeploy.core.errors import DataAccessError, SchemaDefinitionError, UndefinedNameError
from dbdeploy.core.loader import load_model
from dbdeploy.core.model import PhysicalDataModel
from dbdeploy.core.objects import DatabaseObject
from dbdeploy.core.retry import RetryPolicy


def _load_ordered(reference: str, schema: str) -> tuple[PhysicalDataModel, list[DatabaseObject]]:
    """Load the model and compute its order, exiting with code 2 on definition errors."""
    try:
        model = load_model(reference, schema)
        return model, model.topological_order()
    except SchemaDefinitionError as exc:
        exit_from_exc(exc)


def deploy(
    ctx: typer.Context,
    model: str = ModelOpt,
    parallel: int = ParallelOpt,
    max_attempts: int = MaxAttemptsOpt,
    continue_on_error: bool = ContinueOnErrorOpt,
    dry_run: bool = DryRunOpt,
):
    """
    Deploy every object whose version is newer than the recorded one.
    """
    appctx: DeployAppContext = ctx.obj
    data_model, order = _load_ordered(model, appctx.schema)

    out.header("Deployment target")
    out.kv(appctx.describe())

    if dry_run:
        out.order_table(order)
        warn_exit("Dry-run enabled: nothing was deployed", code=0)

    try:
        deployer = SchemaDeployer(
            data_model,
            appctx.provider,
            appctx.ledger(),
            max_parallel=parallel,
            policy=RetryPolicy(max_attempts=max_attempts),
            abort_on_failure=not continue_on_error,
        )
    except ValueError as e:
        die(str(e), code=EXIT_USAGE)

    try:
        with out.status("Preparing schemas and version history..."):
            deployer.bootstrap()
            deployer.load_ledger()
    except DataAccessError as exc:
        exit_from_exc(exc, message=f"Bootstrap failed: {exc}")

    try:
        results = deploy_with_progress(deployer)
    except Exception as exc:
        # model code may raise anything; report it like a database failure
        out.results_table(deployer.results.values())
        exit_from_exc(exc, message=f"Deployment failed: {exc}")

    out.results_table(results)
    out.success(f"Deployed {len(results)} object(s)")


def versions(ctx: typer.Context):
    """
    Show the recorded version history.
    """
    appctx: DeployAppContext = ctx.obj
    ledger = appctx.ledger()

    try:
        with appctx.provider.acquire() as target:
            records = ledger.history(target)
    except UndefinedNameError as exc:
        exit_from_exc(exc, message=f"{ledger.table} does not exist yet; run deploy first")
    except DataAccessError as exc:
        exit_from_exc(exc)

    if not records:
        warn_exit("No versions recorded", code=0)

    out.versions_table(records, title=f"Version history ({ledger.table})")


def drop(
    ctx: typer.Context,
    model: str = ModelOpt,
    confirm: bool = ConfirmOpt,
    dry_run: bool = DryRunOpt,
):
    """
    Drop every object of the model, dependents first.

    The version history is kept.
    """
    appctx: DeployAppContext = ctx.obj
    data_model, order = _load_ordered(model, appctx.schema)

    out.order_table(list(reversed(order)), title="Drop order")

    if dry_run:
        warn_exit("Dry-run enabled: nothing was dropped", code=0)

    if confirm and not out.confirm(f"Drop {len(order)} object(s) from {appctx.schema}?"):
        ok_exit("Cancelled")

    try:
        with appctx.provider.acquire() as target:
            with target.transaction():
                data_model.drop(target)
    except DataAccessError as exc:
        exit_from_exc(exc, message=f"Drop failed: {exc}")

    out.success(f"Dropped {len(order)} object(s)")


def grant(
    ctx: typer.Context,
    model: str = ModelOpt,
    group: str = GroupOpt,
    grantee: str = GranteeOpt,
):
    """
    Grant a privilege group of the model to a user or role.
    """
    appctx: DeployAppContext = ctx.obj
    data_model, _ = _load_ordered(model, appctx.schema)

    try:
        with appctx.provider.acquire() as target:
            with target.transaction():
                data_model.apply_grants(target, group, grantee)
    except SchemaDefinitionError as exc:
        exit_from_exc(exc)
    except DataAccessError as exc:
        exit_from_exc(exc, message=f"Grant failed: {exc}")

    out.success(f"Granted {group} privileges to {grantee}")
