"""CLI application for versioned schema deployment."""

import typer

from dbdeploy.cli.commands.schema import deploy, drop, grant, versions
from dbdeploy.cli.common.context import build_deploy_context
from dbdeploy.cli.common.exits import EXIT_USAGE, die
from dbdeploy.cli.common.logs import init_console_logging, resolve_log_level
from dbdeploy.cli.common.options import (
    AdminSchemaOpt,
    DatabaseOpt,
    DbNameOpt,
    DialectOpt,
    HaOpt,
    HostOpt,
    LogLevelOpt,
    PasswordOpt,
    PortOpt,
    SchemaOpt,
    SslOpt,
    UserOpt,
)
from dbdeploy.core.connections import ConnectionDetails
from dbdeploy.core.dialects import Dialect

app = typer.Typer(
    help="dbdeploy - versioned, dependency-ordered schema deployment",
    no_args_is_help=True,
)


@app.callback()
def _init(
    ctx: typer.Context,
    dialect: Dialect = DialectOpt,
    database: str | None = DatabaseOpt,
    host: str | None = HostOpt,
    port: int | None = PortOpt,
    db_name: str | None = DbNameOpt,
    user: str | None = UserOpt,
    password: str | None = PasswordOpt,
    ssl: bool = SslOpt,
    ha: bool = HaOpt,
    admin_schema: str = AdminSchemaOpt,
    schema: str = SchemaOpt,
    log_level: str = LogLevelOpt,
):
    """Configure logging and the target database once per invocation."""
    try:
        init_console_logging(resolve_log_level(log_level))
    except ValueError as e:
        die(str(e), code=EXIT_USAGE)

    details = ConnectionDetails(
        host=host,
        port=port,
        # SQLite takes a file, server dialects a database name
        database=database if dialect == Dialect.SQLITE else db_name,
        user=user,
        password=password,
        ssl=ssl,
        ha=ha,
    )
    ctx.obj = build_deploy_context(dialect, details, admin_schema, schema)


app.command()(deploy)
app.command()(versions)
app.command()(drop)
app.command()(grant)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
