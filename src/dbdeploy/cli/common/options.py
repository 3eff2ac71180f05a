"""Common CLI options for the CLI.

Every connection option falls back to a ``DBDEPLOY_*`` environment variable.
"""

import typer

from dbdeploy.core.dialects import Dialect
from dbdeploy.core.retry import DEFAULT_MAX_ATTEMPTS

DialectOpt = typer.Option(
    Dialect.SQLITE,
    "--dialect",
    "-d",
    envvar="DBDEPLOY_DIALECT",
    help="Target database product",
    case_sensitive=False,
)

DatabaseOpt = typer.Option(
    None,
    "--database",
    envvar="DBDEPLOY_DATABASE",
    help="SQLite database file, required for sqlite (schemas are attached as sibling files)",
)

HostOpt = typer.Option(
    None,
    "--host",
    envvar="DBDEPLOY_HOST",
    help="Database server host",
)

PortOpt = typer.Option(
    None,
    "--port",
    envvar="DBDEPLOY_PORT",
    help="Database server port (dialect default when omitted)",
)

DbNameOpt = typer.Option(
    None,
    "--db-name",
    envvar="DBDEPLOY_DB_NAME",
    help="Database name on the server",
)

UserOpt = typer.Option(
    None,
    "--user",
    "-u",
    envvar="DBDEPLOY_USER",
    help="Login user",
)

PasswordOpt = typer.Option(
    None,
    "--password",
    envvar="DBDEPLOY_PASSWORD",
    help="Login password (prefer the environment variable)",
    show_default=False,
)

SslOpt = typer.Option(
    False,
    "--ssl",
    envvar="DBDEPLOY_SSL",
    help="Require TLS",
)

HaOpt = typer.Option(
    False,
    "--ha",
    envvar="DBDEPLOY_HA",
    help="Request high-availability routing where supported",
)

AdminSchemaOpt = typer.Option(
    "ADMIN",
    "--admin-schema",
    envvar="DBDEPLOY_ADMIN_SCHEMA",
    help="Schema holding VERSION_HISTORY",
)

SchemaOpt = typer.Option(
    "APP",
    "--schema",
    "-s",
    envvar="DBDEPLOY_SCHEMA",
    help="Data schema to deploy into",
)

LogLevelOpt = typer.Option(
    "info",
    "--log-level",
    envvar="DBDEPLOY_LOG_LEVEL",
    help="Console log level (debug shows every statement)",
)

ModelOpt = typer.Option(
    ...,
    "--model",
    "-m",
    envvar="DBDEPLOY_MODEL",
    help="Model factory as module:function, called with the data schema name",
)

ParallelOpt = typer.Option(
    4,
    "--parallel",
    "-n",
    help="Number of objects to deploy in parallel",
)

MaxAttemptsOpt = typer.Option(
    DEFAULT_MAX_ATTEMPTS,
    "--max-attempts",
    help="Attempts per object when it hits a deadlock or lock timeout",
)

ContinueOnErrorOpt = typer.Option(
    False,
    "--continue-on-error",
    help="Keep deploying objects that do not depend on a failed one",
)

ConfirmOpt = typer.Option(
    True,
    "--confirm/--no-confirm",
    help="Ask for confirmation before dropping anything",
)

DryRunOpt = typer.Option(
    False,
    "--dry-run",
    help="Show the deployment order, but don't touch the database",
)

GroupOpt = typer.Option(
    ...,
    "--group",
    "-g",
    help="Privilege group defined on the model objects",
)

GranteeOpt = typer.Option(
    ...,
    "--grantee",
    help="User or role receiving the privileges",
)
