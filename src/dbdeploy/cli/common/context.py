"""Application context management for the CLI."""

from dataclasses import dataclass

from dbdeploy.cli.common.exits import EXIT_USAGE, die
from dbdeploy.core.connections import ConnectionDetails, ConnectionProvider
from dbdeploy.core.dialects import Dialect, build_connection_provider
from dbdeploy.core.errors import SchemaDefinitionError
from dbdeploy.core.ledger import VersionLedger
from dbdeploy.core.names import assert_valid_name


@dataclass
class DeployAppContext:
    """Connection settings and provider shared by all commands of one invocation."""

    dialect: Dialect
    details: ConnectionDetails
    admin_schema: str
    schema: str
    provider: ConnectionProvider

    def ledger(self) -> VersionLedger:
        return VersionLedger(self.admin_schema, self.schema)

    def describe(self) -> dict[str, str]:
        """Connection summary safe to print (no password)."""
        where = self.details.database if self.dialect == Dialect.SQLITE else (
            f"{self.details.host or 'localhost'}:{self.details.port or '-'}/{self.details.database or ''}"
        )
        return {
            "dialect": self.dialect.value,
            "database": where or "-",
            "admin schema": self.admin_schema,
            "schema": self.schema,
        }


def build_deploy_context(
    dialect: Dialect,
    details: ConnectionDetails,
    admin_schema: str,
    schema: str,
) -> DeployAppContext:
    """Validate the settings and build the dialect's connection provider.

    Args:
        dialect: Target database product.
        details: Structured connection settings.
        admin_schema: Schema that holds the version history.
        schema: Data schema to deploy into.

    Returns:
        DeployAppContext: Context with a configured connection provider.
    """
    try:
        admin_schema = assert_valid_name(admin_schema)
        schema = assert_valid_name(schema)
        provider = build_connection_provider(dialect, details, [admin_schema, schema])
    except (SchemaDefinitionError, ValueError) as exc:
        die(str(exc), code=EXIT_USAGE)
    return DeployAppContext(
        dialect=dialect,
        details=details,
        admin_schema=admin_schema,
        schema=schema,
        provider=provider,
    )
