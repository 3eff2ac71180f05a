"""Output formatting utilities for the CLI."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import questionary
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.theme import Theme

from dbdeploy.cli.common.tui_style import QUESTIONARY_STYLE_CONFIRM

_THEME = Theme(
    {
        "ok": "bold green",
        "warn": "yellow",
        "err": "bold red",
        "title": "bold cyan",
        "meta": "dim",
    }
)

console = Console(theme=_THEME)

_STATUS_STYLES = {
    "COMMITTED": "ok",
    "FAILED": "err",
    "SKIPPED": "warn",
    "PENDING": "meta",
}


@dataclass(frozen=True)
class Out:
    """Output formatter for CLI messages and tables."""

    def _q(self, message: str) -> str:
        """Prefix Questionary prompts so they read as dbdeploy's."""
        return f"[DBDEPLOY] {message}"

    def info(self, msg: str) -> None:
        console.print(f"[title]›[/] {msg}")

    @contextmanager
    def status(self, msg: str):
        """Show a transient status spinner while work is in progress."""
        with console.status(msg, spinner="dots"):
            yield

    def success(self, msg: str) -> None:
        console.print(f"[ok]✓[/] {msg}")

    def warn(self, msg: str) -> None:
        console.print(f"[warn]⚠[/] {escape(msg)}")

    def error(self, msg: str) -> None:
        console.print(f"[err]✗[/] {escape(msg)}")

    def header(self, title: str) -> None:
        console.print(f"[title]{title}[/]")

    def kv(self, items: Mapping[str, Any]) -> None:
        """Print key-value pairs."""
        for k, v in items.items():
            console.print(f"[meta]{k}[/]: {v}")

    def confirm(self, message: str, *, default: bool = False) -> bool:
        """
        Ask the user for confirmation using a standardized Questionary prompt.

        Args:
            message: Confirmation question shown to the user.
            default: Default answer if the user just presses enter.

        Returns:
            True if the user confirms, False otherwise.
        """
        console.print("[meta]Use y/n then Enter[/]")
        prompt = questionary.confirm(
            self._q(message),
            default=default,
            style=QUESTIONARY_STYLE_CONFIRM,
            qmark="✦",
            auto_enter=False,
        )
        return bool(prompt.ask())

    def order_table(self, objects: Iterable[Any], title: str = "Deployment order") -> None:
        """
        Expects objects with .type_and_name, .schema_name and .version
        (like dbdeploy.core.objects.DatabaseObject)
        """
        t = Table(title=title, show_lines=False)
        t.add_column("#", style="meta", no_wrap=True)
        t.add_column("Object", style="ok")
        t.add_column("Schema", style="meta")
        t.add_column("Version")

        for i, obj in enumerate(objects, start=1):
            t.add_row(str(i), obj.type_and_name, obj.schema_name, str(obj.version))

        console.print(t)

    def results_table(self, results: Iterable[Any], title: str = "Deployment results") -> None:
        """
        Expects objects with .name .version .status .retries .error
        (like dbdeploy.core.deployer.DeployResult)
        """
        t = Table(title=title, show_lines=False)
        t.add_column("Object", style="ok")
        t.add_column("Version")
        t.add_column("Status")
        t.add_column("Retries", style="meta")
        t.add_column("Error", style="err")

        for r in results:
            status = r.status.value if hasattr(r.status, "value") else str(r.status)
            style = _STATUS_STYLES.get(status, "meta")
            t.add_row(
                r.name,
                str(r.version),
                f"[{style}]{status}[/{style}]",
                str(r.retries),
                escape(str(r.error or "")),
            )

        console.print(t)

    def versions_table(self, records: Iterable[Any], title: str = "Version history") -> None:
        """
        Expects objects with .schema_name .object_type .object_name .version .applied_at
        (like dbdeploy.core.ledger.VersionRecord)
        """
        t = Table(title=title, show_lines=False)
        t.add_column("Schema", style="meta")
        t.add_column("Type")
        t.add_column("Name", style="ok")
        t.add_column("Version", no_wrap=True)
        t.add_column("Applied", style="meta")

        for r in records:
            t.add_row(r.schema_name, r.object_type, r.object_name, str(r.version), r.applied_at)

        console.print(t)


out = Out()
