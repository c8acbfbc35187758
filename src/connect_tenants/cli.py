"""Typer CLI for operating the tenant registry."""

import asyncio
import json
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer
from rich.console import Console
from rich.table import Table

from connect_tenants.common.exceptions import RegistryError
from connect_tenants.tenants.schemas import TenantSnapshot
from connect_tenants.tenants.service import TenantRegistry

app = typer.Typer(name="connect-tenants", help="Tenant registry for Connect add-ons")
console = Console()

T = TypeVar("T")


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, help="Emit JSON logs at this level"),
):
    """Tenant registry for Connect add-ons."""
    if log_level:
        from connect_tenants.common.logging import setup_logging
        setup_logging(log_level)


def _run(action: Callable[[TenantRegistry], Awaitable[T]]) -> T:
    """Run ``action`` against a freshly initialized registry."""
    from connect_tenants.deps import get_db, get_registry, reset_singletons

    async def runner() -> T:
        db = get_db()
        await db.init()
        await db.create_all()
        try:
            return await action(get_registry())
        finally:
            await db.close()
            reset_singletons()

    try:
        return asyncio.run(runner())
    except RegistryError as e:
        console.print(f"[bold red]{e.code}[/bold red] — {e.message}")
        raise typer.Exit(1)


def _mask(value: Optional[str]) -> str:
    return "[green]set[/green]" if value else "[dim]-[/dim]"


def _state_style(state: str) -> str:
    return {"enabled": "green", "disabled": "yellow"}.get(state, "red")


def _print_state(tenant: TenantSnapshot) -> None:
    style = _state_style(tenant.state)
    console.print(f"{tenant.client_key}: [{style}]{tenant.state}[/{style}]")


@app.command("list")
def list_tenants(
    include_deleted: bool = typer.Option(False, "--include-deleted", help="Show uninstalled tenants"),
):
    """List tenants."""
    tenants = _run(lambda registry: registry.list_tenants(include_deleted=include_deleted))

    table = Table(title="Tenants")
    for column in ("Client key", "Add-on", "Product", "Base URL", "State", "Updated"):
        table.add_column(column)
    for t in tenants:
        style = _state_style(t.state)
        table.add_row(
            t.client_key, t.addon_key, t.product_type, t.base_url,
            f"[{style}]{t.state}[/{style}]", t.updated_at.isoformat(timespec="seconds"),
        )
    console.print(table)


@app.command()
def show(
    client_key: str = typer.Argument(..., help="Tenant client key"),
    include_deleted: bool = typer.Option(False, "--include-deleted", help="Allow uninstalled tenants"),
):
    """Show one tenant. Credentials are reported as set or missing only."""
    t = _run(lambda registry: registry.lookup(client_key, include_deleted=include_deleted))

    table = Table(show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    rows: list[tuple[str, Any]] = [
        ("client_key", t.client_key),
        ("addon_key", t.addon_key),
        ("base_url", t.base_url),
        ("product_type", t.product_type),
        ("server_version", t.server_version),
        ("plugin_version", t.plugin_version),
        ("description", t.description),
        ("state", t.state),
        ("last event", t.event_type),
        ("shared_secret", _mask(t.shared_secret)),
        ("public_key", _mask(t.public_key)),
        ("oauth_client_token", _mask(t.oauth_client_token)),
        ("created_at", t.created_at.isoformat()),
        ("updated_at", t.updated_at.isoformat()),
    ]
    if t.deleted_at:
        rows.append(("deleted_at", t.deleted_at.isoformat()))
    for name, value in rows:
        table.add_row(name, str(value))
    console.print(table)


@app.command()
def history(client_key: str = typer.Argument(..., help="Tenant client key")):
    """Show the lifecycle events applied to a tenant."""
    events = _run(lambda registry: registry.history(client_key))

    table = Table(title=f"History of {client_key}")
    for column in ("#", "Event", "At", "Detail"):
        table.add_column(column)
    for e in events:
        table.add_row(
            str(e.id), e.event_type, e.created_at.isoformat(timespec="seconds"),
            json.dumps(e.detail, sort_keys=True),
        )
    console.print(table)


@app.command()
def install(
    payload: Path = typer.Argument(..., exists=True, dir_okay=False, help="Installed-event JSON file"),
):
    """Apply an installed event read from a JSON file."""
    try:
        data = json.loads(payload.read_text())
    except json.JSONDecodeError as e:
        console.print(f"[bold red]Invalid JSON:[/bold red] {e}")
        raise typer.Exit(1)
    _print_state(_run(lambda registry: registry.handle_install(data)))


@app.command()
def enable(client_key: str = typer.Argument(..., help="Tenant client key")):
    """Enable a tenant."""
    _print_state(_run(lambda registry: registry.handle_enable(client_key)))


@app.command()
def disable(client_key: str = typer.Argument(..., help="Tenant client key")):
    """Disable a tenant."""
    _print_state(_run(lambda registry: registry.handle_disable(client_key)))


@app.command()
def uninstall(client_key: str = typer.Argument(..., help="Tenant client key")):
    """Uninstall (soft-delete) a tenant."""
    _print_state(_run(lambda registry: registry.handle_uninstall(client_key)))


@app.command()
def sign(
    client_key: str = typer.Argument(..., help="Tenant client key"),
    digest: str = typer.Argument(..., help="Request digest to sign"),
):
    """Print the HMAC signature a host would send for DIGEST."""
    from connect_tenants.signing.verifier import compute_hmac

    tenant = _run(lambda registry: registry.lookup(client_key))
    if not tenant.shared_secret:
        console.print(f"[bold red]CREDENTIAL_MISSING[/bold red] — {client_key} has no shared secret")
        raise typer.Exit(1)
    console.print(compute_hmac(tenant.shared_secret, digest), soft_wrap=True)


@app.command()
def token(
    client_key: str = typer.Argument(..., help="Tenant client key"),
    method: str = typer.Argument(..., help="HTTP method"),
    url: str = typer.Argument(..., help="Request URL"),
    ttl: Optional[int] = typer.Option(None, help="Lifetime in seconds"),
):
    """Mint an outbound JWT for a request to the tenant."""
    from connect_tenants.common.config import get_settings
    from connect_tenants.signing.jwt_auth import encode_token

    settings = get_settings()
    tenant = _run(lambda registry: registry.lookup(client_key))
    try:
        value = encode_token(
            tenant, method, url,
            issuer=settings.addon_key,
            ttl=ttl if ttl is not None else settings.jwt_ttl,
        )
    except RegistryError as e:
        console.print(f"[bold red]{e.code}[/bold red] — {e.message}")
        raise typer.Exit(1)
    console.print(value, soft_wrap=True)


@app.command()
def qsh(
    method: str = typer.Argument(..., help="HTTP method"),
    url: str = typer.Argument(..., help="Request URL"),
):
    """Print the query string hash of a request."""
    from connect_tenants.signing.jwt_auth import canonical_request, query_string_hash

    console.print(f"[dim]{canonical_request(method, url)}[/dim]", soft_wrap=True)
    console.print(query_string_hash(method, url), soft_wrap=True)


if __name__ == "__main__":
    app()
