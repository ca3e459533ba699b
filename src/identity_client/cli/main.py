"""CLI entry point for identity-client.

Invoked as::

    identity-client [OPTIONS] COMMAND [ARGS]...

or, during development::

    python -m identity_client.cli.main

Commands
--------
key set             Generate, derive or restore the device key
key lock            Lock the device key
key unlock          Unlock the device key
account create      Create a uid for a device
account password    Change the keystore password
device add          Add another device to your uid
device list         List the devices of an identity
device paperkey     Issue a new paperkey
device current      Show this device's id
id resolve          Resolve an identifier to a uid
id list             List the proofs of an identity
id prove            Prove ownership of an external account
id revoke           Revoke a proof

State lives under ``--path`` (default ``~/.identity-client``): the keystore,
the file-backed reference ledger and the content store.
"""
from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import NoReturn, Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from identity_client.client import IdentityClient
from identity_client.config import ClientConfig
from identity_client.errors import IdentityClientError
from identity_client.identity.identifier import Identifier, IdentifierKind
from identity_client.keystore.crypto import fingerprint

console = Console()
err_console = Console(stderr=True)

DEFAULT_PATH = Path.home() / ".identity-client"


# ------------------------------------------------------------------
# Root group
# ------------------------------------------------------------------


@click.group()
@click.version_option(package_name="identity-client")
@click.option(
    "--path",
    type=click.Path(file_okay=False, path_type=Path),
    default=DEFAULT_PATH,
    envvar="IDENTITY_CLIENT_PATH",
    show_default=True,
    help="Directory holding the keystore, ledger and content store.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging verbosity.",
)
@click.option(
    "--dev",
    is_flag=True,
    default=False,
    help="Development mode: accept seed URIs in `key set`.",
)
@click.pass_context
def cli(ctx: click.Context, path: Path, log_level: str, dev: bool) -> None:
    """Identity client: device keys, identity resolution and proofs"""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )
    ctx.ensure_object(dict)
    ctx.obj["path"] = path
    ctx.obj["dev"] = dev


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from identity_client import __version__

    console.print(f"[bold]identity-client[/bold] v{__version__}")


# ------------------------------------------------------------------
# key command group
# ------------------------------------------------------------------


@cli.group(name="key")
def key_group() -> None:
    """Manage the device key."""


@key_group.command(name="set")
@click.option("--suri", default=None, help="Seed URI to derive the key from (requires --dev).")
@click.option(
    "--paperkey",
    is_flag=True,
    default=False,
    help="Restore the key from a 24-word paperkey phrase.",
)
@click.pass_context
def key_set_command(ctx: click.Context, suri: Optional[str], paperkey: bool) -> None:
    """Generate a device key, or derive/restore it."""
    client = _open_client(ctx)
    try:
        if client.has_device_key():
            _fail("This device already has a key.")
        password = _ask_for_new_password(client.config.min_password_length)
        phrase = None
        if paperkey:
            phrase = click.prompt("Please enter your backup phrase", hide_input=True)
        result = client.set_key(password, suri=suri, phrase=phrase)
    except IdentityClientError as exc:
        _fail(exc.message)

    console.print(f"Your device id is [bold]{result['account_id']}[/bold]")
    if result["uid"] is not None:
        console.print(f"Your user id is [bold]{result['uid']}[/bold]")
    else:
        console.print(
            "[yellow]This device has no user id yet.[/yellow] Ask someone with an "
            "account to run `identity-client account create "
            f"{result['account_id']}` for you."
        )


@key_group.command(name="lock")
@click.pass_context
def key_lock_command(ctx: click.Context) -> None:
    """Lock the device key."""
    client = _open_client(ctx)
    try:
        client.lock()
    except IdentityClientError as exc:
        _fail(exc.message)
    console.print("[green]Locked[/green]")


@key_group.command(name="unlock")
@click.pass_context
def key_unlock_command(ctx: click.Context) -> None:
    """Unlock the device key."""
    client = _open_client(ctx)
    try:
        password = click.prompt("Please enter your password", hide_input=True)
        client.unlock(password)
    except IdentityClientError as exc:
        _fail(exc.message)
    console.print("[green]Unlocked[/green]")


# ------------------------------------------------------------------
# account command group
# ------------------------------------------------------------------


@cli.group(name="account")
def account_group() -> None:
    """Manage ledger accounts."""


@account_group.command(name="create")
@click.argument("device")
@click.option("--name", "-n", default=None, help="Human-readable handle bound to the new uid.")
@click.pass_context
def account_create_command(ctx: click.Context, device: str, name: Optional[str]) -> None:
    """Create a uid for the device id DEVICE."""
    client = _open_client(ctx)
    try:
        uid = client.create_account_for(device, name=name)
    except IdentityClientError as exc:
        _fail(exc.message)
    console.print(f"[green]Created[/green] user id [bold]{uid}[/bold] for {device}")


@account_group.command(name="password")
@click.pass_context
def account_password_command(ctx: click.Context) -> None:
    """Change the keystore password."""
    client = _open_client(ctx)
    try:
        client.change_password(_ask_for_new_password(client.config.min_password_length))
    except IdentityClientError as exc:
        _fail(exc.message)
    console.print("[green]Password changed[/green]")


# ------------------------------------------------------------------
# device command group
# ------------------------------------------------------------------


@cli.group(name="device")
def device_group() -> None:
    """Manage the devices of your identity."""


@device_group.command(name="add")
@click.argument("device")
@click.pass_context
def device_add_command(ctx: click.Context, device: str) -> None:
    """Add the device id DEVICE to your uid."""
    client = _open_client(ctx)
    try:
        client.add_key(device)
    except IdentityClientError as exc:
        _fail(exc.message)
    console.print(f"[green]Added[/green] device {device}")


@device_group.command(name="list")
@click.argument("identifier", required=False)
@click.pass_context
def device_list_command(ctx: click.Context, identifier: Optional[str]) -> None:
    """List the devices of IDENTIFIER (default: your own identity)."""
    client = _open_client(ctx)
    try:
        uid = _resolve(client, identifier)
        record = client.identity(uid)
    except IdentityClientError as exc:
        _fail(exc.message)

    fingerprints = set(record["paperkey_fingerprints"])  # type: ignore[arg-type]
    for key in record["keys"]:  # type: ignore[union-attr]
        marker = " (paperkey)" if fingerprint(str(key)) in fingerprints else ""
        console.print(f"{key}{marker}")


@device_group.command(name="paperkey")
@click.pass_context
def device_paperkey_command(ctx: click.Context) -> None:
    """Generate a new paperkey and add it to your uid."""
    client = _open_client(ctx)
    console.print("Generating a new paper key.")
    try:
        phrase = client.add_paperkey()
    except IdentityClientError as exc:
        _fail(exc.message)
    words = phrase.split()
    console.print("Here is your secret paper key phrase:\n")
    console.print(" ".join(words[:12]))
    console.print(" ".join(words[12:]))
    console.print("\nWrite it down and keep it somewhere safe.")


@device_group.command(name="current")
@click.pass_context
def device_current_command(ctx: click.Context) -> None:
    """Show this device's id."""
    client = _open_client(ctx)
    try:
        console.print(client.signer_account_id())
    except IdentityClientError as exc:
        _fail(exc.message)


# ------------------------------------------------------------------
# id command group
# ------------------------------------------------------------------


@cli.group(name="id")
def id_group() -> None:
    """Resolve identities and manage proofs."""


@id_group.command(name="resolve")
@click.argument("identifier")
@click.pass_context
def id_resolve_command(ctx: click.Context, identifier: str) -> None:
    """Resolve IDENTIFIER (uid, device id, handle or user@service) to a uid."""
    client = _open_client(ctx)
    try:
        uid = client.resolve_uid(identifier)
    except IdentityClientError as exc:
        _fail(exc.message)
    if uid is None:
        _fail(f"No identity found for {identifier}.")
    console.print(uid)


@id_group.command(name="list")
@click.argument("identifier", required=False)
@click.pass_context
def id_list_command(ctx: click.Context, identifier: Optional[str]) -> None:
    """List the proofs of IDENTIFIER (default: your own identity)."""
    client = _open_client(ctx)
    try:
        uid = _resolve(client, identifier)
        record = client.identity(uid)
    except IdentityClientError as exc:
        _fail(exc.message)

    console.print(f"User id [bold]{uid}[/bold]")
    proofs = record["proofs"]
    if not proofs:
        console.print("[yellow]No proofs.[/yellow]")
        return

    table = Table(title="Proofs", show_header=True)
    table.add_column("Seqno", justify="right")
    table.add_column("Account", style="cyan")
    table.add_column("Status")
    table.add_column("Proof URL")
    for proof in proofs:  # type: ignore[union-attr]
        table.add_row(
            str(proof["seqno"]),
            f"{proof['external_id']}@{proof['service']}",
            _status_markup(str(proof["status"])),
            str(proof["proof_url"] or ""),
        )
    console.print(table)
    for missing in record["missing"]:  # type: ignore[union-attr]
        console.print(
            f"[yellow]Warning:[/yellow] claim {missing['seqno']} ({missing['cid']}) "
            f"is unavailable: {missing['reason']}"
        )


@id_group.command(name="prove")
@click.argument("service")
@click.pass_context
def id_prove_command(ctx: click.Context, service: str) -> None:
    """Prove ownership of SERVICE, given as user@service (e.g. octocat@github)."""
    client = _open_client(ctx)
    try:
        parsed = _parse_service(service)
        console.print(f"Claiming {parsed}...")
        submission = client.prove_identity(parsed.service, parsed.value)  # type: ignore[arg-type]
    except IdentityClientError as exc:
        _fail(exc.message)
    console.print(str(submission["instructions"]))
    click.echo(str(submission["proof"]))


@id_group.command(name="revoke")
@click.argument("service")
@click.pass_context
def id_revoke_command(ctx: click.Context, service: str) -> None:
    """Revoke your proof for SERVICE (a service name or user@service)."""
    client = _open_client(ctx)
    try:
        if "@" in service:
            target = _parse_service(service).service
        else:
            target = service  # type: ignore[assignment]
        revoked = client.revoke_identity(target)  # type: ignore[arg-type]
    except IdentityClientError as exc:
        _fail(exc.message)
    if revoked:
        console.print("[green]Revoked[/green]")
    else:
        console.print("[yellow]Nothing to revoke.[/yellow]")


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _open_client(ctx: click.Context) -> IdentityClient:
    """Return the client for this invocation, initializing it on first use."""
    obj = ctx.find_root().ensure_object(dict)
    client = obj.get("client")
    if client is not None:
        return client
    config = ClientConfig.from_env()
    if obj.get("dev"):
        config = config.model_copy(update={"allow_seed_uri": True})
    client = IdentityClient(config)
    try:
        client.init(obj["path"])
    except IdentityClientError as exc:
        _fail(exc.message)
    obj["client"] = client
    return client


def _resolve(client: IdentityClient, identifier: Optional[str]) -> str:
    """Resolve *identifier*, or this device's own uid when it is None."""
    target = identifier if identifier is not None else client.signer_account_id()
    uid = client.resolve_uid(target)
    if uid is None:
        _fail(f"No identity found for {target}.")
    return uid


def _parse_service(text: str) -> Identifier:
    parsed = Identifier.parse(text)
    if parsed.kind is not IdentifierKind.SERVICE:
        _fail("Expected a service description of the form username@service.")
    return parsed


def _ask_for_new_password(min_length: int) -> str:
    return str(
        click.prompt(
            f"Please enter a new password ({min_length}+ characters)",
            hide_input=True,
            confirmation_prompt="Please confirm your new password",
        )
    )


def _status_markup(status: str) -> str:
    colors = {"accepted": "green", "pending": "yellow"}
    color = colors.get(status, "red")
    return f"[{color}]{status}[/{color}]"


def _fail(message: str) -> NoReturn:
    err_console.print(f"[red]Error:[/red] {message}")
    sys.exit(1)


if __name__ == "__main__":
    cli()
