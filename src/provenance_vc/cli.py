"""
Command-line interface for the provenance credential verifier.

Usage:
    provenance-vc verify credential.json
    provenance-vc verify ipfs://<cid> --contract 0x...
    cat credential.json | provenance-vc verify -
    provenance-vc binding-tag --chain-id 11155111 --escrow 0x... --product-id 1 --stage 0
    provenance-vc chain <cid>
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any

import click
import httpx
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from provenance_vc.binding import BindingContext, BindingTagError
from provenance_vc.canonical import HOLDER
from provenance_vc.chain import (
    ChainError,
    ComponentNode,
    component_tree,
    signed_roles,
    walk_provenance,
)
from provenance_vc.config import Settings
from provenance_vc.exceptions import CredentialError
from provenance_vc.storage import IPFS_SCHEME, CredentialStore, StorageError, normalize_cid
from provenance_vc.verifier import CredentialVerification, CredentialVerifier, RoleVerificationResult

console = Console()
err_console = Console(stderr=True)

EXIT_VALID = 0
EXIT_INVALID = 1
EXIT_ERROR = 2

# Errors that mean "could not verify" rather than "verified and failed".
INPUT_ERRORS = (
    json.JSONDecodeError,
    httpx.HTTPError,
    OSError,
    StorageError,
    CredentialError,
    BindingTagError,
    ChainError,
)


def configure_logging(verbose: int) -> None:
    """Route library logs through rich on stderr. ``-v`` INFO, ``-vv`` DEBUG."""
    level = {0: logging.ERROR, 1: logging.INFO}.get(verbose, logging.DEBUG)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=verbose > 1)],
        force=True,
    )


def _role_rows(table: Table, label: str, role: RoleVerificationResult | None) -> None:
    if role is None:
        table.add_row(label, "[dim]not required[/]")
        return
    status = "[green]Verified[/]" if role.signature_verified else "[red]Not verified[/]"
    table.add_row(label, status)
    if role.expected_address:
        table.add_row(f"{label} Address", role.expected_address)
    if role.recovered_address and not role.signature_verified:
        table.add_row(f"{label} Recovered", role.recovered_address)
    if role.attempt:
        table.add_row(f"{label} Domain", role.attempt)


def format_result(result: CredentialVerification) -> None:
    """Format and print verification result."""
    if result.is_valid:
        status_icon = "[bold green]VALID[/]"
        panel_style = "green"
    else:
        status_icon = "[bold red]INVALID[/]"
        panel_style = "red"

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Field", style="dim")
    table.add_column("Value")

    table.add_row("Status", status_icon)
    if result.credential_id:
        table.add_row("Credential ID", result.credential_id)
    table.add_row("Format", "legacy (no schemaVersion)" if result.is_old_format else "versioned")

    _role_rows(table, "Issuer", result.issuer)
    _role_rows(table, "Holder", result.holder)

    console.print(Panel(table, title="Verification Result", border_style=panel_style))

    errors = [r.error for r in (result.issuer, result.holder) if r is not None and r.error]
    if errors:
        console.print("\n[bold red]Errors:[/]")
        for error in errors:
            console.print(f"  [red]x[/] {error}")


def load_credential(source: str, settings: Settings) -> dict[str, Any]:
    """Load credential from file, URL, IPFS, or stdin.

    Args:
        source: File path, http(s) URL, ``ipfs://<cid>``, or "-" for stdin.
        settings: Supplies the gateway and HTTP timeout.

    Returns:
        Parsed credential JSON.
    """
    if source == "-":
        return json.loads(sys.stdin.read())

    if source.startswith(IPFS_SCHEME):
        return CredentialStore.from_settings(settings).fetch(source)

    if source.startswith("http://") or source.startswith("https://"):
        with httpx.Client(timeout=settings.http_timeout, follow_redirects=True) as client:
            response = client.get(
                source,
                headers={"Accept": "application/vc+ld+json, application/json"},
            )
            response.raise_for_status()
            return response.json()

    path = Path(source)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {source}")

    with path.open(encoding="utf-8") as f:
        return json.load(f)


def _fail(message: str, json_output: bool) -> None:
    if json_output:
        console.print_json(data={"error": message})
    else:
        err_console.print(f"[red]Error:[/] {message}")
    sys.exit(EXIT_ERROR)


@click.group()
@click.option("-v", "--verbose", count=True, help="Log verification steps (-vv for debug)")
@click.version_option(package_name="provenance-vc")
@click.pass_context
def main(ctx: click.Context, verbose: int) -> None:
    """Verify EIP-712 signed provenance credentials."""
    configure_logging(verbose)
    ctx.obj = Settings.from_env()


@main.command()
@click.argument("source", required=True)
@click.option("--contract", "verifying_contract", help="Escrow contract the credential belongs to")
@click.option("--certificate", is_flag=True, help="Certificate credential (issuer signature only)")
@click.option("--chain-id", type=int, help="Chain id used when no DID carries one")
@click.option("--json-output", is_flag=True, help="Output result as JSON")
@click.pass_obj
def verify(
    settings: Settings,
    source: str,
    verifying_contract: str | None,
    certificate: bool,
    chain_id: int | None,
    json_output: bool,
) -> None:
    """Verify the issuer and holder signatures of a credential.

    SOURCE can be:
    - A file path (e.g., credential.json)
    - A URL (e.g., https://example.com/credentials/123)
    - An IPFS content id (e.g., ipfs://bafy...)
    - "-" to read from stdin

    Exit status is 0 for a valid credential, 1 for a credential whose
    signatures do not verify, and 2 if the credential could not be checked.
    """
    try:
        credential = load_credential(source, settings)
        verifier = CredentialVerifier(settings=settings)
        result = verifier.verify(
            credential,
            is_certificate=certificate,
            verifying_contract=verifying_contract,
            default_chain_id=chain_id,
        )
    except INPUT_ERRORS as e:
        _fail(str(e), json_output)

    if json_output:
        console.print_json(data=result.to_dict())
    else:
        format_result(result)

    sys.exit(EXIT_VALID if result.is_valid else EXIT_INVALID)


@main.command("binding-tag")
@click.option("--chain-id", type=int, required=True, help="Chain the escrow is deployed on")
@click.option("--escrow", required=True, help="Escrow contract address")
@click.option("--product-id", type=int, required=True, help="Product id in the escrow")
@click.option("--stage", type=click.IntRange(0, 2), required=True, help="Lifecycle stage (0-2)")
@click.option("--schema-version", default="1.0", show_default=True)
@click.option("--previous-cid", help="CID of the predecessor credential")
@click.option("--json-output", is_flag=True, help="Output result as JSON")
def binding_tag(
    chain_id: int,
    escrow: str,
    product_id: int,
    stage: int,
    schema_version: str,
    previous_cid: str | None,
    json_output: bool,
) -> None:
    """Derive the binding tag for a commitment context."""
    context = BindingContext(
        chain_id=chain_id,
        escrow_address=escrow,
        product_id=product_id,
        stage=stage,
        schema_version=schema_version,
        previous_credential_id=previous_cid or None,
    )
    try:
        tag = context.tag()
    except BindingTagError as e:
        _fail(str(e), json_output)

    if json_output:
        console.print_json(data={"binding_tag": tag, "protocol": context.protocol})
    else:
        click.echo(tag)


def _component_branch(tree: Tree, node: ComponentNode) -> None:
    for child in node.components:
        if child.error:
            label = f"[red]{child.cid}[/] ({child.error})"
        else:
            marker = "[green]delivered[/]" if child.delivered else "[yellow]in progress[/]"
            label = f"{child.product_name or 'Unknown'} [dim]{child.cid}[/] {marker}"
        _component_branch(tree.add(label), child)


@main.command()
@click.argument("cid")
@click.option("--contract", "verifying_contract", help="Escrow contract the credentials belong to")
@click.option("--components", is_flag=True, help="Also show the supply-chain component tree")
@click.pass_obj
def chain(
    settings: Settings,
    cid: str,
    verifying_contract: str | None,
    components: bool,
) -> None:
    """Walk and verify the provenance chain ending at CID."""
    store = CredentialStore.from_settings(settings)
    verifier = CredentialVerifier(settings=settings)

    try:
        cid = normalize_cid(cid)
        head = store.fetch(cid)
        links = walk_provenance(head, store.fetch, head_cid=cid)
        # Listing credentials are not countersigned until purchase.
        results = [
            verifier.verify(
                link.document,
                is_certificate=HOLDER not in signed_roles(link.document),
                verifying_contract=verifying_contract,
            )
            for link in links
        ]
    except INPUT_ERRORS as e:
        _fail(str(e), False)

    table = Table(title="Provenance Chain")
    table.add_column("#", justify="right")
    table.add_column("CID")
    table.add_column("Issuer")
    table.add_column("Holder")
    table.add_column("Status")

    def mark(role: RoleVerificationResult | None) -> str:
        if role is None:
            return "[dim]-[/]"
        return "[green]ok[/]" if role.signature_verified else "[red]fail[/]"

    for link, result in zip(links, results):
        status = "[green]VALID[/]" if result.is_valid else "[red]INVALID[/]"
        table.add_row(str(link.depth), link.cid or "", mark(result.issuer), mark(result.holder), status)
    console.print(table)

    if components:
        root = component_tree(head, store.fetch, cid=cid)
        tree = Tree(f"{root.product_name or 'Unknown'} [dim]{cid}[/]")
        _component_branch(tree, root)
        console.print(tree)

    sys.exit(EXIT_VALID if all(r.is_valid for r in results) else EXIT_INVALID)


if __name__ == "__main__":
    main()
