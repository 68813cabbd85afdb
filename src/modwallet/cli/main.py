#!/usr/bin/env python3
"""
modwallet CLI - passkey wallet tooling

Commands:
- keygen: create a P-256 passkey and write its public key JSON and PEM private key
- deploy: deploy the wallet and its modules on an in-memory ledger
- decode-signature: inspect an ABI-encoded passkey signature
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

import click
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from modwallet.core.config import (
    Config,
    ConfigurationError,
    load_entry_points,
    load_public_key,
)
from modwallet.core.crypto_utils import (
    compressed_public_key,
    deterministic_private_key_from_seed,
    generate_p256_private_key,
    private_key_to_pem,
    public_point_from_private,
)
from modwallet.core.deployment import deploy_modular_wallet
from modwallet.core.logging_config import setup_logging
from modwallet.core.vm.ledger import Ledger
from modwallet.core.webauthn import Challenge, MalformedSignature, PasskeySignature

logger = logging.getLogger(__name__)
console = Console()


def _emit(ctx: click.Context, title: str, rows: dict[str, Any]) -> None:
    """Print ``rows`` as JSON or as a rich key/value panel."""
    if ctx.obj.get("json_output"):
        click.echo(json.dumps(rows, indent=2))
        return
    table = Table(show_header=False, box=box.ROUNDED)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green", overflow="fold")
    for key, value in rows.items():
        table.add_row(key, str(value))
    console.print(Panel(table, title=f"[bold green]{title}", border_style="cyan"))


@click.group()
@click.option(
    "--log-level",
    default=Config.LOG_LEVEL,
    envvar="MODWALLET_LOG_LEVEL",
    show_default=True,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Logging level for structured logs (written to stderr)",
)
@click.option("--json-output", is_flag=True, help="Output raw JSON")
@click.pass_context
def cli(ctx: click.Context, log_level: str, json_output: bool) -> None:
    """
    modwallet - passkey-authenticated modular smart wallet tooling
    """
    ctx.ensure_object(dict)
    setup_logging(name="modwallet", level=log_level, stream=click.get_text_stream("stderr"))
    ctx.obj["json_output"] = json_output


@cli.command()
@click.option(
    "--out-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("."),
    show_default=True,
    help="Directory for public-key.json and passkey.pem",
)
@click.option("--seed", help="Hex seed for a deterministic key (testing only)")
@click.pass_context
def keygen(ctx: click.Context, out_dir: Path, seed: Optional[str]) -> None:
    """Generate a P-256 passkey."""
    if seed:
        try:
            private_key = deterministic_private_key_from_seed(bytes.fromhex(seed.removeprefix("0x")))
        except ValueError as exc:
            raise click.ClickException(f"Seed must be hex: {exc}") from exc
    else:
        private_key = generate_p256_private_key()

    x, y = public_point_from_private(private_key)
    out_dir.mkdir(parents=True, exist_ok=True)
    public_key_path = out_dir / "public-key.json"
    private_key_path = out_dir / "passkey.pem"
    public_key_path.write_text(json.dumps({"x": hex(x), "y": hex(y)}, indent=2) + "\n", encoding="utf-8")
    private_key_path.write_bytes(private_key_to_pem(private_key))
    private_key_path.chmod(0o600)

    logger.info(
        "Passkey generated",
        extra={"event": "cli.keygen", "public_key_file": str(public_key_path)},
    )
    _emit(
        ctx,
        "Passkey Created",
        {
            "x": hex(x),
            "y": hex(y),
            "compressed": compressed_public_key((x, y)),
            "public_key_file": str(public_key_path),
            "private_key_file": str(private_key_path),
        },
    )


@cli.command()
@click.option(
    "--public-key-file",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    envvar="MODWALLET_PUBLIC_KEY_FILE",
    required=True,
    help="JSON file with the passkey public key",
)
@click.option("--network", default=lambda: Config.NETWORK, show_default="MODWALLET_NETWORK")
@click.option(
    "--entry-points-file",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    envvar="MODWALLET_ENTRY_POINTS_FILE",
    help="JSON map of network name to entry point address",
)
@click.pass_context
def deploy(
    ctx: click.Context,
    public_key_file: Path,
    network: str,
    entry_points_file: Optional[Path],
) -> None:
    """Deploy the wallet and its modules on an in-memory ledger."""
    try:
        public_key = load_public_key(public_key_file)
        entry_points = load_entry_points(entry_points_file) if entry_points_file else {}
        ledger = Ledger(chain_id=Config.CHAIN_ID)
        deployment = deploy_modular_wallet(ledger, public_key, network=network, entry_points=entry_points)
    except ConfigurationError as exc:
        raise click.ClickException(str(exc)) from exc

    rows = {"network": deployment.network, **deployment.addresses()}
    rows["entryPointDeployed"] = deployment.entry_point_deployed
    _emit(ctx, "Modular Wallet Deployed", rows)


@cli.command("decode-signature")
@click.argument("signature_hex")
@click.pass_context
def decode_signature(ctx: click.Context, signature_hex: str) -> None:
    """Decode an ABI-encoded passkey signature."""
    try:
        raw = bytes.fromhex(signature_hex.removeprefix("0x"))
        signature = PasskeySignature.decode(raw)
        challenge = Challenge.decode(signature.challenge)
    except (ValueError, MalformedSignature) as exc:
        raise click.ClickException(f"Invalid passkey signature: {exc}") from exc

    _emit(
        ctx,
        "Passkey Signature",
        {
            "version": challenge.version,
            "valid_until": challenge.valid_until,
            "user_op_hash": "0x" + challenge.user_op_hash.hex(),
            "authenticator_data": "0x" + signature.authenticator_data.hex(),
            "flags": f"0x{signature.flags:02x}",
            "require_user_verification": signature.require_user_verification,
            "client_data_json": signature.client_data_json,
            "challenge_location": signature.challenge_location,
            "response_type_location": signature.response_type_location,
            "r": hex(signature.r),
            "s": hex(signature.s),
        },
    )


def main() -> None:
    """Main CLI entry point"""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/]")
        sys.exit(130)


if __name__ == "__main__":
    main()
