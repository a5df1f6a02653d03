# certledger/cli/main.py
"""
CLI for certificate records on the ledger: run a development peer, then
create, read, update, delete, transfer and list certificates through the gateway.
"""

import json
import os
import logging
import signal
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from certledger.core.types import Certificate
from certledger.crypto.keys import certificate_subject
from certledger.crypto.pki import generate_dev_crypto
from certledger.errors import GatewayTimeoutError, GatewayUnavailableError, LedgerError
from certledger.gateway import CertificateClient, GatewayConfig, GatewaySession
from certledger.gateway.config import DEFAULT_CRYPTO_PATH
from certledger.peer import PeerConfig, PeerServer
from certledger.state import create_world_state
from certledger.verify.auditor import WorldStateAuditor

app = typer.Typer(
    name="certledger",
    help="Manage certificate records on a replicated ledger",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.callback()
def main(
    ctx: typer.Context,
    crypto_path: Optional[Path] = typer.Option(None, "--crypto-path", help="Organization crypto folder (overrides CRYPTO_PATH)"),
    endpoint: Optional[str] = typer.Option(None, "--endpoint", help="Peer address host:port (overrides PEER_ENDPOINT)"),
    host_alias: Optional[str] = typer.Option(None, "--host-alias", help="TLS host name override (overrides PEER_HOST_ALIAS)"),
    msp_id: Optional[str] = typer.Option(None, "--msp-id", help="Caller MSP id (overrides MSP_ID)"),
    channel: Optional[str] = typer.Option(None, "--channel", help="Channel name (overrides CHANNEL_NAME)"),
    chaincode: Optional[str] = typer.Option(None, "--chaincode", help="Contract name (overrides CHAINCODE_NAME)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Manage certificate records on a replicated ledger."""
    setup_logging(verbose)
    ctx.obj = {
        "crypto_path": crypto_path,
        "overrides": {
            "peer_endpoint": endpoint,
            "peer_host_alias": host_alias,
            "msp_id": msp_id,
            "channel_name": channel,
            "chaincode_name": chaincode,
        },
    }


def get_config(ctx: typer.Context) -> GatewayConfig:
    """Resolve gateway settings: flags, then environment, then defaults."""
    obj = ctx.obj or {}
    env = None
    if obj.get("crypto_path"):
        env = dict(os.environ, CRYPTO_PATH=str(obj["crypto_path"]))
    return GatewayConfig.from_env(env, **obj.get("overrides", {}))


@contextmanager
def gateway(ctx: typer.Context) -> Iterator[CertificateClient]:
    """Open a session for one command; print gateway/contract errors and exit 1."""
    session = None
    try:
        session = GatewaySession(get_config(ctx)).open()
        yield CertificateClient(session)
    except GatewayUnavailableError as e:
        console.print(f"[red]Cannot connect to the ledger network: {escape(e.detail)}[/]")
        console.print("[yellow]Make sure the peer is running (certledger peer) and the endpoint is correct.[/]")
        raise typer.Exit(1)
    except GatewayTimeoutError as e:
        console.print(f"[red]Timed out during {e.stage}: {escape(e.detail)}[/]")
        raise typer.Exit(1)
    except LedgerError as e:
        console.print(f"[red]{type(e).__name__}: {escape(e.detail)}[/]")
        raise typer.Exit(1)
    finally:
        if session is not None:
            session.close()


def _load_record(source: str) -> dict:
    """Record JSON given inline, or as @path/to/file.json."""
    text = source
    if source.startswith("@"):
        try:
            text = Path(source[1:]).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            console.print(f"[red]Cannot read certificate file: {escape(str(e))}[/]")
            raise typer.Exit(1)
    try:
        record = json.loads(text)
    except json.JSONDecodeError as e:
        console.print(f"[red]Invalid certificate JSON: {escape(str(e))}[/]")
        raise typer.Exit(1)
    if not isinstance(record, dict):
        console.print("[red]Certificate JSON must be an object[/]")
        raise typer.Exit(1)
    return record


@app.command("init-crypto")
def init_crypto(
    output: Path = typer.Option(Path("crypto"), "--output", "-o", help="Where to write the development PKI"),
):
    """Generate a development CA, peer TLS/signing keys and a user identity."""
    dev = generate_dev_crypto(output)
    console.print(f"[green]Development crypto material written to {dev.root}[/]")
    console.print(f"  TLS root certificate: {dev.tls_ca_cert}")
    subject = certificate_subject((dev.user_cert_dir / "cert.pem").read_bytes())
    console.print(f"  User identity:        {subject}")
    console.print(f"  User credential dir:  {dev.user_cert_dir}")
    console.print(f"  User key dir:         {dev.user_key_dir}")


@app.command()
def peer(
    ctx: typer.Context,
    listen: str = typer.Option("127.0.0.1:7051", "--listen", help="Address to serve on"),
    state: str = typer.Option("memory:", "--state", help="World state URI (memory: or sqlite://path)"),
):
    """Run a single-node development peer hosting the certificate contract."""
    obj = ctx.obj or {}
    crypto_path = obj.get("crypto_path") or os.environ.get("CRYPTO_PATH") or DEFAULT_CRYPTO_PATH
    try:
        config = get_config(ctx)
        server = PeerServer.from_config(PeerConfig.from_crypto_path(
            crypto_path,
            peer_host=config.peer_host_alias,
            listen_address=listen,
            state_uri=state,
            channel_name=config.channel_name,
            chaincode_name=config.chaincode_name,
            msp_ids=(config.msp_id,),
        ))
        port = server.start()
    except (LedgerError, ValueError) as e:
        console.print(f"[red]Failed to start peer: {escape(str(e))}[/]")
        console.print("[yellow]Run `certledger init-crypto` first, or point --crypto-path at your crypto folder.[/]")
        raise typer.Exit(1)

    console.print(f"[green]Peer serving channel '{config.channel_name}' contract '{config.chaincode_name}' on port {port}[/]")
    signal.signal(signal.SIGTERM, lambda *_: server.stop())
    try:
        server.wait_for_termination()
    except KeyboardInterrupt:
        console.print("\nShutting down gracefully...")
        server.stop()


@app.command()
def bootstrap(ctx: typer.Context):
    """Seed the ledger with the sample certificates."""
    with gateway(ctx) as client:
        client.init_ledger()
    console.print("[green]Ledger initialized with sample certificates[/]")


@app.command("list")
def list_certificates(ctx: typer.Context):
    """List every certificate on the ledger."""
    with gateway(ctx) as client:
        entries = client.list_all()

    if not entries:
        console.print("[yellow]No certificates found on the ledger.[/]")
        return

    table = Table(title="Certificates")
    table.add_column("Record ID")
    table.add_column("Subject")
    table.add_column("Status")
    table.add_column("Name")

    for entry in entries:
        if isinstance(entry, Certificate):
            name = entry.payload.get("name", "-") if isinstance(entry.payload, dict) else "-"
            table.add_row(entry.record_id, entry.subject_id or "-", entry.status or "-", str(name))
        else:
            table.add_row("[yellow]?[/]", "-", "-", str(entry)[:60])

    console.print(table)
    console.print(f"Found {len(entries)} certificates")


@app.command()
def read(ctx: typer.Context, record_id: str = typer.Argument(..., help="Certificate record ID")):
    """Show one certificate."""
    with gateway(ctx) as client:
        record = client.read_raw(record_id)
    console.print_json(data=record)


@app.command()
def exists(ctx: typer.Context, record_id: str = typer.Argument(..., help="Certificate record ID")):
    """Check whether a certificate exists (exit code 1 when it does not)."""
    with gateway(ctx) as client:
        found = client.exists(record_id)
    console.print(f"{record_id}: {'exists' if found else 'not found'}")
    if not found:
        raise typer.Exit(1)


@app.command()
def create(ctx: typer.Context, record: str = typer.Argument(..., help="Certificate JSON, or @file.json")):
    """Create a certificate."""
    data = _load_record(record)
    with gateway(ctx) as client:
        created = client.create(data)
    console.print(f"[green]Certificate {created.record_id} created[/]")


@app.command()
def update(ctx: typer.Context, record: str = typer.Argument(..., help="Certificate JSON, or @file.json")):
    """Replace an existing certificate wholesale."""
    data = _load_record(record)
    with gateway(ctx) as client:
        updated = client.update(data)
    console.print(f"[green]Certificate {updated.record_id} updated[/]")


@app.command()
def delete(ctx: typer.Context, record_id: str = typer.Argument(..., help="Certificate record ID")):
    """Delete a certificate."""
    with gateway(ctx) as client:
        client.delete(record_id)
    console.print(f"[green]Certificate {record_id} deleted[/]")


@app.command()
def transfer(
    ctx: typer.Context,
    record_id: str = typer.Argument(..., help="Certificate record ID"),
    new_subject: str = typer.Argument(..., help="New subject ID"),
):
    """Transfer a certificate to a new subject."""
    with gateway(ctx) as client:
        previous = client.transfer(record_id, new_subject)
    console.print(f"[green]Certificate {record_id} transferred: {previous} -> {new_subject}[/]")


@app.command()
def audit(
    state: str = typer.Option(..., "--state", help="World state URI to audit (sqlite://path)"),
    allow_custom_type: bool = typer.Option(False, "--allow-custom-type", help="Do not flag a missing or custom recordType"),
):
    """Check a world state database against the record invariants."""
    try:
        world_state = create_world_state(state)
    except (ValueError, OSError) as e:
        console.print(f"[red]Failed to open world state: {escape(str(e))}[/]")
        raise typer.Exit(1)

    with world_state:
        result = WorldStateAuditor(require_record_type=not allow_custom_type).audit(world_state)

    if result.is_valid:
        console.print(f"[green]✓ {result.checked} entries checked, world state is valid[/]")
    else:
        console.print(f"[red]✗ Audit failed ({len(result.failures)} issues in {result.checked} entries)[/]")
        for failure in result.failures:
            console.print(escape(f"  • [{failure.key}] {failure.category}: {failure.message}"))
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
