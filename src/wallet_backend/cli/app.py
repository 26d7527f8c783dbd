"""CLI for the wallet backend - run the server and operate the wallet from the terminal."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

app = typer.Typer(
    name="wallet-backend",
    help="Custodial wallet service: sign, broadcast and confirm native transfers over HTTP.",
    no_args_is_help=True,
)
console = Console()

_config_path: Optional[Path] = None


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        console.print(f"wallet-backend {version('wallet-backend')}")
        raise typer.Exit()


@app.callback()
def main(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to a YAML config file",
        envvar="WALLET_BACKEND_CONFIG",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    ),
):
    """Custodial wallet service: sign, broadcast and confirm native transfers over HTTP."""
    global _config_path
    _config_path = config


def _load_config():
    from wallet_backend.config import load_config

    try:
        return load_config(_config_path)
    except FileNotFoundError:
        console.print(f"[red]Config file not found: {_config_path}[/red]")
        raise typer.Exit(1)


def _load_service(config=None):
    """Build the wallet service, exiting cleanly if the key is unusable."""
    from wallet_backend.exceptions import SigningError
    from wallet_backend.wallet.service import WalletService

    config = config or _load_config()
    try:
        return WalletService.from_config(config)
    except SigningError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ------------------------------------------------------------------
# Server
# ------------------------------------------------------------------


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (default from config)"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port (default from config / $PORT)"),
):
    """Start the HTTP API."""
    from wallet_backend.api.server import run_server

    config = _load_config()
    _configure_logging(config.server.log_level)
    service = _load_service(config)
    chain = config.chain

    console.print(Panel(
        f"[bold green]Wallet backend starting[/bold green]\n\n"
        f"Wallet:  [cyan]{service.address}[/cyan]\n"
        f"Chain:   {chain.name} (chainId {chain.chain_id})\n"
        f"Listen:  {host or config.server.host}:{port or config.server.port}",
        title="Wallet Backend",
    ))
    run_server(
        service,
        host=host or config.server.host,
        port=port or config.server.port,
        cors_origins=config.server.cors_origins,
        log_level=config.server.log_level,
    )


@app.command("init-config")
def init_config(
    path: Path = typer.Argument(Path("wallet-backend.yaml"), help="Where to write the config"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file"),
):
    """Write a config template with ${ENV} placeholders for secrets."""
    from wallet_backend.config import ServiceConfig, save_config

    if path.exists() and not force:
        console.print(f"[yellow]{path} already exists.[/yellow] Use --force to overwrite.")
        raise typer.Exit(1)
    save_config(ServiceConfig(), path)
    console.print(f"Config written to [cyan]{path}[/cyan]")


# ------------------------------------------------------------------
# Wallet operations
# ------------------------------------------------------------------


@app.command()
def address():
    """Show the backend wallet address."""
    service = _load_service()
    console.print(Panel(f"[cyan]{service.address}[/cyan]", title="Wallet Address"))


@app.command()
def balance():
    """Show balance, nonce and gas price."""
    from wallet_backend.exceptions import WalletServiceError

    service = _load_service()
    try:
        info = service.get_balance()
    except WalletServiceError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    table = Table(title="Wallet Balance")
    table.add_column("Field", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Address", info["address"])
    table.add_row("Balance", f"{info['balance']} {service.client.chain.native_symbol}")
    table.add_row("Nonce", str(info["nonce"]))
    table.add_row("Gas price", f"{info['gasPrice']} gwei")
    console.print(table)


@app.command()
def tx(tx_hash: str = typer.Argument(help="Transaction hash (0x...)")):
    """Look up a transaction and its receipt."""
    from wallet_backend.exceptions import WalletServiceError

    service = _load_service()
    try:
        result = service.get_transaction_status(tx_hash)
    except WalletServiceError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    txn, receipt = result["transaction"], result["receipt"]
    lines = []
    if txn:
        lines += [
            f"From:   {txn['from']}",
            f"To:     {txn['to']}",
            f"Value:  {txn['value']}",
            f"Nonce:  {txn['nonce']}",
        ]
    if receipt:
        status = "[green]success[/green]" if receipt["status"] == 1 else "[red]reverted[/red]"
        lines += [
            f"Status: {status}",
            f"Block:  {receipt['blockNumber']}",
            f"Gas:    {receipt['gasUsed']}",
            f"Confirmations: {receipt['confirmations']}",
        ]
    else:
        lines.append("[yellow]Pending (no receipt yet)[/yellow]")
    console.print(Panel("\n".join(lines), title=tx_hash))


@app.command()
def estimate(
    amount: str = typer.Argument(help="Amount to send (e.g. 0.01)"),
    to: str = typer.Option(..., "--to", "-t", help="Recipient address (0x...)"),
):
    """Quote the network fee for a transfer (advisory)."""
    from wallet_backend.exceptions import WalletServiceError

    service = _load_service()
    try:
        quote = service.estimate_transfer_cost(to, amount)
    except WalletServiceError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    console.print(
        f"Gas limit [bold]{quote['gasLimit']}[/bold] at {quote['gasPrice']} gwei = "
        f"[bold]{quote['totalCost']}[/bold] {service.client.chain.native_symbol} "
        f"(~${quote['totalCostUSD']}, advisory)"
    )


@app.command()
def send(
    amount: str = typer.Argument(help="Amount to send (e.g. 0.01)"),
    to: str = typer.Option(..., "--to", "-t", help="Recipient address (0x...)"),
):
    """Send native tokens from the backend wallet and wait for confirmation."""
    from wallet_backend.exceptions import ConfirmationPending, WalletServiceError

    config = _load_config()
    _configure_logging(config.server.log_level)
    service = _load_service(config)
    chain = config.chain

    console.print(f"\n[bold]Send {amount} {chain.native_symbol} on {chain.name}[/bold]")
    console.print(f"  From: {service.address}")
    console.print(f"  To:   {to}\n")
    typer.confirm("Confirm this transaction?", abort=True)

    try:
        record = service.transfer(to, amount, purpose="cli")
    except ConfirmationPending as e:
        console.print(Panel(
            f"[yellow]Broadcast but not confirmed yet.[/yellow]\n\n"
            f"Tx: [cyan]{e.tx_hash}[/cyan]\n"
            f"Explorer: {chain.tx_url(e.tx_hash)}",
            title="Transaction Pending",
        ))
        raise typer.Exit(2)
    except WalletServiceError as e:
        console.print(f"[red]Transaction failed: {e}[/red]")
        raise typer.Exit(1)

    console.print(Panel(
        f"[bold green]Transaction confirmed![/bold green]\n\n"
        f"Tx: [cyan]{record.tx_hash}[/cyan]\n"
        f"Block: {record.block_number}\n"
        f"Explorer: {chain.tx_url(record.tx_hash)}",
        title="Transaction Sent",
    ))


if __name__ == "__main__":
    app()
